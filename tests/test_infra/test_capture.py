"""Tests for the httpx + BeautifulSoup page capture."""

import httpx
import pytest

from researchbench.errors import TransientExternalError
from researchbench.infra.capture.web import WebCaptureProvider

PAGE = """
<html>
  <head>
    <title> Grid Storage Explained </title>
    <meta name="author" content="Jane Doe">
    <meta property="article:published_time" content="2024-03-01">
    <meta name="description" content="An overview">
  </head>
  <body>
    <nav>Home | About</nav>
    <script>var tracking = 1;</script>
    <main>
      <h1>Batteries</h1>
      <p>Lithium   ion dominates.</p>
      <a href="/deeper#part">Deeper</a>
      <a href="https://other.example.org/x">Other</a>
      <a href="mailto:someone@example.org">Mail</a>
      <img src="a.png"><table><tr><td>1</td></tr></table>
    </main>
  </body>
</html>
"""


def _provider(handler, **kwargs) -> WebCaptureProvider:
    return WebCaptureProvider(transport=httpx.MockTransport(handler), **kwargs)


class TestWebCaptureProvider:
    @pytest.mark.asyncio
    async def test_capture_extracts_metadata_and_text(self):
        provider = _provider(lambda request: httpx.Response(200, html=PAGE))
        result = await provider.capture("https://grid.example.org/article")
        meta = result.metadata

        assert meta.title == "Grid Storage Explained"
        assert meta.author == "Jane Doe"
        assert meta.publish_date == "2024-03-01"
        assert meta.links == ("https://grid.example.org/deeper", "https://other.example.org/x")
        assert meta.image_count == 1
        assert meta.table_count == 1

        text = await provider.extract_text(result.capture_id)
        assert "Lithium ion dominates." in text.text
        assert "tracking" not in text.text
        assert "Home | About" not in text.text

        visual = await provider.analyze_visual_elements(result.capture_id)
        assert visual.images == 1
        assert visual.links == 2
        await provider.close()

    @pytest.mark.asyncio
    async def test_max_links(self):
        provider = _provider(lambda request: httpx.Response(200, html=PAGE), max_links=1)
        result = await provider.capture("https://grid.example.org/article")
        assert len(result.metadata.links) == 1
        assert result.metadata.link_count == 2
        await provider.close()

    @pytest.mark.asyncio
    async def test_http_error_is_transient(self):
        provider = _provider(lambda request: httpx.Response(404))
        with pytest.raises(TransientExternalError):
            await provider.capture("https://gone.example.org")
        await provider.close()

    @pytest.mark.asyncio
    async def test_unknown_capture_id(self):
        provider = _provider(lambda request: httpx.Response(200, html=PAGE))
        with pytest.raises(TransientExternalError):
            await provider.get_metadata("nope")
        await provider.close()

    @pytest.mark.asyncio
    async def test_least_recently_used_capture_is_evicted(self):
        provider = _provider(lambda request: httpx.Response(200, html=PAGE), max_captures=2)
        first = await provider.capture("https://grid.example.org/one")
        second = await provider.capture("https://grid.example.org/two")
        await provider.get_metadata(first.capture_id)
        third = await provider.capture("https://grid.example.org/three")

        with pytest.raises(TransientExternalError):
            await provider.extract_text(second.capture_id)
        assert (await provider.get_metadata(first.capture_id)).url == "https://grid.example.org/one"
        assert (await provider.get_metadata(third.capture_id)).url == "https://grid.example.org/three"
        await provider.close()
