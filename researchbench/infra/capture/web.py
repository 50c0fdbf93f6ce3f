"""Web page capture over httpx, parsed with BeautifulSoup."""

from __future__ import annotations

import logging
import re
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from urllib.parse import urldefrag, urljoin

import httpx
from bs4 import BeautifulSoup

from researchbench.errors import TransientExternalError
from researchbench.models.research import (
    CaptureMetadata,
    CaptureResult,
    ExtractedText,
    VisualAnalysis,
)

logger = logging.getLogger(__name__)

NOISE_TAGS = ["script", "style", "nav", "header", "footer", "aside", "iframe", "noscript"]
CONTENT_SELECTORS = ["main", "article", '[role="main"]', "#content", ".content", ".post-content"]
AUTHOR_META = [
    {"name": "author"},
    {"property": "article:author"},
    {"name": "dc.creator"},
]
DATE_META = [
    {"property": "article:published_time"},
    {"name": "date"},
    {"name": "pubdate"},
    {"name": "dc.date"},
    {"itemprop": "datePublished"},
]


@dataclass
class _Page:
    metadata: CaptureMetadata
    text: str


def _meta_content(soup: BeautifulSoup, candidates: list[dict]) -> str:
    for attrs in candidates:
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            return tag["content"].strip()
    return ""


def _clean_text(text: str) -> str:
    text = re.sub(r"[ \t]+", " ", text)
    lines = [line.strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)


class WebCaptureProvider:
    """Fetches pages and keeps the parsed capture in memory, keyed by capture id.

    Only the `max_captures` most recently used pages are kept; an evicted id
    reads like an unknown one.
    """

    def __init__(
        self,
        user_agent: str = "researchbench/0.1",
        timeout: float = 30.0,
        max_links: int = 50,
        max_captures: int = 256,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_links = max_links
        self._max_captures = max(1, max_captures)
        self._pages: OrderedDict[str, _Page] = OrderedDict()
        self._client = httpx.AsyncClient(
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
            },
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def capture(self, url: str) -> CaptureResult:
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientExternalError(f"Capture of {url} failed: {e}", operation="capture") from e

        final_url = str(response.url)
        soup = BeautifulSoup(response.text, "html.parser")

        title_tag = soup.find("title")
        title = title_tag.get_text().strip() if title_tag else ""
        links = []
        for anchor in soup.find_all("a", href=True):
            link, _ = urldefrag(urljoin(final_url, anchor["href"]))
            if link.startswith(("http://", "https://")) and link not in links:
                links.append(link)

        metadata = CaptureMetadata(
            url=url,
            final_url=final_url,
            title=title,
            author=_meta_content(soup, AUTHOR_META),
            publish_date=_meta_content(soup, DATE_META),
            description=_meta_content(soup, [{"name": "description"}]),
            status_code=response.status_code,
            content_length=len(response.content),
            links=tuple(links[: self._max_links]),
            image_count=len(soup.find_all("img")),
            link_count=len(links),
            table_count=len(soup.find_all("table")),
            form_count=len(soup.find_all("form")),
        )

        for element in soup(NOISE_TAGS):
            element.decompose()
        body = None
        for selector in CONTENT_SELECTORS:
            body = soup.select_one(selector)
            if body:
                break
        text = _clean_text((body or soup).get_text("\n"))

        capture_id = uuid.uuid4().hex
        self._pages[capture_id] = _Page(metadata=metadata, text=text)
        while len(self._pages) > self._max_captures:
            evicted, _ = self._pages.popitem(last=False)
            logger.debug("Evicted capture %s", evicted)
        logger.debug("Captured %s (%d chars) as %s", url, len(text), capture_id)
        return CaptureResult(capture_id=capture_id, metadata=metadata)

    def _page(self, capture_id: str) -> _Page:
        try:
            page = self._pages[capture_id]
        except KeyError:
            raise TransientExternalError(
                f"Unknown capture id: {capture_id}", operation="capture"
            ) from None
        self._pages.move_to_end(capture_id)
        return page

    async def extract_text(self, capture_id: str) -> ExtractedText:
        page = self._page(capture_id)
        return ExtractedText(capture_id=capture_id, text=page.text, title=page.metadata.title)

    async def get_metadata(self, capture_id: str) -> CaptureMetadata:
        return self._page(capture_id).metadata

    async def analyze_visual_elements(self, capture_id: str) -> VisualAnalysis:
        metadata = self._page(capture_id).metadata
        return VisualAnalysis(
            capture_id=capture_id,
            page_title=metadata.title,
            images=metadata.image_count,
            links=metadata.link_count,
            tables=metadata.table_count,
            forms=metadata.form_count,
        )

    async def close(self) -> None:
        await self._client.aclose()
