"""Content capture protocol definition."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from researchbench.models.research import (
    CaptureMetadata,
    CaptureResult,
    ExtractedText,
    VisualAnalysis,
)


@runtime_checkable
class ContentCapture(Protocol):
    """Protocol for page capture providers.

    `capture` fetches a page once; the other calls read from that capture.
    """

    async def capture(self, url: str) -> CaptureResult:
        ...

    async def extract_text(self, capture_id: str) -> ExtractedText:
        ...

    async def get_metadata(self, capture_id: str) -> CaptureMetadata:
        ...

    async def analyze_visual_elements(self, capture_id: str) -> VisualAnalysis:
        ...
