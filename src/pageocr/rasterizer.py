# src/pageocr/rasterizer.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from PIL import Image

from .exceptions import RasterizationError
from .models import SourceDocument
from .pdf_processor import BasePDFProcessor, get_pdf_processor

logger = logging.getLogger("pageocr")


@dataclass
class PageImage:
    page_number: int
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


def resolve_pages(pages: Optional[Iterable[int]], total_pages: int) -> List[int]:
    """Requested pages inside [1, total_pages], ascending. None or empty means all."""
    if not pages:
        return list(range(1, total_pages + 1))
    return sorted({p for p in pages if 1 <= p <= total_pages})


class DocumentRasterizer:
    """Renders PDF pages to images for recognition."""

    def __init__(self, pdf_processor: Optional[BasePDFProcessor] = None, preview_scale: float = 1.5):
        self.pdf_processor = pdf_processor or get_pdf_processor()
        self.preview_scale = preview_scale

    def _rasterize_sync(self, document: SourceDocument, pages, scale: float) -> List[PageImage]:
        handle = self.pdf_processor.open_document(document)
        try:
            total = self.pdf_processor.page_count(handle)
            wanted = resolve_pages(pages, total)
            logger.debug("Rendering pages %s of %d from %s at scale %.1f", wanted, total, document.name, scale)
            return [
                PageImage(page_number=n, image=self.pdf_processor.render_page(handle, n, scale))
                for n in wanted
            ]
        finally:
            self.pdf_processor.close_document(handle)

    async def rasterize(
        self, document: SourceDocument, pages: Optional[Iterable[int]] = None, scale: float = 2.0
    ) -> List[PageImage]:
        """Render the requested pages. Any page failure fails the whole call."""
        pages = list(pages) if pages else None
        try:
            images = await asyncio.to_thread(self._rasterize_sync, document, pages, scale)
        except Exception as e:
            raise RasterizationError(f"Failed to convert {document.name} to images: {e}") from e
        logger.info("Rendered %d page(s) of %s", len(images), document.name)
        return images

    async def rasterize_page(
        self, document: SourceDocument, page_number: int, scale: Optional[float] = None
    ) -> Optional[PageImage]:
        """Single page, e.g. for a quick preview. None when the page does not exist."""
        images = await self.rasterize(document, [page_number], scale or self.preview_scale)
        return images[0] if images else None

    async def page_count(self, document: SourceDocument) -> int:
        def _count() -> int:
            handle = self.pdf_processor.open_document(document)
            try:
                return self.pdf_processor.page_count(handle)
            finally:
                self.pdf_processor.close_document(handle)

        try:
            return await asyncio.to_thread(_count)
        except Exception as e:
            raise RasterizationError(f"Failed to read {document.name}: {e}") from e
