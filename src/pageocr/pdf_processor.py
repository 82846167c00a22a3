# src/pageocr/pdf_processor.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import fitz  # PyMuPDF
from PIL import Image

from .models import SourceDocument

logger = logging.getLogger("pageocr")


# --- Step 1, interface ---
class BasePDFProcessor(ABC):
    """
    Interface for any PDF processing engine. Page numbers are 1-based.
    """

    @abstractmethod
    def open_document(self, document: SourceDocument) -> Any:
        """Parse the document and return an engine-specific handle."""
        raise NotImplementedError

    @abstractmethod
    def page_count(self, handle: Any) -> int:
        raise NotImplementedError

    @abstractmethod
    def get_page_text(self, handle: Any, page_number: int) -> str:
        """Embedded text of one page, empty when the page has no text layer."""
        raise NotImplementedError

    @abstractmethod
    def render_page(self, handle: Any, page_number: int, scale: float) -> Image.Image:
        """Render one page to an RGB image."""
        raise NotImplementedError

    def close_document(self, handle: Any) -> None:
        pass


# --- Step 2, concrete implementation with PyMuPDF ---
class PyMuPDFProcessor(BasePDFProcessor):
    """PDF processor that uses PyMuPDF."""

    def open_document(self, document: SourceDocument) -> fitz.Document:
        if isinstance(document.source, bytes):
            return fitz.open(stream=document.source, filetype="pdf")
        return fitz.open(document.source)

    def page_count(self, handle: fitz.Document) -> int:
        return len(handle)

    def get_page_text(self, handle: fitz.Document, page_number: int) -> str:
        """
        Extract text using layout aware blocks.
        This is usually more reliable for complex PDFs than the plain text mode.
        """
        page = handle.load_page(page_number - 1)
        # sort=True gives reading order
        blocks = page.get_text("blocks", sort=True)
        # b[6] == 0 means text block
        page_text = [b[4].strip() for b in blocks if len(b) > 6 and b[6] == 0]
        return "\n".join(t for t in page_text if t).strip()

    def render_page(self, handle: fitz.Document, page_number: int, scale: float) -> Image.Image:
        # matrix-based scaling is consistent across PyMuPDF versions
        page = handle.load_page(page_number - 1)
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        return Image.frombytes("RGB", (pix.width, pix.height), pix.samples)

    def close_document(self, handle: fitz.Document) -> None:
        handle.close()


# --- Step 3, factory ---
def get_pdf_processor(engine_name: str = "pymupdf") -> BasePDFProcessor:
    """
    Create a PDF processor by name.
    """
    name = (engine_name or "").lower()
    if name == "pymupdf":
        return PyMuPDFProcessor()
    raise ValueError(f"Unknown PDF engine, '{engine_name}'. Supported engines, ['pymupdf']")
