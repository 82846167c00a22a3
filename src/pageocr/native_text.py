# src/pageocr/native_text.py
from __future__ import annotations

import asyncio
import logging
import re
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from .models import SourceDocument
from .pdf_processor import BasePDFProcessor, get_pdf_processor

logger = logging.getLogger("pageocr")

MIN_NATIVE_TEXT_CHARS = 50
MIN_NATIVE_CONFIDENCE = 0.6
MAX_CACHED_DOCUMENTS = 8

_ALPHA_RE = re.compile(r"[a-zA-Z]")
_DIGIT_RE = re.compile(r"\d")
_SPACE_RE = re.compile(r"\s")
_SPECIAL_RE = re.compile(r"[^a-zA-Z0-9\s]")


@dataclass
class NativePageText:
    page_number: int
    text: str
    confidence: float  # heuristic, 0-1


@dataclass
class NativeTextResult:
    text: str
    confidence: float  # mean of page heuristics, 0-1
    has_native_text: bool
    pages: List[NativePageText] = field(default_factory=list)


def estimate_text_confidence(text: str) -> float:
    """Heuristic quality score for an embedded text layer, 0-1."""
    if not text:
        return 0.0
    special_ratio = len(_SPECIAL_RE.findall(text)) / len(text)

    confidence = 0.5
    if _ALPHA_RE.search(text):
        confidence += 0.3
    if _DIGIT_RE.search(text):
        confidence += 0.1
    if _SPACE_RE.search(text):
        confidence += 0.2
    if special_ratio < 0.3:
        confidence += 0.2
    return min(confidence, 1.0)


def accepts_native_text(
    text: str,
    confidence: float,
    min_chars: int = MIN_NATIVE_TEXT_CHARS,
    min_confidence: float = MIN_NATIVE_CONFIDENCE,
) -> bool:
    """True when embedded text is long and clean enough to skip OCR."""
    return len(text) > min_chars and confidence > min_confidence


class NativeTextExtractor:
    """
    Pulls the embedded text layer out of PDFs without rendering.

    Parsed documents are cached by source id, least recently used first out,
    until clear_cache().
    """

    def __init__(
        self,
        pdf_processor: Optional[BasePDFProcessor] = None,
        min_chars: int = MIN_NATIVE_TEXT_CHARS,
        min_confidence: float = MIN_NATIVE_CONFIDENCE,
        max_cached: int = MAX_CACHED_DOCUMENTS,
    ):
        self.pdf_processor = pdf_processor or get_pdf_processor()
        self.min_chars = min_chars
        self.min_confidence = min_confidence
        self.max_cached = max(1, max_cached)
        self._documents: "OrderedDict[str, Any]" = OrderedDict()
        self._lock = threading.Lock()

    def _load_document(self, document: SourceDocument) -> Any:
        key = document.source_id
        handle = self._documents.get(key)
        if handle is not None:
            self._documents.move_to_end(key)
            return handle
        handle = self.pdf_processor.open_document(document)
        self._documents[key] = handle
        while len(self._documents) > self.max_cached:
            _, evicted = self._documents.popitem(last=False)
            self._close(evicted)
        return handle

    def _close(self, handle: Any) -> None:
        try:
            self.pdf_processor.close_document(handle)
        except Exception:
            logger.debug("Failed to close cached document", exc_info=True)

    def _extract_sync(self, document: SourceDocument, pages: Optional[Iterable[int]]) -> List[NativePageText]:
        with self._lock:
            handle = self._load_document(document)
            total = self.pdf_processor.page_count(handle)
            wanted = sorted({p for p in pages if 1 <= p <= total}) if pages else list(range(1, total + 1))
            results = []
            for page_number in wanted:
                text = self.pdf_processor.get_page_text(handle, page_number)
                results.append(NativePageText(page_number, text, estimate_text_confidence(text)))
            return results

    async def extract(
        self, document: SourceDocument, pages: Optional[Iterable[int]] = None
    ) -> Optional[NativeTextResult]:
        """
        Returns None when the document should go through OCR instead:
        no usable text layer, no matching pages, or the PDF cannot be parsed.
        """
        pages = list(pages) if pages else None
        try:
            page_texts = await asyncio.to_thread(self._extract_sync, document, pages)
        except Exception as e:
            logger.warning("Native text extraction failed for %s, %s", document.name, e)
            return None

        if not page_texts:
            logger.debug("No requested pages exist in %s", document.name)
            return None

        total_text = "\n".join(p.text for p in page_texts).strip()
        avg_confidence = sum(p.confidence for p in page_texts) / len(page_texts)

        if not accepts_native_text(total_text, avg_confidence, self.min_chars, self.min_confidence):
            logger.debug(
                "Native text rejected for %s, %d chars at confidence %.2f",
                document.name, len(total_text), avg_confidence,
            )
            return None

        return NativeTextResult(
            text=total_text,
            confidence=avg_confidence,
            has_native_text=True,
            pages=page_texts,
        )

    async def has_native_text(self, document: SourceDocument) -> bool:
        """Quick check on the first page only."""
        result = await self.extract(document, [1])
        return bool(result and result.has_native_text)

    def clear_cache(self) -> None:
        with self._lock:
            for handle in self._documents.values():
                self._close(handle)
            self._documents.clear()
