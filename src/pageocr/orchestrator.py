# src/pageocr/orchestrator.py
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional

from .config import OCRConfig
from .confidence import mean_confidence, normalize_confidence
from .engine import EngineAdapter, EngineFactory, backend_factory
from .exceptions import (
    EngineInitializationError,
    EngineStateError,
    ExtractionError,
    InvalidPageSelectionError,
    JobCancelledError,
    MalformedResultError,
    QueueClearedError,
)
from .models import (
    DocumentKind,
    DocumentResult,
    ExtractionStrategy,
    PageFailure,
    PageResult,
    ProcessingOptions,
    RecognitionRequest,
    SourceDocument,
)
from .native_text import NativeTextExtractor, NativeTextResult, accepts_native_text
from .ocr_queue import RecognitionQueue
from .page_markers import format_with_page_markers
from .progress import ProgressSink
from .rasterizer import DocumentRasterizer
from .recognition import RecognitionService
from .validation import validate_document, validate_language

logger = logging.getLogger("pageocr")


def _pack(pages: List[PageResult]) -> str:
    return format_with_page_markers((p.page_number, p.text) for p in pages)


class DocumentProcessor:
    """
    Chooses the extraction strategy for a document and runs it.

    Images go straight to the recognition queue. PDFs try the embedded text
    layer first and fall back to render-and-recognize page by page.
    """

    def __init__(
        self,
        queue: RecognitionQueue,
        native_extractor: Optional[NativeTextExtractor] = None,
        rasterizer: Optional[DocumentRasterizer] = None,
        config: Optional[OCRConfig] = None,
        adapter: Optional[EngineAdapter] = None,
    ):
        self.config = config or OCRConfig()
        self.queue = queue
        self.native_extractor = native_extractor or NativeTextExtractor(
            min_chars=self.config.min_native_text_chars,
            min_confidence=self.config.min_native_confidence,
        )
        self.rasterizer = rasterizer or DocumentRasterizer(preview_scale=self.config.preview_scale)
        self.adapter = adapter

    async def close(self) -> None:
        """Fail queued work, release the engine and drop cached PDFs."""
        cleared = self.queue.clear_queue()
        if cleared:
            logger.info("Dropped %d queued recognition(s)", cleared)
        await self.queue.join()
        if self.adapter is not None:
            await self.adapter.terminate()
        self.native_extractor.clear_cache()

    async def process(
        self,
        document: SourceDocument,
        language: Optional[str] = None,
        options: Optional[ProcessingOptions] = None,
        selected_pages: Optional[Iterable[int]] = None,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DocumentResult:
        language = validate_language(language or self.config.language)
        options = options or ProcessingOptions()
        kind = validate_document(document, self.config.max_file_size_bytes)

        if kind is DocumentKind.IMAGE:
            return await self._process_image(document, language, options, progress)

        pages = await self._validated_pages(document, selected_pages)
        if progress is not None:
            progress.publish("Checking for embedded text", 0.05)

        native = await self.native_extractor.extract(document, pages)
        if self._accept_native(native):
            logger.info("Using native PDF text extraction for %s", document.name)
            return self._native_result(native, language)

        logger.info("%s appears to be scanned, using OCR", document.name)
        return await self._process_rasterized(document, pages, language, options, progress, cancel_event)

    # -----------------------------
    # Strategy selection
    # -----------------------------
    def _accept_native(self, native: Optional[NativeTextResult]) -> bool:
        if native is None or not native.has_native_text:
            return False
        return accepts_native_text(
            native.text,
            native.confidence,
            self.config.min_native_text_chars,
            self.config.min_native_confidence,
        )

    async def _validated_pages(self, document: SourceDocument, selected_pages) -> List[int]:
        total = await self.rasterizer.page_count(document)
        if selected_pages is None:
            return list(range(1, total + 1))
        requested = sorted(set(selected_pages))
        invalid = [p for p in requested if not 1 <= p <= total]
        if invalid or not requested:
            raise InvalidPageSelectionError(invalid, range(1, total + 1))
        return requested

    # -----------------------------
    # Strategies
    # -----------------------------
    async def _process_image(self, document, language, options, progress) -> DocumentResult:
        image_bytes = await asyncio.to_thread(document.read_bytes)
        request = RecognitionRequest(
            image=image_bytes, language=language, options=options, label=document.name,
        )
        result = await self.queue.enqueue(request, progress)
        page = PageResult(page_number=1, text=result.text.strip(), confidence=result.confidence)
        return DocumentResult(
            text=_pack([page]),
            confidence=result.confidence,
            language=language,
            strategy=ExtractionStrategy.IMAGE_OCR,
            pages=[page],
            words=result.words,
        )

    def _native_result(self, native: NativeTextResult, language: str) -> DocumentResult:
        pages = [
            PageResult(
                page_number=p.page_number,
                text=p.text.strip(),
                confidence=normalize_confidence(p.confidence),
            )
            for p in native.pages
        ]
        return DocumentResult(
            text=_pack(pages),
            confidence=normalize_confidence(native.confidence),
            language=language,
            strategy=ExtractionStrategy.NATIVE_TEXT,
            pages=pages,
        )

    async def _process_rasterized(
        self, document, pages, language, options, progress, cancel_event
    ) -> DocumentResult:
        strategy = ExtractionStrategy.RASTER_OCR
        if progress is not None:
            progress.publish("Rendering pages", 0.1)
        page_images = await self.rasterizer.rasterize(document, pages, self.config.render_scale)

        results: List[PageResult] = []
        failures: List[PageFailure] = []
        total = len(page_images)
        for index, page_image in enumerate(page_images):
            if cancel_event is not None and cancel_event.is_set():
                raise JobCancelledError(f"Processing of {document.name} was cancelled")

            page_progress = None
            if progress is not None:
                page_progress = progress.scaled(0.1 + 0.9 * index / total, 0.1 + 0.9 * (index + 1) / total)

            request = RecognitionRequest(
                image=page_image.image,
                language=language,
                options=options,
                label=f"{document.name} page {page_image.page_number}",
            )
            try:
                result = await self.queue.enqueue(request, page_progress)
            except (EngineInitializationError, EngineStateError, MalformedResultError, QueueClearedError):
                raise
            except Exception as e:
                logger.warning("Page %d of %s failed, %s", page_image.page_number, document.name, e)
                failures.append(PageFailure(page_image.page_number, strategy, str(e)))
                continue

            results.append(PageResult(
                page_number=page_image.page_number,
                text=result.text.strip(),
                confidence=result.confidence,
            ))

        if not results:
            raise ExtractionError(strategy, failures)
        if failures:
            logger.warning(
                "%s completed with %d of %d page(s) missing using %s extraction",
                document.name, len(failures), total, strategy.value,
            )

        return DocumentResult(
            text=_pack(results),
            confidence=mean_confidence(p.confidence for p in results),
            language=language,
            strategy=strategy,
            pages=results,
            failures=failures,
        )


def build_processor(config: Optional[OCRConfig] = None, engine_factory: Optional[EngineFactory] = None) -> DocumentProcessor:
    """
    Wire the default pipeline for a config: one engine adapter shared by a
    recognition service, fronted by the bounded queue.
    """
    config = config or OCRConfig()
    factory = engine_factory or backend_factory(config.ocr_backend, config.ocr_backend_kwargs)
    adapter = EngineAdapter(factory)
    service = RecognitionService(adapter)
    queue = RecognitionQueue(service.process, config.max_concurrent, config.queue_delay)
    return DocumentProcessor(queue, config=config, adapter=adapter)
