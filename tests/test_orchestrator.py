import asyncio

import pytest
from PIL import Image

from conftest import LONG_TEXT, FakeEngine, make_pdf, make_png, make_processor
from pageocr.config import OCRConfig
from pageocr.exceptions import (
    EngineInitializationError,
    ExtractionError,
    FileTooLargeError,
    InvalidPageSelectionError,
    JobCancelledError,
    MalformedResultError,
    UnsupportedFileError,
    UnsupportedLanguageError,
)
from pageocr.models import ExtractionStrategy, ProcessingOptions, SourceDocument
from pageocr.native_text import NativePageText, NativeTextResult
from pageocr.page_markers import parse_page_markers
from pageocr.progress import ProgressChannel, ProgressSink
from pageocr.rasterizer import PageImage


class _StubNative:
    """Returns a canned native result regardless of the document."""

    def __init__(self, text, confidence):
        self.result = NativeTextResult(
            text=text,
            confidence=confidence,
            has_native_text=True,
            pages=[NativePageText(1, text, confidence)],
        )

    async def extract(self, document, pages=None):
        return self.result

    def clear_cache(self):
        pass


class _StubRasterizer:
    def __init__(self, total=1):
        self.total = total
        self.calls = []

    async def page_count(self, document):
        return self.total

    async def rasterize(self, document, pages=None, scale=2.0):
        self.calls.append((list(pages or []), scale))
        wanted = list(pages) if pages else list(range(1, self.total + 1))
        return [PageImage(n, Image.new("RGB", (20, 20), "white")) for n in wanted]


def _pdf_doc(pages=1):
    return SourceDocument(make_pdf([None] * pages), name="scan.pdf")


def test_native_49_chars_falls_back_to_ocr():
    rasterizer = _StubRasterizer()
    processor = make_processor(native_extractor=_StubNative("a" * 49, 0.9), rasterizer=rasterizer)

    result = asyncio.run(processor.process(_pdf_doc()))

    assert result.strategy is ExtractionStrategy.RASTER_OCR
    assert rasterizer.calls == [([1], 2.0)]
    assert result.pages[0].text == "recognized text"


def test_native_51_chars_is_accepted():
    rasterizer = _StubRasterizer()
    processor = make_processor(native_extractor=_StubNative("a" * 51, 0.61), rasterizer=rasterizer)

    result = asyncio.run(processor.process(_pdf_doc()))

    assert result.strategy is ExtractionStrategy.NATIVE_TEXT
    assert rasterizer.calls == []
    assert result.confidence == 61
    assert parse_page_markers(result.text)[0].content == "a" * 51


def test_native_low_confidence_falls_back():
    rasterizer = _StubRasterizer()
    processor = make_processor(native_extractor=_StubNative("a" * 200, 0.6), rasterizer=rasterizer)
    result = asyncio.run(processor.process(_pdf_doc()))
    assert result.strategy is ExtractionStrategy.RASTER_OCR


def test_thresholds_come_from_config():
    config = OCRConfig(queue_delay=0.0, min_native_text_chars=10, min_native_confidence=0.5)
    processor = make_processor(
        config=config, native_extractor=_StubNative("a" * 20, 0.55), rasterizer=_StubRasterizer(),
    )
    result = asyncio.run(processor.process(_pdf_doc()))
    assert result.strategy is ExtractionStrategy.NATIVE_TEXT


def test_text_pdf_end_to_end_uses_embedded_text():
    processor = make_processor()
    doc = SourceDocument(make_pdf([LONG_TEXT, LONG_TEXT]), name="report.pdf")

    result = asyncio.run(processor.process(doc, selected_pages=[2]))

    assert result.strategy is ExtractionStrategy.NATIVE_TEXT
    assert result.page_numbers == [2]
    assert "=== PAGE 2 ===" in result.text
    assert FakeEngine.instances == []


def test_scanned_pdf_end_to_end_uses_ocr():
    processor = make_processor()

    async def run():
        try:
            return await processor.process(_pdf_doc(3), selected_pages=[3, 1])
        finally:
            await processor.close()

    result = asyncio.run(run())

    assert result.strategy is ExtractionStrategy.RASTER_OCR
    assert result.page_numbers == [1, 3]
    assert result.confidence == 90
    assert [p.page_number for p in parse_page_markers(result.text)] == [1, 3]
    assert FakeEngine.instances[0].calls == 2
    assert FakeEngine.instances[0].closed


def test_page_two_failure_keeps_pages_one_and_three():
    class FailsOnSecondCall(FakeEngine):
        def recognize(self, image):
            if self.calls == 1:
                self.calls += 1
                raise OSError("page unreadable")
            return super().recognize(image)

    config = OCRConfig(queue_delay=0.0, max_concurrent=1)
    processor = make_processor(
        engine_factory=FailsOnSecondCall, config=config,
        native_extractor=_StubNative("", 0.0), rasterizer=_StubRasterizer(total=3),
    )

    result = asyncio.run(processor.process(_pdf_doc(3)))

    assert result.page_numbers == [1, 3]
    assert result.is_partial
    assert [f.page_number for f in result.failures] == [2]
    assert result.failures[0].strategy is ExtractionStrategy.RASTER_OCR
    assert "page unreadable" in result.failures[0].message
    assert "=== PAGE 2 ===" not in result.text


def test_all_pages_failing_raises_extraction_error():
    class AlwaysFails(FakeEngine):
        def recognize(self, image):
            raise OSError("nope")

    processor = make_processor(
        engine_factory=AlwaysFails,
        native_extractor=_StubNative("", 0.0), rasterizer=_StubRasterizer(total=2),
    )
    with pytest.raises(ExtractionError) as exc:
        asyncio.run(processor.process(_pdf_doc(2)))
    assert "raster_ocr" in str(exc.value)
    assert [f.page_number for f in exc.value.failures] == [1, 2]


def test_engine_init_failure_aborts_document():
    def broken(language):
        raise RuntimeError("no tessdata")

    processor = make_processor(
        engine_factory=broken, native_extractor=_StubNative("", 0.0), rasterizer=_StubRasterizer(total=2),
    )
    with pytest.raises(EngineInitializationError):
        asyncio.run(processor.process(_pdf_doc(2)))


def test_malformed_engine_output_aborts_document():
    class DropsTextOnSecondPage(FakeEngine):
        def recognize(self, image):
            raw = super().recognize(image)
            if self.calls == 2:
                del raw["text"]
            return raw

    config = OCRConfig(queue_delay=0.0, max_concurrent=1)
    processor = make_processor(
        engine_factory=DropsTextOnSecondPage, config=config,
        native_extractor=_StubNative("", 0.0), rasterizer=_StubRasterizer(total=3),
    )
    with pytest.raises(MalformedResultError, match="OCR processing failed for scan.pdf page 2: Result has no text field"):
        asyncio.run(processor.process(_pdf_doc(3)))
    assert FakeEngine.instances[0].calls == 2


def test_image_is_packed_as_page_one():
    processor = make_processor()
    doc = SourceDocument(make_png(), name="photo.png")
    options = ProcessingOptions.from_dict({"rotation": 90, "contrast": 10})

    result = asyncio.run(processor.process(doc, language="fra", options=options))

    assert result.strategy is ExtractionStrategy.IMAGE_OCR
    assert result.language == "fra"
    assert result.text == "=== PAGE 1 ===\nrecognized text\n=== END PAGE 1 ==="
    assert [w.text for w in result.words] == ["recognized", "text"]


def test_invalid_page_selection_rejected():
    processor = make_processor(native_extractor=_StubNative("", 0.0), rasterizer=_StubRasterizer(total=2))
    with pytest.raises(InvalidPageSelectionError) as exc:
        asyncio.run(processor.process(_pdf_doc(2), selected_pages=[2, 5]))
    assert exc.value.invalid_pages == [5]
    assert exc.value.available_pages == [1, 2]
    with pytest.raises(InvalidPageSelectionError):
        asyncio.run(processor.process(_pdf_doc(2), selected_pages=[]))


def test_input_validation():
    processor = make_processor()
    with pytest.raises(UnsupportedFileError):
        asyncio.run(processor.process(SourceDocument(b"data", name="notes.docx")))
    with pytest.raises(UnsupportedFileError):
        asyncio.run(processor.process(SourceDocument(b"", name="empty.png")))
    with pytest.raises(UnsupportedLanguageError):
        asyncio.run(processor.process(SourceDocument(make_png(), name="a.png"), language="klingon"))

    tiny = make_processor(config=OCRConfig(max_file_size_mb=0))
    with pytest.raises(FileTooLargeError):
        asyncio.run(tiny.process(SourceDocument(make_png(), name="a.png")))


def test_cancel_before_next_page():
    cancel = asyncio.Event()

    class CancelAfterFirstPage(ProgressSink):
        # three pages share 0.1-1.0, so page 1 ends at 0.4
        def publish(self, status, progress):
            if progress >= 0.39:
                cancel.set()

    config = OCRConfig(queue_delay=0.0, max_concurrent=1)
    processor = make_processor(
        config=config, native_extractor=_StubNative("", 0.0), rasterizer=_StubRasterizer(total=3),
    )
    with pytest.raises(JobCancelledError):
        asyncio.run(processor.process(_pdf_doc(3), progress=CancelAfterFirstPage(), cancel_event=cancel))
    assert FakeEngine.instances[0].calls == 1


def test_progress_is_monotonic_and_reaches_the_last_page():
    processor = make_processor(native_extractor=_StubNative("", 0.0), rasterizer=_StubRasterizer(total=3))
    channel = ProgressChannel()

    async def run():
        await processor.process(_pdf_doc(3), progress=channel)
        channel.complete()
        return [e async for e in channel]

    events = asyncio.run(run())
    values = [e.progress for e in events]
    assert values == sorted(values)
    assert events[-1].state == "completed"
    assert values[-2] == pytest.approx(1.0)


def test_preview_scale_reaches_default_rasterizer():
    processor = make_processor(config=OCRConfig(queue_delay=0.0, preview_scale=0.75))
    assert processor.rasterizer.preview_scale == 0.75
