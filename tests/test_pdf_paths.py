import asyncio

import pytest

from conftest import LONG_TEXT, make_pdf
from pageocr.exceptions import RasterizationError
from pageocr.models import SourceDocument
from pageocr.native_text import (
    NativeTextExtractor,
    accepts_native_text,
    estimate_text_confidence,
)
from pageocr.pdf_processor import PyMuPDFProcessor
from pageocr.rasterizer import DocumentRasterizer, resolve_pages


def _pdf(page_texts, name="doc.pdf"):
    return SourceDocument(make_pdf(page_texts), name=name)


def test_confidence_heuristic():
    assert estimate_text_confidence("") == 0.0
    assert estimate_text_confidence("Hello world 42") == 1.0
    # letters only, no whitespace, ratio of specials fine: 0.5 + 0.3 + 0.2
    assert estimate_text_confidence("Hello") == 1.0
    # nothing but symbols: baseline only
    assert estimate_text_confidence("@@@@") == 0.5
    # digits and spaces, no letters: 0.5 + 0.1 + 0.2 + 0.2
    assert estimate_text_confidence("12 34") == 1.0


def test_acceptance_thresholds_are_strict():
    assert not accepts_native_text("x" * 50, 0.9)
    assert accepts_native_text("x" * 51, 0.61)
    assert not accepts_native_text("x" * 51, 0.6)


def test_native_text_from_text_pdf():
    extractor = NativeTextExtractor()
    doc = _pdf([LONG_TEXT, LONG_TEXT])

    result = asyncio.run(extractor.extract(doc))

    assert result is not None
    assert result.has_native_text
    assert [p.page_number for p in result.pages] == [1, 2]
    assert "quarterly report" in result.pages[0].text
    assert result.confidence > 0.6
    assert asyncio.run(extractor.has_native_text(doc))
    extractor.clear_cache()


def test_native_text_respects_page_selection():
    extractor = NativeTextExtractor()
    doc = _pdf([LONG_TEXT, None, LONG_TEXT])

    result = asyncio.run(extractor.extract(doc, [3, 7]))
    assert [p.page_number for p in result.pages] == [3]
    assert asyncio.run(extractor.extract(doc, [9])) is None


def test_scanned_pdf_has_no_native_text():
    extractor = NativeTextExtractor()
    assert asyncio.run(extractor.extract(_pdf([None, None]))) is None


def test_unparseable_pdf_routes_to_ocr():
    extractor = NativeTextExtractor()
    broken = SourceDocument(b"not a pdf at all", name="broken.pdf")
    assert asyncio.run(extractor.extract(broken)) is None


def test_resolve_pages():
    assert resolve_pages(None, 3) == [1, 2, 3]
    assert resolve_pages([], 2) == [1, 2]
    assert resolve_pages([3, 0, 1, 9, 3], 3) == [1, 3]


def test_rasterize_selected_pages():
    rasterizer = DocumentRasterizer()
    doc = _pdf(["one", "two", "three"])

    async def run():
        images = await rasterizer.rasterize(doc, [3, 1, 42], scale=1.0)
        preview = await rasterizer.rasterize_page(doc, 2, scale=0.5)
        missing = await rasterizer.rasterize_page(doc, 5)
        total = await rasterizer.page_count(doc)
        return images, preview, missing, total

    images, preview, missing, total = asyncio.run(run())

    assert [p.page_number for p in images] == [1, 3]
    assert images[0].image.mode == "RGB"
    # default page is A4-ish portrait, 595x842 points
    assert images[0].width == 595
    assert preview.width < images[0].width
    assert missing is None
    assert total == 3


def test_rasterize_scale_changes_size():
    rasterizer = DocumentRasterizer()
    doc = _pdf(["one"])
    small = asyncio.run(rasterizer.rasterize(doc, scale=1.0))[0]
    big = asyncio.run(rasterizer.rasterize(doc, scale=2.0))[0]
    assert big.width == 2 * small.width


def test_rasterize_failure_is_fatal():
    rasterizer = DocumentRasterizer()
    with pytest.raises(RasterizationError, match="broken.pdf"):
        asyncio.run(rasterizer.rasterize(SourceDocument(b"garbage", name="broken.pdf")))


def test_preview_scale_is_the_page_default():
    rasterizer = DocumentRasterizer(preview_scale=0.5)
    doc = _pdf(["one"])

    async def run():
        preview = await rasterizer.rasterize_page(doc, 1)
        explicit = await rasterizer.rasterize(doc, [1], scale=0.5)
        return preview, explicit[0]

    preview, explicit = asyncio.run(run())
    assert preview.image.size == explicit.image.size


class _CountingProcessor(PyMuPDFProcessor):
    def __init__(self):
        self.opened, self.closed = [], []

    def open_document(self, document):
        self.opened.append(document.name)
        return super().open_document(document)

    def close_document(self, handle):
        self.closed.append(handle)
        super().close_document(handle)


def test_document_cache_evicts_least_recently_used():
    processor = _CountingProcessor()
    extractor = NativeTextExtractor(pdf_processor=processor, max_cached=2)
    a, b, c = (_pdf([LONG_TEXT + f" {n}"], name=f"{n}.pdf") for n in "abc")

    async def run():
        for doc in (a, b, a, c, a):
            await extractor.extract(doc)

    asyncio.run(run())

    # a stays warm, b is the one pushed out when c arrives
    assert processor.opened == ["a.pdf", "b.pdf", "c.pdf"]
    assert len(processor.closed) == 1
    assert processor.closed[0].is_closed

    extractor.clear_cache()
    assert len(processor.closed) == 3
