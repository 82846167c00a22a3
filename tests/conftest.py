import io
from typing import Iterable, Optional

import fitz
import pytest
from PIL import Image

from pageocr.config import OCRConfig
from pageocr.engine import EngineAdapter
from pageocr.ocr_backends.base import BaseOCREngine
from pageocr.ocr_queue import RecognitionQueue
from pageocr.orchestrator import DocumentProcessor
from pageocr.recognition import RecognitionService


class FakeEngine(BaseOCREngine):
    """Engine stub: returns fixed text, records calls, never touches tesseract."""

    instances = []

    def __init__(self, language: str = "eng", text: str = "recognized text", confidence: float = 0.9, **kwargs):
        super().__init__(language)
        self.text = text
        self.confidence = confidence
        self.calls = 0
        self.closed = False
        FakeEngine.instances.append(self)

    def recognize(self, image):
        self.calls += 1
        return {
            "text": self.text,
            "confidence": self.confidence,
            "words": [
                {"text": w, "confidence": self.confidence, "bbox": {"x0": 0, "y0": 0, "x1": 10, "y1": 10}}
                for w in self.text.split()
            ],
        }

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_fake_engines():
    FakeEngine.instances.clear()
    yield
    FakeEngine.instances.clear()


def make_pdf(page_texts: Iterable[Optional[str]]) -> bytes:
    """In-memory PDF, one page per entry; None or "" leaves the page blank."""
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


def make_png(size=(60, 30), color="white") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def make_processor(engine_factory=FakeEngine, config: Optional[OCRConfig] = None, **kwargs) -> DocumentProcessor:
    config = config or OCRConfig(queue_delay=0.0)
    adapter = EngineAdapter(engine_factory)
    queue = RecognitionQueue(RecognitionService(adapter).process, config.max_concurrent, config.queue_delay)
    return DocumentProcessor(queue, config=config, adapter=adapter, **kwargs)


LONG_TEXT = (
    "The quarterly report covers revenue growth of 12 percent\n"
    "across all regions, with the strongest results in Europe.\n"
    "Operating costs were flat compared to the previous year."
)
