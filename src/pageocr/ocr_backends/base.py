# pageocr/ocr_backends/base.py
from typing import Any, Dict
from abc import ABC, abstractmethod

from PIL import Image


class BaseOCREngine(ABC):
    """
    A language-bound recognition engine.

    recognize() returns a raw dict::

        {"text": str, "confidence": float,
         "words": [{"text": str, "confidence": float,
                    "bbox": {"x0": .., "y0": .., "x1": .., "y1": ..}}]}

    Backends report confidence as a 0-1 fraction; the adapter normalizes
    it to a percentage. Values above 1 are taken as percentages already.
    """

    def __init__(self, language: str = "eng", **kwargs: Any):
        self.language = language

    @abstractmethod
    def recognize(self, image: Image.Image) -> Dict[str, Any]:
        """Run recognition on one RGB image."""
        pass

    def close(self) -> None:
        """Release engine resources. Safe to call more than once."""
        pass
