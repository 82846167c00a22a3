# src/pageocr/recognition.py
from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path
from typing import Optional

from PIL import Image

from .engine import EngineAdapter
from .exceptions import PageOCRError, RecognitionError
from .languages import DEFAULT_LANGUAGE
from .models import RecognitionRequest, RecognitionResult
from .preprocessing import preprocess_image
from .progress import ProgressSink

logger = logging.getLogger("pageocr")


def load_image(source) -> Image.Image:
    """Open a PIL image from an image object, raw bytes or a path."""
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, (bytes, bytearray)):
        with Image.open(io.BytesIO(source)) as im:
            return im.convert("RGB")
    with Image.open(Path(source)) as im:
        return im.convert("RGB")


class RecognitionService:
    """
    Runs one recognition request end to end:
    initialize engine, preprocess, recognize, validate.
    """

    def __init__(self, adapter: EngineAdapter):
        self.adapter = adapter

    async def process(
        self, request: RecognitionRequest, progress: Optional[ProgressSink] = None
    ) -> RecognitionResult:
        language = request.language or DEFAULT_LANGUAGE
        label = request.label or "image"

        def report(status: str, value: float) -> None:
            if progress is not None:
                progress.publish(status, value)

        try:
            report("Initializing OCR engine", 0.1)
            await self.adapter.initialize(language)

            report("Preprocessing image", 0.2)
            image = await asyncio.to_thread(load_image, request.image)
            image = await asyncio.to_thread(preprocess_image, image, request.options)

            report("Extracting text", 0.4)
            scaled = progress.scaled(0.4, 0.9) if progress is not None else None
            result = await self.adapter.recognize(image, language=language, progress=scaled)

            report("Parsing results", 0.9)
            report("Complete", 1.0)
            logger.debug("Recognized %s, %d chars at %d%%", label, len(result.text), result.confidence)
            return result
        except PageOCRError as e:
            # keep the specific type, add the stage context to the message
            e.args = (f"OCR processing failed for {label}: {e}",)
            raise
        except Exception as e:
            raise RecognitionError(f"OCR processing failed for {label}: {e}") from e
