# src/pageocr/engine.py
from __future__ import annotations

import asyncio
import logging
import numbers
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from PIL import Image

from .confidence import normalize_confidence
from .exceptions import (
    EngineInitializationError,
    EngineStateError,
    MalformedResultError,
    RecognitionError,
)
from .models import RecognitionResult, WordBox
from .ocr_backends import DEFAULT_BACKEND, load_engine_class
from .ocr_backends.base import BaseOCREngine
from .progress import ProgressSink

logger = logging.getLogger("pageocr")

EngineFactory = Callable[[str], BaseOCREngine]


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RECOGNIZING = "recognizing"
    TERMINATED = "terminated"


# --- Result validation at the engine boundary ---

def _number(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise MalformedResultError(f"{what} must be numeric, got {type(value).__name__}")
    return float(value)


def _parse_bbox(raw: Any) -> tuple:
    if isinstance(raw, dict):
        try:
            values = [raw["x0"], raw["y0"], raw["x1"], raw["y1"]]
        except KeyError as e:
            raise MalformedResultError(f"Word bbox is missing {e}") from e
    elif isinstance(raw, (list, tuple)) and len(raw) == 4:
        values = list(raw)
    else:
        raise MalformedResultError(f"Word bbox has an unexpected shape, {raw!r}")
    return tuple(_number(v, "bbox coordinate") for v in values)


def parse_engine_output(raw: Any, language: str) -> RecognitionResult:
    """
    Validate a raw engine dict and build a RecognitionResult.
    Confidence values are normalized to 0-100 here.
    """
    if not isinstance(raw, dict):
        raise MalformedResultError(f"Engine returned {type(raw).__name__}, expected a dict")

    if "text" not in raw:
        raise MalformedResultError("Result has no text field")
    text = raw["text"]
    if text is None:
        text = ""
    if not isinstance(text, str):
        raise MalformedResultError("Result text must be a string")

    confidence = raw.get("confidence")
    confidence = 0.0 if confidence is None else _number(confidence, "Result confidence")

    raw_words = raw.get("words")
    if raw_words is None:
        raw_words = []
    if not isinstance(raw_words, list):
        raise MalformedResultError("Result words must be a list")

    words: List[WordBox] = []
    for item in raw_words:
        if not isinstance(item, dict) or not isinstance(item.get("text"), str):
            raise MalformedResultError(f"Malformed word entry, {item!r}")
        words.append(WordBox(
            text=item["text"],
            confidence=normalize_confidence(_number(item.get("confidence", 0), "Word confidence")),
            bbox=_parse_bbox(item.get("bbox")),
        ))

    return RecognitionResult(
        text=text,
        confidence=normalize_confidence(confidence),
        language=language,
        words=words,
    )


def backend_factory(backend: str = DEFAULT_BACKEND, backend_kwargs: Optional[Dict[str, Any]] = None) -> EngineFactory:
    """Build an engine factory from a dotted class path or alias."""
    kwargs = dict(backend_kwargs or {})

    def factory(language: str) -> BaseOCREngine:
        engine_cls = load_engine_class(backend)
        return engine_cls(language=language, **kwargs)

    return factory


class EngineAdapter:
    """
    Owns one language-bound engine instance.

    The engine is created lazily on the first initialize()/recognize() for a
    language. Switching language waits for in-flight recognitions, closes the
    old engine and builds a new one.
    """

    def __init__(self, factory: Optional[EngineFactory] = None):
        self._factory = factory or backend_factory()
        self._engine: Optional[BaseOCREngine] = None
        self._language: Optional[str] = None
        self._state = EngineState.UNINITIALIZED
        self._in_flight = 0
        self._lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def language(self) -> Optional[str]:
        return self._language

    @property
    def is_ready(self) -> bool:
        return self._state in (EngineState.READY, EngineState.RECOGNIZING)

    async def initialize(self, language: str) -> None:
        async with self._lock:
            await self._ensure_language(language)

    async def _ensure_language(self, language: str) -> None:
        # caller holds self._lock
        if self.is_ready and self._language == language:
            return
        if self._engine is not None:
            await self._teardown()

        try:
            engine = await asyncio.to_thread(self._factory, language)
        except Exception as e:
            self._state = EngineState.UNINITIALIZED
            raise EngineInitializationError(
                f"Failed to initialize OCR for language {language}: {e}"
            ) from e

        self._engine = engine
        self._language = language
        self._state = EngineState.READY
        logger.info("OCR engine initialized for language: %s", language)

    async def _teardown(self) -> None:
        await self._idle.wait()
        engine, self._engine = self._engine, None
        try:
            await asyncio.to_thread(engine.close)
        except Exception:
            logger.warning("Error terminating OCR engine for %s", self._language, exc_info=True)

    async def recognize(
        self,
        image: Image.Image,
        language: Optional[str] = None,
        progress: Optional[ProgressSink] = None,
    ) -> RecognitionResult:
        """
        Recognize one image. When language is given the engine is (re)initialized
        for it first, otherwise the adapter must already be READY.
        """
        async with self._lock:
            if language is not None:
                await self._ensure_language(language)
            if not self.is_ready:
                raise EngineStateError(f"OCR engine is {self._state.value}, initialize it first")
            engine, lang = self._engine, self._language
            self._in_flight += 1
            self._idle.clear()
            self._state = EngineState.RECOGNIZING

        if progress is not None:
            progress.publish("Recognizing text", 0.0)
        try:
            raw = await asyncio.to_thread(engine.recognize, image)
        except Exception as e:
            raise RecognitionError(f"Engine failed to recognize image, {e}") from e
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                if self._state is EngineState.RECOGNIZING:
                    self._state = EngineState.READY
                self._idle.set()

        result = parse_engine_output(raw, lang)
        if progress is not None:
            progress.publish("Recognized text", 1.0)
        return result

    async def terminate(self) -> None:
        async with self._lock:
            if self._engine is not None:
                await self._teardown()
                logger.info("OCR engine terminated")
            self._state = EngineState.TERMINATED
