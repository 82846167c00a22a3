# pageocr/models.py
from __future__ import annotations

import hashlib
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .exceptions import InputValidationError


class DocumentKind(str, Enum):
    """How a submitted document is routed."""

    IMAGE = "image"
    PAGINATED = "paginated"


class ExtractionStrategy(str, Enum):
    """Which path produced the text of a document."""

    NATIVE_TEXT = "native_text"
    RASTER_OCR = "raster_ocr"
    IMAGE_OCR = "image_ocr"


PDF_SUFFIXES = {".pdf"}
IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp", ".gif"}


@dataclass
class SourceDocument:
    """A document submitted for extraction, either on disk or in memory."""

    source: Union[Path, bytes]
    name: str = ""
    mime_type: Optional[str] = None
    kind: Optional[DocumentKind] = None

    def __post_init__(self) -> None:
        if isinstance(self.source, str):
            self.source = Path(self.source)
        if not self.name:
            self.name = self.source.name if isinstance(self.source, Path) else "document"
        if self.mime_type is None:
            self.mime_type = mimetypes.guess_type(self.name)[0]
        if self.kind is None:
            self.kind = self._detect_kind()

    def _detect_kind(self) -> Optional[DocumentKind]:
        suffix = Path(self.name).suffix.lower()
        if suffix in PDF_SUFFIXES or self.mime_type == "application/pdf":
            return DocumentKind.PAGINATED
        if suffix in IMAGE_SUFFIXES or (self.mime_type or "").startswith("image/"):
            return DocumentKind.IMAGE
        return None

    @property
    def source_id(self) -> str:
        """Stable identity used as the parse-cache key."""
        if isinstance(self.source, Path):
            return str(self.source.resolve())
        return "sha1:" + hashlib.sha1(self.source).hexdigest()

    @property
    def size_bytes(self) -> int:
        if isinstance(self.source, Path):
            return self.source.stat().st_size
        return len(self.source)

    def read_bytes(self) -> bytes:
        if isinstance(self.source, Path):
            return self.source.read_bytes()
        return self.source


@dataclass
class CropBox:
    x: int
    y: int
    width: int
    height: int

    def as_box(self) -> Tuple[int, int, int, int]:
        """Pillow crop box (left, upper, right, lower)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


@dataclass
class ProcessingOptions:
    """Numeric image adjustments applied before recognition. Unset means unchanged."""

    brightness: Optional[float] = None
    contrast: Optional[float] = None
    rotation: Optional[float] = None
    crop: Optional[CropBox] = None

    @property
    def is_noop(self) -> bool:
        return (
            not self.brightness
            and not self.contrast
            and not self.rotation
            and self.crop is None
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        for key in ("brightness", "contrast", "rotation"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        if self.crop is not None:
            d["crop"] = {
                "x": self.crop.x, "y": self.crop.y,
                "width": self.crop.width, "height": self.crop.height,
            }
        return d

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProcessingOptions":
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise InputValidationError("Preprocessing options must be a mapping")

        unknown = set(data) - {"brightness", "contrast", "rotation", "crop"}
        if unknown:
            raise InputValidationError(f"Unknown preprocessing options, {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        for key in ("brightness", "contrast"):
            value = data.get(key)
            if value is None:
                continue
            value = _as_number(key, value)
            if not -100 <= value <= 100:
                raise InputValidationError(f"{key} must be between -100 and 100, got {value}")
            kwargs[key] = value

        if data.get("rotation") is not None:
            kwargs["rotation"] = _as_number("rotation", data["rotation"])

        crop = data.get("crop")
        if crop is not None:
            try:
                box = CropBox(**{k: int(crop[k]) for k in ("x", "y", "width", "height")})
            except (KeyError, TypeError, ValueError) as e:
                raise InputValidationError(f"Invalid crop rectangle, {crop!r}") from e
            if box.x < 0 or box.y < 0 or box.width <= 0 or box.height <= 0:
                raise InputValidationError(f"Invalid crop rectangle, {crop!r}")
            kwargs["crop"] = box

        return cls(**kwargs)


def _as_number(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InputValidationError(f"{key} must be numeric")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise InputValidationError(f"{key} must be numeric, got {value!r}") from e


@dataclass
class WordBox:
    text: str
    confidence: int
    bbox: Tuple[float, float, float, float]  # x0, y0, x1, y1


@dataclass
class RecognitionResult:
    """Validated output of one recognition call. Confidence is 0-100."""

    text: str
    confidence: int
    language: str
    words: List[WordBox] = field(default_factory=list)


@dataclass
class RecognitionRequest:
    """Everything the recognition pipeline needs for one image."""

    image: Any  # PIL.Image.Image, bytes or a path
    language: str = "eng"
    options: ProcessingOptions = field(default_factory=ProcessingOptions)
    label: str = ""


@dataclass
class PageResult:
    page_number: int
    text: str
    confidence: int


@dataclass
class PageFailure:
    page_number: int
    strategy: ExtractionStrategy
    message: str


@dataclass
class DocumentResult:
    """Aggregate extraction output for one document."""

    text: str  # packed page-marker text
    confidence: int
    language: str
    strategy: ExtractionStrategy
    pages: List[PageResult] = field(default_factory=list)
    failures: List[PageFailure] = field(default_factory=list)
    words: List[WordBox] = field(default_factory=list)

    @property
    def page_numbers(self) -> List[int]:
        return [p.page_number for p in self.pages]

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)

    def summary(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "language": self.language,
            "confidence": self.confidence,
            "page_count": self.page_count,
            "pages": self.page_numbers,
            "failed_pages": [f.page_number for f in self.failures],
        }
