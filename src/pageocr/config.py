# pageocr/config.py
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Any, Optional


@dataclass
class OCRConfig:
    """Configuration for a pageocr extraction run."""
    language: str = "eng"

    # Recognition queue
    max_concurrent: int = 2
    queue_delay: float = 0.1   # seconds between a completion and the next start

    # Paginated documents
    render_scale: float = 2.0         # tuned for recognition accuracy, not display
    preview_scale: float = 1.5
    min_native_text_chars: int = 50
    min_native_confidence: float = 0.6

    # Input validation
    max_file_size_mb: int = 500

    ocr_backend: str = "pageocr.ocr_backends.tesseract_backend.TesseractOCREngine"
    ocr_backend_kwargs: Dict[str, Any] = field(default_factory=dict)

    error_log_path: Optional[Path] = None
    log_file_path: Optional[Path] = None

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.max_file_size_mb) * 1024 * 1024

    def to_dict(self):
        """Converts config to a plain dictionary (paths become strings)."""
        d = asdict(self)
        for key, value in d.items():
            if isinstance(value, Path):
                d[key] = str(value)
        return d

    @classmethod
    def from_dict(cls, config_dict: dict):
        d = dict(config_dict)

        # normalize path-like fields
        for key in ["error_log_path", "log_file_path"]:
            if key in d and isinstance(d[key], str):
                d[key] = Path(d[key])

        # allow explicit None to mean use default
        for key in ["language", "max_concurrent", "queue_delay", "render_scale", "preview_scale",
                    "min_native_text_chars", "min_native_confidence", "max_file_size_mb"]:
            if d.get(key) is None:
                d.pop(key, None)

        unknown = set(d) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown config keys, {sorted(unknown)}")

        cfg = cls(**d)
        if cfg.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        return cfg
