# src/pageocr/utils.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from slugify import slugify

logger = logging.getLogger("pageocr")


def safe_fname(name: str, fallback: str = "file") -> str:
    """
    Create a filesystem safe name, preserve extension when present.
    """
    name = (name or "").strip() or fallback
    if "." in name:
        base, ext = name.rsplit(".", 1)
        return f"{slugify(base)[:100] or fallback}.{ext.lower()}"
    return slugify(name)[:100] or fallback


def default_output_path(source: Union[str, Path], suffix: str = ".txt") -> Path:
    """<dir>/<slugified stem>.ocr<suffix> next to the source file."""
    src = Path(source)
    return src.with_name(f"{safe_fname(src.stem)}.ocr{suffix}")


def write_text_file(path: Path, text: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.info("Wrote %d chars to %s", len(text), path)
    return path


def write_json_file(path: Path, payload: Dict[str, Any]) -> Path:
    return write_text_file(path, json.dumps(payload, ensure_ascii=False, indent=2))
