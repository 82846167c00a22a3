# pageocr/ocr_backends/tesseract_backend.py
from __future__ import annotations

from typing import List, Dict, Any
import logging
import os
import platform
import re
import shutil
from pathlib import Path

from PIL import Image
import pytesseract as pt

from .base import BaseOCREngine

logger = logging.getLogger("pageocr")


def _as_int(x, default: int) -> int:
    try:
        if isinstance(x, str):
            x = x.strip().rstrip(",}] ")
        return int(float(x))
    except Exception:
        m = re.search(r"-?\d+", str(x))
        return int(m.group()) if m else default


def resolve_tesseract_cmd() -> str | None:
    # 1) explicit env override
    cmd = os.getenv("TESSERACT_CMD")
    if cmd and Path(cmd).exists():
        return cmd

    # 2) look on PATH
    cmd = shutil.which("tesseract")
    if cmd:
        return cmd

    # 3) common fallbacks by OS
    system = platform.system()
    if system == "Windows":
        candidates = [
            r"C:\Program Files\Tesseract-OCR\tesseract.exe",
            r"C:\Program Files (x86)\Tesseract-OCR\tesseract.exe",
        ]
    elif system == "Darwin":  # macOS
        candidates = [
            "/opt/homebrew/bin/tesseract",   # Apple Silicon Homebrew
            "/usr/local/bin/tesseract",      # Intel Homebrew/MacPorts
        ]
    else:  # Linux and others
        candidates = [
            "/usr/bin/tesseract",            # apt/yum default
            "/usr/local/bin/tesseract",      # source install
            "/snap/bin/tesseract",           # snap
        ]

    for p in candidates:
        if Path(p).exists():
            return p
    return None


# Short codes accepted for convenience, mapped to traineddata names
_TESS_LANG_MAP = {
    "en": "eng",
    "vi": "vie",
    "fr": "fra",
    "de": "deu",
    "es": "spa",
}


def _norm_lang_to_tesseract(language: str) -> str:
    parts = [p.strip() for p in re.split(r"[+,]", language or "") if p.strip()]
    if not parts:
        parts = ["eng"]
    return "+".join(_TESS_LANG_MAP.get(p.lower(), p) for p in parts)


def words_to_text(data: Dict[str, List[Any]]) -> str:
    """Rebuild page text from image_to_data rows, one output line per tesseract line."""
    lines: Dict[tuple, List[str]] = {}
    paragraphs: List[tuple] = []
    for i, raw in enumerate(data.get("text", [])):
        word = (raw or "").strip()
        if not word:
            continue
        para = (data["block_num"][i], data["par_num"][i])
        key = para + (data["line_num"][i],)
        if para not in paragraphs:
            paragraphs.append(para)
        lines.setdefault(key, []).append(word)

    out: List[str] = []
    for para in paragraphs:
        para_lines = [" ".join(ws) for key, ws in lines.items() if key[:2] == para]
        out.append("\n".join(para_lines))
    return "\n\n".join(out)


class TesseractOCREngine(BaseOCREngine):
    """
    Pytesseract-based backend.

    Kwargs supported (all optional):
      - tesseract_cmd: full path to tesseract binary (Windows)
      - tessdata_prefix: path to tessdata directory
      - oem: 0..3 (default 3 = LSTM)
      - psm: page segmentation mode (default 3 = fully automatic)
      - preserve_interword_spaces: bool (default True)
      - extra_config: str of extra flags (appended to config string)
    """

    def __init__(self, language: str = "eng", **kwargs: Any):
        super().__init__(language)
        k = dict(kwargs)  # don't mutate caller's dict

        # Ignore GPU-related flags shared with other backends
        for junk in ("gpu", "use_gpu", "model_storage_directory", "download_enabled"):
            k.pop(junk, None)

        tesseract_cmd = k.pop("tesseract_cmd", None) or k.pop("tesseract_path", None) or resolve_tesseract_cmd()
        if tesseract_cmd:
            pt.pytesseract.tesseract_cmd = str(tesseract_cmd)

        tessdata_prefix = k.pop("tessdata_prefix", None)
        if tessdata_prefix:
            os.environ["TESSDATA_PREFIX"] = str(tessdata_prefix)

        self.lang = _norm_lang_to_tesseract(language)

        oem = _as_int(k.pop("oem", 3), 3)
        psm = _as_int(k.pop("psm", 3), 3)
        preserve_spaces = bool(k.pop("preserve_interword_spaces", True))
        extra_cfg = str(k.pop("extra_config", "")).strip()
        if k:
            logger.debug("Ignoring unknown tesseract options, %s", sorted(k))

        cfg_parts = [f"--oem {oem}", f"--psm {psm}"]
        if preserve_spaces:
            cfg_parts.append("-c preserve_interword_spaces=1")
        if extra_cfg:
            cfg_parts.append(extra_cfg)
        self._config = " ".join(cfg_parts)

        # fail at init rather than on the first page
        self.version = str(pt.get_tesseract_version())
        available = set(pt.get_languages(config=""))
        missing = [code for code in self.lang.split("+") if available and code not in available]
        if missing:
            raise RuntimeError(f"Tesseract language data not installed, {missing}")
        logger.debug("Tesseract %s ready for %s", self.version, self.lang)

    def recognize(self, image: Image.Image) -> Dict[str, Any]:
        data = pt.image_to_data(
            image, lang=self.lang, config=self._config, output_type=pt.Output.DICT
        )

        words: List[Dict[str, Any]] = []
        for i, raw in enumerate(data.get("text", [])):
            word = (raw or "").strip()
            conf = float(data["conf"][i])
            if not word or conf < 0:  # -1 marks layout rows, not words
                continue
            left, top = int(data["left"][i]), int(data["top"][i])
            words.append({
                "text": word,
                "confidence": conf / 100.0,  # tesseract reports 0-100
                "bbox": {
                    "x0": left,
                    "y0": top,
                    "x1": left + int(data["width"][i]),
                    "y1": top + int(data["height"][i]),
                },
            })

        confidence = sum(w["confidence"] for w in words) / len(words) if words else 0.0
        return {"text": words_to_text(data), "confidence": confidence, "words": words}
