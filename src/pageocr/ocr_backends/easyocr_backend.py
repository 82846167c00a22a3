# pageocr/ocr_backends/easyocr_backend.py
from __future__ import annotations

from typing import List, Dict, Any
import os
import time
import logging
import errno
import numpy as np
from PIL import Image

import easyocr

from .base import BaseOCREngine

logger = logging.getLogger("pageocr")


# -----------------------------
# Helpers
# -----------------------------

# Tesseract traineddata codes -> EasyOCR codes
_EASYOCR_LANG_MAP = {
    "eng": "en",
    "spa": "es",
    "fra": "fr",
    "deu": "de",
    "ita": "it",
    "por": "pt",
    "rus": "ru",
    "chi_sim": "ch_sim",
    "jpn": "ja",
    "kor": "ko",
    "ara": "ar",
    "hin": "hi",
    "tha": "th",
    "vie": "vi",
}


def _as_bool(x, default=True) -> bool:
    if isinstance(x, bool):
        return x
    if isinstance(x, str):
        s = x.strip().lower()
        if s in ("true", "1", "yes", "y", "on"):
            return True
        if s in ("false", "0", "no", "n", "off"):
            return False
    return default


def _norm_langs_to_easyocr(language: str) -> List[str]:
    codes = [c.strip() for c in (language or "eng").split("+") if c.strip()]
    return [_EASYOCR_LANG_MAP.get(c, c) for c in codes] or ["en"]


def _ensure_rgb_uint8(img: Any) -> np.ndarray:
    """Accept PIL.Image | np.ndarray; return RGB uint8 numpy."""
    if isinstance(img, Image.Image):
        return np.array(img.convert("RGB"))
    arr = np.asarray(img)
    if arr.dtype != np.uint8:
        arr = arr.astype(np.uint8, copy=False)
    if arr.ndim == 2:  # grayscale
        return np.stack([arr, arr, arr], axis=-1)
    return arr[..., :3]


def _torch_cuda_available() -> bool:
    try:
        import torch
        return bool(torch.cuda.is_available())
    except ImportError:
        return False


def _acquire_file_lock(lock_path: str, timeout: float = 120.0, poll: float = 0.2):
    """
    Inter-process lock using atomic file create.
    Prevents concurrent EasyOCR model downloads.
    """
    start = time.perf_counter()
    os.makedirs(os.path.dirname(lock_path) or ".", exist_ok=True)
    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
            os.write(fd, str(os.getpid()).encode("utf-8"))
            return fd
        except OSError as e:
            if e.errno != errno.EEXIST:
                raise
            if time.perf_counter() - start > timeout:
                logger.warning("Model init lock timeout; proceeding without lock: %s", lock_path)
                return None
            time.sleep(poll)


def _release_file_lock(fd, lock_path: str):
    try:
        if fd is not None:
            os.close(fd)
        if lock_path and os.path.exists(lock_path):
            os.unlink(lock_path)
    except OSError:
        logger.debug("Failed to release lock: %s", lock_path, exc_info=True)


# -----------------------------
# Backend
# -----------------------------

class EasyOCREngine(BaseOCREngine):
    """
    EasyOCR adapter.

    Supported kwargs (all optional):
      - gpu / use_gpu: bool (defaults to True if CUDA is available, else False)
      - model_storage_directory: str (shared cache dir recommended)
      - download_enabled: bool (default True)
      - decoder: "greedy" | "beamsearch", beam_width: int
    """

    def __init__(self, language: str = "eng", **kwargs: Any):
        super().__init__(language)
        k = dict(kwargs)

        want_gpu = _as_bool(k.pop("gpu", k.pop("use_gpu", True)), True)
        use_gpu = bool(want_gpu and _torch_cuda_available())
        model_dir = k.pop("model_storage_directory", None)
        download_enabled = _as_bool(k.pop("download_enabled", True), True)

        decoder = str(k.pop("decoder", "greedy")).strip().lower()
        self._decoder = decoder if decoder in ("greedy", "beamsearch") else "greedy"
        self._beam_width = max(1, min(int(k.pop("beam_width", 10)), 20))

        self.langs = _norm_langs_to_easyocr(language)

        cache_root = model_dir or os.path.join(os.path.expanduser("~"), ".cache", "easyocr")
        lock_path = os.path.join(cache_root, "model_init.lock")
        fd = None
        try:
            fd = _acquire_file_lock(lock_path, timeout=180.0)
            try:
                self.reader = easyocr.Reader(
                    self.langs,
                    gpu=use_gpu,
                    model_storage_directory=model_dir,
                    download_enabled=download_enabled,
                    verbose=False,
                )
            except Exception as e:
                if not use_gpu:
                    raise
                logger.warning("EasyOCR GPU init failed, falling back to CPU: %s", e)
                self.reader = easyocr.Reader(
                    self.langs,
                    gpu=False,
                    model_storage_directory=model_dir,
                    download_enabled=download_enabled,
                    verbose=False,
                )
        finally:
            _release_file_lock(fd, lock_path)

    def recognize(self, image: Image.Image) -> Dict[str, Any]:
        rgb = _ensure_rgb_uint8(image)
        with np.errstate(over="ignore", invalid="ignore"):
            detections = self.reader.readtext(
                rgb,
                detail=1,
                paragraph=False,
                decoder=self._decoder,
                beamWidth=self._beam_width,
            )

        words: List[Dict[str, Any]] = []
        for points, text, conf in detections:
            xs = [float(p[0]) for p in points]
            ys = [float(p[1]) for p in points]
            words.append({
                "text": str(text),
                "confidence": float(conf),  # 0-1 scale
                "bbox": {"x0": min(xs), "y0": min(ys), "x1": max(xs), "y1": max(ys)},
            })

        confidence = sum(w["confidence"] for w in words) / len(words) if words else 0.0
        text = "\n".join(w["text"] for w in words)
        return {"text": text, "confidence": confidence, "words": words}

    def close(self) -> None:
        self.reader = None
