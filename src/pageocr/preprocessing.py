# src/pageocr/preprocessing.py
from __future__ import annotations

import numpy as np
from PIL import Image

from .models import ProcessingOptions


def preprocess_image(image: Image.Image, options: ProcessingOptions) -> Image.Image:
    """
    Apply crop, rotation and brightness/contrast, in that order.
    Returns the input unchanged when no option is set.
    """
    if options is None or options.is_noop:
        return image

    out = image.convert("RGB")

    if options.crop is not None:
        out = out.crop(options.crop.as_box())

    if options.rotation:
        # degrees are clockwise, Pillow rotates counter clockwise
        out = out.rotate(-float(options.rotation), expand=True, fillcolor=(255, 255, 255))

    if options.brightness or options.contrast:
        out = _apply_brightness_contrast(out, options.brightness or 0, options.contrast or 0)

    return out


def _apply_brightness_contrast(image: Image.Image, brightness: float, contrast: float) -> Image.Image:
    offset = brightness * 255.0 / 100.0
    gain = contrast / 100.0 + 1.0
    arr = np.asarray(image, dtype=np.float32)
    arr = np.clip(arr * gain + offset, 0, 255).astype(np.uint8)
    return Image.fromarray(arr)
