# pageocr/ocr_backends/__init__.py
import importlib

DEFAULT_BACKEND = "pageocr.ocr_backends.tesseract_backend.TesseractOCREngine"

BACKEND_ALIASES = {
    # Tesseract (pytesseract)
    "tess": DEFAULT_BACKEND,
    "tesseract": DEFAULT_BACKEND,
    "pytesseract": DEFAULT_BACKEND,

    # EasyOCR
    "easy": "pageocr.ocr_backends.easyocr_backend.EasyOCREngine",
    "easyocr": "pageocr.ocr_backends.easyocr_backend.EasyOCREngine",
}


def normalize_backend_alias(name: str) -> str:
    """
    Allow short aliases (case-insensitive) and module-only shorthands.
    Returns a fully qualified dotted path 'module.Class'.
    """
    if not name:
        return DEFAULT_BACKEND

    original = name.strip().strip('"\'')
    alias = original.lower()
    if alias in BACKEND_ALIASES:
        return BACKEND_ALIASES[alias]

    if alias.endswith(".tesseract_backend"):
        return BACKEND_ALIASES["tesseract"]
    if alias.endswith(".easyocr_backend"):
        return BACKEND_ALIASES["easyocr"]

    return original


def load_engine_class(dotted: str):
    """Import 'module.Class' and return the class."""
    mod_path, _, attr = normalize_backend_alias(dotted).rpartition(".")
    if not mod_path or not attr:
        raise ImportError(f"Invalid backend path, {dotted}")
    mod = importlib.import_module(mod_path)
    try:
        return getattr(mod, attr)
    except AttributeError as e:
        raise ImportError(f"Backend class not found, {dotted}") from e
