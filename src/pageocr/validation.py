# src/pageocr/validation.py
from __future__ import annotations

import logging
from typing import Optional

from .exceptions import (
    FileTooLargeError,
    UnsupportedFileError,
    UnsupportedLanguageError,
)
from .languages import is_language_supported
from .models import DocumentKind, SourceDocument

logger = logging.getLogger("pageocr")

LARGE_FILE_WARNING_BYTES = 100 * 1024 * 1024

# formats that recognise well; others are accepted with a warning
PREFERRED_IMAGE_TYPES = {
    "image/jpeg", "image/jpg", "image/png", "image/bmp", "image/tiff", "image/webp",
}


def validate_document(document: SourceDocument, max_size_bytes: int) -> DocumentKind:
    """
    Reject documents that cannot be processed. Returns the routing kind.
    """
    if document.kind is None:
        raise UnsupportedFileError(
            f"Unsupported file type for {document.name!r}, expected a PDF or an image (JPEG, PNG, etc.)"
        )

    try:
        size = document.size_bytes
    except OSError as e:
        raise UnsupportedFileError(f"Cannot read {document.name!r}, {e}") from e

    if size > max_size_bytes:
        limit_mb = max_size_bytes // (1024 * 1024)
        raise FileTooLargeError(f"{document.name!r} is too large (maximum {limit_mb}MB allowed)")
    if size == 0:
        raise UnsupportedFileError(f"{document.name!r} is empty")

    if size > LARGE_FILE_WARNING_BYTES:
        logger.warning("Very large file %s may take longer to process", document.name)
    if document.kind is DocumentKind.IMAGE and document.mime_type not in PREFERRED_IMAGE_TYPES:
        logger.warning("%s format may not be optimal for OCR, JPEG or PNG recommended", document.mime_type)

    return document.kind


def validate_language(language: Optional[str]) -> str:
    if not language:
        raise UnsupportedLanguageError("A recognition language is required")
    # combined tesseract codes such as "eng+fra" are accepted when every part is known
    parts = language.split("+")
    unknown = [p for p in parts if not is_language_supported(p)]
    if unknown:
        raise UnsupportedLanguageError(f"Unsupported OCR language(s), {unknown}")
    return language
