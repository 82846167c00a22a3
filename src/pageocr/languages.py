# src/pageocr/languages.py
from __future__ import annotations

from typing import List

DEFAULT_LANGUAGE = "eng"

# Tesseract traineddata codes
SUPPORTED_LANGUAGES = (
    "eng", "spa", "fra", "deu", "ita", "por", "rus",
    "chi_sim", "jpn", "kor", "ara", "hin", "tha", "vie",
)

LANGUAGE_NAMES = {
    "eng": "English",
    "spa": "Spanish",
    "fra": "French",
    "deu": "German",
    "ita": "Italian",
    "por": "Portuguese",
    "rus": "Russian",
    "chi_sim": "Chinese (Simplified)",
    "jpn": "Japanese",
    "kor": "Korean",
    "ara": "Arabic",
    "hin": "Hindi",
    "tha": "Thai",
    "vie": "Vietnamese",
}


def get_supported_languages() -> List[str]:
    return list(SUPPORTED_LANGUAGES)


def get_language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def is_language_supported(code: str) -> bool:
    return code in SUPPORTED_LANGUAGES
