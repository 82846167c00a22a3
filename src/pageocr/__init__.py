# src/pageocr/__init__.py
from .config import OCRConfig
from .models import DocumentResult, ProcessingOptions, SourceDocument
from .orchestrator import DocumentProcessor, build_processor
from .page_selection import PageSelectionService
from .progress import ProgressChannel

__version__ = "0.1.0"

__all__ = [
    "OCRConfig",
    "DocumentProcessor",
    "DocumentResult",
    "PageSelectionService",
    "ProcessingOptions",
    "ProgressChannel",
    "SourceDocument",
    "build_processor",
]
