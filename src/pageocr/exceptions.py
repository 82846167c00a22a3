# pageocr/exceptions.py
class PageOCRError(Exception):
    """Base exception for the pageocr library."""
    pass


# --- Input validation, raised before any processing starts ---
class InputValidationError(PageOCRError):
    """Raised when a submitted document or parameter is rejected up front."""
    pass

class UnsupportedFileError(InputValidationError):
    pass

class FileTooLargeError(InputValidationError):
    pass

class UnsupportedLanguageError(InputValidationError):
    pass

class InvalidPageSelectionError(InputValidationError):
    """Raised when requested page numbers do not exist in the document."""

    def __init__(self, invalid_pages, available_pages=None):
        self.invalid_pages = sorted(invalid_pages)
        self.available_pages = sorted(available_pages or [])
        super().__init__(
            f"Invalid page selection, pages {self.invalid_pages} do not exist "
            f"(available: {self.available_pages})"
        )


# --- Engine and rendering, fatal for the whole job ---
class EngineInitializationError(PageOCRError):
    pass

class EngineStateError(PageOCRError):
    """Raised when the engine adapter is used outside the READY state."""
    pass

class MalformedResultError(PageOCRError):
    """Raised when an engine returns output that does not match the result schema."""
    pass

class RasterizationError(PageOCRError):
    pass


# --- Recognition and job outcome ---
class RecognitionError(PageOCRError):
    """Raised when a single recognition call fails."""
    pass

class ExtractionError(PageOCRError):
    """Raised when every page of a document failed to produce text."""

    def __init__(self, strategy, failures):
        self.strategy = strategy
        self.failures = list(failures)
        details = "; ".join(f"page {f.page_number}: {f.message}" for f in self.failures)
        name = getattr(strategy, "value", strategy)
        super().__init__(f"All pages failed using {name} extraction ({details})")


# --- Cancellation ---
class QueueClearedError(PageOCRError):
    """Raised for queued items that were discarded before they started."""
    pass

class JobCancelledError(PageOCRError):
    pass
