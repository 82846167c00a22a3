# src/pageocr/page_selection.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .exceptions import InvalidPageSelectionError
from .page_markers import (
    PageStats,
    ParsedPage,
    count_words,
    format_with_page_markers,
    get_page_stats,
    parse_page_markers,
)

logger = logging.getLogger("pageocr")


@dataclass
class SelectedPage:
    page_number: int
    content: str
    word_count: int
    character_count: int


@dataclass
class SelectionResult:
    selected_pages: List[SelectedPage]
    combined_text: str
    total_word_count: int
    total_character_count: int
    page_range: str
    original_document_stats: PageStats

    @property
    def selected_page_numbers(self) -> List[int]:
        return [p.page_number for p in self.selected_pages]


@dataclass
class PageSelectionValidation:
    valid: bool
    available_pages: List[int] = field(default_factory=list)
    invalid_pages: List[int] = field(default_factory=list)


def _format_run(start: int, end: int) -> str:
    if start == end:
        return str(start)
    if end == start + 1:
        return f"{start}, {end}"
    return f"{start}-{end}"


def generate_page_range_string(page_numbers: Iterable[int]) -> str:
    """
    Human-readable label for a page set, e.g. [1, 2, 3, 5, 7, 8, 9] -> "1-3, 5, 7-9".
    Runs of two are listed, not hyphenated: [2, 3] -> "2, 3".
    """
    ordered = sorted(set(page_numbers))
    if not ordered:
        return ""

    ranges: List[str] = []
    start = end = ordered[0]
    for number in ordered[1:]:
        if number == end + 1:
            end = number
            continue
        ranges.append(_format_run(start, end))
        start = end = number
    ranges.append(_format_run(start, end))
    return ", ".join(ranges)


_SPEC_PART_RE = re.compile(r"^\s*(\d+)\s*(?:-\s*(\d+)\s*)?$")


def parse_page_spec(value: str) -> List[int]:
    """Parse "1-3, 5" style input into sorted page numbers."""
    pages = set()
    for part in (value or "").split(","):
        if not part.strip():
            continue
        match = _SPEC_PART_RE.match(part)
        if not match:
            raise ValueError(f"Invalid page range, {part.strip()!r}")
        start = int(match.group(1))
        end = int(match.group(2) or start)
        if start < 1 or end < start:
            raise ValueError(f"Invalid page range, {part.strip()!r}")
        pages.update(range(start, end + 1))
    return sorted(pages)


class PageSelectionService:
    """
    Extracts page subsets from packed multi-page text.

    Decoded pages can be memoized per cache key so large documents are not
    re-parsed on every selection change.
    """

    def __init__(self) -> None:
        self._page_cache: Dict[str, List[ParsedPage]] = {}

    def _parsed_pages(self, text: str, cache_key: Optional[str]) -> List[ParsedPage]:
        if cache_key is not None:
            cached = self._page_cache.get(cache_key)
            if cached is not None:
                return cached
        pages = parse_page_markers(text)
        if cache_key is not None:
            self._page_cache[cache_key] = pages
        return pages

    def extract_selected_pages(
        self, full_text: str, page_numbers: Iterable[int], cache_key: Optional[str] = None
    ) -> SelectionResult:
        wanted = set(page_numbers)
        logger.debug("Extracting pages %s from %d chars", sorted(wanted), len(full_text or ""))

        selected = [
            SelectedPage(
                page_number=page.page_number,
                content=page.content,
                word_count=count_words(page.content),
                character_count=len(page.content),
            )
            for page in self._parsed_pages(full_text, cache_key)
            if page.page_number in wanted
        ]
        selected.sort(key=lambda p: p.page_number)

        return SelectionResult(
            selected_pages=selected,
            combined_text=format_with_page_markers((p.page_number, p.content) for p in selected),
            total_word_count=sum(p.word_count for p in selected),
            total_character_count=sum(p.character_count for p in selected),
            page_range=generate_page_range_string(wanted),
            original_document_stats=get_page_stats(full_text),
        )

    def get_available_pages(self, full_text: str) -> List[ParsedPage]:
        return parse_page_markers(full_text)

    def validate_page_selection(self, full_text: str, page_numbers: Iterable[int]) -> PageSelectionValidation:
        available = [p.page_number for p in self.get_available_pages(full_text)]
        known = set(available)
        invalid = [n for n in page_numbers if n not in known]
        return PageSelectionValidation(valid=not invalid, available_pages=available, invalid_pages=invalid)

    def require_valid_selection(self, full_text: str, page_numbers: Iterable[int]) -> List[int]:
        """Raise InvalidPageSelectionError unless every page exists and at least one is requested."""
        page_numbers = list(page_numbers)
        check = self.validate_page_selection(full_text, page_numbers)
        if not check.valid or not page_numbers:
            raise InvalidPageSelectionError(check.invalid_pages, check.available_pages)
        return sorted(set(page_numbers))

    def clear_cache(self, cache_key: Optional[str] = None) -> None:
        if cache_key is not None:
            self._page_cache.pop(cache_key, None)
        else:
            self._page_cache.clear()
