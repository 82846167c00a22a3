# src/pageocr/page_markers.py
"""
Page-marker text format.

A multi-page result is stored as one string of page blocks::

    === PAGE 1 ===
    <page 1 text>
    === END PAGE 1 ===

    === PAGE 2 ===
    [No text found on this page]
    === END PAGE 2 ===

The format is persisted by downstream stores and must stay stable.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Tuple

logger = logging.getLogger("pageocr")

NO_TEXT_PLACEHOLDER = "[No text found on this page]"

# the closing marker must carry the same page number as the opening one
PAGE_MARKER_RE = re.compile(r"=== PAGE (\d+) ===([\s\S]*?)=== END PAGE \1 ===")
PAGE_COUNT_RE = re.compile(r"=== PAGE \d+ ===")


@dataclass
class ParsedPage:
    page_number: int
    content: str


@dataclass
class PageStats:
    total_pages: int
    total_words: int
    total_characters: int
    average_words_per_page: int
    pages_with_content: int


def count_words(text: str) -> int:
    return len(text.split())


def format_page_block(page_number: int, text: str) -> str:
    body = (text or "").strip() or NO_TEXT_PLACEHOLDER
    return f"=== PAGE {page_number} ===\n{body}\n=== END PAGE {page_number} ==="


def format_with_page_markers(pages: Iterable[Tuple[int, str]]) -> str:
    """Encode (page_number, text) pairs, in the order given, into one blob."""
    return "\n\n".join(format_page_block(n, text) for n, text in pages)


def parse_page_markers(text: str) -> List[ParsedPage]:
    """
    Decode a packed blob into pages sorted by page number.

    Text without any page block is returned as a single page 1.
    """
    pages: List[ParsedPage] = []
    seen = set()
    for match in PAGE_MARKER_RE.finditer(text or ""):
        number = int(match.group(1))
        if number in seen:
            logger.debug("Duplicate block for page %d ignored", number)
            continue
        seen.add(number)
        content = match.group(2).strip()
        if content == NO_TEXT_PLACEHOLDER:
            content = ""
        pages.append(ParsedPage(page_number=number, content=content))

    if not pages:
        return [ParsedPage(page_number=1, content=text or "")]

    pages.sort(key=lambda p: p.page_number)
    return pages


@lru_cache(maxsize=64)
def _page_regex(page_number: int) -> "re.Pattern[str]":
    return re.compile(rf"=== PAGE {page_number} ===([\s\S]*?)=== END PAGE {page_number} ===")


def extract_page_content(text: str, page_number: int) -> str:
    """Content of a single page, without markers. Empty when the page is absent."""
    match = _page_regex(page_number).search(text or "")
    if not match:
        return ""
    content = match.group(1).strip()
    return "" if content == NO_TEXT_PLACEHOLDER else content


def count_pages(text: str) -> int:
    return len(PAGE_COUNT_RE.findall(text or "")) or 1


def get_page_stats(text: str) -> PageStats:
    pages = parse_page_markers(text)
    total_words = sum(count_words(p.content) for p in pages)
    return PageStats(
        total_pages=len(pages),
        total_words=total_words,
        total_characters=sum(len(p.content) for p in pages),
        average_words_per_page=round(total_words / len(pages)),
        pages_with_content=sum(1 for p in pages if p.content.strip()),
    )
