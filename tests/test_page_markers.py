from pageocr.page_markers import (
    NO_TEXT_PLACEHOLDER,
    count_pages,
    extract_page_content,
    format_with_page_markers,
    get_page_stats,
    parse_page_markers,
)


def test_encode_layout():
    packed = format_with_page_markers([(1, "Hello"), (2, "World")])
    assert packed == (
        "=== PAGE 1 ===\nHello\n=== END PAGE 1 ===\n\n"
        "=== PAGE 2 ===\nWorld\n=== END PAGE 2 ==="
    )


def test_decode_recovers_pages_and_blank_page():
    packed = format_with_page_markers([(1, "Hello there"), (2, "   "), (3, "  last page \n")])
    assert NO_TEXT_PLACEHOLDER in packed

    pages = parse_page_markers(packed)
    assert [(p.page_number, p.content) for p in pages] == [
        (1, "Hello there"),
        (2, ""),
        (3, "last page"),
    ]


def test_text_without_markers_is_page_one():
    pages = parse_page_markers("just some text")
    assert len(pages) == 1
    assert pages[0].page_number == 1
    assert pages[0].content == "just some text"


def test_mismatched_closing_marker_is_not_a_block():
    text = "=== PAGE 1 ===\nx\n=== END PAGE 2 ==="
    pages = parse_page_markers(text)
    assert [(p.page_number, p.content) for p in pages] == [(1, text)]


def test_blocks_sorted_and_first_duplicate_wins():
    packed = format_with_page_markers([(3, "three"), (1, "one"), (3, "again")])
    pages = parse_page_markers(packed)
    assert [(p.page_number, p.content) for p in pages] == [(1, "one"), (3, "three")]


def test_single_page_helpers():
    packed = format_with_page_markers([(1, "alpha beta"), (2, ""), (10, "gamma")])
    assert extract_page_content(packed, 1) == "alpha beta"
    assert extract_page_content(packed, 2) == ""
    assert extract_page_content(packed, 10) == "gamma"
    assert extract_page_content(packed, 4) == ""
    assert count_pages(packed) == 3
    assert count_pages("no markers here") == 1


def test_page_stats_ignore_marker_text():
    packed = format_with_page_markers([(1, "one two three"), (2, ""), (3, "four")])
    stats = get_page_stats(packed)
    assert stats.total_pages == 3
    assert stats.total_words == 4
    assert stats.total_characters == len("one two three") + len("four")
    assert stats.pages_with_content == 2
    assert stats.average_words_per_page == 1
