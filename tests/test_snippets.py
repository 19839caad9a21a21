"""Tests for snippet extraction."""

import re

from gitscout.index import Category
from gitscout.snippets import extract_snippet

_ROW = re.compile(r"^([> ]) (\d+): (.*)$")


def _code_rows(snippet):
    """Parse numbered rows out of a code snippet: [(marker, line_no, text)]."""
    rows = []
    for row in snippet.split("\n"):
        m = _ROW.match(row)
        if m:
            rows.append((m.group(1), int(m.group(2)), m.group(3)))
    return rows


# ─────────────────────────────────────────────────────────────────────────────
# Documentation
# ─────────────────────────────────────────────────────────────────────────────


def test_short_content_verbatim():
    assert extract_snippet("hello world", "world") == "hello world"


def test_window_around_match_has_ellipses():
    content = "x" * 1000 + " needle " + "y" * 1000
    snippet = extract_snippet(content, "needle")
    assert snippet.startswith("...")
    assert snippet.endswith("...")
    assert "needle" in snippet
    assert len(snippet) == 300 + 6


def test_prefers_window_with_most_words():
    content = "alpha " + "z" * 600 + " alpha beta gamma " + "z" * 600
    snippet = extract_snippet(content, "alpha beta gamma", max_length=100)
    assert "beta" in snippet and "gamma" in snippet


def test_no_match_starts_at_beginning():
    content = "a" * 500
    snippet = extract_snippet(content, "missing")
    assert snippet == "a" * 300 + "..."


def test_match_at_start_has_no_leading_ellipsis():
    content = "needle " + "x" * 600
    snippet = extract_snippet(content, "needle")
    assert snippet.startswith("needle")
    assert snippet.endswith("...")


def test_match_near_end_has_no_trailing_ellipsis():
    content = "x" * 600 + " needle"
    snippet = extract_snippet(content, "needle", max_length=100)
    assert snippet.startswith("...")
    assert snippet.endswith("needle")


def test_single_character_words_ignored():
    content = "a" * 50 + " needle " + "b" * 500
    assert "needle" in extract_snippet(content, "a needle", max_length=100)


def test_custom_length():
    content = "word " * 200
    snippet = extract_snippet(content, "word", max_length=40)
    assert snippet == content[:40] + "..."


# ─────────────────────────────────────────────────────────────────────────────
# Code
# ─────────────────────────────────────────────────────────────────────────────


def _source(n=40, target=20):
    lines = [f"value_{i} = {i}" for i in range(n)]
    lines[target] = "def target_function():"
    return lines


def test_code_snippet_marks_match_line():
    lines = _source()
    snippet = extract_snippet("\n".join(lines), "target_function", Category.CODE)

    assert snippet.startswith("```\n")
    assert snippet.endswith("\n```")
    rows = _code_rows(snippet)
    marked = [row for row in rows if row[0] == ">"]
    assert marked == [(">", 21, "def target_function():")]


def test_code_snippet_whole_lines_with_numbers():
    lines = _source()
    snippet = extract_snippet("\n".join(lines), "target_function", "code")
    for _, number, text in _code_rows(snippet):
        assert lines[number - 1] == text


def test_code_snippet_context_and_markers():
    lines = _source()
    snippet = extract_snippet("\n".join(lines), "target_function", Category.CODE)
    body = snippet.split("\n")

    assert body[1] == "... (line 19)"
    assert _code_rows(snippet)[0][1] == 19  # two lines of leading context
    assert body[-2] == "... (continues)"


def test_code_snippet_from_first_line():
    lines = ["def target_function():", "    return 1"]
    snippet = extract_snippet("\n".join(lines), "target_function", Category.CODE)
    assert "... (line" not in snippet
    assert "... (continues)" not in snippet
    assert _code_rows(snippet) == [
        (">", 1, "def target_function():"),
        (" ", 2, "    return 1"),
    ]


def test_code_snippet_respects_length_after_match():
    lines = _source(n=200, target=100)
    snippet = extract_snippet("\n".join(lines), "target_function", Category.CODE, max_length=120)
    rows = _code_rows(snippet)
    shown = sum(len(text) for _, _, text in rows) + len(rows) - 1
    assert shown <= 120 + len(lines[100])
    assert any(marker == ">" for marker, _, _ in rows)


def test_code_snippet_crlf():
    content = "\r\n".join(_source(n=10, target=4))
    snippet = extract_snippet(content, "target_function", Category.CODE)
    assert "\r" not in snippet
    assert "> 5: def target_function():" in snippet
