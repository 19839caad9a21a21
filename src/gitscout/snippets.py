"""Query-aware excerpt extraction for search results."""

from __future__ import annotations

from gitscout.index import Category

DEFAULT_SNIPPET_LENGTH = 300
WINDOW_STEP = 50
FALLBACK_LEAD = 50  # chars shown before a lone first occurrence
CONTEXT_LINES_BEFORE = 2


def _query_words(query: str) -> list[str]:
    return [w for w in query.lower().split() if len(w) >= 2]


def _best_position(content_lower: str, words: list[str], max_length: int) -> int:
    """Start offset of the window holding the most distinct query words."""
    best_position = 0
    best_score = 0

    last_start = max(len(content_lower) - max_length, 0)
    for start in range(0, last_start + 1, WINDOW_STEP):
        region = content_lower[start : start + max_length]
        score = sum(1 for word in words if word in region)
        if score > best_score:
            best_score = score
            best_position = start

    if best_score == 0:
        for word in words:
            position = content_lower.find(word)
            if position != -1:
                return max(0, position - FALLBACK_LEAD)
    return best_position


def _documentation_snippet(content: str, position: int, max_length: int) -> str:
    snippet = content[position : position + max_length]
    prefix = "..." if position > 0 else ""
    suffix = "..." if position + max_length < len(content) else ""
    return f"{prefix}{snippet}{suffix}"


def _line_at(lines: list[str], position: int) -> int:
    offset = 0
    for i, line in enumerate(lines):
        if offset + len(line) >= position:
            return i
        offset += len(line) + 1  # newline
    return max(len(lines) - 1, 0)


def _code_snippet(
    content: str,
    words: list[str],
    position: int,
    max_length: int,
) -> str:
    lines = content.split("\n")
    match_line = _line_at(lines, position)

    # Prefer a line inside the window that actually contains a query word
    window_end = _line_at(lines, position + max_length)
    for i in range(match_line, window_end + 1):
        lowered = lines[i].lower()
        if any(word in lowered for word in words):
            match_line = i
            break

    start_line = max(0, match_line - CONTEXT_LINES_BEFORE)

    block: list[str] = []
    length = 0
    for i in range(start_line, len(lines)):
        line = lines[i]
        added = len(line) + (1 if block else 0)
        if block and i > match_line and length + added > max_length:
            break
        block.append(line)
        length += added

    rows = []
    if start_line > 0:
        rows.append(f"... (line {start_line + 1})")
    for offset, line in enumerate(block):
        number = start_line + offset
        marker = ">" if number == match_line else " "
        rows.append(f"{marker} {number + 1}: {line}")
    if start_line + len(block) < len(lines):
        rows.append("... (continues)")

    return "```\n" + "\n".join(rows) + "\n```"


def extract_snippet(
    content: str,
    query: str,
    category: Category | str = Category.DOCUMENTATION,
    max_length: int = DEFAULT_SNIPPET_LENGTH,
) -> str:
    """
    Extract the excerpt of `content` most relevant to `query`.

    Slides a `max_length` window in WINDOW_STEP increments and keeps the
    one containing the most distinct query words. Documentation gets the
    raw window with "..." markers. Code gets whole lines starting two lines
    above the match line, numbered, with ">" on the match line.
    """
    words = _query_words(query)

    if Category(category) is Category.CODE:
        content = content.replace("\r\n", "\n")
        position = _best_position(content.lower(), words, max_length)
        return _code_snippet(content, words, position, max_length)

    position = _best_position(content.lower(), words, max_length)
    return _documentation_snippet(content, position, max_length)
