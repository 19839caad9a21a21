"""
Regex code search across repository source files.

Independent of the fuzzy index: each call scans files directly, so results
always reflect what is on disk.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from gitscout.errors import FileReadError, MalformedQueryError
from gitscout.files import FileInfo, find_code_files, read_file_content

logger = logging.getLogger(__name__)

MAX_GREP_FILES = 50
MAX_GREP_MATCHES = 5  # per file
CONTEXT_LINES = 2  # before and after each match


@dataclass(frozen=True)
class GrepMatch:
    line: int  # 1-based
    content: str
    context: list[str]
    context_start: int  # 1-based line number of context[0]


@dataclass(frozen=True)
class FileMatches:
    file_path: str
    matches: list[GrepMatch]


def compile_query(query: str) -> re.Pattern[str]:
    """Compile a case-insensitive search pattern. Raises MalformedQueryError."""
    try:
        return re.compile(query, re.IGNORECASE)
    except re.error as e:
        raise MalformedQueryError(f"Invalid regular expression {query!r}: {e}") from e


def grep_lines(lines: list[str], pattern: re.Pattern[str], max_matches: int) -> list[GrepMatch]:
    matches: list[GrepMatch] = []
    for index, line in enumerate(lines):
        if not pattern.search(line):
            continue
        start = max(0, index - CONTEXT_LINES)
        end = min(len(lines), index + CONTEXT_LINES + 1)
        matches.append(
            GrepMatch(
                line=index + 1,
                content=line,
                context=lines[start:end],
                context_start=start + 1,
            )
        )
        if len(matches) >= max_matches:
            break
    return matches


def grep_files(
    files: list[FileInfo],
    pattern: re.Pattern[str],
    max_files: int = MAX_GREP_FILES,
    max_matches: int = MAX_GREP_MATCHES,
) -> list[FileMatches]:
    """
    Scan files for lines matching `pattern`.

    Only the first `max_files` files are read, and at most `max_matches`
    matches are kept per file. Unreadable files are logged and skipped. An
    empty list means nothing matched.
    """
    results: list[FileMatches] = []
    for info in files[:max_files]:
        try:
            content = read_file_content(info.path)
        except FileReadError as e:
            logger.warning("Error searching in %s: %s", info.relative_path, e)
            continue

        lines = content.replace("\r\n", "\n").split("\n")
        matches = grep_lines(lines, pattern, max_matches)
        if matches:
            results.append(FileMatches(file_path=info.relative_path, matches=matches))
    return results


def search_code_files(
    repository_path: str,
    query: str,
    file_pattern: str | None = None,
    max_files: int = MAX_GREP_FILES,
    max_matches: int = MAX_GREP_MATCHES,
    respect_gitignore: bool = True,
) -> list[FileMatches]:
    """Grep the repository's code files for `query` (a case-insensitive regex)."""
    pattern = compile_query(query)
    code_files = find_code_files(repository_path, file_pattern, respect_gitignore)
    return grep_files(code_files, pattern, max_files, max_matches)
