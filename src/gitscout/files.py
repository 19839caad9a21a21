"""
File discovery and loading for repository documentation and source code.

Discovery walks the repository once, pruning vendored, build and hidden
trees, and matches relative paths against gitignore-style pattern sets.
Documentation is returned README-first, then newest-first; code keeps
discovery order.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pathspec
import yaml

from gitscout.errors import FileReadError

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────

DOCUMENTATION_PATTERNS = [
    "**/README*",
    "**/readme*",
    "**/docs/**/*.md",
    "**/docs/**/*.mdx",
    "**/documentation/**/*.md",
    "**/*.md",
    "**/CONTRIBUTING*",
    "**/CHANGELOG*",
    "**/LICENSE*",
    "**/llms.txt",
]

CODE_PATTERNS = [
    "**/*.ts",
    "**/*.js",
    "**/*.jsx",
    "**/*.tsx",
    "**/*.py",
    "**/*.java",
    "**/*.c",
    "**/*.cpp",
    "**/*.cs",
    "**/*.go",
    "**/*.rs",
    "**/*.php",
    "**/*.rb",
    "**/*.swift",
    "**/*.kotlin",
]

EXCLUDED_DIRS = frozenset({"node_modules", "dist", "build"})

MARKDOWN_EXTENSIONS = frozenset({".md", ".mdx"})

DEFAULT_MIME_TYPE = "text/plain"

MIME_TYPES: dict[str, str] = {
    # Documentation
    ".md": "text/markdown",
    ".mdx": "text/markdown",
    ".txt": "text/plain",
    ".rst": "text/x-rst",
    # Code
    ".py": "text/x-python",
    ".js": "text/javascript",
    ".jsx": "text/javascript",
    ".ts": "text/plain",
    ".tsx": "text/plain",
    ".java": "text/x-java-source",
    ".c": "text/x-c",
    ".cpp": "text/x-c++src",
    ".h": "text/x-c",
    ".cs": "text/plain",
    ".go": "text/plain",
    ".rs": "text/rust",
    ".php": "application/x-httpd-php",
    ".rb": "text/x-ruby",
    ".swift": "text/plain",
    ".kotlin": "text/plain",
    ".sh": "text/x-shellscript",
    # Data
    ".json": "application/json",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".toml": "text/plain",
    ".xml": "application/xml",
    ".html": "text/html",
    ".css": "text/css",
}

_FRONT_MATTER_DELIMITER = "---"


def detect_mime_type(path: str) -> str | None:
    """Detect MIME type from file extension, or None if unknown."""
    ext = Path(path).suffix.lower()
    return MIME_TYPES.get(ext)


# ─────────────────────────────────────────────────────────────────────────────
# Data types
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FileInfo:
    path: str
    relative_path: str
    size: int
    modified: float
    extension: str
    mime_type: str


@dataclass(frozen=True)
class DocumentationFile:
    info: FileInfo
    content: str
    front_matter: dict[str, Any] | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Discovery
# ─────────────────────────────────────────────────────────────────────────────


def _load_gitignore(root: Path) -> pathspec.PathSpec | None:
    """Load .gitignore patterns for filtering files."""
    gitignore = root / ".gitignore"
    if not gitignore.is_file():
        return None
    try:
        patterns = gitignore.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", gitignore, e)
        return None
    return pathspec.PathSpec.from_lines("gitignore", patterns)


class _FilePatterns:
    """
    Gitignore-style include patterns that select files by their own path.

    Under gitignore rules a pattern matching a directory also matches
    everything below it. Here the file's base name must also match the
    last segment of the same pattern, so `**/LICENSE*` selects `LICENSE.md`
    but not `LICENSES/MIT.txt`.
    """

    def __init__(self, patterns: list[str]):
        self._rules = [
            (
                pathspec.PathSpec.from_lines("gitignore", [pattern]),
                pathspec.PathSpec.from_lines("gitignore", [pattern.rstrip("/").rsplit("/", 1)[-1]]),
            )
            for pattern in patterns
        ]

    def match_file(self, relative_path: str) -> bool:
        name = relative_path.rsplit("/", 1)[-1]
        return any(
            full.match_file(relative_path) and last.match_file(name) for full, last in self._rules
        )


def _iter_candidates(root: Path):
    """Yield (absolute, relative posix) paths under root, skipping excluded trees."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if d not in EXCLUDED_DIRS and not d.startswith(".")
        )
        base = Path(dirpath)
        for name in sorted(filenames):
            if name.startswith("."):
                continue
            full = base / name
            yield full, full.relative_to(root).as_posix()


def _collect(
    repository_path: str,
    patterns: list[str],
    respect_gitignore: bool = True,
) -> list[FileInfo]:
    root = Path(repository_path)
    spec = _FilePatterns(patterns)
    ignore_spec = _load_gitignore(root) if respect_gitignore else None

    infos: list[FileInfo] = []
    for full, rel in _iter_candidates(root):
        if not spec.match_file(rel):
            continue
        if ignore_spec is not None and ignore_spec.match_file(rel):
            continue
        try:
            stat = full.stat()
        except OSError as e:
            logger.warning("Error processing file %s: %s", rel, e)
            continue
        if not full.is_file():
            continue
        infos.append(
            FileInfo(
                path=str(full),
                relative_path=rel,
                size=stat.st_size,
                modified=stat.st_mtime,
                extension=full.suffix,
                mime_type=detect_mime_type(rel) or DEFAULT_MIME_TYPE,
            )
        )
    return infos


def _is_readme(info: FileInfo) -> bool:
    return Path(info.relative_path).name.lower().startswith("readme")


def find_documentation_files(repository_path: str, respect_gitignore: bool = True) -> list[FileInfo]:
    """Find documentation files, README files first, then newest first."""
    infos = _collect(repository_path, DOCUMENTATION_PATTERNS, respect_gitignore)
    return sorted(infos, key=lambda info: (not _is_readme(info), -info.modified))


def find_code_files(
    repository_path: str,
    pattern: str | None = None,
    respect_gitignore: bool = True,
) -> list[FileInfo]:
    """Find source files by the built-in extension set or a single pattern."""
    patterns = [pattern] if pattern else CODE_PATTERNS
    return _collect(repository_path, patterns, respect_gitignore)


# ─────────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────────


def parse_front_matter(text: str) -> tuple[dict[str, Any] | None, str]:
    """
    Split a leading YAML front-matter block from a markdown document.

    Returns (metadata, body). An empty block gives {}. Metadata is None when
    there is no block, when the block is not a mapping, or when it fails to
    parse; in the last two cases the text is returned unchanged.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != _FRONT_MATTER_DELIMITER:
        return None, text

    for i in range(1, len(lines)):
        if lines[i].strip() == _FRONT_MATTER_DELIMITER:
            block = "".join(lines[1:i])
            body = "".join(lines[i + 1 :])
            break
    else:
        return None, text

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        logger.warning("Invalid front matter: %s", e)
        return None, text

    if data is None:
        return {}, body
    if not isinstance(data, dict):
        return None, text
    return data, body


def read_file_content(path: str) -> str:
    """Read a file verbatim. Raises FileReadError if it cannot be read."""
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise FileReadError(f"Failed to read file {path}: {e}") from e


def read_documentation_file(path: str, relative_path: str | None = None) -> DocumentationFile:
    """Read a documentation file, splitting front matter from markdown bodies."""
    p = Path(path)
    try:
        content = p.read_text(encoding="utf-8", errors="replace")
        stat = p.stat()
    except OSError as e:
        raise FileReadError(f"Failed to read documentation file {path}: {e}") from e

    front_matter = None
    if p.suffix.lower() in MARKDOWN_EXTENSIONS:
        front_matter, content = parse_front_matter(content)

    info = FileInfo(
        path=str(p),
        relative_path=relative_path or str(p),
        size=stat.st_size,
        modified=stat.st_mtime,
        extension=p.suffix,
        mime_type=detect_mime_type(str(p)) or DEFAULT_MIME_TYPE,
    )
    return DocumentationFile(info=info, content=content, front_matter=front_matter)
