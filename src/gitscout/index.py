"""
gitscout fuzzy search index.

Holds one in-memory approximate-match index per repository path. Records
are matched against weighted content/title/path fields with rapidfuzz, so
queries tolerate typos and partial tokens. Multi-word queries are expanded
into a phrase pass plus one pass per significant word, and the passes are
merged with first-occurrence-wins deduplication.
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rapidfuzz import fuzz

from gitscout.errors import IndexNotFoundError

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────

FIELD_WEIGHTS: tuple[tuple[str, float], ...] = (
    ("content", 0.7),
    ("title", 0.2),
    ("file_path", 0.1),
)
MATCH_THRESHOLD = 0.4  # max normalized distance for a field to count as a match
MIN_MATCH_CHAR_LENGTH = 2
OVERFETCH_FACTOR = 2  # per-pass candidates = limit * factor, to survive dedup
DEFAULT_SEARCH_LIMIT = 10

_EPSILON = sys.float_info.epsilon
_SCORE_CUTOFF = (1 - MATCH_THRESHOLD) * 100


# ─────────────────────────────────────────────────────────────────────────────
# Data types
# ─────────────────────────────────────────────────────────────────────────────


class Category(str, Enum):
    DOCUMENTATION = "documentation"
    CODE = "code"


@dataclass(frozen=True)
class IndexRecord:
    content: str
    file_path: str
    title: str
    category: Category


@dataclass(frozen=True)
class FieldMatch:
    """Span of the best alignment of a query inside one record field."""

    key: str
    start: int
    end: int
    distance: float


@dataclass(frozen=True)
class SearchHit:
    content: str
    file_path: str
    score: float  # 0 = perfect match, 1 = unrelated
    category: Category
    matches: tuple[FieldMatch, ...] = field(default=())


# ─────────────────────────────────────────────────────────────────────────────
# Query planning & ranking
# ─────────────────────────────────────────────────────────────────────────────


def expand_query(query: str) -> list[str]:
    """
    Expand a user query into ordered search passes.

    A quoted query ("..." or '...') is a single exact-phrase pass. A
    multi-word query is tried as a phrase first, then as each word of two
    or more characters.
    """
    trimmed = query.strip()

    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in ("'", '"'):
        return [trimmed[1:-1]]

    words = trimmed.split()
    if len(words) <= 1:
        return [trimmed]

    return [trimmed] + [word for word in words if len(word) >= MIN_MATCH_CHAR_LENGTH]


def merge_results(passes: Iterable[list[SearchHit]], limit: int) -> list[SearchHit]:
    """
    Merge per-pass hit lists into one ranked list.

    Passes are concatenated in order and deduplicated by file path keeping
    the first occurrence, so a file found by the phrase pass keeps that
    pass's score even if a single-word pass scored it better. The survivors
    are sorted ascending by score (stable) and truncated to `limit`.
    """
    seen: set[str] = set()
    unique: list[SearchHit] = []
    for hits in passes:
        for hit in hits:
            if hit.file_path in seen:
                continue
            seen.add(hit.file_path)
            unique.append(hit)

    unique.sort(key=lambda hit: hit.score)
    return unique[:limit]


# ─────────────────────────────────────────────────────────────────────────────
# FuzzyIndex
# ─────────────────────────────────────────────────────────────────────────────


def _field_distance(needle: str, text: str) -> tuple[float, int, int] | None:
    """Return (distance, start, end) of needle's best alignment in text, or None."""
    if not text:
        return None

    if len(needle) <= len(text):
        alignment = fuzz.partial_ratio_alignment(needle, text, score_cutoff=_SCORE_CUTOFF)
        if alignment is None:
            return None
        return 1 - alignment.score / 100, alignment.dest_start, alignment.dest_end

    # Field shorter than the query: compare whole strings
    score = fuzz.ratio(needle, text, score_cutoff=_SCORE_CUTOFF)
    if not score:
        return None
    return 1 - score / 100, 0, len(text)


class FuzzyIndex:
    """
    Approximate-match index over one repository's records.

    Immutable after construction. Each field is scored independently; a
    field matches when its normalized distance is at most MATCH_THRESHOLD,
    regardless of where in the field the match sits. A record's score is
    the weighted product of its matching fields' distances.
    """

    def __init__(self, records: Iterable[IndexRecord]):
        by_path: dict[str, IndexRecord] = {}
        for record in records:
            by_path[record.file_path] = record  # last write wins

        self._records = list(by_path.values())
        self._fields = [
            (r.content.lower(), (r.title or "").lower(), r.file_path.lower())
            for r in self._records
        ]

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> list[IndexRecord]:
        return list(self._records)

    def search(self, query: str, limit: int) -> list[SearchHit]:
        """Run a single fuzzy pass. Results are ascending by score."""
        needle = query.strip().lower()
        if len(needle) < MIN_MATCH_CHAR_LENGTH or limit <= 0:
            return []

        scored: list[tuple[float, int, tuple[FieldMatch, ...]]] = []
        for position, fields in enumerate(self._fields):
            total = 1.0
            matches: list[FieldMatch] = []
            for (key, weight), text in zip(FIELD_WEIGHTS, fields):
                found = _field_distance(needle, text)
                if found is None:
                    continue
                distance, start, end = found
                matches.append(FieldMatch(key, start, end, distance))
                total *= max(distance, _EPSILON) ** weight
            if matches:
                scored.append((total, position, tuple(matches)))

        scored.sort(key=lambda item: (item[0], item[1]))

        hits = []
        for score, position, matches in scored[:limit]:
            record = self._records[position]
            hits.append(
                SearchHit(
                    content=record.content,
                    file_path=record.file_path,
                    score=score,
                    category=record.category,
                    matches=matches,
                )
            )
        return hits


def search_index(index: FuzzyIndex, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[SearchHit]:
    """Run every expansion of `query` against `index` and merge the passes."""
    passes = [index.search(q, limit * OVERFETCH_FACTOR) for q in expand_query(query)]
    return merge_results(passes, limit)


# ─────────────────────────────────────────────────────────────────────────────
# IndexCache
# ─────────────────────────────────────────────────────────────────────────────


class IndexCache:
    """
    Per-repository-path registry of built indexes.

    Indexes are built completely before being published under the lock, so
    readers see either no index or a finished one. A per-path build lock
    keeps two requests from building the same repository at once without
    blocking lookups for other paths.
    """

    def __init__(self) -> None:
        self._indexes: dict[str, FuzzyIndex] = {}
        self._build_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(repository_path: str) -> str:
        return str(Path(repository_path).resolve())

    def build(self, repository_path: str, records: Iterable[IndexRecord]) -> FuzzyIndex:
        """Build an index and publish it, replacing any existing one."""
        index = FuzzyIndex(records)
        key = self._key(repository_path)
        with self._lock:
            self._indexes[key] = index
        logger.info("Built search index for %s (%d records)", key, len(index))
        return index

    def get(self, repository_path: str) -> FuzzyIndex | None:
        with self._lock:
            return self._indexes.get(self._key(repository_path))

    def get_or_build(
        self,
        repository_path: str,
        loader: Callable[[], Iterable[IndexRecord]],
    ) -> FuzzyIndex:
        """Return the published index, building it from loader() on first use."""
        key = self._key(repository_path)
        with self._lock:
            index = self._indexes.get(key)
            if index is not None:
                return index
            build_lock = self._build_locks.setdefault(key, threading.Lock())

        with build_lock:
            # Another request may have finished the build while we waited
            index = self.get(repository_path)
            if index is not None:
                return index
            return self.build(repository_path, loader())

    def has(self, repository_path: str) -> bool:
        return self.get(repository_path) is not None

    def clear(self, repository_path: str) -> bool:
        """Drop the index for a path. Returns True if one existed."""
        with self._lock:
            return self._indexes.pop(self._key(repository_path), None) is not None

    def stats(self) -> dict[str, int]:
        """Record count per indexed repository path."""
        with self._lock:
            snapshot = list(self._indexes.items())
        return {path: len(index) for path, index in snapshot}

    def search(
        self,
        repository_path: str,
        query: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[SearchHit]:
        """Search a built index with query expansion and merged ranking."""
        index = self.get(repository_path)
        if index is None:
            raise IndexNotFoundError(repository_path)

        return search_index(index, query, limit)
