"""Error types raised by gitscout operations."""


class GitScoutError(Exception):
    """Base class for all gitscout errors."""


class InvalidRepositoryError(GitScoutError):
    """Path is not a git repository (no .git marker)."""

    def __init__(self, path: str):
        super().__init__(f"Invalid git repository: {path}")
        self.path = path


class GitCommandError(GitScoutError):
    """A git subprocess failed, timed out, or git is not installed."""


class IndexNotFoundError(GitScoutError):
    """No search index has been built for a repository path."""

    def __init__(self, path: str):
        super().__init__(f"No search index found for repository: {path}")
        self.path = path


class FileReadError(GitScoutError, OSError):
    """A single file could not be read."""


class MalformedQueryError(GitScoutError, ValueError):
    """A code search query is not a valid regular expression."""
