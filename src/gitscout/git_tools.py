"""
Read-only git helpers for repository validation and metadata.

Provides the repository checks every gitscout tool runs before touching the
filesystem, the branch/remote/status header for fetch_documentation, and
per-file commit history. Zero third-party dependencies (stdlib only).
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path

from gitscout.errors import GitCommandError, InvalidRepositoryError

GIT_TIMEOUT = 30  # seconds
MAX_LOG_COUNT = 100

_LOG_SEPARATOR = "\x1f"
_LOG_FORMAT = "%x1f".join(["%H", "%aI", "%an", "%s"])  # hash, ISO date, author, subject


@dataclass(frozen=True)
class RepositoryInfo:
    repository_path: str
    current_branch: str
    remote_url: str | None
    is_clean: bool


@dataclass(frozen=True)
class CommitInfo:
    hash: str
    date: str
    author: str
    message: str


# ─────────────────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────────────────


def is_valid_repository(repository_path: str) -> bool:
    """Return True if the path has a .git marker (directory or worktree file)."""
    try:
        return (Path(repository_path) / ".git").exists()
    except (OSError, ValueError):
        return False


def _validate_path(path: str, root: Path) -> str | None:
    """Validate a file path is within the git root. Returns error message or None."""
    if not path:
        return "Error: path must not be empty."
    if path.startswith("-"):
        return f"Error: path must not start with '-': {path!r}"
    try:
        resolved = (root / path).resolve()
        if not resolved.is_relative_to(root.resolve()):
            return f"Error: path escapes repository root: {path!r}"
    except (OSError, ValueError) as e:
        return f"Error: invalid path {path!r}: {e}"
    return None


def require_repository(repository_path: str) -> Path:
    """Return the repository root, or raise InvalidRepositoryError."""
    if not is_valid_repository(repository_path):
        raise InvalidRepositoryError(repository_path)
    return Path(repository_path)


# ─────────────────────────────────────────────────────────────────────────────
# Subprocess runner
# ─────────────────────────────────────────────────────────────────────────────


def _run_git(args: list[str], cwd: Path) -> str:
    """Run a git command and return stdout. Raises GitCommandError on failure."""
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=GIT_TIMEOUT,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        raise GitCommandError("git is not installed.") from e
    except subprocess.TimeoutExpired as e:
        raise GitCommandError(f"git command timed out: {' '.join(args)}") from e

    if result.returncode != 0:
        stderr = result.stderr.strip()
        raise GitCommandError(f"git returned exit code {result.returncode}: {stderr}")
    return result.stdout


# ─────────────────────────────────────────────────────────────────────────────
# Repository metadata
# ─────────────────────────────────────────────────────────────────────────────


def _current_branch(root: Path) -> str:
    branch = _run_git(["git", "branch", "--show-current"], root).strip()
    if branch:
        return branch
    # Detached HEAD
    return _run_git(["git", "rev-parse", "--short", "HEAD"], root).strip()


def _remote_url(root: Path, name: str = "origin") -> str | None:
    try:
        url = _run_git(["git", "remote", "get-url", name], root).strip()
    except GitCommandError:
        # No such remote
        return None
    return url or None


def get_repository_info(repository_path: str) -> RepositoryInfo:
    """Collect branch, origin URL and working-tree state for a repository."""
    root = require_repository(repository_path)
    try:
        branch = _current_branch(root)
        status = _run_git(["git", "status", "--porcelain"], root)
    except GitCommandError as e:
        raise GitCommandError(f"Failed to get repository info: {e}") from e

    return RepositoryInfo(
        repository_path=repository_path,
        current_branch=branch,
        remote_url=_remote_url(root),
        is_clean=not status.strip(),
    )


def get_file_history(repository_path: str, file_path: str, limit: int = 10) -> list[CommitInfo]:
    """Return up to `limit` commits that touched `file_path`, newest first.

    Args:
        repository_path: Repository root.
        file_path: Path relative to the repository root.
        limit: Max commits (capped at MAX_LOG_COUNT).
    """
    root = require_repository(repository_path)
    err = _validate_path(file_path, root)
    if err:
        raise GitCommandError(err)

    count = min(max(1, limit), MAX_LOG_COUNT)
    args = ["git", "log", f"--max-count={count}", f"--format={_LOG_FORMAT}", "--", file_path]
    try:
        output = _run_git(args, root)
    except GitCommandError as e:
        raise GitCommandError(f"Failed to get file history: {e}") from e

    commits = []
    for line in output.splitlines():
        parts = line.split(_LOG_SEPARATOR, 3)
        if len(parts) != 4:
            continue
        commits.append(CommitInfo(hash=parts[0], date=parts[1], author=parts[2], message=parts[3]))
    return commits
