"""Shared fixtures: throwaway git repositories built with the real git binary."""

import subprocess
from pathlib import Path

import pytest


def run_git(repo: Path, *args: str) -> subprocess.CompletedProcess:
    """Run a git command in the given repo."""
    return subprocess.run(
        ["git", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )


def commit_all(repo: Path, message: str) -> None:
    run_git(repo, "add", "-A")
    run_git(repo, "commit", "-q", "-m", message)


@pytest.fixture
def git_repo(tmp_path):
    """A git repo with one committed README."""
    run_git(tmp_path, "init", "-q")
    run_git(tmp_path, "config", "user.email", "test@test.com")
    run_git(tmp_path, "config", "user.name", "Test")
    run_git(tmp_path, "config", "commit.gpgsign", "false")
    (tmp_path / "README.md").write_text("# Project\n\nInstallation\n\nRun `npm install`.\n")
    commit_all(tmp_path, "initial commit")
    return tmp_path


@pytest.fixture
def not_a_repo(tmp_path):
    """A plain directory with a README but no .git marker."""
    plain = tmp_path / "plain"
    plain.mkdir()
    (plain / "README.md").write_text("# Not tracked\n")
    return plain
