"""Tests for regex code search."""

import pytest

from gitscout.errors import MalformedQueryError
from gitscout.files import FileInfo, find_code_files
from gitscout.grep import (
    CONTEXT_LINES,
    MAX_GREP_FILES,
    MAX_GREP_MATCHES,
    compile_query,
    grep_files,
    grep_lines,
    search_code_files,
)


def _write(root, rel, text):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_file_pattern_limits_search(tmp_path):
    _write(tmp_path, "app.py", "x = 1\n# TODO: handle errors\n")
    _write(tmp_path, "web/index.ts", "// TODO: types\n")

    results = search_code_files(str(tmp_path), "TODO", "*.py")
    assert [r.file_path for r in results] == ["app.py"]
    assert results[0].matches[0].line == 2


def test_default_patterns_search_all_code(tmp_path):
    _write(tmp_path, "app.py", "# TODO\n")
    _write(tmp_path, "web/index.ts", "// TODO\n")
    _write(tmp_path, "notes.md", "TODO\n")

    results = search_code_files(str(tmp_path), "TODO")
    assert {r.file_path for r in results} == {"app.py", "web/index.ts"}


def test_case_insensitive(tmp_path):
    _write(tmp_path, "app.py", "# Todo later\n")
    assert search_code_files(str(tmp_path), "TODO")


def test_regex_query(tmp_path):
    _write(tmp_path, "app.py", "def load_user():\n    pass\ndef save_user():\n    pass\n")
    (result,) = search_code_files(str(tmp_path), r"def \w+_user")
    assert [m.line for m in result.matches] == [1, 3]


def test_no_matches(tmp_path):
    _write(tmp_path, "app.py", "print('hi')\n")
    assert search_code_files(str(tmp_path), "absent") == []


def test_max_matches_per_file(tmp_path):
    _write(tmp_path, "app.py", "".join(f"hit {i}\n" for i in range(10)))
    (result,) = search_code_files(str(tmp_path), "hit")
    assert len(result.matches) == MAX_GREP_MATCHES == 5
    assert [m.line for m in result.matches] == [1, 2, 3, 4, 5]


def test_max_files(tmp_path):
    for i in range(MAX_GREP_FILES + 10):
        _write(tmp_path, f"mod_{i:03d}.py", "needle\n")

    files = find_code_files(str(tmp_path))
    results = grep_files(files, compile_query("needle"))
    assert len(results) == MAX_GREP_FILES == 50
    assert results[-1].file_path == files[MAX_GREP_FILES - 1].relative_path


def test_files_beyond_cap_not_searched(tmp_path):
    """Only the first max_files files are read, even if later ones match."""
    for i in range(4):
        _write(tmp_path, f"mod_{i}.py", "nothing\n")
    _write(tmp_path, "mod_9.py", "needle\n")

    files = find_code_files(str(tmp_path))
    assert grep_files(files, compile_query("needle"), max_files=4) == []


def test_context_window():
    lines = [f"line {i}" for i in range(1, 11)]
    (match,) = grep_lines(lines, compile_query("line 5$"), max_matches=5)
    assert match.line == 5
    assert match.content == "line 5"
    assert match.context == ["line 3", "line 4", "line 5", "line 6", "line 7"]
    assert match.context_start == 5 - CONTEXT_LINES


def test_context_clipped_at_edges():
    lines = ["match first", "b", "c", "d", "match last"]
    first, last = grep_lines(lines, compile_query("match"), max_matches=5)
    assert first.context == ["match first", "b", "c"]
    assert first.context_start == 1
    assert last.context == ["c", "d", "match last"]
    assert last.context_start == 3


def test_malformed_query():
    with pytest.raises(MalformedQueryError) as exc_info:
        compile_query("(unclosed")
    assert isinstance(exc_info.value, ValueError)
    assert "(unclosed" in str(exc_info.value)


def test_search_code_files_malformed(tmp_path):
    _write(tmp_path, "app.py", "x\n")
    with pytest.raises(MalformedQueryError):
        search_code_files(str(tmp_path), "[a-")


def test_unreadable_file_skipped(tmp_path):
    good = _write(tmp_path, "good.py", "needle\n")
    missing = FileInfo(
        path=str(tmp_path / "gone.py"),
        relative_path="gone.py",
        size=0,
        modified=0.0,
        extension=".py",
        mime_type="text/x-python",
    )
    present = find_code_files(str(tmp_path))
    results = grep_files([missing, *present], compile_query("needle"))
    assert [r.file_path for r in results] == ["good.py"]
    assert good.exists()


def test_crlf_lines(tmp_path):
    (tmp_path / "win.py").write_bytes(b"import os\r\nx = 1  # TODO\r\nprint(x)\r\n")

    (result,) = search_code_files(str(tmp_path), r"TODO$")
    (match,) = result.matches
    assert match.line == 2
    assert match.content == "x = 1  # TODO"
    assert all("\r" not in line for line in match.context)
