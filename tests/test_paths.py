"""Path filter and directory snapshot tests."""

import os
from pathlib import Path

import pytest

from devstream.monitor.paths import SnapshotEntry, file_extension, scan_directory, should_ignore


@pytest.mark.parametrize(
    ("path", "patterns", "expected"),
    [
        ("/proj/node_modules/x.txt", ["node_modules"], True),
        ("/proj/src/a.ts", ["node_modules"], False),
        ("/proj/src/a.ts", [], False),
        ("/proj/dist-old/a.js", ["dist"], True),
        ("/proj/.git/HEAD", ["node_modules", ".git"], True),
        ("/proj/src/Build.ts", ["build"], False),
    ],
)
def test_should_ignore_is_substring_containment(
    path: str, patterns: list[str], expected: bool
) -> None:
    """A path is ignored iff some pattern occurs in it."""
    assert should_ignore(path, patterns) is expected
    assert should_ignore(path, patterns) == any(p in path for p in patterns)


@pytest.mark.parametrize(
    ("path", "extension"),
    [
        ("/proj/src/a.ts", "ts"),
        ("/proj/archive.tar.gz", "gz"),
        ("/proj/Makefile", ""),
        ("/proj/.env", "env"),
    ],
)
def test_file_extension(path: str, extension: str) -> None:
    """Extension is the text after the last dot."""
    assert file_extension(path) == extension


def test_scan_directory_records_nested_files(tmp_path: Path) -> None:
    """Scan recurses and records mtime and size."""
    (tmp_path / "src" / "lib").mkdir(parents=True)
    target = tmp_path / "src" / "lib" / "a.py"
    target.write_text("print('hi')\n")
    (tmp_path / "top.md").write_text("# top")

    snapshot = scan_directory(tmp_path, [])

    assert set(snapshot) == {str(target), str(tmp_path / "top.md")}
    stat = os.stat(target)
    assert snapshot[str(target)] == SnapshotEntry(stat.st_mtime_ns, stat.st_size)


def test_scan_directory_skips_ignored_subtrees(tmp_path: Path) -> None:
    """Ignored directories are not descended into."""
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / "index.js").write_text("x")
    (tmp_path / "keep.js").write_text("y")

    snapshot = scan_directory(tmp_path, ["node_modules"])

    assert list(snapshot) == [str(tmp_path / "keep.js")]


def test_scan_directory_tolerates_stat_failure(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """An entry whose stat fails is skipped and the scan continues."""
    (tmp_path / "gone.txt").write_text("a")
    (tmp_path / "kept.txt").write_text("b")

    real_scandir = os.scandir

    class FlakyEntry:
        def __init__(self, entry: os.DirEntry) -> None:
            self._entry = entry
            self.name = entry.name
            self.path = entry.path

        def is_dir(self, follow_symlinks: bool = True) -> bool:
            return self._entry.is_dir(follow_symlinks=follow_symlinks)

        def is_file(self, follow_symlinks: bool = True) -> bool:
            return self._entry.is_file(follow_symlinks=follow_symlinks)

        def stat(self, follow_symlinks: bool = True) -> os.stat_result:
            if self.name == "gone.txt":
                raise FileNotFoundError(self.path)
            return self._entry.stat(follow_symlinks=follow_symlinks)

    monkeypatch.setattr(
        os, "scandir", lambda path: [FlakyEntry(e) for e in real_scandir(path)]
    )

    snapshot = scan_directory(tmp_path, [])

    assert list(snapshot) == [str(tmp_path / "kept.txt")]


def test_scan_directory_missing_root_returns_empty(tmp_path: Path) -> None:
    """A missing root yields an empty snapshot."""
    assert scan_directory(tmp_path / "missing", []) == {}
