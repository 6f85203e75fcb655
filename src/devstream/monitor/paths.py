"""Path filtering and directory snapshots."""
import os
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class SnapshotEntry:
    """Last known state of a file.

    Attributes:
        mod_time: Modification time in nanoseconds.
        size: Size in bytes.
    """

    mod_time: int
    size: int

    @classmethod
    def from_stat(cls, stat: os.stat_result) -> "SnapshotEntry":
        return cls(mod_time=stat.st_mtime_ns, size=stat.st_size)


Snapshot = dict[str, SnapshotEntry]


def should_ignore(path: str, ignore_paths: list[str]) -> bool:
    """Check whether a path is excluded from observation.

    Plain substring containment: ``node_modules`` excludes every path that
    contains it anywhere.

    Args:
        path: Path to check.
        ignore_paths: Substrings that exclude a path.

    Returns:
        True if any ignore pattern occurs in the path.
    """
    return any(pattern in path for pattern in ignore_paths)


def file_extension(path: str) -> str:
    """Return the text after the last ``.`` in the path, or ``""``."""
    _, dot, extension = path.rpartition(".")
    return extension if dot else ""


def scan_directory(root: str | Path, ignore_paths: list[str]) -> Snapshot:
    """Walk a directory tree and record mtime and size of every file.

    Entries that vanish or cannot be stat'ed mid-scan are skipped.

    Args:
        root: Directory to walk.
        ignore_paths: Substrings that exclude a path.

    Returns:
        Map of absolute path to snapshot entry.
    """
    snapshot: Snapshot = {}
    _scan_into(str(Path(root).absolute()), ignore_paths, snapshot)
    return snapshot


def _scan_into(directory: str, ignore_paths: list[str], snapshot: Snapshot) -> None:
    try:
        entries = list(os.scandir(directory))
    except OSError as e:
        logger.debug("scan_directory_failed", path=directory, error=str(e))
        return

    for entry in entries:
        if should_ignore(entry.path, ignore_paths):
            continue
        try:
            if entry.is_dir(follow_symlinks=False):
                _scan_into(entry.path, ignore_paths, snapshot)
            elif entry.is_file(follow_symlinks=False):
                snapshot[entry.path] = SnapshotEntry.from_stat(entry.stat())
        except OSError as e:
            # File might have been deleted while scanning
            logger.debug("scan_stat_failed", path=entry.path, error=str(e))
