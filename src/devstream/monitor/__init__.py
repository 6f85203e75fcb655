"""Event producers: file watching, git polling and build-file recognition."""
from devstream.monitor.builds import (
    DEFAULT_BUILD_FILES,
    BuildFileClassifier,
    OptimizedBuildConfig,
    preprocess_build_config,
)
from devstream.monitor.files import FileWatchLoop, watch_files
from devstream.monitor.git import GitPoller, run_git
from devstream.monitor.paths import (
    SnapshotEntry,
    file_extension,
    scan_directory,
    should_ignore,
)

__all__ = [
    "DEFAULT_BUILD_FILES",
    "BuildFileClassifier",
    "FileWatchLoop",
    "GitPoller",
    "OptimizedBuildConfig",
    "SnapshotEntry",
    "file_extension",
    "preprocess_build_config",
    "run_git",
    "scan_directory",
    "should_ignore",
    "watch_files",
]
