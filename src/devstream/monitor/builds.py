"""Recognizing build-system files among file-change events."""
import os
import re
from collections.abc import Mapping, Sequence
from typing import NamedTuple

import structlog

from devstream.events.bus import EventBroker
from devstream.events.types import (
    BuildEvent,
    Event,
    EventType,
    FileChangeEvent,
    Topic,
    decode_as,
)

logger = structlog.get_logger()

DEFAULT_BUILD_FILES: dict[str, list[str]] = {
    "javascript": [
        "package.json",
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "webpack.config.js",
        "vite.config.js",
    ],
    "typescript": ["tsconfig.json", "deno.json", "deno.jsonc"],
    "rust": ["Cargo.toml", "Cargo.lock"],
    "java": ["pom.xml", "build.gradle", "build.gradle.kts", "settings.gradle"],
    "python": [
        "pyproject.toml",
        "setup.py",
        "setup.cfg",
        "requirements.txt",
        "Pipfile",
        "poetry.lock",
    ],
    "go": ["go.mod", "go.sum"],
    "csharp": ["*.csproj", "*.sln", "Directory.Build.props"],
    "fsharp": ["*.fsproj"],
    "cpp": ["CMakeLists.txt", "Makefile", "meson.build", "*.vcxproj"],
    "ruby": ["Gemfile", "Gemfile.lock", "Rakefile", "*.gemspec"],
    "php": ["composer.json", "composer.lock"],
    "swift": ["Package.swift", "*.xcodeproj"],
    "elixir": ["mix.exs"],
    "haskell": ["stack.yaml", "*.cabal"],
}


class OptimizedBuildConfig(NamedTuple):
    """Build-file table split for fast classification.

    Attributes:
        lookup: Exact file names.
        patterns: Compiled wildcard patterns with their language, in table order.
    """

    lookup: frozenset[str]
    patterns: tuple[tuple[re.Pattern[str], str], ...]


class BuildMatch(NamedTuple):
    file_name: str
    language: str | None


def compile_wildcard(name: str) -> re.Pattern[str]:
    """Compile a ``*`` wildcard name into an anchored case-insensitive regex.

    Args:
        name: File name where ``*`` stands for zero or more characters.

    Returns:
        Compiled pattern matching whole file names.
    """
    body = ".*".join(re.escape(part) for part in name.split("*"))
    return re.compile(f"^{body}$", re.IGNORECASE)


def preprocess_build_config(
    build_files: Mapping[str, Sequence[str]] = DEFAULT_BUILD_FILES,
) -> OptimizedBuildConfig:
    """Partition a language table into exact names and wildcard patterns.

    Args:
        build_files: Language to list of exact names or ``*`` patterns.

    Returns:
        Lookup set and ordered pattern list.
    """
    lookup: set[str] = set()
    patterns: list[tuple[re.Pattern[str], str]] = []

    for language, names in build_files.items():
        for name in names:
            if "*" in name:
                patterns.append((compile_wildcard(name), language))
            else:
                lookup.add(name)

    return OptimizedBuildConfig(lookup=frozenset(lookup), patterns=tuple(patterns))


class BuildFileClassifier:
    """Publishes build events for file changes that touch build files."""

    def __init__(
        self,
        build_files: Mapping[str, Sequence[str]] = DEFAULT_BUILD_FILES,
    ) -> None:
        self.config = preprocess_build_config(build_files)
        self._broker: EventBroker | None = None

    def classify(self, file_name: str) -> BuildMatch | None:
        """Classify a base file name.

        Exact names are checked first; patterns are tried in order only when
        there is no exact hit, and the first matching pattern wins.

        Args:
            file_name: Final path segment.

        Returns:
            The match, or None if this is not a build file.
        """
        if file_name in self.config.lookup:
            return BuildMatch(file_name, None)

        for pattern, language in self.config.patterns:
            if pattern.match(file_name):
                return BuildMatch(file_name, language)

        return None

    def attach(self, broker: EventBroker) -> str:
        """Subscribe to create and modify file events.

        Args:
            broker: Broker carrying file-change events.

        Returns:
            Subscription identifier.
        """
        if broker.get_topic(Topic.BUILD_EVENTS) is None:
            broker.create_topic(Topic.BUILD_EVENTS)
        self._broker = broker
        return broker.subscribe(
            Topic.FILE_CHANGES,
            self.on_file_change,
            event_types=[EventType.FILE_CREATE, EventType.FILE_MODIFY],
        )

    async def on_file_change(self, event: Event) -> None:
        if self._broker is None:
            raise RuntimeError("BuildFileClassifier is not attached to a broker")

        file_event = decode_as(event, FileChangeEvent)

        match = self.classify(os.path.basename(file_event.path))
        if match is None:
            return

        logger.info(
            "build_file_changed",
            build_file=match.file_name,
            language=match.language,
            operation=file_event.operation,
        )
        await self._broker.publish(
            Topic.BUILD_EVENTS,
            EventType.BUILD_FILE_CHANGE,
            BuildEvent(
                operation="start",
                build_file=match.file_name,
                language=match.language,
            ),
        )
