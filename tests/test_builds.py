"""Build-file classifier tests."""

from devstream.events import EventBroker, FileChangeEvent, Topic
from devstream.monitor.builds import BuildFileClassifier, preprocess_build_config
from helpers import collect

TABLE = {
    "javascript": ["package.json"],
    "csharp": ["*.csproj"],
    "dotnet": ["*.csproj", "*.sln"],
}


def test_preprocess_splits_exact_names_and_patterns() -> None:
    """Names with * become patterns; everything else is exact."""
    config = preprocess_build_config(TABLE)

    assert config.lookup == frozenset({"package.json"})
    assert [language for _, language in config.patterns] == ["csharp", "dotnet", "dotnet"]


def test_pattern_is_anchored_and_case_insensitive() -> None:
    """*.csproj matches any case but not a trailing suffix."""
    classifier = BuildFileClassifier(TABLE)

    assert classifier.classify("Foo.csproj") == ("Foo.csproj", "csharp")
    assert classifier.classify("foo.CSPROJ") == ("foo.CSPROJ", "csharp")
    assert classifier.classify("Foo.csproj.bak") is None
    assert classifier.classify("Foocsproj") is None


def test_first_matching_pattern_wins() -> None:
    """Pattern order follows the table; later matches are not tested."""
    classifier = BuildFileClassifier(TABLE)
    assert classifier.classify("App.csproj").language == "csharp"
    assert classifier.classify("App.sln").language == "dotnet"


def test_exact_match_skips_patterns() -> None:
    """Exact names never consult the pattern list."""
    classifier = BuildFileClassifier({"javascript": ["package.json"], "other": ["pack*"]})

    assert classifier.classify("package.json") == ("package.json", None)


def test_exact_match_is_case_sensitive() -> None:
    """The exact set is a plain lookup."""
    classifier = BuildFileClassifier(TABLE)
    assert classifier.classify("Package.JSON") is None


def test_default_table_recognizes_common_build_files() -> None:
    """The built-in table covers the usual ecosystems."""
    classifier = BuildFileClassifier()
    for name in ("package.json", "Cargo.toml", "pom.xml", "Makefile", "pyproject.toml"):
        assert classifier.classify(name) is not None
    assert classifier.classify("Web.csproj").language == "csharp"
    assert classifier.classify("README.md") is None


async def test_build_events_from_file_changes(broker: EventBroker) -> None:
    """package.json yields a BuildEvent without language, App.csproj with csharp."""
    received = collect(broker, Topic.BUILD_EVENTS)
    BuildFileClassifier(TABLE).attach(broker)

    for path in ("/proj/package.json", "/proj/App/App.csproj", "/proj/src/main.ts"):
        await broker.publish(
            Topic.FILE_CHANGES,
            "file.create",
            FileChangeEvent(path=path, operation="create", extension=""),
        )
    await broker.join()

    assert [e.type for e in received] == ["build.file_change", "build.file_change"]
    assert received[0].payload == {"operation": "start", "buildFile": "package.json"}
    assert received[1].payload == {
        "operation": "start",
        "buildFile": "App.csproj",
        "language": "csharp",
    }


async def test_delete_events_are_not_classified(broker: EventBroker) -> None:
    """Only create and modify are subscribed."""
    received = collect(broker, Topic.BUILD_EVENTS)
    BuildFileClassifier(TABLE).attach(broker)

    await broker.publish(
        Topic.FILE_CHANGES,
        "file.delete",
        FileChangeEvent(path="/proj/package.json", operation="delete", extension="json"),
    )
    await broker.join()

    assert received == []
