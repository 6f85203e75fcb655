"""Application wiring tests."""

import asyncio
from pathlib import Path

from devstream.app import running
from devstream.config import DevStreamConfig, InsightsConfig, Settings
from devstream.events import Topic
from helpers import collect


def _config(root: Path, **overrides) -> DevStreamConfig:
    return DevStreamConfig(watch_dirs=[str(root)], ignore_paths=["node_modules"], **overrides)


async def test_file_change_flows_to_store_and_build_events(
    settings: Settings, tmp_path: Path
) -> None:
    """A new package.json is stored as a file change and classified as a build file."""
    root = tmp_path / "proj"
    root.mkdir()

    async with running(settings, _config(root)) as app:
        builds = collect(app.broker, Topic.BUILD_EVENTS)
        await asyncio.sleep(0.5)
        (root / "package.json").write_text("{}\n")

        for _ in range(100):
            await app.broker.join()
            if builds:
                break
            await asyncio.sleep(0.05)

        stored = app.broker.event_store.get_events(Topic.FILE_CHANGES.value)

    assert builds[0].payload["buildFile"] == "package.json"
    assert any(e.payload["path"].endswith("package.json") for e in stored)


async def test_stop_writes_insights_report(settings: Settings, tmp_path: Path) -> None:
    root = tmp_path / "proj"
    root.mkdir()

    async with running(settings, _config(root)):
        pass

    reports = list(settings.reports_dir.glob("insights-*.md"))
    assert len(reports) == 1
    assert reports[0].read_text(encoding="utf-8").startswith("# DevStream Insights Report")


async def test_no_report_when_stats_disabled(settings: Settings, tmp_path: Path) -> None:
    root = tmp_path / "proj"
    root.mkdir()
    config = _config(root, insights=InsightsConfig(collect_stats=False))

    async with running(settings, config) as app:
        assert app.insights.data.total_file_changes == 0

    assert not settings.reports_dir.exists()


async def test_focus_session_at_startup(settings: Settings, tmp_path: Path) -> None:
    """A configured focus length starts a session that stop() ends."""
    root = tmp_path / "proj"
    root.mkdir()
    settings = settings.model_copy(update={"focus_minutes": 10})

    async with running(settings, _config(root)) as app:
        assert app.focus.active
        await app.broker.join()
        assert app.gate.in_focus_mode is True

    assert app.focus.active is False
