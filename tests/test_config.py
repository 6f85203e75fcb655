"""Configuration tests."""

import json
from pathlib import Path

import pytest

from devstream.config import ConfigStore, DevStreamConfig, Settings
from devstream.errors import ConfigError


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """DEVSTREAM_ variables override defaults."""
    monkeypatch.setenv("DEVSTREAM_HOME_DIR", str(tmp_path))
    monkeypatch.setenv("DEVSTREAM_GIT_POLL_INTERVAL", "2.5")
    monkeypatch.setenv("DEVSTREAM_SUMMARY_HOUR", "9")

    settings = Settings()

    assert settings.git_poll_interval == 2.5
    assert settings.summary_hour == 9
    assert settings.config_file == tmp_path / "config.json"
    assert settings.reports_dir == tmp_path / "reports"


def test_settings_reject_invalid_summary_hour() -> None:
    with pytest.raises(ValueError):
        Settings(summary_hour=24)


def test_defaults_match_documented_values() -> None:
    config = DevStreamConfig()

    assert config.watch_dirs == ["./src", "./tests", "./docs"]
    assert "node_modules" in config.ignore_paths
    assert config.topics["file.changes"].retention_period == 7 * 24 * 60 * 60 * 1000
    assert config.topics["notification"].persistent is False
    assert config.notification.silent_hours.start == "22:00"
    assert config.notification.silent_hours.end == "08:00"
    assert config.insights.collect_stats is True


def test_missing_file_is_created_with_camel_case_keys(tmp_path: Path) -> None:
    """First load writes the defaults in the on-disk format."""
    store = ConfigStore(tmp_path / "home" / "config.json")

    config = store.load()

    raw = json.loads(store.path.read_text(encoding="utf-8"))
    assert config == DevStreamConfig()
    assert raw["watchDirs"] == ["./src", "./tests", "./docs"]
    assert raw["topics"]["git.events"]["retentionPeriod"] == 30 * 24 * 60 * 60 * 1000
    assert raw["notification"]["silentHours"] == {"start": "22:00", "end": "08:00"}


def test_load_parses_automations(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "watchDirs": ["./app"],
                "automations": [
                    {
                        "name": "lint",
                        "trigger": {"topic": "file.changes", "eventType": "file.modify"},
                        "action": {"type": "command", "command": "ruff check", "args": ["."]},
                    }
                ],
            }
        ),
        encoding="utf-8",
    )

    config = ConfigStore(path).load()

    assert config.watch_dirs == ["./app"]
    automation = config.automations[0]
    assert automation.trigger.event_type == "file.modify"
    assert automation.trigger.condition is None
    assert automation.action.args == ["."]


@pytest.mark.parametrize(
    "content",
    ["{not json", json.dumps({"watchDirs": "nope"})],
)
def test_invalid_file_raises_config_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError) as exc_info:
        ConfigStore(path).load()
    assert exc_info.value.path == str(path)


def test_set_focus_mode_keeps_other_settings(tmp_path: Path) -> None:
    """Only the focus flag changes on disk."""
    store = ConfigStore(tmp_path / "config.json")
    config = store.load()
    config.watch_dirs = ["./lib"]
    store.save(config)

    store.set_focus_mode(True)

    reloaded = store.load()
    assert reloaded.notification.focus_mode is True
    assert reloaded.watch_dirs == ["./lib"]


@pytest.mark.parametrize("start", ["25:00", "12:60", "noon", ""])
def test_invalid_silent_hours_rejected_at_load(tmp_path: Path, start: str) -> None:
    """A bad clock time fails at startup instead of breaking every notification."""
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"notification": {"silentHours": {"start": start, "end": "08:00"}}}),
        encoding="utf-8",
    )

    with pytest.raises(ConfigError, match="expected HH:MM"):
        ConfigStore(path).load()


def test_silent_hours_accept_padded_clock_times() -> None:
    config = DevStreamConfig.model_validate(
        {"notification": {"silentHours": {"start": " 23:30 ", "end": "07:05"}}}
    )

    assert config.notification.silent_hours.start == "23:30"
    assert config.notification.silent_hours.end == "07:05"
