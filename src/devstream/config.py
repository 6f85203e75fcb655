"""Runtime settings and the persisted DevStream configuration file."""
import json
from datetime import datetime
from pathlib import Path

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from devstream.errors import ConfigError

logger = structlog.get_logger()

DAY_MS = 24 * 60 * 60 * 1000


class Settings(BaseSettings):
    """Process settings loaded from environment variables.

    Attributes:
        home_dir: Directory holding the config file and saved reports.
        debug: Enable debug-level logging.
        git_repo_dir: Working tree polled by the git poller.
        git_poll_interval: Seconds between git poll ticks.
        summary_hour: Local hour at which the daily summary fires.
        shutdown_timeout: Seconds to wait for tasks during shutdown.
        desktop_notifications: Forward delivered notifications to the OS.
        event_queue_size: Maximum size of each subscription queue.
        focus_minutes: Start a focus session of this length at startup.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVSTREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    home_dir: Path = Path.home() / ".devstream"
    debug: bool = False
    git_repo_dir: Path = Path(".")
    git_poll_interval: float = 5.0
    summary_hour: int = Field(default=18, ge=0, le=23)
    shutdown_timeout: float = 10.0
    desktop_notifications: bool = True
    event_queue_size: int = 1000
    focus_minutes: float | None = None

    @computed_field
    @property
    def config_file(self) -> Path:
        """Path of the JSON configuration file."""
        return self.home_dir / "config.json"

    @computed_field
    @property
    def reports_dir(self) -> Path:
        """Directory where insights reports are written."""
        return self.home_dir / "reports"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TopicOptions(_CamelModel):
    """Storage options for a topic.

    Attributes:
        persistent: Keep published events in the event store.
        retention_period: Milliseconds to retain stored events, None keeps all.
    """

    persistent: bool = False
    retention_period: int | None = None


class AutomationTrigger(_CamelModel):
    topic: str
    event_type: str | None = None
    condition: str | None = None


class AutomationAction(_CamelModel):
    type: str = "command"
    command: str
    args: list[str] | None = None


class AutomationConfig(_CamelModel):
    """A user-defined rule: run an action when a matching event arrives."""

    model_config = ConfigDict(frozen=True)

    name: str
    trigger: AutomationTrigger
    action: AutomationAction


class SilentHours(_CamelModel):
    start: str = "22:00"
    end: str = "08:00"

    @field_validator("start", "end")
    @classmethod
    def check_clock(cls, v: str) -> str:
        """Require a 24-hour HH:MM clock time."""
        try:
            datetime.strptime(v.strip(), "%H:%M")
        except ValueError as e:
            raise ValueError(f"expected HH:MM, got {v!r}") from e
        return v.strip()


class NotificationConfig(_CamelModel):
    focus_mode: bool = False
    silent_hours: SilentHours = Field(default_factory=SilentHours)
    priority_patterns: list[str] = Field(
        default_factory=lambda: [
            "test failure",
            "build failure",
            "security",
            "deadline",
        ]
    )


class InsightsConfig(_CamelModel):
    collect_stats: bool = True
    daily_summary: bool = True


def _default_topics() -> dict[str, TopicOptions]:
    return {
        "file.changes": TopicOptions(persistent=True, retention_period=7 * DAY_MS),
        "git.events": TopicOptions(persistent=True, retention_period=30 * DAY_MS),
        "build.events": TopicOptions(persistent=True, retention_period=3 * DAY_MS),
        "notification": TopicOptions(persistent=False),
        "focus.state": TopicOptions(persistent=True),
        "workflow.automation": TopicOptions(persistent=True),
    }


class DevStreamConfig(_CamelModel):
    """Contents of ``config.json``.

    Field names are snake_case in Python and camelCase on disk.
    """

    version: str = "0.1.0"
    watch_dirs: list[str] = Field(default_factory=lambda: ["./src", "./tests", "./docs"])
    ignore_paths: list[str] = Field(
        default_factory=lambda: ["node_modules", "dist", ".git", "target", "build"]
    )
    topics: dict[str, TopicOptions] = Field(default_factory=_default_topics)
    automations: list[AutomationConfig] = Field(default_factory=list)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    insights: InsightsConfig = Field(default_factory=InsightsConfig)


DEFAULT_CONFIG = DevStreamConfig()


class ConfigStore:
    """Reads and writes the JSON configuration file.

    Attributes:
        path: Location of the configuration file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> DevStreamConfig:
        """Load the configuration, writing defaults first if the file is missing.

        Returns:
            Parsed configuration.

        Raises:
            ConfigError: If the file is not valid JSON or fails validation.
        """
        if not self.path.exists():
            config = DEFAULT_CONFIG.model_copy(deep=True)
            self.save(config)
            logger.info("config_created", path=str(self.path))
            return config

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return DevStreamConfig.model_validate(raw)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config: {e}", str(self.path)) from e
        except ValidationError as e:
            raise ConfigError(f"Invalid config: {e}", str(self.path)) from e

    def save(self, config: DevStreamConfig) -> None:
        """Write the configuration as indented JSON.

        Args:
            config: Configuration to persist.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            config.model_dump_json(by_alias=True, exclude_none=True, indent=2),
            encoding="utf-8",
        )

    def set_focus_mode(self, enabled: bool) -> None:
        """Persist the focus-mode flag without touching other settings.

        Args:
            enabled: New focus-mode value.
        """
        config = self.load()
        config.notification.focus_mode = enabled
        self.save(config)
