"""Activity statistics, the daily summary and saved insights reports."""
import asyncio
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

import structlog

from devstream.config import InsightsConfig
from devstream.events.bus import EventBroker
from devstream.events.store import InMemoryEventStore
from devstream.events.types import (
    Event,
    EventType,
    FileChangeEvent,
    FocusStateEvent,
    GitEvent,
    NotificationEvent,
    Topic,
    decode_as,
)
from devstream.lifecycle import GracefulShutdown
from devstream.schedule import DailySchedule

logger = structlog.get_logger()

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

REPORT_WINDOW = timedelta(days=7)


def local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True)
class FocusSession:
    start: int
    end: int
    duration: int


@dataclass
class InsightsData:
    """Rolling activity counters.

    Focus times and durations are epoch milliseconds.
    """

    by_extension: Counter[str] = field(default_factory=Counter)
    by_hour: Counter[int] = field(default_factory=Counter)
    by_day: Counter[str] = field(default_factory=Counter)
    sessions: list[FocusSession] = field(default_factory=list)
    total_duration: int = 0
    commits: int = 0
    pushes: int = 0
    pulls: int = 0

    @property
    def total_file_changes(self) -> int:
        return sum(self.by_hour.values())

    @property
    def focus_minutes(self) -> int:
        return self.total_duration // 60_000

    def record_file_change(self, extension: str, moment: datetime) -> None:
        if extension:
            self.by_extension[extension] += 1
        self.by_hour[moment.hour] += 1
        self.by_day[WEEKDAYS[moment.weekday()]] += 1

    def record_focus(self, focus: FocusStateEvent, now_ms: int) -> bool:
        """Record a focus session start; other states are ignored.

        Returns:
            True if a session was recorded.
        """
        if focus.state != "focus" or not focus.duration:
            return False
        self.sessions.append(
            FocusSession(
                start=focus.start_time,
                end=focus.end_time or now_ms,
                duration=focus.duration,
            )
        )
        self.total_duration += focus.duration
        return True

    def record_git(self, operation: str) -> None:
        if operation == "commit":
            self.commits += 1
        elif operation == "push":
            self.pushes += 1
        elif operation == "pull":
            self.pulls += 1

    def top_extensions(self, n: int = 5) -> list[tuple[str, int]]:
        return self.by_extension.most_common(n)

    def reset(self) -> None:
        self.by_extension.clear()
        self.by_hour.clear()
        self.by_day.clear()
        self.sessions.clear()
        self.total_duration = 0
        self.commits = 0
        self.pushes = 0
        self.pulls = 0


def format_summary(data: InsightsData) -> str:
    """Render the daily summary notification text."""
    lines = [
        "Your Development Summary for Today",
        "",
        f"File Changes: {data.total_file_changes}",
    ]
    top = data.top_extensions()
    if top:
        lines.append("Top file types:")
        lines.extend(f"  - {ext}: {count}" for ext, count in top)

    lines += [
        "",
        f"Focus Sessions: {len(data.sessions)}",
        f"Total Focus Time: {data.focus_minutes} minutes",
        "",
        "Git Activity:",
        f"  - Commits: {data.commits}",
        f"  - Pushes: {data.pushes}",
        f"  - Pulls: {data.pulls}",
    ]
    return "\n".join(lines)


class InsightsAggregator:
    """Accumulates activity counters and emits a daily summary.

    Counters are bucketed by each event's own timestamp in local time.

    Attributes:
        data: Counters since the last summary.
    """

    def __init__(
        self,
        broker: EventBroker,
        config: InsightsConfig,
        summary_hour: int = 18,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        """Initialize insights aggregator.

        Args:
            broker: Broker carrying file, focus and git events.
            config: Insights switches.
            summary_hour: Local hour of the daily summary.
            clock: Returns the current local time (timezone-aware).
        """
        self._broker = broker
        self._config = config
        self._schedule = DailySchedule(summary_hour)
        self._clock = clock
        self.data = InsightsData()

    def setup(self) -> bool:
        """Subscribe to the observed topics unless stats collection is off.

        Returns:
            True if subscriptions were created.
        """
        if not self._config.collect_stats:
            logger.info("insights_disabled")
            return False

        self._broker.subscribe(Topic.FILE_CHANGES, self.on_file_change)
        self._broker.subscribe(Topic.FOCUS_STATE, self.on_focus_state)
        self._broker.subscribe(Topic.GIT_EVENTS, self.on_git_event)
        return True

    def on_file_change(self, event: Event) -> None:
        file_event = decode_as(event, FileChangeEvent)
        self.data.record_file_change(file_event.extension, event.timestamp.astimezone())

    def on_focus_state(self, event: Event) -> None:
        focus = decode_as(event, FocusStateEvent)
        self.data.record_focus(focus, int(self._clock().timestamp() * 1000))

    def on_git_event(self, event: Event) -> None:
        self.data.record_git(decode_as(event, GitEvent).operation)

    def build_summary(self) -> str:
        return format_summary(self.data)

    async def emit_summary(self) -> Event:
        """Publish the summary notification and reset every counter.

        Returns:
            The published notification event.
        """
        message = self.build_summary()
        self.data.reset()
        logger.info("daily_summary_emitted")
        return await self._broker.publish(
            Topic.NOTIFICATION,
            EventType.NOTIFICATION_INSIGHTS,
            NotificationEvent(
                level="info",
                message=message,
                source="Insights",
                actionable=False,
            ),
        )

    async def run_schedule(self, shutdown: GracefulShutdown | None = None) -> None:
        """Emit the summary at the configured hour every day until stopped.

        Args:
            shutdown: Coordinator whose trigger ends the loop.
        """
        if not (self._config.collect_stats and self._config.daily_summary):
            return

        while True:
            delay = self._schedule.seconds_until(self._clock())
            logger.debug("daily_summary_scheduled", seconds=round(delay))
            if shutdown is None:
                await asyncio.sleep(delay)
            elif await shutdown.sleep(delay):
                return
            await self.emit_summary()


def collect_report_data(store: InMemoryEventStore, now: datetime) -> InsightsData:
    """Aggregate stored events from the last seven days.

    Args:
        store: Event store holding persistent topics.
        now: Report time (timezone-aware).

    Returns:
        Counters built from the stored events.
    """
    since = now - REPORT_WINDOW
    data = InsightsData()
    now_ms = int(now.timestamp() * 1000)

    for event in store.get_events(Topic.FILE_CHANGES.value, limit=1000, from_timestamp=since):
        file_event = decode_as(event, FileChangeEvent)
        data.record_file_change(file_event.extension or "none", event.timestamp.astimezone())

    for event in store.get_events(Topic.FOCUS_STATE.value, limit=100, from_timestamp=since):
        if event.type == EventType.FOCUS_STARTED.value:
            data.record_focus(decode_as(event, FocusStateEvent), now_ms)

    for event in store.get_events(Topic.GIT_EVENTS.value, limit=100, from_timestamp=since):
        data.record_git(decode_as(event, GitEvent).operation)

    return data


def generate_report(store: InMemoryEventStore, now: datetime | None = None) -> str:
    """Render a Markdown insights report for the last seven days."""
    now = now or local_now()
    data = collect_report_data(store, now)

    lines = [
        "# DevStream Insights Report",
        "",
        f"Generated: {now:%Y-%m-%d %H:%M}",
        "",
        "## File Activity",
        "",
        f"Total file changes: {data.total_file_changes}",
        "",
        "Top file extensions:",
    ]
    lines.extend(f"- {ext}: {count}" for ext, count in data.top_extensions())
    lines += [
        "",
        "## Focus Sessions",
        "",
        f"Sessions: {len(data.sessions)}",
        f"Total focus time: {round(data.total_duration / 60_000)} minutes",
        "",
        "## Git Activity",
        "",
        f"Commits: {data.commits}",
        f"Pushes: {data.pushes}",
        f"Pulls: {data.pulls}",
        "",
    ]
    return "\n".join(lines)


def write_report(
    store: InMemoryEventStore,
    reports_dir: Path,
    now: datetime | None = None,
) -> Path:
    """Write the insights report to ``insights-YYYY-MM-DD.md``.

    Returns:
        Path of the written report.
    """
    now = now or local_now()
    reports_dir.mkdir(parents=True, exist_ok=True)
    path = reports_dir / f"insights-{now:%Y-%m-%d}.md"
    path.write_text(generate_report(store, now), encoding="utf-8")
    logger.info("insights_report_written", path=str(path))
    return path
