"""Notification gating: focus mode, silent hours and priority override."""
import asyncio
import sys
from collections.abc import Callable
from datetime import datetime, time
from typing import TextIO

import structlog

from devstream.config import ConfigStore, NotificationConfig, SilentHours
from devstream.errors import CommandError, ConfigError
from devstream.events.bus import EventBroker
from devstream.events.types import (
    Event,
    FocusStateEvent,
    NotificationEvent,
    Topic,
    decode_as,
)
from devstream.process import CommandRunner, run_command

logger = structlog.get_logger()

RESET = "\033[0m"

LEVEL_COLORS: dict[str, str] = {
    "info": "\033[34m",
    "warning": "\033[33m",
    "error": "\033[31m",
    "success": "\033[32m",
}

DEFAULT_COLOR = "\033[37m"


def is_high_priority(message: str, priority_patterns: list[str]) -> bool:
    """Check for a case-insensitive priority phrase in a message."""
    lowered = message.lower()
    return any(pattern.lower() in lowered for pattern in priority_patterns)


def parse_clock(value: str) -> int:
    """Convert ``HH:MM`` into minutes after midnight.

    Raises:
        ValueError: If the value is not a valid clock time.
    """
    hours, _, minutes = value.strip().partition(":")
    parsed = time(int(hours), int(minutes or 0))
    return parsed.hour * 60 + parsed.minute


def is_in_silent_hours(now: datetime | time, silent_hours: SilentHours) -> bool:
    """Check whether a local time falls inside the silent window.

    Both bounds are inclusive. A window whose start is later than its end
    wraps past midnight.

    Args:
        now: Local wall-clock time.
        silent_hours: Configured window.

    Returns:
        True if notifications should be silenced.
    """
    current = now.hour * 60 + now.minute
    start = parse_clock(silent_hours.start)
    end = parse_clock(silent_hours.end)

    if start > end:
        return current >= start or current <= end
    return start <= current <= end


def render_notification(notification: NotificationEvent) -> str:
    color = LEVEL_COLORS.get(notification.level, DEFAULT_COLOR)
    return f"{color}[{notification.source}] {notification.message}{RESET}"


def _applescript_quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def notifier_command(
    notification: NotificationEvent,
    platform: str = sys.platform,
) -> list[str] | None:
    """Build the OS command that displays a desktop notification.

    Args:
        notification: Notification to display.
        platform: ``sys.platform`` value to target.

    Returns:
        Program and arguments, or None on unsupported platforms.
    """
    title = f"DevStream: {notification.source}"
    if platform == "darwin":
        script = (
            f'display notification "{_applescript_quote(notification.message)}" '
            f'with title "{_applescript_quote(title)}"'
        )
        return ["osascript", "-e", script]
    if platform.startswith("linux"):
        return ["notify-send", title, notification.message]
    if platform == "win32":
        message = notification.message.replace("'", "''")
        script = (
            "Add-Type -AssemblyName System.Windows.Forms; "
            "$n = New-Object System.Windows.Forms.NotifyIcon; "
            "$n.Icon = [System.Drawing.SystemIcons]::Information; "
            "$n.Visible = $true; "
            f"$n.ShowBalloonTip(5000, '{title.replace(chr(39), chr(39) * 2)}', "
            f"'{message}', 'Info')"
        )
        return ["powershell", "-NoProfile", "-Command", script]
    return None


class DesktopNotifier:
    """Shows notifications through the operating system's notifier."""

    def __init__(
        self,
        runner: CommandRunner = run_command,
        platform: str = sys.platform,
        enabled: bool = True,
    ) -> None:
        self._runner = runner
        self._platform = platform
        self.enabled = enabled

    async def notify(self, notification: NotificationEvent) -> bool:
        """Display a notification; failures are logged, never raised.

        Returns:
            True if the OS command ran successfully.
        """
        if not self.enabled:
            return False

        argv = notifier_command(notification, self._platform)
        if argv is None:
            logger.debug("notifier_unsupported_platform", platform=self._platform)
            return False

        try:
            result = await self._runner(argv, timeout=10.0)
        except CommandError as e:
            logger.debug("notifier_failed", program=argv[0], error=str(e))
            return False

        if not result.ok:
            logger.debug(
                "notifier_failed",
                program=argv[0],
                returncode=result.returncode,
                stderr=result.stderr.strip(),
            )
        return result.ok


class NotificationGate:
    """Decides which notifications reach the user.

    Non-priority notifications are suppressed while focus mode is on or
    during silent hours. The gate owns the focus flag for the run and
    persists it whenever a focus-state event arrives.

    Attributes:
        in_focus_mode: Current focus state.
        delivered: Number of notifications forwarded so far.
        suppressed: Number of notifications suppressed so far.
    """

    def __init__(
        self,
        broker: EventBroker,
        config: NotificationConfig,
        notifier: DesktopNotifier,
        config_store: ConfigStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
        output: TextIO | None = None,
    ) -> None:
        """Initialize notification gate.

        Args:
            broker: Broker carrying notifications and focus events.
            config: Notification settings read at startup.
            notifier: Displays delivered notifications.
            config_store: Persists focus-mode changes, skipped if None.
            clock: Returns the current local time.
            output: Stream for rendered notifications, stdout if None.
        """
        self._broker = broker
        self._config = config
        self._notifier = notifier
        self._config_store = config_store
        self._clock = clock
        self._output = output
        self.in_focus_mode = config.focus_mode
        self.delivered = 0
        self.suppressed = 0

    def setup(self) -> None:
        """Subscribe to notification and focus-state topics."""
        for topic in (Topic.NOTIFICATION, Topic.FOCUS_STATE):
            if self._broker.get_topic(topic) is None:
                self._broker.create_topic(topic)

        self._broker.subscribe(Topic.NOTIFICATION, self.on_notification)
        self._broker.subscribe(Topic.FOCUS_STATE, self.on_focus_state)

    def should_suppress(self, notification: NotificationEvent) -> bool:
        if is_high_priority(notification.message, self._config.priority_patterns):
            return False
        return self.in_focus_mode or is_in_silent_hours(
            self._clock(), self._config.silent_hours
        )

    async def on_notification(self, event: Event) -> bool:
        """Deliver or suppress one notification.

        Returns:
            True if the notification was delivered.
        """
        notification = decode_as(event, NotificationEvent)

        if self.should_suppress(notification):
            self.suppressed += 1
            logger.debug(
                "notification_suppressed",
                source=notification.source,
                message=notification.message,
                focus_mode=self.in_focus_mode,
            )
            return False

        self.delivered += 1
        print(render_notification(notification), file=self._output or sys.stdout)
        await self._notifier.notify(notification)
        return True

    async def on_focus_state(self, event: Event) -> None:
        focus = decode_as(event, FocusStateEvent)
        self.in_focus_mode = focus.state == "focus"
        logger.info("focus_mode_changed", focus_mode=self.in_focus_mode)

        if self._config_store is None:
            return
        try:
            await asyncio.to_thread(self._config_store.set_focus_mode, self.in_focus_mode)
        except (ConfigError, OSError) as e:
            logger.warning("focus_mode_persist_failed", error=str(e))
