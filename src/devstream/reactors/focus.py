"""Timed focus sessions."""
import asyncio
import contextlib
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from devstream.events.bus import EventBroker
from devstream.events.types import EventType, FocusStateEvent, NotificationEvent, Topic

logger = structlog.get_logger()

COMPLETED_MESSAGE = "Focus session completed! Take a short break."


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class FocusTimer:
    """Runs one focus session at a time.

    The scheduled end is a cancellable task: ending a session early cancels
    it, so no completion notification is left behind.
    """

    def __init__(
        self,
        broker: EventBroker,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._broker = broker
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._started_at: datetime | None = None

    @property
    def active(self) -> bool:
        return self._task is not None

    async def start(self, minutes: float = 25) -> bool:
        """Begin a focus session.

        Args:
            minutes: Session length.

        Returns:
            False if a session is already running.
        """
        if self.active:
            logger.info("focus_already_active")
            return False

        self._started_at = self._clock()
        await self._broker.publish(
            Topic.FOCUS_STATE,
            EventType.FOCUS_STARTED,
            FocusStateEvent(
                state="focus",
                start_time=epoch_ms(self._started_at),
                duration=int(minutes * 60_000),
            ),
        )
        self._task = asyncio.create_task(self._finish_after(minutes * 60))
        logger.info("focus_started", minutes=minutes)
        return True

    async def _finish_after(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
        self._task = None
        await self._publish_end()
        await self._broker.publish(
            Topic.NOTIFICATION,
            EventType.NOTIFICATION_FOCUS,
            NotificationEvent(
                level="success",
                message=COMPLETED_MESSAGE,
                source="Focus Timer",
                actionable=False,
            ),
        )
        logger.info("focus_completed")

    async def end(self) -> bool:
        """End the running session early.

        Returns:
            False if no session was running.
        """
        task = self._task
        if task is None:
            return False

        self._task = None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        await self._publish_end()
        logger.info("focus_ended_early")
        return True

    async def _publish_end(self) -> None:
        now = self._clock()
        started = self._started_at or now
        self._started_at = None
        await self._broker.publish(
            Topic.FOCUS_STATE,
            EventType.FOCUS_ENDED,
            FocusStateEvent(
                state="available",
                start_time=epoch_ms(started),
                end_time=epoch_ms(now),
                duration=epoch_ms(now) - epoch_ms(started),
            ),
        )
