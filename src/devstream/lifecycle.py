"""Graceful shutdown coordinator for async tasks."""
import asyncio

import structlog

logger = structlog.get_logger()


class GracefulShutdown:
    """Coordinates graceful shutdown across async tasks.

    Long-running loops observe this at each suspension point, either by
    checking ``is_triggered`` or by sleeping through ``sleep``.

    Attributes:
        is_triggered: Whether shutdown has been triggered.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        """Initialize shutdown coordinator.

        Args:
            timeout: Default seconds to wait for shutdown completion.
        """
        self._triggered = False
        self._event = asyncio.Event()
        self._timeout = timeout

    @property
    def is_triggered(self) -> bool:
        """Check if shutdown has been triggered.

        Returns:
            True if shutdown signal received.
        """
        return self._triggered

    @property
    def timeout(self) -> float:
        return self._timeout

    def trigger(self) -> None:
        """Signal all waiting tasks to begin shutdown.

        Idempotent - calling multiple times has no additional effect.
        """
        if self._triggered:
            return
        logger.info("shutdown_triggered")
        self._triggered = True
        self._event.set()

    async def wait_for_trigger(self) -> None:
        """Wait indefinitely for shutdown signal."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep for up to ``seconds``, waking early on shutdown.

        Args:
            seconds: Maximum time to sleep.

        Returns:
            True if shutdown was triggered before the time elapsed.
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
            return True
        except TimeoutError:
            return False
