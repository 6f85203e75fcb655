"""Application assembly and lifecycle management."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog

from devstream.config import ConfigStore, DevStreamConfig, Settings
from devstream.events import EventBroker
from devstream.lifecycle import GracefulShutdown
from devstream.monitor import BuildFileClassifier, FileWatchLoop, GitPoller, watch_files
from devstream.reactors import (
    AutomationEngine,
    DesktopNotifier,
    FocusTimer,
    InsightsAggregator,
    NotificationGate,
    write_report,
)

logger = structlog.get_logger()


class DevStream:
    """Wires producers and consumers around one event broker.

    Attributes:
        broker: Broker shared by every component.
        gate: Notification gate, the owner of the focus flag.
        focus: Focus session timer.
        automations: Automation engine.
        insights: Insights aggregator.
    """

    def __init__(
        self,
        settings: Settings,
        config: DevStreamConfig,
        config_store: ConfigStore | None = None,
        shutdown: GracefulShutdown | None = None,
    ) -> None:
        """Initialize the application.

        Args:
            settings: Process settings.
            config: Loaded configuration file.
            config_store: Persists focus-mode changes.
            shutdown: Coordinator observed by the periodic loops.
        """
        self.settings = settings
        self.config = config
        self.shutdown = shutdown or GracefulShutdown(timeout=settings.shutdown_timeout)

        self.broker = EventBroker(queue_size=settings.event_queue_size)
        for name, options in config.topics.items():
            self.broker.create_topic(name, options)

        self.gate = NotificationGate(
            self.broker,
            config.notification,
            DesktopNotifier(enabled=settings.desktop_notifications),
            config_store=config_store,
        )
        self.focus = FocusTimer(self.broker)
        self.classifier = BuildFileClassifier()
        self.automations = AutomationEngine(self.broker, config.automations)
        self.insights = InsightsAggregator(
            self.broker, config.insights, summary_hour=settings.summary_hour
        )
        self.git = GitPoller(
            self.broker,
            repo_dir=settings.git_repo_dir,
            interval=settings.git_poll_interval,
        )
        self.watchers: list[FileWatchLoop] = []
        self._tasks: list[asyncio.Task[None]] = []

    async def start(self) -> None:
        """Install consumers, then start producers and periodic loops."""
        self.gate.setup()
        self.classifier.attach(self.broker)
        await self.automations.setup()
        self.insights.setup()

        self.watchers = watch_files(
            self.broker, self.config.watch_dirs, self.config.ignore_paths
        )
        self._tasks = [
            asyncio.create_task(self.git.run(self.shutdown), name="git-poller"),
            asyncio.create_task(
                self.insights.run_schedule(self.shutdown), name="insights-schedule"
            ),
        ]
        if self.settings.focus_minutes:
            await self.focus.start(self.settings.focus_minutes)
        logger.info(
            "devstream_started",
            watch_dirs=self.config.watch_dirs,
            automations=len(self.config.automations),
        )

    async def stop(self) -> None:
        """Stop every loop, save the insights report and close the broker."""
        await self.focus.end()
        for watcher in self.watchers:
            await watcher.stop()

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

        await self.automations.close()
        if self.config.insights.collect_stats:
            try:
                await asyncio.to_thread(
                    write_report, self.broker.event_store, self.settings.reports_dir
                )
            except OSError as e:
                logger.warning("insights_report_failed", error=str(e))
        await self.broker.close()
        logger.info("devstream_stopped")


@asynccontextmanager
async def running(
    settings: Settings,
    config: DevStreamConfig,
    config_store: ConfigStore | None = None,
    shutdown: GracefulShutdown | None = None,
) -> AsyncGenerator[DevStream, None]:
    """Start DevStream for the duration of the block.

    Yields:
        The running application.
    """
    app = DevStream(settings, config, config_store=config_store, shutdown=shutdown)
    await app.start()
    try:
        yield app
    finally:
        await app.stop()
