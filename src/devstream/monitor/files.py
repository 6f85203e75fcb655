"""File-change detection over raw watchdog notifications."""

import asyncio
import contextlib
import os
from collections.abc import Callable
from pathlib import Path
from typing import Literal

import structlog
from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from devstream.events.bus import EventBroker
from devstream.events.types import Event, EventType, FileChangeEvent, Topic
from devstream.monitor.paths import (
    Snapshot,
    SnapshotEntry,
    file_extension,
    scan_directory,
    should_ignore,
)

logger = structlog.get_logger()

RawKind = Literal["create", "modify", "remove"]

OBSERVER_CHECK_INTERVAL = 1.0

OBSERVER_JOIN_TIMEOUT = 5.0


def _decode(path: str | bytes) -> str:
    if isinstance(path, str):
        return path
    return bytes(path).decode("utf-8", errors="replace")


def translate_event(event: FileSystemEvent) -> list[tuple[RawKind, str]]:
    """Map a watchdog event to raw (kind, path) notifications.

    A move becomes a remove of the source followed by a create of the
    destination. Directory events and open/close events yield nothing.

    Args:
        event: Raw watchdog filesystem event.

    Returns:
        Notifications in the order they should be processed.
    """
    if event.is_directory:
        return []
    if isinstance(event, FileMovedEvent):
        return [
            ("remove", _decode(event.src_path)),
            ("create", _decode(event.dest_path)),
        ]
    if isinstance(event, FileCreatedEvent):
        return [("create", _decode(event.src_path))]
    if isinstance(event, FileModifiedEvent):
        return [("modify", _decode(event.src_path))]
    if isinstance(event, FileDeletedEvent):
        return [("remove", _decode(event.src_path))]
    return []


class RawEventHandler(FileSystemEventHandler):
    """Forwards watchdog notifications from the observer thread to a queue.

    Notifications keep the order in which the observer reports them.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[tuple[RawKind, str]],
    ) -> None:
        """Initialize handler.

        Args:
            loop: Event loop owning the queue.
            queue: Queue consumed by the watch loop.
        """
        super().__init__()
        self._loop = loop
        self._queue = queue

    def on_any_event(self, event: FileSystemEvent) -> None:
        for item in translate_event(event):
            try:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
            except RuntimeError:
                # Loop already closed during shutdown
                return


class FileWatchLoop:
    """Watches one root directory and publishes file-change events.

    Owns the snapshot for its root; modify notifications whose mtime and
    size match the snapshot are dropped as spurious.

    Attributes:
        root: Absolute path of the watched directory.
        ignore_paths: Substrings that exclude a path.
    """

    def __init__(
        self,
        broker: EventBroker,
        root: str | Path,
        ignore_paths: list[str],
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        """Initialize watch loop.

        Args:
            broker: Broker that receives file-change events.
            root: Directory to watch recursively.
            ignore_paths: Substrings that exclude a path.
            observer_factory: Creates the watchdog observer.
        """
        self._broker = broker
        self.root = str(Path(root).absolute())
        self.ignore_paths = list(ignore_paths)
        self._observer_factory = observer_factory
        self._observer: BaseObserver | None = None
        self._snapshot: Snapshot = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def snapshot(self) -> Snapshot:
        """Copy of the current snapshot."""
        return dict(self._snapshot)

    def load_snapshot(self) -> int:
        """Scan the root and replace the snapshot.

        Returns:
            Number of files recorded.
        """
        self._snapshot = scan_directory(self.root, self.ignore_paths)
        return len(self._snapshot)

    async def handle_notification(self, kind: RawKind, path: str) -> Event | None:
        """Process one raw notification for a path.

        Args:
            kind: Raw notification kind.
            path: Affected path.

        Returns:
            The published event, or None if the notification was dropped.
        """
        if should_ignore(path, self.ignore_paths):
            return None

        extension = file_extension(path)

        if kind == "remove":
            self._snapshot.pop(path, None)
            return await self._broker.publish(
                Topic.FILE_CHANGES,
                EventType.FILE_DELETE,
                FileChangeEvent(path=path, operation="delete", extension=extension),
            )

        try:
            stat = os.stat(path)
        except OSError as e:
            # File may have been removed already
            logger.debug("file_stat_failed", path=path, error=str(e))
            return None

        entry = SnapshotEntry.from_stat(stat)
        if kind == "modify" and self._snapshot.get(path) == entry:
            return None

        self._snapshot[path] = entry
        event_type = EventType.FILE_CREATE if kind == "create" else EventType.FILE_MODIFY
        return await self._broker.publish(
            Topic.FILE_CHANGES,
            event_type,
            FileChangeEvent(
                path=path,
                operation=kind,
                extension=extension,
                size=stat.st_size,
            ),
        )

    async def run(self) -> None:
        """Scan, start the observer and consume notifications until cancelled.

        A failure of the notification stream ends this loop only.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[tuple[RawKind, str]] = asyncio.Queue()

        try:
            if not Path(self.root).is_dir():
                raise ValueError(f"Watch path is not a directory: {self.root}")
            count = await asyncio.to_thread(self.load_snapshot)
            observer = self._observer_factory()
            observer.schedule(RawEventHandler(loop, queue), self.root, recursive=True)
            observer.start()
            self._observer = observer
            logger.info("watching_directory", root=self.root, files=count)

            while True:
                try:
                    kind, path = await asyncio.wait_for(
                        queue.get(), timeout=OBSERVER_CHECK_INTERVAL
                    )
                except TimeoutError:
                    if not observer.is_alive():
                        raise RuntimeError("observer thread stopped") from None
                    continue
                await self.handle_notification(kind, path)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("watch_loop_failed", root=self.root, error=str(e))
        finally:
            await self._stop_observer()

    def start(self) -> asyncio.Task[None]:
        """Run the loop as a background task."""
        self._task = asyncio.create_task(self.run(), name=f"watch:{self.root}")
        return self._task

    async def stop(self) -> None:
        """Cancel the loop and stop the observer."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self._stop_observer()

    async def _stop_observer(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        # join blocks until the observer thread exits
        await asyncio.to_thread(observer.join, OBSERVER_JOIN_TIMEOUT)
        logger.info("watch_stopped", root=self.root)


def watch_files(
    broker: EventBroker,
    dirs: list[str],
    ignore_paths: list[str],
) -> list[FileWatchLoop]:
    """Start one watch loop per directory.

    Args:
        broker: Broker that receives file-change events.
        dirs: Directories to watch.
        ignore_paths: Substrings that exclude a path.

    Returns:
        The started loops.
    """
    if broker.get_topic(Topic.FILE_CHANGES) is None:
        broker.create_topic(Topic.FILE_CHANGES)

    loops = [FileWatchLoop(broker, directory, ignore_paths) for directory in dirs]
    for watch_loop in loops:
        watch_loop.start()
    return loops
