"""In-memory event store and dead-letter queue."""
from collections import deque
from datetime import UTC, datetime, timedelta

import structlog
from pydantic import BaseModel, Field

from devstream.config import TopicOptions
from devstream.events.types import Event

logger = structlog.get_logger()


class InMemoryEventStore:
    """Stores events of persistent topics with per-topic retention.

    Attributes:
        max_events_per_topic: Upper bound on events kept for each topic.
    """

    def __init__(self, max_events_per_topic: int = 10_000) -> None:
        """Initialize the store.

        Args:
            max_events_per_topic: Oldest events are discarded beyond this.
        """
        self.max_events_per_topic = max_events_per_topic
        self._events: dict[str, deque[Event]] = {}
        self._retention: dict[str, timedelta] = {}

    def append(self, event: Event, options: TopicOptions | None = None) -> None:
        """Store an event and prune entries outside the retention window.

        Args:
            event: Event to store.
            options: Topic options supplying the retention period.
        """
        if options is not None and options.retention_period is not None:
            self._retention[event.topic] = timedelta(
                milliseconds=options.retention_period
            )

        events = self._events.setdefault(
            event.topic, deque(maxlen=self.max_events_per_topic)
        )
        events.append(event)
        self._prune(event.topic, event.timestamp)

    def _prune(self, topic: str, now: datetime) -> None:
        retention = self._retention.get(topic)
        if retention is None:
            return
        events = self._events[topic]
        cutoff = now - retention
        while events and events[0].timestamp < cutoff:
            events.popleft()

    def get_events(
        self,
        topic: str,
        limit: int = 100,
        from_timestamp: datetime | None = None,
    ) -> list[Event]:
        """Return stored events for a topic, most recent first.

        Args:
            topic: Topic name.
            limit: Maximum number of events to return.
            from_timestamp: Only return events at or after this time.

        Returns:
            Matching events, newest first.
        """
        result: list[Event] = []
        for event in reversed(self._events.get(topic, ())):
            if from_timestamp is not None and event.timestamp < from_timestamp:
                break
            result.append(event)
            if len(result) >= limit:
                break
        return result


class DeadLetterEntry(BaseModel):
    """An event whose handler raised.

    Attributes:
        event: Event that failed processing.
        error: Error text from the failing handler.
        attempts: Number of delivery attempts so far.
        timestamp: Time of the most recent failure (UTC).
        subscription_id: Subscription whose handler failed.
    """

    event: Event
    error: str
    attempts: int = 1
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    subscription_id: str


class DeadLetterQueue:
    """Keeps failed deliveries until they are retried or removed.

    Entries are kept per failing subscription, so one event that fails in
    several handlers yields one entry for each of them.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], DeadLetterEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, event: Event, error: str, subscription_id: str) -> DeadLetterEntry:
        """Record a failed delivery, bumping attempts for a repeat failure.

        Args:
            event: Event whose handler failed.
            error: Error text.
            subscription_id: Subscription that failed.

        Returns:
            The stored entry.
        """
        key = (event.id, subscription_id)
        entry = self._entries.get(key)
        if entry is not None:
            entry = entry.model_copy(
                update={
                    "error": error,
                    "attempts": entry.attempts + 1,
                    "timestamp": datetime.now(UTC),
                }
            )
        else:
            entry = DeadLetterEntry(
                event=event, error=error, subscription_id=subscription_id
            )
        self._entries[key] = entry
        logger.warning(
            "dead_letter_added",
            event_id=event.id,
            subscription_id=subscription_id,
            topic=event.topic,
            event_type=event.type,
            attempts=entry.attempts,
        )
        return entry

    def get(
        self, event_id: str, subscription_id: str | None = None
    ) -> DeadLetterEntry | None:
        """Return one entry for an event.

        Args:
            event_id: ID of the failed event.
            subscription_id: Subscription that failed; the oldest failure for
                the event is returned when None.
        """
        if subscription_id is not None:
            return self._entries.get((event_id, subscription_id))
        entries = self.for_event(event_id)
        return entries[0] if entries else None

    def for_event(self, event_id: str) -> list[DeadLetterEntry]:
        """Return every entry for an event, oldest failure first."""
        return sorted(
            (e for (eid, _), e in self._entries.items() if eid == event_id),
            key=lambda e: e.timestamp,
        )

    def get_events(self) -> list[DeadLetterEntry]:
        """Return all entries, oldest failure first."""
        return sorted(self._entries.values(), key=lambda e: e.timestamp)

    def remove_event(self, event_id: str, subscription_id: str | None = None) -> bool:
        """Remove entries for an event.

        Args:
            event_id: ID of the failed event.
            subscription_id: Only remove this subscription's entry; every
                entry for the event when None.

        Returns:
            True if an entry was removed.
        """
        if subscription_id is not None:
            return self._entries.pop((event_id, subscription_id), None) is not None
        keys = [key for key in self._entries if key[0] == event_id]
        for key in keys:
            del self._entries[key]
        return bool(keys)
