"""In-process event broker with topic-based pub/sub."""
import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from devstream.config import TopicOptions
from devstream.events.store import DeadLetterQueue, InMemoryEventStore
from devstream.events.types import SCHEMA_VERSION, Event, Payload

logger = structlog.get_logger()

Handler = Callable[[Event], Awaitable[None] | None]

WILDCARD = "*"


def _name(value: str | Enum) -> str:
    return value.value if isinstance(value, Enum) else value


class Subscription:
    """A handler bound to a topic, fed by its own queue and worker task.

    Attributes:
        id: Subscription identifier.
        topic: Topic name, or ``*`` for every topic.
        event_types: Event types to deliver, None for all.
    """

    def __init__(
        self,
        topic: str,
        handler: Handler,
        event_types: frozenset[str] | None,
        queue_size: int,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.topic = topic
        self.handler = handler
        self.event_types = event_types
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=queue_size)
        self.task: asyncio.Task[None] | None = None

    def accepts(self, event: Event) -> bool:
        if self.topic not in (event.topic, WILDCARD):
            return False
        return self.event_types is None or event.type in self.event_types


class EventBroker:
    """Async event broker with per-subscription delivery and backpressure.

    Each subscription receives events through its own queue drained by a
    single worker task, so a handler never runs concurrently with itself.
    A handler that raises sends the event to the dead-letter queue and the
    worker carries on. Queue overflow drops the oldest pending event.

    Attributes:
        event_store: Store for events of persistent topics.
        dead_letter_queue: Failed deliveries awaiting retry or removal.
    """

    def __init__(
        self,
        event_store: InMemoryEventStore | None = None,
        dead_letter_queue: DeadLetterQueue | None = None,
        queue_size: int = 1000,
    ) -> None:
        """Initialize event broker.

        Args:
            event_store: Event store, a fresh in-memory store if None.
            dead_letter_queue: Dead-letter queue, a fresh one if None.
            queue_size: Maximum pending events per subscription.
        """
        self.event_store = event_store or InMemoryEventStore()
        self.dead_letter_queue = dead_letter_queue or DeadLetterQueue()
        self._topics: dict[str, TopicOptions] = {}
        self._subscriptions: dict[str, Subscription] = {}
        self._queue_size = queue_size
        self._dropped_count = 0
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def subscriber_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)

    @property
    def dropped_events(self) -> int:
        """Total number of events dropped due to queue overflow."""
        return self._dropped_count

    def create_topic(
        self,
        name: str | Enum,
        options: TopicOptions | None = None,
    ) -> TopicOptions:
        """Create a topic, or update its options if it already exists.

        Args:
            name: Topic name.
            options: Storage options, non-persistent if None.

        Returns:
            The options now in effect for the topic.
        """
        topic = _name(name)
        self._topics[topic] = options or TopicOptions()
        logger.debug("topic_created", topic=topic)
        return self._topics[topic]

    def get_topic_names(self) -> list[str]:
        return list(self._topics)

    def get_topic(self, name: str | Enum) -> TopicOptions | None:
        return self._topics.get(_name(name))

    async def publish(
        self,
        topic: str | Enum,
        event_type: str | Enum,
        payload: Payload | dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        """Publish an event to every matching subscription.

        Unknown topics are created on first publish with default options.

        Args:
            topic: Topic to publish on.
            event_type: Event type string.
            payload: Payload model or already-serialized dict.
            metadata: Optional metadata attached to the envelope.

        Returns:
            The published event with id, timestamp and schema version set.
        """
        topic_name = _name(topic)
        options = self._topics.get(topic_name)
        if options is None:
            options = self.create_topic(topic_name)

        body = payload.to_payload() if isinstance(payload, Payload) else dict(payload)
        event = Event(
            id=str(uuid.uuid4()),
            topic=topic_name,
            type=_name(event_type),
            timestamp=datetime.now(UTC),
            payload=body,
            schema_version=SCHEMA_VERSION,
            metadata=metadata,
        )

        if options.persistent:
            self.event_store.append(event, options)

        for subscription in list(self._subscriptions.values()):
            if subscription.accepts(event):
                self._enqueue(subscription, event)

        return event

    def _enqueue(self, subscription: Subscription, event: Event) -> None:
        try:
            subscription.queue.put_nowait(event)
        except asyncio.QueueFull:
            dropped = subscription.queue.get_nowait()
            subscription.queue.put_nowait(event)
            self._dropped_count += 1
            logger.warning(
                "event_dropped",
                subscription_id=subscription.id,
                dropped_event_id=dropped.id,
                topic=subscription.topic,
            )
            return
        self._pending += 1
        self._idle.clear()

    def _task_done(self) -> None:
        self._pending -= 1
        if self._pending <= 0:
            self._pending = 0
            self._idle.set()

    def subscribe(
        self,
        topic: str | Enum,
        handler: Handler,
        event_types: Iterable[str | Enum] | None = None,
    ) -> str:
        """Register a handler for a topic.

        Must be called from within a running event loop.

        Args:
            topic: Topic to subscribe to. Use ``*`` for all topics.
            handler: Sync or async callable receiving each event.
            event_types: Only deliver these event types when given.

        Returns:
            Subscription identifier.
        """
        types = (
            frozenset(_name(t) for t in event_types) if event_types is not None else None
        )
        subscription = Subscription(_name(topic), handler, types, self._queue_size)
        subscription.task = asyncio.get_running_loop().create_task(
            self._deliver(subscription),
            name=f"subscription:{subscription.topic}:{subscription.id[:8]}",
        )
        self._subscriptions[subscription.id] = subscription
        logger.debug(
            "subscriber_added",
            subscription_id=subscription.id,
            topic=subscription.topic,
            event_types=sorted(types) if types else None,
        )
        return subscription.id

    async def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription and stop its worker.

        Args:
            subscription_id: ID returned by ``subscribe``.
        """
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            return

        while not subscription.queue.empty():
            subscription.queue.get_nowait()
            self._task_done()

        if subscription.task is not None:
            subscription.task.cancel()
            try:
                await subscription.task
            except asyncio.CancelledError:
                pass
        logger.debug(
            "subscriber_removed",
            subscription_id=subscription_id,
            topic=subscription.topic,
        )

    async def _deliver(self, subscription: Subscription) -> None:
        while True:
            event = await subscription.queue.get()
            try:
                await self._invoke(subscription, event)
            finally:
                self._task_done()

    async def _invoke(self, subscription: Subscription, event: Event) -> bool:
        try:
            result = subscription.handler(event)
            if inspect.isawaitable(result):
                await result
            return True
        except Exception as e:
            logger.error(
                "subscriber_handler_failed",
                subscription_id=subscription.id,
                event_id=event.id,
                event_type=event.type,
                error=str(e),
            )
            self.dead_letter_queue.add(event, str(e), subscription.id)
            return False

    async def retry_dead_letter_event(
        self, event_id: str, subscription_id: str | None = None
    ) -> bool:
        """Redeliver a dead-lettered event to the subscriptions that failed it.

        Each successful redelivery removes its entry; another failure bumps
        that entry's attempt count.

        Args:
            event_id: ID of the dead-lettered event.
            subscription_id: Only retry this subscription's failure; every
                failing subscription when None.

        Returns:
            True if every retried handler succeeded.
        """
        if subscription_id is not None:
            entry = self.dead_letter_queue.get(event_id, subscription_id)
            entries = [entry] if entry is not None else []
        else:
            entries = self.dead_letter_queue.for_event(event_id)
        if not entries:
            return False

        succeeded = True
        for entry in entries:
            subscription = self._subscriptions.get(entry.subscription_id)
            if subscription is None:
                logger.warning(
                    "dead_letter_retry_orphaned",
                    event_id=event_id,
                    subscription_id=entry.subscription_id,
                )
                succeeded = False
                continue

            if await self._invoke(subscription, entry.event):
                self.dead_letter_queue.remove_event(event_id, entry.subscription_id)
                logger.info(
                    "dead_letter_retried",
                    event_id=event_id,
                    subscription_id=entry.subscription_id,
                )
            else:
                succeeded = False
        return succeeded

    async def join(self) -> None:
        """Wait until every queued event has been handled.

        Events published by handlers while waiting are waited for too.
        """
        await self._idle.wait()

    async def close(self) -> None:
        """Cancel every subscription worker."""
        for subscription_id in list(self._subscriptions):
            await self.unsubscribe(subscription_id)
        logger.info("broker_closed", dropped_events=self._dropped_count)
