"""Event model and in-process messaging substrate."""
from devstream.events.bus import EventBroker
from devstream.events.store import DeadLetterEntry, DeadLetterQueue, InMemoryEventStore
from devstream.events.types import (
    BuildEvent,
    Event,
    EventType,
    FileChangeEvent,
    FocusStateEvent,
    GitEvent,
    NotificationEvent,
    Topic,
    WorkflowEvent,
    decode_as,
    decode_payload,
)

__all__ = [
    "BuildEvent",
    "DeadLetterEntry",
    "DeadLetterQueue",
    "Event",
    "EventBroker",
    "EventType",
    "FileChangeEvent",
    "FocusStateEvent",
    "GitEvent",
    "InMemoryEventStore",
    "NotificationEvent",
    "Topic",
    "WorkflowEvent",
    "decode_as",
    "decode_payload",
]
