"""Event envelope, topics, event types and payload models."""
from datetime import datetime
from enum import Enum
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from devstream.errors import PayloadSchemaError

SCHEMA_VERSION = 1

P = TypeVar("P", bound="Payload")


class Topic(str, Enum):
    """Topics produced and consumed by DevStream components."""

    FILE_CHANGES = "file.changes"
    GIT_EVENTS = "git.events"
    BUILD_EVENTS = "build.events"
    NOTIFICATION = "notification"
    FOCUS_STATE = "focus.state"
    WORKFLOW_AUTOMATION = "workflow.automation"


class EventType(str, Enum):
    """Event types, namespaced by the topic they are published on."""

    FILE_CREATE = "file.create"
    FILE_MODIFY = "file.modify"
    FILE_DELETE = "file.delete"
    GIT_COMMIT = "git.commit"
    GIT_CHECKOUT = "git.checkout"
    GIT_PUSH = "git.push"
    GIT_PULL = "git.pull"
    GIT_MERGE = "git.merge"
    GIT_BRANCH = "git.branch"
    BUILD_FILE_CHANGE = "build.file_change"
    NOTIFICATION_AUTOMATION = "notification.automation"
    NOTIFICATION_FOCUS = "notification.focus"
    NOTIFICATION_INSIGHTS = "notification.insights"
    FOCUS_STARTED = "focus.started"
    FOCUS_ENDED = "focus.ended"
    WORKFLOW_STARTED = "workflow.started"
    WORKFLOW_COMPLETED = "workflow.completed"
    WORKFLOW_FAILED = "workflow.failed"


class Event(BaseModel):
    """Envelope for a published event.

    Attributes:
        id: Unique event identifier (UUID).
        topic: Topic the event was published on.
        type: Event type string, e.g. ``file.modify``.
        timestamp: Publication time (UTC).
        payload: Serialized payload, camelCase keys.
        schema_version: Payload schema version.
        metadata: Optional free-form metadata.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique event identifier (UUID)")
    topic: str = Field(description="Topic the event was published on")
    type: str = Field(description="Event type")
    timestamp: datetime = Field(description="Event timestamp (UTC)")
    payload: dict[str, Any] = Field(default_factory=dict)
    schema_version: int = SCHEMA_VERSION
    metadata: dict[str, Any] | None = None


class Payload(BaseModel):
    """Base for event payloads; serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """Return the wire form of this payload."""
        return self.model_dump(by_alias=True, exclude_none=True)


class FileChangeEvent(Payload):
    path: str
    operation: Literal["create", "modify", "delete"]
    extension: str
    size: int | None = None


class GitEvent(Payload):
    operation: Literal["commit", "push", "pull", "merge", "branch", "checkout"]
    message: str | None = None
    branch: str | None = None
    hash: str | None = None


class BuildEvent(Payload):
    operation: Literal["start", "success", "failure"]
    build_file: str | None = None
    language: str | None = None
    duration: float | None = None
    errors: list[str] | None = None
    warnings: list[str] | None = None


class NotificationEvent(Payload):
    level: Literal["info", "warning", "error", "success"]
    message: str
    source: str
    actionable: bool = False
    actions: list[str] | None = None


class FocusStateEvent(Payload):
    """Focus state transition.

    Times are epoch milliseconds and ``duration`` is in milliseconds.
    """

    state: Literal["focus", "break", "available"]
    start_time: int
    end_time: int | None = None
    duration: int | None = None


class WorkflowEvent(Payload):
    name: str
    trigger: str
    action: str
    status: Literal["started", "completed", "failed"]
    error: str | None = None


PAYLOAD_MODELS: dict[str, type[Payload]] = {
    Topic.FILE_CHANGES.value: FileChangeEvent,
    Topic.GIT_EVENTS.value: GitEvent,
    Topic.BUILD_EVENTS.value: BuildEvent,
    Topic.NOTIFICATION.value: NotificationEvent,
    Topic.FOCUS_STATE.value: FocusStateEvent,
    Topic.WORKFLOW_AUTOMATION.value: WorkflowEvent,
}


def decode_payload(event: Event) -> Payload:
    """Decode an event payload into the model registered for its topic.

    Args:
        event: Published event.

    Returns:
        Validated payload model instance.

    Raises:
        PayloadSchemaError: If the topic has no model or validation fails.
    """
    model = PAYLOAD_MODELS.get(event.topic)
    if model is None:
        raise PayloadSchemaError(
            f"No payload model for topic {event.topic}", event.topic, event.type
        )
    try:
        return model.model_validate(event.payload)
    except ValidationError as e:
        raise PayloadSchemaError(
            f"Payload does not match {model.__name__}: {e}", event.topic, event.type
        ) from e


def decode_as(event: Event, model: type[P]) -> P:
    """Decode an event payload, requiring a specific payload model.

    Args:
        event: Published event.
        model: Payload model the caller expects for this topic.

    Returns:
        Validated payload of type ``model``.

    Raises:
        PayloadSchemaError: If the topic carries another model or validation fails.
    """
    payload = decode_payload(event)
    if not isinstance(payload, model):
        raise PayloadSchemaError(
            f"Expected {model.__name__} on {event.topic}, got {type(payload).__name__}",
            event.topic,
            event.type,
        )
    return payload
