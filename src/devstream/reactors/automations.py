"""User-defined automations: run a command when a matching event arrives."""
import asyncio
import json
from collections.abc import Callable

import structlog

from devstream.config import AutomationAction, AutomationConfig
from devstream.errors import CommandError, DevStreamError
from devstream.events.bus import EventBroker
from devstream.events.types import (
    Event,
    EventType,
    NotificationEvent,
    Topic,
    WorkflowEvent,
)
from devstream.process import CommandRunner, run_command

logger = structlog.get_logger()

FAILURE_ACTIONS = ["View logs", "Edit automation"]


def serialize_payload(event: Event) -> str:
    """Serialize a payload compactly, the form conditions are matched against."""
    return json.dumps(event.payload, separators=(",", ":"), ensure_ascii=False)


def matches(automation: AutomationConfig, event: Event) -> bool:
    """Check whether an event should fire an automation.

    The event-type filter is checked first, then the condition substring
    against the serialized payload.

    Args:
        automation: Automation whose trigger is evaluated.
        event: Event delivered on the trigger topic.

    Returns:
        True if every configured filter passes.
    """
    trigger = automation.trigger
    if trigger.event_type and event.type != trigger.event_type:
        return False
    if trigger.condition and trigger.condition not in serialize_payload(event):
        return False
    return True


def split_command(action: AutomationAction) -> list[str]:
    """Split a command string on whitespace and append configured args.

    No shell quoting is honoured: ``echo "a b"`` yields three tokens.
    """
    return action.command.split() + list(action.args or [])


class AutomationEngine:
    """Subscribes each automation to its trigger topic and runs its action.

    Every matching event starts an independent task, so a slow or failing
    command never holds up other events. Each run publishes one
    ``workflow.started`` and exactly one ``workflow.completed`` or
    ``workflow.failed``, plus a notification.

    Attributes:
        automations: Automations installed by the last ``setup``.
    """

    def __init__(
        self,
        broker: EventBroker,
        automations: list[AutomationConfig],
        runner: CommandRunner = run_command,
        command_timeout: float | None = None,
    ) -> None:
        """Initialize automation engine.

        Args:
            broker: Broker for triggers and lifecycle events.
            automations: Automations to install.
            runner: Command runner, replaced in tests.
            command_timeout: Seconds before a command is killed.
        """
        self._broker = broker
        self.automations = list(automations)
        self._runner = runner
        self._command_timeout = command_timeout
        self._subscriptions: list[str] = []
        self._tasks: set[asyncio.Task[WorkflowEvent]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def setup(self, automations: list[AutomationConfig] | None = None) -> None:
        """Install one subscription per automation.

        Subscriptions from a previous call are removed first.

        Args:
            automations: Replacement automation list, keeps the current one if None.
        """
        if automations is not None:
            self.automations = list(automations)

        for subscription_id in self._subscriptions:
            await self._broker.unsubscribe(subscription_id)
        self._subscriptions.clear()

        if self._broker.get_topic(Topic.WORKFLOW_AUTOMATION) is None:
            self._broker.create_topic(Topic.WORKFLOW_AUTOMATION)

        for automation in self.automations:
            subscription_id = self._broker.subscribe(
                automation.trigger.topic, self._make_handler(automation)
            )
            self._subscriptions.append(subscription_id)

        logger.info("automations_installed", count=len(self.automations))

    def _make_handler(self, automation: AutomationConfig) -> Callable[[Event], None]:
        def handler(event: Event) -> None:
            if not matches(automation, event):
                return
            task = asyncio.create_task(
                self.execute(automation, event),
                name=f"automation:{automation.name}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return handler

    async def execute(self, automation: AutomationConfig, event: Event) -> WorkflowEvent:
        """Run an automation for one triggering event.

        Args:
            automation: Automation to run.
            event: Event that triggered it.

        Returns:
            The terminal workflow event that was published.
        """
        logger.info(
            "automation_started",
            automation=automation.name,
            trigger=event.type,
            event_id=event.id,
        )
        await self._publish_workflow(automation, event, "started")

        try:
            await self._run_action(automation.action)
        except asyncio.CancelledError:
            await self._publish_workflow(automation, event, "failed", error="cancelled")
            raise
        except Exception as e:
            return await self._report_failure(automation, event, str(e))

        await self._broker.publish(
            Topic.NOTIFICATION,
            EventType.NOTIFICATION_AUTOMATION,
            NotificationEvent(
                level="success",
                message=f'Automation "{automation.name}" completed successfully',
                source="Automation",
                actionable=False,
            ),
        )
        logger.info("automation_completed", automation=automation.name)
        return await self._publish_workflow(automation, event, "completed")

    async def _run_action(self, action: AutomationAction) -> None:
        if action.type != "command":
            raise DevStreamError(f"Unsupported action type: {action.type}")

        argv = split_command(action)
        result = await self._runner(argv, timeout=self._command_timeout)
        if not result.ok:
            stderr = result.stderr.strip()
            raise CommandError(
                stderr or f"{argv[0]} exited with status {result.returncode}",
                argv,
                returncode=result.returncode,
                stderr=result.stderr,
            )

    async def _report_failure(
        self,
        automation: AutomationConfig,
        event: Event,
        error: str,
    ) -> WorkflowEvent:
        logger.warning("automation_failed", automation=automation.name, error=error)
        await self._broker.publish(
            Topic.NOTIFICATION,
            EventType.NOTIFICATION_AUTOMATION,
            NotificationEvent(
                level="error",
                message=f'Automation "{automation.name}" failed: {error}',
                source="Automation",
                actionable=True,
                actions=FAILURE_ACTIONS,
            ),
        )
        return await self._publish_workflow(automation, event, "failed", error=error)

    async def _publish_workflow(
        self,
        automation: AutomationConfig,
        event: Event,
        status: str,
        error: str | None = None,
    ) -> WorkflowEvent:
        workflow = WorkflowEvent(
            name=automation.name,
            trigger=event.type,
            action=automation.action.type,
            status=status,
            error=error,
        )
        await self._broker.publish(
            Topic.WORKFLOW_AUTOMATION, f"workflow.{status}", workflow
        )
        return workflow

    async def wait_idle(self) -> None:
        """Wait for every in-flight automation run to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel in-flight runs and remove subscriptions."""
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()
        for subscription_id in self._subscriptions:
            await self._broker.unsubscribe(subscription_id)
        self._subscriptions.clear()
