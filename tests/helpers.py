"""Shared test doubles."""

from devstream.events import Event, EventBroker
from devstream.process import CommandResult


def collect(event_broker: EventBroker, topic: str) -> list[Event]:
    """Subscribe a recording handler and return the list it fills."""
    received: list[Event] = []
    event_broker.subscribe(topic, received.append)
    return received


class FakeRunner:
    """Command runner returning canned results keyed by argv."""

    def __init__(self, default: CommandResult | Exception | None = None) -> None:
        self.responses: dict[tuple[str, ...], CommandResult | Exception] = {}
        self.default = default
        self.calls: list[list[str]] = []

    def set(
        self,
        argv: tuple[str, ...],
        stdout: str = "",
        returncode: int = 0,
        stderr: str = "",
    ) -> None:
        self.responses[argv] = CommandResult(
            argv=list(argv), returncode=returncode, stdout=stdout, stderr=stderr
        )

    def fail(self, argv: tuple[str, ...], error: Exception) -> None:
        self.responses[argv] = error

    async def __call__(self, argv, cwd=None, timeout=None) -> CommandResult:
        self.calls.append(list(argv))
        response = self.responses.get(tuple(argv), self.default)
        if response is None:
            return CommandResult(argv=list(argv), returncode=0, stdout="", stderr="")
        if isinstance(response, Exception):
            raise response
        return response


class FakeNotifier:
    """Records notifications instead of showing them."""

    def __init__(self) -> None:
        self.shown = []

    async def notify(self, notification) -> bool:
        self.shown.append(notification)
        return True
