"""Exception types shared across DevStream components."""


class DevStreamError(Exception):
    """Base class for DevStream errors."""


class CommandError(DevStreamError):
    """Raised when a child process exits non-zero or cannot be started."""

    def __init__(
        self,
        message: str,
        argv: list[str],
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        """Initialize command error.

        Args:
            message: Error description.
            argv: Program and arguments that were executed.
            returncode: Exit status, None if the process never started.
            stderr: Captured standard error text.
        """
        super().__init__(message)
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr


class PayloadSchemaError(DevStreamError):
    """Raised when an event payload does not match its registered model."""

    def __init__(self, message: str, topic: str, event_type: str) -> None:
        """Initialize payload schema error.

        Args:
            message: Error description.
            topic: Topic the event was published on.
            event_type: Event type string of the offending event.
        """
        super().__init__(message)
        self.topic = topic
        self.event_type = event_type


class ConfigError(DevStreamError):
    """Raised when the configuration file cannot be read or validated."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path
