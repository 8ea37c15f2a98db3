"""Error taxonomy for monitored commands.

None of these are raised across sibling commands. They are attached to the
failing command's result and collected by the orchestrator.
"""

from __future__ import annotations

__all__ = [
    "CommandError",
    "SpawnError",
    "RuntimeExitError",
    "SignalDeliveryError",
]


class CommandError(Exception):
    """Base error for one monitored command.

    Attributes:
        command_name: Name of the command (may be empty)
    """

    def __init__(self, command_name: str, message: str) -> None:
        self.command_name = command_name
        label = command_name or "<unnamed>"
        super().__init__(f"{label}: {message}")


class SpawnError(CommandError):
    """The process could not be created or its program could not be executed.

    Attributes:
        cause: The underlying OSError, if spawning itself failed
    """

    def __init__(
        self,
        command_name: str,
        message: str,
        cause: OSError | None = None,
    ) -> None:
        self.cause = cause
        super().__init__(command_name, message)


class RuntimeExitError(CommandError):
    """The process started and exited with a nonzero status."""

    def __init__(self, command_name: str, exit_code: int) -> None:
        self.exit_code = exit_code
        super().__init__(command_name, f"exited with status {exit_code}")


class SignalDeliveryError(CommandError):
    """A termination signal could not be delivered or had no effect.

    Attributes:
        signal_name: Name of the signal that failed (e.g. "SIGKILL")
        cause: The underlying OSError, if delivery raised
    """

    def __init__(
        self,
        command_name: str,
        signal_name: str,
        message: str,
        cause: OSError | None = None,
    ) -> None:
        self.signal_name = signal_name
        self.cause = cause
        super().__init__(command_name, f"{signal_name}: {message}")
