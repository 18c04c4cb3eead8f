"""cmdctl exception classes.

Definition-time errors come from the builder, usage errors from the
controller, redirection errors from start() when the active file policy
asks for an explicit failure. OSError raised while spawning is never
wrapped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .command import Command

__all__ = [
    "CmdctlError",
    "CommandDefinitionError",
    "EnvironmentBindingError",
    "UsageError",
    "AlreadyStartedError",
    "UnknownSignalError",
    "RedirectionError",
    "InputMissingError",
    "OutputExistsError",
]


def _describe(command: Command | None) -> str:
    if command is None:
        return ""
    return f" [{command.describe()}]"


class CmdctlError(Exception):
    """Base class for every cmdctl error."""
    pass


class CommandDefinitionError(CmdctlError):
    """A command factory was defined with a malformed option schema.

    Attributes:
        command: Name of the factory being defined
        option: The offending declaration (may be None)
    """

    def __init__(self, message: str, command: str = "", option: Any = None) -> None:
        self.command = command
        self.option = option
        prefix = f"{command}: " if command else ""
        super().__init__(f"{prefix}{message}")


class EnvironmentBindingError(CmdctlError, ValueError):
    """An environment binding does not have a NAME=VALUE or (name, value) shape."""

    def __init__(self, binding: Any) -> None:
        self.binding = binding
        super().__init__(f"Malformed environment binding: {binding!r}")


class UsageError(CmdctlError):
    """The controller was asked to do something its state does not allow."""
    pass


class AlreadyStartedError(UsageError):
    """start() was called on a process that already owns a handle.

    Attributes:
        command: The command of the process
        pid: Pid of the process that is already attached
    """

    def __init__(self, command: Command, pid: int | None) -> None:
        self.command = command
        self.pid = pid
        super().__init__(f"Process already started (pid={pid}){_describe(command)}")


class UnknownSignalError(UsageError, ValueError):
    """A symbolic signal name is not present in the signal table."""

    def __init__(self, name: Any) -> None:
        self.name = name
        super().__init__(f"Unknown signal: {name!r}")


class RedirectionError(CmdctlError):
    """A redirection target could not be honoured under the selected policy.

    Attributes:
        command: Command whose start was refused
        stream: "input", "output" or "error"
        path: The file that triggered the refusal
    """

    def __init__(
        self,
        message: str,
        command: Command | None = None,
        stream: str = "",
        path: str = "",
    ) -> None:
        self.command = command
        self.stream = stream
        self.path = path
        super().__init__(f"{message}{_describe(command)}")


class InputMissingError(RedirectionError, FileNotFoundError):
    """The input path does not exist and the policy is "error"."""
    pass


class OutputExistsError(RedirectionError, FileExistsError):
    """An output or error path exists and the policy is "error"."""
    pass
