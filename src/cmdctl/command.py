"""Command descriptor.

A Command describes one invocation of an external program: what to run,
with which arguments, where, and with which environment. It is frozen;
starting it is the job of ``cmdctl.runtime.Process``, which owns the live
handle so the descriptor itself never changes.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

from .environment import Environment, EnvironmentSpec

if TYPE_CHECKING:
    from .runtime.controller import Process

__all__ = ["Command", "PathLike", "to_argument"]

PathLike = Union[str, os.PathLike]


def to_argument(value: Any) -> str:
    """Convert a value to a single argv element.

    Priority: strings unchanged, enum members by their string value (or
    lower-cased name), paths and bytes through os.fsdecode, everything
    else through str().
    """
    if isinstance(value, str) and not isinstance(value, Enum):
        return value
    if isinstance(value, Enum):
        if isinstance(value.value, str):
            return value.value
        return value.name.lower()
    if isinstance(value, (os.PathLike, bytes)):
        return os.fsdecode(value)
    return str(value)


@dataclass(frozen=True)
class Command:
    """Specification of an external program invocation.

    Attributes:
        program: Path or name of the executable
        argv: Arguments passed after the program, verbatim
        directory: Working directory (None = inherit the caller's)
        environment: Environment policy and bindings
        documentation: Free text, informational only

    Example:
        cmd = Command("ls", ["-l", Path("/tmp")], environment=["append", "LC_ALL=C"])
        process = cmd.start(output=Redirect.PIPE)
    """

    program: PathLike
    argv: tuple[str, ...] = ()
    directory: Path | None = None
    environment: Environment = field(default_factory=Environment)
    documentation: str = ""

    def __post_init__(self) -> None:
        """Coerce arguments, directory and environment to their canonical types."""
        if not isinstance(self.program, (str, os.PathLike)):
            raise TypeError(
                f"program must be a str or path, got {type(self.program).__name__}"
            )
        object.__setattr__(self, "program", os.fspath(self.program))

        if isinstance(self.argv, (str, bytes)):
            raise TypeError("argv must be a sequence of arguments, not a single string")
        object.__setattr__(self, "argv", tuple(to_argument(a) for a in self.argv))

        if self.directory is not None and not isinstance(self.directory, Path):
            object.__setattr__(self, "directory", Path(self.directory))

        if not isinstance(self.environment, Environment):
            object.__setattr__(self, "environment", Environment.parse(self.environment))

    @classmethod
    def of(
        cls,
        program: PathLike,
        *argv: Any,
        directory: PathLike | None = None,
        environment: EnvironmentSpec = None,
        documentation: str = "",
    ) -> Command:
        """Build a Command from positional arguments."""
        return cls(
            program=program,
            argv=argv,
            directory=directory,
            environment=environment,
            documentation=documentation,
        )

    @property
    def args(self) -> list[str]:
        """Full argument vector, program first."""
        return [str(self.program), *self.argv]

    def describe(self) -> str:
        """Shell-quoted rendering used in log lines and error messages."""
        return shlex.join(self.args)

    def start(self, **kwargs: Any) -> Process | None:
        """Start a fresh Process for this command.

        Keyword arguments are those of ``Process.start``.
        """
        from .runtime.controller import Process

        return Process(self).start(**kwargs)

    def __str__(self) -> str:
        return self.describe()
