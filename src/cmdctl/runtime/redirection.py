"""I/O redirection resolution.

Turns the caller's input/output/error targets into the objects handed to
``subprocess.Popen``. Accepted targets:

- ``Redirect.DISCARD`` or None: null device
- ``Redirect.INHERIT``: the caller's own stream
- ``Redirect.PIPE``: a new pipe, reachable through the Process accessors
- an open stream (anything with ``fileno()``) or an int file descriptor
- a path (``str`` or ``os.PathLike``); plain strings are always paths
- ``Redirect.OUTPUT``, error only: merge stderr into stdout

Path targets go through the file policies. An "abort" policy makes
resolution return None so that start() declines without spawning; an
"error" policy raises. Every path is checked before any file is opened or
created, so a declined start leaves the filesystem as it was. Files
opened here belong to the parent only until the child has been spawned.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, Union

from ..errors import InputMissingError, OutputExistsError
from ..types import IfInputMissing, IfOutputExists, Redirect

if TYPE_CHECKING:
    from ..command import Command

__all__ = [
    "Redirections",
    "Target",
    "resolve_redirections",
]

logger = logging.getLogger(__name__)

Target = Union[Redirect, str, os.PathLike, IO[Any], int, None]


@dataclass
class Redirections:
    """Resolved Popen arguments for the three standard streams.

    Attributes:
        stdin: Value for Popen(stdin=...)
        stdout: Value for Popen(stdout=...)
        stderr: Value for Popen(stderr=...)
        opened: Files opened for path targets, closed after the spawn
    """

    stdin: Any = subprocess.DEVNULL
    stdout: Any = subprocess.DEVNULL
    stderr: Any = subprocess.DEVNULL
    opened: list[IO[bytes]] = field(default_factory=list)

    def close_opened(self) -> None:
        """Close the parent's copies of files opened for path targets."""
        while self.opened:
            self.opened.pop().close()


def _is_path(target: Any) -> bool:
    return isinstance(target, (str, os.PathLike)) and not isinstance(target, Redirect)


def _keyword_target(target: Any, stream: str) -> Any:
    """Map keyword targets and streams; returns NotImplemented for paths."""
    if target is None or target is Redirect.DISCARD:
        return subprocess.DEVNULL
    if target is Redirect.INHERIT:
        return None
    if target is Redirect.PIPE:
        return subprocess.PIPE
    if target is Redirect.OUTPUT:
        if stream != "error":
            raise ValueError(f"Redirect.OUTPUT is only valid for the error stream, not {stream}")
        return subprocess.STDOUT
    if isinstance(target, bool):
        raise TypeError(f"Invalid {stream} redirection target: {target!r}")
    if isinstance(target, int):
        return target
    if _is_path(target):
        return NotImplemented
    if hasattr(target, "fileno"):
        return target
    raise TypeError(f"Invalid {stream} redirection target: {target!r}")


def _input_allowed(path: Path, policy: IfInputMissing, command: Command | None) -> bool:
    """Apply the missing-input policy without touching the file."""
    if path.exists() or policy is IfInputMissing.CREATE:
        return True
    if policy is IfInputMissing.ERROR:
        raise InputMissingError(
            f"Input file does not exist: {path}",
            command=command,
            stream="input",
            path=str(path),
        )
    logger.info(f"Input file {path} does not exist, not starting {command}")
    return False


def _output_allowed(
    path: Path,
    policy: IfOutputExists,
    stream: str,
    command: Command | None,
) -> bool:
    """Apply the existing-output policy without touching the file."""
    if policy in (IfOutputExists.TRUNCATE, IfOutputExists.APPEND) or not path.exists():
        return True
    if policy is IfOutputExists.ERROR:
        raise OutputExistsError(
            f"{stream.capitalize()} file already exists: {path}",
            command=command,
            stream=stream,
            path=str(path),
        )
    logger.info(f"{stream.capitalize()} file {path} exists, not starting {command}")
    return False


def _open_input(path: Path, created: list[Path]) -> IO[bytes]:
    if not path.exists():
        logger.debug(f"Creating missing input file {path}")
        path.touch(exist_ok=False)
        created.append(path)
    return open(path, "rb")


def _open_output(path: Path, policy: IfOutputExists, created: list[Path]) -> IO[bytes]:
    existed = path.exists()
    if policy is IfOutputExists.TRUNCATE:
        handle = open(path, "wb")
    elif policy is IfOutputExists.APPEND:
        handle = open(path, "ab")
    else:
        # Appeared since the check: FileExistsError
        handle = open(path, "xb")
    if not existed:
        created.append(path)
    return handle


def resolve_redirections(
    input: Target = Redirect.DISCARD,
    output: Target = Redirect.DISCARD,
    error: Target = Redirect.DISCARD,
    *,
    if_input_does_not_exist: IfInputMissing | str = IfInputMissing.ABORT,
    if_output_exists: IfOutputExists | str = IfOutputExists.ABORT,
    if_error_exists: IfOutputExists | str = IfOutputExists.ABORT,
    command: Command | None = None,
) -> Redirections | None:
    """Resolve the three redirection targets.

    All three targets are classified and their file policies applied
    first; files are only opened (and created or truncated) once every
    stream is allowed to proceed.

    Args:
        input: Target for the child's stdin
        output: Target for the child's stdout
        error: Target for the child's stderr
        if_input_does_not_exist: Policy for a missing input path
        if_output_exists: Policy for an existing output path
        if_error_exists: Policy for an existing error path
        command: Command being started, for messages only

    Returns:
        Resolved Redirections, or None if a policy declined the start

    Raises:
        InputMissingError: Missing input path under the "error" policy
        OutputExistsError: Existing output/error path under the "error" policy
    """
    input_policy = IfInputMissing(if_input_does_not_exist)
    output_policy = IfOutputExists(if_output_exists)
    error_policy = IfOutputExists(if_error_exists)

    result = Redirections()
    result.stdin = _keyword_target(input, "input")
    result.stdout = _keyword_target(output, "output")
    result.stderr = _keyword_target(error, "error")

    input_path = Path(input) if result.stdin is NotImplemented else None
    output_path = Path(output) if result.stdout is NotImplemented else None
    error_path = Path(error) if result.stderr is NotImplemented else None

    if (
        error_path is not None
        and output_path is not None
        and os.path.abspath(error_path) == os.path.abspath(output_path)
    ):
        # Same file as stdout: share one descriptor
        result.stderr = subprocess.STDOUT
        error_path = None

    if input_path is not None and not _input_allowed(input_path, input_policy, command):
        return None
    if output_path is not None and not _output_allowed(
        output_path, output_policy, "output", command
    ):
        return None
    if error_path is not None and not _output_allowed(
        error_path, error_policy, "error", command
    ):
        return None

    created: list[Path] = []
    try:
        if input_path is not None:
            result.stdin = _open_input(input_path, created)
            result.opened.append(result.stdin)
        if output_path is not None:
            result.stdout = _open_output(output_path, output_policy, created)
            result.opened.append(result.stdout)
        if error_path is not None:
            result.stderr = _open_output(error_path, error_policy, created)
            result.opened.append(result.stderr)
    except BaseException:
        result.close_opened()
        for path in created:
            path.unlink(missing_ok=True)
        raise

    return result
