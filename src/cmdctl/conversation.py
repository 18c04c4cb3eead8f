"""Scripted conversations.

Builds Commands that run a shell with a generated script performing a
fixed sequence of timed I/O actions. These are test fixtures for the
process controller: a child that says "ping", expects "pong" and exits
is easy to describe and behaves the same every time.

Known limitations, kept on purpose:
- Clauses are not validated; unrecognized ones produce no statement.
- Text is placed inside single quotes without escaping, so a single
  quote or a control character in a clause corrupts the script.
- The script travels as one ``-c`` argument and is bounded by the
  host's command line length limit.

Example:
    cmd = conversation(Say("ping"), Expect("pong"), Exit(0))
    process = cmd.start(input=Redirect.PIPE, output=Redirect.PIPE, error=Redirect.PIPE)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from .command import Command
from .config import get_config

__all__ = [
    "Clause",
    "Complain",
    "Exit",
    "Expect",
    "Say",
    "Sleep",
    "conversation",
    "generate_script",
]

logger = logging.getLogger(__name__)

# say: one line to stdout; complain: one line to stderr;
# expect_line: read one line, report a mismatch on stderr and carry on
_PRELUDE = (
    "say() { printf '%s\\n' \"$1\"; }\n"
    "complain() { printf '%s\\n' \"$1\" >&2; }\n"
    "expect_line() {\n"
    "  IFS= read -r line\n"
    "  if [ \"$line\" != \"$1\" ]; then\n"
    "    complain \"expected: $1 got: $line\"\n"
    "  fi\n"
    "}\n"
)


@dataclass(frozen=True)
class Sleep:
    """Pause for a number of seconds."""

    seconds: float


@dataclass(frozen=True)
class Say:
    """Write one line to stdout."""

    text: str


@dataclass(frozen=True)
class Complain:
    """Write one line to stderr."""

    text: str


@dataclass(frozen=True)
class Expect:
    """Read one line from stdin and compare it with text."""

    text: str


@dataclass(frozen=True)
class Exit:
    """End the script with an exit code."""

    code: int = 0


Clause = Union[Sleep, Say, Complain, Expect, Exit, tuple]


def _statement(clause: Any) -> str | None:
    """Shell statement for one clause, None for anything unrecognized."""
    if isinstance(clause, tuple) and len(clause) == 2:
        keyword, argument = clause
        clause = {
            "sleep": Sleep,
            "say": Say,
            "complain": Complain,
            "expect": Expect,
            "exit": Exit,
        }.get(str(keyword).lower(), lambda _: None)(argument)

    if isinstance(clause, Sleep):
        return f"sleep {clause.seconds}"
    if isinstance(clause, Say):
        return f"say '{clause.text}'"
    if isinstance(clause, Complain):
        return f"complain '{clause.text}'"
    if isinstance(clause, Expect):
        return f"expect_line '{clause.text}'"
    if isinstance(clause, Exit):
        return f"exit {clause.code}"
    return None


def generate_script(*clauses: Clause) -> str:
    """Generate the shell script for clauses, in order."""
    lines = [_PRELUDE]
    for clause in clauses:
        statement = _statement(clause)
        if statement is None:
            logger.debug(f"Skipping unrecognized conversation clause {clause!r}")
            continue
        lines.append(statement + "\n")
    return "".join(lines)


def conversation(
    *clauses: Clause,
    shell: str | None = None,
    documentation: str = "",
) -> Command:
    """Build a Command running the scripted conversation.

    Args:
        *clauses: Sleep, Say, Complain, Expect and Exit clauses (or
            ``(keyword, argument)`` tuples)
        shell: Interpreter (default: CMDCTL_SHELL, /bin/sh)
        documentation: Stored on the Command

    Returns:
        A Command; start it like any other
    """
    interpreter = shell or get_config().shell
    return Command(
        program=interpreter,
        argv=("-c", generate_script(*clauses)),
        documentation=documentation or f"Scripted conversation ({len(clauses)} clauses)",
    )
