"""cmdctl shared type definitions.

Redirection targets, file policies and process states.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "Redirect",
    "IfInputMissing",
    "IfOutputExists",
    "ProcessState",
    "TERMINAL_STATES",
]


class Redirect(str, Enum):
    """Keyword redirection targets.

    Paths and open streams are given directly instead of an enum member.

    - DISCARD: attach the null device
    - INHERIT: share the caller's corresponding stream
    - PIPE: create a pipe, readable/writable through the Process accessors
    - OUTPUT: error only, send stderr wherever stdout goes
    """

    DISCARD = "discard"
    INHERIT = "inherit"
    PIPE = "pipe"
    OUTPUT = "output"


class IfInputMissing(str, Enum):
    """What start() does when the input path does not exist."""

    ABORT = "abort"
    ERROR = "error"
    CREATE = "create"

    @classmethod
    def from_string(cls, value: str) -> IfInputMissing:
        """Parse a policy name; unknown values give ABORT."""
        value = value.lower().strip()
        for policy in cls:
            if policy.value == value:
                return policy
        return cls.ABORT


class IfOutputExists(str, Enum):
    """What start() does when an output or error path already exists."""

    ABORT = "abort"
    ERROR = "error"
    TRUNCATE = "truncate"
    APPEND = "append"

    @classmethod
    def from_string(cls, value: str) -> IfOutputExists:
        """Parse a policy name; unknown values give ABORT."""
        value = value.lower().strip()
        for policy in cls:
            if policy.value == value:
                return policy
        return cls.ABORT


class ProcessState(str, Enum):
    """Lifecycle tag of a process.

    EXITED carries an exit code, SIGNALED a signal number; the other
    states carry nothing.
    """

    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"
    EXITED = "exited"
    SIGNALED = "signaled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({ProcessState.EXITED, ProcessState.SIGNALED})
