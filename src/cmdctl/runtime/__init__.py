"""Runtime module for starting and supervising processes.

Provides the Process controller (start, status, signal, wait, streams,
close) and redirection resolution for the three standard streams.
"""

from __future__ import annotations

from .controller import IS_WINDOWS, Process, StatusCallback, start
from .redirection import Redirections, Target, resolve_redirections

__all__ = [
    "IS_WINDOWS",
    "Process",
    "Redirections",
    "StatusCallback",
    "Target",
    "resolve_redirections",
    "start",
]
