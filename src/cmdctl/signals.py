"""Signal table.

Maps symbolic names to the host's signal numbers. The table is built from
whatever the ``signal`` module of the running interpreter defines, so
signals a platform lacks (EMT on Linux, most of them on Windows) are
simply absent. Job-control signals (stop, tstp, cont) are an extension
that only exists on hosts supporting job control.

Lookups accept ``"term"``, ``"TERM"``, ``"SIGTERM"``, ``":term"``,
``"terminate"``, ``signal.SIGTERM`` or ``15``.
"""

from __future__ import annotations

import logging
import signal
from typing import Union

from .errors import UnknownSignalError

__all__ = [
    "SIGNALS",
    "SignalLike",
    "normalize_signal_name",
    "register_signal",
    "resolve_signal",
]

logger = logging.getLogger(__name__)

SignalLike = Union[int, str, signal.Signals]

# Short name -> attribute on the signal module
_STANDARD_SIGNALS: tuple[tuple[str, str], ...] = (
    ("hup", "SIGHUP"),
    ("int", "SIGINT"),
    ("quit", "SIGQUIT"),
    ("ill", "SIGILL"),
    ("trap", "SIGTRAP"),
    ("abrt", "SIGABRT"),
    ("emt", "SIGEMT"),
    ("fpe", "SIGFPE"),
    ("kill", "SIGKILL"),
    ("bus", "SIGBUS"),
    ("segv", "SIGSEGV"),
    ("sys", "SIGSYS"),
    ("pipe", "SIGPIPE"),
    ("alrm", "SIGALRM"),
    ("term", "SIGTERM"),
)

_JOB_CONTROL_SIGNALS: tuple[tuple[str, str], ...] = (
    ("stop", "SIGSTOP"),
    ("tstp", "SIGTSTP"),
    ("cont", "SIGCONT"),
)

_ALIASES: dict[str, str] = {
    "hangup": "hup",
    "interrupt": "int",
    "illegal": "ill",
    "abort": "abrt",
    "iot": "abrt",
    "emulation": "emt",
    "arithmetic": "fpe",
    "segfault": "segv",
    "alarm": "alrm",
    "terminate": "term",
    "terminal-stop": "tstp",
    "continue": "cont",
}

SIGNALS: dict[str, int] = {}


def _build_table() -> None:
    for name, attribute in _STANDARD_SIGNALS:
        number = getattr(signal, attribute, None)
        if number is not None:
            SIGNALS[name] = int(number)

    # Job control only where the host has all three
    if all(hasattr(signal, attribute) for _, attribute in _JOB_CONTROL_SIGNALS):
        for name, attribute in _JOB_CONTROL_SIGNALS:
            SIGNALS[name] = int(getattr(signal, attribute))


_build_table()


def normalize_signal_name(name: str) -> str:
    """Reduce a symbolic signal name to its table key form.

    Strips whitespace and a leading ``:``, lower-cases, drops a ``sig``
    prefix, maps ``_`` to ``-`` and expands long aliases.
    """
    key = name.strip().lstrip(":").lower().replace("_", "-")
    if key.startswith("sig") and key[3:] in SIGNALS:
        key = key[3:]
    return _ALIASES.get(key, key)


def register_signal(name: str, number: int) -> None:
    """Add a name to the table.

    The table only grows: re-registering a name with the number it already
    has is accepted, rebinding it to another number raises ValueError.
    """
    key = normalize_signal_name(name)
    existing = SIGNALS.get(key)
    if existing is not None and existing != number:
        raise ValueError(
            f"Signal {key!r} is already bound to {existing}, refusing to rebind to {number}"
        )
    SIGNALS[key] = int(number)
    logger.debug(f"Registered signal {key}={number}")


def resolve_signal(sig: SignalLike) -> int:
    """Resolve a signal designator to its platform number.

    Args:
        sig: A number, a ``signal.Signals`` member or a symbolic name

    Returns:
        The numeric signal

    Raises:
        UnknownSignalError: If a name is not in the table
    """
    if isinstance(sig, signal.Signals):
        return int(sig)
    if isinstance(sig, bool):
        raise UnknownSignalError(sig)
    if isinstance(sig, int):
        return sig
    if isinstance(sig, str):
        number = SIGNALS.get(normalize_signal_name(sig))
        if number is None:
            raise UnknownSignalError(sig)
        return number
    raise UnknownSignalError(sig)
