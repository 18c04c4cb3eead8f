"""Environment bindings for child processes.

A binding sequence may start with a policy marker:

- ``EnvPolicy.APPEND``: bindings are laid over the caller's environment.
- ``EnvPolicy.SUPERSEDE``: bindings are the whole child environment.

A non-empty sequence without a marker supersedes. An empty sequence, or
no sequence at all, lets the child inherit the caller's environment
unmodified.

Example:
    Environment.parse([EnvPolicy.APPEND, "LANG=C", ("DEBUG", 1)])
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .errors import EnvironmentBindingError

__all__ = ["EnvPolicy", "Environment", "EnvironmentSpec"]


class EnvPolicy(str, Enum):
    """How bindings combine with the caller's environment."""

    INHERIT = "inherit"
    APPEND = "append"
    SUPERSEDE = "supersede"


# Markers accepted in first position
_MARKERS = {
    EnvPolicy.APPEND.value: EnvPolicy.APPEND,
    EnvPolicy.SUPERSEDE.value: EnvPolicy.SUPERSEDE,
}

EnvironmentSpec = Union["Environment", Mapping[str, Any], Iterable[Any], None]


def _binding_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, os.PathLike)):
        return os.fsdecode(value)
    return str(value)


def _parse_binding(binding: Any) -> tuple[str, str]:
    if isinstance(binding, str):
        name, sep, value = binding.partition("=")
        if not sep or not name:
            raise EnvironmentBindingError(binding)
        return name, value
    if isinstance(binding, tuple) and len(binding) == 2:
        name, value = binding
        if not isinstance(name, str) or not name or "=" in name:
            raise EnvironmentBindingError(binding)
        return name, _binding_value(value)
    raise EnvironmentBindingError(binding)


@dataclass(frozen=True)
class Environment:
    """Normalized environment policy plus ordered bindings.

    Attributes:
        policy: INHERIT, APPEND or SUPERSEDE
        bindings: Ordered (name, value) pairs, duplicates kept
    """

    policy: EnvPolicy = EnvPolicy.INHERIT
    bindings: tuple[tuple[str, str], ...] = ()

    @classmethod
    def parse(cls, spec: EnvironmentSpec) -> Environment:
        """Build an Environment from bindings, a mapping or None."""
        if spec is None:
            return cls()
        if isinstance(spec, Environment):
            return spec
        if isinstance(spec, Mapping):
            items: list[Any] = list(spec.items())
        elif isinstance(spec, (str, bytes)):
            raise EnvironmentBindingError(spec)
        else:
            items = list(spec)

        if not items:
            return cls()

        policy = EnvPolicy.SUPERSEDE
        first = items[0]
        if isinstance(first, EnvPolicy):
            if first is EnvPolicy.INHERIT:
                raise EnvironmentBindingError(first)
            policy = first
            items = items[1:]
        elif isinstance(first, str) and first in _MARKERS:
            policy = _MARKERS[first]
            items = items[1:]

        return cls(policy=policy, bindings=tuple(_parse_binding(b) for b in items))

    @property
    def inherits(self) -> bool:
        return self.policy is EnvPolicy.INHERIT

    def resolve(self, base: Mapping[str, str] | None = None) -> dict[str, str] | None:
        """Compute the environment mapping handed to the child.

        Args:
            base: Environment to append to (default: os.environ)

        Returns:
            None when the child inherits, otherwise the full mapping
        """
        if self.policy is EnvPolicy.INHERIT:
            return None

        result: dict[str, str] = {}
        if self.policy is EnvPolicy.APPEND:
            result.update(os.environ if base is None else base)
        for name, value in self.bindings:
            result[name] = value
        return result

    def __repr__(self) -> str:
        names = ",".join(name for name, _ in self.bindings)
        return f"Environment(policy={self.policy.value}, names=[{names}])"
