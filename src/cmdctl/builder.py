"""Declarative command builder.

An option schema plus a program path become a factory producing
``Command`` objects. Option values given as keyword arguments are turned
into a flat argument vector:

- flag option: the token once when the value is truthy
- value option: ``token, value``; None contributes nothing
- multiple value option: ``token, item`` per item, in order; with a
  ``stringify`` converter ``token, stringify(items)`` once instead

Positional arguments are appended after the options (or put in front
with ``rest_first=True``). Schemas are checked when the factory is
defined, never at call time.

Example:
    grep = define_command(
        "grep",
        "/usr/bin/grep",
        flag("ignore_case", "-i"),
        flag("count", "-c"),
        value("pattern", "-e", multiple=True),
        value("max_count", "-m"),
        documentation="Search files for lines matching patterns.",
    )
    cmd = grep("notes.txt", ignore_case=True, pattern=["todo", "fixme"])
    # /usr/bin/grep -i -e todo -e fixme notes.txt
"""

from __future__ import annotations

import inspect
import keyword
import logging
import os
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .command import Command, PathLike, to_argument
from .environment import EnvironmentSpec
from .errors import CommandDefinitionError

__all__ = [
    "CommandFactory",
    "Option",
    "OptionDeclaration",
    "OptionKind",
    "define_command",
    "flag",
    "value",
]

logger = logging.getLogger(__name__)

# Parameters every factory takes in addition to its options
RESERVED_PARAMETERS = frozenset({"directory", "environment"})
# Name of the positional arguments parameter in factory signatures
REST_PARAMETER = "rest"

_DECLARATION_KEYS = frozenset({"name", "kind", "token", "multiple", "stringify"})


class OptionKind(str, Enum):
    """Shape of a declared option."""

    FLAG = "flag"
    VALUE = "value"


@dataclass(frozen=True)
class Option:
    """One declared command line option.

    Attributes:
        name: Keyword argument name of the factory
        kind: FLAG or VALUE
        token: Literal token emitted (the flag itself, or the value prefix)
        multiple: VALUE only, the option takes a collection
        stringify: VALUE only, converter applied before final stringification
    """

    name: str
    kind: OptionKind
    token: str
    multiple: bool = False
    stringify: Callable[[Any], Any] | None = None

    def __post_init__(self) -> None:
        """Accept kind as a plain string; bad values are reported by define_command."""
        if isinstance(self.kind, str) and not isinstance(self.kind, OptionKind):
            if self.kind in {kind.value for kind in OptionKind}:
                object.__setattr__(self, "kind", OptionKind(self.kind))

    def render(self, bound: Any) -> list[str]:
        """Return the argv tokens this option contributes for a bound value."""
        if bound is None:
            return []

        if self.kind is OptionKind.FLAG:
            return [self.token] if bound else []

        if self.multiple:
            if isinstance(bound, (str, bytes, os.PathLike)) or not isinstance(bound, Iterable):
                items = [bound]
            else:
                items = list(bound)
            if not items:
                return []
            if self.stringify is not None:
                return [self.token, to_argument(self.stringify(items))]
            tokens: list[str] = []
            for item in items:
                tokens.extend((self.token, to_argument(item)))
            return tokens

        if self.stringify is not None:
            bound = self.stringify(bound)
        return [self.token, to_argument(bound)]


OptionDeclaration = Union[Option, Mapping[str, Any]]


def flag(name: str, token: str) -> Option:
    """Declare a flag option."""
    return Option(name=name, kind=OptionKind.FLAG, token=token)


def value(
    name: str,
    token: str,
    *,
    multiple: bool = False,
    stringify: Callable[[Any], Any] | None = None,
) -> Option:
    """Declare a value option."""
    return Option(
        name=name,
        kind=OptionKind.VALUE,
        token=token,
        multiple=multiple,
        stringify=stringify,
    )


def _coerce_declaration(declaration: Any, command: str) -> Option:
    """Turn an Option or a mapping declaration into a validated Option.

    Raises:
        CommandDefinitionError: If the declaration is malformed
    """
    if isinstance(declaration, Option):
        option = declaration
    elif isinstance(declaration, Mapping):
        unknown = set(declaration) - _DECLARATION_KEYS
        if unknown:
            raise CommandDefinitionError(
                f"Unknown option declaration keys {sorted(unknown)}",
                command=command,
                option=declaration,
            )
        option = Option(
            name=declaration.get("name"),
            kind=declaration.get("kind"),
            token=declaration.get("token"),
            multiple=declaration.get("multiple", False),
            stringify=declaration.get("stringify"),
        )
    else:
        raise CommandDefinitionError(
            f"Unrecognized option declaration {declaration!r}",
            command=command,
            option=declaration,
        )

    try:
        kind = OptionKind(option.kind)
    except ValueError:
        raise CommandDefinitionError(
            f"Option kind must be 'flag' or 'value', got {option.kind!r}",
            command=command,
            option=declaration,
        ) from None

    name = option.name
    if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
        raise CommandDefinitionError(
            f"Option name must be a Python identifier, got {name!r}",
            command=command,
            option=declaration,
        )
    if name in RESERVED_PARAMETERS or name == REST_PARAMETER:
        raise CommandDefinitionError(
            f"Option name {name!r} is reserved",
            command=command,
            option=declaration,
        )
    if not isinstance(option.token, str) or not option.token:
        raise CommandDefinitionError(
            f"Option {name!r} needs a non-empty string token",
            command=command,
            option=declaration,
        )
    if not isinstance(option.multiple, bool):
        raise CommandDefinitionError(
            f"Option {name!r}: multiple must be a bool",
            command=command,
            option=declaration,
        )
    if option.stringify is not None and not callable(option.stringify):
        raise CommandDefinitionError(
            f"Option {name!r}: stringify must be callable",
            command=command,
            option=declaration,
        )
    if kind is OptionKind.FLAG and (option.multiple or option.stringify is not None):
        raise CommandDefinitionError(
            f"Flag option {name!r} takes neither multiple nor stringify",
            command=command,
            option=declaration,
        )

    return option


class CommandFactory:
    """Callable producing Commands from an option schema.

    Calling the factory takes positional arguments (appended as-is), the
    declared options as keyword arguments, and ``directory`` and
    ``environment`` which go straight into the Command.
    """

    def __init__(
        self,
        name: str,
        program: PathLike,
        options: tuple[Option, ...],
        documentation: str = "",
        rest_first: bool = False,
    ) -> None:
        self.__name__ = name
        self.__qualname__ = name
        self.__doc__ = documentation or None
        self.name = name
        self.program = os.fspath(program)
        self.options = options
        self.documentation = documentation
        self.rest_first = rest_first
        self._by_name = {option.name: option for option in options}
        self.__signature__ = self._make_signature()

    def _make_signature(self) -> inspect.Signature:
        parameters = [inspect.Parameter(REST_PARAMETER, inspect.Parameter.VAR_POSITIONAL)]
        for option in self.options:
            parameters.append(
                inspect.Parameter(option.name, inspect.Parameter.KEYWORD_ONLY, default=None)
            )
        for reserved in sorted(RESERVED_PARAMETERS):
            parameters.append(
                inspect.Parameter(reserved, inspect.Parameter.KEYWORD_ONLY, default=None)
            )
        return inspect.Signature(parameters, return_annotation=Command)

    def build_argv(self, rest: Iterable[Any], bound: Mapping[str, Any]) -> list[str]:
        """Compute the argument vector for positional args and bound options."""
        unknown = set(bound) - set(self._by_name)
        if unknown:
            raise TypeError(
                f"{self.name}() got unexpected keyword argument(s): "
                + ", ".join(sorted(unknown))
            )

        declared: list[str] = []
        for option in self.options:
            declared.extend(option.render(bound.get(option.name)))

        fragment = [to_argument(arg) for arg in rest]
        if self.rest_first:
            return fragment + declared
        return declared + fragment

    def __call__(
        self,
        *rest: Any,
        directory: PathLike | None = None,
        environment: EnvironmentSpec = None,
        **bound: Any,
    ) -> Command:
        argv = self.build_argv(rest, bound)
        return Command(
            program=self.program,
            argv=tuple(argv),
            directory=directory,
            environment=environment,
            documentation=self.documentation,
        )

    def __repr__(self) -> str:
        names = ", ".join(option.name for option in self.options)
        return f"<CommandFactory {self.name} program={self.program} options=[{names}]>"


def define_command(
    name: str,
    program: PathLike,
    *options: OptionDeclaration,
    documentation: str = "",
    rest_first: bool = False,
) -> CommandFactory:
    """Define a command factory.

    Args:
        name: Factory name, used in error messages
        program: Executable the produced Commands run
        *options: Option objects or mappings with name/kind/token/multiple/stringify
        documentation: Copied into every produced Command
        rest_first: Put positional arguments before the options

    Returns:
        The factory

    Raises:
        CommandDefinitionError: If program or any option declaration is malformed
    """
    if not isinstance(program, (str, os.PathLike)) or not os.fspath(program):
        raise CommandDefinitionError(f"Invalid program {program!r}", command=name)

    validated: list[Option] = []
    seen: set[str] = set()
    for declaration in options:
        option = _coerce_declaration(declaration, name)
        if option.name in seen:
            raise CommandDefinitionError(
                f"Duplicate option {option.name!r}",
                command=name,
                option=declaration,
            )
        seen.add(option.name)
        validated.append(option)

    logger.debug(f"Defined command {name} ({program}) with {len(validated)} option(s)")
    return CommandFactory(
        name=name,
        program=program,
        options=tuple(validated),
        documentation=documentation,
        rest_first=rest_first,
    )
