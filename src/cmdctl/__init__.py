"""cmdctl - declarative construction and supervision of external processes.

Build a Command, start it, then poll, signal, wait on and close it:

    from cmdctl import Command, Redirect, start

    process = start(Command("echo", ["hello"]), output=Redirect.PIPE)
    process.wait()
    process.status()        # (ProcessState.EXITED, 0)
    process.output.read()   # "hello\n"
    process.close()

Environment variables are documented in cmdctl.config.
"""

__version__ = "0.1.0"

from .builder import CommandFactory, Option, OptionKind, define_command, flag, value
from .command import Command, to_argument
from .conversation import Complain, Exit, Expect, Say, Sleep, conversation, generate_script
from .environment import Environment, EnvPolicy
from .errors import (
    AlreadyStartedError,
    CmdctlError,
    CommandDefinitionError,
    EnvironmentBindingError,
    InputMissingError,
    OutputExistsError,
    RedirectionError,
    UnknownSignalError,
    UsageError,
)
from .runtime import Process, start
from .signals import SIGNALS, register_signal, resolve_signal
from .types import IfInputMissing, IfOutputExists, ProcessState, Redirect

__all__ = [
    "__version__",
    # Commands
    "Command",
    "to_argument",
    "Environment",
    "EnvPolicy",
    # Builder
    "CommandFactory",
    "Option",
    "OptionKind",
    "define_command",
    "flag",
    "value",
    # Controller
    "Process",
    "ProcessState",
    "Redirect",
    "IfInputMissing",
    "IfOutputExists",
    "start",
    # Signals
    "SIGNALS",
    "register_signal",
    "resolve_signal",
    # Conversations
    "Complain",
    "Exit",
    "Expect",
    "Say",
    "Sleep",
    "conversation",
    "generate_script",
    # Errors
    "AlreadyStartedError",
    "CmdctlError",
    "CommandDefinitionError",
    "EnvironmentBindingError",
    "InputMissingError",
    "OutputExistsError",
    "RedirectionError",
    "UnknownSignalError",
    "UsageError",
]
