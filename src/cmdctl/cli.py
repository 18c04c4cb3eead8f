"""cmdctl command line entry point.

Usage:
    cmdctl signals
    cmdctl run [--stdin T] [--stdout T] [--stderr T] [--env NAME=VALUE ...] PROGRAM [ARGS ...]
    cmdctl converse say:ping expect:pong exit:0

Redirection targets are ``discard``, ``inherit``, ``output`` (stderr only)
or a file path. The exit status is the child's exit code, or 128 plus the
signal number when the child was killed by a signal.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from typing import Any

from . import __version__
from .command import Command
from .config import get_config
from .conversation import conversation
from .environment import EnvPolicy
from .errors import CmdctlError
from .logs import setup_logging
from .runtime import Process
from .signals import SIGNALS
from .types import IfInputMissing, IfOutputExists, ProcessState, Redirect

__all__ = ["main", "build_parser"]

logger = logging.getLogger(__name__)

# Exit status when start() declined to spawn
EXIT_NOT_STARTED = 1
# Exit status for cmdctl's own errors
EXIT_ERROR = 2

_KEYWORD_TARGETS = {
    "discard": Redirect.DISCARD,
    "inherit": Redirect.INHERIT,
    "output": Redirect.OUTPUT,
}


def _parse_target(value: str) -> Any:
    """Keyword target or path."""
    return _KEYWORD_TARGETS.get(value, value)


def _parse_clause(text: str) -> tuple[str, Any]:
    """Parse "keyword:argument" into a conversation clause tuple."""
    keyword, _, argument = text.partition(":")
    keyword = keyword.strip().lower()
    if keyword == "sleep":
        return keyword, float(argument)
    if keyword == "exit":
        return keyword, int(argument or 0)
    return keyword, argument


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cmdctl",
        description="Start, supervise and script external processes.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    subparsers.add_parser("signals", help="Print the signal table")

    run = subparsers.add_parser("run", help="Run a program and report its status")
    run.add_argument("--cwd", default=None, help="Working directory")
    run.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Environment binding (repeatable)",
    )
    run.add_argument(
        "--env-policy",
        choices=[EnvPolicy.APPEND.value, EnvPolicy.SUPERSEDE.value],
        default=EnvPolicy.APPEND.value,
        help="How --env bindings combine with the current environment",
    )
    run.add_argument("--stdin", type=_parse_target, default=Redirect.INHERIT)
    run.add_argument("--stdout", type=_parse_target, default=Redirect.INHERIT)
    run.add_argument("--stderr", type=_parse_target, default=Redirect.INHERIT)
    run.add_argument(
        "--if-input-does-not-exist",
        choices=[policy.value for policy in IfInputMissing],
        default=None,
    )
    run.add_argument(
        "--if-output-exists",
        choices=[policy.value for policy in IfOutputExists],
        default=None,
    )
    run.add_argument(
        "--if-error-exists",
        choices=[policy.value for policy in IfOutputExists],
        default=None,
    )
    run.add_argument("program")
    run.add_argument("args", nargs=argparse.REMAINDER)

    converse = subparsers.add_parser("converse", help="Run a scripted conversation")
    converse.add_argument(
        "clauses",
        nargs="+",
        metavar="CLAUSE",
        help="say:TEXT, complain:TEXT, expect:TEXT, sleep:SECONDS or exit:CODE",
    )

    return parser


def _exit_status(process: Process) -> int:
    state, payload = process.status()
    if state is ProcessState.EXITED:
        return payload or 0
    if state is ProcessState.SIGNALED:
        return 128 + (payload or 0)
    return EXIT_ERROR


def _run(args: argparse.Namespace) -> int:
    environment = None
    if args.env:
        environment = [EnvPolicy(args.env_policy), *args.env]

    command = Command(
        program=args.program,
        argv=args.args,
        directory=args.cwd,
        environment=environment,
    )
    process = Process(command)
    started = process.start(
        input=args.stdin,
        output=args.stdout,
        error=args.stderr,
        if_input_does_not_exist=args.if_input_does_not_exist,
        if_output_exists=args.if_output_exists,
        if_error_exists=args.if_error_exists,
    )
    if started is None:
        logger.warning(f"Not started: {command}")
        return EXIT_NOT_STARTED

    with process:
        process.wait()
    logger.info(f"{command} finished: {process!r}")
    return _exit_status(process)


def _converse(args: argparse.Namespace) -> int:
    command = conversation(*(_parse_clause(text) for text in args.clauses))
    process = Process(command)
    process.start(
        input=Redirect.INHERIT,
        output=Redirect.INHERIT,
        error=Redirect.INHERIT,
    )
    process.wait()
    return _exit_status(process)


def _signals() -> int:
    for name, number in sorted(SIGNALS.items(), key=lambda item: (item[1], item[0])):
        print(f"{number:>3} {name}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_config()
    setup_logging(config, verbose=args.verbose)
    logger.debug(f"cmdctl {__version__}: {config}")

    try:
        if args.subcommand == "signals":
            return _signals()
        if args.subcommand == "run":
            return _run(args)
        return _converse(args)
    except (CmdctlError, OSError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
