"""cmdctl environment variable configuration.

Environment variables:
    CMDCTL_SHELL: Shell used to run scripted conversations
        - default /bin/sh

    CMDCTL_IF_INPUT_DOES_NOT_EXIST: Default policy for a missing input file
        - abort = start() returns None, nothing is spawned (default)
        - error = start() raises InputMissingError
        - create = an empty file is created and used

    CMDCTL_IF_OUTPUT_EXISTS: Default policy for an existing output/error file
        - abort = start() returns None, nothing is spawned (default)
        - error = start() raises OutputExistsError
        - truncate = the file is overwritten
        - append = output is appended to the file

    CMDCTL_NEW_SESSION: Start children in a new session/process group
        - true/1/yes = on
        - false/0/no = off (default)

    CMDCTL_LOG_DEBUG: Debug logging
        - true/1/yes = DEBUG level, written to a file in the temp directory
        - false/0/no = INFO level on stderr (default)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .types import IfInputMissing, IfOutputExists

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_SHELL = "/bin/sh"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_input_policy(value: str | None) -> IfInputMissing:
    if not value:
        return IfInputMissing.ABORT
    return IfInputMissing.from_string(value)


def _parse_output_policy(value: str | None) -> IfOutputExists:
    if not value:
        return IfOutputExists.ABORT
    return IfOutputExists.from_string(value)


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "cmdctl"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"cmdctl_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """cmdctl configuration.

    Attributes:
        shell: Interpreter for scripted conversations
        if_input_does_not_exist: Default missing-input policy
        if_output_exists: Default existing-output policy (output and error)
        new_session: Start children in their own session
        log_debug: Debug logging to a file
        log_file: Log file path (set when log_debug is on)
    """

    shell: str = DEFAULT_SHELL
    if_input_does_not_exist: IfInputMissing = IfInputMissing.ABORT
    if_output_exists: IfOutputExists = IfOutputExists.ABORT
    new_session: bool = False
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(shell={self.shell}, "
            f"if_input_does_not_exist={self.if_input_does_not_exist.value}, "
            f"if_output_exists={self.if_output_exists.value}, "
            f"new_session={self.new_session}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("CMDCTL_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        shell=os.environ.get("CMDCTL_SHELL") or DEFAULT_SHELL,
        if_input_does_not_exist=_parse_input_policy(
            os.environ.get("CMDCTL_IF_INPUT_DOES_NOT_EXIST")
        ),
        if_output_exists=_parse_output_policy(os.environ.get("CMDCTL_IF_OUTPUT_EXISTS")),
        new_session=_parse_bool(os.environ.get("CMDCTL_NEW_SESSION"), default=False),
        log_debug=log_debug,
        log_file=log_file,
    )


# Lazily loaded global instance
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
