"""Process controller.

A Process wraps one Command and the OS process started from it:

    pending --start--> running
    running --SIGSTOP/SIGTSTP--> stopped --SIGCONT--> running
    running --exit--> exited(code)
    running --fatal signal--> signaled(signal)

Key design points:
- start() never blocks on the child; wait() is the only blocking call
- Status is re-read from the OS (os.waitpid with WNOHANG, WUNTRACED and
  WCONTINUED) on every query until a terminal state is seen, which is
  then kept
- With an on_status_change callback a watcher thread becomes the only
  party reaping the child, and queries read the state it publishes
- close() releases pipes only; it never signals or waits
- Windows has no stop/continue reporting, only running and exited
"""

from __future__ import annotations

import functools
import logging
import os
import subprocess
import sys
import threading
from collections.abc import Callable
from typing import IO, Any, Optional

import anyio

from ..command import Command
from ..config import get_config
from ..errors import AlreadyStartedError
from ..signals import SignalLike, resolve_signal
from ..types import IfInputMissing, IfOutputExists, ProcessState, Redirect
from .redirection import Target, resolve_redirections

__all__ = [
    "IS_WINDOWS",
    "Process",
    "StatusCallback",
    "start",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Callback signature: (process, new_state, payload)
StatusCallback = Callable[["Process", ProcessState, Optional[int]], None]


class Process:
    """A Command together with the OS process started from it.

    The Process owns its handle and streams exclusively. The handle is
    attached once by start() and never replaced.

    Example:
        process = Process(Command("echo", ["hello"]))
        process.start(output=Redirect.PIPE)
        process.wait()
        process.status()        # (ProcessState.EXITED, 0)
        process.output.read()   # "hello\\n"
        process.close()
    """

    def __init__(self, command: Command) -> None:
        self.command = command
        self._popen: subprocess.Popen | None = None
        self._state = ProcessState.PENDING
        self._payload: int | None = None
        self._condition = threading.Condition()
        self._watcher: threading.Thread | None = None
        self._on_status_change: StatusCallback | None = None
        # Threads currently blocked in waitpid from wait()
        self._reapers = 0

    # ------------------------------------------------------------------
    # Handle
    # ------------------------------------------------------------------

    @property
    def handle(self) -> subprocess.Popen | None:
        """The underlying Popen object, None while pending."""
        return self._popen

    @property
    def pid(self) -> int | None:
        return self._popen.pid if self._popen is not None else None

    @property
    def started(self) -> bool:
        return self._popen is not None

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(
        self,
        *,
        input: Target = Redirect.DISCARD,
        output: Target = Redirect.DISCARD,
        error: Target = Redirect.DISCARD,
        if_input_does_not_exist: IfInputMissing | str | None = None,
        if_output_exists: IfOutputExists | str | None = None,
        if_error_exists: IfOutputExists | str | None = None,
        text: bool = True,
        encoding: str | None = None,
        on_status_change: StatusCallback | None = None,
        new_session: bool | None = None,
    ) -> Process | None:
        """Spawn the command without waiting for it.

        Args:
            input: Target for stdin (see cmdctl.runtime.redirection)
            output: Target for stdout
            error: Target for stderr, Redirect.OUTPUT merges it into stdout
            if_input_does_not_exist: Missing input path policy (default from config)
            if_output_exists: Existing output path policy (default from config)
            if_error_exists: Existing error path policy (default from config)
            text: Pipes are text streams (line buffered) rather than bytes
            encoding: Encoding for text pipes (default: locale)
            on_status_change: Called from a watcher thread on every transition
            new_session: Start the child in a new session/process group

        Returns:
            self once running, or None if a redirection policy declined the
            start (the process then stays pending)

        Raises:
            AlreadyStartedError: If this Process already has a handle
            InputMissingError: Missing input file under the "error" policy
            OutputExistsError: Existing output file under the "error" policy
            OSError: If the host fails to spawn the program
        """
        if self._popen is not None:
            raise AlreadyStartedError(self.command, self._popen.pid)

        config = get_config()
        redirections = resolve_redirections(
            input,
            output,
            error,
            if_input_does_not_exist=if_input_does_not_exist or config.if_input_does_not_exist,
            if_output_exists=if_output_exists or config.if_output_exists,
            if_error_exists=if_error_exists or config.if_output_exists,
            command=self.command,
        )
        if redirections is None:
            return None

        kwargs = self._build_popen_kwargs(
            config.new_session if new_session is None else new_session,
            text,
            encoding,
        )

        try:
            popen = subprocess.Popen(
                self.command.args,
                stdin=redirections.stdin,
                stdout=redirections.stdout,
                stderr=redirections.stderr,
                cwd=self.command.directory,
                env=self.command.environment.resolve(),
                **kwargs,
            )
        finally:
            # The child holds its own descriptors now
            redirections.close_opened()

        with self._condition:
            self._popen = popen
            self._state = ProcessState.RUNNING
            self._condition.notify_all()

        logger.debug(
            f"Started process pid={popen.pid} "
            f"argv={self.command.describe()} cwd={self.command.directory}"
        )

        if on_status_change is not None:
            self._on_status_change = on_status_change
            self._watcher = threading.Thread(
                target=self._watch,
                name=f"cmdctl-watch-{popen.pid}",
                daemon=True,
            )
            self._watcher.start()

        return self

    def _build_popen_kwargs(
        self,
        new_session: bool,
        text: bool,
        encoding: str | None,
    ) -> dict[str, Any]:
        """Build platform-specific Popen kwargs."""
        kwargs: dict[str, Any] = {}

        if text:
            kwargs["text"] = True
            kwargs["bufsize"] = 1
            if encoding is not None:
                kwargs["encoding"] = encoding

        if new_session:
            if IS_WINDOWS:
                kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
            else:
                kwargs["start_new_session"] = True

        return kwargs

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> tuple[ProcessState, int | None]:
        """Return the current state and its payload.

        The payload is the exit code for EXITED, the signal number for
        SIGNALED and None otherwise.
        """
        with self._condition:
            if (
                self._popen is None
                or self._state.is_terminal
                or self._watcher is not None
            ):
                return self._state, self._payload

            if IS_WINDOWS:
                code = self._popen.poll()
                if code is not None:
                    self._set_state(ProcessState.EXITED, code)
                return self._state, self._payload

            try:
                pid, wait_status = os.waitpid(
                    self._popen.pid, os.WNOHANG | os.WUNTRACED | os.WCONTINUED
                )
            except ChildProcessError:
                self._await_reaper()
                return self._state, self._payload

            if pid != 0:
                self._apply_wait_status(wait_status)
            return self._state, self._payload

    @property
    def state(self) -> ProcessState:
        return self.status()[0]

    @property
    def exit_code(self) -> int | None:
        """Exit code once EXITED, otherwise None."""
        state, payload = self.status()
        return payload if state is ProcessState.EXITED else None

    @property
    def terminating_signal(self) -> int | None:
        """Signal number once SIGNALED, otherwise None."""
        state, payload = self.status()
        return payload if state is ProcessState.SIGNALED else None

    def _set_state(self, state: ProcessState, payload: int | None) -> bool:
        """Record a transition. Caller holds the condition.

        Returns:
            True if the state changed
        """
        if self._state.is_terminal:
            return False
        if (state, payload) == (self._state, self._payload):
            return False

        logger.debug(
            f"Process pid={self.pid} {self._state.value} -> {state.value}"
            + (f" ({payload})" if payload is not None else "")
        )
        self._state = state
        self._payload = payload

        # Keep Popen from reaping a child we already reaped
        if self._popen is not None:
            if state is ProcessState.EXITED:
                self._popen.returncode = payload
            elif state is ProcessState.SIGNALED:
                self._popen.returncode = -payload

        self._condition.notify_all()
        return True

    def _apply_wait_status(self, wait_status: int) -> bool:
        """Translate an os.waitpid status. Caller holds the condition."""
        if os.WIFSTOPPED(wait_status):
            return self._set_state(ProcessState.STOPPED, None)
        if os.WIFCONTINUED(wait_status):
            return self._set_state(ProcessState.RUNNING, None)
        if os.WIFSIGNALED(wait_status):
            return self._set_state(ProcessState.SIGNALED, os.WTERMSIG(wait_status))
        if os.WIFEXITED(wait_status):
            return self._set_state(ProcessState.EXITED, os.WEXITSTATUS(wait_status))
        return False

    def _adopt_returncode(self) -> None:
        """The child was reaped elsewhere; take Popen's record of it."""
        returncode = self._popen.returncode if self._popen is not None else None
        if returncode is None:
            if self._state.is_terminal:
                return
            raise ChildProcessError(
                f"Lost track of process pid={self.pid} [{self.command.describe()}]"
            )
        if returncode < 0:
            self._set_state(ProcessState.SIGNALED, -returncode)
        else:
            self._set_state(ProcessState.EXITED, returncode)

    def _await_reaper(self) -> None:
        """The child is gone; let a wait() that reaped it publish the result.

        Caller holds the condition.
        """
        self._condition.wait_for(lambda: self._state.is_terminal or self._reapers == 0)
        if not self._state.is_terminal:
            self._adopt_returncode()

    # ------------------------------------------------------------------
    # Watcher
    # ------------------------------------------------------------------

    def _watch(self) -> None:
        """Watcher thread body: block on the child and publish transitions."""
        popen = self._popen

        while True:
            if IS_WINDOWS:
                code = popen.wait()
                with self._condition:
                    changed = self._set_state(ProcessState.EXITED, code)
                    state, payload = self._state, self._payload
            else:
                try:
                    _, wait_status = os.waitpid(popen.pid, os.WUNTRACED | os.WCONTINUED)
                except ChildProcessError:
                    with self._condition:
                        self._adopt_returncode()
                        self._condition.notify_all()
                    logger.debug(f"Watcher lost child pid={popen.pid}")
                    return
                with self._condition:
                    changed = self._apply_wait_status(wait_status)
                    state, payload = self._state, self._payload

            if changed:
                self._notify(state, payload)
            if state.is_terminal:
                logger.debug(f"Watcher for pid={popen.pid} finished ({state.value})")
                return

    def _notify(self, state: ProcessState, payload: int | None) -> None:
        callback = self._on_status_change
        if callback is None:
            return
        try:
            callback(self, state, payload)
        except Exception as e:
            logger.warning(f"Error in status change callback for pid={self.pid}: {e}")

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def signal(self, sig: SignalLike) -> int | None:
        """Deliver a signal to the process.

        Args:
            sig: A number, a signal.Signals member or a symbolic name

        Returns:
            The delivered signal number, or None when the process is
            pending or has already terminated

        Raises:
            UnknownSignalError: If a symbolic name cannot be resolved
        """
        number = resolve_signal(sig)

        state, _ = self.status()
        if state is ProcessState.PENDING:
            logger.debug(f"Not signalling pending process [{self.command.describe()}]")
            return None
        if state.is_terminal:
            logger.debug(f"Not signalling finished process pid={self.pid} ({state.value})")
            return None

        popen = self._popen
        try:
            if IS_WINDOWS:
                popen.send_signal(number)
            else:
                os.kill(popen.pid, number)
        except ProcessLookupError:
            logger.debug(f"Process pid={popen.pid} vanished before signal {number}")
            return None

        logger.debug(f"Sent signal {number} to pid={popen.pid}")
        return number

    def terminate(self) -> int | None:
        """Send the terminate signal."""
        return self.signal("term")

    def kill(self) -> int | None:
        """Send the kill signal."""
        return self.signal("kill")

    # ------------------------------------------------------------------
    # Wait
    # ------------------------------------------------------------------

    def _done_waiting(self, include_stopped: bool) -> bool:
        if self._popen is None or self._state.is_terminal:
            return True
        return include_stopped and self._state is ProcessState.STOPPED

    def wait(self, *, include_stopped: bool = False) -> Process:
        """Block until the process is no longer running.

        There is no timeout. A pending process returns immediately.

        Args:
            include_stopped: Also return when the process is stopped

        Returns:
            self
        """
        if self._watcher is not None:
            with self._condition:
                self._condition.wait_for(lambda: self._done_waiting(include_stopped))
            return self

        popen = self._popen
        if popen is None:
            return self

        if IS_WINDOWS:
            code = popen.wait()
            with self._condition:
                self._set_state(ProcessState.EXITED, code)
            return self

        flags = os.WCONTINUED | (os.WUNTRACED if include_stopped else 0)
        while True:
            with self._condition:
                if self._done_waiting(include_stopped):
                    return self
                self._reapers += 1

            # Block without holding the condition so signal()/status() stay usable
            wait_status: int | None = None
            try:
                _, wait_status = os.waitpid(popen.pid, flags)
            except ChildProcessError:
                # Reaped by status() or another wait()
                pass
            finally:
                with self._condition:
                    self._reapers -= 1
                    if wait_status is not None:
                        self._apply_wait_status(wait_status)
                    self._condition.notify_all()

            if wait_status is None:
                with self._condition:
                    self._await_reaper()

    async def wait_async(self, *, include_stopped: bool = False) -> Process:
        """Await wait() on a worker thread."""
        await anyio.to_thread.run_sync(
            functools.partial(self.wait, include_stopped=include_stopped)
        )
        return self

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    @property
    def input(self) -> IO[Any] | None:
        """Writable end of the stdin pipe, if input was Redirect.PIPE."""
        return self._popen.stdin if self._popen is not None else None

    @property
    def output(self) -> IO[Any] | None:
        """Readable end of the stdout pipe, if output was Redirect.PIPE."""
        return self._popen.stdout if self._popen is not None else None

    @property
    def error(self) -> IO[Any] | None:
        """Readable end of the stderr pipe, if error was Redirect.PIPE."""
        return self._popen.stderr if self._popen is not None else None

    def close(self) -> None:
        """Close every stream attached to the handle.

        Idempotent, a no-op while pending, and independent of the process
        lifetime: the child keeps running.
        """
        popen = self._popen
        if popen is None:
            return

        for stream in (popen.stdin, popen.stdout, popen.stderr):
            if stream is None or stream.closed:
                continue
            try:
                stream.close()
            except BrokenPipeError:
                # Unflushed stdin data for a child that is gone
                pass

        logger.debug(f"Closed streams of pid={popen.pid}")

    def __enter__(self) -> Process:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state, payload = self._state, self._payload
        detail = f"{state.value}" if payload is None else f"{state.value}({payload})"
        return f"<Process pid={self.pid} {detail} [{self.command.describe()}]>"


def start(command: Command, **kwargs: Any) -> Process | None:
    """Start a new Process for command.

    Keyword arguments are those of Process.start.
    """
    return Process(command).start(**kwargs)
