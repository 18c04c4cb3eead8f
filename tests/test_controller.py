"""Process controller tests.

Test coverage:
- start/status/wait for natural exits
- Redirection policies seen through start()
- Double start
- Signal delivery, stop/continue
- Status change callbacks
- Stream access and close()
"""

from __future__ import annotations

import os
import signal
import threading
import time
from collections.abc import Iterator
from pathlib import Path
from unittest import mock

import pytest

from cmdctl.command import Command
from cmdctl.environment import EnvPolicy
from cmdctl.errors import AlreadyStartedError, OutputExistsError, UnknownSignalError
from cmdctl.runtime import IS_WINDOWS, Process, start
from cmdctl.types import IfOutputExists, ProcessState, Redirect

pytestmark = pytest.mark.skipif(IS_WINDOWS, reason="POSIX process tests")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def processes() -> Iterator[list[Process]]:
    """Collect started processes and make sure none outlives the test."""
    started: list[Process] = []
    yield started
    for process in started:
        if process.started and not process.state.is_terminal:
            process.kill()
            process.wait()
        process.close()


def _sleeper(processes: list[Process], seconds: int = 30, **kwargs) -> Process:
    process = Process(Command("sleep", [seconds]))
    assert process.start(**kwargs) is process
    processes.append(process)
    return process


def _poll_until(process: Process, state: ProcessState, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if process.status()[0] is state:
            return True
        time.sleep(0.02)
    return False


# =============================================================================
# Basic execution
# =============================================================================


class TestBasicExecution:
    """start, wait and status for processes that exit on their own."""

    def test_echo_scenario(self):
        """echo hello, output piped, input discarded."""
        process = Process(Command("echo", ["hello"]))
        assert process.status() == (ProcessState.PENDING, None)

        assert process.start(input=Redirect.DISCARD, output=Redirect.PIPE) is process
        assert process.wait() is process

        assert process.status() == (ProcessState.EXITED, 0)
        assert process.output.readlines() == ["hello\n"]
        process.close()

    def test_exit_code(self):
        process = start(Command("sh", ["-c", "exit 3"]))
        process.wait()
        assert process.status() == (ProcessState.EXITED, 3)
        assert process.exit_code == 3
        assert process.terminating_signal is None

    def test_terminal_state_is_stable(self):
        process = start(Command("true"))
        process.wait()
        first = process.status()
        assert first == process.status() == process.status()
        assert process.wait().status() == first

    def test_running_state(self, processes: list[Process]):
        process = _sleeper(processes)
        assert process.status() == (ProcessState.RUNNING, None)
        assert process.pid is not None
        assert process.handle is not None

    def test_working_directory(self, temp_workspace: Path):
        process = start(Command("pwd", directory=temp_workspace), output=Redirect.PIPE)
        process.wait()
        with process:
            assert Path(process.output.read().strip()).resolve() == temp_workspace.resolve()

    def test_binary_pipes(self):
        process = start(Command("echo", ["bytes"]), output=Redirect.PIPE, text=False)
        process.wait()
        with process:
            assert process.output.read() == b"bytes\n"

    def test_command_start_shortcut(self):
        process = Command("true").start()
        assert isinstance(process, Process)
        process.wait()
        assert process.exit_code == 0

    def test_spawn_failure_propagates(self, tmp_path: Path):
        process = Process(Command(tmp_path / "no-such-program"))
        with pytest.raises(FileNotFoundError):
            process.start()
        assert process.status() == (ProcessState.PENDING, None)
        assert process.handle is None

    def test_wait_pending_returns_immediately(self):
        process = Process(Command("true"))
        assert process.wait() is process
        assert process.status() == (ProcessState.PENDING, None)

    def test_concurrent_processes_are_independent(self):
        first = start(Command("sh", ["-c", "exit 1"]))
        second = start(Command("sh", ["-c", "exit 2"]))
        second.wait()
        first.wait()
        assert first.exit_code == 1
        assert second.exit_code == 2


# =============================================================================
# Environment
# =============================================================================


class TestEnvironment:
    """Environment policies reach the child."""

    def test_supersede(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CMDCTL_PARENT_ONLY", "1")
        process = start(
            Command("env", environment=[EnvPolicy.SUPERSEDE, "CHILD=1"]),
            output=Redirect.PIPE,
        )
        process.wait()
        with process:
            assert process.output.read().splitlines() == ["CHILD=1"]

    def test_append(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CMDCTL_PARENT_ONLY", "parent")
        process = start(
            Command("env", environment=[EnvPolicy.APPEND, "CHILD=1"]),
            output=Redirect.PIPE,
        )
        process.wait()
        with process:
            lines = process.output.read().splitlines()
        assert "CHILD=1" in lines
        assert "CMDCTL_PARENT_ONLY=parent" in lines

    def test_inherit(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CMDCTL_PARENT_ONLY", "inherited")
        process = start(Command("env"), output=Redirect.PIPE)
        process.wait()
        with process:
            assert "CMDCTL_PARENT_ONLY=inherited" in process.output.read().splitlines()


# =============================================================================
# Redirection
# =============================================================================


class TestRedirection:
    """Redirection targets and policies through start()."""

    def test_missing_input_aborts_silently(self, tmp_path: Path):
        process = Process(Command("cat"))
        assert process.start(input=tmp_path / "missing") is None
        assert process.status() == (ProcessState.PENDING, None)
        assert process.handle is None

    def test_existing_output_error(self, tmp_path: Path):
        path = tmp_path / "out.txt"
        path.write_text("keep")
        process = Process(Command("echo", ["hello"]))
        with pytest.raises(OutputExistsError):
            process.start(output=path, if_output_exists=IfOutputExists.ERROR)
        assert process.handle is None
        assert process.status() == (ProcessState.PENDING, None)
        assert path.read_text() == "keep"

    def test_policy_default_from_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        from cmdctl.config import reload_config

        path = tmp_path / "out.txt"
        path.write_text("old\n")
        monkeypatch.setenv("CMDCTL_IF_OUTPUT_EXISTS", "append")
        reload_config()

        process = start(Command("echo", ["new"]), output=path)
        process.wait()
        assert path.read_text() == "old\nnew\n"

    def test_output_to_path(self, tmp_path: Path):
        path = tmp_path / "out.txt"
        process = start(Command("echo", ["hello"]), output=path)
        process.wait()
        assert path.read_text() == "hello\n"

    def test_input_from_path(self, tmp_path: Path):
        path = tmp_path / "in.txt"
        path.write_text("from file\n")
        process = start(Command("cat"), input=path, output=Redirect.PIPE)
        process.wait()
        with process:
            assert process.output.read() == "from file\n"

    def test_error_merged_into_output(self):
        process = start(
            Command("sh", ["-c", "echo out; echo err >&2"]),
            output=Redirect.PIPE,
            error=Redirect.OUTPUT,
        )
        process.wait()
        with process:
            assert sorted(process.output.read().splitlines()) == ["err", "out"]
            assert process.error is None

    def test_error_pipe(self):
        process = start(Command("sh", ["-c", "echo oops >&2"]), error=Redirect.PIPE)
        process.wait()
        with process:
            assert process.error.read() == "oops\n"
            assert process.output is None

    def test_stream_target(self, tmp_path: Path):
        path = tmp_path / "stream.txt"
        with open(path, "wb") as stream:
            process = start(Command("echo", ["via stream"]), output=stream)
            process.wait()
        assert path.read_text() == "via stream\n"


# =============================================================================
# Double start
# =============================================================================


class TestDoubleStart:
    """The handle is attached once."""

    def test_second_start_raises(self, processes: list[Process]):
        process = _sleeper(processes)
        pid = process.pid

        with pytest.raises(AlreadyStartedError) as exc_info:
            process.start()

        assert exc_info.value.pid == pid
        assert "sleep" in str(exc_info.value)
        assert process.pid == pid
        assert process.status() == (ProcessState.RUNNING, None)

    def test_second_start_after_exit_raises(self):
        process = start(Command("true"))
        process.wait()
        with pytest.raises(AlreadyStartedError):
            process.start()
        assert process.exit_code == 0


# =============================================================================
# Signals
# =============================================================================


class TestSignals:
    """signal() delivery."""

    def test_pending_is_noop(self):
        process = Process(Command("true"))
        assert process.signal("term") is None
        assert process.signal(signal.SIGKILL) is None
        assert process.status() == (ProcessState.PENDING, None)

    def test_unknown_name_raises_even_when_pending(self):
        process = Process(Command("true"))
        with pytest.raises(UnknownSignalError):
            process.signal("bogus")

    def test_terminate_by_name(self, processes: list[Process]):
        process = _sleeper(processes)
        assert process.signal("term") == signal.SIGTERM
        process.wait()
        assert process.status() == (ProcessState.SIGNALED, int(signal.SIGTERM))
        assert process.terminating_signal == signal.SIGTERM
        assert process.exit_code is None

    def test_kill_by_number(self, processes: list[Process]):
        process = _sleeper(processes)
        assert process.signal(int(signal.SIGKILL)) == signal.SIGKILL
        process.wait()
        assert process.status() == (ProcessState.SIGNALED, int(signal.SIGKILL))

    def test_finished_process_not_signalled(self):
        process = start(Command("true"))
        process.wait()
        assert process.signal("term") is None
        assert process.status() == (ProcessState.EXITED, 0)

    def test_stop_and_continue(self, processes: list[Process]):
        process = _sleeper(processes)

        process.signal("stop")
        process.wait(include_stopped=True)
        assert process.status() == (ProcessState.STOPPED, None)

        # Already stopped: returns at once
        process.wait(include_stopped=True)

        process.signal("cont")
        assert _poll_until(process, ProcessState.RUNNING)

        process.kill()
        process.wait()
        assert process.status() == (ProcessState.SIGNALED, int(signal.SIGKILL))

    def test_wait_unblocked_by_signal_from_other_thread(self, processes: list[Process]):
        process = _sleeper(processes)
        timer = threading.Timer(0.2, process.terminate)
        timer.start()
        try:
            process.wait()
        finally:
            timer.cancel()
        assert process.state is ProcessState.SIGNALED


# =============================================================================
# Concurrent reaping
# =============================================================================


class TestConcurrentReaping:
    """Queries racing a wait() that has reaped the child but not yet recorded it."""

    def test_status_waits_for_reaping_thread(self):
        process = start(Command("true"))
        real_waitpid = os.waitpid
        reaped = threading.Event()
        release = threading.Event()

        def slow_blocking_waitpid(pid: int, options: int):
            if options & os.WNOHANG:
                return real_waitpid(pid, options)
            result = real_waitpid(pid, options)
            reaped.set()
            release.wait(5)
            return result

        with mock.patch("os.waitpid", slow_blocking_waitpid):
            waiter = threading.Thread(target=process.wait)
            waiter.start()
            assert reaped.wait(5)

            timer = threading.Timer(0.2, release.set)
            timer.start()
            try:
                assert process.status() == (ProcessState.EXITED, 0)
                assert process.signal("term") is None
            finally:
                release.set()
                waiter.join(5)

        assert not waiter.is_alive()
        assert process.exit_code == 0

    def test_two_waiters(self, processes: list[Process]):
        process = _sleeper(processes, 1)
        waiters = [threading.Thread(target=process.wait) for _ in range(2)]
        for waiter in waiters:
            waiter.start()
        for waiter in waiters:
            waiter.join(10)
        assert not any(waiter.is_alive() for waiter in waiters)
        assert process.status() == (ProcessState.EXITED, 0)


# =============================================================================
# Status change callbacks
# =============================================================================


class TestStatusCallback:
    """on_status_change runs on the watcher thread."""

    def test_exit_reported(self):
        events: list[tuple[ProcessState, int | None]] = []
        finished = threading.Event()

        def on_change(process: Process, state: ProcessState, payload: int | None) -> None:
            events.append((state, payload))
            if state.is_terminal:
                finished.set()

        process = start(Command("sh", ["-c", "exit 4"]), on_status_change=on_change)
        process.wait()
        assert finished.wait(5)
        assert events[-1] == (ProcessState.EXITED, 4)
        assert process.status() == (ProcessState.EXITED, 4)

    def test_stop_continue_reported(self, processes: list[Process]):
        seen: list[ProcessState] = []
        changed = threading.Condition()

        def on_change(process: Process, state: ProcessState, payload: int | None) -> None:
            with changed:
                seen.append(state)
                changed.notify_all()

        process = _sleeper(processes, on_status_change=on_change)

        process.signal("stop")
        with changed:
            assert changed.wait_for(lambda: ProcessState.STOPPED in seen, timeout=5)
        assert process.wait(include_stopped=True).state is ProcessState.STOPPED

        process.signal("cont")
        with changed:
            assert changed.wait_for(lambda: seen[-1] is ProcessState.RUNNING, timeout=5)

        process.kill()
        process.wait()
        with changed:
            assert changed.wait_for(lambda: seen[-1] is ProcessState.SIGNALED, timeout=5)
        assert seen == [ProcessState.STOPPED, ProcessState.RUNNING, ProcessState.SIGNALED]

    def test_failing_callback_does_not_break_tracking(self):
        def on_change(process: Process, state: ProcessState, payload: int | None) -> None:
            raise RuntimeError("callback failure")

        process = start(Command("true"), on_status_change=on_change)
        process.wait()
        assert process.status() == (ProcessState.EXITED, 0)


# =============================================================================
# Streams and close
# =============================================================================


class TestClose:
    """close() releases streams only."""

    def test_streams_absent_while_pending(self):
        process = Process(Command("cat"))
        assert process.input is None
        assert process.output is None
        assert process.error is None
        process.close()

    def test_close_keeps_process_running(self, processes: list[Process]):
        process = _sleeper(processes, input=Redirect.PIPE, output=Redirect.PIPE)
        stdin, stdout = process.input, process.output

        process.close()

        assert stdin.closed and stdout.closed
        assert process.status() == (ProcessState.RUNNING, None)

    def test_close_idempotent(self):
        process = start(Command("echo", ["x"]), output=Redirect.PIPE)
        process.wait()
        process.close()
        process.close()
        assert process.output.closed

    def test_cat_echoes_input(self):
        process = start(Command("cat"), input=Redirect.PIPE, output=Redirect.PIPE)
        process.input.write("line one\n")
        process.input.close()
        assert process.output.readline() == "line one\n"
        process.wait()
        process.close()
        assert process.exit_code == 0


# =============================================================================
# Async wait
# =============================================================================


class TestWaitAsync:
    """wait_async() from async code."""

    @pytest.mark.asyncio
    async def test_wait_async(self):
        process = start(Command("sh", ["-c", "sleep 0.1; exit 5"]))
        assert await process.wait_async() is process
        assert process.status() == (ProcessState.EXITED, 5)

    @pytest.mark.asyncio
    async def test_wait_async_pending(self):
        process = Process(Command("true"))
        await process.wait_async()
        assert process.state is ProcessState.PENDING


def test_repr_mentions_state_and_command():
    process = Process(Command("echo", ["hi there"]))
    assert "pending" in repr(process)
    assert "'hi there'" in repr(process)
    assert os.fspath(process.command.program) == "echo"
