"""Monitored command: spawn, stream, wait for and terminate one subprocess.

This module provides:
- Subprocess isolation (new session/process group) so the whole tree can be
  signalled at once
- Stdout/stderr streaming into the output multiplexer
- Reliable termination (SIGTERM -> grace period -> SIGKILL -> give up)
- A forward-only state machine: PENDING -> RUNNING -> EXITED | KILLED | FAILED

Key design points:
- POSIX: start_new_session=True, signals go to the process group
- Windows: CREATE_NEW_PROCESS_GROUP, CTRL_BREAK_EVENT then kill()
- Spawn failures are recorded on the command, never raised to the caller
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Any

import anyio

from .errors import CommandError, RuntimeExitError, SignalDeliveryError, SpawnError
from .multiplexer import OutputChannel, OutputMultiplexer
from .spec import IS_WINDOWS, CommandSpec

__all__ = [
    "CommandResult",
    "CommandState",
    "MonitoredCommand",
    "DEFAULT_GRACE_PERIOD",
    "DEFAULT_KILL_TIMEOUT",
    "DEFAULT_LOGIN_SHELL",
]

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 2.0  # seconds between SIGTERM and SIGKILL
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL
DEFAULT_LOGIN_SHELL = "/bin/bash"

# Exit statuses POSIX shells use for "cannot execute" and "command not found"
SHELL_SPAWN_FAILURE_CODES = frozenset({126, 127})

READ_CHUNK_SIZE = 4096
GROUP_POLL_INTERVAL = 0.05


class CommandState(Enum):
    """Lifecycle state of a monitored command."""

    PENDING = "pending"
    RUNNING = "running"
    EXITED = "exited"
    KILLED = "killed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CommandState.EXITED, CommandState.KILLED, CommandState.FAILED)


_ALLOWED_TRANSITIONS = {
    CommandState.PENDING: {CommandState.RUNNING, CommandState.KILLED, CommandState.FAILED},
    CommandState.RUNNING: {CommandState.EXITED, CommandState.KILLED, CommandState.FAILED},
    CommandState.EXITED: set(),
    CommandState.KILLED: set(),
    CommandState.FAILED: set(),
}


@dataclass(frozen=True)
class CommandResult:
    """Snapshot of a command's outcome.

    Attributes:
        name: Command name (may be empty)
        state: State at the time of the snapshot
        exit_code: Process exit status, if the process was reaped
        error: Error attached to the command, if any
    """

    name: str
    state: CommandState
    exit_code: int | None = None
    error: CommandError | None = None

    @property
    def failed(self) -> bool:
        """Whether this outcome counts as a failure of the run."""
        if self.state in (CommandState.FAILED, CommandState.KILLED):
            return True
        return self.state is CommandState.EXITED and self.exit_code != 0

    def __str__(self) -> str:
        label = self.name or "<unnamed>"
        if self.state is CommandState.EXITED:
            return f"{label}: exited ({self.exit_code})"
        if self.error is not None:
            return f"{label}: {self.state.value} ({self.error})"
        return f"{label}: {self.state.value}"


class MonitoredCommand:
    """Runtime wrapper that turns one CommandSpec into an observable process.

    Example:
        mux = OutputMultiplexer()
        cmd = MonitoredCommand(CommandSpec("npm run dev", name="web"), mux)
        await cmd.start()
        ...
        result = await cmd.stop(grace_period=2.0)
    """

    def __init__(
        self,
        spec: CommandSpec,
        multiplexer: OutputMultiplexer,
        *,
        login_shell: str = DEFAULT_LOGIN_SHELL,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self.spec = spec
        self.login_shell = login_shell
        self.kill_timeout = kill_timeout
        self._mux = multiplexer

        self.state = CommandState.PENDING
        self.exit_code: int | None = None
        self.error: CommandError | None = None

        self._process: asyncio.subprocess.Process | None = None
        self._pgid: int | None = None
        self._reader_tasks: list[asyncio.Task[None]] = []
        self._monitor_task: asyncio.Task[None] | None = None
        self._stop_task: asyncio.Task[None] | None = None
        self._signalled = False
        self._done = asyncio.Event()

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def result(self) -> CommandResult:
        return CommandResult(
            name=self.name,
            state=self.state,
            exit_code=self.exit_code,
            error=self.error,
        )

    def __repr__(self) -> str:
        return f"MonitoredCommand(name={self.name!r}, state={self.state.value}, pid={self.pid})"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the process and attach the stream readers.

        Returns as soon as the process is launched. A spawn failure moves the
        command to FAILED(SpawnError) instead of raising.

        Raises:
            RuntimeError: If the command was already started or stopped
        """
        if self.state is not CommandState.PENDING:
            raise RuntimeError(f"{self!r} cannot be started twice")

        argv = self.spec.build_argv(self.login_shell)
        cwd = self.spec.expanded_cwd()

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                **self._isolation_kwargs(),
            )
        except OSError as e:
            where = f" in {cwd}" if cwd else ""
            logger.warning(f"Failed to spawn {self.name or argv[-1]!r}{where}: {e}")
            self._finish(
                CommandState.FAILED,
                error=SpawnError(self.name, f"cannot spawn {argv[0]}{where}: {e}", cause=e),
            )
            return

        self._process = process
        self._pgid = process.pid
        self._transition(CommandState.RUNNING)
        logger.debug(f"Started {self.name!r} pid={process.pid} argv={argv[:-1]} cwd={cwd}")

        out = self._mux.channel(self.name, silence=self.spec.silence)
        err = self._mux.channel(self.name, silence=self.spec.silence)
        self._reader_tasks = [
            asyncio.create_task(self._pump(process.stdout, out), name=f"{self.name}-stdout"),
            asyncio.create_task(self._pump(process.stderr, err), name=f"{self.name}-stderr"),
        ]
        self._monitor_task = asyncio.create_task(self._monitor(), name=f"{self.name}-monitor")

    async def wait(self) -> CommandResult:
        """Block until the command reaches a terminal state."""
        await self._done.wait()
        return self.result()

    async def stop(self, grace_period: float = DEFAULT_GRACE_PERIOD) -> CommandResult:
        """Terminate the command, escalating to SIGKILL after grace_period.

        Idempotent: a terminal command is left alone, and concurrent callers
        share one termination sequence.
        """
        if self.is_terminal:
            return self.result()

        if self._process is None:
            # Never started
            self._finish(CommandState.KILLED)
            return self.result()

        if self._stop_task is None:
            self._stop_task = asyncio.create_task(
                self._terminate(grace_period), name=f"{self.name}-stop"
            )
        await asyncio.shield(self._stop_task)
        return self.result()

    def kill(self) -> None:
        """Send SIGKILL to the process group right away."""
        if self.is_terminal or self._process is None:
            return
        error = self._send(self._kill_signal())
        if error is not None:
            logger.warning(f"Forced kill failed: {error}")

    def group_alive(self) -> bool:
        """Whether any member of the command's process group still exists."""
        if IS_WINDOWS or self._pgid is None:
            return False
        try:
            os.killpg(self._pgid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    async def reap_group(self, grace_period: float = DEFAULT_GRACE_PERIOD) -> None:
        """Stop processes left behind in the group once the command settled.

        A leader can exit on its own while background children it started
        keep running. They get SIGTERM, then SIGKILL after grace_period.
        The recorded outcome of the command is not changed.
        """
        if not self.is_terminal or not self.group_alive():
            return

        pgid = self._pgid
        logger.debug(f"Reaping leftover processes of {self.name!r} pgid={pgid}")
        for sig, timeout in ((signal.SIGTERM, grace_period), (signal.SIGKILL, self.kill_timeout)):
            try:
                os.killpg(pgid, sig)
            except ProcessLookupError:
                return
            except OSError as e:
                logger.warning(f"Cannot signal leftover group {pgid} of {self.name!r}: {e}")
                return
            if await self._wait_group_gone(timeout):
                return
        logger.warning(f"Leftover processes of {self.name!r} survived SIGKILL (pgid={pgid})")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _isolation_kwargs(self) -> dict[str, Any]:
        if IS_WINDOWS:
            return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
        return {"start_new_session": True}

    def _transition(self, new_state: CommandState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal transition for {self.name!r}: {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def _finish(
        self,
        state: CommandState,
        *,
        exit_code: int | None = None,
        error: CommandError | None = None,
    ) -> None:
        if self.is_terminal:
            return
        self._transition(state)
        self.exit_code = exit_code
        self.error = error
        self._done.set()
        logger.debug(f"Command {self.result()}")

    async def _pump(self, stream: asyncio.StreamReader | None, channel: OutputChannel) -> None:
        """Copy one stream into its channel until EOF."""
        try:
            if stream is None:
                return
            while True:
                chunk = await stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                channel.feed(chunk)
        finally:
            channel.close()

    async def _monitor(self) -> None:
        """Wait for exit and for both streams to drain, then settle the state."""
        assert self._process is not None
        returncode = await self._process.wait()
        results = await asyncio.gather(*self._reader_tasks, return_exceptions=True)
        for outcome in results:
            if isinstance(outcome, Exception):
                logger.warning(f"Output of {self.name!r} was cut short: {outcome!r}")

        if self._signalled:
            self._finish(CommandState.KILLED, exit_code=returncode)
        elif returncode in SHELL_SPAWN_FAILURE_CODES:
            self._finish(
                CommandState.FAILED,
                exit_code=returncode,
                error=SpawnError(
                    self.name,
                    f"shell could not execute the command (status {returncode})",
                ),
            )
        elif returncode != 0:
            self._finish(
                CommandState.EXITED,
                exit_code=returncode,
                error=RuntimeExitError(self.name, returncode),
            )
        else:
            self._finish(CommandState.EXITED, exit_code=returncode)

    async def _terminate(self, grace_period: float) -> None:
        """Termination strategy.

        1. Send SIGTERM (CTRL_BREAK_EVENT on Windows) to the process group
        2. Wait up to grace_period for exit
        3. Send SIGKILL (kill() on Windows)
        4. Wait up to kill_timeout; if still alive, abandon the readers and
           report the process as unkillable
        """
        pid = self.pid
        logger.debug(f"Stopping {self.name!r} pid={pid} grace={grace_period}s")

        term_error = self._send(self._term_signal())
        if term_error is None and await self._wait_done(grace_period):
            logger.debug(f"{self.name!r} exited after SIGTERM pid={pid}")
            return
        if term_error is not None:
            logger.warning(f"{term_error}; escalating to kill")

        logger.debug(f"Force killing {self.name!r} pid={pid}")
        kill_error = self._send(self._kill_signal())
        if kill_error is None and await self._wait_done(self.kill_timeout):
            logger.debug(f"{self.name!r} killed pid={pid}")
            return

        error = kill_error or SignalDeliveryError(
            self.name,
            "SIGKILL",
            f"process group {self._pgid} still alive after {self.kill_timeout}s",
        )
        logger.error(f"Giving up on unkillable command: {error}")
        await self._abandon()
        self._finish(CommandState.FAILED, exit_code=self._process.returncode, error=error)

    async def _wait_done(self, timeout: float) -> bool:
        with anyio.move_on_after(timeout):
            await self._done.wait()
        return self._done.is_set()

    async def _wait_group_gone(self, timeout: float) -> bool:
        with anyio.move_on_after(timeout):
            while self.group_alive():
                await asyncio.sleep(GROUP_POLL_INTERVAL)
        return not self.group_alive()

    def _leader_exited(self) -> bool:
        """Whether the leader has exited, even if asyncio has not reaped it yet."""
        assert self._process is not None
        if self._process.returncode is not None:
            return True
        if IS_WINDOWS or not hasattr(os, "waitid"):
            return False
        try:
            # WNOWAIT leaves the zombie for asyncio's child watcher
            status = os.waitid(os.P_PID, self._process.pid, os.WEXITED | os.WNOHANG | os.WNOWAIT)
        except ChildProcessError:
            return True
        return status is not None

    async def _abandon(self) -> None:
        tasks = [t for t in (self._monitor_task, *self._reader_tasks) if t and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _term_signal(self) -> int:
        return signal.CTRL_BREAK_EVENT if IS_WINDOWS else signal.SIGTERM

    def _kill_signal(self) -> int:
        return signal.SIGTERM if IS_WINDOWS else signal.SIGKILL

    def _send(self, sig: int) -> SignalDeliveryError | None:
        """Deliver sig to the whole process group.

        Returns:
            None if delivered (or nobody was left to receive it), otherwise
            the delivery error
        """
        assert self._process is not None and self._pgid is not None
        signal_name = "SIGKILL" if sig == self._kill_signal() else "SIGTERM"
        if not self._leader_exited():
            # Exiting from here on is our doing, not a natural exit
            self._signalled = True
        try:
            if IS_WINDOWS:
                if sig == signal.CTRL_BREAK_EVENT:
                    os.kill(self._process.pid, sig)
                else:
                    self._process.kill()
            else:
                # The leader may already be reaped while children still hold
                # the group, so signal by pgid rather than via the process.
                os.killpg(self._pgid, sig)
            logger.debug(f"Sent {signal_name} to {self.name!r} pgid={self._pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            return SignalDeliveryError(self.name, signal_name, f"delivery failed: {e}", cause=e)
        return None
