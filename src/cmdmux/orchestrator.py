"""Run a batch of monitored commands concurrently for one foreground session.

The orchestrator owns every MonitoredCommand of a run:
- Orchestrator: Idle -> Running -> Draining -> Done, single use
- AggregateResult: per-command outcomes plus a single "any failed" flag

Policy: a command finishing (or failing) early does not stop its siblings.
The run ends when every command is terminal or when interrupt() is called.
Fail-fast is available but only as an explicit option.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from .config import get_config
from .runtime import CommandResult, CommandSpec, MonitoredCommand, OutputMultiplexer

__all__ = ["AggregateResult", "Orchestrator", "OrchestratorState"]

logger = logging.getLogger(__name__)


class OrchestratorState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"


@dataclass(frozen=True)
class AggregateResult:
    """Combined outcome of one run.

    Attributes:
        results: Per-command outcomes, in the order the commands were added
        interrupted: Whether the run was ended by interrupt()
    """

    results: tuple[CommandResult, ...]
    interrupted: bool = False

    @property
    def any_failed(self) -> bool:
        return any(result.failed for result in self.results)

    @property
    def failures(self) -> list[CommandResult]:
        return [result for result in self.results if result.failed]

    def __len__(self) -> int:
        return len(self.results)


class Orchestrator:
    """Owner of the command lifecycle for exactly one run.

    Example:
        ```python
        orchestrator = Orchestrator(grace_period=1.0)
        orchestrator.add_commands(
            CommandSpec("npm run dev", name="web", cwd="$HOME/app"),
            CommandSpec("celery worker", name="worker"),
        )
        result = await orchestrator.run_commands()
        if result.any_failed:
            ...
        ```

    Thread safety: add_commands() and run_commands() belong to the event
    loop thread; interrupt() may be called from anywhere, including a signal
    handler.
    """

    def __init__(
        self,
        *,
        grace_period: float | None = None,
        kill_timeout: float | None = None,
        fail_fast: bool | None = None,
        multiplexer: OutputMultiplexer | None = None,
        login_shell: str | None = None,
    ) -> None:
        """Create an orchestrator.

        Args:
            grace_period: Seconds between SIGTERM and SIGKILL (default from config)
            kill_timeout: Seconds to wait after SIGKILL (default from config)
            fail_fast: Stop everything when one command fails (default from config)
            multiplexer: Output sink (default: stdout)
            login_shell: Shell for login-shell commands (default from config)
        """
        config = get_config()
        self.grace_period = grace_period if grace_period is not None else config.grace_period
        self.kill_timeout = kill_timeout if kill_timeout is not None else config.kill_timeout
        self.fail_fast = fail_fast if fail_fast is not None else config.fail_fast
        self.login_shell = login_shell or config.login_shell
        self.multiplexer = multiplexer if multiplexer is not None else OutputMultiplexer()

        self.state = OrchestratorState.IDLE
        self.commands: list[MonitoredCommand] = []
        self._specs: list[CommandSpec] = []
        self._shutdown_requested = False
        self._force = False
        self._interrupt_event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    @property
    def specs(self) -> tuple[CommandSpec, ...]:
        return tuple(self._specs)

    def add_commands(self, *specs: CommandSpec) -> None:
        """Queue command specifications; nothing is started yet.

        Raises:
            RuntimeError: If the run has already begun
        """
        if self.state is not OrchestratorState.IDLE:
            raise RuntimeError(f"Cannot add commands while {self.state.value}")
        self._specs.extend(specs)

    def interrupt(self, *, force: bool = False) -> None:
        """Request shutdown of the run.

        Args:
            force: Skip the grace period; commands still alive are killed
                immediately, including ones already being stopped
        """
        self._shutdown_requested = True
        if force:
            self._force = True
        if self._loop is None or self._loop.is_closed():
            # Not running yet: run_commands() sees the flag on entry
            return
        self._loop.call_soon_threadsafe(self._on_interrupt)

    async def run_commands(self) -> AggregateResult:
        """Start every command and block until the run is over.

        Returns:
            The aggregate result, with one entry per added command

        Raises:
            RuntimeError: If this orchestrator has already been run
        """
        if self.state is not OrchestratorState.IDLE:
            raise RuntimeError("An Orchestrator can only run once")

        self.state = OrchestratorState.RUNNING
        self._loop = asyncio.get_running_loop()
        self._interrupt_event = asyncio.Event()
        if self._shutdown_requested:
            self._interrupt_event.set()

        self.commands = [
            MonitoredCommand(
                spec,
                self.multiplexer,
                login_shell=self.login_shell,
                kill_timeout=self.kill_timeout,
            )
            for spec in self._specs
        ]
        logger.debug(
            f"Running {len(self.commands)} command(s) "
            f"(grace_period={self.grace_period}s, fail_fast={self.fail_fast})"
        )

        try:
            if not self._interrupt_event.is_set():
                await asyncio.gather(*(cmd.start() for cmd in self.commands))
            await self._wait_for_stop_condition()
        finally:
            await self._safe_drain()

        result = AggregateResult(
            results=tuple(cmd.result() for cmd in self.commands),
            interrupted=self._shutdown_requested,
        )
        for failure in result.failures:
            logger.info(f"Command failed: {failure}")
        return result

    async def _wait_for_stop_condition(self) -> None:
        """Return when all commands are terminal, on interrupt, or on fail-fast."""
        assert self._interrupt_event is not None
        waiters = {
            asyncio.create_task(cmd.wait(), name=f"wait-{cmd.name}"): cmd
            for cmd in self.commands
        }
        interrupt_waiter = asyncio.create_task(self._interrupt_event.wait(), name="interrupt")
        pending: set[asyncio.Task] = set(waiters)

        try:
            while pending and not self._interrupt_event.is_set():
                done, _ = await asyncio.wait(
                    pending | {interrupt_waiter},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in done:
                    if task is interrupt_waiter:
                        continue
                    pending.discard(task)
                    result = task.result()
                    logger.debug(f"Command finished: {result}")
                    if self.fail_fast and result.failed:
                        logger.info(f"Fail-fast: stopping remaining commands after {result}")
                        return
            if self._interrupt_event.is_set():
                logger.info("Interrupt received, stopping commands")
        finally:
            leftovers = [task for task in (*pending, interrupt_waiter) if not task.done()]
            for task in leftovers:
                task.cancel()
            await asyncio.gather(*leftovers, return_exceptions=True)

    async def _safe_drain(self) -> None:
        """Drain, shielded so a cancelled caller still leaves no live processes."""
        drain_task = asyncio.create_task(self._drain(), name="drain")
        try:
            await asyncio.shield(drain_task)
        except asyncio.CancelledError:
            await drain_task
            raise

    async def _drain(self) -> None:
        self.state = OrchestratorState.DRAINING
        grace_period = 0.0 if self._force else self.grace_period
        live = [cmd for cmd in self.commands if not cmd.is_terminal]
        if live:
            logger.debug(f"Stopping {len(live)} command(s), grace period {grace_period}s")

        outcomes = await asyncio.gather(
            *(cmd.stop(grace_period) for cmd in live),
            return_exceptions=True,
        )
        for cmd, outcome in zip(live, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Error stopping {cmd!r}: {outcome!r}")

        # Background children can outlive a leader that exited on its own
        grace_period = 0.0 if self._force else grace_period
        started = [cmd for cmd in self.commands if cmd.pid is not None]
        outcomes = await asyncio.gather(
            *(cmd.reap_group(grace_period) for cmd in started),
            return_exceptions=True,
        )
        for cmd, outcome in zip(started, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Error reaping leftovers of {cmd!r}: {outcome!r}")

        self.state = OrchestratorState.DONE

    def _on_interrupt(self) -> None:
        if self._interrupt_event is not None:
            self._interrupt_event.set()
        if self._force and self.state is OrchestratorState.DRAINING:
            for cmd in self.commands:
                cmd.kill()


def build_orchestrator(specs: Iterable[CommandSpec], **options) -> Orchestrator:
    """Create an orchestrator with specs already added."""
    orchestrator = Orchestrator(**options)
    orchestrator.add_commands(*specs)
    return orchestrator
