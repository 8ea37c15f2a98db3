"""Signal management for a foreground run.

Turns OS signals into orchestrator interrupts instead of letting them kill
cmdmux before its children:
- SIGINT: interrupt the run (commands get the grace period)
- SIGINT again within the double-tap window: force, kill everything now
- SIGTERM: interrupt the run

Child processes live in their own sessions, so a terminal Ctrl+C reaches
cmdmux only; the orchestrator decides how children are stopped.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Callable, Optional

from .config import get_config
from .orchestrator import Orchestrator

__all__ = ["SignalManager"]

logger = logging.getLogger(__name__)


class SignalManager:
    """Route SIGINT and SIGTERM to an Orchestrator.

    Example:
        ```python
        orchestrator = Orchestrator()
        signal_manager = SignalManager(orchestrator)

        async def main():
            await signal_manager.start()
            try:
                return await orchestrator.run_commands()
            finally:
                await signal_manager.stop()
        ```

    Attributes:
        orchestrator: The run receiving interrupts
        double_tap_window: Seconds within which a second SIGINT forces shutdown
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        double_tap_window: Optional[float] = None,
        on_interrupt: Optional[Callable[[bool], None]] = None,
    ) -> None:
        """Initialize the signal manager.

        Args:
            orchestrator: The run receiving interrupts
            double_tap_window: Force window (default from config)
            on_interrupt: Called with force=True/False after each interrupt
        """
        self.orchestrator = orchestrator
        config = get_config()
        self.double_tap_window = (
            double_tap_window if double_tap_window is not None else config.double_tap_window
        )
        self._on_interrupt = on_interrupt

        self._last_sigint_time: float = 0.0
        self._interrupt_count: int = 0
        self._force_exit: bool = False
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._original_sigint_handler = None

    @property
    def interrupt_count(self) -> int:
        """Number of interrupts delivered to the orchestrator."""
        return self._interrupt_count

    @property
    def is_force_exit(self) -> bool:
        """Whether a double SIGINT forced the shutdown."""
        return self._force_exit

    async def start(self) -> None:
        """Install the signal handlers. Must run inside the event loop."""
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._running = True

        if sys.platform != "win32":
            self._loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            self._loop.add_signal_handler(signal.SIGTERM, self._handle_sigterm)
            logger.debug(f"Signal handlers installed (double_tap_window={self.double_tap_window}s)")
        else:
            self._original_sigint_handler = signal.signal(
                signal.SIGINT,
                lambda sig, frame: self._handle_sigint(),
            )
            logger.debug("SIGINT handler installed on Windows")

    async def stop(self) -> None:
        """Remove the signal handlers."""
        if not self._running:
            return
        self._running = False

        if sys.platform != "win32" and self._loop:
            self._loop.remove_signal_handler(signal.SIGINT)
            self._loop.remove_signal_handler(signal.SIGTERM)
        elif sys.platform == "win32" and self._original_sigint_handler is not None:
            signal.signal(signal.SIGINT, self._original_sigint_handler)

        logger.debug("Signal handlers removed")

    def _handle_sigint(self) -> None:
        """Interrupt the run; a quick second SIGINT forces it."""
        current_time = time.monotonic()
        time_since_last = current_time - self._last_sigint_time
        self._last_sigint_time = current_time

        if self._interrupt_count and time_since_last < self.double_tap_window:
            logger.warning("Double SIGINT detected, killing all commands")
            self._force_exit = True
            self._interrupt(force=True)
            return

        logger.info(
            f"SIGINT received, stopping commands. "
            f"Press Ctrl+C again within {self.double_tap_window}s to kill them."
        )
        self._interrupt(force=False)

    def _handle_sigterm(self) -> None:
        logger.info("SIGTERM received, stopping commands")
        self._interrupt(force=False)

    def _interrupt(self, *, force: bool) -> None:
        self._interrupt_count += 1
        self.orchestrator.interrupt(force=force)
        if self._on_interrupt:
            try:
                self._on_interrupt(force)
            except Exception as e:
                logger.warning(f"Error in interrupt callback: {e}")
