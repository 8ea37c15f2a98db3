"""cmdmux application entry.

Logging setup and the blocking run loop used by the CLI.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Sequence

from .config import Config, get_config
from .orchestrator import AggregateResult, build_orchestrator
from .runtime import CommandSpec, OutputMultiplexer
from .signal_manager import SignalManager

__all__ = [
    "EXIT_FAILURE",
    "EXIT_INTERRUPTED",
    "EXIT_SUCCESS",
    "configure_logging",
    "exit_code_for",
    "run_commands",
    "run_specs",
]

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130  # 128 + SIGINT(2)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config: Config | None = None) -> None:
    """Configure logging for a foreground run.

    The terminal belongs to the commands, so by default only warnings reach
    stderr. With CMDMUX_LOG_DEBUG everything is written to a temp file.
    """
    config = config or get_config()
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.WARNING

    # Third-party loggers stay at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers, force=True)
    logging.getLogger("cmdmux").setLevel(log_level)


def exit_code_for(result: AggregateResult) -> int:
    """Map an aggregate result to a process exit code."""
    if result.interrupted:
        return EXIT_INTERRUPTED
    if result.any_failed:
        return EXIT_FAILURE
    return EXIT_SUCCESS


async def run_commands(
    specs: Sequence[CommandSpec],
    *,
    config: Config | None = None,
    multiplexer: OutputMultiplexer | None = None,
    grace_period: float | None = None,
    fail_fast: bool | None = None,
) -> AggregateResult:
    """Run specs with SIGINT/SIGTERM routed to the orchestrator."""
    config = config or get_config()
    orchestrator = build_orchestrator(
        specs,
        grace_period=grace_period if grace_period is not None else config.grace_period,
        kill_timeout=config.kill_timeout,
        fail_fast=fail_fast if fail_fast is not None else config.fail_fast,
        multiplexer=multiplexer,
        login_shell=config.login_shell,
    )
    signal_manager = SignalManager(orchestrator, double_tap_window=config.double_tap_window)
    logger.debug(f"Starting run: {config}")

    await signal_manager.start()
    try:
        return await orchestrator.run_commands()
    finally:
        await signal_manager.stop()


def run_specs(specs: Sequence[CommandSpec], **options) -> AggregateResult:
    """Blocking wrapper around run_commands()."""
    return asyncio.run(run_commands(specs, **options))
