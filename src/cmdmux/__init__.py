"""cmdmux - run a set of shell commands concurrently in one terminal.

Output of every command is multiplexed onto stdout, one whole line at a time,
prefixed with the command's name. Ctrl+C stops every command and no process
outlives the run.

Environment variables:
    CMDMUX_CONFIG_DIR: Profile directory (default ~/.config/cmdmux)
    CMDMUX_GRACE_PERIOD: Seconds between SIGTERM and SIGKILL (default 2.0)
    CMDMUX_FAIL_FAST: Stop all commands when one fails (default false)

Usage:
    cmdmux <profile>
"""

__version__ = "0.1.0"

from .orchestrator import AggregateResult, Orchestrator, OrchestratorState
from .runtime import CommandResult, CommandSpec, CommandState

__all__ = [
    "__version__",
    "AggregateResult",
    "CommandResult",
    "CommandSpec",
    "CommandState",
    "Orchestrator",
    "OrchestratorState",
]
