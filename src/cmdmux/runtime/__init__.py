"""Runtime module for spawning, streaming and terminating commands.

This module provides isolated process execution with line-atomic output
multiplexing and reliable termination of whole process groups.
"""

from __future__ import annotations

from .errors import CommandError, RuntimeExitError, SignalDeliveryError, SpawnError
from .monitored import CommandResult, CommandState, MonitoredCommand
from .multiplexer import OutputChannel, OutputMultiplexer
from .spec import CommandSpec, expand_env

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandSpec",
    "CommandState",
    "MonitoredCommand",
    "OutputChannel",
    "OutputMultiplexer",
    "RuntimeExitError",
    "SignalDeliveryError",
    "SpawnError",
    "expand_env",
]
