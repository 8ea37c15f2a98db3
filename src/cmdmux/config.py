"""cmdmux environment configuration.

Environment variables:
    CMDMUX_CONFIG_DIR: Directory holding profile files
        - default: ~/.config/cmdmux

    CMDMUX_GRACE_PERIOD: Seconds between SIGTERM and SIGKILL when stopping
        - default 2.0, clamped to 0-60

    CMDMUX_KILL_TIMEOUT: Seconds to wait for exit after SIGKILL
        - default 1.0, clamped to 0.1-30

    CMDMUX_FAIL_FAST: Stop every command as soon as one fails
        - true/1/yes = on
        - false/0/no = off (default, run to completion and aggregate)

    CMDMUX_LOGIN_SHELL: Shell used for login-shell commands
        - default: $SHELL, falling back to /bin/bash

    CMDMUX_DOUBLE_TAP_WINDOW: Second Ctrl+C within this window skips the
        grace period and kills everything
        - default 1.0 seconds

    CMDMUX_LOG_DEBUG: Debug logging
        - true/1/yes = debug log written to a temp file
        - false/0/no = warnings only, to stderr (default)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .runtime.monitored import DEFAULT_GRACE_PERIOD, DEFAULT_KILL_TIMEOUT, DEFAULT_LOGIN_SHELL

__all__ = ["Config", "load_config", "get_config", "reload_config"]


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(value: str | None, default: float, low: float, high: float) -> float:
    """Parse a duration in seconds, clamped to [low, high]."""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return max(low, min(seconds, high))


def _default_config_dir() -> Path:
    return Path.home() / ".config" / "cmdmux"


def _default_login_shell() -> str:
    return os.environ.get("CMDMUX_LOGIN_SHELL") or os.environ.get("SHELL") or DEFAULT_LOGIN_SHELL


def _generate_log_file_path() -> str:
    """Build a timestamped debug log path under the system temp dir."""
    log_dir = Path(tempfile.gettempdir()) / "cmdmux"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"cmdmux_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """cmdmux configuration.

    Attributes:
        config_dir: Directory holding profile files
        grace_period: Seconds between SIGTERM and SIGKILL
        kill_timeout: Seconds to wait after SIGKILL
        fail_fast: Stop siblings when one command fails
        login_shell: Shell used for login-shell commands
        double_tap_window: Window for the forcing second Ctrl+C
        log_debug: Write a debug log to a temp file
        log_file: Debug log path (set when log_debug is on)
    """

    config_dir: Path
    grace_period: float = DEFAULT_GRACE_PERIOD
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    fail_fast: bool = False
    login_shell: str = DEFAULT_LOGIN_SHELL
    double_tap_window: float = 1.0
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(config_dir={self.config_dir}, "
            f"grace_period={self.grace_period}, "
            f"kill_timeout={self.kill_timeout}, "
            f"fail_fast={self.fail_fast}, "
            f"login_shell={self.login_shell}, "
            f"double_tap_window={self.double_tap_window}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("CMDMUX_LOG_DEBUG"), default=False)
    config_dir = os.environ.get("CMDMUX_CONFIG_DIR")

    return Config(
        config_dir=Path(config_dir).expanduser() if config_dir else _default_config_dir(),
        grace_period=_parse_seconds(
            os.environ.get("CMDMUX_GRACE_PERIOD"), DEFAULT_GRACE_PERIOD, 0.0, 60.0
        ),
        kill_timeout=_parse_seconds(
            os.environ.get("CMDMUX_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT, 0.1, 30.0
        ),
        fail_fast=_parse_bool(os.environ.get("CMDMUX_FAIL_FAST"), default=False),
        login_shell=_default_login_shell(),
        double_tap_window=_parse_seconds(
            os.environ.get("CMDMUX_DOUBLE_TAP_WINDOW"), 1.0, 0.1, 10.0
        ),
        log_debug=log_debug,
        log_file=_generate_log_file_path() if log_debug else None,
    )


# Global config instance (lazily loaded)
_config: Config | None = None


def get_config() -> Config:
    """Return the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration (used by tests)."""
    global _config
    _config = load_config()
    return _config
