"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from cmdmux.runtime import OutputMultiplexer  # noqa: E402


@pytest.fixture
def sink() -> io.BytesIO:
    """In-memory output sink."""
    return io.BytesIO()


@pytest.fixture
def mux(sink: io.BytesIO) -> OutputMultiplexer:
    """Multiplexer writing into the in-memory sink."""
    return OutputMultiplexer(sink)


@pytest.fixture
def config_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Point cmdmux at a temporary config directory and reload config."""
    from cmdmux.config import reload_config

    config_dir = tmp_path / "profiles"
    monkeypatch.setenv("CMDMUX_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("CMDMUX_GRACE_PERIOD", "0.5")
    monkeypatch.delenv("CMDMUX_LOG_DEBUG", raising=False)
    monkeypatch.delenv("CMDMUX_FAIL_FAST", raising=False)
    monkeypatch.delenv("CMDMUX_DOUBLE_TAP_WINDOW", raising=False)
    reload_config()
    yield config_dir
    monkeypatch.undo()
    reload_config()
