"""Config module tests.

Covers CMDMUX_* environment variable parsing.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from cmdmux.config import Config, get_config, load_config, reload_config

CMDMUX_VARS = (
    "CMDMUX_CONFIG_DIR",
    "CMDMUX_GRACE_PERIOD",
    "CMDMUX_KILL_TIMEOUT",
    "CMDMUX_FAIL_FAST",
    "CMDMUX_LOGIN_SHELL",
    "CMDMUX_DOUBLE_TAP_WINDOW",
    "CMDMUX_LOG_DEBUG",
)


def clean_env(**overrides: str) -> dict[str, str]:
    env = {k: v for k, v in os.environ.items() if k not in CMDMUX_VARS}
    env.update(overrides)
    return env


class TestDefaults:
    """Values with no CMDMUX_* variables set."""

    def test_defaults(self):
        with mock.patch.dict(os.environ, clean_env(SHELL="/bin/zsh"), clear=True):
            config = load_config()

        assert config.config_dir == Path.home() / ".config" / "cmdmux"
        assert config.grace_period == 2.0
        assert config.kill_timeout == 1.0
        assert config.fail_fast is False
        assert config.login_shell == "/bin/zsh"
        assert config.double_tap_window == 1.0
        assert config.log_debug is False
        assert config.log_file is None

    def test_login_shell_fallback(self):
        env = clean_env()
        env.pop("SHELL", None)
        with mock.patch.dict(os.environ, env, clear=True):
            assert load_config().login_shell == "/bin/bash"


class TestOverrides:
    """Explicit CMDMUX_* values."""

    def test_config_dir(self, tmp_path: Path):
        with mock.patch.dict(os.environ, clean_env(CMDMUX_CONFIG_DIR=str(tmp_path)), clear=True):
            assert load_config().config_dir == tmp_path

    def test_login_shell_beats_shell(self):
        env = clean_env(SHELL="/bin/zsh", CMDMUX_LOGIN_SHELL="/usr/bin/fish")
        with mock.patch.dict(os.environ, env, clear=True):
            assert load_config().login_shell == "/usr/bin/fish"

    @pytest.mark.parametrize("value", ["true", "True", "1", "yes", "on"])
    def test_fail_fast_truthy(self, value: str):
        with mock.patch.dict(os.environ, clean_env(CMDMUX_FAIL_FAST=value), clear=True):
            assert load_config().fail_fast is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "off", ""])
    def test_fail_fast_falsy(self, value: str):
        with mock.patch.dict(os.environ, clean_env(CMDMUX_FAIL_FAST=value), clear=True):
            assert load_config().fail_fast is False

    def test_grace_period(self):
        with mock.patch.dict(os.environ, clean_env(CMDMUX_GRACE_PERIOD="0.25"), clear=True):
            assert load_config().grace_period == 0.25

    def test_grace_period_clamped(self):
        with mock.patch.dict(os.environ, clean_env(CMDMUX_GRACE_PERIOD="-3"), clear=True):
            assert load_config().grace_period == 0.0
        with mock.patch.dict(os.environ, clean_env(CMDMUX_GRACE_PERIOD="600"), clear=True):
            assert load_config().grace_period == 60.0

    def test_invalid_numbers_fall_back(self):
        env = clean_env(
            CMDMUX_GRACE_PERIOD="soon",
            CMDMUX_KILL_TIMEOUT="",
            CMDMUX_DOUBLE_TAP_WINDOW="x",
        )
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config()
        assert config.grace_period == 2.0
        assert config.kill_timeout == 1.0
        assert config.double_tap_window == 1.0

    def test_kill_timeout_clamped(self):
        with mock.patch.dict(os.environ, clean_env(CMDMUX_KILL_TIMEOUT="0"), clear=True):
            assert load_config().kill_timeout == 0.1

    def test_log_debug_sets_log_file(self):
        with mock.patch.dict(os.environ, clean_env(CMDMUX_LOG_DEBUG="1"), clear=True):
            config = load_config()
        assert config.log_debug is True
        assert config.log_file is not None
        assert Path(config.log_file).parent.is_dir()


class TestGlobalConfig:
    """get_config() caching."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reload_config_replaces_instance(self):
        first = get_config()
        with mock.patch.dict(os.environ, clean_env(CMDMUX_GRACE_PERIOD="3"), clear=True):
            second = reload_config()
        try:
            assert second is not first
            assert get_config().grace_period == 3.0
        finally:
            reload_config()

    def test_repr(self, tmp_path: Path):
        config = Config(config_dir=tmp_path)
        assert "grace_period=2.0" in repr(config)
