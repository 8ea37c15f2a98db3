"""Shared helpers for the process tests."""

from __future__ import annotations

import asyncio
import io
import os
import shlex
import sys
from pathlib import Path

FIXTURES_DIR = Path(__file__).parent / "fixtures"
NOISY_COMMAND = FIXTURES_DIR / "noisy_command.py"


def noisy(*args: str) -> str:
    """Shell text running the noisy fixture script with args."""
    argv = [sys.executable, str(NOISY_COMMAND), *args]
    return "exec " + " ".join(shlex.quote(part) for part in argv)


def process_alive(pid: int) -> bool:
    """Whether pid is a live (non-zombie) process."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    stat = Path(f"/proc/{pid}/stat")
    try:
        # state is the first field after the parenthesised command name
        state = stat.read_text().rsplit(")", 1)[1].split()[0]
    except (OSError, IndexError):
        return stat.exists()
    return state != "Z"


def sink_lines(sink: io.BytesIO) -> list[str]:
    return sink.getvalue().decode().splitlines()


async def wait_for_lines(sink: io.BytesIO, count: int, timeout: float = 5.0) -> list[str]:
    """Poll the sink until it holds at least count lines."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while len(sink_lines(sink)) < count:
        if loop.time() > deadline:
            raise AssertionError(f"expected {count} lines, got {sink_lines(sink)!r}")
        await asyncio.sleep(0.02)
    return sink_lines(sink)
