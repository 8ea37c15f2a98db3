"""Command specifications and spawn-time environment expansion."""

from __future__ import annotations

import os
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass

__all__ = [
    "CommandSpec",
    "expand_env",
    "IS_WINDOWS",
]

IS_WINDOWS = sys.platform == "win32"

# $NAME or ${NAME}; a "$" followed by anything else is left alone
_ENV_REF = re.compile(r"\$(?:\{(?P<braced>[^}]*)\}|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))")

DIRECT_SHELL = ["cmd.exe", "/c"] if IS_WINDOWS else ["/bin/sh", "-c"]


def expand_env(text: str, environ: Mapping[str, str] | None = None) -> str:
    """Expand ``$VAR`` and ``${VAR}`` references in text.

    Unset variables expand to the empty string. A ``$`` that does not start
    a variable reference (``$$``, ``$1``, a trailing ``$``) is kept as is so
    the shell can still interpret it. Unlike a plain environment expander,
    special parameters such as ``$$`` and ``$1`` are never blanked; the
    shell receives them untouched.

    Args:
        text: Text that may contain variable references
        environ: Variables to expand against (default: os.environ)

    Returns:
        The expanded text
    """
    env = os.environ if environ is None else environ

    def _replace(match: re.Match[str]) -> str:
        name = match.group("braced")
        if name is None:
            name = match.group("bare")
        return env.get(name, "")

    return _ENV_REF.sub(_replace, text)


@dataclass(frozen=True)
class CommandSpec:
    """Immutable description of one command to run.

    Attributes:
        command: Shell text to execute
        name: Line prefix label; empty means output is passed through unprefixed
        cwd: Working directory (None = inherit); may reference env variables
        use_login_shell: Run through ``<shell> -l -c`` instead of ``/bin/sh -c``
        silence: Drain the command's output without forwarding it
        shell: Login shell executable (None = configured default)
    """

    command: str
    name: str = ""
    cwd: str | None = None
    use_login_shell: bool = False
    silence: bool = False
    shell: str | None = None

    def expanded_command(self, environ: Mapping[str, str] | None = None) -> str:
        return expand_env(self.command, environ)

    def expanded_cwd(self, environ: Mapping[str, str] | None = None) -> str | None:
        """Resolve the working directory, or None to inherit ours."""
        if not self.cwd:
            return None
        return expand_env(self.cwd, environ) or None

    def build_argv(
        self,
        login_shell: str,
        environ: Mapping[str, str] | None = None,
    ) -> list[str]:
        """Build the argv used to spawn this command.

        Args:
            login_shell: Shell executable used when ``use_login_shell`` is set
                and the spec does not name its own
            environ: Variables to expand against (default: os.environ)
        """
        text = self.expanded_command(environ)
        if self.use_login_shell:
            return [self.shell or login_shell, "-l", "-c", text]
        return [*DIRECT_SHELL, text]
