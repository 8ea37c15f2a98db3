"""Profile files: named groups of commands stored as YAML.

Each ``*.yml`` / ``*.yaml`` file in the config directory holds one profile:

    name: dev
    shell: bash          # optional; commands run through "bash -l -c"
    short: start the dev stack
    commands:
      - name: api
        command: make run
        directory: $HOME/src/api
      - command: docker compose up db
        silence: true

Profiles become CLI subcommands, so names must be unique and must not shadow
the built-in commands.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .runtime import CommandSpec

__all__ = [
    "CommandEntry",
    "Profile",
    "ProfileError",
    "EXAMPLE_PROFILE",
    "RESERVED_NAMES",
    "load_profiles",
    "parse_profile",
    "write_example",
]

logger = logging.getLogger(__name__)

PROFILE_SUFFIXES = (".yml", ".yaml")

RESERVED_NAMES = frozenset({"completion", "example", "help", "list"})

EXAMPLE_FILENAME = "example.yml"

EXAMPLE_PROFILE = """\
# cmdmux profile
# Run it with: cmdmux example-dev
name: example-dev

# Optional. Run every command through this shell as a login shell
# ("<shell> -l -c <command>") so profile files and PATH tweaks apply.
# Without it commands run through /bin/sh -c.
# shell: bash

# One-line description shown by "cmdmux list" and "cmdmux --help"
short: an example profile that runs two commands side by side

# Optional longer help text
long: |
  Copy this file, rename it and edit the commands below.
  Every file in this directory is one profile.

commands:
  # Output lines are prefixed with "[clock] "
  - name: clock
    command: for i in 1 2 3; do date; sleep 1; done

  # Environment variables are expanded before the command is spawned
  - name: home
    command: ls
    directory: $HOME

  # Runs, but its output is thrown away
  - name: quiet
    command: echo you will not see this
    silence: true

  # No name: output is passed through without a prefix
  - command: echo no prefix here
"""


class ProfileError(Exception):
    """A profile file is missing, malformed or conflicts with another."""


class CommandEntry(BaseModel):
    """One command of a profile."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = ""
    command: str = Field(min_length=1)
    directory: str | None = None
    silence: bool = False


class Profile(BaseModel):
    """A named group of commands run together.

    Attributes:
        name: Subcommand name
        shell: Login shell for every command (None = /bin/sh -c)
        short: One-line help
        long: Long help
        commands: Commands in start order
        source: File the profile was read from
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    shell: str | None = None
    short: str = ""
    long: str = ""
    commands: list[CommandEntry] = Field(default_factory=list)
    source: Path | None = Field(default=None, exclude=True)

    def to_specs(self) -> list[CommandSpec]:
        """Build the command specifications for this profile."""
        return [
            CommandSpec(
                command=entry.command,
                name=entry.name,
                cwd=entry.directory or None,
                use_login_shell=bool(self.shell),
                silence=entry.silence,
                shell=self.shell or None,
            )
            for entry in self.commands
        ]


def parse_profile(text: str, source: Path | None = None) -> Profile:
    """Parse one profile from YAML text.

    Raises:
        ProfileError: If the YAML is invalid or does not describe a profile
    """
    where = str(source) if source else "<string>"
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ProfileError(f"{where}: invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ProfileError(f"{where}: expected a mapping at the top level")

    try:
        return Profile.model_validate({**data, "source": source})
    except ValidationError as e:
        raise ProfileError(f"{where}: {e}") from e


def load_profiles(config_dir: Path) -> list[Profile]:
    """Load every profile in config_dir, creating the directory if needed.

    Returns:
        Profiles sorted by file name

    Raises:
        ProfileError: On unreadable or invalid files, duplicate names or
            reserved names
    """
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ProfileError(f"cannot create config directory {config_dir}: {e}") from e

    profiles: list[Profile] = []
    seen: dict[str, Path] = {}

    for path in sorted(config_dir.iterdir()):
        if not path.is_file() or path.suffix not in PROFILE_SUFFIXES:
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ProfileError(f"reading {path}: {e}") from e

        profile = parse_profile(text, source=path)
        if profile.name in RESERVED_NAMES:
            raise ProfileError(f"{path}: the profile name {profile.name!r} is reserved")
        if profile.name in seen:
            raise ProfileError(
                f"{path}: profile name {profile.name!r} already used by {seen[profile.name]}"
            )
        seen[profile.name] = path
        profiles.append(profile)

    logger.debug(f"Loaded {len(profiles)} profile(s) from {config_dir}")
    return profiles


def write_example(config_dir: Path) -> Path:
    """Write the example profile into config_dir.

    Raises:
        ProfileError: If the example file already exists
    """
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / EXAMPLE_FILENAME
    if path.exists():
        raise ProfileError(f"{path} already exists")
    path.write_text(EXAMPLE_PROFILE, encoding="utf-8")
    return path
