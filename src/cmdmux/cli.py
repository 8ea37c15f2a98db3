"""CLI entry point for cmdmux.

Commands:
- cmdmux <profile>: Run every command of a profile in this terminal
- cmdmux list: List the profiles found in the config directory
- cmdmux example: Print (or write) an example profile
"""

from __future__ import annotations

import sys

import click

from . import __version__
from .app import configure_logging, exit_code_for, run_specs
from .config import get_config
from .orchestrator import AggregateResult
from .profiles import EXAMPLE_PROFILE, Profile, ProfileError, load_profiles, write_example

__all__ = ["main"]


def _load_profiles_or_fail() -> list[Profile]:
    try:
        return load_profiles(get_config().config_dir)
    except ProfileError as e:
        raise click.ClickException(str(e)) from e


def _report(result: AggregateResult) -> None:
    """Print one line per failed command to stderr."""
    for failure in result.failures:
        click.secho(f"cmdmux: {failure}", fg="red", err=True)


def _profile_command(profile: Profile) -> click.Command:
    @click.option(
        "--grace-period",
        type=click.FloatRange(min=0.0),
        default=None,
        help="Seconds between SIGTERM and SIGKILL on shutdown.",
    )
    @click.option(
        "--fail-fast",
        is_flag=True,
        default=False,
        help="Stop every command as soon as one fails.",
    )
    def run(grace_period: float | None, fail_fast: bool) -> None:
        specs = profile.to_specs()
        if not specs:
            click.echo(f"Profile {profile.name!r} has no commands", err=True)
            return
        result = run_specs(specs, grace_period=grace_period, fail_fast=fail_fast or None)
        _report(result)
        sys.exit(exit_code_for(result))

    return click.command(
        name=profile.name,
        help=profile.long or profile.short or None,
        short_help=profile.short or None,
    )(run)


class ProfileGroup(click.Group):
    """Group whose subcommands are the built-ins plus one per profile."""

    def _profiles(self) -> dict[str, Profile]:
        return {profile.name: profile for profile in _load_profiles_or_fail()}

    def list_commands(self, ctx: click.Context) -> list[str]:
        builtins = super().list_commands(ctx)
        return builtins + sorted(self._profiles())

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        command = super().get_command(ctx, cmd_name)
        if command is not None:
            return command
        profile = self._profiles().get(cmd_name)
        if profile is None:
            return None
        return _profile_command(profile)


@click.group(cls=ProfileGroup)
@click.version_option(version=__version__)
def main() -> None:
    """cmdmux - run several commands in one terminal.

    Each profile in the config directory (default ~/.config/cmdmux, or
    $CMDMUX_CONFIG_DIR) becomes a subcommand. Ctrl+C stops every command;
    press it twice to kill them immediately.
    """
    configure_logging()


@main.command(name="list")
def list_profiles() -> None:
    """List available profiles."""
    profiles = _load_profiles_or_fail()
    if not profiles:
        config_dir = get_config().config_dir
        click.echo(f"No profiles in {config_dir}. Try: cmdmux example --write")
        return
    width = max(len(profile.name) for profile in profiles)
    for profile in profiles:
        click.echo(f"{profile.name.ljust(width)}  {profile.short}".rstrip())


@main.command()
@click.option("--write", is_flag=True, help="Write the example into the config directory.")
def example(write: bool) -> None:
    """Show an example profile."""
    if not write:
        click.echo(EXAMPLE_PROFILE, nl=False)
        return
    try:
        path = write_example(get_config().config_dir)
    except ProfileError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Wrote {path}")


if __name__ == "__main__":
    main()
