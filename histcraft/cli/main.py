"""Top-level CLI callback."""

from typing import Optional

import typer

from histcraft import __version__


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"histcraft {__version__}")
        raise typer.Exit(0)


def main_command(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """Craft git history: reword, split, squash, reorder and drop commits."""
    # If a subcommand is invoked, don't run the default behavior
    if ctx.invoked_subcommand is not None:
        return
    typer.echo(ctx.get_help())
