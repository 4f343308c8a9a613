"""CLI command for initializing the repository configuration."""

import typer

from histcraft.git.exceptions import RepositoryUnavailable
from histcraft.git.runner import get_repo_root
from histcraft.user_config import DEFAULT_CONFIG, get_config_file, save_config


def init_config(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite an existing configuration without asking",
    ),
) -> None:
    """Write the default .histcraft/config.yaml for this repository."""
    try:
        repo_root = get_repo_root()
    except RepositoryUnavailable as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    config_file = get_config_file(repo_root)
    if config_file.exists() and not force:
        overwrite = typer.confirm(
            f"Configuration already exists at {config_file}. Overwrite?",
            default=False,
        )
        if not overwrite:
            typer.echo("Keeping existing configuration.")
            raise typer.Exit(0)

    save_config(repo_root, DEFAULT_CONFIG)
    typer.echo(f"Configuration saved to {config_file}")
