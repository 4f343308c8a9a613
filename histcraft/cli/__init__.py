"""CLI entry point for histcraft.

This module provides the main CLI application that combines all commands
into a single unified interface.
"""

import typer

from histcraft.cli.craft import craft_command
from histcraft.cli.init import init_config
from histcraft.cli.main import main_command

# Main application
app = typer.Typer(
    name="histcraft",
    help="histcraft: interactive git history crafting",
    add_completion=False,
)

# Add individual commands
app.command("init")(init_config)
app.command("craft")(craft_command)

# Set the main callback for default behavior (includes --version flag)
app.callback(invoke_without_command=True)(main_command)


__all__ = [
    "app",
    "craft_command",
    "init_config",
    "main_command",
]
