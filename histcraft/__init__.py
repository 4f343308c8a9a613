"""Interactive commit history crafting tool."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("histcraft")
except PackageNotFoundError:
    # Fallback for development mode
    __version__ = "0.0.0-dev"
