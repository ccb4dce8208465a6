"""gtwatch — supervision and orphan cleanup for tmux-hosted agent fleets."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("gtwatch")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
