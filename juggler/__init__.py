"""Single-printer job runner for the intern print queue."""

from .version import __version__

__all__ = ["__version__"]
