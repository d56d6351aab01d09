"""Snapshot backup and restore of container /opt/ directories."""

from .__version__ import __version__

__all__ = ["__version__"]
