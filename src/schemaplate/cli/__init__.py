"""Command line interface for schemaplate."""

from .main import main, schemaplate

__all__ = ["main", "schemaplate"]
