"""CLI commands for data-schema."""

from . import schema

__all__ = [
    "schema",
]
