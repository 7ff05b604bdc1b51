"""Command line interface for data-schema."""
