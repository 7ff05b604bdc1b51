"""Main CLI entry point for data-schema."""  # pragma: no cover

from data_schema.cli.app import app  # pragma: no cover

# Register commands
from data_schema.cli.commands import schema  # noqa: F401  # pragma: no cover

if __name__ == "__main__":  # pragma: no cover
    # start the app
    app()
