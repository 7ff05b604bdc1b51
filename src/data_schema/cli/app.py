from typing import Optional

import typer

from data_schema.config import DataSchemaConfig, init_logging


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:  # pragma: no cover
        import data_schema

        typer.echo(f"data-schema version: {data_schema.__version__}")
        raise typer.Exit()


app = typer.Typer(name="data-schema")


@app.callback()
def app_callback(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level for stderr output",
        envvar="DATA_SCHEMA_LOG_LEVEL",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """data-schema - declarative projections of persisted object graphs."""
    config = DataSchemaConfig()
    if log_level:
        config = config.model_copy(update={"log_level": log_level})
    init_logging(config)
