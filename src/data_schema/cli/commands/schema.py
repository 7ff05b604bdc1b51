"""Schema CLI commands for data-schema.

Provides CLI access to schema validation, scope generation and schema
inspection: `data-schema validate`, `data-schema scope`, `data-schema describe`.
"""

from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from data_schema.cli.app import app
from data_schema.config import DataSchemaConfig
from data_schema.errors import DataSchemaError
from data_schema.loader import YamlSchemaLoader
from data_schema.schema.nodes import SchemaNode
from data_schema.service import DataSchemaService, scope_skeleton
from data_schema.type_model import InvalidTypeModelError, MappingTypeModel

console = Console()


def _build_service(
    types: Optional[Path],
    schema_dir: Optional[Path],
    extensions: Optional[list[str]] = None,
) -> DataSchemaService:
    """Build a service for offline use: no persister, types from a YAML file."""
    config = DataSchemaConfig()
    update: dict = {}
    if schema_dir is not None:
        update["schema_dir"] = schema_dir
    if extensions:
        update["extensions"] = list(config.extensions) + list(extensions)
    if update:
        config = config.model_copy(update=update)

    type_model = MappingTypeModel.from_yaml(types) if types else MappingTypeModel({})
    return DataSchemaService(
        type_model=type_model,
        config=config,
        loader=YamlSchemaLoader(config.schema_dir),
    )


# --- Validate ---


@app.command()
def validate(
    types: Annotated[
        Path,
        typer.Option("--types", help="YAML file describing the persisted types"),
    ],
    path: Annotated[
        Optional[str],
        typer.Argument(help="Schema file relative to the schema directory. Validates all files if omitted."),
    ] = None,
    schema_dir: Annotated[
        Optional[Path],
        typer.Option("--schema-dir", help="Schema directory (defaults to DATA_SCHEMA_SCHEMA_DIR)"),
    ] = None,
    depth: Annotated[
        Optional[int],
        typer.Option("--depth", help="Maximum nesting depth"),
    ] = None,
    extension: Annotated[
        Optional[list[str]],
        typer.Option("--extension", help='Transformer extension, "package.module:attribute"'),
    ] = None,
):
    """Validate schema files against the type model.

    Exits with code 1 if any file is invalid.
    """
    try:
        service = _build_service(types, schema_dir, extension)
    except (InvalidTypeModelError, OSError, ValueError, ImportError) as e:
        logger.error(f"Error loading validation setup: {e}")
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print("[bold]DataSchema Validator[/bold]\n")

    if path:
        try:
            service.validate_file(path, depth)
        except DataSchemaError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            console.print("[red]Validation failed[/red]")
            raise typer.Exit(1)
        console.print("[green]Validation successful[/green]")
        return

    refs = list(service.loader.iter_schema_files())
    if not refs:
        console.print(
            f'[yellow]Files not found in "{service.config.schema_dir}" directory[/yellow]'
        )
        return

    console.print(f"Validating {len(refs)} configuration files...\n")
    results = service.validate_files(refs, depth)
    failed = [result for result in results if not result.passed]

    for result in failed:
        console.print(f"[bold]{result.schema_ref}:[/bold]")
        console.print("--------------------")
        for error in result.errors:
            console.print(f"[yellow]{escape(error)}[/yellow]")
        console.print()

    if failed:
        console.print(
            f"[red]Validation failed. {len(failed)} configuration files have errors.[/red]"
        )
        raise typer.Exit(1)

    console.print("[green]Validation successful[/green]")


# --- Scope ---


@app.command()
def scope(
    schema: Annotated[str, typer.Argument(help="Schema file relative to the schema directory")],
    schema_dir: Annotated[
        Optional[Path],
        typer.Option("--schema-dir", help="Schema directory (defaults to DATA_SCHEMA_SCHEMA_DIR)"),
    ] = None,
    types: Annotated[
        Optional[Path],
        typer.Option("--types", help="YAML file describing the persisted types"),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the scope to this file instead of stdout"),
    ] = None,
):
    """Generate a scope file listing every visible property of a schema."""
    try:
        service = _build_service(types, schema_dir)
        node = service.get_schema(schema)
    except (DataSchemaError, InvalidTypeModelError, OSError) as e:
        logger.error(f"Error generating scope for {schema}: {e}")
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    document = yaml.safe_dump(scope_skeleton(node), sort_keys=False, default_flow_style=False)

    if output is None:
        typer.echo(document, nl=False)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(document, encoding="utf-8")
    console.print(f'The scope file "[green]{output}[/green]" has been generated.')


# --- Describe ---


def _describe_rows(node: SchemaNode, prefix: str = "") -> list[tuple[str, str, str, str, str]]:
    rows = []
    for name, prop in node.properties.items():
        path = f"{prefix}{name}"
        flags = []
        if prop.identifier:
            flags.append("id")
        if prop.hidden:
            flags.append("hidden")
        if prop.discriminator:
            flags.append(f"discriminator={prop.discriminator}")
        rows.append(
            (
                path,
                prop.value_type or "",
                prop.source or "",
                ", ".join(flags),
                prop.description or "",
            )
        )
        if prop.is_nested:
            rows.extend(_describe_rows(prop.nested_schema, f"{path}."))
    return rows


@app.command()
def describe(
    schema: Annotated[str, typer.Argument(help="Schema file relative to the schema directory")],
    types: Annotated[
        Path,
        typer.Option("--types", help="YAML file describing the persisted types"),
    ],
    schema_dir: Annotated[
        Optional[Path],
        typer.Option("--schema-dir", help="Schema directory (defaults to DATA_SCHEMA_SCHEMA_DIR)"),
    ] = None,
):
    """Show the compiled properties of a schema."""
    try:
        service = _build_service(types, schema_dir)
        node = service.get_schema(schema)
    except (DataSchemaError, InvalidTypeModelError, OSError) as e:
        logger.error(f"Error describing {schema}: {e}")
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Schema: {schema} ({node.type_name or 'untyped'})")
    table.add_column("Property", style="cyan")
    table.add_column("Type")
    table.add_column("Source")
    table.add_column("Flags")
    table.add_column("Description")

    for row in _describe_rows(node):
        table.add_row(*row)

    console.print(table)
