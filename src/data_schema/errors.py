"""
Custom exceptions for data schema compilation, validation and projection.

Property-scoped errors are raised internally and re-wrapped into
InvalidConfigurationError at the boundary where recursion unwinds, so
callers only ever need to catch the schema-wide error. The original
error is kept as __cause__.
"""

from typing import Any


class DataSchemaError(Exception):
    """Base exception for all data schema errors."""

    pass


def schema_identity(schema: Any) -> str:
    """Render a human-readable identity for a schema node, raw config or name."""
    if schema is None:
        return "<inline>"
    if isinstance(schema, str):
        return schema
    if isinstance(schema, dict):
        return str(schema.get("schema") or schema.get("class") or "<inline>")

    schema_ref = getattr(schema, "schema_ref", None)
    type_name = getattr(schema, "type_name", None)
    return str(schema_ref or type_name or "<inline>")


class InvalidConfigurationError(DataSchemaError):
    """Raised when a schema as a whole is invalid.

    The message is prefixed with the schema identity (file reference or
    type name) so nested failures read as a path.
    """

    def __init__(self, schema: Any, message: str):
        self.schema = schema_identity(schema)
        self.detail = message
        super().__init__(f'Schema "{self.schema}": {message}')


class SchemaNotFoundError(InvalidConfigurationError):
    """Raised when a referenced schema file does not exist."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(ref, f'Schema file "{ref}" not found')


class NestingDepthExceededError(InvalidConfigurationError):
    """Raised when nested properties go deeper than the depth budget allows."""

    def __init__(self, schema: Any, message: str = "Maximum nesting depth exceeded"):
        super().__init__(schema, message)


class InvalidConfigurationPropertyError(DataSchemaError):
    """Raised when a single property is misconfigured."""

    def __init__(self, property_name: str, message: str):
        self.property_name = property_name
        self.detail = message
        super().__init__(f'Property "{property_name}": {message}')


class SourceResolutionError(InvalidConfigurationPropertyError):
    """Raised when a virtual property's source chain cannot be resolved."""

    def __init__(self, property_name: str, message: str, chain: list[str] | None = None):
        self.chain = chain or [property_name]
        super().__init__(property_name, message)


class SourceCycleError(SourceResolutionError):
    """Raised when a source chain refers back to the property that started it."""


class MaxSourceDepthExceededError(SourceResolutionError):
    """Raised when a source chain is longer than the allowed referencing depth."""


class DataTransformerNotExistsError(DataSchemaError):
    """Raised when a decode pipeline names an unregistered transformer."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'DataTransformer "{name}" doesn\'t exist')


class MissingDiscriminatorError(DataSchemaError):
    """Raised when a polymorphic record carries no discriminator value."""

    def __init__(self, type_name: str | None, column: str | None):
        self.type_name = type_name
        self.column = column
        super().__init__(
            f'Record of polymorphic type "{type_name}" has no value in discriminator column "{column}"'
        )


class UnknownTypeError(DataSchemaError):
    """Raised by a type model asked about a type it doesn't describe."""

    def __init__(self, type_name: str | None):
        self.type_name = type_name
        super().__init__(f'Unknown type "{type_name}"')


class InvalidScopeError(DataSchemaError):
    """Raised when a scope document is not a nested mapping of names."""

    pass


class InvalidQueryError(DataSchemaError):
    """Raised by a persister when an association query cannot be built."""

    pass
