"""data-schema - declarative projection of persisted object graphs."""

from importlib.metadata import PackageNotFoundError, version

from data_schema.access import AccessContext
from data_schema.errors import (
    DataSchemaError,
    DataTransformerNotExistsError,
    InvalidConfigurationError,
    MissingDiscriminatorError,
    NestingDepthExceededError,
)
from data_schema.projection import ProjectionEngine
from data_schema.schema import SchemaCompiler, SchemaNode, SchemaValidator, ScopeFilter
from data_schema.service import DataSchemaService
from data_schema.transformers import DataTransformerRegistry, SimpleDataTransformer, TransformEvent
from data_schema.type_model import MappingTypeModel

try:
    __version__ = version("data-schema")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = [
    "AccessContext",
    "DataSchemaError",
    "DataSchemaService",
    "DataTransformerNotExistsError",
    "DataTransformerRegistry",
    "InvalidConfigurationError",
    "MappingTypeModel",
    "MissingDiscriminatorError",
    "NestingDepthExceededError",
    "ProjectionEngine",
    "SchemaCompiler",
    "SchemaNode",
    "SchemaValidator",
    "ScopeFilter",
    "SimpleDataTransformer",
    "TransformEvent",
    "__version__",
]
