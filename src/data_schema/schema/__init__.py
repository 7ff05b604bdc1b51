"""Schema system for data-schema.

Compiles declarative schema trees, filters them per request and validates
them against the type model. Schemas are plain YAML; compiled trees are
immutable SchemaNode/PropertyNode dataclasses.
"""

from data_schema.schema.nodes import (
    JoinMode,
    PropertyNode,
    SchemaNode,
    ValueType,
)
from data_schema.schema.parser import (
    PropertyConfig,
    SchemaConfig,
    deep_merge,
    parse_decode_string,
    parse_schema_config,
)
from data_schema.schema.scope import (
    ScopeNode,
    apply_scope,
    parse_scope,
)
from data_schema.schema.sources import (
    resolve_source_chain,
    source_chain,
)
from data_schema.schema.cache import SchemaCache
from data_schema.schema.compiler import SchemaCompiler
from data_schema.schema.filter import ScopeFilter
from data_schema.schema.validator import (
    SchemaValidationResult,
    SchemaValidator,
)

__all__ = [
    # Nodes
    "JoinMode",
    "PropertyNode",
    "SchemaNode",
    "ValueType",
    # Parser
    "PropertyConfig",
    "SchemaConfig",
    "deep_merge",
    "parse_decode_string",
    "parse_schema_config",
    # Scope
    "ScopeNode",
    "apply_scope",
    "parse_scope",
    # Sources
    "resolve_source_chain",
    "source_chain",
    # Cache
    "SchemaCache",
    # Compiler
    "SchemaCompiler",
    # Filter
    "ScopeFilter",
    # Validator
    "SchemaValidationResult",
    "SchemaValidator",
]
