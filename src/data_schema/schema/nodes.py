"""Compiled schema tree for data schema projection.

A compiled schema is a tree of SchemaNode levels, each holding an ordered
mapping of PropertyNode rules. Nodes are produced by the compiler, pruned
per request by the scope filter and consumed by the projection engine.
Compiled trees are never mutated; derived trees are built with
dataclasses.replace.
"""

from dataclasses import dataclass, field
from enum import Enum


# --- Value types ---


class ValueType(str, Enum):
    """Structural value types a property can take.

    Leaf properties may also carry a declared scalar type name taken from
    the type model (string, integer, datetime, ...), stored as a plain str.
    """

    SCALAR = "scalar"
    ARRAY = "array"
    JSON_ARRAY = "json_array"
    ENTITY = "entity"
    COLLECTION = "collection"


# A null value on any of these becomes an empty list in the output document.
CONTAINER_TYPES = frozenset(
    {ValueType.ARRAY.value, ValueType.JSON_ARRAY.value, ValueType.COLLECTION.value}
)

NESTED_TYPES = frozenset({ValueType.ENTITY.value, ValueType.COLLECTION.value})


class JoinMode(str, Enum):
    """Join hint for nested properties; advisory to the persister."""

    NONE = "none"
    LEFT = "left"
    INNER = "inner"


# --- Tree ---


@dataclass(frozen=True)
class PropertyNode:
    """One property rule within a SchemaNode."""

    name: str
    value_type: str | None = None  # ValueType value or declared scalar type
    nested_schema: "SchemaNode | None" = None
    schema_ref: str | None = None  # external schema spliced into nested_schema
    source: str | None = None  # property or query select this one aliases
    decode: tuple[str, ...] = ()  # transformer names, applied in order
    hidden: bool = False
    identifier: bool = False  # injected from the type model's identifier fields
    discriminator: str | None = None
    ignore_discriminator_mismatch: bool = False
    conditions: tuple[str, ...] = ()
    join: JoinMode = JoinMode.NONE
    description: str | None = None
    from_store: bool = False
    storage_field_name: str | None = None

    @property
    def is_nested(self) -> bool:
        return self.nested_schema is not None

    @property
    def is_virtual(self) -> bool:
        return self.source is not None

    @property
    def is_container(self) -> bool:
        return self.value_type in CONTAINER_TYPES


@dataclass(frozen=True)
class SchemaNode:
    """One compiled schema level (root, nested object or collection element)."""

    type_name: str | None = None
    schema_ref: str | None = None
    roles: tuple[str, ...] = ()
    filter_null_values: bool = True
    has_subclasses: bool = False
    discriminator_column: str | None = None
    discriminator_map: dict[str, str] = field(default_factory=dict)
    table_name: str | None = None
    identifier_fields: tuple[str, ...] = ()
    query_selects: dict[str, str] = field(default_factory=dict)
    properties: dict[str, PropertyNode] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to render at this level."""
        return not self.properties

    def get_property(self, path: str) -> PropertyNode | None:
        """Look up a property by dotted path, e.g. 'author.name'."""
        node: SchemaNode | None = self
        prop: PropertyNode | None = None
        for part in path.split("."):
            if node is None:
                return None
            prop = node.properties.get(part)
            if prop is None:
                return None
            node = prop.nested_schema
        return prop

    def resolve_type(self, discriminator: str | None) -> str | None:
        """Concrete type for a discriminator tag: subtype first, base type fallback."""
        if discriminator and discriminator in self.discriminator_map:
            return self.discriminator_map[discriminator]
        return self.type_name

    def applies_to(self, prop: PropertyNode, branch_type: str | None) -> bool:
        """Whether a property applies to a record resolved to branch_type."""
        if not prop.discriminator or not self.discriminator_map:
            return True
        if prop.ignore_discriminator_mismatch:
            return True
        return self.discriminator_map.get(prop.discriminator) == branch_type

    def without_properties(self) -> "SchemaNode":
        """An empty copy of this level; what an unauthorized caller gets."""
        return SchemaNode(
            type_name=self.type_name,
            schema_ref=self.schema_ref,
            roles=self.roles,
            filter_null_values=self.filter_null_values,
        )
