"""Raw schema configuration parser.

Normalizes an already-loaded schema tree (plain dicts from YAML) into
pydantic models with every declared default applied. The accepted keys are:

  class: Article                   # persisted type described by this level
  schema: base/article.yml         # schema file to inherit from / splice in
  roles: [ROLE_ADMIN]              # empty = public
  filter_null_values: true         # omit null leaves from the output
  query:
    selects:
      comment_count: "COUNT(...)"  # named virtual selects
  properties:
    title:
      description: Article title
      type: string
      source: other_property       # virtual alias
      decode: "trim | upper"       # transformer pipeline
      hidden: false
      discriminator: news
      ignore_discriminator_mismatch: false
      join: none                   # none | left | inner
      conditions: ["{{ alias }}.published = 1"]
      properties: {...}            # inline nested schema

Inheritance between schema files is resolved on the raw dicts before
parsing, see merge_inherited().
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from data_schema.errors import InvalidConfigurationError
from data_schema.schema.nodes import JoinMode


# --- Config models ---


class QueryConfig(BaseModel):
    """Named virtual selects executed by the persister."""

    model_config = ConfigDict(extra="forbid")

    selects: dict[str, str] = Field(default_factory=dict)

    @field_validator("selects", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value if value is not None else {}


class NodeConfig(BaseModel):
    """Options shared by a schema root and a nested property."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    class_name: str | None = Field(default=None, alias="class")
    schema_ref: str | None = Field(default=None, alias="schema")
    roles: list[str] = Field(default_factory=list)
    filter_null_values: bool = True
    query: QueryConfig = Field(default_factory=QueryConfig)
    properties: dict[str, dict[str, Any]] | None = None

    @field_validator("roles", mode="before")
    @classmethod
    def _cast_roles(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("query", mode="before")
    @classmethod
    def _none_query(cls, value: Any) -> Any:
        return value if value is not None else {}

    @field_validator("properties", mode="before")
    @classmethod
    def _none_property_configs(cls, value: Any) -> Any:
        # `title:` with no options loads as None from YAML
        if isinstance(value, dict):
            return {name: config if config is not None else {} for name, config in value.items()}
        return value

    @property
    def is_nested(self) -> bool:
        return bool(self.schema_ref) or self.properties is not None


class PropertyConfig(NodeConfig):
    """A single property declaration."""

    description: str | None = None
    discriminator: str | None = None
    ignore_discriminator_mismatch: bool = False
    join: JoinMode = JoinMode.NONE
    type: str | None = None
    source: str | None = None
    decode: str | None = None
    hidden: bool = False
    conditions: list[str] = Field(default_factory=list)

    @field_validator("conditions", mode="before")
    @classmethod
    def _cast_conditions(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("join", mode="before")
    @classmethod
    def _none_join(cls, value: Any) -> Any:
        return value if value is not None else JoinMode.NONE


class SchemaConfig(NodeConfig):
    """A schema level: the root or the node part of a nested property."""

    pass


# Keys of a property declaration that describe the nested level it opens
NODE_KEYS = ("class", "schema", "roles", "filter_null_values", "query", "properties")


# --- Parsing ---


def parse_schema_config(raw: dict, identity: str | None = None) -> SchemaConfig:
    """Parse one raw schema level into a SchemaConfig.

    Nested property declarations are kept raw; each level is parsed when
    the compiler reaches it.

    Args:
        raw: The schema dict as loaded from YAML.
        identity: Schema file reference or name used in error messages.

    Raises:
        InvalidConfigurationError: If the tree has unknown keys or wrongly typed values.
    """
    if not isinstance(raw, dict):
        raise InvalidConfigurationError(identity, "Schema configuration must be a mapping")

    try:
        return SchemaConfig.model_validate(raw)
    except ValidationError as e:
        raise InvalidConfigurationError(identity or raw, _format_validation_error(e)) from e


def parse_property_config(raw: dict | None, identity: str | None = None) -> PropertyConfig:
    """Parse a single raw property declaration."""
    try:
        return PropertyConfig.model_validate(raw or {})
    except ValidationError as e:
        raise InvalidConfigurationError(identity, _format_validation_error(e)) from e


def parse_decode_string(decode: str | None) -> list[str]:
    """Split a decode pipeline like 'trim | upper' into transformer names."""
    if not decode:
        return []
    return [name.strip() for name in decode.split("|") if name.strip()]


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


# --- Inheritance ---


def deep_merge(*mappings: dict) -> dict:
    """Recursively merge mappings; later values win, lists are concatenated."""
    result: dict = {}
    for mapping in mappings:
        for key, value in mapping.items():
            current = result.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                result[key] = deep_merge(current, value)
            elif isinstance(current, list) and isinstance(value, list):
                result[key] = current + value
            else:
                result[key] = value
    return result


def merge_inherited(base: dict, local: dict) -> dict:
    """Splice a base schema under locally declared options.

    Properties keep the base's order; a property declared in both places is
    the base declaration deep-merged with the local one, and local-only
    properties are appended in local order. Any other top-level option the
    base has and the local tree lacks is inherited.
    """
    merged = {key: value for key, value in local.items() if key != "schema"}

    base_properties = base.get("properties") or {}
    local_properties = local.get("properties") or {}
    if base_properties or local_properties:
        properties: dict = {}
        for name, config in base_properties.items():
            if name in local_properties:
                properties[name] = deep_merge(config or {}, local_properties[name] or {})
            else:
                properties[name] = config
        for name, config in local_properties.items():
            if name not in properties:
                properties[name] = config
        merged["properties"] = properties

    for key, value in base.items():
        if key not in ("properties", "schema") and key not in merged:
            merged[key] = value

    return merged
