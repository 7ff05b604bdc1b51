"""Type model contract and a declarative implementation.

The compiler, validator and projection engine never talk to an ORM
directly; they ask a TypeModel about identifier fields, fields,
associations and discriminators of a persisted type.

MappingTypeModel describes types in plain data (usually a YAML file):

  Article:
    table: article
    identifier: [id]
    fields:
      id: {type: integer}
      title: {type: string, comment: Article title}
    associations:
      author: {kind: many_to_one, target: Author}
      tags: {kind: many_to_many, target: Tag, order_by: {name: ASC}}
    discriminator:
      column: kind
      map: {news: News, post: Post}
  News:
    extends: Article
    fields:
      source_url: {type: string, column: source_url}
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from data_schema.errors import DataSchemaError, UnknownTypeError


class AssociationKind(str, Enum):
    MANY_TO_MANY = "many_to_many"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    ONE_TO_ONE = "one_to_one"

    @property
    def is_collection(self) -> bool:
        return self in (AssociationKind.MANY_TO_MANY, AssociationKind.ONE_TO_MANY)


@dataclass(frozen=True)
class AssociationMapping:
    """Everything a persister needs to fetch one association."""

    source_type: str
    name: str
    kind: AssociationKind
    target_type: str
    order_by: dict[str, str] = field(default_factory=dict)
    mapped_by: str | None = None
    inversed_by: str | None = None

    @property
    def is_owning_side(self) -> bool:
        return self.mapped_by is None

    @property
    def is_collection(self) -> bool:
        return self.kind.is_collection


class TypeModel(Protocol):
    """Metadata provider describing persisted types."""

    def has_type(self, type_name: str) -> bool: ...

    def has_field(self, type_name: str, name: str) -> bool: ...

    def has_association(self, type_name: str, name: str) -> bool: ...

    def association(self, type_name: str, name: str) -> AssociationMapping: ...

    def association_kind(self, type_name: str, name: str) -> AssociationKind: ...

    def is_collection_valued(self, type_name: str, name: str) -> bool: ...

    def target_type(self, type_name: str, name: str) -> str: ...

    def identifier_fields(self, type_name: str) -> list[str]: ...

    def field_type(self, type_name: str, name: str) -> str | None: ...

    def field_comment(self, type_name: str, name: str) -> str | None: ...

    def column_name(self, type_name: str, name: str) -> str | None: ...

    def field_names(self, type_name: str) -> list[str]: ...

    def association_names(self, type_name: str) -> list[str]: ...

    def table_name(self, type_name: str) -> str | None: ...

    def discriminator_column(self, type_name: str) -> str | None: ...

    def discriminator_map(self, type_name: str) -> dict[str, str]: ...

    def subclasses(self, type_name: str) -> list[str]: ...


# --- Declarative definitions ---


class FieldDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str = "string"
    column: str | None = None
    comment: str | None = None


class AssociationDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: AssociationKind
    target: str
    order_by: dict[str, str] = Field(default_factory=dict)
    mapped_by: str | None = None
    inversed_by: str | None = None


class DiscriminatorDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    column: str
    map: dict[str, str]


class TypeDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    table: str | None = None
    extends: str | None = None
    identifier: list[str] = Field(default_factory=lambda: ["id"])
    fields: dict[str, FieldDefinition] = Field(default_factory=dict)
    associations: dict[str, AssociationDefinition] = Field(default_factory=dict)
    discriminator: DiscriminatorDefinition | None = None


class InvalidTypeModelError(DataSchemaError):
    """Raised when a declarative type model is malformed."""

    pass


@dataclass
class _ResolvedType:
    name: str
    definition: TypeDefinition
    fields: dict[str, FieldDefinition]
    associations: dict[str, AssociationDefinition]
    root: str


class MappingTypeModel:
    """TypeModel backed by plain data; subtypes inherit from their `extends` parent."""

    def __init__(self, types: dict[str, dict | TypeDefinition]):
        try:
            self._definitions = {
                name: definition
                if isinstance(definition, TypeDefinition)
                else TypeDefinition.model_validate(definition or {})
                for name, definition in types.items()
            }
        except ValidationError as e:
            raise InvalidTypeModelError(f"Invalid type model: {e}") from e

        self._resolved: dict[str, _ResolvedType] = {}
        for name in self._definitions:
            self._resolve(name, [])

    @classmethod
    def from_yaml(cls, path: Path | str) -> "MappingTypeModel":
        """Load a type model from a YAML file."""
        content = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(content, dict):
            raise InvalidTypeModelError(f"Type model file {path} must contain a mapping")
        return cls(content)

    def _resolve(self, name: str, seen: list[str]) -> _ResolvedType:
        if name in self._resolved:
            return self._resolved[name]
        if name in seen:
            raise InvalidTypeModelError(f"Circular inheritance: {' > '.join(seen + [name])}")
        if name not in self._definitions:
            raise InvalidTypeModelError(f'Type "{seen[-1]}" extends unknown type "{name}"')

        definition = self._definitions[name]
        fields: dict[str, FieldDefinition] = {}
        associations: dict[str, AssociationDefinition] = {}
        root = name
        if definition.extends:
            parent = self._resolve(definition.extends, seen + [name])
            fields.update(parent.fields)
            associations.update(parent.associations)
            root = parent.root
        fields.update(definition.fields)
        associations.update(definition.associations)

        resolved = _ResolvedType(name, definition, fields, associations, root)
        self._resolved[name] = resolved
        return resolved

    def _type(self, type_name: str) -> _ResolvedType:
        resolved = self._resolved.get(type_name)
        if resolved is None:
            raise UnknownTypeError(type_name)
        return resolved

    def _association_definition(self, type_name: str, name: str) -> AssociationDefinition:
        definition = self._type(type_name).associations.get(name)
        if definition is None:
            raise UnknownTypeError(f"{type_name}.{name}")
        return definition

    # --- TypeModel ---

    def has_type(self, type_name: str) -> bool:
        return type_name in self._resolved

    def has_field(self, type_name: str, name: str) -> bool:
        return name in self._type(type_name).fields

    def has_association(self, type_name: str, name: str) -> bool:
        return name in self._type(type_name).associations

    def association(self, type_name: str, name: str) -> AssociationMapping:
        definition = self._association_definition(type_name, name)
        return AssociationMapping(
            source_type=type_name,
            name=name,
            kind=definition.kind,
            target_type=definition.target,
            order_by=dict(definition.order_by),
            mapped_by=definition.mapped_by,
            inversed_by=definition.inversed_by,
        )

    def association_kind(self, type_name: str, name: str) -> AssociationKind:
        return self._association_definition(type_name, name).kind

    def is_collection_valued(self, type_name: str, name: str) -> bool:
        if not self.has_association(type_name, name):
            return False
        return self.association_kind(type_name, name).is_collection

    def target_type(self, type_name: str, name: str) -> str:
        return self._association_definition(type_name, name).target

    def identifier_fields(self, type_name: str) -> list[str]:
        resolved = self._type(type_name)
        root = self._type(resolved.root)
        return list(root.definition.identifier)

    def field_type(self, type_name: str, name: str) -> str | None:
        definition = self._type(type_name).fields.get(name)
        return definition.type if definition else None

    def field_comment(self, type_name: str, name: str) -> str | None:
        definition = self._type(type_name).fields.get(name)
        return definition.comment if definition else None

    def column_name(self, type_name: str, name: str) -> str | None:
        definition = self._type(type_name).fields.get(name)
        if definition is None:
            return None
        return definition.column or name

    def field_names(self, type_name: str) -> list[str]:
        return list(self._type(type_name).fields)

    def association_names(self, type_name: str) -> list[str]:
        return list(self._type(type_name).associations)

    def table_name(self, type_name: str) -> str | None:
        resolved = self._type(type_name)
        return resolved.definition.table or self._type(resolved.root).definition.table

    def discriminator_column(self, type_name: str) -> str | None:
        discriminator = self._type(self._type(type_name).root).definition.discriminator
        return discriminator.column if discriminator else None

    def discriminator_map(self, type_name: str) -> dict[str, str]:
        discriminator = self._type(self._type(type_name).root).definition.discriminator
        return dict(discriminator.map) if discriminator else {}

    def subclasses(self, type_name: str) -> list[str]:
        self._type(type_name)
        return [
            name
            for name in self._resolved
            if name != type_name and type_name in self._ancestors(name)
        ]

    def _ancestors(self, type_name: str) -> list[str]:
        ancestors = []
        parent = self._definitions[type_name].extends
        while parent:
            ancestors.append(parent)
            parent = self._definitions[parent].extends
        return ancestors
