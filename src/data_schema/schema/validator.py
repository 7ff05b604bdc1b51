"""Static schema validator.

Checks a compiled schema against the type model and the transformer
registry without touching any data:

  Schema Declaration            -> Must Hold
  -----------------------------------------------------------------
  root level                    -> declares a class and properties
  nested level                  -> class and properties, or a schema file
  stored property               -> field or association of the owner type
  property with discriminator   -> exists on that subtype, not on the base
  nested property               -> association of the owner type
  leaf property                 -> not an association
  virtual property              -> source chain resolves without cycles
  decode pipeline               -> every transformer is registered

Validation is strict: the first problem raises InvalidConfigurationError
with the path to the offending property in its message.
"""

import json
from dataclasses import dataclass, field as dataclass_field

from data_schema.errors import (
    DataTransformerNotExistsError,
    InvalidConfigurationError,
    InvalidConfigurationPropertyError,
    NestingDepthExceededError,
)
from data_schema.loader import SchemaLoader
from data_schema.schema.nodes import PropertyNode, SchemaNode
from data_schema.schema.sources import DEFAULT_MAX_SOURCE_DEPTH, source_chain
from data_schema.transformers import DataTransformerRegistry
from data_schema.type_model import TypeModel


# --- Result Data Model ---


@dataclass
class SchemaValidationResult:
    """Outcome of validating one schema file."""

    schema_ref: str
    passed: bool
    errors: list[str] = dataclass_field(default_factory=list)


# --- Validation Logic ---


class SchemaValidator:
    """Validates compiled schemas against a type model and transformer registry."""

    def __init__(
        self,
        type_model: TypeModel,
        transformers: DataTransformerRegistry,
        loader: SchemaLoader | None = None,
        max_source_depth: int = DEFAULT_MAX_SOURCE_DEPTH,
    ):
        self.type_model = type_model
        self.transformers = transformers
        self.loader = loader
        self.max_source_depth = max_source_depth

    def validate(self, node: SchemaNode, depth_budget: int = 0, is_nested: bool = False):
        """Validate a compiled schema level and everything below it.

        Args:
            node: Compiled (unfiltered) schema level.
            depth_budget: Levels of nesting allowed below this one.
            is_nested: Whether node is the nested level of a property.

        Raises:
            NestingDepthExceededError: If nesting goes deeper than depth_budget.
            InvalidConfigurationError: On the first invalid declaration.
        """
        if depth_budget < 0:
            raise NestingDepthExceededError(node)

        self._check_requirements(node, is_nested)

        if node.type_name and not self.type_model.has_type(node.type_name):
            raise InvalidConfigurationError(node, f'Unknown class "{node.type_name}"')

        for name, prop in node.properties.items():
            try:
                self._validate_property(node, name, prop, depth_budget)
            except InvalidConfigurationPropertyError as e:
                raise InvalidConfigurationError(node, str(e)) from e

    def _check_requirements(self, node: SchemaNode, is_nested: bool):
        has_class_and_properties = bool(node.type_name) and not node.is_empty

        if not is_nested:
            if not has_class_and_properties:
                raise InvalidConfigurationError(
                    node, 'Should have "class" and "properties" defined and not empty'
                )
            return

        if node.schema_ref and self.loader is not None and not self.loader.exists(node.schema_ref):
            raise InvalidConfigurationError(
                node, f'Nested property refers to nonexistent file "{node.schema_ref}"'
            )
        if not (has_class_and_properties or node.schema_ref):
            raise InvalidConfigurationError(
                node,
                'Nested property should have "class" and "properties" or "schema" defined',
            )

    def _validate_property(self, node: SchemaNode, name: str, prop: PropertyNode, depth: int):
        if prop.is_virtual:
            try:
                source_chain(node, name, self.max_source_depth)
            except InvalidConfigurationError as e:
                raise InvalidConfigurationPropertyError(name, e.detail) from e
        else:
            if node.type_name:
                self._validate_type_property(node.type_name, name, prop)

            if prop.is_nested:
                try:
                    self.validate(prop.nested_schema, depth - 1, is_nested=True)
                except NestingDepthExceededError as e:
                    raise NestingDepthExceededError(
                        node, str(InvalidConfigurationPropertyError(name, str(e)))
                    ) from e
                except InvalidConfigurationError as e:
                    raise InvalidConfigurationPropertyError(name, str(e)) from e

        for transformer_name in prop.decode:
            try:
                self.transformers.resolve(transformer_name)
            except DataTransformerNotExistsError as e:
                raise InvalidConfigurationPropertyError(name, str(e)) from e

    def _has_property(self, type_name: str, name: str) -> bool:
        return self.type_model.has_field(type_name, name) or self.type_model.has_association(
            type_name, name
        )

    def _validate_type_property(self, type_name: str, name: str, prop: PropertyNode):
        discriminator_map = self.type_model.discriminator_map(type_name)

        if self._has_property(type_name, name):
            if prop.discriminator:
                raise InvalidConfigurationPropertyError(
                    name, 'Shouldn\'t have "discriminator" property defined'
                )
            self._check_property_kind(type_name, name, prop)
            return

        if not discriminator_map:
            available = json.dumps(self._available_properties(type_name))
            raise InvalidConfigurationPropertyError(
                name, f'Not found in class "{type_name}". Available properties: {available}'
            )

        if not prop.discriminator:
            self._raise_if_found_in_sibling(type_name, name, discriminator_map)
            raise InvalidConfigurationPropertyError(
                name, f'Class "{type_name}" and all its subclasses don\'t have this property'
            )

        subtype = discriminator_map.get(prop.discriminator)
        if subtype is None:
            available = json.dumps(list(discriminator_map))
            raise InvalidConfigurationPropertyError(
                name,
                f'Invalid discriminator "{prop.discriminator}". Available discriminators: {available}',
            )
        if not self.type_model.has_type(subtype):
            raise InvalidConfigurationPropertyError(
                name,
                f'Class "{subtype}" mapped to discriminator "{prop.discriminator}" is unknown',
            )

        if not self._has_property(subtype, name):
            self._raise_if_found_in_sibling(subtype, name, discriminator_map)
            raise InvalidConfigurationPropertyError(
                name, f'Class "{subtype}" and all its siblings don\'t have this property'
            )
        self._check_property_kind(subtype, name, prop)

    def _check_property_kind(self, type_name: str, name: str, prop: PropertyNode):
        is_association = self.type_model.has_association(type_name, name)
        if prop.is_nested and not is_association:
            raise InvalidConfigurationPropertyError(
                name, "Nested property should have association mapping"
            )
        if not prop.is_nested and is_association:
            raise InvalidConfigurationPropertyError(
                name, 'Association should be declared with "schema" or "properties"'
            )

    def _raise_if_found_in_sibling(
        self, type_name: str, name: str, discriminator_map: dict[str, str]
    ):
        for discriminator, mapped_type in discriminator_map.items():
            if mapped_type == type_name:
                continue
            if self.type_model.has_type(mapped_type) and self._has_property(mapped_type, name):
                raise InvalidConfigurationPropertyError(
                    name,
                    f'Class "{type_name}" doesn\'t have this property, but "{mapped_type}" has. '
                    f'You probably meant to use the "{discriminator}" discriminator',
                )

    def _available_properties(self, type_name: str) -> list[str]:
        available = []
        for field_name in self.type_model.field_names(type_name):
            available.append(f"{field_name}: {self.type_model.field_type(type_name, field_name)}")
        for association_name in self.type_model.association_names(type_name):
            target = self.type_model.target_type(type_name, association_name)
            if self.type_model.is_collection_valued(type_name, association_name):
                target += "[]"
            available.append(f"{association_name}: {target}")
        return available
