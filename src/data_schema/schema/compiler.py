"""Schema compiler.

Turns a raw declarative schema tree into a compiled SchemaNode tree:

  1. Resolve inheritance: a `schema` key splices in another schema file,
     with local declarations deep-merged on top (see parser.merge_inherited).
  2. Apply defaults (pydantic config models).
  3. Inject the type's identifier fields as hidden properties.
  4. Attach discriminator metadata when the type has subtypes.
  5. Classify each property: nested properties are compiled recursively
     with one less unit of depth budget; leaf properties get their value
     type, store-backed flag and column name from the type model.

When a property is tagged with a discriminator, its owning type is the
subtype from the discriminator map; the base type is only used when the
tag isn't in the map. The projection engine resolves record branches the
same way.
"""

from dataclasses import replace
from typing import Any

from loguru import logger

from data_schema.access import AuthorizationChecker, is_granted_any
from data_schema.errors import (
    InvalidConfigurationError,
    InvalidConfigurationPropertyError,
    NestingDepthExceededError,
)
from data_schema.loader import SchemaLoader
from data_schema.schema.nodes import JoinMode, PropertyNode, SchemaNode, ValueType
from data_schema.schema.parser import (
    NODE_KEYS,
    PropertyConfig,
    merge_inherited,
    parse_decode_string,
    parse_property_config,
    parse_schema_config,
)
from data_schema.schema.scope import ScopeNode, explicitly_in_scope, is_unrestricted, sub_scope
from data_schema.type_model import TypeModel

DEFAULT_MAX_NESTING_DEPTH = 10


class SchemaCompiler:
    """Compiles raw schema trees against a type model.

    Args:
        type_model: Metadata provider for the persisted types.
        loader: Resolves `schema` references. Optional when no schema
            references are used.
        max_nesting_depth: Depth budget used when compile() gets none.
    """

    def __init__(
        self,
        type_model: TypeModel,
        loader: SchemaLoader | None = None,
        max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH,
    ):
        self.type_model = type_model
        self.loader = loader
        self.max_nesting_depth = max_nesting_depth

    def compile(
        self,
        raw: dict,
        type_name: str | None = None,
        scope: ScopeNode | None = None,
        depth_budget: int | None = None,
        access: AuthorizationChecker | None = None,
        schema_ref: str | None = None,
    ) -> SchemaNode:
        """Compile a raw schema tree.

        Args:
            raw: The loaded (unparsed) schema tree.
            type_name: Type to assume when the tree declares no `class`.
            scope: Optional scope mask; unrequested properties are left out
                (identifier and hidden properties are always kept).
            depth_budget: Levels of nesting allowed below this one.
            access: When given, levels whose roles the caller lacks compile
                to empty nodes. When omitted, roles are only recorded, and
                the scope filter applies them per request.
            schema_ref: Identity of the tree (its file reference), used for
                error messages and inheritance cycle detection.

        Raises:
            InvalidConfigurationError: On malformed configuration, missing
                schema files or circular inheritance.
            NestingDepthExceededError: If inline nesting is deeper than the budget.
        """
        depth = self.max_nesting_depth if depth_budget is None else depth_budget
        if depth < 0:
            raise NestingDepthExceededError(schema_ref or raw)

        resolved = self._resolve_inheritance(raw, schema_ref, loaded_from=schema_ref)
        return self._compile_level(resolved, schema_ref, type_name, scope, depth, access)

    def compile_file(
        self,
        ref: str,
        scope: ScopeNode | None = None,
        depth_budget: int | None = None,
        access: AuthorizationChecker | None = None,
    ) -> SchemaNode:
        """Load and compile a schema file."""
        return self.compile(
            self._load(ref, ref),
            scope=scope,
            depth_budget=depth_budget,
            access=access,
            schema_ref=ref,
        )

    # --- Inheritance ---

    def _load(self, ref: str, identity: Any) -> dict:
        if self.loader is None:
            raise InvalidConfigurationError(
                identity, f'Cannot resolve schema "{ref}": no schema loader configured'
            )
        return self.loader.load(ref)

    def _resolve_inheritance(
        self, raw: dict, identity: str | None, loaded_from: str | None = None
    ) -> dict:
        """Follow `schema` references until a tree without one, merging on the way back.

        loaded_from is the file raw was read from, if any; a chain leading
        back to it is circular.
        """
        seen = [loaded_from] if loaded_from else []
        chain = [raw]
        current = raw
        while isinstance(current, dict) and current.get("schema"):
            ref = current["schema"]
            if ref in seen:
                raise InvalidConfigurationError(
                    identity or raw, f"Circular schema inheritance: {' > '.join(seen + [ref])}"
                )
            seen.append(ref)
            current = self._load(ref, identity or raw)
            chain.append(current)

        merged = chain[-1]
        for local in reversed(chain[:-1]):
            merged = merge_inherited(merged, local)
        return merged

    # --- Levels ---

    def _compile_level(
        self,
        raw: dict,
        identity: str | None,
        type_name: str | None,
        scope: ScopeNode | None,
        depth: int,
        access: AuthorizationChecker | None,
    ) -> SchemaNode:
        config = parse_schema_config(raw, identity)
        type_name = config.class_name or type_name
        roles = tuple(config.roles)

        # --- Role gate ---
        # Trigger: caller identity supplied and none of the level's roles granted
        # Why: access is a policy outcome decided once, not an error
        # Outcome: empty node, nothing below it is compiled
        if access is not None and not is_granted_any(access, roles):
            logger.debug(f"Access denied to schema level {identity or type_name}, roles={roles}")
            return SchemaNode(type_name=type_name, schema_ref=identity, roles=roles)

        known = bool(type_name) and self.type_model.has_type(type_name)
        identifier_fields: tuple[str, ...] = ()
        discriminator_column = None
        discriminator_map: dict[str, str] = {}
        table_name = None
        has_subclasses = False
        if known:
            identifier_fields = tuple(self.type_model.identifier_fields(type_name))
            table_name = self.type_model.table_name(type_name)
            if self.type_model.subclasses(type_name):
                has_subclasses = True
                discriminator_column = self.type_model.discriminator_column(type_name)
                discriminator_map = self.type_model.discriminator_map(type_name)

        node = SchemaNode(
            type_name=type_name,
            schema_ref=identity,
            roles=roles,
            filter_null_values=config.filter_null_values,
            has_subclasses=has_subclasses,
            discriminator_column=discriminator_column,
            discriminator_map=discriminator_map,
            table_name=table_name,
            identifier_fields=identifier_fields,
            query_selects=dict(config.query.selects),
        )

        if config.properties is None:
            return node

        raw_properties = dict(config.properties)
        for id_name in identifier_fields:
            if id_name not in raw_properties:
                raw_properties[id_name] = {"hidden": True}

        properties: dict[str, PropertyNode] = {}
        for name, raw_property in raw_properties.items():
            try:
                prop = self._compile_property(node, name, raw_property, scope, depth, access)
            except InvalidConfigurationPropertyError as e:
                raise InvalidConfigurationError(node, str(e)) from e
            except NestingDepthExceededError as e:
                raise NestingDepthExceededError(node, _property_message(name, e)) from e
            except InvalidConfigurationError as e:
                raise InvalidConfigurationError(node, _property_message(name, e)) from e
            if prop is not None:
                properties[name] = prop

        return replace(node, properties=properties)

    def _compile_property(
        self,
        node: SchemaNode,
        name: str,
        raw: dict,
        scope: ScopeNode | None,
        depth: int,
        access: AuthorizationChecker | None,
    ) -> PropertyNode | None:
        try:
            config = parse_property_config(raw, node.schema_ref or node.type_name)
        except InvalidConfigurationError as e:
            raise InvalidConfigurationPropertyError(name, e.detail) from e
        identifier = name in node.identifier_fields

        if (
            not is_unrestricted(scope)
            and not identifier
            and not config.hidden
            and not explicitly_in_scope(scope, name)
        ):
            return None

        owner = node.resolve_type(config.discriminator)
        owner_known = bool(owner) and self.type_model.has_type(owner)
        has_field = owner_known and self.type_model.has_field(owner, name)
        has_association = owner_known and self.type_model.has_association(owner, name)

        description = config.description
        if not description and has_field:
            description = self.type_model.field_comment(owner, name)

        common: dict[str, Any] = dict(
            name=name,
            source=config.source,
            decode=tuple(parse_decode_string(config.decode)),
            hidden=config.hidden,
            identifier=identifier,
            discriminator=config.discriminator,
            ignore_discriminator_mismatch=config.ignore_discriminator_mismatch,
            conditions=tuple(config.conditions),
            join=config.join,
            description=description,
        )

        if not config.is_nested:
            value_type = config.type
            if value_type is None and has_field:
                value_type = self.type_model.field_type(owner, name)
            return PropertyNode(
                value_type=value_type or ValueType.SCALAR.value,
                from_store=has_field,
                storage_field_name=self.type_model.column_name(owner, name) if has_field else None,
                **common,
            )

        return self._compile_nested(
            node, name, raw, config, common, owner, has_association, scope, depth, access
        )

    def _compile_nested(
        self,
        node: SchemaNode,
        name: str,
        raw: dict,
        config: PropertyConfig,
        common: dict[str, Any],
        owner: str | None,
        has_association: bool,
        scope: ScopeNode | None,
        depth: int,
        access: AuthorizationChecker | None,
    ) -> PropertyNode | None:
        if config.discriminator and config.join != JoinMode.NONE:
            raise InvalidConfigurationPropertyError(
                name, 'The join type cannot be other than "none" if the discriminator is defined.'
            )

        target = config.class_name
        if target is None and has_association:
            target = self.type_model.target_type(owner, name)

        # --- Depth budget ---
        # Trigger: no budget left for another level
        # Why: inline nesting this deep is a configuration error, while schema
        #      references (often self-referential) are simply cut off here
        # Outcome: error for inline properties, property dropped for references
        if depth <= 0:
            if config.properties is not None and not config.schema_ref:
                raise NestingDepthExceededError(target or name)
            logger.debug(
                f"Depth budget exhausted, dropping nested property {name} ({config.schema_ref})"
            )
            return None

        child_raw = {key: raw[key] for key in NODE_KEYS if key in raw}
        child_raw = self._resolve_inheritance(child_raw, config.schema_ref)
        child = self._compile_level(
            child_raw,
            config.schema_ref,
            target,
            sub_scope(scope, name),
            depth - 1,
            access,
        )

        if access is not None and child.is_empty and not is_granted_any(access, child.roles):
            logger.debug(f"Dropping nested property {name}: access denied")
            return None

        if has_association:
            collection = self.type_model.is_collection_valued(owner, name)
            value_type = ValueType.COLLECTION.value if collection else ValueType.ENTITY.value
        else:
            value_type = config.type or ValueType.ENTITY.value

        return PropertyNode(
            value_type=value_type,
            nested_schema=child,
            schema_ref=config.schema_ref,
            **common,
        )


def _property_message(name: str, error: InvalidConfigurationError) -> str:
    return str(InvalidConfigurationPropertyError(name, str(error)))
