"""Projection engine: raw records in, response documents out.

Projection runs in two phases over a filtered schema:

  fetch  - walk the schema and make sure the record holds every value the
           output needs: run virtual selects, fetch associations through
           the persister (restricted to the fields the nested level needs)
           and batch any missing stored fields into one round trip.
  shape  - walk the schema again over the enriched record and build the
           output document: apply the null policy, shape nested levels,
           run decode pipelines and intersect decoded mappings with the
           scope mask. Hidden properties are read but never emitted.

Records are never modified in place; fetch returns enriched copies.
"""

import itertools
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from data_schema.access import ConditionRenderer
from data_schema.errors import MissingDiscriminatorError
from data_schema.persister import Persister, storage_fields
from data_schema.schema.nodes import PropertyNode, SchemaNode
from data_schema.schema.scope import ScopeNode, apply_scope, is_unrestricted, sub_scope
from data_schema.schema.sources import DEFAULT_MAX_SOURCE_DEPTH, source_chain
from data_schema.transformers import DataTransformerRegistry, TransformEvent, apply_decode
from data_schema.type_model import AssociationMapping, TypeModel


@dataclass
class _FetchContext:
    """State shared by one project()/project_list() call."""

    user: Any = None
    associations: dict[tuple[str, str], AssociationMapping | None] = field(default_factory=dict)
    aliases: Iterator[int] = field(default_factory=lambda: itertools.count(1))

    def next_alias(self) -> str:
        return f"t{next(self.aliases)}"


class ProjectionEngine:
    """Turns raw records into output documents for a filtered schema.

    Args:
        type_model: Metadata provider for association lookups.
        persister: Store access used for associations, missing fields and selects.
        transformers: Registry resolving decode pipeline names.
        condition_renderer: Renders association condition templates. Without
            one, conditions are handed to the persister verbatim.
        hydrator: Opaque handle passed to transformers via TransformEvent.
        factory: Opaque handle passed to transformers via TransformEvent.
        max_source_depth: Cap on virtual property source chains.
    """

    def __init__(
        self,
        type_model: TypeModel,
        persister: Persister,
        transformers: DataTransformerRegistry,
        condition_renderer: ConditionRenderer | None = None,
        hydrator: Any = None,
        factory: Any = None,
        max_source_depth: int = DEFAULT_MAX_SOURCE_DEPTH,
    ):
        self.type_model = type_model
        self.persister = persister
        self.transformers = transformers
        self.condition_renderer = condition_renderer
        self.hydrator = hydrator
        self.factory = factory
        self.max_source_depth = max_source_depth

    # --- Public API ---

    def project(
        self,
        record: dict | None,
        node: SchemaNode,
        scope: ScopeNode | None = None,
        user: Any = None,
        default: Any = None,
    ) -> dict | Any:
        """Fetch and shape one record.

        Returns default when the record is empty or the schema has nothing
        to render (for example when the caller was denied access).
        """
        if not record or node.is_empty:
            return default
        context = _FetchContext(user=user)
        return self.shape(self._fetch(record, node, scope, context), node, scope)

    def project_list(
        self,
        records: Iterable[dict] | None,
        node: SchemaNode,
        scope: ScopeNode | None = None,
        user: Any = None,
        default: Any = None,
    ) -> list | Any:
        """Fetch and shape a sequence of records with one schema."""
        records = list(records or [])
        if not records or node.is_empty:
            return [] if default is None else default

        context = _FetchContext(user=user)
        return [
            self.shape(self._fetch(record, node, scope, context), node, scope)
            for record in records
        ]

    def fetch(
        self,
        record: dict,
        node: SchemaNode,
        scope: ScopeNode | None = None,
        user: Any = None,
    ) -> dict:
        """Return a copy of record holding every value node needs for shaping."""
        return self._fetch(record, node, scope, _FetchContext(user=user))

    def shape(
        self,
        record: dict,
        node: SchemaNode,
        scope: ScopeNode | None = None,
        parent_type: str | None = None,
        parent_property: str | None = None,
    ) -> dict:
        """Build the output document for an enriched record.

        Raises:
            MissingDiscriminatorError: If a polymorphic record has no discriminator.
            DataTransformerNotExistsError: If a decode pipeline names an
                unregistered transformer.
        """
        branch = self._resolve_branch(record, node)
        output: dict[str, Any] = {}

        for name, prop in node.properties.items():
            if prop.hidden or not node.applies_to(prop, branch):
                continue
            if not is_unrestricted(scope) and name not in scope:
                continue

            property_scope = sub_scope(scope, name)
            value = self._read_value(record, node, name, prop)

            # --- Null policy ---
            # Trigger: property resolves to null
            # Why: containers always render as lists so clients can iterate
            # Outcome: [] for containers, else omitted or null per filter_null_values
            if value is None:
                if prop.is_container:
                    output[name] = []
                elif not node.filter_null_values:
                    output[name] = None
                continue

            if prop.is_nested:
                child = prop.nested_schema
                if isinstance(value, list):
                    value = [
                        self.shape(item, child, property_scope, branch, name)
                        if isinstance(item, dict)
                        else item
                        for item in value
                    ]
                elif isinstance(value, dict):
                    if _is_only_null(value):
                        if not node.filter_null_values:
                            output[name] = None
                        continue
                    value = self.shape(value, child, property_scope, branch, name)

            if prop.decode:
                value = self._decode(value, record, prop, branch, parent_type, parent_property)
                if isinstance(value, dict) and property_scope:
                    value = apply_scope(value, property_scope)

            output[name] = value

        return output

    # --- Fetch ---

    def _fetch(
        self,
        record: dict,
        node: SchemaNode,
        scope: ScopeNode | None,
        context: _FetchContext,
    ) -> dict:
        enriched = dict(record)
        branch = self._resolve_branch(enriched, node)
        owner_type = branch or node.type_name
        record_id = self._record_id(enriched, node)
        deferred: list[str] = []

        for name, prop in node.properties.items():
            if not node.applies_to(prop, branch):
                continue

            if prop.source and prop.source in node.query_selects:
                if prop.source not in enriched:
                    enriched[prop.source] = self.persister.run_select(
                        owner_type, node.query_selects[prop.source], record_id
                    )
                continue

            if name in enriched:
                value = enriched[name]
                if prop.is_nested and value is not None:
                    enriched[name] = self._fetch_embedded(value, prop, sub_scope(scope, name), context)
                continue

            if prop.is_virtual:
                # resolved from its source chain at shape time
                continue

            if prop.is_nested:
                association = self._association(owner_type, name, context)
                if association is not None:
                    enriched[name] = self._fetch_association(
                        association, prop, record_id, sub_scope(scope, name), context
                    )
                continue

            if prop.from_store:
                deferred.append(name)

        if deferred:
            if record_id is None:
                logger.warning(
                    f"Cannot fetch missing fields {deferred} of {owner_type}: record has no identifier"
                )
            else:
                logger.debug(f"Fetching missing fields of {owner_type}#{record_id}: {deferred}")
                fetched = self.persister.fetch_fields_by_id(owner_type, deferred, record_id) or {}
                for name in deferred:
                    enriched[name] = fetched.get(name)

        return enriched

    def _fetch_embedded(
        self, value: Any, prop: PropertyNode, scope: ScopeNode | None, context: _FetchContext
    ) -> Any:
        """Recurse into nested values the caller already supplied."""
        child = prop.nested_schema
        if isinstance(value, list):
            return [
                self._fetch(item, child, scope, context)
                if isinstance(item, dict) and not _is_only_null(item)
                else item
                for item in value
            ]
        if isinstance(value, dict) and not _is_only_null(value):
            return self._fetch(value, child, scope, context)
        return value

    def _fetch_association(
        self,
        association: AssociationMapping,
        prop: PropertyNode,
        owner_id: Any,
        scope: ScopeNode | None,
        context: _FetchContext,
    ) -> Any:
        child = prop.nested_schema
        # row branches are unknown before the fetch
        fields = storage_fields(child, scope, self.max_source_depth, all_branches=True)
        alias = context.next_alias()
        conditions = self._render_conditions(prop.conditions, alias, context.user)

        if association.is_collection:
            rows = self.persister.fetch_multi_row(
                association, owner_id, fields, conditions, association.order_by, alias=alias
            )
            return [self._fetch(row, child, scope, context) for row in rows or []]

        row = self.persister.fetch_single_row(association, owner_id, fields, conditions, alias=alias)
        if not row:
            return None
        return self._fetch(row, child, scope, context)

    def _association(
        self, type_name: str | None, name: str, context: _FetchContext
    ) -> AssociationMapping | None:
        if not type_name:
            return None

        key = (type_name, name)
        if key not in context.associations:
            association = None
            if self.type_model.has_type(type_name) and self.type_model.has_association(
                type_name, name
            ):
                association = self.type_model.association(type_name, name)
            context.associations[key] = association
        return context.associations[key]

    def _render_conditions(self, conditions: Iterable[str], alias: str, user: Any) -> list[str]:
        rendered = []
        for condition in conditions:
            if self.condition_renderer is not None:
                condition = self.condition_renderer.render(condition, alias, user)
            if condition and condition.strip():
                rendered.append(condition.strip())
        return rendered

    # --- Shared helpers ---

    def _resolve_branch(self, record: dict, node: SchemaNode) -> str | None:
        """Concrete type of a record: its discriminator's subtype, else the node's type."""
        if not node.has_subclasses:
            return node.type_name

        value = record.get(node.discriminator_column)
        if value is None or value == "":
            raise MissingDiscriminatorError(node.type_name, node.discriminator_column)

        branch = node.discriminator_map.get(value)
        if branch is None:
            logger.warning(
                f"Unknown discriminator value {value!r} for {node.type_name}, using base type"
            )
            return node.type_name
        return branch

    def _record_id(self, record: dict, node: SchemaNode) -> Any:
        for id_name in node.identifier_fields or ("id",):
            if record.get(id_name) is not None:
                return record[id_name]
        return None

    def _read_value(self, record: dict, node: SchemaNode, name: str, prop: PropertyNode) -> Any:
        """Read a property's value, preferring its source chain over the direct key."""
        if prop.source:
            candidates = [prop.source]
            chain = source_chain(node, name, self.max_source_depth)
            candidates.extend(source_name for source_name, _ in chain)
            if chain and chain[-1][1].source:
                candidates.append(chain[-1][1].source)
            for key in candidates:
                if key in record:
                    return record[key]
        return record.get(name)

    def _decode(
        self,
        value: Any,
        record: dict,
        prop: PropertyNode,
        owner_type: str | None,
        parent_type: str | None,
        parent_property: str | None,
    ) -> Any:
        def event() -> TransformEvent:
            return TransformEvent(
                owner_type=owner_type,
                property_name=prop.name,
                property_config=prop,
                parent_type=parent_type,
                parent_property_name=parent_property,
                raw_record=record,
                hydrator=self.hydrator,
                factory=self.factory,
            )

        return apply_decode(value, prop.decode, self.transformers, event)


def _is_only_null(value: dict) -> bool:
    """True for placeholder rows where every value is null (e.g. an unmatched outer join)."""
    return bool(value) and all(item is None for item in value.values())
