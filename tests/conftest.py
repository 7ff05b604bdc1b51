"""Common test fixtures for data-schema."""

from typing import Any

import pytest

from data_schema.loader import DictSchemaLoader
from data_schema.projection import ProjectionEngine
from data_schema.schema.compiler import SchemaCompiler
from data_schema.schema.filter import ScopeFilter
from data_schema.transformers import DataTransformerRegistry
from data_schema.type_model import AssociationMapping, MappingTypeModel


TYPE_DEFINITIONS: dict[str, dict] = {
    "Article": {
        "table": "article",
        "fields": {
            "id": {"type": "integer"},
            "title": {"type": "string", "comment": "Article title"},
            "body": {"type": "text"},
            "first": {},
            "last": {},
            "tags_list": {"type": "json_array"},
            "slug": {"column": "url_slug"},
        },
        "associations": {
            "author": {"kind": "many_to_one", "target": "Author", "inversed_by": "articles"},
            "comments": {
                "kind": "one_to_many",
                "target": "Comment",
                "mapped_by": "article",
                "order_by": {"created_at": "ASC"},
            },
            "tags": {"kind": "many_to_many", "target": "Tag"},
            "media": {"kind": "one_to_many", "target": "Media", "mapped_by": "article"},
        },
    },
    "Author": {
        "table": "author",
        "fields": {"id": {"type": "integer"}, "name": {}, "email": {}},
        "associations": {
            "mentor": {"kind": "many_to_one", "target": "Author"},
            "articles": {"kind": "one_to_many", "target": "Article", "mapped_by": "author"},
        },
    },
    "Comment": {
        "fields": {"id": {"type": "integer"}, "text": {}, "created_at": {"type": "datetime"}},
    },
    "Tag": {
        "fields": {"id": {"type": "integer"}, "name": {}},
    },
    "Media": {
        "table": "media",
        "fields": {"id": {"type": "integer"}, "title": {}},
        "discriminator": {"column": "kind", "map": {"image": "Image", "video": "Video"}},
    },
    "Image": {
        "extends": "Media",
        "fields": {"width": {"type": "integer"}},
    },
    "Video": {
        "extends": "Media",
        "fields": {"duration": {"type": "integer"}},
        "associations": {"chapters": {"kind": "one_to_many", "target": "Comment"}},
    },
}


def _project_row(row: dict, fields: list[str]) -> dict:
    return {name: row.get(name) for name in fields}


class InMemoryPersister:
    """Persister over plain dicts that records every call it receives.

    Association rows come back restricted to the requested fields, the way a
    store only selects the columns it is asked for.
    """

    def __init__(self):
        self.associations: dict[tuple[str, str, Any], Any] = {}
        self.records: dict[tuple[str, Any], dict] = {}
        self.selects: dict[tuple[str, str, Any], Any] = {}
        self.calls: list[tuple] = []

    def add_association(self, source_type: str, name: str, owner_id: Any, rows: Any):
        self.associations[(source_type, name, owner_id)] = rows

    def calls_to(self, method: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == method]

    def fetch_multi_row(
        self,
        association: AssociationMapping,
        owner_id: Any,
        fields: list[str],
        conditions: list[str],
        order_by: dict[str, str],
        alias: str = "t",
    ) -> list[dict]:
        self.calls.append(
            (
                "fetch_multi_row",
                association.name,
                owner_id,
                list(fields),
                list(conditions),
                dict(order_by),
                alias,
            )
        )
        rows = self.associations.get((association.source_type, association.name, owner_id), [])
        return [_project_row(row, fields) for row in rows]

    def fetch_single_row(
        self,
        association: AssociationMapping,
        owner_id: Any,
        fields: list[str],
        conditions: list[str],
        alias: str = "t",
    ) -> dict | None:
        self.calls.append(
            ("fetch_single_row", association.name, owner_id, list(fields), list(conditions), alias)
        )
        row = self.associations.get((association.source_type, association.name, owner_id))
        return _project_row(row, fields) if row else None

    def fetch_fields_by_id(self, type_name: str, fields: list[str], id: Any) -> dict:
        self.calls.append(("fetch_fields_by_id", type_name, list(fields), id))
        record = self.records.get((type_name, id), {})
        return {name: record.get(name) for name in fields}

    def run_select(self, type_name: str, select_expr: str, id: Any) -> Any:
        self.calls.append(("run_select", type_name, select_expr, id))
        return self.selects.get((type_name, select_expr, id))


class TemplateConditionRenderer:
    """Substitutes {{ alias }} and {{ user }} placeholders."""

    def render(self, condition: str, alias: str, user: Any = None) -> str:
        rendered = condition.replace("{{ alias }}", alias)
        return rendered.replace("{{ user }}", "" if user is None else str(user))


@pytest.fixture
def type_definitions() -> dict[str, dict]:
    return TYPE_DEFINITIONS


@pytest.fixture
def type_model() -> MappingTypeModel:
    return MappingTypeModel(TYPE_DEFINITIONS)


@pytest.fixture
def schemas() -> dict[str, dict]:
    """Schema files available to the DictSchemaLoader, keyed by reference."""
    return {
        "author.yml": {"class": "Author", "properties": {"name": {}}},
        "author_tree.yml": {
            "class": "Author",
            "properties": {"name": {}, "mentor": {"schema": "author_tree.yml"}},
        },
    }


@pytest.fixture
def loader(schemas) -> DictSchemaLoader:
    return DictSchemaLoader(schemas)


@pytest.fixture
def compiler(type_model, loader) -> SchemaCompiler:
    return SchemaCompiler(type_model, loader)


@pytest.fixture
def scope_filter() -> ScopeFilter:
    return ScopeFilter()


@pytest.fixture
def transformers() -> DataTransformerRegistry:
    registry = DataTransformerRegistry()
    registry.add("upper", lambda value, event: value.upper())
    registry.add(
        "concat_names", lambda value, event: f"{value} {event.raw_record['last']}"
    )
    return registry


@pytest.fixture
def persister() -> InMemoryPersister:
    return InMemoryPersister()


@pytest.fixture
def renderer() -> TemplateConditionRenderer:
    return TemplateConditionRenderer()


@pytest.fixture
def engine(type_model, persister, transformers, renderer) -> ProjectionEngine:
    return ProjectionEngine(type_model, persister, transformers, condition_renderer=renderer)
