"""Tests for data_schema.projection -- fetching and shaping records."""

import pytest

from data_schema.access import AccessContext
from data_schema.errors import DataTransformerNotExistsError, MissingDiscriminatorError
from data_schema.persister import storage_fields
from data_schema.projection import ProjectionEngine


@pytest.fixture
def prepare(compiler, scope_filter):
    """Compile and filter a raw schema the way the service does per request."""

    def _prepare(raw, scope=None, depth_budget=1, access=None):
        return scope_filter.filter(compiler.compile(raw), scope, depth_budget, access)

    return _prepare


ARTICLE_WITH_AUTHOR = {
    "class": "Article",
    "properties": {"id": {"hidden": True}, "title": {}, "author": {"schema": "author.yml"}},
}


# --- End-to-end ---


class TestEndToEnd:
    def test_nested_reference_is_fetched(self, prepare, engine, persister):
        persister.add_association("Article", "author", 1, {"id": 5, "name": "A"})
        node = prepare(ARTICLE_WITH_AUTHOR)

        result = engine.project({"id": 1, "title": "T", "author_id": 5}, node)

        assert result == {"title": "T", "author": {"name": "A"}}
        assert persister.calls_to("fetch_single_row") == [
            ("fetch_single_row", "author", 1, ["name", "id"], [], "t1")
        ]

    def test_scope_prunes_association_fetch(self, prepare, engine, persister):
        persister.add_association("Article", "author", 1, {"id": 5, "name": "A"})
        scope = {"title": None}
        node = prepare(ARTICLE_WITH_AUTHOR, scope)

        result = engine.project({"id": 1, "title": "T", "author_id": 5}, node, scope)

        assert result == {"title": "T"}
        assert persister.calls == []

    def test_nested_identifier_is_fetched_outside_scope(self, prepare, engine, persister):
        persister.add_association("Article", "author", 1, {"id": 5, "name": "A", "email": "a@x"})
        persister.add_association("Author", "mentor", 5, {"id": 6, "name": "M"})
        raw = {
            "class": "Article",
            "properties": {
                "author": {
                    "properties": {"id": {}, "name": {}, "mentor": {"schema": "author.yml"}},
                },
            },
        }
        scope = {"author": {"name": None, "mentor": None}}
        node = prepare(raw, scope)

        result = engine.project({"id": 1}, node, scope)

        assert result == {"author": {"name": "A", "mentor": {"name": "M"}}}
        assert persister.calls_to("fetch_single_row") == [
            ("fetch_single_row", "author", 1, ["id", "name"], [], "t1"),
            ("fetch_single_row", "mentor", 5, ["name", "id"], [], "t2"),
        ]

    def test_virtual_property_with_hidden_dependencies(self, prepare, engine):
        raw = {
            "class": "Article",
            "properties": {
                "fullName": {"source": "first", "decode": "concat_names"},
                "first": {"hidden": True},
                "last": {"hidden": True},
            },
        }
        scope = {"fullName": None}
        node = prepare(raw, scope)

        result = engine.project({"id": 1, "first": "Ada", "last": "Lovelace"}, node, scope)

        assert result == {"fullName": "Ada Lovelace"}


# --- Null policy ---


class TestNullPolicy:
    def test_nulls_are_omitted_and_containers_become_lists(self, prepare, engine):
        node = prepare({"class": "Article", "properties": {"title": {}, "tags_list": {}}})

        result = engine.project({"id": 1, "title": None, "tags_list": None}, node)

        assert result == {"tags_list": []}

    def test_nulls_are_kept_when_not_filtered(self, prepare, engine):
        node = prepare(
            {
                "class": "Article",
                "filter_null_values": False,
                "properties": {"title": {}, "tags_list": {}},
            }
        )

        result = engine.project({"id": 1, "title": None, "tags_list": None}, node)

        assert result == {"title": None, "tags_list": []}

    def test_null_collection_association(self, prepare, engine):
        node = prepare({"class": "Article", "properties": {"comments": {"properties": {"text": {}}}}})
        assert engine.project({"id": 1, "comments": None}, node) == {"comments": []}

    def test_all_null_embedded_object_is_omitted(self, prepare, engine):
        node = prepare(ARTICLE_WITH_AUTHOR)

        result = engine.project({"id": 1, "title": "T", "author": {"id": None, "name": None}}, node)

        assert result == {"title": "T"}

    def test_all_null_embedded_object_becomes_null(self, prepare, engine):
        raw = dict(ARTICLE_WITH_AUTHOR, filter_null_values=False)
        node = prepare(raw)

        result = engine.project({"id": 1, "title": "T", "author": {"id": None, "name": None}}, node)

        assert result == {"title": "T", "author": None}

    def test_missing_single_row(self, prepare, engine):
        node = prepare(ARTICLE_WITH_AUTHOR)
        assert engine.project({"id": 1, "title": "T"}, node) == {"title": "T"}


# --- Fetching ---


class TestFetch:
    def test_missing_fields_are_fetched_in_one_batch(self, prepare, engine, persister):
        persister.records[("Article", 1)] = {"title": "T", "body": "B"}
        node = prepare({"class": "Article", "properties": {"title": {}, "body": {}}})

        result = engine.project({"id": 1}, node)

        assert result == {"title": "T", "body": "B"}
        assert persister.calls == [("fetch_fields_by_id", "Article", ["title", "body"], 1)]

    def test_no_batch_without_identifier(self, prepare, engine, persister):
        node = prepare({"class": "Article", "properties": {"title": {}, "body": {}}})

        result = engine.project({"title": "T"}, node)

        assert result == {"title": "T"}
        assert persister.calls == []

    def test_record_is_not_mutated(self, prepare, engine, persister):
        persister.add_association("Article", "author", 1, {"id": 5, "name": "A"})
        record = {"id": 1, "title": "T"}

        engine.project(record, prepare(ARTICLE_WITH_AUTHOR))

        assert record == {"id": 1, "title": "T"}

    def test_fetch_returns_enriched_copy(self, prepare, engine, persister):
        persister.add_association("Article", "author", 1, {"id": 5, "name": "A"})
        record = {"id": 1, "title": "T"}

        enriched = engine.fetch(record, prepare(ARTICLE_WITH_AUTHOR))

        assert enriched == {"id": 1, "title": "T", "author": {"id": 5, "name": "A"}}
        assert "author" not in record

    def test_embedded_values_are_not_refetched(self, prepare, engine, persister):
        node = prepare({"class": "Article", "properties": {"comments": {"properties": {"text": {}}}}})

        result = engine.project({"id": 1, "comments": [{"id": 3, "text": "x"}]}, node)

        assert result == {"comments": [{"text": "x"}]}
        assert persister.calls_to("fetch_multi_row") == []

    def test_collection_uses_association_order(self, prepare, engine, persister):
        persister.add_association(
            "Article", "comments", 1, [{"id": 3, "text": "first"}, {"id": 4, "text": "second"}]
        )
        node = prepare({"class": "Article", "properties": {"comments": {"properties": {"text": {}}}}})

        result = engine.project({"id": 1}, node)

        assert result == {"comments": [{"text": "first"}, {"text": "second"}]}
        assert persister.calls_to("fetch_multi_row") == [
            ("fetch_multi_row", "comments", 1, ["text", "id"], [], {"created_at": "ASC"}, "t1")
        ]

    def test_query_select(self, prepare, engine, persister):
        persister.selects[("Article", "COUNT(c.id)", 1)] = 3
        node = prepare(
            {
                "class": "Article",
                "query": {"selects": {"comment_count": "COUNT(c.id)"}},
                "properties": {"comments_total": {"source": "comment_count"}},
            }
        )

        result = engine.project({"id": 1}, node)

        assert result == {"comments_total": 3}
        assert persister.calls == [("run_select", "Article", "COUNT(c.id)", 1)]

    def test_virtual_source_is_fetched_when_missing(self, prepare, engine, persister):
        persister.records[("Article", 1)] = {"title": "T"}
        scope = {"headline": None}
        node = prepare(
            {"class": "Article", "properties": {"headline": {"source": "title"}, "title": {}}},
            scope,
        )

        result = engine.project({"id": 1}, node, scope)

        assert result == {"headline": "T"}
        assert persister.calls == [("fetch_fields_by_id", "Article", ["title"], 1)]


# --- Conditions ---


class TestConditions:
    def test_conditions_are_rendered_against_alias(self, prepare, engine, persister):
        persister.add_association("Article", "tags", 1, [{"id": 9, "name": "python"}])
        node = prepare(
            {
                "class": "Article",
                "properties": {
                    "tags": {"conditions": "{{ alias }}.active = 1", "properties": {"name": {}}},
                },
            }
        )

        result = engine.project({"id": 1}, node)

        assert result == {"tags": [{"name": "python"}]}
        assert persister.calls_to("fetch_multi_row") == [
            ("fetch_multi_row", "tags", 1, ["name", "id"], ["t1.active = 1"], {}, "t1")
        ]

    def test_aliases_are_unique_within_a_call(self, prepare, engine, persister):
        node = prepare(
            {
                "class": "Article",
                "properties": {
                    "author": {"schema": "author.yml"},
                    "tags": {"properties": {"name": {}}},
                },
            }
        )

        engine.project_list([{"id": 1}, {"id": 2}], node)

        aliases = [call[-1] for call in persister.calls]
        assert aliases == ["t1", "t2", "t3", "t4"]

    def test_user_is_passed_to_renderer(self, prepare, engine, persister):
        node = prepare(
            {
                "class": "Article",
                "properties": {
                    "tags": {
                        "conditions": ["{{ alias }}.owner_id = {{ user }}"],
                        "properties": {"name": {}},
                    },
                },
            }
        )

        engine.project({"id": 1}, node, user=7)

        assert persister.calls_to("fetch_multi_row")[0][4] == ["t1.owner_id = 7"]

    def test_blank_rendered_condition_is_dropped(self, prepare, engine, persister):
        node = prepare(
            {
                "class": "Article",
                "properties": {"tags": {"conditions": ["{{ user }}"], "properties": {"name": {}}}},
            }
        )

        engine.project({"id": 1}, node)

        assert persister.calls_to("fetch_multi_row")[0][4] == []

    def test_conditions_pass_through_without_renderer(
        self, prepare, type_model, persister, transformers
    ):
        engine = ProjectionEngine(type_model, persister, transformers)
        node = prepare(
            {
                "class": "Article",
                "properties": {
                    "tags": {"conditions": "{{ alias }}.active = 1", "properties": {"name": {}}},
                },
            }
        )

        engine.project({"id": 1}, node)

        assert persister.calls_to("fetch_multi_row")[0][4] == ["{{ alias }}.active = 1"]


# --- Polymorphism ---


MEDIA = {
    "class": "Media",
    "properties": {
        "title": {},
        "width": {"discriminator": "image"},
        "duration": {"discriminator": "video"},
    },
}


class TestPolymorphism:
    def test_branch_properties_follow_discriminator(self, prepare, engine, persister):
        persister.add_association(
            "Article",
            "media",
            1,
            [
                {"id": 10, "kind": "image", "title": "A", "width": 640},
                {"id": 11, "kind": "video", "title": "B", "duration": 30},
            ],
        )
        node = prepare({"class": "Article", "properties": {"media": {"properties": MEDIA["properties"]}}})

        result = engine.project({"id": 1}, node)

        assert result == {"media": [{"title": "A", "width": 640}, {"title": "B", "duration": 30}]}
        fields = persister.calls_to("fetch_multi_row")[0][3]
        assert fields == ["title", "width", "duration", "id", "kind"]
        assert persister.calls_to("fetch_fields_by_id") == []

    def test_subtype_fields_are_fetched_for_the_subtype(self, prepare, engine, persister):
        persister.records[("Video", 1)] = {"duration": 90}

        result = engine.project({"id": 1, "kind": "video", "title": "V"}, prepare(MEDIA))

        assert result == {"title": "V", "duration": 90}
        assert persister.calls == [("fetch_fields_by_id", "Video", ["duration"], 1)]

    def test_missing_discriminator(self, prepare, engine):
        with pytest.raises(MissingDiscriminatorError):
            engine.project({"id": 1, "title": "V"}, prepare(MEDIA))

    def test_empty_discriminator(self, prepare, engine):
        with pytest.raises(MissingDiscriminatorError):
            engine.project({"id": 1, "kind": "", "title": "V"}, prepare(MEDIA))

    def test_unknown_discriminator_falls_back_to_base(self, prepare, engine):
        result = engine.project({"id": 1, "kind": "audio", "title": "S", "width": 1}, prepare(MEDIA))
        assert result == {"title": "S"}

    def test_ignore_discriminator_mismatch(self, prepare, engine):
        raw = {
            "class": "Media",
            "properties": {
                "title": {},
                "width": {"discriminator": "image", "ignore_discriminator_mismatch": True},
            },
        }

        result = engine.project({"id": 1, "kind": "video", "title": "V", "width": 5}, prepare(raw))

        assert result == {"title": "V", "width": 5}


# --- Decode ---


class TestDecode:
    def test_pipeline_runs_left_to_right(self, prepare, engine, transformers):
        transformers.add("exclaim", lambda value, event: f"{value}!")
        node = prepare({"class": "Article", "properties": {"title": {"decode": "upper | exclaim"}}})

        assert engine.project({"id": 1, "title": "hi"}, node) == {"title": "HI!"}

    def test_each_step_gets_a_fresh_event(self, prepare, engine, transformers):
        events = []

        def record_event(value, event):
            events.append(event)
            return value

        transformers.add("record", record_event)
        node = prepare({"class": "Article", "properties": {"title": {"decode": "record | record"}}})

        engine.project({"id": 1, "title": "hi"}, node)

        assert len(events) == 2
        assert events[0] is not events[1]
        assert events[0] == events[1]

    def test_event_describes_the_property(self, prepare, engine, transformers, persister):
        events = []

        def record_event(value, event):
            events.append(event)
            return value

        transformers.add("record", record_event)
        persister.add_association("Article", "comments", 1, [{"id": 3, "text": "x"}])
        node = prepare(
            {
                "class": "Article",
                "properties": {
                    "title": {"decode": "record"},
                    "comments": {"properties": {"text": {"decode": "record"}}},
                },
            }
        )

        engine.project({"id": 1, "title": "T"}, node)

        root_event, nested_event = events
        assert root_event.owner_type == "Article"
        assert root_event.property_name == "title"
        assert root_event.property_config is node.properties["title"]
        assert root_event.parent_type is None
        assert root_event.raw_record["id"] == 1
        assert nested_event.owner_type == "Comment"
        assert nested_event.parent_type == "Article"
        assert nested_event.parent_property_name == "comments"
        assert nested_event.raw_record == {"id": 3, "text": "x"}

    def test_decoded_mapping_is_intersected_with_scope(self, prepare, engine, transformers):
        transformers.add("expand", lambda value, event: {"raw": value, "upper": value.upper()})
        scope = {"title": {"upper": None}}
        node = prepare({"class": "Article", "properties": {"title": {"decode": "expand"}}}, scope)

        assert engine.project({"id": 1, "title": "hi"}, node, scope) == {"title": {"upper": "HI"}}

    def test_null_values_skip_decode(self, prepare, engine):
        node = prepare({"class": "Article", "properties": {"title": {"decode": "upper"}}})
        assert engine.project({"id": 1, "title": None}, node) == {}

    def test_unknown_transformer(self, prepare, engine):
        node = prepare({"class": "Article", "properties": {"title": {"decode": "shout"}}})

        with pytest.raises(DataTransformerNotExistsError):
            engine.project({"id": 1, "title": "hi"}, node)


# --- Defaults ---


class TestDefaults:
    def test_empty_record_returns_default(self, prepare, engine):
        node = prepare(ARTICLE_WITH_AUTHOR)
        assert engine.project(None, node) is None
        assert engine.project({}, node, default={"missing": True}) == {"missing": True}

    def test_denied_schema_returns_default(self, prepare, engine, persister):
        node = prepare(
            {"class": "Article", "roles": ["ADMIN"], "properties": {"title": {}}},
            access=AccessContext.anonymous(),
        )

        assert engine.project({"id": 1, "title": "T"}, node, default="denied") == "denied"
        assert persister.calls == []

    def test_empty_list(self, prepare, engine):
        node = prepare(ARTICLE_WITH_AUTHOR)
        assert engine.project_list([], node) == []
        assert engine.project_list(None, node, default="none") == "none"

    def test_project_list(self, prepare, engine):
        node = prepare({"class": "Article", "properties": {"title": {}}})

        result = engine.project_list([{"id": 1, "title": "A"}, {"id": 2, "title": "B"}], node)

        assert result == [{"title": "A"}, {"title": "B"}]


# --- Storage fields ---


class TestStorageFields:
    def test_identifiers_survive_a_restricting_scope(self, prepare):
        scope = {"name": None}
        node = prepare({"class": "Author", "properties": {"id": {}, "name": {}, "email": {}}}, scope)

        assert storage_fields(node, scope) == ["id", "name"]

    def test_branch_fields(self, prepare):
        node = prepare(MEDIA)

        assert storage_fields(node) == ["title", "id", "kind"]
        assert storage_fields(node, branch_type="Video") == ["title", "duration", "id", "kind"]

    def test_all_branches(self, prepare):
        node = prepare(MEDIA)

        assert storage_fields(node, all_branches=True) == [
            "title",
            "width",
            "duration",
            "id",
            "kind",
        ]
