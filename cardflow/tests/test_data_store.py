"""Tests for data store resolution, buffering and commit."""

import logging

from cardflow.data_store import (
    DataStore,
    InMemoryDataStoreRepository,
    JsonlDataStoreRepository,
)
from cardflow.models.context import RenderContext
from cardflow.models.data_store import (
    DataStoreField,
    DataStoreFieldType,
    DataStoreNodeField,
    DataStoreSavedField,
    DataStoreSchema,
    DataStoreSchemaField,
)
from cardflow.models.flow import DataStoreNode

SCHEMA = DataStoreSchema(
    fields=[
        DataStoreSchemaField(id="f-count", name="count", type=DataStoreFieldType.number, initial_value="1"),
        DataStoreSchemaField(id="f-mood", name="mood", type=DataStoreFieldType.string, initial_value="calm"),
        DataStoreSchemaField(id="f-met", name="met", type=DataStoreFieldType.boolean, initial_value="false"),
    ]
)


class TestResolution:
    """Expressions render then coerce into the declared type."""

    def setup_method(self):
        self.store = DataStore(SCHEMA)

    def test_initial_values_from_schema(self):
        assert self.store.initial_values() == {"f-count": 1.0, "f-mood": "calm", "f-met": False}

    def test_declare_field_and_resolve(self):
        self.store.declare_field(
            DataStoreField(
                id="f-score",
                name="score",
                type=DataStoreFieldType.number,
                default_value="0",
                value_expression="{{planner.score}}",
            )
        )
        context = RenderContext(agent_outputs={"planner": {"score": 42}})
        values = self.store.resolve_all(context)
        assert values["f-score"] == 42.0
        # fields without an expression keep their value
        assert values["f-mood"] == "calm"

    def test_node_fields_render_expressions(self):
        node = DataStoreNode(
            id="store",
            fields=[
                DataStoreNodeField(id="n1", schema_field_id="f-count", logic="{{dataStore.count}}5"),
                DataStoreNodeField(id="n2", schema_field_id="f-met", logic="{{toggle.met}}"),
                DataStoreNodeField(id="n3", schema_field_id="f-unknown", logic="x"),
            ],
        )
        fields = self.store.fields_for_node(node)
        assert [f.id for f in fields] == ["f-count", "f-met"]
        context = RenderContext(data_store={"count": 1.0}, toggles={"met": True})
        assert self.store.resolve_all(context, fields) == {"f-count": 15.0, "f-met": True}

    def test_bad_value_keeps_previous(self):
        field = DataStoreField(
            id="f-count", name="count", type=DataStoreFieldType.number, value_expression="lots"
        )
        values = self.store.resolve_all(RenderContext(), [field], previous={"f-count": 4.0})
        assert values == {"f-count": 4.0}

    def test_bound_values_by_name(self, caplog):
        with caplog.at_level(logging.WARNING, logger="cardflow.data_store"):
            values = self.store.by_id({"count": "3", "met": "yes", "mood": 7, "other": 1})
        assert values == {"f-count": 3.0, "f-met": True, "f-mood": "7"}

        with caplog.at_level(logging.WARNING, logger="cardflow.data_store"):
            assert self.store.by_id({"count": "many"}) == {}
        assert "bound value" in caplog.text


class TestCommit:
    """Only commit() reaches the repository, with a full snapshot."""

    def setup_method(self):
        self.repository = InMemoryDataStoreRepository()
        self.store = DataStore(SCHEMA, repository=self.repository, session_id="s1")

    def test_buffer_is_not_persisted(self):
        self.store.buffer({"f-count": 3.0})
        assert self.store.buffered == {"f-count": 3.0}
        assert self.repository.load("s1") == []

    def test_commit_persists_buffer(self):
        self.store.buffer({"f-count": 3.0})
        committed = self.store.commit("turn-1")
        assert committed == {"f-count": 3.0, "f-mood": "calm", "f-met": False}
        saved = {f.name: f.value for f in self.repository.load("s1")}
        assert saved == {"count": 3.0, "mood": "calm", "met": False}
        assert self.repository.commits == [("s1", "turn-1")]
        assert self.store.buffered == {}

    def test_committed_values_seed_next_turn(self):
        self.store.commit("turn-1", {"f-mood": "angry"})
        fresh = DataStore(SCHEMA, repository=self.repository, session_id="s1")
        assert fresh.initial_values()["f-mood"] == "angry"

    def test_discard(self):
        self.store.buffer({"f-count": 9.0})
        self.store.discard()
        assert self.store.buffered == {}


class TestJsonlRepository:
    def test_load_returns_latest_commit_for_session(self, tmp_path):
        repository = JsonlDataStoreRepository(tmp_path / "store" / "commits.jsonl")
        assert repository.load("s1") == []
        repository.commit("s1", "t1", [DataStoreSavedField(id="f", name="count", value=1)])
        repository.commit("s2", "t1", [DataStoreSavedField(id="f", name="count", value=9)])
        repository.commit("s1", "t2", [DataStoreSavedField(id="f", name="count", value=2)])
        loaded = repository.load("s1")
        assert [(f.name, f.value) for f in loaded] == [("count", 2)]
