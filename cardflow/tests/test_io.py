"""Tests for flow import/export."""

import asyncio
import json
import zipfile
from pathlib import Path

import pytest

from cardflow.errors import FlowImportError
from cardflow.executor import FlowExecutor
from cardflow.io import (
    dumps_flow,
    export_flow,
    export_flow_archive,
    import_flow,
    import_flow_archive,
)
from cardflow.models.context import Character, RenderContext
from cardflow.models.flow import ReadyState
from cardflow.models.validation import IssueCode
from cardflow.validation import ValidationOrchestrator

from flow_factory import branching_flow, counter_flow

FIXTURES = Path(__file__).parent / "fixtures"


def load_fixture(name):
    return (FIXTURES / name).read_text()


class TestExport:
    def test_document_is_camel_case(self):
        document = export_flow(counter_flow())
        assert document["responseTemplate"] == "{{narrator}} ({{dataStore.count}})"
        assert document["dataStoreSchema"]["fields"][0]["initialValue"] == "0"
        assert document["nodes"][1]["fields"][0]["schemaFieldId"] == "f-count"
        assert document["agents"]["a1"]["modelName"] == "gpt-4o-mini"
        assert "readyState" not in document
        assert "validationIssues" not in document

    def test_round_trip(self):
        for flow in (branching_flow(), counter_flow("{{dataStore.count}}1")):
            assert import_flow(dumps_flow(flow)) == flow

    def test_export_is_stable(self):
        flow = branching_flow()
        assert dumps_flow(import_flow(dumps_flow(flow))) == dumps_flow(flow)


class TestImport:
    def test_fixture_loads(self):
        flow = import_flow(load_fixture("mood_flow.json"))
        assert flow.id == "flow-mood"
        assert [node.type for node in flow.nodes] == [
            "start", "agent", "dataStore", "if", "agent", "end"
        ]
        assert flow.node("gate").logic_operator.value == "OR"
        assert flow.agents["ag-score"].is_structured
        assert flow.agents["ag-reply"].prompt_messages[1].type == "history"

    def test_import_resets_ready_state(self):
        flow = import_flow(load_fixture("mood_flow.json"))
        assert flow.ready_state == ReadyState.draft
        assert flow.validation_issues == []

    def test_unknown_and_missing_keys(self):
        flow = import_flow({"id": "bare", "futureField": [1, 2, 3]})
        assert flow.nodes == []
        assert flow.response_template == ""
        assert flow.data_store_schema.fields == []

    @pytest.mark.parametrize(
        "document",
        [
            "{not json",
            "[1, 2]",
            json.dumps({"name": "no id"}),
            json.dumps({"id": "x", "nodes": [{"id": "n", "type": "teleport"}]}),
        ],
    )
    def test_malformed_documents(self, document):
        with pytest.raises(FlowImportError):
            import_flow(document)

    def test_fixture_validates_with_bound_character(self):
        orchestrator = ValidationOrchestrator()
        flow = import_flow(load_fixture("mood_flow.json"))

        unbound = orchestrator.validate(flow)
        assert [issue.code for issue in unbound] == [IssueCode.UNRESOLVABLE_VARIABLE] * 2

        scopes = {"session", "history", "toggle", "response", "char"}
        assert orchestrator.validate(flow, scopes) == []

    def test_imported_flow_runs(self):
        scopes = {"session", "history", "toggle", "response", "char"}
        flow = ValidationOrchestrator().apply(import_flow(load_fixture("mood_flow.json")), scopes)

        async def invoker(messages, agent):
            if agent.key == "scorer":
                return {"mood": 8, "angry": False}
            return "Lovely day."

        context = RenderContext(char=Character(id="c1", name="Mira"))
        result = asyncio.run(FlowExecutor().run(flow, context, invoker))

        assert result.value.trace == ["start", "score", "store", "gate", "calm", "end"]
        assert result.value.data_store == {"f-mood": 8.0, "f-angry": False}
        assert result.value.response == "Lovely day."


class TestArchive:
    def test_archive_round_trip(self, tmp_path):
        flow = counter_flow()
        path = export_flow_archive(flow, tmp_path / "out" / "counter.zip", {"sessionId": "s1"})
        restored, session = import_flow_archive(path)
        assert restored == flow
        assert session == {"sessionId": "s1"}

    def test_archive_without_session(self, tmp_path):
        path = export_flow_archive(counter_flow(), tmp_path / "counter.zip")
        _, session = import_flow_archive(path)
        assert session is None

    def test_archive_missing_flow(self, tmp_path):
        path = tmp_path / "empty.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("readme.txt", "nothing here")
        with pytest.raises(FlowImportError):
            import_flow_archive(path)

    def test_not_a_zip(self, tmp_path):
        path = tmp_path / "flow.zip"
        path.write_text("plain text")
        with pytest.raises(FlowImportError):
            import_flow_archive(path)
