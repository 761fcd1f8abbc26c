"""Tests for FlowExecutor turn execution."""

import asyncio

import pytest

from cardflow.errors import DefensiveAbort, ExecutionAborted, FlowNotReadyError
from cardflow.data_store import InMemoryDataStoreRepository
from cardflow.executor import FlowExecutor
from cardflow.models.agent import OutputFormat, PlainPromptMessage, PromptBlock, SchemaField
from cardflow.models.context import RenderContext
from cardflow.models.data_store import DataStoreFieldType, DataStoreSavedField
from cardflow.models.flow import AgentNode
from cardflow.models.trace_event import EventType
from cardflow.sdk import enable_tracing

from flow_factory import branching_flow, counter_flow, edge, linear_flow, make_agent, mark_ready


class RecordingInvoker:
    """Agent invoker that records prompts and replays canned outputs by agent key."""

    def __init__(self, outputs=None, fail_with=None):
        self.outputs = outputs or {}
        self.fail_with = fail_with
        self.calls = []

    async def __call__(self, messages, agent):
        self.calls.append((agent.key, messages))
        if self.fail_with is not None:
            raise self.fail_with
        return self.outputs.get(agent.key, f"{agent.key} says hi")


def saved_count(value):
    return DataStoreSavedField(id="f-count", name="count", type=DataStoreFieldType.number, value=value)


def run(flow, invoker, **kwargs):
    executor = kwargs.pop("executor", None) or FlowExecutor()
    context = kwargs.pop("context", None) or RenderContext()
    return asyncio.run(executor.run(flow, context, invoker, **kwargs))


class TestBranching:
    def _repository(self, count):
        repo = InMemoryDataStoreRepository()
        repo.commit("s1", "t0", [saved_count(count)])
        return repo

    def test_true_branch(self):
        invoker = RecordingInvoker()
        result = run(
            mark_ready(branching_flow()),
            invoker,
            session_id="s1",
            repository=self._repository(10.0),
        )
        assert result.is_success
        assert result.value.trace == ["start", "check", "high", "end"]
        assert [key for key, _ in invoker.calls] == ["high"]

    def test_false_branch(self):
        result = run(
            mark_ready(branching_flow()),
            RecordingInvoker(),
            session_id="s1",
            repository=self._repository(3.0),
        )
        assert result.value.trace == ["start", "check", "low", "end"]

    def test_schema_default_without_repository(self):
        result = run(mark_ready(branching_flow()), RecordingInvoker())
        assert result.value.trace == ["start", "check", "low", "end"]
        assert result.value.data_store == {"f-count": 0.0}

    def test_value_bound_through_context(self):
        invoker = RecordingInvoker()
        result = run(
            mark_ready(branching_flow()),
            invoker,
            context=RenderContext(data_store={"count": 10}),
        )
        assert result.value.trace == ["start", "check", "high", "end"]
        assert [key for key, _ in invoker.calls] == ["high"]
        assert result.value.data_store == {"f-count": 10.0}

    def test_bound_value_overrides_stored_snapshot(self):
        repo = self._repository(3.0)
        result = run(
            mark_ready(branching_flow()),
            RecordingInvoker(),
            context=RenderContext(data_store={"count": "12", "unknown": 1}),
            session_id="s1",
            repository=repo,
        )
        assert result.value.trace == ["start", "check", "high", "end"]
        assert repo.load("s1")[0].value == 12.0

    def test_uncoercible_bound_value_is_ignored(self):
        result = run(
            mark_ready(branching_flow()),
            RecordingInvoker(),
            context=RenderContext(data_store={"count": "lots"}),
            session_id="s1",
            repository=self._repository(10.0),
        )
        assert result.value.trace == ["start", "check", "high", "end"]


class TestDataStoreCommit:
    def test_value_flows_into_prompt_and_commit(self):
        repo = InMemoryDataStoreRepository()
        invoker = RecordingInvoker({"narrator": "Seven it is"})
        result = run(
            mark_ready(counter_flow()),
            invoker,
            session_id="s1",
            turn_id="t1",
            repository=repo,
        )
        assert result.is_success
        outcome = result.value
        assert outcome.turn_id == "t1"
        assert outcome.response == "Seven it is (7)"
        assert outcome.data_store == {"f-count": 7.0}
        assert outcome.agent_outputs == {"narrator": "Seven it is"}

        _, messages = invoker.calls[0]
        assert messages[0].role == "system"
        assert messages[0].content == "Count is 7."

        assert repo.commits == [("s1", "t1")]
        assert repo.load("s1")[0].value == 7.0

    def test_expression_reads_previous_value(self):
        repo = InMemoryDataStoreRepository()
        repo.commit("s1", "t0", [saved_count(2.0)])
        result = run(
            mark_ready(counter_flow("{{dataStore.count}}1")),
            RecordingInvoker(),
            session_id="s1",
            repository=repo,
        )
        assert result.value.data_store == {"f-count": 21.0}


class TestFailures:
    def test_agent_failure_discards_buffer(self):
        """Start -> DataStore -> Agent(a1, raises) -> End leaves the store untouched."""
        repo = InMemoryDataStoreRepository()
        repo.commit("s1", "t0", [saved_count(1.0)])
        result = run(
            mark_ready(counter_flow()),
            RecordingInvoker(fail_with=ConnectionError("provider down")),
            session_id="s1",
            repository=repo,
        )
        assert result.is_failure
        assert result.error.node_id == "a1"
        assert result.error.error_type == "infra"
        assert isinstance(result.error.cause, ConnectionError)
        assert repo.commits == [("s1", "t0")]
        assert repo.load("s1")[0].value == 1.0

    def test_unvalidated_flow_is_rejected(self):
        invoker = RecordingInvoker()
        result = run(counter_flow(), invoker)
        assert isinstance(result.error, FlowNotReadyError)
        assert invoker.calls == []

    def test_abort_before_first_step(self):
        async def go():
            abort = asyncio.Event()
            abort.set()
            return await FlowExecutor().run(
                mark_ready(linear_flow()), RenderContext(), RecordingInvoker(), abort=abort
            )

        result = asyncio.run(go())
        assert isinstance(result.error, ExecutionAborted)
        assert result.error.node_id == "start"

    def test_abort_during_agent_call(self):
        """An abort raised while an agent runs stops the walk before the next node."""
        repo = InMemoryDataStoreRepository()

        async def go():
            abort = asyncio.Event()
            invoker = RecordingInvoker()

            async def aborting(messages, agent):
                abort.set()
                return await invoker(messages, agent)

            result = await FlowExecutor().run(
                mark_ready(counter_flow()),
                RenderContext(),
                aborting,
                session_id="s1",
                abort=abort,
                repository=repo,
            )
            return result, invoker

        result, invoker = asyncio.run(go())
        assert isinstance(result.error, ExecutionAborted)
        assert result.error.node_id == "end"
        assert [key for key, _ in invoker.calls] == ["narrator"]
        assert repo.commits == []

    def test_explicit_step_limit(self):
        executor = FlowExecutor(max_steps=2)
        with pytest.raises(DefensiveAbort) as excinfo:
            run(mark_ready(linear_flow()), RecordingInvoker(), executor=executor)
        assert excinfo.value.trace == ["start", "a1"]

        executor = FlowExecutor(max_steps=0)
        with pytest.raises(DefensiveAbort) as excinfo:
            run(mark_ready(linear_flow()), RecordingInvoker(), executor=executor)
        assert excinfo.value.steps == 0

    def test_step_guard_trips_on_cycle(self):
        flow = linear_flow()
        edges = [edge("start", "a1"), edge("a1", "a1"), edge("a1", "end")]
        flow = mark_ready(flow.model_copy(update={"edges": edges}))
        repo = InMemoryDataStoreRepository()
        with pytest.raises(DefensiveAbort) as excinfo:
            run(flow, RecordingInvoker(), session_id="s1", repository=repo)
        assert excinfo.value.steps == len(flow.nodes) + 1
        assert excinfo.value.trace[:3] == ["start", "a1", "a1"]
        assert repo.commits == []


class TestStructuredOutput:
    def test_fields_reach_downstream_prompt(self):
        planner = make_agent(
            "p1",
            "Planner",
            output_format=OutputFormat.structured_output,
            schema_name="plan",
            schema_fields=[SchemaField(name="goal")],
        )
        narrator = make_agent("a1", "Narrator", "Goal: {{planner.goal}}")
        flow = linear_flow().model_copy(
            update={
                "nodes": [linear_flow().nodes[0], AgentNode(id="p1"), *linear_flow().nodes[1:]],
                "edges": [edge("start", "p1"), edge("p1", "a1"), edge("a1", "end")],
                "agents": {"p1": planner, "a1": narrator},
                "response_template": "{{narrator}}",
            }
        )
        invoker = RecordingInvoker({"planner": {"goal": "find the key"}, "narrator": "Done"})
        result = run(mark_ready(flow), invoker)

        assert result.value.agent_outputs["planner"] == {"goal": "find the key"}
        assert result.value.response == "Done"
        _, messages = invoker.calls[1]
        assert messages[0].content == "Goal: find the key"

    def test_plain_prompt_only(self):
        agent = make_agent(
            "a1", "Narrator", prompt_messages=[PlainPromptMessage(blocks=[PromptBlock(template="Hi")])]
        )
        flow = mark_ready(linear_flow().model_copy(update={"agents": {"a1": agent}}))
        invoker = RecordingInvoker()
        run(flow, invoker)
        assert [m.to_dict() for m in invoker.calls[0][1]] == [{"role": "system", "content": "Hi"}]


class TestTracing:
    def test_events_in_walk_order(self):
        with enable_tracing(trace_id="trace-1") as ctx:
            result = run(mark_ready(counter_flow()), RecordingInvoker(), turn_id="t1")

        assert result.is_success
        events = ctx.events
        assert [e.event_type for e in events] == [
            EventType.node_entered,
            EventType.node_entered,
            EventType.data_store_buffered,
            EventType.node_entered,
            EventType.agent_input,
            EventType.agent_output,
            EventType.node_entered,
            EventType.turn_committed,
        ]
        assert [e.sequence for e in events] == list(range(len(events)))
        assert all(e.trace_id == "trace-1" for e in events)
        assert events[-1].payload["turn_id"] == "t1"

    def test_failure_emits_error_event(self, tmp_path):
        with enable_tracing(output_dir=tmp_path) as ctx:
            run(mark_ready(linear_flow()), RecordingInvoker(fail_with=ValueError("bad json")))

        errors = [e for e in ctx.events if e.event_type == EventType.error]
        assert len(errors) == 1
        assert errors[0].node_id == "a1"
        assert errors[0].payload["details"]["trace"] == ["start", "a1"]
