"""Walks a ready flow from Start to End for one turn.

The walk is a state machine over node ids. Agent nodes are the only
suspension points; data store writes are buffered and committed once, when
an End node is reached. Any failure before that discards the buffer, so a
failed turn leaves no trace in the session's stored values.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from cardflow.adapters.event_api import EventEmitter
from cardflow.conditions import ConditionEvaluator
from cardflow.data_store import DataStore, DataStoreRepository
from cardflow.errors import (
    DefensiveAbort,
    ExecutionAborted,
    FlowNotReadyError,
    RuntimeExecutionError,
    TemplateSyntaxError,
)
from cardflow.graph import GraphModel
from cardflow.models.agent import Agent
from cardflow.models.context import Message, RenderContext
from cardflow.models.flow import Flow, NodeType
from cardflow.models.outcome import TurnOutcome
from cardflow.result import Result
from cardflow.sdk.tracing import get_active_context
from cardflow.template.renderer import PromptRenderer, TemplateRenderer
from cardflow.utils.identifiers import generate_turn_id

logger = logging.getLogger(__name__)

AgentInvoker = Callable[[list[Message], Agent], Awaitable[str | dict[str, Any]]]


class FlowExecutor:
    """Runs single turns of a flow.

    One executor may serve many sessions, but callers must not run two
    turns for the same session at once; commits would interleave.
    """

    def __init__(
        self,
        max_steps: int | None = None,
        emitter: EventEmitter | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.max_steps = max_steps
        self.emitter = emitter
        self.renderer = renderer or TemplateRenderer()
        self.evaluator = ConditionEvaluator(self.renderer)

    def _emitter(self) -> EventEmitter | None:
        if self.emitter is not None:
            return self.emitter
        active = get_active_context()
        return active.emitter if active else None

    async def run(
        self,
        flow: Flow,
        context: RenderContext,
        agent_invoker: AgentInvoker,
        *,
        turn_id: str | None = None,
        session_id: str | None = None,
        abort: asyncio.Event | None = None,
        repository: DataStoreRepository | None = None,
    ) -> Result[TurnOutcome]:
        """Execute one turn. Failures come back as Result.fail.

        Raises DefensiveAbort only if the walk exceeds the step guard,
        which a validated flow cannot do.
        """
        turn_id = turn_id or generate_turn_id()
        emitter = self._emitter()

        if not flow.is_ready:
            return Result.fail(
                FlowNotReadyError(
                    f"Flow '{flow.id}' is {flow.ready_state.value}, not ready",
                    error_type="logic",
                )
            )

        graph = GraphModel(flow)
        start = graph.start_node()
        if start is None:
            return Result.fail(FlowNotReadyError("Flow has no Start node", error_type="logic"))

        store = DataStore(
            flow.data_store_schema,
            repository=repository,
            session_id=session_id,
            renderer=self.renderer,
        )
        # values bound by the caller win over stored ones
        stored = {**store.initial_values(), **store.by_id(context.data_store)}
        context = context.with_data_store(store.by_name(stored))

        max_steps = len(flow.nodes) + 1 if self.max_steps is None else self.max_steps
        trace: list[str] = []
        agent_outputs: dict[str, Any] = {}
        current = start.id

        def fail(error: RuntimeExecutionError) -> Result[TurnOutcome]:
            store.discard()
            if emitter:
                emitter.emit_error(
                    error.node_id,
                    error.error_type,
                    str(error),
                    details={"turn_id": turn_id, "trace": list(trace)},
                )
            return Result.fail(error)

        while True:
            if abort is not None and abort.is_set():
                return fail(
                    ExecutionAborted(
                        f"Turn {turn_id} aborted before node '{current}'",
                        node_id=current,
                        error_type="logic",
                    )
                )

            if len(trace) >= max_steps:
                store.discard()
                logger.error(
                    "Step guard tripped after %d steps on flow %s: %s",
                    len(trace),
                    flow.id,
                    " -> ".join(trace),
                )
                raise DefensiveAbort(
                    f"Flow '{flow.id}' exceeded {max_steps} steps", len(trace), list(trace)
                )

            node = graph.nodes[current]
            trace.append(current)
            if emitter:
                emitter.emit_node_entered(current, node.type, len(trace))

            if node.type == NodeType.end.value:
                break

            handle = None
            if node.type == NodeType.agent.value:
                agent = flow.agent_for(node)
                if agent is None:
                    return fail(
                        RuntimeExecutionError(
                            f"Agent '{node.resolved_agent_id}' is not configured",
                            node_id=current,
                            error_type="logic",
                        )
                    )
                rendered = PromptRenderer(agent, self.renderer).render_messages(context)
                if rendered.is_failure:
                    return fail(
                        RuntimeExecutionError(
                            f"Prompt for agent '{agent.key}' failed to render: {rendered.error}",
                            node_id=current,
                            cause=rendered.error,
                            error_type="schema",
                        )
                    )
                messages = rendered.value
                if emitter:
                    emitter.emit_input(current, agent.key, [m.to_dict() for m in messages])
                try:
                    output = await agent_invoker(messages, agent)
                except asyncio.CancelledError:
                    store.discard()
                    raise
                except Exception as e:
                    logger.error("Agent node %s failed: %s", current, e)
                    return fail(
                        RuntimeExecutionError(
                            f"Agent '{agent.key}' failed: {e}", node_id=current, cause=e
                        )
                    )
                agent_outputs[agent.key] = output
                context = context.with_agent_output(agent.key, output)
                if emitter:
                    emitter.emit_output(current, agent.key, output)

            elif node.type == NodeType.if_.value:
                results = [
                    self.evaluator.evaluate(condition, context)
                    for condition in node.conditions
                ]
                branch = self.evaluator.combine(results, node.logic_operator)
                handle = "true" if branch else "false"
                if emitter:
                    emitter.emit_branch(current, branch, results)

            elif node.type == NodeType.data_store.value:
                values = store.resolve_all(
                    context,
                    store.fields_for_node(node),
                    previous={**stored, **store.buffered},
                )
                store.buffer(values)
                context = context.with_data_store(store.by_name(values))
                if emitter:
                    emitter.emit_buffered(current, values)

            next_id = graph.next_node_id(current, handle)
            if next_id is None:
                return fail(
                    RuntimeExecutionError(
                        f"Node '{current}' has no edge to follow",
                        node_id=current,
                        error_type="logic",
                    )
                )
            current = next_id

        try:
            response = self.renderer.render(flow.response_template, context)
        except TemplateSyntaxError as e:
            return fail(
                RuntimeExecutionError(
                    f"Response template failed to render: {e}",
                    node_id=current,
                    cause=e,
                    error_type="schema",
                )
            )

        committed = store.commit(turn_id, {**stored, **store.buffered})
        if emitter:
            emitter.emit_committed(current, turn_id, committed)

        return Result.ok(
            TurnOutcome(
                turn_id=turn_id,
                session_id=session_id,
                trace=trace,
                agent_outputs=agent_outputs,
                data_store=committed,
                response=response,
            )
        )
