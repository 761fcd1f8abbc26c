"""Agent invoker backed by a LangChain chat model.

Pass an instance as the ``agent_invoker`` of FlowExecutor.run. The model can
be fixed, or chosen per agent with a factory (e.g. from api_source and
model_name).
"""

from typing import Any, Callable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel

from cardflow.models.agent import Agent
from cardflow.models.context import Message


def to_langchain_messages(messages: list[Message]) -> list[BaseMessage]:
    """Map role-tagged messages onto LangChain message classes."""
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == "system":
            converted.append(SystemMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(HumanMessage(content=message.content))
    return converted


def _text_of(content: Any) -> str:
    if isinstance(content, str):
        return content
    # content blocks, e.g. anthropic
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LangChainAgentInvoker:
    """Calls a chat model with an agent's rendered messages."""

    def __init__(
        self,
        model: BaseChatModel | Callable[[Agent], BaseChatModel],
        bind_parameters: bool = True,
    ) -> None:
        self._model = model
        self.bind_parameters = bind_parameters

    def model_for(self, agent: Agent) -> BaseChatModel:
        if isinstance(self._model, BaseChatModel):
            return self._model
        return self._model(agent)

    async def __call__(self, messages: list[Message], agent: Agent) -> str | dict:
        chat_model: Any = self.model_for(agent)
        lc_messages = to_langchain_messages(messages)

        # parameters are bound on the plain path only; with_structured_output
        # returns a sequence that does not forward model kwargs
        if agent.is_structured:
            structured = chat_model.with_structured_output(agent.output_json_schema())
            result = await structured.ainvoke(lc_messages)
            if isinstance(result, BaseModel):
                return result.model_dump()
            return dict(result)

        if self.bind_parameters and agent.parameters:
            chat_model = chat_model.bind(**agent.parameters)
        response = await chat_model.ainvoke(lc_messages)
        return _text_of(response.content)
