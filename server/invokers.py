"""Agent invoker that calls provider SDKs directly.

Supports OpenAI and Anthropic. Clients are created lazily from environment
keys; provider errors propagate so the executor can report the failing node.
"""

import json
import os
from typing import Any

from fastapi import HTTPException

from cardflow.models.agent import Agent
from cardflow.models.context import Message

# LLM Client instances (lazily initialized)
_openai_client = None
_anthropic_client = None

DEFAULT_MAX_TOKENS = 1024


def _get_openai_client():
    """Get or create OpenAI client."""
    global _openai_client
    if _openai_client is None:
        import openai
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise HTTPException(
                status_code=500,
                detail="OPENAI_API_KEY environment variable not set"
            )
        _openai_client = openai.AsyncOpenAI(api_key=api_key)
    return _openai_client


def _get_anthropic_client():
    """Get or create Anthropic client."""
    global _anthropic_client
    if _anthropic_client is None:
        import anthropic
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise HTTPException(
                status_code=500,
                detail="ANTHROPIC_API_KEY environment variable not set"
            )
        _anthropic_client = anthropic.AsyncAnthropic(api_key=api_key)
    return _anthropic_client


async def _call_openai(messages: list[Message], agent: Agent) -> str | dict[str, Any]:
    client = _get_openai_client()
    params: dict[str, Any] = {
        "model": agent.model_name,
        "messages": [message.to_dict() for message in messages],
        **agent.parameters,
    }
    if agent.is_structured:
        params["response_format"] = {
            "type": "json_schema",
            "json_schema": {
                "name": agent.schema_name or agent.key,
                "schema": agent.output_json_schema(),
            },
        }

    response = await client.chat.completions.create(**params)
    content = response.choices[0].message.content or ""
    return json.loads(content) if agent.is_structured else content


async def _call_anthropic(messages: list[Message], agent: Agent) -> str | dict[str, Any]:
    client = _get_anthropic_client()
    system = "\n\n".join(m.content for m in messages if m.role == "system")
    params: dict[str, Any] = {
        "model": agent.model_name,
        "messages": [m.to_dict() for m in messages if m.role != "system"],
        "max_tokens": DEFAULT_MAX_TOKENS,
        **agent.parameters,
    }
    if system:
        params["system"] = system
    if agent.is_structured:
        tool_name = agent.schema_name or agent.key
        params["tools"] = [
            {
                "name": tool_name,
                "description": f"Structured output of {agent.name or agent.key}",
                "input_schema": agent.output_json_schema(),
            }
        ]
        params["tool_choice"] = {"type": "tool", "name": tool_name}

    response = await client.messages.create(**params)
    if agent.is_structured:
        for block in response.content:
            if block.type == "tool_use":
                return dict(block.input)
        raise ValueError("Anthropic response contained no structured output")
    return "".join(block.text for block in response.content if block.type == "text")


async def invoke_agent(messages: list[Message], agent: Agent) -> str | dict[str, Any]:
    """Route an agent call to its provider."""
    source = (agent.api_source or "").lower()
    if source == "openai":
        return await _call_openai(messages, agent)
    if source == "anthropic":
        return await _call_anthropic(messages, agent)
    raise HTTPException(
        status_code=400,
        detail=f"Provider not supported by this server: {agent.api_source}",
    )
