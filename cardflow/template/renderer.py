"""Render templates and agent prompts against a RenderContext."""

import logging
from dataclasses import dataclass
from typing import Iterator

from cardflow.errors import TemplateSyntaxError
from cardflow.models.agent import (
    Agent,
    ApiType,
    HistoryPromptMessage,
    HistoryType,
    MessageRole,
    PromptBlock,
)
from cardflow.models.context import HistoryItem, Message, RenderContext
from cardflow.result import Result
from cardflow.template.parser import HistoryWindow, Macro, Template, parse_template
from cardflow.template.resolver import VariableResolver, format_value

logger = logging.getLogger(__name__)


class TemplateRenderer:
    """Interprets a parsed template against a context."""

    def __init__(self, resolver: VariableResolver | None = None) -> None:
        self.resolver = resolver or VariableResolver()

    def render(self, template: str | Template, context: RenderContext) -> str:
        """Substitute every macro. Raises TemplateSyntaxError on bad input.

        An unresolved macro renders as an empty string and is logged.
        """
        parsed = parse_template(template) if isinstance(template, str) else template
        out: list[str] = []
        for node in parsed.nodes:
            if isinstance(node, Macro):
                out.append(self._render_macro(node, context))
            else:
                out.append(node.value)
        return "".join(out)

    def _render_macro(self, macro: Macro, context: RenderContext) -> str:
        if macro.window is not None:
            return format_value(macro.window.apply(context.history))
        found, value = self.resolver.resolve(macro.path, context)
        if not found:
            logger.warning("Unresolved macro {{%s}} rendered as empty string", macro.path)
            return ""
        return format_value(value)

    def get_variables(self, template: str) -> list[str]:
        return parse_template(template).variables


@dataclass(frozen=True)
class TemplateSite:
    """Where a template lives inside an agent configuration."""

    source: str
    field: str
    in_history: bool = False


class PromptRenderer:
    """Builds the messages an agent node sends to its model."""

    def __init__(self, agent: Agent, renderer: TemplateRenderer | None = None) -> None:
        self.agent = agent
        self.renderer = renderer or TemplateRenderer()

    def iter_templates(self) -> Iterator[TemplateSite]:
        """Every template the agent holds, tagged with its location."""
        if self.agent.target_api_type == ApiType.text:
            yield TemplateSite(self.agent.text_prompt, "textPrompt")
            return
        for index, message in enumerate(self.agent.prompt_messages):
            if isinstance(message, HistoryPromptMessage):
                for kind, blocks in (
                    ("userBlocks", message.user_blocks),
                    ("assistantBlocks", message.assistant_blocks),
                ):
                    for block_index, block in enumerate(blocks):
                        yield TemplateSite(
                            block.template,
                            f"promptMessages[{index}].{kind}[{block_index}]",
                            in_history=True,
                        )
            else:
                for block_index, block in enumerate(message.blocks):
                    yield TemplateSite(
                        block.template, f"promptMessages[{index}].blocks[{block_index}]"
                    )

    def get_variables(self) -> list[str]:
        """Distinct macro paths across all templates, first-seen order."""
        seen: dict[str, None] = {}
        for site in self.iter_templates():
            for path in parse_template(site.source).variables:
                seen.setdefault(path, None)
        return list(seen)

    def render_messages(self, context: RenderContext) -> Result[list[Message]]:
        try:
            return Result.ok(self._build_messages(context))
        except TemplateSyntaxError as e:
            return Result.fail(e)

    def render_prompt(self, context: RenderContext) -> Result[str]:
        """Single-string form for completion-style consumers."""
        try:
            if self.agent.target_api_type == ApiType.text:
                return Result.ok(self.renderer.render(self.agent.text_prompt, context))
            messages = self._build_messages(context)
        except TemplateSyntaxError as e:
            return Result.fail(e)
        return Result.ok("\n\n".join(message.content for message in messages))

    def _build_messages(self, context: RenderContext) -> list[Message]:
        if self.agent.target_api_type == ApiType.text:
            content = self.renderer.render(self.agent.text_prompt, context)
            return [Message(MessageRole.user.value, content)] if content else []

        messages: list[Message] = []
        for message in self.agent.prompt_messages:
            if isinstance(message, HistoryPromptMessage):
                messages.extend(self._render_history(message, context))
                continue
            content = self._render_blocks(message.blocks, context)
            if content:
                messages.append(Message(message.role.value, content))
        return messages

    def _render_blocks(self, blocks: list[PromptBlock], context: RenderContext) -> str:
        parts = []
        for block in blocks:
            if not block.enabled:
                continue
            if block.toggle and not context.toggle_on(block.toggle):
                continue
            rendered = self.renderer.render(block.template, context)
            if rendered:
                parts.append(rendered)
        return "\n".join(parts)

    def _render_turn(
        self,
        message: HistoryPromptMessage,
        item: HistoryItem,
        context: RenderContext,
        from_user: bool,
    ) -> str:
        blocks = message.user_blocks if from_user else message.assistant_blocks
        if not blocks:
            if message.history_type == HistoryType.merge:
                return f"{item.char_name}: {item.content}"
            return item.content
        return self._render_blocks(blocks, context.with_turn(item))

    def _render_history(
        self, message: HistoryPromptMessage, context: RenderContext
    ) -> list[Message]:
        window = HistoryWindow(message.start, message.end, message.count_from_end)
        items = window.apply(context.history)
        user_id = context.user.id if context.user else None

        if message.history_type == HistoryType.split:
            messages = []
            for item in items:
                from_user = item.char_id == user_id
                content = self._render_turn(message, item, context, from_user)
                if content:
                    role = MessageRole.user if from_user else MessageRole.assistant
                    messages.append(Message(role.value, content))
            return messages

        lines = [
            self._render_turn(message, item, context, item.char_id == user_id)
            for item in items
        ]
        content = "\n".join(line for line in lines if line)
        return [Message(message.role.value, content)] if content else []
