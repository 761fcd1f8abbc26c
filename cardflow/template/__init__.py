"""Macro templates: parsing, variable resolution and prompt rendering."""

from cardflow.template.parser import (
    HistoryWindow,
    Macro,
    Template,
    Text,
    get_variables,
    parse_template,
)
from cardflow.template.renderer import PromptRenderer, TemplateRenderer, TemplateSite
from cardflow.template.resolver import VariableResolver, format_value

__all__ = [
    "HistoryWindow",
    "Macro",
    "PromptRenderer",
    "Template",
    "TemplateRenderer",
    "TemplateSite",
    "Text",
    "VariableResolver",
    "format_value",
    "get_variables",
    "parse_template",
]
