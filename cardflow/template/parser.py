"""Tokenizer and parser for ``{{scope.path}}`` macros.

A template is parsed once into a tuple of Text and Macro nodes; rendering
and variable enumeration are walks over that tuple.

Grammar inside the braces (surrounding whitespace ignored):

    path          := ident ("." ident)*
    history-macro := "history" "[" [int] ":" [int] "]" ["from_end"]
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence, TypeVar

from cardflow.errors import TemplateSyntaxError

T = TypeVar("T")

OPEN = "{{"
CLOSE = "}}"

_MACRO_RE = re.compile(
    r"""
    ^(?P<path>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
    (?:\[\s*(?P<start>\d*)\s*:\s*(?P<end>\d*)\s*\])?
    (?:\s+(?P<flag>from_end))?$
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class HistoryWindow:
    """Slice of chat history; indices count from the oldest turn unless
    count_from_end is set, in which case 0 is the newest turn."""

    start: int | None = None
    end: int | None = None
    count_from_end: bool = False

    def apply(self, items: Sequence[T]) -> list[T]:
        if not self.count_from_end:
            return list(items[self.start : self.end])
        newest_first = list(reversed(items))[self.start : self.end]
        newest_first.reverse()
        return newest_first


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Macro:
    path: str
    position: int
    window: HistoryWindow | None = None

    @property
    def scope(self) -> str:
        return self.path.split(".", 1)[0]


@dataclass(frozen=True)
class Template:
    source: str
    nodes: tuple[Text | Macro, ...]

    @property
    def macros(self) -> list[Macro]:
        return [node for node in self.nodes if isinstance(node, Macro)]

    @property
    def variables(self) -> list[str]:
        """Distinct macro paths in first-seen order."""
        seen: dict[str, None] = {}
        for macro in self.macros:
            seen.setdefault(macro.path, None)
        return list(seen)


def _parse_macro(inner: str, position: int) -> Macro:
    body = inner.strip()
    if not body:
        raise TemplateSyntaxError(f"Empty macro at position {position}", position)

    match = _MACRO_RE.match(body)
    if not match:
        raise TemplateSyntaxError(
            f"Malformed macro '{{{{{body}}}}}' at position {position}", position
        )

    path = match.group("path")
    has_window = match.group("start") is not None or match.group("end") is not None
    if has_window and path != "history":
        raise TemplateSyntaxError(
            f"Only history accepts a window, got '{path}' at position {position}",
            position,
        )
    if match.group("flag") and not has_window:
        raise TemplateSyntaxError(
            f"'from_end' requires a history window at position {position}", position
        )

    window = None
    if has_window:
        start = match.group("start")
        end = match.group("end")
        window = HistoryWindow(
            start=int(start) if start else None,
            end=int(end) if end else None,
            count_from_end=bool(match.group("flag")),
        )
    return Macro(path=path, position=position, window=window)


@lru_cache(maxsize=1024)
def parse_template(source: str) -> Template:
    """Parse source into a Template. Raises TemplateSyntaxError."""
    nodes: list[Text | Macro] = []
    pos = 0
    while True:
        open_at = source.find(OPEN, pos)
        if open_at == -1:
            if pos < len(source):
                nodes.append(Text(source[pos:]))
            break

        close_at = source.find(CLOSE, open_at + len(OPEN))
        if close_at == -1:
            raise TemplateSyntaxError(f"Unclosed '{{{{' at position {open_at}", open_at)

        inner = source[open_at + len(OPEN) : close_at]
        if OPEN in inner:
            nested_at = open_at + len(OPEN) + inner.index(OPEN)
            raise TemplateSyntaxError(f"Nested '{{{{' at position {nested_at}", nested_at)

        if open_at > pos:
            nodes.append(Text(source[pos:open_at]))
        nodes.append(_parse_macro(inner, open_at))
        pos = close_at + len(CLOSE)

    return Template(source=source, nodes=tuple(nodes))


def get_variables(source: str) -> list[str]:
    """Every macro path referenced by source, without rendering."""
    return parse_template(source).variables
