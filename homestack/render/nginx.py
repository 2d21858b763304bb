"""Structured nginx configuration documents.

Configs are assembled as a tree of directives and blocks and serialized in
one place, so quoting is handled uniformly instead of by string templates.
"""
import re
from dataclasses import dataclass, field
from typing import List, Sequence, Union

INDENT = "    "

# Arguments made only of these characters are emitted bare
_BARE_ARG = re.compile(r"^[A-Za-z0-9_.:/$*\-=~^@]+$")


def quote_arg(value: str) -> str:
    """Quote a directive argument when nginx would otherwise mis-parse it."""
    text = str(value)
    if text and _BARE_ARG.match(text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class Directive:
    """A simple ``name arg1 arg2;`` statement."""

    name: str
    args: Sequence[str] = ()

    def render(self, depth: int = 0) -> List[str]:
        parts = [self.name] + [quote_arg(arg) for arg in self.args]
        return [f"{INDENT * depth}{' '.join(parts)};"]


@dataclass(frozen=True)
class Comment:
    text: str

    def render(self, depth: int = 0) -> List[str]:
        return [f"{INDENT * depth}# {line}".rstrip() for line in self.text.splitlines()]


@dataclass(frozen=True)
class Block:
    """A ``name args { ... }`` block holding directives and nested blocks."""

    name: str
    args: Sequence[str] = ()
    children: Sequence["Node"] = field(default_factory=tuple)

    def render(self, depth: int = 0) -> List[str]:
        head = " ".join([self.name] + [quote_arg(arg) for arg in self.args])
        lines = [f"{INDENT * depth}{head} {{"]
        for child in self.children:
            lines.extend(child.render(depth + 1))
        lines.append(f"{INDENT * depth}}}")
        return lines


@dataclass(frozen=True)
class Blank:
    def render(self, depth: int = 0) -> List[str]:
        return [""]


Node = Union[Directive, Comment, Block, Blank]


def serialize(nodes: Sequence[Node]) -> str:
    """Serialize top-level nodes into configuration text ending in a newline."""
    lines: List[str] = []
    for node in nodes:
        lines.extend(node.render(0))
    return "\n".join(lines) + "\n"
