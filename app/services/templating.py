"""
Small placeholder templating for email subjects and bodies.

Supported markup:
    {{name}}              value of ``name`` (empty when absent)
    {{#name}} ... {{/name}}  block rendered only when ``name`` has a value

Templates are parsed into a node tree once, then rendered against a mapping
of placeholder name -> optional value. Values are HTML-escaped unless the
caller asks for plain text (subjects).
"""
import html
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Union

_TAG = re.compile(r"\{\{\s*([#/]?)\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


class TemplateSyntaxError(ValueError):
    pass


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass
class Section:
    name: str
    children: List["Node"] = field(default_factory=list)


Node = Union[Text, Variable, Section]


def parse_template(source: str) -> List[Node]:
    root: List[Node] = []
    stack: List[Section] = []
    position = 0

    def current() -> List[Node]:
        return stack[-1].children if stack else root

    for match in _TAG.finditer(source):
        if match.start() > position:
            current().append(Text(source[position:match.start()]))
        marker, name = match.group(1), match.group(2)

        if marker == "#":
            section = Section(name)
            current().append(section)
            stack.append(section)
        elif marker == "/":
            if not stack or stack[-1].name != name:
                raise TemplateSyntaxError(f"Unexpected closing block '{name}' at offset {match.start()}")
            stack.pop()
        else:
            current().append(Variable(name))
        position = match.end()

    if position < len(source):
        current().append(Text(source[position:]))
    if stack:
        raise TemplateSyntaxError(f"Block '{stack[-1].name}' is never closed")
    return root


def _has_value(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ""


def _render_nodes(nodes: List[Node], variables: Mapping[str, Optional[str]], escape: bool) -> str:
    parts = []
    for node in nodes:
        if isinstance(node, Text):
            parts.append(node.value)
        elif isinstance(node, Variable):
            value = variables.get(node.name)
            if _has_value(value):
                parts.append(html.escape(str(value)) if escape else str(value))
        elif _has_value(variables.get(node.name)):
            parts.append(_render_nodes(node.children, variables, escape))
    return "".join(parts)


def render_template(source: str, variables: Mapping[str, Optional[str]], *, escape: bool = True) -> str:
    return _render_nodes(parse_template(source), variables, escape)
