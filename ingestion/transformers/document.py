"""
Plain-text extraction from Jira rich-text fields.

Jira returns descriptions and comment bodies either as plain strings (REST v2,
wiki markup) or as Atlassian Document Format trees:

    {"type": "doc", "content": [
        {"type": "paragraph", "content": [{"type": "text", "text": "Hello"}]}
    ]}

The tree is parsed into a two-case variant, Text or Container, and reduced
depth-first, joining sibling text with newlines.
"""

from dataclasses import dataclass
from typing import Any, Tuple, Union


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Container:
    children: Tuple["Node", ...] = ()


Node = Union[Text, Container]


def parse_node(raw: Any) -> Node:
    """
    Build a Node from a loosely-structured ADF value.

    A dict carrying ``text`` is a leaf; a dict carrying a ``content`` list is a
    container; anything else is an empty container. Total over any input.
    """
    if isinstance(raw, str):
        return Text(raw)
    if isinstance(raw, dict):
        text = raw.get("text")
        if isinstance(text, str) and text:
            return Text(text)
        content = raw.get("content")
        if isinstance(content, list):
            return Container(tuple(parse_node(child) for child in content))
    return Container()


def join_text(node: Node) -> str:
    if isinstance(node, Text):
        return node.value
    return "\n".join(join_text(child) for child in node.children)


def extract_text(content: Any) -> str:
    """Plain text of a description or comment body; "" for anything unrecognised."""
    if not content:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, dict) and content.get("type") == "doc" and content.get("content"):
        return join_text(parse_node(content))
    return ""
