"""
DOM serialization utilities for turning a live document tree into an
indented, LLM-friendly pseudo-HTML string.

Two modes share one traversal:

* pruning mode (a matcher is given): subtrees that do not contain the query
  collapse to a ``[...]`` placeholder, and irrelevant branches are dropped;
* full mode (no matcher): every reachable node is rendered.
"""
from __future__ import annotations

from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple, Union

from browser_mcp.core.matcher import QueryMatcher
from browser_mcp.core.tree import DomNode

INDENT_UNIT = "  "
PLACEHOLDER = "[...]"

Matcher = Callable[[DomNode], bool]


def format_open_tag(node: DomNode) -> str:
    """Render ``<tag a="v">`` with attribute values inserted verbatim."""
    attributes = "".join(f' {name}="{value}"' for name, value in node.attributes)
    return f"<{node.tag_name}{attributes}>"


class _CloseTag(NamedTuple):
    """Closing tag of an element whose open tag is ``lines[index]``."""

    index: int
    indent: str
    tag: str


WorkItem = Union[str, Tuple[DomNode, int], _CloseTag]


class TreeSerializer:
    """
    Depth-first serializer for DomNode trees.

    The traversal keeps its own work stack, so documents nested deeper than
    the interpreter recursion limit still render.

    Args:
        matcher: Predicate telling whether a subtree contains the query.
            When None, the serializer runs in full mode.
    """

    def __init__(self, matcher: Optional[Matcher] = None):
        self.matcher = matcher

    @property
    def pruning(self) -> bool:
        return self.matcher is not None

    def serialize(self, node: DomNode, depth: int = 0) -> str:
        if self.pruning and node.is_skipped:
            return ""

        lines: List[str] = []
        stack: List[WorkItem] = [(node, depth)]
        while stack:
            item = stack.pop()
            if isinstance(item, str):
                lines.append(item)
            elif isinstance(item, _CloseTag):
                if len(lines) == item.index + 1:
                    # No child produced a line.
                    lines[item.index] += item.tag
                else:
                    lines.append(f"{item.indent}{item.tag}")
            else:
                element, level = item
                self._render_element(element, level, lines, stack)
        return "\n".join(lines)

    def _render_element(self, node: DomNode, depth: int, lines: List[str], stack: List[WorkItem]) -> None:
        indent = INDENT_UNIT * depth
        open_tag = f"{indent}{format_open_tag(node)}"
        close_tag = f"</{node.tag_name}>"

        if self.pruning and not self.matcher(node):
            if node.is_body and not node.children:
                lines.extend([open_tag, f"{indent}{close_tag}"])
            else:
                lines.extend([open_tag, f"{indent}{INDENT_UNIT}{PLACEHOLDER}", f"{indent}{close_tag}"])
            return

        if node.has_only_text_children:
            lines.append(f"{open_tag}{node.text_content().strip()}{close_tag}")
            return

        lines.append(open_tag)
        stack.append(_CloseTag(len(lines) - 1, indent, close_tag))

        items = self._group_items(node.child_nodes, depth + 1)
        items += self._group_items(node.shadow_children, depth + 1)
        frame_body = node.frame_body
        if frame_body is not None:
            items += self._group_items([frame_body], depth + 1)
        stack.extend(reversed(items))

    def _group_items(self, nodes: Sequence[DomNode], depth: int) -> List[WorkItem]:
        """
        Work items for one group of sibling nodes (light children, shadow
        children or a frame body).

        In pruning mode a non-matching element becomes a placeholder only
        when another element of the same group matches; otherwise it is
        left out entirely.
        """
        indent = INDENT_UNIT * depth
        items: List[WorkItem] = []
        for child in nodes:
            if child.is_text:
                text = child.text.strip()
                if text:
                    items.append(f"{indent}{text}")
                continue
            if not child.is_element:
                continue
            if not self.pruning:
                items.append((child, depth))
                continue
            if child.is_skipped:
                continue
            if self.matcher(child):
                items.append((child, depth))
            elif self._sibling_matches(child, nodes):
                items.append(f"{indent}{PLACEHOLDER}")
        return items

    def _sibling_matches(self, child: DomNode, group: Sequence[DomNode]) -> bool:
        return any(
            self.matcher(sibling)
            for sibling in group
            if sibling is not child and sibling.is_element and not sibling.is_skipped
        )


def serialize(node: DomNode, query: Optional[str] = None, depth: int = 0) -> str:
    """
    Serialize ``node`` as indented pseudo-HTML.

    Args:
        node: Element to render.
        query: Search query selecting pruning mode, or None for full mode.
        depth: Indentation level of ``node`` (two spaces per level).

    Returns:
        The rendered text.
    """
    matcher = QueryMatcher(query) if query is not None else None
    return TreeSerializer(matcher).serialize(node, depth)


def search_tree(body: Optional[DomNode], query: str) -> str:
    """Pruned rendering of a document body; empty when there is no body."""
    if body is None:
        return ""
    return serialize(body, query)


def print_subtree(element: DomNode) -> str:
    """Full rendering of ``element`` and everything reachable from it."""
    return serialize(element)
