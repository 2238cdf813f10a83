"""
Query matching - Decides whether a DOM subtree contains a search query.

A subtree matches when the element's own text content or any attribute value
contains the query (case-insensitive), or when any reachable descendant does:
open shadow root children, an accessible frame document body, or ordinary
child elements. ``script``, ``style`` and ``svg`` subtrees never match.
"""
from __future__ import annotations

from typing import Dict, List, Tuple

from browser_mcp.core.tree import SKIPPED_TAGS, DomNode


class QueryMatcher:
    """
    Case-insensitive substring matcher over a DOM tree.

    Results are memoized per node for the lifetime of the matcher, which is
    valid as long as the tree is not mutated during a single search.
    """

    def __init__(self, query: str):
        self.query = query
        self._needle = query.lower()
        self._cache: Dict[DomNode, bool] = {}

    def __call__(self, node: DomNode) -> bool:
        return self.contains(node)

    def matches_self(self, node: DomNode) -> bool:
        """Check the element's own text content and attribute values."""
        text = node.text_content(skip_tags=SKIPPED_TAGS)
        if text and self._needle in text.lower():
            return True
        return any(self._needle in value.lower() for _, value in node.attributes)

    @staticmethod
    def reachable(node: DomNode) -> List[DomNode]:
        """Shadow children, then the frame body, then light element children."""
        nodes = [child for child in node.shadow_children if not child.is_skipped]
        frame_body = node.frame_body
        if frame_body is not None:
            nodes.append(frame_body)
        nodes.extend(child for child in node.children if not child.is_skipped)
        return nodes

    def contains(self, node: DomNode) -> bool:
        """
        Check the element and every descendant reachable from it.

        Uses an explicit stack (post-order) so deep documents do not hit
        the interpreter recursion limit.
        """
        cached = self._cache.get(node)
        if cached is not None:
            return cached

        stack: List[Tuple[DomNode, bool]] = [(node, False)]
        while stack:
            current, expanded = stack.pop()
            if expanded:
                self._cache[current] = any(
                    self._cache[child] for child in self.reachable(current)
                )
                continue
            if current in self._cache:
                continue
            if self.matches_self(current):
                self._cache[current] = True
                continue
            stack.append((current, True))
            for child in reversed(self.reachable(current)):
                if child not in self._cache:
                    stack.append((child, False))

        return self._cache[node]


def contains_query(node: DomNode, query: str) -> bool:
    """
    Return True if ``node`` or any reachable descendant contains ``query``.

    Args:
        node: Element to test.
        query: Non-empty search string, compared case-insensitively.
    """
    return QueryMatcher(query).contains(node)
