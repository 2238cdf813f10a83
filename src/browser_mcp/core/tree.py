"""
DOM tree view - Read-only wrapper over the node payload returned by CDP.

``DOM.getDocument`` with ``pierce=True`` returns the whole document as nested
dictionaries, including shadow roots and in-process frame documents. The
classes here wrap that payload lazily; nothing is copied up front and the
payload is never mutated.
"""
from __future__ import annotations

from functools import cached_property
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import urlparse

ELEMENT_NODE = 1
TEXT_NODE = 3
DOCUMENT_NODE = 9
DOCUMENT_FRAGMENT_NODE = 11

SKIPPED_TAGS = frozenset({"script", "style", "svg"})
FRAME_TAGS = frozenset({"iframe", "frame"})


class _OpaqueOrigin:
    """Unique origin of a data:, file: or sandboxed document; equal only to itself."""

    def __repr__(self) -> str:
        return "<opaque origin>"


def document_origin(url: Optional[str], inherited: Any = None) -> Any:
    """
    Compute the security origin of a document from its URL.

    ``about:blank`` and ``about:srcdoc`` documents inherit the origin of the
    document that created them. Data and file URLs get a fresh opaque origin,
    as Chrome does for local files by default.
    """
    if not url or url.startswith("about:"):
        return inherited if inherited is not None else _OpaqueOrigin()
    if url.startswith("blob:"):
        url = url[len("blob:"):]
    try:
        parsed = urlparse(url)
    except ValueError:
        return _OpaqueOrigin()
    if parsed.scheme == "file" or not parsed.scheme or not parsed.netloc:
        return _OpaqueOrigin()
    return f"{parsed.scheme}://{parsed.netloc}"


class DomNode:
    """
    Immutable view of one CDP ``DOM.Node``.

    Args:
        payload: The node dictionary as returned by CDP.
        origin: Security origin of the document owning this node.
    """

    def __init__(self, payload: Dict[str, Any], origin: Any = None):
        self._payload = payload
        self.origin = origin

    @classmethod
    def from_document(cls, payload: Dict[str, Any]) -> DomNode:
        """Wrap a document payload (the ``root`` of ``DOM.getDocument``)."""
        return cls(payload, document_origin(payload.get("documentURL")))

    def __repr__(self) -> str:
        if self.is_text:
            return f"DomNode(#text {self.text!r:.40})"
        return f"DomNode(<{self.tag_name}>)"

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def payload(self) -> Dict[str, Any]:
        return self._payload

    @property
    def node_id(self) -> int:
        return self._payload.get("nodeId", 0)

    @property
    def node_type(self) -> int:
        return self._payload.get("nodeType", 0)

    @property
    def is_element(self) -> bool:
        return self.node_type == ELEMENT_NODE

    @property
    def is_text(self) -> bool:
        return self.node_type == TEXT_NODE

    @property
    def is_document(self) -> bool:
        return self.node_type == DOCUMENT_NODE

    @cached_property
    def tag_name(self) -> str:
        return (self._payload.get("localName") or self._payload.get("nodeName", "")).lower()

    @property
    def text(self) -> str:
        """Payload of a text node; empty for any other kind of node."""
        if not self.is_text:
            return ""
        return self._payload.get("nodeValue", "")

    @property
    def is_skipped(self) -> bool:
        return self.is_element and self.tag_name in SKIPPED_TAGS

    @property
    def is_frame(self) -> bool:
        return self.is_element and self.tag_name in FRAME_TAGS

    @property
    def is_body(self) -> bool:
        return self.is_element and self.tag_name == "body"

    # ------------------------------------------------------------------
    # Attributes and children
    # ------------------------------------------------------------------

    @cached_property
    def attributes(self) -> List[Tuple[str, str]]:
        """Attribute (name, value) pairs in document order."""
        flat = self._payload.get("attributes", [])
        return [(flat[i], flat[i + 1]) for i in range(0, len(flat) - 1, 2)]

    @cached_property
    def child_nodes(self) -> List[DomNode]:
        return [DomNode(child, self.origin) for child in self._payload.get("children", [])]

    @property
    def children(self) -> List[DomNode]:
        """Element children only, like ``Element.children``."""
        return [child for child in self.child_nodes if child.is_element]

    @cached_property
    def shadow_root(self) -> Optional[DomNode]:
        """
        The open shadow root attached to this element, if any.

        Closed and user-agent shadow roots are reported by CDP but are not
        reachable from page scripts, so they are ignored.
        """
        for root in self._payload.get("shadowRoots", []):
            if root.get("shadowRootType") == "open":
                return DomNode(root, self.origin)
        return None

    @property
    def shadow_children(self) -> List[DomNode]:
        if self.shadow_root is None:
            return []
        return self.shadow_root.children

    # ------------------------------------------------------------------
    # Documents and frames
    # ------------------------------------------------------------------

    @cached_property
    def content_document(self) -> Optional[DomNode]:
        """
        Document loaded in this frame element, or None when not accessible.

        Out-of-process frames carry no ``contentDocument`` at all; in-process
        frames of a different origin are denied the same way a page script
        would be.
        """
        if not self.is_frame:
            return None
        document = self._payload.get("contentDocument")
        if not document:
            return None
        origin = document_origin(document.get("documentURL"), inherited=self.origin)
        if origin != self.origin:
            return None
        return DomNode(document, origin)

    @property
    def frame_body(self) -> Optional[DomNode]:
        document = self.content_document
        return document.body if document is not None else None

    @property
    def document_element(self) -> Optional[DomNode]:
        if not self.is_document:
            return None
        return next(iter(self.children), None)

    @property
    def body(self) -> Optional[DomNode]:
        """The ``<body>`` (or ``<frameset>``) of a document node."""
        html = self.document_element
        if html is None:
            return None
        for child in html.children:
            if child.tag_name in ("body", "frameset"):
                return child
        return None

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def iter_text(self, *, skip_tags: frozenset = frozenset()) -> Iterator[str]:
        """
        Yield the light-DOM text of this subtree in document order.

        Shadow roots and frame documents are not part of text content.
        Subtrees rooted at a tag in ``skip_tags`` are left out.
        """
        stack = [self]
        while stack:
            node = stack.pop()
            if node.is_text:
                yield node.text
                continue
            if node is not self and node.is_element and node.tag_name in skip_tags:
                continue
            stack.extend(reversed(node.child_nodes))

    def text_content(self, *, skip_tags: frozenset = frozenset()) -> str:
        return "".join(self.iter_text(skip_tags=skip_tags))

    @property
    def has_only_text_children(self) -> bool:
        """True when every child node is text and nothing else hangs off the element."""
        if self.shadow_root is not None or self.frame_body is not None:
            return False
        return all(child.is_text for child in self.child_nodes)


def find_node(root: DomNode, node_id: int) -> Optional[DomNode]:
    """
    Locate the view for ``node_id`` inside an already fetched tree.

    Walks light children, shadow roots and accessible frame documents.
    """
    stack = [root]
    while stack:
        node = stack.pop()
        if node.node_id == node_id:
            return node
        if node.content_document is not None:
            stack.append(node.content_document)
        if node.shadow_root is not None:
            stack.append(node.shadow_root)
        stack.extend(reversed(node.child_nodes))
    return None
