"""
Core module - DOM tree model, query matching, serialization, errors and models.
"""
from browser_mcp.core.models import ActionResult, EvaluationResult, Screenshot
from browser_mcp.core.errors import (
    BrowserMCPError,
    CDPConnectionError,
    CDPTimeoutError,
    CDPProtocolError,
    CDPSessionError,
    CDPTargetError,
    ElementNotFoundError,
    ScriptExecutionError,
)
from browser_mcp.core.tree import DomNode, document_origin, find_node
from browser_mcp.core.matcher import QueryMatcher, contains_query
from browser_mcp.core.serialization import TreeSerializer, print_subtree, search_tree, serialize

__all__ = [
    "ActionResult",
    "EvaluationResult",
    "Screenshot",
    "BrowserMCPError",
    "CDPConnectionError",
    "CDPTimeoutError",
    "CDPProtocolError",
    "CDPSessionError",
    "CDPTargetError",
    "ElementNotFoundError",
    "ScriptExecutionError",
    "DomNode",
    "document_origin",
    "find_node",
    "QueryMatcher",
    "contains_query",
    "TreeSerializer",
    "print_subtree",
    "search_tree",
    "serialize",
]
