"""
Browser MCP - An MCP server giving AI assistants a live Chrome tab over CDP.

This package provides the browser tools (navigate, screenshot, click, select,
evaluate) and two DOM inspection tools tuned for reading large pages:
search_html prunes the tree down to the parts containing a query, and
print_element prints one element in full.

Usage:
    from browser_mcp import Browser, BrowserConfig

    async with Browser(BrowserConfig(headless=True)) as browser:
        await browser.navigate("https://example.com")
        print(await browser.search_html("cookies"))

Low-level tool execution:
    tools = get_tool_schemas(format="mcp")
    result = await execute_tool(browser, "click", {"selector": "#accept"})

Pure tree functions:
    from browser_mcp import DomNode, search_tree, print_subtree
"""
from browser_mcp.browser import Browser, BrowserConfig
from browser_mcp.core.models import ActionResult, EvaluationResult, Screenshot
from browser_mcp.core.tree import DomNode, document_origin, find_node
from browser_mcp.core.matcher import QueryMatcher, contains_query
from browser_mcp.core.serialization import TreeSerializer, print_subtree, search_tree, serialize
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
from browser_mcp.tools import (
    TOOL_DEFINITIONS,
    ToolExecutionResult,
    execute_tool,
    get_tool_schemas,
)

__version__ = "0.1.0"

__all__ = [
    # Main API
    "Browser",
    "BrowserConfig",
    # Results
    "ActionResult",
    "EvaluationResult",
    "Screenshot",
    # Tree search and serialization
    "DomNode",
    "document_origin",
    "find_node",
    "QueryMatcher",
    "contains_query",
    "TreeSerializer",
    "print_subtree",
    "search_tree",
    "serialize",
    # Errors
    "BrowserMCPError",
    "CDPConnectionError",
    "CDPTimeoutError",
    "CDPProtocolError",
    "CDPSessionError",
    "CDPTargetError",
    "ElementNotFoundError",
    "ScriptExecutionError",
    # Tool layer
    "TOOL_DEFINITIONS",
    "ToolExecutionResult",
    "execute_tool",
    "get_tool_schemas",
    # Version
    "__version__",
]
