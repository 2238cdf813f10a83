"""
Tool Definitions - JSON schemas and executor for tool calling.

This module provides:
1. Tool schemas for MCP, OpenAI and Anthropic style callers
2. A tool executor that maps tool calls to Browser methods and wraps the
   outcome into a content list plus an error flag
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Dict, List, Literal, Optional

from browser_mcp.browser import Browser
from browser_mcp.core.errors import BrowserMCPError


# =============================================================================
# Tool Schemas
# =============================================================================

TOOL_DEFINITIONS = {
    "navigate": {
        "name": "navigate",
        "description": "Navigate to any URL in the browser",
        "parameters": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to navigate to"},
            },
            "required": ["url"],
        },
    },
    "screenshot": {
        "name": "screenshot",
        "description": "Capture screenshots of the entire page or specific elements",
        "parameters": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Name for the screenshot"},
                "width": {"type": "number", "description": "Width in pixels (default: 1280)"},
                "height": {"type": "number", "description": "Height in pixels (default: 720)"},
                "encoded": {
                    "type": "boolean",
                    "description": "If true, capture the screenshot as a base64-encoded data URI "
                                   "(as text) instead of binary image content. Default false.",
                },
            },
            "required": ["name"],
        },
    },
    "click": {
        "name": "click",
        "description": "Click elements on the page",
        "parameters": {
            "type": "object",
            "properties": {
                "selector": {"type": "string", "description": "CSS selector for element to click"},
            },
            "required": ["selector"],
        },
    },
    "select": {
        "name": "select",
        "description": "Select an element with SELECT tag",
        "parameters": {
            "type": "object",
            "properties": {
                "selector": {"type": "string", "description": "CSS selector for element to select"},
                "value": {"type": "string", "description": "Value to select"},
            },
            "required": ["selector", "value"],
        },
    },
    "evaluate": {
        "name": "evaluate",
        "description": "Execute JavaScript in the browser console",
        "parameters": {
            "type": "object",
            "properties": {
                "script": {"type": "string", "description": "JavaScript code to execute"},
            },
            "required": ["script"],
        },
    },
    "search_html": {
        "name": "search_html",
        "description": "Outputs the HTML of elements that deeply contain the given search query. "
                       "Elements that don't contain the given query are omitted using a [...] placeholder.",
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
            },
            "required": ["query"],
        },
    },
    "print_element": {
        "name": "print_element",
        "description": "Outputs the full HTML of the given element",
        "parameters": {
            "type": "object",
            "properties": {
                "selector": {"type": "string", "description": "CSS selector"},
            },
            "required": ["selector"],
        },
    },
}


def get_tool_schemas(
    format: Literal["mcp", "openai", "anthropic"] = "mcp",
    include_tools: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """
    Get tool schemas in the specified format.

    Args:
        format: "mcp" (``inputSchema``), "openai" or "anthropic".
        include_tools: List of tool names to include. If None, includes all tools.

    Returns:
        List of tool schema dictionaries.
    """
    tools_to_include = include_tools or list(TOOL_DEFINITIONS.keys())

    schemas = []
    for name in tools_to_include:
        if name not in TOOL_DEFINITIONS:
            continue

        tool = TOOL_DEFINITIONS[name]

        if format == "mcp":
            schemas.append({
                "name": tool["name"],
                "description": tool["description"],
                "inputSchema": tool["parameters"],
            })
        elif format == "openai":
            schemas.append({
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool["description"],
                    "parameters": tool["parameters"],
                }
            })
        elif format == "anthropic":
            schemas.append({
                "name": tool["name"],
                "description": tool["description"],
                "input_schema": tool["parameters"],
            })

    return schemas


# =============================================================================
# Tool Executor
# =============================================================================

def text_content(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def image_content(data: str, mime_type: str = "image/png") -> Dict[str, Any]:
    return {"type": "image", "data": data, "mimeType": mime_type}


@dataclass
class ToolExecutionResult:
    """Content-and-error-flag envelope returned for every tool call."""

    success: bool
    tool_name: str
    content: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return not self.success

    @classmethod
    def ok(cls, tool_name: str, *content: Dict[str, Any]) -> ToolExecutionResult:
        return cls(True, tool_name, content=list(content))

    @classmethod
    def failure(cls, tool_name: str, message: str) -> ToolExecutionResult:
        return cls(False, tool_name, content=[text_content(message)], error=message)

    @property
    def text(self) -> str:
        """Concatenated text parts of the content."""
        return "\n".join(part["text"] for part in self.content if part.get("type") == "text")

    def to_message(self) -> str:
        """Format for caller consumption."""
        if self.error:
            return f"✗ {self.tool_name} failed: {self.error}"
        return self.text or f"✓ {self.tool_name} executed"


ToolHandler = Callable[[Browser, Dict[str, Any]], Coroutine[Any, Any, ToolExecutionResult]]


def _missing(tool_name: str, *names: str) -> ToolExecutionResult:
    label = "parameter" if len(names) == 1 else "parameters"
    return ToolExecutionResult.failure(tool_name, f"Missing required {label}: {', '.join(names)}")


async def _handle_navigate(browser: Browser, args: Dict[str, Any]) -> ToolExecutionResult:
    url = args.get("url")
    if not url:
        return _missing("navigate", "url")
    result = await browser.navigate(url)
    if not result.success:
        return ToolExecutionResult.failure("navigate", f"Failed to navigate to {url}: {result.error_message}")
    return ToolExecutionResult.ok("navigate", text_content(f"Navigated to {url}"))


async def _handle_screenshot(browser: Browser, args: Dict[str, Any]) -> ToolExecutionResult:
    name = args.get("name")
    if not name:
        return _missing("screenshot", "name")
    width = int(args.get("width") or 1280)
    height = int(args.get("height") or 720)
    encoded = bool(args.get("encoded", False))

    try:
        shot = await browser.screenshot(name, width=width, height=height)
    except BrowserMCPError as e:
        return ToolExecutionResult.failure("screenshot", e.message)

    summary = text_content(f"Screenshot '{name}' taken at {width}x{height}")
    if encoded:
        return ToolExecutionResult.ok("screenshot", summary, text_content(shot.data_uri))
    return ToolExecutionResult.ok("screenshot", summary, image_content(shot.data_base64, shot.mime_type))


async def _handle_click(browser: Browser, args: Dict[str, Any]) -> ToolExecutionResult:
    selector = args.get("selector")
    if not selector:
        return _missing("click", "selector")
    result = await browser.click(selector)
    if not result.success:
        return ToolExecutionResult.failure("click", f"Failed to click {selector}: {result.error_message}")
    return ToolExecutionResult.ok("click", text_content(f"Clicked: {selector}"))


async def _handle_select(browser: Browser, args: Dict[str, Any]) -> ToolExecutionResult:
    selector = args.get("selector")
    value = args.get("value")
    if not selector or value is None:
        return _missing("select", "selector", "value")
    result = await browser.select(selector, value)
    if not result.success:
        return ToolExecutionResult.failure("select", f"Failed to select {selector}: {result.error_message}")
    return ToolExecutionResult.ok("select", text_content(f"Selected {selector} with: {value}"))


async def _handle_evaluate(browser: Browser, args: Dict[str, Any]) -> ToolExecutionResult:
    script = args.get("script")
    if not script:
        return _missing("evaluate", "script")
    try:
        evaluation = await browser.evaluate(script)
    except BrowserMCPError as e:
        return ToolExecutionResult.failure("evaluate", f"Script execution failed: {e.message}")
    return ToolExecutionResult.ok("evaluate", text_content(evaluation.to_text()))


async def _handle_search_html(browser: Browser, args: Dict[str, Any]) -> ToolExecutionResult:
    query = args.get("query")
    if not query:
        return _missing("search_html", "query")
    try:
        html = await browser.search_html(query)
    except BrowserMCPError as e:
        return ToolExecutionResult.failure("search_html", f"Failed to search HTML: {e.message}")
    return ToolExecutionResult.ok("search_html", text_content(html))


async def _handle_print_element(browser: Browser, args: Dict[str, Any]) -> ToolExecutionResult:
    selector = args.get("selector")
    if not selector:
        return _missing("print_element", "selector")
    try:
        html = await browser.print_element(selector)
    except BrowserMCPError as e:
        return ToolExecutionResult.failure("print_element", f"Failed to print element: {e.message}")
    return ToolExecutionResult.ok("print_element", text_content(html))


TOOL_HANDLERS: Dict[str, ToolHandler] = {
    "navigate": _handle_navigate,
    "screenshot": _handle_screenshot,
    "click": _handle_click,
    "select": _handle_select,
    "evaluate": _handle_evaluate,
    "search_html": _handle_search_html,
    "print_element": _handle_print_element,
}


async def execute_tool(
    browser: Browser,
    tool_name: str,
    tool_args: Dict[str, Any],
) -> ToolExecutionResult:
    """
    Execute a tool call against the browser.

    Args:
        browser: Browser instance to execute against.
        tool_name: Name of the tool to execute.
        tool_args: Arguments for the tool.

    Returns:
        ToolExecutionResult with the outcome. Never raises for tool failures.
    """
    try:
        handler = TOOL_HANDLERS.get(tool_name)
        if handler is None:
            return ToolExecutionResult.failure(tool_name, f"Unknown tool: {tool_name}")
        return await handler(browser, tool_args or {})
    except Exception as e:
        return ToolExecutionResult.failure(tool_name, f"{tool_name} failed: {e}")
