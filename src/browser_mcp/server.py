"""
MCP Server - Exposes the browser tools and session artifacts over stdio.

Tools delegate to ``execute_tool`` so every failure comes back as an error
result instead of tearing down the server. The browser is started lazily on
the first tool call and restarted if the connection was lost.
"""
import asyncio
import base64
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote, unquote

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ImageContent, Resource, TextContent

from browser_mcp.browser import Browser, BrowserConfig
from browser_mcp.tools import ToolExecutionResult, execute_tool

logger = logging.getLogger("browser_mcp")

SERVER_NAME = "browser-mcp"


class BrowserState:
    """Lazily started browser shared by every tool call of the server."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self.browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    async def get_browser(self) -> Browser:
        async with self._lock:
            if self.browser is not None and not self.browser.is_connected:
                logger.warning("Browser connection lost, restarting")
                await self.browser.stop()
                self.browser = None
            if self.browser is None:
                browser = Browser(self.config)
                await browser.start()
                self.browser = browser
            return self.browser

    async def close(self) -> None:
        async with self._lock:
            if self.browser is not None:
                await self.browser.stop()
                self.browser = None


_config = BrowserConfig()


@asynccontextmanager
async def browser_lifespan(server: FastMCP) -> AsyncIterator[BrowserState]:
    """Manage browser lifecycle."""
    state = BrowserState(_config)
    try:
        yield state
    finally:
        logger.info("Shutting down browser...")
        await state.close()


class BrowserMCP(FastMCP):
    """FastMCP server whose resource list includes the stored screenshots."""

    async def list_resources(self) -> List[Resource]:
        resources = await super().list_resources()
        state = get_browser_state(self.get_context())
        if state.browser is None:
            return resources
        for name in state.browser.screenshots:
            resources.append(Resource(
                uri=screenshot_uri(name),
                name=f"Screenshot: {name}",
                mimeType="image/png",
            ))
        return resources


mcp = BrowserMCP(SERVER_NAME, lifespan=browser_lifespan)


def get_browser_state(ctx: Context) -> BrowserState:
    """Get browser state from context."""
    return ctx.request_context.lifespan_context


def screenshot_uri(name: str) -> str:
    return f"screenshot://{quote(name, safe='')}"


def to_mcp_content(result: ToolExecutionResult) -> List[Union[TextContent, ImageContent]]:
    """Convert a tool result into MCP content blocks, raising on error results."""
    if result.is_error:
        raise ToolError(result.text or result.error or f"{result.tool_name} failed")
    blocks: List[Union[TextContent, ImageContent]] = []
    for part in result.content:
        if part["type"] == "image":
            blocks.append(ImageContent(type="image", data=part["data"], mimeType=part["mimeType"]))
        else:
            blocks.append(TextContent(type="text", text=part["text"]))
    return blocks


async def _run_tool(ctx: Context, name: str, args: Dict[str, Any]):
    state = get_browser_state(ctx)
    try:
        browser = await state.get_browser()
    except Exception as e:
        logger.error(f"Failed to start browser: {e}")
        raise ToolError(f"Failed to start browser: {e}") from e
    result = await execute_tool(browser, name, args)
    if result.is_error:
        logger.warning(f"Tool {name} failed: {result.error}")
    return to_mcp_content(result)


# =============================================================================
# Tools
# =============================================================================

@mcp.tool(name="navigate", description="Navigate to any URL in the browser")
async def navigate(url: str, ctx: Context):
    return await _run_tool(ctx, "navigate", {"url": url})


@mcp.tool(name="screenshot", description="Capture screenshots of the entire page or specific elements")
async def screenshot(ctx: Context, name: str, width: int = 1280, height: int = 720, encoded: bool = False):
    blocks = await _run_tool(ctx, "screenshot", {"name": name, "width": width, "height": height, "encoded": encoded})
    await ctx.session.send_resource_list_changed()
    return blocks


@mcp.tool(name="click", description="Click elements on the page")
async def click(selector: str, ctx: Context):
    return await _run_tool(ctx, "click", {"selector": selector})


@mcp.tool(name="select", description="Select an element with SELECT tag")
async def select(selector: str, value: str, ctx: Context):
    return await _run_tool(ctx, "select", {"selector": selector, "value": value})


@mcp.tool(name="evaluate", description="Execute JavaScript in the browser console")
async def evaluate(script: str, ctx: Context):
    return await _run_tool(ctx, "evaluate", {"script": script})


@mcp.tool(
    name="search_html",
    description="Outputs the HTML of elements that deeply contain the given search query. "
                "Elements that don't contain the given query are omitted using a [...] placeholder.",
)
async def search_html(query: str, ctx: Context):
    return await _run_tool(ctx, "search_html", {"query": query})


@mcp.tool(name="print_element", description="Outputs the full HTML of the given element")
async def print_element(selector: str, ctx: Context):
    return await _run_tool(ctx, "print_element", {"selector": selector})


# =============================================================================
# Resources
# =============================================================================

@mcp.resource("console://logs", name="Browser console logs", mime_type="text/plain")
async def console_logs() -> str:
    """Console messages captured from the page, one per line."""
    state = get_browser_state(mcp.get_context())
    if state.browser is None:
        return ""
    return "\n".join(state.browser.console_logs)


@mcp.resource("screenshot://{name}", name="Screenshot", mime_type="image/png")
async def screenshot_resource(name: str) -> bytes:
    """PNG bytes of a screenshot taken earlier by name."""
    name = unquote(name)
    state = get_browser_state(mcp.get_context())
    shot = state.browser.get_screenshot(name) if state.browser is not None else None
    if shot is None:
        raise ValueError(f"Resource not found: screenshot://{name}")
    return base64.b64decode(shot.data_base64)


def run_server(config: Optional[BrowserConfig] = None) -> None:
    """Run the MCP server over stdio until the client disconnects."""
    global _config
    _config = config or BrowserConfig()
    logger.info("Starting MCP server on stdio")
    mcp.run()
