"""
Tests for the MCP server glue (content conversion, browser state, resources).

Run with: pytest tests/test_server.py -v
"""
import base64

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ImageContent, TextContent

from browser_mcp import server
from browser_mcp.browser import Browser, BrowserConfig
from browser_mcp.core.models import ActionResult, Screenshot
from browser_mcp.tools import ToolExecutionResult, image_content, text_content


def make_ctx(state):
    ctx = MagicMock()
    ctx.request_context.lifespan_context = state
    return ctx


def connected_browser():
    browser = MagicMock()
    browser.is_connected = True
    browser.start = AsyncMock()
    browser.stop = AsyncMock()
    return browser


# =============================================================================
# Test Content Conversion
# =============================================================================

class TestToMcpContent:
    """Tests for converting tool results into MCP content."""

    def test_text_and_image(self):
        result = ToolExecutionResult.ok("screenshot", text_content("taken"), image_content("aGVsbG8="))

        blocks = server.to_mcp_content(result)

        assert isinstance(blocks[0], TextContent)
        assert blocks[0].text == "taken"
        assert isinstance(blocks[1], ImageContent)
        assert blocks[1].data == "aGVsbG8="
        assert blocks[1].mimeType == "image/png"

    def test_error_result_raises_tool_error(self):
        result = ToolExecutionResult.failure("click", "Failed to click #a: gone")

        with pytest.raises(ToolError, match="Failed to click #a: gone"):
            server.to_mcp_content(result)


# =============================================================================
# Test Browser State
# =============================================================================

class TestBrowserState:
    """Tests for the lazily started browser."""

    @pytest.mark.asyncio
    async def test_browser_started_once(self):
        state = server.BrowserState(BrowserConfig(headless=True))
        browser = connected_browser()
        with patch("browser_mcp.server.Browser", return_value=browser) as browser_cls:
            first = await state.get_browser()
            second = await state.get_browser()

        assert first is second is browser
        browser_cls.assert_called_once_with(state.config)
        browser.start.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lost_connection_restarts_browser(self):
        state = server.BrowserState()
        stale = connected_browser()
        stale.is_connected = False
        state.browser = stale
        fresh = connected_browser()
        with patch("browser_mcp.server.Browser", return_value=fresh):
            assert await state.get_browser() is fresh

        stale.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_stops_browser(self):
        state = server.BrowserState()
        browser = connected_browser()
        state.browser = browser

        await state.close()

        browser.stop.assert_awaited_once()
        assert state.browser is None


# =============================================================================
# Test Tools and Resources
# =============================================================================

class TestServerTools:
    """Tests for tool functions registered on the server."""

    @pytest.mark.asyncio
    async def test_click_tool(self):
        state = server.BrowserState()
        browser = connected_browser()
        browser.click = AsyncMock(return_value=ActionResult.ok("click", selector="#a"))
        state.browser = browser

        blocks = await server.click("#a", make_ctx(state))

        assert [block.text for block in blocks] == ["Clicked: #a"]

    @pytest.mark.asyncio
    async def test_screenshot_tool_notifies_resource_change(self):
        state = server.BrowserState()
        browser = connected_browser()
        browser.screenshot = AsyncMock(return_value=Screenshot("home", "aGVsbG8=", 1280, 720))
        state.browser = browser
        ctx = make_ctx(state)
        ctx.session.send_resource_list_changed = AsyncMock()

        blocks = await server.screenshot(ctx, "home")

        assert blocks[0].text == "Screenshot 'home' taken at 1280x720"
        assert isinstance(blocks[1], ImageContent)
        ctx.session.send_resource_list_changed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_browser_start_failure_is_tool_error(self):
        state = server.BrowserState()
        with patch.object(state, "get_browser", AsyncMock(side_effect=RuntimeError("no chrome"))):
            with pytest.raises(ToolError, match="Failed to start browser: no chrome"):
                await server.search_html("x", make_ctx(state))


class TestResources:
    """Tests for the console and screenshot resources."""

    @pytest.mark.asyncio
    async def test_console_logs(self):
        state = server.BrowserState()
        state.browser = connected_browser()
        state.browser.console_logs = ["[log] one", "[error] two"]
        with patch.object(server.mcp, "get_context", return_value=make_ctx(state)):
            assert await server.console_logs() == "[log] one\n[error] two"

    @pytest.mark.asyncio
    async def test_console_logs_before_browser_start(self):
        with patch.object(server.mcp, "get_context", return_value=make_ctx(server.BrowserState())):
            assert await server.console_logs() == ""

    @pytest.mark.asyncio
    async def test_screenshot_bytes(self):
        state = server.BrowserState()
        state.browser = connected_browser()
        shot = Screenshot("home", base64.b64encode(b"\x89PNG").decode(), 1280, 720)
        state.browser.get_screenshot = MagicMock(return_value=shot)
        with patch.object(server.mcp, "get_context", return_value=make_ctx(state)):
            assert await server.screenshot_resource("home") == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_unknown_screenshot(self):
        state = server.BrowserState()
        state.browser = connected_browser()
        state.browser.get_screenshot = MagicMock(return_value=None)
        with patch.object(server.mcp, "get_context", return_value=make_ctx(state)):
            with pytest.raises(ValueError, match="Resource not found: screenshot://nope"):
                await server.screenshot_resource("nope")

    @pytest.mark.asyncio
    async def test_screenshot_name_is_unquoted(self):
        state = server.BrowserState()
        state.browser = connected_browser()
        shot = Screenshot("my shot", base64.b64encode(b"\x89PNG").decode(), 1280, 720)
        state.browser.get_screenshot = MagicMock(return_value=shot)
        with patch.object(server.mcp, "get_context", return_value=make_ctx(state)):
            assert await server.screenshot_resource("my%20shot") == b"\x89PNG"

        state.browser.get_screenshot.assert_called_once_with("my shot")


class TestResourceList:
    """Tests for listing console and screenshot resources."""

    @pytest.mark.asyncio
    async def test_only_console_before_browser_start(self):
        with patch.object(server.mcp, "get_context", return_value=make_ctx(server.BrowserState())):
            resources = await server.mcp.list_resources()

        assert [str(resource.uri) for resource in resources] == ["console://logs"]

    @pytest.mark.asyncio
    async def test_taken_screenshot_is_listed(self):
        state = server.BrowserState()
        browser = Browser()
        browser._client = MagicMock()
        browser._client.set_viewport = AsyncMock()
        browser._client.capture_screenshot = AsyncMock(return_value="aGVsbG8=")
        state.browser = browser
        ctx = make_ctx(state)
        ctx.session.send_resource_list_changed = AsyncMock()

        await server.screenshot(ctx, "home")
        with patch.object(server.mcp, "get_context", return_value=ctx):
            resources = await server.mcp.list_resources()

        listed = {str(resource.uri): resource for resource in resources}
        assert set(listed) == {"console://logs", "screenshot://home"}
        assert listed["screenshot://home"].name == "Screenshot: home"
        assert listed["screenshot://home"].mimeType == "image/png"
        ctx.session.send_resource_list_changed.assert_awaited_once()

    def test_screenshot_uri_escapes_name(self):
        assert server.screenshot_uri("home") == "screenshot://home"
        assert server.screenshot_uri("my shot/1") == "screenshot://my%20shot%2F1"
