"""
Browser - High-level async interface over a Chrome instance.

This module provides the user-facing API behind the MCP tools. It wraps the
low-level CDP client with selector-based actions and the DOM search/print
operations, and keeps the console log and the named screenshots of the
session.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import tempfile
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from browser_mcp.cdp import dom
from browser_mcp.cdp.client import CDPClient, get_page_ws_url
from browser_mcp.core.errors import (
    BrowserMCPError,
    CDPConnectionError,
    CDPTimeoutError,
    ElementNotFoundError,
    ScriptExecutionError,
)
from browser_mcp.core.models import ActionResult, EvaluationResult, Screenshot

logger = logging.getLogger("browser_mcp")

CONSOLE_CAPTURE_KEY = "__browserMcpConsoleCapture"

INSTALL_CONSOLE_CAPTURE_JS = f"""
(() => {{
  window.{CONSOLE_CAPTURE_KEY} = {{ logs: [], originalConsole: {{ ...console }} }};
  ["log", "info", "warn", "error"].forEach((method) => {{
    console[method] = (...args) => {{
      window.{CONSOLE_CAPTURE_KEY}.logs.push(`[${{method}}] ${{args.join(" ")}}`);
      window.{CONSOLE_CAPTURE_KEY}.originalConsole[method](...args);
    }};
  }});
}})()
"""

RESTORE_CONSOLE_JS = f"""
(() => {{
  const capture = window.{CONSOLE_CAPTURE_KEY};
  if (!capture) return [];
  Object.assign(console, capture.originalConsole);
  delete window.{CONSOLE_CAPTURE_KEY};
  return capture.logs;
}})()
"""

CLEAR_STORAGE_JS = """
function (clearLocal, clearSession) {
  if (clearLocal && typeof localStorage !== "undefined") localStorage.clear();
  if (clearSession && typeof sessionStorage !== "undefined") sessionStorage.clear();
}
"""

SELECT_OPTIONS_JS = """
function (values) {
  if (!(this instanceof HTMLSelectElement)) {
    throw new Error("Element is not a <select> element.");
  }
  const options = Array.from(this.options);
  this.value = undefined;
  for (const option of options) {
    option.selected = values.includes(option.value);
    if (option.selected && !this.multiple) {
      break;
    }
  }
  this.dispatchEvent(new Event("input", { bubbles: true }));
  this.dispatchEvent(new Event("change", { bubbles: true }));
  return options.filter((option) => option.selected).map((option) => option.value);
}
"""


def _default_user_data_dir() -> str:
    """Generate a unique user data directory for process isolation."""
    return os.path.join(tempfile.gettempdir(), f"browser-mcp-chrome-{uuid.uuid4().hex[:8]}")


def _format_console_arg(arg: Dict[str, Any]) -> str:
    if "value" in arg:
        return str(arg["value"])
    return arg.get("description") or arg.get("type", "")


def _exception_message(details: Dict[str, Any]) -> str:
    exception = details.get("exception") or {}
    description = exception.get("description") or details.get("text") or "Unknown error"
    return description.split("\n")[0]


@dataclass
class BrowserConfig:
    """Configuration options for the Browser."""

    headless: bool = False
    viewport_width: int = 1280
    viewport_height: int = 720
    host: str = "localhost"
    port: int = 9222
    page_load_timeout: float = 15.0
    action_timeout: float = 5.0
    command_timeout: float = 30.0
    user_data_dir: str = field(default_factory=_default_user_data_dir)
    debug: bool = False


class Browser:
    """
    High-level browser control interface.

    Provides a clean async context manager for the browser session.
    Handles Chrome lifecycle, CDP connection and session artifacts.

    Usage:
        async with Browser() as browser:
            await browser.navigate("https://example.com")
            print(await browser.search_html("Accept cookies"))
            print(await browser.print_element("#consent-banner"))
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        """
        Initialize the Browser.

        Args:
            config: Browser configuration. Uses defaults if not provided.
        """
        self.config = config or BrowserConfig()
        self._client: Optional[CDPClient] = None
        self._chrome_process: Optional[subprocess.Popen] = None
        self._launched_chrome = False
        self._console_logs: List[str] = []
        self._screenshots: Dict[str, Screenshot] = {}

    async def __aenter__(self) -> Browser:
        """Async context manager entry - connect to browser."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - cleanup resources."""
        await self.stop()

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.ws is not None

    async def start(self) -> None:
        """
        Start the browser session.

        Attempts to connect to an existing Chrome instance first.
        If none is found, launches a new Chrome process.
        """
        try:
            ws_url = await get_page_ws_url(host=self.config.host, port=self.config.port)
            logger.info(f"Connected to existing Chrome at {self.config.host}:{self.config.port}")
        except CDPConnectionError:
            logger.info("No Chrome found, launching new instance...")
            await self._launch_chrome()
            ws_url = await self._wait_for_chrome()

        self._client = CDPClient(
            ws_url,
            debug=self.config.debug,
            command_timeout=self.config.command_timeout,
        )
        try:
            await self._client.connect()
            await self._client.set_viewport(self.config.viewport_width, self.config.viewport_height)
        except Exception:
            await self._client.close()
            self._client = None
            await self._cleanup_chrome_process()
            raise

        self._client.add_event_listener("Runtime.consoleAPICalled", self._on_console_message)
        logger.info("Browser session started")

    async def _wait_for_chrome(self, attempts: int = 10, interval: float = 0.5) -> str:
        """Poll the DevTools endpoint of a freshly launched Chrome."""
        for attempt in range(attempts):
            if self._chrome_process and self._chrome_process.poll() is not None:
                exit_code = self._chrome_process.returncode
                self._chrome_process = None
                self._launched_chrome = False
                raise CDPConnectionError(
                    f"Chrome process exited unexpectedly with code {exit_code}",
                    method="Browser.start"
                )

            await asyncio.sleep(interval)
            try:
                return await get_page_ws_url(host=self.config.host, port=self.config.port)
            except CDPConnectionError:
                if attempt == attempts - 1:
                    await self._cleanup_chrome_process()
                    raise CDPConnectionError(
                        f"Chrome failed to start after {attempts * interval:.0f} seconds",
                        method="Browser.start"
                    )
        raise CDPConnectionError("Chrome did not become reachable", method="Browser.start")

    async def _cleanup_chrome_process(self) -> None:
        """Cleanup Chrome process without blocking the event loop."""
        if self._launched_chrome and self._chrome_process:
            logger.info("Terminating Chrome process...")
            self._chrome_process.terminate()
            try:
                await asyncio.wait_for(
                    asyncio.to_thread(self._chrome_process.wait),
                    timeout=5.0
                )
            except asyncio.TimeoutError:
                self._chrome_process.kill()
                try:
                    await asyncio.wait_for(
                        asyncio.to_thread(self._chrome_process.wait),
                        timeout=2.0
                    )
                except asyncio.TimeoutError:
                    pass
            self._chrome_process = None
            self._launched_chrome = False

    async def stop(self) -> None:
        """Stop the browser session and cleanup resources."""
        if self._client:
            await self._client.close()
            self._client = None

        await self._cleanup_chrome_process()

        logger.info("Browser session stopped")

    async def _launch_chrome(self) -> None:
        """Launch a Chrome process with CDP debugging enabled."""
        chrome_names = [
            "google-chrome",
            "google-chrome-stable",
            "chromium",
            "chromium-browser",
            "chrome",
        ]

        chrome_executable = None
        for name in chrome_names:
            path = shutil.which(name)
            if path:
                chrome_executable = path
                break

        if not chrome_executable:
            fallback_paths = [
                "/usr/bin/google-chrome",
                "/usr/bin/chromium-browser",
                "/usr/bin/chromium",
                "/snap/bin/chromium",
                "/opt/google/chrome/chrome",
                "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
                "/Applications/Chromium.app/Contents/MacOS/Chromium",
            ]
            for path in fallback_paths:
                if os.path.exists(path):
                    chrome_executable = path
                    break

        if not chrome_executable:
            raise CDPConnectionError(
                "Chrome/Chromium not found. Please install Chrome or Chromium.",
                method="Browser._launch_chrome"
            )

        chrome_args = [
            chrome_executable,
            f"--remote-debugging-port={self.config.port}",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-extensions",
            f"--user-data-dir={self.config.user_data_dir}",
            f"--window-size={self.config.viewport_width},{self.config.viewport_height}",
            "about:blank",
        ]

        if self.config.headless:
            chrome_args.extend([
                "--headless=new",
                "--disable-gpu",
            ])

        self._chrome_process = subprocess.Popen(
            chrome_args,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        self._launched_chrome = True
        logger.info(f"Launched Chrome (PID: {self._chrome_process.pid})")

    def _ensure_connected(self) -> CDPClient:
        """Ensure we have an active CDP client."""
        if not self._client:
            raise BrowserMCPError(
                "Browser not connected. Call start() or use async context manager.",
                method="_ensure_connected"
            )
        return self._client

    # =========================================================================
    # Console log and screenshots
    # =========================================================================

    def _on_console_message(self, params: Dict[str, Any], session_id: Optional[str]) -> None:
        text = " ".join(_format_console_arg(arg) for arg in params.get("args", []))
        self._console_logs.append(f"[{params.get('type', 'log')}] {text}")

    @property
    def console_logs(self) -> List[str]:
        """Console messages of the page, oldest first."""
        return list(self._console_logs)

    @property
    def screenshots(self) -> Dict[str, Screenshot]:
        return dict(self._screenshots)

    def get_screenshot(self, name: str) -> Optional[Screenshot]:
        return self._screenshots.get(name)

    # =========================================================================
    # Actions
    # =========================================================================

    async def navigate(self, url: str) -> ActionResult:
        """
        Navigate to a URL and wait until its DOM content is loaded.

        Returns:
            ActionResult indicating success or failure.
        """
        client = self._ensure_connected()
        try:
            await client.navigate(url, timeout=self.config.page_load_timeout)
            return ActionResult.ok("navigate", extracted_content=url)
        except BrowserMCPError as e:
            return ActionResult.error("navigate", str(e))

    async def screenshot(self, name: str, *, width: int = 1280, height: int = 720) -> Screenshot:
        """
        Resize the viewport, capture a PNG and store it under ``name``.

        Raises:
            BrowserMCPError: If Chrome returned no image data.
        """
        client = self._ensure_connected()
        await client.set_viewport(width, height)
        data = await client.capture_screenshot(format="png")
        if not data:
            raise BrowserMCPError("Screenshot failed", method="Page.captureScreenshot")

        shot = Screenshot(name=name, data_base64=data, width=width, height=height)
        self._screenshots[name] = shot
        logger.debug(f"Stored screenshot '{name}' ({width}x{height})")
        return shot

    async def _node_center(self, client: CDPClient, node_id: int) -> Tuple[float, float]:
        """Center of the first non-empty content quad of a node."""
        result = await client.send("DOM.getContentQuads", {"nodeId": node_id})
        for quad in result.get("quads", []):
            xs = quad[0::2]
            ys = quad[1::2]
            if max(xs) - min(xs) > 0 and max(ys) - min(ys) > 0:
                return sum(xs) / 4, sum(ys) / 4
        raise BrowserMCPError(
            "Node is either not visible or not an HTMLElement",
            method="DOM.getContentQuads",
        )

    async def click(self, selector: str) -> ActionResult:
        """
        Click the first element matching a CSS selector.

        Returns:
            ActionResult indicating success or failure.
        """
        client = self._ensure_connected()
        try:
            node_id = await dom.query_selector(client, selector)
            try:
                await client.send("DOM.scrollIntoViewIfNeeded", {"nodeId": node_id})
            except BrowserMCPError as exc:
                logger.debug(
                    "scrollIntoViewIfNeeded failed, continuing with click",
                    extra={"selector": selector, "error_type": type(exc).__name__},
                )
            x, y = await self._node_center(client, node_id)
            await client.dispatch_click(x, y)
            return ActionResult.ok("click", selector=selector)
        except BrowserMCPError as e:
            return ActionResult.error("click", str(e), selector=selector)

    async def wait_for_selector(self, selector: str, *, timeout: Optional[float] = None,
                                check_interval: float = 0.1) -> int:
        """
        Wait until ``selector`` matches an element and return its node ID.

        Raises:
            CDPTimeoutError: If nothing matched before the timeout.
        """
        client = self._ensure_connected()
        timeout = self.config.action_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                return await dom.query_selector(client, selector)
            except ElementNotFoundError:
                if loop.time() >= deadline:
                    raise CDPTimeoutError(
                        f"Waiting for selector `{selector}` failed: {timeout}s exceeded",
                        timeout=timeout,
                        method="wait_for_selector",
                    )
            await asyncio.sleep(check_interval)

    async def select(self, selector: str, value: str) -> ActionResult:
        """
        Select the option with ``value`` in a ``<select>`` element.

        Fires ``input`` and ``change`` events like a user selection would.
        """
        client = self._ensure_connected()
        try:
            node_id = await self.wait_for_selector(selector)
            resolved = await client.send("DOM.resolveNode", {"nodeId": node_id})
            result = await client.send(
                "Runtime.callFunctionOn",
                {
                    "functionDeclaration": SELECT_OPTIONS_JS,
                    "objectId": resolved["object"]["objectId"],
                    "arguments": [{"value": [value]}],
                    "returnByValue": True,
                    "awaitPromise": True,
                },
            )
            details = result.get("exceptionDetails")
            if details:
                return ActionResult.error("select", _exception_message(details), selector=selector)
            selected = result.get("result", {}).get("value") or []
            return ActionResult.ok("select", selector=selector, extracted_content=", ".join(selected))
        except BrowserMCPError as e:
            return ActionResult.error("select", str(e), selector=selector)

    async def evaluate(self, script: str) -> EvaluationResult:
        """
        Evaluate a script in the page and collect what it logged.

        Console methods are wrapped for the duration of the call so that
        output can be attributed to this script.

        Raises:
            ScriptExecutionError: If the script threw.
        """
        client = self._ensure_connected()
        await client.evaluate(INSTALL_CONSOLE_CAPTURE_JS, await_promise=False)
        try:
            result = await client.evaluate(script)
        finally:
            restored = await client.evaluate(RESTORE_CONSOLE_JS, await_promise=False)

        details = result.get("exceptionDetails")
        if details:
            raise ScriptExecutionError(
                _exception_message(details),
                exception_details=details,
                method="Runtime.evaluate",
            )

        return EvaluationResult(
            value=result.get("result", {}).get("value"),
            console_output=list(restored.get("result", {}).get("value") or []),
        )

    # =========================================================================
    # DOM search
    # =========================================================================

    async def search_html(self, query: str) -> str:
        """Pruned pseudo-HTML of the page body for elements containing ``query``."""
        return await dom.search_html(self._ensure_connected(), query)

    async def print_element(self, selector: str) -> str:
        """
        Full pseudo-HTML of the first element matching ``selector``.

        Raises:
            ElementNotFoundError: If the selector matches nothing.
        """
        return await dom.print_element(self._ensure_connected(), selector)

    # =========================================================================
    # Browser data
    # =========================================================================

    async def reset_data(
        self,
        *,
        clear_cookies: bool = True,
        clear_cache: bool = True,
        clear_local_storage: bool = True,
        clear_session_storage: bool = True,
    ) -> None:
        """Clear cookies, HTTP cache and the storages of the current page."""
        client = self._ensure_connected()
        if clear_cookies:
            await client.send("Network.clearBrowserCookies")
        if clear_cache:
            await client.send("Network.clearBrowserCache")
        if clear_local_storage or clear_session_storage:
            await client.evaluate(
                f"({CLEAR_STORAGE_JS})({str(clear_local_storage).lower()}, "
                f"{str(clear_session_storage).lower()})",
                await_promise=False,
            )
        logger.info("Browser data reset")
