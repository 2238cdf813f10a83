"""
CDP Client - Chrome DevTools Protocol WebSocket client for browser control.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
import websockets
from websockets.asyncio.client import connect

from browser_mcp.cdp.session import SessionManager, SessionStatus
from browser_mcp.core.errors import (
    BrowserMCPError,
    CDPConnectionError,
    CDPProtocolError,
    CDPSessionError,
    CDPTargetError,
    CDPTimeoutError,
)

logger = logging.getLogger("browser_mcp")

DEFAULT_DOMAINS = ["DOM", "Page", "Runtime"]

EventListener = Callable[[Dict[str, Any], Optional[str]], None]


def setup_logging(level: int = logging.INFO, debug: bool = False):
    """
    Configure logging for the browser bridge.

    Logs go to stderr, which keeps stdout free for the stdio transport.
    """
    if debug:
        level = logging.DEBUG

    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)


async def get_page_ws_url(host="localhost", port=9222):
    """Get the WebSocket URL for the first page target."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"http://{host}:{port}/json")
            targets = response.json()
            for target in targets:
                if target.get("type") == "page":
                    ws_url = target["webSocketDebuggerUrl"]
                    logger.debug(f"Found page target, ws_url={ws_url}")
                    return ws_url
            raise CDPTargetError(
                f"No page target found at {host}:{port}",
                method="get_page_ws_url"
            )
    except httpx.RequestError as e:
        raise CDPConnectionError(
            f"Failed to connect to Chrome at {host}:{port}",
            method="get_page_ws_url"
        ) from e


class CDPClient:
    """Chrome DevTools Protocol WebSocket client."""

    def __init__(self, ws_url: str, debug: bool = False, command_timeout: float = 30.0):
        self.ws_url = ws_url
        self.message_id = 1
        self.pending_message: Dict[int, asyncio.Future] = {}
        self.ws = None
        self.registry = SessionManager()
        self.debug = debug
        self.command_timeout = command_timeout
        self._listeners: Dict[str, List[EventListener]] = {}
        self._listen_task: Optional[asyncio.Task] = None
        self._retry_config = {
            "max_attempts": 3,
            "initial_delay": 0.1,
            "max_delay": 2.0,
            "backoff_multiplier": 2.0,
        }

    def _now(self) -> float:
        return asyncio.get_running_loop().time()

    def _is_retryable_error(self, error: Exception) -> bool:
        """Check if an error is retryable (transient)."""
        return isinstance(error, (CDPTimeoutError, CDPConnectionError))

    async def _with_retry(
        self,
        operation: Callable[[], Any],
        operation_name: str = "operation",
        session_id: Optional[str] = None,
    ) -> Any:
        """Execute an operation with exponential backoff retry."""
        max_attempts = self._retry_config["max_attempts"]
        max_delay = self._retry_config["max_delay"]
        backoff_multiplier = self._retry_config["backoff_multiplier"]

        delay = self._retry_config["initial_delay"]
        last_error = None

        for attempt in range(1, max_attempts + 1):
            try:
                if self.debug:
                    logger.debug(
                        f"Attempt {attempt}/{max_attempts} for {operation_name}",
                        extra={"session_id": session_id}
                    )
                return await operation()
            except Exception as e:
                last_error = e
                if not self._is_retryable_error(e):
                    logger.warning(
                        f"{operation_name} failed with non-retryable error: {e}",
                        extra={"session_id": session_id, "error_type": type(e).__name__}
                    )
                    raise

                if attempt < max_attempts:
                    logger.warning(
                        f"{operation_name} failed (attempt {attempt}/{max_attempts}): {e}. "
                        f"Retrying in {delay:.2f}s...",
                        extra={"session_id": session_id, "error_type": type(e).__name__}
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_multiplier, max_delay)
                else:
                    logger.error(
                        f"{operation_name} failed after {max_attempts} attempts: {e}",
                        extra={"session_id": session_id, "error_type": type(e).__name__}
                    )

        raise last_error

    async def _ensure_session_active(self, session_id: Optional[str] = None) -> str:
        """Ensure a session is active, attempting recovery if needed."""
        if session_id is None:
            session_id = self.registry.get_active_session()

        if session_id is None:
            raise CDPSessionError("No active session available", method="_ensure_session_active")

        session_info = self.registry.get_session(session_id)
        if session_info is None:
            raise CDPSessionError(
                f"Session {session_id} not found in registry",
                session_id=session_id,
                method="_ensure_session_active"
            )

        if session_info.status == SessionStatus.DISCONNECTED:
            logger.info(
                f"Session {session_id} is disconnected, attempting recovery...",
                extra={"session_id": session_id}
            )
            try:
                return await self._recover_session(session_id)
            except Exception as e:
                logger.error(
                    f"Session recovery failed: {e}",
                    extra={"session_id": session_id, "error_type": type(e).__name__}
                )
                raise CDPSessionError(
                    f"Failed to recover session {session_id}",
                    session_id=session_id,
                    method="_ensure_session_active"
                ) from e

        return session_id

    async def _recover_session(self, old_session_id: str) -> str:
        """Recover a disconnected session by re-attaching to its target."""
        session_info = self.registry.get_session(old_session_id)
        target_id = session_info.target_id

        targets_result = await self._send_internal("Target.getTargets", {}, browser_level=True)
        target_infos = targets_result.get("targetInfos", [])
        if not any(t.get("targetId") == target_id for t in target_infos):
            raise CDPTargetError(
                f"Target {target_id} no longer exists",
                target_id=target_id,
                session_id=old_session_id,
                method="_recover_session"
            )

        new_session_id = await self.attach_to_target(target_id)
        self.registry.remove_session(old_session_id)
        self.registry.add_session(new_session_id, target_id)
        self.registry.set_active_session(new_session_id)
        logger.info(
            "Session recovery successful",
            extra={"session_id": new_session_id, "old_session_id": old_session_id}
        )
        return new_session_id

    async def connect(self):
        """Connect to Chrome via WebSocket and attach to the first page."""
        logger.info(f"Connecting to Chrome via WebSocket: {self.ws_url}")

        try:
            self.ws = await connect(self.ws_url, max_size=None)
            logger.info("WebSocket connection established")
        except Exception as e:
            logger.error(f"Failed to establish WebSocket connection: {e}")
            raise CDPConnectionError(
                f"Failed to connect to Chrome WebSocket: {e}",
                method="connect"
            ) from e

        self._listen_task = asyncio.create_task(self.listen())

        try:
            targets_result = await self._send_internal("Target.getTargets", {}, browser_level=True)
            target_infos = targets_result.get("targetInfos", [])

            logger.debug(f"Found {len(target_infos)} targets")

            for target_info in target_infos:
                self.registry.add_target(
                    target_id=target_info["targetId"],
                    type=target_info.get("type", "unknown"),
                    url=target_info.get("url", ""),
                    title=target_info.get("title", ""),
                    browser_context_id=target_info.get("browserContextId")
                )

            pages = self.registry.page_targets()
            if not pages:
                raise CDPTargetError(
                    "No page target found after connecting",
                    method="connect"
                )

            session_id = await self.attach_to_target(pages[0].target_id)
            self.registry.set_active_session(session_id)
        except BrowserMCPError:
            raise
        except Exception as e:
            logger.error(f"Error during connection setup: {e}", exc_info=True)
            raise CDPConnectionError(
                f"Failed to complete connection setup: {e}",
                method="connect"
            ) from e

    async def attach_to_target(self, target_id: str) -> str:
        """Attach to a target, enable the default domains and return the session ID."""
        try:
            res = await self._send_internal("Target.attachToTarget", {
                "targetId": target_id,
                "flatten": True
            }, browser_level=True)
        except BrowserMCPError:
            raise
        except Exception as e:
            raise CDPTargetError(
                f"Failed to attach to target {target_id}: {e}",
                target_id=target_id,
                method="attach_to_target"
            ) from e

        session_id = res["sessionId"]
        self.registry.add_session(session_id, target_id)
        logger.info(
            "Attached to target",
            extra={"session_id": session_id, "target_id": target_id}
        )

        for domain in DEFAULT_DOMAINS:
            await self._send_internal(f"{domain}.enable", {}, session_id=session_id)
            self.registry.mark_domain_enabled(session_id, domain)
        return session_id

    async def send(self, method, params=None, session_id: Optional[str] = None, use_retry: bool = True):
        """Send a CDP command to a page session and wait for the response."""
        async def operation():
            resolved = await self._ensure_session_active(session_id)
            return await self._send_internal(method, params, session_id=resolved)

        if use_retry:
            return await self._with_retry(
                operation,
                operation_name=f"CDP.send({method})",
                session_id=session_id,
            )
        return await operation()

    async def _send_internal(self, method, params=None, session_id: Optional[str] = None,
                             browser_level: bool = False):
        """
        Send one command without retry.

        ``browser_level`` commands (Target domain) carry no session ID.
        """
        if not self.ws:
            raise CDPConnectionError(
                "WebSocket connection not established",
                session_id=session_id,
                method=method,
            )

        self.message_id += 1
        msg_id = self.message_id
        future = asyncio.get_running_loop().create_future()
        self.pending_message[msg_id] = future

        message = {"id": msg_id, "method": method, "params": params or {}}
        if session_id is not None and not browser_level:
            message["sessionId"] = session_id

        start_time = self._now()

        if self.debug:
            logger.debug(
                f"CDP command: {method}",
                extra={
                    "method": method,
                    "params": params,
                    "session_id": session_id,
                    "message_id": msg_id,
                }
            )

        try:
            await self.ws.send(json.dumps(message))
            result = await asyncio.wait_for(future, timeout=self.command_timeout)

            if self.debug:
                duration = self._now() - start_time
                logger.debug(
                    f"CDP response: {method} (duration={duration:.3f}s)",
                    extra={
                        "method": method,
                        "session_id": session_id,
                        "message_id": msg_id,
                        "duration_ms": duration * 1000,
                    }
                )

            return result
        except asyncio.TimeoutError as e:
            duration = self._now() - start_time
            logger.error(
                f"CDP command timeout: {method} after {duration:.3f}s",
                extra={"method": method, "session_id": session_id, "message_id": msg_id}
            )
            raise CDPTimeoutError(
                f"CDP command {method} timed out after {duration:.3f}s",
                timeout=duration,
                session_id=session_id,
                method=method,
            ) from e
        except BrowserMCPError:
            raise
        except Exception as e:
            logger.error(
                f"CDP command error: {method} - {e}",
                extra={
                    "method": method,
                    "session_id": session_id,
                    "message_id": msg_id,
                    "error_type": type(e).__name__,
                }
            )
            raise CDPConnectionError(
                f"CDP command {method} failed: {e}",
                session_id=session_id,
                method=method,
            ) from e
        finally:
            self.pending_message.pop(msg_id, None)

    # =========================================================================
    # Events
    # =========================================================================

    def add_event_listener(self, method: str, listener: EventListener) -> None:
        """Register ``listener(params, session_id)`` for a CDP event."""
        self._listeners.setdefault(method, []).append(listener)

    def _handle_event(self, data: dict):
        """Update the target registry and fan the event out to listeners."""
        method = data.get("method", "")
        params = data.get("params", {})
        session_id = data.get("sessionId")

        if self.debug:
            logger.debug(
                f"CDP event: {method}",
                extra={"method": method, "session_id": session_id}
            )

        if method == "Target.detachedFromTarget":
            detached_id = params.get("sessionId")
            if detached_id:
                logger.info("Target detached from session", extra={"session_id": detached_id})
                self.registry.mark_session_disconnected(detached_id)

        elif method == "Target.targetDestroyed":
            target = self.registry.get_target(params.get("targetId", ""))
            if target and target.session_id:
                logger.info(
                    "Target destroyed",
                    extra={"target_id": target.target_id, "session_id": target.session_id}
                )
                self.registry.mark_session_disconnected(target.session_id)

        for listener in list(self._listeners.get(method, [])):
            try:
                listener(params, session_id)
            except Exception:
                logger.warning(f"Event listener for {method} failed", exc_info=True)

    async def listen(self):
        """Listen for CDP responses and events."""
        try:
            while self.ws:
                raw = await self.ws.recv()
                data = json.loads(raw)

                if "id" in data and data["id"] in self.pending_message:
                    future = self.pending_message.pop(data["id"])
                    if future.done():
                        continue
                    if "error" in data:
                        error_data = data["error"]
                        error_code = error_data.get("code")
                        error_message = error_data.get("message", "Unknown CDP error")

                        logger.error(
                            f"CDP protocol error: {error_message}",
                            extra={
                                "error_code": error_code,
                                "error_data": error_data,
                                "message_id": data["id"],
                            }
                        )

                        future.set_exception(CDPProtocolError(
                            f"CDP Error: {error_message}",
                            code=error_code,
                            cdp_error=error_data,
                        ))
                    else:
                        future.set_result(data.get("result", {}))
                elif "method" in data:
                    self._handle_event(data)

        except websockets.exceptions.ConnectionClosed:
            logger.error("WebSocket connection closed", exc_info=True)
            self._fail_pending(CDPConnectionError("WebSocket connection closed", method="listen"))
        except Exception as e:
            logger.error(f"Error in listen loop: {e}", exc_info=True)
            self._fail_pending(CDPConnectionError(
                f"Unexpected error in listen loop: {e}",
                method="listen"
            ))
        finally:
            # Nothing reads responses once the loop ends, so the socket is unusable.
            ws, self.ws = self.ws, None
            if ws is not None:
                try:
                    await ws.close()
                except Exception as e:
                    logger.debug(f"Error closing WebSocket: {e}")

    def _fail_pending(self, error: BrowserMCPError) -> None:
        for future in self.pending_message.values():
            if not future.done():
                future.set_exception(error)
        self.pending_message.clear()

    # =========================================================================
    # Page helpers
    # =========================================================================

    async def evaluate(self, expression: str, *, await_promise: bool = True,
                       session_id: Optional[str] = None) -> Dict[str, Any]:
        """Run ``Runtime.evaluate`` returning the value by JSON."""
        return await self.send(
            "Runtime.evaluate",
            {
                "expression": expression,
                "returnByValue": True,
                "awaitPromise": await_promise,
            },
            session_id=session_id,
        )

    async def get_ready_state(self, *, session_id: Optional[str] = None) -> str:
        result = await self.evaluate("document.readyState", await_promise=False, session_id=session_id)
        ready_state = result.get("result", {}).get("value")
        return ready_state if isinstance(ready_state, str) else ""

    async def wait_for_dom_content_loaded(
        self,
        *,
        timeout: float = 15.0,
        check_interval: float = 0.1,
        session_id: Optional[str] = None,
    ) -> None:
        """Poll ``document.readyState`` until the DOM is parsed."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                if await self.get_ready_state(session_id=session_id) in ("interactive", "complete"):
                    logger.debug("DOM content loaded", extra={"session_id": session_id})
                    return
            except CDPProtocolError:
                # Execution context is swapped while a navigation commits.
                pass

            if loop.time() >= deadline:
                raise CDPTimeoutError(
                    f"Page load timed out after {timeout} seconds",
                    timeout=timeout,
                    session_id=session_id,
                    method="wait_for_dom_content_loaded",
                )
            await asyncio.sleep(check_interval)

    async def navigate(
        self,
        url: str,
        *,
        wait_for_load: bool = True,
        timeout: float = 15.0,
        session_id: Optional[str] = None,
    ) -> None:
        """
        Navigate to a URL and optionally wait for the DOM to be ready.

        Raises:
            CDPProtocolError: If the browser reports a navigation error.
        """
        result = await self.send("Page.navigate", {"url": url}, session_id=session_id)

        error_text = result.get("errorText")
        if error_text:
            raise CDPProtocolError(
                f"Navigation to {url} failed: {error_text}",
                session_id=session_id,
                method="Page.navigate",
            )

        if wait_for_load:
            await self.wait_for_dom_content_loaded(timeout=timeout, session_id=session_id)

    async def set_viewport(self, width: int, height: int, *, session_id: Optional[str] = None) -> None:
        await self.send(
            "Emulation.setDeviceMetricsOverride",
            {"width": width, "height": height, "deviceScaleFactor": 1, "mobile": False},
            session_id=session_id,
        )

    async def capture_screenshot(
        self,
        *,
        format: str = "png",
        quality: int = 80,
        full_page: bool = False,
        session_id: Optional[str] = None,
    ) -> str:
        """
        Capture a screenshot of the current page.

        Returns:
            Base64-encoded image string.
        """
        params: Dict[str, Any] = {"format": format}
        if format == "jpeg":
            params["quality"] = quality
        if full_page:
            params["captureBeyondViewport"] = True

        result = await self.send("Page.captureScreenshot", params, session_id=session_id)
        return result.get("data", "")

    async def dispatch_click(
        self,
        x: float,
        y: float,
        *,
        button: str = "left",
        click_count: int = 1,
        delay_between_events: float = 0.05,
        session_id: Optional[str] = None,
    ) -> None:
        """Move the mouse to ``(x, y)`` and press and release ``button`` there."""
        await self.send(
            "Input.dispatchMouseEvent",
            {"type": "mouseMoved", "x": x, "y": y, "modifiers": 0},
            session_id=session_id,
        )
        for event_type in ("mousePressed", "mouseReleased"):
            await self.send(
                "Input.dispatchMouseEvent",
                {
                    "type": event_type,
                    "x": x,
                    "y": y,
                    "button": button,
                    "clickCount": click_count,
                    "modifiers": 0,
                },
                session_id=session_id,
            )
            if event_type == "mousePressed" and delay_between_events > 0:
                await asyncio.sleep(delay_between_events)

    async def close(self) -> None:
        """Close the WebSocket connection gracefully."""
        if self.ws:
            try:
                await self.ws.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")
            finally:
                self.ws = None
        if self._listen_task is not None:
            self._listen_task.cancel()
            self._listen_task = None
