"""
CDP Module - Chrome DevTools Protocol client, session management and DOM access.
"""
from browser_mcp.cdp.client import CDPClient, get_page_ws_url, setup_logging
from browser_mcp.cdp.session import SessionManager, SessionInfo, SessionStatus, TargetInfo
from browser_mcp.cdp.dom import get_document, print_element, query_selector, search_html

__all__ = [
    "CDPClient",
    "get_page_ws_url",
    "setup_logging",
    "SessionManager",
    "SessionInfo",
    "SessionStatus",
    "TargetInfo",
    "get_document",
    "print_element",
    "query_selector",
    "search_html",
]
