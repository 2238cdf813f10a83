"""
Browser MCP Error Taxonomy - Custom exception classes for browser control.

This module defines a hierarchy of exceptions specific to the browser bridge,
allowing for better error handling, retry logic, and reporting to the caller.
"""
from typing import Optional


class BrowserMCPError(Exception):
    """Base exception for all browser MCP errors."""
    
    def __init__(self, message: str, session_id: Optional[str] = None, 
                 target_id: Optional[str] = None, method: Optional[str] = None,
                 **context):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.target_id = target_id
        self.method = method
        self.context = context
    
    def __str__(self):
        parts = [self.message]
        if self.session_id:
            parts.append(f"session_id={self.session_id}")
        if self.target_id:
            parts.append(f"target_id={self.target_id}")
        if self.method:
            parts.append(f"method={self.method}")
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"context=({context_str})")
        return " | ".join(parts)


class CDPConnectionError(BrowserMCPError):
    """Raised when connection to Chrome/CDP fails or is lost."""
    pass


class CDPTimeoutError(BrowserMCPError):
    """Raised when a CDP operation times out."""
    
    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout = timeout


class CDPProtocolError(BrowserMCPError):
    """Raised when CDP returns an error response."""
    
    def __init__(self, message: str, code: Optional[int] = None, 
                 cdp_error: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.code = code
        self.cdp_error = cdp_error


class CDPSessionError(BrowserMCPError):
    """Raised when session-related operations fail."""
    pass


class CDPTargetError(BrowserMCPError):
    """Raised when target-related operations fail."""
    pass


class ElementNotFoundError(BrowserMCPError):
    """Raised when a CSS selector resolves to no element in the document."""

    def __init__(self, selector: str, **kwargs):
        super().__init__(f"Element not found: {selector}", **kwargs)
        self.selector = selector

    def __str__(self):
        return self.message


class ScriptExecutionError(BrowserMCPError):
    """Raised when a script evaluated in the page throws."""
    
    def __init__(self, message: str, exception_details: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.exception_details = exception_details
