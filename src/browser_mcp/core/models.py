"""
Browser MCP Models - Data classes for action results and captured artifacts.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class ActionResult:
    """
    Result of a browser action (navigate, click, select, ...).

    Used to communicate action outcomes back to the tool layer.
    """

    success: bool
    action_type: str
    selector: Optional[str] = None
    error_message: Optional[str] = None
    extracted_content: Optional[str] = None

    @classmethod
    def ok(
        cls,
        action_type: str,
        selector: Optional[str] = None,
        extracted_content: Optional[str] = None,
    ) -> ActionResult:
        """Create a successful action result."""
        return cls(
            success=True,
            action_type=action_type,
            selector=selector,
            extracted_content=extracted_content,
        )

    @classmethod
    def error(
        cls,
        action_type: str,
        message: str,
        selector: Optional[str] = None,
    ) -> ActionResult:
        """Create a failed action result."""
        return cls(
            success=False,
            action_type=action_type,
            selector=selector,
            error_message=message,
        )

    def to_message(self) -> str:
        """Format the result as a single log-friendly line."""
        target = f" {self.selector}" if self.selector else ""
        if not self.success:
            return f"✗ {self.action_type}{target} failed: {self.error_message}"
        if self.extracted_content:
            return f"✓ {self.action_type}{target}: {self.extracted_content}"
        return f"✓ {self.action_type}{target}"


@dataclass(frozen=True)
class Screenshot:
    """A captured PNG screenshot, kept by name for later retrieval."""

    name: str
    data_base64: str
    width: int
    height: int
    mime_type: str = "image/png"

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data_base64}"


@dataclass
class EvaluationResult:
    """Value returned by a page script plus the console output it produced."""

    value: Any = None
    console_output: List[str] = field(default_factory=list)

    def to_text(self) -> str:
        return (
            f"Execution result:\n{json.dumps(self.value, indent=2)}\n\n"
            f"Console output:\n" + "\n".join(self.console_output)
        )
