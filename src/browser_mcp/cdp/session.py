"""
CDP Session Management - Keeps track of targets and attached sessions.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

logger = logging.getLogger("browser_mcp")


class SessionStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCONNECTED = "disconnected"


@dataclass
class TargetInfo:
    """Information about a CDP target."""
    target_id: str
    type: str
    url: str
    title: str
    session_id: Optional[str] = None
    browser_context_id: Optional[str] = None


@dataclass
class SessionInfo:
    """Information about a CDP session."""
    session_id: str
    target_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    domains_enabled: Set[str] = field(default_factory=set)
    created_at: float = field(default_factory=time.time)


class SessionManager:
    """Registry of CDP sessions and targets for one browser connection."""

    def __init__(self):
        self.sessions: Dict[str, SessionInfo] = {}
        self.targets: Dict[str, TargetInfo] = {}
        self.active_session_id: Optional[str] = None

    def add_session(self, session_id: str, target_id: str) -> SessionInfo:
        """Add a new session to the registry."""
        session_info = SessionInfo(session_id=session_id, target_id=target_id)
        self.sessions[session_id] = session_info

        if target_id in self.targets:
            self.targets[target_id].session_id = session_id

        return session_info

    def add_target(self, target_id: str, type: str, url: str, title: str,
                   browser_context_id: Optional[str] = None) -> TargetInfo:
        """Add or refresh a target in the registry, keeping its session link."""
        existing = self.targets.get(target_id)
        target_info = TargetInfo(
            target_id=target_id,
            type=type,
            url=url,
            title=title,
            session_id=existing.session_id if existing else None,
            browser_context_id=browser_context_id
        )
        self.targets[target_id] = target_info
        return target_info

    def get_session(self, session_id: str) -> Optional[SessionInfo]:
        return self.sessions.get(session_id)

    def get_target(self, target_id: str) -> Optional[TargetInfo]:
        return self.targets.get(target_id)

    def page_targets(self) -> List[TargetInfo]:
        """All known targets of type ``page``, in discovery order."""
        return [target for target in self.targets.values() if target.type == "page"]

    def set_active_session(self, session_id: str):
        """Set the active session."""
        if session_id not in self.sessions:
            raise ValueError(f"Session {session_id} not found in registry")

        if self.active_session_id and self.active_session_id in self.sessions:
            self.sessions[self.active_session_id].status = SessionStatus.INACTIVE

        self.active_session_id = session_id
        self.sessions[session_id].status = SessionStatus.ACTIVE

    def get_active_session(self) -> Optional[str]:
        return self.active_session_id

    def mark_domain_enabled(self, session_id: str, domain: str):
        session = self.sessions.get(session_id)
        if session:
            session.domains_enabled.add(domain)

    def mark_session_disconnected(self, session_id: str):
        """Mark a session as disconnected; the active pointer is kept for recovery."""
        session = self.sessions.get(session_id)
        if session:
            session.status = SessionStatus.DISCONNECTED

    def remove_session(self, session_id: str) -> None:
        """
        Remove a session from the registry.

        Also updates the associated target to remove the session reference.
        """
        if session_id not in self.sessions:
            return

        session = self.sessions.pop(session_id)

        if session.target_id and session.target_id in self.targets:
            self.targets[session.target_id].session_id = None

        if self.active_session_id == session_id:
            self.active_session_id = None

        logger.debug(f"Removed session {session_id}")
