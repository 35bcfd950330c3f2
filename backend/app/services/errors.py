from __future__ import annotations


class ResearchError(Exception):
    """Base class for errors raised by the research services."""


class StoreNotConfiguredError(ResearchError):
    """No reachable persistence backend (DATABASE_URL is unset)."""

    def __init__(self, message: str = "Database not configured. Set the DATABASE_URL environment variable."):
        super().__init__(message)


class SessionNotFoundError(ResearchError):
    def __init__(self, session_id: str):
        super().__init__(f"Research session {session_id} not found")
        self.session_id = session_id


class InvalidResearchRequest(ResearchError, ValueError):
    """Rejected input; raised before any state is written."""


class InvalidStateTransition(ResearchError):
    def __init__(self, session_id: str, current: str, target: str):
        super().__init__(
            f"Research session {session_id} cannot move from {current} to {target}"
        )
        self.session_id = session_id
        self.current = current
        self.target = target
