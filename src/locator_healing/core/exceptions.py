"""Error taxonomy for the locator self-healing system."""

from typing import Optional


class HealingError(Exception):
    """Base class for every error raised by the healing system."""
    pass


class ConfigurationUnavailable(HealingError):
    """Raised when a project's healing configuration cannot be read or is invalid."""

    def __init__(self, project_id: str, reason: str = ""):
        self.project_id = project_id
        self.reason = reason
        super().__init__(f"Healing configuration unavailable for project '{project_id}': {reason}")


class ElementNotFound(HealingError):
    """Raised when a selector resolves to no visible element."""

    def __init__(self, selector: str, reason: str = "Element not found or not visible"):
        self.selector = selector
        super().__init__(f"{reason}: {selector}")


class StrategyExecutionError(HealingError):
    """Raised by a single adaptation strategy; the pipeline skips that strategy."""

    def __init__(self, strategy: str, reason: str):
        self.strategy = strategy
        super().__init__(f"Strategy '{strategy}' failed: {reason}")


class SessionNotFound(HealingError):
    """Raised when no healing session exists for an id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Healing session not found: {session_id}")


class InvalidStateTransition(HealingError):
    """Raised when a session is asked to move along a transition it does not allow."""

    def __init__(self, session_id: str, from_status: str, to_status: str):
        self.session_id = session_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Session {session_id} cannot transition from '{from_status}' to '{to_status}'"
        )


class PersistenceFailure(HealingError):
    """Raised when the store rejects a write."""

    def __init__(self, collection: str, record_id: Optional[str], reason: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"Failed to persist {collection}/{record_id}: {reason}")


class WorkflowFailure(HealingError):
    """Unexpected error inside a healing workflow."""

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Healing workflow failed for session {session_id}: {reason}")
