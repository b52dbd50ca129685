"""
Audit trail for locator healing sessions.

Every session lifecycle event (creation, status transitions, applied and
rolled-back selector updates, review decisions) is appended to a daily JSONL
file and mirrored to the ``healing.audit`` logger.
"""

import json
import uuid
import logging
from collections import deque
from datetime import datetime
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Any
from enum import Enum
from pathlib import Path

from .models.healing_models import (
    ClassificationResult,
    HealingSession,
    HealingStatus,
    PipelineRun,
    SelectorUpdate,
)


class AuditEventType(Enum):
    """Types of audit events."""
    HEALING_SESSION_CREATED = "healing_session_created"
    HEALING_STATUS_CHANGED = "healing_status_changed"
    HEALING_SESSION_COMPLETED = "healing_session_completed"
    FAILURE_CLASSIFIED = "failure_classified"
    ADAPTATION_COMPLETED = "adaptation_completed"
    SELECTOR_UPDATE_APPLIED = "selector_update_applied"
    SELECTOR_UPDATE_ROLLED_BACK = "selector_update_rolled_back"
    REVIEW_APPROVED = "review_approved"
    REVIEW_REJECTED = "review_rejected"
    CONFIGURATION_FALLBACK = "configuration_fallback"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class AuditEvent:
    """A single audit event record."""
    event_id: str
    event_type: AuditEventType
    timestamp: datetime
    session_id: Optional[str]
    test_case: Optional[str]
    user_id: Optional[str]
    component: str
    message: str
    details: Dict[str, Any]
    success: Optional[bool] = None
    duration: Optional[float] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['event_type'] = self.event_type.value
        data['timestamp'] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        data = data.copy()
        data['event_type'] = AuditEventType(data['event_type'])
        data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        return cls(**data)


class AuditTrail:
    """Audit trail manager for healing sessions."""

    def __init__(self, storage_path: str = "logs/audit", max_recent_events: int = 1000):
        """
        Args:
            storage_path: Directory for the daily ``audit_YYYY-MM-DD.jsonl`` files
            max_recent_events: Size of the in-memory cache of recent events
        """
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("healing.audit")
        self._recent_events: deque = deque(maxlen=max_recent_events)

    def log_event(self, event_type: AuditEventType, component: str, message: str,
                  session_id: Optional[str] = None, test_case: Optional[str] = None,
                  user_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None,
                  success: Optional[bool] = None, duration: Optional[float] = None,
                  error_message: Optional[str] = None) -> str:
        """Record an audit event and return its id."""
        event = AuditEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=datetime.now(),
            session_id=session_id,
            test_case=test_case,
            user_id=user_id,
            component=component,
            message=message,
            details=details or {},
            success=success,
            duration=duration,
            error_message=error_message
        )

        self._recent_events.append(event)

        self.logger.info(message, extra={
            'session_id': session_id,
            'test_case': test_case,
            'operation': event_type.value,
            'success': success,
            'duration': duration,
            'metadata': {'component': component, 'event_id': event.event_id, **(details or {})}
        })

        self._save_event_to_file(event)
        return event.event_id

    def log_session_created(self, session: HealingSession) -> str:
        return self.log_event(
            event_type=AuditEventType.HEALING_SESSION_CREATED,
            component="orchestrator",
            message=f"Created healing session for step {session.failure_details.failed_step_id}",
            session_id=session.id,
            test_case=session.test_case_id,
            user_id=session.created_by or None,
            details={
                "execution_id": session.execution_id,
                "trigger_type": session.trigger_type.value,
                "original_selector": session.failure_details.original_selector,
                "failure_type": session.failure_details.failure_type.value,
            }
        )

    def log_status_change(self, session: HealingSession, previous: HealingStatus,
                          reason: str = "") -> str:
        return self.log_event(
            event_type=AuditEventType.HEALING_STATUS_CHANGED,
            component="orchestrator",
            message=f"Session moved from {previous.value} to {session.status.value}",
            session_id=session.id,
            test_case=session.test_case_id,
            details={"from": previous.value, "to": session.status.value, "reason": reason}
        )

    def log_session_completed(self, session: HealingSession, duration: float) -> str:
        return self.log_event(
            event_type=AuditEventType.HEALING_SESSION_COMPLETED,
            component="orchestrator",
            message=f"Healing session finished with status: {session.status.value}",
            session_id=session.id,
            test_case=session.test_case_id,
            success=session.status == HealingStatus.COMPLETED,
            duration=duration,
            error_message=session.error_message,
            details={
                "status": session.status.value,
                "attempts_count": len(session.healing_attempts),
                "confidence_score": session.confidence_score,
                "healing_strategy": session.healing_strategy,
                "applied_updates": [u.id for u in session.successful_adaptations],
            }
        )

    def log_classification(self, session_id: str, test_case: str,
                           classification: ClassificationResult, duration: float) -> str:
        return self.log_event(
            event_type=AuditEventType.FAILURE_CLASSIFIED,
            component="classifier",
            message=f"Failure classified as {'healable' if classification.is_healable else 'not healable'}",
            session_id=session_id,
            test_case=test_case,
            success=classification.is_healable,
            duration=duration,
            details=classification.to_dict()
        )

    def log_adaptation(self, session_id: str, test_case: str, run: PipelineRun,
                       duration: float) -> str:
        best = run.best
        return self.log_event(
            event_type=AuditEventType.ADAPTATION_COMPLETED,
            component="engine",
            message=f"Adaptation pipeline produced {best.adaptation_method.value} candidate",
            session_id=session_id,
            test_case=test_case,
            success=best.success,
            duration=duration,
            details={
                "new_selector": best.new_selector,
                "confidence_score": best.confidence_score,
                "strategies_run": run.strategies_run,
                "strategy_errors": {o.strategy: o.error for o in run.outcomes if o.error},
            }
        )

    def log_selector_update_applied(self, update: SelectorUpdate) -> str:
        return self.log_event(
            event_type=AuditEventType.SELECTOR_UPDATE_APPLIED,
            component="updater",
            message=f"Step {update.step_id} locator replaced",
            session_id=update.healing_session_id,
            test_case=update.test_case_id,
            success=True,
            details={
                "update_id": update.id,
                "original_selector": update.original_selector,
                "new_selector": update.new_selector,
                "confidence_score": update.confidence_score,
            }
        )

    def log_selector_update_rolled_back(self, update: SelectorUpdate, reason: str,
                                        success: bool, error_message: Optional[str] = None) -> str:
        return self.log_event(
            event_type=AuditEventType.SELECTOR_UPDATE_ROLLED_BACK,
            component="updater",
            message=f"Rolled back locator of step {update.step_id}",
            session_id=update.healing_session_id,
            test_case=update.test_case_id,
            success=success,
            error_message=error_message,
            details={
                "update_id": update.id,
                "restored_selector": update.rollback_data.original_selector,
                "reason": reason,
            }
        )

    def log_review(self, session: HealingSession, approved: bool, reviewer: str) -> str:
        return self.log_event(
            event_type=AuditEventType.REVIEW_APPROVED if approved else AuditEventType.REVIEW_REJECTED,
            component="orchestrator",
            message=f"Healing {'approved' if approved else 'rejected'} by {reviewer}",
            session_id=session.id,
            test_case=session.test_case_id,
            user_id=reviewer,
            success=approved,
            details={"review_notes": session.review_notes}
        )

    def log_configuration_fallback(self, project_id: str, reason: str) -> str:
        return self.log_event(
            event_type=AuditEventType.CONFIGURATION_FALLBACK,
            component="config_loader",
            message=f"Using default healing configuration for project {project_id}",
            details={"project_id": project_id, "reason": reason}
        )

    def log_error(self, component: str, error_message: str, session_id: Optional[str] = None,
                  test_case: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> str:
        return self.log_event(
            event_type=AuditEventType.ERROR_OCCURRED,
            component=component,
            message=f"Error in {component}: {error_message}",
            session_id=session_id,
            test_case=test_case,
            success=False,
            error_message=error_message,
            details=details or {}
        )

    def get_recent_events(self, limit: int = 100) -> List[AuditEvent]:
        events = list(self._recent_events)
        return events[-limit:] if limit else events

    def get_events_by_session(self, session_id: str) -> List[AuditEvent]:
        """Get all events for a specific healing session, oldest first."""
        return [event for event in self._recent_events if event.session_id == session_id]

    def get_events_by_type(self, event_type: AuditEventType, limit: int = 100) -> List[AuditEvent]:
        events = [event for event in self._recent_events if event.event_type == event_type]
        return events[-limit:] if limit else events

    def load_events(self, day: datetime) -> List[AuditEvent]:
        """Read back the persisted events of one day."""
        file_path = self.storage_path / f"audit_{day.strftime('%Y-%m-%d')}.jsonl"
        if not file_path.exists():
            return []
        with open(file_path, 'r', encoding='utf-8') as f:
            return [AuditEvent.from_dict(json.loads(line)) for line in f if line.strip()]

    def _save_event_to_file(self, event: AuditEvent):
        date_str = event.timestamp.strftime("%Y-%m-%d")
        file_path = self.storage_path / f"audit_{date_str}.jsonl"

        try:
            with open(file_path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(event.to_dict(), default=str) + '\n')
        except OSError as e:
            self.logger.error(f"Failed to save audit event to file: {e}")


# Global audit trail instance
_audit_trail: Optional[AuditTrail] = None


def get_audit_trail() -> AuditTrail:
    """Get the global audit trail instance."""
    global _audit_trail
    if _audit_trail is None:
        from .config import settings
        _audit_trail = AuditTrail(settings.AUDIT_LOG_DIR)
    return _audit_trail


def initialize_audit_trail(storage_path: str = "logs/audit") -> AuditTrail:
    """Initialize the global audit trail."""
    global _audit_trail
    _audit_trail = AuditTrail(storage_path)
    return _audit_trail
