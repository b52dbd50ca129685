"""Data models for the locator self-healing system."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional, Any
from enum import Enum


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k in cls.__dataclass_fields__}


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score into [0, 1]."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(1.0, value))


class TriggerType(Enum):
    """What started a healing session."""
    FAILURE_DETECTION = "failure_detection"
    SCHEDULED_CHECK = "scheduled_check"
    MANUAL_TRIGGER = "manual_trigger"


class HealingStatus(Enum):
    """Status of a healing session."""
    PENDING = "pending"
    ANALYZING = "analyzing"
    HEALING = "healing"
    COMPLETED = "completed"
    FAILED = "failed"
    REQUIRES_REVIEW = "requires_review"

    @property
    def is_terminal(self) -> bool:
        return self in (HealingStatus.COMPLETED, HealingStatus.FAILED)


# Allowed session transitions. Everything else is rejected.
ALLOWED_TRANSITIONS: Dict[HealingStatus, frozenset] = {
    HealingStatus.PENDING: frozenset({HealingStatus.ANALYZING, HealingStatus.FAILED}),
    HealingStatus.ANALYZING: frozenset({HealingStatus.HEALING, HealingStatus.FAILED}),
    HealingStatus.HEALING: frozenset({
        HealingStatus.COMPLETED, HealingStatus.FAILED, HealingStatus.REQUIRES_REVIEW
    }),
    HealingStatus.REQUIRES_REVIEW: frozenset({HealingStatus.COMPLETED, HealingStatus.FAILED}),
    HealingStatus.COMPLETED: frozenset(),
    HealingStatus.FAILED: frozenset(),
}


class FailureType(Enum):
    """Categories of test step failures."""
    ELEMENT_NOT_FOUND = "element_not_found"
    TIMEOUT = "timeout"
    ASSERTION_FAILED = "assertion_failed"
    INTERACTION_FAILED = "interaction_failed"


class AdaptationMethod(Enum):
    """Tag of an adaptation result: which strategy produced it."""
    SEMANTIC_MATCHING = "semantic_matching"
    ATTRIBUTE_ADAPTATION = "attribute_adaptation"
    TEXT_MATCHING = "text_matching"
    AI_ANALYSIS = "ai_analysis"
    FAILED = "failed"


class ValidationStatus(Enum):
    """Whether a selector update has been written back to its step."""
    PENDING = "pending"
    VALIDATED = "validated"


# ---------------------------------------------------------------------------
# Collaborator inputs
# ---------------------------------------------------------------------------

@dataclass
class TestExecution:
    """The test run a failed step belongs to."""
    __test__ = False

    id: str
    project_id: str
    test_case_id: str = ""
    initiated_by: str = ""
    baseline_dom_hash: Optional[str] = None


@dataclass
class TestStep:
    """A single step of a test case; `element` holds its locator.

    `element_profile` is the last known profile of the element, captured when
    the step last passed. It stands in for the live profile when the element
    can no longer be found.
    """
    __test__ = False

    id: str
    action: str
    element: str = ""
    description: str = ""
    value: Optional[str] = None
    element_profile: Optional["ElementSemanticProfile"] = None


@dataclass
class StepFailure:
    """What went wrong when the step ran."""
    error_message: str
    failure_type: Optional[FailureType] = None
    screenshot_url: Optional[str] = None
    page_url: str = ""


# ---------------------------------------------------------------------------
# Element profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ElementPosition:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def distance_to(self, other: "ElementPosition") -> float:
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5

    @property
    def is_empty(self) -> bool:
        return self.x == 0 and self.y == 0 and self.width == 0 and self.height == 0


@dataclass(frozen=True)
class VisualCharacteristics:
    computed_styles: Dict[str, str] = field(default_factory=dict)
    is_interactive: bool = False
    accessibility_properties: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ElementContext:
    parent_elements: List[str] = field(default_factory=list)
    sibling_elements: List[str] = field(default_factory=list)
    child_elements: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class InteractionPatterns:
    click_target: bool = False
    form_input: bool = False
    navigation_element: bool = False


@dataclass(frozen=True)
class ElementSemanticProfile:
    """Structural, visual and textual fingerprint of one page element."""
    selector: str
    element_type: str = "unknown"
    semantic_role: str = "unknown"
    text_content: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    position: ElementPosition = field(default_factory=ElementPosition)
    visual_characteristics: VisualCharacteristics = field(default_factory=VisualCharacteristics)
    context: ElementContext = field(default_factory=ElementContext)
    stability_score: float = 0.0
    uniqueness_indicators: List[str] = field(default_factory=list)
    interaction_patterns: InteractionPatterns = field(default_factory=InteractionPatterns)

    @classmethod
    def placeholder(cls, selector: str, action: str = "") -> "ElementSemanticProfile":
        """Minimal profile used when the original element cannot be inspected."""
        action = (action or "").lower()
        return cls(
            selector=selector or "",
            stability_score=0.0,
            interaction_patterns=InteractionPatterns(
                click_target=action == "click",
                form_input=action in ("type", "fill"),
                navigation_element=False,
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selector": self.selector,
            "element_type": self.element_type,
            "semantic_role": self.semantic_role,
            "text_content": self.text_content,
            "attributes": dict(self.attributes),
            "position": {
                "x": self.position.x,
                "y": self.position.y,
                "width": self.position.width,
                "height": self.position.height,
            },
            "visual_characteristics": {
                "computed_styles": dict(self.visual_characteristics.computed_styles),
                "is_interactive": self.visual_characteristics.is_interactive,
                "accessibility_properties": dict(self.visual_characteristics.accessibility_properties),
            },
            "context": {
                "parent_elements": list(self.context.parent_elements),
                "sibling_elements": list(self.context.sibling_elements),
                "child_elements": list(self.context.child_elements),
            },
            "stability_score": self.stability_score,
            "uniqueness_indicators": list(self.uniqueness_indicators),
            "interaction_patterns": {
                "click_target": self.interaction_patterns.click_target,
                "form_input": self.interaction_patterns.form_input,
                "navigation_element": self.interaction_patterns.navigation_element,
            },
        }


# ---------------------------------------------------------------------------
# Adaptation results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResults:
    """Outcome of checking a proposed locator against the live page."""
    element_found: bool = False
    functionality_preserved: bool = False
    interaction_successful: bool = False
    visual_similarity: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "element_found": self.element_found,
            "functionality_preserved": self.functionality_preserved,
            "interaction_successful": self.interaction_successful,
            "visual_similarity": self.visual_similarity,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ValidationResults":
        return cls(**(data or {}))


@dataclass(frozen=True)
class AlternativeSelector:
    selector: str
    confidence: float
    method: str
    reasoning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selector": self.selector,
            "confidence": self.confidence,
            "method": self.method,
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlternativeSelector":
        return cls(**data)


@dataclass(frozen=True)
class RollbackData:
    """Verbatim original locator captured before an adaptation is applied."""
    original_selector: str
    original_context: Dict[str, Any] = field(default_factory=dict)
    adaptation_timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_selector": self.original_selector,
            "original_context": dict(self.original_context),
            "adaptation_timestamp": _iso(self.adaptation_timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RollbackData":
        return cls(
            original_selector=data["original_selector"],
            original_context=data.get("original_context") or {},
            adaptation_timestamp=_parse_datetime(data.get("adaptation_timestamp")) or datetime.now(),
        )


@dataclass
class AdaptationContext:
    """What the pipeline knows about the failed step."""
    test_case_id: str
    step_id: str
    original_selector: str
    error_message: str = ""
    page_url: str = ""
    screenshot_url: Optional[str] = None
    action_type: str = ""
    expected_outcome: str = ""
    semantic_description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_case_id": self.test_case_id,
            "step_id": self.step_id,
            "original_selector": self.original_selector,
            "failure_context": {
                "error_message": self.error_message,
                "page_url": self.page_url,
                "screenshot_url": self.screenshot_url,
            },
            "user_intent": {
                "action_type": self.action_type,
                "expected_outcome": self.expected_outcome,
                "semantic_description": self.semantic_description,
            },
        }


@dataclass(frozen=True)
class AdaptationResult:
    """Replacement locator proposed by one strategy.

    `adaptation_method` tags which strategy produced the result; the canonical
    failure carries `AdaptationMethod.FAILED`.
    """
    success: bool
    new_selector: str
    confidence_score: float
    adaptation_method: AdaptationMethod
    semantic_similarity: float = 0.0
    validation_results: ValidationResults = field(default_factory=ValidationResults)
    alternative_selectors: List[AlternativeSelector] = field(default_factory=list)
    rollback_data: Optional[RollbackData] = None
    reason: str = ""

    def __post_init__(self):
        object.__setattr__(self, "confidence_score", clamp_confidence(self.confidence_score))
        object.__setattr__(self, "semantic_similarity", clamp_confidence(self.semantic_similarity))
        if self.rollback_data is None:
            object.__setattr__(self, "rollback_data", RollbackData(original_selector=self.new_selector))

    @classmethod
    def failure(cls, profile: ElementSemanticProfile, reason: str) -> "AdaptationResult":
        """Canonical 'nothing found' result."""
        return cls(
            success=False,
            new_selector=profile.selector,
            confidence_score=0.0,
            adaptation_method=AdaptationMethod.FAILED,
            rollback_data=RollbackData(original_selector=profile.selector),
            reason=reason,
        )

    def with_validation(self, validation: ValidationResults) -> "AdaptationResult":
        return replace(self, validation_results=validation)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "new_selector": self.new_selector,
            "confidence_score": self.confidence_score,
            "adaptation_method": self.adaptation_method.value,
            "semantic_similarity": self.semantic_similarity,
            "validation_results": self.validation_results.to_dict(),
            "alternative_selectors": [a.to_dict() for a in self.alternative_selectors],
            "rollback_data": self.rollback_data.to_dict(),
            "reason": self.reason,
        }


@dataclass
class StrategyOutcome:
    """Result of running one strategy: either an AdaptationResult or an error."""
    strategy: str
    priority: int
    confidence_threshold: float
    result: Optional[AdaptationResult] = None
    error: Optional[str] = None
    execution_time_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    @property
    def qualified(self) -> bool:
        """Successful and above the strategy's own threshold."""
        return (
            self.ok
            and self.result.success
            and self.result.confidence_score >= self.confidence_threshold
        )


@dataclass
class PipelineRun:
    """Winning result plus every strategy outcome, in execution order."""
    best: AdaptationResult
    outcomes: List[StrategyOutcome] = field(default_factory=list)

    @property
    def strategies_run(self) -> List[str]:
        return [outcome.strategy for outcome in self.outcomes]


@dataclass
class ElementComparison:
    """Differences between an original profile and the element found now."""
    element_found: bool
    location_changed: bool
    attributes_changed: bool
    visual_changes: bool
    semantic_similarity: float
    alternative_matches: List[AlternativeSelector] = field(default_factory=list)


@dataclass
class ClassificationResult:
    """Whether a failure looks like UI drift rather than a functional bug."""
    is_healable: bool
    confidence: float
    reason: str
    failure_type: FailureType = FailureType.INTERACTION_FAILED
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_healable": self.is_healable,
            "confidence": self.confidence,
            "reason": self.reason,
            "failure_type": self.failure_type.value,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Session aggregate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HealingAttempt:
    """One recorded strategy-pipeline execution inside a session."""
    attempt_number: int
    strategy_used: str
    original_selector: str
    proposed_selector: str
    confidence_score: float
    reasoning: str
    validation_results: ValidationResults
    execution_time_ms: float
    success: bool
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "strategy_used": self.strategy_used,
            "original_selector": self.original_selector,
            "proposed_selector": self.proposed_selector,
            "confidence_score": self.confidence_score,
            "reasoning": self.reasoning,
            "validation_results": self.validation_results.to_dict(),
            "execution_time_ms": self.execution_time_ms,
            "success": self.success,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealingAttempt":
        data = data.copy()
        data["validation_results"] = ValidationResults.from_dict(data.get("validation_results"))
        return cls(**data)


@dataclass
class FailureDetails:
    failed_step_id: str
    failure_type: FailureType
    original_selector: str
    error_message: str
    page_url: str = ""
    screenshot_url: Optional[str] = None
    failure_timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failed_step_id": self.failed_step_id,
            "failure_type": self.failure_type.value,
            "original_selector": self.original_selector,
            "error_message": self.error_message,
            "page_url": self.page_url,
            "screenshot_url": self.screenshot_url,
            "failure_timestamp": _iso(self.failure_timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailureDetails":
        data = data.copy()
        data["failure_type"] = FailureType(data["failure_type"])
        data["failure_timestamp"] = _parse_datetime(data.get("failure_timestamp")) or datetime.now()
        return cls(**data)


@dataclass
class SelectorUpdate:
    """A proposed or applied locator change for one test step."""
    id: str
    healing_session_id: str
    test_case_id: str
    step_id: str
    original_selector: str
    new_selector: str
    confidence_score: float
    rollback_data: RollbackData
    update_reason: str = ""
    semantic_similarity: float = 0.0
    alternative_selectors: List[AlternativeSelector] = field(default_factory=list)
    context_preservation: Dict[str, bool] = field(default_factory=dict)
    validation_status: ValidationStatus = ValidationStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    applied_at: Optional[datetime] = None
    rolled_back_at: Optional[datetime] = None

    @property
    def is_applied(self) -> bool:
        return self.validation_status == ValidationStatus.VALIDATED and self.rolled_back_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "healing_session_id": self.healing_session_id,
            "test_case_id": self.test_case_id,
            "step_id": self.step_id,
            "original_selector": self.original_selector,
            "new_selector": self.new_selector,
            "confidence_score": self.confidence_score,
            "rollback_data": self.rollback_data.to_dict(),
            "update_reason": self.update_reason,
            "semantic_similarity": self.semantic_similarity,
            "alternative_selectors": [a.to_dict() for a in self.alternative_selectors],
            "context_preservation": dict(self.context_preservation),
            "validation_status": self.validation_status.value,
            "created_at": _iso(self.created_at),
            "applied_at": _iso(self.applied_at),
            "rolled_back_at": _iso(self.rolled_back_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectorUpdate":
        data = data.copy()
        data["rollback_data"] = RollbackData.from_dict(data["rollback_data"])
        data["alternative_selectors"] = [
            AlternativeSelector.from_dict(a) for a in data.get("alternative_selectors", [])
        ]
        data["validation_status"] = ValidationStatus(data.get("validation_status", "pending"))
        data["created_at"] = _parse_datetime(data.get("created_at")) or datetime.now()
        data["applied_at"] = _parse_datetime(data.get("applied_at"))
        data["rolled_back_at"] = _parse_datetime(data.get("rolled_back_at"))
        return cls(**data)


@dataclass
class HealingSession:
    """Stateful record of one attempt to repair a broken locator."""
    id: str
    test_case_id: str
    execution_id: str
    trigger_type: TriggerType
    failure_details: FailureDetails
    project_id: str = ""
    status: HealingStatus = HealingStatus.PENDING
    healing_attempts: List[HealingAttempt] = field(default_factory=list)
    successful_adaptations: List[SelectorUpdate] = field(default_factory=list)
    pending_update: Optional[SelectorUpdate] = None
    confidence_score: float = 0.0
    healing_strategy: str = ""
    ai_analysis: Dict[str, Any] = field(default_factory=dict)
    performance_metrics: Dict[str, Any] = field(default_factory=dict)
    status_history: List[HealingStatus] = field(default_factory=list)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: str = ""
    error_message: Optional[str] = None
    created_by: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    started_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.status_history:
            self.status_history = [self.status]

    def can_transition_to(self, status: HealingStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, status: HealingStatus) -> None:
        """Move to `status`, enforcing the session state table."""
        if not self.can_transition_to(status):
            # Imported here to keep models free of a package-level cycle.
            from ..exceptions import InvalidStateTransition
            raise InvalidStateTransition(self.id, self.status.value, status.value)
        self.status = status
        self.status_history.append(status)
        self.updated_at = datetime.now()
        if status.is_terminal:
            self.completed_at = self.updated_at

    def next_attempt_number(self) -> int:
        if not self.healing_attempts:
            return 1
        return self.healing_attempts[-1].attempt_number + 1

    def record_attempt(self, attempt: HealingAttempt) -> None:
        """Append an attempt; attempt numbers must strictly increase."""
        if self.healing_attempts and attempt.attempt_number <= self.healing_attempts[-1].attempt_number:
            raise ValueError(
                f"Attempt number {attempt.attempt_number} does not follow "
                f"{self.healing_attempts[-1].attempt_number}"
            )
        self.healing_attempts.append(attempt)
        self.updated_at = datetime.now()

    @property
    def duration(self) -> Optional[float]:
        """Session duration in seconds."""
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "execution_id": self.execution_id,
            "trigger_type": self.trigger_type.value,
            "failure_details": self.failure_details.to_dict(),
            "project_id": self.project_id,
            "status": self.status.value,
            "healing_attempts": [a.to_dict() for a in self.healing_attempts],
            "successful_adaptations": [u.to_dict() for u in self.successful_adaptations],
            "pending_update": self.pending_update.to_dict() if self.pending_update else None,
            "confidence_score": self.confidence_score,
            "healing_strategy": self.healing_strategy,
            "ai_analysis": self.ai_analysis,
            "performance_metrics": self.performance_metrics,
            "status_history": [s.value for s in self.status_history],
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "review_notes": self.review_notes,
            "error_message": self.error_message,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "updated_at": _iso(self.updated_at),
            "completed_at": _iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealingSession":
        data = data.copy()
        data["trigger_type"] = TriggerType(data["trigger_type"])
        data["failure_details"] = FailureDetails.from_dict(data["failure_details"])
        data["status"] = HealingStatus(data["status"])
        data["healing_attempts"] = [HealingAttempt.from_dict(a) for a in data.get("healing_attempts", [])]
        data["successful_adaptations"] = [
            SelectorUpdate.from_dict(u) for u in data.get("successful_adaptations", [])
        ]
        if data.get("pending_update"):
            data["pending_update"] = SelectorUpdate.from_dict(data["pending_update"])
        data["status_history"] = [HealingStatus(s) for s in data.get("status_history", [])]
        for key in ("reviewed_at", "completed_at"):
            data[key] = _parse_datetime(data.get(key))
        for key in ("created_at", "started_at", "updated_at"):
            data[key] = _parse_datetime(data.get(key)) or datetime.now()
        return cls(**data)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class NotificationSettings:
    email_notifications: bool = True
    webhook_notifications: bool = False
    real_time_updates: bool = True


@dataclass
class PerformanceLimits:
    max_execution_time_ms: int = 30000  # wall-clock budget for one adaptation pipeline run


@dataclass
class HealingConfiguration:
    """Per-project healing policy."""
    project_id: str = ""
    auto_healing_enabled: bool = True
    confidence_threshold: float = 0.8  # auto-apply cutoff
    require_review_threshold: float = 0.5  # floor below which nothing is proposed
    max_healing_attempts: int = 3
    notification_settings: NotificationSettings = field(default_factory=NotificationSettings)
    strategy_preferences: List[str] = field(default_factory=list)
    exclusion_patterns: List[str] = field(default_factory=list)
    performance_limits: PerformanceLimits = field(default_factory=PerformanceLimits)
    element_wait_timeout_ms: int = 5000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "auto_healing_enabled": self.auto_healing_enabled,
            "confidence_threshold": self.confidence_threshold,
            "require_review_threshold": self.require_review_threshold,
            "max_healing_attempts": self.max_healing_attempts,
            "notification_settings": {
                "email_notifications": self.notification_settings.email_notifications,
                "webhook_notifications": self.notification_settings.webhook_notifications,
                "real_time_updates": self.notification_settings.real_time_updates,
            },
            "strategy_preferences": list(self.strategy_preferences),
            "exclusion_patterns": list(self.exclusion_patterns),
            "performance_limits": {
                "max_execution_time_ms": self.performance_limits.max_execution_time_ms,
            },
            "element_wait_timeout_ms": self.element_wait_timeout_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealingConfiguration":
        data = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if isinstance(data.get("notification_settings"), dict):
            data["notification_settings"] = NotificationSettings(**_known_fields(
                NotificationSettings, data["notification_settings"]))
        if isinstance(data.get("performance_limits"), dict):
            # Older configs may still carry max_memory_usage_mb; it is not enforced and is dropped.
            data["performance_limits"] = PerformanceLimits(**_known_fields(
                PerformanceLimits, data["performance_limits"]))
        return cls(**data)


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------

@dataclass
class HealingWorkflowResult:
    """What callers of initiate_healing receive. Never an exception."""
    success: bool
    session_id: str
    final_status: HealingStatus
    confidence_score: float = 0.0
    execution_time_ms: float = 0.0
    healing_attempts: List[HealingAttempt] = field(default_factory=list)
    successful_adaptations: List[SelectorUpdate] = field(default_factory=list)
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "session_id": self.session_id,
            "final_status": self.final_status.value,
            "confidence_score": self.confidence_score,
            "execution_time_ms": self.execution_time_ms,
            "healing_attempts": [a.to_dict() for a in self.healing_attempts],
            "successful_adaptations": [u.to_dict() for u in self.successful_adaptations],
            "error_message": self.error_message,
        }


@dataclass
class ReviewResult:
    success: bool
    session_id: str
    applied_adaptations: List[SelectorUpdate] = field(default_factory=list)
    error_message: Optional[str] = None


@dataclass
class RollbackResult:
    success: bool
    update_id: str
    restored_selector: Optional[str] = None
    error_message: Optional[str] = None
