"""Core data models for the locator self-healing system."""

from .healing_models import (
    ALLOWED_TRANSITIONS,
    AdaptationContext,
    AdaptationMethod,
    AdaptationResult,
    AlternativeSelector,
    ClassificationResult,
    ElementComparison,
    ElementContext,
    ElementPosition,
    ElementSemanticProfile,
    FailureDetails,
    FailureType,
    HealingAttempt,
    HealingConfiguration,
    HealingSession,
    HealingStatus,
    HealingWorkflowResult,
    InteractionPatterns,
    NotificationSettings,
    PerformanceLimits,
    PipelineRun,
    ReviewResult,
    RollbackData,
    RollbackResult,
    SelectorUpdate,
    StepFailure,
    StrategyOutcome,
    TestExecution,
    TestStep,
    TriggerType,
    ValidationResults,
    ValidationStatus,
    VisualCharacteristics,
    clamp_confidence,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AdaptationContext",
    "AdaptationMethod",
    "AdaptationResult",
    "AlternativeSelector",
    "ClassificationResult",
    "ElementComparison",
    "ElementContext",
    "ElementPosition",
    "ElementSemanticProfile",
    "FailureDetails",
    "FailureType",
    "HealingAttempt",
    "HealingConfiguration",
    "HealingSession",
    "HealingStatus",
    "HealingWorkflowResult",
    "InteractionPatterns",
    "NotificationSettings",
    "PerformanceLimits",
    "PipelineRun",
    "ReviewResult",
    "RollbackData",
    "RollbackResult",
    "SelectorUpdate",
    "StepFailure",
    "StrategyOutcome",
    "TestExecution",
    "TestStep",
    "TriggerType",
    "ValidationResults",
    "ValidationStatus",
    "VisualCharacteristics",
    "clamp_confidence",
]
