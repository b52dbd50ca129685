"""
Unit tests for the healing data models and the session state machine.
"""

import math
from datetime import datetime

import pytest

from locator_healing.core.exceptions import InvalidStateTransition
from locator_healing.core.models import (
    ALLOWED_TRANSITIONS,
    AdaptationContext,
    AdaptationMethod,
    AdaptationResult,
    ElementSemanticProfile,
    FailureDetails,
    FailureType,
    HealingAttempt,
    HealingConfiguration,
    HealingSession,
    HealingStatus,
    RollbackData,
    SelectorUpdate,
    StrategyOutcome,
    TriggerType,
    ValidationResults,
    ValidationStatus,
    clamp_confidence,
)


def make_session(**overrides) -> HealingSession:
    values = dict(
        id="session-1",
        test_case_id="tc-1",
        execution_id="exec-1",
        trigger_type=TriggerType.FAILURE_DETECTION,
        failure_details=FailureDetails(
            failed_step_id="step-1",
            failure_type=FailureType.ELEMENT_NOT_FOUND,
            original_selector="#submit-btn",
            error_message="Element not found",
        ),
    )
    values.update(overrides)
    return HealingSession(**values)


def make_attempt(number: int) -> HealingAttempt:
    return HealingAttempt(
        attempt_number=number,
        strategy_used="attribute_adaptation",
        original_selector="#submit-btn",
        proposed_selector='[data-testid="submit"]',
        confidence_score=0.95,
        reasoning="Adaptation using attribute_adaptation",
        validation_results=ValidationResults(element_found=True),
        execution_time_ms=12.5,
        success=True,
    )


class TestConfidenceClamping:

    @pytest.mark.parametrize("raw,expected", [
        (-0.5, 0.0),
        (0.42, 0.42),
        (1.7, 1.0),
        (float("nan"), 0.0),
        ("not a number", 0.0),
        (None, 0.0),
    ])
    def test_clamp_confidence(self, raw, expected):
        assert clamp_confidence(raw) == expected

    def test_adaptation_result_clamps_scores(self):
        result = AdaptationResult(
            success=True,
            new_selector="#a",
            confidence_score=1.4,
            adaptation_method=AdaptationMethod.AI_ANALYSIS,
            semantic_similarity=-0.2,
        )
        assert result.confidence_score == 1.0
        assert result.semantic_similarity == 0.0
        assert not math.isnan(result.confidence_score)

    def test_adaptation_result_defaults_rollback_data(self):
        result = AdaptationResult(
            success=True,
            new_selector="#a",
            confidence_score=0.8,
            adaptation_method=AdaptationMethod.TEXT_MATCHING,
        )
        assert result.rollback_data.original_selector == "#a"

    def test_canonical_failure(self):
        profile = ElementSemanticProfile(selector="#gone")
        result = AdaptationResult.failure(profile, "No successful adaptations")

        assert result.success is False
        assert result.confidence_score == 0.0
        assert result.adaptation_method is AdaptationMethod.FAILED
        assert result.to_dict()["adaptation_method"] == "failed"
        assert result.rollback_data.original_selector == "#gone"


class TestSessionStateMachine:

    def test_new_session_is_pending_with_history(self):
        session = make_session()
        assert session.status == HealingStatus.PENDING
        assert session.status_history == [HealingStatus.PENDING]
        assert session.completed_at is None

    def test_happy_path_transitions(self):
        session = make_session()
        session.transition_to(HealingStatus.ANALYZING)
        session.transition_to(HealingStatus.HEALING)
        session.transition_to(HealingStatus.COMPLETED)

        assert session.status_history == [
            HealingStatus.PENDING, HealingStatus.ANALYZING,
            HealingStatus.HEALING, HealingStatus.COMPLETED,
        ]
        assert session.completed_at is not None
        assert session.duration is not None

    def test_review_can_complete_or_fail(self):
        for final in (HealingStatus.COMPLETED, HealingStatus.FAILED):
            session = make_session()
            for status in (HealingStatus.ANALYZING, HealingStatus.HEALING, HealingStatus.REQUIRES_REVIEW):
                session.transition_to(status)
            session.transition_to(final)
            assert session.status == final

    @pytest.mark.parametrize("start,target", [
        (HealingStatus.PENDING, HealingStatus.COMPLETED),
        (HealingStatus.PENDING, HealingStatus.REQUIRES_REVIEW),
        (HealingStatus.ANALYZING, HealingStatus.COMPLETED),
        (HealingStatus.COMPLETED, HealingStatus.FAILED),
        (HealingStatus.FAILED, HealingStatus.PENDING),
    ])
    def test_rejected_transitions(self, start, target):
        session = make_session(status=start)
        with pytest.raises(InvalidStateTransition):
            session.transition_to(target)
        assert session.status == start

    def test_terminal_states_have_no_exits(self):
        assert ALLOWED_TRANSITIONS[HealingStatus.COMPLETED] == frozenset()
        assert ALLOWED_TRANSITIONS[HealingStatus.FAILED] == frozenset()
        assert HealingStatus.COMPLETED.is_terminal
        assert not HealingStatus.REQUIRES_REVIEW.is_terminal


class TestHealingAttempts:

    def test_attempt_numbers_must_increase(self):
        session = make_session()
        session.record_attempt(make_attempt(session.next_attempt_number()))
        assert session.next_attempt_number() == 2

        with pytest.raises(ValueError):
            session.record_attempt(make_attempt(1))
        assert len(session.healing_attempts) == 1

    def test_attempts_are_immutable(self):
        attempt = make_attempt(1)
        with pytest.raises(Exception):
            attempt.confidence_score = 0.1


class TestSerialization:

    def test_session_survives_store_round_trip(self):
        session = make_session()
        session.transition_to(HealingStatus.ANALYZING)
        session.record_attempt(make_attempt(1))
        session.pending_update = SelectorUpdate(
            id="update-1",
            healing_session_id=session.id,
            test_case_id="tc-1",
            step_id="step-1",
            original_selector="#submit-btn",
            new_selector='[data-testid="submit"]',
            confidence_score=0.65,
            rollback_data=RollbackData(original_selector="#submit-btn"),
        )

        restored = HealingSession.from_dict(session.to_dict())

        assert restored.status == HealingStatus.ANALYZING
        assert restored.status_history == [HealingStatus.PENDING, HealingStatus.ANALYZING]
        assert restored.healing_attempts == session.healing_attempts
        assert restored.pending_update.rollback_data.original_selector == "#submit-btn"
        assert restored.failure_details.failure_type == FailureType.ELEMENT_NOT_FOUND

    def test_selector_update_applied_flag(self):
        update = SelectorUpdate(
            id="update-1",
            healing_session_id="s",
            test_case_id="tc",
            step_id="step",
            original_selector="#a",
            new_selector="#b",
            confidence_score=0.9,
            rollback_data=RollbackData(original_selector="#a"),
        )
        assert not update.is_applied

        update.validation_status = ValidationStatus.VALIDATED
        assert update.is_applied

        update.rolled_back_at = datetime.now()
        assert not update.is_applied

    def test_adaptation_context_nests_failure_and_intent(self):
        context = AdaptationContext(
            test_case_id="tc",
            step_id="step",
            original_selector="#a",
            error_message="boom",
            action_type="click",
            semantic_description="click on #a",
        )
        data = context.to_dict()
        assert data["failure_context"]["error_message"] == "boom"
        assert data["user_intent"]["semantic_description"] == "click on #a"


class TestConfigurationModel:

    def test_defaults(self):
        config = HealingConfiguration()
        assert config.auto_healing_enabled is True
        assert config.confidence_threshold == 0.8
        assert config.require_review_threshold == 0.5

    def test_from_dict_ignores_unknown_keys(self):
        config = HealingConfiguration.from_dict({
            "project_id": "p",
            "confidence_threshold": 0.9,
            "created_at": "2024-01-01",
            "notification_settings": {"real_time_updates": False},
        })
        assert config.confidence_threshold == 0.9
        assert config.notification_settings.real_time_updates is False

    def test_from_dict_drops_retired_performance_keys(self):
        config = HealingConfiguration.from_dict({
            "performance_limits": {"max_execution_time_ms": 1500, "max_memory_usage_mb": 512},
        })
        assert config.performance_limits.max_execution_time_ms == 1500
        assert config.to_dict()["performance_limits"] == {"max_execution_time_ms": 1500}


class TestProfilesAndOutcomes:

    def test_placeholder_profile(self):
        profile = ElementSemanticProfile.placeholder("#email", "fill")
        assert profile.stability_score == 0.0
        assert profile.interaction_patterns.form_input is True
        assert profile.interaction_patterns.click_target is False

    def test_outcome_qualifies_only_above_own_threshold(self):
        result = AdaptationResult(
            success=True, new_selector="#a", confidence_score=0.65,
            adaptation_method=AdaptationMethod.AI_ANALYSIS,
        )
        assert not StrategyOutcome("ai_analysis", 4, 0.7, result=result).qualified
        assert StrategyOutcome("ai_analysis", 4, 0.6, result=result).qualified
        assert not StrategyOutcome("ai_analysis", 4, 0.6, error="boom").qualified
