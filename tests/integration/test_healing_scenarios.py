"""
End-to-end healing scenarios against the in-memory store and a fake page.

Each test drives the orchestrator through the full workflow:
failed step -> classification -> profiling -> adaptation -> decision,
and checks what ends up persisted for the test step.
"""

import json

import pytest

from locator_healing.core.models import (
    ElementSemanticProfile,
    HealingStatus,
    StepFailure,
    TestStep,
)
from locator_healing.services.adaptation_strategies import AIAnalysisStrategy, default_strategies
from locator_healing.services.healing_orchestrator import HealingOrchestrator
from locator_healing.services.healing_queue import ManualTicker
from locator_healing.services.stores import TEST_STEPS
from utils.fake_page import FakeCompletionClient, FakePage, RecordingNotifier
from utils.strategies import FixedStrategy


def build_orchestrator(store, audit_trail, metrics, **kwargs):
    return HealingOrchestrator(
        store,
        notifier=RecordingNotifier(),
        ticker=ManualTicker(),
        audit=audit_trail,
        metrics=metrics,
        **kwargs,
    )


async def stored_element(store, step_id="step-1"):
    return (await store.find_by_id(TEST_STEPS, step_id))["element"]


class TestConfidenceMapping:
    """Default thresholds: review floor 0.5, auto-apply 0.8."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confidence,expected", [
        (0.3, HealingStatus.FAILED),
        (0.65, HealingStatus.REQUIRES_REVIEW),
        (0.9, HealingStatus.COMPLETED),
    ])
    async def test_final_status(self, store, audit_trail, metrics, stored_step, execution, failure,
                                confidence, expected):
        page = FakePage()
        page.add("#checkout", tag="button", text="Checkout")
        orchestrator = build_orchestrator(store, audit_trail, metrics,
                                          strategies=[FixedStrategy("#checkout", confidence)])

        result = await orchestrator.initiate_healing(execution, stored_step, failure, page)

        assert result.final_status == expected
        assert 0.0 <= result.confidence_score <= 1.0
        expected_element = "#checkout" if expected == HealingStatus.COMPLETED else "#submit-btn"
        assert await stored_element(store) == expected_element

    @pytest.mark.asyncio
    async def test_confidence_stays_in_bounds(self, store, audit_trail, metrics, stored_step, execution,
                                              failure):
        page = FakePage()
        page.add("#checkout", tag="button")
        orchestrator = build_orchestrator(store, audit_trail, metrics,
                                          strategies=[FixedStrategy("#checkout", 7.5)])

        result = await orchestrator.initiate_healing(execution, stored_step, failure, page)

        assert result.confidence_score == 1.0
        for attempt in result.healing_attempts:
            assert 0.0 <= attempt.confidence_score <= 1.0


class TestValidationPenalty:

    @pytest.mark.asyncio
    async def test_vanished_winner_is_halved_and_fails(self, store, audit_trail, metrics, stored_step,
                                                       execution, failure):
        orchestrator = build_orchestrator(store, audit_trail, metrics,
                                          strategies=[FixedStrategy("#ghost", 0.9)])

        result = await orchestrator.initiate_healing(execution, stored_step, failure, FakePage())

        assert result.final_status == HealingStatus.FAILED
        assert result.confidence_score == pytest.approx(0.45)
        assert result.error_message == "Winning locator failed validation"
        assert result.healing_attempts[0].success is False
        assert await stored_element(store) == "#submit-btn"


class TestRollbackRoundTrip:

    @pytest.mark.asyncio
    async def test_apply_then_rollback_restores_original(self, store, audit_trail, metrics, stored_step,
                                                         execution, failure):
        page = FakePage()
        page.add("#checkout", tag="button")
        orchestrator = build_orchestrator(store, audit_trail, metrics,
                                          strategies=[FixedStrategy("#checkout", 0.95)])

        result = await orchestrator.initiate_healing(execution, stored_step, failure, page)
        update = result.successful_adaptations[0]
        assert update.rollback_data.original_selector == "#submit-btn"
        assert await stored_element(store) == "#checkout"

        rollback = await orchestrator.rollback_selector_update(update.id, "regression in checkout")

        assert rollback.success
        assert await stored_element(store) == update.rollback_data.original_selector


class TestReviewGuard:

    @pytest.mark.asyncio
    async def test_approve_outside_review_changes_nothing(self, store, audit_trail, metrics, stored_step,
                                                          execution, failure):
        page = FakePage()
        page.add("#checkout", tag="button")
        orchestrator = build_orchestrator(store, audit_trail, metrics,
                                          strategies=[FixedStrategy("#checkout", 0.95)])
        result = await orchestrator.initiate_healing(execution, stored_step, failure, page)
        before = (await orchestrator.get_healing_session_status(result.session_id)).to_dict()

        review = await orchestrator.approve_healing(result.session_id, "qa-lead")

        assert review.success is False
        after = (await orchestrator.get_healing_session_status(result.session_id)).to_dict()
        assert after == before


class TestNamedScenarios:

    @pytest.mark.asyncio
    async def test_not_healable_failure(self, store, audit_trail, metrics, stored_step, execution):
        orchestrator = build_orchestrator(store, audit_trail, metrics)
        failure = StepFailure(error_message="AssertionError: order total was 10, expected 12")

        result = await orchestrator.initiate_healing(execution, stored_step, failure, FakePage())

        session = await orchestrator.get_healing_session_status(result.session_id)
        assert session.status_history == [HealingStatus.PENDING, HealingStatus.FAILED]
        assert session.healing_attempts == []
        assert result.success is False

    @pytest.mark.asyncio
    async def test_data_testid_match_is_applied(self, store, audit_trail, metrics, execution, failure):
        step = TestStep(
            id="step-1",
            action="click",
            element="#submit-btn",
            element_profile=ElementSemanticProfile(
                selector="#submit-btn",
                element_type="button",
                text_content="Sign in",
                attributes={"data-testid": "login-submit"},
            ),
        )
        await store.insert(TEST_STEPS, {"id": "step-1", "action": "click", "element": "#submit-btn"})
        page = FakePage()
        page.add('[data-testid="login-submit"]', tag="button", text="Sign in",
                 attributes={"data-testid": "login-submit"})
        orchestrator = build_orchestrator(store, audit_trail, metrics)

        result = await orchestrator.initiate_healing(execution, step, failure, page)

        assert result.final_status == HealingStatus.COMPLETED
        assert result.confidence_score == pytest.approx(0.95)
        assert result.healing_attempts[0].strategy_used == "attribute_adaptation"
        assert await stored_element(store) == '[data-testid="login-submit"]'

    @pytest.mark.asyncio
    async def test_ai_only_match_goes_through_review(self, store, audit_trail, metrics, stored_step,
                                                     execution, failure):
        completion = FakeCompletionClient(json.dumps([
            {"selector": "#checkout-v2", "confidence": 0.65, "reasoning": "Renamed submit button"},
            {"selector": "#missing", "confidence": 0.4, "reasoning": "Older markup"},
        ]))
        strategies = default_strategies() + [AIAnalysisStrategy(completion, confidence_threshold=0.6)]
        page = FakePage()
        page.add("#checkout-v2", tag="button", text="Place order")
        orchestrator = build_orchestrator(store, audit_trail, metrics, strategies=strategies)

        result = await orchestrator.initiate_healing(execution, stored_step, failure, page)

        assert result.final_status == HealingStatus.REQUIRES_REVIEW
        assert result.healing_attempts[0].strategy_used == "ai_analysis"
        assert result.confidence_score == pytest.approx(0.65)
        assert len(completion.prompts) == 1
        assert await stored_element(store) == "#submit-btn"

        review = await orchestrator.approve_healing(result.session_id, "qa-lead", "Verified manually")

        assert review.success
        session = await orchestrator.get_healing_session_status(result.session_id)
        assert session.status == HealingStatus.COMPLETED
        assert await stored_element(store) == "#checkout-v2"
