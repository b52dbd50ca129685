"""
Healing Orchestrator for the locator self-healing system.

Drives one healing session per failed step through
pending -> analyzing -> healing -> {completed | requires_review | failed},
and exposes the review (approve/reject), rollback and queueing operations.
Callers always get a structured result back, never an exception.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..core.audit_trail import AuditTrail, get_audit_trail
from ..core.config_loader import StoreConfigurationProvider, default_configuration
from ..core.exceptions import (
    ConfigurationUnavailable,
    InvalidStateTransition,
    SessionNotFound,
    WorkflowFailure,
)
from ..core.logging_config import HealingLoggerAdapter, get_healing_logger
from ..core.metrics import MetricsCollector, get_metrics_collector
from ..core.models.healing_models import (
    AdaptationContext,
    AdaptationResult,
    FailureDetails,
    HealingAttempt,
    HealingConfiguration,
    HealingSession,
    HealingStatus,
    HealingWorkflowResult,
    ReviewResult,
    RollbackData,
    RollbackResult,
    SelectorUpdate,
    StepFailure,
    TestExecution,
    TestStep,
    TriggerType,
)
from .adaptation_engine import SelectorAdaptationEngine
from .adaptation_strategies import default_strategies
from .candidate_validator import CandidateValidator
from .failure_classifier import FailureClassifier
from .healing_queue import HealingQueueScheduler, QueuedHealing
from .notifiers import LoggingNotifier, session_topic
from .selector_updater import SelectorUpdater
from .semantic_profiler import SemanticProfiler
from .session_repository import SessionRepository

logger = logging.getLogger("healing.orchestrator")

# Visual similarity above which an adaptation counts as visually consistent.
VISUAL_CONSISTENCY_THRESHOLD = 0.7

TRIGGER_ALIASES = {
    "automatic": TriggerType.FAILURE_DETECTION,
    "failure_detection": TriggerType.FAILURE_DETECTION,
    "manual": TriggerType.MANUAL_TRIGGER,
    "manual_trigger": TriggerType.MANUAL_TRIGGER,
    "scheduled": TriggerType.SCHEDULED_CHECK,
    "scheduled_check": TriggerType.SCHEDULED_CHECK,
}


def resolve_trigger(trigger: Union[str, TriggerType]) -> TriggerType:
    if isinstance(trigger, TriggerType):
        return trigger
    try:
        return TRIGGER_ALIASES[str(trigger).lower()]
    except KeyError:
        raise ValueError(f"Unknown healing trigger: {trigger}") from None


class HealingOrchestrator:
    """Main orchestrator for the locator healing workflow."""

    def __init__(
        self,
        store,
        configuration_provider=None,
        notifier=None,
        completion_client=None,
        strategies=None,
        engine: Optional[SelectorAdaptationEngine] = None,
        profiler: Optional[SemanticProfiler] = None,
        classifier: Optional[FailureClassifier] = None,
        validator: Optional[CandidateValidator] = None,
        updater: Optional[SelectorUpdater] = None,
        ticker=None,
        audit: Optional[AuditTrail] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the orchestrator.

        Args:
            store: Document store holding sessions, selector updates and test steps
            configuration_provider: Per-project policy source; defaults to the
                ``healing_configurations`` collection of ``store``
            notifier: Receives progress events; defaults to a logging notifier
            completion_client: Enables the AI-assisted strategy and classifier hint
            strategies: Replaces the default strategy set
            ticker: Drives the queue; defaults to a fixed-interval ticker
        """
        self.audit = audit or get_audit_trail()
        self.metrics = metrics or get_metrics_collector()
        self.configuration_provider = configuration_provider or StoreConfigurationProvider(store)
        self.notifier = notifier or LoggingNotifier()

        self.profiler = profiler or SemanticProfiler()
        self.validator = validator or CandidateValidator()
        self.classifier = classifier or FailureClassifier(self.profiler, completion_client)
        if engine is None:
            if strategies is None:
                strategies = default_strategies(completion_client, self.validator)
            engine = SelectorAdaptationEngine(strategies, metrics=self.metrics)
        self.engine = engine

        self.repository = SessionRepository(store)
        self.updater = updater or SelectorUpdater(store, self.audit, self.metrics)
        self.scheduler = HealingQueueScheduler(self._run_queued, ticker, self.metrics)

        self._review_lock = asyncio.Lock()

        logger.info(
            f"Healing orchestrator initialized with strategies: "
            f"{[s.name for s in self.engine.strategies]}"
        )

    def start(self) -> None:
        """Start draining the healing queue."""
        self.scheduler.start()
        logger.info("Healing orchestrator started")

    async def stop(self) -> None:
        await self.scheduler.stop()
        logger.info("Healing orchestrator stopped")

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def initiate_healing(
        self,
        execution: TestExecution,
        failed_step: TestStep,
        failure: StepFailure,
        page,
        trigger: Union[str, TriggerType] = "automatic",
        session_id: Optional[str] = None,
    ) -> HealingWorkflowResult:
        """Run the full healing workflow for one failed step.

        Returns:
            HealingWorkflowResult; internal errors end the session in
            ``failed`` with the error message attached.
        """
        start_time = time.time()
        session_id = session_id or str(uuid.uuid4())
        healing_logger = get_healing_logger("orchestrator", session_id, execution.test_case_id)
        session: Optional[HealingSession] = None

        try:
            trigger_type = resolve_trigger(trigger)
            configuration = await self._load_configuration(execution.project_id)

            session = self._create_session(session_id, execution, failed_step, failure, trigger_type)
            await self.repository.add(session)
            self.audit.log_session_created(session)
            self.metrics.record_session_start(session.id, session.failure_details.failure_type.value)
            healing_logger.log_operation_start(
                "healing_session",
                step_id=failed_step.id,
                original_selector=failed_step.element,
                failure_type=session.failure_details.failure_type.value,
                trigger=trigger_type.value,
            )

            if not configuration.auto_healing_enabled and trigger_type != TriggerType.MANUAL_TRIGGER:
                return await self._fail(session, "Auto-healing is disabled for this project",
                                        start_time, configuration, healing_logger)

            # Classification gate; the session stays pending until it passes.
            phase_start = time.time()
            classification = await self.classifier.classify(
                execution, failed_step, failure, page, configuration
            )
            phase_duration = time.time() - phase_start
            self.metrics.record_phase("classification", phase_duration * 1000)
            session.ai_analysis = classification.to_dict()
            self.audit.log_classification(session.id, session.test_case_id, classification, phase_duration)

            if not classification.is_healable:
                self.metrics.record_not_healable()
                return await self._fail(session, classification.reason, start_time,
                                        configuration, healing_logger)

            await self._transition(session, HealingStatus.ANALYZING, "Failure classified as healable")
            await self._publish_progress(session, configuration, "Analyzing failure and page changes")
            healing_logger.log_progress("healing_session", 0.3, "Profiling original element")

            phase_start = time.time()
            profile = await self.profiler.profile_or_placeholder(failed_step, page)
            self.metrics.record_phase("profiling", (time.time() - phase_start) * 1000)

            await self._transition(session, HealingStatus.HEALING, "Original element profiled")
            await self._publish_progress(session, configuration, "Attempting to adapt selector")
            healing_logger.log_progress("healing_session", 0.6, "Running adaptation strategies")

            context = self._adaptation_context(session, failed_step, failure)
            phase_start = time.time()
            limit_ms = configuration.performance_limits.max_execution_time_ms
            try:
                run = await asyncio.wait_for(
                    self.engine.adapt_selector(profile, page, context, configuration),
                    limit_ms / 1000,
                )
            except asyncio.TimeoutError:
                self.metrics.record_phase("adaptation", (time.time() - phase_start) * 1000)
                return await self._fail(session, f"Adaptation exceeded the {limit_ms} ms execution limit",
                                        start_time, configuration, healing_logger)
            result = await self.validator.validate_adaptation(run.best, page,
                                                             configuration.element_wait_timeout_ms)
            adaptation_ms = (time.time() - phase_start) * 1000
            self.metrics.record_phase("adaptation", adaptation_ms)
            self.audit.log_adaptation(session.id, session.test_case_id, run, adaptation_ms / 1000)

            session.record_attempt(self._attempt_from_result(session, failed_step, result, adaptation_ms))
            session.confidence_score = result.confidence_score
            session.healing_strategy = result.adaptation_method.value
            session.performance_metrics = {
                "adaptation_time_ms": adaptation_ms,
                "strategies_run": run.strategies_run,
                "strategy_execution_times": {o.strategy: o.execution_time_ms for o in run.outcomes},
                "strategy_errors": {o.strategy: o.error for o in run.outcomes if o.error},
            }

            return await self._decide(session, failed_step, result, configuration,
                                      start_time, healing_logger)

        except Exception as e:
            return await self._handle_workflow_error(session, session_id, e, start_time, healing_logger)

    def queue_healing(self, execution: TestExecution, failed_step: TestStep, failure: StepFailure,
                      page, priority: int = 1) -> str:
        """Queue a healing request; the returned id becomes the session id once it runs."""
        return self.scheduler.queue(execution, failed_step, failure, page, priority)

    async def capture_baseline(self, execution: TestExecution, page) -> Optional[str]:
        """Snapshot the page's DOM hash onto `execution` before its steps run."""
        return await self.classifier.capture_baseline(execution, page)

    async def get_healing_session_status(self, session_id: str) -> Optional[HealingSession]:
        return await self.repository.get(session_id)

    async def approve_healing(self, session_id: str, approved_by: str,
                              review_notes: Optional[str] = None) -> ReviewResult:
        """Apply the adaptation of a session waiting for review."""
        async with self._review_lock:
            session, error = await self._reviewable_session(session_id)
            if error:
                logger.error(f"Failed to approve healing {session_id}: {error}")
                return ReviewResult(success=False, session_id=session_id, error_message=error)

            update = session.pending_update
            if update is None:
                error = "Session has no pending selector update"
                logger.error(f"Failed to approve healing {session_id}: {error}")
                return ReviewResult(success=False, session_id=session_id, error_message=error)

            if not await self.updater.apply(update):
                error = f"Failed to apply selector update {update.id}"
                logger.error(f"Failed to approve healing {session_id}: {error}")
                return ReviewResult(success=False, session_id=session_id, error_message=error)

            session.successful_adaptations.append(update)
            session.pending_update = None
            session.reviewed_by = approved_by
            session.reviewed_at = datetime.now()
            session.review_notes = review_notes or ""
            await self._transition(session, HealingStatus.COMPLETED, f"Approved by {approved_by}")

        self.audit.log_review(session, True, approved_by)
        logger.info(f"Healing session {session_id} approved by {approved_by}")
        await self._publish_completed(session, None)
        return ReviewResult(success=True, session_id=session_id, applied_adaptations=[update])

    async def reject_healing(self, session_id: str, rejected_by: str, reason: str) -> ReviewResult:
        """Reject a session waiting for review; nothing is written back."""
        async with self._review_lock:
            session, error = await self._reviewable_session(session_id)
            if error:
                logger.error(f"Failed to reject healing {session_id}: {error}")
                return ReviewResult(success=False, session_id=session_id, error_message=error)

            session.reviewed_by = rejected_by
            session.reviewed_at = datetime.now()
            session.review_notes = f"Rejected: {reason}"
            await self._transition(session, HealingStatus.FAILED, session.review_notes)

        self.audit.log_review(session, False, rejected_by)
        logger.info(f"Healing session {session_id} rejected by {rejected_by}: {reason}")
        await self._publish_completed(session, None)
        return ReviewResult(success=True, session_id=session_id)

    async def rollback_selector_update(self, update_id: str, reason: str = "") -> RollbackResult:
        """Restore the locator a selector update replaced."""
        result = await self.updater.rollback(update_id, reason)
        if not result.success:
            return result

        try:
            update = await self.updater.get(update_id)
            session = await self.repository.get(update.healing_session_id) if update else None
            if session is not None:
                for applied in session.successful_adaptations:
                    if applied.id == update_id:
                        applied.rolled_back_at = update.rolled_back_at
                session.updated_at = datetime.now()
                await self.repository.save(session)
        except Exception as e:
            # The step locator is already restored; only the session bookkeeping is stale.
            logger.error(f"Rolled back {update_id} but could not mark its session: {e}", exc_info=True)
            self.audit.log_error("orchestrator", str(e), details={"update_id": update_id})
        return result

    # ------------------------------------------------------------------
    # Workflow steps
    # ------------------------------------------------------------------

    async def _run_queued(self, item: QueuedHealing) -> HealingWorkflowResult:
        return await self.initiate_healing(
            item.execution, item.failed_step, item.failure, item.page,
            trigger="automatic", session_id=item.session_id,
        )

    async def _load_configuration(self, project_id: str) -> HealingConfiguration:
        try:
            configuration = await self.configuration_provider.get_healing_configuration(project_id)
        except Exception as e:
            reason = e.reason if isinstance(e, ConfigurationUnavailable) else str(e)
            logger.warning(f"Healing configuration unavailable for {project_id} ({reason}); using defaults")
            self.audit.log_configuration_fallback(project_id, reason)
            return default_configuration(project_id)
        return configuration or default_configuration(project_id)

    def _create_session(self, session_id: str, execution: TestExecution, failed_step: TestStep,
                        failure: StepFailure, trigger_type: TriggerType) -> HealingSession:
        failure_type = failure.failure_type or self.classifier.categorize_failure(failure.error_message)
        return HealingSession(
            id=session_id,
            test_case_id=execution.test_case_id,
            execution_id=execution.id,
            trigger_type=trigger_type,
            failure_details=FailureDetails(
                failed_step_id=failed_step.id,
                failure_type=failure_type,
                original_selector=failed_step.element,
                error_message=failure.error_message,
                page_url=failure.page_url,
                screenshot_url=failure.screenshot_url,
            ),
            project_id=execution.project_id,
            created_by=execution.initiated_by,
        )

    @staticmethod
    def _adaptation_context(session: HealingSession, failed_step: TestStep,
                            failure: StepFailure) -> AdaptationContext:
        return AdaptationContext(
            test_case_id=session.test_case_id,
            step_id=failed_step.id,
            original_selector=failed_step.element,
            error_message=failure.error_message,
            page_url=failure.page_url,
            screenshot_url=failure.screenshot_url,
            action_type=failed_step.action,
            expected_outcome=failed_step.description,
            semantic_description=f"{failed_step.action} on {failed_step.element}",
        )

    @staticmethod
    def _attempt_from_result(session: HealingSession, failed_step: TestStep,
                             result: AdaptationResult, execution_time_ms: float) -> HealingAttempt:
        return HealingAttempt(
            attempt_number=session.next_attempt_number(),
            strategy_used=result.adaptation_method.value,
            original_selector=failed_step.element,
            proposed_selector=result.new_selector,
            confidence_score=result.confidence_score,
            reasoning=f"Adaptation using {result.adaptation_method.value}",
            validation_results=result.validation_results,
            execution_time_ms=execution_time_ms,
            success=result.success,
            error_message=None if result.success else "Adaptation failed",
        )

    @staticmethod
    def _build_update(session: HealingSession, failed_step: TestStep,
                      result: AdaptationResult) -> SelectorUpdate:
        return SelectorUpdate(
            id=str(uuid.uuid4()),
            healing_session_id=session.id,
            test_case_id=session.test_case_id,
            step_id=failed_step.id,
            original_selector=failed_step.element,
            new_selector=result.new_selector,
            confidence_score=result.confidence_score,
            # The step's own locator is what a rollback must restore.
            rollback_data=RollbackData(
                original_selector=failed_step.element,
                original_context=result.rollback_data.original_context,
                adaptation_timestamp=result.rollback_data.adaptation_timestamp,
            ),
            update_reason=result.adaptation_method.value,
            semantic_similarity=result.semantic_similarity,
            alternative_selectors=list(result.alternative_selectors),
            context_preservation={
                "user_intent_preserved": True,
                "functionality_maintained": True,
                "visual_consistency": (
                    result.validation_results.visual_similarity > VISUAL_CONSISTENCY_THRESHOLD
                ),
            },
        )

    async def _decide(self, session: HealingSession, failed_step: TestStep, result: AdaptationResult,
                      configuration: HealingConfiguration, start_time: float,
                      healing_logger: HealingLoggerAdapter) -> HealingWorkflowResult:
        confidence = result.confidence_score

        if not result.success:
            return await self._fail(session, result.reason or "No successful adaptations",
                                    start_time, configuration, healing_logger)

        if confidence < configuration.require_review_threshold:
            return await self._fail(
                session,
                f"Adaptation confidence {confidence:.2f} is below the review threshold "
                f"{configuration.require_review_threshold:.2f}",
                start_time, configuration, healing_logger,
            )

        update = self._build_update(session, failed_step, result)

        if confidence < configuration.confidence_threshold:
            session.pending_update = update
            await self.updater.propose(update)
            await self._transition(
                session, HealingStatus.REQUIRES_REVIEW,
                f"Confidence {confidence:.2f} below auto-apply threshold "
                f"{configuration.confidence_threshold:.2f}",
            )
            return await self._finish(session, start_time, configuration, healing_logger)

        if not await self.updater.apply(update):
            return await self._fail(session, f"Failed to apply selector update {update.id}",
                                    start_time, configuration, healing_logger)

        session.successful_adaptations.append(update)
        await self._transition(session, HealingStatus.COMPLETED,
                               f"Applied {update.new_selector} with confidence {confidence:.2f}")
        return await self._finish(session, start_time, configuration, healing_logger)

    async def _transition(self, session: HealingSession, status: HealingStatus, reason: str = "") -> None:
        previous = session.status
        session.transition_to(status)
        await self.repository.save(session)
        self.audit.log_status_change(session, previous, reason)
        logger.debug(f"Session {session.id}: {previous.value} -> {status.value}")

    async def _fail(self, session: HealingSession, message: str, start_time: float,
                    configuration: Optional[HealingConfiguration],
                    healing_logger: HealingLoggerAdapter) -> HealingWorkflowResult:
        session.error_message = message
        await self._transition(session, HealingStatus.FAILED, message)
        return await self._finish(session, start_time, configuration, healing_logger)

    async def _finish(self, session: HealingSession, start_time: float,
                      configuration: Optional[HealingConfiguration],
                      healing_logger: HealingLoggerAdapter) -> HealingWorkflowResult:
        duration = time.time() - start_time
        session.performance_metrics["total_execution_time_ms"] = duration * 1000
        await self.repository.save(session)
        result = self._workflow_result(session, duration * 1000)

        self.metrics.record_session_complete(session.id, session.status, duration * 1000,
                                             session.error_message)
        self.audit.log_session_completed(session, duration)
        if result.success:
            healing_logger.log_operation_success(
                "healing_session", duration,
                final_status=session.status.value,
                confidence=session.confidence_score,
            )
        else:
            healing_logger.log_operation_failure(
                "healing_session", duration, session.error_message or "Healing failed",
                error_code=session.status.value.upper(),
            )

        await self._publish_completed(session, configuration, result)
        return result

    async def _handle_workflow_error(self, session: Optional[HealingSession], session_id: str,
                                     error: Exception, start_time: float,
                                     healing_logger: HealingLoggerAdapter) -> HealingWorkflowResult:
        failure = WorkflowFailure(session_id, str(error) or type(error).__name__)
        logger.error(str(failure), exc_info=True)
        self.audit.log_error("orchestrator", failure.reason, session_id=session_id)

        if session is None:
            healing_logger.log_operation_failure("healing_session", time.time() - start_time,
                                                 failure.reason, error_code="WORKFLOW_FAILURE")
            return HealingWorkflowResult(
                success=False,
                session_id=session_id,
                final_status=HealingStatus.FAILED,
                execution_time_ms=(time.time() - start_time) * 1000,
                error_message=failure.reason,
            )

        session.error_message = failure.reason
        if session.can_transition_to(HealingStatus.FAILED):
            try:
                await self._transition(session, HealingStatus.FAILED, failure.reason)
            except InvalidStateTransition as e:
                logger.error(f"Could not mark session {session_id} failed: {e}")
        return await self._finish(session, start_time, None, healing_logger)

    async def _reviewable_session(self, session_id: str):
        session = await self.repository.get(session_id)
        if session is None:
            return None, str(SessionNotFound(session_id))
        if session.status != HealingStatus.REQUIRES_REVIEW:
            return None, f"Session is not in review status: {session.status.value}"
        return session, None

    @staticmethod
    def _workflow_result(session: HealingSession, execution_time_ms: float) -> HealingWorkflowResult:
        return HealingWorkflowResult(
            success=session.status in (HealingStatus.COMPLETED, HealingStatus.REQUIRES_REVIEW),
            session_id=session.id,
            final_status=session.status,
            confidence_score=session.confidence_score,
            execution_time_ms=execution_time_ms,
            healing_attempts=list(session.healing_attempts),
            successful_adaptations=list(session.successful_adaptations),
            error_message=session.error_message,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    @staticmethod
    def _real_time_updates(configuration: Optional[HealingConfiguration]) -> bool:
        return configuration is None or configuration.notification_settings.real_time_updates

    async def _publish(self, session: HealingSession, payload: Dict[str, Any]) -> None:
        try:
            await self.notifier.publish(session_topic(session.id), payload)
        except Exception as e:
            logger.warning(f"Failed to publish {payload.get('type')} for session {session.id}: {e}")

    async def _publish_progress(self, session: HealingSession,
                                configuration: HealingConfiguration, message: str) -> None:
        if not self._real_time_updates(configuration):
            return
        await self._publish(session, {
            "type": "healing_progress",
            "session_id": session.id,
            "status": session.status.value,
            "message": message,
            "timestamp": datetime.now().isoformat(),
        })

    async def _publish_completed(self, session: HealingSession,
                                 configuration: Optional[HealingConfiguration],
                                 result: Optional[HealingWorkflowResult] = None) -> None:
        if not self._real_time_updates(configuration):
            return
        result = result or self._workflow_result(session, 0.0)
        await self._publish(session, {
            "type": "healing_completed",
            "session_id": session.id,
            "status": session.status.value,
            "result": result.to_dict(),
            "timestamp": datetime.now().isoformat(),
        })

    def active_sessions(self) -> List[HealingSession]:
        return self.repository.active_sessions()
