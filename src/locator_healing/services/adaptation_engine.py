"""Selector adaptation engine: runs the strategy pipeline and picks the winner."""

import time
from typing import Iterable, List, Optional

from ..core.config import settings
from ..core.logging_config import get_healing_logger
from ..core.metrics import MetricsCollector, get_metrics_collector
from ..core.models.healing_models import (
    AdaptationContext,
    AdaptationResult,
    ElementSemanticProfile,
    HealingConfiguration,
    PipelineRun,
    StrategyOutcome,
)
from .adaptation_strategies import AdaptationStrategy


class SelectorAdaptationEngine:
    """Runs adaptation strategies in priority order.

    Strategies are awaited one after the other. A strategy that raises is
    recorded as an error outcome and skipped. A result counts only if it
    succeeded and cleared its strategy's own threshold; among those, the
    highest confidence wins and the first one seen keeps ties. The pipeline
    stops as soon as the best confidence reaches ``early_exit_confidence``.
    """

    def __init__(self, strategies: Iterable[AdaptationStrategy],
                 early_exit_confidence: Optional[float] = None,
                 metrics: Optional[MetricsCollector] = None):
        self._strategies: List[AdaptationStrategy] = list(strategies)
        self.early_exit_confidence = (
            settings.EARLY_EXIT_CONFIDENCE if early_exit_confidence is None else early_exit_confidence
        )
        self.metrics = metrics or get_metrics_collector()

    def register(self, strategy: AdaptationStrategy) -> None:
        self._strategies.append(strategy)

    @property
    def strategies(self) -> List[AdaptationStrategy]:
        """Registered strategies in execution order (priority, then registration)."""
        # sorted() is stable, so registration order breaks priority ties.
        return sorted(self._strategies, key=lambda s: s.priority)

    def _enabled(self, configuration: Optional[HealingConfiguration]) -> List[AdaptationStrategy]:
        strategies = self.strategies
        if configuration and configuration.strategy_preferences:
            preferred = set(configuration.strategy_preferences)
            strategies = [s for s in strategies if s.name in preferred]
        return strategies

    async def run_strategy(self, strategy: AdaptationStrategy, profile: ElementSemanticProfile,
                           page, context: AdaptationContext) -> StrategyOutcome:
        """Execute one strategy, converting any exception into an error outcome."""
        start = time.time()
        outcome = StrategyOutcome(
            strategy=strategy.name,
            priority=strategy.priority,
            confidence_threshold=strategy.confidence_threshold,
        )
        try:
            outcome.result = await strategy.execute(profile, page, context)
        except Exception as e:
            outcome.error = str(e) or type(e).__name__
        outcome.execution_time_ms = (time.time() - start) * 1000
        return outcome

    async def adapt_selector(self, profile: ElementSemanticProfile, page, context: AdaptationContext,
                             configuration: Optional[HealingConfiguration] = None) -> PipelineRun:
        log = get_healing_logger("engine", test_case=context.test_case_id)
        log.log_operation_start("adapt_selector", original_selector=profile.selector,
                                step_id=context.step_id)
        start = time.time()

        outcomes: List[StrategyOutcome] = []
        best: Optional[AdaptationResult] = None
        best_strategy: Optional[str] = None

        for strategy in self._enabled(configuration):
            outcome = await self.run_strategy(strategy, profile, page, context)
            outcomes.append(outcome)
            self.metrics.record_strategy_outcome(outcome)

            if outcome.error:
                log.warning(f"Strategy failed: {strategy.display_name or strategy.name}: {outcome.error}",
                            extra={'operation': 'adapt_selector', 'metadata': {'strategy': strategy.name}})
                continue

            log.debug(
                f"{strategy.name} returned success={outcome.result.success} "
                f"confidence={outcome.result.confidence_score:.2f} qualified={outcome.qualified}"
            )
            if outcome.qualified and (best is None or outcome.result.confidence_score > best.confidence_score):
                best = outcome.result
                best_strategy = strategy.name

            if best is not None and best.confidence_score >= self.early_exit_confidence:
                log.info(f"Early exit after {strategy.name} with confidence {best.confidence_score:.2f}")
                break

        if best is None:
            best = AdaptationResult.failure(profile, "No successful adaptations")
        else:
            self.metrics.record_strategy_win(best_strategy)

        duration = time.time() - start
        log.log_operation_success(
            "adapt_selector", duration,
            adaptation_method=best.adaptation_method.value,
            confidence=best.confidence_score,
            strategies_run=[o.strategy for o in outcomes],
        )
        return PipelineRun(best=best, outcomes=outcomes)
