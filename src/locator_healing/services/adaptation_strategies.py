"""
Selector adaptation strategies.

Each strategy proposes a replacement locator for a broken one, together with
a confidence score. Strategies carry a priority (lower runs first) and their
own confidence threshold; the adaptation engine decides which result wins.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..core.config import settings
from ..core.exceptions import StrategyExecutionError
from ..core.models.healing_models import (
    AdaptationContext,
    AdaptationMethod,
    AdaptationResult,
    AlternativeSelector,
    ElementPosition,
    ElementSemanticProfile,
    RollbackData,
    clamp_confidence,
)
from .candidate_validator import CandidateValidator
from .semantic_profiler import class_selector, css_escape_quotes, id_selector

logger = logging.getLogger("healing.strategies")


class AdaptationStrategy(ABC):
    """Base class for a pluggable locator adaptation algorithm."""

    method: AdaptationMethod
    display_name: str = ""
    default_priority: int = 0
    default_threshold: float = 0.0

    def __init__(self, validator: Optional[CandidateValidator] = None,
                 priority: Optional[int] = None, confidence_threshold: Optional[float] = None):
        self.validator = validator or CandidateValidator()
        self.priority = self.default_priority if priority is None else priority
        self.confidence_threshold = (
            self.default_threshold if confidence_threshold is None else confidence_threshold
        )

    @property
    def name(self) -> str:
        return self.method.value

    @abstractmethod
    async def execute(self, profile: ElementSemanticProfile, page,
                      context: AdaptationContext) -> AdaptationResult:
        """Propose a replacement for ``profile.selector``.

        Returns the canonical failure result when nothing is found. May raise
        StrategyExecutionError; the engine skips the strategy in that case.
        """

    async def _is_visible(self, page, selector: str) -> bool:
        try:
            return await page.locate(selector).is_visible()
        except Exception as e:
            logger.debug(f"{self.name}: probe {selector} failed: {e}")
            return False

    async def _build_result(self, profile: ElementSemanticProfile, page, context: AdaptationContext,
                            ranked: List[AlternativeSelector], semantic_similarity: float) -> AdaptationResult:
        best, rest = ranked[0], ranked[1:]
        return AdaptationResult(
            success=True,
            new_selector=best.selector,
            confidence_score=best.confidence,
            adaptation_method=self.method,
            semantic_similarity=semantic_similarity,
            validation_results=await self.validator.validate(best.selector, page),
            alternative_selectors=rest,
            rollback_data=RollbackData(
                original_selector=profile.selector,
                original_context=context.to_dict(),
                adaptation_timestamp=datetime.now(),
            ),
            reason=best.reasoning,
        )

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(priority={self.priority}, "
                f"confidence_threshold={self.confidence_threshold})")


class SemanticMatchingStrategy(AdaptationStrategy):
    """Matches by ARIA role, or by the first class on the same tag, near the original position."""

    method = AdaptationMethod.SEMANTIC_MATCHING
    display_name = "Semantic Element Matching"
    default_priority = 1
    default_threshold = 0.8

    ROLE_CONFIDENCE = 0.80
    CLASS_CONFIDENCE = 0.70
    PROXIMITY_BONUS = 0.12
    PROXIMITY_RADIUS_PX = 50

    async def execute(self, profile, page, context):
        candidates: List[Tuple[AlternativeSelector, float]] = []

        role = profile.attributes.get("role")
        if role:
            selector = f'[role="{css_escape_quotes(role)}"]'
            candidate = await self._score(page, profile, selector, self.ROLE_CONFIDENCE, 0.85,
                                          f"Same ARIA role '{role}'")
            if candidate:
                candidates.append(candidate)

        classes = (profile.attributes.get("class") or "").split()
        if classes and profile.element_type not in ("", "unknown"):
            selector = profile.element_type + class_selector(classes[:1])
            candidate = await self._score(page, profile, selector, self.CLASS_CONFIDENCE, 0.75,
                                          f"Same tag with class '{classes[0]}'")
            if candidate:
                candidates.append(candidate)

        if not candidates:
            return AdaptationResult.failure(profile, "No semantic candidates found")

        candidates.sort(key=lambda item: item[0].confidence, reverse=True)
        ranked = [alt for alt, _ in candidates][:3]
        return await self._build_result(profile, page, context, ranked, candidates[0][1])

    async def _score(self, page, profile: ElementSemanticProfile, selector: str, confidence: float,
                     similarity: float, reasoning: str) -> Optional[Tuple[AlternativeSelector, float]]:
        element = page.locate(selector)
        try:
            if not await element.is_visible():
                return None
            box = await element.bounding_box()
        except Exception as e:
            logger.debug(f"semantic_matching: probe {selector} failed: {e}")
            return None

        if box and not profile.position.is_empty:
            current = ElementPosition(x=float(box.get("x", 0)), y=float(box.get("y", 0)))
            if profile.position.distance_to(current) <= self.PROXIMITY_RADIUS_PX:
                confidence += self.PROXIMITY_BONUS
                reasoning += " near original position"

        return (
            AlternativeSelector(
                selector=selector,
                confidence=clamp_confidence(confidence),
                method=self.method.value,
                reasoning=f"{reasoning} (semantic similarity {similarity:.2f})",
            ),
            similarity,
        )


class AttributeAdaptationStrategy(AdaptationStrategy):
    """Rebuilds the locator from the most stable attribute that still resolves."""

    method = AdaptationMethod.ATTRIBUTE_ADAPTATION
    display_name = "Attribute-Based Adaptation"
    default_priority = 2
    default_threshold = 0.7

    # Preference order and fixed confidence per attribute.
    ATTRIBUTE_WEIGHTS = (
        ("data-testid", 0.95),
        ("id", 0.90),
        ("aria-label", 0.85),
        ("name", 0.80),
        ("class", 0.60),
    )

    @staticmethod
    def selector_for(attribute: str, value: str) -> Optional[str]:
        if attribute == "id":
            return id_selector(value)
        if attribute == "class":
            classes = [c for c in value.split() if c]
            return class_selector(classes) if classes else None
        return f'[{attribute}="{css_escape_quotes(value)}"]'

    async def execute(self, profile, page, context):
        alternatives: List[AlternativeSelector] = []
        for attribute, confidence in self.ATTRIBUTE_WEIGHTS:
            value = profile.attributes.get(attribute)
            if not value:
                continue
            selector = self.selector_for(attribute, value)
            if not selector or selector == profile.selector:
                continue
            if await self._is_visible(page, selector):
                alternatives.append(AlternativeSelector(
                    selector=selector,
                    confidence=confidence,
                    method=self.method.value,
                    reasoning=f"Found element using {attribute} attribute",
                ))

        if not alternatives:
            return AdaptationResult.failure(profile, "No attribute-based alternatives found")

        alternatives.sort(key=lambda alt: alt.confidence, reverse=True)
        return await self._build_result(profile, page, context, alternatives, 0.8)


class TextContentMatchingStrategy(AdaptationStrategy):
    """Finds the element again by its visible text."""

    method = AdaptationMethod.TEXT_MATCHING
    display_name = "Text Content Matching"
    default_priority = 3
    default_threshold = 0.6

    EXACT_CONFIDENCE = 0.90
    TAG_TEXT_CONFIDENCE = 0.85
    MIN_TEXT_LENGTH = 3

    async def execute(self, profile, page, context):
        text = (profile.text_content or "").strip()
        if len(text) < self.MIN_TEXT_LENGTH:
            return AdaptationResult.failure(profile, "No meaningful text content")

        quoted = css_escape_quotes(text)
        probes = [(f'text="{quoted}"', self.EXACT_CONFIDENCE, "Exact text match found")]
        if profile.element_type not in ("", "unknown"):
            probes.append((f'{profile.element_type}:has-text("{quoted}")', self.TAG_TEXT_CONFIDENCE,
                           "Element type with exact text match"))

        alternatives = [
            AlternativeSelector(selector=selector, confidence=confidence,
                                method=self.method.value, reasoning=reasoning)
            for selector, confidence, reasoning in probes
            if await self._is_visible(page, selector)
        ]
        if not alternatives:
            return AdaptationResult.failure(profile, "No text-based alternatives found")

        return await self._build_result(profile, page, context, alternatives, 0.85)


class AIAnalysisStrategy(AdaptationStrategy):
    """Asks a text-completion model for up to three alternative locators."""

    method = AdaptationMethod.AI_ANALYSIS
    display_name = "AI-Powered Analysis"
    default_priority = 4
    default_threshold = 0.7

    MAX_ALTERNATIVES = 3
    _FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)

    def __init__(self, completion_client, validator: Optional[CandidateValidator] = None,
                 priority: Optional[int] = None, confidence_threshold: Optional[float] = None,
                 options: Optional[Dict[str, Any]] = None):
        super().__init__(validator, priority, confidence_threshold)
        self.completion_client = completion_client
        self.options = options or {
            "model": settings.AI_MODEL,
            "max_tokens": settings.AI_MAX_TOKENS,
            "temperature": settings.AI_TEMPERATURE,
        }

    def build_prompt(self, profile: ElementSemanticProfile, context: AdaptationContext) -> str:
        return (
            f'Find a CSS selector for element: {profile.element_type} with text "{profile.text_content}". '
            f'Original selector "{profile.selector}" failed with error: {context.error_message}. '
            "Suggest 3 alternative selectors with confidence scores. "
            'Return JSON format: {"alternatives": [{"selector": "...", "confidence": 0.8, "reasoning": "..."}]}'
        )

    def parse_alternatives(self, response: str) -> List[AlternativeSelector]:
        """Parse a JSON array, or an object with an ``alternatives`` array.

        Raises:
            StrategyExecutionError: If the response is not the expected JSON
        """
        cleaned = self._FENCE.sub("", (response or "").strip()).strip()
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise StrategyExecutionError(self.name, f"Malformed JSON from completion: {e}") from e

        if isinstance(payload, dict):
            payload = payload.get("alternatives", [])
        if not isinstance(payload, list):
            raise StrategyExecutionError(self.name, "Completion did not return a list of alternatives")

        alternatives = []
        for item in payload:
            if not isinstance(item, dict) or not item.get("selector"):
                continue
            try:
                confidence = float(item.get("confidence", 0))
            except (TypeError, ValueError):
                continue
            alternatives.append(AlternativeSelector(
                selector=str(item["selector"]),
                confidence=clamp_confidence(confidence),
                method=self.method.value,
                reasoning=str(item.get("reasoning", "")),
            ))

        alternatives.sort(key=lambda alt: alt.confidence, reverse=True)
        return alternatives[:self.MAX_ALTERNATIVES]

    async def execute(self, profile, page, context):
        try:
            response = await self.completion_client.complete(self.build_prompt(profile, context), self.options)
        except StrategyExecutionError:
            raise
        except Exception as e:
            raise StrategyExecutionError(self.name, f"Completion call failed: {e}") from e

        alternatives = self.parse_alternatives(response)
        if not alternatives:
            return AdaptationResult.failure(profile, "AI found no alternatives")

        return await self._build_result(profile, page, context, alternatives, 0.8)


def default_strategies(completion_client=None,
                       validator: Optional[CandidateValidator] = None) -> List[AdaptationStrategy]:
    """The standard pipeline; the AI strategy is included only with a completion client."""
    validator = validator or CandidateValidator()
    strategies: List[AdaptationStrategy] = [
        SemanticMatchingStrategy(validator),
        AttributeAdaptationStrategy(validator),
        TextContentMatchingStrategy(validator),
    ]
    if completion_client is not None:
        strategies.append(AIAnalysisStrategy(completion_client, validator))
    return strategies
