"""Live-page validation of proposed locators."""

import asyncio
import logging
from dataclasses import replace
from typing import Optional

from ..core.models.healing_models import AdaptationResult, ValidationResults

logger = logging.getLogger("healing.validator")

# Strategies do not compute a visual comparison; found elements get this score.
VISUAL_SIMILARITY_PLACEHOLDER = 0.8
VALIDATION_PENALTY = 0.5


class CandidateValidator:
    """Side-effect-free checks of a locator against the current page."""

    async def validate(self, selector: str, page, timeout_ms: Optional[int] = None) -> ValidationResults:
        """Check `selector` on `page`.

        With `timeout_ms`, a page that does not answer in time counts as the
        element not being found.
        """
        try:
            if timeout_ms:
                return await asyncio.wait_for(self._check(selector, page), timeout_ms / 1000)
            return await self._check(selector, page)
        except asyncio.TimeoutError:
            logger.warning(f"Validation of {selector} timed out after {timeout_ms} ms")
            return ValidationResults()

    async def _check(self, selector: str, page) -> ValidationResults:
        try:
            element = page.locate(selector)
            visible = await element.is_visible()
            try:
                enabled = await element.is_enabled()
            except Exception:
                enabled = False
        except Exception as e:
            logger.debug(f"Validation of {selector} failed: {e}")
            return ValidationResults()

        return ValidationResults(
            element_found=visible,
            functionality_preserved=enabled,
            interaction_successful=visible and enabled,
            visual_similarity=VISUAL_SIMILARITY_PLACEHOLDER if visible else 0.0,
        )

    async def validate_adaptation(self, result: AdaptationResult, page,
                                  timeout_ms: Optional[int] = None) -> AdaptationResult:
        """Re-validate the winning candidate.

        A successful result whose locator no longer finds an element comes
        back with half its confidence and ``success=False``. Failed results are
        returned untouched.
        """
        if not result.success:
            return result

        validation = await self.validate(result.new_selector, page, timeout_ms)
        if validation.element_found:
            return result.with_validation(validation)

        logger.warning(
            f"Winning locator {result.new_selector} not found on revalidation, "
            f"confidence {result.confidence_score:.2f} halved"
        )
        return replace(
            result,
            success=False,
            confidence_score=result.confidence_score * VALIDATION_PENALTY,
            validation_results=validation,
            reason="Winning locator failed validation",
        )
