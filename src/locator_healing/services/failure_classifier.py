"""
Failure classification for locator healing.

Decides whether a failed step looks like UI drift (the locator no longer
matches a page that changed around it) rather than a functional bug, before
the costlier adaptation pipeline runs.
"""

import logging
import re
import time
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from ..core.models.healing_models import (
    ClassificationResult,
    ElementSemanticProfile,
    FailureType,
    HealingConfiguration,
    StepFailure,
    TestExecution,
    TestStep,
    clamp_confidence,
)
from .semantic_profiler import SemanticProfiler

logger = logging.getLogger("healing.classifier")


# 32-bit rolling hash of the body markup.
DOM_HASH_SCRIPT = """
() => {
  const bodyHtml = document.body ? document.body.innerHTML : '';
  let hash = 0;
  for (let i = 0; i < bodyHtml.length; i++) {
    hash = ((hash << 5) - hash) + bodyHtml.charCodeAt(i);
    hash = hash & hash;
  }
  return hash.toString();
}
"""

PAGE_HTML_SCRIPT = "() => document.documentElement.outerHTML"

HEALABLE_PROBABILITY = 0.7

_ID_TOKEN = re.compile(r"#([A-Za-z][\w-]*)")
_CLASS_TOKEN = re.compile(r"\.([A-Za-z_][\w-]*)")
_QUOTED_TEXT = re.compile(r'(?:text=|has-text\()\s*"([^"]+)"')
_TEST_ID = re.compile(r'\[data-testid=["\']?([^"\'\]]+)')


class FailureClassifier:
    """Classifies step failures as healable UI changes or not."""

    # Checked in order; the first matching type wins.
    FAILURE_PATTERNS: List[Tuple[FailureType, List[str]]] = [
        (FailureType.ELEMENT_NOT_FOUND, [
            r"NoSuchElementException",
            r"Unable to locate element",
            r"element.*not (found|visible)",
            r"Could not find element",
            r"No element found",
            r"waiting for (locator|selector)",
        ]),
        (FailureType.TIMEOUT, [
            r"TimeoutException",
            r"timeout",
            r"timed out",
        ]),
        (FailureType.ASSERTION_FAILED, [
            r"AssertionError",
            r"assertion",
            r"\bexpected\b",
        ]),
    ]

    # Prior probability that a failure of each type is caused by a UI change.
    BASE_PROBABILITY: Dict[FailureType, float] = {
        FailureType.ELEMENT_NOT_FOUND: 0.8,
        FailureType.TIMEOUT: 0.6,
        FailureType.INTERACTION_FAILED: 0.5,
        FailureType.ASSERTION_FAILED: 0.2,
    }

    def __init__(self, profiler: Optional[SemanticProfiler] = None, completion_client=None,
                 ai_options: Optional[Dict] = None):
        self.profiler = profiler or SemanticProfiler()
        self.completion_client = completion_client
        self.ai_options = ai_options or {"max_tokens": 10, "temperature": 0.1}

    def categorize_failure(self, error_message: str) -> FailureType:
        for failure_type, patterns in self.FAILURE_PATTERNS:
            for pattern in patterns:
                if re.search(pattern, error_message or "", re.IGNORECASE):
                    return failure_type
        return FailureType.INTERACTION_FAILED

    @staticmethod
    def is_excluded(selector: str, configuration: Optional[HealingConfiguration]) -> bool:
        if not configuration or not selector:
            return False
        return any(re.search(pattern, selector) for pattern in configuration.exclusion_patterns)

    async def classify(self, execution: TestExecution, failed_step: TestStep, failure: StepFailure,
                       page, configuration: Optional[HealingConfiguration] = None) -> ClassificationResult:
        """Estimate the probability that `failure` was caused by a UI change.

        Never raises: any internal error yields a non-healable result with
        confidence 0.
        """
        start = time.time()
        try:
            result = await self._classify(execution, failed_step, failure, page, configuration)
        except Exception as e:
            logger.error(f"Failure classification failed for step {failed_step.id}: {e}", exc_info=True)
            return ClassificationResult(
                is_healable=False,
                confidence=0.0,
                reason=f"Failed to analyze failure: {e}",
                failure_type=failure.failure_type or FailureType.INTERACTION_FAILED,
            )

        logger.info(
            f"Classified failure of step {failed_step.id}: healable={result.is_healable} "
            f"confidence={result.confidence:.2f}",
            extra={'duration': time.time() - start, 'metadata': result.details}
        )
        return result

    async def _classify(self, execution: TestExecution, failed_step: TestStep, failure: StepFailure,
                        page, configuration: Optional[HealingConfiguration]) -> ClassificationResult:
        selector = failed_step.element or ""
        failure_type = failure.failure_type or self.categorize_failure(failure.error_message)

        if self.is_excluded(selector, configuration):
            return ClassificationResult(
                is_healable=False,
                confidence=0.0,
                reason=f"Selector {selector} matches an exclusion pattern",
                failure_type=failure_type,
                details={"excluded": True},
            )

        probability = self.BASE_PROBABILITY[failure_type]
        details: Dict[str, object] = {"base_probability": probability}

        still_visible = False
        if selector:
            try:
                still_visible = await page.locate(selector).is_visible()
            except Exception as e:
                logger.debug(f"Visibility probe failed for {selector}: {e}")
        details["element_visible"] = still_visible

        if still_visible:
            # The locator still resolves, so the locator is probably not the problem.
            probability -= 0.3
            details["alternative_count"] = 0
        else:
            alternatives = await self.profiler.find_alternative_matches(self._hint_profile(selector), page)
            details["alternative_count"] = len(alternatives)
            details["alternatives"] = [alt.selector for alt in alternatives]
            if alternatives:
                probability += 0.1

        dom_hash = await self._dom_hash(page)
        if dom_hash is not None and execution.baseline_dom_hash:
            dom_changed = dom_hash != execution.baseline_dom_hash
            details["dom_changed"] = dom_changed
            probability += 0.1 if dom_changed else -0.2

        structure = await self._analyze_structure(selector, page)
        if structure:
            details["structure"] = structure
            if structure.get("selector_matches") == 0:
                probability += 0.05
            elif structure.get("selector_matches", 0) > 0 and not still_visible:
                # Present in markup but hidden: more likely an app state issue.
                probability -= 0.1

        probability = clamp_confidence(probability)

        ai_probability = await self._ai_probability(failed_step, failure, still_visible,
                                                    details.get("alternative_count", 0))
        if ai_probability is not None:
            details["ai_probability"] = ai_probability
            probability = clamp_confidence((probability + ai_probability) / 2)

        is_healable = probability > HEALABLE_PROBABILITY
        return ClassificationResult(
            is_healable=is_healable,
            confidence=probability,
            reason=(
                "Failure appears to be caused by UI changes" if is_healable
                else "Failure does not appear to be UI-related"
            ),
            failure_type=failure_type,
            details=details,
        )

    @staticmethod
    def _hint_profile(selector: str) -> ElementSemanticProfile:
        """Recover id, classes and text from a locator string for alternative probing."""
        attributes = {}
        id_match = _ID_TOKEN.search(selector)
        if id_match:
            attributes["id"] = id_match.group(1)
        classes = _CLASS_TOKEN.findall(selector)
        if classes:
            attributes["class"] = " ".join(classes)
        test_id = _TEST_ID.search(selector)
        if test_id:
            attributes["data-testid"] = test_id.group(1)
        text_match = _QUOTED_TEXT.search(selector)
        return ElementSemanticProfile(
            selector=selector,
            attributes=attributes,
            text_content=text_match.group(1) if text_match else "",
        )

    async def capture_baseline(self, execution: TestExecution, page) -> Optional[str]:
        """Record the page's current DOM hash as the execution's baseline.

        Call this while the page is known to be good, before the test steps run.
        Later classifications compare against it. Returns the hash, or None when
        the page could not be hashed (the existing baseline is then kept).
        """
        dom_hash = await self._dom_hash(page)
        if dom_hash is None:
            logger.warning(f"Could not capture DOM baseline for execution {execution.id}")
            return None
        execution.baseline_dom_hash = dom_hash
        logger.info(f"Captured DOM baseline for execution {execution.id}: {dom_hash}")
        return dom_hash

    async def _dom_hash(self, page) -> Optional[str]:
        try:
            value = await page.evaluate(DOM_HASH_SCRIPT)
        except Exception as e:
            logger.debug(f"DOM hash capture failed: {e}")
            return None
        return str(value) if value is not None else None

    async def _analyze_structure(self, selector: str, page) -> Optional[Dict[str, int]]:
        """Count selector matches and interactive elements in the page markup."""
        try:
            html = await page.evaluate(PAGE_HTML_SCRIPT)
        except Exception as e:
            logger.debug(f"Page markup capture failed: {e}")
            return None
        if not isinstance(html, str) or not html:
            return None

        soup = BeautifulSoup(html, "html.parser")
        structure = {
            "element_count": len(soup.find_all(True)),
            "interactive_count": len(soup.find_all(["a", "button", "input", "select", "textarea"])),
        }
        if selector and not selector.startswith(("text=", "//", "xpath=")) and ":has-text(" not in selector:
            try:
                structure["selector_matches"] = len(soup.select(selector))
            except Exception as e:
                logger.debug(f"Selector {selector} is not parseable as CSS: {e}")
        return structure

    async def _ai_probability(self, step: TestStep, failure: StepFailure, element_found: bool,
                              alternative_count: int) -> Optional[float]:
        if self.completion_client is None:
            return None

        prompt = (
            "Analyze this test failure to determine if it's caused by UI changes:\n\n"
            "Step Details:\n"
            f"- Action: {step.action}\n"
            f"- Element: {step.element}\n"
            f"- Description: {step.description}\n\n"
            f"Error Message: {failure.error_message}\n\n"
            "Element Analysis:\n"
            f"- Element Found: {element_found}\n"
            f"- Alternative Matches: {alternative_count}\n\n"
            "Provide a probability (0-1) that this failure is due to UI changes rather than "
            "a functional bug.\nReturn only a number between 0 and 1:"
        )
        try:
            response = await self.completion_client.complete(prompt, self.ai_options)
            return clamp_confidence(float(response.strip()))
        except Exception as e:
            logger.warning(f"Failed to classify failure with AI for step {step.id}: {e}")
            return None
