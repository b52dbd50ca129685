"""
Text-completion client for the AI-assisted adaptation strategy.

Models tend to wrap the requested JSON in markdown fences or a sentence of
explanation. `CompletionOutputCleaner` strips that before the strategy parses
the response, so only genuinely malformed output is reported as a failure.
"""

import logging
import re
from typing import Any, Dict, Optional

import litellm

from ..core.config import settings
from ..core.exceptions import StrategyExecutionError

logger = logging.getLogger("healing.completion")


class CompletionOutputCleaner:
    """Static helpers that reduce a raw completion to its JSON payload."""

    FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)

    @staticmethod
    def strip_code_fences(text: str) -> str:
        match = CompletionOutputCleaner.FENCE_PATTERN.search(text)
        return match.group(1).strip() if match else text.strip()

    @staticmethod
    def extract_json_block(text: str) -> str:
        """Cut leading and trailing prose around the outermost JSON value.

        Example:
            'Here you go: [{"selector": "#a"}] hope it helps'
            -> '[{"selector": "#a"}]'
        """
        starts = [i for i in (text.find("["), text.find("{")) if i != -1]
        if not starts:
            return text
        start = min(starts)
        closer = "]" if text[start] == "[" else "}"
        end = text.rfind(closer)
        if end <= start:
            return text
        return text[start:end + 1]

    @staticmethod
    def clean_output(text: str) -> str:
        if not isinstance(text, str):
            return text
        cleaned = CompletionOutputCleaner.extract_json_block(
            CompletionOutputCleaner.strip_code_fences(text)
        )
        if cleaned != text:
            logger.debug(f"Cleaned completion output: {len(text)} -> {len(cleaned)} chars")
        return cleaned


class LiteLLMCompletionClient:
    """`TextCompletionClient` backed by ``litellm.acompletion``."""

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None,
                 clean_output: bool = True):
        self.model = model or settings.AI_MODEL
        self.api_key = api_key or settings.AI_API_KEY
        self.clean_output = clean_output

    async def complete(self, prompt: str, options: Optional[Dict[str, Any]] = None) -> str:
        options = dict(options or {})
        model = options.pop("model", None) or self.model
        request: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.pop("max_tokens", settings.AI_MAX_TOKENS),
            "temperature": options.pop("temperature", settings.AI_TEMPERATURE),
        }
        if self.api_key:
            request["api_key"] = self.api_key
        request.update(options)

        logger.debug(f"Requesting completion from {model}")
        try:
            response = await litellm.acompletion(**request)
        except Exception as e:
            raise StrategyExecutionError("ai_analysis", f"completion request failed: {e}") from e

        content = response.choices[0].message.content or ""
        return CompletionOutputCleaner.clean_output(content) if self.clean_output else content
