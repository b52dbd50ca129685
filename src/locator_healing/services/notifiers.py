"""Notifier adapters for healing progress events."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("healing.notifier")


def session_topic(session_id: str) -> str:
    return f"healing:{session_id}"


class LoggingNotifier:
    """Writes every event to the ``healing.notifier`` logger."""

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        logger.info(
            f"{topic} {payload.get('type', 'event')}",
            extra={'operation': 'publish', 'metadata': {'topic': topic, **payload}}
        )


class CallbackNotifier:
    """Fans events out to registered callbacks.

    Callbacks are keyed by topic; ``"*"`` receives everything. Both plain
    functions and coroutine functions are accepted. A failing callback is
    logged and does not stop the others.
    """

    def __init__(self):
        self._callbacks: Dict[str, List[Callable[[str, Dict[str, Any]], Any]]] = {}

    def subscribe(self, topic: str, callback: Callable[[str, Dict[str, Any]], Any]) -> None:
        self._callbacks.setdefault(topic, []).append(callback)

    def unsubscribe(self, topic: str, callback: Optional[Callable] = None) -> None:
        if callback is None:
            self._callbacks.pop(topic, None)
            return
        callbacks = self._callbacks.get(topic, [])
        if callback in callbacks:
            callbacks.remove(callback)

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        for callback in self._callbacks.get(topic, []) + self._callbacks.get("*", []):
            try:
                result = callback(topic, payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Notifier callback failed for {topic}: {e}")
