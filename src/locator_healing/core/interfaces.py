"""Collaborator ports consumed by the healing core.

The core never talks to a browser, database, transport or language model
directly. Adapters for each port live in ``locator_healing.services``.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol

from .models.healing_models import HealingConfiguration


class ElementHandle(Protocol):
    """A located page element. Every query is read-only except click()."""

    async def is_visible(self) -> bool: ...

    async def is_enabled(self) -> bool: ...

    async def bounding_box(self) -> Optional[Dict[str, float]]: ...

    async def text_content(self) -> Optional[str]: ...

    async def get_attribute(self, name: str) -> Optional[str]: ...

    async def click(self) -> None: ...


class Page(Protocol):
    """Browser page owned by the caller for the duration of a healing call."""

    def locate(self, selector: str) -> ElementHandle: ...

    async def url(self) -> str: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...


class HealingStore(Protocol):
    """Document store with eventual consistency."""

    async def insert(self, collection: str, record: Dict[str, Any]) -> None: ...

    async def update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> None: ...

    async def find_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]: ...

    async def find_where(
        self, collection: str, predicate: Callable[[Dict[str, Any]], bool]
    ) -> List[Dict[str, Any]]: ...


class Notifier(Protocol):
    """Fire-and-forget event publisher."""

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None: ...


class TextCompletionClient(Protocol):
    """Returns the raw completion text for a prompt."""

    async def complete(self, prompt: str, options: Optional[Dict[str, Any]] = None) -> str: ...


class ConfigurationProvider(Protocol):

    async def get_healing_configuration(self, project_id: str) -> HealingConfiguration: ...
