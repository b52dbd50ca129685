"""
In-memory stand-ins for the browser page and element ports.

Elements are registered per selector string; every other selector resolves
to an invisible element with no attributes.
"""

import asyncio
from typing import Any, Dict, List, Optional

from locator_healing.services.failure_classifier import DOM_HASH_SCRIPT, PAGE_HTML_SCRIPT
from locator_healing.services.semantic_profiler import DESCRIBE_ELEMENT_SCRIPT


class FakeElement:
    def __init__(self, visible: bool = True, enabled: bool = True, text: str = "",
                 attributes: Optional[Dict[str, str]] = None, box: Optional[Dict[str, float]] = None,
                 tag: Optional[str] = None, error: Optional[Exception] = None,
                 delay: float = 0.0):
        self.visible = visible
        self.enabled = enabled
        self.text = text
        self.attributes = dict(attributes or {})
        self.box = box
        self.tag = tag
        self.error = error
        self.delay = delay  # seconds is_visible() takes to answer
        self.clicks = 0

    def _check(self):
        if self.error is not None:
            raise self.error

    async def is_visible(self) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        self._check()
        return self.visible

    async def is_enabled(self) -> bool:
        self._check()
        return self.enabled

    async def bounding_box(self) -> Optional[Dict[str, float]]:
        self._check()
        return self.box if self.visible else None

    async def text_content(self) -> Optional[str]:
        self._check()
        return self.text

    async def get_attribute(self, name: str) -> Optional[str]:
        self._check()
        return self.attributes.get(name)

    async def click(self) -> None:
        self._check()
        self.clicks += 1

    def describe(self) -> Optional[Dict[str, Any]]:
        if not self.tag:
            return None
        return {
            "tag": self.tag,
            "attributes": dict(self.attributes),
            "styles": {},
            "parents": [],
            "siblings": [],
            "children": [],
        }


class FakePage:
    def __init__(self, url: str = "http://localhost:8080/login", dom_hash: Optional[str] = None,
                 html: Optional[str] = None):
        self._url = url
        self.dom_hash = dom_hash
        self.html = html
        self.elements: Dict[str, FakeElement] = {}
        self.located: List[str] = []

    def add(self, selector: str, **kwargs) -> FakeElement:
        element = FakeElement(**kwargs)
        self.elements[selector] = element
        return element

    def remove(self, selector: str) -> None:
        self.elements.pop(selector, None)

    def locate(self, selector: str) -> FakeElement:
        self.located.append(selector)
        return self.elements.get(selector) or FakeElement(visible=False, enabled=False)

    async def url(self) -> str:
        return self._url

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if script == DESCRIBE_ELEMENT_SCRIPT:
            element = self.elements.get(arg)
            return element.describe() if element and element.visible else None
        if script == DOM_HASH_SCRIPT:
            return self.dom_hash
        if script == PAGE_HTML_SCRIPT:
            return self.html
        raise RuntimeError("Unsupported script")


class FakeCompletionClient:
    """Returns canned completions and records the prompts it saw."""

    def __init__(self, response: str = "[]", error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, prompt: str, options: Optional[Dict[str, Any]] = None) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


class RecordingNotifier:
    def __init__(self):
        self.events: List[tuple] = []

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        self.events.append((topic, payload))

    def types(self) -> List[str]:
        return [payload["type"] for _, payload in self.events]
