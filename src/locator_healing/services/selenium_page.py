"""Selenium WebDriver adapter for the `Page` / `ElementHandle` ports."""

import asyncio
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

from selenium.common.exceptions import (
    NoSuchElementException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from ..core.config import settings
from ..core.exceptions import ElementNotFound

logger = logging.getLogger("healing.browser")

TEXT_SELECTOR = re.compile(r'^text="(?P<text>.*)"$', re.DOTALL)
HAS_TEXT_SELECTOR = re.compile(
    r'^(?P<tag>[A-Za-z*][\w-]*)?(?P<classes>(?:\.[\w-]+)*):has-text\("(?P<text>.*)"\)$', re.DOTALL
)

# Errors meaning "the element is not there (any more)".
MISSING_ELEMENT_ERRORS = (TimeoutException, NoSuchElementException, StaleElementReferenceException)


def xpath_literal(value: str) -> str:
    """Quote a string for use inside an XPath expression."""
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    parts = value.split('"')
    return "concat(" + ", '\"', ".join(f'"{part}"' for part in parts) + ")"


def _unescape(text: str) -> str:
    return text.replace('\\"', '"').replace("\\\\", "\\")


def translate_selector(selector: str) -> Tuple[str, str]:
    """Map a locator string to a Selenium ``(By, value)`` pair.

    Supported forms: ``xpath=...`` or a bare ``//...`` expression,
    ``id=...``, ``css=...``, ``text="..."`` (exact, whitespace-normalised),
    ``tag.class:has-text("...")`` (substring) and plain CSS.
    """
    selector = selector.strip()
    if selector.startswith("xpath="):
        return By.XPATH, selector[len("xpath="):]
    if selector.startswith("//") or selector.startswith("(//"):
        return By.XPATH, selector
    if selector.startswith("id="):
        return By.ID, selector[len("id="):]
    if selector.startswith("css="):
        return By.CSS_SELECTOR, selector[len("css="):]

    match = TEXT_SELECTOR.match(selector)
    if match:
        text = xpath_literal(_unescape(match.group("text")))
        return By.XPATH, f"//*[normalize-space(.)={text}][not(*[normalize-space(.)={text}])]"

    match = HAS_TEXT_SELECTOR.match(selector)
    if match:
        tag = match.group("tag") or "*"
        conditions = [f"contains(normalize-space(.), {xpath_literal(_unescape(match.group('text')))})"]
        for cls in filter(None, match.group("classes").split(".")):
            conditions.append(f"contains(concat(' ', normalize-space(@class), ' '), ' {cls} ')")
        return By.XPATH, f"//{tag}[{' and '.join(conditions)}]"

    return By.CSS_SELECTOR, selector


class SeleniumElementHandle:
    """Lazily resolved element. Every call re-locates it to avoid stale references."""

    def __init__(self, page: "SeleniumPage", selector: str):
        self.page = page
        self.selector = selector
        self.by, self.value = translate_selector(selector)

    def _find(self):
        wait = WebDriverWait(self.page.driver, self.page.element_wait_timeout_ms / 1000)
        return wait.until(EC.presence_of_element_located((self.by, self.value)))

    def _is_visible_sync(self) -> bool:
        try:
            return self._find().is_displayed()
        except MISSING_ELEMENT_ERRORS:
            return False

    def _is_enabled_sync(self) -> bool:
        try:
            return self._find().is_enabled()
        except MISSING_ELEMENT_ERRORS:
            return False

    def _bounding_box_sync(self) -> Optional[Dict[str, float]]:
        try:
            rect = self._find().rect
        except MISSING_ELEMENT_ERRORS:
            return None
        return {
            "x": float(rect.get("x", 0)),
            "y": float(rect.get("y", 0)),
            "width": float(rect.get("width", 0)),
            "height": float(rect.get("height", 0)),
        }

    def _text_content_sync(self) -> Optional[str]:
        try:
            element = self._find()
            return element.get_attribute("textContent") or element.text
        except MISSING_ELEMENT_ERRORS:
            return None

    def _get_attribute_sync(self, name: str) -> Optional[str]:
        try:
            return self._find().get_attribute(name)
        except MISSING_ELEMENT_ERRORS:
            return None

    def _click_sync(self) -> None:
        try:
            self._find().click()
        except MISSING_ELEMENT_ERRORS as e:
            raise ElementNotFound(self.selector, str(e) or type(e).__name__) from e

    async def is_visible(self) -> bool:
        return await self.page.run(self._is_visible_sync)

    async def is_enabled(self) -> bool:
        return await self.page.run(self._is_enabled_sync)

    async def bounding_box(self) -> Optional[Dict[str, float]]:
        return await self.page.run(self._bounding_box_sync)

    async def text_content(self) -> Optional[str]:
        return await self.page.run(self._text_content_sync)

    async def get_attribute(self, name: str) -> Optional[str]:
        return await self.page.run(self._get_attribute_sync, name)

    async def click(self) -> None:
        await self.page.run(self._click_sync)


class SeleniumPage:
    """Wraps a caller-owned WebDriver. The driver is never quit here.

    WebDriver is not thread-safe, so blocking calls go through a
    single-worker executor.
    """

    def __init__(self, driver, element_wait_timeout_ms: Optional[int] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.driver = driver
        self.element_wait_timeout_ms = element_wait_timeout_ms or settings.ELEMENT_WAIT_TIMEOUT_MS
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="healing-page")

    async def run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, fn, *args)

    def locate(self, selector: str) -> SeleniumElementHandle:
        return SeleniumElementHandle(self, selector)

    async def url(self) -> str:
        return await self.run(lambda: self.driver.current_url)

    def _evaluate_sync(self, script: str, arg: Any) -> Any:
        # Scripts are JS function expressions; call them with the given argument.
        wrapped = f"return ({script}).apply(null, arguments);"
        try:
            if arg is None:
                return self.driver.execute_script(wrapped)
            return self.driver.execute_script(wrapped, arg)
        except WebDriverException as e:
            logger.debug(f"Script evaluation failed: {e}")
            raise

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.run(self._evaluate_sync, script, arg)

    def close(self) -> None:
        """Release the executor; the driver stays open."""
        if self._owns_executor:
            self.executor.shutdown(wait=False)
