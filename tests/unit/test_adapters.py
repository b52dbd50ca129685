"""
Unit tests for the collaborator adapters: notifiers, the completion client
and the Selenium page.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from selenium.common.exceptions import NoSuchElementException
from selenium.webdriver.common.by import By

from locator_healing.core.exceptions import ElementNotFound, StrategyExecutionError
from locator_healing.services.completion_client import (
    CompletionOutputCleaner,
    LiteLLMCompletionClient,
)
from locator_healing.services.notifiers import CallbackNotifier, LoggingNotifier, session_topic
from locator_healing.services.selenium_page import SeleniumPage, translate_selector, xpath_literal


def completion_response(content):
    return Mock(choices=[Mock(message=Mock(content=content))])


class TestCallbackNotifier:

    @pytest.mark.asyncio
    async def test_topic_and_wildcard_subscribers(self):
        notifier = CallbackNotifier()
        session_events, all_events = [], []
        notifier.subscribe(session_topic("s1"), lambda topic, payload: session_events.append(payload))
        notifier.subscribe("*", lambda topic, payload: all_events.append(topic))

        await notifier.publish("healing:s1", {"type": "healing_progress"})
        await notifier.publish("healing:s2", {"type": "healing_progress"})

        assert session_events == [{"type": "healing_progress"}]
        assert all_events == ["healing:s1", "healing:s2"]

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self):
        notifier = CallbackNotifier()
        callback = AsyncMock()
        notifier.subscribe("healing:s1", callback)

        await notifier.publish("healing:s1", {"type": "healing_completed"})

        callback.assert_awaited_once_with("healing:s1", {"type": "healing_completed"})

    @pytest.mark.asyncio
    async def test_failing_callback_is_isolated(self):
        notifier = CallbackNotifier()
        received = []
        notifier.subscribe("t", Mock(side_effect=RuntimeError("socket closed")))
        notifier.subscribe("t", lambda topic, payload: received.append(payload))

        await notifier.publish("t", {"type": "x"})

        assert received == [{"type": "x"}]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        notifier = CallbackNotifier()
        callback = Mock()
        other = Mock()
        notifier.subscribe("t", callback)
        notifier.subscribe("t", other)

        notifier.unsubscribe("t", callback)
        await notifier.publish("t", {})
        notifier.unsubscribe("t")
        await notifier.publish("t", {})

        callback.assert_not_called()
        other.assert_called_once()

    @pytest.mark.asyncio
    async def test_logging_notifier(self, caplog):
        with caplog.at_level("INFO", logger="healing.notifier"):
            await LoggingNotifier().publish("healing:s1", {"type": "healing_completed"})

        assert caplog.records[-1].getMessage() == "healing:s1 healing_completed"


class TestCompletionOutputCleaner:

    def test_strip_code_fences(self):
        text = 'Sure!\n```json\n[{"selector": "#a"}]\n```\nDone.'
        assert CompletionOutputCleaner.strip_code_fences(text) == '[{"selector": "#a"}]'

    def test_extract_json_block(self):
        text = 'Here you go: {"alternatives": []} hope it helps'
        assert CompletionOutputCleaner.extract_json_block(text) == '{"alternatives": []}'

    def test_plain_text_passes_through(self):
        assert CompletionOutputCleaner.clean_output("0.75") == "0.75"

    def test_array_before_object(self):
        text = 'result: [{"selector": "#a", "confidence": 0.9}]'
        assert CompletionOutputCleaner.clean_output(text) == '[{"selector": "#a", "confidence": 0.9}]'


class TestLiteLLMCompletionClient:

    @pytest.mark.asyncio
    async def test_builds_request_and_cleans_output(self):
        acompletion = AsyncMock(return_value=completion_response('```json\n{"alternatives": []}\n```'))
        client = LiteLLMCompletionClient(model="gpt-4o-mini", api_key="sk-test")

        with patch("locator_healing.services.completion_client.litellm.acompletion", acompletion):
            content = await client.complete("Find a selector", {"max_tokens": 50, "temperature": 0.0})

        assert content == '{"alternatives": []}'
        kwargs = acompletion.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [{"role": "user", "content": "Find a selector"}]
        assert kwargs["max_tokens"] == 50
        assert kwargs["temperature"] == 0.0
        assert kwargs["api_key"] == "sk-test"

    @pytest.mark.asyncio
    async def test_option_model_wins(self):
        acompletion = AsyncMock(return_value=completion_response("0.4"))
        client = LiteLLMCompletionClient(model="gpt-4")

        with patch("locator_healing.services.completion_client.litellm.acompletion", acompletion):
            assert await client.complete("p", {"model": "claude-3-haiku"}) == "0.4"

        assert acompletion.await_args.kwargs["model"] == "claude-3-haiku"

    @pytest.mark.asyncio
    async def test_raw_output_when_cleaning_disabled(self):
        raw = "Answer: [1]"
        acompletion = AsyncMock(return_value=completion_response(raw))
        client = LiteLLMCompletionClient(model="gpt-4", clean_output=False)

        with patch("locator_healing.services.completion_client.litellm.acompletion", acompletion):
            assert await client.complete("p") == raw

    @pytest.mark.asyncio
    async def test_errors_become_strategy_errors(self):
        acompletion = AsyncMock(side_effect=RuntimeError("rate limit"))
        client = LiteLLMCompletionClient(model="gpt-4")

        with patch("locator_healing.services.completion_client.litellm.acompletion", acompletion):
            with pytest.raises(StrategyExecutionError) as exc_info:
                await client.complete("p")

        assert exc_info.value.strategy == "ai_analysis"
        assert "rate limit" in str(exc_info.value)


class TestTranslateSelector:

    @pytest.mark.parametrize("selector,expected", [
        ("#submit", (By.CSS_SELECTOR, "#submit")),
        ('[data-testid="submit"]', (By.CSS_SELECTOR, '[data-testid="submit"]')),
        ("css=.btn", (By.CSS_SELECTOR, ".btn")),
        ("id=login", (By.ID, "login")),
        ("xpath=//a[1]", (By.XPATH, "//a[1]")),
        ("//div[@id='x']", (By.XPATH, "//div[@id='x']")),
        ("(//button)[2]", (By.XPATH, "(//button)[2]")),
    ])
    def test_prefixes(self, selector, expected):
        assert translate_selector(selector) == expected

    def test_exact_text(self):
        by, value = translate_selector('text="Sign in"')

        assert by == By.XPATH
        assert value == '//*[normalize-space(.)="Sign in"][not(*[normalize-space(.)="Sign in"])]'

    def test_tag_with_class_and_text(self):
        by, value = translate_selector('button.btn:has-text("Save")')

        assert by == By.XPATH
        assert value == (
            "//button[contains(normalize-space(.), \"Save\") and "
            "contains(concat(' ', normalize-space(@class), ' '), ' btn ')]"
        )

    def test_escaped_quotes_in_text(self):
        _, value = translate_selector('text="Say \\"hi\\""')
        assert "'Say \"hi\"'" in value

    def test_xpath_literal(self):
        assert xpath_literal("plain") == '"plain"'
        assert xpath_literal('a"b') == "'a\"b'"
        assert xpath_literal("a\"b'c") == "concat(\"a\", '\"', \"b'c\")"


class TestSeleniumPage:

    @pytest.fixture
    def driver(self):
        driver = Mock()
        driver.current_url = "http://localhost:8080/login"
        return driver

    @pytest.fixture
    def page(self, driver):
        page = SeleniumPage(driver, element_wait_timeout_ms=100)
        yield page
        page.close()

    @pytest.mark.asyncio
    async def test_visible_element(self, page, driver):
        element = Mock()
        element.is_displayed.return_value = True
        element.is_enabled.return_value = True
        element.rect = {"x": 1, "y": 2, "width": 30, "height": 40}
        element.get_attribute.side_effect = lambda name: {"textContent": " Submit ", "id": "go"}.get(name)
        driver.find_element.return_value = element

        handle = page.locate("#go")

        assert await handle.is_visible()
        assert await handle.is_enabled()
        assert await handle.bounding_box() == {"x": 1.0, "y": 2.0, "width": 30.0, "height": 40.0}
        assert await handle.text_content() == " Submit "
        assert await handle.get_attribute("id") == "go"
        driver.find_element.assert_called_with(By.CSS_SELECTOR, "#go")

    @pytest.mark.asyncio
    async def test_missing_element(self, page, driver):
        driver.find_element.side_effect = NoSuchElementException("nope")
        handle = page.locate("#gone")

        assert await handle.is_visible() is False
        assert await handle.bounding_box() is None
        assert await handle.get_attribute("id") is None
        with pytest.raises(ElementNotFound):
            await handle.click()

    @pytest.mark.asyncio
    async def test_evaluate_wraps_function_expression(self, page, driver):
        driver.execute_script.return_value = "12345"

        assert await page.evaluate("() => 1") == "12345"
        driver.execute_script.assert_called_with("return (() => 1).apply(null, arguments);")

        await page.evaluate("(s) => s", "#go")
        driver.execute_script.assert_called_with("return ((s) => s).apply(null, arguments);", "#go")

    @pytest.mark.asyncio
    async def test_url(self, page):
        assert await page.url() == "http://localhost:8080/login"
