"""
Unit tests for settings and per-project healing configuration.
"""

import pytest
import yaml
from pydantic import ValidationError

from locator_healing.core.config import Settings
from locator_healing.core.config_loader import (
    HEALING_CONFIGURATIONS,
    ConfigurationError,
    StoreConfigurationProvider,
    YamlConfigurationProvider,
    default_configuration,
    validate_configuration,
)
from locator_healing.core.exceptions import ConfigurationUnavailable
from locator_healing.core.models import HealingConfiguration, PerformanceLimits


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("QUEUE_TICK_SECONDS", raising=False)
        settings = Settings(_env_file=None)

        assert settings.QUEUE_TICK_SECONDS == 5.0
        assert settings.EARLY_EXIT_CONFIDENCE == 0.9
        assert settings.HEALING_LOG_LEVEL == "INFO"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("HEALING_LOG_LEVEL", "debug")
        monkeypatch.setenv("QUEUE_TICK_SECONDS", "0.5")

        settings = Settings(_env_file=None)

        assert settings.HEALING_LOG_LEVEL == "DEBUG"
        assert settings.QUEUE_TICK_SECONDS == 0.5

    @pytest.mark.parametrize("name,value", [
        ("HEALING_LOG_LEVEL", "LOUD"),
        ("QUEUE_TICK_SECONDS", "0"),
        ("ELEMENT_WAIT_TIMEOUT_MS", "50"),
        ("EARLY_EXIT_CONFIDENCE", "1.5"),
        ("AI_MAX_TOKENS", "0"),
    ])
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestValidation:

    def test_defaults_are_valid(self):
        validate_configuration(default_configuration("proj-1"))

    def test_collects_every_error(self):
        config = HealingConfiguration(
            confidence_threshold=0.4,
            require_review_threshold=0.6,
            max_healing_attempts=0,
            strategy_preferences=["attribute_adaptation", "magic", "attribute_adaptation"],
            exclusion_patterns=["("],
        )

        with pytest.raises(ConfigurationError) as exc_info:
            validate_configuration(config)

        message = str(exc_info.value)
        assert message.startswith("Configuration validation failed: ")
        assert "require_review_threshold must not exceed confidence_threshold" in message
        assert "max_healing_attempts" in message
        assert "Unknown strategies in strategy_preferences: magic" in message
        assert "Duplicate strategies" in message
        assert "Invalid exclusion pattern '('" in message

    def test_out_of_range_threshold(self):
        with pytest.raises(ConfigurationError):
            validate_configuration(HealingConfiguration(confidence_threshold=1.2))

    def test_limits_must_be_usable(self):
        config = HealingConfiguration(
            performance_limits=PerformanceLimits(max_execution_time_ms=0),
            element_wait_timeout_ms=50,
        )

        with pytest.raises(ConfigurationError) as exc_info:
            validate_configuration(config)

        message = str(exc_info.value)
        assert "performance_limits.max_execution_time_ms must be positive" in message
        assert "element_wait_timeout_ms must be between 100 and 60000" in message


class TestYamlConfigurationProvider:

    @pytest.mark.asyncio
    async def test_missing_file_gives_defaults(self, tmp_path):
        provider = YamlConfigurationProvider(str(tmp_path / "absent.yaml"))

        config = await provider.get_healing_configuration("proj-1")

        assert config.project_id == "proj-1"
        assert config.auto_healing_enabled is True
        assert config.confidence_threshold == 0.8

    @pytest.mark.asyncio
    async def test_defaults_then_project_overrides(self, tmp_path):
        path = write_yaml(tmp_path / "healing.yaml", {
            "defaults": {
                "confidence_threshold": 0.85,
                "notification_settings": {"email_notifications": False},
            },
            "projects": {
                "checkout": {
                    "auto_healing_enabled": False,
                    "notification_settings": {"real_time_updates": False},
                },
            },
        })
        provider = YamlConfigurationProvider(str(path))

        checkout = await provider.get_healing_configuration("checkout")
        other = await provider.get_healing_configuration("other")

        assert checkout.auto_healing_enabled is False
        assert checkout.confidence_threshold == 0.85
        assert checkout.notification_settings.email_notifications is False
        assert checkout.notification_settings.real_time_updates is False
        assert other.auto_healing_enabled is True
        assert other.notification_settings.real_time_updates is True

    @pytest.mark.asyncio
    async def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "healing.yaml"
        path.write_text("defaults: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigurationUnavailable) as exc_info:
            await YamlConfigurationProvider(str(path)).get_healing_configuration("proj-1")
        assert "Invalid YAML" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_invalid_values(self, tmp_path):
        path = write_yaml(tmp_path / "healing.yaml", {"projects": {"p": {"max_healing_attempts": 50}}})

        with pytest.raises(ConfigurationUnavailable):
            await YamlConfigurationProvider(str(path)).get_healing_configuration("p")

    @pytest.mark.asyncio
    async def test_top_level_must_be_mapping(self, tmp_path):
        path = write_yaml(tmp_path / "healing.yaml", ["not", "a", "mapping"])

        with pytest.raises(ConfigurationUnavailable):
            await YamlConfigurationProvider(str(path)).get_healing_configuration("p")

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "config" / "healing.yaml"
        provider = YamlConfigurationProvider(str(path))
        config = default_configuration("checkout")
        config.confidence_threshold = 0.9
        config.strategy_preferences = ["attribute_adaptation", "text_matching"]

        provider.save_project_config(config)
        reloaded = YamlConfigurationProvider(str(path)).load_project_config("checkout")

        assert reloaded.confidence_threshold == 0.9
        assert reloaded.strategy_preferences == ["attribute_adaptation", "text_matching"]
        assert "project_id" not in yaml.safe_load(path.read_text())["projects"]["checkout"]

    def test_save_rejects_invalid(self, tmp_path):
        provider = YamlConfigurationProvider(str(tmp_path / "healing.yaml"))

        with pytest.raises(ConfigurationError):
            provider.save_project_config(HealingConfiguration(project_id="p", max_healing_attempts=0))
        assert not (tmp_path / "healing.yaml").exists()


class TestStoreConfigurationProvider:

    @pytest.mark.asyncio
    async def test_stored_row_overrides_defaults(self, store):
        await store.insert(HEALING_CONFIGURATIONS, {
            "id": "cfg-1",
            "project_id": "proj-1",
            "confidence_threshold": 0.9,
            "created_at": "2024-01-01T00:00:00",
        })

        config = await StoreConfigurationProvider(store).get_healing_configuration("proj-1")

        assert config.confidence_threshold == 0.9
        assert config.require_review_threshold == 0.5

    @pytest.mark.asyncio
    async def test_no_row_gives_defaults(self, store):
        config = await StoreConfigurationProvider(store).get_healing_configuration("proj-1")
        assert config == default_configuration("proj-1")

    @pytest.mark.asyncio
    async def test_invalid_row(self, store):
        await store.insert(HEALING_CONFIGURATIONS, {
            "id": "cfg-1", "project_id": "proj-1", "confidence_threshold": 7,
        })

        with pytest.raises(ConfigurationUnavailable):
            await StoreConfigurationProvider(store).get_healing_configuration("proj-1")

    @pytest.mark.asyncio
    async def test_store_errors(self):
        class BrokenStore:
            async def find_where(self, collection, predicate):
                raise ConnectionError("db down")

        with pytest.raises(ConfigurationUnavailable) as exc_info:
            await StoreConfigurationProvider(BrokenStore()).get_healing_configuration("proj-1")
        assert "db down" in exc_info.value.reason
