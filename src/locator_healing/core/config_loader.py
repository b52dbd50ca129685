"""Per-project healing configuration loading and validation."""

import re
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from .models.healing_models import AdaptationMethod, HealingConfiguration
from .exceptions import ConfigurationUnavailable, HealingError
from .config import settings

logger = logging.getLogger(__name__)

HEALING_CONFIGURATIONS = "healing_configurations"

KNOWN_STRATEGIES = frozenset(
    m.value for m in AdaptationMethod if m is not AdaptationMethod.FAILED
)


class ConfigurationError(HealingError):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


def default_configuration(project_id: str = "") -> HealingConfiguration:
    """Safe defaults: auto-healing on, apply at 0.8, review floor 0.5."""
    return HealingConfiguration(
        project_id=project_id,
        element_wait_timeout_ms=settings.ELEMENT_WAIT_TIMEOUT_MS,
    )


def validate_configuration(config: HealingConfiguration) -> None:
    """Validate configuration values.

    Raises:
        ConfigurationError: If validation fails
    """
    errors = []

    if not 0.0 <= config.confidence_threshold <= 1.0:
        errors.append("confidence_threshold must be between 0.0 and 1.0")

    if not 0.0 <= config.require_review_threshold <= 1.0:
        errors.append("require_review_threshold must be between 0.0 and 1.0")

    if config.require_review_threshold > config.confidence_threshold:
        errors.append("require_review_threshold must not exceed confidence_threshold")

    if config.max_healing_attempts < 1 or config.max_healing_attempts > 10:
        errors.append("max_healing_attempts must be between 1 and 10")

    if config.element_wait_timeout_ms < 100 or config.element_wait_timeout_ms > 60000:
        errors.append("element_wait_timeout_ms must be between 100 and 60000")

    if config.performance_limits.max_execution_time_ms <= 0:
        errors.append("performance_limits.max_execution_time_ms must be positive")

    unknown = [s for s in config.strategy_preferences if s not in KNOWN_STRATEGIES]
    if unknown:
        errors.append(f"Unknown strategies in strategy_preferences: {', '.join(unknown)}")

    if len(config.strategy_preferences) != len(set(config.strategy_preferences)):
        errors.append("Duplicate strategies are not allowed in strategy_preferences")

    for pattern in config.exclusion_patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            errors.append(f"Invalid exclusion pattern '{pattern}': {e}")

    if errors:
        raise ConfigurationError(
            "Configuration validation failed: " + "; ".join(errors))


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


class YamlConfigurationProvider:
    """Reads per-project configuration from a YAML file.

    The file has a ``defaults`` section applied to every project and a
    ``projects`` section keyed by project id::

        defaults:
          confidence_threshold: 0.8
        projects:
          checkout-web:
            auto_healing_enabled: false
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config loader with optional custom path."""
        self.config_path = Path(config_path or settings.HEALING_CONFIG_PATH)
        self._raw_cache: Optional[Dict[str, Any]] = None
        self._config_file_mtime: Optional[float] = None

    async def get_healing_configuration(self, project_id: str) -> HealingConfiguration:
        """Load and validate the configuration of one project.

        Raises:
            ConfigurationUnavailable: If the file cannot be read or the
                resulting configuration is invalid
        """
        try:
            return self.load_project_config(project_id)
        except ConfigurationError as e:
            logger.error(f"Failed to load healing configuration for {project_id}: {e}")
            raise ConfigurationUnavailable(project_id, str(e)) from e

    def load_project_config(self, project_id: str, force_reload: bool = False) -> HealingConfiguration:
        raw = self._load_raw(force_reload)
        merged = _deep_merge(default_configuration(project_id).to_dict(), raw.get("defaults") or {})
        project_section = (raw.get("projects") or {}).get(project_id) or {}
        merged = _deep_merge(merged, project_section)
        merged["project_id"] = project_id

        try:
            config = HealingConfiguration.from_dict(merged)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration structure: {e}") from e

        validate_configuration(config)
        return config

    def save_project_config(self, config: HealingConfiguration) -> None:
        """Write one project's configuration back into the file."""
        validate_configuration(config)
        raw = dict(self._load_raw(force_reload=True))
        projects = dict(raw.get("projects") or {})
        section = config.to_dict()
        section.pop("project_id", None)
        projects[config.project_id] = section
        raw["projects"] = projects

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(raw, f, default_flow_style=False, indent=2)
        except OSError as e:
            raise ConfigurationError(f"Configuration saving failed: {e}") from e

        self._raw_cache = raw
        self._config_file_mtime = self.config_path.stat().st_mtime
        logger.info(f"Saved healing configuration for {config.project_id} to {self.config_path}")

    def _load_raw(self, force_reload: bool = False) -> Dict[str, Any]:
        if not force_reload and self._raw_cache is not None and self._is_config_current():
            return self._raw_cache

        if not self.config_path.exists():
            logger.info(f"Config file {self.config_path} not found, using defaults")
            raw: Dict[str, Any] = {}
            self._config_file_mtime = None
        else:
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
            except OSError as e:
                raise ConfigurationError(f"Failed to read config file: {e}") from e

            if not isinstance(raw, dict):
                raise ConfigurationError("Config file must contain a mapping at the top level")
            self._config_file_mtime = self.config_path.stat().st_mtime
            logger.info(f"Loaded healing configuration from {self.config_path}")

        self._raw_cache = raw
        return raw

    def _is_config_current(self) -> bool:
        """Check if cached config is still current."""
        if not self.config_path.exists():
            return self._config_file_mtime is None

        return self._config_file_mtime == self.config_path.stat().st_mtime


class StoreConfigurationProvider:
    """Reads per-project configuration from the ``healing_configurations`` collection."""

    def __init__(self, store):
        self.store = store

    async def get_healing_configuration(self, project_id: str) -> HealingConfiguration:
        try:
            rows = await self.store.find_where(
                HEALING_CONFIGURATIONS, lambda row: row.get("project_id") == project_id
            )
        except Exception as e:
            raise ConfigurationUnavailable(project_id, f"store read failed: {e}") from e

        if not rows:
            return default_configuration(project_id)

        merged = _deep_merge(default_configuration(project_id).to_dict(), rows[0])
        try:
            config = HealingConfiguration.from_dict(merged)
            validate_configuration(config)
        except (TypeError, ValueError, ConfigurationError) as e:
            raise ConfigurationUnavailable(project_id, str(e)) from e
        return config
