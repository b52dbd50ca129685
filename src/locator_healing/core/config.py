from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from dotenv import load_dotenv

load_dotenv(".env")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",  # Allow extra fields from .env file
    )

    # Per-project healing policy (YAML)
    HEALING_CONFIG_PATH: str = Field(default="config/healing_config.yaml", description="Path to the per-project healing configuration file")

    # Logging Configuration
    HEALING_LOG_LEVEL: str = Field(default="INFO", description="Log level for healing components")
    HEALING_LOG_DIR: str = Field(default="logs", description="Directory for rotating healing log files")
    AUDIT_LOG_DIR: str = Field(default="logs/audit", description="Directory for daily audit trail files")

    # Scheduler / pipeline tuning
    QUEUE_TICK_SECONDS: float = Field(default=5.0, description="Interval between healing queue drain ticks")
    ELEMENT_WAIT_TIMEOUT_MS: int = Field(default=5000, description="Upper bound for a single element wait")
    EARLY_EXIT_CONFIDENCE: float = Field(default=0.9, description="Pipeline stops once the best confidence reaches this value")

    # AI-assisted strategy
    AI_MODEL: str = Field(default="gpt-4", description="Model name passed to litellm")
    AI_MAX_TOKENS: int = Field(default=300, description="Completion token limit for selector suggestions")
    AI_TEMPERATURE: float = Field(default=0.3, description="Sampling temperature for selector suggestions")
    AI_API_KEY: Optional[str] = None

    # Store
    SQLITE_STORE_PATH: str = Field(default="data/healing_store.db", description="SQLite file used by the SQLite document store")

    @field_validator('HEALING_LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        """Validate that HEALING_LOG_LEVEL is a standard logging level."""
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"HEALING_LOG_LEVEL must be a standard logging level, got '{v}'")
        return v.upper()

    @field_validator('QUEUE_TICK_SECONDS')
    @classmethod
    def validate_tick(cls, v):
        """Validate that QUEUE_TICK_SECONDS is positive."""
        if v <= 0:
            raise ValueError(f"QUEUE_TICK_SECONDS must be positive, got {v}")
        return v

    @field_validator('ELEMENT_WAIT_TIMEOUT_MS')
    @classmethod
    def validate_element_wait(cls, v):
        """Validate that ELEMENT_WAIT_TIMEOUT_MS is between 100 and 60000."""
        if v < 100 or v > 60000:
            raise ValueError(f"ELEMENT_WAIT_TIMEOUT_MS must be between 100 and 60000, got {v}")
        return v

    @field_validator('EARLY_EXIT_CONFIDENCE', 'AI_TEMPERATURE')
    @classmethod
    def validate_unit_interval(cls, v, info):
        if v < 0.0 or v > 1.0:
            raise ValueError(f"{info.field_name} must be between 0.0 and 1.0, got {v}")
        return v

    @field_validator('AI_MAX_TOKENS')
    @classmethod
    def validate_max_tokens(cls, v):
        if v < 1 or v > 4096:
            raise ValueError(f"AI_MAX_TOKENS must be between 1 and 4096, got {v}")
        return v


settings = Settings()
