from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Payment Ledger"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Ingestion settings
    csv_delimiter: str = ","
    queue_maxsize: int = 1  # 1 keeps producer and consumer in lock step

    # Output settings
    amount_precision: int = 4
    sort_output: bool = True

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return v

    @field_validator("queue_maxsize", "amount_precision")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v


@lru_cache()
def get_settings(env: Optional[str] = None) -> Settings:
    """Get cached settings instance for an environment preset."""
    return get_settings_for_environment(env or "default")


# Environment-specific configurations
class DevelopmentSettings(Settings):
    log_level: str = "DEBUG"
    log_format: str = "text"


class ProductionSettings(Settings):
    log_level: str = "INFO"
    log_format: str = "json"


class TestingSettings(Settings):
    log_level: str = "WARNING"  # Reduce noise in tests
    log_format: str = "text"


ENVIRONMENTS = {
    "development": DevelopmentSettings,
    "production": ProductionSettings,
    "testing": TestingSettings,
}


def get_settings_for_environment(env: str = "development") -> Settings:
    """Get settings for specific environment."""
    settings_class = ENVIRONMENTS.get(env.lower(), Settings)
    return settings_class()
