from __future__ import annotations

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cater_core.circuit_breaker import CircuitBreakerConfig
from cater_core.logging import get_log_level_value
from cater_core.retry import RetryPolicy

ENV_PREFIX = "CATER_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class ResilienceSettings(BaseSettings):
    """Settings for the resilience layer shared by Cloud Function handlers.

    Durations are in seconds. Every field can be overridden through an
    environment variable, e.g. ``CATER_BREAKER_OPEN_TIMEOUT=30``.
    """

    model_config = prefixed_settings_config(ENV_PREFIX)

    log_level: str = "INFO"
    service_name: str | None = None

    retry_max_retries: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_backoff_multiplier: float = 2.0

    breaker_failure_threshold: int = 5
    breaker_success_threshold: int = 2
    breaker_open_timeout: float = 60.0
    breaker_half_open_max_calls: int | None = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        get_log_level_value(value)
        return value.strip().upper()

    @field_validator("service_name", mode="before")
    @classmethod
    def _normalize_service_name(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator(
        "retry_max_retries",
        "retry_initial_delay",
        "retry_max_delay",
    )
    @classmethod
    def _validate_non_negative(cls, value: float, info: ValidationInfo) -> float:
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator(
        "breaker_failure_threshold",
        "breaker_success_threshold",
    )
    @classmethod
    def _validate_positive_threshold(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return value

    @model_validator(mode="after")
    def _validate_resilience_settings(self) -> ResilienceSettings:
        if self.retry_backoff_multiplier < 1:
            raise ValueError("retry_backoff_multiplier must be >= 1")
        if self.breaker_open_timeout <= 0:
            raise ValueError("breaker_open_timeout must be > 0")
        if (
            self.breaker_half_open_max_calls is not None
            and self.breaker_half_open_max_calls < 1
        ):
            raise ValueError("breaker_half_open_max_calls must be >= 1 when set")
        return self

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy used by ``ResilientCaller``."""
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
        )

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the configuration applied to every lazily created breaker."""
        return CircuitBreakerConfig(
            failure_threshold=self.breaker_failure_threshold,
            success_threshold=self.breaker_success_threshold,
            open_timeout=self.breaker_open_timeout,
            half_open_max_calls=self.breaker_half_open_max_calls,
        )
