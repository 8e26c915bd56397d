from __future__ import annotations

from typing import Literal

import structlog
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jet_resilience.circuit_breaker import CircuitBreakerConfig
from jet_resilience.logging import configure_structlog, get_log_level_value

BreakerPreset = Literal["default", "aggressive", "lenient"]


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class CircuitBreakerSettings(BaseSettings):
    """Environment-driven breaker configuration.

    ``preset`` selects the base values; any explicitly set numeric field
    overrides the preset.
    """

    model_config = prefixed_settings_config("CIRCUIT_BREAKER_")

    preset: BreakerPreset = "default"
    failure_threshold: int | None = None
    recovery_timeout: float | None = None
    success_threshold: int | None = None
    failure_window: float | None = None
    log_level: str = "INFO"

    @field_validator("preset", mode="before")
    @classmethod
    def _normalize_preset(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        get_log_level_value(value)
        return value.strip().upper()

    @model_validator(mode="after")
    def _validate_overrides(self) -> CircuitBreakerSettings:
        for field_name in (
            "failure_threshold",
            "recovery_timeout",
            "success_threshold",
            "failure_window",
        ):
            value = getattr(self, field_name)
            if value is not None and value <= 0:
                raise ValueError(f"{field_name} must be > 0")
        return self

    def to_config(self) -> CircuitBreakerConfig:
        """Build the breaker config for the preset plus overrides."""
        presets = {
            "default": CircuitBreakerConfig.default,
            "aggressive": CircuitBreakerConfig.aggressive,
            "lenient": CircuitBreakerConfig.lenient,
        }
        base = presets[self.preset]()
        return CircuitBreakerConfig(
            failure_threshold=(
                base.failure_threshold
                if self.failure_threshold is None
                else self.failure_threshold
            ),
            recovery_timeout=(
                base.recovery_timeout
                if self.recovery_timeout is None
                else self.recovery_timeout
            ),
            success_threshold=(
                base.success_threshold
                if self.success_threshold is None
                else self.success_threshold
            ),
            failure_window=(
                base.failure_window
                if self.failure_window is None
                else self.failure_window
            ),
        )

    def configure_logging(self) -> structlog.stdlib.BoundLogger:
        """Apply ``log_level`` to structlog and stdlib logging."""
        return configure_structlog(log_level=self.log_level)
