"""Rotation configuration loaded from environment variables.

All configuration values have sensible defaults that reproduce the
classic rotation (double, then halve). The scale set itself is
identified on the command line, not here.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any value is out
    of its valid range.  This catches bad configuration before any
    provider call is made.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from vmss_rotation.core.constants import (
    AZURE_GATEWAY,
    DEFAULT_SCALE_IN_FACTOR,
    DEFAULT_SCALE_OUT_FACTOR,
)
from vmss_rotation.core.exceptions import ValidationError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigValidationError(ValidationError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class RotationConfig:
    """Immutable rotation configuration.

    Loaded once per invocation and threaded through the orchestrator.

    Attributes:
        gateway: Registered gateway adapter name (``azure``).
        scale_out_factor: Capacity multiplier for the scale-out phase.
        scale_in_factor: Capacity multiplier for the scale-in phase.
        log_level: Root log level name.
    """

    gateway: str = AZURE_GATEWAY
    scale_out_factor: float = DEFAULT_SCALE_OUT_FACTOR
    scale_in_factor: float = DEFAULT_SCALE_IN_FACTOR
    log_level: str = "INFO"

    @property
    def log_level_value(self) -> int:
        """Return the numeric ``logging`` level."""
        return logging.getLevelName(self.log_level)  # type: ignore[no-any-return]

    @classmethod
    def from_env(cls) -> RotationConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a value is out of range, or a
                numeric variable cannot be parsed.
        """
        config = cls(
            gateway=os.getenv("ROTATION_GATEWAY", AZURE_GATEWAY),
            scale_out_factor=_parse_float("SCALE_OUT_FACTOR", DEFAULT_SCALE_OUT_FACTOR),
            scale_in_factor=_parse_float("SCALE_IN_FACTOR", DEFAULT_SCALE_IN_FACTOR),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        validate(config)
        return config


def _parse_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigValidationError(key, raw, "must be a number") from None


def validate(config: RotationConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if not config.gateway:
        raise ConfigValidationError("ROTATION_GATEWAY", config.gateway, "must not be empty")

    if config.scale_out_factor < 1.0:
        raise ConfigValidationError(
            "SCALE_OUT_FACTOR",
            config.scale_out_factor,
            "must be >= 1 (scale-out never shrinks the scale set)",
        )

    if not 0.0 < config.scale_in_factor <= 1.0:
        raise ConfigValidationError(
            "SCALE_IN_FACTOR",
            config.scale_in_factor,
            "must be > 0 and <= 1",
        )

    if config.log_level not in _LOG_LEVELS:
        raise ConfigValidationError(
            "LOG_LEVEL",
            config.log_level,
            f"must be one of {', '.join(_LOG_LEVELS)}",
        )
