"""Configuration validation utilities for dcabot."""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

SUPPORTED_EXCHANGES = {"coinbase", "coinbasev3", "gemini", "ftx", "ftxus"}
ORDER_TYPES = {"market", "limit"}
LOG_FORMATS = {"text", "json"}
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
BOOLEAN_FIELDS = ("trade", "autofund", "force", "sandbox")

_COIN_ENTRY = re.compile(r"^[A-Za-z0-9]+:\d+$")
_DURATION = re.compile(r"^\d+[hdw]$")


class ConfigValidationError(ValueError):
    """Raised when configuration validation fails."""


def validate_api_credentials(config: dict[str, Any]) -> None:
    """Validate API credentials when they are given in the config file."""
    for field in ("api_key", "api_secret", "passphrase"):
        if field not in config:
            continue
        value = config[field]
        if not isinstance(value, str) or not value.strip():
            raise ConfigValidationError(f"{field} must be a non-empty string")
    if ("api_key" in config) != ("api_secret" in config):
        missing = "api_secret" if "api_key" in config else "api_key"
        raise ConfigValidationError(f"Missing required field: {missing}")


def validate_coins(config: dict[str, Any]) -> None:
    """Validate the coin:percentage list."""
    if "coins" not in config:
        raise ConfigValidationError("Missing required field: coins")

    coins = config["coins"]
    if isinstance(coins, str) or not isinstance(coins, list) or not coins:
        raise ConfigValidationError("coins must be a non-empty list")

    for entry in coins:
        if not isinstance(entry, str) or not _COIN_ENTRY.match(entry.strip()):
            raise ConfigValidationError(
                f"coins entry '{entry}' does not match expected format (e.g., BTC:50)"
            )


def validate_duration(config: dict[str, Any], field: str) -> None:
    """Validate a cadence such as 12h, 1d or 2w."""
    if field not in config:
        return
    value = config[field]
    if not isinstance(value, str) or not _DURATION.match(value.strip()):
        raise ConfigValidationError(
            f"{field} must look like 12h, 1d or 2w, got: {value}"
        )


def validate_date(config: dict[str, Any], field: str) -> None:
    """Validate an optional YYYY-MM-DD date."""
    if field not in config or config[field] is None:
        return
    value = config[field]
    if isinstance(value, date):
        return
    try:
        date.fromisoformat(str(value))
    except ValueError as exc:
        raise ConfigValidationError(
            f"{field} must be a date in YYYY-MM-DD format, got: {value}"
        ) from exc


def validate_non_negative_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a non-negative decimal value."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if isinstance(value, bool):
        raise ConfigValidationError(f"{field} must be a valid number, got: {value}")
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigValidationError(
            f"{field} must be a valid number, got: {value}"
        ) from exc

    if not decimal_value.is_finite() or decimal_value < 0:
        raise ConfigValidationError(
            f"{field} must be non-negative, got: {decimal_value}"
        )


def validate_percentage(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a percentage between 0 and 100."""
    validate_non_negative_decimal(config, field, required=required)
    if field not in config:
        return
    decimal_value = Decimal(str(config[field]))
    if decimal_value > Decimal("100"):
        raise ConfigValidationError(
            f"{field} must be between 0 and 100, got: {decimal_value}"
        )


def validate_choice(
    config: dict[str, Any], field: str, choices: set[str], *, required: bool = True
) -> None:
    """Validate that a field is one of the allowed choices."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, str):
        raise ConfigValidationError(
            f"{field} must be a string, got: {type(value).__name__}"
        )

    if value not in choices:
        choices_str = ", ".join(sorted(choices))
        raise ConfigValidationError(
            f"{field} must be one of [{choices_str}], got: {value}"
        )


def validate_sync_config(config: dict[str, Any]) -> None:
    """
    Validate a merged configuration for the sync command.

    Args:
        config: Configuration dictionary (file values merged with CLI flags)

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration must be a dictionary")

    validate_api_credentials(config)
    validate_choice(config, "exchange", SUPPORTED_EXCHANGES, required=True)
    validate_coins(config)
    validate_duration(config, "every")
    validate_non_negative_decimal(config, "usd", required=False)
    validate_percentage(config, "fee", required=False)
    validate_percentage(config, "limit_order_spread", required=False)
    validate_choice(config, "order_type", ORDER_TYPES, required=False)
    validate_choice(config, "log_format", LOG_FORMATS, required=False)
    if "log_level" in config:
        validate_choice(
            {"log_level": str(config["log_level"]).upper()},
            "log_level",
            LOG_LEVELS,
        )
    validate_date(config, "after")
    validate_date(config, "until")

    if "currency" in config and (
        not isinstance(config["currency"], str) or not config["currency"].strip()
    ):
        raise ConfigValidationError("currency must be a non-empty string")

    for field in BOOLEAN_FIELDS:
        if field in config and not isinstance(config[field], bool):
            raise ConfigValidationError(f"{field} must be a boolean")
