"""Credential loading helpers for dcabot."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Mapping

import keyring
from keyring.errors import KeyringError

from dca_client.auth import ApiCredentials

SERVICE_PREFIX = "dcabot"
API_KEY_USERNAME = "api_key"
API_SECRET_USERNAME = "api_secret"
PASSPHRASE_USERNAME = "passphrase"
_ENV_PATTERN = re.compile(r"^\$\{([A-Z0-9_]+)\}$")


@dataclass(frozen=True)
class VenueCredentialSpec:
    env_prefix: str
    keyring_venue: str
    needs_passphrase: bool = False

    @property
    def service_name(self) -> str:
        return f"{SERVICE_PREFIX}-{self.keyring_venue}"

    @property
    def api_key_env(self) -> str:
        return f"{self.env_prefix}_KEY"

    @property
    def api_secret_env(self) -> str:
        return f"{self.env_prefix}_SECRET"

    @property
    def passphrase_env(self) -> str:
        return f"{self.env_prefix}_PASSPHRASE"


VENUE_CREDENTIALS: dict[str, VenueCredentialSpec] = {
    "coinbase": VenueCredentialSpec("COINBASE", "coinbase", needs_passphrase=True),
    "coinbasev3": VenueCredentialSpec("COINBASE", "coinbasev3"),
    "gemini": VenueCredentialSpec("GEMINI", "gemini"),
    "ftx": VenueCredentialSpec("FTX", "ftx"),
    "ftxus": VenueCredentialSpec("FTX", "ftxus"),
}


def credential_spec(exchange: str) -> VenueCredentialSpec:
    try:
        return VENUE_CREDENTIALS[exchange.lower()]
    except KeyError as exc:
        supported = ", ".join(sorted(VENUE_CREDENTIALS))
        raise ValueError(
            f"Unknown exchange '{exchange}'. Supported exchanges: {supported}"
        ) from exc


def load_api_credentials(
    exchange: str,
    config: Mapping[str, object] | None = None,
) -> ApiCredentials:
    """Load API credentials from config, env vars, or keyring in order."""
    spec = credential_spec(exchange)
    api_key = _lookup(spec, config, "api_key", spec.api_key_env, API_KEY_USERNAME)
    api_secret = _lookup(
        spec, config, "api_secret", spec.api_secret_env, API_SECRET_USERNAME
    )
    passphrase = None
    if spec.needs_passphrase:
        passphrase = _lookup(
            spec, config, "passphrase", spec.passphrase_env, PASSPHRASE_USERNAME
        )

    if not api_key or not api_secret:
        raise ValueError(
            "API credentials are missing. Provide api_key/api_secret in the config, "
            f"set {spec.api_key_env}/{spec.api_secret_env}, or store them in the "
            f"keychain for service '{spec.service_name}'."
        )
    if spec.needs_passphrase and not passphrase:
        raise ValueError(
            f"{spec.passphrase_env} environment variable is required "
            f"(or a passphrase in the config or keychain)."
        )

    return ApiCredentials(api_key=api_key, api_secret=api_secret, passphrase=passphrase)


def store_api_credentials(
    exchange: str,
    api_key: str,
    api_secret: str,
    passphrase: str | None = None,
) -> None:
    """Store API credentials in the OS keychain via keyring."""
    spec = credential_spec(exchange)
    api_key_value = _clean_value(api_key)
    api_secret_value = _clean_value(api_secret)
    passphrase_value = _clean_value(passphrase)
    if not api_key_value or not api_secret_value:
        raise ValueError("api_key and api_secret must be non-empty strings.")
    if spec.needs_passphrase and not passphrase_value:
        raise ValueError(f"A passphrase is required for {exchange}.")
    try:
        keyring.set_password(spec.service_name, API_KEY_USERNAME, api_key_value)
        keyring.set_password(spec.service_name, API_SECRET_USERNAME, api_secret_value)
        if passphrase_value:
            keyring.set_password(
                spec.service_name, PASSPHRASE_USERNAME, passphrase_value
            )
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to store credentials in the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc


def _lookup(
    spec: VenueCredentialSpec,
    config: Mapping[str, object] | None,
    key: str,
    env_name: str,
    username: str,
) -> str | None:
    value = _resolve_value(config, key)
    if not value:
        value = _clean_value(os.getenv(env_name))
    if not value:
        value = _get_keyring_value(spec.service_name, username)
    return value


def _resolve_value(config: Mapping[str, object] | None, key: str) -> str | None:
    if not config or key not in config:
        return None
    raw = config.get(key)
    if not isinstance(raw, str):
        return _clean_value(str(raw)) if raw is not None else None
    raw = raw.strip()
    if not raw:
        return None
    match = _ENV_PATTERN.match(raw)
    if match:
        return _clean_value(os.getenv(match.group(1)))
    return _clean_value(raw)


def _clean_value(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _get_keyring_value(service_name: str, username: str) -> str | None:
    try:
        return _clean_value(keyring.get_password(service_name, username))
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to access the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc
