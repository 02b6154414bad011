"""
Exchange factory: the one place venue names turn into configured adapters.

Credentials are resolved here (config, then env vars, then keychain) so the
CLI and any other caller authenticate the same way.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from dca_client.auth import ApiCredentials
from dca_client.coinbase import CoinbaseExchange
from dca_client.coinbase_v3 import CoinbaseV3Exchange
from dca_client.ftx import FtxExchange
from dca_client.gemini import GeminiExchange
from engine.errors import ConfigurationError
from engine.exchange_client import Exchange
from utils.credentials import load_api_credentials


def _rest_options(config: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "timeout": float(config.get("rest_timeout_sec", 10.0)),
        "max_retries": int(config.get("rest_retries", 3)),
        "backoff_factor": float(config.get("rest_backoff_factor", 0.5)),
    }


def _coinbase(
    creds: ApiCredentials, config: Mapping[str, Any], sandbox: bool
) -> Exchange:
    return CoinbaseExchange.from_credentials(
        creds, sandbox=sandbox, **_rest_options(config)
    )


def _coinbase_v3(
    creds: ApiCredentials, config: Mapping[str, Any], sandbox: bool
) -> Exchange:
    if sandbox:
        raise ConfigurationError("coinbasev3 has no sandbox environment")
    return CoinbaseV3Exchange.from_credentials(creds, **_rest_options(config))


def _gemini(
    creds: ApiCredentials, config: Mapping[str, Any], sandbox: bool
) -> Exchange:
    return GeminiExchange.from_credentials(
        creds, sandbox=sandbox, **_rest_options(config)
    )


def _ftx(us: bool) -> Callable[[ApiCredentials, Mapping[str, Any], bool], Exchange]:
    def build(
        creds: ApiCredentials, config: Mapping[str, Any], sandbox: bool
    ) -> Exchange:
        if sandbox:
            raise ConfigurationError("FTX has no sandbox environment")
        return FtxExchange.from_credentials(
            creds,
            us=us,
            subaccount=config.get("subaccount"),
            **_rest_options(config),
        )

    return build


EXCHANGE_BUILDERS: dict[
    str, Callable[[ApiCredentials, Mapping[str, Any], bool], Exchange]
] = {
    "coinbase": _coinbase,
    "coinbasev3": _coinbase_v3,
    "gemini": _gemini,
    "ftx": _ftx(us=False),
    "ftxus": _ftx(us=True),
}


def build_exchange(
    name: str,
    config: Mapping[str, Any] | None = None,
    *,
    sandbox: bool = False,
) -> Exchange:
    """
    Build a venue adapter by name.

    Args:
        name: coinbase, coinbasev3, gemini, ftx or ftxus
        config: Optional settings; api_key/api_secret/passphrase override
            env vars and the keychain, plus rest_timeout_sec, rest_retries,
            rest_backoff_factor and (FTX only) subaccount
        sandbox: Use the venue sandbox where one exists

    Raises:
        ConfigurationError: Unknown venue or unsupported sandbox
        ValueError: Missing credentials
    """
    key = name.lower()
    builder = EXCHANGE_BUILDERS.get(key)
    if builder is None:
        supported = ", ".join(sorted(EXCHANGE_BUILDERS))
        raise ConfigurationError(
            f"Unknown exchange '{name}'. Supported exchanges: {supported}"
        )
    settings = dict(config or {})
    credentials = load_api_credentials(key, settings)
    return builder(credentials, settings, sandbox)
