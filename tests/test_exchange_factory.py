import pytest

import utils.credentials as credentials
from dca_client.coinbase import CoinbaseExchange
from dca_client.coinbase_v3 import CoinbaseV3Exchange
from dca_client.constants import COINBASE_EXCHANGE_SANDBOX_URL, GEMINI_URL
from dca_client.ftx import FtxExchange
from dca_client.gemini import GeminiExchange
from engine.errors import ConfigurationError
from engine.exchange_factory import build_exchange

CONFIG = {"api_key": "key", "api_secret": "c2VjcmV0", "passphrase": "pass"}


@pytest.fixture(autouse=True)
def _no_keyring(monkeypatch):
    monkeypatch.setattr(
        credentials.keyring, "get_password", lambda service, username: None
    )


@pytest.mark.parametrize(
    "name, expected",
    [
        ("coinbase", CoinbaseExchange),
        ("coinbasev3", CoinbaseV3Exchange),
        ("gemini", GeminiExchange),
        ("ftx", FtxExchange),
        ("FTXUS", FtxExchange),
    ],
)
def test_builds_adapter_by_name(name, expected):
    assert isinstance(build_exchange(name, CONFIG), expected)


def test_rest_options_flow_to_client():
    exchange = build_exchange(
        "gemini", {**CONFIG, "rest_timeout_sec": 3, "rest_retries": 0}
    )

    assert exchange._rest.base_url == GEMINI_URL
    assert exchange._rest.timeout == 3.0
    assert exchange._rest.max_retries == 0


def test_coinbase_sandbox_url():
    exchange = build_exchange("coinbase", CONFIG, sandbox=True)

    assert exchange._rest.base_url == COINBASE_EXCHANGE_SANDBOX_URL


@pytest.mark.parametrize("name", ["coinbasev3", "ftx", "ftxus"])
def test_sandbox_rejected_where_unavailable(name):
    with pytest.raises(ConfigurationError, match="no sandbox"):
        build_exchange(name, CONFIG, sandbox=True)


def test_unknown_exchange():
    with pytest.raises(ConfigurationError, match="Unknown exchange 'kraken'"):
        build_exchange("kraken", CONFIG)


def test_missing_credentials(monkeypatch):
    monkeypatch.delenv("GEMINI_KEY", raising=False)
    monkeypatch.delenv("GEMINI_SECRET", raising=False)

    with pytest.raises(ValueError, match="API credentials are missing"):
        build_exchange("gemini", {})
