import base64
import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from dca_client.auth import ApiCredentials
from dca_client.gemini import GeminiExchange
from dca_client.pricing import calc_limit_order
from dca_client.rest import RestError, RestRequest
from engine.errors import UnsupportedOperationError
from engine.exchange_client import OrderType

DETAILS = {
    "symbol": "BTCUSD",
    "base_currency": "BTC",
    "quote_currency": "USD",
    "tick_size": 1e-8,
    "quote_increment": 0.01,
    "min_order_size": "0.00001",
    "status": "open",
}


class RoutedRestClient:
    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def send(self, request: RestRequest):
        self.requests.append(request)
        return self.routes[(request.method, request.path)]

    def last(self, method, path):
        return [r for r in self.requests if (r.method, r.path) == (method, path)][-1]


def _exchange(routes):
    rest = RoutedRestClient(routes)
    return GeminiExchange(rest), rest


def test_symbol_is_lowercase_pair():
    exchange, _ = _exchange({})

    assert exchange.get_ticker_symbol("BTC", "USD") == "btcusd"


def test_ticker_prefers_ask_over_close():
    exchange, rest = _exchange(
        {("GET", "/v2/ticker/btcusd"): {"symbol": "BTCUSD", "ask": "30001.5", "close": "29990"}}
    )

    assert exchange.get_ticker("btcusd").price == Decimal("30001.5")
    assert rest.last("GET", "/v2/ticker/btcusd").signed is False


def test_ticker_falls_back_to_close():
    exchange, _ = _exchange({("GET", "/v2/ticker/btcusd"): {"close": "29990"}})

    assert exchange.get_ticker("btcusd").price == Decimal("29990")


def test_product_from_symbol_details():
    exchange, _ = _exchange({("GET", "/v1/symbols/details/btcusd"): DETAILS})

    product = exchange.get_product("btcusd")

    assert product.base_currency == "BTC"
    assert product.base_min_size == Decimal("0.00001")
    assert product.size_increment == Decimal("1e-8")


def test_fiat_account_and_missing_currency():
    exchange, _ = _exchange(
        {
            ("POST", "/v1/balances"): [
                {"currency": "BTC", "amount": "1", "available": "1"},
                {"currency": "USD", "amount": "120.5", "available": "100.25"},
            ]
        }
    )

    assert exchange.get_fiat_account("USD").available == Decimal("100.25")
    with pytest.raises(RestError, match="Cannot find EUR account"):
        exchange.get_fiat_account("EUR")


def test_pending_transfers_only_count_pending_fiat_deposits():
    exchange, _ = _exchange(
        {
            ("POST", "/v1/transfers"): [
                {"type": "Deposit", "status": "Pending", "currency": "USD", "amount": "40", "timestampms": 1690000000000},
                {"type": "Deposit", "status": "Advanced", "currency": "USD", "amount": "15"},
                {"type": "Deposit", "status": "Complete", "currency": "USD", "amount": "10"},
                {"type": "Withdrawal", "status": "Pending", "currency": "USD", "amount": "5"},
                {"type": "Deposit", "status": "Pending", "currency": "BTC", "amount": "1"},
            ]
        }
    )

    pending = exchange.get_pending_transfers("USD")

    assert [p.amount for p in pending] == [Decimal("40")]


def test_deposit_is_unsupported():
    exchange, _ = _exchange({})

    with pytest.raises(UnsupportedOperationError, match="Gemini does not support bank deposits"):
        exchange.deposit("USD", Decimal("10"))


def test_market_orders_are_unsupported():
    exchange, rest = _exchange({})

    with pytest.raises(UnsupportedOperationError, match="market orders"):
        exchange.create_order("btcusd", Decimal("10"), OrderType.MARKET, None)

    assert rest.requests == []


def test_limit_order_truncates_size_to_tick():
    exchange, rest = _exchange(
        {
            ("GET", "/v1/symbols/details/btcusd"): {**DETAILS, "tick_size": "0.0001"},
            ("GET", "/v2/ticker/btcusd"): {"ask": "100"},
            ("POST", "/v1/order/new"): {"order_id": "9001", "symbol": "btcusd", "is_live": True},
        }
    )

    def calc(ask, fiat):
        return calc_limit_order(ask, fiat, fee_percent="0.5", spread_percent="0.01")

    order = exchange.create_order("btcusd", Decimal("25"), OrderType.LIMIT, calc)

    body = rest.last("POST", "/v1/order/new").body
    assert body["price"] == "100.01"
    assert body["amount"] == "0.2487"
    assert body["side"] == "buy"
    assert body["type"] == "exchange limit"
    assert order.order_id == body["client_order_id"]
    assert order.symbol == "btcusd"


def test_last_purchase_time_uses_newest_buy():
    since = datetime(2023, 7, 1, tzinfo=timezone.utc)
    exchange, rest = _exchange(
        {
            ("POST", "/v1/mytrades"): [
                {"tid": 1, "type": "Buy", "timestamp": 1688300000, "price": "1", "amount": "1"},
                {"tid": 2, "type": "Sell", "timestamp": 1688400000, "price": "1", "amount": "1"},
                {"tid": 3, "type": "Buy", "timestamp": 1688200000, "price": "1", "amount": "1"},
            ]
        }
    )

    last = exchange.last_purchase_time("BTC", "USD", since)

    assert last == datetime.fromtimestamp(1688300000, tz=timezone.utc)
    assert rest.last("POST", "/v1/mytrades").body == {
        "symbol": "btcusd",
        "timestamp": int(since.timestamp()),
    }


def test_last_purchase_time_none_without_trades():
    exchange, _ = _exchange({("POST", "/v1/mytrades"): []})

    assert exchange.last_purchase_time("BTC", "USD", datetime.now(timezone.utc)) is None


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload
        self.headers = {}

    def read(self):
        return json.dumps(self._payload).encode("utf8")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def test_signed_calls_go_through_rest_client():
    exchange = GeminiExchange.from_credentials(
        ApiCredentials(api_key="gem-key", api_secret="gem-secret"), sandbox=True
    )
    captured = []

    def fake_urlopen(request, timeout=10.0, context=None):
        captured.append(request)
        return FakeResponse(
            [{"currency": "USD", "amount": "10", "available": "7.5"}]
        )

    with patch("dca_client.rest.urlopen", side_effect=fake_urlopen):
        account = exchange.get_fiat_account("USD")

    assert account.available == Decimal("7.5")
    request = captured[0]
    assert request.full_url == "https://api.sandbox.gemini.com/v1/balances"
    assert request.get_method() == "POST"
    assert request.get_header("X-gemini-apikey") == "gem-key"
    payload = json.loads(base64.b64decode(request.get_header("X-gemini-payload")))
    assert payload["request"] == "/v1/balances"
