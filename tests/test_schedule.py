"""Tests for the DCA schedule driver."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest

from engine.errors import (
    BelowMinimumError,
    DeadlineError,
    InsufficientFundsError,
    InvalidWeightsError,
    TradeRejectedError,
    VenueError,
    WindowNotElapsedError,
)
from engine.exchange_client import (
    Account,
    Order,
    OrderType,
    PendingTransfer,
    Product,
    Ticker,
)
from engine.funding import FundingAction
from engine.schedule import DcaSchedule, SyncRequest

NOW = datetime(2022, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeExchange:
    name = "Coinbase"

    def __init__(
        self,
        *,
        products: dict[str, tuple[str, str]] | None = None,
        last_purchase: datetime | None = None,
        last_purchase_error: Exception | None = None,
        available: str = "1000",
        pending: list[PendingTransfer] | None = None,
        payout_at: datetime | None = None,
    ) -> None:
        # symbol -> (base_min_size, price)
        self.products = products or {"BTC-USD": ("0.001", "1000")}
        self.last_purchase = last_purchase
        self.last_purchase_error = last_purchase_error
        self.available = Decimal(available)
        self.pending = pending or []
        self.payout_at = payout_at or NOW
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def get_ticker_symbol(self, base_currency: str, quote_currency: str) -> str:
        return f"{base_currency}-{quote_currency}"

    def get_ticker(self, symbol: str) -> Ticker:
        self.calls.append(("get_ticker", (symbol,)))
        return Ticker(price=Decimal(self.products[symbol][1]))

    def get_product(self, symbol: str) -> Product:
        self.calls.append(("get_product", (symbol,)))
        base, quote = symbol.split("-")
        return Product(
            base_currency=base,
            quote_currency=quote,
            base_min_size=Decimal(self.products[symbol][0]),
        )

    def get_fiat_account(self, currency: str) -> Account:
        self.calls.append(("get_fiat_account", (currency,)))
        return Account(available=self.available)

    def get_pending_transfers(self, currency: str) -> list[PendingTransfer]:
        self.calls.append(("get_pending_transfers", (currency,)))
        return self.pending

    def deposit(self, currency: str, amount: Decimal) -> datetime:
        self.calls.append(("deposit", (currency, amount)))
        return self.payout_at

    def create_order(self, symbol, amount, order_type, calc_limit_order) -> Order:
        self.calls.append(("create_order", (symbol, amount, order_type)))
        return Order(order_id=f"order-{symbol}", symbol=symbol)

    def last_purchase_time(self, coin, currency, since):
        self.calls.append(("last_purchase_time", (coin, currency, since)))
        if self.last_purchase_error is not None:
            raise self.last_purchase_error
        return self.last_purchase

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]


def _request(**overrides: Any) -> SyncRequest:
    values: dict[str, Any] = {
        "coins": ("BTC:100",),
        "usd": Decimal("50"),
        "every": timedelta(hours=24),
    }
    values.update(overrides)
    return SyncRequest(**values)


def _schedule(
    exchange: FakeExchange, request: SyncRequest, **kwargs: Any
) -> DcaSchedule:
    kwargs.setdefault("clock", lambda: NOW)
    kwargs.setdefault("sleep", lambda seconds: None)
    kwargs.setdefault("confirm", lambda prompt: True)
    return DcaSchedule.create(exchange, request, **kwargs)


def test_create_splits_budget_across_coins() -> None:
    exchange = FakeExchange(
        products={"BTC-USD": ("0.001", "1000"), "ETH-USD": ("0.5", "10")}
    )

    schedule = _schedule(exchange, _request(coins=("BTC:50", "ETH:50")))

    orders = {order.coin: order for order in schedule.plan.orders}
    assert orders["BTC"].amount == Decimal("25")
    assert orders["ETH"].amount == Decimal("25")
    assert orders["BTC"].symbol == "BTC-USD"


def test_create_rejects_unbalanced_weights() -> None:
    exchange = FakeExchange(
        products={"BTC-USD": ("0.001", "1000"), "ETH-USD": ("0.5", "10")}
    )

    with pytest.raises(InvalidWeightsError, match="provided 99"):
        _schedule(exchange, _request(coins=("BTC:50", "ETH:49")))


def test_create_rejects_purchase_below_minimum() -> None:
    exchange = FakeExchange(products={"BTC-USD": ("0.01", "10000")})

    with pytest.raises(BelowMinimumError) as excinfo:
        _schedule(exchange, _request(coins=("BTC:50", "ETH:50")))

    assert str(excinfo.value) == (
        "Coinbase minimum BTC trade amount is $100.00, "
        "but you're trying to purchase $25.00"
    )


def test_create_refuses_after_deadline_without_venue_calls() -> None:
    exchange = FakeExchange()

    with pytest.raises(DeadlineError, match="Deadline has passed, not taking any action"):
        _schedule(exchange, _request(until=NOW - timedelta(days=1)))

    assert exchange.calls == []


def test_create_refuses_before_start_date() -> None:
    after = NOW + timedelta(days=1)
    exchange = FakeExchange()

    with pytest.raises(DeadlineError) as excinfo:
        _schedule(exchange, _request(after=after))

    assert str(excinfo.value) == (
        f"Configured to start after {after}, not taking any action"
    )
    assert exchange.calls == []


def test_sync_rechecks_deadline_when_clock_has_moved() -> None:
    exchange = FakeExchange()
    now = [NOW]
    schedule = _schedule(
        exchange, _request(until=NOW + timedelta(minutes=5)), clock=lambda: now[0]
    )
    now[0] = NOW + timedelta(hours=1)

    with pytest.raises(DeadlineError, match="Deadline has passed"):
        schedule.sync()

    assert exchange.called("get_fiat_account") == []


def test_sync_waits_for_next_window_after_recent_purchase() -> None:
    exchange = FakeExchange(last_purchase=NOW - timedelta(hours=12))
    schedule = _schedule(exchange, _request())

    with pytest.raises(
        WindowNotElapsedError,
        match="Detected a recent purchase, waiting for next purchase window",
    ):
        schedule.sync()

    assert exchange.called("last_purchase_time") == [
        ("BTC", "USD", NOW - timedelta(hours=24))
    ]
    assert exchange.called("create_order") == []


def test_sync_surfaces_exchange_errors_from_history_lookup() -> None:
    exchange = FakeExchange(last_purchase_error=VenueError("ledger unavailable"))
    schedule = _schedule(exchange, _request())

    with pytest.raises(VenueError, match="ledger unavailable"):
        schedule.sync()


def test_sync_deposits_shortfall_and_orders_in_same_run() -> None:
    slept: list[float] = []
    exchange = FakeExchange(available="25", payout_at=NOW)
    schedule = _schedule(
        exchange, _request(auto_fund=True), sleep=slept.append, debug=False
    )

    result = schedule.sync()

    assert exchange.called("deposit") == [("USD", Decimal("25"))]
    assert exchange.called("create_order") == [
        ("BTC-USD", Decimal("50"), OrderType.MARKET)
    ]
    assert slept == [60.0]
    assert result.funding is not None
    assert result.funding.action == FundingAction.WAIT
    assert [order.order_id for order in result.orders] == ["order-BTC-USD"]
    assert not result.partial


def test_sync_defers_when_deposit_settles_later() -> None:
    exchange = FakeExchange(available="25", payout_at=NOW + timedelta(days=3))
    schedule = _schedule(exchange, _request(auto_fund=True))

    result = schedule.sync()

    assert result.deferred
    assert result.orders == []
    assert exchange.called("create_order") == []


def test_sync_requires_autofund_for_shortfall() -> None:
    exchange = FakeExchange(available="25")
    schedule = _schedule(exchange, _request(auto_fund=False))

    with pytest.raises(InsufficientFundsError):
        schedule.sync()

    assert exchange.called("deposit") == []


def test_forced_sync_rejected_by_user() -> None:
    prompts: list[str] = []

    def decline(prompt: str) -> bool:
        prompts.append(prompt)
        return False

    exchange = FakeExchange(last_purchase=NOW - timedelta(hours=1))
    schedule = _schedule(exchange, _request(force=True), confirm=decline)

    with pytest.raises(TradeRejectedError, match="User rejected the trade"):
        schedule.sync()

    assert prompts == ["Force method is used proceed?"]
    assert exchange.called("last_purchase_time") == []


def test_forced_sync_approved_skips_window_check() -> None:
    exchange = FakeExchange(last_purchase=NOW - timedelta(hours=1), available="50")
    schedule = _schedule(exchange, _request(force=True), confirm=lambda _: True)

    result = schedule.sync()

    assert exchange.called("last_purchase_time") == []
    assert exchange.called("get_fiat_account") == [("USD",)]
    assert exchange.called("create_order") == [
        ("BTC-USD", Decimal("50"), OrderType.MARKET)
    ]
    assert len(result.orders) == 1


def test_debug_sync_skips_deposit_and_orders() -> None:
    exchange = FakeExchange(available="25")
    schedule = _schedule(exchange, _request(auto_fund=True), debug=True)

    result = schedule.sync()

    assert exchange.called("deposit") == []
    assert exchange.called("create_order") == []
    assert result.skipped == ["BTC-USD"]
    assert not result.partial


def test_zero_budget_uses_minimum_of_first_coin() -> None:
    exchange = FakeExchange(products={"BTC-USD": ("0.001", "10000")})

    schedule = _schedule(exchange, _request(usd=Decimal("0")))

    assert schedule.plan.total_fiat == Decimal("10.1")
    assert schedule.plan.orders[0].amount == Decimal("10.10")
