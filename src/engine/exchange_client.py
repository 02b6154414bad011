"""Exchange capability interface consumed by the scheduler."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Protocol

CalcLimitOrder = Callable[[Decimal, Decimal], "tuple[Decimal, Decimal]"]


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


@dataclass(frozen=True)
class Ticker:
    price: Decimal


@dataclass(frozen=True)
class Product:
    base_currency: str
    quote_currency: str
    base_min_size: Decimal
    # smallest step of the base order size, e.g. 0.00000001 BTC
    size_increment: Decimal | None = None


@dataclass(frozen=True)
class Account:
    available: Decimal


@dataclass(frozen=True)
class PendingTransfer:
    amount: Decimal


@dataclass(frozen=True)
class Order:
    order_id: str
    symbol: str


class Exchange(Protocol):
    name: str

    def get_ticker_symbol(self, base_currency: str, quote_currency: str) -> str:
        """Return the venue trading symbol for a currency pair."""

    def get_ticker(self, symbol: str) -> Ticker:
        """Return the current price for a symbol."""

    def get_product(self, symbol: str) -> Product:
        """Return product metadata, including the minimum order size."""

    def get_fiat_account(self, currency: str) -> Account:
        """Return the available balance for a fiat currency."""

    def get_pending_transfers(self, currency: str) -> list[PendingTransfer]:
        """Return deposits that are in flight and not yet settled."""

    def deposit(self, currency: str, amount: Decimal) -> datetime:
        """Initiate a bank deposit and return the estimated payout time."""

    def create_order(
        self,
        symbol: str,
        amount: Decimal,
        order_type: OrderType,
        calc_limit_order: CalcLimitOrder,
    ) -> Order:
        """Place a buy order spending ``amount`` of quote currency."""

    def last_purchase_time(
        self, coin: str, currency: str, since: datetime
    ) -> datetime | None:
        """Return the most recent completed purchase at or after ``since``."""
