"""Fiat allocation across coins for a DCA run."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping, Sequence, Union

from dca_client.pricing import FIAT_PLACES, minimum_purchase_amount, to_decimal, truncate
from engine.errors import BelowMinimumError, ConfigurationError, InvalidWeightsError
from engine.exchange_client import Exchange

logger = logging.getLogger(__name__)

TOTAL_PERCENTAGE = 100
AUTO_BUDGET_MARGIN = Decimal("0.1")

CoinEntry = Union[str, Sequence[object], Mapping[str, object], "CoinWeight"]


@dataclass(frozen=True)
class CoinWeight:
    coin: str
    percentage: int


@dataclass(frozen=True)
class OrderPlan:
    coin: str
    symbol: str
    amount: Decimal
    minimum: Decimal


@dataclass(frozen=True)
class AllocationPlan:
    total_fiat: Decimal
    currency: str
    orders: tuple[OrderPlan, ...]

    @property
    def marker_coin(self) -> str:
        """The coin whose trade history stands in for the whole batch."""
        return self.orders[0].coin


def parse_coin_weights(entries: Iterable[CoinEntry]) -> tuple[CoinWeight, ...]:
    """Parse ``BTC:50`` strings, ``(coin, pct)`` pairs or mappings."""
    weights: list[CoinWeight] = []
    seen: set[str] = set()
    for entry in entries:
        weight = _parse_entry(entry)
        if weight.coin in seen:
            raise ConfigurationError(f"Coin {weight.coin} is listed more than once")
        seen.add(weight.coin)
        weights.append(weight)
    if not weights:
        raise ConfigurationError("At least one coin:percentage entry is required")
    return tuple(weights)


def _parse_entry(entry: CoinEntry) -> CoinWeight:
    if isinstance(entry, CoinWeight):
        coin, raw_pct = entry.coin, entry.percentage
    elif isinstance(entry, str):
        coin, sep, raw_pct = entry.partition(":")
        if not sep:
            raise ConfigurationError(
                f"Invalid coin entry '{entry}', expected COIN:PERCENTAGE"
            )
    elif isinstance(entry, Mapping):
        coin = entry.get("coin", "")
        raw_pct = entry.get("percentage")
    elif isinstance(entry, Sequence) and len(entry) == 2:
        coin, raw_pct = entry[0], entry[1]
    else:
        raise ConfigurationError(f"Invalid coin entry {entry!r}")

    coin = str(coin).strip().upper()
    if not coin:
        raise ConfigurationError(f"Invalid coin entry {entry!r}, coin is empty")
    if isinstance(raw_pct, bool):
        raise ConfigurationError(f"Percentage for {coin} must be an integer")
    try:
        percentage = int(str(raw_pct).strip())
    except ValueError as exc:
        raise ConfigurationError(
            f"Percentage for {coin} must be an integer, got {raw_pct!r}"
        ) from exc
    if percentage <= 0:
        raise ConfigurationError(
            f"Percentage for {coin} must be positive, got {percentage}"
        )
    return CoinWeight(coin=coin, percentage=percentage)


def plan_allocation(
    exchange: Exchange,
    coins: Iterable[CoinEntry],
    total_fiat: Decimal | int | str,
    currency: str = "USD",
) -> AllocationPlan:
    """Split the fiat budget across coins and check each share against the venue minimum.

    A budget of zero resolves to the first coin's minimum plus ten cents and
    that value is used for every coin in the run.
    """
    weights = parse_coin_weights(coins)
    budget = to_decimal(total_fiat)
    total_percentage = 0
    orders: list[OrderPlan] = []

    for weight in weights:
        total_percentage += weight.percentage
        symbol = exchange.get_ticker_symbol(weight.coin, currency)
        product = exchange.get_product(symbol)
        ticker = exchange.get_ticker(symbol)
        minimum = minimum_purchase_amount(product.base_min_size, ticker.price)

        if budget == 0:
            budget = minimum + AUTO_BUDGET_MARGIN
            logger.info(
                "No budget configured, using the %s minimum of %s %s",
                weight.coin,
                budget,
                currency,
            )

        amount = truncate(
            budget * weight.percentage / TOTAL_PERCENTAGE, FIAT_PLACES
        )
        if amount < minimum:
            raise BelowMinimumError(exchange.name, weight.coin, minimum, amount)

        orders.append(
            OrderPlan(coin=weight.coin, symbol=symbol, amount=amount, minimum=minimum)
        )

    if total_percentage != TOTAL_PERCENTAGE:
        raise InvalidWeightsError(total_percentage)

    return AllocationPlan(total_fiat=budget, currency=currency, orders=tuple(orders))

