"""Pricing and order sizing helpers."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

FIAT_PLACES = 2
PRICE_PLACES = 2
SIZE_PLACES = 8
MIN_PURCHASE_FLOOR = Decimal("1.0")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def truncate(value: Decimal | int | float | str, places: int) -> Decimal:
    """Cut a value to ``places`` decimals without rounding."""
    quantizer = Decimal("1").scaleb(-places)
    return to_decimal(value).quantize(quantizer, rounding=ROUND_DOWN)


def decimal_precision(increment: Decimal | int | float | str) -> int:
    """Return the number of decimals implied by a tick size such as 0.001."""
    step = to_decimal(increment)
    if step >= 1:
        return 0
    return -step.normalize().adjusted()


def minimum_purchase_amount(
    base_min_size: Decimal | int | str, price: Decimal | int | str
) -> Decimal:
    """Return the smallest fiat purchase a venue accepts, never below $1."""
    minimum = to_decimal(base_min_size) * to_decimal(price)
    return max(minimum, MIN_PURCHASE_FLOOR)


def calc_limit_order(
    ask_price: Decimal,
    fiat_amount: Decimal,
    *,
    fee_percent: Decimal | int | str,
    spread_percent: Decimal | int | str,
) -> tuple[Decimal, Decimal]:
    """Return (price, size) for a buy limit order that fits the fiat budget.

    The fee share is held back from ``fiat_amount`` and the price is pushed
    ``spread_percent`` above the ask so the order fills like a marketable
    limit order. Price and size are truncated, never rounded up.
    """
    hundred = Decimal("100")
    fee = to_decimal(fee_percent)
    spread = to_decimal(spread_percent)
    effective_fiat = to_decimal(fiat_amount) * (hundred - fee) / hundred
    order_price = truncate(
        to_decimal(ask_price) * (Decimal("1") + spread / hundred), PRICE_PLACES
    )
    if order_price <= 0:
        raise ValueError(f"Limit price must be positive, got {order_price}")
    order_size = truncate(effective_fiat / order_price, SIZE_PLACES)
    return order_price, order_size
