"""Wire models for exchange REST payloads.

Pydantic-based models that validate the parts of each venue response the
adapters rely on. Unknown fields are ignored.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from dca_client.timestamp_utils import parse_timestamp


class WireModel(BaseModel):
    """Base model for venue payloads."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def normalize_value(cls, v: Any, info: ValidationInfo) -> Any:
        """Parse venue timestamps and fall back to defaults for blank values."""
        field = cls.model_fields.get(info.field_name or "")
        if field is None:
            return v
        if _accepts_datetime(field.annotation):
            return parse_timestamp(v)
        if (v is None or v == "") and not field.is_required():
            return field.get_default(call_default_factory=True)
        return v


def _accepts_datetime(annotation: Any) -> bool:
    return annotation is datetime or datetime in get_args(annotation)


# Coinbase Exchange API


class CoinbaseAccount(WireModel):
    id: str
    currency: str
    balance: Decimal = Decimal("0")
    available: Decimal = Decimal("0")
    hold: Decimal = Decimal("0")


class CoinbaseProduct(WireModel):
    id: str
    base_currency: str
    quote_currency: str
    base_min_size: Decimal = Decimal("0")
    base_increment: Decimal | None = None
    quote_increment: Decimal | None = None


class CoinbaseTicker(WireModel):
    price: Decimal
    ask: Decimal | None = None
    bid: Decimal | None = None


class CoinbaseLedgerEntry(WireModel):
    id: str
    type: str
    created_at: datetime | None = None
    amount: Decimal = Decimal("0")


class CoinbaseTransfer(WireModel):
    id: str | None = None
    type: str = ""
    amount: Decimal = Decimal("0")
    created_at: datetime | None = None
    canceled_at: datetime | None = None
    processed_at: datetime | None = None
    completed_at: datetime | None = None


class PaymentMethod(WireModel):
    id: str
    type: str
    name: str = ""
    currency: str = ""


class CoinbaseDeposit(WireModel):
    id: str | None = None
    amount: Decimal = Decimal("0")
    currency: str = ""
    payout_at: datetime | None = None


class CoinbaseOrder(WireModel):
    id: str
    product_id: str
    status: str = ""


# Coinbase Advanced Trade (v3) and Coinbase v2 API


class BalanceValue(WireModel):
    value: Decimal = Decimal("0")
    currency: str = ""


class AdvancedAccount(WireModel):
    uuid: str
    currency: str
    available_balance: BalanceValue = Field(default_factory=BalanceValue)
    hold: BalanceValue = Field(default_factory=BalanceValue)


class AdvancedProduct(WireModel):
    product_id: str
    base_currency_id: str
    quote_currency_id: str
    base_min_size: Decimal = Decimal("0")
    base_increment: Decimal | None = None
    price: Decimal | None = None


class AdvancedOrder(WireModel):
    order_id: str
    product_id: str = ""
    side: str = ""
    status: str = ""
    created_time: datetime | None = None


class AdvancedOrderResult(WireModel):
    success: bool
    order_id: str = ""
    product_id: str = ""
    failure_reason: str = ""
    error_message: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AdvancedOrderResult":
        success_response = payload.get("success_response") or {}
        error_response = payload.get("error_response") or {}
        return cls(
            success=bool(payload.get("success")),
            order_id=str(
                payload.get("order_id") or success_response.get("order_id") or ""
            ),
            product_id=str(success_response.get("product_id") or ""),
            failure_reason=str(payload.get("failure_reason") or ""),
            error_message=str(
                error_response.get("message") or error_response.get("error") or ""
            ),
        )


class V2Amount(WireModel):
    amount: Decimal = Decimal("0")
    currency: str = ""


class V2Deposit(WireModel):
    id: str | None = None
    status: str = ""
    amount: V2Amount = Field(default_factory=V2Amount)
    created_at: datetime | None = None
    payout_at: datetime | None = None


# Gemini


class GeminiBalance(WireModel):
    currency: str
    amount: Decimal = Decimal("0")
    available: Decimal = Decimal("0")


class GeminiSymbolDetails(WireModel):
    symbol: str
    base_currency: str
    quote_currency: str
    min_order_size: Decimal = Decimal("0")
    tick_size: Decimal | None = None
    quote_increment: Decimal | None = None


class GeminiTicker(WireModel):
    symbol: str = ""
    bid: Decimal | None = None
    ask: Decimal | None = None
    close: Decimal | None = None


class GeminiTrade(WireModel):
    tid: int | str | None = None
    price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    type: str = ""
    timestamp: datetime | None = None


class GeminiTransfer(WireModel):
    type: str = ""
    status: str = ""
    currency: str = ""
    amount: Decimal = Decimal("0")
    timestamp: datetime | None = Field(default=None, alias="timestampms")


class GeminiOrder(WireModel):
    order_id: str
    client_order_id: str | None = None
    symbol: str = ""
    is_live: bool = False


# FTX / FTX US


class FtxMarket(WireModel):
    name: str
    base_currency: str | None = Field(default=None, alias="baseCurrency")
    quote_currency: str | None = Field(default=None, alias="quoteCurrency")
    ask: Decimal | None = None
    bid: Decimal | None = None
    last: Decimal | None = None
    min_provide_size: Decimal = Field(default=Decimal("0"), alias="minProvideSize")
    size_increment: Decimal | None = Field(default=None, alias="sizeIncrement")


class FtxBalance(WireModel):
    coin: str
    free: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class FtxFill(WireModel):
    market: str | None = None
    side: str = ""
    size: Decimal = Decimal("0")
    price: Decimal = Decimal("0")
    time: datetime | None = None


class FtxDeposit(WireModel):
    coin: str
    size: Decimal = Decimal("0")
    status: str = ""
    time: datetime | None = None


class FtxOrder(WireModel):
    id: int | str
    market: str = ""
    status: str = ""
    client_id: str | None = Field(default=None, alias="clientId")
