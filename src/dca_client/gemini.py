"""Gemini adapter.

Gemini has no market orders and no bank deposits over the API. Buys are
placed as ``exchange limit`` orders priced slightly above the ask.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from dca_client.auth import ApiCredentials, GeminiSigner
from dca_client.constants import GEMINI_SANDBOX_URL, GEMINI_URL
from dca_client.models import (
    GeminiBalance,
    GeminiOrder,
    GeminiSymbolDetails,
    GeminiTicker,
    GeminiTrade,
    GeminiTransfer,
)
from dca_client.pricing import decimal_precision, truncate
from dca_client.rest import RestClient, RestError, RestRequest
from dca_client.timestamp_utils import timestamp_to_unix
from engine.errors import UnsupportedOperationError
from engine.exchange_client import (
    Account,
    CalcLimitOrder,
    Order,
    OrderType,
    PendingTransfer,
    Product,
    Ticker,
)

logger = logging.getLogger(__name__)

PENDING_TRANSFER_STATUSES = frozenset({"pending"})


class GeminiExchange:
    name = "Gemini"

    def __init__(self, rest_client: RestClient) -> None:
        self._rest = rest_client

    @classmethod
    def from_credentials(
        cls, credentials: ApiCredentials, *, sandbox: bool = False, **kwargs: Any
    ) -> "GeminiExchange":
        rest = RestClient(
            GEMINI_SANDBOX_URL if sandbox else GEMINI_URL,
            credentials=credentials,
            signer=GeminiSigner(),
            **kwargs,
        )
        return cls(rest)

    def get_ticker_symbol(self, base_currency: str, quote_currency: str) -> str:
        return f"{base_currency}{quote_currency}".lower()

    def get_ticker(self, symbol: str) -> Ticker:
        ticker = self._fetch_ticker(symbol)
        price = ticker.ask if ticker.ask is not None else ticker.close
        if price is None:
            raise RestError(f"Ticker for {symbol} did not include a price")
        return Ticker(price=price)

    def get_product(self, symbol: str) -> Product:
        details = self._symbol_details(symbol)
        return Product(
            base_currency=details.base_currency,
            quote_currency=details.quote_currency,
            base_min_size=details.min_order_size,
            size_increment=details.tick_size,
        )

    def get_fiat_account(self, currency: str) -> Account:
        payload = self._rest.send(RestRequest(method="POST", path="/v1/balances"))
        for item in payload or []:
            balance = GeminiBalance.model_validate(item)
            if balance.currency == currency:
                return Account(available=balance.available)
        raise RestError(f"Cannot find {currency} account")

    def get_pending_transfers(self, currency: str) -> list[PendingTransfer]:
        payload = self._rest.send(RestRequest(method="POST", path="/v1/transfers"))
        pending: list[PendingTransfer] = []
        for item in payload or []:
            transfer = GeminiTransfer.model_validate(item)
            if transfer.type.lower() != "deposit" or transfer.currency != currency:
                continue
            if transfer.status.lower() in PENDING_TRANSFER_STATUSES:
                pending.append(PendingTransfer(amount=transfer.amount))
        return pending

    def deposit(self, currency: str, amount: Decimal) -> datetime:
        raise UnsupportedOperationError(
            self.name, "bank deposits", "not available through the exchange API"
        )

    def create_order(
        self,
        symbol: str,
        amount: Decimal,
        order_type: OrderType,
        calc_limit_order: CalcLimitOrder,
    ) -> Order:
        if order_type == OrderType.MARKET:
            raise UnsupportedOperationError(
                self.name, "market orders", "use the limit order type instead"
            )
        details = self._symbol_details(symbol)
        ticker = self._fetch_ticker(symbol)
        if ticker.ask is None:
            raise RestError(f"Ticker for {symbol} did not include an ask")
        price, size = calc_limit_order(ticker.ask, amount)
        if details.tick_size is not None:
            size = truncate(size, decimal_precision(details.tick_size))

        client_order_id = str(uuid.uuid4())
        payload = self._rest.send(
            RestRequest(
                method="POST",
                path="/v1/order/new",
                body={
                    "client_order_id": client_order_id,
                    "symbol": symbol,
                    "amount": str(size),
                    "price": str(price),
                    "side": "buy",
                    "type": "exchange limit",
                },
            )
        )
        order = GeminiOrder.model_validate(payload)
        logger.debug("Gemini order %s accepted for %s", order.order_id, symbol)
        return Order(order_id=client_order_id, symbol=symbol)

    def last_purchase_time(
        self, coin: str, currency: str, since: datetime
    ) -> datetime | None:
        payload = self._rest.send(
            RestRequest(
                method="POST",
                path="/v1/mytrades",
                body={
                    "symbol": self.get_ticker_symbol(coin, currency),
                    "timestamp": timestamp_to_unix(since),
                },
            )
        )
        trades = [GeminiTrade.model_validate(item) for item in payload or []]
        times = [
            trade.timestamp
            for trade in trades
            if trade.type.lower() == "buy" and trade.timestamp is not None
        ]
        return max(times) if times else None

    def _fetch_ticker(self, symbol: str) -> GeminiTicker:
        payload = self._rest.send(
            RestRequest(method="GET", path=f"/v2/ticker/{symbol}", signed=False)
        )
        return GeminiTicker.model_validate(payload)

    def _symbol_details(self, symbol: str) -> GeminiSymbolDetails:
        payload = self._rest.send(
            RestRequest(
                method="GET", path=f"/v1/symbols/details/{symbol}", signed=False
            )
        )
        return GeminiSymbolDetails.model_validate(payload)
