"""FTX and FTX US adapter."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from dca_client.auth import ApiCredentials, FtxSigner
from dca_client.constants import FTX_URL, FTX_US_URL
from dca_client.models import FtxBalance, FtxDeposit, FtxFill, FtxMarket, FtxOrder
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

PENDING_DEPOSIT_STATUSES = frozenset({"unconfirmed"})


class FtxExchange:
    def __init__(self, rest_client: RestClient, *, us: bool = False) -> None:
        self._rest = rest_client
        self.name = "FTX US" if us else "FTX"

    @classmethod
    def from_credentials(
        cls,
        credentials: ApiCredentials,
        *,
        us: bool = False,
        subaccount: str | None = None,
        **kwargs: Any,
    ) -> "FtxExchange":
        signer = FtxSigner(
            header_prefix="FTXUS" if us else "FTX", subaccount=subaccount
        )
        rest = RestClient(
            FTX_US_URL if us else FTX_URL,
            credentials=credentials,
            signer=signer,
            **kwargs,
        )
        return cls(rest, us=us)

    def get_ticker_symbol(self, base_currency: str, quote_currency: str) -> str:
        return f"{base_currency}/{quote_currency}"

    def get_ticker(self, symbol: str) -> Ticker:
        market = self._market(symbol)
        price = market.last if market.last is not None else market.ask
        if price is None:
            raise RestError(f"Market {symbol} did not include a price")
        return Ticker(price=price)

    def get_product(self, symbol: str) -> Product:
        market = self._market(symbol)
        return Product(
            base_currency=market.base_currency or "",
            quote_currency=market.quote_currency or "",
            base_min_size=market.min_provide_size,
            size_increment=market.size_increment,
        )

    def get_fiat_account(self, currency: str) -> Account:
        for item in self._result(RestRequest(method="GET", path="/wallet/balances")):
            balance = FtxBalance.model_validate(item)
            if balance.coin == currency:
                return Account(available=balance.free)
        raise RestError(f"Cannot find {currency} account")

    def get_pending_transfers(self, currency: str) -> list[PendingTransfer]:
        pending: list[PendingTransfer] = []
        for item in self._result(RestRequest(method="GET", path="/wallet/deposits")):
            deposit = FtxDeposit.model_validate(item)
            if deposit.coin != currency:
                continue
            if deposit.status.lower() in PENDING_DEPOSIT_STATUSES:
                pending.append(PendingTransfer(amount=deposit.size))
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
                self.name,
                "market orders",
                "market orders are size based, use the limit order type instead",
            )
        market = self._market(symbol)
        if market.ask is None:
            raise RestError(f"Market {symbol} did not include an ask")
        price, size = calc_limit_order(market.ask, amount)
        result = self._result(
            RestRequest(
                method="POST",
                path="/orders",
                body={
                    "market": symbol,
                    "side": "buy",
                    "type": "limit",
                    "price": str(price),
                    "size": str(size),
                    "clientId": str(uuid.uuid4()),
                },
            )
        )
        order = FtxOrder.model_validate(result)
        return Order(order_id=str(order.id), symbol=order.market or symbol)

    def last_purchase_time(
        self, coin: str, currency: str, since: datetime
    ) -> datetime | None:
        fills = self._result(
            RestRequest(
                method="GET",
                path="/fills",
                params={
                    "market": self.get_ticker_symbol(coin, currency),
                    "start_time": timestamp_to_unix(since),
                },
            )
        )
        times = []
        for item in fills or []:
            fill = FtxFill.model_validate(item)
            if fill.side == "buy" and fill.time is not None:
                times.append(fill.time)
        return max(times) if times else None

    def _market(self, symbol: str) -> FtxMarket:
        result = self._result(
            RestRequest(method="GET", path=f"/markets/{symbol}", signed=False)
        )
        return FtxMarket.model_validate(result)

    def _result(self, request: RestRequest) -> Any:
        payload = self._rest.send(request)
        if not isinstance(payload, dict):
            raise RestError(f"Unexpected payload from {request.path}")
        if not payload.get("success", False):
            raise RestError(payload.get("error") or f"Request to {request.path} failed")
        return payload.get("result")
