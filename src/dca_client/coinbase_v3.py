"""Coinbase Advanced Trade (v3) adapter.

Trading goes through the Advanced Trade brokerage API. Bank deposits are not
part of that API, so payment methods and deposits use the v2 API with the
same key.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable

from dca_client.auth import ApiCredentials, CoinbaseHmacSigner
from dca_client.constants import (
    ACH_PAYMENT_METHOD_TYPES,
    COINBASE_ADVANCED_URL,
    COINBASE_V2_API_VERSION,
    COINBASE_V2_URL,
)
from dca_client.models import (
    AdvancedAccount,
    AdvancedOrder,
    AdvancedOrderResult,
    AdvancedProduct,
    PaymentMethod,
    V2Deposit,
)
from dca_client.pricing import FIAT_PLACES, truncate
from dca_client.rest import RestClient, RestError, RestRequest
from dca_client.timestamp_utils import format_timestamp_iso
from engine.errors import NoBankAccountError
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

STUCK_TRANSFER_AGE = timedelta(days=1)
PENDING_DEPOSIT_STATUS = "created"


class CoinbaseV3Exchange:
    name = "Coinbase"

    def __init__(
        self,
        rest_client: RestClient,
        v2_client: RestClient,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._rest = rest_client
        self._v2 = v2_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_credentials(
        cls, credentials: ApiCredentials, **kwargs: Any
    ) -> "CoinbaseV3Exchange":
        rest = RestClient(
            COINBASE_ADVANCED_URL,
            credentials=credentials,
            signer=CoinbaseHmacSigner(include_query=False),
            **kwargs,
        )
        v2 = RestClient(
            COINBASE_V2_URL,
            credentials=credentials,
            signer=CoinbaseHmacSigner(api_version=COINBASE_V2_API_VERSION),
            **kwargs,
        )
        return cls(rest, v2)

    def get_ticker_symbol(self, base_currency: str, quote_currency: str) -> str:
        return f"{base_currency}-{quote_currency}"

    def get_ticker(self, symbol: str) -> Ticker:
        return Ticker(price=self._best_ask(symbol))

    def get_product(self, symbol: str) -> Product:
        payload = self._rest.send(RestRequest(method="GET", path=f"/products/{symbol}"))
        product = AdvancedProduct.model_validate(payload)
        return Product(
            base_currency=product.base_currency_id,
            quote_currency=product.quote_currency_id,
            base_min_size=product.base_min_size,
            size_increment=product.base_increment,
        )

    def get_fiat_account(self, currency: str) -> Account:
        account = self._account_for(currency)
        return Account(available=account.available_balance.value)

    def get_pending_transfers(self, currency: str) -> list[PendingTransfer]:
        account = self._account_for(currency)
        payload = self._v2.send(
            RestRequest(method="GET", path=f"/accounts/{account.uuid}/deposits")
        )
        stuck_before = self._clock() - STUCK_TRANSFER_AGE
        pending: list[PendingTransfer] = []
        for item in _data(payload):
            deposit = V2Deposit.model_validate(item)
            if deposit.status != PENDING_DEPOSIT_STATUS:
                continue
            if deposit.created_at is not None and deposit.created_at < stuck_before:
                logger.debug("Ignoring stuck deposit %s", deposit.id)
                continue
            pending.append(PendingTransfer(amount=deposit.amount.amount))
        return pending

    def deposit(self, currency: str, amount: Decimal) -> datetime:
        account = self._account_for(currency)
        payload = self._v2.send(RestRequest(method="GET", path="/payment-methods"))
        bank_account = None
        for item in _data(payload):
            method = PaymentMethod.model_validate(item)
            if method.type in ACH_PAYMENT_METHOD_TYPES:
                bank_account = method
        if bank_account is None:
            raise NoBankAccountError("No ACH bank account found on this account")

        response = self._v2.send(
            RestRequest(
                method="POST",
                path=f"/accounts/{account.uuid}/deposits",
                body={
                    "amount": str(truncate(amount, FIAT_PLACES)),
                    "currency": currency,
                    "payment_method": bank_account.id,
                },
            )
        )
        deposit = V2Deposit.model_validate((response or {}).get("data") or {})
        if deposit.payout_at is None:
            raise RestError("Deposit response did not include payout_at")
        return deposit.payout_at

    def create_order(
        self,
        symbol: str,
        amount: Decimal,
        order_type: OrderType,
        calc_limit_order: CalcLimitOrder,
    ) -> Order:
        if order_type == OrderType.LIMIT:
            price, size = calc_limit_order(self._best_ask(symbol), amount)
            configuration = {
                "limit_limit_gtc": {"base_size": str(size), "limit_price": str(price)}
            }
        else:
            configuration = {
                "market_market_ioc": {
                    "quote_size": str(truncate(amount, FIAT_PLACES))
                }
            }
        payload = self._rest.send(
            RestRequest(
                method="POST",
                path="/orders",
                body={
                    "client_order_id": str(uuid.uuid4()),
                    "product_id": symbol,
                    "side": "BUY",
                    "order_configuration": configuration,
                },
            )
        )
        result = AdvancedOrderResult.from_payload(payload or {})
        if not result.success:
            raise RestError(
                f"order failed with {result.failure_reason}, {result.error_message}"
            )
        return Order(order_id=result.order_id, symbol=result.product_id or symbol)

    def last_purchase_time(
        self, coin: str, currency: str, since: datetime
    ) -> datetime | None:
        payload = self._rest.send(
            RestRequest(
                method="GET",
                path="/orders/historical/batch",
                params={
                    "product_id": self.get_ticker_symbol(coin, currency),
                    "start_date": format_timestamp_iso(since),
                    "order_status": "FILLED",
                },
            )
        )
        orders = [
            AdvancedOrder.model_validate(item)
            for item in (payload or {}).get("orders") or []
        ]
        times = [order.created_time for order in orders if order.created_time]
        return max(times) if times else None

    def _best_ask(self, symbol: str) -> Decimal:
        payload = self._rest.send(
            RestRequest(
                method="GET", path=f"/products/{symbol}/ticker", params={"limit": 10}
            )
        )
        best_ask = (payload or {}).get("best_ask")
        if not best_ask:
            raise RestError(f"Ticker for {symbol} did not include best_ask")
        return Decimal(str(best_ask))

    def _account_for(self, currency: str) -> AdvancedAccount:
        payload = self._rest.send(
            RestRequest(method="GET", path="/accounts", params={"limit": 250})
        )
        for item in (payload or {}).get("accounts") or []:
            account = AdvancedAccount.model_validate(item)
            if account.currency == currency:
                return account
        raise RestError(f"No {currency} wallet on this account")


def _data(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        return payload.get("data") or []
    return []
