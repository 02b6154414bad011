"""Coinbase Exchange (formerly Pro) adapter."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Iterator

from dca_client.auth import ApiCredentials, CoinbaseExchangeSigner
from dca_client.constants import (
    ACH_PAYMENT_METHOD_TYPES,
    COINBASE_EXCHANGE_SANDBOX_URL,
    COINBASE_EXCHANGE_URL,
)
from dca_client.models import (
    CoinbaseAccount,
    CoinbaseDeposit,
    CoinbaseLedgerEntry,
    CoinbaseOrder,
    CoinbaseProduct,
    CoinbaseTicker,
    CoinbaseTransfer,
    PaymentMethod,
)
from dca_client.pricing import FIAT_PLACES, truncate
from dca_client.rest import RestClient, RestError, RestRequest
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


class CoinbaseExchange:
    name = "Coinbase"

    def __init__(
        self,
        rest_client: RestClient,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._rest = rest_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_credentials(
        cls, credentials: ApiCredentials, *, sandbox: bool = False, **kwargs: Any
    ) -> "CoinbaseExchange":
        base_url = COINBASE_EXCHANGE_SANDBOX_URL if sandbox else COINBASE_EXCHANGE_URL
        rest = RestClient(
            base_url,
            credentials=credentials,
            signer=CoinbaseExchangeSigner(),
            **kwargs,
        )
        return cls(rest)

    def get_ticker_symbol(self, base_currency: str, quote_currency: str) -> str:
        return f"{base_currency}-{quote_currency}"

    def get_ticker(self, symbol: str) -> Ticker:
        ticker = self._fetch_ticker(symbol)
        return Ticker(price=ticker.price)

    def get_product(self, symbol: str) -> Product:
        payload = self._rest.send(
            RestRequest(method="GET", path=f"/products/{symbol}", signed=False)
        )
        product = CoinbaseProduct.model_validate(payload)
        return Product(
            base_currency=product.base_currency,
            quote_currency=product.quote_currency,
            base_min_size=product.base_min_size,
            size_increment=product.base_increment,
        )

    def get_fiat_account(self, currency: str) -> Account:
        return Account(available=self._account_for(currency).available)

    def get_pending_transfers(self, currency: str) -> list[PendingTransfer]:
        account = self._account_for(currency)
        stuck_before = self._clock() - STUCK_TRANSFER_AGE
        pending: list[PendingTransfer] = []
        for item in self._paginate(f"/accounts/{account.id}/transfers"):
            transfer = CoinbaseTransfer.model_validate(item)
            if transfer.processed_at is not None or transfer.canceled_at is not None:
                continue
            # deposits pending for over a day never settle on their own
            if transfer.created_at is not None and transfer.created_at < stuck_before:
                logger.debug("Ignoring stuck transfer %s", transfer.id)
                continue
            pending.append(PendingTransfer(amount=transfer.amount))
        return pending

    def deposit(self, currency: str, amount: Decimal) -> datetime:
        payload = self._rest.send(RestRequest(method="GET", path="/payment-methods"))
        methods = [PaymentMethod.model_validate(item) for item in payload or []]
        bank_account = None
        for method in methods:
            if method.type in ACH_PAYMENT_METHOD_TYPES:
                bank_account = method
        if bank_account is None:
            raise NoBankAccountError("No ACH bank account found on this account")

        response = self._rest.send(
            RestRequest(
                method="POST",
                path="/deposits/payment-method",
                body={
                    "amount": str(truncate(amount, FIAT_PLACES)),
                    "currency": currency,
                    "payment_method_id": bank_account.id,
                },
            )
        )
        deposit = CoinbaseDeposit.model_validate(response)
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
        body: dict[str, Any] = {"product_id": symbol, "side": "buy"}
        if order_type == OrderType.LIMIT:
            ticker = self._fetch_ticker(symbol)
            ask = ticker.ask if ticker.ask is not None else ticker.price
            price, size = calc_limit_order(ask, amount)
            body.update({"type": "limit", "price": str(price), "size": str(size)})
        else:
            body.update(
                {"type": "market", "funds": str(truncate(amount, FIAT_PLACES))}
            )
        payload = self._rest.send(RestRequest(method="POST", path="/orders", body=body))
        order = CoinbaseOrder.model_validate(payload)
        return Order(order_id=order.id, symbol=order.product_id)

    def last_purchase_time(
        self, coin: str, currency: str, since: datetime
    ) -> datetime | None:
        account = self._account_for(coin)
        latest: datetime | None = None
        # ledger pages are newest first
        for item in self._paginate(f"/accounts/{account.id}/ledger"):
            entry = CoinbaseLedgerEntry.model_validate(item)
            if entry.created_at is not None and entry.created_at < since:
                break
            if entry.type != "match" or entry.created_at is None:
                continue
            if latest is None or entry.created_at > latest:
                latest = entry.created_at
        return latest

    def _fetch_ticker(self, symbol: str) -> CoinbaseTicker:
        payload = self._rest.send(
            RestRequest(method="GET", path=f"/products/{symbol}/ticker", signed=False)
        )
        return CoinbaseTicker.model_validate(payload)

    def _account_for(self, currency: str) -> CoinbaseAccount:
        payload = self._rest.send(RestRequest(method="GET", path="/accounts"))
        for item in payload or []:
            account = CoinbaseAccount.model_validate(item)
            if account.currency == currency:
                return account
        raise RestError(f"No {currency} wallet on this account")

    def _paginate(self, path: str) -> Iterator[dict[str, Any]]:
        cursor: str | None = None
        while True:
            response = self._rest.send_with_headers(
                RestRequest(method="GET", path=path, params={"after": cursor})
            )
            page = response.payload or []
            yield from page
            cursor = _header(response.headers, "CB-AFTER")
            if not page or not cursor:
                return


def _header(headers: Any, name: str) -> str | None:
    for key, value in dict(headers or {}).items():
        if key.lower() == name.lower():
            return value
    return None
