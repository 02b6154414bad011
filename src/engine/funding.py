"""Funding gate: make sure the fiat balance covers a run before ordering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable

from dca_client.pricing import FIAT_PLACES, to_decimal, truncate
from engine.errors import InsufficientFundsError, TransfersSettlingError
from engine.exchange_client import Exchange

logger = logging.getLogger(__name__)

PAYOUT_GRACE = timedelta(minutes=1)
MAX_INLINE_WAIT = timedelta(minutes=2)


class FundingAction(str, Enum):
    PROCEED = "proceed"
    WAIT = "wait"
    DEFER = "defer"


@dataclass(frozen=True)
class FundingDecision:
    action: FundingAction
    wait: timedelta = timedelta(0)
    deposited: Decimal | None = None
    payout_at: datetime | None = None


class FundingGate:
    def __init__(
        self,
        exchange: Exchange,
        *,
        auto_fund: bool,
        debug: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._exchange = exchange
        self._auto_fund = auto_fund
        self._debug = debug
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def ensure_funds(
        self, required: Decimal | int | str, currency: str
    ) -> FundingDecision:
        """Check the balance and deposit the shortfall when auto-funding is on.

        Returns ``proceed`` when funds are available, ``wait`` when a deposit
        settles soon enough to sleep for it, and ``defer`` when a later run
        has to pick up the purchase.
        """
        required_amount = to_decimal(required)
        account = self._exchange.get_fiat_account(currency)
        if account.available >= required_amount:
            return FundingDecision(action=FundingAction.PROCEED)

        shortfall = truncate(required_amount - account.available, FIAT_PLACES)
        if self._exchange.get_pending_transfers(currency):
            raise TransfersSettlingError(
                "Not enough available funds, wait for transfers to settle"
            )

        logger.info(
            "Insufficient funds, %s %s needed",
            shortfall,
            currency,
            extra={"needed": str(shortfall)},
        )
        if not self._auto_fund:
            raise InsufficientFundsError(
                "No sufficient amount for trade and autofund is disabled. "
                "Deposit money to proceed"
            )

        logger.info("Creating a transfer request for %s %s", shortfall, currency)
        if self._debug:
            logger.info("Deposit skipped for debug")
            return FundingDecision(action=FundingAction.PROCEED)

        payout_at = self._exchange.deposit(currency, shortfall)
        wait = payout_at + PAYOUT_GRACE - self._clock()
        if wait < MAX_INLINE_WAIT:
            wait = max(wait, timedelta(0))
            logger.info("Sleeping for %.2f minutes", wait.total_seconds() / 60)
            return FundingDecision(
                action=FundingAction.WAIT,
                wait=wait,
                deposited=shortfall,
                payout_at=payout_at,
            )

        logger.info(
            "Money is not available yet, will try after %s",
            payout_at.isoformat(),
        )
        return FundingDecision(
            action=FundingAction.DEFER,
            wait=wait,
            deposited=shortfall,
            payout_at=payout_at,
        )
