"""DCA schedule driver: one sync pass from gating to order placement."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

from engine.errors import DeadlineError, TradeRejectedError, WindowNotElapsedError
from engine.exchange_client import Exchange, Order, OrderType
from engine.funding import FundingAction, FundingDecision, FundingGate
from engine.order_executor import OrderExecutor
from engine.purchase_window import should_purchase
from strategies.allocation import AllocationPlan, CoinEntry, plan_allocation
from utils.prompt import ask_for_confirmation

logger = logging.getLogger(__name__)

FORCE_PROMPT = "Force method is used proceed?"


@dataclass(frozen=True)
class SyncRequest:
    coins: tuple[CoinEntry, ...]
    usd: Decimal = Decimal("0")
    every: timedelta = timedelta(days=1)
    after: datetime | None = None
    until: datetime | None = None
    auto_fund: bool = False
    force: bool = False
    order_type: OrderType = OrderType.MARKET
    order_spread: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    currency: str = "USD"


@dataclass
class SyncResult:
    orders: list[Order] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    deferred: bool = False
    funding: FundingDecision | None = None

    @property
    def partial(self) -> bool:
        return bool(self.failures)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def check_run_window(request: SyncRequest, now: datetime) -> None:
    """Raise DeadlineError when ``now`` falls outside the after/until bounds."""
    if request.until is not None and now > request.until:
        raise DeadlineError("Deadline has passed, not taking any action")
    if request.after is not None and now <= request.after:
        raise DeadlineError(
            f"Configured to start after {request.after}, not taking any action"
        )


class DcaSchedule:
    """A validated purchase plan plus the gates that decide when to run it.

    Build it with :meth:`create`, which plans the allocation up front, then
    call :meth:`sync` once per invocation.
    """

    def __init__(
        self,
        exchange: Exchange,
        request: SyncRequest,
        plan: AllocationPlan,
        *,
        debug: bool = False,
        confirm: Callable[[str], bool] = ask_for_confirmation,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.exchange = exchange
        self.request = request
        self.plan = plan
        self.debug = debug
        self._confirm = confirm
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def create(
        cls,
        exchange: Exchange,
        request: SyncRequest,
        *,
        debug: bool = False,
        confirm: Callable[[str], bool] = ask_for_confirmation,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> "DcaSchedule":
        # no venue calls for runs outside the configured dates
        check_run_window(request, clock())
        plan = plan_allocation(
            exchange, request.coins, request.usd, request.currency
        )
        return cls(
            exchange,
            request,
            plan,
            debug=debug,
            confirm=confirm,
            sleep=sleep,
            clock=clock,
        )

    def sync(self) -> SyncResult:
        """Run one pass: deadline, purchase window, funding, then orders."""
        request = self.request
        now = self._clock()
        check_run_window(request, now)

        logger.info(
            "Dollar cost averaging %s %s every %s until %s",
            self.plan.total_fiat,
            self.plan.currency,
            request.every,
            request.until or "further notice",
        )

        if not request.force:
            if not should_purchase(
                self.exchange,
                self.plan.marker_coin,
                self.plan.currency,
                request.every,
                now,
            ):
                raise WindowNotElapsedError(
                    "Detected a recent purchase, waiting for next purchase window"
                )
        elif not self._confirm(FORCE_PROMPT):
            raise TradeRejectedError("User rejected the trade")

        gate = FundingGate(
            self.exchange,
            auto_fund=request.auto_fund,
            debug=self.debug,
            clock=self._clock,
        )
        decision = gate.ensure_funds(self.plan.total_fiat, self.plan.currency)
        if decision.action == FundingAction.DEFER:
            logger.info("Deposit will settle later, exiting without placing orders")
            return SyncResult(deferred=True, funding=decision)
        if decision.action == FundingAction.WAIT:
            self._sleep(decision.wait.total_seconds())

        logger.info(
            "Placing orders for %s",
            ", ".join(f"{o.coin}={o.amount}" for o in self.plan.orders),
        )
        executor = OrderExecutor(
            self.exchange,
            order_type=request.order_type,
            fee=request.fee,
            spread=request.order_spread,
            debug=self.debug,
        )
        report = executor.execute_all(self.plan.orders)
        return SyncResult(
            orders=report.orders,
            failures=report.failures,
            skipped=report.skipped,
            funding=decision,
        )
