"""Order placement for planned purchases."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Iterable

from dca_client.pricing import calc_limit_order, to_decimal
from engine.errors import DcaError, SkippedForDebugError
from engine.exchange_client import Exchange, Order, OrderType
from strategies.allocation import OrderPlan
from utils.logging_config import LogContext

logger = logging.getLogger(__name__)


@dataclass
class ExecutionReport:
    orders: list[Order] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


class OrderExecutor:
    def __init__(
        self,
        exchange: Exchange,
        *,
        order_type: OrderType = OrderType.MARKET,
        fee: Decimal | int | str = Decimal("0"),
        spread: Decimal | int | str = Decimal("0"),
        debug: bool = False,
    ) -> None:
        self._exchange = exchange
        self._order_type = OrderType(order_type)
        self._calc = partial(
            calc_limit_order,
            fee_percent=to_decimal(fee),
            spread_percent=to_decimal(spread),
        )
        self._debug = debug

    def execute(self, plan: OrderPlan) -> Order:
        """Place one buy order for ``plan``."""
        if self._debug:
            raise SkippedForDebugError(plan.symbol)
        order = self._exchange.create_order(
            plan.symbol, plan.amount, self._order_type, self._calc
        )
        logger.info(
            "Placed order %s for %s",
            order.order_id,
            plan.symbol,
            extra={"order_id": order.order_id},
        )
        return order

    def execute_all(self, plans: Iterable[OrderPlan]) -> ExecutionReport:
        """Place every planned order; one coin failing never stops the rest."""
        report = ExecutionReport()
        for plan in plans:
            with LogContext(coin=plan.coin, symbol=plan.symbol):
                try:
                    report.orders.append(self.execute(plan))
                except SkippedForDebugError as exc:
                    logger.info("%s: %s", plan.symbol, exc)
                    report.skipped.append(plan.symbol)
                except DcaError as exc:
                    logger.warning("Order for %s failed: %s", plan.symbol, exc)
                    report.failures[plan.symbol] = str(exc)
                except Exception as exc:
                    logger.warning(
                        "Order for %s failed unexpectedly: %r",
                        plan.symbol,
                        exc,
                        exc_info=True,
                    )
                    report.failures[plan.symbol] = str(exc) or repr(exc)
        return report
