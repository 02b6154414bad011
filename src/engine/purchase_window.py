"""Purchase window gate."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from engine.exchange_client import Exchange

logger = logging.getLogger(__name__)


def should_purchase(
    exchange: Exchange,
    marker_coin: str,
    currency: str,
    window: timedelta,
    now: datetime,
) -> bool:
    """Return True when no purchase of ``marker_coin`` happened within ``window``.

    Only the marker coin is consulted; its history stands in for every coin
    in the batch.
    """
    last = exchange.last_purchase_time(marker_coin, currency, now - window)
    if last is None:
        logger.debug("No %s purchase found within %s", marker_coin, window)
        return True
    elapsed = now - last
    logger.debug("Last %s purchase was %s ago", marker_coin, elapsed)
    return elapsed >= window
