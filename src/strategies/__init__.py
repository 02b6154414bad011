"""Purchase planning for dcabot."""

from .allocation import AllocationPlan, OrderPlan, parse_coin_weights, plan_allocation

__all__ = [
    "AllocationPlan",
    "OrderPlan",
    "parse_coin_weights",
    "plan_allocation",
]
