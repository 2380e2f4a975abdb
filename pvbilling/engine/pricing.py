"""
Pricing resolver and per-user pricing rules.

An internal interval is billed at the internal rate, an external one at the
interval's grid price. A resolved price at or below ``PRICE_EPSILON`` is
treated as missing and replaced by the internal rate or the grid fallback
price respectively.

CHANGELOG:
- 2026-03-05: build_pricing_rules derives policy from user profile (STORY-009)
- 2026-03-04: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import datetime

from pvbilling.engine.classifier import classify_interval
from pvbilling.models import (
    DEFAULT_GRID_BUFFER_WATTS,
    DEFAULT_GRID_FALLBACK_PRICE,
    CostBreakdown,
    PricedInterval,
    PricingRules,
    SystemIntervalData,
    SystemSettings,
    UserBillingProfile,
)

logger = logging.getLogger(__name__)

PRICE_EPSILON = 1e-4

# Grid buffer that no grid import can stay below: every interval is external.
DISABLED_BUFFER_WATTS = -999999.0


def resolve_price(is_internal: bool, raw_price: float, rules: PricingRules) -> float:
    """Apply the fallback rule to a classified price."""
    if raw_price > PRICE_EPSILON:
        return raw_price
    if is_internal and rules.internal_price > 0:
        return rules.internal_price
    if not is_internal and rules.grid_fallback_price > 0:
        return rules.grid_fallback_price
    return raw_price


def price_interval(
    ts: datetime,
    usage: float,
    system: SystemIntervalData | None,
    rules: PricingRules,
) -> PricedInterval:
    """Classify and price one usage bucket."""
    internal, raw_price = classify_interval(system, rules)
    price = resolve_price(internal, raw_price, rules)
    return PricedInterval(
        ts=ts,
        usage=usage,
        price=price,
        cost=usage * price,
        is_internal=internal,
    )


def summarize(intervals: list[PricedInterval]) -> CostBreakdown:
    """Fold priced intervals, in order, into usage/cost running sums."""
    usage = cost = usage_internal = usage_external = 0.0
    cost_internal = cost_external = 0.0
    for interval in intervals:
        usage += interval.usage
        cost += interval.cost
        if interval.is_internal:
            usage_internal += interval.usage
            cost_internal += interval.cost
        else:
            usage_external += interval.usage
            cost_external += interval.cost
    return CostBreakdown(
        usage=usage,
        cost=cost,
        usage_internal=usage_internal,
        usage_external=usage_external,
        cost_internal=cost_internal,
        cost_external=cost_external,
    )


def build_pricing_rules(
    user: UserBillingProfile,
    settings: SystemSettings,
) -> PricingRules:
    """Derive the pricing policy for one user.

    With PV billing disabled the user never gets internal pricing: the
    internal rate is 0, the buffer is :data:`DISABLED_BUFFER_WATTS` and
    battery pricing is off. With PV billing enabled the user's custom rate
    and buffer override the installation defaults.

    Args:
        user: Billing profile of the user.
        settings: Installation settings.

    Returns:
        PricingRules: Effective rules for this user.
    """
    fallback = settings.grid_fallback_price or DEFAULT_GRID_FALLBACK_PRICE

    if not user.enable_pv_billing:
        rules = PricingRules(
            internal_price=0.0,
            grid_fallback_price=fallback,
            grid_buffer_watts=DISABLED_BUFFER_WATTS,
            allow_battery_pricing=False,
        )
    else:
        internal = (
            user.custom_internal_rate
            if user.custom_internal_rate is not None
            else settings.internal_price
        )
        buffer = (
            user.custom_grid_buffer
            if user.custom_grid_buffer is not None
            else settings.global_grid_buffer_watts or DEFAULT_GRID_BUFFER_WATTS
        )
        rules = PricingRules(
            internal_price=internal,
            grid_fallback_price=fallback,
            grid_buffer_watts=float(buffer),
            allow_battery_pricing=user.allow_battery_pricing,
        )

    logger.info(
        "Pricing rules for %s: internal=%.4f buffer=%.0f battery=%s fallback=%.4f",
        user.email,
        rules.internal_price,
        rules.grid_buffer_watts,
        rules.allow_battery_pricing,
        rules.grid_fallback_price,
    )
    return rules
