"""
Conversion Rate Selector - picks the SR → EGP rate for an order.

Retail customers get the channel's flat rate. Wholesale customers get the
channel's "below" or "above" rate depending on whether the net SR amount
is strictly greater than the wholesale threshold.
"""
from typing import Optional

from .errors import InvalidClassification
from .models import Channel, Tier, PricingRules

PERMISSIVE_RATE = 1.0


def select_rate(
    channel,
    tier,
    net_source_amount: float,
    rules: PricingRules,
    strict: bool = True,
) -> float:
    """
    Resolve the conversion rate for a channel / tier / net amount.

    Args:
        channel: Channel (or its code / name)
        tier: Tier (or "Retail" / "Wholesale")
        net_source_amount: Net SR after all deductions
        rules: Pricing snapshot to read rates from
        strict: Raise on an unknown classification instead of returning 1.0

    Returns:
        Positive rate
    """
    resolved = _classify(channel, tier, strict)
    if resolved is None:
        return PERMISSIVE_RATE
    channel, tier = resolved

    if tier is Tier.RETAIL:
        return rules.retail_rate(channel)

    below, above = rules.wholesale_rates(channel)
    # Boundary belongs to the "below" bracket
    if net_source_amount > rules.wholesale_threshold:
        return above
    return below


def describe_rate(channel, tier, net_source_amount: float, rules: PricingRules) -> str:
    """Human-readable explanation of which bracket applied."""
    channel = Channel.parse(channel)
    tier = Tier.parse(tier)
    if tier is Tier.RETAIL:
        return f"{channel.label} retail rate"
    side = "above" if net_source_amount > rules.wholesale_threshold else "at/below"
    return f"{channel.label} wholesale rate, net {side} {rules.wholesale_threshold:g} SR"


def _classify(channel, tier, strict: bool) -> Optional[tuple[Channel, Tier]]:
    # Missing classification is never defaulted, even in permissive mode
    if channel in (None, '') or tier in (None, ''):
        raise InvalidClassification("Channel and client type are required")
    try:
        return Channel.parse(channel), Tier.parse(tier)
    except InvalidClassification:
        if strict:
            raise
        return None
