"""
Order Financials Calculator - derives every monetary field of an order.

Resolution order:
1. Net SR = gross − (discounts + coupon + paid-to-website + losts)
2. Rate from the channel / client type / net SR bracket
3. Base EGP = net SR × rate (never below zero)
4. Extra EGP = extra SR × extra multiplier
5. Total EGP = base + extra, rounded (retail: nearest 5, wholesale: nearest 1)
6. Outstanding = max(0, total − deposit − paid after delivery), same rounding

Losts are deducted exactly once, inside the net SR; they are not
subtracted again from the total.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .errors import InvalidOrderInput, ConsistencyViolation
from .models import (
    Tier, OrderInputs, PricingRules, Financials, DEDUCTION_FIELDS,
)
from .rate_selector import select_rate, describe_rate

RETAIL_ROUNDING_STEP = 5
WHOLESALE_ROUNDING_STEP = 1


def round_half_away(value: float, step: int = 1) -> float:
    """
    Round to the nearest multiple of `step`, ties away from zero.

    Goes through the decimal repr so 1042.5 / 5 style ties are exact.
    """
    quotient = Decimal(repr(float(value))) / Decimal(step)
    rounded = quotient.quantize(Decimal('1'), rounding=ROUND_HALF_UP) * Decimal(step)
    return float(rounded)


def rounding_step(tier) -> int:
    """Retail amounts are quoted in multiples of 5 EGP."""
    try:
        return RETAIL_ROUNDING_STEP if Tier.parse(tier) is Tier.RETAIL else WHOLESALE_ROUNDING_STEP
    except ValueError:
        return WHOLESALE_ROUNDING_STEP


def validate_inputs(inputs: OrderInputs):
    """Reject negative raw fields before any arithmetic."""
    for name, value in vars(inputs).items():
        if value < 0:
            raise InvalidOrderInput(f"{name} cannot be negative (got {value:g})", field=name)


class OrderFinancialsCalculator:
    """
    Pure calculator for the derived fields of one order.

    Holds no state beyond the classification policy; the rules snapshot is
    passed on every call.
    """

    def __init__(self, strict_classification: bool = True):
        self.strict_classification = strict_classification

    def calculate(self, inputs: OrderInputs, channel, tier, rules: PricingRules) -> Financials:
        """
        Calculate financials with full traceability.

        Args:
            inputs: Raw order fields
            channel: Channel of the order
            tier: Client type of the order's customer
            rules: Pricing snapshot pinned for this computation

        Returns:
            Financials dataclass with trace
        """
        validate_inputs(inputs)

        deductions = inputs.total_deductions
        net = inputs.gross_amount - deductions

        rate = select_rate(channel, tier, max(net, 0.0), rules, strict=self.strict_classification)

        base = max(0.0, net * rate)
        extra = inputs.extra_amount * rules.extra_multiplier
        step = rounding_step(tier)
        total = round_half_away(base + extra, step)
        outstanding = round_half_away(
            max(0.0, total - inputs.deposit_paid - inputs.paid_after_delivery), step
        )

        if outstanding < 0:
            raise ConsistencyViolation(f"Outstanding became negative ({outstanding:g})")

        result = Financials(
            net_source_amount=net,
            conversion_rate=rate,
            base_amount=base,
            extra_target_amount=extra,
            loss_target_amount=max(0.0, inputs.loss_amount * rate),
            coupon_target_amount=inputs.coupon * rules.coupon_rate,
            total_amount=total,
            outstanding_amount=outstanding,
        )

        result.add_trace("Gross", "Order total before deductions", f"{inputs.gross_amount:,.2f} SR")
        parts = [f"{name}={getattr(inputs, name):g}" for name in DEDUCTION_FIELDS if getattr(inputs, name)]
        if parts:
            result.add_trace("Deductions", ", ".join(parts), f"{deductions:,.2f} SR")
        result.add_trace("Net", "Gross minus deductions", f"{net:,.2f} SR")
        if self._classified(channel, tier):
            result.add_trace("Rate", describe_rate(channel, tier, max(net, 0.0), rules), f"{rate:g}")
        else:
            result.add_trace("Rate", "Unknown classification, permissive fallback", f"{rate:g}")
        result.add_trace("Base", f"{max(net, 0.0):,.2f} × {rate:g}", f"{base:,.2f} EGP")
        if extra:
            result.add_trace("Extra", f"{inputs.extra_amount:g} × {rules.extra_multiplier:g}", f"{extra:,.2f} EGP")
        result.add_trace("Total", f"Rounded to nearest {step}", f"{total:,.0f} EGP")
        result.add_trace(
            "Outstanding",
            f"Total − deposit {inputs.deposit_paid:g} − paid after delivery {inputs.paid_after_delivery:g}",
            f"{outstanding:,.0f} EGP",
        )
        return result

    def _classified(self, channel, tier) -> bool:
        try:
            select_rate(channel, tier, 0.0, PricingRules(), strict=True)
            return True
        except ValueError:
            return False


_default_calculator = OrderFinancialsCalculator()


def calculate(
    inputs: OrderInputs,
    channel,
    tier,
    rules: PricingRules,
    calculator: Optional[OrderFinancialsCalculator] = None,
) -> Financials:
    """Module-level shortcut using the strict calculator."""
    return (calculator or _default_calculator).calculate(inputs, channel, tier, rules)
