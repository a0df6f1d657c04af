"""
WhatsApp message composition.

Builds the customer messages from the settings templates and wraps them in
wa.me deep links. Nothing here sends anything; the dashboard opens the link.
"""
import re
from typing import Optional
from urllib.parse import quote

from ..engine.financials import round_half_away, rounding_step
from ..engine.models import Order, Tier

_TOKEN = re.compile(r'\{(\w+)\}')


def render_template(template: str, **values) -> str:
    """Substitute {token} placeholders; unknown tokens are left as-is."""
    def substitute(match):
        key = match.group(1)
        if key in values and values[key] is not None:
            return str(values[key])
        return match.group(0)
    return _TOKEN.sub(substitute, template or '')


def clean_phone(phone: Optional[str]) -> str:
    return re.sub(r'\D', '', phone or '')


def whatsapp_link(phone: Optional[str], message: str, country_prefix: str = '') -> Optional[str]:
    """wa.me deep link, or None when there is no usable phone number."""
    digits = clean_phone(phone)
    if not digits:
        return None
    return f"https://wa.me/{country_prefix}{digits}?text={quote(message, safe='')}"


def _fmt(amount: float, step: int = 1) -> str:
    return f"{round_half_away(amount, step):.0f}"


def order_values(order: Order) -> dict:
    """Template values for an order, rounded the way customers see them."""
    step = rounding_step(order.tier)
    fin = order.financials
    total = fin.total_amount if fin else 0.0
    outstanding = fin.outstanding_amount if fin else 0.0
    total_fmt = round_half_away(total, step)
    return {
        'customerName': order.customer_name,
        'customerCode': order.customer_code,
        'orderId': order.order_id,
        'pieces': _fmt(order.inputs.pieces),
        'totalSR': _fmt(order.inputs.gross_amount),
        'extraSR': _fmt(order.inputs.extra_amount),
        'totalEGP': f"{total_fmt:.0f}",
        'totalEGPPlusExtra': f"{total_fmt + round_half_away(order.inputs.extra_amount):.0f}",
        'deposit': _fmt(order.inputs.deposit_paid, step),
        'outstanding': _fmt(outstanding, step),
        'outstandingAmount': f"{outstanding:.2f}",
    }


def order_placed_message(order: Order, settings: dict) -> str:
    """Wholesale, retail-with-deposit or retail-no-deposit confirmation."""
    values = order_values(order)
    if order.tier is Tier.WHOLESALE:
        template = settings.get('orderPlacedMessageWholesale')
    elif round_half_away(order.inputs.deposit_paid, 5) > 0:
        template = settings.get('orderPlacedMessageRetailWithDeposit')
    else:
        template = settings.get('orderPlacedMessageRetailNoDeposit')
    return render_template(template or settings.get('orderPlacedMessage', ''), **values)


def in_distribution_message(order: Order, settings: dict) -> str:
    return render_template(settings.get('inDistributionMessage', ''), **order_values(order))


def payment_rejected_message(settings: dict) -> str:
    return settings.get('paymentRejectedMessage', '')
