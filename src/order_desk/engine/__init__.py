"""Engine subpackage - pricing rules, financials and aggregation."""
from .financials import OrderFinancialsCalculator, calculate, round_half_away
from .rate_selector import select_rate
from .models import (
    Channel, Tier, OrderStatus, UploadStatus, PricingRules, OrderInputs,
    Financials, Order, MergedGroup, BatchResult,
)

__all__ = [
    'OrderFinancialsCalculator', 'calculate', 'round_half_away', 'select_rate',
    'Channel', 'Tier', 'OrderStatus', 'UploadStatus', 'PricingRules',
    'OrderInputs', 'Financials', 'Order', 'MergedGroup', 'BatchResult',
]
