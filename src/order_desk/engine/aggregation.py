"""
Aggregation - folds orders into grouped totals for the dashboards.

Groups keep the order in which their key first appears. Every input order
lands in exactly one group: missing numbers count as zero and a blank key
falls into the "Unknown" bucket instead of being dropped.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

import pandas as pd

from .models import Order, OrderStatus, parse_timestamp

UNKNOWN = "Unknown"

# Store key → totals attribute
NUMERIC_FIELDS = {
    'pieces': 'pieces',
    'totalEGP': 'total',
    'depositEGP': 'deposit',
    'outstanding': 'outstanding',
    'totalSR': 'gross_amount',
    'discountSR': 'discount1',
    'discount2SR': 'discount2',
    'discount3SR': 'discount3',
    'couponSR': 'coupon',
    'paidToWebsite': 'paid_to_source',
    'losts': 'loss_amount',
    'paidAfterDelivery': 'paid_after_delivery',
    'couponEGP': 'coupon_target',
}
TOTAL_COLUMNS = list(NUMERIC_FIELDS.values())
HOUR_COLUMNS = ['pieces', 'gross_amount', 'coupon_target', 'deposit']

DISTRIBUTION_STATUSES = (OrderStatus.IN_DISTRIBUTION.value, OrderStatus.SHIPPED_TO_CLIENT.value)

_CODE_NUMBER = re.compile(r'(\d+)\s*$')

OrderLike = Union[Order, dict]
KeyFunc = Callable[[dict], object]


@dataclass
class HourBucket:
    """Totals for one hour of one day."""
    hour: int
    count: int = 0
    pieces: float = 0.0
    gross_amount: float = 0.0
    coupon_target: float = 0.0
    deposit: float = 0.0

    @property
    def label(self) -> str:
        return f"{self.hour}:00 - {self.hour}:59"


@dataclass
class GroupTotals:
    """Summed order fields for one group key."""
    key: object
    count: int = 0
    pieces: float = 0.0
    total: float = 0.0
    deposit: float = 0.0
    outstanding: float = 0.0
    gross_amount: float = 0.0
    discount1: float = 0.0
    discount2: float = 0.0
    discount3: float = 0.0
    coupon: float = 0.0
    paid_to_source: float = 0.0
    loss_amount: float = 0.0
    paid_after_delivery: float = 0.0
    coupon_target: float = 0.0
    order_ids: list[str] = field(default_factory=list)
    hours: list[HourBucket] = field(default_factory=list)

    @property
    def label(self) -> str:
        if isinstance(self.key, tuple):
            return " / ".join(str(part) for part in self.key)
        return str(self.key)

    @property
    def total_discounts(self) -> float:
        """Discount-like SR deductions (excluding paid-to-website and losts)."""
        return self.discount1 + self.discount2 + self.discount3 + self.coupon


# ----------------------------------------------------------------------------
# Key functions
# ----------------------------------------------------------------------------

def normalize_key(value) -> str:
    """Strip free-form key text; blank values become the Unknown bucket."""
    if value is None:
        return UNKNOWN
    text = " ".join(str(value).split())
    return text or UNKNOWN


def by_account(record: dict) -> str:
    return normalize_key(record.get('accountName'))


def by_client_channel(record: dict) -> tuple[str, str]:
    return normalize_key(record.get('customerName')), normalize_key(record.get('orderType'))


def by_channel(record: dict) -> str:
    return normalize_key(record.get('orderType'))


def by_day(record: dict) -> str:
    created = _created_at(record)
    return created.date().isoformat() if created else UNKNOWN


# ----------------------------------------------------------------------------
# Reducer
# ----------------------------------------------------------------------------

def aggregate(
    orders: Iterable[OrderLike],
    key: KeyFunc = by_account,
    hourly: Optional[bool] = None,
) -> list[GroupTotals]:
    """
    Group orders and sum their numeric fields.

    Args:
        orders: Orders or raw order documents, already filtered by the caller
        key: Function mapping an order document to its group key
        hourly: Add 24 per-hour buckets (defaults to True for by_day)

    Returns:
        One GroupTotals per distinct key, in first-occurrence order
    """
    records = [_as_record(o) for o in orders]
    if not records:
        return []
    if hourly is None:
        hourly = key is by_day

    keys = [key(r) for r in records]
    positions: dict = {}
    frame = pd.DataFrame(
        [{col: _to_number(r.get(src)) for src, col in NUMERIC_FIELDS.items()} for r in records],
        columns=TOTAL_COLUMNS,
    )
    frame['_group'] = [positions.setdefault(k, len(positions)) for k in keys]

    sums = frame.groupby('_group')[TOTAL_COLUMNS].sum()
    counts = frame.groupby('_group').size()

    groups = []
    for k, position in positions.items():
        totals = GroupTotals(key=k, count=int(counts[position]))
        for col in TOTAL_COLUMNS:
            setattr(totals, col, float(sums.at[position, col]))
        groups.append(totals)

    for record, position in zip(records, frame['_group']):
        groups[position].order_ids.append(record.get('orderId') or record.get('id') or '')

    if hourly:
        _fill_hours(groups, records, frame)
    return groups


def _fill_hours(groups: list[GroupTotals], records: list[dict], frame: pd.DataFrame):
    frame = frame.copy()
    frame['_hour'] = [_hour_of(r) for r in records]
    timed = frame.dropna(subset=['_hour'])
    by_hour = timed.groupby(['_group', '_hour'])
    hour_sums = by_hour[HOUR_COLUMNS].sum()
    hour_counts = by_hour.size()

    for totals in groups:
        totals.hours = [HourBucket(hour=h) for h in range(24)]
    for (position, hour), row in hour_sums.iterrows():
        bucket = groups[int(position)].hours[int(hour)]
        bucket.count = int(hour_counts[(position, hour)])
        for col in HOUR_COLUMNS:
            setattr(bucket, col, float(row[col]))


def grand_totals(groups: Iterable[GroupTotals]) -> GroupTotals:
    """Sum a list of groups into one overall row."""
    overall = GroupTotals(key="Total")
    for group in groups:
        overall.count += group.count
        for col in TOTAL_COLUMNS:
            setattr(overall, col, getattr(overall, col) + getattr(group, col))
        overall.order_ids.extend(group.order_ids)
    return overall


# ----------------------------------------------------------------------------
# Dashboard reports
# ----------------------------------------------------------------------------

@dataclass
class AccountSummary:
    """Accounts dashboard row: account totals plus a per-day hourly breakdown."""
    totals: GroupTotals
    days: list[GroupTotals]

    @property
    def grand_total(self) -> float:
        return self.totals.gross_amount + self.totals.coupon_target + self.totals.deposit


def account_report(orders: Iterable[OrderLike]) -> list[AccountSummary]:
    """Group by purchasing account, each with its orders broken down by day and hour."""
    records = [_as_record(o) for o in orders]
    report = []
    for totals in aggregate(records, key=by_account):
        members = [r for r in records if by_account(r) == totals.key]
        report.append(AccountSummary(totals=totals, days=aggregate(members, key=by_day)))
    return report


def distribution_report(orders: Iterable[OrderLike]) -> list[GroupTotals]:
    """
    Client balances for orders being distributed.

    Only "In Distribution" and "Shipped to clients" orders are considered;
    rows are grouped by client + channel and sorted by client, then channel.
    """
    records = [r for r in (_as_record(o) for o in orders) if r.get('status') in DISTRIBUTION_STATUSES]
    groups = aggregate(records, key=by_client_channel)
    return sorted(groups, key=lambda g: (g.key[0].lower(), g.key[1]))


# ----------------------------------------------------------------------------
# Order code ordering
# ----------------------------------------------------------------------------

def code_number(code) -> int:
    """Trailing integer of an order code ("B-42" → 42); unparseable → 0."""
    match = _CODE_NUMBER.search(str(code or ''))
    return int(match.group(1)) if match else 0


def sort_by_code(orders: Iterable[OrderLike]) -> list[OrderLike]:
    """Sort numerically by code suffix; stable for equal numbers."""
    return sorted(orders, key=lambda o: code_number(_code_of(o)))


def sheet_sort_key(code) -> tuple[str, int]:
    """("B", 3) for sheet code "B3"; blank codes sort last."""
    text = str(code or '').strip().upper()
    if not text:
        return ('\uffff', 0)
    return (text.rstrip('0123456789'), code_number(text))


def sort_by_sheet(orders: Iterable[OrderLike]) -> list[OrderLike]:
    """Orders on a sheet first, grouped by sheet code; then by order code."""
    return sorted(orders, key=lambda o: (sheet_sort_key(_sheet_code_of(o)), code_number(_code_of(o))))


# ----------------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------------

def _as_record(order: OrderLike) -> dict:
    if isinstance(order, Order):
        record = order.to_document()
        record['id'] = order.id
        return record
    return order


def _sheet_code_of(order: OrderLike):
    if isinstance(order, Order):
        return order.sheet_code
    return order.get('sheetCode')


def _code_of(order: OrderLike):
    if isinstance(order, Order):
        return order.order_id
    if isinstance(order, str):
        return order
    return order.get('orderId')


def _to_number(value) -> float:
    if value in (None, '') or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0


def _created_at(record: dict) -> Optional[datetime]:
    try:
        return parse_timestamp(record.get('createdAt'))
    except ValueError:
        return None


def _hour_of(record: dict) -> Optional[int]:
    created = _created_at(record)
    return created.hour if created else None
