"""
Data models for the order engine.

Uses dataclasses for structured, type-safe data representation.
Store documents use camelCase keys;
`to_document` / `from_document` translate at the boundary.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .errors import InvalidClassification, InvalidOrderInput


class Channel(str, Enum):
    """Order pipeline; the value doubles as the order-code prefix."""
    BARRY = "B"
    GAWY = "G"

    @property
    def label(self) -> str:
        return self.name.title()

    @classmethod
    def parse(cls, value) -> 'Channel':
        """Accept "B", "Barry", Channel.BARRY, ... (case-insensitive)."""
        if isinstance(value, cls):
            return value
        text = str(value or '').strip().upper()
        for channel in cls:
            if text in (channel.value, channel.name):
                return channel
        raise InvalidClassification(f"Unknown channel {value!r}")


class Tier(str, Enum):
    """Customer pricing category."""
    RETAIL = "Retail"
    WHOLESALE = "Wholesale"

    @classmethod
    def parse(cls, value) -> 'Tier':
        if isinstance(value, cls):
            return value
        text = str(value or '').strip().lower()
        for tier in cls:
            if text == tier.value.lower():
                return tier
        raise InvalidClassification(f"Unknown client type {value!r}")


class OrderStatus(str, Enum):
    """Workflow states, declared in their forward order."""
    REQUESTED = "Requested"
    ORDER_PLACED = "Order Placed"
    SHIPPED_TO_DESTINATION = "Shipped to Egypt"
    DELIVERED_TO_DESTINATION = "Delivered to Egypt"
    IN_DISTRIBUTION = "In Distribution"
    SHIPPED_TO_CLIENT = "Shipped to clients"

    @property
    def rank(self) -> int:
        return list(OrderStatus).index(self)

    @classmethod
    def parse(cls, value) -> 'OrderStatus':
        if isinstance(value, cls):
            return value
        text = str(value or '').strip().lower()
        for status in cls:
            if text in (status.value.lower(), status.name.lower()):
                return status
        raise InvalidOrderInput(f"Unknown order status {value!r}", field="status")


class UploadStatus(str, Enum):
    UNDER_APPROVAL = "Under Approval"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @classmethod
    def parse(cls, value) -> 'UploadStatus':
        # Rows written before statuses existed have none
        if value in (None, ''):
            return cls.UNDER_APPROVAL
        if isinstance(value, cls):
            return value
        for status in cls:
            if str(value).strip().lower() == status.value.lower():
                return status
        raise InvalidOrderInput(f"Unknown upload status {value!r}", field="status")


def _number(doc: dict, key: str, default: float) -> float:
    value = doc.get(key)
    if value in (None, ''):
        return float(default)
    return float(value)


@dataclass(frozen=True)
class PricingRules:
    """
    Immutable snapshot of the pricing configuration.

    Every calculation receives one snapshot so fields of a single
    computation never mix values from two settings versions.
    """
    barry_retail: float = 14.5
    gawy_retail: float = 15.5
    barry_wholesale_below: float = 12.5
    barry_wholesale_above: float = 12.25
    gawy_wholesale_below: float = 14.0
    gawy_wholesale_above: float = 13.5
    wholesale_threshold: float = 1500.0
    extra_multiplier: float = 2.0
    # Shown in settings only; no calculation reads it
    shipping_per_order: float = 12.7
    coupon_rate: float = 12.0

    def retail_rate(self, channel: Channel) -> float:
        return self.barry_retail if channel is Channel.BARRY else self.gawy_retail

    def wholesale_rates(self, channel: Channel) -> tuple[float, float]:
        """Return (below_threshold, above_threshold) rates for a channel."""
        if channel is Channel.BARRY:
            return self.barry_wholesale_below, self.barry_wholesale_above
        return self.gawy_wholesale_below, self.gawy_wholesale_above

    @classmethod
    def from_settings(cls, doc: dict) -> 'PricingRules':
        """Build a snapshot from the settings document (missing keys → defaults)."""
        d = cls()
        return cls(
            barry_retail=_number(doc, 'barryRetail', d.barry_retail),
            gawy_retail=_number(doc, 'gawyRetail', d.gawy_retail),
            barry_wholesale_below=_number(doc, 'barryWholesaleBelow1500', d.barry_wholesale_below),
            barry_wholesale_above=_number(doc, 'barryWholesaleAbove1500', d.barry_wholesale_above),
            gawy_wholesale_below=_number(doc, 'gawyWholesaleBelow1500', d.gawy_wholesale_below),
            gawy_wholesale_above=_number(doc, 'gawyWholesaleAbove1500', d.gawy_wholesale_above),
            wholesale_threshold=_number(doc, 'wholesaleThreshold', d.wholesale_threshold),
            extra_multiplier=_number(doc, 'extraMultiplier', d.extra_multiplier),
            shipping_per_order=_number(doc, 'shipping', d.shipping_per_order),
            coupon_rate=_number(doc, 'coupon', d.coupon_rate),
        )


# Raw input field → store document key
INPUT_KEYS = {
    'gross_amount': 'totalSR',
    'pieces': 'pieces',
    'deposit_paid': 'depositEGP',
    'discount1': 'discountSR',
    'discount2': 'discount2SR',
    'discount3': 'discount3SR',
    'coupon': 'couponSR',
    'paid_to_source': 'paidToWebsite',
    'extra_amount': 'extraSR',
    'loss_amount': 'losts',
    'paid_after_delivery': 'paidAfterDelivery',
}

# Deductions subtracted from the gross amount to get the net SR
DEDUCTION_FIELDS = ('discount1', 'discount2', 'discount3', 'coupon', 'paid_to_source', 'loss_amount')


@dataclass(frozen=True)
class OrderInputs:
    """Raw, independently editable order fields (SR unless noted)."""
    gross_amount: float = 0.0
    pieces: float = 0
    deposit_paid: float = 0.0  # EGP
    discount1: float = 0.0
    discount2: float = 0.0
    discount3: float = 0.0
    coupon: float = 0.0
    paid_to_source: float = 0.0
    extra_amount: float = 0.0
    loss_amount: float = 0.0
    paid_after_delivery: float = 0.0  # EGP

    @property
    def total_deductions(self) -> float:
        return sum(getattr(self, name) for name in DEDUCTION_FIELDS)

    def replace(self, **changes) -> 'OrderInputs':
        values = asdict(self)
        values.update(changes)
        return OrderInputs(**values)

    @classmethod
    def from_document(cls, doc: dict) -> 'OrderInputs':
        values = {}
        for name, key in INPUT_KEYS.items():
            values[name] = coerce_number(doc.get(key), name)
        return cls(**values)

    def to_document(self) -> dict:
        return {key: getattr(self, name) for name, key in INPUT_KEYS.items()}


def coerce_number(value: Any, field_name: str) -> float:
    """Parse a form/store value; blank means zero, garbage is rejected."""
    if value in (None, ''):
        return 0.0
    if isinstance(value, bool):
        raise InvalidOrderInput(f"{field_name} must be a number", field=field_name)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidOrderInput(f"{field_name} must be a number, got {value!r}", field=field_name)
    if number != number or number in (float('inf'), float('-inf')):
        raise InvalidOrderInput(f"{field_name} must be finite", field=field_name)
    return number


@dataclass
class TraceStep:
    """A single step in the financials calculation trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class Financials:
    """Derived monetary fields for one order (EGP unless noted)."""
    net_source_amount: float  # SR
    conversion_rate: float
    base_amount: float
    extra_target_amount: float
    loss_target_amount: float
    coupon_target_amount: float
    total_amount: float
    outstanding_amount: float
    trace: list[TraceStep] = field(default_factory=list, compare=False)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)

    @classmethod
    def from_document(cls, doc: dict) -> Optional['Financials']:
        """Stored derived fields, or None for orders never calculated."""
        if doc.get('totalEGP') in (None, ''):
            return None
        return cls(
            net_source_amount=float(doc.get('netSR') or 0),
            conversion_rate=float(doc.get('conversionRate') or 0),
            base_amount=float(doc.get('orderEGP') or 0),
            extra_target_amount=float(doc.get('extraEGP') or 0),
            loss_target_amount=float(doc.get('lostsEGP') or 0),
            coupon_target_amount=float(doc.get('couponEGP') or 0),
            total_amount=float(doc.get('totalEGP') or 0),
            outstanding_amount=float(doc.get('outstanding') or 0),
        )

    def to_document(self) -> dict:
        return {
            'netSR': self.net_source_amount,
            'conversionRate': self.conversion_rate,
            'orderEGP': self.base_amount,
            'extraEGP': self.extra_target_amount,
            'lostsEGP': self.loss_target_amount,
            'couponEGP': self.coupon_target_amount,
            'totalEGP': self.total_amount,
            'outstanding': self.outstanding_amount,
        }


@dataclass
class Order:
    """An order document with its raw inputs and derived financials."""
    id: str
    order_id: str
    channel: Channel
    tier: Tier
    inputs: OrderInputs
    status: OrderStatus = OrderStatus.REQUESTED
    financials: Optional[Financials] = None
    customer_id: Optional[str] = None
    customer_name: str = ""
    customer_code: str = ""
    phone: str = ""
    account_name: str = ""
    tracking_numbers: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    upload_id: Optional[str] = None
    # Upload ids whose payment is already included in deposit_paid
    applied_payments: list[str] = field(default_factory=list)
    sheet_id: Optional[str] = None
    sheet_code: str = ""
    version: int = 0

    @classmethod
    def from_document(cls, doc_id: str, doc: dict) -> 'Order':
        """Rebuild an order from its stored document."""
        return cls(
            id=doc_id,
            order_id=str(doc.get('orderId') or ''),
            channel=Channel.parse(doc.get('orderType')),
            tier=Tier.parse(doc.get('clientType')),
            inputs=OrderInputs.from_document(doc),
            status=OrderStatus.parse(doc.get('status') or OrderStatus.REQUESTED),
            financials=Financials.from_document(doc),
            customer_id=doc.get('customerId'),
            customer_name=doc.get('customerName') or "",
            customer_code=doc.get('customerCode') or "",
            phone=doc.get('phone') or "",
            account_name=doc.get('accountName') or "",
            tracking_numbers=[t for t in (doc.get('trackingNumbers') or []) if t],
            created_at=parse_timestamp(doc.get('createdAt')),
            last_updated=parse_timestamp(doc.get('lastUpdated')),
            delivered_at=parse_timestamp(doc.get('deliveredAt')),
            upload_id=doc.get('uploadId'),
            applied_payments=list(doc.get('appliedPayments') or []),
            sheet_id=doc.get('sheetId'),
            sheet_code=doc.get('sheetCode') or "",
            version=int(doc.get('version') or 0),
        )

    def to_document(self) -> dict:
        doc = {
            'orderId': self.order_id,
            'orderType': self.channel.value,
            'clientType': self.tier.value,
            'status': self.status.value,
            'customerId': self.customer_id,
            'customerName': self.customer_name,
            'customerCode': self.customer_code,
            'phone': self.phone,
            'accountName': self.account_name,
            'trackingNumbers': list(self.tracking_numbers),
            'createdAt': format_timestamp(self.created_at),
            'lastUpdated': format_timestamp(self.last_updated),
            'deliveredAt': format_timestamp(self.delivered_at),
            'uploadId': self.upload_id,
            'appliedPayments': list(self.applied_payments),
            'sheetId': self.sheet_id,
            'sheetCode': self.sheet_code,
            'version': self.version,
        }
        doc.update(self.inputs.to_document())
        if self.financials is not None:
            doc.update(self.financials.to_document())
        return doc


@dataclass
class MergedGroup:
    """Orders consolidated under one tracking number."""
    id: str
    name: str
    order_ids: list[str]
    channel: Channel
    tracking_number: str = ""
    total_pieces: float = 0

    @classmethod
    def from_document(cls, doc_id: str, doc: dict) -> 'MergedGroup':
        return cls(
            id=doc_id,
            name=doc.get('name') or doc_id,
            order_ids=list(doc.get('orders') or []),
            channel=Channel.parse(doc.get('orderType')),
            tracking_number=doc.get('trackingNumber') or "",
            total_pieces=float(doc.get('totalPieces') or 0),
        )

    def to_document(self) -> dict:
        return {
            'name': self.name,
            'orders': list(self.order_ids),
            'orderType': self.channel.value,
            'trackingNumber': self.tracking_number,
            'totalPieces': self.total_pieces,
        }


@dataclass
class Sheet:
    """
    A shipping sheet: same-channel orders packed together.

    Codes run per channel without a dash ("B1", "G2") so they never clash
    with order codes. total_pieces is refreshed whenever membership changes.
    """
    id: str
    code: str
    channel: Channel
    order_ids: list[str]
    total_pieces: float = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, doc: dict) -> 'Sheet':
        return cls(
            id=doc_id,
            code=doc.get('code') or doc_id,
            channel=Channel.parse(doc.get('type')),
            order_ids=list(doc.get('orders') or []),
            total_pieces=float(doc.get('totalPieces') or 0),
            created_at=parse_timestamp(doc.get('createdAt')),
            updated_at=parse_timestamp(doc.get('updatedAt')),
        )

    def to_document(self) -> dict:
        return {
            'code': self.code,
            'type': self.channel.value,
            'orders': list(self.order_ids),
            'totalPieces': self.total_pieces,
            'createdAt': format_timestamp(self.created_at),
            'updatedAt': format_timestamp(self.updated_at),
        }


@dataclass
class BatchResult:
    """Per-item outcome summary of a bulk operation."""
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def summary(self) -> str:
        return f"{self.success_count} succeeded, {self.failure_count} failed"


def parse_timestamp(value) -> Optional[datetime]:
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
