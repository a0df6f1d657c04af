"""
Reconciliation Updater - applies one field edit and recomputes the order.

Every edit reloads the stored order, applies the change, recomputes all
derived fields against one pinned pricing snapshot and persists the result
as a single partial merge. If anything fails before or during the write the
stored order is left as it was.
"""
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..engine.errors import (
    InvalidOrderInput, ConsistencyViolation, PersistenceFailure,
)
from ..engine.financials import OrderFinancialsCalculator
from ..engine.models import (
    Order, OrderStatus, Tier, PricingRules, BatchResult, INPUT_KEYS, coerce_number,
)
from .document_store import DocumentStore, ORDERS, MERGED_GROUPS

logger = logging.getLogger(__name__)

NOTIFY_IN_DISTRIBUTION = 'in_distribution'

# Accept both snake_case names and the store's camelCase keys
INPUT_ALIASES = {**{name: name for name in INPUT_KEYS}, **{key: name for name, key in INPUT_KEYS.items()}}
DESCRIPTIVE_FIELDS = {
    'account_name': 'account_name', 'accountName': 'account_name',
    'customer_name': 'customer_name', 'customerName': 'customer_name',
    'phone': 'phone',
    'tracking_numbers': 'tracking_numbers', 'trackingNumbers': 'tracking_numbers',
}
STATUS_FIELDS = ('status',)
TIER_FIELDS = ('tier', 'clientType')
CHANNEL_FIELDS = ('channel', 'orderType')


@dataclass
class UpdateOutcome:
    """Result of one edit: the order callers should now display."""
    success: bool
    order: Optional[Order]
    previous: Optional[Order] = None
    invalidated: set[str] = field(default_factory=set)
    notifications: list[str] = field(default_factory=list)
    error: Optional[str] = None


class ReconciliationUpdater:
    """
    Recompute-and-persist for single order edits.

    Args:
        store: Document store holding the orders
        rules_provider: Returns a fresh PricingRules snapshot
        calculator: Financials calculator (strict by default)
        strict_status: Reject status moves backwards in the workflow
        clock: Returns "now"; injectable for tests
    """

    def __init__(
        self,
        store: DocumentStore,
        rules_provider: Callable[[], PricingRules],
        calculator: Optional[OrderFinancialsCalculator] = None,
        strict_status: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.rules_provider = rules_provider
        self.calculator = calculator or OrderFinancialsCalculator()
        self.strict_status = strict_status
        self.clock = clock
        self._in_flight: set[str] = set()

    def apply_change(
        self,
        order_id: str,
        field_name: str,
        value,
        expected_version: Optional[int] = None,
    ) -> UpdateOutcome:
        """
        Apply one field change and persist the recomputed order.

        Raises InvalidOrderInput / InvalidClassification / ConsistencyViolation
        before any write. A PersistenceFailure is reported in the outcome.
        """
        return self._run(order_id, lambda order: self._apply(order, field_name, value), expected_version)

    def apply_changes(self, order_id: str, changes: dict, expected_version: Optional[int] = None) -> UpdateOutcome:
        """Apply several field changes as one recompute and one write."""
        def mutate(order: Order) -> Order:
            for name, value in changes.items():
                order = self._apply(order, name, value)
            return order
        return self._run(order_id, mutate, expected_version)

    def apply_payment(self, order_id: str, payment_id: str, amount, expected_version: Optional[int] = None) -> UpdateOutcome:
        """
        Add an approved payment to the deposit, at most once per payment id.

        A Requested order also moves to Order Placed. Re-applying a payment id
        the order already carries changes nothing but the version.
        """
        amount = coerce_number(amount, 'payment_amount')

        def mutate(order: Order) -> Order:
            if payment_id in order.applied_payments:
                logger.info("Payment %s already applied to order %s", payment_id, order.order_id)
                return order
            order = dataclasses.replace(
                order,
                inputs=order.inputs.replace(deposit_paid=order.inputs.deposit_paid + amount),
                applied_payments=[*order.applied_payments, payment_id],
            )
            if order.status is OrderStatus.REQUESTED:
                order = dataclasses.replace(order, status=OrderStatus.ORDER_PLACED)
            return order
        return self._run(order_id, mutate, expected_version)

    def recompute(self, order_id: str) -> UpdateOutcome:
        """Re-derive an order's financials without changing its inputs."""
        return self._run(order_id, lambda order: order, None)

    def recompute_all(self) -> BatchResult:
        """Re-derive every order, e.g. after the pricing settings changed."""
        result = BatchResult()
        for doc_id, _ in self.store.list(ORDERS):
            try:
                outcome = self.recompute(doc_id)
            except (ValueError, ConsistencyViolation) as e:
                result.failed[doc_id] = str(e)
                continue
            if outcome.success:
                result.succeeded.append(doc_id)
            else:
                result.failed[doc_id] = outcome.error or 'unknown error'
        logger.info("Recomputed orders: %s", result.summary())
        return result

    # ------------------------------------------------------------------

    def _run(self, order_id: str, mutate: Callable[[Order], Order], expected_version: Optional[int]) -> UpdateOutcome:
        if order_id in self._in_flight:
            raise ConsistencyViolation(f"Order '{order_id}' is already being updated")
        self._in_flight.add(order_id)
        try:
            try:
                previous = Order.from_document(order_id, self.store.require(ORDERS, order_id))
            except PersistenceFailure as e:
                logger.warning("Could not load order %s: %s", order_id, e)
                return UpdateOutcome(success=False, order=None, error=str(e))

            if expected_version is not None and expected_version != previous.version:
                raise ConsistencyViolation(
                    f"Order '{previous.order_id}' changed since it was read "
                    f"(version {previous.version}, expected {expected_version})"
                )

            updated = mutate(dataclasses.replace(previous))
            rules = self.rules_provider()
            updated.financials = self.calculator.calculate(updated.inputs, updated.channel, updated.tier, rules)

            now = self.clock()
            updated.last_updated = now
            updated.version = previous.version + 1
            notifications = []
            if updated.status is not previous.status:
                if updated.status is OrderStatus.DELIVERED_TO_DESTINATION and previous.delivered_at is None:
                    updated.delivered_at = now
                if updated.status is OrderStatus.IN_DISTRIBUTION:
                    notifications.append(NOTIFY_IN_DISTRIBUTION)

            try:
                invalidated = self._invalidated_views(updated)
                self.store.update(ORDERS, order_id, updated.to_document())
            except PersistenceFailure as e:
                logger.warning("Order %s not saved: %s", previous.order_id, e)
                return UpdateOutcome(success=False, order=previous, previous=previous, error=str(e))

            logger.debug("Order %s recomputed: total=%s outstanding=%s",
                         updated.order_id, updated.financials.total_amount, updated.financials.outstanding_amount)
            return UpdateOutcome(
                success=True,
                order=updated,
                previous=previous,
                invalidated=invalidated,
                notifications=notifications,
            )
        finally:
            self._in_flight.discard(order_id)

    def _apply(self, order: Order, field_name: str, value) -> Order:
        if field_name in INPUT_ALIASES:
            name = INPUT_ALIASES[field_name]
            number = coerce_number(value, name)
            return dataclasses.replace(order, inputs=order.inputs.replace(**{name: number}))

        if field_name in STATUS_FIELDS:
            status = OrderStatus.parse(value)
            if self.strict_status and status.rank < order.status.rank:
                raise ConsistencyViolation(
                    f"Status cannot move back from '{order.status.value}' to '{status.value}'"
                )
            return dataclasses.replace(order, status=status)

        if field_name in TIER_FIELDS:
            return dataclasses.replace(order, tier=Tier.parse(value))

        if field_name in CHANNEL_FIELDS:
            raise InvalidOrderInput("An order's channel cannot change after creation", field=field_name)

        if field_name in DESCRIPTIVE_FIELDS:
            name = DESCRIPTIVE_FIELDS[field_name]
            if name == 'tracking_numbers':
                if isinstance(value, str):
                    value = value.split(',')
                value = [str(t).strip() for t in (value or []) if str(t).strip()]
            else:
                value = str(value or '').strip()
            return dataclasses.replace(order, **{name: value})

        raise InvalidOrderInput(f"Field '{field_name}' cannot be edited", field=field_name)

    def _invalidated_views(self, order: Order) -> set[str]:
        views = {f"orders:{order.channel.value}", "accounts", "distribution"}
        for group_id, group in self.store.list(MERGED_GROUPS):
            if order.id in (group.get('orders') or []):
                views.add(f"merged_group:{group_id}")
        if order.sheet_id:
            views.add(f"sheet:{order.sheet_id}")
        return views
