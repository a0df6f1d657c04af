"""
Order Service - customers, accounts, orders, merged groups and sheets.

Bulk operations run item by item; a failure on one order does not undo
the others and is reported in the returned BatchResult.
"""
import logging
from datetime import datetime, date
from typing import Callable, Iterable, Optional

from ..engine.aggregation import sort_by_code, sort_by_sheet, code_number, sheet_sort_key
from ..engine.errors import (
    InvalidOrderInput, ConsistencyViolation, PersistenceFailure, NotFound,
)
from ..engine.financials import OrderFinancialsCalculator
from ..engine.models import (
    Order, OrderInputs, OrderStatus, Channel, Tier, MergedGroup, Sheet, BatchResult,
    INPUT_KEYS, coerce_number,
)
from .document_store import DocumentStore, ORDERS, CUSTOMERS, ACCOUNTS, MERGED_GROUPS, SHEETS
from .notifications import whatsapp_link, order_placed_message
from .reconciliation import ReconciliationUpdater, UpdateOutcome
from .settings_service import SettingsService

logger = logging.getLogger(__name__)

UPLOAD_ACCOUNT = "Upload System"


class OrderService:
    """Order intake, listing, bulk edits, merging and sheets."""

    def __init__(
        self,
        store: DocumentStore,
        settings_service: SettingsService,
        updater: ReconciliationUpdater,
        calculator: Optional[OrderFinancialsCalculator] = None,
        phone_prefix: str = '',
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.settings_service = settings_service
        self.updater = updater
        self.calculator = calculator or updater.calculator
        self.phone_prefix = phone_prefix
        self.clock = clock

    # ------------------------------------------------------------------
    # Customers & accounts
    # ------------------------------------------------------------------

    def list_customers(self) -> list[dict]:
        return [{'id': doc_id, **doc} for doc_id, doc in self.store.list(CUSTOMERS)]

    def get_customer(self, customer_id: str) -> dict:
        return {'id': customer_id, **self.store.require(CUSTOMERS, customer_id)}

    def create_customer(self, name: str, phone: str, tier) -> dict:
        """Create a customer with the next RE-n / WS-n code."""
        name = (name or '').strip()
        if not name:
            raise InvalidOrderInput("Customer name is required", field='name')
        tier = Tier.parse(tier)
        code = self.next_customer_code(tier)
        doc = {
            'name': name,
            'phone': (phone or '').strip(),
            'clientType': tier.value,
            'customerCode': code,
            'createdAt': self.clock().isoformat(),
        }
        doc_id = self.store.create(CUSTOMERS, doc)
        logger.info("Customer %s created (%s)", code, name)
        return {'id': doc_id, **doc}

    def next_customer_code(self, tier: Tier) -> str:
        settings = self.settings_service.load()
        if tier is Tier.WHOLESALE:
            prefix = settings.get('customerCodePrefixWholesale') or 'WS'
        else:
            prefix = settings.get('customerCodePrefixRetail') or 'RE'
        numbers = []
        for _, doc in self.store.list(CUSTOMERS):
            code = str(doc.get('customerCode') or '')
            head, _, tail = code.partition('-')
            if head == prefix and tail.isdigit():
                numbers.append(int(tail))
        return f"{prefix}-{max(numbers) + 1 if numbers else 1}"

    def list_accounts(self) -> list[dict]:
        return [{'id': doc_id, **doc} for doc_id, doc in self.store.list(ACCOUNTS)]

    def ensure_account(self, name: str) -> str:
        """Return the account name, creating the account when it is new."""
        name = " ".join((name or '').split())
        if not name:
            raise InvalidOrderInput("Account is required", field='account_name')
        existing = {str(doc.get('name', '')).lower() for _, doc in self.store.list(ACCOUNTS)}
        if name.lower() not in existing:
            self.store.create(ACCOUNTS, {'name': name})
            logger.info("Account '%s' created", name)
        return name

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(self, payload: dict) -> Order:
        """
        Create an order in status Requested.

        Args:
            payload: customer_id, account_name, channel, raw input fields
                (snake_case names), optional tracking_numbers / upload_id.
                With existing_order_id the placeholder order created from a
                payment upload is completed instead of creating a new one.

        Returns:
            The stored Order with its financials
        """
        errors = []
        if not payload.get('customer_id'):
            errors.append("Customer is required")
        if not str(payload.get('account_name') or '').strip():
            errors.append("Account is required")
        gross = coerce_number(payload.get('gross_amount'), 'gross_amount')
        pieces = coerce_number(payload.get('pieces'), 'pieces')
        if gross <= 0:
            errors.append("Total SR is required and must be greater than 0")
        if pieces <= 0:
            errors.append("Pieces is required and must be greater than 0")
        if errors:
            raise InvalidOrderInput("; ".join(errors))

        customer = self.get_customer(payload['customer_id'])
        channel = Channel.parse(payload.get('channel') or Channel.BARRY)
        tier = Tier.parse(payload.get('tier') or customer.get('clientType'))
        inputs = OrderInputs(**{
            name: coerce_number(payload.get(name), name) for name in INPUT_KEYS
        })
        rules = self.settings_service.rules()
        financials = self.calculator.calculate(inputs, channel, tier, rules)

        account_name = self.ensure_account(payload['account_name'])
        now = self.clock()
        existing_id = payload.get('existing_order_id')
        tracking = [t.strip() for t in payload.get('tracking_numbers') or [] if t and t.strip()]

        if existing_id and existing_id != 'NEW_ORDER':
            previous = self.store.require(ORDERS, existing_id)
            order = Order.from_document(existing_id, {**previous, 'orderType': channel.value, 'clientType': tier.value})
            order_code = order.order_id
            carried = {'applied_payments': order.applied_payments, 'sheet_id': order.sheet_id, 'sheet_code': order.sheet_code}
            version = order.version + 1
            created_at = order.created_at or now
        else:
            order_code = self.next_order_code(channel)
            version = 0
            created_at = now
            carried = {}

        order = Order(
            id=existing_id if existing_id and existing_id != 'NEW_ORDER' else '',
            order_id=order_code,
            channel=channel,
            tier=tier,
            inputs=inputs,
            status=OrderStatus.REQUESTED,
            financials=financials,
            customer_id=customer['id'],
            customer_name=customer.get('name', ''),
            customer_code=customer.get('customerCode', ''),
            phone=customer.get('phone', ''),
            account_name=account_name,
            tracking_numbers=tracking,
            created_at=created_at,
            last_updated=now,
            upload_id=payload.get('upload_id'),
            version=version,
            **carried,
        )
        if order.id:
            self.store.update(ORDERS, order.id, order.to_document())
        else:
            order.id = self.store.create(ORDERS, order.to_document())
        logger.info("Order %s saved for %s (total %s EGP)", order.order_id, order.customer_name, financials.total_amount)
        return order

    def create_placeholder_order(self, customer_id: str, channel, deposit: float) -> Order:
        """
        Order opened by a payment upload for a new order.

        Only the deposit is known; the rest is filled in when an admin
        completes the order after approving the upload.
        """
        customer = self.get_customer(customer_id)
        channel = Channel.parse(channel)
        tier = Tier.parse(customer.get('clientType'))
        inputs = OrderInputs(deposit_paid=coerce_number(deposit, 'deposit_paid'))
        now = self.clock()
        order = Order(
            id='',
            order_id=self.next_order_code(channel),
            channel=channel,
            tier=tier,
            inputs=inputs,
            financials=self.calculator.calculate(inputs, channel, tier, self.settings_service.rules()),
            customer_id=customer['id'],
            customer_name=customer.get('name', ''),
            customer_code=customer.get('customerCode', ''),
            phone=customer.get('phone', ''),
            account_name=UPLOAD_ACCOUNT,
            created_at=now,
            last_updated=now,
        )
        order.id = self.store.create(ORDERS, order.to_document())
        return order

    def find_order(self, reference: str) -> Order:
        """Look an order up by store id or by its human-readable code."""
        doc = self.store.get(ORDERS, reference)
        if doc is not None:
            return Order.from_document(reference, doc)
        for doc_id, doc in self.store.list(ORDERS):
            if str(doc.get('orderId', '')).lower() == str(reference).strip().lower():
                return Order.from_document(doc_id, doc)
        raise NotFound(f"Order '{reference}' not found")

    def next_order_code(self, channel: Channel) -> str:
        settings = self.settings_service.load()
        if channel is Channel.BARRY:
            prefix = settings.get('orderCodePrefixBarry') or 'B'
        else:
            prefix = settings.get('orderCodePrefixGawy') or 'G'
        return f"{prefix}-{self.store.next_counter(channel.value)}"

    def get_order(self, order_id: str) -> Order:
        return Order.from_document(order_id, self.store.require(ORDERS, order_id))

    def list_orders(
        self,
        channel=None,
        status=None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        account: Optional[str] = None,
        sheet: Optional[str] = None,
        by_sheet: bool = False,
    ) -> list[Order]:
        """
        Orders matching every given filter, sorted by code number.

        `sheet` matches a substring of the sheet code; `by_sheet` groups
        sheeted orders first, by sheet code. Documents that cannot be read
        are skipped with a warning (see `unreadable_orders`).
        """
        channel = Channel.parse(channel) if channel else None
        status = OrderStatus.parse(status) if status else None
        sheet = (sheet or '').strip().lower()
        orders = []
        for _, order in self._readable_orders():
            if channel and order.channel is not channel:
                continue
            if status and order.status is not status:
                continue
            if account and order.account_name != account:
                continue
            if sheet and sheet not in order.sheet_code.lower():
                continue
            created = order.created_at.date() if order.created_at else None
            if date_from and (created is None or created < date_from):
                continue
            if date_to and (created is None or created > date_to):
                continue
            orders.append(order)
        return sort_by_sheet(orders) if by_sheet else sort_by_code(orders)

    def unreadable_orders(self) -> dict[str, str]:
        """Stored order documents that fail to parse, with the reason."""
        problems = {}
        for doc_id, doc in self.store.list(ORDERS):
            try:
                Order.from_document(doc_id, doc)
            except ValueError as e:
                problems[doc_id] = str(e)
        return problems

    def _readable_orders(self):
        for doc_id, doc in self.store.list(ORDERS):
            try:
                yield doc_id, Order.from_document(doc_id, doc)
            except ValueError as e:
                logger.warning("Skipping unreadable order %s: %s", doc_id, e)

    def order_documents(self, **filters) -> list[dict]:
        """Filtered orders as plain documents (for the reports)."""
        return [{'id': o.id, **o.to_document()} for o in self.list_orders(**filters)]

    def update_field(self, order_id: str, field_name: str, value, expected_version: Optional[int] = None) -> UpdateOutcome:
        outcome = self.updater.apply_change(order_id, field_name, value, expected_version)
        if outcome.success and field_name == 'pieces':
            self._refresh_group_pieces(outcome.invalidated)
            if outcome.order.sheet_id:
                self._refresh_sheet_pieces(outcome.order.sheet_id)
        return outcome

    def set_status_bulk(self, order_ids: Iterable[str], status) -> tuple[BatchResult, list[UpdateOutcome]]:
        """Move several orders to one status; returns the summary and successful outcomes."""
        status = OrderStatus.parse(status)
        result = BatchResult()
        outcomes = []
        for order_id in order_ids:
            try:
                outcome = self.updater.apply_change(order_id, 'status', status)
            except (ValueError, KeyError, ConsistencyViolation) as e:
                result.failed[order_id] = str(e)
                continue
            if outcome.success:
                result.succeeded.append(order_id)
                outcomes.append(outcome)
            else:
                result.failed[order_id] = outcome.error or 'not saved'
        logger.info("Bulk status '%s': %s", status.value, result.summary())
        return result, outcomes

    def place_orders(self, order_ids: Iterable[str]) -> tuple[BatchResult, list[tuple[Order, Optional[str]]]]:
        """
        Move Requested orders of one channel to Order Placed.

        Orders in any other status, or without a phone number to confirm
        with, fail individually. Mixing channels fails the whole call before
        any write.

        Returns:
            The summary and, per placed order, the order with its WhatsApp
            confirmation link
        """
        order_ids = list(dict.fromkeys(order_ids))
        result = BatchResult()
        loaded = []
        for order_id in order_ids:
            try:
                loaded.append(self.get_order(order_id))
            except (NotFound, ValueError) as e:
                result.failed[order_id] = str(e)
        if len({o.channel for o in loaded}) > 1:
            raise ConsistencyViolation("Cannot place orders from different channels together")

        settings = self.settings_service.load()
        placed = []
        for order in loaded:
            if order.status is not OrderStatus.REQUESTED:
                result.failed[order.id] = f"{order.order_id} is '{order.status.value}'; only Requested orders can be placed"
                continue
            if not order.phone.strip():
                result.failed[order.id] = f"{order.order_id} has no phone number"
                continue
            try:
                outcome = self.updater.apply_change(order.id, 'status', OrderStatus.ORDER_PLACED)
            except (ValueError, KeyError, ConsistencyViolation) as e:
                result.failed[order.id] = str(e)
                continue
            if not outcome.success:
                result.failed[order.id] = outcome.error or 'not saved'
                continue
            message = order_placed_message(outcome.order, settings)
            placed.append((outcome.order, whatsapp_link(outcome.order.phone, message, self.phone_prefix)))
            result.succeeded.append(order.id)
        logger.info("Place orders: %s", result.summary())
        return result, placed

    def delete_orders(self, order_ids: Iterable[str]) -> BatchResult:
        """Delete orders, then detach each from its merged group and sheet."""
        result = BatchResult()
        for order_id in order_ids:
            try:
                doc = self.store.require(ORDERS, order_id)
                self.store.delete(ORDERS, order_id)
            except (NotFound, PersistenceFailure) as e:
                result.failed[order_id] = str(e)
                continue
            result.succeeded.append(order_id)
            try:
                self._detach_from_groups(order_id, coerce_number(doc.get('pieces'), 'pieces'))
                if doc.get('sheetId'):
                    self._drop_from_sheet(doc['sheetId'], order_id)
            except (NotFound, PersistenceFailure, ValueError) as e:
                logger.warning("Order %s deleted but its group or sheet was not updated: %s", order_id, e)
        logger.info("Bulk delete: %s", result.summary())
        return result

    # ------------------------------------------------------------------
    # Merged groups
    # ------------------------------------------------------------------

    def list_merged_groups(self) -> list[MergedGroup]:
        return [MergedGroup.from_document(doc_id, doc) for doc_id, doc in self.store.list(MERGED_GROUPS)]

    def merge_orders(self, order_ids: list[str], name: str = '', tracking_number: str = '') -> MergedGroup:
        """Consolidate two or more same-channel orders under one tracking number."""
        order_ids = list(dict.fromkeys(order_ids))
        if len(order_ids) < 2:
            raise InvalidOrderInput("Select at least two orders to merge")
        orders = [self.get_order(order_id) for order_id in order_ids]
        channels = {o.channel for o in orders}
        if len(channels) > 1:
            raise ConsistencyViolation("Cannot merge orders from different channels")
        grouped = {oid for g in self.list_merged_groups() for oid in g.order_ids}
        already = [o.order_id for o in orders if o.id in grouped]
        if already:
            raise ConsistencyViolation(f"Already in a merged group: {', '.join(already)}")

        ordered = sorted(orders, key=lambda o: code_number(o.order_id))
        group = MergedGroup(
            id='',
            name=name.strip() or "+".join(o.order_id for o in ordered),
            order_ids=[o.id for o in ordered],
            channel=channels.pop(),
            tracking_number=tracking_number.strip(),
            total_pieces=sum(o.inputs.pieces for o in orders),
        )
        group.id = self.store.create(MERGED_GROUPS, group.to_document())
        logger.info("Merged %d orders into '%s'", len(orders), group.name)
        return group

    def unmerge(self, group_id: str) -> bool:
        return self.store.delete(MERGED_GROUPS, group_id)

    def _detach_from_groups(self, order_id: str, pieces: float):
        for group in self.list_merged_groups():
            if order_id not in group.order_ids:
                continue
            remaining = [oid for oid in group.order_ids if oid != order_id]
            # A group needs two members; dissolve it instead of keeping a singleton
            if len(remaining) < 2:
                self.store.delete(MERGED_GROUPS, group.id)
            else:
                self.store.update(MERGED_GROUPS, group.id, {
                    'orders': remaining,
                    'totalPieces': max(0.0, group.total_pieces - pieces),
                })

    def _refresh_group_pieces(self, invalidated: set[str]):
        for view in invalidated:
            if not view.startswith('merged_group:'):
                continue
            group_id = view.split(':', 1)[1]
            group = MergedGroup.from_document(group_id, self.store.require(MERGED_GROUPS, group_id))
            total = 0.0
            for order_id in group.order_ids:
                doc = self.store.get(ORDERS, order_id)
                total += coerce_number(doc.get('pieces'), 'pieces') if doc else 0.0
            self.store.update(MERGED_GROUPS, group_id, {'totalPieces': total})

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------

    def list_sheets(self, channel=None) -> list[Sheet]:
        """Sheets ordered by channel, then sheet number."""
        channel = Channel.parse(channel) if channel else None
        sheets = [Sheet.from_document(doc_id, doc) for doc_id, doc in self.store.list(SHEETS)]
        if channel:
            sheets = [s for s in sheets if s.channel is channel]
        return sorted(sheets, key=lambda s: sheet_sort_key(s.code))

    def get_sheet(self, sheet_id: str) -> Sheet:
        return Sheet.from_document(sheet_id, self.store.require(SHEETS, sheet_id))

    def next_sheet_code(self, channel: Channel) -> str:
        numbers = [code_number(s.code) for s in self.list_sheets(channel)]
        return f"{channel.value}{max(numbers) + 1 if numbers else 1}"

    def create_sheet(self, order_ids: list[str]) -> Sheet:
        """Put same-channel orders that are on no sheet yet onto a new sheet."""
        order_ids = list(dict.fromkeys(order_ids))
        if not order_ids:
            raise InvalidOrderInput("Select orders for the sheet first")
        orders = [self.get_order(order_id) for order_id in order_ids]
        channels = {o.channel for o in orders}
        if len(channels) > 1:
            raise ConsistencyViolation("Cannot put orders from different channels on one sheet")
        already = [f"{o.order_id} ({o.sheet_code})" for o in orders if o.sheet_id]
        if already:
            raise ConsistencyViolation(f"Already on a sheet: {', '.join(already)}")

        channel = channels.pop()
        now = self.clock()
        sheet = Sheet(
            id='',
            code=self.next_sheet_code(channel),
            channel=channel,
            order_ids=[o.id for o in sort_by_code(orders)],
            total_pieces=sum(o.inputs.pieces for o in orders),
            created_at=now,
            updated_at=now,
        )
        sheet.id = self.store.create(SHEETS, sheet.to_document())
        for order in orders:
            self.store.update(ORDERS, order.id, {'sheetId': sheet.id, 'sheetCode': sheet.code})
        logger.info("Sheet %s created with %d orders", sheet.code, len(orders))
        return sheet

    def remove_from_sheet(self, sheet_id: str, order_id: str) -> Sheet:
        """Unlink one order from its sheet; the sheet stays even when empty."""
        sheet = self.get_sheet(sheet_id)
        if order_id not in sheet.order_ids:
            raise NotFound(f"Order '{order_id}' is not on sheet {sheet.code}")
        if self.store.get(ORDERS, order_id) is not None:
            self.store.update(ORDERS, order_id, {'sheetId': None, 'sheetCode': ''})
        return self._drop_from_sheet(sheet_id, order_id)

    def delete_sheet(self, sheet_id: str) -> int:
        """Delete a sheet after unlinking its orders; returns how many were unlinked."""
        sheet = self.get_sheet(sheet_id)
        unlinked = 0
        for doc_id, doc in self.store.list(ORDERS):
            if doc.get('sheetId') == sheet_id:
                self.store.update(ORDERS, doc_id, {'sheetId': None, 'sheetCode': ''})
                unlinked += 1
        self.store.delete(SHEETS, sheet_id)
        logger.info("Sheet %s deleted, %d orders unlinked", sheet.code, unlinked)
        return unlinked

    def sheet_totals(self, sheet: Sheet) -> dict:
        """Live counts for a sheet from its current orders."""
        totals = {'orders': 0, 'pieces': 0.0, 'gross_amount': 0.0, 'outstanding': 0.0}
        for order_id in sheet.order_ids:
            doc = self.store.get(ORDERS, order_id)
            if doc is None:
                continue
            totals['orders'] += 1
            totals['pieces'] += coerce_number(doc.get('pieces'), 'pieces')
            totals['gross_amount'] += coerce_number(doc.get('totalSR'), 'gross_amount')
            totals['outstanding'] += coerce_number(doc.get('outstanding'), 'outstanding')
        return totals

    def _drop_from_sheet(self, sheet_id: str, order_id: str) -> Sheet:
        sheet = self.get_sheet(sheet_id)
        sheet.order_ids = [oid for oid in sheet.order_ids if oid != order_id]
        sheet.total_pieces = self.sheet_totals(sheet)['pieces']
        sheet.updated_at = self.clock()
        self.store.update(SHEETS, sheet_id, sheet.to_document())
        return sheet

    def _refresh_sheet_pieces(self, sheet_id: str):
        doc = self.store.get(SHEETS, sheet_id)
        if doc is None:
            return
        sheet = Sheet.from_document(sheet_id, doc)
        self.store.update(SHEETS, sheet_id, {'totalPieces': self.sheet_totals(sheet)['pieces']})
