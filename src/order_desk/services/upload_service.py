"""
Upload Service - payment proof submission and approval.

Approving a payment for an existing order adds it to the deposit once and
recomputes the order (a Requested order also moves to Order Placed).
Approving a payment for a new order only flags the upload for completion;
the admin then fills in the placeholder order.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..engine.errors import ConsistencyViolation, InvalidOrderInput, PersistenceFailure
from ..engine.models import UploadStatus, coerce_number
from .document_store import DocumentStore, UPLOADS
from .notifications import whatsapp_link, payment_rejected_message
from .order_service import OrderService
from .reconciliation import UpdateOutcome
from .settings_service import SettingsService

logger = logging.getLogger(__name__)

NEW_ORDER = "NEW_ORDER"
PROCESSED_BY = "Admin"


@dataclass
class ApprovalResult:
    """Outcome of approving one upload."""
    upload: dict
    order_outcome: Optional[UpdateOutcome] = None
    # Prefill for completing a new order (customer, deposit, channel, ids)
    prefill: dict = field(default_factory=dict)

    @property
    def requires_order_completion(self) -> bool:
        return bool(self.prefill)


class UploadService:
    """Payment upload rows and their approval workflow."""

    def __init__(
        self,
        store: DocumentStore,
        orders: OrderService,
        settings_service: SettingsService,
        phone_prefix: str = '',
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.orders = orders
        self.settings_service = settings_service
        self.phone_prefix = phone_prefix
        self.clock = clock

    def submit(
        self,
        client_id: str,
        payment_amount,
        order_reference: str = NEW_ORDER,
        channel: str = 'B',
        payment_images: Optional[list[str]] = None,
        order_images: Optional[list[str]] = None,
    ) -> dict:
        """Record a customer's payment proof (creating a placeholder order when new)."""
        amount = coerce_number(payment_amount, 'payment_amount')
        if amount <= 0:
            raise InvalidOrderInput("Payment amount is required and must be greater than 0", field='payment_amount')
        customer = self.orders.get_customer(client_id)

        is_new = order_reference in (None, '', NEW_ORDER, 'new')
        if is_new:
            order = self.orders.create_placeholder_order(client_id, channel, amount)
        else:
            order = self.orders.find_order(order_reference)

        row = {
            'client_id': client_id,
            'client_code': customer.get('customerCode', ''),
            'client_name': customer.get('name', ''),
            'client_type': customer.get('clientType', ''),
            'client_phone': customer.get('phone', ''),
            'payment_amount': amount,
            'payment_images': list(payment_images or []),
            'order_images': list(order_images or []),
            'order_id': order.order_id,
            'firestore_order_id': order.id,
            'order_type': order.channel.value,
            'is_new_order': is_new,
            'new_order_id': order.id if is_new else None,
            'status': UploadStatus.UNDER_APPROVAL.value,
            'created_at': self.clock().isoformat(),
        }
        upload_id = self.store.create(UPLOADS, row)
        logger.info("Upload %s received for order %s (%s EGP)", upload_id, order.order_id, amount)
        return {'id': upload_id, **row}

    def list_uploads(self, status: Optional[str] = None) -> list[dict]:
        """Uploads newest first; status None / "All" returns everything."""
        wanted = None if status in (None, '', 'All') else UploadStatus.parse(status)
        rows = []
        for doc_id, row in self.store.list(UPLOADS):
            current = UploadStatus.parse(row.get('status'))
            if wanted is None or current is wanted:
                rows.append({'id': doc_id, **row, 'status': current.value})
        return sorted(rows, key=lambda r: r.get('created_at') or '', reverse=True)

    def status_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in UploadStatus}
        for _, row in self.store.list(UPLOADS):
            counts[UploadStatus.parse(row.get('status')).value] += 1
        return counts

    def get_upload(self, upload_id: str) -> dict:
        row = self.store.require(UPLOADS, upload_id)
        return {'id': upload_id, **row, 'status': UploadStatus.parse(row.get('status')).value}

    def approve(self, upload_id: str) -> ApprovalResult:
        upload = self._pending(upload_id)
        payment = coerce_number(upload.get('payment_amount'), 'payment_amount')
        order_ref = upload.get('firestore_order_id')
        is_new = (
            upload.get('is_new_order') is True
            or order_ref == NEW_ORDER
            or (not order_ref and upload.get('client_id'))
        )

        result = ApprovalResult(upload=upload)
        changes = {}
        if is_new:
            result.prefill = {
                'customer_id': upload.get('client_id'),
                'customer_name': upload.get('client_name'),
                'phone': upload.get('client_phone'),
                'tier': upload.get('client_type'),
                'customer_code': upload.get('client_code'),
                'deposit_paid': payment,
                'channel': upload.get('order_type') or 'B',
                'existing_order_id': upload.get('new_order_id') or order_ref,
                'upload_id': upload_id,
            }
            changes['requires_order_completion'] = True
        elif order_ref:
            order = self.orders.find_order(order_ref)
            # Keyed on the upload id so a retry after a failed upload write
            # does not add the payment twice
            outcome = self.orders.updater.apply_payment(order.id, upload_id, payment)
            if not outcome.success:
                raise PersistenceFailure(f"Order {order.order_id} not updated: {outcome.error}")
            result.order_outcome = outcome
        else:
            raise ConsistencyViolation("Invalid order state for this upload")

        changes.update(self._processed(UploadStatus.APPROVED))
        result.upload = {'id': upload_id, **self.store.update(UPLOADS, upload_id, changes)}
        logger.info("Upload %s approved (%s EGP)", upload_id, payment)
        return result

    def reject(self, upload_id: str) -> tuple[dict, Optional[str]]:
        """Reject an upload; returns the row and a WhatsApp link for the customer."""
        upload = self._pending(upload_id)
        message = payment_rejected_message(self.settings_service.load())
        link = whatsapp_link(upload.get('client_phone'), message, self.phone_prefix)
        row = self.store.update(UPLOADS, upload_id, self._processed(UploadStatus.REJECTED))
        logger.info("Upload %s rejected", upload_id)
        return {'id': upload_id, **row}, link

    def _pending(self, upload_id: str) -> dict:
        upload = self.get_upload(upload_id)
        if UploadStatus.parse(upload.get('status')) is not UploadStatus.UNDER_APPROVAL:
            raise ConsistencyViolation(f"Upload '{upload_id}' was already {upload['status'].lower()}")
        return upload

    def _processed(self, status: UploadStatus) -> dict:
        return {
            'status': status.value,
            'processed_at': self.clock().isoformat(),
            'processed_by': PROCESSED_BY,
        }
