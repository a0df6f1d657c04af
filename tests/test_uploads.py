import pytest

from order_desk.engine.errors import InvalidOrderInput, ConsistencyViolation, PersistenceFailure
from order_desk.engine.models import OrderStatus
from order_desk.services.document_store import UPLOADS
from order_desk.services.order_service import UPLOAD_ACCOUNT


def test_payment_amount_required(services, retail_customer):
    with pytest.raises(InvalidOrderInput):
        services.uploads.submit(retail_customer['id'], 0)


def test_new_order_upload_opens_placeholder(services, retail_customer):
    upload = services.uploads.submit(retail_customer['id'], 750, channel='G', payment_images=['https://img/1.png'])

    assert upload['status'] == "Under Approval"
    assert upload['is_new_order'] is True
    assert upload['order_id'] == "G-1"
    assert upload['client_code'] == "RE-1"
    placeholder = services.orders.get_order(upload['firestore_order_id'])
    assert placeholder.account_name == UPLOAD_ACCOUNT
    assert placeholder.inputs.deposit_paid == 750


def test_approve_existing_order_adds_deposit(services, make_order):
    order = make_order(gross_amount=1000)
    upload = services.uploads.submit(order.customer_id, 4500, order_reference="B-1")

    result = services.uploads.approve(upload['id'])

    assert not result.requires_order_completion
    updated = services.orders.get_order(order.id)
    assert updated.inputs.deposit_paid == 4500
    assert updated.financials.outstanding_amount == 10000
    assert updated.status is OrderStatus.ORDER_PLACED
    assert result.upload['status'] == "Approved"
    assert result.upload['processed_by'] == "Admin"
    assert result.upload['processed_at'] == "2026-03-01T10:15:00"


def test_approve_keeps_later_status(services, make_order):
    order = make_order()
    services.orders.update_field(order.id, 'status', 'Shipped to Egypt')
    upload = services.uploads.submit(order.customer_id, 100, order_reference=order.id)
    services.uploads.approve(upload['id'])
    assert services.orders.get_order(order.id).status is OrderStatus.SHIPPED_TO_DESTINATION


def test_upload_processed_only_once(services, make_order):
    order = make_order()
    upload = services.uploads.submit(order.customer_id, 100, order_reference="B-1")
    services.uploads.approve(upload['id'])
    with pytest.raises(ConsistencyViolation):
        services.uploads.approve(upload['id'])
    with pytest.raises(ConsistencyViolation):
        services.uploads.reject(upload['id'])
    assert services.orders.get_order(order.id).inputs.deposit_paid == 100


def test_approve_new_order_returns_prefill(services, retail_customer):
    upload = services.uploads.submit(retail_customer['id'], 1000)
    result = services.uploads.approve(upload['id'])

    assert result.requires_order_completion
    assert result.upload['requires_order_completion'] is True
    assert result.prefill['deposit_paid'] == 1000
    assert result.prefill['existing_order_id'] == upload['firestore_order_id']

    # Completing the placeholder keeps its code instead of taking a new one
    order = services.orders.create_order({
        **result.prefill,
        'account_name': 'Main Account',
        'gross_amount': 1000,
        'pieces': 2,
    })
    assert order.id == upload['firestore_order_id']
    assert order.order_id == "B-1"
    assert order.account_name == 'Main Account'
    assert order.financials.outstanding_amount == 13500
    assert len(services.orders.list_orders()) == 1


def test_reject_returns_whatsapp_link(services, retail_customer):
    upload = services.uploads.submit(retail_customer['id'], 300)
    row, link = services.uploads.reject(upload['id'])

    assert row['status'] == "Rejected"
    assert link.startswith("https://wa.me/201001234567?text=")


def test_list_and_counts(services, retail_customer):
    first = services.uploads.submit(retail_customer['id'], 100)
    services.uploads.submit(retail_customer['id'], 200)
    services.uploads.reject(first['id'])
    # Rows written without a status count as awaiting approval
    services.store.create(UPLOADS, {'client_id': retail_customer['id'], 'payment_amount': 50})

    assert services.uploads.status_counts() == {"Under Approval": 2, "Approved": 0, "Rejected": 1}
    assert len(services.uploads.list_uploads()) == 3
    assert len(services.uploads.list_uploads("All")) == 3
    assert [u['payment_amount'] for u in services.uploads.list_uploads("Rejected")] == [100]
    assert {u['status'] for u in services.uploads.list_uploads("Under Approval")} == {"Under Approval"}


def test_retry_after_failed_upload_write_counts_payment_once(services, make_order, monkeypatch):
    order = make_order(gross_amount=1000)
    upload = services.uploads.submit(order.customer_id, 500, order_reference="B-1")
    real_update = services.store.update

    def update(collection, doc_id, changes):
        if collection == UPLOADS:
            raise PersistenceFailure("disk full")
        return real_update(collection, doc_id, changes)

    monkeypatch.setattr(services.store, 'update', update)
    with pytest.raises(PersistenceFailure):
        services.uploads.approve(upload['id'])
    monkeypatch.undo()

    assert services.uploads.get_upload(upload['id'])['status'] == "Under Approval"
    result = services.uploads.approve(upload['id'])

    assert result.upload['status'] == "Approved"
    updated = services.orders.get_order(order.id)
    assert updated.inputs.deposit_paid == 500
    assert updated.applied_payments == [upload['id']]
    assert updated.financials.outstanding_amount == 14000
