from datetime import datetime

import pytest

from order_desk.engine.errors import (
    InvalidOrderInput, InvalidClassification, ConsistencyViolation, PersistenceFailure,
)
from order_desk.engine.models import OrderStatus, Tier
from order_desk.services.document_store import ORDERS
from order_desk.services.reconciliation import ReconciliationUpdater, NOTIFY_IN_DISTRIBUTION


def stored(services, order_id):
    return services.store.get(ORDERS, order_id)


def test_edit_recomputes_and_persists(services, make_order):
    order = make_order(gross_amount=1000)
    assert order.financials.total_amount == 14500

    outcome = services.updater.apply_change(order.id, 'gross_amount', 2000)

    assert outcome.success
    assert outcome.order.financials.total_amount == 29000
    assert outcome.previous.financials.total_amount == 14500
    doc = stored(services, order.id)
    assert doc['totalSR'] == 2000
    assert doc['totalEGP'] == 29000
    assert doc['outstanding'] == 29000
    assert doc['version'] == 1


def test_store_keys_accepted_as_field_names(services, make_order):
    order = make_order()
    outcome = services.updater.apply_change(order.id, 'depositEGP', '500')
    assert outcome.order.inputs.deposit_paid == 500
    assert outcome.order.financials.outstanding_amount == 14000


def test_tier_change_switches_rate_and_rounding(services, make_order):
    order = make_order(gross_amount=2000)
    outcome = services.updater.apply_change(order.id, 'tier', 'Wholesale')
    assert outcome.order.tier is Tier.WHOLESALE
    assert outcome.order.financials.conversion_rate == 12.25
    assert outcome.order.financials.total_amount == 24500


def test_bad_values_leave_order_untouched(services, make_order):
    order = make_order()
    before = stored(services, order.id)

    with pytest.raises(InvalidOrderInput):
        services.updater.apply_change(order.id, 'gross_amount', 'lots')
    with pytest.raises(InvalidOrderInput):
        services.updater.apply_change(order.id, 'discount1', -5)
    with pytest.raises(InvalidOrderInput):
        services.updater.apply_change(order.id, 'channel', 'G')
    with pytest.raises(InvalidOrderInput):
        services.updater.apply_change(order.id, 'totalEGP', 1)
    with pytest.raises(InvalidClassification):
        services.updater.apply_change(order.id, 'tier', 'VIP')

    assert stored(services, order.id) == before


def test_delivered_timestamp_set_once(services, make_order, clock):
    order = make_order()
    first = datetime(2026, 3, 5, 9, 0)
    clock.now = first
    outcome = services.updater.apply_change(order.id, 'status', 'Delivered to Egypt')
    assert outcome.order.delivered_at == first

    clock.now = datetime(2026, 3, 6, 9, 0)
    services.updater.apply_change(order.id, 'status', OrderStatus.IN_DISTRIBUTION)
    outcome = services.updater.apply_change(order.id, 'status', 'Delivered to Egypt')
    assert outcome.order.delivered_at == first
    assert stored(services, order.id)['deliveredAt'] == first.isoformat()


def test_in_distribution_triggers_notification(services, make_order):
    order = make_order()
    outcome = services.updater.apply_change(order.id, 'status', 'In Distribution')
    assert outcome.notifications == [NOTIFY_IN_DISTRIBUTION]

    # Re-saving the same status does not notify again
    outcome = services.updater.apply_change(order.id, 'status', 'In Distribution')
    assert outcome.notifications == []


def test_stale_version_rejected(services, make_order):
    order = make_order()
    services.updater.apply_change(order.id, 'pieces', 3, expected_version=0)
    with pytest.raises(ConsistencyViolation):
        services.updater.apply_change(order.id, 'pieces', 4, expected_version=0)
    assert stored(services, order.id)['pieces'] == 3


def test_persistence_failure_keeps_previous_state(services, make_order, monkeypatch):
    order = make_order()
    before = stored(services, order.id)

    def failing_update(collection, doc_id, changes):
        raise PersistenceFailure("store offline")

    monkeypatch.setattr(services.store, 'update', failing_update)
    outcome = services.updater.apply_change(order.id, 'gross_amount', 5000)

    assert not outcome.success
    assert outcome.error == "store offline"
    assert outcome.order.financials.total_amount == 14500
    monkeypatch.undo()
    assert stored(services, order.id) == before


def test_strict_status_rejects_backward_moves(services, make_order):
    order = make_order()
    strict = ReconciliationUpdater(services.store, services.settings_service.rules, strict_status=True)
    strict.apply_change(order.id, 'status', 'Shipped to Egypt')
    with pytest.raises(ConsistencyViolation):
        strict.apply_change(order.id, 'status', 'Order Placed')

    # The default updater allows corrections in either direction
    assert services.updater.apply_change(order.id, 'status', 'Order Placed').success


def test_concurrent_update_of_same_order_rejected(services, make_order):
    order = make_order()
    updater = services.updater

    def reentrant_rules():
        updater.apply_change(order.id, 'pieces', 9)

    updater.rules_provider = reentrant_rules
    with pytest.raises(ConsistencyViolation):
        updater.apply_change(order.id, 'pieces', 5)

    # The guard is released afterwards
    updater.rules_provider = services.settings_service.rules
    assert updater.apply_change(order.id, 'pieces', 5).success


def test_invalidated_views(services, make_order):
    a = make_order()
    b = make_order()
    group = services.orders.merge_orders([a.id, b.id])
    outcome = services.updater.apply_change(a.id, 'pieces', 7)
    assert outcome.invalidated == {"orders:B", "accounts", "distribution", f"merged_group:{group.id}"}


def test_recompute_all_uses_new_rates(services, make_order):
    a = make_order(gross_amount=100)
    b = make_order(gross_amount=200, channel='G')
    services.settings_service.save({'barryRetail': 15, 'gawyRetail': 16})

    result = services.updater.recompute_all()

    assert result.success_count == 2
    assert result.failure_count == 0
    assert stored(services, a.id)['totalEGP'] == 1500
    assert stored(services, b.id)['totalEGP'] == 3200


def test_apply_changes_single_write(services, make_order):
    order = make_order(gross_amount=1000)
    outcome = services.updater.apply_changes(order.id, {'deposit_paid': 1000, 'status': 'Order Placed'})
    assert outcome.order.status is OrderStatus.ORDER_PLACED
    assert outcome.order.financials.outstanding_amount == 13500
    assert stored(services, order.id)['version'] == 1


def test_payment_applied_once_per_id(services, make_order):
    order = make_order(gross_amount=1000)

    first = services.updater.apply_payment(order.id, 'upload-1', 500)
    assert first.order.inputs.deposit_paid == 500
    assert first.order.status is OrderStatus.ORDER_PLACED

    again = services.updater.apply_payment(order.id, 'upload-1', 500)
    assert again.order.inputs.deposit_paid == 500

    other = services.updater.apply_payment(order.id, 'upload-2', 250)
    assert other.order.inputs.deposit_paid == 750
    assert stored(services, order.id)['appliedPayments'] == ['upload-1', 'upload-2']
    assert other.order.financials.outstanding_amount == 13750
