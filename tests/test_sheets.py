import pytest

from order_desk.engine.errors import InvalidOrderInput, ConsistencyViolation, NotFound
from order_desk.services.document_store import ORDERS, SHEETS


def test_create_sheet_stamps_orders(services, make_order):
    a, b = make_order(pieces=2), make_order(pieces=3)
    sheet = services.orders.create_sheet([b.id, a.id])

    assert sheet.code == "B1"
    assert sheet.order_ids == [a.id, b.id]
    assert sheet.total_pieces == 5
    assert services.orders.get_order(a.id).sheet_code == "B1"
    assert services.store.get(ORDERS, b.id)['sheetId'] == sheet.id

    gawy = services.orders.create_sheet([make_order(channel='G').id])
    assert gawy.code == "G1"
    assert services.orders.create_sheet([make_order().id]).code == "B2"


def test_sheet_rules(services, make_order):
    a = make_order()
    with pytest.raises(InvalidOrderInput):
        services.orders.create_sheet([])
    with pytest.raises(ConsistencyViolation):
        services.orders.create_sheet([a.id, make_order(channel='G').id])

    services.orders.create_sheet([a.id])
    with pytest.raises(ConsistencyViolation):
        services.orders.create_sheet([a.id, make_order().id])


def test_filter_and_group_by_sheet(services, make_order):
    a, b, c = make_order(), make_order(), make_order()
    services.orders.create_sheet([c.id])
    services.orders.create_sheet([a.id])

    assert [o.id for o in services.orders.list_orders(sheet='b1')] == [c.id]
    assert [o.id for o in services.orders.list_orders(by_sheet=True)] == [c.id, a.id, b.id]
    assert [o.id for o in services.orders.list_orders()] == [a.id, b.id, c.id]


def test_sheet_pieces_follow_edits_and_deletes(services, make_order):
    a, b = make_order(pieces=2), make_order(pieces=3)
    sheet = services.orders.create_sheet([a.id, b.id])

    services.orders.update_field(a.id, 'pieces', 10)
    assert services.store.get(SHEETS, sheet.id)['totalPieces'] == 13

    services.orders.delete_orders([b.id])
    doc = services.store.get(SHEETS, sheet.id)
    assert doc['orders'] == [a.id]
    assert doc['totalPieces'] == 10


def test_remove_from_sheet(services, make_order):
    a, b = make_order(pieces=2), make_order(pieces=3)
    sheet = services.orders.create_sheet([a.id, b.id])

    updated = services.orders.remove_from_sheet(sheet.id, a.id)

    assert updated.order_ids == [b.id]
    assert updated.total_pieces == 3
    assert services.orders.get_order(a.id).sheet_id is None
    with pytest.raises(NotFound):
        services.orders.remove_from_sheet(sheet.id, a.id)


def test_delete_sheet_unlinks_orders(services, make_order):
    a, b = make_order(), make_order()
    first = services.orders.create_sheet([a.id])
    services.orders.create_sheet([b.id])

    assert services.orders.delete_sheet(first.id) == 1
    assert services.store.get(SHEETS, first.id) is None
    order = services.orders.get_order(a.id)
    assert order.sheet_id is None
    assert order.sheet_code == ""
    # Numbers are not reused while a later sheet exists
    assert services.orders.create_sheet([a.id]).code == "B3"


def test_sheet_totals(services, make_order):
    a = make_order(gross_amount=1000, pieces=2, deposit_paid=500)
    b = make_order(gross_amount=200, pieces=1)
    sheet = services.orders.create_sheet([a.id, b.id])

    totals = services.orders.sheet_totals(sheet)
    assert totals == {'orders': 2, 'pieces': 3, 'gross_amount': 1200, 'outstanding': 14000 + 2900}
    assert [s.code for s in services.orders.list_sheets('B')] == ["B1"]
    assert services.orders.list_sheets('G') == []
