import pytest
from fastapi.testclient import TestClient

from order_desk.api.main import app
from order_desk.api.state import get_services


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def customer(client):
    response = client.post("/api/customers", json={"name": "Mona Adel", "phone": "01001234567", "tier": "Retail"})
    assert response.status_code == 201
    return response.json()


def create_order(client, customer, **fields):
    payload = {
        "customer_id": customer["id"],
        "account_name": "Main Account",
        "channel": "G",
        "gross_amount": 1000,
        "pieces": 2,
    }
    payload.update(fields)
    return client.post("/api/orders", json=payload)


def test_root(client):
    assert client.get("/").json()["status"] == "online"


def test_create_and_get_order(client, customer):
    response = create_order(client, customer, discount1=100, extra_amount=50, deposit_paid=2000)
    assert response.status_code == 201
    body = response.json()
    order = body["order"]
    assert order["orderId"] == "G-1"
    assert order["totalEGP"] == 14050
    assert order["outstanding"] == 12050
    assert body["whatsapp_link"].startswith("https://wa.me/201001234567")

    fetched = client.get(f"/api/orders/{order['id']}").json()
    assert fetched["totalEGP"] == 14050


def test_invalid_order_is_400(client, customer):
    response = create_order(client, customer, gross_amount=0)
    assert response.status_code == 400
    assert "Total SR" in response.json()["detail"]

    response = create_order(client, customer, discount1=-1)
    assert response.status_code == 400
    assert response.json()["field"] == "discount1"


def test_unknown_order_is_404(client):
    assert client.get("/api/orders/nope").status_code == 404
    assert client.patch("/api/orders/nope", json={"field": "pieces", "value": 1}).status_code == 404


def test_inline_edit(client, customer):
    order = create_order(client, customer).json()["order"]
    response = client.patch(f"/api/orders/{order['id']}", json={"field": "depositEGP", "value": 500, "expected_version": 0})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["order"]["outstanding"] == 15000
    assert "orders:G" in body["invalidated"]

    stale = client.patch(f"/api/orders/{order['id']}", json={"field": "pieces", "value": 3, "expected_version": 0})
    assert stale.status_code == 409


def test_bulk_status_with_notification_links(client, customer):
    a = create_order(client, customer).json()["order"]
    response = client.post("/api/orders/status", json={"order_ids": [a["id"], "missing"], "status": "In Distribution"})
    body = response.json()
    assert body["success_count"] == 1
    assert "missing" in body["failed"]
    notification = body["outcomes"][0]["notifications"][0]
    assert notification["kind"] == "in_distribution"
    assert notification["link"].startswith("https://wa.me/2")


def test_list_orders_and_reports(client, customer):
    create_order(client, customer, channel="B")
    b2 = create_order(client, customer, channel="B", account_name="Second").json()["order"]
    client.post("/api/orders/status", json={"order_ids": [b2["id"]], "status": "Shipped to clients"})

    assert [o["orderId"] for o in client.get("/api/orders", params={"channel": "B"}).json()] == ["B-1", "B-2"]

    accounts = client.get("/api/reports/accounts").json()
    assert [a["label"] for a in accounts["accounts"]] == ["Main Account", "Second"]
    assert accounts["overall"]["count"] == 2

    distribution = client.get("/api/reports/distribution").json()
    assert [c["key"] for c in distribution["clients"]] == [["Mona Adel", "B"]]


def test_merge_and_delete(client, customer):
    a = create_order(client, customer).json()["order"]
    b = create_order(client, customer).json()["order"]
    group = client.post("/api/merged-groups", json={"order_ids": [a["id"], b["id"]]}).json()
    assert group["name"] == "G-1+G-2"
    assert group["channel"] == "G"

    conflict = client.post("/api/merged-groups", json={"order_ids": [a["id"], b["id"]]})
    assert conflict.status_code == 409

    deleted = client.post("/api/orders/delete", json={"order_ids": [a["id"]]}).json()
    assert deleted["success_count"] == 1
    assert client.get("/api/merged-groups").json() == []


def test_settings_roundtrip(client, customer):
    settings = client.get("/api/settings").json()
    assert settings["gawyRetail"] == 15.5
    assert settings["retentionDays"] == 60

    assert client.put("/api/settings", json={"gawyRetail": -1}).status_code == 400
    assert client.put("/api/settings", json={"gawyRetail": 16}).json()["gawyRetail"] == 16

    order = create_order(client, customer).json()["order"]
    assert order["totalEGP"] == 16000


def test_upload_flow(client, customer):
    order = create_order(client, customer).json()["order"]
    upload = client.post("/api/uploads", json={
        "client_id": customer["id"],
        "payment_amount": 500,
        "order_reference": order["orderId"],
    })
    assert upload.status_code == 201
    upload_id = upload.json()["id"]
    assert client.get("/api/uploads/counts").json()["Under Approval"] == 1

    approved = client.post(f"/api/uploads/{upload_id}/approve").json()
    assert approved["requires_order_completion"] is False
    assert approved["order"]["depositEGP"] == 500
    assert approved["order"]["status"] == "Order Placed"

    again = client.post(f"/api/uploads/{upload_id}/approve")
    assert again.status_code == 409

    rejected_upload = client.post("/api/uploads", json={"client_id": customer["id"], "payment_amount": 100}).json()
    rejected = client.post(f"/api/uploads/{rejected_upload['id']}/reject").json()
    assert rejected["upload"]["status"] == "Rejected"
    assert rejected["whatsapp_link"].startswith("https://wa.me/2")


def test_zero_payment_upload_rejected(client, customer):
    response = client.post("/api/uploads", json={"client_id": customer["id"], "payment_amount": 0})
    assert response.status_code == 400


def test_place_orders(client, customer):
    a = create_order(client, customer).json()["order"]
    b = create_order(client, customer).json()["order"]
    client.post("/api/orders/status", json={"order_ids": [b["id"]], "status": "Shipped to Egypt"})

    body = client.post("/api/orders/place", json={"order_ids": [a["id"], b["id"]]}).json()
    assert body["succeeded"] == [a["id"]]
    assert b["id"] in body["failed"]
    assert body["placed"][0]["order"]["status"] == "Order Placed"
    assert body["placed"][0]["whatsapp_link"].startswith("https://wa.me/2")

    mixed = create_order(client, customer, channel="B").json()["order"]
    response = client.post("/api/orders/place", json={"order_ids": [a["id"], mixed["id"]]})
    assert response.status_code == 409


def test_sheets(client, customer):
    a = create_order(client, customer, pieces=2).json()["order"]
    b = create_order(client, customer, pieces=3).json()["order"]

    sheet = client.post("/api/sheets", json={"order_ids": [a["id"], b["id"]]})
    assert sheet.status_code == 201
    sheet = sheet.json()
    assert sheet["code"] == "G1"
    assert sheet["totals"]["pieces"] == 5

    assert [o["orderId"] for o in client.get("/api/orders", params={"sheet": "G1"}).json()] == ["G-1", "G-2"]
    detail = client.get(f"/api/sheets/{sheet['id']}").json()
    assert [o["sheetCode"] for o in detail["order_details"]] == ["G1", "G1"]

    trimmed = client.delete(f"/api/sheets/{sheet['id']}/orders/{a['id']}").json()
    assert trimmed["orders"] == [b["id"]]

    assert client.delete(f"/api/sheets/{sheet['id']}").json()["unlinked"] == 1
    assert client.get("/api/sheets").json() == []
    assert client.get(f"/api/sheets/{sheet['id']}").status_code == 404


def test_unreadable_order_is_reported_not_fatal(client, customer, services):
    good = create_order(client, customer).json()["order"]
    bad = create_order(client, customer).json()["order"]
    services.store.update("orders", bad["id"], {"status": "On Hold"})

    listed = client.get("/api/orders")
    assert listed.status_code == 200
    assert [o["id"] for o in listed.json()] == [good["id"]]
    assert client.get("/api/reports/accounts").status_code == 200
    assert list(client.get("/system/status").json()["unreadable_orders"]) == [bad["id"]]
