import json
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from starlette.websockets import WebSocketDisconnect

from app.models.admin_audit_log import AdminAuditLog
from app.models.admin_user import AdminUser
from app.models.inventory import InventoryItem
from app.models.order import Order
from app.models.product import Product
from app.routers.kds import router as kds_router
from app.routers.store import router as store_router
from app.services.admin_auth import ADMIN_SESSION_COOKIE, create_admin_session
from app.services.event_bus import ANY_EVENT, event_bus


class _Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def __enter__(self):
        event_bus.subscribe(ANY_EVENT, self)
        return self

    def __exit__(self, *exc):
        event_bus.unsubscribe(ANY_EVENT, self)


def _table_orders(factories, db):
    first = factories.add_order(
        db,
        id=1,
        order_type="dine_in",
        table_number="5",
        address="",
        items=[factories.line("X-Burger", 1), factories.line("Fritas", 1, "12.00")],
        total="37.00",
    )
    second = factories.add_order(
        db,
        id=2,
        order_type="dine_in",
        table_number="5",
        address="",
        items=[factories.line("Coca", 2, "7.00")],
        total="14.00",
    )
    return first, second


def test_kds_bills_groups_table_orders(db, tenant, factories, build_client):
    _table_orders(factories, db)
    factories.add_order(db, id=3, customer_name="Bruno")
    client = build_client(kds_router)

    response = client.get("/api/kds/orders")

    assert response.status_code == 200
    bills = response.json()
    assert [bill["order_ids"] for bill in bills] == [[3], [1, 2]]
    grouped = next(bill for bill in bills if bill["is_grouped"])
    assert grouped["total"] == "51.00"
    assert grouped["status_label"] == "Pendente"


def test_kds_board_returns_every_column(db, tenant, factories, build_client):
    factories.add_order(db, id=1, status="preparing")
    client = build_client(kds_router)

    response = client.get("/api/kds/bills")

    assert response.status_code == 200
    columns = response.json()["columns"]
    assert [column["status"] for column in columns] == ["pending", "preparing", "ready_to_send", "out_for_delivery"]
    assert [bill["id"] for bill in columns[1]["bills"]] == [1]


def test_toggle_item_changes_only_origin_order(db, tenant, factories, build_client):
    _table_orders(factories, db)
    client = build_client(kds_router)

    with _Recorder() as recorder:
        response = client.post("/api/kds/orders/1/items/1/toggle")

    assert response.status_code == 200
    assert [item["checked"] for item in response.json()["items"]] == [False, True]

    db.expire_all()
    other = db.query(Order).filter(Order.id == 2).one()
    assert all(not item.get("checked") for item in other.items)

    audit = db.query(AdminAuditLog).filter(AdminAuditLog.action == "kds.toggle_item").one()
    assert audit.entity_id == 1
    assert json.loads(audit.meta_json) == {"item_index": 1, "checked": True}
    assert [(event["event"], event["change_type"]) for event in recorder.events] == [("order.updated", "update")]


def test_toggle_item_out_of_range(db, tenant, factories, build_client):
    factories.add_order(db, id=1)
    client = build_client(kds_router)

    response = client.post("/api/kds/orders/1/items/5/toggle")

    assert response.status_code == 422
    assert response.json()["detail"] == "Item não encontrado no pedido"


def test_status_out_for_delivery_returns_customer_link(db, tenant, factories, build_client):
    factories.add_order(db, id=1, status="ready_to_send")
    client = build_client(kds_router)
    sender = MagicMock()

    with patch("app.routers.kds.send_customer_notification", sender):
        response = client.post("/api/kds/orders/1/status", json={"status": "out_for_delivery"})

    assert response.status_code == 200
    body = response.json()
    assert body["changed"] is True
    assert body["previous_status"] == "ready_to_send"
    assert body["order"]["status"] == "out_for_delivery"
    assert body["whatsapp_link"].startswith("https://wa.me/5511988887777?text=")
    sender.assert_called_once()
    assert sender.call_args.args[0] == "11988887777"
    assert "Burger House" in sender.call_args.args[1]


def test_invalid_status_transition_is_rejected(db, tenant, factories, build_client):
    factories.add_order(db, id=1, order_type="dine_in", table_number="3", status="ready_to_send")
    client = build_client(kds_router)

    response = client.post("/api/kds/orders/1/status", json={"status": "out_for_delivery"})

    assert response.status_code == 409
    assert response.json()["current_status"] == "ready_to_send"
    db.expire_all()
    assert db.query(Order).filter(Order.id == 1).one().status == "ready_to_send"


def test_same_status_is_not_an_error(db, tenant, factories, build_client):
    factories.add_order(db, id=1, status="preparing")
    client = build_client(kds_router)

    with _Recorder() as recorder:
        response = client.post("/api/kds/orders/1/status", json={"status": "preparing"})

    assert response.status_code == 200
    assert response.json()["changed"] is False
    assert recorder.events == []
    assert db.query(AdminAuditLog).count() == 0


def test_status_of_unknown_order_is_404(db, tenant, build_client):
    client = build_client(kds_router)

    response = client.post("/api/kds/orders/99/status", json={"status": "preparing"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Pedido não encontrado"


def test_close_bill_finishes_every_member(db, tenant, factories, build_client):
    _table_orders(factories, db)
    client = build_client(kds_router)

    with _Recorder() as recorder:
        response = client.post("/api/kds/bills/close", json={"order_ids": [1, 2]})

    assert response.status_code == 200
    assert [order["status"] for order in response.json()["orders"]] == ["finished", "finished"]
    assert sorted(event["order_id"] for event in recorder.events) == [1, 2]
    assert client.get("/api/kds/orders").json() == []


def test_close_bill_with_canceled_member_changes_nothing(db, tenant, factories, build_client):
    _table_orders(factories, db)
    db.query(Order).filter(Order.id == 2).update({Order.status: "canceled"})
    db.commit()
    client = build_client(kds_router)

    response = client.post("/api/kds/bills/close", json={"order_ids": [1, 2]})

    assert response.status_code == 409
    db.expire_all()
    assert db.query(Order).filter(Order.id == 1).one().status == "pending"


def test_delete_requires_confirmation(db, tenant, factories, build_client):
    factories.add_order(db, id=1)
    client = build_client(kds_router)

    response = client.delete("/api/kds/orders/1")

    assert response.status_code == 400
    assert db.query(Order).count() == 1


def test_delete_returns_stock_per_item(db, tenant, factories, build_client):
    bread = factories.add_inventory_item(db, current_qty=10)
    tracked = factories.add_product(db, name="X-Salada", stock=2, availability="out_of_stock", inventory_id=bread.id)
    untracked = factories.add_product(db, name="Suco", stock=None)
    factories.add_order(
        db,
        id=1,
        items=[
            factories.line("X-Salada", 3, product_id=tracked.id),
            factories.line("Suco", 1, "8.00", product_id=untracked.id),
            factories.line("Avulso", 1, "2.00"),
        ],
    )
    client = build_client(kds_router)

    with _Recorder() as recorder:
        response = client.delete("/api/kds/orders/1", params={"return_stock": True, "confirm": True})

    assert response.status_code == 200
    body = response.json()
    assert body["deleted"] == 1
    assert body["stock_failures"] == []
    assert [entry["product_id"] for entry in body["stock_returned"]] == [tracked.id, untracked.id]

    db.expire_all()
    assert db.query(Product).filter(Product.id == tracked.id).one().stock == 5
    assert db.query(Product).filter(Product.id == tracked.id).one().availability == "available"
    assert db.query(Product).filter(Product.id == untracked.id).one().stock is None
    assert db.query(InventoryItem).filter(InventoryItem.id == bread.id).one().current_qty == 13
    assert body["stock_returned"][0]["inventory_qty"] == 13
    assert db.query(Order).count() == 0
    assert [event["change_type"] for event in recorder.events] == ["delete"]


def test_delete_keeps_going_when_a_product_is_gone(db, tenant, factories, build_client):
    product = factories.add_product(db, stock=1)
    factories.add_order(
        db,
        id=1,
        items=[factories.line("X-Burger", 1, product_id=product.id), factories.line("Antigo", 1, product_id=999)],
    )
    client = build_client(kds_router)

    response = client.delete("/api/kds/orders/1", params={"return_stock": True, "confirm": True})

    assert response.status_code == 200
    body = response.json()
    assert [entry["product_id"] for entry in body["stock_returned"]] == [product.id]
    assert body["stock_failures"][0]["product_id"] == 999
    assert body["stock_failures"][0]["error"] == "Produto não encontrado"
    db.expire_all()
    assert db.query(Order).count() == 0
    assert db.query(Product).filter(Product.id == product.id).one().stock == 2


def test_kitchen_role_cannot_delete(db, tenant, factories, build_client, admin_user):
    factories.add_order(db, id=1)
    cook = type(admin_user)(**{**vars(admin_user), "role": "cozinha"})
    client = build_client(kds_router, user=cook)

    response = client.delete("/api/kds/orders/1", params={"confirm": True})

    assert response.status_code == 403


def test_counter_sale_creates_dine_in_order(db, tenant, factories, build_client):
    product = factories.add_product(db)
    client = build_client(kds_router)

    response = client.post(
        "/api/kds/counter-sale",
        json={"items": [{"product_id": product.id, "quantity": 2, "selected_sides": ["Bacon"]}]},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["order"]["order_type"] == "dine_in"
    assert body["order"]["customer_name"] == "Balcão"
    assert body["totals"] == {"subtotal": "58.00", "delivery_fee": "0.00", "discount": "0.00", "total": "58.00"}


def test_ticket_is_a_pdf(db, tenant, factories, build_client):
    factories.add_order(db, id=1)
    client = build_client(kds_router)

    response = client.get("/api/kds/orders/1/ticket")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")


def test_close_bill_rejects_delivery_orders(db, tenant, factories, build_client):
    factories.add_order(db, id=1)
    client = build_client(kds_router)

    response = client.post("/api/kds/bills/close", json={"order_ids": [1]})

    assert response.status_code == 409
    assert response.json()["target_status"] == "finished"
    db.expire_all()
    assert db.query(Order).filter(Order.id == 1).one().status == "pending"


def test_close_bill_rejects_orders_from_different_tables(db, tenant, factories, build_client):
    factories.add_order(db, id=1, order_type="dine_in", table_number="5", address="")
    factories.add_order(db, id=2, order_type="dine_in", table_number="9", customer_name="Bia", address="")
    client = build_client(kds_router)

    with _Recorder() as recorder:
        response = client.post("/api/kds/bills/close", json={"order_ids": [1, 2]})

    assert response.status_code == 409
    assert response.json()["detail"] == "Os pedidos não pertencem à mesma conta"
    assert recorder.events == []
    db.expire_all()
    assert [row.status for row in db.query(Order).order_by(Order.id)] == ["pending", "pending"]


def test_deleting_a_placed_order_restores_product_and_inventory(db, tenant, factories, build_client):
    bread = factories.add_inventory_item(db, current_qty=10)
    product = factories.add_product(db, stock=5, inventory_id=bread.id)
    client = build_client(store_router, kds_router)

    placed = client.post(
        "/api/store/burger/orders",
        json={
            "customer_name": "Ana",
            "customer_whatsapp": "11988887777",
            "order_type": "delivery",
            "address": "Rua A, 10",
            "payment_method": "pix",
            "items": [{"product_id": product.id, "quantity": 3}],
        },
    )
    order_id = placed.json()["order"]["id"]
    db.expire_all()
    assert db.query(Product).one().stock == 2
    assert db.query(InventoryItem).one().current_qty == 7

    response = client.delete(f"/api/kds/orders/{order_id}", params={"return_stock": True, "confirm": True})

    assert response.status_code == 200
    db.expire_all()
    assert db.query(Product).one().stock == 5
    assert db.query(InventoryItem).one().current_qty == 10


def test_untracked_product_stays_untracked_after_stock_return(db, tenant, factories, build_client):
    product = factories.add_product(db, stock=None)
    factories.add_order(db, id=1, items=[factories.line("X-Burger", 2, product_id=product.id)])
    client = build_client(store_router, kds_router)

    client.delete("/api/kds/orders/1", params={"return_stock": True, "confirm": True})
    order = {
        "customer_name": "Ana",
        "customer_whatsapp": "11988887777",
        "order_type": "delivery",
        "address": "Rua A, 10",
        "items": [{"product_id": product.id, "quantity": 2}],
    }
    responses = [client.post("/api/store/burger/orders", json=order) for _ in range(3)]

    assert [response.status_code for response in responses] == [201, 201, 201]
    db.expire_all()
    stored = db.query(Product).one()
    assert (stored.stock, stored.availability) == (None, "available")


@pytest.mark.parametrize(
    "method, path, kwargs",
    [
        ("post", "/api/kds/orders/1/items/0/toggle", {}),
        ("post", "/api/kds/orders/1/status", {"json": {"status": "preparing"}}),
        ("post", "/api/kds/bills/close", {"json": {"order_ids": [1, 2]}}),
        ("delete", "/api/kds/orders/1", {"params": {"return_stock": True, "confirm": True}}),
    ],
)
def test_database_failure_leaves_orders_untouched(db, tenant, factories, build_client, method, path, kwargs):
    product = factories.add_product(db, stock=4)
    for order_id in (1, 2):
        factories.add_order(
            db,
            id=order_id,
            order_type="dine_in",
            table_number="5",
            address="",
            items=[factories.line("X-Burger", 1, product_id=product.id)],
        )
    client = build_client(kds_router)
    failure = OperationalError("COMMIT", {}, Exception("database is locked"))

    with patch.object(db, "commit", side_effect=failure), _Recorder() as recorder:
        response = getattr(client, method)(path, **kwargs)

    assert response.status_code == 503
    assert response.json()["detail"] == "Falha ao salvar no banco. Tente novamente."
    assert recorder.events == []
    db.expire_all()
    rows = db.query(Order).order_by(Order.id).all()
    assert [(row.status, bool(row.items[0].get("checked"))) for row in rows] == [("pending", False), ("pending", False)]
    assert db.query(Product).one().stock == 4
    assert db.query(AdminAuditLog).count() == 0


def test_kds_feed_only_accepts_a_session_of_the_same_store(db, tenant, factories, build_client):
    user = AdminUser(tenant_id=1, email="cozinha@burger.com", name="Cozinha", password_hash="x", role="cozinha", active=True)
    db.add(user)
    db.commit()
    factories.add_order(db, id=1)
    cookie = {"Cookie": f"{ADMIN_SESSION_COOKIE}={create_admin_session({'user_id': user.id, 'tenant_id': 1})}"}
    client = build_client(kds_router)

    with patch("app.routers.kds.SessionLocal", return_value=db):
        with client.websocket_connect("/ws/kds/1", headers=cookie) as socket:
            snapshot = socket.receive_json()
        with pytest.raises(WebSocketDisconnect) as refused:
            with client.websocket_connect("/ws/kds/2", headers=cookie) as socket:
                socket.receive_json()

    assert snapshot["type"] == "snapshot"
    assert snapshot["tenant_id"] == 1
    assert refused.value.code == 4401
