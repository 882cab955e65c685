import json
from decimal import Decimal

from app.models.admin_audit_log import AdminAuditLog
from app.models.product import Product
from app.routers.coupons import router as coupons_router
from app.routers.inventory import router as inventory_router
from app.routers.products import router as products_router


def test_create_product_with_sides(db, tenant, build_client):
    client = build_client(products_router)

    response = client.post(
        "/api/admin/products",
        json={
            "name": "X-Tudo",
            "price": "32.9",
            "category": "Lanches",
            "is_highlighted": True,
            "sides": [{"name": "Ovo", "price": "2.5"}],
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["price"] == "32.90"
    assert body["availability"] == "available"
    assert body["stock"] is None
    assert body["sides"] == [{"name": "Ovo", "price": "2.50"}]


def test_zero_stock_marks_product_out_of_stock(db, tenant, factories, build_client):
    product = factories.add_product(db, stock=3)
    client = build_client(products_router)

    response = client.patch(f"/api/admin/products/{product.id}", json={"stock": 0})

    assert response.status_code == 200
    assert response.json()["availability"] == "out_of_stock"


def test_invalid_availability_and_missing_inventory_link(db, tenant, factories, build_client):
    product = factories.add_product(db)
    client = build_client(products_router)

    bad_availability = client.patch(f"/api/admin/products/{product.id}", json={"availability": "talvez"})
    bad_link = client.patch(f"/api/admin/products/{product.id}", json={"inventory_id": 42})

    assert bad_availability.status_code == 422
    assert bad_link.status_code == 422
    assert bad_link.json()["detail"] == "Insumo vinculado não encontrado"
    db.expire_all()
    stored = db.query(Product).filter(Product.id == product.id).one()
    assert (stored.availability, stored.inventory_id) == ("available", None)


def test_toggle_and_filter_products(db, tenant, factories, build_client):
    burger = factories.add_product(db)
    factories.add_product(db, name="Brownie", category="Sobremesas")
    client = build_client(products_router)

    toggled = client.post(f"/api/admin/products/{burger.id}/toggle-availability")
    listed = client.get("/api/admin/products", params={"availability": "out_of_stock"})
    desserts = client.get("/api/admin/products", params={"category": "Sobremesas"})

    assert toggled.json()["availability"] == "out_of_stock"
    assert [product["name"] for product in listed.json()] == ["X-Burger"]
    assert [product["name"] for product in desserts.json()] == ["Brownie"]
    assert client.delete(f"/api/admin/products/{burger.id}").status_code == 204
    assert client.delete(f"/api/admin/products/{burger.id}").status_code == 404


def test_inventory_crud_and_stock_level(db, tenant, build_client):
    client = build_client(inventory_router)

    created = client.post(
        "/api/admin/inventory",
        json={"name": "Queijo", "unit": "kg", "category": "Proteinas", "cost_price": "40", "current_qty": 11, "min_qty": 10},
    )
    item_id = created.json()["id"]

    assert created.status_code == 201
    assert created.json()["category"] == "proteinas"
    assert created.json()["stock_level"] == "warning"

    updated = client.patch(f"/api/admin/inventory/{item_id}", json={"current_qty": 30})
    assert updated.json()["stock_level"] == "ok"

    invalid = client.patch(f"/api/admin/inventory/{item_id}", json={"category": "brinquedos"})
    assert invalid.status_code == 422

    assert client.delete(f"/api/admin/inventory/{item_id}").status_code == 204
    assert client.get(f"/api/admin/inventory/{item_id}").status_code == 404


def test_adjust_never_goes_negative_and_is_audited(db, tenant, factories, build_client):
    item = factories.add_inventory_item(db, current_qty=5)
    client = build_client(inventory_router)

    response = client.post(f"/api/admin/inventory/{item.id}/adjust", json={"delta": -8, "reason": "perda"})

    assert response.status_code == 200
    assert response.json()["current_qty"] == 0
    assert response.json()["stock_level"] == "critical"
    audit = db.query(AdminAuditLog).filter(AdminAuditLog.action == "inventory.adjust").one()
    assert json.loads(audit.meta_json)["reason"] == "perda"


def test_deleting_inventory_unlinks_products(db, tenant, factories, build_client):
    item = factories.add_inventory_item(db)
    product = factories.add_product(db, inventory_id=item.id)
    client = build_client(inventory_router)

    assert client.delete(f"/api/admin/inventory/{item.id}").status_code == 204

    db.expire_all()
    assert db.query(Product).filter(Product.id == product.id).one().inventory_id is None


def test_low_stock_report(db, tenant, factories, build_client):
    factories.add_inventory_item(db)
    factories.add_inventory_item(db, name="Queijo", unit="kg", cost_price=Decimal("2.00"), current_qty=3, min_qty=10)
    client = build_client(inventory_router)

    response = client.get("/api/admin/inventory/low-stock")

    assert response.status_code == 200
    body = response.json()
    assert [item["name"] for item in body["items"]] == ["Queijo"]
    assert body["total_value"] == "66.00"
    assert body["replenishment_cost"] == "14.00"
    assert "[ ] Queijo\n    Faltam: 7 kg (Mín: 10)" in body["shopping_list"]
    assert body["shopping_list"].endswith("Custo Est. Reposição: R$ 14,00")


def test_coupon_crud(db, tenant, build_client):
    client = build_client(coupons_router)

    created = client.post("/api/admin/coupons", json={"code": " promo5 ", "discount_value": "5", "max_uses": 2})
    duplicate = client.post("/api/admin/coupons", json={"code": "PROMO5", "discount_value": "7"})
    coupon_id = created.json()["id"]
    disabled = client.patch(f"/api/admin/coupons/{coupon_id}", json={"is_active": False})

    assert created.status_code == 201
    assert created.json()["code"] == "PROMO5"
    assert created.json()["is_active"] is True
    assert created.json()["is_exhausted"] is False
    assert duplicate.status_code == 409
    assert disabled.json()["is_active"] is False
    assert [coupon["code"] for coupon in client.get("/api/admin/coupons", params={"active": True}).json()] == []
    assert client.delete(f"/api/admin/coupons/{coupon_id}").status_code == 204
    assert client.get("/api/admin/coupons").json() == []
