from datetime import date
from decimal import Decimal

from app.models.finance import FixedCost, ManualTransaction
from app.routers.finance import router as finance_router
from app.schemas.entities import InventoryItemEntity
from app.services.finance import compute_dre, export_sales_csv, month_bounds, normalize_payment_method, sales_overview


def _finished_orders(factories):
    return [
        factories.make_order(
            1,
            status="finished",
            total="100.00",
            payment_method="Cartão",
            items=[factories.line("X-Burger", 2, "25.00", inventory_id=1, category="Lanches")],
        ),
        factories.make_order(
            2,
            minutes=90,
            status="finished",
            order_type="dine_in",
            table_number="4",
            total="50.00",
            payment_method="pix",
            items=[factories.line("Porção", 2, "20.00", category="Porções")],
        ),
        factories.make_order(3, status="pending", total="999.00"),
    ]


def test_compute_dre(factories):
    inventory = [InventoryItemEntity.model_validate({"id": 1, "tenant_id": 1, "name": "Blend", "cost_price": "8.00"})]

    dre = compute_dre(
        _finished_orders(factories),
        inventory,
        card_machine_fee=Decimal("2"),
        fixed_costs=[Decimal("1000")],
        manual_out=[Decimal("50")],
    )

    assert dre["orders_count"] == 2
    assert dre["revenue"] == Decimal("150.00")
    assert dre["cmv"] == Decimal("30.00")
    assert dre["taxes"] == Decimal("3.00")
    assert dre["total_expenses"] == Decimal("1083.00")
    assert dre["net_profit"] == Decimal("-933.00")
    assert dre["margin"] == Decimal("-622.00")
    assert dre["break_even"] == Decimal("2222.22")
    assert dre["payments"] == {
        "pix": Decimal("50.00"),
        "card": Decimal("100.00"),
        "cash": Decimal("0.00"),
        "other": Decimal("0.00"),
    }
    assert dre["has_payment_data"] is True


def test_dre_without_sales_or_payment_data(factories):
    dre = compute_dre([factories.make_order(1, status="finished", payment_method="")])

    assert dre["cmv"] == Decimal("8.75")
    assert dre["margin"] == Decimal("65.00")
    assert dre["has_payment_data"] is False
    assert set(dre["payments"].values()) == {Decimal("0.00")}
    assert compute_dre([])["margin"] == Decimal("0.00")


def test_payment_method_aliases():
    assert normalize_payment_method(" Crédito ") == "card"
    assert normalize_payment_method("Dinheiro") == "cash"
    assert normalize_payment_method("vale") == "vale"
    assert normalize_payment_method(None) == ""


def test_sales_overview(factories):
    overview = sales_overview(_finished_orders(factories))

    assert overview["sales_by_hour"][19] == Decimal("100.00")
    assert overview["sales_by_hour"][20] == Decimal("50.00")
    assert overview["sales_by_channel"] == {"delivery": Decimal("100.00"), "dine_in": Decimal("50.00")}
    assert overview["top_products"] == [{"name": "X-Burger", "qty": 2}, {"name": "Porção", "qty": 2}]
    assert {entry["label"] for entry in overview["categories"]} == {"Lanches", "Porções"}


def test_export_csv_only_has_finished_orders(factories):
    lines = export_sales_csv(_finished_orders(factories)).splitlines()

    assert lines[0] == "Data,Cliente,Mesa,Itens Vendidos,Metodo de Pagamento,Valor Total"
    assert lines[1] == "10/05/2024,Ana,N/A,2x X-Burger,Online/Entrega,100.00"
    assert lines[2] == "10/05/2024,Ana,4,2x Porção,Local,50.00"
    assert len(lines) == 3


def test_month_bounds():
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))


def _seed_month(db, factories):
    factories.add_order(
        db,
        id=1,
        status="finished",
        total=Decimal("100.00"),
        payment_method="cartao",
        items=[factories.line("X-Burger", 2, "25.00")],
    )
    factories.add_order(db, id=2, status="canceled", total=Decimal("80.00"))
    db.add(FixedCost(tenant_id=1, label="Aluguel", value=Decimal("1000.00")))
    db.commit()


def test_dre_endpoint_counts_only_outgoing_transactions(db, tenant, factories, build_client):
    _seed_month(db, factories)
    client = build_client(finance_router)
    client.post("/api/admin/finance/transactions", json={"type": "out", "value": "50", "occurred_at": "2024-05-12T10:00:00Z"})
    client.post("/api/admin/finance/transactions", json={"type": "in", "value": "70", "occurred_at": "2024-05-12T11:00:00Z"})

    response = client.get("/api/admin/finance/dre", params={"start": "2024-05-01", "end": "2024-05-31"})

    assert response.status_code == 200
    dre = response.json()
    assert dre["orders_count"] == 1
    assert float(dre["revenue"]) == 100.0
    assert float(dre["cmv"]) == 17.5
    assert float(dre["taxes"]) == 2.0
    assert float(dre["manual_out"]) == 50.0
    assert float(dre["net_profit"]) == -969.5
    assert dre["period"] == {"start": "2024-05-01", "end": "2024-05-31"}


def test_close_month_only_once(db, tenant, factories, build_client):
    _seed_month(db, factories)
    client = build_client(finance_router)

    first = client.post("/api/admin/finance/close-month", json={"year": 2024, "month": 5})
    second = client.post("/api/admin/finance/close-month", json={"year": 2024, "month": 5})

    assert first.status_code == 201
    assert first.json()["revenue"] == "100.00"
    assert second.status_code == 409
    assert second.json()["detail"] == "Mês já fechado"
    snapshots = client.get("/api/admin/finance/snapshots").json()
    assert [(row["year"], row["month"]) for row in snapshots] == [(2024, 5)]


def test_export_endpoint_is_csv_attachment(db, tenant, factories, build_client):
    _seed_month(db, factories)
    client = build_client(finance_router)

    response = client.get("/api/admin/finance/export.csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"].startswith('attachment; filename="vendas_')
    assert len(response.text.splitlines()) == 2


def test_transactions_crud(db, tenant, build_client):
    client = build_client(finance_router)

    created = client.post("/api/admin/finance/transactions", json={"value": "35.90", "description": "Gás"})
    transaction_id = created.json()["id"]

    assert created.status_code == 201
    assert created.json()["type"] == "out"
    assert created.json()["category"] == "Geral"
    assert [row["value"] for row in client.get("/api/admin/finance/transactions").json()] == ["35.90"]
    assert client.delete(f"/api/admin/finance/transactions/{transaction_id}").status_code == 204
    assert client.delete(f"/api/admin/finance/transactions/{transaction_id}").status_code == 404
    assert db.query(ManualTransaction).count() == 0


def test_fixed_costs_crud(db, tenant, build_client):
    client = build_client(finance_router)

    missing_label = client.post("/api/admin/finance/fixed-costs", json={"value": "10"})
    created = client.post("/api/admin/finance/fixed-costs", json={"label": " Internet ", "value": "120"})
    updated = client.patch(f"/api/admin/finance/fixed-costs/{created.json()['id']}", json={"value": "150.5"})

    assert missing_label.status_code == 422
    assert created.json()["label"] == "Internet"
    assert updated.json()["value"] == "150.50"
    assert client.get("/api/admin/finance/fixed-costs").json() == [updated.json()]
