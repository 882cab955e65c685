"""DRE simplificada, fechamento de mês e exportação de vendas."""

from __future__ import annotations

import csv
import io
import logging
import unicodedata
from calendar import monthrange
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import BREAK_EVEN_MARGIN, DEFAULT_CMV_RATIO
from app.exceptions import BusinessRuleError, NotFoundError, PersistenceError
from app.models.finance import FinancialSnapshot, FixedCost, ManualTransaction
from app.models.inventory import InventoryItem
from app.models.order import Order
from app.models.tenant import Tenant
from app.schemas.entities import InventoryItemEntity, OrderEntity, to_money
from app.services.admin_audit import log_admin_action
from app.services.mapping import inventory_item_from_row, order_from_row
from app.services.order_status import FINISHED

logger = logging.getLogger(__name__)

PAYMENT_METHOD_ALIASES = {
    "cartao": "card",
    "card": "card",
    "credito": "card",
    "debito": "card",
    "link": "card",
    "delivery_card": "card",
    "pix": "pix",
    "dinheiro": "cash",
    "cash": "cash",
}
CSV_HEADERS = ["Data", "Cliente", "Mesa", "Itens Vendidos", "Metodo de Pagamento", "Valor Total"]


def _strip_accents(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return "".join([char for char in normalized if not unicodedata.combining(char)])


def normalize_payment_method(method: str | None) -> str:
    if not method:
        return ""
    lowered = _strip_accents(str(method).strip().lower())
    return PAYMENT_METHOD_ALIASES.get(lowered, lowered)


def period_bounds(start: Optional[date], end: Optional[date]) -> tuple[Optional[datetime], Optional[datetime]]:
    start_dt = datetime.combine(start, time.min, tzinfo=timezone.utc) if start else None
    end_dt = datetime.combine(end, time.max, tzinfo=timezone.utc) if end else None
    return start_dt, end_dt


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise BusinessRuleError("Mês inválido", status_code=422)
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])


def item_cost(item, inventory: dict[int, InventoryItemEntity]) -> Decimal:
    linked = inventory.get(item.inventory_id) if item.inventory_id else None
    if linked is not None:
        return linked.cost_price * item.quantity
    return item.unit_price * DEFAULT_CMV_RATIO * item.quantity


def compute_dre(
    orders: Iterable[OrderEntity],
    inventory: Iterable[InventoryItemEntity] = (),
    card_machine_fee: Decimal = Decimal("0"),
    fixed_costs: Iterable[Decimal] = (),
    manual_out: Iterable[Decimal] = (),
) -> dict[str, Any]:
    """Receita, CMV, taxas e lucro considerando apenas pedidos finalizados."""
    finished = [order for order in orders if order.status == FINISHED]
    inventory_by_id = {item.id: item for item in inventory}

    revenue = sum((order.total for order in finished), Decimal("0"))
    cmv = sum((item_cost(item, inventory_by_id) for order in finished for item in order.items), Decimal("0"))
    taxes = revenue * Decimal(str(card_machine_fee or 0)) / Decimal("100")
    fixed_total = sum((Decimal(str(value or 0)) for value in fixed_costs), Decimal("0"))
    manual_total = sum((Decimal(str(value or 0)) for value in manual_out), Decimal("0"))

    total_expenses = cmv + taxes + fixed_total + manual_total
    net_profit = revenue - total_expenses
    break_even = fixed_total / BREAK_EVEN_MARGIN if fixed_total > 0 else Decimal("0")

    payments = {"pix": Decimal("0"), "card": Decimal("0"), "cash": Decimal("0"), "other": Decimal("0")}
    for order in finished:
        method = normalize_payment_method(order.payment_method)
        payments[method if method in payments else "other"] += order.total
    has_payment_data = any(order.payment_method for order in finished)
    if not has_payment_data:
        payments = {key: Decimal("0") for key in payments}

    return {
        "orders_count": len(finished),
        "revenue": to_money(revenue),
        "cmv": to_money(cmv),
        "taxes": to_money(taxes),
        "fixed_costs": to_money(fixed_total),
        "manual_out": to_money(manual_total),
        "total_expenses": to_money(total_expenses),
        "net_profit": to_money(net_profit),
        "margin": to_money(net_profit / revenue * 100) if revenue > 0 else Decimal("0.00"),
        "break_even": to_money(break_even),
        "payments": {key: to_money(value) for key, value in payments.items()},
        "has_payment_data": has_payment_data,
    }


def sales_overview(orders: Iterable[OrderEntity]) -> dict[str, Any]:
    """Vendas por hora, por canal e produtos mais vendidos (pedidos finalizados)."""
    finished = [order for order in orders if order.status == FINISHED]
    by_hour = [Decimal("0")] * 24
    by_channel = {"delivery": Decimal("0"), "dine_in": Decimal("0")}
    top_products: dict[str, int] = {}
    categories: dict[str, int] = {}

    for order in finished:
        by_hour[order.created_at.hour] += order.total
        by_channel["delivery" if order.order_type == "delivery" else "dine_in"] += order.total
        for item in order.items:
            top_products[item.name] = top_products.get(item.name, 0) + item.quantity
            if item.category:
                categories[item.category] = categories.get(item.category, 0) + item.quantity

    ranked = sorted(top_products.items(), key=lambda entry: entry[1], reverse=True)[:5]
    return {
        "sales_by_hour": [to_money(value) for value in by_hour],
        "sales_by_channel": {key: to_money(value) for key, value in by_channel.items()},
        "top_products": [{"name": name, "qty": qty} for name, qty in ranked],
        "categories": [{"label": label, "count": count} for label, count in categories.items()],
    }


def load_orders(
    db: Session,
    tenant_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    status: Optional[str] = None,
) -> list[OrderEntity]:
    start_dt, end_dt = period_bounds(start, end)
    query = db.query(Order).filter(Order.tenant_id == tenant_id)
    if status:
        query = query.filter(Order.status == status)
    if start_dt:
        query = query.filter(Order.created_at >= start_dt)
    if end_dt:
        query = query.filter(Order.created_at <= end_dt)
    try:
        rows = query.order_by(Order.created_at.asc(), Order.id.asc()).all()
    except SQLAlchemyError as exc:
        logger.exception("Falha ao carregar pedidos do período")
        raise PersistenceError("Falha ao carregar pedidos. Tente novamente.") from exc
    return [order_from_row(row) for row in rows]


def dre_for_period(db: Session, tenant: Tenant, start: Optional[date] = None, end: Optional[date] = None) -> dict:
    orders = load_orders(db, tenant.id, start, end, status=FINISHED)
    inventory = [
        inventory_item_from_row(row) for row in db.query(InventoryItem).filter(InventoryItem.tenant_id == tenant.id).all()
    ]
    fixed_costs = [row.value for row in list_fixed_costs(db, tenant.id)]

    start_dt, end_dt = period_bounds(start, end)
    manual_query = db.query(ManualTransaction).filter(
        ManualTransaction.tenant_id == tenant.id,
        ManualTransaction.type == "out",
    )
    if start_dt:
        manual_query = manual_query.filter(ManualTransaction.occurred_at >= start_dt)
    if end_dt:
        manual_query = manual_query.filter(ManualTransaction.occurred_at <= end_dt)
    manual_out = [row.value for row in manual_query.all()]

    dre = compute_dre(orders, inventory, tenant.card_machine_fee or Decimal("0"), fixed_costs, manual_out)
    dre["period"] = {"start": start, "end": end}
    return dre


def close_month(db: Session, tenant: Tenant, year: int, month: int, user_id: int) -> FinancialSnapshot:
    start, end = month_bounds(year, month)
    dre = dre_for_period(db, tenant, start, end)
    snapshot = FinancialSnapshot(
        tenant_id=tenant.id,
        month=month,
        year=year,
        revenue=dre["revenue"],
        cmv=dre["cmv"],
        fixed_costs=dre["fixed_costs"],
        net_profit=dre["net_profit"],
        margin=dre["margin"],
    )
    db.add(snapshot)
    log_admin_action(
        db,
        tenant_id=tenant.id,
        user_id=user_id,
        action="finance.close_month",
        entity_type="financial_snapshot",
        meta={"month": month, "year": year, "revenue": str(dre["revenue"])},
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise BusinessRuleError("Mês já fechado", status_code=409) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao fechar mês")
        raise PersistenceError() from exc
    db.refresh(snapshot)
    return snapshot


def list_snapshots(db: Session, tenant_id: int) -> list[FinancialSnapshot]:
    return (
        db.query(FinancialSnapshot)
        .filter(FinancialSnapshot.tenant_id == tenant_id)
        .order_by(FinancialSnapshot.year.desc(), FinancialSnapshot.month.desc())
        .all()
    )


def export_sales_csv(orders: Iterable[OrderEntity]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)
    for order in orders:
        if order.status != FINISHED:
            continue
        writer.writerow(
            [
                order.created_at.strftime("%d/%m/%Y"),
                order.customer_name,
                order.table_number or "N/A",
                ", ".join(f"{item.quantity}x {item.name}" for item in order.items),
                "Online/Entrega" if order.order_type == "delivery" else "Local",
                f"{to_money(order.total):.2f}",
            ]
        )
    return output.getvalue()


# =========================
# Lançamentos manuais e custos fixos
# =========================

def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao salvar lançamento financeiro")
        raise PersistenceError() from exc


def list_transactions(db: Session, tenant_id: int, start: Optional[date] = None, end: Optional[date] = None):
    start_dt, end_dt = period_bounds(start, end)
    query = db.query(ManualTransaction).filter(ManualTransaction.tenant_id == tenant_id)
    if start_dt:
        query = query.filter(ManualTransaction.occurred_at >= start_dt)
    if end_dt:
        query = query.filter(ManualTransaction.occurred_at <= end_dt)
    return query.order_by(ManualTransaction.occurred_at.desc(), ManualTransaction.id.desc()).all()


def create_transaction(db: Session, tenant_id: int, data: dict[str, Any]) -> ManualTransaction:
    kind = (data.get("type") or "out").strip().lower()
    if kind not in {"in", "out"}:
        raise BusinessRuleError("Tipo de lançamento inválido", status_code=422)
    transaction = ManualTransaction(
        tenant_id=tenant_id,
        type=kind,
        value=to_money(data.get("value")),
        description=data.get("description"),
        category=data.get("category") or "Geral",
        occurred_at=data.get("occurred_at") or datetime.now(timezone.utc),
    )
    db.add(transaction)
    _commit(db)
    db.refresh(transaction)
    return transaction


def delete_transaction(db: Session, tenant_id: int, transaction_id: int) -> None:
    transaction = (
        db.query(ManualTransaction)
        .filter(ManualTransaction.id == transaction_id, ManualTransaction.tenant_id == tenant_id)
        .first()
    )
    if not transaction:
        raise NotFoundError("Lançamento não encontrado")
    db.delete(transaction)
    _commit(db)


def list_fixed_costs(db: Session, tenant_id: int) -> list[FixedCost]:
    return db.query(FixedCost).filter(FixedCost.tenant_id == tenant_id).order_by(FixedCost.id.asc()).all()


def save_fixed_cost(db: Session, tenant_id: int, data: dict[str, Any], cost_id: Optional[int] = None) -> FixedCost:
    if cost_id is None:
        cost = FixedCost(tenant_id=tenant_id)
        db.add(cost)
    else:
        cost = db.query(FixedCost).filter(FixedCost.id == cost_id, FixedCost.tenant_id == tenant_id).first()
        if not cost:
            raise NotFoundError("Custo fixo não encontrado")
    if data.get("label") is not None:
        cost.label = data["label"].strip()
    if data.get("value") is not None:
        cost.value = to_money(data["value"])
    _commit(db)
    db.refresh(cost)
    return cost


def delete_fixed_cost(db: Session, tenant_id: int, cost_id: int) -> None:
    cost = db.query(FixedCost).filter(FixedCost.id == cost_id, FixedCost.tenant_id == tenant_id).first()
    if not cost:
        raise NotFoundError("Custo fixo não encontrado")
    db.delete(cost)
    _commit(db)
