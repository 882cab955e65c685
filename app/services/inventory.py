from __future__ import annotations

import logging
import math
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import NotFoundError, PersistenceError
from app.models.inventory import InventoryItem
from app.models.product import Product
from app.schemas.entities import InventoryItemEntity, to_money
from app.services.admin_audit import log_admin_action
from app.services.mapping import inventory_item_from_row
from app.services.whatsapp_templates import format_currency

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("name", "unit", "category", "cost_price", "current_qty", "min_qty", "active")


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao salvar estoque")
        raise PersistenceError() from exc


def list_items(db: Session, tenant_id: int, include_inactive: bool = False) -> list[InventoryItem]:
    query = db.query(InventoryItem).filter(InventoryItem.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(InventoryItem.active.is_(True))
    return query.order_by(InventoryItem.name.asc()).all()


def get_item(db: Session, tenant_id: int, item_id: int) -> InventoryItem:
    item = db.query(InventoryItem).filter(InventoryItem.id == item_id, InventoryItem.tenant_id == tenant_id).first()
    if not item:
        raise NotFoundError("Insumo não encontrado")
    return item


def create_item(db: Session, tenant_id: int, data: dict[str, Any]) -> InventoryItem:
    item = InventoryItem(tenant_id=tenant_id)
    for key in _EDITABLE_FIELDS:
        if data.get(key) is not None:
            setattr(item, key, data[key])
    db.add(item)
    _commit(db)
    db.refresh(item)
    return item


def update_item(db: Session, tenant_id: int, item_id: int, data: dict[str, Any]) -> InventoryItem:
    item = get_item(db, tenant_id, item_id)
    for key in _EDITABLE_FIELDS:
        if key in data and data[key] is not None:
            setattr(item, key, data[key])
    _commit(db)
    db.refresh(item)
    return item


def delete_item(db: Session, tenant_id: int, item_id: int) -> None:
    item = get_item(db, tenant_id, item_id)
    # Produtos vinculados passam a usar o CMV estimado
    db.query(Product).filter(Product.tenant_id == tenant_id, Product.inventory_id == item.id).update(
        {Product.inventory_id: None}, synchronize_session=False
    )
    db.delete(item)
    _commit(db)


def adjust_item(
    db: Session,
    tenant_id: int,
    item_id: int,
    delta: float,
    user_id: int,
    reason: Optional[str] = None,
) -> InventoryItem:
    """Entrada (delta > 0) ou saída manual; o saldo nunca fica negativo."""
    item = get_item(db, tenant_id, item_id)
    previous = float(item.current_qty or 0)
    item.current_qty = max(0.0, previous + float(delta))
    log_admin_action(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        action="inventory.adjust",
        entity_type="inventory_item",
        entity_id=item.id,
        meta={"delta": delta, "from": previous, "to": item.current_qty, "reason": reason},
    )
    _commit(db)
    db.refresh(item)
    return item


def stock_valuation(items: Iterable[InventoryItemEntity]) -> dict[str, Any]:
    items = list(items)
    low = [item for item in items if item.current_qty <= item.min_qty]
    total_value = sum((item.cost_price * Decimal(str(item.current_qty)) for item in items), Decimal("0"))
    replenishment = sum(
        (item.cost_price * Decimal(str(item.min_qty - item.current_qty)) for item in low),
        Decimal("0"),
    )
    return {
        "total_value": to_money(total_value),
        "low_stock_count": len(low),
        "replenishment_cost": to_money(replenishment),
    }


def _format_qty(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def shopping_list_text(items: Iterable[InventoryItemEntity], today: Optional[date] = None) -> str:
    items = [item for item in items if item.current_qty <= item.min_qty]
    today = today or date.today()
    lines = [f"📋 *LISTA DE COMPRAS - {today.strftime('%d/%m/%Y')}*", ""]
    blocks = []
    for item in items:
        missing = math.ceil(item.min_qty - item.current_qty)
        blocks.append(f"[ ] {item.name}\n    Faltam: {missing} {item.unit} (Mín: {_format_qty(item.min_qty)})")
    lines.append("\n\n".join(blocks))
    lines.append("")
    lines.append(f"Custo Est. Reposição: {format_currency(stock_valuation(items)['replenishment_cost'])}")
    return "\n".join(lines)


def low_stock_report(db: Session, tenant_id: int) -> dict[str, Any]:
    entities = [inventory_item_from_row(row) for row in list_items(db, tenant_id)]
    low = [item for item in entities if item.stock_level == "critical"]
    return {
        "items": low,
        "warning": [item for item in entities if item.stock_level == "warning"],
        **stock_valuation(entities),
        "shopping_list": shopping_list_text(low) if low else "",
    }
