"""Operações do quadro da cozinha (KDS).

Toda mutação segue o mesmo caminho: valida, grava, faz commit e só então
emite o evento. Em erro de banco há rollback e ``PersistenceError``; nada é
emitido, então quem escuta o feed nunca vê estado não confirmado.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from app.core.metrics import kitchen_metrics
from app.core.request_context import set_request_context
from app.exceptions import AppError, BusinessRuleError, InvalidTransitionError, NotFoundError, PersistenceError
from app.models.inventory import InventoryItem
from app.models.order import Order
from app.models.product import Product
from app.models.tenant import Tenant
from app.schemas.entities import ORDER_TYPE_DINE_IN, Bill, OrderEntity
from app.services.admin_audit import log_admin_action
from app.services.bills import bill_key, bucket_by_status, filter_bills, group_open_orders
from app.services.mapping import order_from_row
from app.services.order_events import (
    emit_order_deleted,
    emit_order_status_changed,
    emit_order_updated,
    emit_orders_status_changed,
)
from app.services.order_status import CANCELED, FINISHED, OUT_FOR_DELIVERY, TERMINAL_STATUSES, validate_transition
from app.services.whatsapp_templates import build_wa_link, dispatch_message

logger = logging.getLogger(__name__)


@dataclass
class StatusChange:
    order: OrderEntity
    previous_status: str
    changed: bool
    notification_link: Optional[str] = None
    notification_text: Optional[str] = None


@dataclass
class DeleteResult:
    order_id: int
    stock_returned: list[dict] = field(default_factory=list)
    stock_failures: list[dict] = field(default_factory=list)


def _commit(db: Session, message: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(message)
        raise PersistenceError() from exc


def get_order(db: Session, tenant_id: int, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id, Order.tenant_id == tenant_id).first()
    if not order:
        raise NotFoundError("Pedido não encontrado")
    set_request_context(order_id=str(order.id))
    return order


def list_open_orders(db: Session, tenant_id: int) -> list[OrderEntity]:
    try:
        rows = (
            db.query(Order)
            .filter(Order.tenant_id == tenant_id, Order.status.notin_(TERMINAL_STATUSES))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        logger.exception("Falha ao carregar pedidos abertos", extra={"tenant_id": tenant_id})
        raise PersistenceError("Falha ao carregar pedidos. Tente novamente.") from exc
    return [order_from_row(row) for row in rows]


def list_bills(
    db: Session,
    tenant_id: int,
    order_type: Optional[str] = None,
    search: Optional[str] = None,
) -> list[Bill]:
    return filter_bills(group_open_orders(list_open_orders(db, tenant_id)), order_type=order_type, search=search)


def board_columns(
    db: Session,
    tenant_id: int,
    order_type: Optional[str] = None,
    search: Optional[str] = None,
) -> dict[str, list[Bill]]:
    return bucket_by_status(list_bills(db, tenant_id, order_type=order_type, search=search))


def toggle_item_prepared(db: Session, tenant_id: int, order_id: int, item_index: int, user_id: int) -> OrderEntity:
    """Marca/desmarca um item do pedido de origem (não da conta agrupada)."""
    order = get_order(db, tenant_id, order_id)
    items = [dict(item) for item in (order.items or [])]
    if item_index < 0 or item_index >= len(items):
        raise BusinessRuleError("Item não encontrado no pedido", status_code=422)

    items[item_index]["checked"] = not bool(items[item_index].get("checked"))
    order.items = items
    flag_modified(order, "items")

    log_admin_action(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        action="kds.toggle_item",
        entity_type="order",
        entity_id=order.id,
        meta={"item_index": item_index, "checked": items[item_index]["checked"]},
    )
    _commit(db, "Falha ao salvar item do pedido")
    db.refresh(order)
    emit_order_updated(order)
    return order_from_row(order)


def _store_name(db: Session, tenant_id: int) -> str:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    return tenant.name if tenant else "nosso restaurante"


def advance_status(db: Session, tenant_id: int, order_id: int, target_status: str, user_id: int) -> StatusChange:
    order = get_order(db, tenant_id, order_id)
    entity = order_from_row(order)
    previous_status = entity.status

    if not validate_transition(previous_status, target_status, entity.order_type):
        return StatusChange(order=entity, previous_status=previous_status, changed=False)

    target_status = target_status.strip().lower()
    order.status = target_status
    log_admin_action(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        action="kds.status",
        entity_type="order",
        entity_id=order.id,
        meta={"from": previous_status, "to": target_status},
    )
    _commit(db, "Falha ao salvar status do pedido")
    db.refresh(order)

    kitchen_metrics.record_transition(tenant_id, previous_status, target_status)
    logger.info(
        "Status do pedido alterado",
        extra={"order_id": order.id, "from_status": previous_status, "to_status": target_status},
    )
    emit_order_status_changed(order, previous_status)

    result = StatusChange(order=order_from_row(order), previous_status=previous_status, changed=True)
    if target_status == OUT_FOR_DELIVERY:
        # O link de aviso é acessório: falhar aqui não desfaz a mudança de status
        try:
            result.notification_text = dispatch_message(order.customer_name, _store_name(db, tenant_id))
            if order.customer_whatsapp:
                result.notification_link = build_wa_link(order.customer_whatsapp, result.notification_text)
        except Exception:
            logger.warning("Não foi possível montar o aviso de saída para entrega", exc_info=True)
    return result


def close_bill(db: Session, tenant_id: int, order_ids: Iterable[int], user_id: int) -> list[OrderEntity]:
    """Finaliza todos os pedidos da conta num único UPDATE (tudo ou nada)."""
    ids = sorted({int(order_id) for order_id in order_ids})
    if not ids:
        raise BusinessRuleError("Nenhum pedido informado", status_code=422)

    rows = db.query(Order).filter(Order.tenant_id == tenant_id, Order.id.in_(ids)).all()
    if len(rows) != len(ids):
        raise NotFoundError("Pedido não encontrado")

    previous = {row.id: row.status for row in rows}
    for row in rows:
        if row.status == CANCELED or row.order_type != ORDER_TYPE_DINE_IN:
            raise InvalidTransitionError(row.status, FINISHED, row.order_type)
    if len({bill_key(order_from_row(row)) for row in rows}) > 1:
        raise BusinessRuleError("Os pedidos não pertencem à mesma conta", status_code=409)
    pending_ids = [row.id for row in rows if row.status != FINISHED]

    if pending_ids:
        try:
            db.query(Order).filter(Order.tenant_id == tenant_id, Order.id.in_(pending_ids)).update(
                {Order.status: FINISHED}, synchronize_session=False
            )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Falha ao fechar conta")
            raise PersistenceError() from exc

        log_admin_action(
            db,
            tenant_id=tenant_id,
            user_id=user_id,
            action="kds.close_bill",
            entity_type="order",
            entity_id=ids[0],
            meta={"order_ids": ids},
        )
        _commit(db, "Falha ao fechar conta")
        db.expire_all()

    closed = db.query(Order).filter(Order.tenant_id == tenant_id, Order.id.in_(ids)).order_by(Order.id).all()
    changed = [row for row in closed if row.id in pending_ids]
    for row in changed:
        kitchen_metrics.record_transition(tenant_id, previous[row.id], FINISHED)
    emit_orders_status_changed(changed, previous)
    logger.info("Conta fechada", extra={"bill_key": bill_key(order_from_row(rows[0]))})
    return [order_from_row(row) for row in closed]


def _return_item_stock(db: Session, tenant_id: int, product_id: int, quantity: int) -> dict:
    product = db.query(Product).filter(Product.id == product_id, Product.tenant_id == tenant_id).first()
    if not product:
        raise NotFoundError("Produto não encontrado")
    # stock None: produto sem controle de estoque
    if product.stock is not None:
        product.stock = int(product.stock) + int(quantity)
    product.availability = "available"
    inventory_qty = None
    if product.inventory_id:
        inventory_item = (
            db.query(InventoryItem)
            .filter(InventoryItem.id == product.inventory_id, InventoryItem.tenant_id == tenant_id)
            .first()
        )
        if inventory_item is not None:
            inventory_item.current_qty = float(inventory_item.current_qty or 0) + int(quantity)
            inventory_qty = inventory_item.current_qty
    db.flush()
    return {
        "product_id": product.id,
        "quantity": int(quantity),
        "stock": product.stock,
        "inventory_qty": inventory_qty,
    }


def delete_order(db: Session, tenant_id: int, order_id: int, return_stock: bool, user_id: int) -> DeleteResult:
    """Remove o pedido, devolvendo o estoque item a item quando pedido.

    Cada devolução roda num SAVEPOINT próprio: a falha de um item é registrada
    e não impede os demais nem a exclusão.
    """
    order = get_order(db, tenant_id, order_id)
    entity = order_from_row(order)
    result = DeleteResult(order_id=order.id)

    if return_stock:
        for index, item in enumerate(entity.items):
            if item.product_id is None:
                continue
            try:
                with db.begin_nested():
                    result.stock_returned.append(_return_item_stock(db, tenant_id, item.product_id, item.quantity))
            except (AppError, SQLAlchemyError) as exc:
                detail = exc.message if isinstance(exc, AppError) else "Falha ao atualizar estoque"
                logger.warning(
                    "Falha ao devolver estoque do item %s (produto %s)",
                    index,
                    item.product_id,
                    extra={"order_id": order.id},
                )
                result.stock_failures.append(
                    {"item_index": index, "product_id": item.product_id, "name": item.name, "error": detail}
                )

    db.delete(order)
    log_admin_action(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        action="kds.delete",
        entity_type="order",
        entity_id=result.order_id,
        meta={
            "return_stock": return_stock,
            "stock_returned": len(result.stock_returned),
            "stock_failures": len(result.stock_failures),
        },
    )
    _commit(db, "Falha ao excluir pedido")
    emit_order_deleted(tenant_id, result.order_id)
    return result
