"""Eventos de mudança de pedido ``{entity, change_type, payload}``.

Emitidos somente depois do commit, para que quem escuta (feed da cozinha,
métricas, impressão, WhatsApp) só veja estado confirmado.
"""

from __future__ import annotations

from typing import Iterable

from app.models.order import Order
from app.services.event_bus import event_bus
from app.services.mapping import order_from_row

ORDER_CREATED = "order.created"
ORDER_UPDATED = "order.updated"
ORDER_STATUS_CHANGED = "order.status.changed"
ORDER_DELETED = "order.deleted"

CHANGE_INSERT = "insert"
CHANGE_UPDATE = "update"
CHANGE_DELETE = "delete"


def build_order_event(order: Order, change_type: str, previous_status: str | None = None) -> dict:
    return {
        "entity": "order",
        "change_type": change_type,
        "tenant_id": order.tenant_id,
        "order_id": order.id,
        "previous_status": previous_status,
        "payload": order_from_row(order).model_dump(mode="json"),
    }


def emit_order_created(order: Order) -> None:
    event_bus.emit(ORDER_CREATED, build_order_event(order, CHANGE_INSERT))


def emit_order_updated(order: Order) -> None:
    event_bus.emit(ORDER_UPDATED, build_order_event(order, CHANGE_UPDATE))


def emit_order_status_changed(order: Order, previous_status: str | None) -> None:
    if previous_status and previous_status == order.status:
        return
    event_bus.emit(ORDER_STATUS_CHANGED, build_order_event(order, CHANGE_UPDATE, previous_status))


def emit_orders_status_changed(orders: Iterable[Order], previous: dict[int, str]) -> None:
    for order in orders:
        emit_order_status_changed(order, previous.get(order.id))


def emit_order_deleted(tenant_id: int, order_id: int) -> None:
    event_bus.emit(
        ORDER_DELETED,
        {
            "entity": "order",
            "change_type": CHANGE_DELETE,
            "tenant_id": tenant_id,
            "order_id": order_id,
            "previous_status": None,
            "payload": {"id": order_id, "tenant_id": tenant_id},
        },
    )
