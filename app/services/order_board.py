from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from app.schemas.entities import Bill, OrderEntity
from app.services.bills import bucket_by_status, filter_bills, group_open_orders
from app.services.mapping import order_from_row

logger = logging.getLogger(__name__)


class OrderBoard:
    """Conjunto local de pedidos de um tenant, alimentado pelo feed.

    Cada evento é mesclado por id e as contas são recalculadas do zero.
    Eventos repetidos ou fora de ordem não são erro.
    """

    def __init__(self, tenant_id: int, orders: Iterable[OrderEntity] = ()) -> None:
        self.tenant_id = int(tenant_id)
        self._orders: dict[int, OrderEntity] = {}
        self.load(orders)

    def load(self, orders: Iterable[OrderEntity]) -> None:
        self._orders = {}
        for order in orders:
            if order.tenant_id == self.tenant_id:
                self._orders[order.id] = order

    @property
    def orders(self) -> list[OrderEntity]:
        return list(self._orders.values())

    def apply_event(self, event: dict[str, Any]) -> bool:
        """Mescla um evento ``{entity, change_type, payload}``.

        Retorna True quando o conjunto local mudou.
        """
        if event.get("entity") != "order":
            return False
        if int(event.get("tenant_id") or 0) != self.tenant_id:
            return False

        change_type = event.get("change_type")
        payload = event.get("payload") or {}

        if change_type == "delete":
            order_id = int(payload.get("id") or event.get("order_id") or 0)
            return self._orders.pop(order_id, None) is not None

        if change_type not in {"insert", "update"}:
            logger.warning("Evento de pedido ignorado: change_type=%s", change_type)
            return False

        order = order_from_row(payload)
        if not order.is_open:
            return self._orders.pop(order.id, None) is not None
        if self._orders.get(order.id) == order:
            return False
        self._orders[order.id] = order
        return True

    def bills(self, order_type: Optional[str] = None, search: Optional[str] = None) -> list[Bill]:
        return filter_bills(group_open_orders(self._orders.values()), order_type=order_type, search=search)

    def buckets(self, order_type: Optional[str] = None, search: Optional[str] = None) -> dict[str, list[Bill]]:
        return bucket_by_status(self.bills(order_type=order_type, search=search))

    def snapshot(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "columns": {
                status: [bill.model_dump(mode="json") for bill in bills]
                for status, bills in self.buckets().items()
            },
        }
