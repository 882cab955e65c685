"""Agrupamento de pedidos abertos em contas para o quadro da cozinha.

Pedidos no salão (dine_in) com mesa informada e o mesmo cliente viram uma
única conta; o resto é uma conta por pedido. Funções puras: nenhuma delas
toca o banco.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from app.core.config import KDS_LATE_AFTER_MINUTES
from app.schemas.entities import Bill, BillItem, OrderEntity, normalize_order_type, to_money
from app.services.order_status import BOARD_COLUMNS


def bill_key(order: OrderEntity) -> str:
    if order.is_dine_in and order.table_number:
        customer = (order.customer_name or "Cliente").strip().upper()
        return f"{order.order_type}:{order.table_number}:{customer}"
    return f"single:{order.id}"


def dedupe_orders(orders: Iterable[OrderEntity]) -> list[OrderEntity]:
    """Remove repetidos por id; a última ocorrência vence."""
    by_id: dict[int, OrderEntity] = {}
    for order in orders:
        by_id[order.id] = order
    return list(by_id.values())


def open_orders(orders: Iterable[OrderEntity]) -> list[OrderEntity]:
    return [order for order in orders if order.is_open]


def _build_bill(key: str, members: list[OrderEntity]) -> Bill:
    members = sorted(members, key=lambda order: (order.created_at, order.id))
    primary = members[0]

    items: list[BillItem] = []
    for position, order in enumerate(members):
        for index, item in enumerate(order.items):
            items.append(
                BillItem(
                    **item.model_dump(),
                    origin_order_id=order.id,
                    origin_item_index=index,
                    is_additional=position > 0,
                )
            )

    total = sum((to_money(order.total) for order in members), Decimal("0.00"))
    return Bill(
        key=key,
        id=primary.id,
        order_number=primary.order_number,
        status=primary.status,
        customer_name=primary.customer_name,
        customer_whatsapp=primary.customer_whatsapp,
        order_type=primary.order_type,
        table_number=primary.table_number,
        address=primary.address,
        observation=primary.observation,
        payment_method=primary.payment_method,
        created_at=primary.created_at,
        items=items,
        total=to_money(total),
        order_ids=[order.id for order in members],
        is_grouped=len(members) > 1,
    )


def single_bill(order: OrderEntity) -> Bill:
    return _build_bill(f"single:{order.id}", [order])


def bill_for_order(orders: Iterable[OrderEntity], order: OrderEntity) -> Bill:
    """Conta aberta que contém o pedido; pedidos fechados viram conta própria."""
    for bill in group_open_orders(orders):
        if order.id in bill.order_ids:
            return bill
    return single_bill(order)


def group_open_orders(orders: Iterable[OrderEntity]) -> list[Bill]:
    """Agrupa pedidos abertos em contas, da mais recente para a mais antiga.

    Idempotente e independente da ordem de entrada.
    """
    groups: "OrderedDict[str, list[OrderEntity]]" = OrderedDict()
    for order in open_orders(dedupe_orders(orders)):
        groups.setdefault(bill_key(order), []).append(order)

    bills = [_build_bill(key, members) for key, members in groups.items()]
    bills.sort(key=lambda bill: (bill.created_at, bill.id), reverse=True)
    return bills


def filter_bills(
    bills: Iterable[Bill],
    order_type: Optional[str] = None,
    search: Optional[str] = None,
) -> list[Bill]:
    term = (search or "").strip().lower()
    if order_type:
        order_type = normalize_order_type(order_type)
    result = []
    for bill in bills:
        if order_type and bill.order_type != order_type:
            continue
        if term:
            haystack = (
                bill.customer_name.lower(),
                str(bill.order_number),
                str(bill.id),
                (bill.table_number or "").lower(),
            )
            if not any(term in value for value in haystack):
                continue
        result.append(bill)
    return result


def bucket_by_status(bills: Iterable[Bill]) -> dict[str, list[Bill]]:
    buckets: dict[str, list[Bill]] = {column: [] for column in BOARD_COLUMNS}
    for bill in bills:
        if bill.status in buckets:
            buckets[bill.status].append(bill)
    return buckets


def wait_minutes(created_at: datetime, now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0, int((now - created_at).total_seconds() // 60))


def is_late(created_at: datetime, now: Optional[datetime] = None) -> bool:
    return wait_minutes(created_at, now) > KDS_LATE_AFTER_MINUTES
