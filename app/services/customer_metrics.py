"""CRM derivado dos pedidos: métricas por cliente e indicadores gerais."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from app.core.config import VIP_SPENT_THRESHOLD
from app.schemas.entities import OrderEntity, to_money
from app.services.whatsapp_templates import only_digits

INACTIVE_AFTER_DAYS = 15
VIP_MIN_ORDERS = 5


@dataclass
class CustomerMetric:
    key: str
    name: str
    whatsapp: str
    user_id: Optional[str]
    total_orders: int = 0
    total_spent: Decimal = Decimal("0.00")
    last_order_date: Optional[datetime] = None
    status: str = "novo"
    days_since: int = 0
    favorite_dish: str = "N/A"
    average_ticket: Decimal = Decimal("0.00")
    item_counts: Counter = field(default_factory=Counter, repr=False)

    def as_dict(self) -> dict:
        return {
            "key": self.key,
            "name": self.name,
            "whatsapp": self.whatsapp,
            "user_id": self.user_id,
            "total_orders": self.total_orders,
            "total_spent": self.total_spent,
            "last_order_date": self.last_order_date,
            "status": self.status,
            "days_since": self.days_since,
            "favorite_dish": self.favorite_dish,
            "average_ticket": self.average_ticket,
        }


def customer_key(order: OrderEntity) -> str:
    digits = only_digits(order.customer_whatsapp)
    if digits:
        return digits
    return f"NAME_{(order.customer_name or 'SEM_NOME').strip().upper()}"


def classify(total_orders: int, days_since: int) -> str:
    status = "regular"
    if total_orders == 1:
        status = "novo"
    elif total_orders >= VIP_MIN_ORDERS:
        status = "vip"
    if days_since >= INACTIVE_AFTER_DAYS:
        status = "sumido"
    return status


def build_customer_metrics(orders: Iterable[OrderEntity], now: Optional[datetime] = None) -> list[CustomerMetric]:
    """Agrega por cliente (WhatsApp, ou nome quando não há telefone).

    Ordenado por valor gasto, do maior para o menor.
    """
    now = now or datetime.now(timezone.utc)
    customers: dict[str, CustomerMetric] = {}

    for order in orders:
        key = customer_key(order)
        metric = customers.get(key)
        if metric is None:
            metric = CustomerMetric(
                key=key,
                name=order.customer_name or "Cliente",
                whatsapp=only_digits(order.customer_whatsapp),
                user_id=order.user_id,
                last_order_date=order.created_at,
            )
            customers[key] = metric

        metric.total_orders += 1
        metric.total_spent += to_money(order.total)
        if order.created_at > metric.last_order_date:
            metric.last_order_date = order.created_at
            metric.name = order.customer_name or metric.name
        for item in order.items:
            metric.item_counts[item.name] += item.quantity

    result = []
    for metric in customers.values():
        metric.days_since = max(0, (now - metric.last_order_date).days)
        metric.status = classify(metric.total_orders, metric.days_since)
        if metric.item_counts:
            # Empate: o primeiro prato pedido vence
            metric.favorite_dish = max(metric.item_counts.items(), key=lambda entry: entry[1])[0]
        metric.total_spent = to_money(metric.total_spent)
        metric.average_ticket = to_money(metric.total_spent / metric.total_orders)
        result.append(metric)

    result.sort(key=lambda metric: metric.total_spent, reverse=True)
    return result


def customer_kpis(customers: list[CustomerMetric]) -> dict:
    total = len(customers)
    returning = sum(1 for metric in customers if metric.total_orders > 1)
    return {
        "total_customers": total,
        "new_this_month": sum(1 for metric in customers if metric.status == "novo"),
        "retention_rate": round(returning / total * 100, 1) if total else 0.0,
        "whales": sum(1 for metric in customers if metric.total_spent > VIP_SPENT_THRESHOLD),
    }
