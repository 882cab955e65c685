"""Conversão de linhas do banco (ou payloads do feed) em entidades.

Uma função por entidade. Aceita tanto instâncias ORM quanto dicionários, para
que eventos do feed em tempo real passem pela mesma validação.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from app.schemas.entities import (
    CouponEntity,
    InventoryItemEntity,
    OrderEntity,
    ProductEntity,
    TenantEntity,
)


def _get(row: Any, key: str, default: Any = None) -> Any:
    if isinstance(row, Mapping):
        value = row.get(key, default)
    else:
        value = getattr(row, key, default)
    return default if value is None else value


def _text(row: Any, key: str, default: str = "") -> str:
    value = _get(row, key, default)
    return str(value).strip() if value is not None else default


def _created_at(row: Any) -> datetime:
    value = _get(row, "created_at")
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value is None:
        value = datetime.now(timezone.utc)
    if value.tzinfo is None:
        # SQLite devolve datetimes ingênuos; gravamos sempre em UTC
        value = value.replace(tzinfo=timezone.utc)
    return value


def order_from_row(row: Any) -> OrderEntity:
    return OrderEntity.model_validate(
        {
            "id": _get(row, "id"),
            "tenant_id": _get(row, "tenant_id"),
            "order_number": _get(row, "order_number", 0),
            "customer_name": _text(row, "customer_name") or "Cliente",
            "customer_whatsapp": _text(row, "customer_whatsapp"),
            "user_id": _get(row, "user_id"),
            "order_type": _get(row, "order_type"),
            "table_number": _get(row, "table_number"),
            "items": list(_get(row, "items", []) or []),
            "address": _text(row, "address"),
            "observation": _text(row, "observation"),
            "payment_method": _text(row, "payment_method"),
            "coupon_code": _get(row, "coupon_code"),
            "discount_applied": _get(row, "discount_applied", 0),
            "delivery_fee": _get(row, "delivery_fee", 0),
            "total": _get(row, "total", 0),
            "status": _text(row, "status") or "pending",
            "created_at": _created_at(row),
        }
    )


def product_from_row(row: Any) -> ProductEntity:
    return ProductEntity.model_validate(
        {
            "id": _get(row, "id"),
            "tenant_id": _get(row, "tenant_id"),
            "name": _text(row, "name"),
            "price": _get(row, "price", 0),
            "category": _text(row, "category") or "Lanches",
            "description": _text(row, "description"),
            "prep_time": _get(row, "prep_time"),
            "image": _get(row, "image"),
            "is_vegan": bool(_get(row, "is_vegan", False)),
            "is_combo": bool(_get(row, "is_combo", False)),
            "is_highlighted": bool(_get(row, "is_highlighted", False)),
            "availability": _get(row, "availability"),
            "stock": _get(row, "stock"),
            "inventory_id": _get(row, "inventory_id"),
            "sides": list(_get(row, "sides", []) or []),
            "active": bool(_get(row, "active", True)),
        }
    )


def inventory_item_from_row(row: Any) -> InventoryItemEntity:
    return InventoryItemEntity.model_validate(
        {
            "id": _get(row, "id"),
            "tenant_id": _get(row, "tenant_id"),
            "name": _text(row, "name"),
            "current_qty": float(_get(row, "current_qty", 0)),
            "min_qty": float(_get(row, "min_qty", 0)),
            "unit": _text(row, "unit") or "un",
            "category": _get(row, "category"),
            "cost_price": _get(row, "cost_price", 0),
            "active": bool(_get(row, "active", True)),
        }
    )


def tenant_from_row(row: Any) -> TenantEntity:
    return TenantEntity.model_validate(
        {
            "id": _get(row, "id"),
            "slug": _text(row, "slug"),
            "name": _text(row, "name") or "Loja Padrão",
            "whatsapp": _text(row, "whatsapp"),
            "pix_key": _text(row, "pix_key"),
            "payment_link": _text(row, "payment_link"),
            "delivery_fee": _get(row, "delivery_fee", 0),
            "delivery_time": _text(row, "delivery_time") or "30-45 min",
            "card_machine_fee": _get(row, "card_machine_fee", 0),
            "address": _text(row, "address"),
            "instagram": _text(row, "instagram"),
            "theme_color": _text(row, "theme_color") or "#ea580c",
            "opening_hours": _text(row, "opening_hours"),
            "is_open": bool(_get(row, "is_open", True)),
        }
    )


def coupon_from_row(row: Any) -> CouponEntity:
    return CouponEntity.model_validate(
        {
            "id": _get(row, "id"),
            "tenant_id": _get(row, "tenant_id"),
            "code": _get(row, "code", ""),
            "discount_value": _get(row, "discount_value", 0),
            "max_uses": int(_get(row, "max_uses", 0)),
            "current_uses": int(_get(row, "current_uses", 0)),
            "is_active": bool(_get(row, "is_active", True)),
            "user_id": _get(row, "user_id"),
            "customer_phone": _get(row, "customer_phone"),
        }
    )
