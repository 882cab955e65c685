from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.schemas.entities import INVENTORY_CATEGORIES
from app.services import inventory as inventory_service
from app.services.mapping import inventory_item_from_row

router = APIRouter(prefix="/api/admin/inventory", tags=["inventory"])

INVENTORY_ROLES = ["admin", "cozinha"]


class InventoryItemPayload(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    unit: Optional[str] = None
    category: Optional[str] = None
    cost_price: Optional[Decimal] = Field(None, ge=0)
    current_qty: Optional[float] = Field(None, ge=0)
    min_qty: Optional[float] = Field(None, ge=0)
    active: Optional[bool] = None

    @field_validator("category")
    @classmethod
    def _category(cls, value):
        if value is None:
            return value
        value = value.strip().lower()
        if value not in INVENTORY_CATEGORIES:
            raise ValueError(f"Categoria deve ser uma de: {', '.join(INVENTORY_CATEGORIES)}")
        return value


class InventoryItemCreate(InventoryItemPayload):
    name: str = Field(..., min_length=1)


class AdjustPayload(BaseModel):
    delta: float
    reason: Optional[str] = None


def _serialize(item) -> dict:
    entity = inventory_item_from_row(item)
    return {**entity.model_dump(mode="json"), "stock_level": entity.stock_level}


@router.get("")
def list_inventory(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(INVENTORY_ROLES)),
):
    return [_serialize(item) for item in inventory_service.list_items(db, user.tenant_id, include_inactive)]


@router.post("", status_code=201)
def create_inventory_item(
    payload: InventoryItemCreate,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    item = inventory_service.create_item(db, user.tenant_id, payload.model_dump(exclude_none=True))
    return _serialize(item)


@router.get("/low-stock")
def low_stock(
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(INVENTORY_ROLES)),
):
    report = inventory_service.low_stock_report(db, user.tenant_id)
    return {
        "items": [{**item.model_dump(mode="json"), "stock_level": item.stock_level} for item in report["items"]],
        "warning": [{**item.model_dump(mode="json"), "stock_level": item.stock_level} for item in report["warning"]],
        "total_value": str(report["total_value"]),
        "low_stock_count": report["low_stock_count"],
        "replenishment_cost": str(report["replenishment_cost"]),
        "shopping_list": report["shopping_list"],
    }


@router.get("/{item_id}")
def get_inventory_item(
    item_id: int,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(INVENTORY_ROLES)),
):
    return _serialize(inventory_service.get_item(db, user.tenant_id, item_id))


@router.patch("/{item_id}")
def update_inventory_item(
    item_id: int,
    payload: InventoryItemPayload,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    item = inventory_service.update_item(db, user.tenant_id, item_id, payload.model_dump(exclude_none=True))
    return _serialize(item)


@router.delete("/{item_id}", status_code=204)
def delete_inventory_item(
    item_id: int,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    inventory_service.delete_item(db, user.tenant_id, item_id)


@router.post("/{item_id}/adjust")
def adjust_inventory_item(
    item_id: int,
    payload: AdjustPayload,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(INVENTORY_ROLES)),
):
    item = inventory_service.adjust_item(db, user.tenant_id, item_id, payload.delta, user.id, payload.reason)
    return _serialize(item)
