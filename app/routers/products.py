from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.services import products as product_service
from app.services.mapping import product_from_row

router = APIRouter(prefix="/api/admin/products", tags=["admin-products"])


class SidePayload(BaseModel):
    name: str = Field(..., min_length=1)
    price: Decimal = Field(Decimal("0"), ge=0)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    price: Optional[Decimal] = Field(None, ge=0)
    category: Optional[str] = None
    description: Optional[str] = None
    prep_time: Optional[str] = None
    image: Optional[str] = None
    is_vegan: Optional[bool] = None
    is_combo: Optional[bool] = None
    is_highlighted: Optional[bool] = None
    availability: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    inventory_id: Optional[int] = None
    sides: Optional[List[SidePayload]] = None
    active: Optional[bool] = None


class ProductCreate(ProductUpdate):
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)


def _data(payload: ProductUpdate) -> dict:
    # stock/inventory_id explícitos em null desligam o controle
    data = payload.model_dump(exclude_unset=True, mode="json")
    if payload.price is not None:
        data["price"] = payload.price
    return {key: value for key, value in data.items() if value is not None or key in {"stock", "inventory_id"}}


@router.get("")
def list_products(
    category: Optional[str] = Query(None),
    availability: Optional[str] = Query(None),
    highlighted: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin", "caixa"])),
):
    products = product_service.list_products(db, user.tenant_id, category, availability, highlighted)
    return [product_from_row(product).model_dump(mode="json") for product in products]


@router.post("", status_code=201)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    product = product_service.create_product(db, user.tenant_id, _data(payload))
    return product_from_row(product).model_dump(mode="json")


@router.patch("/{product_id}")
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    product = product_service.update_product(db, user.tenant_id, product_id, _data(payload))
    return product_from_row(product).model_dump(mode="json")


@router.post("/{product_id}/toggle-availability")
def toggle_product_availability(
    product_id: int,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin", "caixa"])),
):
    product = product_service.toggle_availability(db, user.tenant_id, product_id)
    return product_from_row(product).model_dump(mode="json")


@router.delete("/{product_id}", status_code=204)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    product_service.delete_product(db, user.tenant_id, product_id)
