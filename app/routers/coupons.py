from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.services import coupons as coupon_service
from app.services.mapping import coupon_from_row

router = APIRouter(prefix="/api/admin/coupons", tags=["admin-coupons"])


class CouponUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=64)
    discount_value: Optional[Decimal] = Field(None, gt=0)
    max_uses: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    user_id: Optional[str] = None
    customer_phone: Optional[str] = None


class CouponCreate(CouponUpdate):
    code: str = Field(..., min_length=1, max_length=64)
    discount_value: Decimal = Field(..., gt=0)


def _serialize(coupon) -> dict:
    entity = coupon_from_row(coupon)
    return {**entity.model_dump(mode="json"), "is_exhausted": entity.is_exhausted}


@router.get("")
def list_coupons(
    active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    return [_serialize(coupon) for coupon in coupon_service.list_coupons(db, user.tenant_id, active)]


@router.post("", status_code=201)
def create_coupon(
    payload: CouponCreate,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    return _serialize(coupon_service.create_coupon(db, user.tenant_id, payload.model_dump()))


@router.patch("/{coupon_id}")
def update_coupon(
    coupon_id: int,
    payload: CouponUpdate,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    coupon = coupon_service.update_coupon(db, user.tenant_id, coupon_id, payload.model_dump(exclude_unset=True))
    return _serialize(coupon)


@router.delete("/{coupon_id}", status_code=204)
def delete_coupon(
    coupon_id: int,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    coupon_service.delete_coupon(db, user.tenant_id, coupon_id)
