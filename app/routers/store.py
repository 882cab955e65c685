from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.product import Product
from app.models.tenant import Tenant
from app.schemas.entities import ORDER_TYPE_DELIVERY
from app.services.coupons import validate_coupon
from app.services.mapping import coupon_from_row, product_from_row, tenant_from_row
from app.services.orders import list_customer_orders, place_order

router = APIRouter(prefix="/api/store", tags=["store"])


class CartItem(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)
    selected_sides: List[Any] = Field(default_factory=list)
    doneness: Optional[str] = None
    note: Optional[str] = None


class OrderCreate(BaseModel):
    customer_name: str = Field(..., min_length=1)
    customer_whatsapp: str = ""
    user_id: Optional[str] = None
    order_type: str = ORDER_TYPE_DELIVERY
    table_number: Optional[str] = None
    address: str = ""
    observation: str = ""
    payment_method: str = ""
    coupon_code: Optional[str] = None
    items: List[CartItem] = Field(..., min_length=1)


class CouponCheck(BaseModel):
    code: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    customer_phone: Optional[str] = None


def _get_tenant(db: Session, slug: str) -> Tenant:
    tenant = (
        db.query(Tenant)
        .filter(Tenant.slug == slug.strip().lower(), Tenant.is_active.is_(True))
        .first()
    )
    if not tenant:
        raise HTTPException(status_code=404, detail="Loja não encontrada")
    return tenant


@router.get("/{slug}")
def get_store(slug: str, db: Session = Depends(get_db)):
    tenant = _get_tenant(db, slug)
    products = (
        db.query(Product)
        .filter(Product.tenant_id == tenant.id, Product.active.is_(True))
        .order_by(Product.category.asc(), Product.name.asc())
        .all()
    )
    return {
        "store": tenant_from_row(tenant).model_dump(mode="json"),
        "products": [product_from_row(product).model_dump(mode="json") for product in products],
    }


@router.post("/{slug}/coupons/validate")
def check_coupon(slug: str, payload: CouponCheck, db: Session = Depends(get_db)):
    tenant = _get_tenant(db, slug)
    coupon = validate_coupon(db, tenant.id, payload.code, user_id=payload.user_id, customer_phone=payload.customer_phone)
    entity = coupon_from_row(coupon)
    return {"code": entity.code, "discount_value": str(entity.discount_value)}


@router.post("/{slug}/orders", status_code=201)
def create_order(slug: str, payload: OrderCreate, db: Session = Depends(get_db)):
    tenant = _get_tenant(db, slug)
    placed = place_order(
        db,
        tenant,
        items=[item.model_dump() for item in payload.items],
        customer_name=payload.customer_name,
        customer_whatsapp=payload.customer_whatsapp,
        order_type=payload.order_type,
        table_number=payload.table_number,
        address=payload.address,
        observation=payload.observation,
        payment_method=payload.payment_method,
        coupon_code=payload.coupon_code,
        user_id=payload.user_id,
    )
    return {
        "order": placed.order.model_dump(mode="json"),
        "totals": placed.totals.as_dict(),
        "whatsapp_link": placed.whatsapp_link,
    }


@router.get("/{slug}/orders")
def customer_orders(
    slug: str,
    user_id: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    tenant = _get_tenant(db, slug)
    orders = list_customer_orders(db, tenant.id, user_id, limit=limit)
    return [order.model_dump(mode="json") for order in orders]
