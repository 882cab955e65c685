from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.models.tenant import Tenant
from app.services.coupons import create_coupon
from app.services.customer_metrics import build_customer_metrics, customer_kpis
from app.services.finance import load_orders
from app.services.order_status import CANCELED
from app.services.whatsapp_templates import build_wa_link, coupon_gift_message, only_digits

router = APIRouter(prefix="/api/admin/customers", tags=["admin-customers"])


class GiftCouponPayload(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    discount_value: Decimal = Field(..., gt=0)
    customer_name: Optional[str] = None


@router.get("")
def list_customers(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    orders = [order for order in load_orders(db, user.tenant_id) if order.status != CANCELED]
    customers = build_customer_metrics(orders)
    kpis = customer_kpis(customers)

    term = (search or "").strip().lower()
    if status:
        customers = [metric for metric in customers if metric.status == status]
    if term:
        customers = [metric for metric in customers if term in metric.name.lower() or term in metric.whatsapp]
    return {
        "kpis": kpis,
        "customers": [
            {
                **metric.as_dict(),
                "total_spent": str(metric.total_spent),
                "average_ticket": str(metric.average_ticket),
            }
            for metric in customers
        ],
    }


@router.post("/{whatsapp}/gift-coupon", status_code=201)
def gift_coupon(
    whatsapp: str,
    payload: GiftCouponPayload,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    phone = only_digits(whatsapp)
    if not phone:
        raise HTTPException(status_code=422, detail="WhatsApp do cliente inválido")
    coupon = create_coupon(
        db,
        user.tenant_id,
        {"code": payload.code, "discount_value": payload.discount_value, "max_uses": 1, "customer_phone": phone},
    )
    tenant = db.query(Tenant).filter(Tenant.id == user.tenant_id).first()
    message = coupon_gift_message(payload.customer_name or "", tenant.name if tenant else "", coupon.code, coupon.discount_value)
    return {"code": coupon.code, "whatsapp_link": build_wa_link(phone, message)}
