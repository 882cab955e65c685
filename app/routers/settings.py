from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_role
from app.exceptions import PersistenceError
from app.models.admin_user import AdminUser
from app.models.tenant import Tenant
from app.services.admin_audit import log_admin_action
from app.services.mapping import tenant_from_row
from app.services.printing import get_print_settings, save_print_settings
from app.services.whatsapp_templates import only_digits

router = APIRouter(prefix="/api/admin", tags=["settings"])


class PrintSettingsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    printer_width: int = Field(80, alias="printerWidth")
    auto_print: bool = Field(False, alias="autoPrint")
    header_text: str = Field("", alias="headerText")
    footer_text: str = Field("", alias="footerText")


class TenantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    is_open: Optional[bool] = None
    whatsapp: Optional[str] = None
    pix_key: Optional[str] = None
    payment_link: Optional[str] = None
    instagram: Optional[str] = None
    address: Optional[str] = None
    delivery_fee: Optional[Decimal] = Field(None, ge=0)
    delivery_time: Optional[str] = None
    card_machine_fee: Optional[Decimal] = Field(None, ge=0, le=100)
    theme_color: Optional[str] = None
    opening_hours: Optional[str] = None


def _get_tenant(db: Session, tenant_id: int) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise HTTPException(status_code=404, detail="Loja não encontrada")
    return tenant


@router.get("/settings/print")
def read_print_settings(user: AdminUser = Depends(require_role(["admin", "caixa", "cozinha"]))):
    return get_print_settings(user.tenant_id)


@router.put("/settings/print")
def update_print_settings(
    payload: PrintSettingsPayload,
    user: AdminUser = Depends(require_role(["admin"])),
):
    return save_print_settings(user.tenant_id, payload.model_dump())


@router.get("/tenant")
def read_tenant(
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    return tenant_from_row(_get_tenant(db, user.tenant_id)).model_dump(mode="json")


@router.patch("/tenant")
def update_tenant(
    payload: TenantUpdate,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    tenant = _get_tenant(db, user.tenant_id)
    changes = payload.model_dump(exclude_unset=True)
    if "whatsapp" in changes:
        changes["whatsapp"] = only_digits(changes["whatsapp"]) or None
    for key, value in changes.items():
        if value is None and key in {"name", "is_open", "delivery_fee", "card_machine_fee"}:
            continue
        setattr(tenant, key, value)

    log_admin_action(
        db,
        tenant_id=tenant.id,
        user_id=user.id,
        action="tenant.update",
        entity_type="tenant",
        entity_id=tenant.id,
        meta={"fields": sorted(changes)},
    )
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError() from exc
    db.refresh(tenant)
    return tenant_from_row(tenant).model_dump(mode="json")
