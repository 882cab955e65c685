from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import BusinessRuleError, CouponError, NotFoundError, PersistenceError
from app.models.coupon import Coupon
from app.services.mapping import coupon_from_row
from app.services.whatsapp_templates import only_digits

logger = logging.getLogger(__name__)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def find_coupon(db: Session, tenant_id: int, code: str) -> Optional[Coupon]:
    normalized = normalize_code(code)
    if not normalized:
        return None
    return (
        db.query(Coupon)
        .filter(Coupon.tenant_id == tenant_id, func.upper(Coupon.code) == normalized)
        .first()
    )


def validate_coupon(
    db: Session,
    tenant_id: int,
    code: str,
    user_id: Optional[str] = None,
    customer_phone: Optional[str] = None,
) -> Coupon:
    """Retorna o cupom aplicável ou levanta CouponError com a mensagem para o cliente."""
    coupon = find_coupon(db, tenant_id, code)
    if coupon is None:
        raise CouponError("Cupom inválido")

    entity = coupon_from_row(coupon)
    if not entity.is_active or entity.is_exhausted:
        raise CouponError("Cupom expirado ou esgotado")
    if entity.user_id and entity.user_id != (user_id or None):
        raise CouponError("Este cupom não pertence a você")
    if entity.customer_phone and only_digits(entity.customer_phone) != only_digits(customer_phone):
        raise CouponError("Este cupom não pertence a você")
    return coupon


def register_coupon_use(coupon: Coupon) -> None:
    coupon.current_uses = int(coupon.current_uses or 0) + 1


def list_coupons(db: Session, tenant_id: int, active: Optional[bool] = None) -> list[Coupon]:
    query = db.query(Coupon).filter(Coupon.tenant_id == tenant_id)
    if active is not None:
        query = query.filter(Coupon.is_active.is_(active))
    return query.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()


def get_coupon(db: Session, tenant_id: int, coupon_id: int) -> Coupon:
    coupon = db.query(Coupon).filter(Coupon.id == coupon_id, Coupon.tenant_id == tenant_id).first()
    if not coupon:
        raise NotFoundError("Cupom não encontrado")
    return coupon


def _save(db: Session, coupon: Coupon) -> Coupon:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise BusinessRuleError("Já existe um cupom com este código", status_code=409) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao salvar cupom")
        raise PersistenceError() from exc
    db.refresh(coupon)
    return coupon


def create_coupon(db: Session, tenant_id: int, data: dict[str, Any]) -> Coupon:
    code = normalize_code(data.get("code"))
    if not code:
        raise BusinessRuleError("Informe o código do cupom", status_code=422)
    if find_coupon(db, tenant_id, code):
        raise BusinessRuleError("Já existe um cupom com este código", status_code=409)

    coupon = Coupon(
        tenant_id=tenant_id,
        code=code,
        discount_value=Decimal(str(data.get("discount_value") or 0)),
        max_uses=int(data.get("max_uses") or 0),
        current_uses=0,
        is_active=data.get("is_active") is not False,
        user_id=data.get("user_id"),
        customer_phone=only_digits(data.get("customer_phone")) or None,
    )
    db.add(coupon)
    return _save(db, coupon)


def update_coupon(db: Session, tenant_id: int, coupon_id: int, data: dict[str, Any]) -> Coupon:
    coupon = get_coupon(db, tenant_id, coupon_id)
    if "code" in data and data["code"] is not None:
        code = normalize_code(data["code"])
        other = find_coupon(db, tenant_id, code)
        if other is not None and other.id != coupon.id:
            raise BusinessRuleError("Já existe um cupom com este código", status_code=409)
        coupon.code = code
    if data.get("discount_value") is not None:
        coupon.discount_value = Decimal(str(data["discount_value"]))
    for key in ("max_uses", "is_active", "user_id"):
        if key in data and data[key] is not None:
            setattr(coupon, key, data[key])
    if "customer_phone" in data:
        coupon.customer_phone = only_digits(data["customer_phone"]) or None
    return _save(db, coupon)


def delete_coupon(db: Session, tenant_id: int, coupon_id: int) -> None:
    coupon = get_coupon(db, tenant_id, coupon_id)
    db.delete(coupon)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao excluir cupom")
        raise PersistenceError() from exc
