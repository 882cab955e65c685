from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import get_current_admin_user
from app.models.admin_user import AdminUser
from app.services.admin_audit import log_admin_action
from app.services.admin_auth import (
    authenticate_admin,
    clear_admin_session_cookie,
    create_admin_session,
    set_admin_session_cookie,
)
from app.services.passwords import hash_password, needs_rehash

router = APIRouter(prefix="/api/admin/auth", tags=["admin-auth"])
logger = logging.getLogger(__name__)


class AdminLoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AdminUserRead(BaseModel):
    id: int
    tenant_id: int
    email: EmailStr
    name: str
    role: str
    active: bool


def _user_out(user: AdminUser) -> dict:
    return {
        "id": user.id,
        "tenant_id": user.tenant_id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "active": user.active,
    }


@router.post("/login", response_model=AdminUserRead)
def admin_login(
    payload: AdminLoginPayload,
    response: Response,
    request: Request,
    db: Session = Depends(get_db),
):
    tenant_slug = request.headers.get("x-tenant-slug") or None
    user = authenticate_admin(db, payload.email, payload.password, tenant_slug)
    if user is None:
        logger.warning("Login do painel recusado", extra={"tenant_id": tenant_slug})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciais inválidas")

    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(payload.password)

    token = create_admin_session({"user_id": user.id, "tenant_id": user.tenant_id, "role": user.role})
    set_admin_session_cookie(response, token, request)
    log_admin_action(db, tenant_id=user.tenant_id, user_id=user.id, action="login_success")
    db.commit()
    return _user_out(user)


@router.post("/logout")
def admin_logout(response: Response, request: Request):
    clear_admin_session_cookie(response, request)
    return {"ok": True}


@router.get("/me", response_model=AdminUserRead)
def admin_me(user: AdminUser = Depends(get_current_admin_user)):
    return _user_out(user)
