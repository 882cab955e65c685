# app/deps.py
from __future__ import annotations

import logging
from typing import Iterable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.request_context import set_request_context
from app.models.admin_user import AdminUser
from app.services.admin_auth import ADMIN_SESSION_COOKIE, decode_admin_session

logger = logging.getLogger(__name__)


def _normalize_admin_role(role: str | None) -> str:
    return (role or "").strip().lower()


def resolve_admin_from_token(db: Session, token: str | None) -> AdminUser | None:
    """Sessão do cookie -> usuário ativo. Também usado pelo websocket do KDS."""
    if not token:
        return None
    payload = decode_admin_session(token)
    if not payload or not payload.get("user_id"):
        return None

    user = (
        db.query(AdminUser)
        .filter(AdminUser.id == int(payload["user_id"]), AdminUser.active.is_(True))
        .first()
    )
    if user is None:
        return None
    tenant_id = payload.get("tenant_id")
    if tenant_id is not None and int(user.tenant_id) != int(tenant_id):
        return None
    return user


def get_current_admin_user(
    request: Request,
    db: Session = Depends(get_db),
) -> AdminUser:
    token = request.cookies.get(ADMIN_SESSION_COOKIE)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin não autenticado")

    user = resolve_admin_from_token(db, token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sessão expirada ou inválida")

    set_request_context(tenant_id=str(user.tenant_id), user_id=str(user.id))
    return user


def require_admin_user(
    request: Request,
    db: Session = Depends(get_db),
) -> AdminUser:
    return get_current_admin_user(request, db)


def require_role(roles: Iterable[str]):
    allowed = {role.strip().lower() for role in roles}
    if "admin" in allowed or "owner" in allowed:
        allowed.update({"admin", "owner"})

    def _dependency(
        request: Request,
        user: AdminUser = Depends(require_admin_user),
    ) -> AdminUser:
        if _normalize_admin_role(user.role) not in allowed:
            logger.warning(
                "Access denied (role_denied): user_id=%s user_role=%s endpoint=%s %s",
                getattr(user, "id", None),
                getattr(user, "role", None),
                request.method,
                request.url.path,
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissão insuficiente")
        return user

    return _dependency
