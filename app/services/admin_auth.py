from __future__ import annotations

import time
from typing import Any, Dict, Optional

from fastapi import Request, Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.orm import Session

from app.core.config import (
    ADMIN_SESSION_COOKIE_DOMAIN,
    ADMIN_SESSION_COOKIE_SAMESITE,
    ADMIN_SESSION_COOKIE_SECURE,
    ADMIN_SESSION_MAX_AGE_SECONDS,
    ADMIN_SESSION_SECRET,
)
from app.models.admin_user import AdminUser
from app.models.tenant import Tenant
from app.services.passwords import verify_password

ADMIN_SESSION_COOKIE = "admin_session"
ADMIN_SESSION_SALT = "admin-session"


def _serializer() -> URLSafeTimedSerializer:
    if not ADMIN_SESSION_SECRET:
        raise RuntimeError("ADMIN_SESSION_SECRET não configurado.")
    return URLSafeTimedSerializer(ADMIN_SESSION_SECRET, salt=ADMIN_SESSION_SALT)


def create_admin_session(payload: Dict[str, Any]) -> str:
    if "exp" not in payload:
        payload = {**payload, "exp": int(time.time()) + ADMIN_SESSION_MAX_AGE_SECONDS}
    return _serializer().dumps(payload)


def decode_admin_session(token: str) -> Optional[Dict[str, Any]]:
    try:
        payload = _serializer().loads(token, max_age=ADMIN_SESSION_MAX_AGE_SECONDS)
    except (BadSignature, SignatureExpired, ValueError):
        return None
    exp = payload.get("exp")
    if exp is not None:
        try:
            if int(exp) < int(time.time()):
                return None
        except (TypeError, ValueError):
            return None
    return payload


def authenticate_admin(db: Session, email: str, password: str, tenant_slug: str | None = None) -> AdminUser | None:
    """Valida credenciais do painel. Com slug, restringe a busca àquela loja."""
    query = db.query(AdminUser).filter(
        AdminUser.email == email.strip().lower(),
        AdminUser.active.is_(True),
    )
    if tenant_slug:
        query = query.join(Tenant, Tenant.id == AdminUser.tenant_id).filter(Tenant.slug == tenant_slug.strip().lower())
    user = query.order_by(AdminUser.id.asc()).first()
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def _cookie_options(request: Request | None = None) -> dict[str, Any]:
    secure = ADMIN_SESSION_COOKIE_SECURE
    samesite = ADMIN_SESSION_COOKIE_SAMESITE

    host = ""
    if request is not None:
        host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").lower()
        host = host.split(",")[0].strip().split(":")[0]

    # Fora de localhost o cookie sempre vai com Secure.
    if host not in {"", "localhost", "127.0.0.1", "testserver"}:
        secure = True
    if samesite == "none" and not secure:
        samesite = "lax"

    return {
        "domain": ADMIN_SESSION_COOKIE_DOMAIN,
        "httponly": True,
        "samesite": samesite,
        "path": "/",
        "secure": secure,
    }


def set_admin_session_cookie(response: Response, token: str, request: Request | None = None) -> None:
    response.set_cookie(
        key=ADMIN_SESSION_COOKIE,
        value=token,
        max_age=ADMIN_SESSION_MAX_AGE_SECONDS,
        **_cookie_options(request),
    )


def clear_admin_session_cookie(response: Response, request: Request | None = None) -> None:
    response.delete_cookie(key=ADMIN_SESSION_COOKIE, **_cookie_options(request))
