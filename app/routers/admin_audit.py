from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.services.admin_audit import list_admin_actions

router = APIRouter(prefix="/api/admin/audit", tags=["admin-audit"])


class AdminAuditRead(BaseModel):
    id: int
    user_id: int
    action: str
    entity_type: Optional[str]
    entity_id: Optional[int]
    meta: Optional[Dict[str, Any]]
    created_at: Optional[datetime]


@router.get("", response_model=List[AdminAuditRead])
def list_audit_logs(
    action: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = Query(200, ge=1, le=500),
    user: AdminUser = Depends(require_role(["admin"])),
    db: Session = Depends(get_db),
):
    return list_admin_actions(db, user.tenant_id, action=action, entity_id=entity_id, limit=limit)
