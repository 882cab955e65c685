from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from app.models.admin_audit_log import AdminAuditLog


def log_admin_action(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> AdminAuditLog:
    """Adiciona o registro à sessão; o commit fica com a operação auditada."""
    entry = AdminAuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_json=json.dumps(meta, ensure_ascii=False, default=str) if meta else None,
    )
    db.add(entry)
    return entry


def list_admin_actions(
    db: Session,
    tenant_id: int,
    action: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = 200,
) -> list[dict[str, Any]]:
    query = db.query(AdminAuditLog).filter(AdminAuditLog.tenant_id == tenant_id)
    if action:
        query = query.filter(AdminAuditLog.action == action)
    if entity_id is not None:
        query = query.filter(AdminAuditLog.entity_id == entity_id)
    rows = query.order_by(AdminAuditLog.id.desc()).limit(limit).all()
    return [
        {
            "id": row.id,
            "user_id": row.user_id,
            "action": row.action,
            "entity_type": row.entity_type,
            "entity_id": row.entity_id,
            "meta": json.loads(row.meta_json) if row.meta_json else None,
            "created_at": row.created_at,
        }
        for row in rows
    ]
