from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.metrics import kitchen_metrics
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.services.order_feed import order_feed

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("/endpoints")
def endpoint_metrics(_user: AdminUser = Depends(require_role(["admin"]))):
    return {"endpoints": kitchen_metrics.snapshot()}


@router.get("/kitchen")
def kitchen_transitions(user: AdminUser = Depends(require_role(["admin"]))):
    return {
        "tenant_id": user.tenant_id,
        "transitions": kitchen_metrics.transitions_for(user.tenant_id),
        "kds_connections": order_feed.connection_count(user.tenant_id),
    }
