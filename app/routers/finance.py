from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_role
from app.models.admin_user import AdminUser
from app.models.tenant import Tenant
from app.services import finance as finance_service
from app.services.order_status import FINISHED

router = APIRouter(prefix="/api/admin/finance", tags=["finance"])


class TransactionCreate(BaseModel):
    type: Literal["in", "out"] = "out"
    value: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    category: Optional[str] = None
    occurred_at: Optional[datetime] = None


class FixedCostPayload(BaseModel):
    label: Optional[str] = Field(None, min_length=1, max_length=120)
    value: Optional[Decimal] = Field(None, ge=0)


class CloseMonthPayload(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)


def _tenant(db: Session, user: AdminUser) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.id == user.tenant_id).first()
    if not tenant:
        raise HTTPException(status_code=404, detail="Loja não encontrada")
    return tenant


def _transaction_out(row) -> dict:
    return {
        "id": row.id,
        "type": row.type,
        "value": str(row.value),
        "description": row.description,
        "category": row.category,
        "occurred_at": row.occurred_at,
    }


def _fixed_cost_out(row) -> dict:
    return {"id": row.id, "label": row.label, "value": str(row.value)}


@router.get("/dre")
def get_dre(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    return finance_service.dre_for_period(db, _tenant(db, user), start, end)


@router.get("/overview")
def get_overview(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    orders = finance_service.load_orders(db, user.tenant_id, start, end, status=FINISHED)
    return finance_service.sales_overview(orders)


@router.get("/export.csv")
def export_sales(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    orders = finance_service.load_orders(db, user.tenant_id, start, end, status=FINISHED)
    content = finance_service.export_sales_csv(orders)
    filename = f"vendas_{date.today().isoformat()}.csv"
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/transactions")
def list_transactions(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    return [_transaction_out(row) for row in finance_service.list_transactions(db, user.tenant_id, start, end)]


@router.post("/transactions", status_code=201)
def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    return _transaction_out(finance_service.create_transaction(db, user.tenant_id, payload.model_dump()))


@router.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    finance_service.delete_transaction(db, user.tenant_id, transaction_id)


@router.get("/fixed-costs")
def list_fixed_costs(
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    return [_fixed_cost_out(row) for row in finance_service.list_fixed_costs(db, user.tenant_id)]


@router.post("/fixed-costs", status_code=201)
def create_fixed_cost(
    payload: FixedCostPayload,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    if not payload.label:
        raise HTTPException(status_code=422, detail="Informe a descrição do custo")
    return _fixed_cost_out(finance_service.save_fixed_cost(db, user.tenant_id, payload.model_dump()))


@router.patch("/fixed-costs/{cost_id}")
def update_fixed_cost(
    cost_id: int,
    payload: FixedCostPayload,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    cost = finance_service.save_fixed_cost(db, user.tenant_id, payload.model_dump(), cost_id=cost_id)
    return _fixed_cost_out(cost)


@router.delete("/fixed-costs/{cost_id}", status_code=204)
def delete_fixed_cost(
    cost_id: int,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    finance_service.delete_fixed_cost(db, user.tenant_id, cost_id)


@router.post("/close-month", status_code=201)
def close_month(
    payload: CloseMonthPayload,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    snapshot = finance_service.close_month(db, _tenant(db, user), payload.year, payload.month, user.id)
    return {
        "id": snapshot.id,
        "year": snapshot.year,
        "month": snapshot.month,
        "revenue": str(snapshot.revenue),
        "net_profit": str(snapshot.net_profit),
        "margin": str(snapshot.margin),
    }


@router.get("/snapshots")
def list_snapshots(
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin"])),
):
    return [
        {
            "id": row.id,
            "year": row.year,
            "month": row.month,
            "revenue": str(row.revenue),
            "cmv": str(row.cmv),
            "fixed_costs": str(row.fixed_costs),
            "net_profit": str(row.net_profit),
            "margin": str(row.margin),
        }
        for row in finance_service.list_snapshots(db, user.tenant_id)
    ]
