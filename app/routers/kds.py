from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import SessionLocal, get_db
from app.deps import require_role, resolve_admin_from_token
from app.models.admin_user import AdminUser
from app.models.tenant import Tenant
from app.schemas.entities import ORDER_TYPE_DINE_IN, Bill
from app.services import kitchen
from app.services.admin_auth import ADMIN_SESSION_COOKIE
from app.services.bills import bill_for_order, is_late, wait_minutes
from app.services.mapping import order_from_row
from app.services.order_feed import order_feed
from app.services.order_status import BOARD_COLUMNS, STATUS_LABELS
from app.services.orders import place_order
from app.services.printing import generate_ticket_pdf, get_print_settings
from app.services.whatsapp_outbound import send_customer_notification

router = APIRouter(tags=["kds"])

KDS_ROLES = ["admin", "cozinha", "caixa"]


class StatusPayload(BaseModel):
    status: str = Field(..., min_length=1)


class CloseBillPayload(BaseModel):
    order_ids: List[int] = Field(..., min_length=1)


class CounterItem(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)
    selected_sides: List[Any] = Field(default_factory=list)
    doneness: Optional[str] = None
    note: Optional[str] = None


class CounterSalePayload(BaseModel):
    customer_name: str = "Balcão"
    table_number: Optional[str] = None
    payment_method: str = ""
    observation: str = ""
    items: List[CounterItem] = Field(..., min_length=1)


def _bill_payload(bill: Bill, now: datetime) -> dict:
    data = bill.model_dump(mode="json")
    data["wait_minutes"] = wait_minutes(bill.created_at, now)
    data["is_late"] = is_late(bill.created_at, now)
    data["status_label"] = STATUS_LABELS.get(bill.status, bill.status)
    return data


@router.get("/api/kds/bills")
def list_kds_bills(
    order_type: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(KDS_ROLES)),
):
    now = datetime.now(timezone.utc)
    columns = kitchen.board_columns(db, user.tenant_id, order_type=order_type, search=search)
    return {
        "columns": [
            {
                "status": status,
                "label": STATUS_LABELS[status],
                "bills": [_bill_payload(bill, now) for bill in columns.get(status, [])],
            }
            for status in BOARD_COLUMNS
        ]
    }


@router.get("/api/kds/orders")
def list_kds_orders(
    order_type: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(KDS_ROLES)),
):
    now = datetime.now(timezone.utc)
    bills = kitchen.list_bills(db, user.tenant_id, order_type=order_type, search=search)
    return [_bill_payload(bill, now) for bill in bills]


@router.post("/api/kds/orders/{order_id}/items/{item_index}/toggle")
def toggle_item(
    order_id: int,
    item_index: int,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(KDS_ROLES)),
):
    order = kitchen.toggle_item_prepared(db, user.tenant_id, order_id, item_index, user.id)
    return order.model_dump(mode="json")


@router.post("/api/kds/orders/{order_id}/status")
def update_status(
    order_id: int,
    payload: StatusPayload,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(KDS_ROLES)),
):
    change = kitchen.advance_status(db, user.tenant_id, order_id, payload.status, user.id)
    if change.changed and change.notification_text and change.order.customer_whatsapp:
        background_tasks.add_task(
            send_customer_notification,
            change.order.customer_whatsapp,
            change.notification_text,
            change.order.id,
        )
    return {
        "order": change.order.model_dump(mode="json"),
        "previous_status": change.previous_status,
        "changed": change.changed,
        "whatsapp_link": change.notification_link,
    }


@router.post("/api/kds/bills/close")
def close_bill(
    payload: CloseBillPayload,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(KDS_ROLES)),
):
    orders = kitchen.close_bill(db, user.tenant_id, payload.order_ids, user.id)
    return {"orders": [order.model_dump(mode="json") for order in orders]}


@router.delete("/api/kds/orders/{order_id}")
def delete_order(
    order_id: int,
    return_stock: bool = Query(False),
    confirm: bool = Query(False),
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin", "caixa"])),
):
    if not confirm:
        raise HTTPException(status_code=400, detail="Confirme a exclusão do pedido")
    result = kitchen.delete_order(db, user.tenant_id, order_id, return_stock, user.id)
    return {
        "deleted": result.order_id,
        "stock_returned": result.stock_returned,
        "stock_failures": result.stock_failures,
    }


@router.post("/api/kds/counter-sale", status_code=201)
def counter_sale(
    payload: CounterSalePayload,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(["admin", "caixa"])),
):
    tenant = db.query(Tenant).filter(Tenant.id == user.tenant_id).first()
    if not tenant:
        raise HTTPException(status_code=404, detail="Loja não encontrada")
    placed = place_order(
        db,
        tenant,
        items=[item.model_dump() for item in payload.items],
        customer_name=payload.customer_name,
        order_type=ORDER_TYPE_DINE_IN,
        table_number=payload.table_number,
        observation=payload.observation,
        payment_method=payload.payment_method,
        from_counter=True,
    )
    return {
        "order": placed.order.model_dump(mode="json"),
        "totals": placed.totals.as_dict(),
    }


@router.get("/api/kds/orders/{order_id}/ticket")
def order_ticket(
    order_id: int,
    db: Session = Depends(get_db),
    user: AdminUser = Depends(require_role(KDS_ROLES)),
):
    order = order_from_row(kitchen.get_order(db, user.tenant_id, order_id))
    # O ticket sai da conta inteira quando o pedido ainda está agrupado
    bill = bill_for_order(kitchen.list_open_orders(db, user.tenant_id), order)
    tenant = db.query(Tenant).filter(Tenant.id == user.tenant_id).first()
    path = generate_ticket_pdf(bill, user.tenant_id, tenant.name if tenant else "", get_print_settings(user.tenant_id))
    return FileResponse(path, media_type="application/pdf", filename=f"pedido_{order.order_number}.pdf")


def _feed_orders(token: Optional[str], tenant_id: int) -> Optional[list]:
    """Pedidos abertos da loja, ou None quando a sessão não vale para ela."""
    db = SessionLocal()
    try:
        user = resolve_admin_from_token(db, token)
        if user is None or int(user.tenant_id) != tenant_id:
            return None
        return kitchen.list_open_orders(db, tenant_id)
    finally:
        db.close()


@router.websocket("/ws/kds/{tenant_id}")
async def kds_feed(websocket: WebSocket, tenant_id: int):
    orders = await run_in_threadpool(_feed_orders, websocket.cookies.get(ADMIN_SESSION_COOKIE), tenant_id)
    if orders is None:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    await order_feed.connect(websocket, tenant_id, orders)
    try:
        while True:
            # O cliente só mantém a conexão; mensagens recebidas são ignoradas
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        order_feed.disconnect(websocket, tenant_id)
