from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.models.tenant import Tenant
from app.services.bills import single_bill
from app.services.event_bus import event_bus
from app.services.mapping import order_from_row
from app.services.order_events import ORDER_CREATED, ORDER_DELETED, ORDER_STATUS_CHANGED, ORDER_UPDATED
from app.services.order_feed import order_feed
from app.services.printing import auto_print_if_enabled, get_print_settings

logger = logging.getLogger(__name__)


def _with_session(handler):
    def wrapper(payload: dict) -> None:
        db: Session = SessionLocal()
        try:
            handler(db, payload)
        finally:
            db.close()

    wrapper.__name__ = handler.__name__
    return wrapper


@_with_session
def _print_new_order(db: Session, payload: dict) -> None:
    tenant = db.query(Tenant).filter(Tenant.id == payload["tenant_id"]).first()
    order = order_from_row(payload["payload"])
    path = auto_print_if_enabled(single_bill(order), order.tenant_id, tenant.name if tenant else "")
    if path:
        logger.info("Ticket gerado: %s", path, extra={"order_id": order.id})


def handle_order_created(payload: dict) -> None:
    if not get_print_settings(payload["tenant_id"])["auto_print"]:
        return
    _print_new_order(payload)


def handle_feed_event(payload: dict) -> None:
    order_feed.publish(payload)


def register_handlers() -> None:
    event_bus.subscribe(ORDER_CREATED, handle_order_created)
    for event_name in (ORDER_CREATED, ORDER_UPDATED, ORDER_STATUS_CHANGED, ORDER_DELETED):
        event_bus.subscribe(event_name, handle_feed_event)


register_handlers()
