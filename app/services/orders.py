import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import BusinessRuleError, CouponError, PersistenceError
from app.models.customer import Customer
from app.models.inventory import InventoryItem
from app.models.order import Order
from app.models.product import Product
from app.models.tenant import Tenant
from app.schemas.entities import (
    ORDER_TYPE_DELIVERY,
    ORDER_TYPE_DINE_IN,
    LineItem,
    OrderEntity,
    SelectedSide,
    normalize_order_type,
    to_money,
)
from app.services.coupons import register_coupon_use, validate_coupon
from app.services.mapping import order_from_row
from app.services.order_events import emit_order_created
from app.services.order_status import PENDING
from app.services.whatsapp_templates import build_wa_link, new_order_message, only_digits

logger = logging.getLogger(__name__)


@dataclass
class OrderTotals:
    subtotal: Decimal
    delivery_fee: Decimal
    discount: Decimal
    total: Decimal

    def as_dict(self) -> dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "delivery_fee": str(self.delivery_fee),
            "discount": str(self.discount),
            "total": str(self.total),
        }


@dataclass
class PlacedOrder:
    order: OrderEntity
    totals: OrderTotals
    whatsapp_link: Optional[str] = None


def compute_totals(
    items: Iterable[LineItem],
    order_type: str,
    delivery_fee: Decimal,
    discount: Decimal = Decimal("0"),
) -> OrderTotals:
    """total = max(0, subtotal + taxa (só delivery) - desconto)."""
    subtotal = sum((item.line_total() for item in items), Decimal("0.00"))
    fee = to_money(delivery_fee) if order_type == ORDER_TYPE_DELIVERY else Decimal("0.00")
    discount = to_money(discount)
    total = max(Decimal("0.00"), subtotal + fee - discount)
    return OrderTotals(subtotal=to_money(subtotal), delivery_fee=fee, discount=discount, total=to_money(total))


def _resolve_sides(product: Product, requested: Iterable[Any]) -> list[SelectedSide]:
    available = {str(side.get("name", "")).strip().lower(): side for side in (product.sides or [])}
    sides = []
    for entry in requested or []:
        name = entry.get("name") if isinstance(entry, dict) else str(entry)
        side = available.get((name or "").strip().lower())
        if side is None:
            raise BusinessRuleError(f"Acompanhamento inválido para {product.name}: {name}", status_code=422)
        sides.append(SelectedSide(name=side["name"], price=side.get("price", 0)))
    return sides


def build_line_items(db: Session, tenant_id: int, cart: Iterable[dict]) -> list[LineItem]:
    """Monta os itens com preços do cardápio; o preço enviado pelo cliente é ignorado."""
    items: list[LineItem] = []
    for entry in cart:
        product_id = entry.get("product_id")
        quantity = int(entry.get("quantity") or 0)
        if quantity < 1:
            raise BusinessRuleError("Quantidade inválida", status_code=422)

        product = (
            db.query(Product)
            .filter(Product.id == product_id, Product.tenant_id == tenant_id, Product.active.is_(True))
            .first()
        )
        if not product:
            raise BusinessRuleError("Produto não encontrado no cardápio", status_code=422)
        if product.availability == "out_of_stock":
            raise BusinessRuleError(f"Produto indisponível: {product.name}")

        items.append(
            LineItem(
                product_id=product.id,
                name=product.name,
                quantity=quantity,
                unit_price=product.price,
                selected_sides=_resolve_sides(product, entry.get("selected_sides") or []),
                doneness=(entry.get("doneness") or None),
                note=(entry.get("note") or None),
                category=product.category,
                inventory_id=product.inventory_id,
            )
        )
    if not items:
        raise BusinessRuleError("Carrinho vazio", status_code=422)
    return items


def _next_order_number(db: Session, tenant_id: int) -> int:
    current = db.query(func.max(Order.order_number)).filter(Order.tenant_id == tenant_id).scalar()
    return int(current or 0) + 1


def _consume_stock(db: Session, tenant_id: int, items: Iterable[LineItem]) -> None:
    for item in items:
        product = db.query(Product).filter(Product.id == item.product_id, Product.tenant_id == tenant_id).first()
        if product is None:
            continue
        if product.stock is not None:
            product.stock = max(0, int(product.stock) - item.quantity)
            if product.stock == 0:
                product.availability = "out_of_stock"
        if product.inventory_id:
            inventory_item = (
                db.query(InventoryItem)
                .filter(InventoryItem.id == product.inventory_id, InventoryItem.tenant_id == tenant_id)
                .first()
            )
            if inventory_item is not None:
                inventory_item.current_qty = max(0.0, float(inventory_item.current_qty or 0) - item.quantity)


def upsert_customer(
    db: Session,
    tenant_id: int,
    *,
    name: str,
    whatsapp: str,
    address: str,
    total: Decimal,
    when: datetime,
) -> Optional[Customer]:
    digits = only_digits(whatsapp)
    if not digits:
        return None
    customer = db.query(Customer).filter(Customer.tenant_id == tenant_id, Customer.whatsapp == digits).first()
    if customer is None:
        customer = Customer(tenant_id=tenant_id, whatsapp=digits, total_orders=0, total_spent=Decimal("0"))
        db.add(customer)
    customer.name = name
    if address:
        customer.address = address
    customer.total_orders = int(customer.total_orders or 0) + 1
    customer.total_spent = to_money(Decimal(str(customer.total_spent or 0)) + total)
    customer.last_order_date = when
    return customer


def place_order(
    db: Session,
    tenant: Tenant,
    *,
    items: Iterable[dict],
    customer_name: str,
    customer_whatsapp: str = "",
    order_type: str = ORDER_TYPE_DELIVERY,
    table_number: Optional[str] = None,
    address: str = "",
    observation: str = "",
    payment_method: str = "",
    coupon_code: Optional[str] = None,
    user_id: Optional[str] = None,
    from_counter: bool = False,
) -> PlacedOrder:
    """Cria o pedido com baixa de estoque, cliente e uso de cupom numa só transação."""
    if not from_counter and not tenant.is_open:
        raise BusinessRuleError("A loja está fechada no momento")

    order_type = normalize_order_type(order_type)
    table_number = (table_number or "").strip() or None
    customer_name = (customer_name or "").strip() or "Cliente"
    if order_type == ORDER_TYPE_DELIVERY and not (address or "").strip():
        raise BusinessRuleError("Informe o endereço de entrega", status_code=422)
    if order_type == ORDER_TYPE_DINE_IN and not table_number and not from_counter:
        raise BusinessRuleError("Informe o número da mesa", status_code=422)

    line_items = build_line_items(db, tenant.id, items)

    coupon = None
    discount = Decimal("0")
    if coupon_code:
        if order_type == ORDER_TYPE_DINE_IN:
            raise CouponError("Cupons valem apenas para delivery")
        coupon = validate_coupon(db, tenant.id, coupon_code, user_id=user_id, customer_phone=customer_whatsapp)
        discount = Decimal(str(coupon.discount_value or 0))

    totals = compute_totals(line_items, order_type, Decimal(str(tenant.delivery_fee or 0)), discount)
    now = datetime.now(timezone.utc)

    order = Order(
        tenant_id=tenant.id,
        order_number=_next_order_number(db, tenant.id),
        customer_name=customer_name,
        customer_whatsapp=(customer_whatsapp or "").strip(),
        user_id=user_id,
        order_type=order_type,
        table_number=table_number if order_type == ORDER_TYPE_DINE_IN else None,
        items=[item.model_dump(mode="json") for item in line_items],
        address=(address or "").strip() if order_type == ORDER_TYPE_DELIVERY else "",
        observation=(observation or "").strip(),
        payment_method=(payment_method or "").strip().lower(),
        coupon_code=coupon.code if coupon else None,
        discount_applied=totals.discount,
        delivery_fee=totals.delivery_fee,
        total=totals.total,
        status=PENDING,
        created_at=now,
    )
    db.add(order)
    _consume_stock(db, tenant.id, line_items)
    upsert_customer(
        db,
        tenant.id,
        name=customer_name,
        whatsapp=customer_whatsapp,
        address=order.address,
        total=totals.total,
        when=now,
    )
    if coupon is not None:
        register_coupon_use(coupon)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao criar pedido", extra={"tenant_id": tenant.id})
        raise PersistenceError("Erro ao realizar pedido. Tente novamente.") from exc
    db.refresh(order)

    logger.info("Pedido criado", extra={"order_id": order.id, "tenant_id": tenant.id})
    emit_order_created(order)

    link = None
    if not from_counter and tenant.whatsapp:
        message = new_order_message(
            store_name=tenant.name,
            customer_name=customer_name,
            customer_whatsapp=order.customer_whatsapp,
            order_type=order_type,
            items=line_items,
            subtotal=totals.subtotal,
            delivery_fee=totals.delivery_fee,
            discount=totals.discount,
            total=totals.total,
            payment_method=order.payment_method,
            address=order.address,
            table_number=order.table_number,
        )
        link = build_wa_link(tenant.whatsapp, message)
    return PlacedOrder(order=order_from_row(order), totals=totals, whatsapp_link=link)


def list_customer_orders(db: Session, tenant_id: int, user_id: str, limit: int = 50) -> list[OrderEntity]:
    rows = (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id, Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
    return [order_from_row(row) for row in rows]
