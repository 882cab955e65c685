import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    order_number = Column(Integer, nullable=False)

    # Identificação do cliente
    customer_name = Column(String(120), default="Cliente", nullable=False)
    customer_whatsapp = Column(String(30), default="", nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)

    # delivery / dine_in
    order_type = Column(String(20), default="delivery", nullable=False)
    table_number = Column(String(20), nullable=True)

    # Lista de itens já normalizada (ver app.schemas.entities.LineItem)
    items = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)

    address = Column(Text, default="", nullable=False)
    observation = Column(Text, default="", nullable=False)
    payment_method = Column(String(30), default="", nullable=False)  # pix / card / cash

    coupon_code = Column(String(64), nullable=True)
    discount_applied = Column(Numeric(10, 2), default=0, nullable=False)
    delivery_fee = Column(Numeric(10, 2), default=0, nullable=False)
    total = Column(Numeric(10, 2), default=0, nullable=False)

    # pending / preparing / ready_to_send / out_for_delivery / finished / canceled
    status = Column(String(30), default="pending", nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
