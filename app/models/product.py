import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (Index("ix_products_tenant_category", "tenant_id", "category"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    category = Column(String(60), nullable=False, default="Lanches")
    description = Column(Text, nullable=True)
    prep_time = Column(String(30), nullable=True)
    image = Column(String, nullable=True)

    is_vegan = Column(Boolean, nullable=False, default=False)
    is_combo = Column(Boolean, nullable=False, default=False)
    is_highlighted = Column(Boolean, nullable=False, default=False)

    # available / low_stock / out_of_stock
    availability = Column(String(20), nullable=False, default="available")
    # None = estoque não controlado
    stock = Column(Integer, nullable=True)
    inventory_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=True)
    sides = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
