from sqlalchemy import Boolean, Column, DateTime, Float, Integer, Numeric, String, func

from app.core.database import Base


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    name = Column(String, nullable=False)
    unit = Column(String(10), nullable=False, default="un")
    # proteinas / bebidas / suprimentos / outros
    category = Column(String(20), nullable=False, default="outros")
    cost_price = Column(Numeric(10, 2), nullable=False, default=0)
    current_qty = Column(Float, nullable=False, default=0)
    min_qty = Column(Float, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
