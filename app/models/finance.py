from sqlalchemy import Column, DateTime, Integer, Numeric, String, UniqueConstraint, func

from app.core.database import Base


class ManualTransaction(Base):
    __tablename__ = "manual_transactions"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)

    type = Column(String(10), nullable=False)  # in / out
    value = Column(Numeric(10, 2), nullable=False)
    description = Column(String, nullable=True)
    category = Column(String(60), nullable=False, default="Geral")
    occurred_at = Column(DateTime(timezone=True), index=True, server_default=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class FixedCost(Base):
    __tablename__ = "fixed_costs"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    label = Column(String(120), nullable=False)
    value = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class FinancialSnapshot(Base):
    __tablename__ = "financial_snapshots"
    __table_args__ = (UniqueConstraint("tenant_id", "year", "month", name="uq_financial_snapshots_period"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    revenue = Column(Numeric(12, 2), nullable=False, default=0)
    cmv = Column(Numeric(12, 2), nullable=False, default=0)
    fixed_costs = Column(Numeric(12, 2), nullable=False, default=0)
    net_profit = Column(Numeric(12, 2), nullable=False, default=0)
    margin = Column(Numeric(7, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
