from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text, func

from app.core.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True)
    slug = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default="Loja Padrão")
    is_active = Column(Boolean, nullable=False, default=True)
    is_open = Column(Boolean, nullable=False, default=True)

    # Contato e pagamento
    whatsapp = Column(String(30), nullable=True)
    pix_key = Column(String(120), nullable=True)
    payment_link = Column(String, nullable=True)
    instagram = Column(String(120), nullable=True)
    address = Column(Text, nullable=True)

    # Entrega
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_time = Column(String(50), nullable=True)
    # Taxa da maquininha em percentual (ex.: 3.5)
    card_machine_fee = Column(Numeric(5, 2), nullable=False, default=0)

    theme_color = Column(String(20), nullable=True)
    opening_hours = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
