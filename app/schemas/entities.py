"""Entidades de domínio validadas na fronteira com o banco/feed.

Toda leitura de ``orders``, ``products``, ``inventory_items``, ``tenants`` e
``coupons`` passa por ``app.services.mapping``, que produz estes modelos.
Valores monetários são ``Decimal`` com duas casas (ROUND_HALF_UP).
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CENTS = Decimal("0.01")

ORDER_TYPE_DELIVERY = "delivery"
ORDER_TYPE_DINE_IN = "dine_in"
_DINE_IN_ALIASES = {"dine_in", "dine-in", "local", "mesa", "table", "salao"}

INVENTORY_CATEGORIES = ("proteinas", "bebidas", "suprimentos", "outros")
PRODUCT_AVAILABILITY = ("available", "low_stock", "out_of_stock")


def to_money(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def normalize_order_type(value: Optional[str]) -> str:
    normalized = (value or "").strip().lower()
    if normalized in _DINE_IN_ALIASES:
        return ORDER_TYPE_DINE_IN
    return ORDER_TYPE_DELIVERY


class SelectedSide(BaseModel):
    name: str
    price: Decimal = Decimal("0.00")

    @field_validator("price", mode="before")
    @classmethod
    def _money(cls, value):
        return to_money(value)


class LineItem(BaseModel):
    product_id: Optional[int] = None
    name: str
    quantity: int = Field(1, ge=1)
    unit_price: Decimal = Decimal("0.00")
    selected_sides: list[SelectedSide] = Field(default_factory=list)
    doneness: Optional[str] = None
    note: Optional[str] = None
    checked: bool = False
    category: Optional[str] = None
    inventory_id: Optional[int] = None

    @field_validator("unit_price", mode="before")
    @classmethod
    def _money(cls, value):
        return to_money(value)

    @field_validator("selected_sides", mode="before")
    @classmethod
    def _sides(cls, value):
        return value or []

    def sides_total(self) -> Decimal:
        return sum((side.price for side in self.selected_sides), Decimal("0.00"))

    def line_total(self) -> Decimal:
        return to_money((self.unit_price + self.sides_total()) * self.quantity)


class OrderEntity(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    order_number: int = 0
    customer_name: str = "Cliente"
    customer_whatsapp: str = ""
    user_id: Optional[str] = None
    order_type: str = ORDER_TYPE_DELIVERY
    table_number: Optional[str] = None
    items: list[LineItem] = Field(default_factory=list)
    address: str = ""
    observation: str = ""
    payment_method: str = ""
    coupon_code: Optional[str] = None
    discount_applied: Decimal = Decimal("0.00")
    delivery_fee: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    status: str = "pending"
    created_at: datetime

    @field_validator("order_type", mode="before")
    @classmethod
    def _order_type(cls, value):
        return normalize_order_type(value)

    @field_validator("discount_applied", "delivery_fee", "total", mode="before")
    @classmethod
    def _money(cls, value):
        return to_money(value)

    @field_validator("table_number", mode="before")
    @classmethod
    def _table(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @property
    def is_open(self) -> bool:
        return self.status not in {"finished", "canceled"}

    @property
    def is_dine_in(self) -> bool:
        return self.order_type == ORDER_TYPE_DINE_IN


class BillItem(LineItem):
    origin_order_id: int
    origin_item_index: int
    is_additional: bool = False


class Bill(BaseModel):
    """Conta derivada: um ou mais pedidos abertos da mesma mesa e cliente."""

    key: str
    id: int
    order_number: int
    status: str
    customer_name: str
    customer_whatsapp: str = ""
    order_type: str
    table_number: Optional[str] = None
    address: str = ""
    observation: str = ""
    payment_method: str = ""
    created_at: datetime
    items: list[BillItem] = Field(default_factory=list)
    total: Decimal = Decimal("0.00")
    order_ids: list[int] = Field(default_factory=list)
    is_grouped: bool = False


class ProductEntity(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    name: str
    price: Decimal = Decimal("0.00")
    category: str = "Lanches"
    description: str = ""
    prep_time: Optional[str] = None
    image: Optional[str] = None
    is_vegan: bool = False
    is_combo: bool = False
    is_highlighted: bool = False
    availability: str = "available"
    stock: Optional[int] = None
    inventory_id: Optional[int] = None
    sides: list[SelectedSide] = Field(default_factory=list)
    active: bool = True

    @field_validator("price", mode="before")
    @classmethod
    def _money(cls, value):
        return to_money(value)

    @field_validator("availability", mode="before")
    @classmethod
    def _availability(cls, value):
        value = (value or "available").strip().lower()
        return value if value in PRODUCT_AVAILABILITY else "available"


class InventoryItemEntity(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    name: str
    current_qty: float = 0
    min_qty: float = 0
    unit: str = "un"
    category: str = "outros"
    cost_price: Decimal = Decimal("0.00")
    active: bool = True

    @field_validator("cost_price", mode="before")
    @classmethod
    def _money(cls, value):
        return to_money(value)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value):
        value = (value or "outros").strip().lower()
        return value if value in INVENTORY_CATEGORIES else "outros"

    @property
    def stock_level(self) -> str:
        if self.current_qty <= self.min_qty:
            return "critical"
        if self.current_qty <= self.min_qty * 1.2:
            return "warning"
        return "ok"


class TenantEntity(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    name: str = "Loja Padrão"
    whatsapp: str = ""
    pix_key: str = ""
    payment_link: str = ""
    delivery_fee: Decimal = Decimal("0.00")
    delivery_time: str = "30-45 min"
    card_machine_fee: Decimal = Decimal("0.00")
    address: str = ""
    instagram: str = ""
    theme_color: str = "#ea580c"
    opening_hours: str = ""
    is_open: bool = True

    @field_validator("delivery_fee", "card_machine_fee", mode="before")
    @classmethod
    def _money(cls, value):
        return to_money(value)


class CouponEntity(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    code: str
    discount_value: Decimal = Decimal("0.00")
    max_uses: int = 0
    current_uses: int = 0
    is_active: bool = True
    user_id: Optional[str] = None
    customer_phone: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _code(cls, value):
        return (value or "").strip().upper()

    @field_validator("discount_value", mode="before")
    @classmethod
    def _money(cls, value):
        return to_money(value)

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses > 0 and self.current_uses >= self.max_uses
