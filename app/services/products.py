from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import BusinessRuleError, NotFoundError, PersistenceError
from app.models.inventory import InventoryItem
from app.models.product import Product
from app.schemas.entities import PRODUCT_AVAILABILITY

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "name",
    "price",
    "category",
    "description",
    "prep_time",
    "image",
    "is_vegan",
    "is_combo",
    "is_highlighted",
    "availability",
    "stock",
    "inventory_id",
    "sides",
    "active",
)


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao salvar produto")
        raise PersistenceError() from exc


def list_products(
    db: Session,
    tenant_id: int,
    category: Optional[str] = None,
    availability: Optional[str] = None,
    highlighted: Optional[bool] = None,
) -> list[Product]:
    query = db.query(Product).filter(Product.tenant_id == tenant_id)
    if category:
        query = query.filter(Product.category == category)
    if availability:
        query = query.filter(Product.availability == availability)
    if highlighted is not None:
        query = query.filter(Product.is_highlighted.is_(highlighted))
    return query.order_by(Product.category.asc(), Product.name.asc()).all()


def get_product(db: Session, tenant_id: int, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id, Product.tenant_id == tenant_id).first()
    if not product:
        raise NotFoundError("Produto não encontrado")
    return product


def _apply(db: Session, product: Product, data: dict[str, Any]) -> None:
    for key in _EDITABLE_FIELDS:
        if key in data:
            setattr(product, key, data[key])

    if product.availability not in PRODUCT_AVAILABILITY:
        raise BusinessRuleError("Disponibilidade inválida", status_code=422)
    if product.inventory_id is not None:
        linked = (
            db.query(InventoryItem)
            .filter(InventoryItem.id == product.inventory_id, InventoryItem.tenant_id == product.tenant_id)
            .first()
        )
        if linked is None:
            raise BusinessRuleError("Insumo vinculado não encontrado", status_code=422)
    # Estoque zerado tira o produto do cardápio
    if product.stock is not None and int(product.stock) <= 0:
        product.stock = 0
        product.availability = "out_of_stock"


def create_product(db: Session, tenant_id: int, data: dict[str, Any]) -> Product:
    product = Product(tenant_id=tenant_id, availability="available", sides=[])
    _apply(db, product, data)
    db.add(product)
    _commit(db)
    db.refresh(product)
    return product


def update_product(db: Session, tenant_id: int, product_id: int, data: dict[str, Any]) -> Product:
    product = get_product(db, tenant_id, product_id)
    try:
        _apply(db, product, data)
    except BusinessRuleError:
        db.rollback()
        raise
    _commit(db)
    db.refresh(product)
    return product


def toggle_availability(db: Session, tenant_id: int, product_id: int) -> Product:
    product = get_product(db, tenant_id, product_id)
    product.availability = "available" if product.availability == "out_of_stock" else "out_of_stock"
    _commit(db)
    db.refresh(product)
    return product


def delete_product(db: Session, tenant_id: int, product_id: int) -> None:
    product = get_product(db, tenant_id, product_id)
    db.delete(product)
    _commit(db)
