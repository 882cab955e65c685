import os
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

# Precisa estar no ambiente antes de qualquer import de app.core.config
_TMP_DIR = tempfile.mkdtemp(prefix="restaurante-tests-")
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("ADMIN_SESSION_SECRET", "test-secret")
os.environ["PRINT_SETTINGS_DIR"] = os.path.join(_TMP_DIR, "settings")
os.environ["TICKETS_DIR"] = os.path.join(_TMP_DIR, "tickets")
os.environ.pop("META_WA_ACCESS_TOKEN", None)

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.database import Base, get_db
from app.deps import require_admin_user
from app.exceptions import register_exception_handlers
from app.models.inventory import InventoryItem
from app.models.order import Order
from app.models.product import Product
from app.models.tenant import Tenant
from app.schemas.entities import OrderEntity

BASE_TIME = datetime(2024, 5, 10, 19, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def tenant(db):
    store = Tenant(
        id=1,
        slug="burger",
        name="Burger House",
        whatsapp="11999990000",
        delivery_fee=Decimal("5.00"),
        card_machine_fee=Decimal("2.00"),
        is_open=True,
    )
    db.add(store)
    db.commit()
    return store


@pytest.fixture()
def admin_user():
    return SimpleNamespace(id=7, tenant_id=1, role="owner", active=True, email="admin@example.com")


@pytest.fixture()
def build_client(db, admin_user):
    def _build(*routers, user=None):
        api = FastAPI()
        register_exception_handlers(api)
        for router in routers:
            api.include_router(router)
        api.dependency_overrides[get_db] = lambda: db
        api.dependency_overrides[require_admin_user] = lambda: user or admin_user
        return TestClient(api)

    return _build


def add_product(db, **overrides):
    data = {
        "tenant_id": 1,
        "name": "X-Burger",
        "price": Decimal("25.00"),
        "category": "Lanches",
        "availability": "available",
        "stock": None,
        "sides": [{"name": "Bacon", "price": "4.00"}, {"name": "Cheddar", "price": "3.50"}],
        "active": True,
    }
    data.update(overrides)
    product = Product(**data)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def add_inventory_item(db, **overrides):
    data = {
        "tenant_id": 1,
        "name": "Pão brioche",
        "unit": "un",
        "category": "suprimentos",
        "cost_price": Decimal("1.50"),
        "current_qty": 40,
        "min_qty": 10,
        "active": True,
    }
    data.update(overrides)
    item = InventoryItem(**data)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def line(name="X-Burger", quantity=1, unit_price="25.00", product_id=None, **extra):
    return {"product_id": product_id, "name": name, "quantity": quantity, "unit_price": unit_price, **extra}


def add_order(db, **overrides):
    data = {
        "tenant_id": 1,
        "order_number": overrides.get("id", 1),
        "customer_name": "Ana",
        "customer_whatsapp": "11988887777",
        "order_type": "delivery",
        "table_number": None,
        "items": [line()],
        "address": "Rua A, 10",
        "observation": "",
        "payment_method": "pix",
        "discount_applied": Decimal("0"),
        "delivery_fee": Decimal("0"),
        "total": Decimal("25.00"),
        "status": "pending",
        "created_at": BASE_TIME,
    }
    data.update(overrides)
    order = Order(**data)
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def make_order(order_id, minutes=0, **overrides) -> OrderEntity:
    data = {
        "id": order_id,
        "tenant_id": 1,
        "order_number": order_id,
        "customer_name": "Ana",
        "order_type": "delivery",
        "items": [line()],
        "total": "25.00",
        "status": "pending",
        "created_at": BASE_TIME + timedelta(minutes=minutes),
    }
    data.update(overrides)
    return OrderEntity.model_validate(data)


@pytest.fixture()
def factories():
    return SimpleNamespace(
        add_product=add_product,
        add_inventory_item=add_inventory_item,
        add_order=add_order,
        make_order=make_order,
        line=line,
        base_time=BASE_TIME,
    )
