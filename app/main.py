import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import CORS_ORIGINS, DATABASE_URL, ENV
from app.core.database import Base, SessionLocal, engine
from app.core.logging_setup import configure_logging
from app.core.startup_checks import apply_migrations, ensure_migrations_applied, validate_database_environment
from app.exceptions import register_exception_handlers
from app.middleware.observability import ObservabilityMiddleware
import app.models  # garante que os models são importados antes do create_all
import app.services.event_handlers  # registra handlers do event bus

from app.models.admin_user import AdminUser
from app.models.tenant import Tenant
from app.services.order_feed import order_feed
from app.services.passwords import hash_password
from app.routers.admin_audit import router as admin_audit_router
from app.routers.admin_auth import router as admin_auth_router
from app.routers.coupons import router as coupons_router
from app.routers.customers import router as customers_router
from app.routers.finance import router as finance_router
from app.routers.internal_metrics import router as internal_metrics_router
from app.routers.inventory import router as inventory_router
from app.routers.kds import router as kds_router
from app.routers.products import router as products_router
from app.routers.settings import router as settings_router
from app.routers.store import router as store_router

configure_logging()

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[ADMIN_BOOTSTRAP]"
DEFAULT_ADMIN_EMAIL = "admin@teste.com"
DEFAULT_TENANT_SLUG = "loja"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    await order_feed.start()
    yield
    await order_feed.stop()


app = FastAPI(
    title="Super SaaS Restaurante API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)


register_exception_handlers(app)


def _bootstrap_initial_admin() -> None:
    """Cria loja e admin iniciais a partir de DEV_ADMIN_* (apenas se ainda não existirem)."""
    password = os.getenv("DEV_ADMIN_PASSWORD", "").strip()
    if not password:
        logger.info("%s skipped: configure DEV_ADMIN_PASSWORD.", BOOTSTRAP_PREFIX)
        return

    email = (os.getenv("DEV_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL).strip() or DEFAULT_ADMIN_EMAIL).lower()
    slug = os.getenv("DEV_TENANT_SLUG", DEFAULT_TENANT_SLUG).strip().lower() or DEFAULT_TENANT_SLUG

    db = SessionLocal()
    try:
        tenant = db.query(Tenant).filter(Tenant.slug == slug).first()
        if tenant is None:
            tenant = Tenant(slug=slug, name=os.getenv("DEV_TENANT_NAME", "Loja Padrão"))
            db.add(tenant)
            db.flush()
            logger.info("%s tenant created slug=%s", BOOTSTRAP_PREFIX, slug)

        existing = (
            db.query(AdminUser)
            .filter(AdminUser.tenant_id == tenant.id, AdminUser.email == email)
            .first()
        )
        if existing:
            logger.info("%s exists id=%s tenant_id=%s", BOOTSTRAP_PREFIX, existing.id, tenant.id)
            db.commit()
            return

        db.add(
            AdminUser(
                tenant_id=tenant.id,
                email=email,
                name=os.getenv("DEV_ADMIN_NAME", "Admin"),
                password_hash=hash_password(password),
                role="owner",
                active=True,
            )
        )
        db.commit()
        logger.info("%s created tenant_id=%s email=%s", BOOTSTRAP_PREFIX, tenant.id, email)
    except Exception:
        db.rollback()
        logger.exception("%s ERROR bootstrap failed", BOOTSTRAP_PREFIX)
        raise
    finally:
        db.close()


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        apply_migrations(alembic_config_path=ALEMBIC_CONFIG_PATH)
        # Em SQLite (dev/test) o schema sai direto dos models
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        _bootstrap_initial_admin()
    except Exception:
        logger.exception("%s ERROR startup failed env=%s", BOOTSTRAP_PREFIX, ENV)
        raise


# Routers
app.include_router(store_router)
app.include_router(kds_router)
app.include_router(admin_auth_router)
app.include_router(admin_audit_router)
app.include_router(products_router)
app.include_router(inventory_router)
app.include_router(coupons_router)
app.include_router(customers_router)
app.include_router(finance_router)
app.include_router(settings_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok", "service": "super-saas-restaurante"}


@app.get("/health")
def health():
    return {"status": "ok"}
