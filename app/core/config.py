import os
from decimal import Decimal

from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./restaurante.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

# Sessão do painel administrativo
ADMIN_SESSION_SECRET = os.getenv("ADMIN_SESSION_SECRET", "")
ADMIN_SESSION_MAX_AGE_SECONDS = int(os.getenv("ADMIN_SESSION_MAX_AGE_SECONDS", "604800"))
ADMIN_SESSION_COOKIE_SECURE = _env_flag("ADMIN_SESSION_COOKIE_SECURE", "0" if IS_DEV else "1")
ADMIN_SESSION_COOKIE_SAMESITE = os.getenv(
    "ADMIN_SESSION_COOKIE_SAMESITE",
    "lax" if IS_DEV else "none",
).strip().lower()
if ADMIN_SESSION_COOKIE_SAMESITE not in {"lax", "strict", "none"}:
    ADMIN_SESSION_COOKIE_SAMESITE = "lax" if IS_DEV else "none"
# Browsers rejeitam SameSite=None sem Secure.
if ADMIN_SESSION_COOKIE_SAMESITE == "none" and not ADMIN_SESSION_COOKIE_SECURE:
    ADMIN_SESSION_COOKIE_SAMESITE = "lax"
ADMIN_SESSION_COOKIE_DOMAIN = os.getenv("ADMIN_SESSION_COOKIE_DOMAIN", "").strip() or None

# WhatsApp (links wa.me e Cloud API opcional)
WHATSAPP_COUNTRY_CODE = os.getenv("WHATSAPP_COUNTRY_CODE", "55").strip()
META_WA_ACCESS_TOKEN = os.getenv("META_WA_ACCESS_TOKEN", "")
META_WA_PHONE_NUMBER_ID = os.getenv("META_WA_PHONE_NUMBER_ID", "")
META_API_VERSION = os.getenv("META_API_VERSION", "v19.0")
WHATSAPP_CLOUD_ENABLED = bool(META_WA_ACCESS_TOKEN and META_WA_PHONE_NUMBER_ID)

# KDS
KDS_LATE_AFTER_MINUTES = int(os.getenv("KDS_LATE_AFTER_MINUTES", "15"))

# Financeiro (DRE)
# CMV estimado quando o produto não tem insumo vinculado
DEFAULT_CMV_RATIO = Decimal(os.getenv("DEFAULT_CMV_RATIO", "0.35"))
BREAK_EVEN_MARGIN = Decimal(os.getenv("BREAK_EVEN_MARGIN", "0.45"))
VIP_SPENT_THRESHOLD = Decimal(os.getenv("VIP_SPENT_THRESHOLD", "200"))

# Impressão
PRINT_SETTINGS_DIR = os.getenv("PRINT_SETTINGS_DIR", "data")
TICKETS_DIR = os.getenv("TICKETS_DIR", "tickets")
