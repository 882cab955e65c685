from __future__ import annotations

import logging
import os
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from app.core.config import DATABASE_URL, IS_DEV, IS_PROD, IS_TEST

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"


def validate_database_environment() -> None:
    if IS_PROD and DATABASE_URL.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def _alembic_config(alembic_config_path: Path) -> Config:
    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")
    config = Config(str(alembic_config_path))
    config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))
    # Mantém o logging JSON já configurado pela aplicação
    config.attributes["configure_logger"] = False
    return config


def apply_migrations(*, alembic_config_path: Path) -> None:
    """Sobe o schema até o head quando AUTO_APPLY_MIGRATIONS estiver ligado."""
    auto_apply_raw = os.getenv("AUTO_APPLY_MIGRATIONS", "").strip().lower()
    if auto_apply_raw not in {"1", "true", "yes", "on"}:
        logger.info("%s auto migration skipped", MIGRATIONS_PREFIX)
        return

    logger.info("%s applying migrations to head", MIGRATIONS_PREFIX)
    try:
        command.upgrade(_alembic_config(alembic_config_path), "head")
    except Exception as exc:
        logger.critical("%s migration apply failed", MIGRATIONS_PREFIX, exc_info=True)
        raise RuntimeError("Automatic migration failed") from exc
    logger.info("%s migrations applied", MIGRATIONS_PREFIX)


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    if IS_TEST or IS_DEV:
        logger.info("%s skipped migration check outside production", MIGRATIONS_PREFIX)
        return

    script_directory = ScriptDirectory.from_config(_alembic_config(alembic_config_path))
    expected_heads = set(script_directory.get_heads())

    with engine.connect() as connection:
        inspector = inspect(connection)
        if "alembic_version" not in inspector.get_table_names():
            logger.critical("%s alembic_version table missing", MIGRATIONS_PREFIX)
            raise RuntimeError("Database has no migration state")

        current_rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()

    current_heads = {row[0] for row in current_rows if row and row[0]}
    if current_heads != expected_heads:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(current_heads),
            sorted(expected_heads),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s migration state verified", MIGRATIONS_PREFIX)
