"""Database migration utilities."""

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)


def get_alembic_config() -> Config:
    """Build the Alembic config from the project-root alembic.ini."""
    app_root = Path(__file__).parent.parent.parent
    alembic_ini = app_root / "alembic.ini"

    if not alembic_ini.exists():
        raise FileNotFoundError(f"alembic.ini not found at {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(app_root / "migrations"))

    return config


def run_migrations() -> None:
    """Upgrade the database schema to the latest revision."""
    logger.info("Running database migrations...")

    try:
        command.upgrade(get_alembic_config(), "head")
        logger.info("Database migrations completed successfully")
    except Exception as e:
        logger.error(f"Database migration failed: {e}")
        raise
