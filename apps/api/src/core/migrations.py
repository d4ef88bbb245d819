"""Schema migration helpers."""

from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.database import get_engine
from src.logging_config import get_logger

logger = get_logger(__name__)

APP_ROOT = Path(__file__).parent.parent.parent


def get_alembic_config() -> Config:
    """Load alembic.ini from the app root."""
    alembic_ini = APP_ROOT / "alembic.ini"
    if not alembic_ini.exists():
        raise FileNotFoundError(f"alembic.ini not found at {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(APP_ROOT / "migrations"))
    return config


def get_head_revision() -> str | None:
    """Latest revision shipped with the code."""
    return ScriptDirectory.from_config(get_alembic_config()).get_current_head()


def run_migrations() -> None:
    """Upgrade the database to head. Blocking; call before serving."""
    logger.info("Running database migrations")
    command.upgrade(get_alembic_config(), "head")
    logger.info("Database migrations completed", revision=get_head_revision())


async def check_migrations_current() -> bool:
    """True if the database is at the shipped head revision."""
    try:
        async with get_engine().connect() as conn:
            result = await conn.execute(
                text("SELECT version_num FROM alembic_version LIMIT 1")
            )
            row = result.fetchone()
    except SQLAlchemyError:
        logger.warning("Could not read alembic_version", exc_info=True)
        return False

    return row is not None and row[0] == get_head_revision()
