"""SQLModel database engine and session management."""

import logging
from pathlib import Path

from sqlmodel import SQLModel, create_engine, Session

from dlmm_bot.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)


def _ensure_sqlite_dir():
    if not settings.database_url.startswith("sqlite:///"):
        return
    db_path = Path(settings.database_url.removeprefix("sqlite:///"))
    if not db_path.parent.exists():
        logger.info(f"Creating database directory {db_path.parent}")
        db_path.parent.mkdir(parents=True, exist_ok=True)


def create_db_and_tables():
    """Create all tables. Called on startup."""
    import dlmm_bot.models  # noqa: F401  registers table metadata

    _ensure_sqlite_dir()
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
