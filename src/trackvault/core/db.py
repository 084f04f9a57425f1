import datetime
import shutil
from typing import Any

from loguru import logger
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import sessionmaker

from trackvault.core.config import settings
from trackvault.core.models import Base

# check_same_thread=False lets scanner worker threads each open their own session
# on the shared engine; timeout (s) makes SQLite wait instead of failing with
# "database is locked" while another worker commits.
engine = create_engine(
    settings.DB_URL,
    echo=settings.DB_ECHO,
    connect_args={"check_same_thread": False, "timeout": 30},
)


# Configure WAL Mode on connection (SQLite Only)
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Sets performance pragmas for SQLite.

    WAL (Write-Ahead Logging) lets parallel scanner workers read while one of
    them writes. Foreign keys are off by default in SQLite and must be enabled
    per connection.
    """
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=30000")  # 30 seconds
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Session Factory
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


def backup_db(max_backups: int = 5) -> None:
    """Create a point-in-time backup of the current database file.

    Args:
        max_backups: Number of most recent backups to keep.
    """
    src = settings.DB_PATH
    if not src.exists():
        return

    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    dst = src.parent / f"{settings.DB_NAME}.{timestamp}.bak"

    try:
        shutil.copy2(src, dst)
        logger.info(f"Database backed up to {dst}")

        backups = sorted(src.parent.glob(f"{settings.DB_NAME}.*.bak"))
        if len(backups) > max_backups:
            for b in backups[:-max_backups]:
                b.unlink()
    except (OSError, shutil.Error) as e:
        logger.error(f"Failed to backup database: {e}")


def init_db(force: bool = False) -> None:
    """Initialize database tables according to current models.

    Args:
        force: If True, drops all existing tables and re-creates them.
            Use with extreme caution as this results in total data loss.
    """
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    if force:
        logger.warning(
            "FORCED database initialization. Existing data might be lost."
        )
        backup_db()
        Base.metadata.drop_all(engine)

    Base.metadata.create_all(engine)
    logger.info("Database tables ready.")
