"""Database engine and transaction scopes.

Every service method runs inside ``db.session()``. Methods that must compose
with a caller's work (credits deducted for an order, credits granted for a
purchase) take an optional session and open it through ``db.join()``, so the
whole unit of work commits or rolls back together.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from quickleads.logging_config import get_logger
from quickleads.settings import settings
from quickleads.storage.models import Base

logger = get_logger(__name__)

# Seconds a SQLite writer waits for a concurrent transaction to commit
SQLITE_BUSY_TIMEOUT = 15


def _connect_args(database_url: str) -> dict:
    if not database_url.startswith("sqlite"):
        return {}
    # Webhook deliveries and API requests write from different threads; the
    # ledger's conditional UPDATEs queue on the write lock instead of failing.
    return {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}


class Database:
    """Database connection manager.

    ``session()`` opens a new transaction; ``join(session)`` reuses the
    caller's one when given.
    """

    def __init__(self, database_url: str | None = None):
        """Initialize database connection.

        Args:
            database_url: Database URL (defaults to settings)
        """
        self.database_url = database_url or settings.database_url
        self.engine = create_engine(
            self.database_url,
            echo=False,
            pool_pre_ping=True,
            connect_args=_connect_args(self.database_url),
        )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        logger.info(
            "database_initialized",
            url=self.engine.url.render_as_string(hide_password=True),
            backend=self.engine.dialect.name,
        )

    def create_tables(self) -> None:
        """Create users, purchases, orders and affiliate tables."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("tables_created", tables=sorted(Base.metadata.tables))

    def drop_tables(self) -> None:
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("tables_dropped")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Transactional scope: commit on success, roll back on any error.

        Yields:
            Database session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def join(self, session: Session | None = None) -> Generator[Session, None, None]:
        """Yield ``session`` untouched, or a fresh transactional scope.

        The owner of a joined session decides when it commits.
        """
        if session is not None:
            yield session
            return
        with self.session() as own:
            yield own


# Global database instance
db = Database()
