# =======================================================================================
# keytrack/database.py - Database Management
# =======================================================================================
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.pool import QueuePool

from .config import config
from .schema import metadata

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    if make_url(url).get_backend_name() == "sqlite":
        # SQLite has no row locks and rejects READ COMMITTED; writers are
        # serialized with BEGIN IMMEDIATE instead (see _serialize_sqlite_writers)
        return {"connect_args": {"check_same_thread": False}, "future": True}
    return {
        "poolclass": QueuePool,
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "isolation_level": "READ COMMITTED",
        "future": True,
    }


def _serialize_sqlite_writers(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class DatabaseManager:
    """Manages database connections and transactions."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or config.DB_URL
        self.engine: Engine = create_engine(self.url, **_engine_options(self.url))
        if self.engine.dialect.name == "sqlite":
            _serialize_sqlite_writers(self.engine)

    @contextmanager
    def get_connection(self) -> Iterator[Connection]:
        """Get a transactional connection; commits on exit, rolls back on error."""
        with self.engine.begin() as conn:
            yield conn

    def create_tables(self) -> None:
        logger.info("Creating tables on %s", self.engine.url.render_as_string(hide_password=True))
        metadata.create_all(self.engine)

    def fetch_one(self, query: str, params: dict = None):
        """Fetch a single result."""
        with self.get_connection() as conn:
            result = conn.execute(text(query), params or {})
            return result.mappings().first()

    def fetch_all(self, query: str, params: dict = None):
        """Fetch all results."""
        with self.get_connection() as conn:
            result = conn.execute(text(query), params or {})
            return result.mappings().all()

    def dispose(self) -> None:
        self.engine.dispose()
