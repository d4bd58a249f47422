"""
core/database.py -- Engine construction and store error translation.

Every store (auth/store.py, auth/sessions.py, tracker/store.py) builds its
engine through make_engine() so SQLite connections get the same treatment:
cross-thread use allowed, WAL journal mode, and a bounded busy timeout.

The busy timeout is the bound on how long a request waits for another
request's write lock. When it is exceeded SQLite raises OperationalError
("database is locked"); store_errors() turns that into StoreUnavailable so
callers see a transient failure that is distinct from AlreadyRevoked or
Forbidden. Nothing here retries -- retrying a timed-out rotate could reuse
an already-consumed refresh token.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from core.errors import StoreUnavailable

logger = logging.getLogger("tasktrack.db")


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str, timeout_seconds: float = 5.0) -> Engine:
    """Create an engine for db_url. SQLite URLs get WAL mode and a busy timeout."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout_seconds
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate lock timeouts and connection failures into StoreUnavailable.

    IntegrityError is deliberately left alone: it carries meaning (duplicate
    email, sequence collision) that the calling store interprets.
    """
    try:
        yield
    except OperationalError as exc:
        logger.error("Store operation %s failed: %s", operation, exc.orig)
        raise StoreUnavailable() from exc


def ping(engine: Engine) -> bool:
    """Return True if the database answers a trivial query."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except OperationalError:
        return False
