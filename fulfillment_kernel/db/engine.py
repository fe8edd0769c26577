"""
Engine and session management for the fulfillment database.

One engine per process, created by ``init_engine_from_url``.  PostgreSQL
connections are pooled and run at READ COMMITTED: status changes are
guarded by conditional UPDATEs (see ``services.base``), so nothing relies
on a stricter isolation level.  SQLite is accepted for tests and
embedding; it gets no pool tuning and may be shared across threads.

``session_scope`` is the only place a business transaction commits.
"""

import atexit
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from fulfillment_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_NOT_READY = "database engine not initialized; call init_engine_from_url() first"


@dataclass
class _Database:
    engine: Engine | None = None
    sessions: sessionmaker[Session] | None = field(default=None, repr=False)

    def require_engine(self) -> Engine:
        if self.engine is None:
            raise RuntimeError(_NOT_READY)
        return self.engine

    def require_sessions(self) -> sessionmaker[Session]:
        if self.sessions is None:
            raise RuntimeError(_NOT_READY)
        return self.sessions

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.sessions = None


_db = _Database()


def _engine_options(url: URL, **pool: int | bool) -> dict:
    if url.get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {"isolation_level": "READ COMMITTED", **pool}


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Create the process engine, replacing any previous one.

    Pool arguments apply to server databases only.
    """
    url = make_url(database_url)
    options = _engine_options(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
    )

    _db.dispose()
    _db.engine = create_engine(url, echo=echo, **options)
    _db.sessions = sessionmaker(bind=_db.engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": url.get_backend_name(),
            "database": url.database,
            "pooled": "pool_size" in options,
        },
    )
    return _db.engine


def get_engine() -> Engine:
    return _db.require_engine()


def get_session_factory() -> sessionmaker[Session]:
    """Session factory bound to the process engine.

    Worker threads each take their own session from it.
    """
    return _db.require_sessions()


@contextmanager
def session_scope(
    session_factory: Callable[[], Session] | None = None,
) -> Iterator[Session]:
    """Run a block as one transaction: commit on success, roll back on error.

    Usage:
        with session_scope(factory) as session:
            BatchService(session, ...).release(...)
    """
    factory = session_factory or _db.require_sessions()
    session = factory()
    try:
        yield session
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    else:
        session.commit()
        logger.debug("transaction_committed")
    finally:
        session.close()


def _load_models():
    from fulfillment_kernel.db.base import Base

    # Importing the packages registers every table on Base.metadata.
    import fulfillment_kernel.models  # noqa: F401
    import fulfillment_kernel.services.sequence_service  # noqa: F401

    return Base.metadata


def create_tables() -> None:
    """Create the schema and seed the well-known sequence counters."""
    from fulfillment_kernel.services.sequence_service import SequenceService

    metadata = _load_models()
    metadata.create_all(get_engine())
    with session_scope() as session:
        SequenceService(session).initialize_sequences()
    logger.info("tables_created", extra={"table_count": len(metadata.tables)})


def drop_tables() -> None:
    """Drop the whole schema. Test teardown only."""
    _load_models().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    _db.dispose()


atexit.register(_db.dispose)
