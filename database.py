import logging

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import get_settings

logger = logging.getLogger(__name__)


def _create_engine() -> Engine:
    settings = get_settings()
    from sqlalchemy import create_engine

    if settings.database_url.startswith("sqlite"):
        eng = create_engine(
            settings.database_url, connect_args={"check_same_thread": False}
        )
        event.listen(eng, "connect", _enable_sqlite_pragmas)
        return eng

    # Bounded pool: callers beyond pool_size + max_overflow wait up to
    # pool_timeout for a connection to be returned.
    return create_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_secs,
        pool_pre_ping=True,
    )


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def init_db(bind: Engine = engine) -> None:
    import models  # noqa: F401

    Base.metadata.create_all(bind)


def check_connection(bind: Engine = engine) -> None:
    with bind.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("database connection ok")

