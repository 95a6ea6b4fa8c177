"""
bizreg Database Connection
SQLAlchemy engine and session management

Ingestion runs execute inside worker threads, so the engine is synchronous and
every store operation opens its own short-lived session.
"""

from contextlib import contextmanager
from typing import Iterator, Optional
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from bizreg.core.config import settings

# Declarative base for models
Base = declarative_base()


def _prepare_database_url(url: str) -> tuple[str, dict]:
    """
    Prepare DATABASE_URL for the sync driver.

    PostgreSQL URLs are normalized for psycopg2 and get a statement timeout;
    SQLite URLs are passed through with thread checks disabled so the
    worker pool can share the engine.
    """
    if url.startswith("sqlite"):
        return url, {"check_same_thread": False}

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)

    if "sslmode" not in query_params and parsed.hostname not in ("localhost", "127.0.0.1"):
        query_params["sslmode"] = ["require"]

    new_query = urlencode(query_params, doseq=True)
    clean_url = urlunparse(parsed._replace(query=new_query))

    clean_url = clean_url.replace("postgresql+asyncpg://", "postgresql://")
    clean_url = clean_url.replace("postgres://", "postgresql://")

    connect_args = {
        "options": "-c statement_timeout=30000"  # 30 second timeout
    }

    return clean_url, connect_args


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create a sync engine for the given database URL"""
    database_url, connect_args = _prepare_database_url(url)

    kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
        "connect_args": connect_args,
    }
    if not database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to an engine"""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


# Application-wide engine (wiring layer only)
engine = create_db_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
SessionLocal = create_session_factory(engine)


@contextmanager
def get_db(session_factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """
    Get a database session (closed on exit).

    Usage:
        with get_db(session_factory) as db:
            result = db.execute(query)

    Args:
        session_factory: 세션 팩토리 (None이면 SessionLocal)
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None) -> None:
    """Initialize database (create tables if needed)"""
    # Models must be imported so their tables are registered on Base.metadata
    import bizreg.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def close_db() -> None:
    """Close database connection pool"""
    engine.dispose()
