"""Database session management with tenant isolation."""

import json
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Generator, Optional
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from assistant_hub.infra.config import config


def _engine_options(database_url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": config.DEBUG, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        # SQLite connections are shared across the request thread pool
        options["connect_args"] = {"check_same_thread": False}
        return options
    options.update(
        poolclass=QueuePool,
        pool_size=10,  # Number of connections to maintain
        max_overflow=20,  # Max connections beyond pool_size
        pool_timeout=30,  # Seconds to wait for connection from pool
        pool_recycle=3600,  # Recycle connections after 1 hour
    )
    return options


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_session(tenant_id: Optional[str] = None) -> Generator[Session, None, None]:
    """
    Get a database session with tenant isolation.

    On PostgreSQL sets app.current_tenant_id for RLS enforcement. Queries
    must still filter by tenant_id explicitly.
    """
    session = SessionLocal()
    try:
        if tenant_id and session.get_bind().dialect.name == "postgresql":
            session.execute(text("SET app.current_tenant_id = :tenant_id"), {"tenant_id": tenant_id})
            session.commit()

        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI routes."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# Raw text() queries return driver-native values: PostgreSQL yields Decimal,
# date and dict, SQLite yields float, ISO strings and JSON text.

def as_float(value: Any) -> float:
    """Coerce a numeric column value to float, treating NULL as 0."""
    if value is None:
        return 0.0
    return float(value)


def as_date(value: Any) -> Optional[date]:
    """Coerce a date/datetime column value to a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def load_json(value: Any) -> Dict[str, Any]:
    """Decode a JSON column value into a dict."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    return json.loads(value)


def db_timestamp() -> str:
    """Current UTC time as a naive timestamp string accepted by every backend."""
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(sep=" ", timespec="seconds")
