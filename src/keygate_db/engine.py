"""Shared database engine helpers (Postgres, plus SQLite for tests and local dev)."""

from __future__ import annotations

import re
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .settings import DatabaseSettings

_STATEMENT_TIMEOUT_RE = re.compile(r"(?:^|\s)-c\s+statement_timeout=\S+")


def _append_statement_timeout(options: str, timeout_ms: int) -> str:
    cleaned = _STATEMENT_TIMEOUT_RE.sub("", options or "").strip()
    snippet = f"-c statement_timeout={int(timeout_ms)}"
    if not cleaned:
        return snippet
    return f"{cleaned} {snippet}"


def _apply_postgres_timeouts(url: URL, settings: DatabaseSettings) -> URL:
    query = dict(url.query or {})
    if settings.database_connect_timeout_seconds is not None:
        query["connect_timeout"] = str(int(settings.database_connect_timeout_seconds))
    if settings.database_statement_timeout_ms is not None:
        options = str(query.get("options", "")).strip()
        query["options"] = _append_statement_timeout(options, settings.database_statement_timeout_ms)
    return url.set(query=query)


def _create_postgres_engine(url: URL, settings: DatabaseSettings) -> Engine:
    if url.drivername in {"postgresql", "postgres"}:
        url = url.set(drivername="postgresql+psycopg")
    if not url.drivername.startswith("postgresql+psycopg"):
        raise ValueError("For Postgres, use postgresql+psycopg://... (psycopg is required).")

    url = _apply_postgres_timeouts(url, settings)

    return create_engine(
        url,
        echo=settings.database_echo,
        pool_pre_ping=True,
        pool_use_lifo=True,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
    )


def _is_sqlite_memory(url: URL) -> bool:
    database = url.database or ""
    return database in {"", ":memory:"} or "mode=memory" in str(url)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite issues its own BEGIN lazily and breaks SAVEPOINT; take over transaction control.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _create_sqlite_engine(url: URL, settings: DatabaseSettings) -> Engine:
    kwargs: dict = {"echo": settings.database_echo}
    if _is_sqlite_memory(url):
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    _enable_sqlite_savepoints(engine)
    return engine


def build_engine(settings: DatabaseSettings) -> Engine:
    if not settings.database_url:
        raise ValueError("Settings.database_url is required.")
    url = make_url(str(settings.database_url))
    backend = url.get_backend_name()

    if backend == "postgresql":
        return _create_postgres_engine(url, settings)
    if backend == "sqlite":
        return _create_sqlite_engine(url, settings)
    raise ValueError("Unsupported database backend. Use postgresql+psycopg:// or sqlite://.")


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Iterator[Session]:
    """Standard session scope with commit/rollback."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def assert_tables_exist(
    engine: Engine,
    required_tables: list[str],
    *,
    schema: str | None = None,
) -> None:
    """Raise if required tables are missing."""
    inspector = inspect(engine)
    missing = [t for t in required_tables if not inspector.has_table(t, schema=schema)]
    if missing:
        raise RuntimeError(
            f"Missing required tables: {', '.join(missing)}. "
            "Run `keygate-db migrate` before starting keygate services."
        )


__all__ = [
    "assert_tables_exist",
    "build_engine",
    "build_sessionmaker",
    "session_scope",
]
