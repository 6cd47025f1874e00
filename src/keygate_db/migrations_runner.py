"""Programmatic Alembic runner for keygate migrations."""

from __future__ import annotations

from contextlib import contextmanager, nullcontext
from importlib import resources
from pathlib import Path
from typing import Iterator

from alembic import command
from alembic.config import Config
from sqlalchemy import text
from sqlalchemy.engine import make_url

from .engine import build_engine
from .settings import Settings, get_settings

__all__ = [
    "alembic_config",
    "migration_lock",
    "run_migrations",
]

MIGRATION_LOCK_KEY = 0x4B3947A7  # stable Postgres advisory lock key.


def _migrations_resource_path() -> Path:
    return resources.files("keygate_db") / "migrations"


@contextmanager
def migration_lock(settings: Settings) -> Iterator[None]:
    """Serialize concurrent migrators with a Postgres advisory lock."""
    engine = build_engine(settings)
    try:
        with engine.connect() as base_conn:
            conn = base_conn.execution_options(isolation_level="AUTOCOMMIT")
            conn.execute(text("SET statement_timeout = 0"))
            conn.execute(text("SELECT pg_advisory_lock(:key)"), {"key": MIGRATION_LOCK_KEY})
            try:
                yield
            finally:
                conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": MIGRATION_LOCK_KEY})
    finally:
        engine.dispose()


@contextmanager
def alembic_config(settings: Settings | None = None) -> Iterator[Config]:
    migrations_ref = _migrations_resource_path()
    with resources.as_file(migrations_ref) as migrations_dir:
        if not migrations_dir.exists():
            raise FileNotFoundError(f"Alembic migrations not found at {migrations_dir}")

        alembic_cfg = Config()
        alembic_cfg.set_main_option("script_location", str(migrations_dir))
        resolved = settings or get_settings()
        if not resolved.database_url:
            raise ValueError("Settings.database_url is required.")
        alembic_cfg.attributes["settings"] = resolved
        # ConfigParser treats % as interpolation; escape to preserve URL encoding.
        safe_url = str(resolved.database_url).replace("%", "%%")
        alembic_cfg.set_main_option("sqlalchemy.url", safe_url)
        yield alembic_cfg


def run_migrations(settings: Settings | None = None, *, revision: str = "head") -> None:
    resolved = settings or get_settings()
    backend = make_url(str(resolved.database_url)).get_backend_name()
    lock = migration_lock(resolved) if backend == "postgresql" else nullcontext()
    with lock:
        with alembic_config(resolved) as alembic_cfg:
            command.upgrade(alembic_cfg, revision)
