"""Alembic environment configuration."""

from __future__ import annotations

from logging.config import fileConfig
from typing import Any, TypeGuard

from alembic import context

from keygate_db.base import Base
from keygate_db.engine import build_engine
from keygate_db.settings import DatabaseSettings, Settings

config = context.config

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name)


def _import_models() -> None:
    import keygate_db.models  # noqa: F401


_import_models()
target_metadata = Base.metadata


def _is_database_settings(value: Any) -> TypeGuard[DatabaseSettings]:
    required = (
        "database_url",
        "database_echo",
        "database_pool_size",
        "database_max_overflow",
        "database_pool_timeout",
        "database_pool_recycle",
        "database_connect_timeout_seconds",
        "database_statement_timeout_ms",
    )
    return all(hasattr(value, key) for key in required)


def _build_settings() -> DatabaseSettings:
    provided = config.attributes.get("settings")
    if _is_database_settings(provided):
        return provided
    override_url = config.get_main_option("sqlalchemy.url")
    if override_url:
        override_url = override_url.replace("%%", "%")
        return Settings(_env_file=None, database_url=override_url)
    return Settings()


def run_migrations_offline() -> None:
    settings = _build_settings()
    context.configure(
        url=str(settings.database_url),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    existing_connection = config.attributes.get("connection")
    if existing_connection is not None:
        context.configure(
            connection=existing_connection,
            target_metadata=target_metadata,
        )
        with context.begin_transaction():
            context.run_migrations()
        return

    settings = _build_settings()
    engine = build_engine(settings)
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
