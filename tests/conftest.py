"""Shared pytest fixtures for keygate tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import keygate_db.models  # noqa: F401
from keygate_api.core.context import WorkspaceContext
from keygate_api.features.rbac import RbacService
from keygate_api.settings import Settings
from keygate_db import metadata
from keygate_db.engine import build_engine, build_sessionmaker
from tests.utils import SeededWorkspace, seed_workspaces


@pytest.fixture()
def base_settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        database_auto_create=True,
        app_version="test",
    )


@pytest.fixture()
def db_engine(base_settings: Settings) -> Iterator[Engine]:
    # One in-memory database per test.
    engine = build_engine(base_settings)
    metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def db_sessionmaker(db_engine: Engine) -> sessionmaker[Session]:
    return build_sessionmaker(db_engine)


@pytest.fixture()
def db_session(db_sessionmaker: sessionmaker[Session]) -> Iterator[Session]:
    session = db_sessionmaker()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seeded(db_session: Session) -> SeededWorkspace:
    return seed_workspaces(db_session)


@pytest.fixture()
def context(seeded: SeededWorkspace) -> WorkspaceContext:
    return WorkspaceContext(workspace_id=seeded.workspace_id, actor_id="user_admin")


@pytest.fixture()
def rbac(db_session: Session, context: WorkspaceContext) -> RbacService:
    return RbacService(session=db_session, context=context)


@pytest.fixture()
def rbac_for(db_session: Session) -> Callable[[str], RbacService]:
    """Build a service scoped to another workspace on the same session."""

    def _build(workspace_id: str) -> RbacService:
        return RbacService(
            session=db_session,
            context=WorkspaceContext(workspace_id=workspace_id, actor_id="user_other"),
        )

    return _build
