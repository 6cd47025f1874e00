from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from keygate_api.main import create_app
from keygate_api.settings import Settings
from tests.utils import SeededWorkspace, seed_workspaces


@pytest.fixture()
def app(base_settings: Settings) -> FastAPI:
    return create_app(settings=base_settings)


@pytest_asyncio.fixture()
async def started_app(app: FastAPI) -> AsyncIterator[FastAPI]:
    async with LifespanManager(app):
        yield app


@pytest.fixture()
def api_seeded(started_app: FastAPI) -> SeededWorkspace:
    with started_app.state.db_sessionmaker() as session:
        return seed_workspaces(session)


@pytest_asyncio.fixture()
async def async_client(
    started_app: FastAPI,
    api_seeded: SeededWorkspace,
) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=started_app),
        base_url="http://testserver",
    ) as client:
        yield client
