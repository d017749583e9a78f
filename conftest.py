# conftest.py

from typing import AsyncGenerator, Tuple

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from backend.app import build_platform, create_app
from backend.core.config import Settings
from backend.core.contracts import Container, HookManager, Hooks


@pytest.fixture
def settings() -> Settings:
    """Defaults, with every chat request routed to the mock provider."""
    test_settings = Settings()
    test_settings.llm.debug_mode = True
    return test_settings


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """An AsyncClient over the app, with its lifespan (plugin loading, router collection) running."""
    async with LifespanManager(app) as manager:
        transport = ASGITransport(app=manager.app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest.fixture
def container(client: AsyncClient, app: FastAPI) -> Container:
    """The container of the running app from `client`."""
    return app.state.container


@pytest_asyncio.fixture
async def platform(settings: Settings) -> Tuple[Container, HookManager]:
    """Every plugin loaded and initialised, without HTTP."""
    container, hook_manager = build_platform(settings)
    await hook_manager.trigger(Hooks.SERVICES_POST_REGISTER)
    return container, hook_manager
