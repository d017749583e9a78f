# backend/app.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware

from backend.container import Container
from backend.core.config import Settings, load_settings
from backend.core.contracts import Hooks
from backend.core.hooks import HookManager
from backend.core.loader import PluginLoader

logger = logging.getLogger(__name__)


def build_platform(settings: Settings = None):
    """
    Build the container and hook manager and load every plugin.
    Used by the app lifespan and by tests that do not need HTTP.
    """
    container = Container()
    hook_manager = HookManager(container)

    # 1. platform services
    resolved_settings = settings if settings is not None else load_settings()
    container.register("container", lambda: container)
    container.register("hook_manager", lambda: hook_manager)
    container.register("settings", lambda: resolved_settings)
    hook_manager.add_shared_context("settings", resolved_settings)

    # 2. plugins register synchronously
    loader = PluginLoader(container, hook_manager)
    loader.load_plugins()
    container.register("plugin_manifests", lambda: [p["manifest"] for p in loader.loaded])
    return container, hook_manager


def make_lifespan(settings: Settings = None):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container, hook_manager = build_platform(settings)

        logger.info("--- assembling FastAPI application ---")
        app.state.container = container
        hook_manager.add_shared_context("app", app)

        # 3. async initialisation: provider registries, in-memory stores
        logger.info("Triggering 'services_post_register' for async initialisation...")
        await hook_manager.trigger(Hooks.SERVICES_POST_REGISTER)

        # 4. routers contributed by plugins
        routers_to_add: list[APIRouter] = await hook_manager.filter(Hooks.COLLECT_API_ROUTERS, [])
        if routers_to_add:
            logger.info(f"Collected {len(routers_to_add)} routers.")
            for router in routers_to_add:
                app.include_router(router)
                logger.debug(f"Added router: prefix='{router.prefix}', tags={router.tags}")
        else:
            logger.warning("No API routers were collected from plugins.")

        await hook_manager.trigger(Hooks.APP_STARTUP_COMPLETE)
        logger.info("--- promptloom engine ready ---")
        yield
        logger.info("--- promptloom engine shutting down ---")
        await hook_manager.trigger(Hooks.APP_SHUTDOWN)

    return lifespan


def create_app(settings: Settings = None) -> FastAPI:
    """Application factory."""
    app = FastAPI(
        title="promptloom context engine",
        version="0.1.0",
        lifespan=make_lifespan(settings)
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app
