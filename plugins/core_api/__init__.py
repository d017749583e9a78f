# plugins/core_api/__init__.py
import logging
from typing import List

from fastapi import APIRouter

from backend.core.contracts import Container, HookManager

logger = logging.getLogger(__name__)


async def provide_own_routers(routers: List[APIRouter]) -> List[APIRouter]:
    """Hook implementation: add this plugin's routers to the application's collection."""
    # imported here so the router modules only load once the app collects routes
    from .context_router import context_api_router
    from .system_router import system_api_router

    logger.debug(f"[core_api] Appending context_api_router ({len(context_api_router.routes)} routes)")
    routers.append(context_api_router)
    routers.append(system_api_router)
    return routers


# --- Main Registration Function ---
def register_plugin(container: Container, hook_manager: HookManager):
    logger.info("--> registering [core_api] plugin...")

    hook_manager.add_implementation(
        "collect_api_routers",
        provide_own_routers,
        priority=100,
        plugin_name="core_api"
    )
    logger.info("plugin [core_api] registered.")
