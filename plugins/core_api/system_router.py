# plugins/core_api/system_router.py

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from backend.core.dependencies import Service
from backend.core.contracts import HookManager

logger = logging.getLogger(__name__)

system_api_router = APIRouter(
    prefix="/api",
    tags=["System Platform API"]
)


@system_api_router.get("/plugins/manifest", response_model=List[Dict[str, Any]], summary="Get All Plugin Manifests")
async def get_all_plugins_manifest(manifests=Depends(Service("plugin_manifests"))):
    """The manifest.json of every loaded plugin, in load order."""
    return manifests


@system_api_router.get("/system/hooks/manifest", response_model=Dict[str, List[str]], summary="Get Backend Hooks Manifest")
async def get_backend_hooks_manifest(
    hook_manager: HookManager = Depends(Service("hook_manager"))
):
    return {"hooks": hook_manager.registered_hooks()}
