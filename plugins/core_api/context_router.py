# plugins/core_api/context_router.py

import logging
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from backend.core.dependencies import Service
from plugins.core_llm.contracts import ModelInfo
from plugins.core_llm.stream import format_sse
from plugins.core_prompt.models import TurnRequest
from .models import ContextPreview, HealthReport

logger = logging.getLogger(__name__)

context_api_router = APIRouter(
    prefix="/api/context",
    tags=["Context Engine"]
)


@context_api_router.post("/preview", response_model=ContextPreview, summary="Preview the prompt of a turn")
async def preview_context(request: TurnRequest, pipeline=Depends(Service("chat_pipeline"))):
    """
    Runs the turn up to prompt assembly without calling a model. Trigger
    effects on variables still apply.
    """
    prepared = await pipeline.prepare(request)
    return ContextPreview.from_prepared(prepared)


@context_api_router.post("/stream", summary="Run a turn and stream the reply")
async def stream_turn(request: TurnRequest, pipeline=Depends(Service("chat_pipeline"))):
    """Server-Sent Events: `token` events, then a single `done` or `error` event."""
    async def event_source():
        async for chunk in pipeline.stream(request):
            yield format_sse(chunk)

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@context_api_router.get("/models", response_model=List[ModelInfo], summary="List models of every provider")
async def list_models(providers=Depends(Service("provider_registry"))):
    return await providers.list_all_models()


@context_api_router.get("/health", response_model=HealthReport)
async def health(
    providers=Depends(Service("provider_registry")),
    manifests=Depends(Service("plugin_manifests")),
    vector_store=Depends(Service("vector_store")),
):
    return HealthReport(
        providers=providers.get_all_provider_names(),
        plugins=[m.get("name", "") for m in manifests],
        details={"vector_count": vector_store.count()},
    )
