# plugins/core_llm/__init__.py

import logging

from backend.core.contracts import Container, HookManager

from .contracts import ChatProvider, CompletionParams, StreamChunk, StreamChunkType, LLMRequestFailedError
from .registry import ProviderRegistry
from .providers.mock import MockChatProvider
from .providers.openai_compatible import OpenAICompatibleProvider
from .stream import format_sse, parse_sse, collect_stream

logger = logging.getLogger(__name__)

# --- Service factories ---

def _create_provider_registry() -> ProviderRegistry:
    """An empty registry; providers are added in `services_post_register`."""
    return ProviderRegistry()


# --- Hook implementations ---

async def populate_llm_providers(container: Container):
    """Register the built-in mock provider and, when configured, an OpenAI-compatible endpoint."""
    settings = container.resolve("settings")
    registry: ProviderRegistry = container.resolve("provider_registry")

    registry.register(MockChatProvider())

    llm = settings.llm
    if llm.base_url and not llm.debug_mode:
        registry.register(OpenAICompatibleProvider(
            base_url=llm.base_url,
            api_key=llm.api_key,
            default_model=llm.model_id or "gpt-4o-mini",
        ))
    elif llm.base_url:
        logger.info("LLM debug mode is on; the configured endpoint is not registered.")

    logger.info(f"LLM provider registry populated. Providers: {registry.get_all_provider_names()}")


# --- Main registration function ---
def register_plugin(container: Container, hook_manager: HookManager):
    logger.info("--> registering [core_llm] plugin...")

    container.register("provider_registry", _create_provider_registry, singleton=True)

    hook_manager.add_implementation("services_post_register", populate_llm_providers, plugin_name="core_llm")

    logger.info("plugin [core_llm] registered.")
