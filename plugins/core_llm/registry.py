# plugins/core_llm/registry.py

import logging
from typing import Dict, List, Optional

from .contracts import ChatProvider, ModelInfo

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Holds ChatProvider instances by id. Its instance is managed by the DI
    container and populated during `services_post_register`.
    """
    def __init__(self):
        self._providers: Dict[str, ChatProvider] = {}

    def register(self, provider: ChatProvider) -> None:
        if provider.id in self._providers:
            logger.warning(f"Overwriting LLM provider '{provider.id}'.")
        self._providers[provider.id] = provider
        logger.info(f"LLM provider registered: {provider.name} ({provider.id})")

    def unregister(self, provider_id: str) -> None:
        if self._providers.pop(provider_id, None) is None:
            logger.warning(f"Attempted to unregister a non-existent provider: '{provider_id}'.")

    def get(self, provider_id: str) -> Optional[ChatProvider]:
        return self._providers.get(provider_id)

    def get_all_provider_names(self) -> List[str]:
        return list(self._providers.keys())

    async def list_all_models(self) -> List[ModelInfo]:
        models: List[ModelInfo] = []
        for provider in self._providers.values():
            try:
                models.extend(await provider.list_models())
            except Exception as e:
                logger.warning(f"Failed to list models for provider '{provider.id}': {e}")
        return models

    def resolve(self, provider_id: Optional[str] = None) -> ChatProvider:
        """
        The named provider, or the first registered one when no id is given.
        Raises LookupError when nothing matches.
        """
        if provider_id:
            provider = self._providers.get(provider_id)
            if provider is None:
                raise LookupError(f"Provider not found: {provider_id}")
            return provider

        for provider in self._providers.values():
            return provider
        raise LookupError("No providers registered")
