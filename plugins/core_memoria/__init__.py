# plugins/core_memoria/__init__.py

import logging

from backend.core.contracts import Container, HookManager

from .embeddings import LocalHashEmbeddingProvider, OpenAIEmbeddingProvider
from .file_memory import MarkdownFileMemory
from .indexer import MemoryIndexer
from .models import MemoryEntry, MemorySearchResult
from .search import MemorySearch, format_memory_context
from .stores import (
    InMemoryDocumentChunkRepository, InMemoryDocumentRepository, InMemoryMemoryRepository, InMemoryVectorStore,
)

logger = logging.getLogger(__name__)

# --- Service factories ---

def _create_embedding_provider(container: Container):
    config = container.resolve("settings").embedding
    if config.provider == "openai":
        return OpenAIEmbeddingProvider(
            base_url=config.base_url,
            api_key=config.api_key,
            model=config.model,
            dimensions=config.dimensions,
            max_retries=config.max_retries,
            timeout_seconds=config.timeout_seconds,
        )
    if config.provider != "local":
        logger.warning(f"Unknown embedding provider '{config.provider}', using local hash vectors.")
    return LocalHashEmbeddingProvider(dimensions=config.dimensions)


def _create_vector_store(container: Container) -> InMemoryVectorStore:
    return InMemoryVectorStore(dimensions=container.resolve("embedding_provider").dimensions())


def _create_file_memory(container: Container):
    directory = container.resolve("settings").memory.file_memory_dir
    return MarkdownFileMemory(directory) if directory else None


def _create_memory_search(container: Container) -> MemorySearch:
    config = container.resolve("settings").memory
    return MemorySearch(
        memory_repo=container.resolve("memory_repository"),
        embedding_provider=container.resolve("embedding_provider"),
        vector_store=container.resolve("vector_store"),
        file_memory=container.resolve("file_memory"),
        doc_chunk_repo=container.resolve("doc_chunk_repository"),
        document_repo=container.resolve("document_repository"),
        default_limit=config.default_limit,
        min_score=config.min_score,
        recency_window_days=config.recency_window_days,
    )


def _create_memory_indexer(container: Container) -> MemoryIndexer:
    return MemoryIndexer(
        memory_repo=container.resolve("memory_repository"),
        embedding_provider=container.resolve("embedding_provider"),
        vector_store=container.resolve("vector_store"),
        file_memory=container.resolve("file_memory"),
        doc_chunk_repo=container.resolve("doc_chunk_repository"),
        document_repo=container.resolve("document_repository"),
    )


# --- Main registration function ---
def register_plugin(container: Container, hook_manager: HookManager):
    logger.info("--> registering [core_memoria] plugin...")

    container.register("memory_repository", lambda: InMemoryMemoryRepository(), singleton=True)
    container.register("document_repository", lambda: InMemoryDocumentRepository(), singleton=True)
    container.register("doc_chunk_repository", lambda: InMemoryDocumentChunkRepository(), singleton=True)
    container.register("embedding_provider", _create_embedding_provider, singleton=True)
    container.register("vector_store", _create_vector_store, singleton=True)
    container.register("file_memory", _create_file_memory, singleton=True)
    container.register("memory_search", _create_memory_search, singleton=True)
    container.register("memory_indexer", _create_memory_indexer, singleton=True)

    logger.info("plugin [core_memoria] registered.")
