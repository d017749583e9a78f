# plugins/core_memoria/indexer.py
"""Writes memories and documents into the stores MemorySearch reads from."""
import logging
import math
from typing import List, Optional

from pydantic import BaseModel

from .contracts import (
    DocumentChunkRepository, DocumentRepository, EmbeddingProvider, FileMemoryIndex, MemoryRepository, VectorStore,
)
from .models import Document, DocumentChunk, MemoryEntry

logger = logging.getLogger(__name__)

TOKENS_PER_WORD = 1.3


class IngestResult(BaseModel):
    document: Document
    chunks: int
    embeddings: int


def chunk_by_token_window(text: str, max_tokens: int = 800, overlap: int = 120) -> List[str]:
    """
    Fixed-size word windows with overlap, sized from the ~1.3 tokens per
    word estimate. A short tail is emitted as its own final chunk.
    """
    words = text.split()
    max_words = math.floor(max_tokens / TOKENS_PER_WORD)
    overlap_words = math.floor(overlap / TOKENS_PER_WORD)
    if not words or max_words <= 0:
        return []

    chunks = []
    start = 0
    step = max(1, max_words - overlap_words)
    while start < len(words):
        chunks.append(" ".join(words[start:start + max_words]))
        start += step
        if start < len(words) and len(words) - start < overlap_words:
            chunks.append(" ".join(words[start:]))
            break
    return chunks


class MemoryIndexer:
    def __init__(
        self,
        memory_repo: MemoryRepository,
        embedding_provider: Optional[EmbeddingProvider] = None,
        vector_store: Optional[VectorStore] = None,
        file_memory: Optional[FileMemoryIndex] = None,
        doc_chunk_repo: Optional[DocumentChunkRepository] = None,
        document_repo: Optional[DocumentRepository] = None,
        embedding_batch_size: int = 32,
    ):
        self.memory_repo = memory_repo
        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.file_memory = file_memory
        self.doc_chunk_repo = doc_chunk_repo
        self.document_repo = document_repo
        self.embedding_batch_size = embedding_batch_size

    @property
    def _can_embed(self) -> bool:
        return self.embedding_provider is not None and self.vector_store is not None

    async def add_memory(self, entry: MemoryEntry) -> MemoryEntry:
        self.memory_repo.add(entry)

        if self.file_memory is not None:
            self.file_memory.write(entry)

        if self._can_embed:
            embedded = await self.embedding_provider.embed([entry.content])
            if embedded.embeddings:
                metadata = {
                    "entry_id": entry.id,
                    "type": entry.type.value,
                    "scope": entry.scope.value,
                    "category": entry.category.value,
                }
                if entry.source_id:
                    metadata["source_id"] = entry.source_id
                self.vector_store.insert(entry.id, embedded.embeddings[0], metadata)
        return entry

    async def ingest_text(self, title: str, text: str, max_tokens: int = 800, overlap: int = 120) -> IngestResult:
        if self.document_repo is None or self.doc_chunk_repo is None:
            raise RuntimeError("Document ingestion needs both a document and a chunk repository.")

        pieces = chunk_by_token_window(text, max_tokens=max_tokens, overlap=overlap)
        document = self.document_repo.add(Document(title=title, chunk_count=len(pieces)))
        chunks = [
            self.doc_chunk_repo.add(DocumentChunk(
                document_id=document.id,
                content=piece,
                chunk_index=i,
                token_count=math.ceil(len(piece.split()) * TOKENS_PER_WORD),
            ))
            for i, piece in enumerate(pieces)
        ]

        embedded_count = 0
        if self._can_embed:
            for start in range(0, len(chunks), self.embedding_batch_size):
                batch = chunks[start:start + self.embedding_batch_size]
                try:
                    embedded = await self.embedding_provider.embed([c.content for c in batch])
                except Exception:
                    logger.error(f"Embedding batch failed for document {document.id} at chunk {start}", exc_info=True)
                    continue
                for chunk, vector in zip(batch, embedded.embeddings):
                    self.vector_store.insert(chunk.id, vector, {
                        "type": "doc_chunk",
                        "document_id": document.id,
                        "chunk_index": chunk.chunk_index,
                        "entry_id": chunk.id,
                        "scope": "global",
                        "category": "document",
                    })
                    embedded_count += 1

        logger.info(f"Ingested document '{title}': {len(chunks)} chunks, {embedded_count} embeddings.")
        return IngestResult(document=document, chunks=len(chunks), embeddings=embedded_count)
