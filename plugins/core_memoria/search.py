# plugins/core_memoria/search.py
"""
Unified retrieval across the vector, keyword and file memory tiers.

Each tier produces candidates with a path score. Candidates are merged by
entry id (the higher path score wins) and then ranked with

    final = path_score * 0.7 + recency * 0.2 + importance * 0.1

where recency decays linearly to zero over the recency window.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from .contracts import (
    DocumentChunkRepository, DocumentRepository, EmbeddingProvider, FileMemoryIndex, MemoryRepository, VectorStore,
)
from .models import (
    DocumentChunk, MemoryCategory, MemoryEntry, MemoryScope, MemorySearchQuery, MemorySearchResult, MemoryType,
    SearchSource,
)

logger = logging.getLogger(__name__)

VECTOR_WEIGHT = 0.7
RECENCY_WEIGHT = 0.2
IMPORTANCE_WEIGHT = 0.1

KEYWORD_MEMORY_SCORE = 0.5
KEYWORD_DOCUMENT_SCORE = 0.45
FILE_SCORE = 0.4
DOCUMENT_IMPORTANCE = 0.4
DEFAULT_IMPORTANCE = 0.5

DAY_MS = 24 * 60 * 60 * 1000


def _utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def merge_results(*paths: Iterable[MemorySearchResult]) -> List[MemorySearchResult]:
    """Combine candidates by entry id, keeping the higher path score. First-seen order is kept."""
    merged: Dict[str, MemorySearchResult] = {}
    for results in paths:
        for result in results:
            existing = merged.get(result.entry.id)
            if existing is None or existing.score < result.score:
                merged[result.entry.id] = result
    return list(merged.values())


def rank_results(
    results: Iterable[MemorySearchResult],
    now: datetime,
    recency_window_days: float,
) -> List[MemorySearchResult]:
    window_ms = recency_window_days * DAY_MS
    now = _utc(now)

    ranked = []
    for r in results:
        age_ms = (now - _utc(r.entry.created_at)).total_seconds() * 1000
        # a non-positive window gives no recency credit
        recency = max(0.0, 1 - age_ms / window_ms) if window_ms > 0 else 0.0
        importance = r.entry.importance if r.entry.importance is not None else DEFAULT_IMPORTANCE
        final = r.score * VECTOR_WEIGHT + recency * RECENCY_WEIGHT + importance * IMPORTANCE_WEIGHT
        ranked.append(r.model_copy(update={"score": final, "base_score": r.score}))

    ranked.sort(key=lambda r: r.score, reverse=True)
    return ranked


def format_memory_context(results: List[MemorySearchResult]) -> str:
    """A numbered `## Relevant Memory` block for the prompt; empty when there is nothing to show."""
    if not results:
        return ""
    lines = []
    for i, r in enumerate(results, start=1):
        scope = r.entry.scope.value
        label = f"[{r.entry.category.value}{f' ({scope})' if scope != 'global' else ''}]"
        lines.append(f"{i}. {label} {r.entry.content}")
    return "\n".join(["## Relevant Memory", "", *lines])


class MemorySearch:
    def __init__(
        self,
        memory_repo: MemoryRepository,
        embedding_provider: Optional[EmbeddingProvider] = None,
        vector_store: Optional[VectorStore] = None,
        file_memory: Optional[FileMemoryIndex] = None,
        doc_chunk_repo: Optional[DocumentChunkRepository] = None,
        document_repo: Optional[DocumentRepository] = None,
        default_limit: int = 10,
        min_score: float = 0.3,
        recency_window_days: float = 30.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.memory_repo = memory_repo
        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.file_memory = file_memory
        self.doc_chunk_repo = doc_chunk_repo
        self.document_repo = document_repo
        self.default_limit = default_limit
        self.min_score = min_score
        self.recency_window_days = recency_window_days
        self.clock = clock

    async def search(
        self,
        query: str,
        scope: Optional[MemoryScope] = None,
        source_id: Optional[str] = None,
        category: Optional[MemoryCategory] = None,
        limit: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> List[MemorySearchResult]:
        options = MemorySearchQuery(
            query=query, scope=scope, source_id=source_id, category=category, limit=limit, min_score=min_score,
        )
        limit = options.limit or self.default_limit
        floor = options.min_score if options.min_score is not None else self.min_score

        vector_hits, keyword_hits, file_hits = await asyncio.gather(
            self._guarded("Vector", self._vector_search(options, limit * 2)),
            self._guarded("Keyword", self._keyword_search(options, limit)),
            self._guarded("File memory", self._file_search(options, limit)),
        )

        merged = merge_results(vector_hits, keyword_hits, file_hits)
        ranked = rank_results(merged, self.clock(), self.recency_window_days)
        results = [r for r in ranked if r.score >= floor][:limit]
        logger.debug(
            f"Memory search {query!r}: vector={len(vector_hits)} keyword={len(keyword_hits)} "
            f"file={len(file_hits)} -> {len(results)} results."
        )
        return results

    @staticmethod
    async def _guarded(path: str, work: Awaitable[List[MemorySearchResult]]) -> List[MemorySearchResult]:
        try:
            return await work
        except Exception:
            logger.warning(f"{path} search failed; continuing with the other paths.", exc_info=True)
            return []

    # --- hydration ---

    def _document_entry(self, chunk: DocumentChunk) -> MemoryEntry:
        document = self.document_repo.get(chunk.document_id) if self.document_repo else None
        label = f"Document: {document.title}\n" if document else ""
        return MemoryEntry(
            id=chunk.id,
            type=MemoryType.DOCUMENT,
            category=MemoryCategory.DOCUMENT,
            scope=MemoryScope.GLOBAL,
            source_id=chunk.document_id,
            content=f"{label}{chunk.content}".strip(),
            importance=DOCUMENT_IMPORTANCE,
            auto_captured=False,
            created_at=chunk.created_at,
        )

    def _hydrate(self, entry_id: str, meta_type: Optional[str]) -> Optional[MemoryEntry]:
        entry = self.memory_repo.get(entry_id)
        if self.doc_chunk_repo is not None and (entry is None or meta_type == "doc_chunk"):
            chunk = self.doc_chunk_repo.get(entry_id)
            if chunk is not None:
                return self._document_entry(chunk)
        return entry

    # --- retrieval paths ---

    async def _vector_search(self, options: MemorySearchQuery, top_k: int) -> List[MemorySearchResult]:
        if self.embedding_provider is None or self.vector_store is None:
            return []

        embedded = await self.embedding_provider.embed([options.query])
        if not embedded.embeddings:
            return []

        metadata_filter = {}
        if options.scope:
            metadata_filter["scope"] = options.scope.value
        if options.source_id:
            metadata_filter["source_id"] = options.source_id
        if options.category:
            metadata_filter["category"] = options.category.value

        results = []
        for hit in self.vector_store.search(embedded.embeddings[0], top_k, metadata_filter or None):
            entry_id = hit.metadata.get("entry_id")
            if not entry_id:
                continue
            entry = self._hydrate(entry_id, hit.metadata.get("type"))
            if entry is not None:
                results.append(MemorySearchResult(entry=entry, score=hit.score, source=SearchSource.VECTOR))
        return results

    async def _keyword_search(self, options: MemorySearchQuery, limit: int) -> List[MemorySearchResult]:
        results = [
            MemorySearchResult(entry=entry, score=KEYWORD_MEMORY_SCORE, source=SearchSource.KEYWORD)
            for entry in self.memory_repo.search_by_content(
                options.query, scope=options.scope, source_id=options.source_id, limit=limit
            )
        ]

        if self.doc_chunk_repo is not None and options.scope in (None, MemoryScope.GLOBAL):
            for chunk in self.doc_chunk_repo.search_by_content(options.query, document_id=options.source_id, limit=limit):
                results.append(MemorySearchResult(
                    entry=self._document_entry(chunk), score=KEYWORD_DOCUMENT_SCORE, source=SearchSource.KEYWORD,
                ))
        return results

    async def _file_search(self, options: MemorySearchQuery, limit: int) -> List[MemorySearchResult]:
        if self.file_memory is None:
            return []

        results = []
        for record in self.file_memory.search(options.query, scope=options.scope, source_id=options.source_id, limit=limit):
            content = self.file_memory.get_entry_content(record.id)
            entry = MemoryEntry(
                id=record.id,
                type=MemoryType.MEMORY,
                category=record.category,
                scope=record.scope,
                source_id=record.source_id,
                content=content if content is not None else record.preview,
                importance=DEFAULT_IMPORTANCE,
                created_at=record.created_at,
            )
            results.append(MemorySearchResult(entry=entry, score=FILE_SCORE, source=SearchSource.FILE))
        return results
