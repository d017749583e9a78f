# plugins/core_memoria/tests/test_memory_search.py

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from plugins.core_memoria.contracts import EmbeddingProvider, VectorStore
from plugins.core_memoria.models import (
    Document, DocumentChunk, EmbeddingResult, FileIndexEntry, MemoryEntry, MemorySearchResult, SearchSource,
    VectorSearchResult,
)
from plugins.core_memoria.search import MemorySearch, format_memory_context, merge_results, rank_results
from plugins.core_memoria.stores import (
    InMemoryDocumentChunkRepository, InMemoryDocumentRepository, InMemoryMemoryRepository,
)

pytestmark = pytest.mark.asyncio

NOW = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)


class FixedEmbedding(EmbeddingProvider):
    async def embed(self, texts):
        return EmbeddingResult(embeddings=[[1.0, 0.0] for _ in texts], model="fixed")

    def dimensions(self):
        return 2


class FailingEmbedding(FixedEmbedding):
    async def embed(self, texts):
        raise ConnectionError("embedding service down")


class ScriptedVectorStore(VectorStore):
    """Returns canned hits and records the filter it was given."""
    def __init__(self, hits: List[VectorSearchResult]):
        self.hits = hits
        self.calls = []

    def insert(self, id, vector, metadata): pass
    def delete(self, id): return False
    def delete_by_metadata(self, key, value): return 0
    def count(self): return len(self.hits)

    def search(self, vector, top_k, filter=None):
        self.calls.append((top_k, filter))
        return self.hits[:top_k]


class StubFileMemory:
    def __init__(self, records, contents):
        self.records = records
        self.contents = contents

    def search(self, query, scope=None, source_id=None, limit=None):
        return self.records

    def get_entry_content(self, id):
        return self.contents.get(id)

    def write(self, entry):
        pass


def _entry(entry_id: str, content: str, age_days: float = 0, **kwargs) -> MemoryEntry:
    return MemoryEntry(id=entry_id, content=content, created_at=NOW - timedelta(days=age_days), **kwargs)


def _search(repo, **kwargs) -> MemorySearch:
    return MemorySearch(memory_repo=repo, clock=lambda: NOW, **kwargs)


class TestRanking:
    async def test_ranking_formula(self):
        result = MemorySearchResult(entry=_entry("m1", "x", importance=0.5), score=0.8, source=SearchSource.VECTOR)
        ranked = rank_results([result], NOW, 30)
        assert ranked[0].score == pytest.approx(0.81)
        assert ranked[0].base_score == 0.8

    async def test_recency_decays_to_zero_over_window(self):
        old = MemorySearchResult(entry=_entry("old", "x", age_days=45, importance=0.0), score=1.0, source=SearchSource.VECTOR)
        half = MemorySearchResult(entry=_entry("half", "x", age_days=15, importance=0.0), score=1.0, source=SearchSource.VECTOR)
        ranked = rank_results([old, half], NOW, 30)
        assert [r.entry.id for r in ranked] == ["half", "old"]
        assert ranked[0].score == pytest.approx(0.7 + 0.1)
        assert ranked[1].score == pytest.approx(0.7)

    async def test_missing_importance_defaults_to_half(self):
        result = MemorySearchResult(entry=_entry("m1", "x", importance=None, age_days=60), score=0.0, source=SearchSource.FILE)
        assert rank_results([result], NOW, 30)[0].score == pytest.approx(0.05)

    async def test_zero_window_gives_no_recency(self):
        result = MemorySearchResult(entry=_entry("m1", "x", importance=0.0), score=1.0, source=SearchSource.VECTOR)
        assert rank_results([result], NOW, 0)[0].score == pytest.approx(0.7)

    async def test_search_with_zero_window_still_ranks(self):
        repo = InMemoryMemoryRepository()
        repo.add(_entry("m1", "The dragon sleeps.", importance=1.0))
        results = await _search(repo, recency_window_days=0).search("dragon", min_score=0)
        assert results[0].score == pytest.approx(0.5 * 0.7 + 0.1)

    async def test_merge_keeps_higher_score(self):
        entry = _entry("m1", "dragons")
        vector = MemorySearchResult(entry=entry, score=0.9, source=SearchSource.VECTOR)
        keyword = MemorySearchResult(entry=entry, score=0.5, source=SearchSource.KEYWORD)

        merged = merge_results([vector], [keyword])
        assert len(merged) == 1
        assert merged[0].score == 0.9
        assert merged[0].source == SearchSource.VECTOR
        assert merge_results([keyword], [vector])[0].score == 0.9


class TestMemorySearch:
    async def test_vector_and_keyword_hits_are_deduplicated(self):
        repo = InMemoryMemoryRepository()
        repo.add(_entry("m1", "The dragon sleeps under the mountain.", importance=0.5))
        store = ScriptedVectorStore([VectorSearchResult(id="m1", score=0.9, metadata={"entry_id": "m1"})])

        results = await _search(repo, embedding_provider=FixedEmbedding(), vector_store=store).search("dragon")

        assert len(results) == 1
        assert results[0].base_score == 0.9
        assert results[0].source == SearchSource.VECTOR
        assert results[0].score == pytest.approx(0.9 * 0.7 + 0.2 + 0.05)

    async def test_vector_search_asks_for_twice_the_limit_with_filter(self):
        store = ScriptedVectorStore([])
        search = _search(InMemoryMemoryRepository(), embedding_provider=FixedEmbedding(), vector_store=store)
        await search.search("q", scope="character", source_id="alice", category="fact", limit=4)
        assert store.calls == [(8, {"scope": "character", "source_id": "alice", "category": "fact"})]

    async def test_vector_hits_without_entry_id_or_entry_are_skipped(self):
        store = ScriptedVectorStore([
            VectorSearchResult(id="a", score=0.9, metadata={}),
            VectorSearchResult(id="b", score=0.9, metadata={"entry_id": "ghost"}),
        ])
        search = _search(InMemoryMemoryRepository(), embedding_provider=FixedEmbedding(), vector_store=store)
        assert await search.search("q") == []

    async def test_vector_hit_falls_back_to_document_chunk(self):
        docs, chunks = InMemoryDocumentRepository(), InMemoryDocumentChunkRepository()
        docs.add(Document(id="d1", title="Bestiary"))
        chunks.add(DocumentChunk(id="c1", document_id="d1", content="Wyverns have two legs.", created_at=NOW))
        store = ScriptedVectorStore([VectorSearchResult(id="c1", score=0.8, metadata={"entry_id": "c1", "type": "doc_chunk"})])

        results = await _search(
            InMemoryMemoryRepository(), embedding_provider=FixedEmbedding(), vector_store=store,
            doc_chunk_repo=chunks, document_repo=docs,
        ).search("wyvern")

        entry = results[0].entry
        assert entry.content == "Document: Bestiary\nWyverns have two legs."
        assert entry.type.value == "document"
        assert entry.source_id == "d1"
        assert entry.importance == 0.4

    async def test_keyword_paths_use_base_scores(self):
        repo = InMemoryMemoryRepository()
        repo.add(_entry("m1", "Alice likes tea."))
        chunks = InMemoryDocumentChunkRepository()
        chunks.add(DocumentChunk(id="c1", document_id="d1", content="Tea ceremonies.", created_at=NOW))

        results = await _search(repo, doc_chunk_repo=chunks).search("tea", min_score=0)
        by_id = {r.entry.id: r for r in results}

        assert by_id["m1"].base_score == 0.5
        assert by_id["c1"].base_score == 0.45
        # no document title available
        assert by_id["c1"].entry.content == "Tea ceremonies."

    async def test_scoped_keyword_search_skips_documents(self):
        chunks = InMemoryDocumentChunkRepository()
        chunks.add(DocumentChunk(id="c1", document_id="d1", content="Tea ceremonies.", created_at=NOW))
        results = await _search(InMemoryMemoryRepository(), doc_chunk_repo=chunks).search("tea", scope="chat", min_score=0)
        assert results == []

    async def test_file_tier_prefers_full_content(self):
        record = FileIndexEntry(id="f1", date="2026-01-31", category="fact", scope="global", preview="Short", created_at=NOW)
        file_memory = StubFileMemory([record], {"f1": "Short preview expanded to the full note."})

        results = await _search(InMemoryMemoryRepository(), file_memory=file_memory).search("short", min_score=0)

        assert results[0].source == SearchSource.FILE
        assert results[0].base_score == 0.4
        assert results[0].entry.content == "Short preview expanded to the full note."

    async def test_failed_vector_path_degrades_to_keyword(self):
        repo = InMemoryMemoryRepository()
        repo.add(_entry("m1", "The dragon sleeps."))
        store = ScriptedVectorStore([])

        results = await _search(repo, embedding_provider=FailingEmbedding(), vector_store=store).search("dragon")

        assert [r.entry.id for r in results] == ["m1"]
        assert results[0].source == SearchSource.KEYWORD

    async def test_failed_keyword_path_keeps_file_results(self):
        class BrokenRepo(InMemoryMemoryRepository):
            def search_by_content(self, *args, **kwargs):
                raise RuntimeError("db locked")

        record = FileIndexEntry(id="f1", date="2026-01-31", category="fact", scope="global", preview="Dragons nap.", created_at=NOW)
        file_memory = StubFileMemory([record], {})

        results = await _search(BrokenRepo(), file_memory=file_memory).search("dragon", min_score=0)

        assert [r.entry.id for r in results] == ["f1"]
        assert results[0].source == SearchSource.FILE
        assert results[0].entry.content == "Dragons nap."

    async def test_all_paths_failing_returns_empty(self):
        class BrokenRepo(InMemoryMemoryRepository):
            def search_by_content(self, *args, **kwargs):
                raise RuntimeError("db locked")

        results = await _search(BrokenRepo(), embedding_provider=FailingEmbedding(), vector_store=ScriptedVectorStore([])).search("x")
        assert results == []

    async def test_min_score_and_limit(self):
        repo = InMemoryMemoryRepository()
        for i in range(5):
            repo.add(_entry(f"new{i}", f"note {i}", age_days=i))
        repo.add(_entry("ancient", "note ancient", age_days=400, importance=0.0))

        search = _search(repo)
        results = await search.search("note", limit=3)
        assert len(results) == 3
        assert [r.entry.id for r in results] == ["new0", "new1", "new2"]

        # 0.5 * 0.7 = 0.35 for the stale entry
        everything = await search.search("note", limit=10, min_score=0.36)
        assert "ancient" not in {r.entry.id for r in everything}


async def test_format_memory_context():
    results = [
        MemorySearchResult(entry=_entry("a", "Alice likes tea.", category="preference"), score=0.9, source="keyword"),
        MemorySearchResult(entry=_entry("b", "Bob is tall.", scope="chat"), score=0.8, source="keyword"),
    ]
    assert format_memory_context(results) == (
        "## Relevant Memory\n\n"
        "1. [preference] Alice likes tea.\n"
        "2. [fact (chat)] Bob is tall."
    )
    assert format_memory_context([]) == ""
