# plugins/core_memoria/stores.py

import logging
import math
import threading
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .contracts import DocumentChunkRepository, DocumentRepository, MemoryRepository, VectorStore
from .models import Document, DocumentChunk, MemoryEntry, MemoryScope, VectorSearchResult

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """0.0 for vectors of different length or zero magnitude."""
    if len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    denominator = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 0.0 if denominator == 0 else dot / denominator


class InMemoryVectorStore(VectorStore):
    """Brute-force cosine search over vectors of a fixed dimension."""

    def __init__(self, dimensions: int):
        self.dimensions = dimensions
        self._entries: Dict[str, Tuple[List[float], Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _check(self, vector: Sequence[float], what: str = "Vector") -> None:
        if len(vector) != self.dimensions:
            raise ValueError(f"{what} dimension mismatch: expected {self.dimensions}, got {len(vector)}")

    def insert(self, id: str, vector: Sequence[float], metadata: Dict[str, Any]) -> None:
        self._check(vector)
        with self._lock:
            self._entries[id] = (list(vector), {k: _plain(v) for k, v in metadata.items()})

    def insert_batch(self, entries: Sequence[Tuple[str, Sequence[float], Dict[str, Any]]]) -> None:
        for _, vector, _ in entries:
            self._check(vector)
        for id, vector, metadata in entries:
            self.insert(id, vector, metadata)

    def search(self, vector: Sequence[float], top_k: int, filter: Optional[Dict[str, Any]] = None) -> List[VectorSearchResult]:
        self._check(vector, "Query")
        wanted = {k: _plain(v) for k, v in (filter or {}).items()}

        with self._lock:
            snapshot = list(self._entries.items())

        results = [
            VectorSearchResult(id=id, score=cosine_similarity(vector, stored), metadata=dict(metadata))
            for id, (stored, metadata) in snapshot
            if all(metadata.get(k) == v for k, v in wanted.items())
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:top_k]

    def delete(self, id: str) -> bool:
        with self._lock:
            return self._entries.pop(id, None) is not None

    def delete_by_metadata(self, key: str, value: Any) -> int:
        value = _plain(value)
        with self._lock:
            doomed = [id for id, (_, metadata) in self._entries.items() if metadata.get(key) == value]
            for id in doomed:
                del self._entries[id]
        return len(doomed)

    def count(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class InMemoryMemoryRepository(MemoryRepository):
    def __init__(self):
        self._entries: Dict[str, MemoryEntry] = {}

    def add(self, entry: MemoryEntry) -> MemoryEntry:
        self._entries[entry.id] = entry
        return entry

    def get(self, id: str) -> Optional[MemoryEntry]:
        return self._entries.get(id)

    def delete(self, id: str) -> bool:
        return self._entries.pop(id, None) is not None

    def list(self) -> List[MemoryEntry]:
        return list(self._entries.values())

    def search_by_content(
        self, query: str, scope: Optional[MemoryScope] = None, source_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[MemoryEntry]:
        needle = query.lower()
        hits = [
            e for e in self._entries.values()
            if needle in e.content.lower()
            and (scope is None or e.scope == MemoryScope(scope))
            and (source_id is None or e.source_id == source_id)
        ]
        # newest first
        hits.sort(key=lambda e: e.created_at, reverse=True)
        return hits[:limit] if limit else hits


class InMemoryDocumentRepository(DocumentRepository):
    def __init__(self):
        self._documents: Dict[str, Document] = {}

    def add(self, document: Document) -> Document:
        self._documents[document.id] = document
        return document

    def get(self, id: str) -> Optional[Document]:
        return self._documents.get(id)


class InMemoryDocumentChunkRepository(DocumentChunkRepository):
    def __init__(self):
        self._chunks: Dict[str, DocumentChunk] = {}

    def add(self, chunk: DocumentChunk) -> DocumentChunk:
        self._chunks[chunk.id] = chunk
        return chunk

    def get(self, id: str) -> Optional[DocumentChunk]:
        return self._chunks.get(id)

    def search_by_content(
        self, query: str, document_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[DocumentChunk]:
        needle = query.lower()
        hits = [
            c for c in self._chunks.values()
            if needle in c.content.lower() and (document_id is None or c.document_id == document_id)
        ]
        hits.sort(key=lambda c: (c.document_id, c.chunk_index))
        return hits[:limit] if limit else hits
