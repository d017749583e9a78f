# plugins/core_memoria/contracts.py

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from .models import (
    Document, DocumentChunk, EmbeddingResult, FileIndexEntry, MemoryEntry, MemoryScope, VectorSearchResult,
)

# Collaborators the ranking aggregator reads from. Only embedding is async;
# the reference stores are in-process.


class EmbeddingProvider(ABC):
    @abstractmethod
    async def embed(self, texts: Sequence[str]) -> EmbeddingResult:
        raise NotImplementedError

    @abstractmethod
    def dimensions(self) -> int:
        raise NotImplementedError


class VectorStore(ABC):
    @abstractmethod
    def insert(self, id: str, vector: Sequence[float], metadata: Dict[str, Any]) -> None: raise NotImplementedError
    @abstractmethod
    def search(self, vector: Sequence[float], top_k: int, filter: Optional[Dict[str, Any]] = None) -> List[VectorSearchResult]: raise NotImplementedError
    @abstractmethod
    def delete(self, id: str) -> bool: raise NotImplementedError
    @abstractmethod
    def delete_by_metadata(self, key: str, value: Any) -> int: raise NotImplementedError
    @abstractmethod
    def count(self) -> int: raise NotImplementedError


class MemoryRepository(ABC):
    @abstractmethod
    def get(self, id: str) -> Optional[MemoryEntry]: raise NotImplementedError
    @abstractmethod
    def add(self, entry: MemoryEntry) -> MemoryEntry: raise NotImplementedError
    @abstractmethod
    def search_by_content(
        self, query: str, scope: Optional[MemoryScope] = None, source_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[MemoryEntry]: raise NotImplementedError


class DocumentChunkRepository(ABC):
    @abstractmethod
    def get(self, id: str) -> Optional[DocumentChunk]: raise NotImplementedError
    @abstractmethod
    def add(self, chunk: DocumentChunk) -> DocumentChunk: raise NotImplementedError
    @abstractmethod
    def search_by_content(
        self, query: str, document_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[DocumentChunk]: raise NotImplementedError


class DocumentRepository(ABC):
    @abstractmethod
    def get(self, id: str) -> Optional[Document]: raise NotImplementedError
    @abstractmethod
    def add(self, document: Document) -> Document: raise NotImplementedError


class FileMemoryIndex(ABC):
    @abstractmethod
    def write(self, entry: MemoryEntry) -> None: raise NotImplementedError
    @abstractmethod
    def search(
        self, query: str, scope: Optional[MemoryScope] = None, source_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[FileIndexEntry]: raise NotImplementedError
    @abstractmethod
    def get_entry_content(self, id: str) -> Optional[str]: raise NotImplementedError
