# plugins/core_memoria/models.py
from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

# --- Core data models for the memory tiers ---

class MemoryType(str, Enum):
    MEMORY = "memory"
    SUMMARY = "summary"
    ENTITY = "entity"
    DOCUMENT = "document"


class MemoryCategory(str, Enum):
    SUMMARY = "summary"
    ENTITY = "entity"
    PREFERENCE = "preference"
    DECISION = "decision"
    FACT = "fact"
    DOCUMENT = "document"
    CODE = "code"
    AUTO_CAPTURED = "auto_captured"


class MemoryScope(str, Enum):
    GLOBAL = "global"
    CHARACTER = "character"
    CHAT = "chat"


class SearchSource(str, Enum):
    VECTOR = "vector"
    KEYWORD = "keyword"
    FILE = "file"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryEntry(BaseModel):
    """A single remembered fact, note or document chunk."""
    id: str = Field(default_factory=lambda: uuid4().hex)
    type: MemoryType = MemoryType.MEMORY
    category: MemoryCategory = MemoryCategory.FACT
    scope: MemoryScope = MemoryScope.GLOBAL
    source_id: Optional[str] = None
    content: str
    importance: Optional[float] = Field(default=0.5, ge=0.0, le=1.0)
    auto_captured: bool = False
    created_at: datetime = Field(default_factory=_now)


class Document(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    title: str
    source_type: str = "text"
    source_uri: Optional[str] = None
    chunk_count: int = 0
    created_at: datetime = Field(default_factory=_now)


class DocumentChunk(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    document_id: str
    content: str
    chunk_index: int = 0
    token_count: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)


class FileIndexEntry(BaseModel):
    """An entry of the file-backed memory index; `preview` holds the first 100 characters."""
    id: str
    date: str
    category: MemoryCategory
    scope: MemoryScope
    source_id: Optional[str] = None
    preview: str
    created_at: datetime


class MemorySearchResult(BaseModel):
    entry: MemoryEntry
    score: float = Field(..., description="Path score before ranking, combined relevance after.")
    source: SearchSource
    base_score: Optional[float] = Field(default=None, description="The pre-ranking path score, kept after ranking.")


class VectorSearchResult(BaseModel):
    id: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EmbeddingResult(BaseModel):
    embeddings: List[List[float]] = Field(default_factory=list)
    model: str
    token_count: int = 0


class MemorySearchQuery(BaseModel):
    query: str
    scope: Optional[MemoryScope] = None
    source_id: Optional[str] = None
    category: Optional[MemoryCategory] = None
    limit: Optional[int] = Field(default=None, gt=0)
    min_score: Optional[float] = Field(default=None, ge=0.0)
