# plugins/core_llm/contracts.py

from __future__ import annotations
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from backend.core.contracts import ChatMessage

# --- 1. Streaming models ---

class StreamChunkType(str, Enum):
    TOKEN = "token"
    ERROR = "error"
    DONE = "done"


class StreamChunk(BaseModel):
    """One item of a model stream. A stream ends with exactly one `done` or `error` chunk."""
    type: StreamChunkType
    value: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def token(cls, value: str) -> "StreamChunk":
        return cls(type=StreamChunkType.TOKEN, value=value)

    @classmethod
    def done(cls) -> "StreamChunk":
        return cls(type=StreamChunkType.DONE)

    @classmethod
    def error(cls, message: str) -> "StreamChunk":
        return cls(type=StreamChunkType.ERROR, message=message)


class CompletionParams(BaseModel):
    model_id: Optional[str] = None
    temperature: float = 1.0
    max_tokens: int = 2048
    top_p: Optional[float] = None
    stop_sequences: List[str] = Field(default_factory=list)


class ModelInfo(BaseModel):
    id: str
    name: str
    provider_id: str
    context_window: int = 4096
    supports_streaming: bool = True


class HealthResult(BaseModel):
    ok: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None


# --- 2. Errors ---

class LLMErrorType(str, Enum):
    """Normalised error categories, used to decide whether a request is worth retrying."""
    AUTHENTICATION_ERROR = "authentication_error"
    RATE_LIMIT_ERROR = "rate_limit_error"
    PROVIDER_ERROR = "provider_error"
    NETWORK_ERROR = "network_error"
    INVALID_REQUEST_ERROR = "invalid_request_error"
    UNKNOWN_ERROR = "unknown_error"


class LLMError(BaseModel):
    error_type: LLMErrorType
    message: str
    is_retryable: bool
    provider_details: Optional[Dict[str, Any]] = Field(default_factory=dict)


class LLMRequestFailedError(Exception):
    """Raised once a request to a model-facing HTTP endpoint has exhausted its retries."""
    def __init__(self, message: str, last_error: Optional[LLMError] = None):
        super().__init__(message)
        self.last_error = last_error

    def __str__(self):
        if self.last_error:
            return f"{super().__str__()}\nLast known error ({self.last_error.error_type.value}): {self.last_error.message}"
        return super().__str__()


# --- 3. Provider interface ---

class ChatProvider(ABC):
    """
    A streaming chat-completion backend.

    `create_chat_completion` is an async generator of StreamChunk. Providers
    report failures as a final `error` chunk rather than raising.
    """
    id: str = ""
    name: str = ""

    @abstractmethod
    def create_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        params: CompletionParams,
    ) -> AsyncIterator[StreamChunk]:
        raise NotImplementedError

    @abstractmethod
    async def list_models(self) -> List[ModelInfo]:
        raise NotImplementedError

    async def health_check(self) -> HealthResult:
        return HealthResult(ok=True)
