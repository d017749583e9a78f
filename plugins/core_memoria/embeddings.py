# plugins/core_memoria/embeddings.py
import hashlib
import logging
import math
from typing import Optional, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from plugins.core_llm.contracts import LLMRequestFailedError
from plugins.core_llm.providers.base import translate_http_error
from .contracts import EmbeddingProvider
from .models import EmbeddingResult

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = 1536


class _RetryableEmbeddingError(Exception):
    def __init__(self, cause: Exception):
        super().__init__(str(cause))
        self.cause = cause


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    Embeddings from an OpenAI-compatible `/embeddings` endpoint.

    Network errors and 5xx/429 responses are retried with exponential backoff;
    anything else fails immediately. Both end in LLMRequestFailedError.
    """
    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        dimensions: int = DEFAULT_DIMENSIONS,
        max_retries: int = 3,
        timeout_seconds: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        wait=None,
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.model = model
        self._dimensions = dimensions
        self.max_retries = max_retries
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self.wait = wait if wait is not None else wait_exponential(multiplier=1, min=2, max=10)

    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, texts: Sequence[str]) -> EmbeddingResult:
        if not texts:
            return EmbeddingResult(embeddings=[], model=self.model, token_count=0)

        def log_before_sleep(retry_state):
            logger.warning(
                f"Embedding request failed (attempt {retry_state.attempt_number}/{self.max_retries}), retrying: "
                f"{retry_state.outcome.exception()}"
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=self.wait,
                retry=retry_if_exception_type(_RetryableEmbeddingError),
                before_sleep=log_before_sleep,
            ):
                with attempt:
                    return await self._attempt(list(texts))
        except RetryError as e:
            cause = e.last_attempt.exception()
            error = translate_http_error(getattr(cause, "cause", cause), "embeddings")
            raise LLMRequestFailedError(
                f"Embedding request failed after {self.max_retries} attempt(s).", last_error=error
            ) from cause

    async def _attempt(self, texts: list) -> EmbeddingResult:
        body = {"input": texts, "model": self.model}
        if self._dimensions != DEFAULT_DIMENSIONS:
            body["dimensions"] = self._dimensions
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = await self.http_client.post(f"{self.base_url}/embeddings", headers=headers, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429 or e.response.status_code >= 500:
                raise _RetryableEmbeddingError(e) from e
            raise LLMRequestFailedError(
                f"Embedding request rejected (HTTP {e.response.status_code}).",
                last_error=translate_http_error(e, "embeddings"),
            ) from e
        except httpx.RequestError as e:
            raise _RetryableEmbeddingError(e) from e

        data = response.json()
        ordered = sorted(data.get("data", []), key=lambda d: d.get("index", 0))
        return EmbeddingResult(
            embeddings=[d["embedding"] for d in ordered],
            model=data.get("model", self.model),
            token_count=(data.get("usage") or {}).get("total_tokens", 0),
        )


class LocalHashEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic unit vectors derived from a hash of the text. The same text
    always maps to the same vector, but similarity carries no meaning.
    Used when no embedding endpoint is configured.
    """
    def __init__(self, dimensions: int = 384):
        self._dimensions = dimensions

    def dimensions(self) -> int:
        return self._dimensions

    def _vector(self, text: str) -> list:
        values = []
        counter = 0
        while len(values) < self._dimensions:
            digest = hashlib.sha256(f"{counter}:{text}".encode("utf-8")).digest()
            values.extend((b / 127.5) - 1.0 for b in digest)
            counter += 1
        values = values[:self._dimensions]
        magnitude = math.sqrt(sum(v * v for v in values))
        return [v / magnitude for v in values] if magnitude else values

    async def embed(self, texts: Sequence[str]) -> EmbeddingResult:
        return EmbeddingResult(embeddings=[self._vector(t) for t in texts], model="local-hash", token_count=0)
