# plugins/core_llm/providers/openai_compatible.py
import json
import logging
import time
from typing import AsyncIterator, List, Optional, Sequence

import httpx

from backend.core.contracts import ChatMessage
from .base import translate_http_error
from ..contracts import ChatProvider, CompletionParams, HealthResult, ModelInfo, StreamChunk

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(ChatProvider):
    """
    Streams from any endpoint that follows the OpenAI Chat Completions API
    (`stream: true`, `data: {...}` lines terminated by `data: [DONE]`).
    """
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        default_model: str = "gpt-4o-mini",
        provider_id: str = "openai_compatible",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not base_url:
            raise ValueError("OpenAICompatibleProvider requires a 'base_url'.")
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.default_model = default_model
        self.id = provider_id
        self.name = f"OpenAI-compatible ({self.base_url})"
        self.http_client = http_client or httpx.AsyncClient(timeout=120.0)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def create_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        params: CompletionParams,
    ) -> AsyncIterator[StreamChunk]:
        payload = {
            "model": params.model_id or self.default_model,
            "messages": [m.to_wire() for m in messages],
            "stream": True,
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "top_p": params.top_p,
            "stop": params.stop_sequences or None,
        }
        payload = {k: v for k, v in payload.items() if v is not None}

        try:
            async with self.http_client.stream(
                "POST", f"{self.base_url}/chat/completions", headers=self._headers(), json=payload
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[5:].strip()
                    if data == "[DONE]":
                        yield StreamChunk.done()
                        return
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed stream line: {data[:80]!r}")
                        continue
                    choices = event.get("choices") or [{}]
                    content = (choices[0].get("delta") or {}).get("content")
                    if content:
                        yield StreamChunk.token(content)
        except httpx.HTTPError as e:
            error = translate_http_error(e, self.id)
            logger.error(f"Provider '{self.id}' request failed: {error.message}")
            yield StreamChunk.error(error.message)
            return

        yield StreamChunk.done()

    async def list_models(self) -> List[ModelInfo]:
        try:
            response = await self.http_client.get(f"{self.base_url}/models", headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Listing models for '{self.id}' failed: {e}")
            return []
        return [
            ModelInfo(id=m["id"], name=m.get("id"), provider_id=self.id)
            for m in response.json().get("data", [])
            if "id" in m
        ]

    async def health_check(self) -> HealthResult:
        start = time.perf_counter()
        try:
            response = await self.http_client.get(f"{self.base_url}/models", headers=self._headers())
        except httpx.HTTPError as e:
            return HealthResult(ok=False, error=str(e))
        return HealthResult(
            ok=response.is_success,
            latency_ms=(time.perf_counter() - start) * 1000,
            error=None if response.is_success else f"HTTP {response.status_code}",
        )
