# plugins/core_llm/providers/mock.py

import asyncio
from typing import AsyncIterator, List, Optional, Sequence

from backend.core.contracts import ChatMessage
from ..contracts import ChatProvider, CompletionParams, ModelInfo, StreamChunk

MOCK_RESPONSES = [
    "Hello! I'm a mock assistant streaming a canned reply so the chat flow can be tested end to end.",
    "That's a great question! This mock response exists only for testing purposes.",
]


class MockChatProvider(ChatProvider):
    """
    Streams canned responses word by word, cycling through them per call.
    No external calls are made.
    """
    id = "mock"
    name = "Mock Provider"

    def __init__(self, responses: Optional[List[str]] = None, delay_seconds: float = 0.0):
        self.responses = list(responses) if responses else list(MOCK_RESPONSES)
        self.delay_seconds = delay_seconds
        self._index = 0
        # the last prompt seen, for tests and the preview endpoint
        self.last_messages: List[ChatMessage] = []

    async def create_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        params: CompletionParams,
    ) -> AsyncIterator[StreamChunk]:
        self.last_messages = list(messages)
        response = self.responses[self._index % len(self.responses)]
        self._index += 1

        for i, word in enumerate(response.split(" ")):
            if self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
            yield StreamChunk.token(word if i == 0 else " " + word)
        yield StreamChunk.done()

    async def list_models(self) -> List[ModelInfo]:
        return [ModelInfo(id="mock-model-1", name="Mock Model", provider_id=self.id)]
