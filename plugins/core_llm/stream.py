# plugins/core_llm/stream.py
"""Server-Sent Events framing for StreamChunk sequences."""
import json
from typing import AsyncIterable, Optional

from .contracts import StreamChunk, StreamChunkType


def format_sse(chunk: StreamChunk) -> str:
    if chunk.type == StreamChunkType.TOKEN:
        return f"event: token\ndata: {json.dumps({'value': chunk.value}, ensure_ascii=False)}\n\n"
    if chunk.type == StreamChunkType.DONE:
        return "event: done\ndata: {}\n\n"
    if chunk.type == StreamChunkType.ERROR:
        return f"event: error\ndata: {json.dumps({'message': chunk.message}, ensure_ascii=False)}\n\n"
    return ""


def parse_sse(raw: str) -> Optional[StreamChunk]:
    """Inverse of format_sse. Returns None for anything it does not recognise."""
    event_type = ""
    data = ""
    for line in raw.split("\n"):
        if line.startswith("event: "):
            event_type = line[7:].strip()
        elif line.startswith("data: "):
            data = line[6:].strip()

    if not event_type:
        return None
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None

    if event_type == "token":
        return StreamChunk.token(parsed.get("value") or "")
    if event_type == "done":
        return StreamChunk.done()
    if event_type == "error":
        return StreamChunk.error(parsed.get("message") or "")
    return None


async def collect_stream(stream: AsyncIterable[StreamChunk]) -> str:
    """Concatenate the tokens of a stream. Raises RuntimeError on an error chunk."""
    result = ""
    async for chunk in stream:
        if chunk.type == StreamChunkType.TOKEN and chunk.value:
            result += chunk.value
        elif chunk.type == StreamChunkType.ERROR:
            raise RuntimeError(chunk.message)
    return result
