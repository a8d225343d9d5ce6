"""
OpenAI-Compatible Transport

Talks to any /chat/completions endpoint (OpenAI, vLLM, LM Studio, Moonshot, ...)
over aiohttp, with server-sent-event streaming.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from .base import ChatChunk, ChatRequest, CompletionMessage, ModelTransport, ToolCallDelta
from ..errors import TransportError
from ..runtime.types import ToolCall

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
STREAM_DONE = "[DONE]"


def build_payload(request: ChatRequest) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": request.model,
        "messages": request.messages,
        "stream": request.stream,
    }
    if request.tools:
        payload["tools"] = request.tools
    if request.max_tokens is not None:
        payload["max_tokens"] = request.max_tokens
    if request.temperature is not None:
        payload["temperature"] = request.temperature
    return payload


def parse_stream_line(line: str) -> Optional[ChatChunk]:
    """
    Decode one SSE line into a chunk.

    Returns None for keep-alives, comments, non-data lines and the [DONE]
    sentinel. Malformed JSON is skipped.
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == STREAM_DONE:
        return None

    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Skipping malformed stream line: {data[:80]}")
        return None

    choices = event.get("choices") or []
    if not choices:
        return None
    choice = choices[0]
    delta = choice.get("delta") or {}

    tool_deltas = []
    for position, item in enumerate(delta.get("tool_calls") or []):
        function = item.get("function") or {}
        tool_deltas.append(
            ToolCallDelta(
                index=item.get("index", position),
                id=item.get("id"),
                name=function.get("name"),
                arguments=function.get("arguments"),
            )
        )

    return ChatChunk(
        content=delta.get("content"),
        tool_calls=tool_deltas,
        finish_reason=choice.get("finish_reason"),
    )


def parse_completion(data: Dict[str, Any]) -> CompletionMessage:
    """Decode a non-streaming /chat/completions body."""
    choices = data.get("choices") or []
    if not choices:
        raise TransportError("Provider returned no choices")
    choice = choices[0]
    message = choice.get("message") or {}
    return CompletionMessage(
        content=message.get("content") or "",
        tool_calls=[ToolCall.from_dict(call) for call in message.get("tool_calls") or []],
        finish_reason=choice.get("finish_reason"),
        usage=data.get("usage") or {},
    )


def _error_from_body(status: int, body: str) -> TransportError:
    message, code = body or f"HTTP {status}", None
    try:
        error = json.loads(body).get("error")
    except (json.JSONDecodeError, AttributeError):
        error = None
    if isinstance(error, dict):
        message = error.get("message") or message
        code = error.get("code") or error.get("type")
    elif isinstance(error, str):
        message = error
    return TransportError(message, status=status, code=code)


class OpenAICompatTransport(ModelTransport):
    """
    Chat-completions client.

    One aiohttp session is opened lazily and reused until close().
    """

    def __init__(self, api_key: str, base_url: Optional[str] = None, timeout: float = 120.0):
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def complete(self, request: ChatRequest) -> CompletionMessage:
        payload = build_payload(request)
        payload["stream"] = False
        try:
            async with self._get_session().post(self.endpoint, json=payload) as resp:
                if resp.status >= 400:
                    raise _error_from_body(resp.status, await resp.text())
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise TransportError(f"Request to {self.endpoint} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request to {self.endpoint} timed out") from e
        return parse_completion(data)

    async def stream(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        payload = build_payload(request)
        payload["stream"] = True
        try:
            async with self._get_session().post(self.endpoint, json=payload) as resp:
                if resp.status >= 400:
                    raise _error_from_body(resp.status, await resp.text())
                async for raw_line in resp.content:
                    line = raw_line.decode("utf-8", errors="replace")
                    if line.strip() == f"data: {STREAM_DONE}":
                        break
                    chunk = parse_stream_line(line)
                    if chunk is not None:
                        yield chunk
        except aiohttp.ClientError as e:
            raise TransportError(f"Stream from {self.endpoint} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"Stream from {self.endpoint} timed out") from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
