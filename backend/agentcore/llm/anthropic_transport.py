"""
Anthropic Transport

Claude Messages API adapter. Requests arrive in OpenAI chat format and are
converted; stream events are mapped back onto ChatChunks so the assembler sees
the same index-tagged tool-call fragments as with any other provider.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from anthropic import AsyncAnthropic, APIConnectionError, APIError, APIStatusError

from .base import ChatChunk, ChatRequest, CompletionMessage, ModelTransport, ToolCallDelta
from ..errors import TransportError
from ..runtime.types import ToolCall, ToolCallFunction

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096

STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
}


def convert_tools(tools: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Function-calling definitions -> Anthropic tool definitions."""
    converted = []
    for tool in tools or []:
        function = tool.get("function", tool)
        converted.append(
            {
                "name": function["name"],
                "description": function.get("description", ""),
                "input_schema": function.get("parameters") or {"type": "object", "properties": {}},
            }
        )
    return converted


def convert_messages(messages: List[Dict[str, Any]]) -> Tuple[str, List[Dict[str, Any]]]:
    """
    Split OpenAI-format messages into an Anthropic system prompt and turns.

    System messages, and assistant messages before the first user turn, are
    folded into the system prompt.
    """
    system_parts: List[str] = []
    converted: List[Dict[str, Any]] = []

    for message in messages:
        role = message.get("role")
        content = message.get("content")

        if role == "system" or (role == "assistant" and not converted and not message.get("tool_calls")):
            if content:
                system_parts.append(content)
            continue

        if role == "tool":
            converted.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": message.get("tool_call_id", ""),
                            "content": content or "",
                        }
                    ],
                }
            )
            continue

        if role == "assistant" and message.get("tool_calls"):
            blocks: List[Dict[str, Any]] = []
            if content:
                blocks.append({"type": "text", "text": content})
            for call in message["tool_calls"]:
                function = call.get("function") or {}
                arguments = function.get("arguments") or "{}"
                try:
                    tool_input = json.loads(arguments) if isinstance(arguments, str) else arguments
                except json.JSONDecodeError:
                    tool_input = {}
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call.get("id", ""),
                        "name": function.get("name", ""),
                        "input": tool_input,
                    }
                )
            converted.append({"role": "assistant", "content": blocks})
            continue

        converted.append({"role": "assistant" if role == "assistant" else "user", "content": content or ""})

    return "\n\n".join(system_parts), converted


def _transport_error(error: APIError) -> TransportError:
    if isinstance(error, APIStatusError):
        body = error.body if isinstance(error.body, dict) else {}
        detail = body.get("error") if isinstance(body.get("error"), dict) else {}
        code = detail.get("type")
        return TransportError(detail.get("message") or str(error), status=error.status_code, code=code)
    if isinstance(error, APIConnectionError):
        return TransportError(f"Connection to Anthropic failed: {error}")
    return TransportError(str(error))


class AnthropicTransport(ModelTransport):
    """Claude adapter built on AsyncAnthropic."""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        client: Optional[AsyncAnthropic] = None,
    ):
        self.client = client or AsyncAnthropic(api_key=api_key, base_url=base_url, timeout=timeout)
        logger.info("AnthropicTransport initialized")

    def _request_kwargs(self, request: ChatRequest) -> Dict[str, Any]:
        system, messages = convert_messages(request.messages)
        kwargs: Dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if request.tools:
            kwargs["tools"] = convert_tools(request.tools)
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        return kwargs

    async def complete(self, request: ChatRequest) -> CompletionMessage:
        try:
            response = await self.client.messages.create(**self._request_kwargs(request))
        except APIError as e:
            logger.error(f"Anthropic request failed: {e}")
            raise _transport_error(e) from e

        text_parts: List[str] = []
        tool_calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.id,
                        function=ToolCallFunction(name=block.name, arguments=json.dumps(block.input)),
                    )
                )

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }

        return CompletionMessage(
            content="".join(text_parts),
            tool_calls=tool_calls,
            finish_reason=STOP_REASONS.get(response.stop_reason, response.stop_reason),
            usage=usage,
        )

    async def stream(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        try:
            async with self.client.messages.stream(**self._request_kwargs(request)) as stream:
                async for event in stream:
                    chunk = self._chunk_from_event(event)
                    if chunk is not None:
                        yield chunk
        except APIError as e:
            logger.error(f"Anthropic stream failed: {e}")
            raise _transport_error(e) from e

    @staticmethod
    def _chunk_from_event(event: Any) -> Optional[ChatChunk]:
        if event.type == "content_block_start":
            block = event.content_block
            if block.type == "tool_use":
                return ChatChunk(tool_calls=[ToolCallDelta(index=event.index, id=block.id, name=block.name)])

        elif event.type == "content_block_delta":
            delta = event.delta
            if delta.type == "text_delta":
                return ChatChunk(content=delta.text)
            if delta.type == "input_json_delta":
                return ChatChunk(tool_calls=[ToolCallDelta(index=event.index, arguments=delta.partial_json)])

        elif event.type == "message_delta":
            stop_reason = getattr(event.delta, "stop_reason", None)
            if stop_reason:
                return ChatChunk(finish_reason=STOP_REASONS.get(stop_reason, stop_reason))

        return None

    async def close(self) -> None:
        await self.client.close()
