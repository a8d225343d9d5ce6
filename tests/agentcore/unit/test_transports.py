"""
Unit tests for model transports (wire formats only, no network)
"""

import json
import pytest
from types import SimpleNamespace

from backend.agentcore.config import LLMConfig
from backend.agentcore.errors import ConfigurationError, TransportError
from backend.agentcore.llm import ChatRequest, create_transport, OpenAICompatTransport, AnthropicTransport
from backend.agentcore.llm.openai_compat import (
    build_payload,
    parse_completion,
    parse_stream_line,
    _error_from_body,
)
from backend.agentcore.llm.anthropic_transport import convert_messages, convert_tools


# ============================================
# OpenAI-compatible
# ============================================


def test_parse_stream_line_text_delta():
    line = 'data: {"choices": [{"delta": {"content": "Hel"}, "finish_reason": null}]}'

    chunk = parse_stream_line(line)

    assert chunk.content == "Hel"
    assert chunk.tool_calls == []
    assert chunk.finish_reason is None


def test_parse_stream_line_tool_call_delta():
    line = (
        'data: {"choices": [{"delta": {"tool_calls": [{"index": 1, "id": "call_x", '
        '"function": {"name": "get_weather", "arguments": "{\\"ci"}}]}, "finish_reason": null}]}'
    )

    chunk = parse_stream_line(line)

    delta = chunk.tool_calls[0]
    assert delta.index == 1
    assert delta.id == "call_x"
    assert delta.name == "get_weather"
    assert delta.arguments == '{"ci'


def test_parse_stream_line_skips_non_data():
    assert parse_stream_line("") is None
    assert parse_stream_line(": keep-alive") is None
    assert parse_stream_line("data: [DONE]") is None
    assert parse_stream_line("data: {broken") is None
    assert parse_stream_line('data: {"choices": []}') is None


def test_parse_stream_line_finish_reason():
    chunk = parse_stream_line('data: {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]}')
    assert chunk.finish_reason == "tool_calls"


def test_build_payload_omits_unset_fields():
    payload = build_payload(ChatRequest(model="m", messages=[{"role": "user", "content": "hi"}]))

    assert payload == {"model": "m", "messages": [{"role": "user", "content": "hi"}], "stream": False}


def test_parse_completion_with_tool_calls():
    data = {
        "choices": [
            {
                "message": {
                    "content": None,
                    "tool_calls": [
                        {"id": "call_1", "type": "function", "function": {"name": "f", "arguments": {"a": 1}}}
                    ],
                },
                "finish_reason": "tool_calls",
            }
        ],
        "usage": {"prompt_tokens": 3},
    }

    message = parse_completion(data)

    assert message.content == ""
    assert message.tool_calls[0].function.arguments == '{"a": 1}'
    assert message.finish_reason == "tool_calls"
    assert message.usage == {"prompt_tokens": 3}


def test_parse_completion_without_choices():
    with pytest.raises(TransportError):
        parse_completion({"choices": []})


def test_error_from_body_reads_provider_error():
    error = _error_from_body(
        400, json.dumps({"error": {"message": "too long", "code": "context_length_exceeded"}})
    )

    assert error.status == 400
    assert error.code == "context_length_exceeded"
    assert error.message == "too long"
    assert _error_from_body(502, "Bad Gateway").message == "Bad Gateway"


# ============================================
# Anthropic
# ============================================


def test_convert_messages_folds_system_and_leading_assistant():
    system, messages = convert_messages(
        [
            {"role": "system", "content": "You are helpful."},
            {"role": "assistant", "content": "Reply in JSON."},
            {"role": "user", "content": "Weather?"},
            {
                "role": "assistant",
                "tool_calls": [
                    {"id": "call_1", "type": "function", "function": {"name": "get_weather", "arguments": '{"city": "Lisbon"}'}}
                ],
            },
            {"role": "tool", "content": '{"temp": 21}', "tool_call_id": "call_1"},
            {"role": "assistant", "content": "It is 21 degrees."},
        ]
    )

    assert system == "You are helpful.\n\nReply in JSON."
    assert messages[0] == {"role": "user", "content": "Weather?"}
    assert messages[1]["content"][0] == {
        "type": "tool_use",
        "id": "call_1",
        "name": "get_weather",
        "input": {"city": "Lisbon"},
    }
    assert messages[2]["role"] == "user"
    assert messages[2]["content"][0]["type"] == "tool_result"
    assert messages[2]["content"][0]["tool_use_id"] == "call_1"
    assert messages[3] == {"role": "assistant", "content": "It is 21 degrees."}


def test_convert_tools():
    tools = convert_tools(
        [{"type": "function", "function": {"name": "f", "description": "d", "parameters": {"type": "object"}}}]
    )
    assert tools == [{"name": "f", "description": "d", "input_schema": {"type": "object"}}]


def test_chunk_from_stream_events():
    tool_start = SimpleNamespace(
        type="content_block_start",
        index=1,
        content_block=SimpleNamespace(type="tool_use", id="toolu_1", name="get_weather"),
    )
    json_delta = SimpleNamespace(
        type="content_block_delta",
        index=1,
        delta=SimpleNamespace(type="input_json_delta", partial_json='{"city"'),
    )
    text_delta = SimpleNamespace(
        type="content_block_delta",
        index=0,
        delta=SimpleNamespace(type="text_delta", text="Checking"),
    )
    stop = SimpleNamespace(type="message_delta", delta=SimpleNamespace(stop_reason="tool_use"))
    ping = SimpleNamespace(type="ping")

    start_chunk = AnthropicTransport._chunk_from_event(tool_start)
    assert start_chunk.tool_calls[0].id == "toolu_1"
    assert start_chunk.tool_calls[0].name == "get_weather"
    assert AnthropicTransport._chunk_from_event(json_delta).tool_calls[0].arguments == '{"city"'
    assert AnthropicTransport._chunk_from_event(text_delta).content == "Checking"
    assert AnthropicTransport._chunk_from_event(stop).finish_reason == "tool_calls"
    assert AnthropicTransport._chunk_from_event(ping) is None


@pytest.mark.asyncio
async def test_anthropic_complete_maps_content_blocks():
    class FakeMessages:
        def __init__(self):
            self.kwargs = None

        async def create(self, **kwargs):
            self.kwargs = kwargs
            return SimpleNamespace(
                content=[
                    SimpleNamespace(type="text", text="Let me look."),
                    SimpleNamespace(type="tool_use", id="toolu_9", name="get_weather", input={"city": "Faro"}),
                ],
                stop_reason="tool_use",
                usage=SimpleNamespace(input_tokens=10, output_tokens=5),
            )

    messages = FakeMessages()
    transport = AnthropicTransport(api_key="test", client=SimpleNamespace(messages=messages))

    result = await transport.complete(
        ChatRequest(
            model="claude-test",
            messages=[{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}],
            temperature=0.2,
        )
    )

    assert messages.kwargs["system"] == "sys"
    assert messages.kwargs["max_tokens"] == 4096
    assert result.content == "Let me look."
    assert result.tool_calls[0].parsed_arguments() == {"city": "Faro"}
    assert result.finish_reason == "tool_calls"
    assert result.usage == {"input_tokens": 10, "output_tokens": 5}


# ============================================
# Factory
# ============================================


@pytest.mark.asyncio
async def test_create_transport_by_provider():
    openai = create_transport(LLMConfig(api_key="k", provider="openai", base_url="http://localhost:8000/v1/"))
    assert isinstance(openai, OpenAICompatTransport)
    assert openai.endpoint == "http://localhost:8000/v1/chat/completions"
    await openai.close()

    assert isinstance(create_transport(LLMConfig(api_key="k", provider="anthropic")), AnthropicTransport)

    with pytest.raises(ConfigurationError):
        create_transport(LLMConfig(api_key="k", provider="carrier-pigeon"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
