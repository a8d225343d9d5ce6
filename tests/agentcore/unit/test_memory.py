"""
Unit tests for conversation memory
"""

import pytest
from backend.agentcore.memory import InMemoryConversationMemory, SQLConversationMemory, build_record
from backend.agentcore.runtime.types import MessageRole


def test_build_record_pops_known_metadata():
    record = build_record(
        "hello",
        ["conversation"],
        {"role": "user", "session_id": "s1", "tool_call_id": "call_1", "source": "cli"},
    )

    assert record.role == MessageRole.USER
    assert record.session_id == "s1"
    assert record.tool_call_id == "call_1"
    assert record.metadata == {"source": "cli"}
    assert record.tags == ["conversation"]


def test_build_record_defaults_to_assistant():
    assert build_record("hi", None, None).role == MessageRole.ASSISTANT


@pytest.mark.asyncio
async def test_in_memory_recall_is_scoped_and_limited():
    memory = InMemoryConversationMemory()
    for i in range(4):
        await memory.remember(f"s1-{i}", metadata={"role": MessageRole.USER, "session_id": "s1"})
    await memory.remember("s2-0", metadata={"role": MessageRole.USER, "session_id": "s2"})

    recent = await memory.recall_recent_messages("s1", limit=2)

    assert recent == [
        {"role": "user", "content": "s1-2"},
        {"role": "user", "content": "s1-3"},
    ]
    assert await memory.recall_recent_messages("s1", limit=0) == []


@pytest.mark.asyncio
async def test_in_memory_max_records_drops_oldest():
    memory = InMemoryConversationMemory(max_records=2)
    for text in ("a", "b", "c"):
        await memory.remember(text)

    assert [r.content for r in memory.records] == ["b", "c"]


@pytest.mark.asyncio
async def test_sql_memory_recall_is_chronological():
    memory = SQLConversationMemory.from_url("sqlite://")
    try:
        await memory.remember("question", tags=["user_input"], metadata={"role": MessageRole.USER, "session_id": "s1"})
        await memory.remember(
            None,
            tags=["tool_call"],
            metadata={
                "role": MessageRole.ASSISTANT,
                "session_id": "s1",
                "tool_calls": [{"id": "call_1", "type": "function", "function": {"name": "f", "arguments": "{}"}}],
            },
        )
        await memory.remember('{"status": "success"}', metadata={"role": "tool", "session_id": "s1", "tool_call_id": "call_1"})
        await memory.remember("answer", metadata={"session_id": "s1"})

        messages = await memory.recall_recent_messages("s1", limit=10)
    finally:
        await memory.close()

    assert [m["role"] for m in messages] == ["user", "assistant", "tool", "assistant"]
    assert messages[0]["content"] == "question"
    assert "content" not in messages[1]
    assert messages[1]["tool_calls"][0]["id"] == "call_1"
    assert messages[2]["tool_call_id"] == "call_1"
    assert messages[3]["content"] == "answer"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
