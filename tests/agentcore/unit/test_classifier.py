"""
Unit tests for response classification strategies
"""

import json
import pytest
from pydantic import BaseModel

from backend.agentcore.classifier import (
    BareClassifier,
    SimpleClassifier,
    DefaultClassifier,
    MultiLevelClassifier,
    extract_message_type,
    PARSE_ERROR_TYPE,
)
from backend.agentcore.errors import ClassificationParseError, ConfigurationError
from backend.agentcore.runtime.session import Session
from backend.agentcore.runtime.types import (
    ClassificationTypeConfig,
    ResponseType,
    ValidationLevel,
    ValidationOptions,
)
from backend.agentcore.tools import ToolRegistry


class BookingInput(BaseModel):
    destination: str
    date: str


class StubCore:
    def __init__(self):
        self.tool_registry = ToolRegistry()
        self.instruction_tool_map = {}

    def get_tool_for_instruction(self, instruction):
        name = self.instruction_tool_map.get(instruction)
        return self.tool_registry.get(name) if name else None

    def has_tool_for_instruction(self, instruction):
        return self.get_tool_for_instruction(instruction) is not None


TYPES = [
    ClassificationTypeConfig(
        name="CONVERSATION",
        description="Plain reply",
        schema={"properties": {"answer": {"type": "string"}}, "required": ["answer"]},
    ),
    ClassificationTypeConfig(
        name="BOOK_FLIGHT",
        description="Book a flight",
        schema={
            "properties": {
                "destination": {"type": "string"},
                "date": {"type": "string"},
                "answer": {"type": "string"},
            },
            "required": ["destination", "date"],
        },
    ),
]


@pytest.fixture
def core():
    return StubCore()


@pytest.fixture
def recorded_session(core):
    session = Session(core, owner="tester")
    seen = {"event": [], "tool_result": [], "conversation": [], "exception": [], "routing": []}
    session.on_event(lambda p, s: seen["event"].append(p))
    session.on_tool_result(lambda p, s: seen["tool_result"].append(p))
    session.on_conversation(lambda p, s: seen["conversation"].append(p))
    session.on_exception(lambda p, s: seen["exception"].append(p))
    session.on_routing(lambda p, s: seen["routing"].append(p))
    return session, seen


def test_extract_message_type_from_truncated_json():
    assert extract_message_type('{"messageType":"FOO"') == "FOO"
    assert extract_message_type('{"messageType" :  "BAR", "x":') == "BAR"
    assert extract_message_type("no tag here") is None


@pytest.mark.asyncio
async def test_truncated_json_goes_to_exception_handlers(recorded_session):
    session, seen = recorded_session
    raw = '{"messageType":"FOO"'

    result = await SimpleClassifier(TYPES).handle_llm_response(raw, session)

    assert result == ResponseType.EXCEPTION
    payload = seen["exception"][0]
    assert payload["messageType"] == "FOO"
    assert payload["instruction"] == "FOO"
    assert payload["originalResponse"] == raw
    assert isinstance(payload["originalError"], ClassificationParseError)
    assert seen["conversation"] == []


@pytest.mark.asyncio
async def test_untagged_garbage_uses_parse_error_type(recorded_session):
    session, seen = recorded_session

    result = await SimpleClassifier(TYPES).handle_llm_response("not json at all", session)

    assert result == ResponseType.EXCEPTION
    assert seen["exception"][0]["messageType"] == PARSE_ERROR_TYPE
    assert seen["exception"][0]["originalResponse"] == "not json at all"


@pytest.mark.asyncio
async def test_simple_conversation_answer(recorded_session):
    session, seen = recorded_session
    raw = json.dumps({"messageType": "CONVERSATION", "answer": "Hi there"})

    result = await SimpleClassifier(TYPES).handle_llm_response(raw, session)

    assert result == ResponseType.CONVERSATION
    assert seen["conversation"] == ["Hi there"]
    assert session.context.current_instruction == "CONVERSATION"


@pytest.mark.asyncio
async def test_unknown_message_type_is_an_exception(recorded_session):
    session, seen = recorded_session

    result = await SimpleClassifier(TYPES).handle_llm_response('{"messageType": "DANCE"}', session)

    assert result == ResponseType.EXCEPTION
    assert seen["exception"][0]["instruction"] == "DANCE"


def test_strict_rejects_extra_fields():
    classifier = SimpleClassifier(TYPES)
    raw = json.dumps({"messageType": "CONVERSATION", "answer": "ok", "mood": "happy"})

    with pytest.raises(ClassificationParseError):
        classifier.parse_llm_response(raw, ValidationOptions(level=ValidationLevel.STRICT))

    lenient = classifier.parse_llm_response(raw, ValidationOptions(level=ValidationLevel.LENIENT))
    assert lenient.validation_result.is_valid
    assert lenient.parsed_llm_response["mood"] == "happy"


def test_strict_rejects_type_coercion():
    classifier = SimpleClassifier(TYPES)
    raw = json.dumps({"messageType": "CONVERSATION", "answer": 42})

    with pytest.raises(ClassificationParseError):
        classifier.parse_llm_response(raw, ValidationOptions(level=ValidationLevel.STRICT))


def test_lenient_partial_match_reports_invalid():
    classifier = SimpleClassifier(TYPES)
    raw = json.dumps({"messageType": "BOOK_FLIGHT", "destination": "LIS"})

    outcome = classifier.parse_llm_response(
        raw, ValidationOptions(level=ValidationLevel.LENIENT, allow_partial_match=True)
    )

    assert outcome.instruction == "BOOK_FLIGHT"
    assert outcome.validation_result.is_valid is False
    assert "date" in outcome.validation_result.error

    with pytest.raises(ClassificationParseError):
        classifier.parse_llm_response(raw, ValidationOptions(level=ValidationLevel.LENIENT, allow_partial_match=False))


def test_none_level_trusts_the_tag():
    classifier = SimpleClassifier(TYPES)
    raw = json.dumps({"messageType": "BOOK_FLIGHT", "anything": True})

    outcome = classifier.parse_llm_response(raw, ValidationOptions(level=ValidationLevel.NONE))

    assert outcome.validation_result.is_valid
    assert outcome.parsed_llm_response == {"messageType": "BOOK_FLIGHT", "anything": True}


@pytest.mark.asyncio
async def test_tool_calls_envelope_dispatches_each_call(core, recorded_session):
    session, seen = recorded_session
    core.tool_registry.register_function(
        "book", "Book", BookingInput, lambda input, context, options: f"booked {input.destination}"
    )
    raw = json.dumps(
        {
            "tool_calls": [
                {"id": "call_1", "type": "function", "function": {"name": "book", "arguments": '{"destination": "LIS", "date": "2026-01-01"}'}},
                {"id": "call_2", "type": "function", "function": {"name": "missing", "arguments": "{}"}},
            ]
        }
    )

    result = await SimpleClassifier(TYPES).handle_llm_response(raw, session)

    assert result == ResponseType.TOOL_CALL
    assert [e.tool_call_id for e in seen["tool_result"]] == ["call_1", "call_2"]
    assert seen["tool_result"][0].ok
    assert seen["tool_result"][0].data.get_content() == "booked LIS"
    assert seen["tool_result"][1].status == "failure"
    assert len(session.context.pending_tool_results) == 2


@pytest.mark.asyncio
async def test_instruction_with_mapped_tool_is_an_event(core, recorded_session):
    session, seen = recorded_session
    core.tool_registry.register_function(
        "book", "Book", BookingInput, lambda input, context, options: {"confirmation": "X1"}
    )
    core.instruction_tool_map["BOOK_FLIGHT"] = "book"
    raw = json.dumps({"messageType": "BOOK_FLIGHT", "destination": "OPO", "date": "2026-02-02", "answer": "Booking now"})

    result = await DefaultClassifier(TYPES).handle_llm_response(raw, session)

    assert result == ResponseType.EVENT
    assert seen["event"][0].ok
    assert seen["event"][0].data.content == {"confirmation": "X1"}
    assert seen["conversation"] == ["Booking now"]


@pytest.mark.asyncio
async def test_default_classifier_plain_text_is_conversation(recorded_session):
    session, seen = recorded_session

    result = await DefaultClassifier(TYPES).handle_llm_response("Just chatting.", session)

    assert result == ResponseType.CONVERSATION
    assert seen["conversation"] == ["Just chatting."]


@pytest.mark.asyncio
async def test_bare_classifier_answers_everything(recorded_session):
    session, seen = recorded_session

    result = await BareClassifier(TYPES).handle_llm_response("{not json", session)

    assert result == ResponseType.CONVERSATION
    assert seen["conversation"] == ["{not json"]


def test_bare_classifier_needs_a_type():
    with pytest.raises(ConfigurationError):
        BareClassifier([])


@pytest.mark.asyncio
async def test_multi_level_action_is_routed(recorded_session):
    session, seen = recorded_session
    raw = json.dumps({"top_level_intent": "ACTION", "second_level_intent": "BOOK_FLIGHT", "destination": "FAO"})

    result = await MultiLevelClassifier(TYPES).handle_llm_response(raw, session)

    assert result == ResponseType.ROUTING
    routed = seen["routing"][0]
    assert routed["messageType"] == "ROUTE"
    assert routed["action"] == "BOOK_FLIGHT"
    assert routed["data"]["destination"] == "FAO"


@pytest.mark.asyncio
async def test_multi_level_conversation_and_plain_text(recorded_session):
    session, seen = recorded_session
    classifier = MultiLevelClassifier(TYPES)

    first = await classifier.handle_llm_response(
        json.dumps({"top_level_intent": "CONVERSATION", "response": "Hello!"}), session
    )
    second = await classifier.handle_llm_response("free text", session)
    third = await classifier.handle_llm_response('{"top_level_intent": ', session)

    assert first == ResponseType.CONVERSATION
    assert second == ResponseType.CONVERSATION
    assert third == ResponseType.EXCEPTION
    assert seen["conversation"] == ["Hello!", "free text"]


@pytest.mark.asyncio
async def test_multi_level_tagged_reply_without_tool_is_conversation(recorded_session):
    session, seen = recorded_session

    result = await MultiLevelClassifier(TYPES).handle_llm_response(
        json.dumps({"messageType": "CONVERSATION", "answer": "hi"}), session
    )

    assert result == ResponseType.CONVERSATION
    assert seen["conversation"] == ["hi"]
    assert seen["event"] == []


@pytest.mark.asyncio
async def test_multi_level_tagged_instruction_with_tool_is_event(core, recorded_session):
    session, seen = recorded_session
    core.tool_registry.register_function(
        "book", "Book", BookingInput, lambda input, context, options: {"confirmation": "M7"}
    )
    core.instruction_tool_map["BOOK_FLIGHT"] = "book"
    raw = json.dumps({"messageType": "BOOK_FLIGHT", "destination": "FAO", "date": "2026-03-03", "answer": "On it"})

    result = await MultiLevelClassifier(TYPES).handle_llm_response(raw, session)

    assert result == ResponseType.EVENT
    assert seen["event"][0].data.content == {"confirmation": "M7"}
    assert seen["conversation"] == ["On it"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
