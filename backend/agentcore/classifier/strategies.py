"""
Classification strategies

- BareClassifier: every response is a direct answer of the first type
- SimpleClassifier: JSON with a configured messageType, or fail
- DefaultClassifier: plain text is conversation, tagged JSON is an instruction
- MultiLevelClassifier: top-level intent (CONVERSATION / ACTION) with routing
"""

import json
from typing import Any, Dict, Optional, Sequence

from .base import AbstractClassifier, extract_message_type
from ..errors import ClassificationParseError, ConfigurationError
from ..runtime.types import (
    ANSWER_FIELDS,
    TOOL_INVOCATION,
    ClassificationTypeConfig,
    ParsedLLMResponse,
    ParseOutcome,
    ResponseType,
    ValidationOptions,
    ValidationResult,
)
from ...utils.logger import get_logger

logger = get_logger(__name__)


def _answer_from(data: Dict[str, Any]) -> Optional[str]:
    for key in ANSWER_FIELDS:
        value = data.get(key)
        if isinstance(value, str):
            return value
    return None


class BareClassifier(AbstractClassifier):
    """Treats the whole response as an answer of the first configured type."""

    def __init__(self, types: Sequence[ClassificationTypeConfig], validation_options: Optional[ValidationOptions] = None):
        if not types:
            raise ConfigurationError("BareClassifier needs at least one classification type")
        super().__init__(types, validation_options)

    def parse_llm_response(self, raw_text: str, options: ValidationOptions) -> ParseOutcome:
        name = self.types[0].name
        data = {"messageType": name, "content": raw_text}
        return ParseOutcome(
            is_tool_call=False,
            instruction=name,
            parsed_llm_response=data,
            answer=raw_text,
            validation_result=ValidationResult(is_valid=True, data=data, original_content=raw_text),
        )


class SimpleClassifier(AbstractClassifier):
    """Requires a JSON object whose messageType names a configured type."""

    def parse_llm_response(self, raw_text: str, options: ValidationOptions) -> ParseOutcome:
        data = self.load_json(raw_text)

        tag = data.get("messageType")
        if not tag:
            raise ClassificationParseError("Response has no messageType", raw_text=raw_text)

        if tag == TOOL_INVOCATION:
            return ParseOutcome(
                is_tool_call=True,
                instruction=tag,
                parsed_llm_response=data,
                validation_result=ValidationResult(is_valid=True, data=data, original_content=raw_text),
            )

        if not self.schemas.has(tag):
            raise ClassificationParseError(
                f"Unknown messageType '{tag}', expected one of {self.schemas.names()}",
                raw_text=raw_text,
                instruction=tag,
            )

        result = self.validate_tagged(data, raw_text, options)
        return ParseOutcome(
            is_tool_call=False,
            instruction=tag,
            parsed_llm_response=result.data,
            answer=_answer_from(data),
            validation_result=result,
        )


class DefaultClassifier(AbstractClassifier):
    """Lenient strategy: free text is conversation, tagged JSON is validated."""

    def parse_llm_response(self, raw_text: str, options: ValidationOptions) -> ParseOutcome:
        stripped = (raw_text or "").strip()
        if not stripped.startswith(("{", "[")):
            return ParseOutcome(
                is_tool_call=False,
                instruction=None,
                parsed_llm_response=raw_text,
                answer=raw_text,
                validation_result=ValidationResult(is_valid=True, data=raw_text, original_content=raw_text),
            )

        data = self.load_json(stripped)
        tag = data.get("messageType")
        if tag == TOOL_INVOCATION:
            return ParseOutcome(
                is_tool_call=True,
                instruction=tag,
                parsed_llm_response=data,
                validation_result=ValidationResult(is_valid=True, data=data, original_content=raw_text),
            )

        result = self.validate_tagged(data, raw_text, options)
        return ParseOutcome(
            is_tool_call=False,
            instruction=tag,
            parsed_llm_response=result.data,
            answer=_answer_from(data),
            validation_result=result,
        )


class MultiLevelClassifier(AbstractClassifier):
    """
    Two-level intents:

        {"top_level_intent": "CONVERSATION", "response": "..."}
        {"top_level_intent": "ACTION", "second_level_intent": "BOOK_FLIGHT", ...}

    ACTION responses are routed; tagged JSON is an event; plain text is conversation.
    """

    def categorize_llm_response(self, raw_text: str) -> Optional[ParsedLLMResponse]:
        parsed = super().categorize_llm_response(raw_text)
        if parsed is not None:
            return parsed

        try:
            data = json.loads(raw_text)
        except (json.JSONDecodeError, TypeError):
            if (raw_text or "").strip().startswith("{"):
                raise ClassificationParseError(
                    "Response looks like JSON but does not parse",
                    raw_text=raw_text,
                    instruction=extract_message_type(raw_text),
                )
            return ParsedLLMResponse(type=ResponseType.CONVERSATION, content=raw_text, answer=raw_text)

        if not isinstance(data, dict):
            raise ClassificationParseError("Expected a JSON object", raw_text=raw_text)

        intent = str(data.get("top_level_intent") or "").upper()
        if intent == "CONVERSATION":
            if not data.get("response"):
                raise ClassificationParseError("CONVERSATION response has no 'response' field", raw_text=raw_text)
            return ParsedLLMResponse(
                type=ResponseType.CONVERSATION,
                instruction="CONVERSATION",
                content={"messageType": "CONVERSATION", "response": data["response"]},
                answer=data["response"],
            )

        if intent == "ACTION":
            action = data.get("second_level_intent")
            if not action:
                raise ClassificationParseError("ACTION response has no 'second_level_intent'", raw_text=raw_text)
            return ParsedLLMResponse(
                type=ResponseType.ROUTING,
                instruction=action,
                content={"messageType": "ROUTE", "action": action, "data": data},
                answer=data.get("response"),
            )

        if data.get("messageType"):
            result = self.validate_tagged(data, raw_text, self.validation_options)
            return ParsedLLMResponse(
                type=ResponseType.EVENT,
                instruction=data["messageType"],
                content=result.data,
                answer=_answer_from(data),
                validation_result=result,
            )

        raise ClassificationParseError("Unrecognized response structure", raw_text=raw_text)

    def parse_llm_response(self, raw_text: str, options: ValidationOptions) -> ParseOutcome:
        parsed = self.categorize_llm_response(raw_text)
        return ParseOutcome(
            is_tool_call=parsed.type == ResponseType.TOOL_CALL,
            instruction=parsed.instruction,
            parsed_llm_response=parsed.content,
            answer=parsed.answer,
            validation_result=parsed.validation_result,
        )
