"""
Response Classification

Turns a finished model turn into a typed outcome and dispatches it to the
session's handler chains.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from .schema import ResponseSchemas
from ..errors import ClassificationParseError
from ..runtime.types import (
    TOOL_INVOCATION,
    ClassificationTypeConfig,
    ParsedLLMResponse,
    ParseOutcome,
    ResponseType,
    ToolCall,
    ValidationLevel,
    ValidationOptions,
    ValidationResult,
)
from ...utils.logger import get_logger

logger = get_logger(__name__)

PARSE_ERROR_TYPE = "LLM_RESPONSE_PARSE_ERROR"
MESSAGE_TYPE_PATTERN = re.compile(r'"messageType"\s*:\s*"([^"]+)"')


def extract_message_type(raw_text: str) -> Optional[str]:
    """Best-effort ``messageType`` lookup in text that may not be valid JSON."""
    match = MESSAGE_TYPE_PATTERN.search(raw_text or "")
    return match.group(1) if match else None


class AbstractClassifier(ABC):
    """
    Base for classification strategies.

    Subclasses implement ``parse_llm_response``; this class handles the
    tool-call envelope, routing and the failure fallback.
    """

    def __init__(
        self,
        types: Sequence[ClassificationTypeConfig],
        validation_options: Optional[ValidationOptions] = None,
    ):
        self.types = list(types)
        self.schemas = ResponseSchemas(self.types)
        self.validation_options = validation_options or ValidationOptions()

    def get_classification_types(self) -> List[ClassificationTypeConfig]:
        return list(self.types)

    @abstractmethod
    def parse_llm_response(self, raw_text: str, options: ValidationOptions) -> ParseOutcome:
        """
        Parse and validate one response.

        Raises:
            ClassificationParseError: The response is not an expected structure
        """

    def categorize_llm_response(self, raw_text: str) -> Optional[ParsedLLMResponse]:
        """
        Recognize a tool-call envelope (``{"tool_calls": [...]}``).

        Returns None when the text is something else.
        """
        stripped = (raw_text or "").strip()
        if not stripped.startswith("{") or '"tool_calls"' not in stripped:
            return None
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict) or not isinstance(data.get("tool_calls"), list) or not data["tool_calls"]:
            return None

        calls = [ToolCall.from_dict(call) for call in data["tool_calls"]]
        first = calls[0]
        return ParsedLLMResponse(
            type=ResponseType.TOOL_CALL,
            instruction=TOOL_INVOCATION,
            content={
                "messageType": TOOL_INVOCATION,
                "toolName": first.name,
                "arguments": first.function.arguments,
                "toolCallId": first.id,
            },
            validation_result=ValidationResult(is_valid=True, data=data, original_content=raw_text),
            tool_calls=calls,
        )

    async def handle_llm_response(self, raw_text: str, session) -> ResponseType:
        """
        Classify ``raw_text`` and dispatch it to ``session``'s handlers.

        Never raises for unparseable text: the exception handlers receive the
        raw text and the error instead.
        """
        outcome = None
        try:
            categorized = self.categorize_llm_response(raw_text)
            if categorized is None:
                outcome = self.parse_llm_response(raw_text, self.validation_options)
        except Exception as e:
            return await self._handle_parse_failure(raw_text, e, session)

        if categorized is not None:
            session.context.set_instruction(categorized.instruction)
            return await self._dispatch_categorized(categorized, session)

        session.context.set_instruction(outcome.instruction)

        if outcome.is_tool_call:
            await session.trigger_tool_calls_handlers(outcome.parsed_llm_response)
            return ResponseType.TOOL_CALL

        if outcome.instruction and session.core.has_tool_for_instruction(outcome.instruction):
            await session.trigger_event_handlers(outcome.parsed_llm_response)
            if outcome.answer:
                await session.trigger_conversation_handlers(outcome.answer)
            return ResponseType.EVENT

        await session.trigger_conversation_handlers(
            outcome.answer if outcome.answer is not None else outcome.parsed_llm_response
        )
        return ResponseType.CONVERSATION

    async def _dispatch_categorized(self, parsed: ParsedLLMResponse, session) -> ResponseType:
        if parsed.type == ResponseType.TOOL_CALL:
            if parsed.tool_calls:
                await self._dispatch_tool_calls(parsed.tool_calls, session)
            else:
                await session.trigger_tool_calls_handlers(parsed.content)
        elif parsed.type == ResponseType.ROUTING:
            await session.trigger_routing_handlers(parsed.content)
        elif parsed.type == ResponseType.EVENT:
            if not (parsed.instruction and session.core.has_tool_for_instruction(parsed.instruction)):
                await session.trigger_conversation_handlers(
                    parsed.answer if parsed.answer is not None else parsed.content
                )
                return ResponseType.CONVERSATION
            await session.trigger_event_handlers(parsed.content)
            if parsed.answer:
                await session.trigger_conversation_handlers(parsed.answer)
        elif parsed.type == ResponseType.EXCEPTION:
            await session.trigger_exception_handlers(parsed.content)
        else:
            await session.trigger_conversation_handlers(
                parsed.answer if parsed.answer is not None else parsed.content
            )
        return parsed.type

    async def _dispatch_tool_calls(self, calls: List[ToolCall], session) -> None:
        for call in calls:
            await session.trigger_tool_calls_handlers(
                {
                    "messageType": TOOL_INVOCATION,
                    "toolName": call.name,
                    "arguments": call.function.arguments,
                    "toolCallId": call.id,
                }
            )

    async def _handle_parse_failure(self, raw_text: str, error: Exception, session) -> ResponseType:
        instruction = getattr(error, "instruction", None) or extract_message_type(raw_text)
        logger.warning(
            "Failed to classify model response",
            session_id=session.session_id,
            instruction=instruction,
            error=str(error),
        )
        await session.trigger_exception_handlers(
            {
                "messageType": instruction or PARSE_ERROR_TYPE,
                "instruction": instruction,
                "error": str(error),
                "originalResponse": raw_text,
                "originalError": error,
            }
        )
        return ResponseType.EXCEPTION

    # ------------------------------------------
    # Helpers for strategies
    # ------------------------------------------

    @staticmethod
    def load_json(raw_text: str) -> Dict[str, Any]:
        """
        Decode a JSON object.

        Raises:
            ClassificationParseError: Not JSON, or not an object
        """
        try:
            data = json.loads(raw_text)
        except (json.JSONDecodeError, TypeError) as e:
            raise ClassificationParseError(
                f"Response is not valid JSON: {e}",
                raw_text=raw_text,
                instruction=extract_message_type(raw_text),
            ) from e
        if not isinstance(data, dict):
            raise ClassificationParseError(
                f"Expected a JSON object, got {type(data).__name__}", raw_text=raw_text
            )
        return data

    def validate_tagged(self, data: Dict[str, Any], raw_text: str, options: ValidationOptions) -> ValidationResult:
        """
        Validate ``data`` against the schema its ``messageType`` tag names.

        strict: any mismatch raises. lenient: extra fields pass, and with
        allow_partial_match a mismatch is reported instead of raised.
        none: only the tag is checked.
        """
        tag = data.get("messageType")
        if tag is None:
            if options.require_message_type:
                raise ClassificationParseError("Response has no messageType", raw_text=raw_text)
            return ValidationResult(is_valid=True, data=data, original_content=raw_text)

        if options.level == ValidationLevel.NONE:
            return ValidationResult(is_valid=True, data=data, original_content=raw_text)

        try:
            validated = self.schemas.validate(data, options.level)
        except ValueError as e:
            if options.level == ValidationLevel.LENIENT and options.allow_partial_match:
                logger.debug("Accepting partial match", instruction=tag, error=str(e))
                return ValidationResult(is_valid=False, data=data, error=str(e), original_content=raw_text)
            raise ClassificationParseError(str(e), raw_text=raw_text, instruction=tag) from e

        return ValidationResult(is_valid=True, data=validated, original_content=raw_text)
