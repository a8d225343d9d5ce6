"""
Agent Runtime Type Definitions

Core data types: messages, sessions, classification results, tool calls and events.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Dict, Any, Optional


# ============================================
# Enums
# ============================================


class PayloadType(str, Enum):
    """Kind of input carried by a message"""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"


class MessagePriority(str, Enum):
    """Mailbox priority class"""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Ordering key: lower ranks are dequeued first."""
        return _PRIORITY_RANKS[self]

    @classmethod
    def coerce(cls, value: Any) -> "MessagePriority":
        """Accept enum members or their string values; unknown values are NORMAL."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.NORMAL


_PRIORITY_RANKS = {
    MessagePriority.HIGH: 0,
    MessagePriority.NORMAL: 1,
    MessagePriority.LOW: 2,
}


class SessionState(str, Enum):
    """Conversation state label (descriptive, transitions are not enforced)"""

    START = "start"
    ACTIVE = "active"
    WAITING = "waiting"
    PAUSED = "paused"
    TERMINATED = "terminated"
    TOPIC_IDENTIFICATION = "topic_identification"
    ERROR_RECOVERY = "error_recovery"
    ESCALATION = "escalation"


class ResponseType(str, Enum):
    """Outcome of classifying one model turn"""

    TOOL_CALL = "tool_call"
    EVENT = "event"
    CONVERSATION = "conversation"
    ROUTING = "routing"
    EXCEPTION = "exception"


class ValidationLevel(str, Enum):
    """How forgiving structural validation of a classified response is"""

    STRICT = "strict"
    LENIENT = "lenient"
    NONE = "none"


class TurnStage(str, Enum):
    """Stages of one orchestrator turn"""

    DEQUEUED = "dequeued"
    HISTORY_LOADED = "history_loaded"
    PROMPT_BUILT = "prompt_built"
    MODEL_INVOKED = "model_invoked"
    STREAMING = "streaming"
    NON_STREAMING = "non_streaming"
    RESPONSE_ASSEMBLED = "response_assembled"
    CLASSIFIED = "classified"
    ROUTED = "routed"
    REMEMBERED = "remembered"
    FAILED = "failed"


class EventType(str, Enum):
    """Runtime event channels published on the EventBus"""

    TURN = "turn"  # Turn stage changes
    STREAM = "stream"  # Line-buffered text deltas
    TOOL = "tool"  # Tool lifecycle (start/success/error/retry)
    STATE = "state"  # Session state changes


TOOL_INVOCATION = "TOOL_INVOCATION"

# Fields that carry the user-facing reply of a classified response
ANSWER_FIELDS = ("answer", "response", "content")


# ============================================
# Messages
# ============================================


@dataclass(frozen=True)
class MessagePayload:
    """What the sender asked for"""

    input: str
    input_type: PayloadType = PayloadType.TEXT
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input": self.input,
            "input_type": self.input_type.value,
            "parameters": self.parameters,
        }


@dataclass(frozen=True)
class MessageMetadata:
    """Who sent the message and how urgently"""

    sender: str = "Unknown"
    timestamp: datetime = field(default_factory=datetime.utcnow)
    priority: MessagePriority = MessagePriority.NORMAL
    context: Dict[str, Any] = field(default_factory=dict)
    correlation_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "timestamp": self.timestamp.isoformat(),
            "priority": self.priority.value,
            "context": self.context,
            "correlation_id": self.correlation_id,
        }


@dataclass(frozen=True)
class Message:
    """Single inbound message. Immutable once built."""

    id: str
    session_id: str
    payload: MessagePayload
    metadata: MessageMetadata = field(default_factory=MessageMetadata)
    parent_session_id: Optional[str] = None

    @classmethod
    def create(
        cls,
        session_id: str,
        text: str,
        sender: Optional[str] = None,
        priority: Any = MessagePriority.NORMAL,
        input_type: PayloadType = PayloadType.TEXT,
        parameters: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
        parent_session_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> "Message":
        """Build a message with a fresh id."""
        message_id = str(uuid.uuid4())
        return cls(
            id=message_id,
            session_id=session_id,
            parent_session_id=parent_session_id,
            payload=MessagePayload(
                input=text,
                input_type=input_type,
                parameters=dict(parameters or {}),
            ),
            metadata=MessageMetadata(
                sender=sender or "Unknown",
                priority=MessagePriority.coerce(priority),
                context=dict(context or {}),
                correlation_id=correlation_id or message_id,
            ),
        )

    @property
    def text(self) -> str:
        return self.payload.input

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "parent_session_id": self.parent_session_id,
            "payload": self.payload.to_dict(),
            "metadata": self.metadata.to_dict(),
        }


# ============================================
# Instructions & Classification
# ============================================


@dataclass(frozen=True)
class Instruction:
    """An instruction the agent can be asked to carry out"""

    name: str
    description: str = ""
    schema_template: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Instruction":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            schema_template=data.get("schema_template") or data.get("schemaTemplate") or {},
        )


@dataclass(frozen=True)
class ClassificationTypeConfig:
    """
    One response type the classifier recognizes.

    ``schema`` is a JSON-Schema object (``properties`` / ``required``) shown to
    the model and used to generate the validation model for this tag.
    """

    name: str
    description: str = ""
    schema: Dict[str, Any] = field(default_factory=dict)

    def to_prompt_schema(self) -> Dict[str, Any]:
        """Schema shown to the model, with the messageType tag pinned."""
        properties = {"messageType": {"type": "string", "const": self.name}}
        properties.update(self.schema.get("properties", {}))
        required = ["messageType"] + [r for r in self.schema.get("required", []) if r != "messageType"]
        return {"type": "object", "properties": properties, "required": required}


@dataclass
class ValidationOptions:
    """Options passed to parse_llm_response"""

    level: ValidationLevel = ValidationLevel.LENIENT
    allow_partial_match: bool = True
    require_message_type: bool = True


@dataclass
class ValidationResult:
    """Outcome of validating a parsed response against its tagged schema"""

    is_valid: bool
    data: Any = None
    error: Optional[str] = None
    original_content: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "data": self.data,
            "error": self.error,
            "original_content": self.original_content,
        }


@dataclass
class ParsedLLMResponse:
    """A classified model turn"""

    type: ResponseType
    content: Any
    instruction: Optional[str] = None
    answer: Optional[str] = None
    validation_result: Optional[ValidationResult] = None
    tool_calls: List["ToolCall"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "instruction": self.instruction,
            "content": self.content,
            "answer": self.answer,
            "validation_result": self.validation_result.to_dict() if self.validation_result else None,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
        }


@dataclass
class ParseOutcome:
    """Result of a classifier strategy's parse step"""

    is_tool_call: bool
    instruction: Optional[str]
    parsed_llm_response: Any
    answer: Optional[str] = None
    validation_result: Optional[ValidationResult] = None


# ============================================
# Tool Calls
# ============================================


@dataclass
class ToolCallFunction:
    name: str = ""
    arguments: str = ""


@dataclass
class ToolCall:
    """A (possibly still streaming) tool call in provider function-call format"""

    id: str = ""
    type: str = "function"
    function: ToolCallFunction = field(default_factory=ToolCallFunction)

    @property
    def name(self) -> str:
        return self.function.name

    def parsed_arguments(self) -> Dict[str, Any]:
        """Decode the accumulated argument text; empty text means no arguments."""
        if not self.function.arguments:
            return {}
        return json.loads(self.function.arguments)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {
                "name": self.function.name,
                "arguments": self.function.arguments,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        function = data.get("function") or {}
        arguments = function.get("arguments", "")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        return cls(
            id=data.get("id", ""),
            type=data.get("type", "function"),
            function=ToolCallFunction(name=function.get("name", ""), arguments=arguments),
        )


@dataclass
class ToolResultEnvelope:
    """What tool-result handlers receive"""

    status: str  # "success" | "failure"
    tool_name: str
    data: Any = None
    error: Optional[str] = None
    details: Optional[Any] = None
    tool_call_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def success(cls, tool_name: str, data: Any, tool_call_id: Optional[str] = None) -> "ToolResultEnvelope":
        return cls(status="success", tool_name=tool_name, data=data, tool_call_id=tool_call_id)

    @classmethod
    def failure(
        cls,
        tool_name: str,
        error: str,
        details: Optional[Any] = None,
        tool_call_id: Optional[str] = None,
    ) -> "ToolResultEnvelope":
        return cls(
            status="failure",
            tool_name=tool_name,
            error=error,
            details=details,
            tool_call_id=tool_call_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"status": self.status, "tool_name": self.tool_name}
        if self.ok:
            data = self.data
            result["data"] = data.get_content() if hasattr(data, "get_content") else data
        else:
            result["error"] = self.error
            if self.details is not None:
                result["details"] = self.details
        if self.tool_call_id:
            result["tool_call_id"] = self.tool_call_id
        return result


# ============================================
# Streaming
# ============================================


@dataclass(frozen=True)
class StreamCompletion:
    """Passed to stream callbacks alongside the final delta"""

    reason: str


# ============================================
# Event Structures
# ============================================


@dataclass
class RuntimeEvent:
    """Base event structure"""

    type: EventType
    session_id: str
    data: Any
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        return {
            "type": self.type.value,
            "session_id": self.session_id,
            "data": data,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TurnEventData:
    stage: TurnStage
    message_id: str
    response_type: Optional[ResponseType] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "message_id": self.message_id,
            "response_type": self.response_type.value if self.response_type else None,
            "error": self.error,
        }


@dataclass
class TurnEvent(RuntimeEvent):
    """Orchestrator turn stage change"""

    def __init__(self, session_id: str, data: TurnEventData, timestamp: Optional[datetime] = None):
        super().__init__(
            type=EventType.TURN,
            session_id=session_id,
            data=data,
            timestamp=timestamp or datetime.utcnow(),
        )


@dataclass
class StreamEvent(RuntimeEvent):
    """Line-buffered text delta"""

    def __init__(self, session_id: str, data: str, timestamp: Optional[datetime] = None):
        super().__init__(
            type=EventType.STREAM,
            session_id=session_id,
            data=data,
            timestamp=timestamp or datetime.utcnow(),
        )


@dataclass
class ToolEventData:
    tool_name: str
    phase: str  # "start" | "success" | "error" | "retry"
    attempt: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "phase": self.phase,
            "attempt": self.attempt,
            "error": self.error,
        }


@dataclass
class ToolEvent(RuntimeEvent):
    """Tool lifecycle notification"""

    def __init__(self, session_id: str, data: ToolEventData, timestamp: Optional[datetime] = None):
        super().__init__(
            type=EventType.TOOL,
            session_id=session_id,
            data=data,
            timestamp=timestamp or datetime.utcnow(),
        )


@dataclass
class StateEvent(RuntimeEvent):
    """Session state change"""

    def __init__(self, session_id: str, data: SessionState, timestamp: Optional[datetime] = None):
        super().__init__(
            type=EventType.STATE,
            session_id=session_id,
            data=data,
            timestamp=timestamp or datetime.utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "session_id": self.session_id,
            "data": self.data.value,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================
# Memory Records
# ============================================


class MessageRole(str, Enum):
    """Role of a remembered record"""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class MemoryRecord:
    """One remembered entry of a conversation"""

    role: MessageRole
    content: Optional[str]
    session_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_chat_message(self) -> Dict[str, Any]:
        """Provider message format: tool-call turns omit content."""
        message: Dict[str, Any] = {"role": self.role.value}
        if self.tool_calls:
            message["tool_calls"] = self.tool_calls
        else:
            message["content"] = self.content or ""
        if self.tool_call_id:
            message["tool_call_id"] = self.tool_call_id
        return message
