"""
AgentCore Runtime

Mailbox, sessions, stream assembly, event bus and type definitions.
The orchestrator itself lives in ``runtime.agent_core``.
"""

# Always available: type definitions
from .types import (
    PayloadType,
    MessagePriority,
    SessionState,
    ResponseType,
    ValidationLevel,
    TurnStage,
    EventType,
    MessageRole,
    TOOL_INVOCATION,
    ANSWER_FIELDS,
    MessagePayload,
    MessageMetadata,
    Message,
    Instruction,
    ClassificationTypeConfig,
    ValidationOptions,
    ValidationResult,
    ParsedLLMResponse,
    ParseOutcome,
    ToolCall,
    ToolCallFunction,
    ToolResultEnvelope,
    StreamCompletion,
    RuntimeEvent,
    TurnEvent,
    TurnEventData,
    StreamEvent,
    ToolEvent,
    ToolEventData,
    StateEvent,
    MemoryRecord,
)

# Import runtime components
from .event_bus import EventBus
from .inbox import PriorityInbox
from .session import Session, SessionContext, HandlerList
from .assembler import (
    LineBuffer,
    ToolCallAccumulator,
    StreamCallbackRegistry,
    AssembledResponse,
    ResponseAssembler,
    extract_marker_tool_calls,
)

__all__ = [
    # Types
    "PayloadType",
    "MessagePriority",
    "SessionState",
    "ResponseType",
    "ValidationLevel",
    "TurnStage",
    "EventType",
    "MessageRole",
    "TOOL_INVOCATION",
    "ANSWER_FIELDS",
    "MessagePayload",
    "MessageMetadata",
    "Message",
    "Instruction",
    "ClassificationTypeConfig",
    "ValidationOptions",
    "ValidationResult",
    "ParsedLLMResponse",
    "ParseOutcome",
    "ToolCall",
    "ToolCallFunction",
    "ToolResultEnvelope",
    "StreamCompletion",
    "RuntimeEvent",
    "TurnEvent",
    "TurnEventData",
    "StreamEvent",
    "ToolEvent",
    "ToolEventData",
    "StateEvent",
    "MemoryRecord",
    # Components
    "EventBus",
    "PriorityInbox",
    "Session",
    "SessionContext",
    "HandlerList",
    "LineBuffer",
    "ToolCallAccumulator",
    "StreamCallbackRegistry",
    "AssembledResponse",
    "ResponseAssembler",
    "extract_marker_tool_calls",
]
