"""
AgentCore Runtime

Message-driven LLM agent runtime: a priority mailbox per agent, sessions with
handler fan-out, response classification, tool execution and memory.
"""

__version__ = "1.0.0"

# Core type definitions
from .runtime.types import (
    MessagePriority,
    SessionState,
    ResponseType,
    ValidationLevel,
    TurnStage,
    EventType,
    MessageRole,
    Message,
    Instruction,
    ClassificationTypeConfig,
    ValidationOptions,
    ValidationResult,
    ToolCall,
    ToolResultEnvelope,
    StreamCompletion,
)

# Errors and configuration
from .errors import (
    AgentCoreError,
    ConfigurationError,
    TransportError,
    ToolError,
    ValidationError,
    ClassificationParseError,
)
from .config import AgentConfig, LLMConfig
from .context import RuntimeContext

# Runtime components
from .runtime.event_bus import EventBus
from .runtime.inbox import PriorityInbox
from .runtime.session import Session, SessionContext
from .runtime.assembler import ResponseAssembler
from .runtime.error_handler import LLMErrorHandler
from .runtime.agent_core import AgentCore

# Collaborators
from .classifier import (
    AbstractClassifier,
    BareClassifier,
    SimpleClassifier,
    DefaultClassifier,
    MultiLevelClassifier,
)
from .prompts import PromptTemplate, SimplePromptTemplate, BarePromptTemplate
from .tools import Tool, DynamicTool, ToolOptions, RunOptions, ToolEvents, ToolRegistry
from .memory import ConversationMemory, InMemoryConversationMemory, SQLConversationMemory
from .llm import ModelTransport, create_transport

__all__ = [
    "__version__",
    # Types
    "MessagePriority",
    "SessionState",
    "ResponseType",
    "ValidationLevel",
    "TurnStage",
    "EventType",
    "MessageRole",
    "Message",
    "Instruction",
    "ClassificationTypeConfig",
    "ValidationOptions",
    "ValidationResult",
    "ToolCall",
    "ToolResultEnvelope",
    "StreamCompletion",
    # Errors and configuration
    "AgentCoreError",
    "ConfigurationError",
    "TransportError",
    "ToolError",
    "ValidationError",
    "ClassificationParseError",
    "AgentConfig",
    "LLMConfig",
    "RuntimeContext",
    # Runtime
    "EventBus",
    "PriorityInbox",
    "Session",
    "SessionContext",
    "ResponseAssembler",
    "LLMErrorHandler",
    "AgentCore",
    # Collaborators
    "AbstractClassifier",
    "BareClassifier",
    "SimpleClassifier",
    "DefaultClassifier",
    "MultiLevelClassifier",
    "PromptTemplate",
    "SimplePromptTemplate",
    "BarePromptTemplate",
    "Tool",
    "DynamicTool",
    "ToolOptions",
    "RunOptions",
    "ToolEvents",
    "ToolRegistry",
    "ConversationMemory",
    "InMemoryConversationMemory",
    "SQLConversationMemory",
    "ModelTransport",
    "create_transport",
]
