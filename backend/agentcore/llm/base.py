"""
Model Transport Interface

The boundary between the orchestrator and an LLM provider: a single request
answered either by one message or by a stream of chunks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from ..runtime.types import ToolCall


@dataclass
class ChatRequest:
    """Provider-neutral chat request (OpenAI message format)"""

    model: str
    messages: List[Dict[str, Any]]
    tools: Optional[List[Dict[str, Any]]] = None
    stream: bool = False
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None


@dataclass
class ToolCallDelta:
    """Fragment of a tool call carried by one stream chunk"""

    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


@dataclass
class ChatChunk:
    """One streamed chunk"""

    content: Optional[str] = None
    tool_calls: List[ToolCallDelta] = field(default_factory=list)
    finish_reason: Optional[str] = None


@dataclass
class CompletionMessage:
    """Non-streaming response"""

    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)


class ModelTransport(ABC):
    """
    LLM provider adapter.

    Implementations raise ``TransportError`` for every provider or network
    failure so the orchestrator can recover uniformly.
    """

    @abstractmethod
    async def complete(self, request: ChatRequest) -> CompletionMessage:
        """Send the request and wait for the whole response."""

    @abstractmethod
    def stream(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        """Send the request and yield chunks as they arrive."""

    async def close(self) -> None:
        """Release connections."""
