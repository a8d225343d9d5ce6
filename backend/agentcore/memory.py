"""
Conversation Memory

The orchestrator only needs two operations from memory: recall the recent
conversation as chat messages, and remember a new entry.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .persistence import PersistenceService
from .runtime.types import MemoryRecord, MessageRole
from ..utils.logger import get_logger

logger = get_logger(__name__)


def build_record(content: Optional[str], tags: Optional[List[str]], metadata: Optional[Dict[str, Any]]) -> MemoryRecord:
    """
    Turn a remember() call into a record.

    Recognized metadata keys: role, session_id, tool_calls, tool_call_id.
    Everything else is kept as free-form metadata.
    """
    metadata = dict(metadata or {})
    role = MessageRole(metadata.pop("role", MessageRole.ASSISTANT))
    return MemoryRecord(
        role=role,
        content=content,
        session_id=metadata.pop("session_id", None),
        tags=list(tags or []),
        tool_calls=metadata.pop("tool_calls", None),
        tool_call_id=metadata.pop("tool_call_id", None),
        metadata=metadata,
    )


class ConversationMemory(ABC):
    """Memory collaborator used by AgentCore."""

    @abstractmethod
    async def recall_recent_messages(
        self, session_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Recent records as chat messages, oldest first."""

    @abstractmethod
    async def remember(
        self,
        content: Optional[str],
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append an entry."""

    async def close(self) -> None:
        """Release resources."""


class InMemoryConversationMemory(ConversationMemory):
    """Process-local memory; lost on exit."""

    def __init__(self, max_records: Optional[int] = None):
        self.max_records = max_records
        self.records: List[MemoryRecord] = []

    async def recall_recent_messages(
        self, session_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        records = [r for r in self.records if session_id is None or r.session_id == session_id]
        if limit is not None:
            records = records[-limit:] if limit else []
        return [record.to_chat_message() for record in records]

    async def remember(
        self,
        content: Optional[str],
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.records.append(build_record(content, tags, metadata))
        if self.max_records is not None and len(self.records) > self.max_records:
            del self.records[: len(self.records) - self.max_records]


class SQLConversationMemory(ConversationMemory):
    """
    Memory stored through PersistenceService.

    Database calls are synchronous and run in the default executor so the
    agent's event loop keeps polling.
    """

    def __init__(self, persistence: PersistenceService):
        self.persistence = persistence

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SQLConversationMemory":
        return cls(PersistenceService(database_url, echo=echo))

    async def recall_recent_messages(
        self, session_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        loop = asyncio.get_running_loop()
        records = await loop.run_in_executor(None, self.persistence.recent_records, session_id, limit)
        return [record.to_chat_message() for record in records]

    async def remember(
        self,
        content: Optional[str],
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        record = build_record(content, tags, metadata)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.persistence.save_record, record)

    async def close(self) -> None:
        self.persistence.close()
