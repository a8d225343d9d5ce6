"""
Memory SQLAlchemy Models

Database model for remembered conversation records.
"""

from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    Enum,
    Index,
    JSON,
)
from sqlalchemy.orm import declarative_base

from ..runtime.types import MessageRole

Base = declarative_base()


class MemoryRecordModel(Base):
    """One remembered record (user input, assistant reply, tool call or tool result)"""

    __tablename__ = "memory_records"

    # Primary key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Owning conversation (None for agent-wide records)
    session_id = Column(String(36), nullable=True)

    # Record data
    role = Column(Enum(MessageRole), nullable=False)
    content = Column(Text, nullable=True)  # NULL for tool-call turns
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Classification tags and free-form metadata (JSON)
    tags = Column(JSON, nullable=False, default=list)
    meta = Column("metadata", JSON, nullable=False, default=dict)

    # Provider tool-call linkage
    tool_calls = Column(JSON)
    tool_call_id = Column(String(64))

    # Indexes
    __table_args__ = (
        Index("idx_memory_session_created", "session_id", "created_at"),
        Index("idx_memory_role", "role"),
    )

    def __repr__(self):
        return f"<MemoryRecord(id={self.id}, session={self.session_id}, role={self.role.value})>"
