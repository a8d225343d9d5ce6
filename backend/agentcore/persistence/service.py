"""
Memory Persistence Service

CRUD operations for remembered conversation records.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, desc
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .models import Base, MemoryRecordModel
from ..runtime.types import MemoryRecord, MessageRole
from ...utils.logger import get_logger

logger = get_logger(__name__)


class PersistenceService:
    """
    Service for persisting memory records.

    Features:
    - SQLAlchemy ORM with connection pooling (non-sqlite URLs)
    - One short-lived DB session per operation
    - Conversion between domain records and ORM rows
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        """
        Initialize persistence service.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log SQL statements
            pool_size: Connection pool size (ignored for sqlite)
            max_overflow: Extra connections beyond pool_size (ignored for sqlite)
        """
        self.database_url = database_url

        # SQLite doesn't support pool_size/max_overflow
        engine_kwargs: Dict[str, Any] = {"echo": echo}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared in-memory database across executor threads
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        elif not database_url.startswith("sqlite"):
            engine_kwargs["pool_size"] = pool_size
            engine_kwargs["max_overflow"] = max_overflow

        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

        Base.metadata.create_all(bind=self.engine)
        logger.info("PersistenceService initialized", database_url=database_url)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    # ============================================
    # Record Operations
    # ============================================

    def save_record(self, record: MemoryRecord) -> int:
        """
        Store a record.

        Returns:
            Row id of the new record
        """
        db = self.get_session()
        try:
            model = MemoryRecordModel(
                session_id=record.session_id,
                role=record.role,
                content=record.content,
                created_at=record.created_at,
                tags=list(record.tags),
                meta=dict(record.metadata),
                tool_calls=record.tool_calls,
                tool_call_id=record.tool_call_id,
            )
            db.add(model)
            db.commit()
            logger.debug("Saved memory record", session_id=record.session_id, role=record.role.value)
            return model.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to save memory record", session_id=record.session_id, error=str(e))
            raise
        finally:
            db.close()

    def recent_records(self, session_id: Optional[str] = None, limit: Optional[int] = None) -> List[MemoryRecord]:
        """
        Most recent records, oldest first.

        Args:
            session_id: Only records of this conversation (all when None)
            limit: Maximum number of records
        """
        db = self.get_session()
        try:
            query = db.query(MemoryRecordModel)
            if session_id is not None:
                query = query.filter_by(session_id=session_id)
            query = query.order_by(desc(MemoryRecordModel.created_at), desc(MemoryRecordModel.id))
            if limit is not None:
                query = query.limit(limit)
            models = query.all()
            return [self._record_model_to_domain(model) for model in reversed(models)]
        finally:
            db.close()

    def count_records(self, session_id: Optional[str] = None) -> int:
        db = self.get_session()
        try:
            query = db.query(MemoryRecordModel)
            if session_id is not None:
                query = query.filter_by(session_id=session_id)
            return query.count()
        finally:
            db.close()

    def clear_session(self, session_id: str) -> int:
        """
        Delete every record of a conversation.

        Returns:
            Number of deleted records
        """
        db = self.get_session()
        try:
            deleted = db.query(MemoryRecordModel).filter_by(session_id=session_id).delete()
            db.commit()
            logger.info("Cleared memory", session_id=session_id, deleted=deleted)
            return deleted
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to clear memory", session_id=session_id, error=str(e))
            raise
        finally:
            db.close()

    # ============================================
    # Helpers
    # ============================================

    @staticmethod
    def _record_model_to_domain(model: MemoryRecordModel) -> MemoryRecord:
        return MemoryRecord(
            role=MessageRole(model.role),
            content=model.content,
            session_id=model.session_id,
            tags=list(model.tags or []),
            metadata=dict(model.meta or {}),
            tool_calls=model.tool_calls,
            tool_call_id=model.tool_call_id,
            created_at=model.created_at,
        )

    def close(self) -> None:
        """Dispose of the connection pool."""
        self.engine.dispose()
        logger.info("PersistenceService closed")
