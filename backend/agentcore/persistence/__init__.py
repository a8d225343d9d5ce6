"""
Persistence Layer

SQLAlchemy model and service for remembered conversation records.
"""

from .models import Base, MemoryRecordModel
from .service import PersistenceService

__all__ = [
    "Base",
    "MemoryRecordModel",
    "PersistenceService",
]
