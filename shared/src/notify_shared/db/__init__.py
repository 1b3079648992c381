"""Database layer: document model, store, engine/session utilities."""

from notify_shared.db.base import Base, create_db_engine, create_session_factory
from notify_shared.db.models import Document
from notify_shared.db.store import DocumentStore, WriteBatch

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "Document",
    "DocumentStore",
    "WriteBatch",
]
