"""SQLAlchemy ORM model backing the document store."""

import datetime

from sqlalchemy import DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from notify_shared.db.base import Base
from notify_shared.db.types import JSONDocument


class Document(Base):
    """One JSON document addressed by ``(collection, doc_id)``.

    Sub-collections are flattened into the collection path, e.g.
    ``tenants/acme/email_providers``.
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(255), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    data: Mapped[dict] = mapped_column(JSONDocument, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (Index("ix_documents_collection", "collection"),)
