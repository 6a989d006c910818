"""
Document Model
Schemaless document table backing the document store collections
"""
from sqlalchemy import Column, String, DateTime, JSON

from stockalloc.core.database import Base
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc)


class DocumentRec(Base):
    """
    Document Record

    One row per stored document. `collection` plays the role of a named
    collection, `doc_id` the document key within it, and `data` holds the
    document body as JSON.
    """
    __tablename__ = "documents"

    collection = Column(String(50), primary_key=True, doc="Collection name")
    doc_id = Column(String(100), primary_key=True, doc="Document id within collection")
    data = Column(JSON, nullable=False, default=dict, doc="Document body")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<DocumentRec({self.collection}/{self.doc_id})>"
