"""
SQL Document Store
DocumentStore implementation over the SQLAlchemy `documents` table
"""
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import copy
import uuid

from stockalloc.core.exceptions import PersistenceError
from stockalloc.core.logging import get_logger
from stockalloc.models.document import DocumentRec
from .base import DocumentStore, apply_update, matches_filters

logger = get_logger("store")


def new_document_id() -> str:
    """Generate a 20 character document id"""
    return uuid.uuid4().hex[:20]


class SQLDocumentStore(DocumentStore):
    """
    Document store backed by one SQL table

    Every write commits immediately. A failed write rolls the session back
    and surfaces as PersistenceError; earlier committed writes stay put.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        if not doc_id:
            return None
        rec = self.db.get(DocumentRec, (collection, str(doc_id)))
        if rec is None:
            return None
        return self._to_document(rec)

    def query(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        records = (
            self.db.query(DocumentRec)
            .filter(DocumentRec.collection == collection)
            .order_by(DocumentRec.created_at, DocumentRec.doc_id)
            .all()
        )
        documents = [self._to_document(rec) for rec in records]
        return [doc for doc in documents if matches_filters(doc, filters)]

    def add(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        doc_id = str(doc_id) if doc_id else new_document_id()
        now = self._timestamp()
        body = copy.deepcopy(data)
        body.pop("id", None)
        body.setdefault("created_at", now)
        body["updated_at"] = now

        try:
            self.db.add(DocumentRec(collection=collection, doc_id=doc_id, data=body))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to add document to {collection}: {e}")
            raise PersistenceError(
                f"Failed to add document to {collection}: {e}",
                collection=collection, doc_id=doc_id
            ) from e

        logger.debug(f"Added {collection}/{doc_id}")
        return doc_id

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        rec = self.db.get(DocumentRec, (collection, str(doc_id)))
        if rec is None:
            raise PersistenceError(
                f"Cannot update missing document {collection}/{doc_id}",
                collection=collection, doc_id=doc_id
            )

        try:
            body = apply_update(rec.data or {}, fields)
        except (KeyError, TypeError) as e:
            raise PersistenceError(
                f"Invalid update path for {collection}/{doc_id}: {e}",
                collection=collection, doc_id=doc_id
            ) from e
        body["updated_at"] = self._timestamp()

        try:
            rec.data = body
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update {collection}/{doc_id}: {e}")
            raise PersistenceError(
                f"Failed to update {collection}/{doc_id}: {e}",
                collection=collection, doc_id=doc_id
            ) from e

        logger.debug(f"Updated {collection}/{doc_id}: {sorted(fields)}")

    def delete(self, collection: str, doc_id: str) -> None:
        rec = self.db.get(DocumentRec, (collection, str(doc_id)))
        if rec is None:
            return
        try:
            self.db.delete(rec)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to delete {collection}/{doc_id}: {e}")
            raise PersistenceError(
                f"Failed to delete {collection}/{doc_id}: {e}",
                collection=collection, doc_id=doc_id
            ) from e

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _to_document(rec: DocumentRec) -> Dict[str, Any]:
        document = copy.deepcopy(rec.data or {})
        document["id"] = rec.doc_id
        return document
