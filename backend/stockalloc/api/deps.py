"""
API Dependencies
Common dependencies for API endpoints
"""

from typing import Optional
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from stockalloc.core.config import settings
from stockalloc.core.database import get_db
from stockalloc.services.document_store import DocumentStore, SQLDocumentStore
from stockalloc.services.allocation import StockAllocationService


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    """Document store bound to the request's session"""
    return SQLDocumentStore(db)


def get_current_user(x_user: Optional[str] = Header(None)) -> str:
    """
    Name recorded on allocation audit entries. Authentication is handled
    upstream; the caller's name arrives in the X-User header.
    """
    return x_user or settings.SYSTEM_USER


def get_allocation_service(
    store: DocumentStore = Depends(get_store),
    current_user: str = Depends(get_current_user)
) -> StockAllocationService:
    return StockAllocationService(store, current_user=current_user)
