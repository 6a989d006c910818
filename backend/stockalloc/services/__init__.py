"""
Stock Allocation Services
Document store collaborator and the allocation engine
"""

from .document_store import DocumentStore, SQLDocumentStore
from .allocation import StockAllocationService

__all__ = [
    "DocumentStore",
    "SQLDocumentStore",
    "StockAllocationService",
]
