"""Document store collaborator"""

from .base import DocumentStore, apply_update, matches_filters, set_path
from .sql_store import SQLDocumentStore, new_document_id

__all__ = [
    "DocumentStore",
    "SQLDocumentStore",
    "apply_update",
    "matches_filters",
    "set_path",
    "new_document_id",
]
