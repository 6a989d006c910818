"""
Stock Allocation SQLAlchemy Models
"""

# Import all models to ensure they are registered with SQLAlchemy
from .document import DocumentRec

__all__ = [
    "DocumentRec",
]
