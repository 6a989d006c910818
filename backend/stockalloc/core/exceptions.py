"""
Allocation Engine Exceptions
"""
from typing import Any, Dict, List, Optional


class AllocationEngineError(Exception):
    """Base exception for the allocation engine"""
    pass


class ValidationError(AllocationEngineError):
    """Raised when a request is rejected before any write"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFoundError(AllocationEngineError):
    """Raised when the resolver has exhausted every matching strategy"""

    def __init__(self, kind: str, ref: str, near_misses: Optional[List[Dict[str, Any]]] = None):
        self.kind = kind
        self.ref = ref
        self.near_misses = near_misses or []
        super().__init__(f"{kind} not found after trying all strategies. Searched for: \"{ref}\"")


class ReversalInfeasibleError(AllocationEngineError):
    """Raised when a reversal would drive a stock counter negative"""

    def __init__(self, product_id: str, required: Dict[str, int], available: Dict[str, int]):
        self.product_id = product_id
        self.required = required
        self.available = available
        parts = [
            f"{counter}: need {required[counter]}, have {available[counter]}"
            for counter in required
            if required[counter] > available[counter]
        ]
        super().__init__(
            f"Cannot reverse allocations for product {product_id} ({'; '.join(parts)})"
        )


class PersistenceError(AllocationEngineError):
    """Raised when a remote write fails"""

    def __init__(self, message: str, collection: Optional[str] = None,
                 doc_id: Optional[str] = None, saga: Optional[Any] = None):
        super().__init__(message)
        self.collection = collection
        self.doc_id = doc_id
        self.saga = saga
