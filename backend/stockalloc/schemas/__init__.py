"""
Stock Allocation Pydantic Schemas
Request/Response models for the allocation API
"""

from .allocation import (
    AllocationEntry, AllocateRequest, SuggestionRequest,
    SuggestedAllocation, SuggestionResponse,
    TargetOption, AvailableTargetsResponse,
    AllocationBreakdown, AllocationAnalytics, ItemAllocationState
)

__all__ = [
    "AllocationEntry",
    "AllocateRequest",
    "SuggestionRequest",
    "SuggestedAllocation",
    "SuggestionResponse",
    "TargetOption",
    "AvailableTargetsResponse",
    "AllocationBreakdown",
    "AllocationAnalytics",
    "ItemAllocationState",
]
