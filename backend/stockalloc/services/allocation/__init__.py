"""Stock Allocation & Reconciliation Engine"""

from .jobs import AllocationJob, JobState
from .service import StockAllocationService
from .types import (
    AllocationStatus, AllocationTarget, AllocationType, EntityRef, Priority,
    ProductIdentity, ProposedAllocation, Resolution, ReversalSummary, StockCounters
)
from .writer import AllocationOutcome

__all__ = [
    "StockAllocationService",
    "AllocationJob",
    "JobState",
    "AllocationOutcome",
    "AllocationStatus",
    "AllocationTarget",
    "AllocationType",
    "EntityRef",
    "Priority",
    "ProductIdentity",
    "ProposedAllocation",
    "Resolution",
    "ReversalSummary",
    "StockCounters",
]
