"""Stock Allocation Schemas"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


# Request Schemas
class AllocationEntry(BaseModel):
    """One proposed allocation; quantity and target rules are checked by the engine"""
    allocation_type: Optional[str] = Field(None, description="po, project or warehouse")
    allocation_target: Optional[str] = Field(None, description="Target order, project or warehouse id")
    quantity: int
    target_name: Optional[str] = None
    notes: Optional[str] = None
    priority: Optional[str] = None
    required_date: Optional[str] = None


class AllocateRequest(BaseModel):
    allocations: List[AllocationEntry] = Field(default_factory=list)


class SuggestionRequest(BaseModel):
    available_qty: int = Field(..., ge=0)


# Response Schemas
class SuggestedAllocation(BaseModel):
    id: Optional[str] = None
    allocation_type: str
    allocation_target: str
    target_name: str
    quantity: int
    priority: str
    notes: str = ""
    required_date: Optional[str] = None
    suggested: bool = True


class SuggestionResponse(BaseModel):
    parent_id: str
    item_id: str
    available_qty: int
    suggestions: List[SuggestedAllocation]


class TargetOption(BaseModel):
    id: str
    name: str
    info: str = ""
    needed_quantity: Optional[int] = None
    priority: Optional[str] = None
    required_date: Optional[str] = None
    client_name: Optional[str] = None


class AvailableTargetsResponse(BaseModel):
    purchase_orders: List[TargetOption]
    project_codes: List[TargetOption]
    warehouses: List[TargetOption]


class AllocationBreakdown(BaseModel):
    po_allocations: int = 0
    project_allocations: int = 0
    warehouse_stock: int = 0


class AllocationAnalytics(BaseModel):
    total_allocations: int
    total_quantity: int
    total_value: float
    allocation_breakdown: AllocationBreakdown
    quantity_by_type: Dict[str, int]


class ItemAllocationState(BaseModel):
    parent_id: str
    item_id: str
    parent_strategy: str
    item_strategy: str
    received_qty: int
    total_allocated: int
    unallocated_qty: int
    allocations: List[Dict[str, Any]]
    reset_history: List[Dict[str, Any]]
