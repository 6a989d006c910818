"""
Stock Allocation API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from stockalloc.api import deps
from stockalloc.core.exceptions import (
    AllocationEngineError, NotFoundError, PersistenceError,
    ReversalInfeasibleError, ValidationError
)
from stockalloc.core.logging import get_logger
from stockalloc.schemas.allocation import (
    AllocateRequest, AllocationAnalytics, AvailableTargetsResponse,
    ItemAllocationState, SuggestionRequest, SuggestionResponse
)
from stockalloc.services.allocation import StockAllocationService

logger = get_logger("api.allocations")

router = APIRouter()


def _http_error(e: AllocationEngineError) -> HTTPException:
    """Map engine errors onto HTTP status codes"""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=e.reason)
    if isinstance(e, NotFoundError):
        return HTTPException(
            status_code=404,
            detail={"message": str(e), "near_misses": e.near_misses}
        )
    if isinstance(e, ReversalInfeasibleError):
        return HTTPException(
            status_code=409,
            detail={"message": str(e), "required": e.required, "available": e.available}
        )
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=502, detail={"message": str(e), "saga": e.saga})
    return HTTPException(status_code=500, detail=str(e))


@router.get("/targets/{product_id}", response_model=AvailableTargetsResponse)
def get_available_targets(
    product_id: str,
    service: StockAllocationService = Depends(deps.get_allocation_service)
):
    """
    Open purchase orders needing the product, project codes and warehouses.
    """
    return service.get_available_targets(product_id)


@router.get("/analytics", response_model=AllocationAnalytics)
def get_allocation_analytics(
    service: StockAllocationService = Depends(deps.get_allocation_service)
):
    """
    Totals over active allocations.
    """
    return service.get_allocation_analytics()


@router.get("/{parent_id}/items/{item_id}", response_model=ItemAllocationState)
def get_item_allocations(
    parent_id: str,
    item_id: str,
    service: StockAllocationService = Depends(deps.get_allocation_service)
):
    """
    Current allocations of one line item.
    """
    try:
        return service.get_item_allocation_state(parent_id, item_id)
    except AllocationEngineError as e:
        raise _http_error(e)


@router.post("/{parent_id}/items/{item_id}/suggestions", response_model=SuggestionResponse)
def suggest_allocations(
    parent_id: str,
    item_id: str,
    request: SuggestionRequest,
    service: StockAllocationService = Depends(deps.get_allocation_service)
):
    """
    Priority ordered allocation split for the given available quantity.
    """
    try:
        suggestions = service.suggest_allocations(parent_id, item_id, request.available_qty)
    except AllocationEngineError as e:
        raise _http_error(e)

    return {
        "parent_id": parent_id,
        "item_id": item_id,
        "available_qty": request.available_qty,
        "suggestions": [s.to_dict() for s in suggestions],
    }


@router.post("/{parent_id}/items/{item_id}")
def allocate_stock(
    parent_id: str,
    item_id: str,
    request: AllocateRequest,
    service: StockAllocationService = Depends(deps.get_allocation_service)
):
    """
    Allocate received stock of one line item to purchase orders, projects
    and warehouses. A partially applied allocation is returned with 207.
    """
    try:
        outcome = service.allocate_stock(
            parent_id,
            item_id,
            [entry.model_dump() for entry in request.allocations]
        )
    except AllocationEngineError as e:
        raise _http_error(e)

    if outcome.degraded:
        logger.warning(f"Allocation on {parent_id}/{item_id} finished as {outcome.status}")
        return JSONResponse(status_code=207, content=outcome.to_dict())

    return {
        **outcome.to_dict(),
        "message": f"Successfully allocated stock across {len(outcome.records)} allocations",
    }


@router.post("/{parent_id}/items/{item_id}/reset")
def reset_item_allocations(
    parent_id: str,
    item_id: str,
    service: StockAllocationService = Depends(deps.get_allocation_service)
):
    """
    Reverse every allocation of one line item and restore stock counters.
    """
    try:
        summary = service.reset_item_allocations(parent_id, item_id)
    except AllocationEngineError as e:
        raise _http_error(e)

    if summary.status != "completed":
        return JSONResponse(status_code=207, content=summary.to_dict())

    return {
        **summary.to_dict(),
        "message": f"Reversed {summary.total_reversed} allocated units",
    }
