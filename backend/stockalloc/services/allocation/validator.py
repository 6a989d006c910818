"""
Allocation Validator
Checks proposed allocations against a line item's unallocated quantity
and target eligibility. Reads only; never writes.
"""
from typing import Any, Callable, Dict, List, Optional

from stockalloc.core.config import settings
from stockalloc.core.logging import get_logger
from .types import (
    AllocationType, ProposedAllocation, StockCounters, ValidationResult, received_qty, total_allocated
)

logger = get_logger("allocation.validator")

OrderLookup = Callable[[str], Optional[Dict[str, Any]]]


def _invalid(reason: str, available: int = 0, requested: int = 0) -> ValidationResult:
    logger.warning(f"Allocation rejected: {reason}")
    return ValidationResult(valid=False, reason=reason, available=available, requested=requested)


def _is_quantity(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_allocations(
    item: Dict[str, Any],
    proposals: List[ProposedAllocation],
    order_lookup: OrderLookup,
) -> ValidationResult:
    """
    Reject when:
      - no allocations are given
      - any entry lacks a type or target, or has quantity <= 0
      - the requested total exceeds received - allocated
      - a PO entry targets an unknown order or one not in an open status
    """
    available = received_qty(item) - total_allocated(item)

    if not proposals:
        return _invalid("At least one allocation is required", available)

    for proposal in proposals:
        if not _is_quantity(proposal.quantity):
            return _invalid("Allocation quantity must be a whole number", available)
        if proposal.quantity <= 0:
            return _invalid("Allocation quantity must be greater than 0", available)
        if proposal.allocation_type is None:
            return _invalid("Allocation type is required", available)
        if not proposal.allocation_target:
            return _invalid("Allocation target is required", available)

    requested = sum(p.quantity for p in proposals)
    if requested > available:
        return _invalid(
            f"Cannot allocate {requested} items. Only {available} available.",
            available, requested
        )

    for proposal in proposals:
        if proposal.allocation_type is not AllocationType.PURCHASE_ORDER:
            continue
        order = order_lookup(proposal.allocation_target)
        if order is None:
            return _invalid(f"Purchase Order {proposal.allocation_target} not found", available, requested)
        status = str(order.get("status") or "").lower()
        if status not in settings.OPEN_ORDER_STATUSES:
            return _invalid(
                f"Cannot allocate to purchase order {order.get('po_number') or order['id']} with status '{status}'",
                available, requested
            )

    return ValidationResult(valid=True, available=available, requested=requested)


def validate_stock_capacity(counters: StockCounters, proposals: List[ProposedAllocation]) -> ValidationResult:
    """
    Reserved quantities (PO and project) must fit within available stock
    once the warehouse quantities have been added to current stock.
    """
    warehouse = sum(p.quantity for p in proposals if p.allocation_type is AllocationType.WAREHOUSE)
    reserved = sum(p.quantity for p in proposals if p.allocation_type is not AllocationType.WAREHOUSE)
    available = counters.available_stock + warehouse

    if reserved > available:
        return _invalid(
            f"Cannot reserve {reserved} units of product {counters.product_id}. "
            f"Only {available} available in stock.",
            available, reserved
        )
    return ValidationResult(valid=True, available=available, requested=reserved)
