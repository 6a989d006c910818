"""
Suggestion Engine
Priority ordered split of an available quantity across open orders,
with the remainder sent to the default warehouse.
"""
from datetime import date
from typing import List

from stockalloc.core.config import settings
from stockalloc.core.exceptions import ValidationError
from .types import AllocationTarget, AllocationType, Priority, ProposedAllocation


def sort_candidates(candidates: List[AllocationTarget]) -> List[AllocationTarget]:
    """High before medium before low, then earliest due date, then id"""
    return sorted(
        candidates,
        key=lambda c: (
            -(c.priority or Priority.MEDIUM).rank,
            c.required_date or date.max,
            str(c.id),
        ),
    )


def warehouse_remainder(quantity: int, notes: str = "General stock for future orders") -> ProposedAllocation:
    return ProposedAllocation(
        allocation_type=AllocationType.WAREHOUSE,
        allocation_target=settings.DEFAULT_WAREHOUSE_ID,
        target_name=settings.DEFAULT_WAREHOUSE_NAME,
        quantity=quantity,
        priority=Priority.LOW,
        notes=notes,
        suggestion_id="suggestion-warehouse",
    )


def suggest(available_qty: int, candidates: List[AllocationTarget]) -> List[ProposedAllocation]:
    """
    Greedy allocation over the sorted candidates.

    Pure and deterministic: the result depends only on the arguments, and
    its quantities always add up to available_qty.
    """
    if isinstance(available_qty, bool) or not isinstance(available_qty, int):
        raise ValidationError("Available quantity must be a whole number")
    if available_qty < 0:
        raise ValidationError("Available quantity cannot be negative")

    suggestions = []
    remaining = available_qty

    for candidate in sort_candidates(candidates):
        if remaining <= 0:
            break
        if not candidate.need or candidate.need <= 0:
            continue

        quantity = min(remaining, candidate.need)
        priority = candidate.priority or Priority.MEDIUM
        target_name = candidate.name
        if candidate.client_name:
            target_name = f"{candidate.name} - {candidate.client_name}"

        suggestions.append(ProposedAllocation(
            allocation_type=AllocationType.PURCHASE_ORDER,
            allocation_target=candidate.id,
            target_name=target_name,
            quantity=quantity,
            priority=priority,
            required_date=candidate.required_date.isoformat() if candidate.required_date else None,
            notes=f"Auto-suggested for {priority.value} priority PO",
            suggestion_id=f"suggestion-{candidate.id}",
        ))
        remaining -= quantity

    if remaining > 0:
        suggestions.append(warehouse_remainder(remaining))

    return suggestions
