"""
Reversal Engine
Undoes every allocation of one line item and restores the product's
stock counters by exactly what those allocations added.

Only the target item is written; sibling items of the same document are
never touched. Feasibility is checked before the first write.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set
import copy

from stockalloc.core.config import settings
from stockalloc.core.exceptions import PersistenceError, ReversalInfeasibleError
from stockalloc.core.logging import get_logger, job_context
from stockalloc.services.document_store import DocumentStore
from .jobs import AllocationJob, JobState
from .types import (
    AllocationStatus, AllocationType, Resolution, ReversalSummary, StockCounters,
    allocation_totals, received_qty
)
from .writer import fulfillment_rate

logger = get_logger("allocation.reversal")

STEP_PRODUCT = "product_stock"
STEP_LINE_ITEM = "line_item"
STEP_RECORDS = "allocation_records"
STEP_TARGETS = "target_fulfillment"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReversalEngine:
    """Resets one line item's allocations"""

    def __init__(self, store: DocumentStore, user: Optional[str] = None):
        self.store = store
        self.user = user or settings.SYSTEM_USER

    def reverse(
        self,
        parent: Resolution,
        item: Resolution,
        product: Optional[Resolution],
        job: AllocationJob,
    ) -> ReversalSummary:
        job.start()
        log_ctx = job_context(job.job_id)
        allocations = list(item.record.get("allocations") or [])
        summary = ReversalSummary(
            parent_id=parent.id, item_id=item.id, product_id=product.id if product else None
        )

        if not allocations:
            logger.info(f"Item {item.id} in {parent.id} has no allocations to reverse", extra=log_ctx)
            job.finish()
            summary.steps = [s.to_dict() for s in job.steps]
            return summary

        warehouse_reversal, reserved_reversal = allocation_totals(allocations)
        computed_total = warehouse_reversal + reserved_reversal
        cached_total = item.record.get("total_allocated")
        if cached_total is not None and int(cached_total) != computed_total:
            logger.warning(
                f"Item {item.id} cached total_allocated={cached_total} disagrees with "
                f"allocation entries ({computed_total}); reversing the entries",
                extra=log_ctx,
            )

        summary.total_reversed = computed_total
        summary.warehouse_reversal = warehouse_reversal
        summary.reserved_reversal = reserved_reversal
        summary.allocation_ids = [a["id"] for a in allocations if a.get("id")]

        current = self.store.get(settings.PRODUCT_COLLECTION, product.id) or product.record
        before = StockCounters.from_product(current)
        try:
            self._check_feasible(before, warehouse_reversal, reserved_reversal)
        except ReversalInfeasibleError as e:
            job.state = JobState.FAILED
            job.error = str(e)
            raise

        after = StockCounters(
            product_id=before.product_id,
            current_stock=before.current_stock - warehouse_reversal,
            allocated_stock=before.allocated_stock - reserved_reversal,
        )
        summary.counters_before = before.as_fields()
        summary.counters_after = after.as_fields()

        step = STEP_PRODUCT
        try:
            self.store.update(settings.PRODUCT_COLLECTION, product.id, after.as_fields())
            summary.verified = self._verify(product.id, after)
            job.complete_step(STEP_PRODUCT, verified=summary.verified, **after.as_fields())

            step = STEP_LINE_ITEM
            summary.reset_at = self._reset_line_item(parent, item, summary)
            job.complete_step(STEP_LINE_ITEM, total_reversed=computed_total)

            step = STEP_RECORDS
            cancelled = self._cancel_records(summary.allocation_ids)
            job.complete_step(STEP_RECORDS, cancelled=cancelled)

            step = STEP_TARGETS
            orders = self._release_fulfillment(allocations)
            job.complete_step(STEP_TARGETS, orders=orders)

        except PersistenceError as e:
            job.fail_step(step, e)
            state = job.finish()
            summary.steps = [s.to_dict() for s in job.steps]
            if state is JobState.FAILED:
                logger.error(f"Reversal of item {item.id} failed before any write: {e}", extra=log_ctx)
                e.saga = job.to_dict()
                raise
            logger.error(
                f"Reversal of item {item.id} partially applied: completed {job.completed_steps}, failed at {step}: {e}",
                extra=log_ctx,
            )
            summary.status = JobState.PARTIAL.value
            summary.failed_step = step
            summary.error = str(e)
            return summary

        job.finish()
        summary.steps = [s.to_dict() for s in job.steps]
        logger.info(
            f"Reversed {computed_total} units on item {item.id} in {parent.id} "
            f"(warehouse {warehouse_reversal}, reserved {reserved_reversal})",
            extra=log_ctx,
        )
        return summary

    @staticmethod
    def _check_feasible(counters: StockCounters, warehouse_reversal: int, reserved_reversal: int):
        required = {"current_stock": warehouse_reversal, "allocated_stock": reserved_reversal}
        available = {"current_stock": counters.current_stock, "allocated_stock": counters.allocated_stock}
        if warehouse_reversal > counters.current_stock or reserved_reversal > counters.allocated_stock:
            error = ReversalInfeasibleError(counters.product_id, required, available)
            logger.warning(str(error))
            raise error

    def _verify(self, product_id: str, expected: StockCounters) -> bool:
        """Re-read the product and compare with what was written"""
        stored = self.store.get(settings.PRODUCT_COLLECTION, product_id)
        if stored is None:
            logger.warning(f"Product {product_id} missing when verifying reversal")
            return False
        actual = StockCounters.from_product(stored)
        if (actual.current_stock, actual.allocated_stock) != (expected.current_stock, expected.allocated_stock):
            logger.warning(
                f"Product {product_id} counters after reversal are {actual.as_fields()}, "
                f"expected {expected.as_fields()}; a concurrent write may have been lost"
            )
            return False
        return True

    def _reset_line_item(self, parent: Resolution, item: Resolution, summary: ReversalSummary) -> str:
        reset_at = _now()
        updated = copy.deepcopy(item.record)
        updated["allocations"] = []
        updated["total_allocated"] = 0
        updated["unallocated_qty"] = received_qty(updated)
        history = list(updated.get("reset_history") or [])
        history.append({
            "reset_at": reset_at,
            "reset_by": self.user,
            "total_reversed": summary.total_reversed,
            "warehouse_reversal": summary.warehouse_reversal,
            "reserved_reversal": summary.reserved_reversal,
            "allocation_ids": list(summary.allocation_ids),
            "counters_before": dict(summary.counters_before),
            "counters_after": dict(summary.counters_after),
        })
        updated["reset_history"] = history

        self.store.update(settings.PARENT_COLLECTION, parent.id, {
            f"items.{item.index}": updated,
            "last_allocation_update": reset_at,
        })
        return reset_at

    def _cancel_records(self, allocation_ids: List[str]) -> List[str]:
        cancelled = []
        for allocation_id in allocation_ids:
            record = self.store.get(settings.ALLOCATION_COLLECTION, allocation_id)
            if record is None:
                logger.warning(f"Allocation record {allocation_id} not found while reversing")
                continue

            status = AllocationStatus(record.get("status") or AllocationStatus.ALLOCATED.value)
            if not status.can_transition_to(AllocationStatus.CANCELLED):
                logger.warning(f"Allocation record {allocation_id} is {status.value}; left unchanged")
                continue

            now = _now()
            history = list(record.get("history") or [])
            history.append({
                "action": "cancelled",
                "timestamp": now,
                "user": self.user,
                "details": f"Reversed {record.get('quantity')} units from {record.get('target_name')}",
            })
            self.store.update(settings.ALLOCATION_COLLECTION, allocation_id, {
                "status": AllocationStatus.CANCELLED.value,
                "cancelled_at": now,
                "history": history,
            })
            cancelled.append(allocation_id)
        return cancelled

    def _release_fulfillment(self, allocations: List[Dict[str, Any]]) -> List[str]:
        """Take this item's allocation references back off their purchase orders"""
        by_order: Dict[str, Set[str]] = {}
        for entry in allocations:
            if AllocationType.parse(entry.get("allocation_type")) is AllocationType.PURCHASE_ORDER:
                by_order.setdefault(entry["allocation_target"], set()).add(entry.get("id"))

        released = []
        for order_id, allocation_ids in by_order.items():
            order = self.store.get(settings.ORDER_COLLECTION, order_id)
            if order is None or not order.get("fulfillment"):
                continue

            lines = copy.deepcopy(order.get("items") or [])
            fulfillment = copy.deepcopy(order["fulfillment"])
            kept = []
            removed = 0
            for ref in fulfillment.get("allocations") or []:
                if ref.get("allocation_id") not in allocation_ids:
                    kept.append(ref)
                    continue
                removed += int(ref.get("quantity") or 0)
                for part in ref.get("lines") or []:
                    index = part["index"]
                    if index < len(lines):
                        fulfilled = int(lines[index].get("fulfilled_quantity") or 0)
                        lines[index]["fulfilled_quantity"] = max(fulfilled - int(part["quantity"]), 0)

            if not removed:
                continue
            fulfillment["allocations"] = kept
            fulfillment["total_allocated"] = max(int(fulfillment.get("total_allocated") or 0) - removed, 0)
            fulfillment["fulfillment_rate"] = fulfillment_rate(fulfillment["total_allocated"], lines)
            self.store.update(settings.ORDER_COLLECTION, order_id, {"fulfillment": fulfillment, "items": lines})
            released.append(order_id)
        return released
