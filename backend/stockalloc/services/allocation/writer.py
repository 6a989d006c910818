"""
Allocation Writer
Persists allocation records and keeps the line item, product stock
counters and target order fulfillment in step with them.

The four writes go to independent documents. Each one is recorded on the
AllocationJob as it completes; when a later write fails the earlier ones
stay in place and the outcome reports exactly which steps ran.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import copy

from stockalloc.core.config import settings
from stockalloc.core.exceptions import PersistenceError
from stockalloc.core.logging import get_logger, job_context
from stockalloc.services.document_store import DocumentStore
from .jobs import AllocationJob, JobCancelled, JobState
from .targets import is_product_match
from .types import (
    AllocationStatus, AllocationType, ProductIdentity, ProposedAllocation,
    Resolution, StockCounters, received_qty, total_allocated
)

logger = get_logger("allocation.writer")

STEP_RECORDS = "allocation_records"
STEP_LINE_ITEM = "line_item"
STEP_PRODUCT = "product_stock"
STEP_TARGETS = "target_fulfillment"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AllocationOutcome:
    """Result of AllocateStock; `status` is completed, partial or cancelled"""
    status: str
    records: List[Dict[str, Any]] = field(default_factory=list)
    job: Optional[AllocationJob] = None
    item: Optional[Dict[str, Any]] = None
    counters: Optional[Dict[str, int]] = None

    @property
    def degraded(self) -> bool:
        return self.status != "completed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "records": copy.deepcopy(self.records),
            "job": self.job.to_dict() if self.job else None,
            "total_allocated": self.item.get("total_allocated") if self.item else None,
            "unallocated_qty": self.item.get("unallocated_qty") if self.item else None,
            "counters": dict(self.counters) if self.counters else None,
        }


def line_reference(record: Dict[str, Any]) -> Dict[str, Any]:
    """The copy of an allocation record embedded in the line item"""
    return {
        "id": record["id"],
        "quantity": record["quantity"],
        "allocation_type": record["allocation_type"],
        "allocation_target": record["allocation_target"],
        "target_name": record["target_name"],
        "status": record["status"],
        "priority": record["priority"],
        "notes": record["notes"],
        "allocated_at": record["allocated_at"],
    }


class AllocationWriter:
    """Applies a validated set of allocations to the store"""

    def __init__(self, store: DocumentStore, user: Optional[str] = None):
        self.store = store
        self.user = user or settings.SYSTEM_USER

    def write(
        self,
        parent: Resolution,
        item: Resolution,
        product: Resolution,
        proposals: List[ProposedAllocation],
        job: AllocationJob,
    ) -> AllocationOutcome:
        job.start()
        log_ctx = job_context(job.job_id)
        outcome = AllocationOutcome(status="completed", job=job)
        step = STEP_RECORDS

        try:
            job.checkpoint()
            outcome.records = self._create_records(parent, item, product, proposals, job)

            step = STEP_LINE_ITEM
            job.checkpoint()
            outcome.item = self._update_line_item(parent, item, outcome.records)
            job.complete_step(STEP_LINE_ITEM, total_allocated=outcome.item["total_allocated"])

            step = STEP_PRODUCT
            job.checkpoint()
            outcome.counters = self._update_product_stock(product, outcome.records)
            job.complete_step(STEP_PRODUCT, **outcome.counters)

            step = STEP_TARGETS
            job.checkpoint()
            updated = self._update_targets(product, outcome.records)
            job.complete_step(STEP_TARGETS, orders=updated)

        except JobCancelled:
            logger.warning(
                f"Allocation job {job.job_id} cancelled before {step}; completed {job.completed_steps}",
                extra=log_ctx,
            )
            job.finish()
            outcome.status = JobState.CANCELLED.value
            return outcome

        except PersistenceError as e:
            job.fail_step(step, e)
            state = job.finish()
            if state is JobState.FAILED:
                logger.error(f"Allocation job {job.job_id} failed at {step} before any write: {e}", extra=log_ctx)
                e.saga = job.to_dict()
                raise
            logger.error(
                f"Allocation job {job.job_id} partially applied: completed {job.completed_steps}, failed at {step}: {e}",
                extra=log_ctx,
            )
            outcome.status = JobState.PARTIAL.value
            return outcome

        job.finish()
        logger.info(
            f"Allocated {sum(r['quantity'] for r in outcome.records)} units of item {item.id} "
            f"in {parent.id} across {len(outcome.records)} allocations",
            extra=log_ctx,
        )
        return outcome

    def _create_records(self, parent, item, product, proposals, job) -> List[Dict[str, Any]]:
        records = []
        try:
            for proposal in proposals:
                record = self._build_record(parent, item, product, proposal)
                record["id"] = self.store.add(settings.ALLOCATION_COLLECTION, record)
                records.append(record)
        except PersistenceError:
            if records:
                # Some records exist already; report them as a completed step
                job.complete_step(STEP_RECORDS, record_ids=[r["id"] for r in records], complete=False)
            raise
        job.complete_step(STEP_RECORDS, record_ids=[r["id"] for r in records])
        return records

    def _build_record(self, parent, item, product, proposal: ProposedAllocation) -> Dict[str, Any]:
        now = _now()
        target_name = proposal.target_name or proposal.allocation_target
        return {
            "parent_id": parent.id,
            "item_id": item.id,
            "product_id": product.id,
            "quantity": proposal.quantity,
            "allocation_type": proposal.allocation_type.value,
            "allocation_target": proposal.allocation_target,
            "target_name": target_name,
            "status": AllocationStatus.ALLOCATED.value,
            "allocated_at": now,
            "allocated_by": self.user,
            "notes": proposal.notes or "",
            "priority": proposal.priority.value,
            "history": [{
                "action": "created",
                "timestamp": now,
                "user": self.user,
                "details": f"Allocated {proposal.quantity} units to {target_name}",
            }],
        }

    def _update_line_item(self, parent, item, records) -> Dict[str, Any]:
        updated = copy.deepcopy(item.record)
        updated["allocations"] = list(updated.get("allocations") or []) + [line_reference(r) for r in records]
        updated["total_allocated"] = total_allocated(updated)
        updated["unallocated_qty"] = received_qty(updated) - updated["total_allocated"]
        history = list(updated.get("allocation_history") or [])
        history.append({
            "timestamp": _now(),
            "action": "allocated",
            "quantity": sum(r["quantity"] for r in records),
            "allocations": len(records),
            "user": self.user,
            "strategy": parent.strategy,
            "item_strategy": item.strategy,
        })
        updated["allocation_history"] = history

        self.store.update(settings.PARENT_COLLECTION, parent.id, {
            f"items.{item.index}": updated,
            "last_allocation_update": _now(),
        })
        return updated

    def _update_product_stock(self, product, records) -> Dict[str, int]:
        current = self.store.get(settings.PRODUCT_COLLECTION, product.id) or product.record
        counters = StockCounters.from_product(current)

        for record in records:
            if AllocationType.parse(record["allocation_type"]) is AllocationType.WAREHOUSE:
                counters.current_stock += record["quantity"]
            else:
                counters.allocated_stock += record["quantity"]

        fields = counters.as_fields()
        self.store.update(settings.PRODUCT_COLLECTION, product.id, fields)
        return fields

    def _update_targets(self, product, records) -> List[str]:
        identity = ProductIdentity.from_product(product.record)
        updated = []
        for record in records:
            allocation_type = AllocationType.parse(record["allocation_type"])
            if allocation_type is AllocationType.PURCHASE_ORDER:
                self._update_order_fulfillment(record, identity)
                updated.append(record["allocation_target"])
            elif allocation_type is AllocationType.PROJECT:
                logger.info(
                    f"Project allocation recorded: project={record['allocation_target']} "
                    f"quantity={record['quantity']} allocation={record['id']}"
                )
        return updated

    def _update_order_fulfillment(self, record, identity: ProductIdentity):
        order = self.store.get(settings.ORDER_COLLECTION, record["allocation_target"])
        if order is None:
            logger.warning(f"Purchase order {record['allocation_target']} vanished before fulfillment update")
            return

        lines = copy.deepcopy(order.get("items") or [])
        remaining = record["quantity"]
        split = []
        for index, line in enumerate(lines):
            if remaining <= 0:
                break
            if not is_product_match(line, identity):
                continue
            fulfilled = int(line.get("fulfilled_quantity") or 0)
            outstanding = int(line.get("quantity") or 0) - fulfilled
            if outstanding <= 0:
                continue
            take = min(outstanding, remaining)
            line["fulfilled_quantity"] = fulfilled + take
            split.append({"index": index, "quantity": take})
            remaining -= take

        fulfillment = copy.deepcopy(order.get("fulfillment") or {})
        refs = list(fulfillment.get("allocations") or [])
        refs.append({
            "allocation_id": record["id"],
            "quantity": record["quantity"],
            "allocated_date": record["allocated_at"],
            "product_id": identity.product_id,
            "lines": split,
        })
        fulfillment["allocations"] = refs
        fulfillment["total_allocated"] = int(fulfillment.get("total_allocated") or 0) + record["quantity"]
        fulfillment["fulfillment_rate"] = fulfillment_rate(fulfillment["total_allocated"], lines)

        self.store.update(settings.ORDER_COLLECTION, order["id"], {
            "fulfillment": fulfillment,
            "items": lines,
        })


def fulfillment_rate(allocated: int, lines: List[Dict[str, Any]]) -> float:
    """Allocated as a percentage of everything ordered on the PO"""
    ordered = sum(int(line.get("quantity") or 0) for line in lines)
    return (allocated / ordered) * 100 if ordered > 0 else 0.0
