"""
Stock Allocation Service
Consumer facing operations of the allocation engine: allocate, suggest,
list targets, reset and analytics
"""
from datetime import date
from typing import Any, Dict, List, Optional, Tuple, Union

from stockalloc.core.config import settings
from stockalloc.core.exceptions import NotFoundError, ValidationError
from stockalloc.core.logging import get_logger, job_context
from stockalloc.services.document_store import DocumentStore
from .jobs import AllocationJob
from .resolver import resolve_item, resolve_order, resolve_parent, resolve_product
from .reversal import ReversalEngine
from .suggestion import sort_candidates, suggest
from .targets import catalog_targets, find_open_orders, is_open
from .types import (
    AllocationStatus, AllocationType, ProductIdentity, ProposedAllocation,
    Resolution, ReversalSummary, StockCounters, received_qty, total_allocated
)
from .validator import validate_allocations, validate_stock_capacity
from .writer import AllocationOutcome, AllocationWriter

logger = get_logger("allocation.service")


class StockAllocationService:
    """
    Stock allocation against received proforma invoice items

    Every call re-reads the documents it needs; nothing is cached between
    calls. There is no per-item lock, so two concurrent allocations of the
    same item can both validate against the same snapshot.
    """

    def __init__(self, store: DocumentStore, current_user: Optional[str] = None):
        self.store = store
        self.current_user = current_user or settings.SYSTEM_USER

    # ------------------------------------------------------------------
    # AllocateStock
    # ------------------------------------------------------------------
    def allocate_stock(
        self,
        parent_id: str,
        item_id: str,
        allocations: List[Union[Dict[str, Any], ProposedAllocation]],
        job: Optional[AllocationJob] = None,
    ) -> AllocationOutcome:
        """
        Validate and write allocations for one line item.

        Raises ValidationError or NotFoundError before any write. Returns
        an outcome whose status is "partial" when a later write failed.
        """
        if not parent_id or not item_id:
            raise ValidationError("PI ID and Item ID are required")

        proposals = [
            a if isinstance(a, ProposedAllocation) else ProposedAllocation.from_dict(a)
            for a in allocations or []
        ]

        parent, item = self._load_item(parent_id, item_id)
        orders = self.store.query(settings.ORDER_COLLECTION)
        resolved_orders: Dict[str, Dict[str, Any]] = {}

        def order_lookup(target: str) -> Optional[Dict[str, Any]]:
            try:
                resolution = resolve_order(orders, target)
            except NotFoundError:
                return None
            resolved_orders[target] = resolution.record
            return resolution.record

        result = validate_allocations(item.record, proposals, order_lookup)
        if not result.valid:
            raise ValidationError(result.reason)

        product = self._load_product(item.record)
        capacity = validate_stock_capacity(StockCounters.from_product(product.record), proposals)
        if not capacity.valid:
            raise ValidationError(capacity.reason)

        for proposal in proposals:
            if proposal.allocation_type is AllocationType.PURCHASE_ORDER:
                order = resolved_orders[proposal.allocation_target]
                proposal.allocation_target = order["id"]
                proposal.target_name = proposal.target_name or order.get("po_number") or order["id"]

        job = job or AllocationJob(action="allocate", parent_ref=parent_id, item_ref=item_id)
        logger.info(
            f"Allocating {result.requested} of {result.available} available units on item {item.id} "
            f"(parent via {parent.strategy}, item via {item.strategy})",
            extra=job_context(job.job_id),
        )
        writer = AllocationWriter(self.store, user=self.current_user)
        return writer.write(parent, item, product, proposals, job)

    # ------------------------------------------------------------------
    # SuggestAllocations
    # ------------------------------------------------------------------
    def suggest_allocations(
        self,
        parent_id: str,
        item_id: str,
        available_qty: int,
        today: Optional[date] = None,
    ) -> List[ProposedAllocation]:
        """Priority ordered split of available_qty; sums exactly to it"""
        if isinstance(available_qty, bool) or not isinstance(available_qty, int) or available_qty < 0:
            raise ValidationError("Available quantity must be a non-negative whole number")

        _, item = self._load_item(parent_id, item_id)
        identity = self._identity_for(item.record)
        candidates = find_open_orders(self._open_orders(), identity, today or date.today())
        suggestions = suggest(available_qty, candidates)

        logger.info(
            f"Suggested {len(suggestions)} allocations for {available_qty} units of item {item.id} "
            f"from {len(candidates)} open orders"
        )
        return suggestions

    # ------------------------------------------------------------------
    # GetAvailableTargets
    # ------------------------------------------------------------------
    def get_available_targets(self, product_id: str, today: Optional[date] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Open orders needing the product, active projects and warehouses"""
        products = self.store.query(settings.PRODUCT_COLLECTION)
        try:
            product = resolve_product(products, ProductIdentity(product_id=product_id, code=product_id, sku=product_id))
            identity = ProductIdentity.from_product(product.record)
            open_orders = sort_candidates(find_open_orders(self._open_orders(), identity, today or date.today()))
        except NotFoundError:
            logger.warning(f"Product {product_id} not found; no purchase order targets offered")
            open_orders = []

        projects = catalog_targets(
            self.store.query(settings.PROJECT_COLLECTION),
            AllocationType.PROJECT,
            settings.DEFAULT_PROJECT_ID,
            settings.DEFAULT_PROJECT_NAME,
            "General project allocation",
        )
        warehouses = catalog_targets(
            self.store.query(settings.WAREHOUSE_COLLECTION),
            AllocationType.WAREHOUSE,
            settings.DEFAULT_WAREHOUSE_ID,
            settings.DEFAULT_WAREHOUSE_NAME,
            "Primary storage location",
        )

        return {
            "purchase_orders": [t.to_dict() for t in open_orders],
            "project_codes": [t.to_dict() for t in projects],
            "warehouses": [t.to_dict() for t in warehouses],
        }

    # ------------------------------------------------------------------
    # ResetItemAllocations
    # ------------------------------------------------------------------
    def reset_item_allocations(
        self,
        parent_id: str,
        item_id: str,
        job: Optional[AllocationJob] = None,
    ) -> ReversalSummary:
        """Reverse every allocation of one item; siblings are untouched"""
        if not parent_id or not item_id:
            raise ValidationError("PI ID and Item ID are required")

        parent, item = self._load_item(parent_id, item_id)
        product = self._load_product(item.record) if item.record.get("allocations") else None
        job = job or AllocationJob(action="reset", parent_ref=parent_id, item_ref=item_id)
        return ReversalEngine(self.store, user=self.current_user).reverse(parent, item, product, job)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    def get_item_allocation_state(self, parent_id: str, item_id: str) -> Dict[str, Any]:
        parent, item = self._load_item(parent_id, item_id)
        record = item.record
        return {
            "parent_id": parent.id,
            "item_id": item.id,
            "parent_strategy": parent.strategy,
            "item_strategy": item.strategy,
            "received_qty": received_qty(record),
            "total_allocated": total_allocated(record),
            "unallocated_qty": received_qty(record) - total_allocated(record),
            "allocations": list(record.get("allocations") or []),
            "reset_history": list(record.get("reset_history") or []),
        }

    def get_allocation_analytics(self) -> Dict[str, Any]:
        """Counts, quantities and value of active allocations"""
        records = self.store.query(settings.ALLOCATION_COLLECTION, {"status": AllocationStatus.ALLOCATED.value})
        prices = {}
        for parent in self.store.query(settings.PARENT_COLLECTION):
            for line in parent.get("items") or []:
                prices[(parent["id"], line.get("id"))] = float(line.get("unit_price") or 0)

        count_by_type = {t.value: 0 for t in AllocationType}
        quantity_by_type = {t.value: 0 for t in AllocationType}
        total_value = 0.0
        for record in records:
            allocation_type = AllocationType.parse(record.get("allocation_type"))
            quantity = int(record.get("quantity") or 0)
            if allocation_type is not None:
                count_by_type[allocation_type.value] += 1
                quantity_by_type[allocation_type.value] += quantity
            total_value += quantity * prices.get((record.get("parent_id"), record.get("item_id")), 0.0)

        return {
            "total_allocations": len(records),
            "total_quantity": sum(quantity_by_type.values()),
            "total_value": round(total_value, 2),
            "allocation_breakdown": {
                "po_allocations": count_by_type[AllocationType.PURCHASE_ORDER.value],
                "project_allocations": count_by_type[AllocationType.PROJECT.value],
                "warehouse_stock": count_by_type[AllocationType.WAREHOUSE.value],
            },
            "quantity_by_type": quantity_by_type,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _load_item(self, parent_id: str, item_id: str) -> Tuple[Resolution, Resolution]:
        parent = resolve_parent(self.store.query(settings.PARENT_COLLECTION), parent_id)
        item = resolve_item(parent.record, item_id)
        if parent.strategy != "direct_id" or item.strategy != "direct_id":
            logger.info(
                f"Resolved '{parent_id}'/'{item_id}' to {parent.id}/{item.id} "
                f"via {parent.strategy}/{item.strategy}"
            )
        return parent, item

    def _load_product(self, item: Dict[str, Any]) -> Resolution:
        return resolve_product(self.store.query(settings.PRODUCT_COLLECTION), ProductIdentity.from_item(item))

    def _identity_for(self, item: Dict[str, Any]) -> ProductIdentity:
        """Product document identity when it resolves, else the item's own"""
        try:
            return ProductIdentity.from_product(self._load_product(item).record)
        except NotFoundError:
            logger.warning(f"No product document for item {item.get('id')}; matching orders on item fields")
            return ProductIdentity.from_item(item)

    def _open_orders(self) -> List[Dict[str, Any]]:
        # Status case varies between sources; is_open compares lower-case
        return [o for o in self.store.query(settings.ORDER_COLLECTION) if is_open(o)]
