"""
Tests for the Allocation Validator
"""

import pytest

from stockalloc.services.allocation.types import ProposedAllocation, StockCounters
from stockalloc.services.allocation.validator import validate_allocations, validate_stock_capacity


ORDERS = {
    "po-open": {"id": "po-open", "po_number": "PO-1", "status": "Confirmed"},
    "po-closed": {"id": "po-closed", "po_number": "PO-2", "status": "delivered"},
}


def lookup(target):
    return ORDERS.get(target)


def proposal(**overrides):
    data = {"allocation_type": "warehouse", "allocation_target": "wh-main", "quantity": 10}
    data.update(overrides)
    return ProposedAllocation.from_dict(data)


@pytest.fixture
def item():
    return {
        "id": "item-a",
        "received_qty": 100,
        "allocations": [{"id": "a1", "quantity": 30, "allocation_type": "warehouse"}],
        "total_allocated": 30,
    }


class TestValidateAllocations:

    def test_valid_request(self, item):
        result = validate_allocations(item, [proposal(quantity=40), proposal(
            allocation_type="po", allocation_target="po-open", quantity=30)], lookup)
        assert result.valid
        assert result.available == 70
        assert result.requested == 70

    def test_over_allocation_rejected(self, item):
        result = validate_allocations(item, [proposal(quantity=71)], lookup)
        assert not result.valid
        assert result.reason == "Cannot allocate 71 items. Only 70 available."

    def test_available_uses_allocation_entries(self, item):
        # A stale cached total does not widen what can be allocated
        item["total_allocated"] = 0
        result = validate_allocations(item, [proposal(quantity=71)], lookup)
        assert not result.valid

    def test_empty_request_rejected(self, item):
        result = validate_allocations(item, [], lookup)
        assert not result.valid
        assert "At least one allocation" in result.reason

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_non_positive_quantity_rejected(self, item, quantity):
        result = validate_allocations(item, [proposal(quantity=quantity)], lookup)
        assert not result.valid
        assert "greater than 0" in result.reason

    @pytest.mark.parametrize("quantity", [2.5, "10", True])
    def test_non_integer_quantity_rejected(self, item, quantity):
        result = validate_allocations(item, [proposal(quantity=quantity)], lookup)
        assert not result.valid
        assert "whole number" in result.reason

    def test_missing_type_rejected(self, item):
        result = validate_allocations(item, [proposal(allocation_type=None)], lookup)
        assert not result.valid
        assert result.reason == "Allocation type is required"

    def test_unknown_type_rejected(self, item):
        result = validate_allocations(item, [proposal(allocation_type="teleport")], lookup)
        assert not result.valid

    def test_missing_target_rejected(self, item):
        result = validate_allocations(item, [proposal(allocation_target="")], lookup)
        assert not result.valid
        assert result.reason == "Allocation target is required"

    def test_closed_order_rejected(self, item):
        result = validate_allocations(
            item, [proposal(allocation_type="po", allocation_target="po-closed")], lookup
        )
        assert not result.valid
        assert "status 'delivered'" in result.reason

    def test_unknown_order_rejected(self, item):
        result = validate_allocations(
            item, [proposal(allocation_type="po", allocation_target="po-missing")], lookup
        )
        assert not result.valid
        assert "not found" in result.reason

    def test_status_compared_case_insensitively(self, item):
        result = validate_allocations(
            item, [proposal(allocation_type="PurchaseOrder", allocation_target="po-open")], lookup
        )
        assert result.valid

    def test_never_mutates_item(self, item):
        before = {**item, "allocations": list(item["allocations"])}
        validate_allocations(item, [proposal(quantity=5)], lookup)
        assert item == before


class TestValidateStockCapacity:

    @pytest.fixture
    def counters(self):
        return StockCounters(product_id="prod-2", current_stock=10, allocated_stock=0)

    def test_reserve_beyond_available_rejected(self, counters):
        result = validate_stock_capacity(counters, [
            proposal(allocation_type="project", allocation_target="proj-alpha", quantity=30),
        ])
        assert not result.valid
        assert result.reason == "Cannot reserve 30 units of product prod-2. Only 10 available in stock."
        assert (result.available, result.requested) == (10, 30)

    def test_warehouse_stock_in_same_request_counts(self, counters):
        result = validate_stock_capacity(counters, [
            proposal(quantity=10),
            proposal(allocation_type="project", allocation_target="proj-alpha", quantity=15),
            proposal(allocation_type="po", allocation_target="po-open", quantity=5),
        ])
        assert result.valid
        assert (result.available, result.requested) == (20, 20)

    def test_warehouse_only_always_fits(self):
        empty = StockCounters(product_id="prod-9", current_stock=0, allocated_stock=0)
        assert validate_stock_capacity(empty, [proposal(quantity=50)]).valid
