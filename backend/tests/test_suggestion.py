"""
Tests for the Suggestion Engine
Open order discovery, priority and the greedy split
"""

import pytest
from datetime import date, timedelta

from stockalloc.core.exceptions import ValidationError
from stockalloc.services.allocation.suggestion import sort_candidates, suggest
from stockalloc.services.allocation.targets import (
    calculate_priority, catalog_targets, find_open_orders, is_product_match, outstanding_need
)
from stockalloc.services.allocation.types import (
    AllocationTarget, AllocationType, Priority, ProductIdentity
)

TODAY = date(2024, 7, 1)
IDENTITY = ProductIdentity(product_id="prod-1", code="W-100", sku="SKU-100", name="Steel Widget")


def po(order_id, need, days=None, status="confirmed", **line):
    line = line or {"product_id": "prod-1"}
    line.update({"quantity": need, "fulfilled_quantity": 0})
    order = {"id": order_id, "po_number": f"PO-{order_id}", "status": status,
             "client_name": "Acme", "items": [line]}
    if days is not None:
        order["required_date"] = (TODAY + timedelta(days=days)).isoformat()
    return order


def target(target_id, need, priority, due=None):
    return AllocationTarget(
        id=target_id, name=target_id, target_type=AllocationType.PURCHASE_ORDER,
        need=need, priority=priority, required_date=due,
    )


class TestPriority:

    @pytest.mark.parametrize("days,expected", [
        (-3, Priority.HIGH),
        (0, Priority.HIGH),
        (7, Priority.HIGH),
        (8, Priority.MEDIUM),
        (30, Priority.MEDIUM),
        (31, Priority.LOW),
    ])
    def test_due_date_windows(self, days, expected):
        assert calculate_priority((TODAY + timedelta(days=days)).isoformat(), TODAY) == expected

    def test_missing_or_bad_date_is_medium(self):
        assert calculate_priority(None, TODAY) == Priority.MEDIUM
        assert calculate_priority("next tuesday", TODAY) == Priority.MEDIUM

    def test_timestamp_strings_accepted(self):
        assert calculate_priority("2024-07-03T09:30:00Z", TODAY) == Priority.HIGH


class TestOpenOrders:

    def test_product_match_variants(self):
        assert is_product_match({"product_id": "prod-1"}, IDENTITY)
        assert is_product_match({"product_code": "sku-100"}, IDENTITY)
        assert is_product_match({"product_code": "W-100"}, IDENTITY)
        assert is_product_match({"product_name": "STEEL WIDGET"}, IDENTITY)
        assert not is_product_match({"product_code": "OTHER"}, IDENTITY)
        assert not is_product_match({}, ProductIdentity())

    def test_need_sums_matching_lines(self):
        order = {"items": [
            {"product_id": "prod-1", "quantity": 10, "fulfilled_quantity": 4},
            {"product_code": "SKU-100", "quantity": 5},
            {"product_id": "other", "quantity": 99},
        ]}
        assert outstanding_need(order, IDENTITY) == 11

    def test_only_open_orders_with_need(self):
        orders = [
            po("a", 10, days=2),
            po("b", 10, days=2, status="delivered"),
            po("c", 0, days=2),
            po("d", 10, days=2, product_id="other"),
            po("e", 5, status="DRAFT"),
        ]
        found = find_open_orders(orders, IDENTITY, TODAY)
        assert [t.id for t in found] == ["a", "e"]
        assert found[0].priority == Priority.HIGH
        assert found[0].info == f"Acme - Due: {(TODAY + timedelta(days=2)).isoformat()}"
        assert found[1].info == "Acme - Due: TBD"
        assert found[1].priority == Priority.MEDIUM

    def test_fallback_display_name(self):
        order = po("z", 3)
        del order["po_number"]
        assert find_open_orders([order], IDENTITY, TODAY)[0].name == "PO-z"


class TestCatalogTargets:

    def test_active_entries_only(self):
        entries = [
            {"id": "p1", "code": "PRJ-1", "status": "active"},
            {"id": "p2", "code": "PRJ-2", "status": "closed"},
            {"id": "p3", "name": "Unlabelled"},
        ]
        found = catalog_targets(entries, AllocationType.PROJECT, "proj-general", "GENERAL-PROJECT", "General")
        assert [t.id for t in found] == ["p1", "p3"]
        assert found[1].name == "Unlabelled"

    def test_empty_catalog_returns_default(self):
        found = catalog_targets([], AllocationType.WAREHOUSE, "wh-main", "Main Warehouse", "Primary")
        assert len(found) == 1
        assert found[0].id == "wh-main"
        assert found[0].to_dict() == {"id": "wh-main", "name": "Main Warehouse", "info": "Primary"}


class TestSuggest:

    def test_single_high_priority_order_with_remainder(self):
        candidates = find_open_orders([po("po-1", 20, days=3)], IDENTITY, TODAY)
        suggestions = suggest(30, candidates)

        assert [(s.allocation_type, s.quantity) for s in suggestions] == [
            (AllocationType.PURCHASE_ORDER, 20),
            (AllocationType.WAREHOUSE, 10),
        ]
        assert suggestions[0].allocation_target == "po-1"
        assert suggestions[0].priority == Priority.HIGH
        assert suggestions[0].notes == "Auto-suggested for high priority PO"
        assert suggestions[1].allocation_target == "wh-main"
        assert suggestions[1].target_name == "Main Warehouse"

    def test_ordering_by_priority_then_due_date(self):
        d = lambda **kw: TODAY + timedelta(**kw)
        candidates = [
            target("low", 5, Priority.LOW, d(days=60)),
            target("med-late", 5, Priority.MEDIUM, d(days=25)),
            target("high-late", 5, Priority.HIGH, d(days=6)),
            target("med-early", 5, Priority.MEDIUM, d(days=10)),
            target("high-early", 5, Priority.HIGH, d(days=1)),
            target("med-undated", 5, Priority.MEDIUM),
        ]
        ordered = [s.allocation_target for s in suggest(30, candidates)]
        assert ordered == ["high-early", "high-late", "med-early", "med-late", "med-undated", "low"]

    def test_exhausts_before_candidates(self):
        candidates = [target("a", 10, Priority.HIGH), target("b", 10, Priority.MEDIUM)]
        suggestions = suggest(15, candidates)
        assert [(s.allocation_target, s.quantity) for s in suggestions] == [("a", 10), ("b", 5)]

    @pytest.mark.parametrize("available", [0, 1, 7, 19, 20, 21, 250])
    def test_sum_equals_available(self, available):
        candidates = [target("a", 12, Priority.HIGH), target("b", 8, Priority.LOW)]
        assert sum(s.quantity for s in suggest(available, candidates)) == available

    def test_no_candidates_all_to_warehouse(self):
        suggestions = suggest(9, [])
        assert len(suggestions) == 1
        assert suggestions[0].allocation_type == AllocationType.WAREHOUSE
        assert suggestions[0].to_dict()["id"] == "suggestion-warehouse"

    def test_zero_available_suggests_nothing(self):
        assert suggest(0, [target("a", 5, Priority.HIGH)]) == []

    def test_deterministic(self):
        candidates = [target("b", 5, Priority.HIGH), target("a", 5, Priority.HIGH)]
        first = [s.to_dict() for s in suggest(8, candidates)]
        second = [s.to_dict() for s in suggest(8, list(reversed(candidates)))]
        assert first == second
        assert first[0]["allocation_target"] == "a"

    def test_does_not_mutate_candidates(self):
        candidates = [target("a", 5, Priority.HIGH)]
        suggest(3, candidates)
        assert candidates[0].need == 5

    @pytest.mark.parametrize("available", [-1, 2.5, "10"])
    def test_invalid_available_rejected(self, available):
        with pytest.raises(ValidationError):
            suggest(available, [])

    def test_sort_candidates_stable_on_id(self):
        candidates = [target("z", 1, None), target("m", 1, Priority.MEDIUM)]
        assert [c.id for c in sort_candidates(candidates)] == ["m", "z"]
