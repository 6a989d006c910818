"""
Tests for the Document Store
Partial updates, filtered queries and persistence failures
"""

import pytest
from sqlalchemy.orm import Session

from stockalloc.core.exceptions import PersistenceError
from stockalloc.services.document_store import SQLDocumentStore, apply_update, matches_filters, set_path


class TestPathUpdates:
    """Dotted path helpers used by partial updates"""

    def test_set_nested_dict_path(self):
        data = {"fulfillment": {"total_allocated": 5}}
        set_path(data, "fulfillment.total_allocated", 9)
        assert data == {"fulfillment": {"total_allocated": 9}}

    def test_set_path_creates_missing_dicts(self):
        data = {}
        set_path(data, "a.b.c", 1)
        assert data == {"a": {"b": {"c": 1}}}

    def test_numeric_segment_addresses_list_position(self):
        data = {"items": [{"id": "x", "qty": 1}, {"id": "y", "qty": 2}]}
        set_path(data, "items.1.qty", 7)
        assert data["items"][0] == {"id": "x", "qty": 1}
        assert data["items"][1]["qty"] == 7

    def test_out_of_range_index_raises(self):
        with pytest.raises(KeyError):
            set_path({"items": []}, "items.0", {})

    def test_apply_update_does_not_touch_input(self):
        original = {"items": [{"qty": 1}]}
        updated = apply_update(original, {"items.0.qty": 3})
        assert original["items"][0]["qty"] == 1
        assert updated["items"][0]["qty"] == 3

    def test_matches_filters_membership(self):
        doc = {"status": "confirmed", "client": "Acme"}
        assert matches_filters(doc, {"status": ["draft", "confirmed"]})
        assert not matches_filters(doc, {"status": ("delivered",)})
        assert matches_filters(doc, {"client": "Acme", "status": "confirmed"})
        assert matches_filters(doc, None)


class TestSQLDocumentStore:
    """Test suite for SQLDocumentStore"""

    def test_add_and_get(self, store: SQLDocumentStore):
        doc_id = store.add("products", {"sku": "A-1", "current_stock": 4})

        doc = store.get("products", doc_id)
        assert doc["id"] == doc_id
        assert doc["sku"] == "A-1"
        assert doc["current_stock"] == 4
        assert "created_at" in doc and "updated_at" in doc

    def test_add_with_explicit_id_strips_body_id(self, store: SQLDocumentStore):
        store.add("products", {"id": "ignored", "sku": "B"}, doc_id="prod-b")
        assert store.get("products", "prod-b")["id"] == "prod-b"
        assert store.get("products", "ignored") is None

    def test_get_missing_returns_none(self, store: SQLDocumentStore):
        assert store.get("products", "nope") is None
        assert store.get("products", "") is None

    def test_returned_documents_are_copies(self, store: SQLDocumentStore):
        store.add("products", {"tags": ["a"]}, doc_id="p")
        doc = store.get("products", "p")
        doc["tags"].append("b")
        assert store.get("products", "p")["tags"] == ["a"]

    def test_query_filters_by_collection_and_fields(self, store: SQLDocumentStore):
        store.add("purchase_orders", {"status": "draft"}, doc_id="po-1")
        store.add("purchase_orders", {"status": "delivered"}, doc_id="po-2")
        store.add("products", {"status": "draft"}, doc_id="p-1")

        open_orders = store.query("purchase_orders", {"status": ["draft", "confirmed"]})
        assert [d["id"] for d in open_orders] == ["po-1"]
        assert len(store.query("purchase_orders")) == 2

    def test_partial_update_leaves_siblings(self, store: SQLDocumentStore):
        store.add("proforma_invoices", {
            "items": [{"id": "a", "total": 0}, {"id": "b", "total": 0}],
            "status": "received",
        }, doc_id="pi")

        store.update("proforma_invoices", "pi", {"items.0": {"id": "a", "total": 5}})

        doc = store.get("proforma_invoices", "pi")
        assert doc["items"][0] == {"id": "a", "total": 5}
        assert doc["items"][1] == {"id": "b", "total": 0}
        assert doc["status"] == "received"

    def test_update_missing_document_raises(self, store: SQLDocumentStore):
        with pytest.raises(PersistenceError) as exc_info:
            store.update("products", "ghost", {"current_stock": 1})
        assert exc_info.value.collection == "products"
        assert exc_info.value.doc_id == "ghost"

    def test_update_bad_path_raises(self, store: SQLDocumentStore):
        store.add("proforma_invoices", {"items": []}, doc_id="pi")
        with pytest.raises(PersistenceError):
            store.update("proforma_invoices", "pi", {"items.3": {}})

    def test_delete(self, store: SQLDocumentStore):
        store.add("products", {"sku": "X"}, doc_id="x")
        store.delete("products", "x")
        assert store.get("products", "x") is None
        # Deleting again is a no-op
        store.delete("products", "x")

    def test_commit_failure_rolls_back(self, store: SQLDocumentStore, db_session: Session, monkeypatch):
        from sqlalchemy.exc import OperationalError

        store.add("products", {"current_stock": 1}, doc_id="p")

        def failing_commit():
            raise OperationalError("UPDATE documents", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(PersistenceError, match="Failed to update products/p"):
            store.update("products", "p", {"current_stock": 2})

        monkeypatch.undo()
        assert store.get("products", "p")["current_stock"] == 1
