"""
Test Configuration and Fixtures
Shared testing infrastructure for the allocation engine
"""

import pytest
from datetime import date, timedelta
from typing import Generator, Dict, Any
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from stockalloc.main import app
from stockalloc.api import deps
from stockalloc.core.config import settings
from stockalloc.core.database import Base
from stockalloc.models.document import DocumentRec  # noqa: F401
from stockalloc.core.exceptions import PersistenceError
from stockalloc.services.document_store import SQLDocumentStore
from stockalloc.services.allocation import StockAllocationService

# In-memory SQLite shared across connections
TEST_DATABASE_URL = "sqlite://"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TODAY = date.today()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db_session: Session) -> SQLDocumentStore:
    return SQLDocumentStore(db_session)


@pytest.fixture
def service(store: SQLDocumentStore) -> StockAllocationService:
    return StockAllocationService(store, current_user="tester")


@pytest.fixture
def client(store: SQLDocumentStore) -> Generator[TestClient, None, None]:
    """Create a test client with the document store dependency overridden"""
    app.dependency_overrides[deps.get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


class FailingStore(SQLDocumentStore):
    """Store whose writes to one collection fail after `allow` successes"""

    def __init__(self, db, fail_collection, operation="update", allow=0):
        super().__init__(db)
        self.fail_collection = fail_collection
        self.operation = operation
        self.allow = allow

    def _maybe_fail(self, collection, operation):
        if collection == self.fail_collection and operation == self.operation:
            if self.allow <= 0:
                raise PersistenceError(f"Simulated {operation} failure on {collection}", collection=collection)
            self.allow -= 1

    def add(self, collection, data, doc_id=None):
        self._maybe_fail(collection, "add")
        return super().add(collection, data, doc_id)

    def update(self, collection, doc_id, fields):
        self._maybe_fail(collection, "update")
        return super().update(collection, doc_id, fields)


@pytest.fixture
def failing_store(db_session: Session):
    """Factory for stores that fail writes to a chosen collection"""
    def make(collection, operation="update", allow=0):
        return FailingStore(db_session, collection, operation=operation, allow=allow)
    return make


@pytest.fixture
def scenario_a() -> list:
    """40 units to an open purchase order, 60 to the main warehouse"""
    return [
        {"allocation_type": "po", "allocation_target": "po-1", "quantity": 40, "notes": "Urgent"},
        {"allocation_type": "warehouse", "allocation_target": "wh-main", "quantity": 60},
    ]

@pytest.fixture
def product_data() -> Dict[str, Any]:
    return {
        "sku": "SKU-100",
        "code": "WIDGET-100",
        "name": "Steel Widget",
        "current_stock": 500,
        "allocated_stock": 50,
        "available_stock": 450,
    }


@pytest.fixture
def parent_data() -> Dict[str, Any]:
    """Proforma invoice with two received line items"""
    return {
        "pi_number": "TH-202407997",
        "document_id": "doc-7997",
        "supplier_name": "Thai Steel Co",
        "items": [
            {
                "id": "item-a",
                "product_id": "prod-1",
                "product_code": "SKU-100",
                "product_name": "Steel Widget",
                "quantity": 120,
                "received_qty": 100,
                "unit_price": 2.5,
                "allocations": [],
                "total_allocated": 0,
                "unallocated_qty": 100,
            },
            {
                "id": "item-b",
                "product_id": "prod-2",
                "product_code": "GADGET-9",
                "product_name": "Gadget",
                "quantity": 30,
                "received_qty": 30,
                "unit_price": 10.0,
                "allocations": [],
                "total_allocated": 0,
                "unallocated_qty": 30,
            },
        ],
    }


@pytest.fixture
def seeded(store: SQLDocumentStore, product_data, parent_data) -> Dict[str, str]:
    """Seed products, one proforma invoice, purchase orders and a project"""
    store.add(settings.PRODUCT_COLLECTION, product_data, doc_id="prod-1")
    store.add(settings.PRODUCT_COLLECTION, {
        "sku": "GADGET-9", "name": "Gadget", "current_stock": 10, "allocated_stock": 0,
    }, doc_id="prod-2")
    store.add(settings.PARENT_COLLECTION, parent_data, doc_id="pi-1")

    # High priority, needs 50
    store.add(settings.ORDER_COLLECTION, {
        "po_number": "PO-2024-001",
        "status": "confirmed",
        "client_name": "Acme Builders",
        "required_date": (TODAY + timedelta(days=3)).isoformat(),
        "items": [{"product_id": "prod-1", "quantity": 50, "fulfilled_quantity": 0}],
    }, doc_id="po-1")
    # Medium priority, needs 20 (matched by sku in any case)
    store.add(settings.ORDER_COLLECTION, {
        "po_number": "PO-2024-002",
        "status": "processing",
        "client_name": "Beta Homes",
        "required_date": (TODAY + timedelta(days=20)).isoformat(),
        "items": [{"product_code": "sku-100", "quantity": 30, "fulfilled_quantity": 10}],
    }, doc_id="po-2")
    # Closed order
    store.add(settings.ORDER_COLLECTION, {
        "po_number": "PO-2024-003",
        "status": "delivered",
        "client_name": "Gamma Ltd",
        "required_date": (TODAY + timedelta(days=1)).isoformat(),
        "items": [{"product_id": "prod-1", "quantity": 40, "fulfilled_quantity": 0}],
    }, doc_id="po-3")

    store.add(settings.PROJECT_COLLECTION, {
        "code": "PRJ-ALPHA", "description": "Alpha tower fit-out", "status": "active",
    }, doc_id="proj-alpha")
    store.add(settings.PROJECT_COLLECTION, {
        "code": "PRJ-OLD", "status": "closed",
    }, doc_id="proj-old")

    return {"parent_id": "pi-1", "item_id": "item-a", "product_id": "prod-1"}
