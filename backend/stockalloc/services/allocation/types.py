"""
Allocation Domain Types
Typed values shared by the resolver, validator, suggestion engine, writer
and reversal engine
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import re

_POSITION = re.compile(r"item[_-]?(\d+)", re.IGNORECASE)


class AllocationType(str, Enum):
    PURCHASE_ORDER = "po"
    PROJECT = "project"
    WAREHOUSE = "warehouse"

    @classmethod
    def parse(cls, value: Any) -> Optional["AllocationType"]:
        """Accept enum members, stored values and display names"""
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "").replace(" ", "")
        aliases = {
            "po": cls.PURCHASE_ORDER,
            "purchaseorder": cls.PURCHASE_ORDER,
            "project": cls.PROJECT,
            "projectcode": cls.PROJECT,
            "warehouse": cls.WAREHOUSE,
        }
        return aliases.get(key)

    @property
    def reserves_stock(self) -> bool:
        """PO and project allocations count against allocated_stock"""
        return self is not AllocationType.WAREHOUSE


class AllocationStatus(str, Enum):
    ALLOCATED = "allocated"
    CONSUMED = "consumed"
    CANCELLED = "cancelled"

    def can_transition_to(self, new_status: "AllocationStatus") -> bool:
        # consumed and cancelled are terminal
        return self is AllocationStatus.ALLOCATED and new_status in (
            AllocationStatus.CONSUMED, AllocationStatus.CANCELLED
        )


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]

    @classmethod
    def parse(cls, value: Any, default: "Priority" = None) -> "Priority":
        try:
            return cls(str(value).lower())
        except ValueError:
            return default or cls.MEDIUM


@dataclass(frozen=True)
class EntityRef:
    """Loosely specified identifier as passed by a caller"""
    value: str
    kind: str = "record"

    def __post_init__(self):
        object.__setattr__(self, "value", "" if self.value is None else str(self.value).strip())

    @property
    def prefix(self) -> str:
        """Business key prefix, e.g. 'TH' for 'TH-202407997'"""
        return self.value.split("-")[0]

    @property
    def position(self) -> Optional[int]:
        """Zero based position parsed from synthetic ids like item_3"""
        match = _POSITION.search(self.value)
        if not match:
            return None
        position = int(match.group(1)) - 1
        return position if position >= 0 else None

    def __bool__(self) -> bool:
        return bool(self.value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ProductIdentity:
    """The several ways a product may be named across collections"""
    product_id: Optional[str] = None
    code: Optional[str] = None
    sku: Optional[str] = None
    name: Optional[str] = None
    part_number: Optional[str] = None

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "ProductIdentity":
        return cls(
            product_id=item.get("product_id"),
            code=item.get("product_code"),
            sku=item.get("sku"),
            name=item.get("product_name"),
            part_number=item.get("part_number"),
        )

    @classmethod
    def from_product(cls, product: Dict[str, Any]) -> "ProductIdentity":
        return cls(
            product_id=product.get("id"),
            code=product.get("code"),
            sku=product.get("sku"),
            name=product.get("name"),
            part_number=product.get("part_number"),
        )

    def keys(self) -> List[str]:
        values = [self.product_id, self.code, self.sku, self.part_number, self.name]
        return [str(v) for v in values if v]


@dataclass
class Resolution:
    """A resolved record plus the strategy that found it"""
    record: Dict[str, Any]
    strategy: str
    index: int = -1

    @property
    def id(self) -> Optional[str]:
        return self.record.get("id")


@dataclass
class ProposedAllocation:
    """One requested or suggested allocation entry"""
    allocation_type: Optional[AllocationType]
    allocation_target: Optional[str]
    quantity: Any
    target_name: str = ""
    notes: str = ""
    priority: Priority = Priority.MEDIUM
    required_date: Optional[str] = None
    suggestion_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProposedAllocation":
        return cls(
            allocation_type=AllocationType.parse(data.get("allocation_type")),
            allocation_target=data.get("allocation_target") or None,
            quantity=data.get("quantity", 0),
            target_name=data.get("target_name") or "",
            notes=data.get("notes") or "",
            priority=Priority.parse(data.get("priority")),
            required_date=data.get("required_date"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "allocation_type": self.allocation_type.value if self.allocation_type else None,
            "allocation_target": self.allocation_target,
            "target_name": self.target_name,
            "quantity": self.quantity,
            "priority": self.priority.value,
            "notes": self.notes,
        }
        if self.required_date:
            data["required_date"] = self.required_date
        if self.suggestion_id:
            data["id"] = self.suggestion_id
            data["suggested"] = True
        return data


@dataclass
class AllocationTarget:
    """Read-only view of something stock can be allocated to"""
    id: str
    name: str
    target_type: AllocationType
    info: str = ""
    need: Optional[int] = None
    priority: Optional[Priority] = None
    required_date: Optional[date] = None
    client_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "name": self.name, "info": self.info}
        if self.target_type is AllocationType.PURCHASE_ORDER:
            data.update({
                "needed_quantity": self.need,
                "priority": self.priority.value if self.priority else None,
                "required_date": self.required_date.isoformat() if self.required_date else None,
                "client_name": self.client_name,
            })
        return data


@dataclass
class StockCounters:
    """Product stock counters as stored on the product document"""
    product_id: str
    current_stock: int = 0
    allocated_stock: int = 0

    @classmethod
    def from_product(cls, product: Dict[str, Any]) -> "StockCounters":
        current = product.get("current_stock")
        if current is None:
            current = product.get("stock", 0)
        return cls(
            product_id=product.get("id"),
            current_stock=int(current or 0),
            allocated_stock=int(product.get("allocated_stock") or 0),
        )

    @property
    def available_stock(self) -> int:
        return self.current_stock - self.allocated_stock

    def as_fields(self) -> Dict[str, int]:
        return {
            "current_stock": self.current_stock,
            "allocated_stock": self.allocated_stock,
            "available_stock": self.available_stock,
        }


@dataclass
class ValidationResult:
    valid: bool
    reason: Optional[str] = None
    available: int = 0
    requested: int = 0


def allocation_totals(allocations: List[Dict[str, Any]]) -> Tuple[int, int]:
    """Split allocation entries into (warehouse, reserved) quantities"""
    warehouse = 0
    reserved = 0
    for entry in allocations:
        quantity = int(entry.get("quantity") or 0)
        allocation_type = AllocationType.parse(entry.get("allocation_type"))
        if allocation_type is AllocationType.WAREHOUSE:
            warehouse += quantity
        else:
            reserved += quantity
    return warehouse, reserved


def received_qty(item: Dict[str, Any]) -> int:
    return int(item.get("received_qty") or 0)


def total_allocated(item: Dict[str, Any]) -> int:
    """Sum of the item's allocation entries"""
    return sum(int(a.get("quantity") or 0) for a in item.get("allocations") or [])


def unallocated_qty(item: Dict[str, Any]) -> int:
    return received_qty(item) - total_allocated(item)


@dataclass
class ReversalSummary:
    parent_id: str
    item_id: Optional[str]
    product_id: Optional[str]
    total_reversed: int = 0
    warehouse_reversal: int = 0
    reserved_reversal: int = 0
    allocation_ids: List[str] = field(default_factory=list)
    counters_before: Dict[str, int] = field(default_factory=dict)
    counters_after: Dict[str, int] = field(default_factory=dict)
    verified: bool = True
    status: str = "completed"
    steps: List[Dict[str, Any]] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[str] = None
    reset_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parent_id": self.parent_id,
            "item_id": self.item_id,
            "product_id": self.product_id,
            "total_reversed": self.total_reversed,
            "warehouse_reversal": self.warehouse_reversal,
            "reserved_reversal": self.reserved_reversal,
            "allocation_ids": list(self.allocation_ids),
            "counters_before": dict(self.counters_before),
            "counters_after": dict(self.counters_after),
            "verified": self.verified,
            "status": self.status,
            "steps": list(self.steps),
            "failed_step": self.failed_step,
            "error": self.error,
            "reset_at": self.reset_at,
        }
