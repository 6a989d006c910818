"""
Allocation Targets
Open purchase orders, project codes and warehouses that received stock
can be allocated to
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from stockalloc.core.config import settings
from stockalloc.core.logging import get_logger
from .types import AllocationTarget, AllocationType, Priority, ProductIdentity

logger = get_logger("allocation.targets")


def _norm(value: Any) -> str:
    return "" if value is None else str(value).strip().lower()


def is_product_match(order_line: Dict[str, Any], identity: ProductIdentity) -> bool:
    """Order line refers to the product by id, sku, code or name (any case)"""
    line_id = _norm(order_line.get("product_id"))
    line_code = _norm(order_line.get("product_code"))
    line_name = _norm(order_line.get("product_name"))

    if line_id and line_id == _norm(identity.product_id):
        return True
    if line_code and line_code in {_norm(identity.sku), _norm(identity.code), _norm(identity.part_number)}:
        return True
    if line_name and line_name == _norm(identity.name):
        return True
    return False


def parse_date(value: Any) -> Optional[date]:
    """Dates arrive as date, datetime or ISO strings; anything else is None"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def calculate_priority(required_date: Any, today: date) -> Priority:
    """
    Due within HIGH_PRIORITY_DAYS -> high, within MEDIUM_PRIORITY_DAYS ->
    medium, later -> low. Orders without a usable date are medium.
    """
    due = parse_date(required_date)
    if due is None:
        return Priority.MEDIUM
    days_until_due = (due - today).days
    if days_until_due <= settings.HIGH_PRIORITY_DAYS:
        return Priority.HIGH
    if days_until_due <= settings.MEDIUM_PRIORITY_DAYS:
        return Priority.MEDIUM
    return Priority.LOW


def outstanding_need(order: Dict[str, Any], identity: ProductIdentity) -> int:
    """Ordered minus fulfilled over the order's lines for this product"""
    need = 0
    for line in order.get("items") or []:
        if is_product_match(line, identity):
            need += int(line.get("quantity") or 0) - int(line.get("fulfilled_quantity") or 0)
    return need


def is_open(order: Dict[str, Any]) -> bool:
    return _norm(order.get("status")) in settings.OPEN_ORDER_STATUSES


def find_open_orders(
    orders: List[Dict[str, Any]],
    identity: ProductIdentity,
    today: date,
) -> List[AllocationTarget]:
    """Open orders referencing the product that still need units"""
    targets = []
    for order in orders:
        if not is_open(order):
            continue
        need = outstanding_need(order, identity)
        if need <= 0:
            continue
        client = order.get("client_name") or "Unknown Client"
        required = parse_date(order.get("required_date"))
        targets.append(AllocationTarget(
            id=order["id"],
            name=order.get("po_number") or f"PO-{order['id']}",
            target_type=AllocationType.PURCHASE_ORDER,
            info=f"{client} - Due: {required.isoformat() if required else 'TBD'}",
            need=need,
            priority=calculate_priority(order.get("required_date"), today),
            required_date=required,
            client_name=client,
        ))

    logger.debug(f"{len(targets)} open orders need {identity.keys()}")
    return targets


def catalog_targets(
    entries: List[Dict[str, Any]],
    target_type: AllocationType,
    default_id: str,
    default_name: str,
    default_info: str,
) -> List[AllocationTarget]:
    """Active catalog entries, or the single default entry when empty"""
    active = [e for e in entries if _norm(e.get("status") or "active") == "active"]
    if not active:
        return [AllocationTarget(id=default_id, name=default_name, target_type=target_type, info=default_info)]

    targets = []
    for entry in active:
        if target_type is AllocationType.PROJECT:
            name = entry.get("code") or entry.get("name") or entry["id"]
            info = entry.get("description") or entry.get("client") or "Project allocation"
        else:
            name = entry.get("name") or entry["id"]
            info = entry.get("location") or entry.get("address") or "Warehouse location"
        targets.append(AllocationTarget(id=entry["id"], name=name, target_type=target_type, info=info))
    return targets
