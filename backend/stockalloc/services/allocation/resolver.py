"""
Entity Resolver
Locates loosely identified records across denormalized collections.

Callers may pass a human readable number where a generated id is stored,
or the other way round. Each resolution walks an ordered list of matchers,
from strict to permissive, and keeps the name of the matcher that hit.
All functions here are pure over the candidate lists they are given.
"""
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from stockalloc.core.config import settings
from stockalloc.core.exceptions import NotFoundError
from stockalloc.core.logging import get_logger
from .types import EntityRef, ProductIdentity, Resolution

logger = get_logger("allocation.resolver")

Finder = Callable[[List[Dict[str, Any]], EntityRef], Optional[int]]
Matcher = Tuple[str, Finder]


def _first(candidates: List[Dict[str, Any]], predicate) -> Optional[int]:
    for index, candidate in enumerate(candidates):
        if predicate(candidate):
            return index
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _same(a: Any, b: Any) -> bool:
    a, b = _text(a).strip().lower(), _text(b).strip().lower()
    return bool(a) and a == b


def field_equals(field: str) -> Finder:
    """Exact match of a stored field against the ref"""
    return lambda candidates, ref: _first(
        candidates, lambda c: ref.value != "" and _text(c.get(field)) == ref.value
    )


def field_contains(field: str) -> Finder:
    """Either id contains the other; tolerates prefixed or truncated ids"""
    def finder(candidates, ref):
        def contains(c):
            stored = _text(c.get(field))
            return bool(stored) and bool(ref.value) and (ref.value in stored or stored in ref.value)
        return _first(candidates, contains)
    return finder


def _prefix_matches(candidates, ref, key_field):
    prefix = ref.prefix
    if not prefix:
        return []
    return [i for i, c in enumerate(candidates) if prefix in _text(c.get(key_field))]


def unique_prefix(key_field: str) -> Finder:
    """Business key shares the ref's prefix with exactly one candidate"""
    def finder(candidates, ref):
        hits = _prefix_matches(candidates, ref, key_field)
        return hits[0] if len(hits) == 1 else None
    return finder


def most_recent_prefix(key_field: str) -> Finder:
    """Most recently updated candidate whose business key shares the prefix"""
    def finder(candidates, ref):
        hits = _prefix_matches(candidates, ref, key_field)
        if not hits:
            return None
        return max(
            hits,
            key=lambda i: (_text(candidates[i].get("updated_at") or candidates[i].get("created_at")), -i),
        )
    return finder


def by_position(candidates, ref) -> Optional[int]:
    """item_1, item-2, ITEM3 -> 1-based position in the list"""
    position = ref.position
    if position is not None and position < len(candidates):
        return position
    return None


def first_candidate(candidates, ref) -> Optional[int]:
    return 0 if candidates else None


PARENT_MATCHERS: Sequence[Matcher] = (
    ("direct_id", field_equals("id")),
    ("pi_number", field_equals("pi_number")),
    ("document_id", field_equals("document_id")),
    ("partial_id", field_contains("id")),
    ("pi_number_prefix", unique_prefix("pi_number")),
    ("most_recent_prefix", most_recent_prefix("pi_number")),
)

ITEM_MATCHERS: Sequence[Matcher] = (
    ("direct_id", field_equals("id")),
    ("product_code", field_equals("product_code")),
    ("product_name", field_equals("product_name")),
    ("part_number", field_equals("part_number")),
    ("sku", field_equals("sku")),
    ("partial_id", field_contains("id")),
    ("index_pattern", by_position),
    ("first_item", first_candidate),
)

# Allocation targets stop at containment; no prefix fallback
ORDER_MATCHERS: Sequence[Matcher] = (
    ("direct_id", field_equals("id")),
    ("po_number", field_equals("po_number")),
    ("partial_id", field_contains("id")),
)


def resolve(
    candidates: List[Dict[str, Any]],
    ref: EntityRef,
    matchers: Sequence[Matcher],
    summary_fields: Sequence[str] = ("id",),
) -> Resolution:
    """
    Return the first candidate found by the ordered matchers.

    Raises NotFoundError, listing near-miss candidates, once every
    matcher has come back empty.
    """
    for name, finder in matchers:
        index = finder(candidates, ref)
        if index is not None:
            logger.debug(f"{ref.kind} '{ref.value}' resolved by {name}")
            return Resolution(record=candidates[index], strategy=name, index=index)

    near = near_misses(candidates, ref, summary_fields)
    logger.warning(f"{ref.kind} '{ref.value}' not found among {len(candidates)} candidates")
    raise NotFoundError(ref.kind, ref.value, near)


def near_misses(
    candidates: List[Dict[str, Any]],
    ref: EntityRef,
    summary_fields: Sequence[str],
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Candidates worth showing when troubleshooting a failed lookup"""
    limit = limit or settings.NEAR_MISS_LIMIT
    needle = ref.prefix.lower()

    def score(candidate):
        values = [_text(candidate.get(f)).lower() for f in summary_fields]
        return 0 if needle and any(needle in v for v in values) else 1

    ranked = sorted(candidates, key=score)
    return [{f: c.get(f) for f in summary_fields} for c in ranked[:limit]]


def resolve_parent(parents: List[Dict[str, Any]], parent_id: str) -> Resolution:
    return resolve(
        parents,
        EntityRef(parent_id, "Proforma invoice"),
        PARENT_MATCHERS,
        ("id", "pi_number", "document_id"),
    )


def resolve_item(parent: Dict[str, Any], item_id: str) -> Resolution:
    return resolve(
        list(parent.get("items") or []),
        EntityRef(item_id, "Line item"),
        ITEM_MATCHERS,
        ("id", "product_code", "product_name", "sku"),
    )


def resolve_order(orders: List[Dict[str, Any]], order_id: str) -> Resolution:
    return resolve(
        orders,
        EntityRef(order_id, "Purchase order"),
        ORDER_MATCHERS,
        ("id", "po_number", "status"),
    )


PRODUCT_MATCHERS: Sequence[Tuple[str, Callable[[Dict[str, Any], str], bool]]] = (
    ("direct_id", lambda p, key: _text(p.get("id")) == key),
    ("sku", lambda p, key: _same(p.get("sku"), key)),
    ("code", lambda p, key: _same(p.get("code"), key)),
    ("name", lambda p, key: _same(p.get("name"), key)),
)


def resolve_product(products: List[Dict[str, Any]], identity: ProductIdentity) -> Resolution:
    """
    Products are looked up by every key the line item carries; each
    matcher is tried against all keys before moving to the next matcher.
    """
    keys = identity.keys()
    for name, predicate in PRODUCT_MATCHERS:
        for key in keys:
            index = _first(products, lambda p: predicate(p, key))
            if index is not None:
                logger.debug(f"Product '{key}' resolved by {name}")
                return Resolution(record=products[index], strategy=name, index=index)

    ref = EntityRef(keys[0] if keys else "", "Product")
    raise NotFoundError(
        "Product",
        ", ".join(keys) or "<no product identity>",
        near_misses(products, ref, ("id", "sku", "code", "name")),
    )
