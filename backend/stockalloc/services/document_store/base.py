"""
Base Document Store
Abstract collection/document store used by the allocation engine
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import copy
import re

_INDEX = re.compile(r"^\d+$")


class DocumentStore(ABC):
    """
    Collection-oriented document store

    Supports point reads, equality-filtered queries and partial updates.
    There are no joins and no transactions spanning documents: every write
    call is applied and committed on its own.
    """

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return the document with its `id` key set, or None"""
        pass

    @abstractmethod
    def query(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Return every document in the collection matching all filters.
        A list, tuple or set filter value means "field in values".
        """
        pass

    @abstractmethod
    def add(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        """Create a document and return its id"""
        pass

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """
        Partially update a document. Keys are dotted paths; numeric
        segments address list positions (`items.2.total_allocated`).
        """
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        pass


def matches_filters(data: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    """Equality / membership filter evaluation"""
    for field, expected in (filters or {}).items():
        value = data.get(field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    """Assign `value` at a dotted path, creating intermediate dicts"""
    parts = path.split(".")
    target: Any = data
    for i, part in enumerate(parts[:-1]):
        if isinstance(target, list):
            if not _INDEX.match(part) or int(part) >= len(target):
                raise KeyError(f"List index '{part}' out of range in path '{path}'")
            target = target[int(part)]
        else:
            if part not in target or target[part] is None:
                # Next segment decides the container type
                target[part] = [] if _INDEX.match(parts[i + 1]) else {}
            target = target[part]

    last = parts[-1]
    if isinstance(target, list):
        if not _INDEX.match(last) or int(last) >= len(target):
            raise KeyError(f"List index '{last}' out of range in path '{path}'")
        target[int(last)] = value
    else:
        target[last] = value


def apply_update(data: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of `data` with the dotted-path `fields` applied"""
    updated = copy.deepcopy(data)
    for path, value in fields.items():
        set_path(updated, path, copy.deepcopy(value))
    return updated
