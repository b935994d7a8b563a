"""Ordered in-memory repositories and the graph integrity errors."""

from __future__ import annotations

from typing import Dict, Generic, Iterator, List, MutableMapping, Optional, TypeVar

T = TypeVar("T")


class GraphError(RuntimeError):
    """Base exception for structural graph and repository errors."""


class DuplicateIdError(GraphError):
    """Raised when attempting to insert a record whose id already exists."""


class NotFoundError(GraphError):
    """Raised when a requested record is missing."""


class DanglingReferenceError(GraphError):
    """Raised when an edge points at something that does not exist."""


class InvalidHandleError(DanglingReferenceError):
    """Raised when a source handle names a row the source node does not have."""


class InMemoryRepository(Generic[T]):
    """Generic repository backed by an insertion-ordered dictionary."""

    def __init__(self) -> None:
        self._items: MutableMapping[str, T] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def add(self, item_id: str, item: T) -> None:
        if item_id in self._items:
            raise DuplicateIdError(f"Record with id {item_id!r} already exists")
        self._items[item_id] = item

    def replace(self, item_id: str, item: T) -> None:
        """Swap the record stored under an existing id, keeping its position."""
        if item_id not in self._items:
            raise NotFoundError(f"Record with id {item_id!r} not found")
        self._items[item_id] = item

    def get(self, item_id: str) -> T:
        try:
            return self._items[item_id]
        except KeyError as exc:
            raise NotFoundError(f"Record with id {item_id!r} not found") from exc

    def find(self, item_id: str) -> Optional[T]:
        return self._items.get(item_id)

    def discard(self, item_id: str) -> Optional[T]:
        return self._items.pop(item_id, None)

    def list(self) -> List[T]:
        return list(self._items.values())

    def as_dict(self) -> Dict[str, T]:
        return dict(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))


__all__ = [
    "InMemoryRepository",
    "GraphError",
    "DuplicateIdError",
    "NotFoundError",
    "DanglingReferenceError",
    "InvalidHandleError",
]
