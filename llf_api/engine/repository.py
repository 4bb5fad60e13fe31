from __future__ import annotations

import copy
import operator
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .errors import Conflict, ValidationError

Document = Dict[str, Any]

_RANGE_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}
OPERATORS = frozenset({"eq", "ne", *_RANGE_OPS})


@dataclass(frozen=True)
class Predicate:
    field: str
    op: str
    value: Any = None

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValidationError(f"Unsupported query operator: {self.op}")

    def matches(self, document: Document) -> bool:
        actual = document.get(self.field)
        if self.op == "eq":
            return actual == self.value
        if actual is None or self.value is None:
            return False
        if self.op == "ne":
            return actual != self.value
        return _RANGE_OPS[self.op](actual, self.value)


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


def where(field: str, op: str, value: Any = None) -> Predicate:
    return Predicate(field=field, op=op, value=value)


def asc(field: str) -> OrderBy:
    return OrderBy(field=field)


def desc(field: str) -> OrderBy:
    return OrderBy(field=field, descending=True)


def sort_documents(documents: Iterable[Document], order_by: Sequence[OrderBy] = ()) -> List[Document]:
    """Stable multi-key sort; None sorts before any value, ids break ties ascending."""
    rows = sorted(documents, key=lambda doc: str(doc.get("id") or ""))
    for order in reversed(list(order_by)):
        rows.sort(
            key=lambda doc, name=order.field: (doc.get(name) is not None, doc.get(name)),
            reverse=order.descending,
        )
    return rows


class Repository(ABC):
    """Document store keyed by (collection, id)."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    @abstractmethod
    def put(self, collection: str, doc_id: str, document: Document, *, expected_version: Optional[int] = None) -> None:
        """Write a document; with expected_version set, the stored version must match or Conflict is raised."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[Document]:
        raise NotImplementedError


class InMemoryRepository(Repository):
    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._lock = threading.RLock()

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            document = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def put(self, collection: str, doc_id: str, document: Document, *, expected_version: Optional[int] = None) -> None:
        with self._lock:
            rows = self._collections.setdefault(collection, {})
            if expected_version is not None:
                current = rows.get(doc_id)
                if current is None or int(current.get("version") or 0) != expected_version:
                    raise Conflict(f"{collection}/{doc_id} was modified concurrently")
            stored = copy.deepcopy(document)
            stored["id"] = doc_id
            rows[doc_id] = stored

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)

    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[Document]:
        with self._lock:
            rows = [
                copy.deepcopy(document)
                for document in self._collections.get(collection, {}).values()
                if all(predicate.matches(document) for predicate in predicates)
            ]
        return sort_documents(rows, order_by)
