"""In-memory document store with the same query semantics as Firestore.

Documents lacking a filtered or ordered field are excluded from the result,
matching how Firestore treats missing fields.
"""

import copy
import operator
from collections.abc import Callable, Iterable
from typing import Any

from discovery_cache.lib.remote.base import (
    Direction,
    Document,
    DocumentQuery,
    FieldFilter,
    FilterOp,
    RemoteDocumentStore,
    to_wire_value,
)

_OPERATORS: dict[FilterOp, Callable[[Any, Any], bool]] = {
    FilterOp.LT: operator.lt,
    FilterOp.LTE: operator.le,
    FilterOp.GT: operator.gt,
    FilterOp.GTE: operator.ge,
    FilterOp.EQ: operator.eq,
}


class InMemoryDocumentStore(RemoteDocumentStore):
    """Collections of documents held in process memory."""

    def __init__(self, collections: dict[str, Iterable[Document]] | None = None) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, Document]] = {}
        for name, documents in (collections or {}).items():
            self.put_many(name, documents)

    def put(self, collection: str, document: Document) -> None:
        """Insert or replace a document (must carry an ``id``)."""
        stored = {key: to_wire_value(value) for key, value in document.items()}
        self._collections.setdefault(collection, {})[str(stored["id"])] = stored

    def put_many(self, collection: str, documents: Iterable[Document]) -> None:
        for document in documents:
            self.put(collection, document)

    def remove(self, collection: str, document_id: str) -> None:
        self._collections.get(collection, {}).pop(document_id, None)

    async def _fetch_all(self, collection: str) -> list[Document]:
        return [copy.deepcopy(doc) for doc in self._collections.get(collection, {}).values()]

    async def _run_query(self, query: DocumentQuery) -> list[Document]:
        documents = [
            doc
            for doc in self._collections.get(query.collection, {}).values()
            if all(self._matches(doc, f) for f in query.filters)
        ]
        if query.order_by is not None:
            documents = [doc for doc in documents if doc.get(query.order_by) is not None]
            documents.sort(
                key=lambda doc: (doc[query.order_by], doc["id"]),
                reverse=query.direction == Direction.DESCENDING,
            )
        if query.limit is not None:
            documents = documents[: query.limit]
        return [copy.deepcopy(doc) for doc in documents]

    @staticmethod
    def _matches(document: Document, field_filter: FieldFilter) -> bool:
        value = document.get(field_filter.field)
        if value is None:
            return False
        operand = to_wire_value(field_filter.value)
        try:
            return _OPERATORS[field_filter.op](value, operand)
        except TypeError:
            return False
