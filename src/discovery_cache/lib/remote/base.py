"""Abstract remote document store interface.

Stores expose two reads: fetch a whole collection, or run a filtered, ordered,
limited query.  Every read increments ``read_count`` so callers can observe
the cost of their caching strategy.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

Document = dict[str, Any]


class TransientRemoteError(Exception):
    """Raised when the remote store is unreachable or returns a server error.

    Args:
        message: Human-readable error description.
        status_code: Optional HTTP status code from the store.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class FilterOp(enum.StrEnum):
    """Comparison operators supported in field filters."""

    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    EQ = "=="


class Direction(enum.StrEnum):
    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class DocumentQuery:
    """A conjunctive query against one collection."""

    collection: str
    filters: tuple[FieldFilter, ...] = ()
    order_by: str | None = None
    direction: Direction = Direction.ASCENDING
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit <= 0:
            msg = f"limit must be > 0, got {self.limit}"
            raise ValueError(msg)


def format_timestamp(value: datetime) -> str:
    """Format an instant as a millisecond-precision UTC ISO string (``...Z``).

    Timestamps are stored as strings in this format, so lexical order matches
    chronological order and range filters work on raw values.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    utc = value.astimezone(UTC)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def to_wire_value(value: Any) -> Any:
    """Convert query operands to their stored representation."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


class RemoteDocumentStore(ABC):
    """Read access to a remote document collection store."""

    def __init__(self) -> None:
        self.read_count = 0

    async def fetch_all(self, collection: str) -> list[Document]:
        """Fetch every document in ``collection``.

        Raises:
            TransientRemoteError: If the store cannot be reached.
        """
        self.read_count += 1
        return await self._fetch_all(collection)

    async def run_query(self, query: DocumentQuery) -> list[Document]:
        """Run a filtered query.

        Raises:
            TransientRemoteError: If the store cannot be reached.
        """
        self.read_count += 1
        return await self._run_query(query)

    @abstractmethod
    async def _fetch_all(self, collection: str) -> list[Document]: ...

    @abstractmethod
    async def _run_query(self, query: DocumentQuery) -> list[Document]: ...
