"""Remote document store adapters.

Public API:
    - RemoteDocumentStore: Abstract store with read counting
    - DocumentQuery / FieldFilter / FilterOp / Direction: Query description
    - TransientRemoteError: Store unreachable or failing
    - InMemoryDocumentStore: Process-local store (tests, offline use)
    - FirestoreDocumentStore: Cloud Firestore REST store
    - format_timestamp: Stored timestamp format
"""

from discovery_cache.lib.remote.base import (
    Direction,
    Document,
    DocumentQuery,
    FieldFilter,
    FilterOp,
    RemoteDocumentStore,
    TransientRemoteError,
    format_timestamp,
)
from discovery_cache.lib.remote.firestore import FirestoreDocumentStore
from discovery_cache.lib.remote.memory import InMemoryDocumentStore

__all__ = [
    "Direction",
    "Document",
    "DocumentQuery",
    "FieldFilter",
    "FilterOp",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "RemoteDocumentStore",
    "TransientRemoteError",
    "format_timestamp",
]
