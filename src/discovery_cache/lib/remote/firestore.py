"""Firestore document store over the REST ``runQuery`` endpoint.

See https://firebase.google.com/docs/firestore/reference/rest/v1/projects.databases.documents/runQuery
for the structured query format.  Typed Firestore values are decoded into
plain Python values; datetimes in filters are sent as ISO strings, which is
how the app writes its date fields.
"""

from typing import Any

import httpx
from loguru import logger

from discovery_cache.lib.remote.base import (
    Direction,
    Document,
    DocumentQuery,
    FieldFilter,
    FilterOp,
    RemoteDocumentStore,
    TransientRemoteError,
    to_wire_value,
)

FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"
DEFAULT_TIMEOUT = 15.0

_OPS: dict[FilterOp, str] = {
    FilterOp.LT: "LESS_THAN",
    FilterOp.LTE: "LESS_THAN_OR_EQUAL",
    FilterOp.GT: "GREATER_THAN",
    FilterOp.GTE: "GREATER_THAN_OR_EQUAL",
    FilterOp.EQ: "EQUAL",
}


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
    value = to_wire_value(value)
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, list | tuple):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {k: encode_value(v) for k, v in value.items()}}}
    msg = f"Cannot encode value of type {type(value).__name__}"
    raise TypeError(msg)


def decode_value(value: dict[str, Any]) -> Any:
    """Decode a Firestore typed value into a plain Python value."""
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "timestampValue" in value:
        return value["timestampValue"]
    if "nullValue" in value:
        return None
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "geoPointValue" in value:
        point = value["geoPointValue"]
        return {"latitude": point.get("latitude", 0.0), "longitude": point.get("longitude", 0.0)}
    if "referenceValue" in value:
        return value["referenceValue"]
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {name: decode_value(v) for name, v in fields.items()}


def decode_document(document: dict[str, Any]) -> Document:
    """Flatten a Firestore document into a dict carrying its ``id``."""
    decoded = decode_fields(document.get("fields", {}))
    decoded["id"] = document["name"].rsplit("/", 1)[-1]
    return decoded


def build_structured_query(query: DocumentQuery) -> dict[str, Any]:
    """Translate a DocumentQuery into a Firestore ``structuredQuery`` body."""
    structured: dict[str, Any] = {"from": [{"collectionId": query.collection}]}

    filters = [_field_filter(f) for f in query.filters]
    if len(filters) == 1:
        structured["where"] = filters[0]
    elif filters:
        structured["where"] = {"compositeFilter": {"op": "AND", "filters": filters}}

    if query.order_by is not None:
        direction = "DESCENDING" if query.direction == Direction.DESCENDING else "ASCENDING"
        structured["orderBy"] = [{"field": {"fieldPath": query.order_by}, "direction": direction}]
    if query.limit is not None:
        structured["limit"] = query.limit
    return structured


def _field_filter(field_filter: FieldFilter) -> dict[str, Any]:
    return {
        "fieldFilter": {
            "field": {"fieldPath": field_filter.field},
            "op": _OPS[field_filter.op],
            "value": encode_value(field_filter.value),
        }
    }


class FirestoreDocumentStore(RemoteDocumentStore):
    """Remote store backed by Cloud Firestore's REST API.

    Args:
        project_id: Google Cloud project ID.
        database: Firestore database ID.
        api_key: Optional web API key.
        id_token: Optional Firebase ID token sent as a bearer credential.
        timeout: Transport timeout in seconds.
    """

    def __init__(
        self,
        project_id: str,
        database: str = "(default)",
        *,
        api_key: str | None = None,
        id_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str = FIRESTORE_BASE_URL,
    ) -> None:
        super().__init__()
        self._documents_url = f"{base_url}/projects/{project_id}/databases/{database}/documents"
        self._api_key = api_key
        self._id_token = id_token
        self._timeout = timeout

    async def _fetch_all(self, collection: str) -> list[Document]:
        return await self._execute(DocumentQuery(collection=collection))

    async def _run_query(self, query: DocumentQuery) -> list[Document]:
        return await self._execute(query)

    async def _execute(self, query: DocumentQuery) -> list[Document]:
        body = {"structuredQuery": build_structured_query(query)}
        params = {"key": self._api_key} if self._api_key else None
        headers = {"Authorization": f"Bearer {self._id_token}"} if self._id_token else None

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._documents_url}:runQuery",
                    json=body,
                    params=params,
                    headers=headers,
                )
                response.raise_for_status()
            rows = response.json()
        except httpx.TimeoutException as e:
            logger.warning(f"Firestore query on {query.collection!r} timed out")
            raise TransientRemoteError("Firestore request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Firestore query on {query.collection!r} returned HTTP {e.response.status_code}")
            raise TransientRemoteError(
                f"Firestore returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TransportError as e:
            logger.warning("Firestore connection error")
            raise TransientRemoteError("Connection to Firestore failed") from e
        except ValueError as e:
            raise TransientRemoteError("Firestore returned invalid JSON") from e

        # Rows without a "document" key carry only readTime (empty result / progress).
        return [decode_document(row["document"]) for row in rows if "document" in row]
