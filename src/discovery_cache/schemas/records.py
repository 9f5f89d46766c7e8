"""Pydantic v2 schemas for business and event records read from the remote store.

Store documents use camelCase field names (``businessId``, ``updatedAt``);
records expose snake_case attributes and are frozen, so cached instances are
shared with callers directly.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from discovery_cache.lib.spatial.geometry import Coordinate

RecordT = TypeVar("RecordT", bound=BaseModel)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class BusinessRecord(BaseModel):
    """A business listed in the discovery app."""

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    id: str
    name: str = ""
    address: str = ""
    coordinates: Coordinate | None = None
    tags: tuple[str, ...] = ()
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @field_validator("updated_at")
    @classmethod
    def _updated_at_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class EventRecord(BaseModel):
    """An event hosted by a business on a specific date."""

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    id: str
    business_id: str = Field(alias="businessId")
    title: str = ""
    date: datetime
    tags: tuple[str, ...] = ()
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @field_validator("date")
    @classmethod
    def _date_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("updated_at")
    @classmethod
    def _updated_at_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.date, self.id)


def parse_documents(model: type[RecordT], documents: Iterable[dict[str, Any]]) -> list[RecordT]:
    """Validate raw store documents, skipping (and logging) malformed ones.

    Args:
        model: Record schema to validate against.
        documents: Raw documents, each carrying an ``id`` key.

    Returns:
        Successfully parsed records in input order.
    """
    records: list[RecordT] = []
    for document in documents:
        try:
            records.append(model.model_validate(document))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {model.__name__} document {document.get('id')!r}: {e.error_count()} error(s)")
    return records
