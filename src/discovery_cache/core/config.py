"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # Remote document store (Firestore REST)
    firestore_project_id: str | None = Field(
        default=None,
        description="Google Cloud project hosting the Firestore database",
    )
    firestore_database: str = Field(
        default="(default)",
        description="Firestore database ID",
    )
    firestore_api_key: str | None = Field(
        default=None,
        description="Web API key appended to Firestore REST requests",
    )
    firestore_timeout: float = Field(
        default=15.0,
        description="Transport timeout in seconds for Firestore requests",
        gt=0,
    )
    events_collection: str = Field(
        default="events",
        description="Collection holding event documents",
    )
    businesses_collection: str = Field(
        default="businesses",
        description="Collection holding business documents",
    )

    # Geocoding
    geocoder_provider: str = Field(
        default="nominatim",
        description="Geocoder provider used to resolve business addresses",
    )
    geocoder_nominatim_email: str = Field(
        default="",
        description="Contact email sent to Nominatim per its usage policy",
    )
    geocoder_user_agent: str = Field(
        default="discovery-cache/0.1",
        description="User-Agent header for geocoding requests",
    )
    geocode_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound on a single geocoding call",
        gt=0,
    )
    geocode_cache_ttl_days: int = Field(
        default=7,
        description="Days a geocoded address stays valid",
        gt=0,
    )
    geocode_cache_max_entries: int = Field(
        default=300,
        description="Maximum persisted geocode entries (oldest evicted first)",
        gt=0,
    )

    # Distance cache and spatial filter
    distance_cache_epsilon_km: float = Field(
        default=0.5,
        description="Max reference-point drift for a cached distance to stay applicable",
        gt=0,
    )
    distance_cache_ttl_minutes: int = Field(
        default=120,
        description="Minutes a cached distance stays valid",
        gt=0,
    )
    distance_cache_max_entries: int = Field(
        default=1000,
        description="Maximum persisted distance entries (most recent kept)",
        gt=0,
    )
    filter_batch_size: int = Field(
        default=10,
        description="Businesses processed between cooperative yields",
        gt=0,
    )
    km_per_degree: float = Field(
        default=111.0,
        description="Flat kilometers-per-degree constant for bounding boxes",
        gt=0,
    )

    # Reference and event caches
    reference_cache_ttl_minutes: int = Field(
        default=360,
        description="Minutes before the business snapshot is revalidated",
        gt=0,
    )
    event_cache_ttl_minutes: int = Field(
        default=120,
        description="Minutes before the event window is revalidated",
        gt=0,
    )
    event_target_count: int = Field(
        default=20,
        description="Events the progressive loader tries to accumulate per pass",
        gt=0,
    )
    event_max_iterations: int = Field(
        default=10,
        description="Hard ceiling on lookup+fetch rounds per progressive pass",
        gt=0,
    )
    last_location_ttl_minutes: int = Field(
        default=120,
        description="Minutes a persisted device location stays usable",
        gt=0,
    )

    # Durable per-device store
    device_store_directory: str = Field(
        default=".discovery-cache",
        description="Directory for the disk-backed key-value store",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            msg = f"log_level must be one of {sorted(allowed)}, got {v!r}"
            raise ValueError(msg)
        return v.upper()

    @property
    def geocode_cache_ttl(self) -> timedelta:
        return timedelta(days=self.geocode_cache_ttl_days)

    @property
    def distance_cache_ttl(self) -> timedelta:
        return timedelta(minutes=self.distance_cache_ttl_minutes)

    @property
    def reference_cache_ttl(self) -> timedelta:
        return timedelta(minutes=self.reference_cache_ttl_minutes)

    @property
    def event_cache_ttl(self) -> timedelta:
        return timedelta(minutes=self.event_cache_ttl_minutes)

    @property
    def last_location_ttl(self) -> timedelta:
        return timedelta(minutes=self.last_location_ttl_minutes)


@lru_cache
def get_settings() -> Settings:
    """Create and return cached application settings."""
    return Settings()
