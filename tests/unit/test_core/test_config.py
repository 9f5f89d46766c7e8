"""Unit tests for core configuration module."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from discovery_cache.core.config import Settings, get_settings


class TestSettings:
    """Tests for Settings configuration."""

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Settings load from environment variables."""
        monkeypatch.setenv("FIRESTORE_PROJECT_ID", "discovery-test")
        monkeypatch.setenv("EVENT_TARGET_COUNT", "35")
        settings = Settings(_env_file=None)
        assert settings.firestore_project_id == "discovery-test"
        assert settings.event_target_count == 35

    def test_settings_defaults(self) -> None:
        """Default values match the engine's tuned constants."""
        settings = Settings(_env_file=None)
        assert settings.log_level == "INFO"
        assert settings.firestore_database == "(default)"
        assert settings.events_collection == "events"
        assert settings.businesses_collection == "businesses"
        assert settings.geocode_timeout_seconds == 5.0
        assert settings.geocode_cache_max_entries == 300
        assert settings.distance_cache_epsilon_km == 0.5
        assert settings.distance_cache_max_entries == 1000
        assert settings.filter_batch_size == 10
        assert settings.km_per_degree == 111.0
        assert settings.event_target_count == 20
        assert settings.event_max_iterations == 10

    def test_ttl_properties(self) -> None:
        """Minute/day fields are exposed as timedeltas."""
        settings = Settings(_env_file=None)
        assert settings.geocode_cache_ttl == timedelta(days=7)
        assert settings.distance_cache_ttl == timedelta(hours=2)
        assert settings.event_cache_ttl == timedelta(hours=2)
        assert settings.reference_cache_ttl == timedelta(hours=6)
        assert settings.last_location_ttl == timedelta(hours=2)

    def test_log_level_is_normalized(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Log level is upper-cased."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert Settings(_env_file=None).log_level == "DEBUG"

    def test_invalid_log_level_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError, match="log_level"):
            Settings(_env_file=None)

    @pytest.mark.parametrize(
        "variable",
        ["EVENT_TARGET_COUNT", "FILTER_BATCH_SIZE", "GEOCODE_TIMEOUT_SECONDS", "DISTANCE_CACHE_EPSILON_KM"],
    )
    def test_validation_positive_numbers(self, monkeypatch: pytest.MonkeyPatch, variable: str) -> None:
        """Numeric tunables reject zero."""
        monkeypatch.setenv(variable, "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_get_settings_is_cached(self) -> None:
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
