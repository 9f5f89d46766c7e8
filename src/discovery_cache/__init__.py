"""Incremental cache and spatial-filter engine for a location-aware discovery client."""

__version__ = "0.1.0"
