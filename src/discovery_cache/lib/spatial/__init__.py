"""Spatial helpers: geometry, the persisted distance cache, and the distance filter."""
