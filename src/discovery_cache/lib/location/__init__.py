"""Device location access with a persisted last-known-location fallback."""
