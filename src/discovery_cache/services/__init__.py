"""Cache services composed by the feed data service."""
