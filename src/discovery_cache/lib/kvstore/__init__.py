"""Durable per-device key-value storage and typed device preferences."""
