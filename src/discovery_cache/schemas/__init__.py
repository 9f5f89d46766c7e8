"""Pydantic v2 schemas and cache envelope types."""
