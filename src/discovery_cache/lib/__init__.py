"""Collaborator adapters and reusable building blocks for the cache engine."""
