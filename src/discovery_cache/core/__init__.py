"""Core configuration, logging, and background task infrastructure."""
