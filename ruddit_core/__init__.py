"""Ruddit Core: Reddit ingestion, deduplication and local storage."""

__version__ = "0.1.0"
