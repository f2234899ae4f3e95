"""Offline-first link saving with metadata extraction, enrichment and remote sync."""

__version__ = "0.1.0"

__all__: list[str] = ["__version__"]
