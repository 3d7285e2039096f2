"""
Gazetteer Sync.

Multi-source incremental sync engine for historical gazetteers: per-source
adapters, change detection, streaming parsers, a normalizer to one canonical
PlaceRecord schema, an idempotent upsert engine and a polling scheduler.
"""

__version__ = "0.1.0"
