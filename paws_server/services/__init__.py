"""
Services

- ingest/ - Snapshot ingestion and edge detection
- notifications/ - Deduplicated notification log
- analytics/ - Water timing and food trend
- retention/ - Periodic pruning
- api/ - Core operations and HTTP layer
"""
