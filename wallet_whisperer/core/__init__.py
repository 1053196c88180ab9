"""
Core utilities: shared error taxonomy and cross-cutting concerns.

Used across ingestion, analysis engine, cache tiers, orchestrator and API server.
"""
