"""Ingestion: Helius transaction/holdings sources, token metadata, pricing, normalization."""
