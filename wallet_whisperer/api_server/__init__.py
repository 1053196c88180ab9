"""
API server package: HTTP/REST interface.

Exposes wallet profiles to the rest of the product and delegates to the
profile orchestrator for cache lookups and fresh analysis.
"""
