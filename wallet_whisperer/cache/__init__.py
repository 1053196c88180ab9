"""Cache tiers: hot (Redis / in-memory), durable (SQLAlchemy) and the TTL policy."""
