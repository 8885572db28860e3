"""Data stores for persistence and caching.

Stores handle:
- PostgreSQL: DB session, pattern and alias repositories
- Redis: active pattern snapshot cache with TTL

No scoring or matching logic in stores - that belongs in services.
"""
