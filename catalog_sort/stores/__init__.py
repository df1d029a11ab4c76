"""Data stores for persistence and locking.

Stores handle:
- PostgreSQL: DB session, outcome audit rows
- Redis: run lock

No business/ranking logic in stores - that belongs in services.
"""
