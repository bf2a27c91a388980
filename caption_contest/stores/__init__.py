"""Data stores for persistence.

Stores handle:
- Redis: connection lifecycle, key layout, atomic Lua scripts, locks

No business/ranking logic in stores - that belongs in services.
"""
