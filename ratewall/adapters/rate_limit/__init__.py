"""Ordered counter store adapters.

The rate limiter only talks to ``AbstractCounterStore``. Production runs use
Redis sorted sets; tests and single-process runs use the in-memory store.
"""
