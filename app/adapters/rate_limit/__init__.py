"""Rate limiting adapters.

Two interchangeable fixed-window strategies share one decision policy: a
Redis-backed counter for multi-process deployments and an in-memory counter
used whenever Redis is unreachable.
"""
