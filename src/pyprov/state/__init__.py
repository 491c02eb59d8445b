"""State layer.

This package is the single source of truth for the in-memory view of
entities: the cache, its change policy and the subscriptions that hear
about every transition.
"""
