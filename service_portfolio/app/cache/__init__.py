"""
Cache package for Portfolio Service.

Holds the whole portfolio dataset in process memory under the
``portfolio_data:`` namespace, refreshed periodically from the store and
kept current by key-level write-through after each durable write.
"""
