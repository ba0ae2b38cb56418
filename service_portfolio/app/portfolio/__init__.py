"""
Portfolio domain package.

Modules of interest:
- models: Record types, store key helpers and HTTP request models.
- data: Entity operations over the versioned store.
- shaping: Pure functions building the nested portfolio document.
"""
