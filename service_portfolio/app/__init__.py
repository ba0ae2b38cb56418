"""
Portfolio Service package for the Portfolio Access Layer.

This package serves the content of a personal portfolio site from a
versioned key-value table with an in-process read-through cache in front of
it. It provides:

- app.main: API surface for the public portfolio document, entity CRUD,
  history/rollback and cache administration.
- app.persistence: Versioned store over PostgreSQL, plus an in-process store.
- app.portfolio: Record models, domain data functions and response shaping.
- app.cache: Memory cache provider, cache-aware accessor and refresh manager.

Guidelines:
- Writes always go to the store first; the cache only ever mirrors it.
- A failed refresh keeps the previous cache content.
- Compound writes run in one store transaction.
"""
