"""
Waypoint
--------

Offline-first bidirectional sync engine for a travel journal.

The local SQLite store is the primary copy of trips, memories, media items,
GPX tracks, tags and bucket-list items. The engine mirrors it to a remote
backend: it drains an offline mutation queue, walks entity types in
dependency order, resolves conflicts and commits every write inside a
rollback-aware transaction.

Subpackages:
    - core: exceptions, logging, validators, paths, settings
    - database: models, store manager, identity layer, transactions
    - sync: queue, conflicts, transport, orchestrator
    - cli: command-line front end
"""

__version__ = "0.3.0"
