"""
Waypoint Sync Package
---------------------

Offline-first synchronization between the local journal store and the
remote backend.

Modules:
    - dependency_resolver: entity type ordering
    - conflict: conflict detection and resolution
    - queue: durable offline mutation queue (store-backed)
    - transport / auth: remote backend collaborator
    - connectivity: network policy gate
    - telemetry: performance ring buffer
    - batching: adaptive upload batch sizes fed by telemetry
    - events: publish/subscribe for state changes
    - state: persisted last-sync timestamp and pending conflicts
    - orchestrator: one end-to-end sync cycle
    - engine: wiring of all services

Import from the modules directly; this package keeps no re-exports so that
`waypoint.sync.enums` stays importable from the settings loader.
"""
