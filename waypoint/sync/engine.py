#!/usr/bin/env python3
"""
engine.py
--------------------
Construction of the sync services.

Every service is built once here and handed to its consumers by
reference; nothing in the engine is reached through a global.

Usage:
    engine = build_engine(DataPaths.at(), auth_provider=StaticTokenProvider(token))
    try:
        report = engine.orchestrator.synchronize()
    finally:
        engine.close()
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass
from typing import Optional

# --- Local imports ---
from waypoint.core.config import SyncSettings
from waypoint.core.logging_manager import WaypointLogger
from waypoint.core.paths import DataPaths
from waypoint.database.manager import JournalDB

from .auth import AuthProvider, StaticTokenProvider
from .batching import AdaptiveBatchAdvisor
from .conflict import ConflictResolver
from .connectivity import ConnectivityGate, StatusProvider
from .dependency_resolver import DependencyResolver
from .events import EventBus
from .orchestrator import SyncOrchestrator
from .queue import OfflineQueue
from .state import SyncStateStore
from .telemetry import PerformanceMonitor
from .transport import HttpRemoteBackend, RemoteBackend


@dataclass
class SyncEngine:
    """Bundle of the wired services."""

    settings: SyncSettings
    db: JournalDB
    events: EventBus
    state: SyncStateStore
    queue: OfflineQueue
    conflicts: ConflictResolver
    resolver: DependencyResolver
    telemetry: PerformanceMonitor
    batching: AdaptiveBatchAdvisor
    gate: ConnectivityGate
    auth: AuthProvider
    backend: RemoteBackend
    orchestrator: SyncOrchestrator
    logger: Optional[WaypointLogger] = None

    def close(self) -> None:
        self.backend.close()
        self.db.dispose()


def build_engine(
    paths: DataPaths,
    settings: Optional[SyncSettings] = None,
    auth_provider: Optional[AuthProvider] = None,
    backend: Optional[RemoteBackend] = None,
    status_provider: Optional[StatusProvider] = None,
    logger: Optional[WaypointLogger] = None,
) -> SyncEngine:
    """
    Wire the sync services over the data directory `paths`.

    Args:
        paths: Data directory layout
        settings: Defaults to the YAML file at paths.config_path
        auth_provider: Defaults to an unauthenticated provider
        backend: Defaults to HttpRemoteBackend on settings.base_url
        status_provider: Network status source for the gate
        logger: Shared logger

    Raises:
        ConfigurationError: On invalid settings or dependency graph
        DatabaseError: If the journal store cannot be opened or migrated
        QueueError: If interrupted tasks cannot be requeued
    """
    paths.ensure()
    settings = settings or SyncSettings.from_yaml(paths.config_path)
    auth_provider = auth_provider or StaticTokenProvider()

    events = EventBus(logger)
    db = JournalDB(paths.db_path, logger=logger)
    state = SyncStateStore(db, logger)
    queue = OfflineQueue(
        db,
        max_queue_size=settings.max_queue_size,
        max_retries=settings.max_retries,
        logger=logger,
        events=events,
    )
    conflicts = ConflictResolver(settings.conflict_strategy, state, events, logger)
    resolver = DependencyResolver()
    telemetry = PerformanceMonitor(settings.telemetry_capacity, logger)
    batching = AdaptiveBatchAdvisor(telemetry, logger=logger)
    gate = ConnectivityGate(settings, status_provider, logger)
    backend = backend or HttpRemoteBackend(
        settings.base_url,
        auth_provider,
        timeout=settings.request_timeout,
        logger=logger,
    )

    orchestrator = SyncOrchestrator(
        db=db,
        backend=backend,
        queue=queue,
        resolver=resolver,
        conflicts=conflicts,
        gate=gate,
        auth=auth_provider,
        settings=settings,
        state_store=state,
        telemetry=telemetry,
        events=events,
        logger=logger,
        batching=batching,
    )
    return SyncEngine(
        settings=settings,
        db=db,
        events=events,
        state=state,
        queue=queue,
        conflicts=conflicts,
        resolver=resolver,
        telemetry=telemetry,
        batching=batching,
        gate=gate,
        auth=auth_provider,
        backend=backend,
        orchestrator=orchestrator,
        logger=logger,
    )
