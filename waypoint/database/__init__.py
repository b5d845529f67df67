#!/usr/bin/env python3
"""
Waypoint Database Package
-------------------------
Local journal store: the primary copy of all journal data.

Modules:
- manager: JournalDB (engine, sessions, migrations)
- models: ORM models and entity types
- identity: local id / server id addressing
- schema: per-type field, reference and membership declarations
- snapshot: EntitySnapshot, the typed unit of comparison and upload
- managers: schema-driven entity managers
- transaction_manager: atomic units of work for sync
- health_monitor: consistency checks
"""

from .manager import JournalDB
from waypoint.core.exceptions import (
    DatabaseError,
    HealthCheckError,
    TransactionError,
    ValidationError,
)
from .health_monitor import HealthMonitor
from .identity import EntityIdentity
from .transaction_manager import TransactionManager
from .decorators import (
    DatabaseOperation,
    handle_db_errors,
    log_database_operation,
)

__all__ = [
    "JournalDB",
    "DatabaseError",
    "HealthCheckError",
    "TransactionError",
    "ValidationError",
    "HealthMonitor",
    "EntityIdentity",
    "TransactionManager",
    "DatabaseOperation",
    "handle_db_errors",
    "log_database_operation",
]
