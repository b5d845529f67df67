#!/usr/bin/env python3
"""
exceptions.py
--------------------
Custom exception classes for the Waypoint sync engine.

This module defines a hierarchy of exceptions used throughout the project
to handle specific error conditions in the local store, the offline queue
and the synchronization cycle.

Exception Hierarchy:
    Exception (built-in)
    └── WaypointError - Base for every project error
        ├── ConfigurationError - Invalid settings or static configuration
        ├── DatabaseError - Base for all local store errors
        │   ├── TransactionError - A sync transaction was rolled back
        │   └── HealthCheckError - Consistency check failures
        ├── ValidationError - Data validation failures
        ├── IdentityConflictError - Attempt to overwrite a server id
        ├── StateError - Persisted sync state unreadable or unwritable
        └── SyncError - Base for sync cycle errors
            ├── PreconditionError - Cycle cannot start
            │   ├── SyncDisabledError
            │   ├── StorageModeError
            │   └── NotAuthenticatedError
            ├── NetworkError - Timeouts, unreachable host, DNS
            ├── AuthorizationError - Rejected credential (401/403)
            ├── ServerError - 5xx or malformed response
            ├── PayloadRejectedError - Remote refused a payload (400/422)
            ├── QueueError - Offline queue persistence failures
            └── CycleAbortedError - Queue drain left work behind

Usage:
    from waypoint.core.exceptions import NetworkError, SyncError

    try:
        backend.list_all(EntityType.TRIP, scope)
    except NetworkError as e:
        logger.log_warning(f"Remote unreachable: {e}")
    except SyncError as e:
        logger.log_error(e)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from typing import Optional


class WaypointError(Exception):
    """
    Base exception for every error raised by Waypoint.

    Catch this to handle any project error without also swallowing
    programming errors such as TypeError or KeyError.
    """

    pass


class ConfigurationError(WaypointError):
    """
    Exception for invalid configuration.

    Raised when settings fail to load or validate, and when static
    configuration such as the sync dependency graph is inconsistent.
    A configuration error is fatal at startup, never during a cycle.

    Examples:
        >>> raise ConfigurationError("Unknown setting 'wifi_onyl'")
        >>> raise ConfigurationError("Dependency cycle: trip -> memory -> trip")
    """

    pass


class DatabaseError(WaypointError):
    """
    Base exception for local store errors.

    Raised when database operations fail due to connection issues,
    query errors, integrity violations, or other database problems.

    Examples:
        >>> raise DatabaseError("Connection to database failed")
        >>> raise DatabaseError("Data integrity violation: duplicate local_id")

    See Also:
        TransactionError, HealthCheckError
    """

    pass


class TransactionError(DatabaseError):
    """
    Exception for a failed sync transaction.

    Raised by the rollback-aware transaction helper after every change of
    the failed batch has been discarded. The entity-type stage that owned
    the transaction is reported as failed; earlier committed stages stay.

    Examples:
        >>> raise TransactionError("Transaction 'apply_remote_memory' rolled back")
    """

    pass


class HealthCheckError(DatabaseError):
    """
    Exception for consistency check failures.

    Examples:
        >>> raise HealthCheckError("Found 3 memories without a trip")
    """

    pass


class ValidationError(WaypointError):
    """
    Exception for data validation failures.

    Raised when input data fails validation checks:
    - Missing required fields before upload
    - Fields outside an entity schema
    - Values that cannot be coerced to the declared type

    A validation error is fatal for the affected entity only; siblings
    of the same type continue to sync.

    Examples:
        >>> raise ValidationError("Required field 'name' missing or empty")
        >>> raise ValidationError("Unknown field 'colour' for tag")
    """

    pass


class IdentityConflictError(WaypointError):
    """
    Exception for a data-integrity fault on entity identity.

    Raised when a record that already carries a server id is asked to take
    a different one. The existing id is never overwritten.

    Examples:
        >>> raise IdentityConflictError("trip a1b2 already has server id 17, refusing 42")
    """

    pass


class StateError(WaypointError):
    """Exception for unreadable or unwritable persisted sync state."""

    pass


class SyncError(WaypointError):
    """
    Base exception for errors raised during a sync cycle.

    Every sync error carries a category used for reporting and a flag
    telling whether an automatic retry makes sense.

    Attributes:
        category: One of 'precondition', 'network', 'authorization',
            'server', 'validation', 'queue'
        retryable: Whether the engine may retry automatically
    """

    category = "sync"
    retryable = False

    def __init__(self, message: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PreconditionError(SyncError):
    """
    Exception for a cycle that cannot start.

    Preconditions are checked before any mutation happens, so nothing needs
    to be undone. The next natural trigger retries the cycle.
    """

    category = "precondition"
    reason = "precondition"


class SyncDisabledError(PreconditionError):
    """Sync is switched off in settings."""

    reason = "disabled"


class StorageModeError(PreconditionError):
    """The configured storage mode does not use the remote backend."""

    reason = "storage_mode"


class NotAuthenticatedError(PreconditionError):
    """No credential is available for the remote backend."""

    reason = "not_authenticated"


class NetworkError(SyncError):
    """
    Exception for transport failures: timeouts, unreachable host, DNS.

    Examples:
        >>> raise NetworkError("Request to /trips timed out after 30.0s")
    """

    category = "network"
    retryable = True


class AuthorizationError(SyncError):
    """
    Exception for a rejected credential.

    Surfaced to the user as an action-required condition. The engine never
    retries the same credential.
    """

    category = "authorization"


class ServerError(SyncError):
    """
    Exception for 5xx responses and malformed response bodies.

    Examples:
        >>> raise ServerError("Server returned 503", status_code=503)
        >>> raise ServerError("Malformed response from /memories")
    """

    category = "server"
    retryable = True


class PayloadRejectedError(SyncError):
    """Exception for a payload the remote refused as invalid."""

    category = "validation"


class QueueError(SyncError):
    """Exception for offline queue persistence failures."""

    category = "queue"


class CycleAbortedError(SyncError):
    """
    Exception for a cycle stopped after the offline queue drain.

    Raised when mutations are still pending after the drain, so remote
    state must not be treated as authoritative yet. The category is taken
    from the failure that left the work behind.
    """

    retryable = True

    def __init__(self, message: str = "", category: str = "network") -> None:
        super().__init__(message)
        self.category = category
