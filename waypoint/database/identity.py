#!/usr/bin/env python3
"""
identity.py
--------------------
Entity identity layer: the sync engine's addressing scheme.

Every syncable record is addressed by a stable local id (a UUID generated on
the device) and, once it has been pushed, a server id assigned by the remote
backend. Tables created before the sync scheme store these under older
column names (`uuid`, `backend_id`); this module is the only place that
knows about them. Everything else sees `local_id` / `server_id` values.

Rules:
    - get_local_id always returns a value, generating one lazily
    - get_server_id returns None for never-pushed records
    - a server id is set at most once and never cleared or overwritten
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import uuid
from typing import Any, Optional, Tuple, Type

# --- Third party ---
from sqlalchemy.orm import InstrumentedAttribute

# --- Local imports ---
from waypoint.core.exceptions import IdentityConflictError
from waypoint.core.logging_manager import WaypointLogger, safe_logger

# Candidate column names, current name first
LOCAL_ID_FIELDS: Tuple[str, ...] = ("local_id", "uuid")
SERVER_ID_FIELDS: Tuple[str, ...] = ("server_id", "backend_id")


def _present_fields(model: Type[Any], candidates: Tuple[str, ...]) -> Tuple[str, ...]:
    return tuple(
        name
        for name in candidates
        if isinstance(getattr(model, name, None), InstrumentedAttribute)
    )


def _normalize(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class EntityIdentity:
    """
    Normalizes local records to a (local_id, server_id) pair.

    Attributes:
        logger: Optional logger; identity faults are logged as errors
    """

    def __init__(self, logger: Optional[WaypointLogger] = None) -> None:
        self.logger = logger

    # ---- Column lookup ----
    def _column_name(self, model: Type[Any], candidates: Tuple[str, ...]) -> str:
        present = _present_fields(model, candidates)
        if not present:
            raise TypeError(
                f"{model.__name__} has none of the identity columns {candidates}"
            )
        return present[0]

    def local_id_column(self, model: Type[Any]) -> InstrumentedAttribute:
        """Mapped column holding the local id of `model`, for queries."""
        return getattr(model, self._column_name(model, LOCAL_ID_FIELDS))

    def server_id_column(self, model: Type[Any]) -> InstrumentedAttribute:
        """Mapped column holding the server id of `model`, for queries."""
        return getattr(model, self._column_name(model, SERVER_ID_FIELDS))

    # ---- Local id ----
    def get_local_id(self, record: Any) -> str:
        """
        Return the record's local id, generating and storing one if missing.

        The generated value is written on the record and persisted with the
        caller's session on its next flush.
        """
        model = type(record)
        for name in _present_fields(model, LOCAL_ID_FIELDS):
            value = _normalize(getattr(record, name))
            if value:
                return value

        new_id = str(uuid.uuid4())
        setattr(record, self._column_name(model, LOCAL_ID_FIELDS), new_id)
        safe_logger(self.logger).log_debug(
            "Generated local id", {"model": model.__name__, "local_id": new_id}
        )
        return new_id

    def assign_local_id(self, record: Any, local_id: str) -> bool:
        """
        Give a record created from remote data its original local id.

        Returns:
            True if assigned, False if the record already had one
        """
        model = type(record)
        for name in _present_fields(model, LOCAL_ID_FIELDS):
            if _normalize(getattr(record, name)):
                return False
        setattr(record, self._column_name(model, LOCAL_ID_FIELDS), local_id)
        return True

    # ---- Server id ----
    def get_server_id(self, record: Any) -> Optional[str]:
        """Return the record's server id, or None if it was never pushed."""
        for name in _present_fields(type(record), SERVER_ID_FIELDS):
            value = _normalize(getattr(record, name))
            if value:
                return value
        return None

    def has_server_id(self, record: Any) -> bool:
        return self.get_server_id(record) is not None

    def assign_server_id(self, record: Any, server_id: Any) -> bool:
        """
        Set the record's server id.

        Args:
            record: ORM record
            server_id: Remote-assigned id

        Returns:
            True if the id was assigned, False if the same id was already set

        Raises:
            ValueError: If server_id is empty
            IdentityConflictError: If a different server id is already set
        """
        new_id = _normalize(server_id)
        if new_id is None:
            raise ValueError("Cannot assign an empty server id")

        current = self.get_server_id(record)
        if current == new_id:
            return False

        if current is not None:
            error = IdentityConflictError(
                f"{type(record).__name__} {self.get_local_id(record)} already has "
                f"server id {current}, refusing {new_id}"
            )
            safe_logger(self.logger).log_error(
                error,
                {
                    "model": type(record).__name__,
                    "current_server_id": current,
                    "rejected_server_id": new_id,
                },
            )
            raise error

        setattr(record, self._column_name(type(record), SERVER_ID_FIELDS), new_id)
        return True
