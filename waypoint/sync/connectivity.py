#!/usr/bin/env python3
"""
connectivity.py
--------------------
Network policy gate consulted before every sync cycle.

A closed gate is a normal condition, not an error: the orchestrator
stays idle and the next trigger tries again.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass
from typing import Callable, Optional

# --- Local imports ---
from waypoint.core.config import SyncSettings
from waypoint.core.logging_manager import WaypointLogger, safe_logger

from .enums import ConnectionType


@dataclass(frozen=True)
class NetworkStatus:
    """
    Current network path as reported by the host.

    Attributes:
        reachable: The backend host can be reached
        connection_type: Interface in use
        is_expensive: Metered connection (cellular, personal hotspot)
    """

    reachable: bool = True
    connection_type: ConnectionType = ConnectionType.WIFI
    is_expensive: bool = False

    @classmethod
    def offline(cls) -> "NetworkStatus":
        return cls(reachable=False, connection_type=ConnectionType.NONE)


StatusProvider = Callable[[], NetworkStatus]


class ConnectivityGate:
    """Combines reachability with the Wi-Fi only and avoid-expensive policies."""

    def __init__(
        self,
        settings: SyncSettings,
        status_provider: Optional[StatusProvider] = None,
        logger: Optional[WaypointLogger] = None,
    ) -> None:
        self.settings = settings
        self.status_provider = status_provider or NetworkStatus
        self.logger = logger

    def status(self) -> NetworkStatus:
        return self.status_provider()

    def blocking_reason(self) -> Optional[str]:
        """Why sync is not allowed right now, or None when it is."""
        status = self.status()
        if not status.reachable or status.connection_type == ConnectionType.NONE:
            return "offline"
        if self.settings.wifi_only and status.connection_type not in (
            ConnectionType.WIFI,
            ConnectionType.ETHERNET,
        ):
            return "wifi_only"
        if self.settings.avoid_expensive and status.is_expensive:
            return "expensive_connection"
        return None

    def can_sync(self) -> bool:
        reason = self.blocking_reason()
        if reason is not None:
            safe_logger(self.logger).log_debug("Sync gate closed", {"reason": reason})
        return reason is None
