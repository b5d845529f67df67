"""
Enumeration Types
------------------

Enum classes for the sync engine.

Enums:
    - StorageMode: Where journal data is mirrored
    - ConflictStrategy: How a detected conflict is resolved
    - ConflictType: Kind of divergence detected
    - MutationOperation: Offline queue operation
    - QueuePriority: Offline queue priority tier
    - TaskStatus: Offline queue task lifecycle
    - ConnectionType: Network interface kind
    - NetworkQuality: Link quality used to size upload batches
    - SyncPhase: Orchestrator state machine
    - SyncOutcome: User-visible result of one cycle
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from enum import Enum
from typing import List, Optional


class StorageMode(str, Enum):
    """
    Where journal data is mirrored.

    - LOCAL: Device only, no mirroring
    - BACKEND: Mirrored to the remote backend (the only mode this engine syncs)
    - VENDOR_CLOUD: Mirrored by the platform's cloud service instead
    """

    LOCAL = "local"
    BACKEND = "backend"
    VENDOR_CLOUD = "vendor_cloud"

    @classmethod
    def choices(cls) -> List[str]:
        """Get all available storage mode choices."""
        return [mode.value for mode in cls]


class ConflictStrategy(str, Enum):
    """
    Conflict resolution strategies.

    - LOCAL_WINS: Keep the local snapshot
    - REMOTE_WINS: Take the remote snapshot
    - LAST_WRITE_WINS: Strictly newer updated_at wins, ties keep local
      ('newer_wins' is accepted as an alias)
    - MANUAL: Park the conflict until a person decides
    """

    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    LAST_WRITE_WINS = "last_write_wins"
    MANUAL = "manual"

    @classmethod
    def _missing_(cls, value: object) -> Optional["ConflictStrategy"]:
        if isinstance(value, str) and value.lower().replace("-", "_") == "newer_wins":
            return cls.LAST_WRITE_WINS
        return None

    @classmethod
    def choices(cls) -> List[str]:
        """Get all available strategy choices."""
        return [strategy.value for strategy in cls]

    @property
    def display_name(self) -> str:
        """Get human-readable display name."""
        display_map = {
            self.LOCAL_WINS: "Local wins",
            self.REMOTE_WINS: "Remote wins",
            self.LAST_WRITE_WINS: "Last write wins",
            self.MANUAL: "Manual",
        }
        return display_map.get(self, self.value.title())


class ConflictType(str, Enum):
    """Kind of divergence between local and remote state."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MutationOperation(str, Enum):
    """Operation recorded in the offline queue."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def choices(cls) -> List[str]:
        return [op.value for op in cls]


class QueuePriority(str, Enum):
    """
    Offline queue priority tiers, ordered low < normal < high < critical.

    A lower tier is never dequeued ahead of a pending higher tier.
    """

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank used for ordering."""
        return {
            QueuePriority.LOW: 0,
            QueuePriority.NORMAL: 1,
            QueuePriority.HIGH: 2,
            QueuePriority.CRITICAL: 3,
        }[self]

    @classmethod
    def choices(cls) -> List[str]:
        return [priority.value for priority in cls]


class TaskStatus(str, Enum):
    """Lifecycle of an offline queue task."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def choices(cls) -> List[str]:
        return [status.value for status in cls]


class ConnectionType(str, Enum):
    """Network interface the device is currently using."""

    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    OTHER = "other"
    NONE = "none"


class NetworkQuality(str, Enum):
    """
    Coarse link quality.

    - EXCELLENT: Unmetered Wi-Fi or Ethernet
    - GOOD: Metered Wi-Fi
    - FAIR: Unmetered cellular, unknown interfaces
    - POOR: Metered cellular or no usable path
    """

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class SyncPhase(str, Enum):
    """
    Orchestrator state machine.

    IDLE -> SYNCING -> {SUCCESS, ERROR} -> IDLE
    """

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class SyncOutcome(str, Enum):
    """User-visible result of one sync cycle."""

    FULLY_SYNCED = "fully_synced"
    PARTIALLY_SYNCED = "partially_synced"
    NOT_SYNCED = "not_synced"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"

    @property
    def display_name(self) -> str:
        """Get human-readable display name."""
        display_map = {
            self.FULLY_SYNCED: "Fully synced",
            self.PARTIALLY_SYNCED: "Partially synced",
            self.NOT_SYNCED: "Not synced, will retry",
            self.CANCELLED: "Cancelled",
            self.SKIPPED: "Skipped (sync already running)",
        }
        return display_map.get(self, self.value.title())
