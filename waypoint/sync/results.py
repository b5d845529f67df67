#!/usr/bin/env python3
"""
results.py
--------------------
Outcome of a sync cycle as reported to the host and the CLI.

The host must be able to tell "fully synced", "partially synced with N
pending/failed items" and "not synced, will retry" apart; SyncReport
carries that distinction plus per-stage detail.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

# --- Local imports ---
from waypoint.core.exceptions import WaypointError
from waypoint.database.models.enums import EntityType

from .enums import SyncOutcome


class StageStatus(str, Enum):
    """Result of one entity-type stage."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RecordFailure:
    """An entity that could not be synced while its siblings were."""

    local_id: Optional[str]
    server_id: Optional[str]
    error: str


@dataclass
class StageResult:
    """
    Detail of one entity-type stage.

    Attributes:
        entity_type: Type handled by the stage
        status: completed, failed or skipped
        fetched: Remote records received
        applied: Remote records written locally
        created: Local records pushed as new
        updated: Local records pushed as updates
        deleted: Local deletions pushed
        conflicts: Conflicts detected
        batches: Upload batches sent
        record_failures: Entities skipped for their own reasons
        error: Stage-level error
    """

    entity_type: EntityType
    status: StageStatus = StageStatus.COMPLETED
    fetched: int = 0
    applied: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    conflicts: int = 0
    batches: int = 0
    record_failures: List[RecordFailure] = field(default_factory=list)
    error: Optional[WaypointError] = None

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.COMPLETED and not self.record_failures


@dataclass
class SyncReport:
    """
    Result of one synchronize() call.

    Attributes:
        outcome: User-visible classification
        reason: Why a cycle did not run (gate or precondition)
        error: Error that stopped the cycle, if any
        progress: Last published progress fraction
        stages: Stage results in sync order
        failed_tasks: Queue tasks that exhausted their retries
        pending_tasks: Queue tasks left for a later cycle
        drained: Queue tasks applied during this cycle
        conflicts: Conflicts parked for manual resolution
    """

    outcome: SyncOutcome
    reason: Optional[str] = None
    error: Optional[WaypointError] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    progress: float = 0.0
    stages: Dict[EntityType, StageResult] = field(default_factory=dict)
    failed_tasks: int = 0
    pending_tasks: int = 0
    drained: int = 0
    conflicts: int = 0

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def failed_stages(self) -> List[EntityType]:
        return [t for t, r in self.stages.items() if r.status != StageStatus.COMPLETED]

    @property
    def created(self) -> int:
        return sum(r.created for r in self.stages.values())

    @property
    def updated(self) -> int:
        return sum(r.updated for r in self.stages.values())

    def summary(self) -> str:
        """One-paragraph text for the CLI."""
        lines = [self.outcome.display_name]
        if self.reason:
            lines[0] += f" ({self.reason})"
        if self.error is not None:
            lines.append(f"Error: {type(self.error).__name__}: {self.error}")
        if self.stages:
            lines.append(
                f"Pushed {self.created} new / {self.updated} updated, "
                f"{self.drained} queued change(s) applied"
            )
        if self.failed_stages:
            lines.append("Failed stages: " + ", ".join(t.value for t in self.failed_stages))
        if self.pending_tasks or self.failed_tasks:
            lines.append(f"{self.pending_tasks} pending, {self.failed_tasks} failed task(s)")
        if self.conflicts:
            lines.append(f"{self.conflicts} conflict(s) awaiting manual resolution")
        return "\n".join(lines)
