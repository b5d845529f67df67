#!/usr/bin/env python3
"""
batching.py
--------------------
Adaptive sizing of upload batches.

Local records are pushed in batches. A batch closes once it holds the
recommended number of records for its entity type or once the bytes it
moved reach the byte cap, whichever comes first. The cancellation
checkpoint runs between batches.

Limits start from the current network quality:

    quality     media  gpx  memory  bytes
    excellent      15   25      50  200 MiB
    good           10   20      35  100 MiB
    fair            7   15      25   75 MiB
    poor            3    8      15   25 MiB

Other entity types use DEFAULT_BATCH_SIZE. Every closed batch is recorded
in the PerformanceMonitor under BATCH_OPERATION; once TUNING_WINDOW
samples exist, the latest window retunes the limits:

    - success rate below 80%: every limit shrinks by 20%
    - success rate of 95% or more and over 1 MB/s: limits grow by 10%,
      never past CEILING

A change of network quality resets the limits to that quality's table.

Usage:
    advisor = AdaptiveBatchAdvisor(monitor)
    advisor.update_network(gate.status())
    batch = advisor.open_batch(EntityType.MEMORY)
    ...
    batch.add(bytes_sent)
    if batch.full:
        advisor.close_batch(batch)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
from dataclasses import dataclass, replace
from typing import Dict, Optional

# --- Local imports ---
from waypoint.core.logging_manager import WaypointLogger, safe_logger
from waypoint.database.models import EntityType

from .connectivity import NetworkStatus
from .enums import ConnectionType, NetworkQuality
from .telemetry import Measurement, PerformanceMonitor

MIB = 1024 * 1024

BATCH_OPERATION = "push_batch"
DEFAULT_BATCH_SIZE = 10
TUNING_WINDOW = 5
SHRINK_BELOW_SUCCESS_RATE = 0.8
GROW_FROM_SUCCESS_RATE = 0.95
GROW_FROM_BYTES_PER_SECOND = 1_000_000
SHRINK_FACTOR = 0.8
GROW_FACTOR = 1.1


@dataclass(frozen=True)
class BatchLimits:
    """
    Records per batch for the bulky entity types, plus the byte cap.

    Attributes:
        media_items: Records per media item batch
        gpx_tracks: Records per GPX track batch
        memories: Records per memory batch
        max_bytes: Bytes a batch may move before it closes
    """

    media_items: int
    gpx_tracks: int
    memories: int
    max_bytes: int

    def size_for(self, entity_type: EntityType) -> int:
        if entity_type == EntityType.MEDIA_ITEM:
            return self.media_items
        if entity_type == EntityType.GPX_TRACK:
            return self.gpx_tracks
        if entity_type == EntityType.MEMORY:
            return self.memories
        return DEFAULT_BATCH_SIZE

    def scaled(self, factor: float, ceiling: Optional["BatchLimits"] = None) -> "BatchLimits":
        """Every limit times `factor`, at least 1 record and at most `ceiling`."""

        def scale(value: int, cap: Optional[int]) -> int:
            result = max(1, int(value * factor))
            return min(result, cap) if cap is not None else result

        return BatchLimits(
            media_items=scale(self.media_items, ceiling and ceiling.media_items),
            gpx_tracks=scale(self.gpx_tracks, ceiling and ceiling.gpx_tracks),
            memories=scale(self.memories, ceiling and ceiling.memories),
            max_bytes=scale(self.max_bytes, ceiling and ceiling.max_bytes),
        )


QUALITY_LIMITS: Dict[NetworkQuality, BatchLimits] = {
    NetworkQuality.EXCELLENT: BatchLimits(15, 25, 50, 200 * MIB),
    NetworkQuality.GOOD: BatchLimits(10, 20, 35, 100 * MIB),
    NetworkQuality.FAIR: BatchLimits(7, 15, 25, 75 * MIB),
    NetworkQuality.POOR: BatchLimits(3, 8, 15, 25 * MIB),
}
CEILING = BatchLimits(20, 30, 60, 300 * MIB)


def quality_of(status: NetworkStatus) -> NetworkQuality:
    """Map a network status onto a quality tier."""
    if not status.reachable or status.connection_type == ConnectionType.NONE:
        return NetworkQuality.POOR
    if status.connection_type in (ConnectionType.WIFI, ConnectionType.ETHERNET):
        return NetworkQuality.GOOD if status.is_expensive else NetworkQuality.EXCELLENT
    if status.connection_type == ConnectionType.CELLULAR:
        return NetworkQuality.POOR if status.is_expensive else NetworkQuality.FAIR
    return NetworkQuality.FAIR


class PushBatch:
    """
    One open upload batch.

    Attributes:
        entity_type: Type of the records pushed in it
        size: Records allowed
        max_bytes: Byte cap
        count: Records pushed so far
        bytes_sent: Bytes moved so far
        failures: Records that failed
        closed: Set once the advisor has recorded it
    """

    def __init__(
        self,
        entity_type: EntityType,
        size: int,
        max_bytes: int,
        measurement: Measurement,
    ) -> None:
        self.entity_type = entity_type
        self.size = size
        self.max_bytes = max_bytes
        self.measurement = measurement
        self.count = 0
        self.bytes_sent = 0
        self.failures = 0
        self.closed = False

    def add(self, bytes_sent: int = 0, failed: bool = False) -> None:
        self.count += 1
        self.bytes_sent += max(0, bytes_sent)
        if failed:
            self.failures += 1

    @property
    def full(self) -> bool:
        return self.count >= self.size or self.bytes_sent >= self.max_bytes


class AdaptiveBatchAdvisor:
    """
    Recommends batch sizes and retunes them from recorded batch performance.

    Attributes:
        monitor: Performance monitor holding the batch samples
        quality: Network quality the limits were last reset for
        limits: Current limits
    """

    def __init__(
        self,
        monitor: Optional[PerformanceMonitor] = None,
        quality: NetworkQuality = NetworkQuality.FAIR,
        logger: Optional[WaypointLogger] = None,
    ) -> None:
        self.monitor = monitor or PerformanceMonitor()
        self.logger = logger
        self.quality = NetworkQuality(quality)
        self.limits = QUALITY_LIMITS[self.quality]
        self._lock = threading.RLock()

    # ---- Recommendations ----
    def recommended_batch_size(self, entity_type: EntityType) -> int:
        with self._lock:
            return self.limits.size_for(EntityType(entity_type))

    @property
    def max_bytes(self) -> int:
        with self._lock:
            return self.limits.max_bytes

    def is_batch_acceptable(self, total_bytes: int) -> bool:
        return total_bytes <= self.max_bytes

    def update_network(self, status: NetworkStatus) -> NetworkQuality:
        """Reset the limits when the network quality changed."""
        quality = quality_of(status)
        with self._lock:
            if quality != self.quality:
                self.quality = quality
                self.limits = QUALITY_LIMITS[quality]
                safe_logger(self.logger).log_info(
                    "Batch limits reset for network quality",
                    {"quality": quality.value, "limits": self.describe()},
                )
        return quality

    # ---- Batches ----
    def open_batch(self, entity_type: EntityType) -> PushBatch:
        with self._lock:
            return PushBatch(
                EntityType(entity_type),
                self.limits.size_for(EntityType(entity_type)),
                self.limits.max_bytes,
                self.monitor.start_measuring(BATCH_OPERATION),
            )

    def close_batch(self, batch: PushBatch, success: Optional[bool] = None) -> None:
        """
        Record a finished batch and retune.

        Args:
            batch: Batch to close; closing twice is a no-op
            success: Defaults to "no record in the batch failed"
        """
        if batch.closed:
            return
        batch.closed = True
        if batch.count == 0 and success is None:
            return
        ok = batch.failures == 0 if success is None else success
        sample = batch.measurement.finish(batch.count, batch.bytes_sent, success=ok)
        safe_logger(self.logger).log_debug(
            "Batch pushed",
            {
                "entity_type": batch.entity_type.value,
                "records": batch.count,
                "bytes": batch.bytes_sent,
                "duration": round(sample.duration, 3),
                "success": ok,
            },
        )
        self.tune()

    # ---- Tuning ----
    def tune(self) -> BatchLimits:
        """Shrink or grow the limits from the latest window of batch samples."""
        recent = self.monitor.samples(BATCH_OPERATION)[-TUNING_WINDOW:]
        if len(recent) < TUNING_WINDOW:
            return self.limits

        success_rate = sum(1 for s in recent if s.success) / len(recent)
        bytes_per_second = sum(s.bytes_per_second for s in recent) / len(recent)

        with self._lock:
            if success_rate < SHRINK_BELOW_SUCCESS_RATE:
                self.limits = self.limits.scaled(SHRINK_FACTOR)
                safe_logger(self.logger).log_info(
                    "Batch limits reduced",
                    {"success_rate": round(success_rate, 2), "limits": self.describe()},
                )
            elif (
                success_rate >= GROW_FROM_SUCCESS_RATE
                and bytes_per_second > GROW_FROM_BYTES_PER_SECOND
            ):
                self.limits = self.limits.scaled(GROW_FACTOR, CEILING)
                safe_logger(self.logger).log_info(
                    "Batch limits raised",
                    {"bytes_per_second": int(bytes_per_second), "limits": self.describe()},
                )
            return self.limits

    def reset(self) -> None:
        with self._lock:
            self.limits = QUALITY_LIMITS[self.quality]

    def describe(self) -> Dict[str, int]:
        with self._lock:
            return {
                "media_items": self.limits.media_items,
                "gpx_tracks": self.limits.gpx_tracks,
                "memories": self.limits.memories,
                "max_bytes": self.limits.max_bytes,
            }

    def with_limits(self, **changes: int) -> "AdaptiveBatchAdvisor":
        """Replace individual limits in place; returns self."""
        with self._lock:
            self.limits = replace(self.limits, **changes)
        return self
