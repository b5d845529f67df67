#!/usr/bin/env python3
"""
telemetry.py
--------------------
Performance monitor for sync operations.

Samples (duration, throughput, bytes per second, memory delta) are kept in
a bounded ring buffer; the oldest sample is evicted first. Upload batch
samples feed the batch advisor (batching.py); all other samples are
observational. The orchestrator swallows any failure raised while
recording.

Usage:
    monitor = PerformanceMonitor(capacity=100)
    measurement = monitor.start_measuring("sync_trip")
    ...
    measurement.finish(entity_count=12, bytes_transferred=4096)

    monitor.average_throughput("sync_trip", last_minutes=60)
    monitor.stats("sync_trip")
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
import time
import tracemalloc
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Deque, List, Optional

# --- Local imports ---
from waypoint.core.logging_manager import WaypointLogger, safe_logger

# Operations slower than this are logged as warnings
SLOW_OPERATION_SECONDS = 5.0


@dataclass(frozen=True)
class PerformanceSample:
    """
    One finished measurement.

    Attributes:
        operation: Name given to start_measuring
        duration: Seconds elapsed
        entity_count: Entities processed
        bytes_transferred: Payload bytes moved
        memory_delta: Bytes allocated while measuring (0 unless tracemalloc runs)
        success: False when the measured work failed
        timestamp: Completion time, aware UTC
    """

    operation: str
    duration: float
    entity_count: int = 0
    bytes_transferred: int = 0
    memory_delta: int = 0
    success: bool = True
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def throughput(self) -> float:
        """Entities per second."""
        return self.entity_count / self.duration if self.duration > 0 else 0.0

    @property
    def bytes_per_second(self) -> float:
        return self.bytes_transferred / self.duration if self.duration > 0 else 0.0


@dataclass(frozen=True)
class PerformanceStats:
    """Aggregates over the samples of one operation."""

    operation: str
    count: int
    min_duration: float
    max_duration: float
    avg_duration: float
    min_throughput: float
    max_throughput: float
    avg_throughput: float


class Measurement:
    """Handle returned by start_measuring; finish() records the sample once."""

    def __init__(self, monitor: "PerformanceMonitor", operation: str) -> None:
        self.monitor = monitor
        self.operation = operation
        self._started = time.perf_counter()
        self._memory_start = (
            tracemalloc.get_traced_memory()[0] if tracemalloc.is_tracing() else None
        )
        self.sample: Optional[PerformanceSample] = None

    def finish(
        self, entity_count: int = 0, bytes_transferred: int = 0, success: bool = True
    ) -> PerformanceSample:
        if self.sample is not None:
            return self.sample

        duration = time.perf_counter() - self._started
        memory_delta = 0
        if self._memory_start is not None and tracemalloc.is_tracing():
            memory_delta = tracemalloc.get_traced_memory()[0] - self._memory_start

        self.sample = PerformanceSample(
            operation=self.operation,
            duration=duration,
            entity_count=entity_count,
            bytes_transferred=bytes_transferred,
            memory_delta=memory_delta,
            success=success,
        )
        self.monitor.record(self.sample)
        return self.sample


class PerformanceMonitor:
    """
    Bounded store of performance samples.

    Attributes:
        capacity: Samples kept; older ones are evicted first
    """

    def __init__(self, capacity: int = 100, logger: Optional[WaypointLogger] = None) -> None:
        self.capacity = capacity
        self.logger = logger
        self._samples: Deque[PerformanceSample] = deque(maxlen=capacity)
        self._lock = threading.RLock()

    def start_measuring(self, operation: str) -> Measurement:
        return Measurement(self, operation)

    def record(self, sample: PerformanceSample) -> None:
        with self._lock:
            self._samples.append(sample)
        if sample.duration > SLOW_OPERATION_SECONDS:
            safe_logger(self.logger).log_warning(
                "Slow sync operation",
                {"operation": sample.operation, "duration": round(sample.duration, 3)},
            )

    def samples(self, operation: Optional[str] = None) -> List[PerformanceSample]:
        with self._lock:
            return [s for s in self._samples if operation is None or s.operation == operation]

    def average_throughput(
        self,
        operation: Optional[str] = None,
        last_minutes: float = 60,
        now: Optional[datetime] = None,
    ) -> float:
        """Mean entities/second over samples finished within the window."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=last_minutes)
        recent = [s for s in self.samples(operation) if s.timestamp >= cutoff]
        if not recent:
            return 0.0
        return sum(s.throughput for s in recent) / len(recent)

    def stats(self, operation: str) -> Optional[PerformanceStats]:
        """Min/max/avg duration and throughput, or None without samples."""
        samples = self.samples(operation)
        if not samples:
            return None
        durations = [s.duration for s in samples]
        throughputs = [s.throughput for s in samples]
        return PerformanceStats(
            operation=operation,
            count=len(samples),
            min_duration=min(durations),
            max_duration=max(durations),
            avg_duration=sum(durations) / len(durations),
            min_throughput=min(throughputs),
            max_throughput=max(throughputs),
            avg_throughput=sum(throughputs) / len(throughputs),
        )

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
