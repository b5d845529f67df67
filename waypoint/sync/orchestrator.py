#!/usr/bin/env python3
"""
orchestrator.py
--------------------
Drives one end-to-end sync cycle between the journal store and the
remote backend.

State machine:

    IDLE -> SYNCING -> {SUCCESS, ERROR} -> IDLE

At most one cycle runs per orchestrator; a second synchronize() call made
while a cycle is running returns a SKIPPED report at once.

Cycle:
    1. Gate and preconditions
       - connectivity gate closed: NOT_SYNCED, stays IDLE, no error
       - sync disabled / storage mode / no credential: PreconditionError,
         NOT_SYNCED, stays IDLE
    2. Drain the offline queue
       - each task attempted at most once per cycle
       - validation failures fail the task at once, siblings continue
       - exhausted tasks make the cycle partial, never fatal
       - a transient failure that leaves the task pending aborts the
         cycle: remote state is not authoritative while local mutations
         wait to be uploaded
    3. Entity types in dependency order, each stage:
       - list_all for the fetch scope
       - one rollback-aware transaction: detect and resolve conflicts,
         upsert winning remote snapshots
       - push local-winning and never-pushed records, one rollback-aware
         transaction per record; new server ids are recorded there
       - pushes run in batches sized by the batch advisor; cancellation
         is honoured between batches
       - a failed stage skips its dependents, not independent types
    4. Persist the completion time when every stage completed

Progress advances once per completed step (queue drain, each entity type,
finalization); it never decreases and reaches 1.0 only on full success.

Usage:
    orchestrator = SyncOrchestrator(db, backend, queue, resolver, conflicts,
                                    gate, auth, settings, state_store)
    report = orchestrator.synchronize()
    print(report.summary())
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# --- Third party ---
from sqlalchemy.orm import Session, object_session

# --- Local imports ---
from waypoint.core.config import SyncSettings
from waypoint.core.exceptions import (
    AuthorizationError,
    CycleAbortedError,
    DatabaseError,
    IdentityConflictError,
    NetworkError,
    NotAuthenticatedError,
    PayloadRejectedError,
    PreconditionError,
    ServerError,
    StorageModeError,
    SyncDisabledError,
    SyncError,
    TransactionError,
    ValidationError,
    WaypointError,
)
from waypoint.core.logging_manager import WaypointLogger, safe_logger
from waypoint.database.manager import JournalDB
from waypoint.database.managers import EntityManager
from waypoint.database.models import EntityType, entity_type_of
from waypoint.database.snapshot import EntitySnapshot

from .auth import AuthProvider
from .batching import AdaptiveBatchAdvisor, PushBatch
from .conflict import ConflictResolver
from .connectivity import ConnectivityGate
from .dependency_resolver import DependencyResolver
from .enums import (
    ConflictStrategy,
    MutationOperation,
    QueuePriority,
    StorageMode,
    SyncOutcome,
    SyncPhase,
    TaskStatus,
)
from .events import CYCLE_FINISHED, PROGRESS, STATE_CHANGED, EventBus
from .queue import OfflineQueue, QueueTask
from .results import RecordFailure, StageResult, StageStatus, SyncReport
from .state import SyncStateStore
from .telemetry import Measurement, PerformanceMonitor
from .transport import FetchScope, RemoteBackend, RemoteEntity

# Errors that condemn a single entity, never its siblings
_ENTITY_ERRORS = (ValidationError, PayloadRejectedError, IdentityConflictError)


class _CycleCancelled(Exception):
    """Raised at a checkpoint once cancel() was requested."""


class SyncOrchestrator:
    """
    Runs sync cycles over injected services.

    Attributes:
        db: Journal store
        backend: Remote backend
        queue: Offline mutation queue
        resolver: Entity type ordering
        conflicts: Conflict detector and resolver
        gate: Connectivity gate
        auth: Credential source
        settings: Sync settings
        state_store: Persisted last-sync time and conflicts
        telemetry: Optional performance monitor
        batching: Upload batch advisor, fed by the telemetry samples
        events: Optional event bus
        phase: Current state machine phase
        progress: Progress of the running (or last) cycle
    """

    def __init__(
        self,
        db: JournalDB,
        backend: RemoteBackend,
        queue: OfflineQueue,
        resolver: DependencyResolver,
        conflicts: ConflictResolver,
        gate: ConnectivityGate,
        auth: AuthProvider,
        settings: SyncSettings,
        state_store: SyncStateStore,
        telemetry: Optional[PerformanceMonitor] = None,
        events: Optional[EventBus] = None,
        logger: Optional[WaypointLogger] = None,
        batching: Optional[AdaptiveBatchAdvisor] = None,
    ) -> None:
        self.db = db
        self.backend = backend
        self.queue = queue
        self.resolver = resolver
        self.conflicts = conflicts
        self.gate = gate
        self.auth = auth
        self.settings = settings
        self.state_store = state_store
        self.telemetry = telemetry
        self.events = events
        self.logger = logger
        self.batching = batching or AdaptiveBatchAdvisor(telemetry, logger=logger)

        self.phase = SyncPhase.IDLE
        self.progress = 0.0
        self._cycle_lock = threading.Lock()
        self._cancel = threading.Event()

    @property
    def scope(self) -> FetchScope:
        return FetchScope(
            trip_ids=self.settings.trip_ids, include_shared=self.settings.include_shared
        )

    @property
    def is_syncing(self) -> bool:
        return self.phase == SyncPhase.SYNCING

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def synchronize(self) -> SyncReport:
        """
        Run one sync cycle.

        Returns:
            SyncReport; SKIPPED when a cycle is already running
        """
        if not self._cycle_lock.acquire(blocking=False):
            safe_logger(self.logger).log_info("Sync already running, request skipped")
            now = datetime.now(timezone.utc)
            return SyncReport(
                outcome=SyncOutcome.SKIPPED,
                reason="sync_in_progress",
                started_at=now,
                finished_at=now,
                progress=self.progress,
            )
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def cancel(self) -> None:
        """Stop the running cycle at its next checkpoint."""
        if self.is_syncing:
            safe_logger(self.logger).log_info("Sync cancellation requested")
            self._cancel.set()

    def retry_cycle(self) -> SyncReport:
        """Manual whole-cycle retry: failed tasks get a fresh budget first."""
        self.queue.retry_all_failed()
        return self.synchronize()

    def retry_failed_task(self, task_id: str) -> bool:
        """Manual retry of one failed task; it runs with the next cycle."""
        return self.queue.retry_task(task_id)

    def status(self) -> Dict[str, Any]:
        """Snapshot of engine state for display."""
        return {
            "phase": self.phase.value,
            "progress": self.progress,
            "last_synced_at": self.state_store.last_synced_at,
            "stale": self.state_store.is_stale(),
            "queue": self.queue.summary(),
            "pending_conflicts": len(self.conflicts.pending_conflicts),
            "conflict_strategy": self.conflicts.strategy.value,
            "network_quality": self.batching.quality.value,
            "batch_limits": self.batching.describe(),
        }

    # -------------------------------------------------------------------------
    # Host hooks
    # -------------------------------------------------------------------------

    def record_local_change(
        self,
        record: Any,
        operation: MutationOperation,
        priority: QueuePriority = QueuePriority.NORMAL,
        entity_type: Optional[EntityType] = None,
    ) -> bool:
        """
        Queue a user mutation for upload.

        Args:
            record: ORM record, attached to the caller's session
            operation: create, update or delete
            priority: Queue tier
            entity_type: Defaults to the record's model type

        Returns:
            False when the queue is full

        Raises:
            ValidationError: If the record is detached from any session
        """
        session = object_session(record)
        if session is None:
            raise ValidationError("Cannot record a change for a detached record")

        entity_type = EntityType(entity_type or entity_type_of(record))
        manager = self._manager(session, entity_type)
        snapshot = manager.snapshot(record)
        return self.queue.enqueue(
            entity_type,
            snapshot.local_id,
            MutationOperation(operation),
            snapshot.to_dict(),
            QueuePriority(priority),
            session=session,
        )

    def apply_manual_resolution(
        self,
        entity_id: str,
        use_local: bool,
        entity_type: Optional[EntityType] = None,
    ) -> Optional[EntitySnapshot]:
        """
        Apply a human decision to a pending conflict.

        The remote choice is written locally at once; the local choice is
        queued as a high-priority upload for the next cycle. Removing the
        conflict and applying the choice commit together.

        Returns:
            The chosen snapshot, or None if no such conflict is pending
        """

        def resolve(session: Session) -> Optional[EntitySnapshot]:
            winner = self.conflicts.resolve_manually(
                entity_id, use_local, entity_type, session=session
            )
            if winner is None:
                return None
            if use_local:
                operation = (
                    MutationOperation.DELETE if winner.deleted else MutationOperation.UPDATE
                )
                self.queue.enqueue(
                    winner.entity_type,
                    winner.local_id,
                    operation,
                    winner.to_dict(),
                    QueuePriority.HIGH,
                    session=session,
                )
            else:
                self._manager(session, winner.entity_type).apply_snapshot(winner)
            return winner

        try:
            return self.db.transactions.perform_transaction_with_rollback(
                resolve, name="manual_resolution"
            )
        except Exception:
            self.conflicts.reload()
            raise

    # -------------------------------------------------------------------------
    # Cycle
    # -------------------------------------------------------------------------

    def _run_cycle(self) -> SyncReport:
        report = SyncReport(outcome=SyncOutcome.NOT_SYNCED)
        self._cancel.clear()
        self.progress = 0.0

        reason = self.gate.blocking_reason()
        if reason is not None:
            report.reason = reason
            safe_logger(self.logger).log_info("Sync not started", {"reason": reason})
            return self._finish_report(report)

        try:
            self._check_preconditions()
        except PreconditionError as e:
            report.reason = e.reason
            report.error = e
            safe_logger(self.logger).log_info(
                "Sync precondition failed", {"reason": e.reason, "error": str(e)}
            )
            return self._finish_report(report)

        self.batching.update_network(self.gate.status())
        order = self.resolver.resolve_sync_order()
        total_steps = len(order) + 2
        completed = 0
        terminal: Optional[SyncPhase] = SyncPhase.ERROR

        self._set_phase(SyncPhase.SYNCING)
        self._advance(report, 0.0, "start")
        measurement = self._measure("sync_cycle")
        bytes_before = self._bytes()

        try:
            self._drain_queue(report)
            if report.failed_tasks == 0:
                completed += 1
                self._advance(report, completed / total_steps, "queue")

            skipped = set()
            for entity_type in order:
                self._checkpoint()
                if entity_type in skipped:
                    report.stages[entity_type] = StageResult(
                        entity_type, status=StageStatus.SKIPPED
                    )
                    continue

                result = self._sync_stage(entity_type)
                report.stages[entity_type] = result
                if result.status == StageStatus.FAILED:
                    skipped |= self.resolver.get_dependents(entity_type)
                elif result.ok:
                    completed += 1
                    self._advance(report, completed / total_steps, entity_type.value)

            report.conflicts = len(self.conflicts.pending_conflicts)
            report.failed_tasks = self.queue.failed_count
            report.pending_tasks = self.queue.pending_count

            all_completed = all(
                r.status == StageStatus.COMPLETED for r in report.stages.values()
            )
            if all_completed:
                self.state_store.record_sync()

            if (
                all_completed
                and all(r.ok for r in report.stages.values())
                and report.failed_tasks == 0
                and report.pending_tasks == 0
                and report.conflicts == 0
            ):
                completed += 1
                report.outcome = SyncOutcome.FULLY_SYNCED
                self._advance(report, completed / total_steps, "done")
            else:
                report.outcome = SyncOutcome.PARTIALLY_SYNCED

            terminal = SyncPhase.SUCCESS if all_completed else SyncPhase.ERROR

        except _CycleCancelled:
            report.outcome = SyncOutcome.CANCELLED
            report.reason = "cancelled"
            report.failed_tasks = self.queue.failed_count
            report.pending_tasks = self.queue.pending_count
            last = list(report.stages.values())[-1] if report.stages else None
            transaction_failed = last is not None and isinstance(last.error, TransactionError)
            terminal = SyncPhase.ERROR if transaction_failed else None
            safe_logger(self.logger).log_info("Sync cycle cancelled")

        except WaypointError as e:
            report.outcome = SyncOutcome.NOT_SYNCED
            report.error = e
            report.failed_tasks = self.queue.failed_count
            report.pending_tasks = self.queue.pending_count
            terminal = SyncPhase.ERROR
            safe_logger(self.logger).log_error(e, {"operation": "sync_cycle"})

        except Exception as e:
            terminal = SyncPhase.ERROR
            safe_logger(self.logger).log_error(e, {"operation": "sync_cycle"})
            raise

        finally:
            self._finish_measurement(
                measurement,
                report.drained + report.created + report.updated,
                self._bytes() - bytes_before,
            )
            if terminal is not None:
                self._set_phase(terminal)
            self._set_phase(SyncPhase.IDLE)

        return self._finish_report(report)

    def _check_preconditions(self) -> None:
        """
        Raises:
            SyncDisabledError: Sync switched off
            StorageModeError: Storage mode other than the remote backend
            NotAuthenticatedError: No credential available
        """
        if not self.settings.enabled:
            raise SyncDisabledError("Sync is disabled in settings")
        if self.settings.storage_mode != StorageMode.BACKEND:
            raise StorageModeError(
                f"Storage mode '{self.settings.storage_mode.value}' does not sync "
                "with the remote backend"
            )
        if not self.auth.is_authenticated():
            raise NotAuthenticatedError("No credential for the remote backend")

    def _finish_report(self, report: SyncReport) -> SyncReport:
        report.finished_at = datetime.now(timezone.utc)
        report.progress = self.progress
        safe_logger(self.logger).log_operation(
            "sync_cycle_finished",
            {
                "outcome": report.outcome.value,
                "reason": report.reason,
                "error": str(report.error) if report.error else None,
                "drained": report.drained,
                "created": report.created,
                "updated": report.updated,
                "failed_tasks": report.failed_tasks,
                "pending_tasks": report.pending_tasks,
                "conflicts": report.conflicts,
                "duration_seconds": report.duration,
            },
        )
        self._publish(CYCLE_FINISHED, report=report)
        return report

    # -------------------------------------------------------------------------
    # Queue drain
    # -------------------------------------------------------------------------

    def _drain_queue(self, report: SyncReport) -> None:
        """
        Replay every pending task once.

        Raises:
            CycleAbortedError: A task failed transiently and is still pending
            AuthorizationError: The credential was rejected
            DatabaseError: The local store failed
        """
        attempted = set()
        while True:
            self._checkpoint()
            task = self.queue.dequeue(exclude=attempted)
            if task is None:
                break
            attempted.add(task.id)

            try:
                self.db.transactions.perform_transaction_with_rollback(
                    lambda session: self._replay_and_complete(session, task),
                    name=f"replay_{task.operation.value}_{task.entity_type.value}",
                )
            except _ENTITY_ERRORS as e:
                self.queue.mark_failed(task.id, e, retryable=False)
                continue
            except AuthorizationError:
                self.queue.release(task.id)
                raise
            except (NetworkError, ServerError) as e:
                updated = self.queue.mark_failed(task.id, e)
                if updated is not None and updated.status == TaskStatus.PENDING:
                    raise CycleAbortedError(
                        f"Queue drain stopped at {task.entity_type.value} "
                        f"{task.entity_id}: {e}",
                        category=e.category,
                    ) from e
                continue
            except (DatabaseError, SyncError) as e:
                self.queue.mark_failed(task.id, e)
                raise
            except Exception:
                # Unclassified failure: hand the task back untouched
                self.queue.release(task.id)
                raise

            report.drained += 1

        report.failed_tasks = self.queue.failed_count

    def _replay_and_complete(self, session: Session, task: QueueTask) -> Optional[str]:
        """Replay a task and drop it from the queue in the same transaction."""
        outcome = self._replay_task(session, task)
        self.queue.mark_completed(task.id, session=session)
        return outcome

    def _replay_task(self, session: Session, task: QueueTask) -> Optional[str]:
        """Apply one queued mutation remotely, using the record's current state."""
        manager = self._manager(session, task.entity_type)
        record = manager.get_by_local_id(task.entity_id)

        if task.operation == MutationOperation.DELETE or (
            record is not None and record.is_deleted
        ):
            server_id = (
                self.db.identity.get_server_id(record) if record is not None else None
            ) or task.payload.get("server_id")
            if server_id:
                self.backend.delete(task.entity_type, server_id)
            if record is not None:
                manager.purge(record)
            return "deleted"

        if record is None:
            safe_logger(self.logger).log_warning(
                "Queued entity no longer exists locally",
                {"entity_type": task.entity_type.value, "entity_id": task.entity_id},
            )
            return None
        return self._push_record(session, manager, record)

    # -------------------------------------------------------------------------
    # Entity type stage
    # -------------------------------------------------------------------------

    def _sync_stage(self, entity_type: EntityType) -> StageResult:
        """
        Fetch, reconcile and push one entity type.

        Entity-level failures are recorded on the result; stage-level
        failures mark it FAILED.

        Raises:
            AuthorizationError: The credential was rejected
        """
        result = StageResult(entity_type)
        measurement = self._measure(f"sync_{entity_type.value}")
        bytes_before = self._bytes()
        touched: Optional[str] = None
        batch: Optional[PushBatch] = None

        try:
            remote_records = self.backend.list_all(entity_type, self.scope)
            result.fetched = len(remote_records)

            try:
                to_push = self.db.transactions.perform_transaction_with_rollback(
                    lambda session: self._apply_remote(
                        session, entity_type, remote_records, result
                    ),
                    name=f"apply_remote_{entity_type.value}",
                )
            except Exception:
                # Conflicts parked in the rolled back transaction are gone
                self.conflicts.reload()
                raise
            for local_id in self._unsynced_local_ids(entity_type):
                if local_id not in to_push:
                    to_push.append(local_id)

            for local_id in to_push:
                if batch is None or batch.full:
                    if batch is not None:
                        self._close_batch(batch)
                        result.batches += 1
                        self._checkpoint()
                    batch = self.batching.open_batch(entity_type)

                touched = local_id
                sent_before = self._bytes()
                try:
                    kind = self.db.transactions.perform_transaction_with_rollback(
                        lambda session: self._push_local(session, entity_type, local_id),
                        name=f"push_{entity_type.value}",
                    )
                except _ENTITY_ERRORS as e:
                    batch.add(self._bytes() - sent_before, failed=True)
                    result.record_failures.append(RecordFailure(local_id, None, str(e)))
                    safe_logger(self.logger).log_warning(
                        "Entity not pushed",
                        {"entity_type": entity_type.value, "local_id": local_id, "error": str(e)},
                    )
                    continue
                batch.add(self._bytes() - sent_before)
                if kind == "created":
                    result.created += 1
                elif kind == "updated":
                    result.updated += 1
                elif kind == "deleted":
                    result.deleted += 1
            touched = None
            if batch is not None:
                self._close_batch(batch)
                result.batches += 1

        except AuthorizationError:
            raise
        except (SyncError, DatabaseError) as e:
            result.status = StageStatus.FAILED
            result.error = e
            safe_logger(self.logger).log_error(
                e, {"operation": "sync_stage", "entity_type": entity_type.value}
            )
            if touched is not None and isinstance(e, (NetworkError, ServerError)):
                self.queue.record_failure(entity_type, touched, e)

        finally:
            if batch is not None and not batch.closed:
                # Cut short by a stage failure or cancellation
                self._close_batch(batch, success=False)
            self._finish_measurement(
                measurement,
                result.fetched + result.created + result.updated,
                self._bytes() - bytes_before,
            )
        return result

    def _apply_remote(
        self,
        session: Session,
        entity_type: EntityType,
        remote_records: List[RemoteEntity],
        result: StageResult,
    ) -> List[str]:
        """
        Reconcile fetched records with the store.

        Returns:
            Local ids of records whose local state won and must be pushed
        """
        manager = self._manager(session, entity_type)
        identity = self.db.identity
        to_push: List[str] = []

        for remote in remote_records:
            try:
                remote_snapshot = EntitySnapshot.from_remote(entity_type, remote)
                record = manager.get_by_server_id(remote.id)
                adopted = False

                if record is None:
                    # A create whose response was lost comes back carrying our local id
                    candidate = manager.get_by_local_id(remote_snapshot.local_id)
                    if candidate is not None and not identity.has_server_id(candidate):
                        identity.assign_server_id(candidate, remote.id)
                        record = candidate
                        adopted = True

                if record is None:
                    manager.apply_snapshot(remote_snapshot)
                    result.applied += 1
                    continue

                conflict = self.conflicts.detect_conflict(
                    manager.snapshot(record), remote_snapshot, adopted=adopted
                )
                if conflict is None:
                    continue

                result.conflicts += 1
                strategy = self.conflicts.strategy
                winner = self.conflicts.resolve_conflict(conflict, strategy, session=session)
                if strategy == ConflictStrategy.MANUAL:
                    continue
                if winner is conflict.remote_data:
                    manager.apply_snapshot(remote_snapshot, record)
                    result.applied += 1
                else:
                    to_push.append(identity.get_local_id(record))

            except _ENTITY_ERRORS as e:
                result.record_failures.append(RecordFailure(None, remote.id, str(e)))
                safe_logger(self.logger).log_warning(
                    "Remote record not applied",
                    {"entity_type": entity_type.value, "server_id": remote.id, "error": str(e)},
                )
        return to_push

    def _unsynced_local_ids(self, entity_type: EntityType) -> List[str]:
        """Local ids of live records never pushed; missing ids are generated and kept."""

        def collect(session: Session) -> List[str]:
            manager = self._manager(session, entity_type)
            return [self.db.identity.get_local_id(r) for r in manager.list_unsynced()]

        return self.db.transactions.perform_transaction(
            collect, name=f"list_unsynced_{entity_type.value}"
        )

    def _push_local(
        self, session: Session, entity_type: EntityType, local_id: str
    ) -> Optional[str]:
        manager = self._manager(session, entity_type)
        record = manager.get_by_local_id(local_id)
        if record is None:
            return None
        if record.is_deleted:
            server_id = self.db.identity.get_server_id(record)
            if server_id:
                self.backend.delete(entity_type, server_id)
            manager.purge(record)
            return "deleted"
        return self._push_record(session, manager, record)

    def _push_record(self, session: Session, manager: EntityManager, record: Any) -> str:
        """
        Send a record upstream, parents first.

        Branches on the presence of a server id so an already-pushed
        record is updated, never created twice.

        Returns:
            'created' or 'updated'
        """
        for target_type, parent in manager.unsynced_parents(record):
            self._push_record(session, self._manager(session, target_type), parent)

        snapshot = manager.snapshot(record)
        snapshot.validate_for_upload()
        payload = snapshot.to_payload()

        if snapshot.server_id:
            remote = self.backend.update(manager.entity_type, snapshot.server_id, payload)
            kind = "updated"
        else:
            remote = self.backend.create(manager.entity_type, payload)
            self.db.identity.assign_server_id(record, remote.id)
            kind = "created"

        manager.touch(record, remote.updated_at)
        session.flush()
        return kind

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _manager(self, session: Session, entity_type: EntityType) -> EntityManager:
        return EntityManager(session, entity_type, self.db.identity, self.logger)

    def _checkpoint(self) -> None:
        if self._cancel.is_set():
            raise _CycleCancelled()

    def _set_phase(self, phase: SyncPhase) -> None:
        if phase == self.phase:
            return
        previous, self.phase = self.phase, phase
        safe_logger(self.logger).log_debug(
            "Sync phase changed", {"from": previous.value, "to": phase.value}
        )
        self._publish(STATE_CHANGED, phase=phase, previous=previous)

    def _advance(self, report: SyncReport, value: float, stage: str) -> None:
        """Publish progress; the value never goes backwards within a cycle."""
        self.progress = min(1.0, max(self.progress, value))
        report.progress = self.progress
        self._publish(PROGRESS, progress=self.progress, stage=stage)

    def _publish(self, topic: str, **payload: Any) -> None:
        if self.events is not None:
            self.events.publish(topic, **payload)

    def _bytes(self) -> int:
        return int(getattr(self.backend, "bytes_transferred", 0) or 0)

    def _measure(self, operation: str) -> Optional[Measurement]:
        if self.telemetry is None:
            return None
        try:
            return self.telemetry.start_measuring(operation)
        except Exception as e:
            safe_logger(self.logger).log_warning(
                "Telemetry unavailable", {"operation": operation, "error": str(e)}
            )
            return None

    def _finish_measurement(
        self, measurement: Optional[Measurement], entity_count: int, bytes_transferred: int
    ) -> None:
        if measurement is None:
            return
        try:
            measurement.finish(entity_count, bytes_transferred)
        except Exception as e:
            safe_logger(self.logger).log_warning(
                "Telemetry sample dropped",
                {"operation": measurement.operation, "error": str(e)},
            )

    def _close_batch(self, batch: PushBatch, success: Optional[bool] = None) -> None:
        try:
            self.batching.close_batch(batch, success)
        except Exception as e:
            batch.closed = True
            safe_logger(self.logger).log_warning(
                "Batch sample dropped",
                {"entity_type": batch.entity_type.value, "error": str(e)},
            )
