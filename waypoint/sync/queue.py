#!/usr/bin/env python3
"""
queue.py
--------------------
Durable, priority-ordered offline mutation queue.

Local mutations made while sync is unavailable (offline, policy, or a
cycle already running) are recorded here and replayed by the next cycle.

Ordering:
    Strictly priority-major (critical > high > normal > low), then FIFO by
    created_at, then insertion order. A lower tier is never dequeued while
    a higher tier is pending.

Supersession:
    Enqueuing for an entity that already has a waiting (pending or failed)
    task replaces it; older intent is discarded, not merged. The create
    intent survives: an update replacing a create that never reached the
    remote stays a create carrying the newer payload, and a delete
    replacing such a create carries no server id.

Retries:
    mark_failed increments retry_count. Once it exceeds max_retries the
    task becomes FAILED, is skipped by dequeue, and waits for retry_task.

Persistence:
    Tasks are rows of the `offline_tasks` table in the journal store.
    Every mutating method takes an optional `session`: given one, the
    change joins that transaction (the user's edit, or the replay of the
    task) and commits or rolls back with it; otherwise the method runs
    its own rollback-aware transaction. Tasks found IN_FLIGHT when the
    queue is opened (process died mid-cycle) go back to PENDING.

Usage:
    queue = OfflineQueue(db, max_queue_size=1000, max_retries=3)
    with db.session_scope() as session:
        trip = db.manager(EntityType.TRIP).create({"name": "Iceland"})
        queue.enqueue(EntityType.TRIP, trip.local_id, MutationOperation.CREATE,
                      session=session)
    task = queue.dequeue()
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Collection, Dict, List, Optional, TypeVar

# --- Third party ---
from sqlalchemy import func, select
from sqlalchemy.orm import Session

# --- Local imports ---
from waypoint.core.exceptions import QueueError, TransactionError, ValidationError
from waypoint.core.logging_manager import WaypointLogger, safe_logger
from waypoint.database.manager import JournalDB
from waypoint.database.models import OfflineTask
from waypoint.database.models.enums import EntityType

from .enums import MutationOperation, QueuePriority, TaskStatus
from .events import QUEUE_CHANGED, EventBus

T = TypeVar("T")

# Statuses a newer mutation may supersede
_WAITING = (TaskStatus.PENDING.value, TaskStatus.FAILED.value)


@dataclass
class QueueTask:
    """
    One recorded local mutation, detached from the store.

    Attributes:
        id: Task id (uuid4 hex)
        entity_type: Type of the mutated entity
        entity_id: Local id of the mutated entity
        operation: create, update or delete
        priority: Priority tier
        payload: Snapshot of the entity at enqueue time (EntitySnapshot.to_dict)
        created_at: Enqueue time, aware UTC
        retry_count: Failed attempts so far
        max_retries: Attempts allowed before the task is marked failed
        status: Lifecycle state
        last_error: Message of the latest failure
    """

    entity_type: EntityType
    entity_id: str
    operation: MutationOperation
    priority: QueuePriority = QueuePriority.NORMAL
    payload: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = 0
    max_retries: int = 3
    status: TaskStatus = TaskStatus.PENDING
    last_error: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return self.retry_count > self.max_retries

    @classmethod
    def from_row(cls, row: OfflineTask) -> "QueueTask":
        """
        Raises:
            ValidationError: If the stored row holds unknown enum values
        """
        try:
            return cls(
                id=row.task_id,
                entity_type=EntityType(row.entity_type),
                entity_id=row.entity_id,
                operation=MutationOperation(row.operation),
                priority=QueuePriority(row.priority),
                payload=dict(row.payload or {}),
                created_at=row.created_at,
                retry_count=row.retry_count,
                max_retries=row.max_retries,
                status=TaskStatus(row.status),
                last_error=row.last_error,
            )
        except ValueError as e:
            raise ValidationError(f"Malformed queue task {row.task_id}: {e}") from e

    def to_row(self) -> OfflineTask:
        return OfflineTask(
            task_id=self.id,
            entity_type=self.entity_type.value,
            entity_id=self.entity_id,
            operation=self.operation.value,
            priority=self.priority.value,
            priority_rank=self.priority.rank,
            payload=self.payload,
            created_at=self.created_at,
            retry_count=self.retry_count,
            max_retries=self.max_retries,
            status=self.status.value,
            last_error=self.last_error,
        )


def _dequeue_order():
    return (
        OfflineTask.priority_rank.desc(),
        OfflineTask.created_at,
        OfflineTask.seq,
    )


class OfflineQueue:
    """
    Thread-safe mutation queue over the journal store.

    Attributes:
        db: Journal store holding the offline_tasks table
        max_queue_size: Capacity; enqueue is refused beyond it
        max_retries: Default retry ceiling for new tasks
    """

    def __init__(
        self,
        db: JournalDB,
        max_queue_size: int = 1000,
        max_retries: int = 3,
        logger: Optional[WaypointLogger] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        self.db = db
        self.max_queue_size = max_queue_size
        self.max_retries = max_retries
        self.logger = logger
        self.events = events
        self._lock = threading.RLock()

        recovered = self.requeue_in_flight()
        if recovered:
            safe_logger(self.logger).log_warning(
                "Recovered in-flight tasks from an interrupted cycle",
                {"count": recovered},
            )

    # -------------------------------------------------------------------------
    # Store access
    # -------------------------------------------------------------------------

    def _write(
        self, work: Callable[[Session], T], name: str, session: Optional[Session] = None
    ) -> T:
        """Run `work` in `session`, or in a transaction of its own."""

        def unit(s: Session):
            result = work(s)
            s.flush()
            return result, self._status_counts(s)

        with self._lock:
            if session is not None:
                result, counts = unit(session)
            else:
                try:
                    result, counts = self.db.transactions.perform_transaction_with_rollback(
                        unit, name=f"queue_{name}"
                    )
                except TransactionError as e:
                    raise QueueError(f"Offline queue {name} failed: {e}") from e

        if self.events is not None:
            self.events.publish(
                QUEUE_CHANGED,
                pending=counts[TaskStatus.PENDING.value],
                failed=counts[TaskStatus.FAILED.value],
            )
        return result

    def _read(self, work: Callable[[Session], T], name: str) -> T:
        with self._lock:
            try:
                return self.db.transactions.perform_transaction(work, name=f"queue_{name}")
            except TransactionError as e:
                raise QueueError(f"Offline queue {name} failed: {e}") from e

    @staticmethod
    def _row(session: Session, task_id: str) -> Optional[OfflineTask]:
        return session.scalars(
            select(OfflineTask).where(OfflineTask.task_id == task_id)
        ).first()

    @staticmethod
    def _status_counts(session: Session) -> Dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        rows = session.execute(
            select(OfflineTask.status, func.count()).group_by(OfflineTask.status)
        )
        for status, number in rows:
            counts[status] = number
        return counts

    def _readable(self, rows: List[OfflineTask]) -> List[QueueTask]:
        tasks = []
        for row in rows:
            try:
                tasks.append(QueueTask.from_row(row))
            except ValidationError as e:
                safe_logger(self.logger).log_warning(
                    "Skipping unreadable queue task", {"error": str(e)}
                )
        return tasks

    # -------------------------------------------------------------------------
    # Enqueue / dequeue
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        entity_type: EntityType,
        entity_id: str,
        operation: MutationOperation,
        payload: Optional[Dict[str, Any]] = None,
        priority: QueuePriority = QueuePriority.NORMAL,
        max_retries: Optional[int] = None,
        session: Optional[Session] = None,
    ) -> bool:
        """
        Record a mutation, superseding the entity's waiting task.

        Args:
            session: Transaction to join, usually the one of the edit

        Returns:
            False when the queue is full, True otherwise
        """
        entity_type = EntityType(entity_type)
        operation = MutationOperation(operation)
        payload = dict(payload or {})
        task = QueueTask(
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            priority=QueuePriority(priority),
            payload=payload,
            max_retries=self.max_retries if max_retries is None else max_retries,
        )

        def add(s: Session) -> Optional[List[str]]:
            superseded = s.scalars(
                select(OfflineTask).where(
                    OfflineTask.entity_type == entity_type.value,
                    OfflineTask.entity_id == entity_id,
                    OfflineTask.status.in_(_WAITING),
                )
            ).all()

            if not superseded:
                size = s.scalar(select(func.count()).select_from(OfflineTask))
                if size >= self.max_queue_size:
                    return None

            if any(row.operation == MutationOperation.CREATE.value for row in superseded):
                if operation == MutationOperation.UPDATE and not payload.get("server_id"):
                    task.operation = MutationOperation.CREATE
                elif operation == MutationOperation.DELETE:
                    payload["server_id"] = None

            for row in superseded:
                s.delete(row)
            s.add(task.to_row())
            return [row.task_id for row in superseded]

        superseded_ids = self._write(add, "enqueue", session)
        if superseded_ids is None:
            safe_logger(self.logger).log_warning(
                "Offline queue full, mutation not recorded",
                {
                    "entity_type": entity_type.value,
                    "entity_id": entity_id,
                    "max_queue_size": self.max_queue_size,
                },
            )
            return False

        safe_logger(self.logger).log_debug(
            "Task enqueued",
            {
                "task_id": task.id,
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "operation": task.operation.value,
                "priority": task.priority.value,
                "superseded": superseded_ids,
            },
        )
        return True

    def dequeue(self, exclude: Collection[str] = ()) -> Optional[QueueTask]:
        """
        Take the highest-priority, oldest pending task and mark it in flight.

        Args:
            exclude: Task ids to skip (already attempted this cycle)

        Returns:
            The task, or None when nothing is pending
        """

        def take(s: Session) -> Optional[QueueTask]:
            query = select(OfflineTask).where(OfflineTask.status == TaskStatus.PENDING.value)
            if exclude:
                query = query.where(OfflineTask.task_id.not_in(list(exclude)))
            for row in s.scalars(query.order_by(*_dequeue_order())):
                try:
                    task = QueueTask.from_row(row)
                except ValidationError as e:
                    safe_logger(self.logger).log_warning(
                        "Skipping unreadable queue task", {"error": str(e)}
                    )
                    continue
                row.status = TaskStatus.IN_FLIGHT.value
                task.status = TaskStatus.IN_FLIGHT
                return task
            return None

        return self._write(take, "dequeue")

    # -------------------------------------------------------------------------
    # Outcomes
    # -------------------------------------------------------------------------

    def mark_completed(self, task_id: str, session: Optional[Session] = None) -> bool:
        """
        Remove a successfully applied task permanently.

        Args:
            session: Transaction that applied the task; the removal
                commits with it
        """

        def remove(s: Session) -> bool:
            row = self._row(s, task_id)
            if row is None:
                return False
            s.delete(row)
            return True

        return self._write(remove, "mark_completed", session)

    def mark_failed(
        self, task_id: str, error: Any, retryable: bool = True
    ) -> Optional[QueueTask]:
        """
        Record a failed attempt.

        Args:
            task_id: Task that failed
            error: Exception or message
            retryable: False fails the task at once (validation errors)

        Returns:
            A copy of the updated task, or None if unknown
        """

        def fail(s: Session) -> Optional[QueueTask]:
            row = self._row(s, task_id)
            if row is None:
                return None
            row.retry_count += 1
            row.last_error = str(error)
            exhausted = row.retry_count > row.max_retries
            # A failed task waits for a manual retry whatever happens meanwhile
            if not retryable or exhausted or row.status == TaskStatus.FAILED.value:
                row.status = TaskStatus.FAILED.value
            else:
                row.status = TaskStatus.PENDING.value
            return QueueTask.from_row(row)

        updated = self._write(fail, "mark_failed")
        if updated is not None and updated.status == TaskStatus.FAILED:
            safe_logger(self.logger).log_warning(
                "Task failed permanently",
                {
                    "task_id": updated.id,
                    "entity_type": updated.entity_type.value,
                    "entity_id": updated.entity_id,
                    "retry_count": updated.retry_count,
                    "error": updated.last_error,
                },
            )
        return updated

    def release(self, task_id: str) -> bool:
        """Put an in-flight task back to pending without counting an attempt."""

        def put_back(s: Session) -> bool:
            row = self._row(s, task_id)
            if row is None or row.status != TaskStatus.IN_FLIGHT.value:
                return False
            row.status = TaskStatus.PENDING.value
            return True

        return self._write(put_back, "release")

    def record_failure(
        self,
        entity_type: EntityType,
        entity_id: str,
        error: Any,
        payload: Optional[Dict[str, Any]] = None,
        operation: MutationOperation = MutationOperation.UPDATE,
    ) -> Optional[QueueTask]:
        """
        Count a failed attempt against the entity's waiting task.

        Used when a whole stage fails (timeout) after touching the entity;
        a task is created for it first when none is waiting.
        """
        entity_type = EntityType(entity_type)
        with self._lock:
            waiting = [
                task
                for task in self.tasks_for(entity_type, entity_id)
                if task.status.value in _WAITING
            ]
            if not waiting:
                if not self.enqueue(entity_type, entity_id, operation, payload):
                    return None
                waiting = self.tasks_for(entity_type, entity_id)
            return self.mark_failed(waiting[-1].id, error)

    def retry_task(self, task_id: str) -> bool:
        """Manual retry: a failed task goes back to pending with a fresh budget."""

        def reset(s: Session) -> bool:
            row = self._row(s, task_id)
            if row is None or row.status != TaskStatus.FAILED.value:
                return False
            row.status = TaskStatus.PENDING.value
            row.retry_count = 0
            row.last_error = None
            return True

        if not self._write(reset, "retry_task"):
            return False
        safe_logger(self.logger).log_operation("task_retry", {"task_id": task_id})
        return True

    def retry_all_failed(self) -> int:
        failed = [task.id for task in self.tasks(TaskStatus.FAILED)]
        return sum(1 for task_id in failed if self.retry_task(task_id))

    def cancel_task(self, task_id: str) -> bool:
        def cancel(s: Session) -> bool:
            row = self._row(s, task_id)
            if row is None or row.status not in _WAITING:
                return False
            row.status = TaskStatus.CANCELLED.value
            return True

        return self._write(cancel, "cancel_task")

    def cleanup(self) -> int:
        """Drop failed and cancelled tasks. Returns how many were removed."""

        def drop(s: Session) -> int:
            rows = s.scalars(
                select(OfflineTask).where(
                    OfflineTask.status.in_(
                        (TaskStatus.FAILED.value, TaskStatus.CANCELLED.value)
                    )
                )
            ).all()
            for row in rows:
                s.delete(row)
            return len(rows)

        return self._write(drop, "cleanup")

    def requeue_in_flight(self) -> int:
        def recover(s: Session) -> int:
            rows = s.scalars(
                select(OfflineTask).where(OfflineTask.status == TaskStatus.IN_FLIGHT.value)
            ).all()
            for row in rows:
                row.status = TaskStatus.PENDING.value
            return len(rows)

        return self._write(recover, "requeue_in_flight")

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def get(self, task_id: str) -> Optional[QueueTask]:
        def load(s: Session) -> Optional[QueueTask]:
            row = self._row(s, task_id)
            return QueueTask.from_row(row) if row is not None else None

        return self._read(load, "get")

    def tasks(self, status: Optional[TaskStatus] = None) -> List[QueueTask]:
        """Tasks in dequeue order, optionally filtered by status."""

        def load(s: Session) -> List[QueueTask]:
            query = select(OfflineTask)
            if status is not None:
                query = query.where(OfflineTask.status == TaskStatus(status).value)
            return self._readable(s.scalars(query.order_by(*_dequeue_order())).all())

        return self._read(load, "tasks")

    def tasks_for(self, entity_type: EntityType, entity_id: str) -> List[QueueTask]:
        entity_type = EntityType(entity_type)

        def load(s: Session) -> List[QueueTask]:
            query = select(OfflineTask).where(
                OfflineTask.entity_type == entity_type.value,
                OfflineTask.entity_id == entity_id,
            )
            return self._readable(s.scalars(query.order_by(OfflineTask.seq)).all())

        return self._read(load, "tasks_for")

    @property
    def pending_count(self) -> int:
        return self.summary()[TaskStatus.PENDING.value]

    @property
    def failed_count(self) -> int:
        return self.summary()[TaskStatus.FAILED.value]

    def summary(self) -> Dict[str, int]:
        """Task count per status."""
        return self._read(self._status_counts, "summary")

    def __len__(self) -> int:
        return self._read(
            lambda s: s.scalar(select(func.count()).select_from(OfflineTask)), "len"
        )
