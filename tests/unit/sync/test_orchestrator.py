"""
Tests for SyncOrchestrator.

Cycles run against the in-memory FakeRemoteBackend from conftest; the
journal store is a real SQLite file under a temporary directory.
"""
import threading
from datetime import timedelta
from itertools import count

import pytest
from sqlalchemy.exc import OperationalError

from waypoint.core.config import SyncSettings
from waypoint.core.exceptions import (
    AuthorizationError,
    CycleAbortedError,
    NetworkError,
    NotAuthenticatedError,
    PayloadRejectedError,
    StorageModeError,
    SyncDisabledError,
    TransactionError,
    ValidationError,
)
from waypoint.database.managers import EntityManager
from waypoint.database.models import EntityType, Trip
from waypoint.sync.auth import StaticTokenProvider
from waypoint.sync.batching import BATCH_OPERATION
from waypoint.sync.connectivity import NetworkStatus
from waypoint.sync.engine import build_engine
from waypoint.sync.enums import (
    ConflictStrategy,
    ConflictType,
    MutationOperation,
    QueuePriority,
    StorageMode,
    SyncOutcome,
    SyncPhase,
    TaskStatus,
)
from waypoint.sync.events import CONFLICT_DETECTED, PROGRESS, STATE_CHANGED
from waypoint.sync.results import StageStatus

TRIP = EntityType.TRIP
MEMORY = EntityType.MEMORY


@pytest.fixture
def make_engine(data_paths, remote):
    """Factory: make_engine(status=None, token='test-token', **settings)."""
    engines = []

    def _make(status=None, token="test-token", **overrides):
        overrides.setdefault("base_url", "http://journal.test/api")
        engine = build_engine(
            data_paths,
            settings=SyncSettings(**overrides),
            auth_provider=StaticTokenProvider(token),
            backend=remote,
            status_provider=(lambda: status) if status is not None else None,
        )
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()


def _trip_count(db):
    with db.session_scope() as session:
        return session.query(Trip).count()


def _synced_trip(engine, create_entity, find_entity, name="Iceland"):
    """Create a trip locally and push it; returns (local_id, server_id)."""
    trip = create_entity(engine.db, TRIP, {"name": name})
    report = engine.orchestrator.synchronize()
    assert report.outcome == SyncOutcome.FULLY_SYNCED
    return trip.local_id, find_entity(engine.db, TRIP, trip.local_id).server_id


class TestGateAndPreconditions:
    """Tests for cycles that never start."""

    def test_offline_is_not_an_error(self, make_engine, remote):
        engine = make_engine(status=NetworkStatus.offline())

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.NOT_SYNCED
        assert report.reason == "offline"
        assert report.error is None
        assert engine.orchestrator.phase == SyncPhase.IDLE
        assert remote.calls == []

    @pytest.mark.parametrize(
        "overrides,error_type,reason",
        [
            ({"enabled": False}, SyncDisabledError, "disabled"),
            ({"storage_mode": StorageMode.LOCAL}, StorageModeError, "storage_mode"),
            ({"storage_mode": StorageMode.VENDOR_CLOUD}, StorageModeError, "storage_mode"),
        ],
    )
    def test_settings_preconditions(self, make_engine, remote, overrides, error_type, reason):
        report = make_engine(**overrides).orchestrator.synchronize()

        assert report.outcome == SyncOutcome.NOT_SYNCED
        assert isinstance(report.error, error_type)
        assert report.reason == reason
        assert remote.calls == []

    def test_missing_credential(self, make_engine, remote):
        engine = make_engine(token=None)
        report = engine.orchestrator.synchronize()

        assert isinstance(report.error, NotAuthenticatedError)
        assert report.reason == "not_authenticated"
        assert engine.orchestrator.phase == SyncPhase.IDLE
        assert remote.calls == []


class TestFullCycle:
    """Tests for push, pull and idempotence."""

    def test_first_cycle_pushes_local_records(self, engine, remote, create_entity, find_entity):
        trip = create_entity(engine.db, TRIP, {"name": "Iceland"})

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.FULLY_SYNCED
        assert report.progress == 1.0
        assert report.created == 1
        stored = find_entity(engine.db, TRIP, trip.local_id)
        assert stored.server_id in remote.store[TRIP]
        assert remote.store[TRIP][stored.server_id]["data"]["name"] == "Iceland"
        assert engine.state.last_synced_at is not None

    def test_stages_follow_dependency_order(self, orchestrator, remote):
        orchestrator.synchronize()
        listed = [call[1] for call in remote.calls_for("list_all")]
        assert listed == orchestrator.resolver.resolve_sync_order()

    def test_parent_pushed_before_child(self, engine, remote):
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            engine.db.manager(MEMORY).create({"title": "Ice cave", "trip": trip})

        engine.orchestrator.synchronize()

        [trip_server_id] = remote.store[TRIP]
        [memory] = remote.store[MEMORY].values()
        assert memory["data"]["trip_id"] == trip_server_id

    def test_second_cycle_creates_nothing(self, engine, remote, create_entity, find_entity):
        """Server ids make repeated cycles idempotent."""
        _synced_trip(engine, create_entity, find_entity)

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.FULLY_SYNCED
        assert report.created == 0
        assert report.updated == 0
        assert len(remote.calls_for("create")) == 1
        assert len(remote.store[TRIP]) == 1

    def test_remote_records_are_applied(self, engine, remote, find_entity):
        trip_id = remote.seed(TRIP, {"name": "Shared trip", "local_id": "other-device"})
        remote.seed(MEMORY, {"title": "Fjord", "trip_id": trip_id, "tag_ids": []})

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.FULLY_SYNCED
        assert report.stages[TRIP].applied == 1
        assert report.stages[MEMORY].applied == 1
        trip = find_entity(engine.db, TRIP, "other-device")
        assert trip.server_id == trip_id
        assert trip.name == "Shared trip"
        assert remote.calls_for("create") == []

    def test_lost_create_response_is_adopted(self, engine, remote, create_entity, find_entity):
        """A remote record carrying our local id is linked, not duplicated."""
        trip = create_entity(engine.db, TRIP, {"name": "Iceland"})
        server_id = remote.seed(TRIP, {"name": "Iceland", "local_id": trip.local_id})

        engine.orchestrator.synchronize()

        assert find_entity(engine.db, TRIP, trip.local_id).server_id == server_id
        assert remote.calls_for("create") == []
        assert len(remote.store[TRIP]) == 1

    def test_status(self, engine, create_entity, find_entity):
        _synced_trip(engine, create_entity, find_entity)
        status = engine.orchestrator.status()

        assert status["phase"] == "idle"
        assert status["stale"] is False
        assert status["last_synced_at"] is not None
        assert status["pending_conflicts"] == 0
        assert status["conflict_strategy"] == "last_write_wins"
        assert status["queue"]["pending"] == 0


class TestConflicts:
    """Tests for conflict handling inside a stage."""

    def test_newer_remote_wins(self, engine, remote, create_entity, find_entity):
        local_id, server_id = _synced_trip(engine, create_entity, find_entity)
        later = remote.next_timestamp() + timedelta(days=1)
        remote.edit(TRIP, server_id, {"name": "Renamed remotely"}, later)

        report = engine.orchestrator.synchronize()

        assert report.stages[TRIP].conflicts == 1
        assert report.stages[TRIP].applied == 1
        assert find_entity(engine.db, TRIP, local_id).name == "Renamed remotely"
        assert remote.calls_for("update") == []

    def test_newer_local_edit_is_pushed_as_update(self, engine, remote, create_entity, find_entity):
        local_id, server_id = _synced_trip(engine, create_entity, find_entity)
        with engine.db.session_scope():
            manager = engine.db.manager(TRIP)
            manager.update(manager.get_by_local_id(local_id), {"name": "Iceland & Faroe"})

        report = engine.orchestrator.synchronize()

        assert report.updated == 1
        assert report.created == 0
        assert remote.store[TRIP][server_id]["data"]["name"] == "Iceland & Faroe"
        assert len(remote.calls_for("create")) == 1

    def test_local_delete_is_pushed(self, engine, remote, create_entity, find_entity):
        local_id, server_id = _synced_trip(engine, create_entity, find_entity)
        with engine.db.session_scope():
            manager = engine.db.manager(TRIP)
            manager.delete(manager.get_by_local_id(local_id))

        report = engine.orchestrator.synchronize()

        assert report.stages[TRIP].deleted == 1
        assert server_id not in remote.store[TRIP]
        assert _trip_count(engine.db) == 0

    def test_manual_strategy_parks_conflict(self, engine, remote, create_entity, find_entity):
        local_id, server_id = _synced_trip(engine, create_entity, find_entity)
        engine.conflicts.set_strategy(ConflictStrategy.MANUAL)
        later = remote.next_timestamp() + timedelta(days=1)
        remote.edit(TRIP, server_id, {"name": "Remote"}, later)

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.PARTIALLY_SYNCED
        assert report.conflicts == 1
        assert find_entity(engine.db, TRIP, local_id).name == "Iceland"
        assert engine.orchestrator.status()["pending_conflicts"] == 1

    def test_manual_resolution_takes_remote(self, engine, remote, create_entity, find_entity):
        local_id, server_id = _synced_trip(engine, create_entity, find_entity)
        engine.conflicts.set_strategy(ConflictStrategy.MANUAL)
        later = remote.next_timestamp() + timedelta(days=1)
        remote.edit(TRIP, server_id, {"name": "Remote"}, later)
        engine.orchestrator.synchronize()

        winner = engine.orchestrator.apply_manual_resolution(server_id, use_local=False)

        assert winner.fields["name"] == "Remote"
        assert find_entity(engine.db, TRIP, local_id).name == "Remote"
        assert engine.orchestrator.synchronize().outcome == SyncOutcome.FULLY_SYNCED

    def test_manual_resolution_keeps_local(self, engine, remote, create_entity, find_entity):
        """The local choice is uploaded by the next cycle."""
        local_id, server_id = _synced_trip(engine, create_entity, find_entity)
        engine.conflicts.set_strategy(ConflictStrategy.MANUAL)
        later = remote.next_timestamp() + timedelta(days=1)
        remote.edit(TRIP, server_id, {"name": "Remote"}, later)
        engine.orchestrator.synchronize()

        engine.orchestrator.apply_manual_resolution(server_id, use_local=True)
        [task] = engine.queue.tasks()
        assert task.priority == QueuePriority.HIGH

        report = engine.orchestrator.synchronize()

        assert report.drained == 1
        assert report.outcome == SyncOutcome.FULLY_SYNCED
        assert remote.store[TRIP][server_id]["data"]["name"] == "Iceland"

    def test_unknown_manual_resolution(self, orchestrator):
        assert orchestrator.apply_manual_resolution("404", use_local=True) is None


class TestQueueDrain:
    """Tests for replaying offline mutations."""

    def test_recorded_change_is_drained_once(self, engine, remote):
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            assert engine.orchestrator.record_local_change(trip, MutationOperation.CREATE)

        report = engine.orchestrator.synchronize()

        assert report.drained == 1
        assert report.outcome == SyncOutcome.FULLY_SYNCED
        assert len(remote.calls_for("create", TRIP)) == 1
        assert len(engine.queue) == 0

    def test_detached_record_is_refused(self, engine, create_entity):
        trip = create_entity(engine.db, TRIP, {"name": "Iceland"})
        with pytest.raises(ValidationError, match="detached"):
            engine.orchestrator.record_local_change(trip, MutationOperation.UPDATE)

    def test_transient_failure_aborts_cycle(self, engine, remote):
        """Remote state is not pulled while queued work is still pending."""
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            engine.orchestrator.record_local_change(trip, MutationOperation.CREATE)
        remote.errors[("create", TRIP)] = NetworkError("connection reset")

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.NOT_SYNCED
        assert isinstance(report.error, CycleAbortedError)
        assert report.error.category == "network"
        assert remote.calls_for("list_all") == []
        [task] = engine.queue.tasks()
        assert task.status == TaskStatus.PENDING
        assert task.retry_count == 1
        assert engine.orchestrator.phase == SyncPhase.IDLE

    def test_rejected_task_fails_without_stopping_cycle(self, engine, remote):
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            engine.orchestrator.record_local_change(trip, MutationOperation.CREATE)
        remote.errors[("create", TRIP)] = PayloadRejectedError("name taken", 422)

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.PARTIALLY_SYNCED
        assert report.failed_tasks == 1
        assert len(report.stages) == len(EntityType)
        assert report.stages[TRIP].record_failures

    def test_retry_cycle_gives_failed_tasks_a_new_budget(self, engine, remote):
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            engine.orchestrator.record_local_change(trip, MutationOperation.CREATE)
        remote.errors[("create", TRIP)] = PayloadRejectedError("name taken", 422)
        engine.orchestrator.synchronize()

        del remote.errors[("create", TRIP)]
        report = engine.orchestrator.retry_cycle()

        assert report.drained == 1
        assert report.outcome == SyncOutcome.FULLY_SYNCED

    def test_retry_failed_task(self, engine, remote):
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            engine.orchestrator.record_local_change(trip, MutationOperation.CREATE)
        remote.errors[("create", TRIP)] = PayloadRejectedError("name taken", 422)
        engine.orchestrator.synchronize()
        [task] = engine.queue.tasks(TaskStatus.FAILED)

        assert engine.orchestrator.retry_failed_task(task.id)
        assert engine.queue.get(task.id).status == TaskStatus.PENDING


class TestFailures:
    """Tests for stage and cycle level failures."""

    def test_stage_rollback_is_atomic(self, engine, remote, monkeypatch):
        """A store failure mid-batch leaves none of the batch behind."""
        for name in ("A", "B", "C"):
            remote.seed(TRIP, {"name": name})

        original = EntityManager.apply_snapshot
        calls = count(1)

        def flaky(self, snapshot, record=None):
            if next(calls) == 2:
                raise OperationalError("INSERT INTO trips", {}, Exception("disk I/O error"))
            return original(self, snapshot, record)

        monkeypatch.setattr(EntityManager, "apply_snapshot", flaky)

        report = engine.orchestrator.synchronize()

        assert report.stages[TRIP].status == StageStatus.FAILED
        assert isinstance(report.stages[TRIP].error, TransactionError)
        assert _trip_count(engine.db) == 0
        for dependent in (MEMORY, EntityType.MEDIA_ITEM, EntityType.GPX_TRACK):
            assert report.stages[dependent].status == StageStatus.SKIPPED
        assert report.stages[EntityType.TAG].status == StageStatus.COMPLETED
        assert report.outcome == SyncOutcome.PARTIALLY_SYNCED
        assert engine.state.last_synced_at is None

    def test_bad_remote_record_spares_siblings(self, engine, remote):
        trip_id = remote.seed(TRIP, {"name": "Iceland"})
        remote.seed(MEMORY, {"title": "Good", "trip_id": trip_id})
        remote.seed(MEMORY, {"title": "Orphan", "trip_id": "999"})

        report = engine.orchestrator.synchronize()

        stage = report.stages[MEMORY]
        assert stage.status == StageStatus.COMPLETED
        assert stage.applied == 1
        assert len(stage.record_failures) == 1
        assert report.outcome == SyncOutcome.PARTIALLY_SYNCED

    def test_refused_credential_stops_cycle(self, engine, remote):
        remote.errors[("list_all", EntityType.TAG_CATEGORY)] = AuthorizationError(
            "refused", status_code=401
        )

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.NOT_SYNCED
        assert isinstance(report.error, AuthorizationError)
        assert len(remote.calls_for("list_all")) == 1
        assert engine.orchestrator.phase == SyncPhase.IDLE

    def test_network_failure_skips_dependents_only(self, engine, remote):
        remote.errors[("list_all", TRIP)] = NetworkError("timed out")

        report = engine.orchestrator.synchronize()

        assert report.stages[TRIP].status == StageStatus.FAILED
        assert report.stages[MEMORY].status == StageStatus.SKIPPED
        assert report.stages[EntityType.BUCKET_LIST_ITEM].status == StageStatus.COMPLETED
        assert report.progress < 1.0

    def test_telemetry_failure_is_swallowed(self, engine, monkeypatch):
        def broken(sample):
            raise RuntimeError("buffer gone")

        monkeypatch.setattr(engine.telemetry, "record", broken)
        assert engine.orchestrator.synchronize().outcome == SyncOutcome.FULLY_SYNCED

    def test_telemetry_samples(self, engine):
        engine.orchestrator.synchronize()
        assert len(engine.telemetry.samples("sync_cycle")) == 1
        assert len(engine.telemetry.samples("sync_trip")) == 1


class TestSingleFlight:
    """Tests for at most one cycle at a time."""

    def test_reentrant_call_is_skipped(self, engine):
        nested = []

        def on_state(topic, payload):
            if payload["phase"] == SyncPhase.SYNCING:
                nested.append(engine.orchestrator.synchronize())

        engine.events.subscribe(STATE_CHANGED, on_state)

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.FULLY_SYNCED
        assert [r.outcome for r in nested] == [SyncOutcome.SKIPPED]
        assert nested[0].reason == "sync_in_progress"

    def test_concurrent_call_is_skipped(self, engine, remote):
        remote.hold = threading.Event()
        results = []
        worker = threading.Thread(
            target=lambda: results.append(engine.orchestrator.synchronize())
        )
        worker.start()
        try:
            assert remote.entered.wait(timeout=5)
            assert engine.orchestrator.is_syncing

            second = engine.orchestrator.synchronize()

            assert second.outcome == SyncOutcome.SKIPPED
        finally:
            remote.hold.set()
            worker.join(timeout=10)

        assert results[0].outcome == SyncOutcome.FULLY_SYNCED
        assert remote.max_active == 1


class TestProgressAndCancel:
    def test_progress_never_decreases(self, engine, create_entity):
        create_entity(engine.db, TRIP, {"name": "Iceland"})
        seen = []
        engine.events.subscribe(PROGRESS, lambda topic, payload: seen.append(payload))

        engine.orchestrator.synchronize()

        values = [p["progress"] for p in seen]
        assert values == sorted(values)
        assert values[-1] == 1.0
        assert seen[-1]["stage"] == "done"
        assert all(v < 1.0 for v in values[:-1])

    def test_cancel_stops_at_next_checkpoint(self, engine, remote):
        def on_progress(topic, payload):
            if payload["stage"] == "queue":
                engine.orchestrator.cancel()

        engine.events.subscribe(PROGRESS, on_progress)

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.CANCELLED
        assert remote.calls_for("list_all") == []
        assert engine.orchestrator.phase == SyncPhase.IDLE
        assert engine.state.last_synced_at is None

    def test_cancel_when_idle_is_ignored(self, engine):
        engine.orchestrator.cancel()
        assert engine.orchestrator.synchronize().outcome == SyncOutcome.FULLY_SYNCED


class TestUnexpectedErrors:
    """Tests for failures outside the sync error hierarchy."""

    def test_cycle_returns_to_idle(self, engine, remote):
        phases = []
        engine.events.subscribe(
            STATE_CHANGED, lambda topic, payload: phases.append(payload["phase"])
        )
        remote.errors[("list_all", TRIP)] = RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            engine.orchestrator.synchronize()

        assert engine.orchestrator.phase == SyncPhase.IDLE
        assert phases == [SyncPhase.SYNCING, SyncPhase.ERROR, SyncPhase.IDLE]

        del remote.errors[("list_all", TRIP)]
        assert engine.orchestrator.synchronize().outcome == SyncOutcome.FULLY_SYNCED

    def test_drained_task_is_handed_back(self, engine, remote):
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            engine.orchestrator.record_local_change(trip, MutationOperation.CREATE)
        remote.errors[("create", TRIP)] = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            engine.orchestrator.synchronize()

        [task] = engine.queue.tasks()
        assert task.status == TaskStatus.PENDING
        assert task.retry_count == 0
        assert engine.orchestrator.phase == SyncPhase.IDLE


class TestStageTimeouts:
    """Tests for stage failures counted against the touched record's task."""

    def test_timeout_creates_task_with_one_attempt(self, engine, remote, create_entity):
        trip = create_entity(engine.db, TRIP, {"name": "Iceland"})
        remote.errors[("create", TRIP)] = NetworkError("timed out")

        report = engine.orchestrator.synchronize()

        assert report.stages[TRIP].status == StageStatus.FAILED
        [task] = engine.queue.tasks_for(TRIP, trip.local_id)
        assert task.retry_count == 1
        assert task.status == TaskStatus.PENDING
        assert "timed out" in task.last_error
        assert report.pending_tasks == 1

    def test_timeout_counts_against_waiting_task(self, engine, remote):
        """A task already waiting for the record is charged, not duplicated."""
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            engine.orchestrator.record_local_change(trip, MutationOperation.CREATE)
            local_id = trip.local_id
        [waiting] = engine.queue.tasks()
        engine.queue.mark_failed(waiting.id, "rejected", retryable=False)
        remote.errors[("create", TRIP)] = NetworkError("timed out")

        engine.orchestrator.synchronize()

        [task] = engine.queue.tasks_for(TRIP, local_id)
        assert task.id == waiting.id
        assert task.retry_count == 2
        assert task.status == TaskStatus.FAILED
        assert "timed out" in task.last_error


class TestStoreAtomicity:
    """Tests for queue and conflict bookkeeping sharing the record transactions."""

    def test_rolled_back_replay_keeps_task(self, engine, remote, monkeypatch):
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            engine.orchestrator.record_local_change(trip, MutationOperation.CREATE)

        def broken_touch(self, record, updated_at):
            raise OperationalError("UPDATE trips", {}, Exception("disk I/O error"))

        monkeypatch.setattr(EntityManager, "touch", broken_touch)

        report = engine.orchestrator.synchronize()

        assert isinstance(report.error, TransactionError)
        [task] = engine.queue.tasks()
        assert task.retry_count == 1
        assert report.drained == 0

    def test_parked_conflict_discarded_with_failed_stage(
        self, engine, remote, create_entity, find_entity, monkeypatch
    ):
        local_id, server_id = _synced_trip(engine, create_entity, find_entity)
        remote.seed(TRIP, {"name": "Second"})
        remote.edit(TRIP, server_id, {"name": "Remote"}, remote.next_timestamp())
        engine.conflicts.set_strategy(ConflictStrategy.MANUAL)

        original = EntityManager.apply_snapshot

        def broken_apply(self, snapshot, record=None):
            raise OperationalError("INSERT INTO trips", {}, Exception("disk I/O error"))

        monkeypatch.setattr(EntityManager, "apply_snapshot", broken_apply)
        report = engine.orchestrator.synchronize()

        assert report.stages[TRIP].status == StageStatus.FAILED
        assert engine.conflicts.pending_conflicts == []
        assert engine.state.pending_conflicts == []

        monkeypatch.setattr(EntityManager, "apply_snapshot", original)
        engine.orchestrator.synchronize()
        assert engine.conflicts.has_pending(TRIP, server_id)


class TestRemoteMemberships:
    def test_unknown_member_keeps_record_unapplied(self, engine, remote):
        """A memory whose tag could not be applied is not stored without it."""
        trip_id = remote.seed(TRIP, {"name": "Iceland"})
        tag_id = remote.seed(EntityType.TAG, {"name": "volcano", "category_id": "999"})
        memory_id = remote.seed(
            MEMORY, {"title": "Geysir", "trip_id": trip_id, "tag_ids": [tag_id]}
        )

        report = engine.orchestrator.synchronize()

        assert report.stages[EntityType.TAG].record_failures
        stage = report.stages[MEMORY]
        assert stage.applied == 0
        assert [f.server_id for f in stage.record_failures] == [memory_id]

        engine.orchestrator.synchronize()

        assert remote.calls_for("update", MEMORY) == []
        assert remote.store[MEMORY][memory_id]["data"]["tag_ids"] == [tag_id]


class TestLostCreateConflict:
    def test_adopted_record_reports_create_conflict(self, engine, remote, create_entity):
        trip = create_entity(engine.db, TRIP, {"name": "Iceland"})
        remote.seed(TRIP, {"name": "Iceland", "local_id": trip.local_id})
        detected = []
        engine.events.subscribe(
            CONFLICT_DETECTED, lambda topic, payload: detected.append(payload["conflict"])
        )

        engine.orchestrator.synchronize()

        assert [c.conflict_type for c in detected] == [ConflictType.CREATE]


class TestBatching:
    """Tests for pushes split into advisor-sized batches."""

    @pytest.fixture
    def small_batches(self, engine):
        engine.batching.update_network(NetworkStatus())
        return engine.batching.with_limits(memories=2)

    def _trip_with_memories(self, engine, count_):
        with engine.db.session_scope():
            trip = engine.db.manager(TRIP).create({"name": "Iceland"})
            for n in range(count_):
                engine.db.manager(MEMORY).create({"title": f"Day {n}", "trip": trip})

    def test_pushes_are_batched(self, engine, remote, small_batches):
        self._trip_with_memories(engine, 5)

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.FULLY_SYNCED
        assert report.stages[MEMORY].created == 5
        assert report.stages[MEMORY].batches == 3
        assert report.stages[TRIP].batches == 1
        samples = engine.telemetry.samples(BATCH_OPERATION)
        assert [s.entity_count for s in samples] == [1, 2, 2, 1]
        assert all(s.success for s in samples)

    def test_byte_cap_closes_batch(self, engine, remote, monkeypatch):
        engine.batching.update_network(NetworkStatus())
        engine.batching.with_limits(max_bytes=100)
        original = remote.create

        def create(entity_type, payload):
            remote.bytes_transferred += 150
            return original(entity_type, payload)

        monkeypatch.setattr(remote, "create", create)
        with engine.db.session_scope():
            for name in ("A", "B", "C"):
                engine.db.manager(TRIP).create({"name": name})

        report = engine.orchestrator.synchronize()

        assert report.stages[TRIP].created == 3
        assert report.stages[TRIP].batches == 3

    def test_cancel_between_batches(self, engine, remote, monkeypatch, small_batches):
        """Batches already sent stay committed when a cycle is cancelled."""
        self._trip_with_memories(engine, 5)
        original = remote.create

        def create(entity_type, payload):
            result = original(entity_type, payload)
            if entity_type == MEMORY and len(remote.calls_for("create", MEMORY)) == 2:
                engine.orchestrator.cancel()
            return result

        monkeypatch.setattr(remote, "create", create)

        report = engine.orchestrator.synchronize()

        assert report.outcome == SyncOutcome.CANCELLED
        assert len(remote.store[MEMORY]) == 2
        assert engine.orchestrator.phase == SyncPhase.IDLE
        with engine.db.session_scope():
            assert len(engine.db.manager(MEMORY).list_unsynced()) == 3

    def test_failed_record_marks_batch_unsuccessful(self, engine, remote, small_batches):
        self._trip_with_memories(engine, 1)
        remote.errors[("create", MEMORY)] = PayloadRejectedError("too long", 422)

        engine.orchestrator.synchronize()

        [memory_batch] = [
            s for s in engine.telemetry.samples(BATCH_OPERATION) if not s.success
        ]
        assert memory_batch.entity_count == 1
