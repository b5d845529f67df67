"""Tests for conflict detection and resolution."""
from datetime import datetime, timedelta, timezone

import pytest

from waypoint.core.exceptions import ValidationError
from waypoint.database.models import EntityType
from waypoint.database.snapshot import EntitySnapshot
from waypoint.sync.conflict import ConflictRecord, ConflictResolver
from waypoint.sync.enums import ConflictStrategy, ConflictType
from waypoint.sync.events import CONFLICT_PENDING, CONFLICT_RESOLVED, EventBus
from waypoint.sync.state import SyncStateStore

T0 = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
LATER = T0 + timedelta(minutes=5)


def _trip(updated_at, name="Iceland", server_id="7", entity_type=EntityType.TRIP, **kw):
    return EntitySnapshot.build(
        entity_type,
        updated_at=updated_at,
        local_id="loc-7",
        server_id=server_id,
        fields={"name": name},
        **kw,
    )


def _conflict(local_at, remote_at, entity_id="7", entity_type=EntityType.TRIP):
    local = _trip(local_at, "Local", entity_id, entity_type)
    remote = _trip(remote_at, "Remote", entity_id, entity_type)
    return ConflictRecord(
        entity_type=entity_type,
        entity_id=entity_id,
        conflict_type=ConflictType.UPDATE,
        local_version=local_at,
        remote_version=remote_at,
        local_data=local,
        remote_data=remote,
    )


class TestDetectConflict:
    """Tests for timestamp-driven detection."""

    def test_equal_timestamps_never_conflict(self):
        resolver = ConflictResolver()
        assert resolver.detect_conflict(_trip(T0, "A"), _trip(T0, "B")) is None

    def test_differing_timestamps_conflict_without_field_changes(self):
        """Identical content still conflicts when updated_at differs."""
        conflict = ConflictResolver().detect_conflict(_trip(T0), _trip(LATER))

        assert conflict is not None
        assert conflict.conflict_type == ConflictType.UPDATE
        assert conflict.local_version == T0
        assert conflict.remote_version == LATER
        assert conflict.differing_fields == ()

    def test_differing_fields_are_recorded(self):
        conflict = ConflictResolver().detect_conflict(_trip(T0, "A"), _trip(LATER, "B"))
        assert conflict.differing_fields == ("name",)

    def test_unpushed_local_never_conflicts(self):
        assert ConflictResolver().detect_conflict(
            _trip(T0, server_id=None), _trip(LATER)
        ) is None

    def test_different_entities_never_conflict(self):
        assert ConflictResolver().detect_conflict(
            _trip(T0, server_id="7"), _trip(LATER, server_id="8")
        ) is None

    def test_deleted_side_makes_delete_conflict(self):
        conflict = ConflictResolver().detect_conflict(
            _trip(T0, deleted=True), _trip(LATER)
        )
        assert conflict.conflict_type == ConflictType.DELETE

    def test_adopted_record_makes_create_conflict(self):
        """A local record matched to a create whose response was lost."""
        conflict = ConflictResolver().detect_conflict(
            _trip(T0, "A"), _trip(LATER, "B"), adopted=True
        )
        assert conflict.conflict_type == ConflictType.CREATE

    def test_deletion_outranks_adoption(self):
        conflict = ConflictResolver().detect_conflict(
            _trip(T0, deleted=True), _trip(LATER), adopted=True
        )
        assert conflict.conflict_type == ConflictType.DELETE


class TestResolveConflict:
    """Tests for automatic strategies."""

    def test_last_write_wins_takes_newer_remote(self):
        winner = ConflictResolver().resolve_conflict(_conflict(T0, LATER))
        assert winner.fields["name"] == "Remote"

    def test_last_write_wins_keeps_newer_local(self):
        winner = ConflictResolver().resolve_conflict(_conflict(LATER, T0))
        assert winner.fields["name"] == "Local"

    def test_last_write_wins_tie_keeps_local(self):
        winner = ConflictResolver().resolve_conflict(_conflict(T0, T0))
        assert winner.fields["name"] == "Local"

    @pytest.mark.parametrize(
        "strategy,expected",
        [(ConflictStrategy.LOCAL_WINS, "Local"), (ConflictStrategy.REMOTE_WINS, "Remote")],
    )
    def test_fixed_strategies_ignore_timestamps(self, strategy, expected):
        resolver = ConflictResolver(strategy)
        assert resolver.resolve_conflict(_conflict(T0, LATER)).fields["name"] == expected
        assert resolver.resolve_conflict(_conflict(LATER, T0)).fields["name"] == expected

    def test_per_call_strategy_override(self):
        resolver = ConflictResolver(ConflictStrategy.LOCAL_WINS)
        winner = resolver.resolve_conflict(_conflict(T0, LATER), ConflictStrategy.REMOTE_WINS)
        assert winner.fields["name"] == "Remote"
        assert resolver.pending_conflicts == []

    def test_resolution_event(self):
        events = EventBus()
        received = []
        events.subscribe(CONFLICT_RESOLVED, lambda topic, payload: received.append(payload))

        ConflictResolver(events=events).resolve_conflict(_conflict(T0, LATER))

        assert received[0]["winner"] == "remote"
        assert received[0]["entity_id"] == "7"


class TestManualStrategy:
    """Tests for parking and manual decisions."""

    def test_parks_and_keeps_local(self):
        events = EventBus()
        parked = []
        events.subscribe(CONFLICT_PENDING, lambda topic, payload: parked.append(payload))
        resolver = ConflictResolver(ConflictStrategy.MANUAL, events=events)

        winner = resolver.resolve_conflict(_conflict(T0, LATER))

        assert winner.fields["name"] == "Local"
        assert len(resolver.pending_conflicts) == 1
        assert resolver.has_pending(EntityType.TRIP, "7")
        assert len(parked) == 1

    def test_newer_conflict_replaces_pending_one(self):
        """One pending entry per entity; the latest wins."""
        resolver = ConflictResolver(ConflictStrategy.MANUAL)
        resolver.resolve_conflict(_conflict(T0, LATER))
        newest = _conflict(T0, LATER + timedelta(hours=1))
        resolver.resolve_conflict(newest)

        assert resolver.pending_conflicts == [newest]

    def test_same_id_of_other_type_is_separate(self):
        resolver = ConflictResolver(ConflictStrategy.MANUAL)
        resolver.resolve_conflict(_conflict(T0, LATER, entity_type=EntityType.TRIP))
        resolver.resolve_conflict(_conflict(T0, LATER, entity_type=EntityType.TAG))
        assert len(resolver.pending_conflicts) == 2

    def test_resolve_manually(self):
        resolver = ConflictResolver(ConflictStrategy.MANUAL)
        resolver.resolve_conflict(_conflict(T0, LATER))

        winner = resolver.resolve_manually("7", use_local=False)

        assert winner.fields["name"] == "Remote"
        assert resolver.pending_conflicts == []

    def test_resolve_unknown_returns_none(self):
        assert ConflictResolver().resolve_manually("404", use_local=True) is None

    def test_ambiguous_id_needs_entity_type(self):
        resolver = ConflictResolver(ConflictStrategy.MANUAL)
        resolver.resolve_conflict(_conflict(T0, LATER, entity_type=EntityType.TRIP))
        resolver.resolve_conflict(_conflict(T0, LATER, entity_type=EntityType.TAG))

        with pytest.raises(ValidationError, match="several entity types"):
            resolver.resolve_manually("7", use_local=True)

        winner = resolver.resolve_manually("7", use_local=True, entity_type=EntityType.TAG)
        assert winner.entity_type == EntityType.TAG
        assert resolver.has_pending(EntityType.TRIP, "7")


class TestPersistence:
    """Tests for the strategy and pending list surviving restarts."""

    def test_pending_conflicts_survive_restart(self, test_db):
        ConflictResolver(ConflictStrategy.MANUAL, SyncStateStore(test_db)).resolve_conflict(
            _conflict(T0, LATER)
        )

        restored = ConflictResolver(ConflictStrategy.MANUAL, SyncStateStore(test_db))

        [conflict] = restored.pending_conflicts
        assert conflict.entity_id == "7"
        assert conflict.remote_data.fields["name"] == "Remote"
        assert conflict.remote_version == LATER

    def test_stored_strategy_overrides_default(self, test_db):
        ConflictResolver(state_store=SyncStateStore(test_db)).set_strategy(
            ConflictStrategy.REMOTE_WINS
        )

        restored = ConflictResolver(ConflictStrategy.LOCAL_WINS, SyncStateStore(test_db))
        assert restored.strategy == ConflictStrategy.REMOTE_WINS

    def test_unreadable_pending_entry_is_dropped(self, test_db):
        store = SyncStateStore(test_db)
        store.save_pending_conflicts([{"entity_type": "trip"}])
        assert ConflictResolver(state_store=store).pending_conflicts == []

    def test_parked_conflict_rolls_back_with_transaction(self, test_db):
        store = SyncStateStore(test_db)
        resolver = ConflictResolver(ConflictStrategy.MANUAL, store)

        with pytest.raises(RuntimeError):
            with test_db.session_scope() as session:
                resolver.resolve_conflict(_conflict(T0, LATER), session=session)
                raise RuntimeError("stage failed")

        assert store.pending_conflicts == []
        resolver.reload()
        assert resolver.pending_conflicts == []

    def test_record_dict_form(self):
        conflict = _conflict(T0, LATER)
        assert ConflictRecord.from_dict(conflict.to_dict()) == conflict
