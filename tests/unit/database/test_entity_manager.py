"""Tests for the schema-driven EntityManager."""
from datetime import datetime, timedelta, timezone

import pytest

from waypoint.core.exceptions import IdentityConflictError, ValidationError
from waypoint.database.models import EntityType, Memory, Tag
from waypoint.database.snapshot import EntitySnapshot

T0 = datetime(2020, 5, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def trips(test_db, db_session):
    return test_db.manager(EntityType.TRIP)


@pytest.fixture
def memories(test_db, db_session):
    return test_db.manager(EntityType.MEMORY)


@pytest.fixture
def tags(test_db, db_session):
    return test_db.manager(EntityType.TAG)


class TestHostCrud:
    """Tests for user-side create, update and delete."""

    def test_create_assigns_local_id_and_timestamps(self, trips):
        trip = trips.create({"name": "Iceland", "start_date": "2026-05-01T00:00:00Z"})

        assert trip.id is not None
        assert trip.local_id
        assert trip.server_id is None
        assert trip.created_at == trip.updated_at
        assert trip.start_date == datetime(2026, 5, 1, tzinfo=timezone.utc)
        assert trip.is_active is False

    def test_create_links_parents_and_members(self, trips, memories, tags):
        trip = trips.create({"name": "Iceland"})
        tag = tags.create({"name": "glacier"})
        memory = memories.create({"title": "Ice cave", "trip": trip, "tags": [tag]})

        assert memory.trip is trip
        assert memory.tags == [tag]

    def test_create_rejects_unknown_field(self, trips):
        with pytest.raises(ValidationError, match="Unknown field 'colour'"):
            trips.create({"name": "Iceland", "colour": "blue"})

    def test_update_bumps_updated_at(self, trips):
        trip = trips.create({"name": "Iceland"})
        trips.touch(trip, T0)

        trips.update(trip, {"description": "Ring road"})

        assert trip.description == "Ring road"
        assert trip.updated_at > T0

    def test_delete_is_soft(self, trips):
        trip = trips.create({"name": "Iceland"})
        trips.delete(trip, deleted_by="user")

        assert trip.is_deleted
        assert trips.list_all() == []
        assert trips.list_all(include_deleted=True) == [trip]

    def test_purge_removes_row(self, trips):
        trip = trips.create({"name": "Iceland"})
        local_id = trip.local_id
        trips.purge(trip)
        assert trips.get_by_local_id(local_id) is None


class TestLookups:
    """Tests for identity lookups."""

    def test_by_local_and_server_id(self, test_db, trips):
        trip = trips.create({"name": "Iceland"})
        test_db.identity.assign_server_id(trip, "t1")

        assert trips.get_by_local_id(trip.local_id) is trip
        assert trips.get_by_server_id("t1") is trip
        assert trips.get_by_server_id(None) is None
        assert trips.get_by_local_id("") is None

    def test_list_unsynced(self, test_db, trips):
        """Only live, never-pushed records are listed."""
        pushed = trips.create({"name": "Pushed"})
        test_db.identity.assign_server_id(pushed, "t1")
        deleted = trips.create({"name": "Deleted"})
        trips.delete(deleted)
        fresh = trips.create({"name": "Fresh"})

        assert trips.list_unsynced() == [fresh]

    def test_unsynced_parents(self, test_db, trips, memories, tags):
        trip = trips.create({"name": "Iceland"})
        synced_tag = tags.create({"name": "synced"})
        test_db.identity.assign_server_id(synced_tag, "g1")
        new_tag = tags.create({"name": "new"})
        memory = memories.create(
            {"title": "Ice cave", "trip": trip, "tags": [synced_tag, new_tag]}
        )

        pending = memories.unsynced_parents(memory)

        assert (EntityType.TRIP, trip) in pending
        assert (EntityType.TAG, new_tag) in pending
        assert (EntityType.TAG, synced_tag) not in pending


class TestSnapshot:
    """Tests for record to snapshot conversion."""

    def test_references_use_parent_server_ids(self, test_db, trips, memories, tags):
        trip = trips.create({"name": "Iceland"})
        test_db.identity.assign_server_id(trip, "t1")
        tag = tags.create({"name": "glacier"})
        test_db.identity.assign_server_id(tag, "g1")
        unsynced_tag = tags.create({"name": "later"})
        memory = memories.create(
            {"title": "Ice cave", "trip": trip, "tags": [tag, unsynced_tag]}
        )

        snapshot = memories.snapshot(memory)

        assert snapshot.local_id == memory.local_id
        assert snapshot.server_id is None
        assert snapshot.fields["title"] == "Ice cave"
        assert snapshot.references == {"trip_id": "t1"}
        assert snapshot.memberships["tag_ids"] == ("g1",)

    def test_unsynced_parent_blocks_upload(self, trips, memories):
        """A memory whose trip was never pushed cannot be uploaded."""
        trip = trips.create({"name": "Iceland"})
        memory = memories.create({"title": "Ice cave", "trip": trip})

        with pytest.raises(ValidationError, match="trip_id"):
            memories.snapshot(memory).validate_for_upload()


class TestApplySnapshot:
    """Tests for writing winning snapshots."""

    def _memory_snapshot(self, **overrides):
        values = dict(
            updated_at=T0,
            server_id="m1",
            fields={"title": "Ice cave"},
            references={"trip_id": "t1"},
            memberships={"tag_ids": ["g1"]},
        )
        values.update(overrides)
        return EntitySnapshot.build(EntityType.MEMORY, **values)

    def test_creates_missing_record(self, test_db, db_session, trips, memories, tags):
        trip = trips.create({"name": "Iceland"})
        test_db.identity.assign_server_id(trip, "t1")
        tag = tags.create({"name": "glacier"})
        test_db.identity.assign_server_id(tag, "g1")

        memory = memories.apply_snapshot(self._memory_snapshot())

        assert memory.server_id == "m1"
        assert memory.local_id
        assert memory.title == "Ice cave"
        assert memory.trip is trip
        assert memory.tags == [tag]
        assert memory.updated_at == T0

    def test_keeps_remote_local_id(self, test_db, trips, memories):
        trip = trips.create({"name": "Iceland"})
        test_db.identity.assign_server_id(trip, "t1")

        memory = memories.apply_snapshot(
            self._memory_snapshot(local_id="from-other-device", memberships={})
        )
        assert memory.local_id == "from-other-device"

    def test_unknown_parent_leaves_session_untouched(self, db_session, memories):
        """A refused snapshot adds nothing to the session."""
        with pytest.raises(ValidationError, match="not available locally"):
            memories.apply_snapshot(self._memory_snapshot())

        assert db_session.query(Memory).count() == 0
        assert not db_session.new

    def test_unknown_member_refuses_snapshot(self, test_db, db_session, trips, memories, tags):
        """A partial tag list is never applied."""
        trip = trips.create({"name": "Iceland"})
        test_db.identity.assign_server_id(trip, "t1")
        tag = tags.create({"name": "glacier"})
        test_db.identity.assign_server_id(tag, "g1")

        with pytest.raises(ValidationError, match="member unknown is not available"):
            memories.apply_snapshot(
                self._memory_snapshot(memberships={"tag_ids": ["g1", "unknown"]})
            )

        assert db_session.query(Memory).count() == 0

    def test_missing_required_parent(self, memories):
        with pytest.raises(ValidationError, match="has no trip_id"):
            memories.apply_snapshot(self._memory_snapshot(references={"trip_id": None}))

    def test_updates_existing_record(self, test_db, trips):
        trip = trips.create({"name": "Iceland"})
        test_db.identity.assign_server_id(trip, "t1")
        later = T0 + timedelta(hours=1)

        snapshot = EntitySnapshot.build(
            EntityType.TRIP,
            updated_at=later,
            server_id="t1",
            fields={"name": "Iceland & Faroe"},
        )
        result = trips.apply_snapshot(snapshot)

        assert result is trip
        assert trip.name == "Iceland & Faroe"
        assert trip.updated_at == later

    def test_refuses_different_server_id(self, test_db, trips):
        """A record never takes a second server id."""
        trip = trips.create({"name": "Iceland"})
        test_db.identity.assign_server_id(trip, "t1")
        snapshot = EntitySnapshot.build(
            EntityType.TRIP, updated_at=T0, server_id="t2", fields={"name": "Other"}
        )

        with pytest.raises(IdentityConflictError):
            trips.apply_snapshot(snapshot, trip)
        assert trip.name == "Iceland"
        assert trip.server_id == "t1"

    def test_deleted_snapshot_soft_deletes(self, test_db, trips):
        trip = trips.create({"name": "Iceland"})
        test_db.identity.assign_server_id(trip, "t1")

        deleted = EntitySnapshot.build(
            EntityType.TRIP, updated_at=T0, server_id="t1", deleted=True
        )
        trips.apply_snapshot(deleted)
        assert trip.is_deleted

        restored = EntitySnapshot.build(
            EntityType.TRIP, updated_at=T0 + timedelta(minutes=1), server_id="t1"
        )
        trips.apply_snapshot(restored)
        assert not trip.is_deleted

    def test_missing_fields_keep_defaults(self, db_session, test_db):
        """A remote record omitting defaulted fields gets the defaults."""
        items = test_db.manager(EntityType.BUCKET_LIST_ITEM)
        item = items.apply_snapshot(
            EntitySnapshot.build(
                EntityType.BUCKET_LIST_ITEM,
                updated_at=T0,
                server_id="b1",
                fields={"name": "Aurora", "is_done": None},
            )
        )
        assert item.is_done is False


class TestMembershipOnTags:
    def test_tag_category_reference(self, test_db, db_session):
        categories = test_db.manager(EntityType.TAG_CATEGORY)
        tags = test_db.manager(EntityType.TAG)
        category = categories.create({"name": "Nature"})
        test_db.identity.assign_server_id(category, "c1")

        tag = tags.apply_snapshot(
            EntitySnapshot.build(
                EntityType.TAG,
                updated_at=T0,
                server_id="g1",
                fields={"name": "glacier"},
                references={"category_id": "c1"},
            )
        )
        assert isinstance(tag, Tag)
        assert tag.category is category
