"""
conftest.py
-----------
Shared pytest fixtures for Waypoint tests.

Provides fixtures for:
- Temporary data directories
- Journal store setup and teardown
- An in-memory remote backend
- Fully wired sync engines
"""
import threading
from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from waypoint.core.config import SyncSettings
from waypoint.core.exceptions import PayloadRejectedError
from waypoint.core.paths import DataPaths
from waypoint.database.manager import JournalDB
from waypoint.database.models import EntityType
from waypoint.sync.auth import StaticTokenProvider
from waypoint.sync.engine import build_engine
from waypoint.sync.transport import RemoteBackend, RemoteEntity

# Remote timestamps start well before any local edit made by a test
REMOTE_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeRemoteBackend(RemoteBackend):
    """
    In-memory remote backend.

    Every write gets the next server id and a timestamp one second after
    the previous write. Calls are recorded in `calls`; `errors` maps
    (operation, entity_type) to an exception raised on every such call.
    Setting `hold` to an Event makes list_all wait on it (after setting
    `entered`), for single-flight tests.
    """

    def __init__(self) -> None:
        self.store = {entity_type: {} for entity_type in EntityType}
        self.calls = []
        self.errors = {}
        self.hold = None
        self.entered = threading.Event()
        self.active = 0
        self.max_active = 0
        self.bytes_transferred = 0
        self._ids = count(1)
        self._ticks = count(1)
        self._lock = threading.Lock()

    # ---- Test helpers ----
    def next_timestamp(self) -> datetime:
        return REMOTE_EPOCH + timedelta(seconds=next(self._ticks))

    def seed(self, entity_type, data, updated_at=None) -> str:
        """Insert a record as if another device had created it."""
        server_id = str(next(self._ids))
        self.store[entity_type][server_id] = {
            "data": dict(data),
            "updated_at": updated_at or self.next_timestamp(),
        }
        return server_id

    def edit(self, entity_type, server_id, changes, updated_at) -> None:
        """Change a record remotely with an explicit timestamp."""
        record = self.store[entity_type][server_id]
        record["data"].update(changes)
        record["updated_at"] = updated_at

    def calls_for(self, operation, entity_type=None):
        return [
            call
            for call in self.calls
            if call[0] == operation and (entity_type is None or call[1] == entity_type)
        ]

    def _enter(self, operation, entity_type, *details) -> None:
        with self._lock:
            self.calls.append((operation, entity_type) + details)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        error = self.errors.get((operation, entity_type))
        if error is not None:
            self._exit()
            raise error

    def _exit(self) -> None:
        with self._lock:
            self.active -= 1

    def _entity(self, entity_type, server_id) -> RemoteEntity:
        record = self.store[entity_type][server_id]
        return RemoteEntity(
            id=server_id, updated_at=record["updated_at"], data=dict(record["data"])
        )

    # ---- RemoteBackend ----
    def list_all(self, entity_type, scope):
        self._enter("list_all", entity_type, scope)
        try:
            if self.hold is not None:
                self.entered.set()
                self.hold.wait(timeout=5)
            return [self._entity(entity_type, sid) for sid in self.store[entity_type]]
        finally:
            self._exit()

    def create(self, entity_type, payload):
        self._enter("create", entity_type, dict(payload))
        try:
            data = {k: v for k, v in payload.items() if k != "updated_at"}
            server_id = self.seed(entity_type, data)
            return self._entity(entity_type, server_id)
        finally:
            self._exit()

    def update(self, entity_type, server_id, payload):
        self._enter("update", entity_type, server_id, dict(payload))
        try:
            if server_id not in self.store[entity_type]:
                raise PayloadRejectedError(f"Unknown {entity_type.value} {server_id}", 404)
            data = {k: v for k, v in payload.items() if k != "updated_at"}
            self.edit(entity_type, server_id, data, self.next_timestamp())
            return self._entity(entity_type, server_id)
        finally:
            self._exit()

    def delete(self, entity_type, server_id):
        self._enter("delete", entity_type, server_id)
        try:
            self.store[entity_type].pop(server_id, None)
            return True
        finally:
            self._exit()


# ----- Path Fixtures -----

@pytest.fixture
def tmp_dir():
    """Create a temporary directory for test file operations."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_paths(tmp_dir):
    """Data directory layout under the temporary directory."""
    return DataPaths.at(tmp_dir / "home").ensure()


# ----- Database Fixtures -----

@pytest.fixture
def test_db(tmp_dir):
    """Fresh journal store created from the models and stamped at head."""
    db = JournalDB(tmp_dir / "test.db")
    yield db
    db.dispose()


@pytest.fixture
def db_session(test_db):
    """Session scope with entity managers available through test_db.manager()."""
    with test_db.session_scope() as session:
        yield session


# ----- Sync Fixtures -----

@pytest.fixture
def settings():
    """Settings that sync over any connection."""
    return SyncSettings(base_url="http://journal.test/api")


@pytest.fixture
def remote():
    return FakeRemoteBackend()


@pytest.fixture
def auth():
    return StaticTokenProvider("test-token")


@pytest.fixture
def engine(data_paths, settings, remote, auth):
    """Wired sync services over the fake remote backend."""
    engine = build_engine(data_paths, settings=settings, auth_provider=auth, backend=remote)
    yield engine
    engine.close()


@pytest.fixture
def orchestrator(engine):
    return engine.orchestrator


def _create_entity(db, entity_type, metadata):
    with db.session_scope():
        return db.manager(entity_type).create(metadata)


def _find_entity(db, entity_type, local_id):
    with db.session_scope():
        return db.manager(entity_type).get_by_local_id(local_id)


# ----- Factory Fixtures -----

@pytest.fixture
def create_entity():
    """Factory: create_entity(db, entity_type, metadata) in its own session scope."""
    return _create_entity


@pytest.fixture
def find_entity():
    """Factory: find_entity(db, entity_type, local_id); columns only, detached."""
    return _find_entity
