"""Tests for the httpx remote backend, using httpx.MockTransport."""
import json

import httpx
import pytest

from waypoint.core.exceptions import (
    AuthorizationError,
    NetworkError,
    PayloadRejectedError,
    ServerError,
)
from waypoint.database.models import EntityType
from waypoint.sync.auth import StaticTokenProvider
from waypoint.sync.transport import FetchScope, HttpRemoteBackend, RemoteEntity

BASE_URL = "http://journal.test/api"


def _record(server_id, **data):
    return {"id": server_id, "updated_at": "2026-05-01T10:00:00Z", **data}


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def make_backend(requests_seen):
    """Factory: make_backend(handler, token='secret') over a mock transport."""
    backends = []

    def _make(handler, token="secret"):
        def recording(request):
            requests_seen.append(request)
            return handler(request)

        backend = HttpRemoteBackend(
            BASE_URL,
            StaticTokenProvider(token),
            timeout=2,
            transport=httpx.MockTransport(recording),
        )
        backends.append(backend)
        return backend

    yield _make
    for backend in backends:
        backend.close()


class TestRequests:
    """Tests for what is sent."""

    def test_bearer_token_and_paths(self, make_backend, requests_seen):
        backend = make_backend(lambda request: httpx.Response(200, json=[]))
        backend.list_all(EntityType.BUCKET_LIST_ITEM, FetchScope(trip_ids=("3", "4")))

        request = requests_seen[0]
        assert request.method == "GET"
        assert request.url.path == "/api/bucket-list"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.url.params["trip_ids"] == "3,4"
        assert request.url.params["include_shared"] == "true"

    def test_no_header_without_token(self, make_backend, requests_seen):
        backend = make_backend(lambda request: httpx.Response(200, json=[]), token=None)
        backend.list_all(EntityType.TRIP, FetchScope())
        assert "Authorization" not in requests_seen[0].headers

    def test_create_posts_payload(self, make_backend, requests_seen):
        backend = make_backend(
            lambda request: httpx.Response(201, json=_record(9, name="Iceland"))
        )
        remote = backend.create(EntityType.TRIP, {"name": "Iceland", "local_id": "loc-1"})

        request = requests_seen[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"name": "Iceland", "local_id": "loc-1"}
        assert remote.id == "9"
        assert remote.data == {"name": "Iceland"}

    def test_update_puts_to_record(self, make_backend, requests_seen):
        backend = make_backend(lambda request: httpx.Response(200, json=_record("9")))
        backend.update(EntityType.GPX_TRACK, "9", {"name": "Ridge"})

        assert requests_seen[0].method == "PUT"
        assert requests_seen[0].url.path == "/api/gpx-tracks/9"

    def test_bytes_are_counted(self, make_backend):
        backend = make_backend(lambda request: httpx.Response(200, json=[_record(1)]))
        backend.list_all(EntityType.TRIP, FetchScope())
        assert backend.bytes_transferred > 0


class TestResponses:
    """Tests for parsing bodies."""

    def test_items_wrapper(self, make_backend):
        body = {"items": [_record(1, name="A"), _record(2, name="B")], "total": 2}
        backend = make_backend(lambda request: httpx.Response(200, json=body))

        remotes = backend.list_all(EntityType.TRIP, FetchScope())

        assert [r.id for r in remotes] == ["1", "2"]
        assert remotes[0].updated_at.tzinfo is not None

    def test_malformed_json(self, make_backend):
        backend = make_backend(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ServerError, match="Malformed response"):
            backend.list_all(EntityType.TRIP, FetchScope())

    def test_non_list_body(self, make_backend):
        backend = make_backend(lambda request: httpx.Response(200, json={"detail": "ok"}))
        with pytest.raises(ServerError, match="Malformed list"):
            backend.list_all(EntityType.TRIP, FetchScope())

    def test_record_without_timestamp(self):
        with pytest.raises(ServerError, match="no updated_at"):
            RemoteEntity.from_json({"id": 1})

    def test_record_without_id(self):
        with pytest.raises(ServerError, match="no id"):
            RemoteEntity.from_json({"updated_at": "2026-05-01T10:00:00Z"})


class TestErrorMapping:
    """Tests for the failure taxonomy."""

    @pytest.mark.parametrize("status", [401, 403])
    def test_refused_credentials(self, make_backend, status):
        backend = make_backend(lambda request: httpx.Response(status))
        with pytest.raises(AuthorizationError) as exc_info:
            backend.list_all(EntityType.TRIP, FetchScope())
        assert exc_info.value.status_code == status

    @pytest.mark.parametrize("status", [400, 409, 422])
    def test_rejected_payload(self, make_backend, status):
        backend = make_backend(lambda request: httpx.Response(status, text="title missing"))
        with pytest.raises(PayloadRejectedError, match="title missing"):
            backend.create(EntityType.MEMORY, {})

    def test_server_error(self, make_backend):
        backend = make_backend(lambda request: httpx.Response(503))
        with pytest.raises(ServerError) as exc_info:
            backend.list_all(EntityType.TRIP, FetchScope())
        assert exc_info.value.status_code == 503

    def test_timeout(self, make_backend):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        backend = make_backend(handler)
        with pytest.raises(NetworkError, match="timed out"):
            backend.list_all(EntityType.TRIP, FetchScope())

    def test_connection_failure(self, make_backend):
        def handler(request):
            raise httpx.ConnectError("name resolution failed", request=request)

        backend = make_backend(handler)
        with pytest.raises(NetworkError):
            backend.create(EntityType.TRIP, {})

    def test_delete_of_missing_record_succeeds(self, make_backend, requests_seen):
        """A 404 on delete means the record is already gone."""
        backend = make_backend(lambda request: httpx.Response(404))
        assert backend.delete(EntityType.MEMORY, "12") is True
        assert requests_seen[0].url.path == "/api/memories/12"

    def test_update_of_missing_record_is_rejected(self, make_backend):
        backend = make_backend(lambda request: httpx.Response(404))
        with pytest.raises(PayloadRejectedError):
            backend.update(EntityType.MEMORY, "12", {})
