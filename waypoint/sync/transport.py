#!/usr/bin/env python3
"""
transport.py
--------------------
Remote backend collaborator.

Per entity type the backend offers four logical operations:

    list_all(entity_type, scope)            -> [RemoteEntity]
    create(entity_type, payload)            -> RemoteEntity (with server id)
    update(entity_type, server_id, payload) -> RemoteEntity
    delete(entity_type, server_id)          -> True

HttpRemoteBackend implements them over httpx with a bearer credential
and a bounded timeout, and maps failures onto the sync error taxonomy:

    timeout / connection / DNS        NetworkError         (retryable)
    401, 403                          AuthorizationError   (never retried)
    400, 409, 422 and other 4xx       PayloadRejectedError (entity fails)
    5xx, unparseable body             ServerError          (retryable)
    404 on delete                     success (already gone)

Binary attachments are never transferred here; records only carry the
object_name reference returned by the object-storage exchange.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generator, List, Mapping, Optional, Sequence

# --- Third party imports ---
import httpx

# --- Local imports ---
from waypoint.core.exceptions import (
    AuthorizationError,
    NetworkError,
    PayloadRejectedError,
    ServerError,
    ValidationError,
)
from waypoint.core.logging_manager import WaypointLogger, safe_logger
from waypoint.core.validators import DataValidator
from waypoint.database.models.enums import EntityType

from .auth import AuthProvider

RESOURCE_PATHS: Dict[EntityType, str] = {
    EntityType.TAG_CATEGORY: "/tag-categories",
    EntityType.TAG: "/tags",
    EntityType.BUCKET_LIST_ITEM: "/bucket-list",
    EntityType.TRIP: "/trips",
    EntityType.MEMORY: "/memories",
    EntityType.MEDIA_ITEM: "/media",
    EntityType.GPX_TRACK: "/gpx-tracks",
    EntityType.TRACK_SEGMENT: "/track-segments",
}


@dataclass(frozen=True)
class RemoteEntity:
    """
    A record as the remote backend returns it.

    Attributes:
        id: Server id
        updated_at: Remote last-mutation time, aware UTC
        data: Every other field of the record
    """

    id: str
    updated_at: datetime
    data: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, body: Any) -> "RemoteEntity":
        """
        Raises:
            ServerError: If the body lacks an id or a readable updated_at
        """
        if not isinstance(body, dict):
            raise ServerError(f"Expected a JSON object, got {type(body).__name__}")
        if body.get("id") in (None, ""):
            raise ServerError("Remote record has no id")
        try:
            updated_at = DataValidator.normalize_datetime(body.get("updated_at"))
        except ValidationError as e:
            raise ServerError(f"Remote record {body['id']}: {e}") from e
        if updated_at is None:
            raise ServerError(f"Remote record {body['id']} has no updated_at")

        data = {k: v for k, v in body.items() if k not in ("id", "updated_at")}
        return cls(id=str(body["id"]), updated_at=updated_at, data=data)


@dataclass(frozen=True)
class FetchScope:
    """
    Which records list_all returns.

    Attributes:
        trip_ids: Restrict to these trips (empty means every trip)
        include_shared: Include trips shared with the user
    """

    trip_ids: Sequence[str] = ()
    include_shared: bool = True

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"include_shared": str(self.include_shared).lower()}
        if self.trip_ids:
            params["trip_ids"] = ",".join(str(t) for t in self.trip_ids)
        return params


class RemoteBackend(ABC):
    """Interface the orchestrator depends on."""

    @abstractmethod
    def list_all(self, entity_type: EntityType, scope: FetchScope) -> List[RemoteEntity]:
        ...

    @abstractmethod
    def create(self, entity_type: EntityType, payload: Dict[str, Any]) -> RemoteEntity:
        ...

    @abstractmethod
    def update(
        self, entity_type: EntityType, server_id: str, payload: Dict[str, Any]
    ) -> RemoteEntity:
        ...

    @abstractmethod
    def delete(self, entity_type: EntityType, server_id: str) -> bool:
        ...

    def close(self) -> None:
        """Release transport resources."""


class BearerAuth(httpx.Auth):
    """Attach the provider's current token to every request."""

    def __init__(self, provider: AuthProvider) -> None:
        self.provider = provider

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        token = self.provider.get_token()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


class HttpRemoteBackend(RemoteBackend):
    """
    httpx implementation of the remote backend.

    Attributes:
        base_url: API root, e.g. https://journal.example.com/api
        bytes_transferred: Request and response body bytes since creation
    """

    def __init__(
        self,
        base_url: str,
        auth_provider: AuthProvider,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[WaypointLogger] = None,
    ) -> None:
        """
        Args:
            base_url: API root
            auth_provider: Credential source
            timeout: Seconds per request
            transport: Custom httpx transport (tests use httpx.MockTransport)
            logger: Optional logger
        """
        self.base_url = base_url.rstrip("/")
        self.logger = logger
        self.bytes_transferred = 0
        self._bytes_lock = threading.Lock()
        self._client = httpx.Client(
            base_url=self.base_url,
            auth=BearerAuth(auth_provider),
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    # ---- Request plumbing ----
    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[httpx.Response]:
        try:
            response = self._client.request(method, path, json=json_body, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {path} timed out: {e}") from e
        except httpx.RequestError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        with self._bytes_lock:
            self.bytes_transferred += len(response.request.content or b"")
            self.bytes_transferred += len(response.content or b"")

        status = response.status_code
        safe_logger(self.logger).log_debug(
            "Remote request", {"method": method, "path": path, "status": status}
        )

        if allow_not_found and status == 404:
            return None
        if status in (401, 403):
            raise AuthorizationError(
                f"{method} {path} was refused ({status})", status_code=status
            )
        if 400 <= status < 500:
            raise PayloadRejectedError(
                f"{method} {path} rejected ({status}): {response.text[:200]}",
                status_code=status,
            )
        if status >= 500:
            raise ServerError(f"{method} {path} returned {status}", status_code=status)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ServerError(
                f"Malformed response from {response.request.url.path}: {e}"
            ) from e

    @staticmethod
    def _path(entity_type: EntityType, server_id: Optional[str] = None) -> str:
        base = RESOURCE_PATHS[EntityType(entity_type)]
        return f"{base}/{server_id}" if server_id is not None else base

    # ---- Operations ----
    def list_all(self, entity_type: EntityType, scope: FetchScope) -> List[RemoteEntity]:
        response = self._request("GET", self._path(entity_type), params=scope.to_params())
        body = self._json(response)
        items = body.get("items") if isinstance(body, dict) else body
        if not isinstance(items, list):
            raise ServerError(f"Malformed list response for {EntityType(entity_type).value}")
        return [RemoteEntity.from_json(item) for item in items]

    def create(self, entity_type: EntityType, payload: Dict[str, Any]) -> RemoteEntity:
        response = self._request("POST", self._path(entity_type), json_body=payload)
        return RemoteEntity.from_json(self._json(response))

    def update(
        self, entity_type: EntityType, server_id: str, payload: Dict[str, Any]
    ) -> RemoteEntity:
        response = self._request(
            "PUT", self._path(entity_type, server_id), json_body=payload
        )
        return RemoteEntity.from_json(self._json(response))

    def delete(self, entity_type: EntityType, server_id: str) -> bool:
        self._request("DELETE", self._path(entity_type, server_id), allow_not_found=True)
        return True
