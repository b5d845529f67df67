"""Tests for the network policy gate."""
import pytest

from waypoint.core.config import SyncSettings
from waypoint.sync.connectivity import ConnectivityGate, NetworkStatus
from waypoint.sync.enums import ConnectionType


def _gate(status, **settings):
    return ConnectivityGate(SyncSettings(**settings), status_provider=lambda: status)


class TestConnectivityGate:
    """Tests for blocking reasons."""

    def test_wifi_is_open(self):
        gate = _gate(NetworkStatus())
        assert gate.blocking_reason() is None
        assert gate.can_sync()

    def test_default_provider_assumes_online(self):
        assert ConnectivityGate(SyncSettings()).can_sync()

    def test_offline(self):
        gate = _gate(NetworkStatus.offline())
        assert gate.blocking_reason() == "offline"
        assert not gate.can_sync()

    def test_unreachable_backend(self):
        assert _gate(NetworkStatus(reachable=False)).blocking_reason() == "offline"

    @pytest.mark.parametrize(
        "connection,expected",
        [
            (ConnectionType.CELLULAR, "wifi_only"),
            (ConnectionType.OTHER, "wifi_only"),
            (ConnectionType.ETHERNET, None),
            (ConnectionType.WIFI, None),
        ],
    )
    def test_wifi_only(self, connection, expected):
        gate = _gate(NetworkStatus(connection_type=connection), wifi_only=True)
        assert gate.blocking_reason() == expected

    def test_cellular_allowed_without_wifi_only(self):
        gate = _gate(NetworkStatus(connection_type=ConnectionType.CELLULAR))
        assert gate.can_sync()

    def test_expensive_connection(self):
        status = NetworkStatus(connection_type=ConnectionType.CELLULAR, is_expensive=True)
        assert _gate(status, avoid_expensive=True).blocking_reason() == "expensive_connection"
        assert _gate(status).blocking_reason() is None
