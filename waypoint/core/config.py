#!/usr/bin/env python3
"""
config.py
--------------------
Sync settings loaded from a YAML file.

Example config.yaml:

    enabled: true
    storage_mode: backend
    base_url: https://journal.example.com/api
    wifi_only: false
    avoid_expensive: true
    conflict_strategy: last_write_wins
    max_retries: 3
    max_queue_size: 1000
    request_timeout: 30
    trip_ids: []
    include_shared: true

A missing file yields the defaults. Unknown keys are rejected so that
typos do not silently fall back to defaults.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Tuple, Union

# --- Third party imports ---
import yaml

# --- Local imports ---
from waypoint.core.exceptions import ConfigurationError, ValidationError
from waypoint.core.validators import DataValidator
from waypoint.sync.enums import ConflictStrategy, StorageMode


@dataclass
class SyncSettings:
    """
    User-facing sync configuration.

    Attributes:
        enabled: Master switch for sync
        storage_mode: Where data is mirrored; only BACKEND syncs
        base_url: Root URL of the remote API
        wifi_only: Refuse to sync over non Wi-Fi connections
        avoid_expensive: Refuse to sync over metered connections
        conflict_strategy: Default conflict resolution strategy
        max_retries: Retry ceiling for offline queue tasks
        max_queue_size: Capacity of the offline queue
        request_timeout: Seconds before a remote request times out
        telemetry_capacity: Samples kept by the performance monitor
        trip_ids: Restrict fetches to these trip server ids (empty = all)
        include_shared: Include trips shared with the user
    """

    enabled: bool = True
    storage_mode: StorageMode = StorageMode.BACKEND
    base_url: str = "http://localhost:8000/api"
    wifi_only: bool = False
    avoid_expensive: bool = False
    conflict_strategy: ConflictStrategy = ConflictStrategy.LAST_WRITE_WINS
    max_retries: int = 3
    max_queue_size: int = 1000
    request_timeout: float = 30.0
    telemetry_capacity: int = 100
    trip_ids: Tuple[str, ...] = field(default_factory=tuple)
    include_shared: bool = True

    def __post_init__(self) -> None:
        try:
            self.enabled = bool(DataValidator.normalize_bool(self.enabled))
            self.wifi_only = bool(DataValidator.normalize_bool(self.wifi_only))
            self.avoid_expensive = bool(DataValidator.normalize_bool(self.avoid_expensive))
            self.include_shared = bool(DataValidator.normalize_bool(self.include_shared))
            self.storage_mode = StorageMode(self.storage_mode)
            self.conflict_strategy = ConflictStrategy(self.conflict_strategy)
            self.max_retries = DataValidator.normalize_int(self.max_retries)
            self.max_queue_size = DataValidator.normalize_int(self.max_queue_size)
            self.telemetry_capacity = DataValidator.normalize_int(self.telemetry_capacity)
            self.request_timeout = DataValidator.normalize_float(self.request_timeout)
        except (ValidationError, ValueError) as e:
            raise ConfigurationError(f"Invalid sync settings: {e}") from e

        self.trip_ids = tuple(str(trip_id) for trip_id in (self.trip_ids or ()))
        self.base_url = str(self.base_url).rstrip("/")

        if self.max_retries is None or self.max_retries < 0:
            raise ConfigurationError("max_retries must be zero or positive")
        if self.max_queue_size is None or self.max_queue_size < 1:
            raise ConfigurationError("max_queue_size must be at least 1")
        if self.telemetry_capacity is None or self.telemetry_capacity < 1:
            raise ConfigurationError("telemetry_capacity must be at least 1")
        if self.request_timeout is None or self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

    # ---- Loading ----
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncSettings":
        """
        Build settings from a mapping.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown setting(s): {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SyncSettings":
        """
        Load settings from a YAML file; a missing file yields defaults.

        Raises:
            ConfigurationError: If the file is not a YAML mapping
        """
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse {path}: {e}") from e

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping of settings")
        return cls.from_dict(data)

    # ---- Saving ----
    def to_dict(self) -> Dict[str, Any]:
        """Plain, YAML-safe representation."""
        data = asdict(self)
        data["storage_mode"] = self.storage_mode.value
        data["conflict_strategy"] = self.conflict_strategy.value
        data["trip_ids"] = list(self.trip_ids)
        return data

    def save_yaml(self, path: Union[str, Path]) -> None:
        """Write settings to `path`, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
