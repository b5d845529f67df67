#!/usr/bin/env python3
"""
paths.py
-------------------
Path constants for the Waypoint sync engine.

All runtime state lives under a single data home, `~/.waypoint` by default
or the directory named by the WAYPOINT_HOME environment variable:

    HOME/
    ├── waypoint.db          # Journal store, offline queue, sync state
    ├── config.yaml          # Sync settings
    └── logs/                # Rotating log files

The migration scripts ship inside the package.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

PACKAGE_DIR = Path(__file__).resolve().parent.parent
ALEMBIC_DIR = PACKAGE_DIR / "database" / "migrations"


def _get_data_home() -> Path:
    """Resolve the data home from WAYPOINT_HOME or the user's home directory."""
    env_home = os.environ.get("WAYPOINT_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".waypoint"


@dataclass(frozen=True)
class DataPaths:
    """
    File layout under one data home.

    Attributes:
        home: Root directory for all runtime state
    """

    home: Path

    @classmethod
    def at(cls, home: Optional[Union[str, Path]] = None) -> "DataPaths":
        """Build the layout for `home`, or the default data home."""
        return cls(Path(home).expanduser() if home else _get_data_home())

    @property
    def db_path(self) -> Path:
        return self.home / "waypoint.db"

    @property
    def config_path(self) -> Path:
        return self.home / "config.yaml"

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"

    def ensure(self) -> "DataPaths":
        """Create the data home and log directory if missing."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        return self


# ----- Default layout -----
DATA_HOME = _get_data_home()
DB_PATH = DATA_HOME / "waypoint.db"
CONFIG_PATH = DATA_HOME / "config.yaml"
LOG_DIR = DATA_HOME / "logs"
