#!/usr/bin/env python3
"""
manager.py
--------------------
The local journal store.

JournalDB owns the SQLite engine and everything that works on sessions
of it:

    - session scopes (commit on success, rollback on error, always close)
    - entity managers bound to the innermost open scope
    - the rollback-aware TransactionManager used by the sync engine
    - consistency checks
    - schema creation and Alembic migrations

A database file that does not exist yet is created from the ORM models
and stamped at the head revision; an existing file is left alone until
`upgrade_database()` is called.

Datetimes are stored naive and read back as aware UTC values.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from contextlib import contextmanager
from itertools import count
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

# --- Third party ---
from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import Engine, create_engine, event, inspect
from sqlalchemy.orm import Session, sessionmaker

# --- Local imports ---
from waypoint.core.exceptions import DatabaseError
from waypoint.core.logging_manager import WaypointLogger, safe_logger
from waypoint.core.paths import ALEMBIC_DIR

from .decorators import handle_db_errors, log_database_operation
from .health_monitor import HealthMonitor
from .identity import EntityIdentity
from .managers import EntityManager
from .models import Base, EntityType
from .transaction_manager import TransactionManager


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class JournalDB:
    """
    Local journal store.

    Attributes:
        db_path: SQLite database file
        alembic_dir: Migration environment (env.py and versions/)
        engine: SQLAlchemy engine
        SessionLocal: Session factory
        alembic_cfg: Alembic configuration for this file
        identity: Entity identity layer shared by all managers
        transactions: Transaction manager over SessionLocal
        health_monitor: Consistency checks

    Usage:
        db = JournalDB("~/.waypoint/waypoint.db")
        with db.session_scope():
            trip = db.manager(EntityType.TRIP).create({"name": "Iceland"})
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        alembic_dir: Union[str, Path] = ALEMBIC_DIR,
        log_dir: Optional[Union[str, Path]] = None,
        logger: Optional[WaypointLogger] = None,
    ) -> None:
        """
        Args:
            db_path: SQLite file, created with its parent directory if missing
            alembic_dir: Migration environment
            log_dir: Directory for a 'database' component log; ignored
                when `logger` is given
            logger: Logger shared with other components

        Raises:
            DatabaseError: If the engine or schema cannot be set up
        """
        self.db_path = Path(db_path).expanduser().resolve()
        self.alembic_dir = Path(alembic_dir).expanduser().resolve()
        if logger is None and log_dir:
            logger = WaypointLogger(Path(log_dir).expanduser(), component_name="database")
        self.logger: Optional[WaypointLogger] = logger

        self.identity = EntityIdentity(self.logger)
        self.health_monitor = HealthMonitor(self.identity, self.logger)
        self._scopes: List[Session] = []
        self._scope_ids = count(1)

        fresh = not self.db_path.exists()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine: Engine = create_engine(f"sqlite:///{self.db_path}", pool_pre_ping=True)
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
            self.SessionLocal: sessionmaker = sessionmaker(
                bind=self.engine, autoflush=True, expire_on_commit=False
            )
            self.alembic_cfg = Config()
            self.alembic_cfg.set_main_option("script_location", str(self.alembic_dir))
            self.alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")
        except Exception as e:
            safe_logger(self.logger).log_error(e, {"operation": "open_store"})
            raise DatabaseError(f"Cannot open journal store {self.db_path}: {e}") from e

        self.transactions = TransactionManager(self.SessionLocal, self.logger)
        if fresh:
            self.initialize_schema()
        safe_logger(self.logger).log_operation(
            "store_opened", {"db_path": str(self.db_path), "fresh": fresh}
        )

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()

    # ---- Sessions ----
    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Open a session that commits on exit and rolls back on error.

        Scopes nest; `manager()` binds to the innermost one.
        """
        session = self.SessionLocal()
        scope_id = next(self._scope_ids)
        self._scopes.append(session)
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            safe_logger(self.logger).log_error(
                e, {"operation": "session_rollback", "scope": scope_id}
            )
            raise
        finally:
            self._scopes.remove(session)
            session.close()

    def manager(self, entity_type: EntityType) -> EntityManager:
        """
        Entity manager for `entity_type` on the innermost session scope.

        Raises:
            DatabaseError: Outside of session_scope
        """
        if not self._scopes:
            raise DatabaseError(
                "Entity managers need an active session: "
                "with db.session_scope(): db.manager(EntityType.TRIP).create(...)"
            )
        return EntityManager(self._scopes[-1], entity_type, self.identity, self.logger)

    # ---- Schema ----
    def initialize_schema(self) -> None:
        """
        Bring the schema up to date.

        An empty database gets every table from the models and is stamped
        at head; one that already has tables is upgraded.

        Raises:
            DatabaseError: If creation or migration fails
        """
        try:
            existing = inspect(self.engine).get_table_names()
            if existing:
                self.upgrade_database()
                return
            Base.metadata.create_all(bind=self.engine)
            command.stamp(self.alembic_cfg, "head")
        except DatabaseError:
            raise
        except Exception as e:
            safe_logger(self.logger).log_error(e, {"operation": "initialize_schema"})
            raise DatabaseError(f"Cannot create journal schema: {e}") from e

        safe_logger(self.logger).log_operation(
            "schema_created", {"tables": len(Base.metadata.tables)}
        )

    @handle_db_errors
    @log_database_operation("upgrade_database")
    def upgrade_database(self, revision: str = "head") -> None:
        """Run migrations up to `revision`."""
        try:
            command.upgrade(self.alembic_cfg, revision)
        except Exception as e:
            raise DatabaseError(f"Migration to {revision} failed: {e}") from e

    def get_migration_history(self) -> Dict[str, Optional[str]]:
        """
        Current Alembic revision.

        Returns:
            {'current_revision', 'status'} where status is 'up_to_date'
            or 'needs_migration', or {'error'} if the store is unreadable
        """
        try:
            with self.engine.connect() as conn:
                revision = MigrationContext.configure(conn).get_current_revision()
        except Exception as e:
            safe_logger(self.logger).log_error(e, {"operation": "get_migration_history"})
            return {"error": str(e)}

        return {
            "current_revision": revision,
            "status": "up_to_date" if revision else "needs_migration",
        }

    # ---- Health ----
    def check_health(self) -> Dict[str, object]:
        """Run the consistency checks in their own session."""
        with self.session_scope() as session:
            return self.health_monitor.health_check(session)
