#!/usr/bin/env python3
"""
transaction_manager.py
--------------------
Atomic units of work against the local store.

Each transaction runs `operation(session)` on its own session:

    perform_transaction
        Commits when the operation returns. On exception the session is
        closed without an explicit rollback; discarding partial work is
        the caller's concern.

    perform_transaction_with_rollback
        Commits when the operation returns. On any exception every change
        of the batch is rolled back and the error re-raised; SQLAlchemy
        errors are wrapped in TransactionError. The sync orchestrator uses
        only this variant.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime
from typing import Callable, Optional, TypeVar

# --- Third party ---
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

# --- Local imports ---
from waypoint.core.exceptions import TransactionError
from waypoint.core.logging_manager import WaypointLogger, safe_logger

T = TypeVar("T")


class TransactionManager:
    """
    Runs callables inside isolated, mutation-scoped sessions.

    Attributes:
        session_factory: sessionmaker bound to the journal store
        logger: Optional logger
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        logger: Optional[WaypointLogger] = None,
    ) -> None:
        self.session_factory = session_factory
        self.logger = logger

    def perform_transaction(
        self, operation: Callable[[Session], T], name: str = "transaction"
    ) -> T:
        """
        Run `operation` and commit on success.

        Args:
            operation: Callable receiving the transaction's session
            name: Label used in logs

        Returns:
            Whatever `operation` returns
        """
        session = self.session_factory()
        try:
            result = operation(session)
            if session.in_transaction():
                session.commit()
            safe_logger(self.logger).log_debug(f"Committed {name}")
            return result
        finally:
            session.close()

    def perform_transaction_with_rollback(
        self, operation: Callable[[Session], T], name: str = "transaction"
    ) -> T:
        """
        Run `operation` atomically: commit on success, roll back on failure.

        Args:
            operation: Callable receiving the transaction's session
            name: Label used in logs and error messages

        Returns:
            Whatever `operation` returns

        Raises:
            TransactionError: If the store failed; the batch was rolled back
            Exception: Any other error raised by `operation`, after rollback
        """
        started = datetime.now()
        session = self.session_factory()
        try:
            result = operation(session)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            safe_logger(self.logger).log_error(e, {"transaction": name})
            raise TransactionError(f"Transaction '{name}' rolled back: {e}") from e
        except BaseException as e:
            session.rollback()
            safe_logger(self.logger).log_warning(
                f"Transaction '{name}' rolled back",
                {"error": f"{type(e).__name__}: {e}"},
            )
            raise
        finally:
            session.close()

        safe_logger(self.logger).log_debug(
            f"Committed {name}",
            {"duration_seconds": (datetime.now() - started).total_seconds()},
        )
        return result
