#!/usr/bin/env python3
"""
decorators.py
--------------------
Timing, logging and error translation around store operations.

    @log_database_operation("apply_snapshot")   timing + log lines
    @handle_db_errors                           SQLAlchemy -> DatabaseError
    with DatabaseOperation(logger, "purge"):    both, as a block
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import time
from functools import wraps
from types import TracebackType
from typing import Callable, Optional, Type

# --- Third party ---
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

# --- Local imports ---
from waypoint.core.exceptions import DatabaseError
from waypoint.core.logging_manager import WaypointLogger, safe_logger


def as_database_error(error: BaseException) -> Optional[DatabaseError]:
    """DatabaseError wrapping a SQLAlchemy error, or None for anything else."""
    if isinstance(error, IntegrityError):
        return DatabaseError(f"Data integrity violation: {error}")
    if isinstance(error, SQLAlchemyError):
        return DatabaseError(f"Database operation failed: {error}")
    return None


def log_database_operation(operation_name: str):
    """
    Time a manager method and log its start, completion or failure.

    The method's owner provides the logger through a `logger` attribute,
    which may be None.
    """

    def decorator(function: Callable) -> Callable:
        @wraps(function)
        def wrapper(self, *args, **kwargs):
            logger = safe_logger(getattr(self, "logger", None))
            started = time.perf_counter()
            logger.log_debug(f"Starting {operation_name}", {"args": len(args)})

            try:
                result = function(self, *args, **kwargs)
            except Exception as e:
                logger.log_error(
                    e,
                    {
                        "operation": operation_name,
                        "duration_seconds": round(time.perf_counter() - started, 4),
                    },
                )
                raise

            logger.log_operation(
                f"{operation_name}_completed",
                {"duration_seconds": round(time.perf_counter() - started, 4), "success": True},
            )
            return result

        return wrapper

    return decorator


def handle_db_errors(function: Callable) -> Callable:
    """Re-raise SQLAlchemy errors from `function` as DatabaseError."""

    @wraps(function)
    def wrapper(*args, **kwargs):
        try:
            return function(*args, **kwargs)
        except SQLAlchemyError as e:
            raise as_database_error(e) from e

    return wrapper


class DatabaseOperation:
    """
    Block form of the two decorators.

    Usage:
        with DatabaseOperation(self.logger, "purge_trip"):
            session.delete(trip)
            session.flush()

    SQLAlchemy errors leave the block as DatabaseError; other exceptions
    are logged and propagate unchanged.
    """

    def __init__(
        self,
        logger: Optional[WaypointLogger],
        operation_name: str,
        log_start: bool = False,
    ) -> None:
        self.logger = safe_logger(logger)
        self.operation_name = operation_name
        self.log_start = log_start
        self._started = 0.0

    def __enter__(self) -> "DatabaseOperation":
        self._started = time.perf_counter()
        if self.log_start:
            self.logger.log_debug(f"Starting {self.operation_name}")
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        duration = round(time.perf_counter() - self._started, 4)
        if exc is None:
            self.logger.log_operation(
                f"{self.operation_name}_completed",
                {"duration_seconds": duration, "success": True},
            )
            return False

        if isinstance(exc, Exception):
            self.logger.log_error(
                exc, {"operation": self.operation_name, "duration_seconds": duration}
            )
        translated = as_database_error(exc)
        if translated is not None:
            raise translated from exc
        return False
