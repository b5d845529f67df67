#!/usr/bin/env python3
"""
logging_manager.py
--------------------
Rotating file logs for the sync engine.

Each component (cli, database, sync, queue) writes to `<component>.log`
in the data home's log directory; errors from every component also land
in the shared `errors.log`. Warnings are echoed to the console.

Components take an optional logger; `safe_logger` turns a missing one
into a no-op so call sites never branch on it.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import json
import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

# --- Third party imports ---
import click

FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(funcName)s:%(lineno)d] %(message)s"
CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def format_cli_error(error: Exception) -> str:
    """One-line message shown to CLI users."""
    return f"❌ {type(error).__name__}: {error}"


def _format_details(details: Optional[Dict[str, Any]]) -> str:
    return f": {json.dumps(details, default=str, sort_keys=True)}" if details else ""


def _rotating_handler(
    path: Path, level: int, max_bytes: int, backup_count: int
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


class WaypointLogger:
    """
    Per-component logger with rotation.

    Attributes:
        log_dir: Directory for log files
        component_name: Component label, also the log file stem
        main_logger: Component logger (DEBUG and up)
        error_logger: Shared error logger (ERROR only)
    """

    def __init__(
        self,
        log_dir: Path,
        component_name: str = "waypoint",
        max_bytes: int = 5 * 1024 * 1024,
        backup_count: int = 3,
    ) -> None:
        """
        Args:
            log_dir: Directory for log files, created if missing
            component_name: e.g. 'cli', 'sync', 'queue'
            max_bytes: Size that triggers rotation
            backup_count: Rotated files kept per log
        """
        self.log_dir = Path(log_dir)
        self.component_name = component_name
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.main_logger = self._fresh_logger("operations", logging.DEBUG)
        self.main_logger.addHandler(
            _rotating_handler(
                self.log_dir / f"{component_name}.log", logging.DEBUG, max_bytes, backup_count
            )
        )
        console = logging.StreamHandler()
        console.setLevel(logging.WARNING)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        self.main_logger.addHandler(console)

        self.error_logger = self._fresh_logger("errors", logging.ERROR)
        self.error_logger.addHandler(
            _rotating_handler(
                self.log_dir / "errors.log", logging.ERROR, max_bytes, backup_count
            )
        )

    def _fresh_logger(self, channel: str, level: int) -> logging.Logger:
        # Handlers of an earlier instance for the same component are dropped
        logger = logging.getLogger(f"waypoint.{self.component_name}.{channel}")
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(level)
        logger.propagate = False
        return logger

    def close(self) -> None:
        """Flush and detach this logger's handlers."""
        for logger in (self.main_logger, self.error_logger):
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)

    # ---- Writers ----
    def log_operation(self, operation: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Record a finished operation with its details."""
        self.main_logger.info(f"OPERATION - {operation}{_format_details(details or {})}")

    def log_debug(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.main_logger.debug(f"DEBUG - {message}{_format_details(details)}")

    def log_info(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.main_logger.info(f"INFO - {message}{_format_details(details)}")

    def log_warning(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.main_logger.warning(f"WARNING - {message}{_format_details(details)}")

    def log_error(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Write an error to errors.log.

        Sync errors add their category and retry flag to the context. The
        traceback is included when called while the error is being handled.
        """
        context = dict(context or {})
        category = getattr(error, "category", None)
        if category is not None:
            context.setdefault("category", category)
            context.setdefault("retryable", getattr(error, "retryable", False))

        lines = [f"ERROR - {type(error).__name__}: {error}"]
        if context:
            lines.append("Context: " + ", ".join(f"{k}={v}" for k, v in context.items()))
        if sys.exc_info()[0] is not None:
            lines.append(f"Traceback:\n{traceback.format_exc()}")
        self.error_logger.error("\n".join(lines))

    def log_cli_error(
        self,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        show_traceback: bool = False,
    ) -> str:
        """
        Log an error raised under a CLI command and format it for display.

        Examples:
            >>> logger.log_cli_error(NetworkError("Request timed out"))
            '❌ NetworkError: Request timed out'
        """
        self.log_error(error, context or {"source": "cli"})
        message = format_cli_error(error)
        if show_traceback:
            return f"{message}\n\n{traceback.format_exc()}"
        return message


class NullLogger:
    """Stand-in with the WaypointLogger interface that writes nothing."""

    def log_operation(self, operation: str, details: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_error(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_debug(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_info(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_warning(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_cli_error(
        self,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        show_traceback: bool = False,
    ) -> str:
        return format_cli_error(error)


_null_logger = NullLogger()


def safe_logger(logger: Optional[WaypointLogger]) -> WaypointLogger:
    """The given logger, or the shared NullLogger for None."""
    return logger if logger is not None else _null_logger  # type: ignore[return-value]


def handle_cli_error(
    ctx: "click.Context",
    error: Exception,
    operation: str,
    additional_context: Optional[Dict[str, Any]] = None,
    exit_code: int = 1,
) -> None:
    """
    Report a failed CLI command and exit.

    The error is logged through ctx.obj["logger"] with the operation name
    and any extra context; the message goes to stderr, with a traceback
    when ctx.obj["verbose"] is set. Never returns.
    """
    context = {"operation": operation, **(additional_context or {})}
    message = safe_logger(ctx.obj.get("logger")).log_cli_error(
        error, context, show_traceback=ctx.obj.get("verbose", False)
    )
    click.echo(message, err=True)
    sys.exit(exit_code)
