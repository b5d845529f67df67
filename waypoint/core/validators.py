#!/usr/bin/env python3
"""
validators.py
--------------------
Data validation and normalization utilities for Waypoint.

Provides type-safe conversion used by entity schemas, the settings
loader and the remote payload parser.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import ValidationError

BOOL_WORDS = {
    "true": True, "yes": True, "on": True, "1": True, 1: True,
    "false": False, "no": False, "off": False, "0": False, 0: False,
}


class DataValidator:
    """Centralized data validation for sync payloads and settings."""

    @staticmethod
    def missing_fields(data: Dict[str, Any], required_fields: Iterable[str]) -> List[str]:
        """Return the required fields that are absent or empty."""
        return [
            field
            for field in required_fields
            if field not in data or data[field] is None or data[field] == ""
        ]

    @staticmethod
    def ensure_utc(value: datetime) -> datetime:
        """
        Return `value` as a timezone-aware UTC datetime.

        Naive datetimes are taken to already be in UTC.
        """
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @staticmethod
    def normalize_datetime(value: Any) -> Optional[datetime]:
        """
        Normalize datetime or ISO-8601 string input to an aware UTC datetime.

        Args:
            value: datetime, ISO-8601 string (a trailing 'Z' is accepted) or None

        Returns:
            Aware UTC datetime or None

        Raises:
            ValidationError: If the value cannot be parsed
        """
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return DataValidator.ensure_utc(value)
        if isinstance(value, str):
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                return DataValidator.ensure_utc(datetime.fromisoformat(text))
            except ValueError as e:
                raise ValidationError(f"Invalid timestamp '{value}'") from e
        raise ValidationError(f"Cannot convert {type(value).__name__} to datetime")

    @staticmethod
    def normalize_string(value: Any) -> Optional[str]:
        """Stripped text; None stays None."""
        return None if value is None else str(value).strip()

    @staticmethod
    def normalize_bool(value: Any) -> Optional[bool]:
        """
        Interpret flags from YAML, JSON payloads and the CLI.

        Accepts booleans, 0/1 and the words in BOOL_WORDS (any case).

        Raises:
            ValidationError: For any other value
        """
        if value is None or isinstance(value, bool):
            return value
        key = value.strip().lower() if isinstance(value, str) else value
        try:
            return BOOL_WORDS[key]
        except (KeyError, TypeError):
            raise ValidationError(f"Cannot convert '{value}' to boolean") from None

    @staticmethod
    def normalize_int(value: Any) -> Optional[int]:
        """
        Convert value to integer.

        Raises:
            ValidationError: For booleans, fractional floats and non-numeric text
        """
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValidationError(f"Cannot convert boolean '{value}' to integer")
        if isinstance(value, float) and not value.is_integer():
            raise ValidationError(f"Cannot convert '{value}' to integer without loss")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Cannot convert '{value}' to integer") from e

    @staticmethod
    def normalize_float(value: Any) -> Optional[float]:
        """
        Convert value to float.

        Raises:
            ValidationError: For booleans and non-numeric text
        """
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValidationError(f"Cannot convert boolean '{value}' to float")
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Cannot convert '{value}' to float") from e
