#!/usr/bin/env python3
"""
auth.py
--------------------
Credential source for the remote backend.

The engine only needs to know whether a credential exists and what it is;
acquiring and refreshing it is the host application's concern.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from abc import ABC, abstractmethod
from typing import Optional


class AuthProvider(ABC):
    """Source of the bearer credential attached to every remote request."""

    @abstractmethod
    def is_authenticated(self) -> bool:
        ...

    @abstractmethod
    def get_token(self) -> Optional[str]:
        ...


class StaticTokenProvider(AuthProvider):
    """Fixed token, e.g. from the command line or an environment variable."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token.strip() if token else None

    def is_authenticated(self) -> bool:
        return bool(self._token)

    def get_token(self) -> Optional[str]:
        return self._token

    def clear(self) -> None:
        """Forget the token after the backend rejected it."""
        self._token = None
