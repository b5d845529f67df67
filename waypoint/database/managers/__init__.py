#!/usr/bin/env python3
"""
managers package
--------------------
Entity managers for the Waypoint journal store.

Available Managers:
    BaseManager: Abstract base class with lock-retry utilities
    EntityManager: Schema-driven manager for every syncable entity type

Usage:
    from waypoint.database.managers import EntityManager

    trips = EntityManager(session, EntityType.TRIP, identity, logger)
"""
from .base_manager import BaseManager
from .entity_manager import EntityManager

__all__ = ["BaseManager", "EntityManager"]
