#!/usr/bin/env python3
"""
dependency_resolver.py
--------------------
Static ordering of entity types for a sync cycle.

An entity type may only be synced once every type it references exists
remotely. The graph below lists, for each type, the types it depends on:

    TagCategory  ->  Tag
    Trip         ->  Memory  ->  MediaItem
    Trip         ->  GPXTrack
    Memory       ->  GPXTrack          (optional parent)
    Tag          ->  Memory            (membership)
    BucketList   ->  Memory            (membership)
    GPXTrack     ->  TrackSegment

The graph is hand-specified, never discovered at runtime. A cycle is a
configuration error raised when the resolver is built.

Usage:
    resolver = DependencyResolver()
    for entity_type in resolver.resolve_sync_order():
        ...
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from collections import deque
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set

# --- Local imports ---
from waypoint.core.exceptions import ConfigurationError
from waypoint.database.models.enums import EntityType


# entity type -> types that must be synced before it
DEFAULT_DEPENDENCIES: Dict[EntityType, FrozenSet[EntityType]] = {
    EntityType.TAG_CATEGORY: frozenset(),
    EntityType.TAG: frozenset({EntityType.TAG_CATEGORY}),
    EntityType.BUCKET_LIST_ITEM: frozenset(),
    EntityType.TRIP: frozenset(),
    EntityType.MEMORY: frozenset(
        {EntityType.TRIP, EntityType.TAG, EntityType.BUCKET_LIST_ITEM}
    ),
    EntityType.MEDIA_ITEM: frozenset({EntityType.MEMORY}),
    EntityType.GPX_TRACK: frozenset({EntityType.TRIP, EntityType.MEMORY}),
    EntityType.TRACK_SEGMENT: frozenset({EntityType.GPX_TRACK}),
}


class DependencyResolver:
    """
    Deterministic topological order over entity types.

    Attributes:
        graph: Direct dependencies of every entity type
    """

    def __init__(
        self, graph: Optional[Mapping[EntityType, Iterable[EntityType]]] = None
    ) -> None:
        """
        Args:
            graph: Dependency mapping; defaults to DEFAULT_DEPENDENCIES

        Raises:
            ConfigurationError: If the graph contains a cycle
        """
        source = DEFAULT_DEPENDENCIES if graph is None else graph
        self.graph: Dict[EntityType, FrozenSet[EntityType]] = {}
        for entity_type, dependencies in source.items():
            self.graph[EntityType(entity_type)] = frozenset(
                EntityType(dep) for dep in dependencies
            )
        for dependencies in list(self.graph.values()):
            for dep in dependencies:
                self.graph.setdefault(dep, frozenset())

        self._order = self._topological_sort()

    def _topological_sort(self) -> List[EntityType]:
        """Kahn's algorithm, ready types taken in EntityType declaration order."""
        remaining = {t: set(deps) for t, deps in self.graph.items()}
        dependents: Dict[EntityType, Set[EntityType]] = {t: set() for t in self.graph}
        for entity_type, deps in self.graph.items():
            for dep in deps:
                dependents[dep].add(entity_type)

        ready = deque(sorted((t for t, d in remaining.items() if not d), key=_position))
        order: List[EntityType] = []
        while ready:
            current = ready.popleft()
            order.append(current)
            released = []
            for child in dependents[current]:
                remaining[child].discard(current)
                if not remaining[child]:
                    released.append(child)
            ready.extend(released)
            ready = deque(sorted(ready, key=_position))

        if len(order) != len(self.graph):
            stuck = sorted((t for t in self.graph if t not in order), key=_position)
            raise ConfigurationError(
                "Dependency cycle among entity types: "
                + ", ".join(t.value for t in stuck)
            )
        return order

    def resolve_sync_order(self) -> List[EntityType]:
        """Entity types such that every dependency precedes its dependents."""
        return list(self._order)

    def get_dependencies(self, entity_type: EntityType) -> FrozenSet[EntityType]:
        """Direct predecessors of `entity_type`."""
        return self.graph.get(EntityType(entity_type), frozenset())

    def get_dependents(self, entity_type: EntityType) -> Set[EntityType]:
        """Every type that depends on `entity_type`, directly or not."""
        entity_type = EntityType(entity_type)
        found: Set[EntityType] = set()
        frontier = [entity_type]
        while frontier:
            current = frontier.pop()
            for candidate, deps in self.graph.items():
                if current in deps and candidate not in found:
                    found.add(candidate)
                    frontier.append(candidate)
        return found


def _position(entity_type: EntityType) -> int:
    return entity_type.position
