"""Filterable item repositories.

Tracks a collection of filterable items (hooks, included modules, shared
behaviours …) and answers "which items apply to this metadata?".

Two implementations, optimised for different uses:

* **UpdateOptimizedRepository**: ``append``/``prepend`` do no extra work and
  nothing is memoised. Ideal for a single example or group that is updated
  several times but rarely queried.
* **QueryOptimizedRepository**: registration clears the memo and records
  which metadata keys matter. The first query for a given set of applicable
  metadata is O(N); later queries with an equal set are O(1). Ideal for
  process-wide configuration registered up front and queried for every
  example and group.

Both return matching items as a tuple in registration order (prepended
items first).
"""
from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Hashable, Iterator, Mapping
from typing import Any

from tagfilter.match_values import FilterSpec, compile_filter_spec
from tagfilter.metadata_filter import MatchMode, MetadataFilter, validate_mode

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Projection key
# ---------------------------------------------------------------------------

def _freeze(value: Any) -> Hashable:
    """Hashable, order-independent stand-in for a metadata value."""
    if isinstance(value, Mapping):
        return ("mapping", frozenset((k, _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return (type(value).__name__, tuple(_freeze(v) for v in value))
    if isinstance(value, (set, frozenset)):
        return ("set", frozenset(_freeze(v) for v in value))
    if isinstance(value, float) and math.isnan(value):
        # nan != nan would give every lookup its own cache entry.
        return ("float", "nan")
    try:
        hash(value)
    except TypeError:
        # Identity is stable while the projection holding ``value`` is cached.
        return ("id", type(value).__qualname__, id(value))
    # Type is part of the key: True == 1 but their string forms differ.
    return (type(value).__qualname__, value)


class ProjectedMetadata(Mapping[Hashable, Any]):
    """Metadata restricted to the keys some registered filter cares about.

    Two projections with equal entries are equal and hash alike regardless
    of the insertion order of the metadata they were copied from.
    """

    __slots__ = ("_data", "_frozen")

    def __init__(self, data: dict[Hashable, Any]) -> None:
        self._data = data
        self._frozen = frozenset((k, _freeze(v)) for k, v in data.items())

    def __getitem__(self, key: Hashable) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __hash__(self) -> int:
        return hash(self._frozen)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ProjectedMetadata):
            return self._frozen == other._frozen
        return super().__eq__(other)

    def __repr__(self) -> str:
        return f"ProjectedMetadata({self._data!r})"


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------

class UpdateOptimizedRepository[T]:
    """O(1) registration, O(N) lookups, no memoization."""

    def __init__(
        self,
        mode: MatchMode,
        *,
        metadata_filter: MetadataFilter | None = None,
    ) -> None:
        self._mode = validate_mode(mode)
        self._metadata_filter = metadata_filter or MetadataFilter()
        self._items_and_filters: deque[tuple[T, FilterSpec]] = deque()

    @property
    def mode(self) -> MatchMode:
        return self._mode

    @property
    def items_and_filters(self) -> tuple[tuple[T, FilterSpec], ...]:
        return tuple(self._items_and_filters)

    def __len__(self) -> int:
        return len(self._items_and_filters)

    def append(self, item: T, filters: Mapping[Hashable, Any] | FilterSpec | None) -> None:
        self._items_and_filters.append((item, compile_filter_spec(filters)))

    def prepend(self, item: T, filters: Mapping[Hashable, Any] | FilterSpec | None) -> None:
        self._items_and_filters.appendleft((item, compile_filter_spec(filters)))

    def items_for(self, metadata: Mapping[Hashable, Any]) -> tuple[T, ...]:
        return self._find_items_for(metadata)

    def _find_items_for(self, metadata: Mapping[Hashable, Any]) -> tuple[T, ...]:
        apply = self._metadata_filter.apply
        mode = self._mode
        return tuple(
            item
            for item, spec in self._items_and_filters
            if spec.is_empty or apply(mode, spec, metadata)
        )


class QueryOptimizedRepository[T](UpdateOptimizedRepository[T]):
    """Memoizes lookups keyed by the applicable subset of the query metadata.

    Lookups touching a key whose filter holds a predicate (or a location/id
    rule) are never memoized: their outcome can change for equal metadata.
    A top-level location/id rule walks the ancestor chain, which no
    projection captures, so its presence disables memoization entirely.
    """

    def __init__(
        self,
        mode: MatchMode,
        *,
        metadata_filter: MetadataFilter | None = None,
    ) -> None:
        super().__init__(mode, metadata_filter=metadata_filter)
        self._applicable_keys: dict[Hashable, None] = {}
        self._volatile_keys: set[Hashable] = set()
        self._has_context_rules = False
        self._memoized_lookups: dict[ProjectedMetadata, tuple[T, ...]] = {}

    @property
    def applicable_keys(self) -> tuple[Hashable, ...]:
        return tuple(self._applicable_keys)

    @property
    def volatile_keys(self) -> frozenset[Hashable]:
        return frozenset(self._volatile_keys)

    @property
    def cache_size(self) -> int:
        return len(self._memoized_lookups)

    def append(self, item: T, filters: Mapping[Hashable, Any] | FilterSpec | None) -> None:
        spec = compile_filter_spec(filters)
        super().append(item, spec)
        self._handle_mutation(spec)

    def prepend(self, item: T, filters: Mapping[Hashable, Any] | FilterSpec | None) -> None:
        spec = compile_filter_spec(filters)
        super().prepend(item, spec)
        self._handle_mutation(spec)

    def items_for(self, metadata: Mapping[Hashable, Any]) -> tuple[T, ...]:
        # Projecting onto the keys our filters use is what makes the memo
        # useful: examples differ in location and description, but e.g. with
        # a single ``{"db": True}`` filter they split into just two groups.
        if self._has_context_rules:
            return self._find_items_for(metadata)

        applicable = self._applicable_metadata_from(metadata)
        if any(key in self._volatile_keys for key in applicable):
            log.debug("Bypassing lookup cache for %r", applicable)
            return self._find_items_for(metadata)

        cached = self._memoized_lookups.get(applicable)
        if cached is not None:
            return cached

        log.debug("Lookup cache miss for %r", applicable)
        found = self._find_items_for(applicable)
        self._memoized_lookups[applicable] = found
        return found

    def _handle_mutation(self, spec: FilterSpec) -> None:
        self._applicable_keys.update(dict.fromkeys(spec.keys()))
        self._volatile_keys.update(spec.volatile_keys())
        self._has_context_rules = self._has_context_rules or spec.has_context_rule
        if self._memoized_lookups:
            log.debug("Clearing %d memoized lookups", len(self._memoized_lookups))
        self._memoized_lookups.clear()

    def _applicable_metadata_from(self, metadata: Mapping[Hashable, Any]) -> ProjectedMetadata:
        return ProjectedMetadata(
            {key: metadata[key] for key in self._applicable_keys if key in metadata}
        )
