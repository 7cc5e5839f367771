# Copyright 2021-present Kensho Technologies, LLC.
from abc import ABCMeta, abstractmethod
from typing import Any, Dict, Iterator, Mapping, Optional, TypeVar

from funcy import merge

from .data_source import DataSource
from .typedefs import DataSourceIdentity, IdT, ResultT


DataSourceCacheT = TypeVar("DataSourceCacheT", bound="DataSourceCache")


class DataSourceCache(metaclass=ABCMeta):
    """Base class for the caches consulted by the interpreter before performing any I/O.

    Caches are treated as immutable values: update() and cache_results() return a new cache
    and leave the original untouched, and the interpreter threads the returned cache forward.

    Implementations are allowed to discard entries at any time (e.g. to bound their size),
    so get() after update() for the same identity may return None. The interpreter tolerates this.
    """

    @abstractmethod
    def get(self, identity: DataSourceIdentity) -> Optional[Any]:
        """Return the value cached for the given identity, or None if there is none."""

    @abstractmethod
    def update(
        self: DataSourceCacheT, identity: DataSourceIdentity, value: Any
    ) -> DataSourceCacheT:
        """Return a new cache that additionally maps the given identity to the given value."""

    def cache_results(
        self: DataSourceCacheT,
        results: Mapping[IdT, ResultT],
        data_source: DataSource[IdT, ResultT],
    ) -> DataSourceCacheT:
        """Return a new cache including all results, keyed via the data source's identities."""
        cache = self
        for identifier, value in results.items():
            cache = cache.update(data_source.identity(identifier), value)
        return cache

    def get_with_data_source(
        self, data_source: DataSource[IdT, ResultT], identifier: IdT
    ) -> Optional[ResultT]:
        """Return the value cached for the given raw identifier of the given data source."""
        return self.get(data_source.identity(identifier))


class InMemoryCache(DataSourceCache):
    """A never-evicting cache backed by a dict that is never mutated after construction."""

    __slots__ = ("_state",)

    _state: Dict[DataSourceIdentity, Any]

    def __init__(self, state: Optional[Mapping[DataSourceIdentity, Any]] = None) -> None:
        """Initialize the InMemoryCache with a private copy of the given entries."""
        self._state = dict(state) if state is not None else {}

    @classmethod
    def empty(cls) -> "InMemoryCache":
        return cls()

    @classmethod
    def from_results(cls, *seeds: Any) -> "InMemoryCache":
        """Build a cache from (data_source, {identifier: value}) pairs.

        For example:
            InMemoryCache.from_results((users, {1: alice, 2: bob}), (posts, {10: first_post}))
        """
        state: Dict[DataSourceIdentity, Any] = {}
        for data_source, results in seeds:
            for identifier, value in results.items():
                state[data_source.identity(identifier)] = value
        return cls(state)

    def get(self, identity: DataSourceIdentity) -> Optional[Any]:
        return self._state.get(identity, None)

    def update(self, identity: DataSourceIdentity, value: Any) -> "InMemoryCache":
        return InMemoryCache(merge(self._state, {identity: value}))

    def cache_results(
        self, results: Mapping[IdT, ResultT], data_source: DataSource[IdT, ResultT]
    ) -> "InMemoryCache":
        # Builds the new state in one pass instead of copying it once per result.
        new_entries = {
            data_source.identity(identifier): value for identifier, value in results.items()
        }
        return InMemoryCache(merge(self._state, new_entries))

    def combine(self, other: "InMemoryCache") -> "InMemoryCache":
        """Return the union of both caches; entries from the other cache win on conflicts."""
        return InMemoryCache(merge(self._state, other._state))  # pylint: disable=protected-access

    __or__ = combine

    def items(self) -> Iterator:
        return iter(self._state.items())

    def __contains__(self, identity: object) -> bool:
        return identity in self._state

    def __len__(self) -> int:
        return len(self._state)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, InMemoryCache):
            return NotImplemented
        return self._state == other._state  # pylint: disable=protected-access

    def __repr__(self) -> str:
        return f"InMemoryCache({self._state!r})"
