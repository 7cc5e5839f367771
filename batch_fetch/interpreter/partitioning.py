# Copyright 2021-present Kensho Technologies, LLC.
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Sequence, Tuple

from funcy import ldistinct

from ..cache import DataSourceCache
from ..program import Batch, Query, Single
from ..typedefs import DataSourceIdentity, IdT, ResultT


@dataclass(frozen=True)
class QueryPartition(Generic[IdT, ResultT]):
    """The split of a query's identifiers into those found in the cache and those to be fetched."""

    query: Query
    resolved: Dict[IdT, ResultT]  # raw identifier -> cached value
    pending: Tuple[IdT, ...]  # distinct uncached identifiers, in request order

    @property
    def fully_resolved(self) -> bool:
        return not self.pending

    def remaining_query(self) -> Query:
        """Return the query that fetches exactly the pending identifiers."""
        if not self.pending:
            raise AssertionError(
                f"Requested the remaining query of a fully cached query, which does not exist. "
                f"This is a bug. Query: {self.query}"
            )

        data_source = self.query.data_source
        if len(self.pending) == 1:
            return Single(self.pending[0], data_source)
        return Batch(self.pending, data_source)


@dataclass(frozen=True)
class GroupPartition:
    """The split of a group of queries into group-wide cached results and queries to fetch."""

    cached_results: Dict[DataSourceIdentity, Any]
    pending_queries: List[Query]

    @property
    def fully_resolved(self) -> bool:
        return not self.pending_queries


def partition_query(query: Query, cache: DataSourceCache) -> QueryPartition:
    """Probe the cache for each of the query's identifiers, independently of one another."""
    data_source = query.data_source

    resolved: Dict[Any, Any] = {}
    pending: List[Any] = []
    for identifier in query.identifiers:
        if identifier in resolved:
            continue

        cached_value = cache.get_with_data_source(data_source, identifier)
        if cached_value is None:
            pending.append(identifier)
        else:
            resolved[identifier] = cached_value

    if not resolved and not pending:
        raise AssertionError(
            f"Partitioning produced neither cached nor pending identifiers for query {query}, "
            f"which should be impossible since queries are never empty. This is a bug."
        )

    return QueryPartition(query, resolved, tuple(ldistinct(pending)))


def partition_queries(queries: Sequence[Query], cache: DataSourceCache) -> GroupPartition:
    """Partition every query of a group, accumulating the cached results across the whole group."""
    cached_results: Dict[DataSourceIdentity, Any] = {}
    pending_queries: List[Query] = []

    for query in queries:
        query_partition = partition_query(query, cache)
        data_source = query.data_source
        for identifier, value in query_partition.resolved.items():
            cached_results[data_source.identity(identifier)] = value

        if not query_partition.fully_resolved:
            pending_queries.append(query_partition.remaining_query())

    return GroupPartition(cached_results, pending_queries)
