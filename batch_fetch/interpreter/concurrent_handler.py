# Copyright 2021-present Kensho Technologies, LLC.
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from funcy import ldistinct, project

from ..cache import InMemoryCache
from ..environment import FetchEnv, Round
from ..exceptions import MissingIdentities
from ..program import Batch, ConcurrentGroup, Query, Single
from ..typedefs import DataSourceName, FetchConfig
from .leaf_handlers import call_data_source, fetch_many_in_batches
from .partitioning import partition_queries


logger = logging.getLogger(__name__)

QueryResult = Mapping[Any, Any]


async def _run_query_as_mapping(query: Query) -> Dict[Any, Any]:
    """Perform the query's I/O, producing a mapping of identifier -> result for what was found."""
    data_source = query.data_source
    if isinstance(query, Single):
        result = await call_data_source(data_source, data_source.fetch_one(query.identifier))
        return {} if result is None else {query.identifier: result}
    elif isinstance(query, Batch):
        fetched = await fetch_many_in_batches(data_source, frozenset(query.identifiers))
        return project(fetched, query.identifiers)
    else:
        raise AssertionError(f"Unexpected query type '{type(query).__name__}': {query}")


async def _execute_queries(queries: Sequence[Query]) -> List[Dict[Any, Any]]:
    """Run the I/O for all the queries concurrently, waiting for every one of them to settle.

    A failed query does not cancel its siblings. Once every query has either completed or failed,
    the first failure in query order is raised.
    """
    outcomes = await asyncio.gather(
        *(_run_query_as_mapping(query) for query in queries), return_exceptions=True
    )

    results: List[Dict[Any, Any]] = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
        results.append(outcome)
    return results


def _find_missing_identities(
    queries_and_results: Sequence[Tuple[Query, QueryResult]]
) -> Dict[DataSourceName, List[Any]]:
    """Collect, per data source name, the identifiers of every query that were not fetched."""
    missing: Dict[DataSourceName, List[Any]] = {}
    for query, result in queries_and_results:
        missing_identifiers = [
            identifier for identifier in query.identifiers if identifier not in result
        ]
        if missing_identifiers:
            missing.setdefault(query.data_source.name, []).extend(missing_identifiers)
    return {name: ldistinct(identifiers) for name, identifiers in missing.items()}


async def handle_concurrent_group(
    node: ConcurrentGroup, env: FetchEnv, config: FetchConfig
) -> Tuple[FetchEnv, InMemoryCache]:
    """Execute all the group's queries as a single round, deduplicating against the cache.

    The value produced is an InMemoryCache holding the results of every query in the group,
    whether they came from the environment's cache or from this round's I/O. Since the
    environment's cache is allowed to evict entries, this group-scoped cache is the only reliable
    place from which to read the group's results.
    """
    cache = env.cache
    group_partition = partition_queries(node.queries, cache)
    cached_results = InMemoryCache(group_partition.cached_results)

    if group_partition.fully_resolved:
        logger.debug(
            "Resolved all %d queries of a concurrent group from the cache.", len(node.queries)
        )
        return env, cached_results

    pending_queries = group_partition.pending_queries
    start_time = config.clock()
    results = await _execute_queries(pending_queries)
    end_time = config.clock()

    queries_and_results = tuple(zip(pending_queries, results))
    missing = _find_missing_identities(queries_and_results)
    if missing:
        raise MissingIdentities(missing)

    # The environment's cache may discard entries, so the results are also gathered into
    # a separate cache that lives only as long as this group's value.
    new_cache = cache
    group_cache = InMemoryCache.empty()
    for query, result in queries_and_results:
        new_cache = new_cache.cache_results(result, query.data_source)
        group_cache = group_cache.cache_results(result, query.data_source)

    new_round = Round(
        cache,
        ConcurrentGroup(pending_queries),
        queries_and_results,
        start_time,
        end_time,
        dict(group_cache.items()),
    )
    logger.debug(
        "Fetched %d queries across %d data sources in one round of %d ns.",
        len(pending_queries),
        len({query.data_source.name for query in pending_queries}),
        new_round.duration,
    )
    return env.evolve(new_round, new_cache), group_cache.combine(cached_results)
