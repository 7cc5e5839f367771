# Copyright 2021-present Kensho Technologies, LLC.
import asyncio
import logging
from typing import Any, Awaitable, Dict, FrozenSet, List, Mapping, Tuple, TypeVar

from funcy import chunks, ldistinct, merge, project

from ..data_source import DataSource
from ..environment import FetchEnv, Round
from ..exceptions import FetchError, MissingIdentities, NotFound, UnhandledException
from ..program import Batch, Failure, Single
from ..typedefs import FetchConfig, IdT, ResultT
from .partitioning import partition_query


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_data_source(data_source: DataSource, request: Awaitable[T]) -> T:
    """Await a data source call, wrapping any failure it raises into an UnhandledException."""
    try:
        return await request
    except FetchError:
        raise
    except Exception as e:
        logger.warning("Data source %r raised %s during a fetch.", data_source, type(e).__name__)
        raise UnhandledException(e) from e


async def fetch_many_in_batches(
    data_source: DataSource[IdT, ResultT], identifiers: FrozenSet[IdT]
) -> Dict[IdT, ResultT]:
    """Call fetch_many() on the data source, honoring the source's batching options."""
    max_batch_size = data_source.max_batch_size
    if max_batch_size is not None and max_batch_size < 1:
        raise ValueError(
            f"Expected None or a positive max_batch_size for data source {data_source!r}, got: "
            f"{max_batch_size}"
        )
    if max_batch_size is None or len(identifiers) <= max_batch_size:
        return dict(await call_data_source(data_source, data_source.fetch_many(identifiers)))

    identifier_batches = [frozenset(batch) for batch in chunks(max_batch_size, list(identifiers))]
    logger.debug(
        "Splitting a fetch of %d identifiers from %r into %d batches executed in %s.",
        len(identifiers),
        data_source,
        len(identifier_batches),
        data_source.batch_execution,
    )

    batch_results: List[Mapping[IdT, ResultT]]
    if data_source.batch_execution == "parallel":
        batch_results = await asyncio.gather(
            *(
                call_data_source(data_source, data_source.fetch_many(batch))
                for batch in identifier_batches
            )
        )
    elif data_source.batch_execution == "sequential":
        batch_results = []
        for batch in identifier_batches:
            batch_results.append(
                await call_data_source(data_source, data_source.fetch_many(batch))
            )
    else:
        raise AssertionError(
            f"Unexpected batch execution mode {data_source.batch_execution} "
            f"for data source {data_source}."
        )

    return merge(*(dict(batch_result) for batch_result in batch_results))


async def handle_single(
    node: Single, env: FetchEnv, config: FetchConfig
) -> Tuple[FetchEnv, Any]:
    data_source = node.data_source
    identity = data_source.identity(node.identifier)

    cached_value = env.cache.get(identity)
    if cached_value is not None:
        logger.debug("Resolved %s from the cache.", identity)
        return env, cached_value

    start_time = config.clock()
    result = await call_data_source(data_source, data_source.fetch_one(node.identifier))
    end_time = config.clock()

    if result is None:
        raise NotFound(node)

    new_cache = env.cache.update(identity, result)
    new_round = Round(env.cache, node, result, start_time, end_time, {identity: result})
    logger.debug("Fetched 1 identifier from %r in %d ns.", data_source, new_round.duration)
    return env.evolve(new_round, new_cache), result


async def handle_batch(
    node: Batch, env: FetchEnv, config: FetchConfig
) -> Tuple[FetchEnv, List[Any]]:
    data_source = node.data_source
    query_partition = partition_query(node, env.cache)
    if query_partition.fully_resolved:
        logger.debug(
            "Resolved all %d identifiers for %r from the cache.",
            len(node.identifiers),
            data_source,
        )
        return env, [query_partition.resolved[identifier] for identifier in node.identifiers]

    start_time = config.clock()
    fetched = await fetch_many_in_batches(data_source, frozenset(query_partition.pending))
    end_time = config.clock()

    # Only the pending identifiers were requested; anything else the source returned is ignored.
    fetched = project(fetched, query_partition.pending)
    results_by_identifier = merge(fetched, query_partition.resolved)

    missing_identifiers = ldistinct(
        identifier for identifier in node.identifiers if identifier not in results_by_identifier
    )
    if missing_identifiers:
        raise MissingIdentities({data_source.name: missing_identifiers})

    results = [results_by_identifier[identifier] for identifier in node.identifiers]
    new_cache = env.cache.cache_results(fetched, data_source)
    new_round = Round(
        env.cache,
        Batch(query_partition.pending, data_source),
        results,
        start_time,
        end_time,
        {data_source.identity(identifier): value for identifier, value in fetched.items()},
    )
    logger.debug(
        "Fetched %d of %d identifiers from %r in %d ns.",
        len(fetched),
        len(node.identifiers),
        data_source,
        new_round.duration,
    )
    return env.evolve(new_round, new_cache), results


async def handle_failure(
    node: Failure, env: FetchEnv, config: FetchConfig
) -> Tuple[FetchEnv, Any]:
    raise UnhandledException(node.error) from node.error
