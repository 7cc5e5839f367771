# Copyright 2021-present Kensho Technologies, LLC.
import asyncio
from typing import Any, Tuple

from ..environment import FetchEnv
from ..program import Batch, ConcurrentGroup, Failure, FetchNode, Join, Single
from ..typedefs import DEFAULT_FETCH_CONFIG, FetchConfig
from .concurrent_handler import handle_concurrent_group
from .leaf_handlers import handle_batch, handle_failure, handle_single


def combine_join_environments(
    start_env: FetchEnv, left_env: FetchEnv, right_env: FetchEnv
) -> FetchEnv:
    """Combine the environments produced by concurrently interpreting the two sides of a Join.

    Both sides started from start_env. The combined environment is the left side's environment,
    followed by every round the right side appended, with each of those rounds' fetched entries
    written into the left side's cache.
    """
    combined_env = left_env
    for right_round in right_env.rounds.rounds_since(start_env.rounds):
        new_cache = combined_env.cache
        for identity, value in right_round.fetched.items():
            new_cache = new_cache.update(identity, value)
        combined_env = combined_env.evolve(right_round, new_cache)
    return combined_env


async def handle_join(
    node: Join, env: FetchEnv, config: FetchConfig
) -> Tuple[FetchEnv, Tuple[Any, Any]]:
    if not config.parallel_join:
        left_env, left_value = await interpret(node.left, env, config)
        right_env, right_value = await interpret(node.right, left_env, config)
        return right_env, (left_value, right_value)

    # Data source calls already dispatched by either side are never cancelled. Both sides settle
    # before the join fails with the first failure in left-to-right order.
    left_outcome, right_outcome = await asyncio.gather(
        interpret(node.left, env, config),
        interpret(node.right, env, config),
        return_exceptions=True,
    )
    for outcome in (left_outcome, right_outcome):
        if isinstance(outcome, BaseException):
            raise outcome

    left_env, left_value = left_outcome
    right_env, right_value = right_outcome
    return combine_join_environments(env, left_env, right_env), (left_value, right_value)


async def interpret(
    node: FetchNode, env: FetchEnv, config: FetchConfig = DEFAULT_FETCH_CONFIG
) -> Tuple[FetchEnv, Any]:
    """Interpret the fetch program rooted at the given node, starting from the given environment.

    Args:
        node: root of the fetch program to interpret
        env: environment holding the cache to consult and the rounds performed so far
        config: options controlling the interpretation

    Returns:
        tuple (new_env, value), where new_env holds the updated cache and any new rounds appended
        after those in env, and value is the result of the fetch program:
        - for Single, the fetched value;
        - for Batch, the list of fetched values in the order of the requested identifiers;
        - for ConcurrentGroup, an InMemoryCache with the results of all the queries in the group;
        - for Join, the tuple (left_value, right_value).

    Raises:
        NotFound, MissingIdentities or UnhandledException, if the program could not be completed.
    """
    handler_functions = {
        Single: handle_single,
        Batch: handle_batch,
        ConcurrentGroup: handle_concurrent_group,
        Join: handle_join,
        Failure: handle_failure,
    }
    handler = handler_functions.get(type(node), None)
    if handler is None:
        raise AssertionError(f"Unexpected fetch node type '{type(node).__name__}': {node}")

    return await handler(node, env, config)  # type: ignore[operator]
