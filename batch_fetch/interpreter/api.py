# Copyright 2021-present Kensho Technologies, LLC.
import logging
from typing import Any, Optional, Tuple

from ..cache import DataSourceCache
from ..environment import FetchEnv
from ..program import FetchNode
from ..typedefs import DEFAULT_FETCH_CONFIG, FetchConfig
from .dispatch import interpret


logger = logging.getLogger(__name__)


# ##############
# # Public API #
# ##############


async def run_fetch_with_env(
    program: FetchNode,
    cache: Optional[DataSourceCache] = None,
    config: Optional[FetchConfig] = None,
) -> Tuple[FetchEnv, Any]:
    """Execute the fetch program, returning both the final environment and the program's value.

    Args:
        program: root node of the fetch program to execute
        cache: cache to consult before fetching anything; defaults to an empty InMemoryCache
        config: interpreter options; defaults to FetchConfig()

    Returns:
        tuple (env, value), where env holds the final cache and the log of all performed rounds
    """
    if config is None:
        config = DEFAULT_FETCH_CONFIG

    initial_env = FetchEnv.initial(cache)
    final_env, value = await interpret(program, initial_env, config)
    logger.debug("Fetch program completed in %d rounds.", len(final_env.rounds))
    return final_env, value


async def run_fetch(
    program: FetchNode,
    cache: Optional[DataSourceCache] = None,
    config: Optional[FetchConfig] = None,
) -> Any:
    """Execute the fetch program and return its value."""
    _, value = await run_fetch_with_env(program, cache=cache, config=config)
    return value


async def run_fetch_env(
    program: FetchNode,
    cache: Optional[DataSourceCache] = None,
    config: Optional[FetchConfig] = None,
) -> FetchEnv:
    """Execute the fetch program and return its final environment."""
    env, _ = await run_fetch_with_env(program, cache=cache, config=config)
    return env
