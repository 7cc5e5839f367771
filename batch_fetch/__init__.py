# Copyright 2021-present Kensho Technologies, LLC.
"""Commonly-used functions and data types from this package."""
from .cache import DataSourceCache, InMemoryCache  # noqa
from .data_source import DataSource  # noqa
from .environment import FetchEnv, Round, RoundLog  # noqa
from .exceptions import FetchError, MissingIdentities, NotFound, UnhandledException  # noqa
from .interpreter import interpret, run_fetch, run_fetch_env, run_fetch_with_env  # noqa
from .program import Batch, ConcurrentGroup, Failure, FetchNode, Join, Query, Single  # noqa
from .typedefs import DataSourceIdentity, FetchConfig  # noqa


__package_name__ = "batch-fetch"
__version__ = "1.0.0"
