# Copyright 2021-present Kensho Technologies, LLC.
"""The interpreter that executes fetch programs with minimal I/O.

A fetch program describes *what* data is needed: a tree of Single and Batch fetches against
data sources, flat ConcurrentGroups of such fetches, Joins of independent sub-programs, and
injected Failures. The interpreter decides *how* to load that data:
- identifiers already present in the cache are never fetched again;
- all uncached identifiers of a Batch are loaded with one fetch_many() call to the data source,
  split into several calls only if the data source sets a max_batch_size;
- all queries of a ConcurrentGroup are loaded concurrently, as a single round of I/O;
- the two sides of a Join are interpreted concurrently.

Every unit of actual I/O is recorded as a Round in the environment returned alongside
the program's value, so that the execution of a program can be examined after the fact.
The tools in the debugging module help with that, as well as with recording the calls
made to individual data sources.

For more information, consult the documentation of the items exported below.
"""

from .api import run_fetch, run_fetch_env, run_fetch_with_env  # noqa
from .dispatch import interpret  # noqa
