# Copyright 2021-present Kensho Technologies, LLC.
from abc import ABCMeta, abstractmethod
import asyncio
from typing import FrozenSet, Generic, Mapping, Optional

from .typedefs import BatchExecution, DataSourceIdentity, DataSourceName, IdT, ResultT


class DataSource(Generic[IdT, ResultT], metaclass=ABCMeta):
    """Base class defining the API through which the interpreter reads data from a source.

    This ABC is the abstraction through which the interpreter is source-agnostic: the interpreter
    takes instances of DataSource and performs all I/O through their small, two-method API.

    ## The IdT and ResultT type parameters

    Each data source is generic on the type of the raw identifiers it is asked for, and on the type
    of the results it produces for them. For example, a data source loading user records by
    integer primary key could be defined as follows:

        class UserSource(DataSource[int, dict]):
            name = "users"
            ...

    Identifiers must be hashable, since they are used as keys in the mappings returned by
    fetch_many().

    ## The DataSource API

    - fetch_one() loads the result for a single identifier, returning None if the source has
      no result for it.
    - fetch_many() loads the results for a non-empty set of identifiers in one call, returning
      a mapping with at most one entry per requested identifier. Identifiers absent from the mapping
      are considered not found. The default implementation concurrently calls fetch_one() for each
      identifier, so sources without a native bulk-loading operation only need fetch_one().
    - identity() produces the canonical cache key for an identifier. Sources whose identifiers
      have several equivalent spellings (e.g. case-insensitive names) should override it so that
      equivalent identifiers share a cache entry.

    ## Batching options

    Sources with a limit on the size of a single bulk request can set max_batch_size. The
    interpreter then splits larger fetch_many() requests into chunks of at most that size, and
    runs the chunks either concurrently or one after another, as selected by batch_execution.
    max_batch_size must be None or a positive integer; fetches from a source with any other value
    fail with ValueError.
    """

    name: DataSourceName

    max_batch_size: Optional[int] = None
    batch_execution: BatchExecution = "parallel"

    def identity(self, identifier: IdT) -> DataSourceIdentity:
        """Return the canonical cache key for the given identifier."""
        return DataSourceIdentity(self.name, identifier)

    @abstractmethod
    async def fetch_one(self, identifier: IdT) -> Optional[ResultT]:
        """Load the result for the given identifier, or return None if there is no such result."""

    async def fetch_many(self, identifiers: FrozenSet[IdT]) -> Mapping[IdT, ResultT]:
        """Load the results for the given identifiers, omitting any that were not found."""
        ordered_identifiers = list(identifiers)
        results = await asyncio.gather(
            *(self.fetch_one(identifier) for identifier in ordered_identifiers)
        )
        return {
            identifier: result
            for identifier, result in zip(ordered_identifiers, results)
            if result is not None
        }

    def __repr__(self) -> str:
        """Return a short human-readable representation of the data source."""
        return f"{type(self).__name__}({self.name!r})"
