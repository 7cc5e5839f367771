# Copyright 2021-present Kensho Technologies, LLC.
from dataclasses import dataclass, field
import time
from typing import Any, Callable, Literal, NamedTuple, TypeVar


# Type parameters for data sources: the raw identifier type and the fetched result type.
IdT = TypeVar("IdT")
ResultT = TypeVar("ResultT")

DataSourceName = str

# How a data source's oversized fetch_many() request is executed once it is split into chunks.
BatchExecution = Literal["parallel", "sequential"]


class DataSourceIdentity(NamedTuple):
    """The canonical cache key for an identifier fetched from a given data source."""

    data_source_name: DataSourceName
    identifier: Any


@dataclass(frozen=True)
class FetchConfig:
    """Options controlling how the interpreter executes a fetch program."""

    # Whether the two sides of a Join are interpreted concurrently. When False, the right side
    # is interpreted after the left side, starting from the environment the left side produced.
    parallel_join: bool = True

    # Source of the nanosecond timestamps recorded in each Round.
    clock: Callable[[], int] = field(default=time.monotonic_ns)


DEFAULT_FETCH_CONFIG = FetchConfig()
