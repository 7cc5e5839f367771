# Copyright 2021-present Kensho Technologies, LLC.
"""Definitions of the nodes that make up a fetch program."""
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Sequence, Tuple, Union

from .data_source import DataSource
from .typedefs import IdT, ResultT


class FetchNode(metaclass=ABCMeta):
    """A node of a fetch program, interpreted as one step of data loading."""

    __slots__ = ()

    @abstractmethod
    def validate(self) -> None:
        """Ensure that the FetchNode is valid."""
        raise NotImplementedError()


def _validate_data_source(node: FetchNode, data_source: Any) -> None:
    if not isinstance(data_source, DataSource):
        raise TypeError(
            f"Expected DataSource data_source for {type(node).__name__}, got: "
            f"{type(data_source).__name__} {data_source}"
        )


@dataclass(frozen=True)
class Single(FetchNode, Generic[IdT, ResultT]):
    """Fetch exactly one identifier from a data source."""

    identifier: IdT
    data_source: DataSource[IdT, ResultT]

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Ensure that the Single node is valid."""
        _validate_data_source(self, self.data_source)

    @property
    def identifiers(self) -> Tuple[IdT, ...]:
        return (self.identifier,)


@dataclass(frozen=True, init=False)
class Batch(FetchNode, Generic[IdT, ResultT]):
    """Fetch an ordered, non-empty sequence of identifiers from one data source.

    The result of interpreting a Batch is a list with one result per identifier,
    in the order in which the identifiers were given.
    """

    identifiers: Tuple[IdT, ...]
    data_source: DataSource[IdT, ResultT]

    def __init__(self, identifiers: Sequence[IdT], data_source: DataSource[IdT, ResultT]) -> None:
        """Construct a Batch node, normalizing the identifiers into a tuple."""
        # Frozen dataclasses use object.__setattr__() to write their attributes.
        object.__setattr__(self, "identifiers", tuple(identifiers))
        object.__setattr__(self, "data_source", data_source)
        self.validate()

    def validate(self) -> None:
        """Ensure that the Batch node is valid."""
        _validate_data_source(self, self.data_source)
        if not self.identifiers:
            raise ValueError(f"Batch requires at least one identifier, got: {self.identifiers}")


Query = Union[Single, Batch]


@dataclass(frozen=True, init=False)
class ConcurrentGroup(FetchNode):
    """A flat group of independent queries, executed together as a single round.

    The queries may target different data sources. Interpreting a ConcurrentGroup produces
    an InMemoryCache holding the results of every query in the group.
    """

    queries: Tuple[Query, ...]

    def __init__(self, queries: Sequence[Query]) -> None:
        """Construct a ConcurrentGroup node over the given queries."""
        object.__setattr__(self, "queries", tuple(queries))
        self.validate()

    def validate(self) -> None:
        """Ensure that the ConcurrentGroup node is valid."""
        if not self.queries:
            raise ValueError("ConcurrentGroup requires at least one query.")
        for query in self.queries:
            if not isinstance(query, (Single, Batch)):
                raise TypeError(
                    f"Expected Single or Batch queries in ConcurrentGroup, got: "
                    f"{type(query).__name__} {query}"
                )


@dataclass(frozen=True)
class Join(FetchNode):
    """Two independent fetch programs whose results are combined into a pair."""

    left: FetchNode
    right: FetchNode

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Ensure that the Join node is valid."""
        for side in (self.left, self.right):
            if not isinstance(side, FetchNode):
                raise TypeError(
                    f"Expected FetchNode sides for Join, got: {type(side).__name__} {side}"
                )


@dataclass(frozen=True)
class Failure(FetchNode):
    """An injected error that fails the whole fetch program when interpreted."""

    error: BaseException

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Ensure that the Failure node is valid."""
        if not isinstance(self.error, BaseException):
            raise TypeError(
                f"Expected exception error for Failure, got: "
                f"{type(self.error).__name__} {self.error}"
            )
