# Copyright 2021-present Kensho Technologies, LLC.
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, List, Mapping, Optional, Tuple

from .cache import DataSourceCache, InMemoryCache
from .program import FetchNode
from .typedefs import DataSourceIdentity


@dataclass(frozen=True)
class Round:
    """The immutable record of one unit of actual I/O performed by the interpreter.

    Cache hits never produce rounds. Rounds exist for introspection only: the interpreter never
    consults them when deciding what to fetch.
    """

    start_cache: DataSourceCache  # The cache as it was before the round's I/O began.
    request: FetchNode  # The node describing the I/O that was performed.
    result: Any  # The value the round produced.
    start_time: int  # Nanosecond timestamps, as produced by FetchConfig.clock.
    end_time: int

    # The identity -> value entries obtained by this round's I/O.
    fetched: Mapping[DataSourceIdentity, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def duration(self) -> int:
        """Return the round's duration in nanoseconds."""
        return self.end_time - self.start_time


@dataclass(frozen=True, init=False)
class RoundLog:
    """An immutable, append-only log of rounds.

    Logs share structure with the logs they were appended to, so that the environments of
    independently evaluated branches of a fetch program can cheaply tell apart the rounds they
    inherited from the rounds they appended themselves.
    """

    __slots__ = ("last_round", "length", "previous")

    # N.B.: Keep "length" defined before "previous"! The default "==" implementation for
    #       dataclasses compares instances as if they were tuples of their attributes in declaration
    #       order, and "length" is much cheaper to compare than the rest of the log.
    last_round: Optional[Round]  # The most recently appended round, or None for an empty log.
    length: int  # The number of rounds in the log.
    previous: Optional["RoundLog"]  # The log to which last_round was appended, if any.

    def __init__(self, last_round: Optional[Round], previous: Optional["RoundLog"]) -> None:
        """Initialize the RoundLog."""
        object.__setattr__(self, "last_round", last_round)
        object.__setattr__(self, "previous", previous)

        length = 0 if previous is None else previous.length + 1
        object.__setattr__(self, "length", length)

    def append(self, new_round: Round) -> "RoundLog":
        """Create a new RoundLog with the given round as its most recent entry."""
        return RoundLog(new_round, self)

    def _newest_first(self, stop_at: Optional["RoundLog"] = None) -> Iterator[Round]:
        node: Optional[RoundLog] = self
        while node is not None and node.previous is not None and node is not stop_at:
            yield node.last_round  # type: ignore[misc]  # non-None for every non-empty node
            node = node.previous

    def rounds_since(self, ancestor: "RoundLog") -> Tuple[Round, ...]:
        """Return, oldest first, the rounds appended to the given ancestor log to produce this one.

        Raises:
            AssertionError: if this log was not produced by appending rounds to the ancestor log.
        """
        node: Optional[RoundLog] = self
        while node is not None and node.length > ancestor.length:
            node = node.previous
        if node is not ancestor:
            raise AssertionError(
                f"Expected log of {self.length} rounds to extend the given ancestor log of "
                f"{ancestor.length} rounds, but it does not. This is a bug."
            )

        newest_first: List[Round] = list(self._newest_first(stop_at=ancestor))
        return tuple(reversed(newest_first))

    def __iter__(self) -> Iterator[Round]:
        return reversed(list(self._newest_first()))

    def __len__(self) -> int:
        return self.length

    def __getitem__(self, index: int) -> Round:
        return tuple(self)[index]


def make_empty_round_log() -> RoundLog:
    """Create a new empty round log."""
    return RoundLog(None, None)


@dataclass(frozen=True)
class FetchEnv:
    """The state threaded through the interpretation of a fetch program.

    Created once per top-level execution and evolved as rounds of I/O complete;
    never modified in place.
    """

    cache: DataSourceCache
    rounds: RoundLog = field(default_factory=make_empty_round_log)

    @classmethod
    def initial(cls, cache: Optional[DataSourceCache] = None) -> "FetchEnv":
        """Create the environment in which a top-level fetch program execution begins."""
        return cls(cache if cache is not None else InMemoryCache.empty())

    def evolve(self, new_round: Round, new_cache: DataSourceCache) -> "FetchEnv":
        """Return a new environment with the round appended and the cache replaced."""
        return FetchEnv(new_cache, self.rounds.append(new_round))
