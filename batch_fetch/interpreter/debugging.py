# Copyright 2021-present Kensho Technologies, LLC.
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, ClassVar, FrozenSet, Generic, List, Literal, Mapping, Optional, Tuple

from ..data_source import DataSource
from ..environment import FetchEnv, Round
from ..program import Batch, ConcurrentGroup, FetchNode, Single
from ..typedefs import DataSourceIdentity, IdT, ResultT


@dataclass(frozen=True)
class DataSourceOperation:
    """The record of a call made to a DataSource, or of the value such a call returned.

    For example, calling fetch_many(frozenset({1, 2})) on a data source named "users" would produce
    a DataSourceOperation with kind "call", name "fetch_many", data_source_name "users",
    a unique ID appropriate for the trace, and data frozenset({1, 2}) holding the call's argument.
    Once the call completes, a second DataSourceOperation with kind "return" is recorded, whose
    parent_uid points to the "call" record and whose data holds the value the call returned.

    Calls and returns of concurrently running fetches may interleave in the trace;
    the parent_uid field is what ties each return to its call.
    """

    kind: Literal["call", "return"]
    name: Literal["fetch_one", "fetch_many"]
    data_source_name: str
    uid: int
    parent_uid: int
    data: Any


@dataclass(frozen=True)
class RecordedTrace:
    """A complete, immutable recording of the data source calls made while running fetches."""

    DEFAULT_ROOT_UID: ClassVar[int] = -1

    # Calls do not have a parent operation, and get the trace's root_uid as their parent_uid value.
    root_uid: int = field(init=False, default=DEFAULT_ROOT_UID)
    operations: Tuple[DataSourceOperation, ...]

    def calls(self, name: Optional[str] = None) -> Tuple[DataSourceOperation, ...]:
        """Return the recorded calls, optionally only those of the function with the given name."""
        return tuple(
            operation
            for operation in self.operations
            if operation.kind == "call" and (name is None or operation.name == name)
        )


class TraceRecorder:

    # We expose an immutable (copied) version of the operation log through get_trace().
    # Other attributes are considered public.
    _operation_log: List[DataSourceOperation]
    root_uid: int

    def __init__(self) -> None:
        """Initialize the TraceRecorder."""
        self._operation_log = []
        self.root_uid = RecordedTrace.DEFAULT_ROOT_UID

    def record_call(self, operation_name: Any, data_source_name: str, call_argument: Any) -> int:
        """Record that a call of the specified function has occurred with the given argument."""
        uid = len(self._operation_log)
        self._operation_log.append(
            DataSourceOperation(
                "call",
                operation_name,
                data_source_name,
                uid,
                self.root_uid,
                deepcopy(call_argument),
            )
        )
        return uid

    def record_return(
        self, operation_name: Any, data_source_name: str, call_uid: int, returned_value: Any
    ) -> None:
        """Record the value returned by the call with the given unique identifier."""
        uid = len(self._operation_log)
        self._operation_log.append(
            DataSourceOperation(
                "return",
                operation_name,
                data_source_name,
                uid,
                call_uid,
                deepcopy(returned_value),
            )
        )

    def get_trace(self) -> RecordedTrace:
        """Create an immutable trace with all the activity up to this point."""
        return RecordedTrace(tuple(self._operation_log))


class DataSourceTap(DataSource[IdT, ResultT], Generic[IdT, ResultT]):
    """A DataSource that forwards to an inner data source, recording every call it makes.

    The tap is indistinguishable from the inner data source as far as the interpreter is
    concerned: it shares the inner source's name, identity function and batching options,
    so the two share cache entries as well.
    """

    inner_data_source: DataSource[IdT, ResultT]
    recorder: TraceRecorder

    def __init__(
        self, inner_data_source: DataSource[IdT, ResultT], recorder: Optional[TraceRecorder] = None
    ) -> None:
        self.inner_data_source = inner_data_source
        self.recorder = recorder if recorder is not None else TraceRecorder()
        self.name = inner_data_source.name
        self.max_batch_size = inner_data_source.max_batch_size
        self.batch_execution = inner_data_source.batch_execution

    def identity(self, identifier: IdT) -> DataSourceIdentity:
        return self.inner_data_source.identity(identifier)

    async def fetch_one(self, identifier: IdT) -> Optional[ResultT]:
        operation_name = "fetch_one"
        call_uid = self.recorder.record_call(operation_name, self.name, identifier)
        result = await self.inner_data_source.fetch_one(identifier)
        self.recorder.record_return(operation_name, self.name, call_uid, result)
        return result

    async def fetch_many(self, identifiers: FrozenSet[IdT]) -> Mapping[IdT, ResultT]:
        operation_name = "fetch_many"
        call_uid = self.recorder.record_call(operation_name, self.name, frozenset(identifiers))
        results = await self.inner_data_source.fetch_many(identifiers)
        self.recorder.record_return(operation_name, self.name, call_uid, dict(results))
        return results

    def get_trace(self) -> RecordedTrace:
        return self.recorder.get_trace()

    def fetched_identifiers(self) -> List[Any]:
        """Return every identifier requested from the inner data source, in call order."""
        requested: List[Any] = []
        for operation in self.get_trace().calls():
            if operation.data_source_name != self.name:
                continue
            if operation.name == "fetch_one":
                requested.append(operation.data)
            else:
                requested.extend(sorted(operation.data, key=repr))
        return requested


def _describe_request(request: FetchNode) -> str:
    if isinstance(request, Single):
        return f"[Single] From `{request.data_source.name}` with id {request.identifier!r}"
    elif isinstance(request, Batch):
        return (
            f"[Batch] From `{request.data_source.name}` with ids "
            f"{list(request.identifiers)!r}"
        )
    elif isinstance(request, ConcurrentGroup):
        lines = [f"[Concurrent] {len(request.queries)} queries"]
        lines.extend("  " + _describe_request(query) for query in request.queries)
        return "\n".join(lines)
    else:
        return f"[{type(request).__name__}] {request}"


def describe_round(fetch_round: Round) -> str:
    """Produce a human-readable description of one round."""
    duration_ms = fetch_round.duration / 1e6
    header = f"Round ({duration_ms:.3f} ms, {len(fetch_round.fetched)} entries fetched)"
    request_lines = _describe_request(fetch_round.request).split("\n")
    return "\n".join([header] + ["  " + line for line in request_lines])


def describe_environment(env: FetchEnv) -> str:
    """Produce a human-readable report of all the rounds performed in the given environment."""
    rounds = list(env.rounds)
    lines = [f"Fetch execution: {len(rounds)} rounds"]
    for index, fetch_round in enumerate(rounds, start=1):
        round_lines = describe_round(fetch_round).split("\n")
        lines.append(f"{index}. {round_lines[0]}")
        lines.extend("  " + line for line in round_lines[1:])
    return "\n".join(lines)
