# Copyright 2021-present Kensho Technologies, LLC.
from typing import Any, List, Mapping

from .typedefs import DataSourceName


class FetchError(Exception):
    """Generic error when executing a fetch program."""


class NotFound(FetchError):
    """Exception raised when a data source reported no result for a single-identifier fetch."""

    def __init__(self, request: Any) -> None:
        """Record the request that could not be satisfied."""
        super().__init__(f"Data source returned no result for request: {request}")
        self.request = request


class MissingIdentities(FetchError):
    """Exception raised when identifiers remained unresolved after a batched or concurrent fetch.

    The missing identifiers are aggregated per data source name across every query of the round
    in which they were requested, so a single error describes everything that went missing.
    """

    def __init__(self, missing: Mapping[DataSourceName, List[Any]]) -> None:
        """Record the missing identifiers, keyed by the name of the data source they came from."""
        self.missing = {name: list(identifiers) for name, identifiers in missing.items()}
        super().__init__(f"Missing identities: {self.missing}")


class UnhandledException(FetchError):
    """Exception raised to propagate an arbitrary failure out of a fetch program.

    This could be due to:
    - a Failure node carrying an injected error;
    - a data source call that raised an exception of its own.
    """

    def __init__(self, cause: BaseException) -> None:
        """Wrap the underlying cause."""
        super().__init__(f"Unhandled exception during fetch: {cause!r}")
        self.cause = cause
