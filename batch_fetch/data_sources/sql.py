# Copyright 2021-present Kensho Technologies, LLC.
import asyncio
from functools import partial
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

import sqlalchemy
from sqlalchemy.engine import Engine

from ..data_source import DataSource
from ..typedefs import BatchExecution


class SqlTableDataSource(DataSource[Any, Dict[str, Any]]):
    """A data source loading rows of a SQL table by the value of a unique key column.

    Each result is a dict mapping column name to value for the matching row. Single-identifier
    fetches use an equality filter on the key column, and bulk fetches use a single IN filter.
    Queries are executed in the event loop's default executor, since SQLAlchemy engines block.
    """

    def __init__(
        self,
        engine: Engine,
        table: sqlalchemy.Table,
        key_column: Union[str, sqlalchemy.Column],
        *,
        name: Optional[str] = None,
        max_batch_size: Optional[int] = None,
        batch_execution: BatchExecution = "parallel",
    ) -> None:
        """Construct a data source over the given table.

        Args:
            engine: engine through which to run queries
            table: table whose rows to load
            key_column: the column, or name of the column, whose values identify rows;
                        must hold unique values
            name: name of the data source; defaults to the table's name
            max_batch_size: maximum number of identifiers to place in a single IN filter,
                            useful for databases that limit the number of query parameters
            batch_execution: whether oversized bulk fetches run their batches concurrently
                             ("parallel") or one after another ("sequential")
        """
        self.engine = engine
        self.table = table
        if isinstance(key_column, str):
            if key_column not in table.c:
                raise ValueError(f"Column {key_column} does not exist in table {table.name}.")
            key_column = table.c[key_column]
        self.key_column = key_column
        if max_batch_size is not None and max_batch_size < 1:
            raise ValueError(f"Expected None or a positive max_batch_size, got: {max_batch_size}")
        self.name = name if name is not None else table.name
        self.max_batch_size = max_batch_size
        self.batch_execution = batch_execution

    def _select_rows(self, where_clause: Any) -> Dict[Any, Dict[str, Any]]:
        statement = sqlalchemy.select(self.table).where(where_clause)
        with self.engine.connect() as connection:
            rows = connection.execute(statement).mappings().all()
        return {row[self.key_column.name]: dict(row) for row in rows}

    async def _run_in_executor(self, where_clause: Any) -> Dict[Any, Dict[str, Any]]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._select_rows, where_clause))

    async def fetch_one(self, identifier: Any) -> Optional[Dict[str, Any]]:
        rows = await self._run_in_executor(self.key_column == identifier)
        return rows.get(identifier, None)

    async def fetch_many(self, identifiers: FrozenSet[Any]) -> Mapping[Any, Dict[str, Any]]:
        return await self._run_in_executor(self.key_column.in_(list(identifiers)))
