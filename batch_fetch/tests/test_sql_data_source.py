# Copyright 2021-present Kensho Technologies, LLC.
from typing import Any, List
from unittest import IsolatedAsyncioTestCase

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event
from sqlalchemy.pool import StaticPool

from ..data_sources import SqlTableDataSource
from ..exceptions import MissingIdentities, NotFound
from ..interpreter import run_fetch, run_fetch_with_env
from ..program import Batch, ConcurrentGroup, Join, Single


def _make_test_engine() -> Any:
    # A single shared connection, so that every thread sees the same in-memory database.
    return create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )


class SqlTableDataSourceTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.engine = _make_test_engine()
        metadata = MetaData()
        self.animals = Table(
            "Animal",
            metadata,
            Column("uuid", String(36), primary_key=True),
            Column("name", String(50), nullable=False),
            Column("net_worth", Integer, nullable=True),
        )
        metadata.create_all(self.engine)
        with self.engine.begin() as connection:
            connection.execute(
                self.animals.insert(),
                [
                    {"uuid": "cfc6e625", "name": "Big Bear", "net_worth": 100},
                    {"uuid": "c2c14e6d", "name": "Little Bear", "net_worth": 50},
                    {"uuid": "f4dd9b3f", "name": "Medium Bear", "net_worth": None},
                ],
            )

        self.statements: List[str] = []
        event.listen(self.engine, "before_cursor_execute", self._record_statement)

    def tearDown(self) -> None:
        event.remove(self.engine, "before_cursor_execute", self._record_statement)
        self.engine.dispose()

    def _record_statement(
        self,
        connection: Any,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        self.statements.append(statement)

    def test_unknown_key_column_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            SqlTableDataSource(self.engine, self.animals, "species")

    def test_non_positive_max_batch_size_is_rejected(self) -> None:
        for max_batch_size in (0, -1):
            with self.assertRaises(ValueError):
                SqlTableDataSource(self.engine, self.animals, "uuid", max_batch_size=max_batch_size)

    def test_defaults_to_table_name(self) -> None:
        data_source = SqlTableDataSource(self.engine, self.animals, self.animals.c.uuid)
        self.assertEqual("Animal", data_source.name)
        self.assertIs(self.animals.c.uuid, data_source.key_column)

        renamed = SqlTableDataSource(self.engine, self.animals, "uuid", name="animals")
        self.assertEqual("animals", renamed.name)

    async def test_fetch_single_row(self) -> None:
        data_source = SqlTableDataSource(self.engine, self.animals, "uuid")

        value = await run_fetch(Single("c2c14e6d", data_source))

        self.assertEqual({"uuid": "c2c14e6d", "name": "Little Bear", "net_worth": 50}, value)
        self.assertEqual(1, len(self.statements))

    async def test_fetch_missing_row(self) -> None:
        data_source = SqlTableDataSource(self.engine, self.animals, "uuid")

        with self.assertRaises(NotFound):
            await run_fetch(Single("00000000", data_source))

    async def test_batch_is_loaded_with_one_query(self) -> None:
        data_source = SqlTableDataSource(self.engine, self.animals, "uuid")

        value = await run_fetch(Batch(["f4dd9b3f", "cfc6e625", "c2c14e6d"], data_source))

        self.assertEqual(["Medium Bear", "Big Bear", "Little Bear"], [row["name"] for row in value])
        self.assertEqual(1, len(self.statements))
        self.assertIn(" IN ", self.statements[0].upper())

    async def test_batch_respects_max_batch_size(self) -> None:
        data_source = SqlTableDataSource(
            self.engine, self.animals, "uuid", max_batch_size=2, batch_execution="sequential"
        )

        value = await run_fetch(Batch(["f4dd9b3f", "cfc6e625", "c2c14e6d"], data_source))

        self.assertEqual(3, len(value))
        self.assertEqual(2, len(self.statements))

    async def test_batch_with_missing_rows(self) -> None:
        data_source = SqlTableDataSource(self.engine, self.animals, "uuid")

        with self.assertRaises(MissingIdentities) as context:
            await run_fetch(Batch(["cfc6e625", "00000000"], data_source))

        self.assertEqual({"Animal": ["00000000"]}, context.exception.missing)

    async def test_join_reuses_rows_fetched_earlier(self) -> None:
        data_source = SqlTableDataSource(self.engine, self.animals, "uuid")
        env, _ = await run_fetch_with_env(
            ConcurrentGroup([Batch(["cfc6e625", "c2c14e6d"], data_source)])
        )

        new_env, (left, right) = await run_fetch_with_env(
            Join(Single("cfc6e625", data_source), Batch(["c2c14e6d", "f4dd9b3f"], data_source)),
            cache=env.cache,
        )

        self.assertEqual("Big Bear", left["name"])
        self.assertEqual(["Little Bear", "Medium Bear"], [row["name"] for row in right])
        # Only the row missing from the cache was loaded.
        self.assertEqual(1, len(new_env.rounds))
        self.assertEqual(2, len(self.statements))
