# Copyright 2021-present Kensho Technologies, LLC.
"""Ready-made DataSource implementations for common kinds of storage."""
from .sql import SqlTableDataSource  # noqa
