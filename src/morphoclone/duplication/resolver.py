"""Selection of the source rows to clone for each participating table.

The default strategy walks the cheapest foreign-key path from a table up to
the root table and keeps the rows whose root is the one being duplicated::

    SELECT cells.* FROM cells
    JOIN matrices ON matrices.matrix_id = cells.matrix_id
    JOIN projects ON projects.project_id = matrices.project_id
    WHERE projects.project_id = :root_id

Subclasses replace the query for individual tables by decorating a method
with :func:`strategy`::

    class MyResolver(RowSourceResolver):
        @strategy("taxa")
        def select_taxa(self, table):
            return select(table).where(...)

A strategy can also be registered on an instance with ``register``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy import Table as SQLTable
from sqlalchemy import select
from sqlalchemy.engine import Connection
from sqlalchemy.sql import Select

from morphoclone.duplication.context import DuplicationContext
from morphoclone.model.datamodel import DataModel

logger = logging.getLogger(__name__)


def strategy(*tables: str) -> Callable:
    """Mark a resolver method as the row query for the given tables."""

    def decorator(fn: Callable) -> Callable:
        fn._strategy_tables = tables
        return fn

    return decorator


class RowSourceResolver:
    """Builds the SELECT that yields a table's rows in the scope being duplicated.

    One resolver is created per duplication run.

    Args:
        datamodel: The schema dependency model.
        root_table: Name of the root table (e.g. ``projects``).
        root_id: Identifier of the root row.
        conn: Connection of the run, used for strategies that query first.
        context: Run state; derived id caches live there.
    """

    def __init__(
        self,
        datamodel: DataModel,
        root_table: str,
        root_id: int,
        conn: Connection | None = None,
        context: DuplicationContext | None = None,
    ):
        self.datamodel = datamodel
        self.root_table = datamodel.get_table(root_table)
        self.root_id = root_id
        self.conn = conn
        self.context = context if context is not None else DuplicationContext()
        self._strategies: dict[str, Callable[[SQLTable], Select]] = {}
        for name in dir(type(self)):
            attr = getattr(type(self), name, None)
            for table_name in getattr(attr, "_strategy_tables", ()):
                self._strategies[table_name] = getattr(self, name)

    def table(self, name: str) -> SQLTable:
        return self.datamodel.get_table(name)

    def register(self, table: str, fn: Callable[[SQLTable], Select]) -> None:
        self._strategies[table] = fn

    def has_strategy(self, table: str | SQLTable) -> bool:
        return self.datamodel.get_table(table).name in self._strategies

    def select(self, table: str | SQLTable) -> Select:
        """Query selecting every column of ``table`` for the rows to clone."""
        t = self.datamodel.get_table(table)
        fn = self._strategies.get(t.name, self.default_select)
        return fn(t)

    def resolve(self, table: str | SQLTable) -> list[dict[str, Any]]:
        """Run the table's query on the run's connection. Rows come back as dicts."""
        t = self.datamodel.get_table(table)
        stmt = self.select(t).order_by(t.c[self.datamodel.primary_key(t)])
        rows = [dict(row._mapping) for row in self.conn.execute(stmt)]
        logger.debug(f"Resolved {len(rows)} rows from {t.name}")
        return rows

    def default_select(self, table: SQLTable) -> Select:
        """Rows of ``table`` owned by the root row through the cheapest FK path."""
        path = self.datamodel.get_path(table, self.root_table)
        stmt = select(table)
        current = table
        for parent in path[1:]:
            relationship = self.datamodel.get_relationship(current, parent)
            stmt = stmt.join(parent, parent.c[relationship.referenced_key] == current.c[relationship.field])
            current = parent
        root_pk = self.datamodel.primary_key(self.root_table)
        return stmt.where(self.root_table.c[root_pk] == self.root_id)
