"""Foreign key dependency ordering for duplicating rows.

This module provides the ForeignKeyOrderer class which computes a
topologically sorted insertion order for the tables taking part in a
duplication, based on their foreign key dependencies.

Cloned rows are inserted table by table, so a table must come after every
participating table it references: the new identifiers of the referenced
rows have to be known before the referencing rows can be rewritten.

Example:
    datamodel = DataModel(schema.metadata, schema.TABLE_NUMBERS)
    orderer = ForeignKeyOrderer(datamodel)

    tables = ['cells', 'taxa', 'matrices', 'characters']
    ordered = [t.name for t in orderer.get_insertion_order(tables)]
    # Returns e.g.: ['taxa', 'matrices', 'characters', 'cells']
    # (cells last because it references the other three)
"""

from __future__ import annotations

import logging
from graphlib import CycleError, TopologicalSorter
from typing import Iterable

from sqlalchemy import Table as SQLTable

from morphoclone.core.exceptions import ConfigurationError
from morphoclone.model.datamodel import DataModel

logger = logging.getLogger(__name__)


class ForeignKeyOrderer:
    """Computes insertion order for tables based on FK dependencies.

    Uses topological sort to ensure referenced tables are cloned before
    tables that reference them. Self references are not constraints, and
    neither are references to tables outside the ordered set. Any remaining
    cycle is a configuration error.

    Example:
        orderer = ForeignKeyOrderer(datamodel)

        ordered = orderer.get_insertion_order(
            schema.PROJECT_DUPLICATED_TABLES,
            ignored=schema.PROJECT_IGNORED_TABLES,
            numbered=schema.NUMBERED_TABLES,
        )
    """

    def __init__(self, datamodel: DataModel):
        """Initialize the orderer.

        Args:
            datamodel: Data model describing the tables and their foreign keys.
        """
        self.datamodel = datamodel

    def _to_table(self, t: str | SQLTable) -> SQLTable:
        """Convert table name to Table object.

        Raises:
            ConfigurationError: If table not found.
        """
        return self.datamodel.get_table(t)

    def _build_dependency_graph(
        self,
        tables: Iterable[str | SQLTable] | None = None,
    ) -> dict[str, set[str]]:
        """Build FK dependency graph.

        Args:
            tables: Tables to include. If None, includes all tables.

        Returns:
            Dict mapping table name -> set of table names it depends on.
        """
        if tables is None:
            table_objs = self.get_all_tables()
        else:
            table_objs = [self._to_table(t) for t in tables]

        names = {t.name for t in table_objs}
        graph: dict[str, set[str]] = {}
        for t in table_objs:
            graph[t.name] = {
                name for name in self.datamodel.get_neighboring_tables(t) if name in names and name != t.name
            }
        return graph

    def get_insertion_order(
        self,
        tables: Iterable[str | SQLTable] | None = None,
        ignored: Iterable[str | SQLTable] = (),
        numbered: Iterable[str | SQLTable] = (),
    ) -> list[SQLTable]:
        """Compute FK-safe insertion order for the given tables.

        Tables carrying a numbered column, and any table that depends on
        them, are placed after all other tables because the target of a
        numbered column is only known per row.

        Args:
            tables: Participating tables. If None, orders all tables.
            ignored: Tables that are never cloned. Must not overlap ``tables``.
            numbered: Tables with a numbered (polymorphic) column.

        Returns:
            Ordered list of Table objects (insert from first to last).

        Raises:
            ConfigurationError: If a table is both participating and ignored,
                or the participating tables form a cycle.
        """
        table_objs = self.get_all_tables() if tables is None else [self._to_table(t) for t in tables]
        ignored_names = {self._to_table(t).name for t in ignored}
        overlap = sorted(t.name for t in table_objs if t.name in ignored_names)
        if overlap:
            raise ConfigurationError(f"Tables are both participating and ignored: {', '.join(overlap)}")

        graph = self._build_dependency_graph(table_objs)
        try:
            ordered = list(TopologicalSorter(graph).static_order())
        except CycleError as e:
            cycle = list(e.args[1]) if len(e.args) > 1 else []
            raise ConfigurationError(f"Cycle in FK dependencies: {' -> '.join(cycle)}") from e

        deferred = self._downstream_of({self._to_table(t).name for t in numbered}, graph)
        ordered = [name for name in ordered if name not in deferred] + [name for name in ordered if name in deferred]
        logger.debug(f"Insertion order: {ordered}")
        return [self._to_table(name) for name in ordered]

    @staticmethod
    def _downstream_of(roots: set[str], graph: dict[str, set[str]]) -> set[str]:
        """Tables in ``graph`` that are in ``roots`` or depend on one of them."""
        found = {name for name in roots if name in graph}
        changed = True
        while changed:
            changed = False
            for name, deps in graph.items():
                if name not in found and deps & found:
                    found.add(name)
                    changed = True
        return found

    def get_all_tables(self) -> list[SQLTable]:
        """Get all tables in the data model."""
        return [self._to_table(name) for name in self.datamodel.get_table_names()]
