"""Static knowledge of the relational schema used by the duplication engine.

The DataModel wraps a SQLAlchemy ``MetaData`` and answers the questions the
duplicator and the row source resolvers ask about it:

- primary key of a table, lookup by name and by numeric table number
- the foreign-key graph (who references whom, through which column)
- the cheapest join path from a table up to the root table

Column-level markers are read from ``Column.info``:

- ``{"file": True}``: the column holds a file locator (JSON)
- ``{"media": True}``: the column holds a bundle of media variants (JSON)
- ``{"ancestor": True}``: the column records the pre-clone id of the row
- ``{"cost": n}``: weight of the FK edge when searching join paths (default 10)

Example:
    datamodel = DataModel(schema.metadata, schema.TABLE_NUMBERS)
    datamodel.primary_key("taxa")
    # Returns: 'taxon_id'
    [t.name for t in datamodel.get_path("matrix_file_uploads", "projects")]
    # Returns: ['matrix_file_uploads', 'matrices', 'projects']
"""

from __future__ import annotations

import heapq
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy import JSON, MetaData
from sqlalchemy import Table as SQLTable

from morphoclone.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_EDGE_COST = 10

# Name of the sibling column that tells which table a numbered column points to.
TABLE_NUMBER_COLUMN = "table_num"


@dataclass(frozen=True)
class Relationship:
    """A foreign key edge from ``table.field`` to ``referenced_table.referenced_key``."""

    table: str
    field: str
    referenced_table: str
    referenced_key: str
    cost: int = DEFAULT_EDGE_COST


@dataclass(frozen=True)
class ColumnDescriptor:
    """What the duplicator needs to know about one column.

    Attributes:
        name: Column name.
        references: Name of the table this column is a foreign key to, if any.
        ancestor: Column records the pre-clone identifier of its own row.
        file: Column holds a file locator.
        media: Column holds a media-variant bundle.
        structured: Column is stored as JSON.
        resolver: For numbered (polymorphic) columns, maps a row to the name of
            the table the column points to.
    """

    name: str
    references: str | None = None
    ancestor: bool = False
    file: bool = False
    media: bool = False
    structured: bool = False
    resolver: Callable[[Mapping[str, Any]], str] | None = None

    @property
    def numbered(self) -> bool:
        return self.resolver is not None


@dataclass(frozen=True)
class TableDescriptor:
    """Name, primary key and ordered column descriptors of a table."""

    name: str
    primary_key: str
    columns: tuple[ColumnDescriptor, ...] = field(default_factory=tuple)

    def column(self, name: str) -> ColumnDescriptor:
        for c in self.columns:
            if c.name == name:
                return c
        raise KeyError(f"Column {name} not found in {self.name}")


class DataModel:
    """Foreign key graph and table registry over a SQLAlchemy MetaData.

    Args:
        metadata: MetaData holding every table the engine may touch.
        table_numbers: Mapping of table name to the numeric identifier used by
            polymorphic (numbered) references.
    """

    def __init__(self, metadata: MetaData, table_numbers: Mapping[str, int] | None = None):
        self.metadata = metadata
        self.table_numbers = dict(table_numbers or {})
        self._tables_by_number = {number: name for name, number in self.table_numbers.items()}
        # table -> referenced table -> cheapest relationship
        self._edges: dict[str, dict[str, Relationship]] = {}
        # referenced table -> tables referencing it, in declaration order
        self._referencing: dict[str, list[str]] = {}
        self._build_graph()

    def _build_graph(self) -> None:
        for table in self.metadata.sorted_tables:
            self._edges.setdefault(table.name, {})
            self._referencing.setdefault(table.name, [])

        for table in self.metadata.tables.values():
            for column in table.columns:
                for fk in column.foreign_keys:
                    target = fk.column.table
                    if target.name not in self.metadata.tables:
                        raise ConfigurationError(f"Invalid table {target.name} referenced by {table.name}")
                    relationship = Relationship(
                        table=table.name,
                        field=column.name,
                        referenced_table=target.name,
                        referenced_key=fk.column.name,
                        cost=column.info.get("cost", DEFAULT_EDGE_COST),
                    )
                    current = self._edges[table.name].get(target.name)
                    if current is None or relationship.cost < current.cost:
                        self._edges[table.name][target.name] = relationship
                    if table.name not in self._referencing[target.name]:
                        self._referencing[target.name].append(table.name)

    # ------------------------------------------------------------------
    # Table registry
    # ------------------------------------------------------------------

    def get_table(self, table: str | SQLTable) -> SQLTable:
        """Return the SQLAlchemy Table for a name (or pass a Table through).

        Raises:
            ConfigurationError: If the table is not part of the model.
        """
        if isinstance(table, SQLTable):
            name = table.name
        else:
            name = table
        try:
            return self.metadata.tables[name]
        except KeyError:
            raise ConfigurationError(f"Table {name} not found in the data model")

    def get_table_names(self) -> list[str]:
        return list(self.metadata.tables)

    def get_table_by_number(self, number: int) -> SQLTable:
        """Return the table registered under a numeric table number."""
        try:
            name = self._tables_by_number[int(number)]
        except (KeyError, TypeError, ValueError):
            raise ConfigurationError(f"No table is registered under number {number}")
        return self.get_table(name)

    def get_table_number(self, table: str | SQLTable) -> int | None:
        return self.table_numbers.get(self.get_table(table).name)

    def primary_key(self, table: str | SQLTable) -> str:
        """Name of the single primary key column of a table."""
        t = self.get_table(table)
        pk = [c.name for c in t.primary_key.columns]
        if len(pk) != 1:
            raise ConfigurationError(f"Table {t.name} must have exactly one primary key column, found {pk}")
        return pk[0]

    # ------------------------------------------------------------------
    # Foreign key graph
    # ------------------------------------------------------------------

    def get_neighboring_tables(self, table: str | SQLTable) -> list[str]:
        """Tables the given table references through foreign keys."""
        return list(self._edges[self.get_table(table).name])

    def get_referencing_tables(self, table: str | SQLTable) -> list[str]:
        """Tables holding a foreign key to the given table."""
        return list(self._referencing[self.get_table(table).name])

    def get_relationship(self, table: str | SQLTable, referenced: str | SQLTable) -> Relationship | None:
        return self._edges[self.get_table(table).name].get(self.get_table(referenced).name)

    def check_coverage(
        self,
        root: str | SQLTable,
        participating: Iterable[str | SQLTable],
        ignored: Iterable[str | SQLTable] = (),
    ) -> None:
        """Verify every table connected to the root is explicitly classified.

        Walks from the root through referencing tables (stopping at ignored
        ones). Each table reached, and each table a reached table references,
        must be either participating or ignored.

        Raises:
            ConfigurationError: If a connected table is not allowlisted.
        """
        allowed = {self.get_table(t).name for t in participating}
        skipped = {self.get_table(t).name for t in ignored}
        start = self.get_table(root).name

        seen = {start}
        queue = deque([start])
        while queue:
            name = queue.popleft()
            if name not in allowed:
                raise ConfigurationError(f"{name} is not allowlisted")
            for neighbor in self.get_neighboring_tables(name):
                if neighbor not in allowed and neighbor not in skipped:
                    raise ConfigurationError(f"{neighbor} is not allowlisted (referenced by {name})")
            for referencing in self.get_referencing_tables(name):
                if referencing in skipped or referencing in seen:
                    continue
                seen.add(referencing)
                queue.append(referencing)

    def get_path(self, source: str | SQLTable, target: str | SQLTable) -> list[SQLTable]:
        """Cheapest chain of tables from ``source`` to ``target`` following foreign keys.

        Uses Dijkstra's algorithm with the per-column edge cost.

        Returns:
            Tables from source to target inclusive.

        Raises:
            ConfigurationError: If target cannot be reached from source.
        """
        start = self.get_table(source).name
        end = self.get_table(target).name

        distances = {start: 0}
        previous: dict[str, str | None] = {start: None}
        counter = itertools.count()
        queue = [(0, next(counter), start)]
        visited = set()

        while queue:
            cost, _, node = heapq.heappop(queue)
            if node in visited:
                continue
            visited.add(node)
            if node == end:
                break
            for neighbor, edge in self._edges[node].items():
                candidate = cost + edge.cost
                if candidate < distances.get(neighbor, float("inf")):
                    distances[neighbor] = candidate
                    previous[neighbor] = node
                    heapq.heappush(queue, (candidate, next(counter), neighbor))

        if end not in previous:
            raise ConfigurationError(f"No foreign key path from {start} to {end}")

        path = []
        node: str | None = end
        while node is not None:
            path.append(self.metadata.tables[node])
            node = previous[node]
        return list(reversed(path))

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------

    def describe(self, table: str | SQLTable, numbered_column: str | None = None) -> TableDescriptor:
        """Build the descriptor the duplicator uses for a table.

        Args:
            table: Table name or object.
            numbered_column: Column whose target table is chosen per row by the
                sibling ``table_num`` column.
        """
        t = self.get_table(table)
        columns = []
        for column in t.columns:
            references = None
            for fk in column.foreign_keys:
                references = fk.column.table.name
            resolver = None
            if numbered_column == column.name:
                resolver = self._numbered_resolver
            columns.append(
                ColumnDescriptor(
                    name=column.name,
                    references=references,
                    ancestor=bool(column.info.get("ancestor")),
                    file=bool(column.info.get("file")),
                    media=bool(column.info.get("media")),
                    structured=isinstance(column.type, JSON),
                    resolver=resolver,
                )
            )
        if numbered_column is not None and numbered_column not in t.columns:
            raise ConfigurationError(f"Numbered column {numbered_column} not found in {t.name}")
        return TableDescriptor(name=t.name, primary_key=self.primary_key(t), columns=tuple(columns))

    def _numbered_resolver(self, row: Mapping[str, Any]) -> str:
        return self.get_table_by_number(row[TABLE_NUMBER_COLUMN]).name
