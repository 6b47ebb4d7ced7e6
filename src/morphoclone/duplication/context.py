"""State owned by a single duplication run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

from morphoclone.core.exceptions import DuplicateMappingError, MissingMappingError
from morphoclone.storage.base import BlobDuplicator

logger = logging.getLogger(__name__)


class ClonedIds:
    """Mapping of ``(table, source id) -> clone id``.

    Each source row is cloned at most once, so recording a second clone for
    the same pair is an error, as is asking for a pair that was never cloned.
    """

    def __init__(self):
        self._ids: dict[str, dict[Any, int]] = {}

    def set(self, table: str, row_id: Any, clone_id: int) -> None:
        ids = self._ids.setdefault(table, {})
        if row_id in ids:
            raise DuplicateMappingError(table, row_id)
        ids[row_id] = clone_id

    def get(self, table: str, row_id: Any) -> int:
        try:
            return self._ids[table][row_id]
        except KeyError:
            raise MissingMappingError(table, row_id)

    def has(self, table: str, row_id: Any) -> bool:
        return row_id in self._ids.get(table, {})

    def for_table(self, table: str) -> dict[Any, int]:
        return dict(self._ids.get(table, {}))

    def __len__(self) -> int:
        return sum(len(ids) for ids in self._ids.values())

    def __iter__(self) -> Iterator[tuple[str, Any, int]]:
        for table, ids in self._ids.items():
            for row_id, clone_id in ids.items():
                yield table, row_id, clone_id


@dataclass
class DuplicationContext:
    """Everything one ``duplicate()`` call accumulates.

    Attributes:
        cloned_ids: Source to clone id mapping.
        blob_duplicators: Local and remote copiers, each keeping its own ledger
            of created assets.
        derived_ids: Cache of id sets computed once per run (partition scope).
        skipped_rows: Source rows deliberately left out, per table. Rows that
            reference them are left out too.
        moved_media: One-time-use media to delete from the source project once
            the run succeeds.
    """

    cloned_ids: ClonedIds = field(default_factory=ClonedIds)
    blob_duplicators: list[BlobDuplicator] = field(default_factory=list)
    derived_ids: dict[str, list[int]] = field(default_factory=dict)
    skipped_rows: dict[str, set] = field(default_factory=dict)
    moved_media: list[int] = field(default_factory=list)

    def skip(self, table: str, row_id: Any) -> None:
        self.skipped_rows.setdefault(table, set()).add(row_id)

    def was_skipped(self, table: str, row_id: Any) -> bool:
        return row_id in self.skipped_rows.get(table, ())

    def compensate(self) -> None:
        """Undo every external side effect of the run, newest duplicator first."""
        for duplicator in reversed(self.blob_duplicators):
            try:
                duplicator.cleanup()
            except Exception as e:
                logger.error(f"Cleanup of {type(duplicator).__name__} failed: {e}")
