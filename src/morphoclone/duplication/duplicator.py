"""Cloning of a connected set of rows into fresh rows.

This module provides the ModelDuplicator class which copies every row that
belongs to one root row (typically a project) into new rows with
database-assigned identifiers. It handles:

- FK-safe table ordering (referenced tables are cloned first)
- Remapping of foreign keys, numbered (polymorphic) references and
  ancestor columns to the clone
- Copying the files and media objects referenced by cloned rows
- Compensation when anything fails: created files and objects are deleted
  and the transaction is rolled back

Example:
    datamodel = DataModel(schema.metadata, schema.TABLE_NUMBERS)
    duplicator = ModelDuplicator(
        datamodel,
        "projects",
        project_id,
        participating=schema.PROJECT_DUPLICATED_TABLES,
        ignored=schema.PROJECT_IGNORED_TABLES,
        numbered=schema.NUMBERED_TABLES,
        media_root="/var/www/media/morphobank",
    )
    duplicator.set_overridden_field_names({"user_id": user_id})

    with engine.begin() as conn:
        new_project_id = duplicator.duplicate(conn)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Mapping

from sqlalchemy import Table as SQLTable
from sqlalchemy import delete, insert, update
from sqlalchemy.engine import Connection

from morphoclone.core.config import MorphoCloneConfig
from morphoclone.core.enums import ONETIME_USE_LICENSE, OnetimeUseAction
from morphoclone.core.exceptions import BlobCopyError, ConfigurationError, DuplicationError
from morphoclone.core.logging_config import LoggerMixin
from morphoclone.duplication.context import ClonedIds, DuplicationContext
from morphoclone.duplication.resolver import RowSourceResolver
from morphoclone.model.datamodel import DataModel, TableDescriptor
from morphoclone.model.fk_orderer import ForeignKeyOrderer
from morphoclone.storage.local import LocalFileDuplicator
from morphoclone.storage.media import NON_FILE_ENTRIES, detect_media_type, has_remote_keys
from morphoclone.storage.s3 import S3Duplicator

MEDIA_TABLE = "media_files"


def normalize_json(value: Any) -> Any:
    """Return a JSON column value as a Python object.

    Strings are parsed; a string that is not valid JSON becomes None.
    """
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


class ModelDuplicator(LoggerMixin):
    """Clones the rows owned by one root row.

    Args:
        datamodel: The schema dependency model.
        root_table: Name of the root table.
        root_id: Identifier of the root row to duplicate.
        participating: Tables whose rows are cloned.
        ignored: Tables that are never cloned. References to them are kept.
        numbered: Mapping of table name to its numbered column.
        overrides: Column values forced on every cloned row having the column.
        media_root: Root of the local media volumes. None disables local copies.
        s3_client: boto3 S3 client. None disables remote copies.
        s3_bucket: Bucket of the remote store.
        file_mode: Permission bits of copied local files.
    """

    resolver_class = RowSourceResolver

    def __init__(
        self,
        datamodel: DataModel,
        root_table: str,
        root_id: int,
        participating: Iterable[str] = (),
        ignored: Iterable[str] = (),
        numbered: Mapping[str, str] | None = None,
        overrides: Mapping[str, Any] | None = None,
        media_root: Path | str | None = None,
        s3_client: Any = None,
        s3_bucket: str | None = None,
        file_mode: int = 0o775,
    ):
        self.datamodel = datamodel
        self.root_table = datamodel.get_table(root_table).name
        self.root_id = root_id
        self.media_root = Path(media_root) if media_root is not None else None
        self.s3_client = s3_client
        self.s3_bucket = s3_bucket
        self.file_mode = file_mode
        self.onetime_use_action: OnetimeUseAction | None = None
        self.orderer = ForeignKeyOrderer(datamodel)
        self._context = DuplicationContext()
        self._descriptors: dict[str, TableDescriptor] = {}
        self.set_participating_tables(participating)
        self.set_ignored_tables(ignored)
        self.set_numbered_tables(numbered or {})
        self.set_overridden_field_names(overrides or {})

    @classmethod
    def from_config(
        cls, config: MorphoCloneConfig, datamodel: DataModel, root_table: str, root_id: int, **kwargs
    ) -> "ModelDuplicator":
        """Build a duplicator with the media store and S3 client of a config."""
        s3_client = config.create_s3_client() if config.s3_bucket else None
        return cls(
            datamodel,
            root_table,
            root_id,
            media_root=config.media_root,
            s3_client=s3_client,
            s3_bucket=config.s3_bucket,
            file_mode=config.file_mode,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_participating_tables(self, tables: Iterable[str]) -> None:
        self.participating = list(tables)

    def set_ignored_tables(self, tables: Iterable[str]) -> None:
        self.ignored = list(tables)

    def set_numbered_tables(self, numbered: Mapping[str, str]) -> None:
        self.numbered = dict(numbered)
        self._descriptors.clear()

    def set_overridden_field_names(self, overrides: Mapping[str, Any]) -> None:
        self.overrides = dict(overrides)

    def set_onetime_use_action(self, action: OnetimeUseAction | int | None) -> None:
        """Choose what happens to one-time-use media (see OnetimeUseAction)."""
        self.onetime_use_action = OnetimeUseAction(action) if action is not None else None

    def get_tables(self) -> list[SQLTable]:
        """Participating tables in the order they are cloned.

        Raises:
            ConfigurationError: If the table configuration is incomplete,
                inconsistent or cyclic.
        """
        if not self.participating:
            raise ConfigurationError("No participating tables configured")
        if self.root_table not in self.participating:
            raise ConfigurationError(f"Root table {self.root_table} must participate")
        self.datamodel.check_coverage(self.root_table, self.participating, self.ignored)
        return self.orderer.get_insertion_order(self.participating, self.ignored, self.numbered)

    def describe(self, table: str) -> TableDescriptor:
        if table not in self._descriptors:
            self._descriptors[table] = self.datamodel.describe(table, self.numbered.get(table))
        return self._descriptors[table]

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    @property
    def cloned_ids(self) -> ClonedIds:
        """Mapping of the last (or current) run."""
        return self._context.cloned_ids

    def get_duplicate_record_id(self, table: str, row_id: Any) -> int:
        return self._context.cloned_ids.get(table, row_id)

    def was_record_cloned(self, table: str, row_id: Any) -> bool:
        return self._context.cloned_ids.has(table, row_id)

    def compensate(self) -> None:
        """Delete the files and objects copied by the last run.

        ``duplicate()`` does this itself when it fails. Callers that keep
        working in the same transaction after it returns call this when that
        later work fails and the transaction is rolled back.
        """
        self._context.compensate()

    def create_blob_duplicators(self) -> list:
        duplicators = []
        if self.media_root is not None:
            duplicators.append(LocalFileDuplicator(self.media_root, self.file_mode))
        if self.s3_client is not None and self.s3_bucket:
            duplicators.append(S3Duplicator(self.s3_client, self.s3_bucket))
        return duplicators

    def create_resolver(self, conn: Connection, context: DuplicationContext) -> RowSourceResolver:
        return self.resolver_class(self.datamodel, self.root_table, self.root_id, conn, context)

    def duplicate(self, conn: Connection) -> int:
        """Clone every row owned by the root row.

        The caller owns the transaction on ``conn``. If anything fails, the
        files and objects created so far are deleted and the transaction on
        ``conn`` is rolled back.

        Returns:
            Identifier of the cloned root row.

        Raises:
            DuplicationError: Wrapping the first failure.
        """
        context = DuplicationContext(blob_duplicators=self.create_blob_duplicators())
        self._context = context
        self._logger.info(f"Duplicating {self.root_table} {self.root_id}")

        try:
            tables = self.get_tables()
            resolver = self.create_resolver(conn, context)
            for table in tables:
                rows = resolver.resolve(table)
                if rows:
                    self.duplicate_rows(conn, table.name, rows)

            new_id = context.cloned_ids.get(self.root_table, self.root_id)

            if self.onetime_use_action == OnetimeUseAction.MOVE_TO_DUPLICATE and context.moved_media:
                self.delete_moved_media(conn)
        except Exception as e:
            self._logger.error(f"Duplication of {self.root_table} {self.root_id} failed: {e}")
            context.compensate()
            if conn.in_transaction():
                conn.rollback()
            raise DuplicationError(f"Duplication of {self.root_table} {self.root_id} failed: {e}", cause=e) from e

        self._logger.info(
            f"Duplicated {self.root_table} {self.root_id} as {new_id} ({len(context.cloned_ids)} rows)"
        )
        return new_id

    def duplicate_rows(self, conn: Connection, table: str, rows: list[dict[str, Any]]) -> None:
        """Insert a clone of each row and copy the assets it references."""
        context = self._context
        descriptor = self.describe(table)
        sql_table = self.datamodel.get_table(table)
        pk = descriptor.primary_key
        participating = set(self.participating)

        if table == MEDIA_TABLE and self.onetime_use_action is not None:
            rows = self._filter_onetime_media(rows, pk)

        for source in rows:
            row = dict(source)
            row_id = row.pop(pk)

            if self._references_skipped_row(descriptor, row, participating):
                context.skip(table, row_id)
                continue

            staged: dict[str, Any] = {}
            for column in descriptor.columns:
                name = column.name
                if name == pk or name not in row:
                    continue
                value = row[name]

                if column.file or column.media:
                    if value:
                        staged[name] = normalize_json(value)
                    row[name] = None
                elif column.references in participating and value is not None:
                    row[name] = context.cloned_ids.get(column.references, value)
                elif column.numbered and value is not None:
                    target = column.resolver(row)
                    if target in participating:
                        row[name] = context.cloned_ids.get(target, value)

                if column.ancestor:
                    row[name] = row_id
                if name in self.overrides:
                    row[name] = self.overrides[name]
                if column.structured and not (column.file or column.media):
                    row[name] = normalize_json(row[name])

            result = conn.execute(insert(sql_table).values(**row))
            new_id = result.inserted_primary_key[0]
            context.cloned_ids.set(table, row_id, new_id)

            for name, value in staged.items():
                column = descriptor.column(name)
                if column.file:
                    updated = self.duplicate_file(table, row_id, new_id, value)
                else:
                    updated = self.duplicate_media(table, row_id, new_id, value)
                if updated is not None:
                    conn.execute(update(sql_table).where(sql_table.c[pk] == new_id).values({name: updated}))

        self._logger.debug(f"Cloned {len(context.cloned_ids.for_table(table))} rows of {table}")

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def _owner_ids(self) -> tuple[int, int]:
        return self.root_id, self._context.cloned_ids.get(self.root_table, self.root_id)

    def _duplicator(self, kind: type):
        for duplicator in self._context.blob_duplicators:
            if isinstance(duplicator, kind):
                return duplicator
        return None

    def duplicate_file(self, table: str, old_id: int, new_id: int, locator: Any) -> dict | None:
        """Copy the file behind a locator. Returns the new locator, or None to leave it unset."""
        if not isinstance(locator, dict):
            self._logger.warning(f"Skipping unreadable file locator in {table} {old_id}")
            return None
        old_owner, new_owner = self._owner_ids()

        if has_remote_keys(locator):
            s3 = self._duplicator(S3Duplicator)
            if s3 is None:
                raise BlobCopyError(f"{table} {old_id} references S3 objects but no S3 store is configured")
            return s3.copy_file(old_owner, new_owner, old_id, new_id, locator)
        if locator.get("filename"):
            local = self._duplicator(LocalFileDuplicator)
            if local is None:
                self._logger.warning(f"No local media store configured, skipping file of {table} {old_id}")
                return None
            return local.copy_file(old_owner, new_owner, old_id, new_id, locator)

        self._logger.warning(f"Skipping file without filename or S3 keys in {table} {old_id}")
        return None

    def duplicate_media(self, table: str, old_id: int, new_id: int, bundle: Any) -> dict | None:
        """Copy every variant of a media bundle. Returns the new bundle, or None to leave it unset."""
        if not isinstance(bundle, dict):
            self._logger.warning(f"Skipping unreadable media in {table} {old_id}")
            return None
        old_owner, new_owner = self._owner_ids()

        if has_remote_keys(bundle):
            s3 = self._duplicator(S3Duplicator)
            if s3 is None:
                raise BlobCopyError(f"{table} {old_id} references S3 objects but no S3 store is configured")
            return s3.copy_media(old_owner, new_owner, old_id, new_id, bundle, detect_media_type(bundle))

        has_files = any(
            isinstance(media, dict) and media.get("filename")
            for version, media in bundle.items()
            if version not in NON_FILE_ENTRIES
        )
        if not has_files:
            self._logger.warning(f"Skipping media without filename or S3 keys in {table} {old_id}")
            return None
        local = self._duplicator(LocalFileDuplicator)
        if local is None:
            self._logger.warning(f"No local media store configured, skipping media of {table} {old_id}")
            return None
        return local.copy_media(old_owner, new_owner, old_id, new_id, bundle)

    # ------------------------------------------------------------------
    # One-time-use media
    # ------------------------------------------------------------------

    def _filter_onetime_media(self, rows: list[dict[str, Any]], pk: str) -> list[dict[str, Any]]:
        kept = []
        for row in rows:
            if row.get("copyright_license") != ONETIME_USE_LICENSE:
                kept.append(row)
            elif self.onetime_use_action == OnetimeUseAction.KEEP_IN_ORIGINAL:
                self._logger.info(f"Keeping one-time-use media {row[pk]} in the original project")
                self._context.skip(MEDIA_TABLE, row[pk])
            else:
                self._context.moved_media.append(row[pk])
                kept.append(row)
        return kept

    def _references_skipped_row(self, descriptor: TableDescriptor, row: dict[str, Any], participating: set) -> bool:
        if not self._context.skipped_rows:
            return False
        for column in descriptor.columns:
            value = row.get(column.name)
            if value is None:
                continue
            target = column.references
            if column.numbered:
                target = column.resolver(row)
            if target in participating and self._context.was_skipped(target, value):
                self._logger.warning(
                    f"Skipping {descriptor.name} row that references skipped {target} {value} via {column.name}"
                )
                return True
        return False

    def delete_moved_media(self, conn: Connection) -> None:
        """Remove moved one-time-use media and the rows linking to it from the source project."""
        media_ids = list(self._context.moved_media)
        media = self.datamodel.get_table(MEDIA_TABLE)
        for name in self.datamodel.get_referencing_tables(MEDIA_TABLE):
            if name == MEDIA_TABLE:
                continue
            t = self.datamodel.get_table(name)
            for column in t.columns:
                if any(fk.column.table.name == MEDIA_TABLE for fk in column.foreign_keys):
                    conn.execute(delete(t).where(column.in_(media_ids)))
        conn.execute(
            delete(media).where(media.c.media_id.in_(media_ids), media.c.project_id == self.root_id)
        )
        self._logger.info(f"Moved {len(media_ids)} one-time-use media out of {self.root_table} {self.root_id}")
