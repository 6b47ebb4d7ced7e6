"""Duplication restricted to one partition of a project.

A partition selects a subset of a project's taxa and characters. Publishing
it clones the project with only the rows reachable from that subset:

- taxa and characters in the partition, with their states, rules and links
- matrices that order at least one partitioned taxon or character
- media attached to partitioned taxa (through specimens or directly), to
  partitioned characters, to bibliographic references or to documents
- specimens, views, documents and folders of those media
- cells and cell annotations of partitioned taxa and characters
- all bibliographic references and their authors

The two derived id sets (``matrices`` and ``media_files``) are computed once
per run and cached on the run context.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Table as SQLTable
from sqlalchemy import and_, or_, select, union
from sqlalchemy.engine import Connection
from sqlalchemy.sql import Select

from morphoclone.core.exceptions import ConfigurationError
from morphoclone.duplication.context import DuplicationContext
from morphoclone.duplication.duplicator import ModelDuplicator
from morphoclone.duplication.resolver import RowSourceResolver, strategy
from morphoclone.model.datamodel import DataModel
from morphoclone.model.schema import NUMBERED_TABLES, PARTITION_DUPLICATED_TABLES, PARTITION_IGNORED_TABLES


class PartitionRowSourceResolver(RowSourceResolver):
    """Row queries scoped to one partition of the root project."""

    def __init__(
        self,
        datamodel: DataModel,
        root_table: str,
        root_id: int,
        conn: Connection | None = None,
        context: DuplicationContext | None = None,
        partition_id: int | None = None,
    ):
        super().__init__(datamodel, root_table, root_id, conn, context)
        self.partition_id = partition_id

    def select(self, table: str | SQLTable) -> Select:
        t = self.datamodel.get_table(table)
        if t.name not in self._strategies:
            raise ConfigurationError(f"No partition query for {t.name}")
        return super().select(t)

    # ------------------------------------------------------------------
    # Derived id sets
    # ------------------------------------------------------------------

    def derived_ids(self, name: str) -> list[int]:
        """Ids of ``matrices`` or ``media_files`` in the partition, cached per run."""
        if name not in self.context.derived_ids:
            if name == "matrices":
                stmt = self._matrix_ids()
            elif name == "media_files":
                stmt = self._media_ids()
            else:
                raise ConfigurationError(f"There is no defined query to get ids for {name}")
            self.context.derived_ids[name] = sorted({int(row[0]) for row in self.conn.execute(stmt)})
        return self.context.derived_ids[name]

    def _matrix_ids(self):
        mco = self.table("matrix_character_order")
        mto = self.table("matrix_taxa_order")
        cxp = self.table("characters_x_partitions")
        txp = self.table("taxa_x_partitions")
        return union(
            select(mco.c.matrix_id)
            .join(cxp, cxp.c.character_id == mco.c.character_id)
            .where(cxp.c.partition_id == self.partition_id),
            select(mto.c.matrix_id)
            .join(txp, txp.c.taxon_id == mto.c.taxon_id)
            .where(txp.c.partition_id == self.partition_id),
        )

    def _media_ids(self):
        mf = self.table("media_files")
        txs = self.table("taxa_x_specimens")
        txp = self.table("taxa_x_partitions")
        txm = self.table("taxa_x_media")
        cxm = self.table("characters_x_media")
        cxp = self.table("characters_x_partitions")
        mfxb = self.table("media_files_x_bibliographic_references")
        refs = self.table("bibliographic_references")
        mfxd = self.table("media_files_x_documents")
        docs = self.table("project_documents")
        return union(
            # media of partitioned taxa, through their specimens
            select(mf.c.media_id)
            .join(txs, txs.c.specimen_id == mf.c.specimen_id)
            .join(txp, txp.c.taxon_id == txs.c.taxon_id)
            .where(txp.c.partition_id == self.partition_id),
            # taxon media
            select(mf.c.media_id)
            .join(txm, txm.c.media_id == mf.c.media_id)
            .join(txp, txp.c.taxon_id == txm.c.taxon_id)
            .where(txp.c.partition_id == self.partition_id),
            # character media
            select(mf.c.media_id)
            .join(cxm, cxm.c.media_id == mf.c.media_id)
            .join(cxp, cxp.c.character_id == cxm.c.character_id)
            .where(cxp.c.partition_id == self.partition_id),
            # media cited by bibliographic references
            select(mf.c.media_id)
            .join(mfxb, mfxb.c.media_id == mf.c.media_id)
            .join(refs, refs.c.reference_id == mfxb.c.reference_id)
            .where(mf.c.project_id == self.root_id),
            # media attached to documents
            select(mf.c.media_id)
            .join(mfxd, mfxd.c.media_id == mf.c.media_id)
            .join(docs, docs.c.document_id == mfxd.c.document_id)
            .where(mf.c.project_id == self.root_id),
        )

    # ------------------------------------------------------------------
    # Per-table queries
    # ------------------------------------------------------------------

    @strategy("projects", "bibliographic_references", "bibliographic_authors", "hp_matrix_images")
    def select_whole(self, table: SQLTable) -> Select:
        return self.default_select(table)

    @strategy("taxa")
    def select_taxa(self, table: SQLTable) -> Select:
        txp = self.table("taxa_x_partitions")
        return (
            select(table)
            .join(txp, txp.c.taxon_id == table.c.taxon_id)
            .where(txp.c.partition_id == self.partition_id, table.c.project_id == self.root_id)
        )

    @strategy("matrix_taxa_order", "taxa_x_media", "taxa_x_bibliographic_references")
    def select_taxon_links(self, table: SQLTable) -> Select:
        taxa = self.table("taxa")
        txp = self.table("taxa_x_partitions")
        return (
            select(table)
            .join(taxa, taxa.c.taxon_id == table.c.taxon_id)
            .join(txp, txp.c.taxon_id == table.c.taxon_id)
            .where(txp.c.partition_id == self.partition_id, taxa.c.project_id == self.root_id)
        )

    @strategy("characters")
    def select_characters(self, table: SQLTable) -> Select:
        cxp = self.table("characters_x_partitions")
        return (
            select(table)
            .join(cxp, cxp.c.character_id == table.c.character_id)
            .where(cxp.c.partition_id == self.partition_id, table.c.project_id == self.root_id)
        )

    @strategy("character_states", "character_rules", "characters_x_media", "characters_x_bibliographic_references")
    def select_character_links(self, table: SQLTable) -> Select:
        characters = self.table("characters")
        cxp = self.table("characters_x_partitions")
        return (
            select(table)
            .join(characters, characters.c.character_id == table.c.character_id)
            .join(cxp, cxp.c.character_id == table.c.character_id)
            .where(cxp.c.partition_id == self.partition_id, characters.c.project_id == self.root_id)
        )

    @strategy("matrix_character_order")
    def select_matrix_character_order(self, table: SQLTable) -> Select:
        return self.select_character_links(table).where(table.c.matrix_id.in_(self.derived_ids("matrices")))

    @strategy("character_rule_actions")
    def select_character_rule_actions(self, table: SQLTable) -> Select:
        # Both the character owning the rule and the character it acts on
        # must be in the partition.
        rules = self.table("character_rules")
        characters = self.table("characters")
        cxp = self.table("characters_x_partitions")
        mother = cxp.alias("cxp_mother")
        daughter = cxp.alias("cxp_daughter")
        return (
            select(table)
            .join(rules, rules.c.rule_id == table.c.rule_id)
            .join(characters, characters.c.character_id == table.c.character_id)
            .join(mother, mother.c.character_id == rules.c.character_id)
            .join(daughter, daughter.c.character_id == table.c.character_id)
            .where(
                mother.c.partition_id == self.partition_id,
                daughter.c.partition_id == self.partition_id,
                characters.c.project_id == self.root_id,
            )
        )

    @strategy("matrices")
    def select_matrices(self, table: SQLTable) -> Select:
        return select(table).where(
            table.c.matrix_id.in_(self.derived_ids("matrices")), table.c.project_id == self.root_id
        )

    @strategy("media_files")
    def select_media(self, table: SQLTable) -> Select:
        return select(table).where(
            table.c.media_id.in_(self.derived_ids("media_files")), table.c.project_id == self.root_id
        )

    @strategy("specimens", "media_views")
    def select_media_owners(self, table: SQLTable) -> Select:
        mf = self.table("media_files")
        pk = self.datamodel.primary_key(table)
        used = select(mf.c[pk]).where(mf.c.media_id.in_(self.derived_ids("media_files")))
        return select(table).where(table.c[pk].in_(used), table.c.project_id == self.root_id)

    @strategy("specimens_x_bibliographic_references")
    def select_specimen_references(self, table: SQLTable) -> Select:
        specimens = self.table("specimens")
        mf = self.table("media_files")
        used = select(mf.c.specimen_id).where(mf.c.media_id.in_(self.derived_ids("media_files")))
        return (
            select(table)
            .join(specimens, specimens.c.specimen_id == table.c.specimen_id)
            .where(table.c.specimen_id.in_(used), specimens.c.project_id == self.root_id)
        )

    @strategy("taxa_x_specimens")
    def select_taxa_x_specimens(self, table: SQLTable) -> Select:
        txp = self.table("taxa_x_partitions")
        specimens = self.table("specimens")
        mf = self.table("media_files")
        used = select(mf.c.specimen_id).where(mf.c.media_id.in_(self.derived_ids("media_files")))
        return (
            select(table)
            .join(txp, txp.c.taxon_id == table.c.taxon_id)
            .join(specimens, specimens.c.specimen_id == table.c.specimen_id)
            .where(
                txp.c.partition_id == self.partition_id,
                table.c.specimen_id.in_(used),
                specimens.c.project_id == self.root_id,
            )
        )

    @strategy("media_files_x_documents", "media_files_x_bibliographic_references")
    def select_media_links(self, table: SQLTable) -> Select:
        mf = self.table("media_files")
        return (
            select(table)
            .join(mf, mf.c.media_id == table.c.media_id)
            .where(table.c.media_id.in_(self.derived_ids("media_files")), mf.c.project_id == self.root_id)
        )

    @strategy("media_labels")
    def select_media_labels(self, table: SQLTable) -> Select:
        # A label pointing at a numbered row comes along only if that row is
        # selected too. Labels on labels are dropped.
        number_column = table.c.table_num
        link_column = table.c.link_id
        kept = [number_column.is_(None), link_column.is_(None)]
        numbers = [self.datamodel.get_table_number(table)]
        for name, number in self.datamodel.table_numbers.items():
            if name == table.name or not self.has_strategy(name):
                continue
            target = self.select(name).subquery()
            linked = select(target.c[self.datamodel.primary_key(name)])
            kept.append(and_(number_column == number, link_column.in_(linked)))
            numbers.append(number)
        kept.append(number_column.not_in([n for n in numbers if n is not None]))
        return self.select_media_links(table).where(or_(*kept))

    @strategy("project_documents")
    def select_documents(self, table: SQLTable) -> Select:
        mfxd = self.table("media_files_x_documents")
        used = select(mfxd.c.document_id).where(mfxd.c.media_id.in_(self.derived_ids("media_files")))
        return select(table).where(table.c.document_id.in_(used), table.c.project_id == self.root_id)

    @strategy("project_document_folders")
    def select_document_folders(self, table: SQLTable) -> Select:
        docs = self.table("project_documents")
        mfxd = self.table("media_files_x_documents")
        used = (
            select(docs.c.folder_id)
            .join(mfxd, mfxd.c.document_id == docs.c.document_id)
            .where(mfxd.c.media_id.in_(self.derived_ids("media_files")), docs.c.project_id == self.root_id)
        )
        return select(table).where(table.c.folder_id.in_(used))

    @strategy("cells", "cell_notes", "cells_x_media", "cells_x_bibliographic_references")
    def select_cell_data(self, table: SQLTable) -> Select:
        matrices = self.table("matrices")
        txp = self.table("taxa_x_partitions")
        cxp = self.table("characters_x_partitions")
        stmt = (
            select(table)
            .join(matrices, matrices.c.matrix_id == table.c.matrix_id)
            .join(txp, txp.c.taxon_id == table.c.taxon_id)
            .join(cxp, cxp.c.character_id == table.c.character_id)
            .where(
                txp.c.partition_id == self.partition_id,
                cxp.c.partition_id == self.partition_id,
                table.c.matrix_id.in_(self.derived_ids("matrices")),
                matrices.c.project_id == self.root_id,
            )
        )
        if "media_id" in table.c:
            stmt = stmt.where(table.c.media_id.in_(self.derived_ids("media_files")))
        return stmt

    @strategy("matrix_file_uploads", "matrix_additional_blocks", "character_orderings")
    def select_matrix_data(self, table: SQLTable) -> Select:
        matrices = self.table("matrices")
        return (
            select(table)
            .join(matrices, matrices.c.matrix_id == table.c.matrix_id)
            .where(table.c.matrix_id.in_(self.derived_ids("matrices")), matrices.c.project_id == self.root_id)
        )


class PartitionModelDuplicator(ModelDuplicator):
    """Duplicates a project restricted to one of its partitions.

    Args:
        datamodel: The schema dependency model.
        root_table: Name of the root table (``projects``).
        root_id: Project to publish from.
        partition_id: Partition to publish.
        **kwargs: As for ModelDuplicator. The partition table lists are used
            unless ``participating``/``ignored``/``numbered`` are given.
    """

    resolver_class = PartitionRowSourceResolver

    def __init__(self, datamodel: DataModel, root_table: str, root_id: int, partition_id: int, **kwargs: Any):
        kwargs.setdefault("participating", PARTITION_DUPLICATED_TABLES)
        kwargs.setdefault("ignored", PARTITION_IGNORED_TABLES)
        kwargs.setdefault("numbered", NUMBERED_TABLES)
        super().__init__(datamodel, root_table, root_id, **kwargs)
        self.partition_id = partition_id

    def create_resolver(self, conn: Connection, context: DuplicationContext) -> PartitionRowSourceResolver:
        return self.resolver_class(
            self.datamodel, self.root_table, self.root_id, conn, context, partition_id=self.partition_id
        )
