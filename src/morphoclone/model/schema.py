"""MorphoBank tables touched by project duplication.

Only the columns the duplication engine and the task handlers read or write
are declared here, along with enough descriptive columns for realistic rows.
Markers on ``Column.info`` (see :mod:`morphoclone.model.datamodel`):

- ``file``: JSON file locator (project documents, matrix uploads)
- ``media``: JSON media-variant bundle
- ``ancestor``: pre-clone id of the row itself; never a foreign key

The table lists at the bottom configure the two duplication flavors:
whole-project duplication and partition publishing.
"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    SmallInteger,
    String,
    Table,
    Text,
)

metadata = MetaData()


def _pk(name: str) -> Column:
    return Column(name, Integer, primary_key=True, autoincrement=True)


def _fk(name: str, target: str, nullable: bool = True, **info) -> Column:
    return Column(name, Integer, ForeignKey(target), nullable=nullable, info=info)


def _ancestor(name: str) -> Column:
    return Column(name, Integer, nullable=True, info={"ancestor": True})


# -----------------------------------------------------------------------------
# Users, groups and institutions (never duplicated)
# -----------------------------------------------------------------------------

users = Table(
    "ca_users",
    metadata,
    _pk("user_id"),
    Column("fname", String(255)),
    Column("lname", String(255)),
    Column("email", String(255)),
)

project_groups = Table(
    "project_groups",
    metadata,
    _pk("group_id"),
    Column("name", String(255)),
)

institutions = Table(
    "institutions",
    metadata,
    _pk("institution_id"),
    Column("name", String(255)),
)

# -----------------------------------------------------------------------------
# Projects
# -----------------------------------------------------------------------------

projects = Table(
    "projects",
    metadata,
    _pk("project_id"),
    Column("user_id", Integer, nullable=False),
    _fk("group_id", "project_groups.group_id"),
    Column("name", Text, nullable=False),
    Column("description", Text),
    Column("created_on", BigInteger),
    Column("last_accessed_on", BigInteger),
    Column("published", SmallInteger, default=0),
    Column("published_on", BigInteger),
    Column("partition_published_on", BigInteger),
    Column("partitioned_from_project_id", Integer),
    Column("exemplar_media_id", Integer),
    Column("journal_cover", JSON(none_as_null=True), info={"media": True}),
    Column("exemplar_image", JSON(none_as_null=True), info={"media": True}),
    _ancestor("ancestor_project_id"),
    Column("deleted", SmallInteger, default=0),
)

projects_x_users = Table(
    "projects_x_users",
    metadata,
    _pk("link_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    _fk("user_id", "ca_users.user_id", nullable=False),
    Column("created_on", BigInteger),
    Column("membership_type", SmallInteger, default=0),
    Column("vars", JSON(none_as_null=True)),
)

project_member_groups = Table(
    "project_member_groups",
    metadata,
    _pk("group_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("group_name", String(100)),
)

project_duplication_requests = Table(
    "project_duplication_requests",
    metadata,
    _pk("request_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    _fk("user_id", "ca_users.user_id", nullable=False),
    Column("status", SmallInteger, default=1),
    Column("onetime_use_action", SmallInteger),
    Column("new_project_number", Integer),
    Column("request_remarks", Text),
    Column("notes", Text),
    Column("created_on", BigInteger),
)

curator_potential_projects = Table(
    "curator_potential_projects",
    metadata,
    _pk("potential_project_id"),
    _fk("project_id", "projects.project_id"),
    _fk("owner_id", "ca_users.user_id"),
    Column("status", SmallInteger),
)

institutions_x_projects = Table(
    "institutions_x_projects",
    metadata,
    _pk("link_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    _fk("institution_id", "institutions.institution_id", nullable=False),
)

institutions_x_users = Table(
    "institutions_x_users",
    metadata,
    _pk("link_id"),
    _fk("user_id", "ca_users.user_id", nullable=False),
    _fk("institution_id", "institutions.institution_id", nullable=False),
)

partitions = Table(
    "partitions",
    metadata,
    _pk("partition_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("user_id", Integer),
    Column("name", String(255)),
    Column("description", Text),
)

# -----------------------------------------------------------------------------
# Specimens, views and media
# -----------------------------------------------------------------------------

specimens = Table(
    "specimens",
    metadata,
    _pk("specimen_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("user_id", Integer),
    Column("reference_source", SmallInteger),
    Column("institution_code", String(255)),
    Column("collection_code", String(255)),
    Column("catalog_number", String(255)),
    Column("description", Text),
)

media_views = Table(
    "media_views",
    metadata,
    _pk("view_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("user_id", Integer),
    Column("name", String(255)),
)

media_files = Table(
    "media_files",
    metadata,
    _pk("media_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    _fk("specimen_id", "specimens.specimen_id", cost=5),
    _fk("view_id", "media_views.view_id"),
    Column("user_id", Integer),
    Column("media", JSON(none_as_null=True), info={"media": True}),
    Column("notes", Text),
    Column("published", SmallInteger, default=0),
    Column("copyright_license", SmallInteger, default=0),
    Column("cataloguing_status", SmallInteger, default=0),
    _ancestor("ancestor_media_id"),
)

folios = Table(
    "folios",
    metadata,
    _pk("folio_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("user_id", Integer),
    Column("name", String(255)),
)

folios_x_media_files = Table(
    "folios_x_media_files",
    metadata,
    _pk("link_id"),
    _fk("folio_id", "folios.folio_id", nullable=False),
    _fk("media_id", "media_files.media_id", nullable=False),
    Column("position", Integer),
)

# -----------------------------------------------------------------------------
# Documents and bibliography
# -----------------------------------------------------------------------------

project_document_folders = Table(
    "project_document_folders",
    metadata,
    _pk("folder_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("title", String(255)),
)

project_documents = Table(
    "project_documents",
    metadata,
    _pk("document_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    _fk("folder_id", "project_document_folders.folder_id"),
    Column("user_id", Integer),
    Column("title", String(255)),
    Column("upload", JSON(none_as_null=True), info={"file": True}),
)

bibliographic_references = Table(
    "bibliographic_references",
    metadata,
    _pk("reference_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("user_id", Integer),
    Column("article_title", Text),
    Column("pubyear", Integer),
)

bibliographic_authors = Table(
    "bibliographic_authors",
    metadata,
    _pk("author_id"),
    _fk("reference_id", "bibliographic_references.reference_id", nullable=False),
    Column("forename", String(100)),
    Column("surname", String(100)),
    Column("typecode", SmallInteger),
)

media_files_x_documents = Table(
    "media_files_x_documents",
    metadata,
    _pk("link_id"),
    _fk("document_id", "project_documents.document_id", nullable=False),
    _fk("media_id", "media_files.media_id", nullable=False),
    Column("user_id", Integer),
)

media_files_x_bibliographic_references = Table(
    "media_files_x_bibliographic_references",
    metadata,
    _pk("link_id"),
    _fk("reference_id", "bibliographic_references.reference_id", nullable=False),
    _fk("media_id", "media_files.media_id", nullable=False),
    Column("user_id", Integer),
    Column("pp", Text),
)

specimens_x_bibliographic_references = Table(
    "specimens_x_bibliographic_references",
    metadata,
    _pk("link_id"),
    _fk("reference_id", "bibliographic_references.reference_id", nullable=False),
    _fk("specimen_id", "specimens.specimen_id", nullable=False),
    Column("user_id", Integer),
    Column("pp", Text),
)

# -----------------------------------------------------------------------------
# Taxa, characters and matrices
# -----------------------------------------------------------------------------

taxa = Table(
    "taxa",
    metadata,
    _pk("taxon_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("user_id", Integer),
    Column("genus", String(255)),
    Column("specific_epithet", String(255)),
    Column("notes", Text),
    Column("tmp_eol_data", JSON(none_as_null=True)),
)

characters = Table(
    "characters",
    metadata,
    _pk("character_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("user_id", Integer),
    Column("name", Text),
    Column("description", Text),
    Column("num", Integer),
    Column("type", SmallInteger, default=0),
    _ancestor("ancestor_character_id"),
)

character_states = Table(
    "character_states",
    metadata,
    _pk("state_id"),
    _fk("character_id", "characters.character_id", nullable=False),
    Column("user_id", Integer),
    Column("name", Text),
    Column("num", Integer),
    _ancestor("ancestor_state_id"),
)

matrices = Table(
    "matrices",
    metadata,
    _pk("matrix_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("user_id", Integer),
    Column("title", String(255)),
    Column("other_options", JSON(none_as_null=True)),
)

hp_matrix_images = Table(
    "hp_matrix_images",
    metadata,
    _pk("image_id"),
    _fk("project_id", "projects.project_id", nullable=False),
    Column("media", JSON(none_as_null=True), info={"media": True}),
)

character_orderings = Table(
    "character_orderings",
    metadata,
    _pk("order_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False),
    Column("user_id", Integer),
    Column("name", String(255)),
    Column("order_type", SmallInteger),
)

cipres_requests = Table(
    "cipres_requests",
    metadata,
    _pk("request_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False),
    _fk("user_id", "ca_users.user_id"),
    Column("jobname", String(255)),
)

cells = Table(
    "cells",
    metadata,
    _pk("cell_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False, cost=5),
    _fk("taxon_id", "taxa.taxon_id", nullable=False),
    _fk("character_id", "characters.character_id", nullable=False),
    _fk("state_id", "character_states.state_id"),
    Column("user_id", Integer),
    Column("is_npa", SmallInteger, default=0),
    Column("is_uncertain", SmallInteger, default=0),
    Column("start_value", String(255)),
    Column("end_value", String(255)),
    _ancestor("ancestor_cell_id"),
)

cell_notes = Table(
    "cell_notes",
    metadata,
    _pk("note_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False, cost=5),
    _fk("taxon_id", "taxa.taxon_id", nullable=False),
    _fk("character_id", "characters.character_id", nullable=False),
    Column("user_id", Integer),
    Column("notes", Text),
    Column("status", SmallInteger, default=0),
    _ancestor("ancestor_note_id"),
)

cells_x_media = Table(
    "cells_x_media",
    metadata,
    _pk("link_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False, cost=5),
    _fk("taxon_id", "taxa.taxon_id", nullable=False),
    _fk("character_id", "characters.character_id", nullable=False),
    _fk("media_id", "media_files.media_id", nullable=False),
    Column("user_id", Integer),
    _ancestor("ancestor_link_id"),
)

cells_x_bibliographic_references = Table(
    "cells_x_bibliographic_references",
    metadata,
    _pk("link_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False, cost=5),
    _fk("taxon_id", "taxa.taxon_id", nullable=False),
    _fk("character_id", "characters.character_id", nullable=False),
    _fk("reference_id", "bibliographic_references.reference_id", nullable=False),
    Column("user_id", Integer),
    Column("pp", Text),
)

characters_x_media = Table(
    "characters_x_media",
    metadata,
    _pk("link_id"),
    _fk("character_id", "characters.character_id", nullable=False, cost=5),
    _fk("state_id", "character_states.state_id"),
    _fk("media_id", "media_files.media_id", nullable=False),
    Column("user_id", Integer),
)

characters_x_bibliographic_references = Table(
    "characters_x_bibliographic_references",
    metadata,
    _pk("link_id"),
    _fk("character_id", "characters.character_id", nullable=False, cost=5),
    _fk("reference_id", "bibliographic_references.reference_id", nullable=False),
    Column("user_id", Integer),
    Column("pp", Text),
)

character_rules = Table(
    "character_rules",
    metadata,
    _pk("rule_id"),
    _fk("character_id", "characters.character_id", nullable=False),
    _fk("state_id", "character_states.state_id"),
    Column("user_id", Integer),
)

character_rule_actions = Table(
    "character_rule_actions",
    metadata,
    _pk("action_id"),
    _fk("rule_id", "character_rules.rule_id", nullable=False),
    _fk("character_id", "characters.character_id", nullable=False),
    _fk("state_id", "character_states.state_id"),
    Column("user_id", Integer),
    Column("action", String(50)),
    Column("settings", JSON(none_as_null=True)),
)

characters_x_partitions = Table(
    "characters_x_partitions",
    metadata,
    _pk("link_id"),
    _fk("partition_id", "partitions.partition_id", nullable=False, cost=5),
    _fk("character_id", "characters.character_id", nullable=False),
    Column("user_id", Integer),
)

taxa_x_partitions = Table(
    "taxa_x_partitions",
    metadata,
    _pk("link_id"),
    _fk("partition_id", "partitions.partition_id", nullable=False, cost=5),
    _fk("taxon_id", "taxa.taxon_id", nullable=False),
    Column("user_id", Integer),
)

matrix_character_order = Table(
    "matrix_character_order",
    metadata,
    _pk("order_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False, cost=5),
    _fk("character_id", "characters.character_id", nullable=False),
    Column("user_id", Integer),
    Column("position", Integer, nullable=False),
)

matrix_taxa_order = Table(
    "matrix_taxa_order",
    metadata,
    _pk("order_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False, cost=5),
    _fk("taxon_id", "taxa.taxon_id", nullable=False),
    Column("user_id", Integer),
    Column("position", Integer, nullable=False),
    Column("notes", Text),
)

taxa_x_media = Table(
    "taxa_x_media",
    metadata,
    _pk("link_id"),
    _fk("taxon_id", "taxa.taxon_id", nullable=False, cost=5),
    _fk("media_id", "media_files.media_id", nullable=False),
    Column("user_id", Integer),
)

taxa_x_specimens = Table(
    "taxa_x_specimens",
    metadata,
    _pk("link_id"),
    _fk("taxon_id", "taxa.taxon_id", nullable=False, cost=5),
    _fk("specimen_id", "specimens.specimen_id", nullable=False),
    Column("user_id", Integer),
)

taxa_x_bibliographic_references = Table(
    "taxa_x_bibliographic_references",
    metadata,
    _pk("link_id"),
    _fk("taxon_id", "taxa.taxon_id", nullable=False, cost=5),
    _fk("reference_id", "bibliographic_references.reference_id", nullable=False),
    Column("user_id", Integer),
    Column("pp", Text),
)

matrix_file_uploads = Table(
    "matrix_file_uploads",
    metadata,
    _pk("upload_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False),
    Column("user_id", Integer),
    Column("upload", JSON(none_as_null=True), info={"file": True}),
    Column("comments", Text),
)

matrix_additional_blocks = Table(
    "matrix_additional_blocks",
    metadata,
    _pk("block_id"),
    _fk("matrix_id", "matrices.matrix_id", nullable=False, cost=5),
    _fk("upload_id", "matrix_file_uploads.upload_id"),
    Column("name", String(255)),
    Column("content", Text),
)

# link_id points at the table selected by table_num.
media_labels = Table(
    "media_labels",
    metadata,
    _pk("label_id"),
    _fk("media_id", "media_files.media_id", nullable=False),
    Column("user_id", Integer),
    Column("link_id", Integer),
    Column("table_num", SmallInteger),
    Column("typecode", SmallInteger, default=0),
    Column("content", Text),
    Column("properties", JSON(none_as_null=True)),
)

# -----------------------------------------------------------------------------
# Task queue
# -----------------------------------------------------------------------------

task_queue = Table(
    "ca_task_queue",
    metadata,
    _pk("task_id"),
    Column("user_id", Integer),
    Column("priority", SmallInteger),
    Column("entity_key", String(255)),
    Column("row_key", String(255)),
    Column("handler", String(50), nullable=False),
    Column("parameters", JSON(none_as_null=True)),
    Column("status", SmallInteger, default=0),
    Column("created_on", BigInteger),
    Column("completed_on", BigInteger),
    Column("error_code", SmallInteger, default=0),
    Column("notes", Text),
)


# Numeric identifiers of tables, used by polymorphic references such as
# media_labels.link_id/table_num.
TABLE_NUMBERS = {
    "media_files": 1,
    "specimens": 2,
    "characters": 3,
    "character_states": 4,
    "matrices": 5,
    "cells": 6,
    "cells_x_media": 7,
    "media_labels": 8,
    "taxa": 10,
    "taxa_x_specimens": 11,
    "projects": 12,
    "media_views": 13,
    "projects_x_users": 14,
    "characters_x_media": 16,
    "matrix_taxa_order": 24,
    "matrix_character_order": 25,
    "folios": 26,
    "folios_x_media_files": 27,
    "cell_notes": 29,
    "matrix_file_uploads": 32,
    "matrix_additional_blocks": 37,
    "project_documents": 38,
    "bibliographic_references": 40,
    "cells_x_bibliographic_references": 41,
    "characters_x_bibliographic_references": 42,
    "specimens_x_bibliographic_references": 43,
    "media_files_x_bibliographic_references": 44,
    "taxa_x_bibliographic_references": 45,
    "bibliographic_authors": 47,
    "project_groups": 48,
    "project_member_groups": 50,
    "taxa_x_media": 53,
    "character_rules": 54,
    "character_rule_actions": 55,
    "ca_users": 57,
    "ca_task_queue": 58,
    "partitions": 59,
    "characters_x_partitions": 60,
    "taxa_x_partitions": 61,
    "media_files_x_documents": 64,
    "project_document_folders": 65,
    "project_duplication_requests": 66,
    "character_orderings": 78,
    "hp_matrix_images": 80,
    "cipres_requests": 84,
    "curator_potential_projects": 87,
    "institutions": 93,
    "institutions_x_users": 94,
    "institutions_x_projects": 95,
}

# Table whose numbered column is resolved per row, mapped to that column.
NUMBERED_TABLES = {"media_labels": "link_id"}

PROJECT_DUPLICATED_TABLES = [
    "projects",
    "specimens",
    "media_views",
    "media_files",
    "matrices",
    "hp_matrix_images",
    "character_orderings",
    "characters",
    "taxa",
    "folios",
    "project_document_folders",
    "project_documents",
    "bibliographic_references",
    "partitions",
    "cells_x_media",
    "character_states",
    "characters_x_media",
    "folios_x_media_files",
    "media_files_x_bibliographic_references",
    "taxa_x_media",
    "media_files_x_documents",
    "taxa_x_specimens",
    "specimens_x_bibliographic_references",
    "cells",
    "matrix_character_order",
    "cell_notes",
    "cells_x_bibliographic_references",
    "characters_x_bibliographic_references",
    "character_rules",
    "character_rule_actions",
    "characters_x_partitions",
    "matrix_taxa_order",
    "taxa_x_bibliographic_references",
    "taxa_x_partitions",
    "matrix_file_uploads",
    "matrix_additional_blocks",
    "bibliographic_authors",
    "media_labels",
]

PROJECT_IGNORED_TABLES = [
    "cipres_requests",
    "ca_users",
    "projects_x_users",
    "project_member_groups",
    "project_groups",
    "project_duplication_requests",
    "curator_potential_projects",
    "institutions",
    "institutions_x_projects",
    "institutions_x_users",
]

_PARTITION_EXCLUDED = [
    "folios",
    "folios_x_media_files",
    "partitions",
    "taxa_x_partitions",
    "characters_x_partitions",
]

PARTITION_DUPLICATED_TABLES = [t for t in PROJECT_DUPLICATED_TABLES if t not in _PARTITION_EXCLUDED]

PARTITION_IGNORED_TABLES = PROJECT_IGNORED_TABLES + _PARTITION_EXCLUDED
