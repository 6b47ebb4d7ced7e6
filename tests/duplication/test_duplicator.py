"""Tests for ModelDuplicator.

The first group runs on a two-table Parent/Child schema; the rest duplicate
the sample MorphoBank project from conftest.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from botocore.exceptions import ClientError
from sqlalchemy import (
    JSON,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.pool import StaticPool

from morphoclone.core.config import MorphoCloneConfig
from morphoclone.core.enums import OnetimeUseAction
from morphoclone.core.exceptions import BlobCopyError, ConfigurationError, DuplicationError, MissingMappingError
from morphoclone.duplication.duplicator import ModelDuplicator, normalize_json
from morphoclone.model import schema
from morphoclone.model.datamodel import DataModel

# -----------------------------------------------------------------------------
# Parent/Child
# -----------------------------------------------------------------------------

family = MetaData()

lookup = Table("lookup", family, Column("id", Integer, primary_key=True), Column("label", String(20)))

parent = Table(
    "parent",
    family,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50)),
    Column("owner_id", Integer),
    Column("ancestor_id", Integer, info={"ancestor": True}),
)

child = Table(
    "child",
    family,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("parent_id", Integer, ForeignKey("parent.id"), nullable=False),
    Column("lookup_id", Integer, ForeignKey("lookup.id")),
    Column("owner_id", Integer),
    Column("settings", JSON(none_as_null=True)),
)


@pytest.fixture
def family_conn(insert_row):
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    family.create_all(engine)
    with engine.begin() as conn:
        insert_row(conn, lookup, id=1, label="common")
        insert_row(conn, parent, id=7, name="seven", owner_id=1)
        insert_row(conn, parent, id=106, name="unrelated", owner_id=1)
        insert_row(conn, child, id=3, parent_id=7, lookup_id=1, owner_id=1, settings={"a": 1})
        insert_row(conn, child, id=4, parent_id=106, lookup_id=1, owner_id=1)
    with engine.connect() as conn:
        yield conn
    engine.dispose()


@pytest.fixture
def family_duplicator():
    return ModelDuplicator(DataModel(family), "parent", 7, participating=["parent", "child"], ignored=["lookup"])


def _rows(conn, table, **where):
    stmt = select(table)
    for name, value in where.items():
        stmt = stmt.where(table.c[name] == value)
    return [dict(row._mapping) for row in conn.execute(stmt.order_by(*table.primary_key.columns))]


class TestParentChild:
    def test_end_to_end(self, family_conn, family_duplicator):
        with family_conn.begin():
            new_id = family_duplicator.duplicate(family_conn)

        assert new_id == 107
        assert _rows(family_conn, parent, id=107)[0]["name"] == "seven"
        children = _rows(family_conn, child, parent_id=107)
        assert len(children) == 1
        assert children[0]["id"] not in (3, 4)
        assert family_duplicator.get_duplicate_record_id("child", 3) == children[0]["id"]
        # untouched source
        assert [c["id"] for c in _rows(family_conn, child, parent_id=7)] == [3]

    def test_only_rows_of_the_root_are_cloned(self, family_conn, family_duplicator):
        with family_conn.begin():
            family_duplicator.duplicate(family_conn)

        assert len(family_duplicator.cloned_ids) == 2
        assert not family_duplicator.was_record_cloned("child", 4)
        assert not family_duplicator.was_record_cloned("parent", 106)

    def test_ignored_references_and_ancestors(self, family_conn, family_duplicator):
        with family_conn.begin():
            new_id = family_duplicator.duplicate(family_conn)

        clone = _rows(family_conn, parent, id=new_id)[0]
        assert clone["ancestor_id"] == 7
        assert _rows(family_conn, child, parent_id=new_id)[0]["lookup_id"] == 1

    def test_overrides(self, family_conn, family_duplicator):
        family_duplicator.set_overridden_field_names({"owner_id": 42})
        with family_conn.begin():
            new_id = family_duplicator.duplicate(family_conn)

        assert _rows(family_conn, parent, id=new_id)[0]["owner_id"] == 42
        assert _rows(family_conn, child, parent_id=new_id)[0]["owner_id"] == 42

    def test_structured_columns(self, family_conn, family_duplicator):
        with family_conn.begin():
            new_id = family_duplicator.duplicate(family_conn)

        assert _rows(family_conn, child, parent_id=new_id)[0]["settings"] == {"a": 1}

    def test_no_participating_tables(self, family_conn):
        duplicator = ModelDuplicator(DataModel(family), "parent", 7)

        with pytest.raises(DuplicationError, match="No participating tables configured") as exc_info:
            with family_conn.begin():
                duplicator.duplicate(family_conn)
        assert isinstance(exc_info.value.cause, ConfigurationError)

    def test_root_must_participate(self, family_conn):
        duplicator = ModelDuplicator(DataModel(family), "parent", 7, participating=["child"], ignored=["lookup"])

        with pytest.raises(DuplicationError, match="Root table parent must participate"):
            with family_conn.begin():
                duplicator.duplicate(family_conn)

    def test_unclassified_table(self, family_conn):
        duplicator = ModelDuplicator(DataModel(family), "parent", 7, participating=["parent", "child"])

        with pytest.raises(DuplicationError, match="lookup is not allowlisted"):
            with family_conn.begin():
                duplicator.duplicate(family_conn)
        assert len(_rows(family_conn, parent)) == 2

    def test_missing_root(self, family_conn):
        duplicator = ModelDuplicator(
            DataModel(family), "parent", 999, participating=["parent", "child"], ignored=["lookup"]
        )

        with pytest.raises(DuplicationError) as exc_info:
            with family_conn.begin():
                duplicator.duplicate(family_conn)
        assert isinstance(exc_info.value.cause, MissingMappingError)


class TestNormalizeJson:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, None),
            ({"a": 1}, {"a": 1}),
            ('{"a": 1}', {"a": 1}),
            (b'[1, 2]', [1, 2]),
            ("not json", None),
            ("", None),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_json(value) == expected


# -----------------------------------------------------------------------------
# MorphoBank project
# -----------------------------------------------------------------------------


@pytest.fixture
def project_duplicator(datamodel, sample_project, media_root):
    return ModelDuplicator(
        datamodel,
        "projects",
        sample_project.project_id,
        participating=schema.PROJECT_DUPLICATED_TABLES,
        ignored=schema.PROJECT_IGNORED_TABLES,
        numbered=schema.NUMBERED_TABLES,
        media_root=media_root,
    )


def _count(conn, table, **where) -> int:
    stmt = select(func.count()).select_from(table)
    for name, value in where.items():
        stmt = stmt.where(table.c[name] == value)
    return conn.execute(stmt).scalar_one()


def _files(root: Path) -> set[Path]:
    return {path for path in root.rglob("*") if path.is_file()}


class TestProjectDuplication:
    def test_rows_are_cloned(self, sample_project, conn, project_duplicator):
        with conn.begin():
            new_id = project_duplicator.duplicate(conn)

        assert new_id != sample_project.project_id
        for table in (schema.taxa, schema.characters, schema.matrices, schema.media_files, schema.specimens):
            assert _count(conn, table, project_id=new_id) == _count(conn, table, project_id=sample_project.project_id)
        assert _count(conn, schema.partitions, project_id=new_id) == 1
        assert _count(conn, schema.bibliographic_references, project_id=new_id) == 1
        # ignored tables are not cloned
        assert _count(conn, schema.projects_x_users, project_id=new_id) == 0
        assert _count(conn, schema.project_duplication_requests, project_id=new_id) == 0

    def test_mapping_covers_every_cloned_row(self, sample_project, conn, project_duplicator):
        with conn.begin():
            project_duplicator.duplicate(conn)

        cloned = project_duplicator.cloned_ids
        assert set(cloned.for_table("taxa")) == set(sample_project.taxon_ids)
        assert set(cloned.for_table("cells")) == set(sample_project.cell_ids)
        assert len(set(cloned.for_table("media_files").values())) == 2

    def test_referential_integrity(self, sample_project, conn, project_duplicator):
        with conn.begin():
            new_id = project_duplicator.duplicate(conn)

        cloned = project_duplicator.cloned_ids
        new_cells = conn.execute(
            select(schema.cells)
            .join(schema.matrices, schema.matrices.c.matrix_id == schema.cells.c.matrix_id)
            .where(schema.matrices.c.project_id == new_id)
        ).all()
        assert len(new_cells) == 2
        for cell in new_cells:
            assert cell.taxon_id in cloned.for_table("taxa").values()
            assert cell.character_id in cloned.for_table("characters").values()
            assert cell.state_id in cloned.for_table("character_states").values()
            assert cell.ancestor_cell_id in sample_project.cell_ids

    def test_ancestors(self, sample_project, conn, project_duplicator):
        with conn.begin():
            new_id = project_duplicator.duplicate(conn)

        clone = _rows(conn, schema.projects, project_id=new_id)[0]
        assert clone["ancestor_project_id"] == sample_project.project_id
        for media in _rows(conn, schema.media_files, project_id=new_id):
            assert media["ancestor_media_id"] in sample_project.media_ids

    def test_numbered_reference(self, sample_project, conn, project_duplicator):
        with conn.begin():
            project_duplicator.duplicate(conn)

        new_label_id = project_duplicator.get_duplicate_record_id("media_labels", sample_project.label_id)
        label = _rows(conn, schema.media_labels, label_id=new_label_id)[0]
        assert label["media_id"] == project_duplicator.get_duplicate_record_id("media_files", sample_project.media_ids[0])
        assert label["link_id"] == project_duplicator.get_duplicate_record_id("taxa", sample_project.taxon_ids[0])
        assert label["table_num"] == schema.TABLE_NUMBERS["taxa"]
        assert label["properties"] == {"x": 10, "y": 20}

    def test_structured_column_strings_are_parsed(self, sample_project, conn, project_duplicator):
        with conn.begin():
            new_id = project_duplicator.duplicate(conn)

        assert _rows(conn, schema.matrices, project_id=new_id)[0]["other_options"] == {"ALLOW_GAPS": 1}

    def test_local_media_is_copied(self, sample_project, conn, project_duplicator, media_root):
        with conn.begin():
            project_duplicator.duplicate(conn)

        old_id = sample_project.media_ids[0]
        new_id = project_duplicator.get_duplicate_record_id("media_files", old_id)
        bundle = _rows(conn, schema.media_files, media_id=new_id)[0]["media"]
        assert bundle["original"]["filename"] == f"media_files_media_{new_id}_original.jpg"
        assert bundle["original_filename"] == "frog1.jpg"
        copy = media_root / "images" / bundle["original"]["hash"] / (
            f"{bundle['original']['magic']}_{bundle['original']['filename']}"
        )
        assert copy.is_file()

    def test_compensate_after_a_later_failure(self, sample_project, conn, project_duplicator, media_root):
        before = sorted(p for p in media_root.rglob("*") if p.is_file())

        with pytest.raises(RuntimeError):
            with conn.begin():
                project_duplicator.duplicate(conn)
                assert len(sorted(p for p in media_root.rglob("*") if p.is_file())) > len(before)
                raise RuntimeError("follow-up work failed")
        project_duplicator.compensate()

        assert sorted(p for p in media_root.rglob("*") if p.is_file()) == before
        assert _rows(conn, schema.projects) == _rows(conn, schema.projects, project_id=sample_project.project_id)

    def test_local_document_is_copied(self, sample_project, conn, project_duplicator, media_root):
        with conn.begin():
            project_duplicator.duplicate(conn)

        new_id = project_duplicator.get_duplicate_record_id("project_documents", sample_project.document_id)
        upload = _rows(conn, schema.project_documents, document_id=new_id)[0]["upload"]
        assert upload["filename"] == f"project_documents_upload_{new_id}.pdf"
        assert (media_root / "documents" / upload["hash"] / f"{upload['magic']}_{upload['filename']}").is_file()

    def test_missing_local_file_is_skipped(self, sample_project, conn, project_duplicator, media_root):
        upload = sample_project.files["document"]
        (media_root / "documents" / upload["hash"] / f"{upload['magic']}_{upload['filename']}").unlink()

        with conn.begin():
            project_duplicator.duplicate(conn)

        new_id = project_duplicator.get_duplicate_record_id("project_documents", sample_project.document_id)
        assert _rows(conn, schema.project_documents, document_id=new_id)[0]["upload"] is None

    def test_media_without_files_or_keys_is_skipped(self, sample_project, conn, project_duplicator, caplog):
        with conn.begin():
            conn.execute(
                update(schema.media_files)
                .where(schema.media_files.c.media_id == sample_project.media_ids[0])
                .values(media={"original_filename": "lost.jpg"})
            )

        with conn.begin():
            project_duplicator.duplicate(conn)

        new_id = project_duplicator.get_duplicate_record_id("media_files", sample_project.media_ids[0])
        assert _rows(conn, schema.media_files, media_id=new_id)[0]["media"] is None
        assert "Skipping media without filename or S3 keys" in caplog.text

    def test_remote_media_needs_an_s3_store(self, sample_project, conn, project_duplicator):
        with conn.begin():
            conn.execute(
                update(schema.media_files)
                .where(schema.media_files.c.media_id == sample_project.media_ids[0])
                .values(media={"original": {"s3_key": "media_files/images/1/1/1_1_original.jpg"}})
            )

        with pytest.raises(DuplicationError, match="no S3 store is configured") as exc_info:
            with conn.begin():
                project_duplicator.duplicate(conn)
        assert isinstance(exc_info.value.cause, BlobCopyError)

    def test_remote_media_is_copied(self, sample_project, conn, datamodel, media_root, s3_client):
        old_key = f"media_files/images/{sample_project.project_id}/{sample_project.media_ids[0]}/"
        old_key += f"{sample_project.project_id}_{sample_project.media_ids[0]}_large.jpg"
        with conn.begin():
            conn.execute(
                update(schema.media_files)
                .where(schema.media_files.c.media_id == sample_project.media_ids[0])
                .values(media={"large": {"s3_key": old_key}})
            )
        duplicator = ModelDuplicator(
            datamodel,
            "projects",
            sample_project.project_id,
            participating=schema.PROJECT_DUPLICATED_TABLES,
            ignored=schema.PROJECT_IGNORED_TABLES,
            numbered=schema.NUMBERED_TABLES,
            media_root=media_root,
            s3_client=s3_client,
            s3_bucket="mb-media",
        )

        with conn.begin():
            new_project_id = duplicator.duplicate(conn)

        new_media_id = duplicator.get_duplicate_record_id("media_files", sample_project.media_ids[0])
        bundle = _rows(conn, schema.media_files, media_id=new_media_id)[0]["media"]
        expected = f"media_files/images/{new_project_id}/{new_media_id}/{new_project_id}_{new_media_id}_large.jpg"
        assert bundle == {"large": {"s3_key": expected}}
        s3_client.copy_object.assert_called_once_with(
            Bucket="mb-media", Key=expected, CopySource={"Bucket": "mb-media", "Key": old_key}
        )

    def test_rollback_on_blob_copy_failure(self, sample_project, conn, datamodel, media_root, s3_client):
        # media 2 lives in S3; its second variant cannot be copied
        with conn.begin():
            conn.execute(
                update(schema.media_files)
                .where(schema.media_files.c.media_id == sample_project.media_ids[1])
                .values(
                    media={
                        "original": {"s3_key": "media_files/images/1/2/1_2_original.jpg"},
                        "large": {"s3_key": "media_files/images/1/2/1_2_large.jpg"},
                    }
                )
            )
        s3_client.copy_object.side_effect = [
            {},
            ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "CopyObject"),
        ]
        duplicator = ModelDuplicator(
            datamodel,
            "projects",
            sample_project.project_id,
            participating=schema.PROJECT_DUPLICATED_TABLES,
            ignored=schema.PROJECT_IGNORED_TABLES,
            numbered=schema.NUMBERED_TABLES,
            media_root=media_root,
            s3_client=s3_client,
            s3_bucket="mb-media",
        )
        files_before = _files(media_root)

        with pytest.raises(DuplicationError, match="Failed to copy S3 object") as exc_info:
            with conn.begin():
                duplicator.duplicate(conn)

        assert isinstance(exc_info.value.cause, BlobCopyError)
        # local copies of media 1 are gone
        assert _files(media_root) == files_before
        # the one object created in S3 is deleted
        copied_key = s3_client.copy_object.call_args_list[0].kwargs["Key"]
        s3_client.delete_object.assert_called_once_with(Bucket="mb-media", Key=copied_key)
        # no cloned rows persist
        assert _count(conn, schema.projects) == 1
        assert _count(conn, schema.media_files) == 2
        assert _count(conn, schema.taxa) == 2

    def test_keep_one_time_use_media_in_original(self, sample_project, conn, project_duplicator):
        project_duplicator.set_onetime_use_action(OnetimeUseAction.KEEP_IN_ORIGINAL)
        with conn.begin():
            new_id = project_duplicator.duplicate(conn)

        assert not project_duplicator.was_record_cloned("media_files", sample_project.onetime_media_id)
        assert _count(conn, schema.media_files, project_id=new_id) == 1
        assert _count(conn, schema.media_files, project_id=sample_project.project_id) == 2
        # the character link to the kept media is not cloned
        new_character = project_duplicator.get_duplicate_record_id("characters", sample_project.character_ids[1])
        assert _count(conn, schema.characters_x_media, character_id=new_character) == 0

    def test_move_one_time_use_media_to_duplicate(self, sample_project, conn, project_duplicator):
        project_duplicator.set_onetime_use_action(OnetimeUseAction.MOVE_TO_DUPLICATE)
        with conn.begin():
            new_id = project_duplicator.duplicate(conn)

        assert _count(conn, schema.media_files, project_id=new_id) == 2
        assert _count(conn, schema.media_files, project_id=sample_project.project_id) == 1
        assert _count(conn, schema.media_files, media_id=sample_project.onetime_media_id) == 0
        assert _count(conn, schema.characters_x_media, media_id=sample_project.onetime_media_id) == 0
        new_character = project_duplicator.get_duplicate_record_id("characters", sample_project.character_ids[1])
        assert _count(conn, schema.characters_x_media, character_id=new_character) == 1

    def test_from_config(self, datamodel, media_root):
        config = MorphoCloneConfig(database_url="sqlite://", media_directory=media_root.parent, file_mode=0o600)
        duplicator = ModelDuplicator.from_config(config, datamodel, "projects", 1)

        assert duplicator.media_root == media_root
        assert duplicator.file_mode == 0o600
        assert duplicator.s3_client is None
