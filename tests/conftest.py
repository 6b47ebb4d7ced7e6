"""
Pytest configuration and shared fixtures.

Every test database is an in-memory SQLite database holding the MorphoBank
tables of ``morphoclone.model.schema``. A single connection is shared by the
pool so the schema and rows survive between connections of one test.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, insert
from sqlalchemy.pool import StaticPool

from morphoclone.core.enums import RequestStatus
from morphoclone.model import schema
from morphoclone.model.datamodel import DataModel


def add_row(conn, table, **values) -> int:
    """Insert one row and return its primary key."""
    return conn.execute(insert(table).values(**values)).inserted_primary_key[0]


def write_media_file(media_root: Path, volume: str, filename: str, magic: int = 1234, hash_path: str = "0") -> dict:
    """Create a file in the local media store and return its locator."""
    directory = media_root / volume / hash_path
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"{magic}_{filename}").write_bytes(b"\x89PNG fake image data")
    return {"volume": volume, "hash": hash_path, "magic": magic, "filename": filename}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    schema.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def conn(engine):
    with engine.connect() as connection:
        yield connection


@pytest.fixture
def datamodel():
    return DataModel(schema.metadata, schema.TABLE_NUMBERS)


@pytest.fixture
def media_root(tmp_path):
    root = tmp_path / "media" / "morphobank"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def media_file(media_root):
    """Factory writing a file into the local media store; returns its locator."""

    def make(volume: str, filename: str, magic: int = 1234, hash_path: str = "0") -> dict:
        return write_media_file(media_root, volume, filename, magic, hash_path)

    return make


@pytest.fixture
def insert_row():
    """The add_row helper, for tests building their own rows."""
    return add_row


@pytest.fixture
def s3_client():
    """A boto3 S3 client stand-in where every object exists and every copy succeeds."""
    client = MagicMock()
    client.head_object.return_value = {"ContentLength": 10}
    client.copy_object.return_value = {}
    client.delete_object.return_value = {}
    paginator = MagicMock()
    paginator.paginate.return_value = [{"Contents": []}]
    client.get_paginator.return_value = paginator
    return client


@dataclass
class SampleProject:
    """Ids of the rows of the sample project, by role."""

    user_id: int = 0
    other_user_id: int = 0
    project_id: int = 0
    specimen_id: int = 0
    view_id: int = 0
    media_ids: list[int] = field(default_factory=list)
    onetime_media_id: int = 0
    taxon_ids: list[int] = field(default_factory=list)
    character_ids: list[int] = field(default_factory=list)
    state_ids: list[int] = field(default_factory=list)
    matrix_id: int = 0
    cell_ids: list[int] = field(default_factory=list)
    document_id: int = 0
    folder_id: int = 0
    reference_id: int = 0
    label_id: int = 0
    partition_id: int = 0
    request_id: int = 0
    files: dict[str, Any] = field(default_factory=dict)


@pytest.fixture
def sample_project(engine, media_root) -> SampleProject:
    """A small but complete project with local media and a partition of one taxon and one character.

    Media 1 is attached to taxon 1 (and to cell T1/C1), media 2 is a
    one-time-use image attached to character 2.
    """
    s = SampleProject()
    with engine.begin() as conn:
        s.user_id = add_row(conn, schema.users, fname="Ada", lname="Lovelace", email="ada@example.org")
        s.other_user_id = add_row(conn, schema.users, fname="Charles", lname="Babbage", email="cb@example.org")
        s.project_id = add_row(
            conn,
            schema.projects,
            user_id=s.user_id,
            name="Frog phylogeny",
            created_on=1000,
            published=1,
            published_on=2000,
        )
        add_row(conn, schema.projects_x_users, project_id=s.project_id, user_id=s.user_id, created_on=1000)

        s.specimen_id = add_row(conn, schema.specimens, project_id=s.project_id, user_id=s.user_id, catalog_number="F-1")
        s.view_id = add_row(conn, schema.media_views, project_id=s.project_id, user_id=s.user_id, name="dorsal")

        for number, license in ((1, 0), (2, 8)):
            media_id = add_row(
                conn,
                schema.media_files,
                project_id=s.project_id,
                specimen_id=s.specimen_id,
                view_id=s.view_id,
                user_id=s.user_id,
                copyright_license=license,
            )
            original = write_media_file(media_root, "images", f"media_files_media_{media_id}_original.jpg")
            thumbnail = write_media_file(media_root, "images", f"media_files_media_{media_id}_thumbnail.jpg")
            bundle = {"original": original, "thumbnail": thumbnail, "original_filename": f"frog{number}.jpg"}
            conn.execute(
                schema.media_files.update().where(schema.media_files.c.media_id == media_id).values(media=bundle)
            )
            s.media_ids.append(media_id)
            s.files[f"media_{media_id}"] = bundle
        s.onetime_media_id = s.media_ids[1]
        conn.execute(
            schema.projects.update()
            .where(schema.projects.c.project_id == s.project_id)
            .values(exemplar_media_id=s.media_ids[0])
        )

        s.taxon_ids = [
            add_row(conn, schema.taxa, project_id=s.project_id, genus="Rana", specific_epithet=epithet)
            for epithet in ("temporaria", "arvalis")
        ]
        s.character_ids = [
            add_row(conn, schema.characters, project_id=s.project_id, name=name, num=n)
            for n, name in enumerate(("skin texture", "toe webbing"))
        ]
        s.state_ids = [
            add_row(conn, schema.character_states, character_id=character_id, name="present", num=0)
            for character_id in s.character_ids
        ]

        s.matrix_id = add_row(
            conn, schema.matrices, project_id=s.project_id, title="Anura", other_options='{"ALLOW_GAPS": 1}'
        )
        for position, taxon_id in enumerate(s.taxon_ids, start=1):
            add_row(conn, schema.matrix_taxa_order, matrix_id=s.matrix_id, taxon_id=taxon_id, position=position)
        for position, character_id in enumerate(s.character_ids, start=1):
            add_row(
                conn, schema.matrix_character_order, matrix_id=s.matrix_id, character_id=character_id, position=position
            )
        for taxon_id, character_id, state_id in zip(s.taxon_ids, s.character_ids, s.state_ids):
            s.cell_ids.append(
                add_row(
                    conn,
                    schema.cells,
                    matrix_id=s.matrix_id,
                    taxon_id=taxon_id,
                    character_id=character_id,
                    state_id=state_id,
                )
            )
        add_row(
            conn,
            schema.cells_x_media,
            matrix_id=s.matrix_id,
            taxon_id=s.taxon_ids[0],
            character_id=s.character_ids[0],
            media_id=s.media_ids[0],
        )
        add_row(conn, schema.taxa_x_media, taxon_id=s.taxon_ids[0], media_id=s.media_ids[0])
        add_row(conn, schema.characters_x_media, character_id=s.character_ids[1], media_id=s.media_ids[1])

        s.folder_id = add_row(conn, schema.project_document_folders, project_id=s.project_id, title="Papers")
        s.document_id = add_row(
            conn, schema.project_documents, project_id=s.project_id, folder_id=s.folder_id, title="Description"
        )
        upload = write_media_file(media_root, "documents", f"project_documents_upload_{s.document_id}.pdf", magic=4321)
        conn.execute(
            schema.project_documents.update()
            .where(schema.project_documents.c.document_id == s.document_id)
            .values(upload=upload)
        )
        s.files["document"] = upload
        add_row(conn, schema.media_files_x_documents, document_id=s.document_id, media_id=s.media_ids[0])

        s.reference_id = add_row(
            conn, schema.bibliographic_references, project_id=s.project_id, article_title="Frogs", pubyear=1999
        )
        add_row(conn, schema.bibliographic_authors, reference_id=s.reference_id, forename="Ada", surname="L.")

        # Label on media 1 pointing at taxon 1 (table number 10).
        s.label_id = add_row(
            conn,
            schema.media_labels,
            media_id=s.media_ids[0],
            link_id=s.taxon_ids[0],
            table_num=schema.TABLE_NUMBERS["taxa"],
            content="head",
            properties={"x": 10, "y": 20},
        )

        s.partition_id = add_row(conn, schema.partitions, project_id=s.project_id, name="Ranids")
        add_row(conn, schema.taxa_x_partitions, partition_id=s.partition_id, taxon_id=s.taxon_ids[0])
        add_row(conn, schema.characters_x_partitions, partition_id=s.partition_id, character_id=s.character_ids[0])

        s.request_id = add_row(
            conn,
            schema.project_duplication_requests,
            project_id=s.project_id,
            user_id=s.other_user_id,
            status=RequestStatus.APPROVED,
            created_on=3000,
        )
    return s
