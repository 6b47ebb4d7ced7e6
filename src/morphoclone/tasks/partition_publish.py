"""Handler publishing a partition of a project as a new project."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.engine import Connection

from morphoclone.core.enums import HandlerErrors
from morphoclone.duplication.partition import PartitionModelDuplicator
from morphoclone.model import schema
from morphoclone.tasks.handler import EMAIL_PRIORITY, OVERVIEW_PRIORITY, Handler, now


class PartitionPublishHandler(Handler):
    """Clones the rows of one partition into a new project owned by a user.

    Parameters:
        project_id: Project the partition belongs to.
        user_id: Owner of the new project.
        partition_id: Partition to publish.
    """

    name = "partitionPublish"

    def create_duplicator(self, project_id: int, partition_id: int, user_id: int) -> PartitionModelDuplicator:
        return PartitionModelDuplicator(
            self.datamodel,
            "projects",
            project_id,
            partition_id,
            overrides={"user_id": user_id},
            **self.duplicator_options(),
        )

    def _parameter(self, parameters: dict[str, Any], name: str) -> int | None:
        try:
            return int(parameters[name]) or None
        except (KeyError, TypeError, ValueError):
            return None

    def process(self, conn: Connection, parameters: dict[str, Any]) -> dict[str, Any]:
        project_id = self._parameter(parameters, "project_id")
        if project_id is None:
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, "Project ID is not defined")
        if self.fetch_row(conn, "projects", project_id) is None:
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, f"Project {project_id} does not exist")

        user_id = self._parameter(parameters, "user_id")
        if user_id is None:
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, "User ID is not defined")
        user = self.fetch_row(conn, "ca_users", user_id)
        if user is None:
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, f"User {user_id} does not exist")

        partition_id = self._parameter(parameters, "partition_id")
        if partition_id is None:
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, "Partition ID is not defined")
        partition = self.fetch_row(conn, "partitions", partition_id)
        if partition is None:
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, f"Partition {partition_id} does not exist")
        if conn.in_transaction():
            conn.commit()

        duplicator = self.create_duplicator(project_id, partition_id, user_id)
        try:
            with conn.begin():
                cloned_project_id = duplicator.duplicate(conn)
                self._finish(conn, duplicator, project_id, user, partition, cloned_project_id)
        except Exception as e:
            duplicator.compensate()
            return self.create_error(HandlerErrors.UNKNOWN_ERROR, str(e))

        self._logger.info(f"Published partition {partition_id} of project {project_id} as {cloned_project_id}")
        return {"result": {"vn_cloned_project_id": cloned_project_id}}

    def _finish(
        self,
        conn: Connection,
        duplicator: PartitionModelDuplicator,
        project_id: int,
        user: dict[str, Any],
        partition: dict[str, Any],
        cloned_project_id: int,
    ) -> None:
        projects = schema.projects
        clone = self.fetch_row(conn, "projects", cloned_project_id)
        values = {
            "name": f"{clone['name']} (from P{project_id})",
            "created_on": now(),
            "last_accessed_on": now(),
            "user_id": user["user_id"],
            "group_id": None,
            "partitioned_from_project_id": project_id,
            "ancestor_project_id": project_id,
            "published": 0,
            "published_on": None,
        }
        exemplar = clone["exemplar_media_id"]
        if exemplar:
            if duplicator.was_record_cloned("media_files", exemplar):
                values["exemplar_media_id"] = duplicator.get_duplicate_record_id("media_files", exemplar)
            else:
                values["exemplar_media_id"] = None
        conn.execute(update(projects).where(projects.c.project_id == cloned_project_id).values(**values))

        self.link_user(conn, cloned_project_id, user["user_id"])

        matrices = schema.matrices
        cloned_matrices = conn.execute(
            select(matrices.c.matrix_id).where(matrices.c.project_id == cloned_project_id)
        ).all()
        for (matrix_id,) in cloned_matrices:
            self.renumber_positions(conn, schema.matrix_taxa_order, matrix_id)
            self.renumber_positions(conn, schema.matrix_character_order, matrix_id)

        self.queue_task(conn, user["user_id"], OVERVIEW_PRIORITY, "ProjectOverview", {"project_ids": [cloned_project_id]})
        self.queue_task(
            conn,
            user["user_id"],
            EMAIL_PRIORITY,
            "Email",
            {
                "template": "project_partition_request_approved",
                "name": user["fname"],
                "to": user["email"],
                "projectId": project_id,
                "clonedProjectId": cloned_project_id,
                "partitionName": partition["name"],
            },
        )

    @staticmethod
    def renumber_positions(conn: Connection, table, matrix_id: int) -> None:
        """Make the positions of a matrix ordering contiguous from 1, keeping their order."""
        rows = conn.execute(
            select(table.c.order_id)
            .where(table.c.matrix_id == matrix_id)
            .order_by(table.c.position, table.c.order_id)
        ).all()
        for position, (order_id,) in enumerate(rows, start=1):
            conn.execute(update(table).where(table.c.order_id == order_id).values(position=position))
