"""Handler for approved project duplication requests."""

from __future__ import annotations

from typing import Any

from sqlalchemy import update
from sqlalchemy.engine import Connection

from morphoclone.core.enums import HandlerErrors, RequestStatus
from morphoclone.duplication.duplicator import ModelDuplicator
from morphoclone.model import schema
from morphoclone.tasks.handler import EMAIL_PRIORITY, OVERVIEW_PRIORITY, Handler, now


class ProjectDuplicationHandler(Handler):
    """Duplicates the project of an approved duplication request.

    Parameters:
        request_id: Row of ``project_duplication_requests`` to process.

    On success the clone belongs to the requesting user, is unpublished, and
    the request is completed with ``new_project_number`` set. Overview and
    email tasks are queued. On failure the request is marked failed.
    """

    name = "ProjectDuplication"

    def create_duplicator(self, project_id: int) -> ModelDuplicator:
        return ModelDuplicator(
            self.datamodel,
            "projects",
            project_id,
            participating=schema.PROJECT_DUPLICATED_TABLES,
            ignored=schema.PROJECT_IGNORED_TABLES,
            numbered=schema.NUMBERED_TABLES,
            **self.duplicator_options(),
        )

    def process(self, conn: Connection, parameters: dict[str, Any]) -> dict[str, Any]:
        try:
            request_id = int(parameters["request_id"])
        except (KeyError, TypeError, ValueError):
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, "Duplication request ID is not defined")

        request = self.fetch_row(conn, "project_duplication_requests", request_id)
        if request is None:
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, f"Duplication request {request_id} not found")
        if request["status"] != RequestStatus.APPROVED:
            return self.create_error(
                HandlerErrors.ILLEGAL_PARAMETER,
                f"Duplication request {request_id} not approved (status: {request['status']})",
            )

        user_id = request["user_id"]
        project_id = request["project_id"]
        user = self.fetch_row(conn, "ca_users", user_id)
        if user is None:
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, f"User with ID {user_id} does not exist")
        if self.fetch_row(conn, "projects", project_id) is None:
            return self.create_error(HandlerErrors.ILLEGAL_PARAMETER, f"Project with ID {project_id} does not exist")
        if conn.in_transaction():
            conn.commit()

        duplicator = self.create_duplicator(project_id)
        duplicator.set_onetime_use_action(request["onetime_use_action"])

        try:
            with conn.begin():
                cloned_project_id = duplicator.duplicate(conn)
                self._finish(conn, duplicator, request, user, cloned_project_id)
        except Exception as e:
            duplicator.compensate()
            self._mark_failed(conn, request_id, str(e))
            return self.create_error(HandlerErrors.UNKNOWN_ERROR, str(e))

        self._logger.info(f"Duplicated project {project_id} as {cloned_project_id} for request {request_id}")
        return {"result": {"vn_cloned_project_id": cloned_project_id}}

    def _finish(
        self,
        conn: Connection,
        duplicator: ModelDuplicator,
        request: dict[str, Any],
        user: dict[str, Any],
        cloned_project_id: int,
    ) -> None:
        projects = schema.projects
        clone = self.fetch_row(conn, "projects", cloned_project_id)
        values = {
            "created_on": now(),
            "last_accessed_on": now(),
            "user_id": user["user_id"],
            "group_id": None,
            "partition_published_on": None,
            "partitioned_from_project_id": None,
            "published": 0,
            "published_on": None,
        }
        # The exemplar may have stayed in the original as one-time-use media.
        exemplar = clone["exemplar_media_id"]
        if exemplar:
            if duplicator.was_record_cloned("media_files", exemplar):
                values["exemplar_media_id"] = duplicator.get_duplicate_record_id("media_files", exemplar)
            else:
                values["exemplar_media_id"] = None
        conn.execute(update(projects).where(projects.c.project_id == cloned_project_id).values(**values))

        self.link_user(conn, cloned_project_id, user["user_id"])

        requests = schema.project_duplication_requests
        conn.execute(
            update(requests)
            .where(requests.c.request_id == request["request_id"])
            .values(status=RequestStatus.COMPLETED, new_project_number=cloned_project_id)
        )

        self.queue_task(conn, user["user_id"], OVERVIEW_PRIORITY, "ProjectOverview", {"project_ids": [cloned_project_id]})
        self.queue_task(
            conn,
            user["user_id"],
            EMAIL_PRIORITY,
            "Email",
            {
                "template": "project_duplication_request_approved",
                "name": user["fname"],
                "to": user["email"],
                "clonedProjectId": cloned_project_id,
            },
        )

    def _mark_failed(self, conn: Connection, request_id: int, message: str) -> None:
        requests = schema.project_duplication_requests
        with conn.begin():
            conn.execute(
                update(requests)
                .where(requests.c.request_id == request_id)
                .values(status=RequestStatus.FAILED, notes=message)
            )
