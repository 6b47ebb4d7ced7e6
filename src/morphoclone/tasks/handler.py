"""Base class of the queued-task handlers that drive duplications."""

from __future__ import annotations

import time
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.engine import Connection

from morphoclone.core.config import MorphoCloneConfig
from morphoclone.core.enums import HandlerErrors
from morphoclone.core.logging_config import LoggerMixin
from morphoclone.model import schema
from morphoclone.model.datamodel import DataModel

OVERVIEW_PRIORITY = 300
EMAIL_PRIORITY = 500


def now() -> int:
    """Current time as the integer epoch seconds stored in ``*_on`` columns."""
    return int(time.time())


class Handler(LoggerMixin):
    """A task handler processes one queued task on a database connection.

    Handlers own their transactions: ``process`` is handed a connection with
    no transaction in progress.

    Args:
        config: Deployment configuration (media store, S3 bucket).
        s3_client: S3 client to use instead of one built from ``config``.
        datamodel: Data model to use instead of the MorphoBank schema.
    """

    name = ""

    def __init__(
        self,
        config: MorphoCloneConfig | None = None,
        s3_client: Any = None,
        datamodel: DataModel | None = None,
    ):
        self.config = config
        self.s3_client = s3_client
        self.datamodel = datamodel or DataModel(schema.metadata, schema.TABLE_NUMBERS)

    def process(self, conn: Connection, parameters: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def create_error(self, status: HandlerErrors, message: str) -> dict[str, Any]:
        self._logger.error(message)
        return {"error": {"status": int(status), "message": message}}

    def duplicator_options(self) -> dict[str, Any]:
        """Blob store settings passed to the duplicators."""
        if self.config is None:
            return {"s3_client": self.s3_client}
        s3_client = self.s3_client
        if s3_client is None and self.config.s3_bucket:
            s3_client = self.config.create_s3_client()
        return {
            "media_root": self.config.media_root,
            "s3_client": s3_client,
            "s3_bucket": self.config.s3_bucket,
            "file_mode": self.config.file_mode,
        }

    @staticmethod
    def fetch_row(conn: Connection, table: str, row_id: Any) -> dict[str, Any] | None:
        t = schema.metadata.tables[table]
        pk = next(iter(t.primary_key.columns))
        row = conn.execute(select(t).where(pk == row_id)).first()
        return dict(row._mapping) if row is not None else None

    @staticmethod
    def queue_task(conn: Connection, user_id: int, priority: int, handler: str, parameters: dict[str, Any]) -> None:
        conn.execute(
            insert(schema.task_queue).values(
                user_id=user_id,
                priority=priority,
                entity_key=None,
                row_key=None,
                handler=handler,
                parameters=parameters,
                created_on=now(),
            )
        )

    @staticmethod
    def link_user(conn: Connection, project_id: int, user_id: int) -> None:
        conn.execute(
            insert(schema.projects_x_users).values(created_on=now(), user_id=user_id, project_id=project_id)
        )
