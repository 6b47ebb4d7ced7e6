"""Duplication of objects kept in the S3 object store.

Key layout:

- media: ``media_files/<images|videos|model_3ds>/<project>/<media>/<project>_<media>_<variant>.<ext>``
- documents: ``documents/<project>/<document>/<filename>``

Copies are server side (``copy_object``). Every key created is recorded so
a failed run can delete them again with ``cleanup()``.
"""

from __future__ import annotations

import copy
import re
from typing import Any

from botocore.exceptions import ClientError

from morphoclone.core.enums import MediaType
from morphoclone.core.exceptions import BlobCopyError
from morphoclone.core.logging_config import LoggerMixin
from morphoclone.storage.media import detect_media_type, remote_entries, split_remote_key

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _rename(filename: str, old_owner_id: int, new_owner_id: int, old_id: int, new_id: int) -> str:
    return re.sub(rf"^{old_owner_id}_{old_id}(?=[_.])", f"{new_owner_id}_{new_id}", filename)


def transform_media_key(key: str, old_owner_id: int, new_owner_id: int, old_id: int, new_id: int) -> str:
    """Move a media key to the clone's namespace, keeping its type folder.

    Example:
        >>> transform_media_key("media_files/images/5/9/5_9_large.jpg", 5, 7, 9, 11)
        'media_files/images/7/11/7_11_large.jpg'
    """
    parts = key.split("/")
    folder = parts[1] if len(parts) >= 2 and parts[1] else MediaType.image.folder
    filename = _rename(parts[-1], old_owner_id, new_owner_id, old_id, new_id)
    return f"media_files/{folder}/{new_owner_id}/{new_id}/{filename}"


def transform_document_key(key: str, old_owner_id: int, new_owner_id: int, old_id: int, new_id: int) -> str:
    filename = _rename(key.split("/")[-1], old_owner_id, new_owner_id, old_id, new_id)
    return f"documents/{new_owner_id}/{new_id}/{filename}"


class S3Duplicator(LoggerMixin):
    """Copies media and document objects inside one bucket.

    Args:
        client: A boto3 S3 client.
        bucket: Bucket holding both the source and the copied objects.
    """

    def __init__(self, client: Any, bucket: str):
        self.client = client
        self.bucket = bucket
        self.created: list[str] = []

    def object_exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if str(e.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES:
                return False
            raise BlobCopyError(f"Unable to check s3://{self.bucket}/{key}: {e}") from e
        return True

    def copy_object(self, source_key: str, destination_key: str) -> None:
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                Key=destination_key,
                CopySource={"Bucket": self.bucket, "Key": source_key},
            )
        except ClientError as e:
            raise BlobCopyError(f"Failed to copy S3 object {source_key} to {destination_key}: {e}") from e
        self.created.append(destination_key)
        self._logger.debug(f"S3 object copied: {source_key} -> {destination_key}")

    def list_keys(self, prefix: str) -> list[str]:
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            keys = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except ClientError as e:
            raise BlobCopyError(f"Unable to list s3://{self.bucket}/{prefix}: {e}") from e
        return keys

    def copy_media(
        self,
        old_owner_id: int,
        new_owner_id: int,
        old_id: int,
        new_id: int,
        bundle: dict[str, Any],
        media_type: MediaType | None = None,
    ) -> dict[str, Any]:
        """Copy every object the bundle names and rewrite its keys.

        Any entry of the tree holding a remote key is copied, whatever variant
        it belongs to. An object that does not exist is not copied, but its
        key is still rewritten to the clone's namespace.
        """
        media_type = media_type or detect_media_type(bundle)
        updated = copy.deepcopy(bundle)

        copied = 0
        for entry, name in remote_entries(updated):
            prefix, old_key = split_remote_key(entry[name])
            new_key = transform_media_key(old_key, old_owner_id, new_owner_id, old_id, new_id)
            if self.object_exists(old_key):
                if new_key not in self.created:
                    self.copy_object(old_key, new_key)
                    copied += 1
            else:
                self._logger.warning(f"Source S3 object not found: {old_key}")
            entry[name] = prefix + new_key

        self._logger.info(f"Copied {copied} {media_type.value} objects for media {old_id} -> {new_id}")
        return updated

    def copy_file(
        self, old_owner_id: int, new_owner_id: int, old_id: int, new_id: int, locator: dict[str, Any]
    ) -> dict[str, Any]:
        """Copy every object in the document's folder and rewrite its key."""
        prefix = f"documents/{old_owner_id}/{old_id}/"
        updated = dict(locator)

        keys = self.list_keys(prefix)
        if not keys:
            self._logger.warning(f"No S3 objects found in document folder: {prefix}")
        for key in keys:
            self.copy_object(key, transform_document_key(key, old_owner_id, new_owner_id, old_id, new_id))

        for name in list(updated):
            if name.lower() == "s3_key" and updated[name]:
                updated[name] = transform_document_key(updated[name], old_owner_id, new_owner_id, old_id, new_id)
        return updated

    def cleanup(self) -> None:
        """Delete every object created so far, newest first. Failures are logged."""
        self._logger.info(f"Cleaning up {len(self.created)} created S3 objects")
        for key in reversed(self.created):
            try:
                self.client.delete_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                self._logger.error(f"Failed to clean up S3 object {key}: {e}")
        self.created = []
