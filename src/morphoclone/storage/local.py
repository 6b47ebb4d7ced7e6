"""Duplication of files kept in the local hashed-directory media store.

Files live at ``<media_root>/<volume>/<hash>/<magic>_<filename>`` where
``hash`` is derived from the owning row id and ``magic`` is a random
four-digit number. A copy gets a fresh hash and magic number derived from
the cloned row, and the old row id in the filename is replaced by the new
one.
"""

from __future__ import annotations

import copy
import os
import random
import shutil
from pathlib import Path
from typing import Any

from morphoclone.core.exceptions import BlobCopyError
from morphoclone.core.logging_config import LoggerMixin
from morphoclone.storage.media import NON_FILE_ENTRIES


def directory_hash(volume_path: Path, row_id: int) -> str:
    """Hash directory for a row id, created under the volume if missing.

    The digits of ``row_id // 100`` each become one directory level, so row
    12345 lands in ``1/2/3``.

    Example:
        >>> directory_hash(Path("/media/morphobank/images"), 12345)
        '1/2/3'
    """
    digits = str(int(row_id) // 100)
    hash_path = "/".join(digits)
    (volume_path / hash_path).mkdir(parents=True, exist_ok=True)
    return hash_path


def magic_number() -> int:
    return random.randint(1000, 9999)


class LocalFileDuplicator(LoggerMixin):
    """Copies files in the local media store and tracks every copy made.

    Args:
        media_root: ``<media_directory>/<app_name>``, the parent of the volumes.
        file_mode: Permission bits applied to each copy.
    """

    def __init__(self, media_root: Path | str, file_mode: int = 0o775):
        self.media_root = Path(media_root)
        self.file_mode = file_mode
        self.created: list[Path] = []

    def source_path(self, locator: dict[str, Any]) -> Path:
        return self.media_root / str(locator["volume"]) / str(locator["hash"]) / f"{locator['magic']}_{locator['filename']}"

    def _copy(self, old_id: int, new_id: int, locator: dict[str, Any]) -> dict[str, Any] | None:
        """Copy one file locator. Returns None if the source file is missing."""
        old_path = self.source_path(locator)
        if not old_path.is_file():
            self._logger.warning(f"Source file not found, skipping: {old_path}")
            return None

        volume_path = self.media_root / str(locator["volume"])
        updated = dict(locator)
        updated["filename"] = str(locator["filename"]).replace(str(old_id), str(new_id), 1)
        updated["hash"] = directory_hash(volume_path, new_id)
        updated["magic"] = magic_number()
        new_path = volume_path / updated["hash"] / f"{updated['magic']}_{updated['filename']}"

        try:
            shutil.copyfile(old_path, new_path)
            self.created.append(new_path)
            os.chown(new_path, os.getuid(), os.getgid())
            os.chmod(new_path, self.file_mode)
        except OSError as e:
            raise BlobCopyError(f"Unable to copy {old_path} to {new_path}: {e}") from e
        self._logger.debug(f"Copied {old_path} -> {new_path}")
        return updated

    def copy_file(
        self, old_owner_id: int, new_owner_id: int, old_id: int, new_id: int, locator: dict[str, Any]
    ) -> dict[str, Any] | None:
        if not locator.get("filename"):
            self._logger.warning(f"Skipping file locator without a filename: {locator}")
            return None
        return self._copy(old_id, new_id, locator)

    def copy_media(
        self, old_owner_id: int, new_owner_id: int, old_id: int, new_id: int, bundle: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Copy each variant of a bundle.

        Variants whose file is missing keep their old locator; the rest of the
        bundle is still copied.
        """
        updated = copy.deepcopy(bundle)
        for version, media in bundle.items():
            if version in NON_FILE_ENTRIES or not isinstance(media, dict):
                continue
            # Icon variants have no file of their own.
            if media.get("use_icon") is not None:
                continue
            if not media.get("filename"):
                continue
            copied = self._copy(old_id, new_id, media)
            if copied is not None:
                updated[version] = copied
        return updated

    def cleanup(self) -> None:
        """Delete every file copied so far, newest first. Failures are logged."""
        self._logger.info(f"Cleaning up {len(self.created)} created files")
        for path in reversed(self.created):
            try:
                path.unlink()
            except OSError as e:
                self._logger.error(f"Failed to clean up local file {path}: {e}")
        self.created = []
