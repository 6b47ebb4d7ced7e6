"""Common interface of the blob duplicators.

A blob duplicator copies the binary assets behind a file locator or a media
bundle so that the cloned row owns its own copy, and returns the locator
rewritten to point at the copy. Every asset it creates is recorded so that
``cleanup()`` can delete them if the duplication run fails.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class BlobDuplicator(Protocol):
    """Protocol for copying the assets referenced by a row.

    Args (for both copy methods):
        old_owner_id: Root id (project) the asset currently belongs to.
        new_owner_id: Root id of the clone.
        old_id: Id of the source row owning the asset.
        new_id: Id of the cloned row.
    """

    created: list

    def copy_file(
        self, old_owner_id: int, new_owner_id: int, old_id: int, new_id: int, locator: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Copy a single-file asset. Returns the new locator, or None to skip."""
        ...

    def copy_media(
        self, old_owner_id: int, new_owner_id: int, old_id: int, new_id: int, bundle: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Copy every variant of a media bundle. Returns the new bundle, or None to skip."""
        ...

    def cleanup(self) -> None:
        """Delete every asset created by this duplicator."""
        ...
