"""Inspection of media-variant bundles and file locators.

A media column holds a JSON bundle keyed by variant (``original``,
``large``, ``thumbnail``, ...). Each variant either points at a file in the
local hashed-directory store (``volume``/``hash``/``magic``/``filename``) or
at an object in the remote store (``s3_key``, any case). These helpers
answer two questions about a bundle: does it live in the remote store, and
what kind of media is it.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterator

from morphoclone.core.enums import MediaType

logger = logging.getLogger(__name__)

# Entries of a bundle that are not variants with a file behind them.
NON_FILE_ENTRIES = ("original_filename", "input")

REMOTE_KEY_NAMES = frozenset({"s3_key", "s3key"})

_REMOTE_KEY_PATTERN = re.compile(r"media_files/(images|videos|model_3ds)/")

_VIDEO_EXTENSIONS = re.compile(r"\.(mp4|avi|mov|wmv|flv|webm|mkv|m4v)$")
_MODEL_3D_EXTENSIONS = re.compile(r"\.(obj|stl|ply|dae|fbx|x3d|wrl)$")
_IMAGE_EXTENSIONS = re.compile(r"\.(jpg|jpeg|png|gif|bmp|tiff|webp)$")


def _walk(value: Any) -> Iterator[tuple[str | None, Any]]:
    """Yield every (key, value) pair of a nested dict/list tree."""
    if isinstance(value, dict):
        for k, v in value.items():
            yield k, v
            yield from _walk(v)
    elif isinstance(value, list):
        for v in value:
            yield None, v
            yield from _walk(v)


def _values_for(metadata: Any, name: str) -> list[Any]:
    name = name.lower()
    return [v for k, v in _walk(metadata) if isinstance(k, str) and k.lower() == name]


def _mappings(value: Any) -> Iterator[dict]:
    if isinstance(value, dict):
        yield value
        for v in value.values():
            yield from _mappings(v)
    elif isinstance(value, list):
        for v in value:
            yield from _mappings(v)


def remote_entries(metadata: Any) -> list[tuple[dict, str]]:
    """Every (mapping, entry name) in the tree whose value names a remote object.

    An entry qualifies by its name (``s3_key``, any case) or by holding a
    media key path, the same two markers :func:`has_remote_keys` looks for.
    Callers may rewrite ``mapping[name]`` in place.
    """
    entries = []
    for mapping in _mappings(metadata):
        for k, v in mapping.items():
            if not isinstance(v, str) or not v:
                continue
            if (isinstance(k, str) and k.lower() in REMOTE_KEY_NAMES) or _REMOTE_KEY_PATTERN.search(v):
                entries.append((mapping, k))
    return entries


def split_remote_key(value: str) -> tuple[str, str]:
    """Split a value into whatever precedes the media key path and the key itself.

    Example:
        >>> split_remote_key("https://cdn/media_files/images/1/2/1_2.jpg")
        ('https://cdn/', 'media_files/images/1/2/1_2.jpg')
    """
    match = _REMOTE_KEY_PATTERN.search(value)
    if match is None:
        return "", value
    return value[: match.start()], value[match.start() :]


def remote_keys(metadata: Any) -> list[str]:
    """All remote object keys named anywhere in the metadata tree."""
    keys = []
    for k, v in _walk(metadata):
        if isinstance(k, str) and k.lower() in REMOTE_KEY_NAMES and isinstance(v, str) and v:
            keys.append(v)
    return keys


def has_remote_keys(metadata: Any) -> bool:
    """True if the metadata names at least one object in the remote store.

    Either an ``s3_key``/``s3Key`` entry (any case) or a string that looks
    like a media key (``media_files/images/...``) anywhere in the tree.
    """
    if not isinstance(metadata, dict):
        return False
    if remote_keys(metadata):
        return True
    return any(isinstance(v, str) and _REMOTE_KEY_PATTERN.search(v) for _, v in _walk(metadata))


def detect_media_type(metadata: Any) -> MediaType:
    """Classify a media bundle as image, video or 3-D model.

    Key naming beats the MIME type, which beats the original filename
    extension. Falls back to image with a warning.
    """
    candidates = remote_keys(metadata) + [
        v for _, v in _walk(metadata) if isinstance(v, str) and _REMOTE_KEY_PATTERN.search(v)
    ]
    for key in candidates:
        if "/videos/" in key:
            return MediaType.video
        if "/model_3ds/" in key:
            return MediaType.model_3d
        if "/images/" in key:
            return MediaType.image

    for mime_type in _values_for(metadata, "mimetype"):
        if not isinstance(mime_type, str):
            continue
        mime_type = mime_type.lower()
        if mime_type.startswith("video/"):
            return MediaType.video
        if "model" in mime_type or "3d" in mime_type:
            return MediaType.model_3d
        if mime_type.startswith("image/"):
            return MediaType.image

    for filename in _values_for(metadata, "original_filename"):
        if not isinstance(filename, str):
            continue
        filename = filename.lower()
        if _VIDEO_EXTENSIONS.search(filename):
            return MediaType.video
        if _MODEL_3D_EXTENSIONS.search(filename):
            return MediaType.model_3d
        if _IMAGE_EXTENSIONS.search(filename):
            return MediaType.image

    logger.warning("Could not determine media type, defaulting to image")
    return MediaType.image
