from morphoclone.storage.base import BlobDuplicator
from morphoclone.storage.local import LocalFileDuplicator
from morphoclone.storage.media import detect_media_type, has_remote_keys, remote_keys
from morphoclone.storage.s3 import S3Duplicator

__all__ = ["BlobDuplicator", "LocalFileDuplicator", "S3Duplicator", "detect_media_type", "has_remote_keys", "remote_keys"]
