"""Configuration management for morphoclone.

This module provides the MorphoCloneConfig class for managing the settings a
duplication run needs from its deployment. It integrates with hydra-zen for
configuration management and supports both programmatic and structured
configuration.

The configuration handles:
    - Database connection (database_url)
    - Local media store layout (media_directory, app_name, file_mode)
    - Remote object store (s3_bucket, s3_region, s3_endpoint_url)
    - Logging levels for morphoclone and the underlying libraries

Example:
    Programmatic configuration:
        >>> config = MorphoCloneConfig(
        ...     database_url='mysql+pymysql://user@db/morphobank',
        ...     media_directory='/data/media',
        ...     s3_bucket='mb-media',
        ... )
        >>> engine = config.create_engine()

    With hydra-zen:
        >>> from hydra_zen import instantiate, store
        >>> cfg = store.get_entry("morphoclone", "default")["node"]
        >>> config = instantiate(cfg, database_url="sqlite://")
"""

import logging
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from hydra_zen import builds, store
from pydantic import BaseModel, field_validator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from morphoclone.core.logging_config import configure_logging


class MorphoCloneConfig(BaseModel):
    """Configuration model for duplication runs.

    Attributes:
        database_url: SQLAlchemy URL of the relational database.
        media_directory: Root of the local hashed-directory media store.
        app_name: Sub-directory of media_directory holding this application's volumes.
        s3_bucket: Bucket holding remote media and documents. None disables remote copies.
        s3_region: AWS region of the bucket.
        s3_endpoint_url: Alternate S3 endpoint (e.g. a MinIO server).
        file_mode: Permission bits applied to copied local files.
        logging_level: Logging level for morphoclone. Defaults to WARNING.
        library_logging_level: Logging level for SQLAlchemy and boto. Defaults to WARNING.
    """

    database_url: str
    media_directory: str | Path = "/var/www/media"
    app_name: str = "morphobank"
    s3_bucket: str | None = None
    s3_region: str = "us-west-2"
    s3_endpoint_url: str | None = None
    file_mode: int = 0o775
    logging_level: Any = logging.WARNING
    library_logging_level: Any = logging.WARNING

    @field_validator("media_directory")
    @classmethod
    def validate_media_directory(cls, value: str | Path) -> Path:
        return Path(value)

    @property
    def media_root(self) -> Path:
        """Directory containing the media volumes, i.e. ``<media_directory>/<app_name>``."""
        return Path(self.media_directory) / self.app_name

    def create_engine(self, **kwargs) -> Engine:
        """Create the SQLAlchemy engine for ``database_url``."""
        return create_engine(self.database_url, future=True, **kwargs)

    def create_s3_client(self) -> Any:
        """Create a boto3 S3 client for the configured region and endpoint."""
        session = boto3.Session(region_name=self.s3_region)
        return session.client(
            "s3",
            region_name=self.s3_region,
            endpoint_url=self.s3_endpoint_url,
            config=BotoConfig(retries={"max_attempts": 5, "mode": "standard"}),
        )

    def configure_logging(self) -> logging.Logger:
        return configure_logging(level=self.logging_level, library_level=self.library_logging_level)


# =============================================================================
# Hydra Integration
# =============================================================================

MorphoCloneConf = builds(MorphoCloneConfig, populate_full_signature=True)

store(MorphoCloneConf, group="morphoclone", name="default")
