__all__ = [
    "MorphoCloneConfig",
    "MorphoCloneException",
    "ConfigurationError",
    "MissingMappingError",
    "DuplicateMappingError",
    "BlobCopyError",
    "DuplicationError",
    "DataModel",
    "ForeignKeyOrderer",
    "ModelDuplicator",
    "PartitionModelDuplicator",
    "RowSourceResolver",
    "strategy",
]

from importlib.metadata import PackageNotFoundError, version

from morphoclone.core import (
    BlobCopyError,
    ConfigurationError,
    DuplicateMappingError,
    DuplicationError,
    MissingMappingError,
    MorphoCloneConfig,
    MorphoCloneException,
)
from morphoclone.duplication import ModelDuplicator, PartitionModelDuplicator, RowSourceResolver, strategy
from morphoclone.model import DataModel, ForeignKeyOrderer

try:
    __version__ = version("morphoclone")
except PackageNotFoundError:
    # package is not installed
    pass
