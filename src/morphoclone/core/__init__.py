from morphoclone.core.config import MorphoCloneConfig
from morphoclone.core.enums import (
    ONETIME_USE_LICENSE,
    HandlerErrors,
    MediaType,
    OnetimeUseAction,
    RequestStatus,
)
from morphoclone.core.exceptions import (
    BlobCopyError,
    ConfigurationError,
    DuplicateMappingError,
    DuplicationError,
    MissingMappingError,
    MorphoCloneException,
)
from morphoclone.core.logging_config import LoggerMixin, configure_logging, get_logger

__all__ = [
    "MorphoCloneConfig",
    "ONETIME_USE_LICENSE",
    "HandlerErrors",
    "MediaType",
    "OnetimeUseAction",
    "RequestStatus",
    "BlobCopyError",
    "ConfigurationError",
    "DuplicateMappingError",
    "DuplicationError",
    "MissingMappingError",
    "MorphoCloneException",
    "LoggerMixin",
    "configure_logging",
    "get_logger",
]
