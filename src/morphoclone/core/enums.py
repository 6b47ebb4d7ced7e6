"""
Enumeration classes used throughout the morphoclone package.
"""

from enum import Enum, IntEnum


class BaseStrEnum(str, Enum):
    """Base class for string enums in Python 3.10"""
    pass


class MediaType(BaseStrEnum):
    """Kind of media asset, which selects the remote key folder.

    Attributes:
        image: Still images, stored under ``media_files/images``.
        video: Videos, stored under ``media_files/videos``.
        model_3d: 3-D models, stored under ``media_files/model_3ds``.
    """
    image = "image"
    video = "video"
    model_3d = "model_3d"

    @property
    def folder(self) -> str:
        return {
            MediaType.image: "images",
            MediaType.video: "videos",
            MediaType.model_3d: "model_3ds",
        }[self]


class OnetimeUseAction(IntEnum):
    """What to do with one-time-use (copyright restricted) media when duplicating."""
    KEEP_IN_ORIGINAL = 1
    MOVE_TO_DUPLICATE = 100


class RequestStatus(IntEnum):
    """Status codes of a project duplication request."""
    NEWLY_SUBMITTED = 1
    APPROVED = 50
    COMPLETED = 100
    FAILED = 200
    DENIED = 300


class HandlerErrors(IntEnum):
    """Error statuses returned by task handlers."""
    NO_ERROR = 0
    ILLEGAL_PARAMETER = 1
    HTTP_CLIENT_ERROR = 2
    UNKNOWN_ERROR = 501


# Copyright license value marking media that may be used in only one project.
ONETIME_USE_LICENSE = 8
