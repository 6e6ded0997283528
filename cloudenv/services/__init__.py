from .base import (
    CloudError,
    CloudIOError,
    InvalidCloudArgumentError,
    ObjectNotFoundError,
)
from .object_provider import ObjectProvider
from .readable_file import CloudReadableFile
from .writable_file import CloudWritableFile, WritableFileState

__all__ = [
    "ObjectProvider",
    "CloudReadableFile",
    "CloudWritableFile",
    "WritableFileState",
    "CloudError",
    "CloudIOError",
    "InvalidCloudArgumentError",
    "ObjectNotFoundError",
]
