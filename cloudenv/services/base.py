from __future__ import annotations

from cloudenv.infra.storage.client import StorageError, StorageNotFoundError


class CloudError(Exception):
    """Base class for cloud file layer exceptions."""


class ObjectNotFoundError(CloudError):
    """Raised when a bucket or object is absent; callers may recover."""


class CloudIOError(CloudError):
    """Raised for transport, integrity or unexpected-state failures."""


class InvalidCloudArgumentError(CloudError):
    """Raised when the configuration is inconsistent at setup time."""


def translate_storage_error(exc: StorageError, subject: str) -> CloudError:
    """Map a backend failure onto NotFound or IOError for ``subject``."""
    if isinstance(exc, StorageNotFoundError):
        return ObjectNotFoundError(f"{subject}: {exc}")
    return CloudIOError(f"{subject}: {exc}")
