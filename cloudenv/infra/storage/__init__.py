"""Object storage abstraction layer.

This module provides a protocol-based abstraction for object storage backends,
enabling support for S3, MinIO, and other S3-compatible services.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .client import (
    EncryptionParams,
    ListPage,
    ObjectHead,
    StorageClient,
    StorageError,
    StorageNotFoundError,
    TransientStorageError,
    UploadSource,
)

if TYPE_CHECKING:
    from cloudenv.common.config import Settings
    from cloudenv.infra.observability.instrumentation import RequestCallback


def load_backend(
    name: str,
    *,
    settings: "Settings",
    request_callback: "RequestCallback | None" = None,
) -> StorageClient:
    """Instantiate the storage backend registered under ``name``.

    Raises:
        StorageNotFoundError: If no backend is registered under that name.
    """
    backend = (name or "").strip().lower()
    if backend == "s3":
        from .s3_client import S3StorageClient

        return S3StorageClient(settings=settings, request_callback=request_callback)
    raise StorageNotFoundError(f"Unsupported storage backend: {name!r}")


__all__ = [
    "EncryptionParams",
    "ListPage",
    "ObjectHead",
    "StorageClient",
    "StorageError",
    "StorageNotFoundError",
    "TransientStorageError",
    "UploadSource",
    "load_backend",
]
