"""Storage client protocol and data types.

This module defines the abstract interface an object-store backend must
satisfy: paginated listing, HEAD, ranged reads, whole-object transfers,
copy, delete and bucket management.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Union

UploadSource = Union[str, Path, bytes]


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class StorageNotFoundError(StorageError):
    """Raised when the requested bucket or object does not exist."""


class TransientStorageError(StorageError):
    """Raised for failures the backend classified as transient.

    Retrying is the backend's own business; callers treat this exactly
    like any other ``StorageError``.
    """


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    size_bytes: int
    last_modified_ms: int
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ListPage:
    """One page of a listing request."""

    keys: list[str]
    is_truncated: bool
    next_marker: str | None = None


@dataclass(frozen=True, slots=True)
class EncryptionParams:
    """Server-side encryption settings applied to uploads."""

    enabled: bool = False
    kms_key_id: str | None = None


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    Every method either returns its payload or raises ``StorageError``;
    a missing bucket or key is reported as ``StorageNotFoundError``.
    """

    def list_objects(
        self,
        *,
        bucket: str,
        prefix: str,
        marker: str | None,
        max_keys: int,
    ) -> ListPage:
        """List at most ``max_keys`` keys under ``prefix`` after ``marker``.

        Args:
            bucket: Target bucket name.
            prefix: Key prefix to filter on.
            marker: Key after which listing starts, or None for the first page.
            max_keys: Page size bound.

        Returns:
            ListPage with the keys in lexicographic order.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content.

        Raises:
            StorageNotFoundError: If the object doesn't exist.
            StorageError: If the operation fails.
        """
        ...

    def get_object_range(
        self,
        *,
        bucket: str,
        object_key: str,
        first_byte: int,
        last_byte: int,
    ) -> bytes:
        """Fetch the inclusive byte range ``[first_byte, last_byte]``.

        Raises:
            StorageNotFoundError: If the object doesn't exist.
            StorageError: If the operation fails.
        """
        ...

    def download_object(
        self, *, bucket: str, object_key: str, destination: str
    ) -> int:
        """Download a whole object into the local file ``destination``.

        Returns:
            The object size the backend reported as transferred.

        Raises:
            StorageNotFoundError: If the object doesn't exist.
            StorageError: If the operation fails.
        """
        ...

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        source: UploadSource,
        size_hint: int,
        metadata: dict[str, str] | None = None,
        encryption: EncryptionParams | None = None,
    ) -> None:
        """Upload a local file path or an in-memory payload.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage.

        S3 and most compatible stores acknowledge deleting a missing key as
        success, so a not-found error here is backend dependent.

        Raises:
            StorageNotFoundError: If the backend reports the object missing.
            StorageError: If the operation fails.
        """
        ...

    def copy_object(
        self,
        *,
        src_bucket: str,
        src_key: str,
        dest_bucket: str,
        dest_key: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Server-side copy; ``metadata`` replaces the source metadata.

        Raises:
            StorageNotFoundError: If the source doesn't exist.
            StorageError: If the operation fails.
        """
        ...

    def create_bucket(self, *, bucket: str, location: str | None = None) -> None:
        """Create a bucket; succeeds if it already exists and is ours.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def bucket_exists(self, *, bucket: str) -> bool:
        """Return True if the bucket exists and is reachable."""
        ...
