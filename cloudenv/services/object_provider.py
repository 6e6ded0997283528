"""Object provider: engine-facing facade over a storage backend.

This module turns engine-level bucket and file operations into backend
calls, adding listing pagination, partial-download detection and the
zero-size upload guard.
"""

from __future__ import annotations

import logging
import os

from cloudenv.common.config import Settings, get_settings
from cloudenv.common.filenames import ensure_trailing_separator
from cloudenv.infra.observability.instrumentation import RequestCallback
from cloudenv.infra.observability.metrics import build_request_callback
from cloudenv.infra.storage import load_backend
from cloudenv.infra.storage.client import (
    EncryptionParams,
    ObjectHead,
    StorageClient,
    StorageError,
)
from cloudenv.services.base import (
    CloudError,
    CloudIOError,
    InvalidCloudArgumentError,
    ObjectNotFoundError,
    translate_storage_error,
)
from cloudenv.services.readable_file import CloudReadableFile
from cloudenv.services.writable_file import CloudWritableFile

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class ObjectProvider:
    """Bucket lifecycle, metadata, listing and integrity-checked transfers.

    The provider keeps no mutable state across calls beyond the settings
    and the memoized startup check, so it may be shared across threads.
    Operations on the same object path are not serialized here.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        storage_client: StorageClient | None = None,
        request_callback: RequestCallback | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        if storage_client is None:
            callback = request_callback or build_request_callback(
                self._settings.ENABLE_METRICS
            )
            storage_client = load_backend(
                self._settings.STORAGE_BACKEND,
                settings=self._settings,
                request_callback=callback,
            )
        self._storage = storage_client
        self._encryption = EncryptionParams(
            enabled=self._settings.SERVER_SIDE_ENCRYPTION,
            kms_key_id=self._settings.ENCRYPTION_KEY_ID,
        )
        self._sanitized = False
        self._sanitize_error: CloudError | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def storage(self) -> StorageClient:
        return self._storage

    def sanitize_options(self) -> None:
        """Validate the bucket configuration once, at startup.

        Raises:
            InvalidCloudArgumentError: If source and destination buckets live
                in different regions.
            ObjectNotFoundError: If the destination bucket is missing and
                creation is disabled.
            CloudIOError: If the bucket cannot be created.
        """
        if self._sanitized:
            if self._sanitize_error is not None:
                raise self._sanitize_error
            return
        try:
            self._check_options()
        except CloudError as exc:
            self._sanitize_error = exc
            raise
        finally:
            self._sanitized = True

    def _check_options(self) -> None:
        settings = self._settings
        if (
            settings.has_src_bucket
            and settings.has_dest_bucket
            and not settings.src_matches_dest
            and settings.SRC_REGION != settings.DEST_REGION
        ):
            logger.error(
                "buckets %s, %s in two different regions %s, %s are not supported",
                settings.SRC_BUCKET,
                settings.DEST_BUCKET,
                settings.SRC_REGION,
                settings.DEST_REGION,
            )
            raise InvalidCloudArgumentError("Two different regions not supported")

        if not settings.has_dest_bucket:
            return
        bucket = settings.DEST_BUCKET
        if self.exists_bucket(bucket):
            logger.info("bucket %s already exists", bucket)
            return
        if not settings.CREATE_BUCKET_IF_MISSING:
            logger.error("bucket %s not found and creation is disabled", bucket)
            raise ObjectNotFoundError(
                "Bucket not found and create_bucket_if_missing is false"
            )
        logger.info("going to create bucket %s", bucket)
        self.create_bucket(bucket)

    def create_bucket(self, bucket: str) -> None:
        """Create ``bucket``; an existing bucket owned by us is success."""
        try:
            self._storage.create_bucket(
                bucket=bucket, location=self._settings.DEST_REGION
            )
        except StorageError as exc:
            raise CloudIOError(f"{bucket}: {exc}") from exc

    def exists_bucket(self, bucket: str) -> bool:
        return bool(self._storage.bucket_exists(bucket=bucket))

    def list_objects(self, bucket: str, path_prefix: str) -> list[str]:
        """Return the names under ``path_prefix`` with the prefix stripped.

        All pages are fetched before returning. When a truncated page carries
        no next marker, the last key of the page is used instead; this relies
        on the store returning keys in lexicographic order.
        """
        prefix = ensure_trailing_separator(path_prefix.lstrip("/"))
        page_size = self._settings.LIST_PAGE_SIZE
        marker: str | None = None
        names: list[str] = []
        seen: set[str] = set()

        while True:
            try:
                page = self._storage.list_objects(
                    bucket=bucket, prefix=prefix, marker=marker, max_keys=page_size
                )
            except StorageError as exc:
                error = translate_storage_error(exc, path_prefix)
                if isinstance(error, ObjectNotFoundError):
                    logger.error("listing %s: path does not exist", path_prefix)
                raise error from exc

            for key in page.keys:
                if not key.startswith(prefix):
                    raise CloudIOError(f"Unexpected result from object store: {key}")
                name = key[len(prefix):]
                if name in seen:
                    continue
                seen.add(name)
                names.append(name)

            if not page.is_truncated:
                break
            next_marker = page.next_marker or (page.keys[-1] if page.keys else None)
            if not next_marker or next_marker == marker:
                raise CloudIOError(
                    f"Truncated listing of {bucket}/{prefix} made no progress"
                )
            marker = next_marker
        return names

    def empty_bucket(self, bucket: str, path_prefix: str) -> int:
        """Delete every object under ``path_prefix``, best effort.

        Individual delete failures do not stop the sweep; if any occurred a
        ``CloudIOError`` is raised once every object has been attempted.
        Returns the number of objects deleted.
        """
        names = self.list_objects(bucket, path_prefix)
        prefix = ensure_trailing_separator(path_prefix.lstrip("/"))
        logger.debug(
            "going to delete %d objects in bucket %s", len(names), bucket
        )

        first_error: CloudError | None = None
        last_error: CloudError | None = None
        failures = 0
        for name in names:
            path = prefix + name
            try:
                self.delete_object(bucket, path)
            except CloudError as exc:
                failures += 1
                first_error = first_error or exc
                last_error = exc
                logger.error("unable to delete %s in bucket %s: %s", path, bucket, exc)

        if failures:
            logger.error(
                "empty bucket %s/%s failed for %d of %d objects; first=%s last=%s",
                bucket,
                prefix,
                failures,
                len(names),
                first_error,
                last_error,
                extra={
                    "extra": {
                        "bucket": bucket,
                        "prefix": prefix,
                        "failures": failures,
                        "total": len(names),
                    }
                },
            )
            raise CloudIOError(
                f"Failed to delete {failures} of {len(names)} objects in "
                f"{bucket}/{prefix}: {last_error}"
            )
        return len(names)

    def delete_object(self, bucket: str, path: str) -> None:
        try:
            self._storage.delete_object(bucket=bucket, object_key=path)
        except StorageError as exc:
            logger.info("delete %s/%s failed: %s", bucket, path, exc)
            raise translate_storage_error(exc, path) from exc
        logger.info("deleted %s/%s", bucket, path)

    def exists_object(self, bucket: str, path: str) -> None:
        """Raise ``ObjectNotFoundError`` unless the object exists."""
        self._head(bucket, path)

    def get_object_size(self, bucket: str, path: str) -> int:
        return self._head(bucket, path).size_bytes

    def get_object_modification_time(self, bucket: str, path: str) -> int:
        """Return the last modification time in epoch milliseconds."""
        return self._head(bucket, path).last_modified_ms

    def get_object_metadata(self, bucket: str, path: str) -> dict[str, str]:
        return dict(self._head(bucket, path).metadata)

    def put_object_metadata(
        self, bucket: str, path: str, metadata: dict[str, str]
    ) -> None:
        """Replace the user metadata of an existing object."""
        try:
            self._storage.copy_object(
                src_bucket=bucket,
                src_key=path,
                dest_bucket=bucket,
                dest_key=path,
                metadata=dict(metadata),
            )
        except StorageError as exc:
            logger.error("bucket %s error saving metadata for %s: %s", bucket, path, exc)
            raise translate_storage_error(exc, path) from exc

    def copy_object(
        self, src_bucket: str, src_path: str, dest_bucket: str, dest_path: str
    ) -> None:
        try:
            self._storage.copy_object(
                src_bucket=src_bucket,
                src_key=src_path,
                dest_bucket=dest_bucket,
                dest_key=dest_path,
            )
        except StorageError as exc:
            logger.error(
                "copy %s/%s to %s/%s failed: %s",
                src_bucket,
                src_path,
                dest_bucket,
                dest_path,
                exc,
            )
            raise translate_storage_error(exc, dest_path) from exc
        logger.info(
            "copied %s/%s to %s/%s", src_bucket, src_path, dest_bucket, dest_path
        )

    def get_object(self, bucket: str, path: str, local_destination: str) -> None:
        """Download an object, verifying the local size before publishing it.

        The object is written to ``local_destination + ".tmp"`` and renamed
        into place only when its size matches what the backend reported.
        """
        tmp_destination = local_destination + TEMP_SUFFIX
        try:
            remote_size = self._storage.download_object(
                bucket=bucket, object_key=path, destination=tmp_destination
            )
        except StorageError as exc:
            _remove_quietly(tmp_destination)
            raise translate_storage_error(exc, path) from exc

        try:
            local_size = os.path.getsize(tmp_destination)
        except OSError as exc:
            raise CloudIOError(f"{tmp_destination}: {exc}") from exc

        if local_size != remote_size:
            _remove_quietly(tmp_destination)
            logger.error(
                "get object %s/%s local size %d != cloud size %d",
                bucket,
                path,
                local_size,
                remote_size,
            )
            raise CloudIOError(f"Partial download of a file {local_destination}")

        try:
            os.replace(tmp_destination, local_destination)
        except OSError as exc:
            raise CloudIOError(f"{local_destination}: {exc}") from exc
        logger.info("get object %s/%s size %d", bucket, path, local_size)

    def put_object(self, local_file: str, bucket: str, path: str) -> None:
        """Upload a local file; empty files are refused.

        Zero-size objects are reserved for directory markers, so an empty
        local file is rejected before any backend call.
        """
        try:
            file_size = os.stat(local_file).st_size
        except OSError as exc:
            logger.error("put object %s: error getting size %s", local_file, exc)
            raise CloudIOError(f"{local_file}: {exc}") from exc
        if file_size == 0:
            logger.error("put object %s: error zero size", local_file)
            raise CloudIOError(f"{local_file} Zero size.")

        try:
            self._storage.put_object(
                bucket=bucket,
                object_key=path,
                source=local_file,
                size_hint=file_size,
                encryption=self._encryption,
            )
        except StorageError as exc:
            raise CloudIOError(f"{local_file}: {exc}") from exc
        logger.info("put object %s/%s size %d", bucket, path, file_size)

    def new_readable_file(self, bucket: str, path: str) -> CloudReadableFile:
        """Open a remote object for reading, fixing its size at open time."""
        size = self.get_object_size(bucket, path)
        return CloudReadableFile(self._storage, bucket, path, size)

    def new_writable_file(
        self, local_path: str, bucket: str, path: str
    ) -> CloudWritableFile:
        return CloudWritableFile(self, local_path, bucket, path)

    def _head(self, bucket: str, path: str) -> ObjectHead:
        try:
            return self._storage.head_object(bucket=bucket, object_key=path)
        except StorageError as exc:
            raise translate_storage_error(exc, path) from exc


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("failed to remove %s: %s", path, exc)
