"""Local-first writable file that synchronizes to a remote object.

Data files are uploaded once, on close. Manifest files are uploaded on every
``sync()``: each sync is a durability point.

A manifest that already exists locally is never overwritten in place.
Writes go to ``<path>.tmp`` until the first successful sync renames it over
the real path, so the real path always holds either the previous or the new
complete manifest, even across a crash.

Concurrency: one writer per file. Concurrent ``sync()`` calls on the same
manifest are not guarded here and must be prevented by the caller.
"""

from __future__ import annotations

import enum
import logging
import os
from typing import TYPE_CHECKING, BinaryIO

from cloudenv.common.filenames import is_manifest_file, remove_epoch
from cloudenv.services.base import CloudError, CloudIOError

if TYPE_CHECKING:
    from cloudenv.services.object_provider import ObjectProvider

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class WritableFileState(str, enum.Enum):
    OPEN = "open"
    RENAME_PENDING = "rename_pending"
    DURABLE = "durable"
    CLOSED = "closed"


class CloudWritableFile:
    """Writable engine file backed by a local handle and a cloud object."""

    def __init__(
        self,
        provider: "ObjectProvider",
        local_path: str,
        bucket: str,
        remote_path: str,
    ) -> None:
        self._provider = provider
        self._local_path = local_path
        self._bucket = bucket
        self._remote_path = remote_path
        self._is_manifest = is_manifest_file(remove_epoch(local_path))
        self._tmp_path: str | None = None
        self._handle: BinaryIO | None = None
        self._error: CloudError | None = None
        self._state = WritableFileState.OPEN

        logger.debug(
            "writable file bucket %s opened local file %s cloud file %s manifest %s",
            bucket,
            local_path,
            remote_path,
            self._is_manifest,
        )

        file_to_open = local_path
        if self._is_manifest and self._local_exists():
            self._tmp_path = local_path + TEMP_SUFFIX
            self._state = WritableFileState.RENAME_PENDING
            file_to_open = self._tmp_path

        try:
            self._handle = open(file_to_open, "wb")
        except OSError as exc:
            logger.error("writable file %s: %s", file_to_open, exc)
            self._error = CloudIOError(f"{file_to_open}: {exc}")
            self._state = WritableFileState.CLOSED
            raise self._error from exc

    @property
    def local_path(self) -> str:
        return self._local_path

    @property
    def remote_path(self) -> str:
        return self._remote_path

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def is_manifest(self) -> bool:
        return self._is_manifest

    @property
    def tmp_path(self) -> str | None:
        return self._tmp_path

    @property
    def state(self) -> WritableFileState:
        return self._state

    @property
    def failed(self) -> bool:
        return self._error is not None

    def append(self, data: bytes) -> None:
        handle = self._require_handle()
        try:
            handle.write(data)
        except OSError as exc:
            raise self._fail(f"append to {self._open_path()}", exc) from exc

    def flush(self) -> None:
        handle = self._require_handle()
        try:
            handle.flush()
        except OSError as exc:
            raise self._fail(f"flush {self._open_path()}", exc) from exc

    def sync(self) -> None:
        """Make written data durable locally and, for manifests, remotely."""
        if self._handle is None:
            if self._error is not None:
                raise self._error
            return
        if self._error is not None:
            raise self._error

        try:
            self._handle.flush()
            os.fsync(self._handle.fileno())
        except OSError as exc:
            raise self._fail(f"sync {self._open_path()}", exc) from exc

        if self._tmp_path is not None:
            # the handle keeps pointing at the renamed file
            try:
                os.replace(self._tmp_path, self._local_path)
            except OSError as exc:
                raise self._fail(
                    f"rename {self._tmp_path} to {self._local_path}", exc
                ) from exc
            self._tmp_path = None
            self._state = WritableFileState.OPEN

        if not self._is_manifest:
            return

        try:
            self._provider.put_object(self._local_path, self._bucket, self._remote_path)
        except CloudError as exc:
            logger.error(
                "failed to make manifest %s durable to bucket %s path %s: %s",
                self._local_path,
                self._bucket,
                self._remote_path,
                exc,
            )
            raise
        self._state = WritableFileState.DURABLE
        logger.debug(
            "made manifest %s durable to bucket %s path %s",
            self._local_path,
            self._bucket,
            self._remote_path,
        )

    def close(self) -> None:
        """Release the local handle; data files are uploaded exactly once."""
        if self._handle is None:
            if self._error is not None:
                raise self._error
            return
        logger.debug("closing writable file %s", self._local_path)

        handle, self._handle = self._handle, None
        self._state = WritableFileState.CLOSED
        if self._error is not None:
            self._close_quietly(handle)
            raise self._error
        try:
            handle.close()
        except OSError as exc:
            logger.error("closing error on local %s", self._local_path)
            raise self._fail(f"close {self._local_path}", exc) from exc

        if self._is_manifest:
            if self._tmp_path is not None:
                logger.warning(
                    "manifest %s closed before its first sync; %s left in place",
                    self._local_path,
                    self._tmp_path,
                )
            return

        try:
            self._provider.put_object(self._local_path, self._bucket, self._remote_path)
        except CloudError as exc:
            logger.error(
                "closing upload failed on local file %s: %s", self._local_path, exc
            )
            self._error = exc
            raise

        if not self._provider.settings.KEEP_LOCAL_SST_FILES:
            try:
                os.remove(self._local_path)
            except OSError as exc:
                logger.error(
                    "closing delete failed on local file %s: %s", self._local_path, exc
                )
                self._error = CloudIOError(f"{self._local_path}: {exc}")
                raise self._error from exc
        logger.debug("closed writable file %s", self._local_path)

    def __enter__(self) -> "CloudWritableFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return
        # abandon: nothing is uploaded and the local file stays behind
        if self._handle is not None:
            handle, self._handle = self._handle, None
            self._state = WritableFileState.CLOSED
            self._close_quietly(handle)

    def _local_exists(self) -> bool:
        try:
            os.stat(self._local_path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            self._error = CloudIOError(f"{self._local_path}: {exc}")
            self._state = WritableFileState.CLOSED
            raise self._error from exc
        return True

    def _open_path(self) -> str:
        return self._tmp_path or self._local_path

    def _require_handle(self) -> BinaryIO:
        if self._error is not None:
            raise self._error
        if self._handle is None:
            raise CloudIOError(f"{self._local_path}: file is closed")
        return self._handle

    def _fail(self, action: str, exc: OSError) -> CloudIOError:
        logger.error("writable file failed to %s: %s", action, exc)
        self._error = CloudIOError(f"Failed to {action}: {exc}")
        return self._error

    def _close_quietly(self, handle: BinaryIO) -> None:
        try:
            handle.close()
        except OSError as exc:
            logger.warning("error releasing %s: %s", self._local_path, exc)
