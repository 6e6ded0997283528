"""Read-only cursor over a remote object."""

from __future__ import annotations

import logging

from cloudenv.common.filenames import encode_varint64, parse_sst_number, remove_epoch
from cloudenv.infra.storage.client import (
    StorageClient,
    StorageError,
    StorageNotFoundError,
)
from cloudenv.services.base import CloudIOError, ObjectNotFoundError

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND_MARKER = "Response code: 404"


class CloudReadableFile:
    """Sequential and random access reads served by ranged backend fetches.

    ``file_size`` is captured when the file is opened and never refreshed,
    so growth of the remote object is invisible to an open reader.
    """

    def __init__(
        self, storage: StorageClient, bucket: str, path: str, file_size: int
    ) -> None:
        self._storage = storage
        self._bucket = bucket
        self._path = path
        self._file_size = int(file_size)
        self._offset = 0
        logger.debug("opening readable file %s/%s size %d", bucket, path, file_size)

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def path(self) -> str:
        return self._path

    @property
    def file_size(self) -> int:
        return self._file_size

    @property
    def offset(self) -> int:
        return self._offset

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes at the cursor and advance past them."""
        data = self.pread(self._offset, n)
        self._offset += len(data)
        return data

    def pread(self, offset: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``offset`` without moving the cursor."""
        if offset >= self._file_size:
            logger.debug(
                "read %s at offset %d past size %d, nothing to do",
                self._path,
                offset,
                self._file_size,
            )
            return b""
        n = min(n, self._file_size - offset)
        return self._fetch(offset, n)

    def skip(self, n: int) -> None:
        self._offset = min(self._offset + n, self._file_size)

    def unique_id(self) -> bytes:
        """Cache key for SST files: the varint-encoded file number."""
        number = parse_sst_number(remove_epoch(self._path))
        if not number:
            return b""
        return encode_varint64(number)

    def _fetch(self, offset: int, n: int) -> bytes:
        # ranges are inclusive and cannot be empty
        range_len = n if n > 0 else 1
        try:
            body = self._storage.get_object_range(
                bucket=self._bucket,
                object_key=self._path,
                first_byte=offset,
                last_byte=offset + range_len - 1,
            )
        except StorageError as exc:
            message = str(exc)
            if isinstance(exc, StorageNotFoundError) or HTTP_NOT_FOUND_MARKER in message:
                logger.error("reading non-existent %s: %s", self._path, message)
                raise ObjectNotFoundError(f"{self._path}: {message}") from exc
            logger.error(
                "error reading %s at offset %d length %d: %s",
                self._path,
                offset,
                range_len,
                message,
            )
            raise CloudIOError(f"{self._path}: {message}") from exc

        data = body[:n] if n > 0 else b""
        logger.debug(
            "read %s size %d returned %d bytes", self._path, self._file_size, len(data)
        )
        return data
