"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.
Retries and backoff are delegated to botocore's standard retry mode.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cloudenv.infra.observability.instrumentation import (
    RequestCallback,
    RequestOpType,
    measure_request,
)
from cloudenv.infra.storage.client import (
    EncryptionParams,
    ListPage,
    ObjectHead,
    StorageError,
    StorageNotFoundError,
    TransientStorageError,
    UploadSource,
)

if TYPE_CHECKING:
    from cloudenv.common.config import Settings

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset(
    {"NoSuchBucket", "NoSuchKey", "ResourceNotFound", "NotFound", "404"}
)
TRANSIENT_CODES = frozenset(
    {
        "RequestTimeout",
        "RequestTimeTooSkewed",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "ServiceUnavailable",
        "InternalError",
        "500",
        "503",
    }
)
BUCKET_EXISTS_CODES = frozenset({"BucketAlreadyExists", "BucketAlreadyOwnedByYou"})
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _translate_error(exc: Exception, action: str) -> StorageError:
    """Classify a boto3 failure into the storage error taxonomy."""
    if isinstance(exc, ClientError):
        code = _error_code(exc)
        message = exc.response.get("Error", {}).get("Message") or str(exc)
        if code in NOT_FOUND_CODES:
            return StorageNotFoundError(f"Failed to {action}: {message}")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if code in TRANSIENT_CODES or (isinstance(status, int) and status >= 500):
            return TransientStorageError(f"Failed to {action}: {message}")
        return StorageError(f"Failed to {action}: {message}")
    return StorageError(f"Failed to {action}: {exc}")


def _encryption_args(encryption: EncryptionParams | None) -> dict[str, str]:
    if encryption is None or not encryption.enabled:
        return {}
    if encryption.kms_key_id:
        return {"ServerSideEncryption": "aws:kms", "SSEKMSKeyId": encryption.kms_key_id}
    return {"ServerSideEncryption": "AES256"}


class _ByteCounter:
    """Thread-safe progress callback for the transfer manager."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total = 0

    def __call__(self, amount: int) -> None:
        with self._lock:
            self.total += amount


class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations; whole-object transfers go
    through the boto3 transfer manager when ``USE_TRANSFER_MANAGER`` is set.
    """

    def __init__(
        self,
        *,
        settings: "Settings",
        request_callback: RequestCallback | None = None,
    ) -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Settings containing S3 configuration.
            request_callback: Hook invoked once per backend call.
        """
        self._settings = settings
        self._callback = request_callback
        self._use_transfer_manager = bool(settings.USE_TRANSFER_MANAGER)
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        addressing_style = (settings.S3_ADDRESSING_STYLE or "auto").strip().lower()
        config = Config(
            s3={"addressing_style": addressing_style},
            connect_timeout=settings.S3_REQUEST_TIMEOUT,
            read_timeout=settings.S3_REQUEST_TIMEOUT,
            retries={"max_attempts": 5, "mode": "standard"},
        )

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.region,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    def list_objects(
        self,
        *,
        bucket: str,
        prefix: str,
        marker: str | None,
        max_keys: int,
    ) -> ListPage:
        """List one page of keys under a prefix."""
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Prefix": prefix,
            "MaxKeys": int(max_keys),
        }
        if marker:
            params["Marker"] = marker

        with measure_request(self._callback, RequestOpType.LIST) as measurement:
            try:
                response = self._client.list_objects(**params)
            except (ClientError, BotoCoreError) as exc:
                raise _translate_error(exc, "list objects") from exc
            measurement.succeeded()

        keys = [str(item["Key"]) for item in response.get("Contents", [])]
        next_marker = response.get("NextMarker") or None
        return ListPage(
            keys=keys,
            is_truncated=bool(response.get("IsTruncated", False)),
            next_marker=next_marker,
        )

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content."""
        with measure_request(self._callback, RequestOpType.INFO) as measurement:
            try:
                response = self._client.head_object(Bucket=bucket, Key=object_key)
            except (ClientError, BotoCoreError) as exc:
                raise _translate_error(exc, "get object metadata") from exc
            measurement.succeeded()

        size = response.get("ContentLength")
        last_modified = response.get("LastModified")
        return ObjectHead(
            size_bytes=int(size) if size is not None else 0,
            last_modified_ms=(
                int(last_modified.timestamp() * 1000) if last_modified else 0
            ),
            metadata=dict(response.get("Metadata") or {}),
        )

    def get_object_range(
        self,
        *,
        bucket: str,
        object_key: str,
        first_byte: int,
        last_byte: int,
    ) -> bytes:
        """Fetch an inclusive byte range of an object."""
        byte_range = f"bytes={int(first_byte)}-{int(last_byte)}"
        with measure_request(self._callback, RequestOpType.READ) as measurement:
            try:
                response = self._client.get_object(
                    Bucket=bucket, Key=object_key, Range=byte_range
                )
                body = response["Body"].read()
            except (ClientError, BotoCoreError) as exc:
                raise _translate_error(exc, f"read range {byte_range}") from exc
            measurement.succeeded(int(response.get("ContentLength", len(body))))
        return body

    def download_object(
        self, *, bucket: str, object_key: str, destination: str
    ) -> int:
        """Download an object into a local file and return the remote size.

        The returned size is the object's length as reported by the store,
        never the number of bytes that arrived, so callers can detect a
        truncated transfer by comparing it with the local file.
        """
        with measure_request(self._callback, RequestOpType.READ) as measurement:
            try:
                if self._use_transfer_manager:
                    head = self._client.head_object(Bucket=bucket, Key=object_key)
                    remote_size = int(head.get("ContentLength", 0))
                    counter = _ByteCounter()
                    self._client.download_file(
                        bucket, object_key, destination, Callback=counter
                    )
                    transferred = counter.total
                else:
                    response = self._client.get_object(Bucket=bucket, Key=object_key)
                    remote_size = int(response.get("ContentLength", 0))
                    transferred = remote_size
                    body = response["Body"]
                    with open(destination, "wb") as fh:
                        for chunk in iter(lambda: body.read(DOWNLOAD_CHUNK_SIZE), b""):
                            fh.write(chunk)
            except (ClientError, BotoCoreError) as exc:
                logger.error(
                    "download failed bucket=%s key=%s error=%s", bucket, object_key, exc
                )
                raise _translate_error(exc, "download object") from exc
            except OSError as exc:
                raise StorageError(
                    f"Failed to write download to {destination}: {exc}"
                ) from exc
            measurement.succeeded(transferred)
        return remote_size

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
        """Upload a local file or an in-memory payload."""
        extra: dict[str, Any] = _encryption_args(encryption)
        if metadata:
            extra["Metadata"] = dict(metadata)

        with measure_request(
            self._callback, RequestOpType.WRITE, size_hint
        ) as measurement:
            try:
                if isinstance(source, bytes):
                    self._client.put_object(
                        Bucket=bucket, Key=object_key, Body=source, **extra
                    )
                elif self._use_transfer_manager:
                    self._client.upload_file(
                        str(source), bucket, object_key, ExtraArgs=extra or None
                    )
                else:
                    with Path(source).open("rb") as fh:
                        self._client.put_object(
                            Bucket=bucket,
                            Key=object_key,
                            Body=fh,
                            ContentLength=int(size_hint),
                            **extra,
                        )
            except (ClientError, BotoCoreError) as exc:
                logger.error(
                    "upload failed bucket=%s key=%s size=%s error=%s",
                    bucket,
                    object_key,
                    size_hint,
                    exc,
                )
                raise _translate_error(exc, "upload object") from exc
            except OSError as exc:
                raise StorageError(f"Failed to read upload source {source}: {exc}") from exc
            measurement.succeeded()

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        with measure_request(self._callback, RequestOpType.DELETE) as measurement:
            try:
                self._client.delete_object(Bucket=bucket, Key=object_key)
            except (ClientError, BotoCoreError) as exc:
                raise _translate_error(exc, "delete object") from exc
            measurement.succeeded()

    def copy_object(
        self,
        *,
        src_bucket: str,
        src_key: str,
        dest_bucket: str,
        dest_key: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Server-side copy of an object, optionally replacing its metadata."""
        params: dict[str, Any] = {
            "CopySource": {"Bucket": src_bucket, "Key": src_key},
            "Bucket": dest_bucket,
            "Key": dest_key,
        }
        if metadata is not None:
            params["Metadata"] = dict(metadata)
            params["MetadataDirective"] = "REPLACE"

        with measure_request(self._callback, RequestOpType.COPY) as measurement:
            try:
                self._client.copy_object(**params)
            except (ClientError, BotoCoreError) as exc:
                raise _translate_error(exc, "copy object") from exc
            measurement.succeeded()

    def create_bucket(self, *, bucket: str, location: str | None = None) -> None:
        """Create a bucket, treating an existing bucket as success."""
        params: dict[str, Any] = {"Bucket": bucket}
        # us-east-1 rejects an explicit location constraint
        if location and location != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": location}

        with measure_request(self._callback, RequestOpType.CREATE) as measurement:
            try:
                self._client.create_bucket(**params)
            except ClientError as exc:
                if _error_code(exc) not in BUCKET_EXISTS_CODES:
                    raise _translate_error(exc, "create bucket") from exc
                logger.info("bucket %s already exists", bucket)
            except BotoCoreError as exc:
                raise _translate_error(exc, "create bucket") from exc
            measurement.succeeded()

    def bucket_exists(self, *, bucket: str) -> bool:
        """Return True if a HEAD on the bucket succeeds."""
        with measure_request(self._callback, RequestOpType.INFO) as measurement:
            try:
                self._client.head_bucket(Bucket=bucket)
            except (ClientError, BotoCoreError) as exc:
                logger.debug("head bucket %s failed: %s", bucket, exc)
                return False
            measurement.succeeded()
        return True
