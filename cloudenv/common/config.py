from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

DEFAULT_LIST_PAGE_SIZE = 50


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    STORAGE_BACKEND: str = "s3"
    DEST_BUCKET: str | None = None
    DEST_OBJECT_PREFIX: str = ""
    DEST_REGION: str | None = None
    SRC_BUCKET: str | None = None
    SRC_OBJECT_PREFIX: str = ""
    SRC_REGION: str | None = None
    CREATE_BUCKET_IF_MISSING: bool = True
    KEEP_LOCAL_SST_FILES: bool = False
    LIST_PAGE_SIZE: int = DEFAULT_LIST_PAGE_SIZE
    SERVER_SIDE_ENCRYPTION: bool = False
    ENCRYPTION_KEY_ID: str | None = None
    USE_TRANSFER_MANAGER: bool = False
    ENABLE_METRICS: bool = True
    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_USE_SSL: bool = True
    S3_ADDRESSING_STYLE: str = "auto"
    S3_REQUEST_TIMEOUT: int = 60

    def __post_init__(self) -> None:
        if self.LIST_PAGE_SIZE <= 0:
            raise ValueError("LIST_PAGE_SIZE must be a positive integer.")

    @property
    def has_dest_bucket(self) -> bool:
        return bool(self.DEST_BUCKET)

    @property
    def has_src_bucket(self) -> bool:
        return bool(self.SRC_BUCKET)

    @property
    def src_matches_dest(self) -> bool:
        return (
            self.SRC_BUCKET == self.DEST_BUCKET
            and self.SRC_OBJECT_PREFIX == self.DEST_OBJECT_PREFIX
        )

    @property
    def region(self) -> str | None:
        return self.SRC_REGION or self.DEST_REGION

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            STORAGE_BACKEND=os.environ.get("STORAGE_BACKEND", cls.STORAGE_BACKEND),
            DEST_BUCKET=_as_optional(os.environ.get("DEST_BUCKET")),
            DEST_OBJECT_PREFIX=os.environ.get(
                "DEST_OBJECT_PREFIX", cls.DEST_OBJECT_PREFIX
            ),
            DEST_REGION=_as_optional(os.environ.get("DEST_REGION")),
            SRC_BUCKET=_as_optional(os.environ.get("SRC_BUCKET")),
            SRC_OBJECT_PREFIX=os.environ.get(
                "SRC_OBJECT_PREFIX", cls.SRC_OBJECT_PREFIX
            ),
            SRC_REGION=_as_optional(os.environ.get("SRC_REGION")),
            CREATE_BUCKET_IF_MISSING=_as_bool(
                os.environ.get("CREATE_BUCKET_IF_MISSING"),
                cls.CREATE_BUCKET_IF_MISSING,
            ),
            KEEP_LOCAL_SST_FILES=_as_bool(
                os.environ.get("KEEP_LOCAL_SST_FILES"), cls.KEEP_LOCAL_SST_FILES
            ),
            LIST_PAGE_SIZE=int(
                os.environ.get("LIST_PAGE_SIZE", cls.LIST_PAGE_SIZE)
            ),
            SERVER_SIDE_ENCRYPTION=_as_bool(
                os.environ.get("SERVER_SIDE_ENCRYPTION"), cls.SERVER_SIDE_ENCRYPTION
            ),
            ENCRYPTION_KEY_ID=_as_optional(os.environ.get("ENCRYPTION_KEY_ID")),
            USE_TRANSFER_MANAGER=_as_bool(
                os.environ.get("USE_TRANSFER_MANAGER"), cls.USE_TRANSFER_MANAGER
            ),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            S3_ENDPOINT_URL=_as_optional(os.environ.get("S3_ENDPOINT_URL")),
            S3_ACCESS_KEY_ID=_as_optional(os.environ.get("S3_ACCESS_KEY_ID")),
            S3_SECRET_ACCESS_KEY=_as_optional(
                os.environ.get("S3_SECRET_ACCESS_KEY")
            ),
            S3_USE_SSL=_as_bool(os.environ.get("S3_USE_SSL"), cls.S3_USE_SSL),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            S3_REQUEST_TIMEOUT=int(
                os.environ.get("S3_REQUEST_TIMEOUT", cls.S3_REQUEST_TIMEOUT)
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
