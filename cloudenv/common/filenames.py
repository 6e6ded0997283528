"""Naming rules for engine files stored in the cloud.

Engine files may carry an epoch suffix (``MANIFEST-3f2a``,
``000123.sst-3f2a``) that makes them unique per database incarnation.
"""

from __future__ import annotations

import os

MANIFEST_NAME = "MANIFEST"
SST_SUFFIX = ".sst"


def remove_epoch(path: str) -> str:
    """Strip a trailing ``-<epoch>`` from the final path component."""
    head, base = os.path.split(path)
    dash = base.rfind("-")
    if dash <= 0:
        return path
    return os.path.join(head, base[:dash]) if head else base[:dash]


def is_manifest_file(path: str) -> bool:
    return os.path.basename(path) == MANIFEST_NAME


def is_sst_file(path: str) -> bool:
    base = os.path.basename(path)
    return base.endswith(SST_SUFFIX) and base[: -len(SST_SUFFIX)].isdigit()


def parse_sst_number(path: str) -> int | None:
    """Return the file number of an SST name, or None for anything else."""
    if not is_sst_file(path):
        return None
    base = os.path.basename(path)
    return int(base[: -len(SST_SUFFIX)])


def encode_varint64(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint64 values must be non-negative")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def ensure_trailing_separator(path: str) -> str:
    if path and not path.endswith("/"):
        return path + "/"
    return path
