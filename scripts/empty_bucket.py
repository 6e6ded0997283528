#!/usr/bin/env python3
"""Delete every object under a prefix in a bucket.

Usage:
  .venv/bin/python scripts/empty_bucket.py --bucket my-db --prefix db1/ --dry-run
  .venv/bin/python scripts/empty_bucket.py --bucket my-db --prefix db1/

Bucket and credentials default to the DEST_* / S3_* environment settings.
Use --dry-run to list what would be deleted.
"""

from __future__ import annotations

import argparse
import logging
import sys

from cloudenv.common.config import get_settings
from cloudenv.common.logging import setup_logging
from cloudenv.services import CloudError, ObjectProvider

logger = logging.getLogger("cloudenv.scripts.empty_bucket")


def empty_bucket(
    provider: ObjectProvider, *, bucket: str, prefix: str, dry_run: bool = False
) -> int:
    if dry_run:
        return len(provider.list_objects(bucket, prefix))
    return provider.empty_bucket(bucket, prefix)


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Delete all objects under a prefix")
    parser.add_argument(
        "--bucket",
        default=settings.DEST_BUCKET,
        help="Bucket to empty (default: DEST_BUCKET)",
    )
    parser.add_argument(
        "--prefix",
        default=settings.DEST_OBJECT_PREFIX,
        help="Object path prefix (default: DEST_OBJECT_PREFIX)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the would-be deleted object count without deleting",
    )
    args = parser.parse_args(argv)
    if not args.bucket:
        parser.error("--bucket is required when DEST_BUCKET is not set")

    setup_logging()
    provider = ObjectProvider(settings=settings)
    try:
        count = empty_bucket(
            provider, bucket=args.bucket, prefix=args.prefix, dry_run=args.dry_run
        )
    except CloudError as exc:
        logger.error("empty bucket %s/%s failed: %s", args.bucket, args.prefix, exc)
        return 1
    if args.dry_run:
        print(f"[DRY-RUN] {count} objects would be deleted")
    else:
        print(f"Deleted {count} objects")
    return 0


if __name__ == "__main__":
    sys.exit(main())
