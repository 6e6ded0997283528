from __future__ import annotations

from scripts.empty_bucket import empty_bucket


def test_empty_bucket_dry_run_then_delete(provider, mock_storage):
    for key in ("db1/000001.sst", "db1/MANIFEST-1", "db2/000002.sst"):
        mock_storage.add_object("b", key, b"x")

    # dry-run 只统计
    would_delete = empty_bucket(provider, bucket="b", prefix="db1/", dry_run=True)
    assert would_delete == 2
    assert provider.list_objects("b", "db1/") == ["000001.sst", "MANIFEST-1"]

    deleted = empty_bucket(provider, bucket="b", prefix="db1/")
    assert deleted == 2

    # 再次运行应为 0
    assert empty_bucket(provider, bucket="b", prefix="db1/", dry_run=True) == 0
    assert provider.list_objects("b", "db2/") == ["000002.sst"]


def test_empty_bucket_lists_prefix_once(provider, mock_storage):
    for key in ("db1/000001.sst", "db1/000002.sst", "db1/000003.sst"):
        mock_storage.add_object("b", key, b"x")

    deleted = empty_bucket(provider, bucket="b", prefix="db1/")

    assert deleted == 3
    # 单次列举: 3 个对象按每页 2 个分两页
    assert mock_storage.call_names().count("list_objects") == 2
    assert mock_storage.call_names().count("delete_object") == 3
