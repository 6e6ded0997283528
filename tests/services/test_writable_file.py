"""Tests for CloudWritableFile and the manifest sync protocol."""

from __future__ import annotations

import pytest

from cloudenv.common.config import Settings
from cloudenv.services.base import CloudIOError
from cloudenv.services.object_provider import ObjectProvider
from cloudenv.services.writable_file import CloudWritableFile, WritableFileState


def _puts(storage) -> list[str]:
    return [args["key"] for name, args in storage.calls if name == "put_object"]


class TestDataFiles:
    def test_uploads_once_on_close_and_deletes_local(
        self, provider, mock_storage, tmp_path
    ):
        local = tmp_path / "000010.sst"
        writable = CloudWritableFile(provider, str(local), "b", "db/000010.sst")
        assert not writable.is_manifest
        assert writable.state is WritableFileState.OPEN

        writable.append(b"abc")
        writable.sync()
        writable.append(b"def")
        assert _puts(mock_storage) == []

        writable.close()
        writable.close()

        assert _puts(mock_storage) == ["db/000010.sst"]
        assert mock_storage.data("b", "db/000010.sst") == b"abcdef"
        assert not local.exists()
        assert writable.state is WritableFileState.CLOSED

    def test_keeps_local_copy_when_configured(self, mock_storage, tmp_path):
        provider = ObjectProvider(
            settings=Settings(ENABLE_METRICS=False, KEEP_LOCAL_SST_FILES=True),
            storage_client=mock_storage,
        )
        local = tmp_path / "000011.sst"
        with CloudWritableFile(provider, str(local), "b", "db/000011.sst") as writable:
            writable.append(b"abc")

        assert local.read_bytes() == b"abc"
        assert mock_storage.data("b", "db/000011.sst") == b"abc"

    def test_upload_failure_keeps_local_file(self, provider, mock_storage, tmp_path):
        local = tmp_path / "000012.sst"
        writable = CloudWritableFile(provider, str(local), "b", "db/000012.sst")
        writable.append(b"abc")
        mock_storage.fail_puts = True

        with pytest.raises(CloudIOError):
            writable.close()
        assert local.read_bytes() == b"abc"
        with pytest.raises(CloudIOError):
            writable.close()
        assert _puts(mock_storage) == ["db/000012.sst"]

    def test_empty_data_file_is_not_uploaded(self, provider, mock_storage, tmp_path):
        local = tmp_path / "000013.sst"
        writable = CloudWritableFile(provider, str(local), "b", "db/000013.sst")

        with pytest.raises(CloudIOError, match="Zero size"):
            writable.close()
        assert mock_storage.calls == []
        assert local.exists()

    def test_append_after_close_fails(self, provider, tmp_path):
        writable = CloudWritableFile(
            provider, str(tmp_path / "000014.sst"), "b", "db/000014.sst"
        )
        writable.append(b"x")
        writable.close()
        with pytest.raises(CloudIOError, match="closed"):
            writable.append(b"y")

    def test_abandoned_on_exception(self, provider, mock_storage, tmp_path):
        local = tmp_path / "000015.sst"
        with pytest.raises(RuntimeError):
            with CloudWritableFile(provider, str(local), "b", "db/000015.sst") as w:
                w.append(b"partial")
                raise RuntimeError("engine aborted")

        assert _puts(mock_storage) == []
        assert local.exists()

    def test_open_failure(self, provider, tmp_path):
        with pytest.raises(CloudIOError):
            CloudWritableFile(
                provider, str(tmp_path / "missing-dir" / "000016.sst"), "b", "k"
            )


class TestManifest:
    def test_new_manifest_writes_in_place(self, provider, mock_storage, tmp_path):
        local = tmp_path / "MANIFEST-000001"
        writable = CloudWritableFile(provider, str(local), "b", "db/MANIFEST-000001")

        assert writable.is_manifest
        assert writable.tmp_path is None
        writable.append(b"edit-1")
        writable.sync()

        assert writable.state is WritableFileState.DURABLE
        assert mock_storage.data("b", "db/MANIFEST-000001") == b"edit-1"

    def test_existing_manifest_goes_through_temp_file(
        self, provider, mock_storage, tmp_path
    ):
        local = tmp_path / "MANIFEST-000001"
        local.write_bytes(b"old manifest")
        tmp = tmp_path / "MANIFEST-000001.tmp"

        writable = CloudWritableFile(provider, str(local), "b", "db/MANIFEST-000001")
        assert writable.state is WritableFileState.RENAME_PENDING
        assert writable.tmp_path == str(tmp)

        writable.append(b"new manifest")
        # until the first sync the real path still holds the old manifest
        assert local.read_bytes() == b"old manifest"

        writable.sync()

        assert writable.tmp_path is None
        assert not tmp.exists()
        assert local.read_bytes() == b"new manifest"
        assert mock_storage.data("b", "db/MANIFEST-000001") == b"new manifest"
        assert writable.state is WritableFileState.DURABLE

    def test_close_before_first_sync_keeps_temp_and_uploads_nothing(
        self, provider, mock_storage, tmp_path
    ):
        local = tmp_path / "MANIFEST-000003"
        local.write_bytes(b"old manifest")
        tmp = tmp_path / "MANIFEST-000003.tmp"

        writable = CloudWritableFile(provider, str(local), "b", "db/MANIFEST-000003")
        writable.append(b"unsynced edit")
        writable.close()

        assert writable.state is WritableFileState.CLOSED
        assert local.read_bytes() == b"old manifest"
        assert tmp.read_bytes() == b"unsynced edit"
        assert _puts(mock_storage) == []

    def test_crash_after_sync_leaves_synced_content(self, provider, tmp_path):
        local = tmp_path / "MANIFEST-000002"
        local.write_bytes(b"old")
        writable = CloudWritableFile(provider, str(local), "b", "db/MANIFEST-000002")
        writable.append(b"synced")
        writable.sync()

        # simulated crash: the file is never closed
        assert local.read_bytes() == b"synced"
        assert not (tmp_path / "MANIFEST-000002.tmp").exists()

    def test_every_sync_uploads(self, provider, mock_storage, tmp_path):
        local = tmp_path / "MANIFEST-000003"
        writable = CloudWritableFile(provider, str(local), "b", "db/MANIFEST-000003")

        writable.append(b"a")
        writable.sync()
        writable.append(b"b")
        writable.sync()
        writable.close()

        assert _puts(mock_storage) == ["db/MANIFEST-000003"] * 2
        assert mock_storage.data("b", "db/MANIFEST-000003") == b"ab"
        assert local.read_bytes() == b"ab"

    def test_sync_upload_failure_propagates(self, provider, mock_storage, tmp_path):
        local = tmp_path / "MANIFEST-000004"
        writable = CloudWritableFile(provider, str(local), "b", "db/MANIFEST-000004")
        writable.append(b"a")
        mock_storage.fail_puts = True

        with pytest.raises(CloudIOError):
            writable.sync()
        assert local.read_bytes() == b"a"

        mock_storage.fail_puts = False
        writable.sync()
        assert mock_storage.data("b", "db/MANIFEST-000004") == b"a"

    def test_local_sync_failure_is_permanent(
        self, provider, mock_storage, tmp_path, monkeypatch
    ):
        local = tmp_path / "MANIFEST-000005"
        writable = CloudWritableFile(provider, str(local), "b", "db/MANIFEST-000005")
        writable.append(b"a")

        def broken_fsync(fd):
            raise OSError(5, "Input/output error")

        monkeypatch.setattr("cloudenv.services.writable_file.os.fsync", broken_fsync)
        with pytest.raises(CloudIOError, match="Input/output error"):
            writable.sync()
        monkeypatch.undo()

        assert writable.failed
        with pytest.raises(CloudIOError):
            writable.append(b"b")
        with pytest.raises(CloudIOError):
            writable.sync()
        with pytest.raises(CloudIOError):
            writable.close()
        assert _puts(mock_storage) == []
