"""Unit tests for directory upload, download and delete."""

from unittest.mock import patch

import pytest

from polyblob.driver.directory import DirectoryTransferOrchestrator, join_key, plan_directory_download
from polyblob.exceptions import ErrorKind, InvalidArgumentError
from polyblob.models import (
    BlobInfo,
    DirectoryDownloadRequest,
    DirectoryUploadRequest,
    DownloadRequest,
    ListBlobsRequest,
    UploadRequest,
)
from polyblob.providers.memory import MemoryStoreError


def _fill(store, count, prefix="dir/"):
    for i in range(count):
        store.upload(UploadRequest(key=f"{prefix}obj-{i:05d}"), b"x")


@pytest.fixture()
def source_tree(tmp_path):
    root = tmp_path / "src"
    (root / "nested" / "deeper").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"alpha")
    (root / "b.bin").write_bytes(b"\x00\x01")
    (root / "nested" / "c.txt").write_bytes(b"charlie")
    (root / "nested" / "deeper" / "d.txt").write_bytes(b"delta")
    return root


class TestJoinKey:
    @pytest.mark.parametrize(
        ("prefix", "relative", "expected"),
        [("", "a.txt", "a.txt"), ("up", "a.txt", "up/a.txt"), ("up/", "a.txt", "up/a.txt"), ("up//", "x/y", "up/x/y")],
    )
    def test_join(self, prefix, relative, expected):
        assert join_key(prefix, relative) == expected


class TestUploadDirectory:
    def test_top_level_only(self, memory_store, source_tree):
        response = memory_store.upload_directory(DirectoryUploadRequest(source_tree, prefix="up"))

        assert response.failed_transfers == []
        keys = [blob.key for blob in memory_store.iter_blobs()]
        assert keys == ["up/a.txt", "up/b.bin"]

    def test_include_subfolders(self, memory_store, source_tree):
        memory_store.upload_directory(
            DirectoryUploadRequest(source_tree, prefix="up/", include_subfolders=True, tags={"team": "x"})
        )

        keys = [blob.key for blob in memory_store.iter_blobs()]
        assert keys == ["up/a.txt", "up/b.bin", "up/nested/c.txt", "up/nested/deeper/d.txt"]
        assert memory_store.get_tags("up/nested/c.txt") == {"team": "x"}

    def test_source_must_be_a_directory(self, memory_store, tmp_path):
        with pytest.raises(InvalidArgumentError):
            memory_store.upload_directory(DirectoryUploadRequest(tmp_path / "missing"))

    def test_failed_files_are_reported_and_others_continue(self, memory_store, source_tree):
        original = memory_store._do_upload_stream

        def flaky(request, stream):
            if request.key.endswith("b.bin"):
                raise MemoryStoreError(403, "AccessDenied", "nope")
            return original(request, stream)

        with patch.object(memory_store, "_do_upload_stream", side_effect=flaky):
            response = memory_store.upload_directory(DirectoryUploadRequest(source_tree))

        assert [failure.source.name for failure in response.failed_transfers] == ["b.bin"]
        error = response.failed_transfers[0].error
        assert error.kind is ErrorKind.UNAUTHORIZED
        assert isinstance(error.cause, MemoryStoreError)
        assert memory_store.does_object_exist("a.txt")


class TestDownloadDirectory:
    def test_round_trip(self, memory_store, source_tree, tmp_path):
        memory_store.upload_directory(DirectoryUploadRequest(source_tree, prefix="up", include_subfolders=True))
        dest = tmp_path / "dest"

        response = memory_store.download_directory(DirectoryDownloadRequest("up/", dest))

        assert response.failed_transfers == []
        assert (dest / "a.txt").read_bytes() == b"alpha"
        assert (dest / "nested" / "deeper" / "d.txt").read_bytes() == b"delta"

    def test_excluded_prefixes_are_skipped(self, memory_store, source_tree, tmp_path):
        memory_store.upload_directory(DirectoryUploadRequest(source_tree, prefix="up", include_subfolders=True))
        dest = tmp_path / "dest"

        memory_store.download_directory(
            DirectoryDownloadRequest("up/", dest, prefixes_to_exclude=["up/nested/"])
        )

        assert sorted(p.name for p in dest.rglob("*")) == ["a.txt", "b.bin"]

    def test_existing_file_is_a_failed_transfer(self, memory_store, tmp_path):
        memory_store.upload(UploadRequest(key="p/one"), b"1")
        memory_store.upload(UploadRequest(key="p/two"), b"2")
        dest = tmp_path / "dest"
        dest.mkdir()
        (dest / "one").write_bytes(b"local")

        response = memory_store.download_directory(DirectoryDownloadRequest("p/", dest))

        assert len(response.failed_transfers) == 1
        failure = response.failed_transfers[0]
        assert failure.destination == (dest / "one").resolve()
        assert failure.error.kind is ErrorKind.FAILED_PRECONDITION
        assert (dest / "one").read_bytes() == b"local"
        assert (dest / "two").read_bytes() == b"2"

    def test_keys_escaping_the_destination_are_rejected(self, tmp_path):
        blobs = [BlobInfo(key="p/../../etc/passwd", object_size=1), BlobInfo(key="p/ok", object_size=1)]

        plan, rejected = plan_directory_download(DirectoryDownloadRequest("p/", tmp_path / "dest"), blobs)

        assert [key for key, _ in plan] == ["p/ok"]
        assert len(rejected) == 1
        assert isinstance(rejected[0].error, InvalidArgumentError)

    def test_folder_placeholders_are_skipped(self, tmp_path):
        blobs = [BlobInfo(key="p/folder/", object_size=0)]
        plan, rejected = plan_directory_download(DirectoryDownloadRequest("p/", tmp_path), blobs)
        assert plan == []
        assert rejected == []


class TestDeleteDirectory:
    def test_batches_follow_the_bulk_delete_limit(self, memory_store):
        _fill(memory_store, 2500)
        _fill(memory_store, 3, prefix="keep/")

        with patch.object(memory_store, "_do_delete_many", wraps=memory_store._do_delete_many) as spy:
            response = memory_store.delete_directory("dir/")

        assert sorted(len(call.args[0]) for call in spy.call_args_list) == [500, 1000, 1000]
        assert response.deleted_count == 2500
        assert response.failed_batches == []
        assert [blob.key for blob in memory_store.iter_blobs(ListBlobsRequest(prefix="dir/"))] == []
        assert len(list(memory_store.iter_blobs(ListBlobsRequest(prefix="keep/")))) == 3

    def test_batches_span_listing_pages(self, backend):
        from polyblob.providers.memory import MemoryBlobStoreBuilder

        store = MemoryBlobStoreBuilder().with_backend(backend).with_bucket("paged").with_page_size(300).build()
        _fill(store, 1200)

        with patch.object(store, "_do_delete_many", wraps=store._do_delete_many) as spy:
            response = store.delete_directory("dir/")

        assert sorted(len(call.args[0]) for call in spy.call_args_list) == [200, 1000]
        assert response.deleted_count == 1200

    def test_failed_batch_does_not_stop_the_others(self, memory_store):
        _fill(memory_store, 2500)
        original = memory_store._do_delete_many
        calls = []

        def fail_second(batch):
            calls.append(batch)
            if len(calls) == 2:
                raise MemoryStoreError(503, "SlowDown", "busy")
            return original(batch)

        orchestrator = DirectoryTransferOrchestrator(memory_store, max_concurrency=1)
        with patch.object(memory_store, "_do_delete_many", side_effect=fail_second):
            response = orchestrator.delete_directory("dir/")

        assert len(calls) == 3
        assert response.deleted_count == 1500
        assert len(response.failed_batches) == 1
        failed = response.failed_batches[0]
        assert len(failed.identifiers) == 1000
        assert failed.error.kind is ErrorKind.UNKNOWN
        assert isinstance(failed.error.cause, MemoryStoreError)

    def test_empty_prefix_deletes_nothing(self, memory_store):
        response = memory_store.delete_directory("nothing/")
        assert response.deleted_count == 0
        assert response.failed_batches == []

    def test_locked_objects_fail_their_batch(self, memory_store):
        _fill(memory_store, 2)
        memory_store.update_legal_hold("dir/obj-00000", None, True)

        response = memory_store.delete_directory("dir/")

        assert response.deleted_count == 0
        assert response.failed_batches[0].error.kind is ErrorKind.UNAUTHORIZED
        assert memory_store.download(DownloadRequest(key="dir/obj-00000"), bytearray()).metadata.object_size == 1
