"""Unit tests for the in-process provider."""

import io
from datetime import datetime, timedelta, timezone

import pytest

from polyblob.exceptions import ErrorKind, FailedPreconditionError, InvalidArgumentError
from polyblob.models import (
    BlobIdentifier,
    CopyFromRequest,
    CopyRequest,
    DownloadRequest,
    ListBlobsPageRequest,
    ObjectLockConfiguration,
    PresignedOperation,
    PresignedUrlRequest,
    RetentionMode,
    UploadRequest,
)
from polyblob.providers.memory import MemoryBlobStoreBuilder, MemoryStoreError, classify_memory_error


class TestUploadAndDownload:
    def test_bytes_round_trip(self, memory_store):
        response = memory_store.upload(UploadRequest(key="k", metadata={"a": "1"}), b"hello")

        out = bytearray(b"previous content")
        download = memory_store.download(DownloadRequest(key="k"), out)

        assert bytes(out) == b"hello"
        assert download.version_id == response.version_id
        assert download.etag == response.etag
        assert download.metadata.metadata == {"a": "1"}

    def test_stream_upload_respects_content_length(self, memory_store):
        memory_store.upload(UploadRequest(key="k", content_length=3), io.BytesIO(b"abcdef"))
        assert memory_store.get_metadata("k").object_size == 3

    def test_short_stream_is_rejected(self, memory_store):
        with pytest.raises(MemoryStoreError) as exc_info:
            memory_store.upload(UploadRequest(key="k", content_length=100), io.BytesIO(b"short"))

        assert exc_info.value.code == "IncompleteBody"
        assert classify_memory_error(exc_info.value) is ErrorKind.INVALID_ARGUMENT
        assert not memory_store.does_object_exist("k")

    def test_whitespace_key_is_a_valid_key(self, memory_store):
        memory_store.upload(UploadRequest(key=" "), b"x")
        assert memory_store.does_object_exist(" ")

    def test_file_upload_and_download(self, memory_store, tmp_path):
        source = tmp_path / "in.bin"
        source.write_bytes(b"file body")
        memory_store.upload(UploadRequest(key="f"), source)

        target = tmp_path / "out.bin"
        memory_store.download(DownloadRequest(key="f"), str(target))

        assert target.read_bytes() == b"file body"

    def test_missing_source_file(self, memory_store, tmp_path):
        with pytest.raises(InvalidArgumentError):
            memory_store.upload(UploadRequest(key="f"), tmp_path / "nope")

    def test_download_never_overwrites(self, memory_store, tmp_path):
        memory_store.upload(UploadRequest(key="k"), b"new")
        target = tmp_path / "existing"
        target.write_bytes(b"old")

        with pytest.raises(FailedPreconditionError):
            memory_store.download(DownloadRequest(key="k"), target)

        assert target.read_bytes() == b"old"

    def test_missing_object_leaves_no_file(self, memory_store, tmp_path):
        target = tmp_path / "out"
        with pytest.raises(MemoryStoreError):
            memory_store.download(DownloadRequest(key="missing"), target)
        assert not target.exists()

    def test_unsupported_source_type(self, memory_store):
        with pytest.raises(InvalidArgumentError):
            memory_store.upload(UploadRequest(key="k"), 42)

    def test_versions_are_kept(self, memory_store):
        first = memory_store.upload(UploadRequest(key="k"), b"v1")
        memory_store.upload(UploadRequest(key="k"), b"v2")

        out = bytearray()
        memory_store.download(DownloadRequest(key="k", version_id=first.version_id), out)

        assert bytes(out) == b"v1"
        assert memory_store.get_metadata("k").object_size == 2


class TestRanges:
    @pytest.fixture()
    def stored(self, memory_store):
        memory_store.upload(UploadRequest(key="r"), b"0123456789")
        return memory_store

    @pytest.mark.parametrize(
        ("start", "end", "expected"),
        [(0, 0, b"0"), (2, 5, b"2345"), (7, None, b"789"), (None, 3, b"789"), (8, 100, b"89")],
    )
    def test_ranges(self, stored, start, end, expected):
        out = bytearray()
        response = stored.download(DownloadRequest(key="r", start=start, end=end), out)
        assert bytes(out) == expected
        assert response.metadata.object_size == len(expected)

    def test_start_beyond_size(self, stored):
        with pytest.raises(MemoryStoreError) as exc_info:
            stored.download(DownloadRequest(key="r", start=10), bytearray())
        assert classify_memory_error(exc_info.value) is ErrorKind.INVALID_ARGUMENT


class TestDeleteAndCopy:
    def test_delete_is_idempotent(self, memory_store):
        memory_store.upload(UploadRequest(key="k"), b"x")
        memory_store.delete("k")
        memory_store.delete("k")
        assert not memory_store.does_object_exist("k")

    def test_delete_single_version(self, memory_store):
        first = memory_store.upload(UploadRequest(key="k"), b"1")
        second = memory_store.upload(UploadRequest(key="k"), b"2")

        memory_store.delete("k", first.version_id)

        assert memory_store.get_metadata("k").version_id == second.version_id
        assert not memory_store.does_object_exist("k", first.version_id)

    def test_delete_many(self, memory_store):
        for key in ("a", "b", "c"):
            memory_store.upload(UploadRequest(key=key), b"x")

        memory_store.delete_many([BlobIdentifier("a"), BlobIdentifier("c"), BlobIdentifier("missing")])

        assert [blob.key for blob in memory_store.iter_blobs()] == ["b"]

    def test_delete_many_rejects_blank_keys(self, memory_store):
        with pytest.raises(InvalidArgumentError):
            memory_store.delete_many([BlobIdentifier("a"), BlobIdentifier("")])

    def test_copy_within_and_across_buckets(self, backend, memory_store):
        other = MemoryBlobStoreBuilder().with_backend(backend).with_bucket("other").build()
        memory_store.upload(UploadRequest(key="src", metadata={"m": "v"}), b"payload")

        memory_store.copy(CopyRequest(src_key="src", dest_key="dst"))
        memory_store.copy(CopyRequest(src_key="src", dest_key="there", dest_bucket="other"))
        other.copy_from(CopyFromRequest(src_bucket="test-bucket", src_key="src", dest_key="pulled"))

        assert memory_store.get_metadata("dst").metadata == {"m": "v"}
        assert other.does_object_exist("there")
        assert other.does_object_exist("pulled")

    def test_copy_missing_source(self, memory_store):
        with pytest.raises(MemoryStoreError) as exc_info:
            memory_store.copy(CopyRequest(src_key="nope", dest_key="x"))
        assert exc_info.value.status == 404


class TestListing:
    def test_pagination_tokens(self, backend):
        store = MemoryBlobStoreBuilder().with_backend(backend).with_bucket("paged").with_page_size(2).build()
        for key in ("a", "b", "c"):
            store.upload(UploadRequest(key=key), b"x")

        first = store.list_page(ListBlobsPageRequest())
        second = store.list_page(ListBlobsPageRequest(page_token=first.next_page_token))

        assert [b.key for b in first.blobs] == ["a", "b"]
        assert first.is_truncated
        assert [b.key for b in second.blobs] == ["c"]
        assert not second.is_truncated
        assert second.next_page_token is None


class TestTags:
    def test_set_tags_replaces_all(self, memory_store):
        memory_store.upload(UploadRequest(key="k", tags={"a": "1", "b": "2"}), b"x")

        memory_store.set_tags("k", {"c": "3"})

        assert memory_store.get_tags("k") == {"c": "3"}

    def test_empty_tag_values_are_accepted(self, memory_store):
        memory_store.upload(UploadRequest(key="k", tags={"a": ""}), b"x")
        assert memory_store.get_tags("k") == {"a": ""}

    def test_tags_need_values(self, memory_store):
        with pytest.raises(InvalidArgumentError):
            memory_store.upload(UploadRequest(key="k", tags={"a": None}), b"x")
        assert not memory_store.does_object_exist("k")


class TestPresignedUrls:
    def test_signature_round_trip(self, backend, memory_store):
        url = memory_store.generate_presigned_url(
            PresignedUrlRequest(type=PresignedOperation.UPLOAD, key="dir/file name", duration=timedelta(minutes=1))
        )

        assert backend.verify_presigned_url(url) == ("UPLOAD", "test-bucket", "dir/file name")

    def test_expired_url(self, backend, memory_store):
        url = memory_store.generate_presigned_url(
            PresignedUrlRequest(type=PresignedOperation.DOWNLOAD, key="k", duration=timedelta(seconds=30))
        )

        with pytest.raises(MemoryStoreError, match="expired"):
            backend.verify_presigned_url(url, now=datetime.now(timezone.utc) + timedelta(hours=1))

    def test_tampered_url(self, backend, memory_store):
        url = memory_store.generate_presigned_url(
            PresignedUrlRequest(type=PresignedOperation.DOWNLOAD, key="k", duration=timedelta(seconds=30))
        )

        with pytest.raises(MemoryStoreError) as exc_info:
            backend.verify_presigned_url(url.replace("/k?", "/other?"))
        assert exc_info.value.status == 403


class TestObjectLock:
    def test_retention_blocks_delete_until_expiry(self, memory_store):
        past = datetime.now(timezone.utc) - timedelta(seconds=1)
        future = datetime.now(timezone.utc) + timedelta(days=1)
        memory_store.upload(
            UploadRequest(key="old", object_lock=ObjectLockConfiguration(RetentionMode.GOVERNANCE, past)), b"x"
        )
        memory_store.upload(
            UploadRequest(key="new", object_lock=ObjectLockConfiguration(RetentionMode.GOVERNANCE, future)), b"x"
        )

        memory_store.delete("old")
        with pytest.raises(MemoryStoreError) as exc_info:
            memory_store.delete("new")

        assert classify_memory_error(exc_info.value) is ErrorKind.UNAUTHORIZED

    def test_object_lock_on_upload_is_reported(self, memory_store):
        until = datetime.now(timezone.utc) + timedelta(days=1)
        memory_store.upload(
            UploadRequest(
                key="k", object_lock=ObjectLockConfiguration(RetentionMode.COMPLIANCE, until, legal_hold=True)
            ),
            b"x",
        )

        info = memory_store.get_object_lock("k")

        assert info.mode is RetentionMode.COMPLIANCE
        assert info.retain_until_date == until
        assert info.legal_hold is True
