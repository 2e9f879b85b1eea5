"""Unit tests for BlobStoreValidator."""

from datetime import timedelta

import pytest

from polyblob.exceptions import InvalidArgumentError
from polyblob.models import (
    DownloadRequest,
    MultipartPart,
    MultipartUpload,
    UploadPartResponse,
)
from polyblob.validation import BlobStoreValidator


@pytest.fixture()
def validator():
    return BlobStoreValidator()


class TestEndpointValidation:
    @pytest.mark.parametrize(
        "endpoint",
        ["https://s3.us-west-2.amazonaws.com", "http://localhost:9000", "https://minio.local/base"],
    )
    def test_accepts_absolute_http_uris(self, validator, endpoint):
        validator.validate_endpoint(endpoint)

    @pytest.mark.parametrize("endpoint", ["ftp://host", "localhost:9000", "https://", "s3.amazonaws.com"])
    def test_rejects_invalid_endpoints(self, validator, endpoint):
        with pytest.raises(InvalidArgumentError):
            validator.validate_endpoint(endpoint)

    def test_proxy_must_not_have_a_path(self, validator):
        validator.validate_endpoint("http://proxy:3128", is_proxy=True)
        with pytest.raises(InvalidArgumentError, match="path"):
            validator.validate_endpoint("http://proxy:3128/some/path", is_proxy=True)

    def test_none_is_ignored(self, validator):
        validator.validate_endpoint(None)


class TestScalarValidation:
    def test_max_connections_must_be_positive(self, validator):
        validator.validate_max_connections(1)
        with pytest.raises(InvalidArgumentError):
            validator.validate_max_connections(0)

    def test_durations_must_not_be_negative(self, validator):
        validator.validate_duration(timedelta(0), "socket_timeout")
        with pytest.raises(InvalidArgumentError, match="socket_timeout"):
            validator.validate_duration(timedelta(seconds=-1), "socket_timeout")

    def test_durations_must_be_timedeltas(self, validator):
        with pytest.raises(InvalidArgumentError):
            validator.validate_duration(30, "socket_timeout")

    @pytest.mark.parametrize("key", [None, ""])
    def test_keys_must_not_be_blank(self, validator, key):
        with pytest.raises(InvalidArgumentError):
            validator.validate_key(key)

    @pytest.mark.parametrize("key", [" ", "   ", " leading"])
    def test_whitespace_keys_are_accepted(self, validator, key):
        validator.validate_key(key)

    def test_presign_duration_must_be_positive(self, validator):
        validator.validate_presign_duration(timedelta(minutes=5))
        with pytest.raises(InvalidArgumentError):
            validator.validate_presign_duration(timedelta(0))


class TestRangeValidation:
    @pytest.mark.parametrize(("start", "end"), [(0, 0), (0, 9), (5, None), (None, 3)])
    def test_accepts_valid_ranges(self, validator, start, end):
        validator.validate_range(DownloadRequest(key="k", start=start, end=end))

    @pytest.mark.parametrize(("start", "end"), [(-1, 5), (3, -2), (9, 3)])
    def test_rejects_invalid_ranges(self, validator, start, end):
        with pytest.raises(InvalidArgumentError):
            validator.validate_range(DownloadRequest(key="k", start=start, end=end))


class TestMultipartValidation:
    def test_upload_must_belong_to_bucket(self, validator):
        mpu = MultipartUpload(bucket="other", key="k", id="mpu-1")
        with pytest.raises(InvalidArgumentError, match="bucket"):
            validator.validate_multipart_upload(mpu, "test-bucket")

    def test_part_number_bounds(self, validator):
        validator.validate_part(MultipartPart(part_number=1, content=b"x"), 10000)
        with pytest.raises(InvalidArgumentError):
            validator.validate_part(MultipartPart(part_number=0, content=b"x"), 10000)
        with pytest.raises(InvalidArgumentError):
            validator.validate_part(MultipartPart(part_number=10001, content=b"x"), 10000)

    def test_stream_parts_need_a_length(self, validator, tmp_path):
        path = tmp_path / "part"
        path.write_bytes(b"abc")
        with path.open("rb") as stream:
            with pytest.raises(InvalidArgumentError, match="content_length"):
                validator.validate_part(MultipartPart(part_number=1, content=stream), 10000)

    def test_completion_rejects_duplicates(self, validator):
        parts = [UploadPartResponse(1, "e1", 1), UploadPartResponse(1, "e2", 1)]
        with pytest.raises(InvalidArgumentError, match="more than once"):
            validator.validate_parts_for_completion(parts)

    def test_completion_rejects_empty_list(self, validator):
        with pytest.raises(InvalidArgumentError):
            validator.validate_parts_for_completion([])

    def test_completion_requires_etags(self, validator):
        with pytest.raises(InvalidArgumentError, match="etag"):
            validator.validate_parts_for_completion([UploadPartResponse(1, "", 1)])
