"""Unit tests for S3 error classification."""

import pytest
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ParamValidationError,
    ReadTimeoutError,
)

from polyblob.exceptions import ErrorKind, FailedPreconditionError
from polyblob.providers.aws.error_mapping import get_exception_kind, is_not_found


def _make_client_error(code, status=400, request_id="REQ123", operation="GetObject"):
    metadata = {"HTTPStatusCode": status}
    if request_id:
        metadata["RequestId"] = request_id
    return ClientError({"Error": {"Code": code, "Message": "test"}, "ResponseMetadata": metadata}, operation)


class TestClientErrors:
    @pytest.mark.parametrize(
        ("code", "status", "expected"),
        [
            ("NoSuchKey", 404, ErrorKind.RESOURCE_NOT_FOUND),
            ("NoSuchBucket", 404, ErrorKind.RESOURCE_NOT_FOUND),
            ("AccessDenied", 403, ErrorKind.UNAUTHORIZED),
            ("InvalidArgument", 400, ErrorKind.INVALID_ARGUMENT),
            ("BucketAlreadyExists", 409, ErrorKind.RESOURCE_ALREADY_EXISTS),
            ("OperationAborted", 409, ErrorKind.RESOURCE_CONFLICT),
            ("PreconditionFailed", 412, ErrorKind.FAILED_PRECONDITION),
            ("SlowDown", 503, ErrorKind.RESOURCE_EXHAUSTED),
            ("RequestTimeout", 400, ErrorKind.DEADLINE_EXCEEDED),
            ("NotImplemented", 501, ErrorKind.UNSUPPORTED),
            ("InternalError", 500, ErrorKind.UNKNOWN),
        ],
    )
    def test_error_codes(self, code, status, expected):
        assert get_exception_kind(_make_client_error(code, status)) is expected

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (404, ErrorKind.RESOURCE_NOT_FOUND),
            (409, ErrorKind.RESOURCE_CONFLICT),
            (429, ErrorKind.RESOURCE_EXHAUSTED),
            (500, ErrorKind.UNKNOWN),
        ],
    )
    def test_unknown_codes_fall_back_to_status(self, status, expected):
        assert get_exception_kind(_make_client_error("SomethingNew", status)) is expected

    def test_403_without_request_id_is_unauthorized(self):
        error = _make_client_error("SlowDown", 403, request_id=None)
        assert get_exception_kind(error) is ErrorKind.UNAUTHORIZED

    def test_403_with_request_id_uses_the_code(self):
        error = _make_client_error("SlowDown", 403)
        assert get_exception_kind(error) is ErrorKind.RESOURCE_EXHAUSTED

    def test_malformed_response_does_not_raise(self):
        error = ClientError({}, "GetObject")
        assert get_exception_kind(error) is ErrorKind.UNKNOWN


class TestTransportErrors:
    def test_connect_timeout(self):
        assert get_exception_kind(ConnectTimeoutError(endpoint_url="https://s3")) is ErrorKind.DEADLINE_EXCEEDED

    def test_read_timeout(self):
        assert get_exception_kind(ReadTimeoutError(endpoint_url="https://s3")) is ErrorKind.DEADLINE_EXCEEDED

    def test_endpoint_connection_error(self):
        assert get_exception_kind(EndpointConnectionError(endpoint_url="https://s3")) is ErrorKind.TRANSPORT

    def test_missing_credentials(self):
        assert get_exception_kind(NoCredentialsError()) is ErrorKind.UNAUTHORIZED

    def test_parameter_validation(self):
        assert get_exception_kind(ParamValidationError(report="bad")) is ErrorKind.INVALID_ARGUMENT


class TestCommonErrors:
    def test_taxonomy_errors_keep_their_kind(self):
        assert get_exception_kind(FailedPreconditionError("x")) is ErrorKind.FAILED_PRECONDITION

    def test_file_exists(self):
        assert get_exception_kind(FileExistsError("x")) is ErrorKind.FAILED_PRECONDITION

    def test_unrelated_errors_are_unknown(self):
        assert get_exception_kind(RuntimeError("x")) is ErrorKind.UNKNOWN


class TestIsNotFound:
    def test_head_object_404(self):
        assert is_not_found(_make_client_error("404", 404, operation="HeadObject"))

    def test_access_denied_is_not_a_miss(self):
        assert not is_not_found(_make_client_error("AccessDenied", 403))

    def test_non_client_errors(self):
        assert not is_not_found(KeyError("x"))
