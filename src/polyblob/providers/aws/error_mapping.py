"""Classification of boto3/botocore errors into :class:`ErrorKind`."""

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
    NoCredentialsError,
    NoRegionError,
    ParamValidationError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from ...driver.base import AbstractBlobStore
from ...exceptions import ErrorKind

_ERROR_CODE_MAP = {
    "NoSuchKey": ErrorKind.RESOURCE_NOT_FOUND,
    "NoSuchBucket": ErrorKind.RESOURCE_NOT_FOUND,
    "NoSuchUpload": ErrorKind.RESOURCE_NOT_FOUND,
    "NoSuchVersion": ErrorKind.RESOURCE_NOT_FOUND,
    "NotFound": ErrorKind.RESOURCE_NOT_FOUND,
    "404": ErrorKind.RESOURCE_NOT_FOUND,
    "AccessDenied": ErrorKind.UNAUTHORIZED,
    "InvalidAccessKeyId": ErrorKind.UNAUTHORIZED,
    "SignatureDoesNotMatch": ErrorKind.UNAUTHORIZED,
    "ExpiredToken": ErrorKind.UNAUTHORIZED,
    "InvalidToken": ErrorKind.UNAUTHORIZED,
    "403": ErrorKind.UNAUTHORIZED,
    "InvalidArgument": ErrorKind.INVALID_ARGUMENT,
    "InvalidRequest": ErrorKind.INVALID_ARGUMENT,
    "InvalidBucketName": ErrorKind.INVALID_ARGUMENT,
    "MalformedXML": ErrorKind.INVALID_ARGUMENT,
    "InvalidPart": ErrorKind.INVALID_ARGUMENT,
    "InvalidPartOrder": ErrorKind.INVALID_ARGUMENT,
    "EntityTooSmall": ErrorKind.INVALID_ARGUMENT,
    "EntityTooLarge": ErrorKind.INVALID_ARGUMENT,
    "InvalidRange": ErrorKind.INVALID_ARGUMENT,
    "BucketAlreadyExists": ErrorKind.RESOURCE_ALREADY_EXISTS,
    "BucketAlreadyOwnedByYou": ErrorKind.RESOURCE_ALREADY_EXISTS,
    "OperationAborted": ErrorKind.RESOURCE_CONFLICT,
    "Conflict": ErrorKind.RESOURCE_CONFLICT,
    "PreconditionFailed": ErrorKind.FAILED_PRECONDITION,
    "InvalidObjectState": ErrorKind.FAILED_PRECONDITION,
    "ObjectLockConfigurationNotFoundError": ErrorKind.FAILED_PRECONDITION,
    "NoSuchObjectLockConfiguration": ErrorKind.FAILED_PRECONDITION,
    "SlowDown": ErrorKind.RESOURCE_EXHAUSTED,
    "Throttling": ErrorKind.RESOURCE_EXHAUSTED,
    "ThrottlingException": ErrorKind.RESOURCE_EXHAUSTED,
    "TooManyBuckets": ErrorKind.RESOURCE_EXHAUSTED,
    "RequestTimeout": ErrorKind.DEADLINE_EXCEEDED,
    "NotImplemented": ErrorKind.UNSUPPORTED,
}

_STATUS_MAP = {
    400: ErrorKind.INVALID_ARGUMENT,
    401: ErrorKind.UNAUTHORIZED,
    404: ErrorKind.RESOURCE_NOT_FOUND,
    409: ErrorKind.RESOURCE_CONFLICT,
    412: ErrorKind.FAILED_PRECONDITION,
    429: ErrorKind.RESOURCE_EXHAUSTED,
    501: ErrorKind.UNSUPPORTED,
    503: ErrorKind.RESOURCE_EXHAUSTED,
}


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def status_code(error: ClientError) -> int | None:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def is_not_found(error: BaseException) -> bool:
    """True for the 404 responses that existence checks report as ``False``."""
    if not isinstance(error, ClientError):
        return False
    return status_code(error) == 404 or error_code(error) in ("404", "NoSuchKey", "NoSuchBucket", "NotFound")


def get_exception_kind(error: BaseException) -> ErrorKind:
    """Map an error raised by the S3 adapter to its taxonomy member. Never raises."""
    try:
        common = AbstractBlobStore.classify_common(error)
        if common is not None and not isinstance(error, BotoCoreError):
            return common
        if isinstance(error, ClientError):
            return _classify_client_error(error)
        if isinstance(error, (ConnectTimeoutError, ReadTimeoutError)):
            return ErrorKind.DEADLINE_EXCEEDED
        if isinstance(error, (BotoConnectionError, HTTPClientError)):
            return ErrorKind.TRANSPORT
        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return ErrorKind.UNAUTHORIZED
        if isinstance(error, (ParamValidationError, NoRegionError)):
            return ErrorKind.INVALID_ARGUMENT
        if common is not None:
            return common
        return ErrorKind.UNKNOWN
    except Exception:
        return ErrorKind.UNKNOWN


def _classify_client_error(error: ClientError) -> ErrorKind:
    status = status_code(error)
    # A 403 without a request id was rejected before S3 handled the request.
    if status == 403 and not error.response.get("ResponseMetadata", {}).get("RequestId"):
        return ErrorKind.UNAUTHORIZED
    kind = _ERROR_CODE_MAP.get(error_code(error))
    if kind is not None:
        return kind
    return _STATUS_MAP.get(status, ErrorKind.UNKNOWN)
