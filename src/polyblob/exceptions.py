"""Normalized error taxonomy shared by every storage adapter."""

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of error categories adapters classify native errors into."""

    UNAUTHORIZED = "unauthorized"
    INVALID_ARGUMENT = "invalid_argument"
    RESOURCE_NOT_FOUND = "resource_not_found"
    RESOURCE_ALREADY_EXISTS = "resource_already_exists"
    RESOURCE_CONFLICT = "resource_conflict"
    FAILED_PRECONDITION = "failed_precondition"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    TRANSPORT = "transport"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


class BlobStoreError(Exception):
    """Base exception for all blob storage operations."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, key: str | None = None, cause: BaseException | None = None):
        self.key = key
        self.cause = cause
        super().__init__(message)


class UnAuthorizedError(BlobStoreError):
    """Raised when credentials are missing, invalid, or lack permission."""

    kind = ErrorKind.UNAUTHORIZED


class InvalidArgumentError(BlobStoreError):
    """Raised for malformed requests and client-side validation failures."""

    kind = ErrorKind.INVALID_ARGUMENT


class ResourceNotFoundError(BlobStoreError):
    """Raised when a required object or bucket does not exist."""

    kind = ErrorKind.RESOURCE_NOT_FOUND


class ResourceAlreadyExistsError(BlobStoreError):
    kind = ErrorKind.RESOURCE_ALREADY_EXISTS


class ResourceConflictError(BlobStoreError):
    kind = ErrorKind.RESOURCE_CONFLICT


class FailedPreconditionError(BlobStoreError):
    """Raised when the target is not in the state the operation requires."""

    kind = ErrorKind.FAILED_PRECONDITION


class ResourceExhaustedError(BlobStoreError):
    kind = ErrorKind.RESOURCE_EXHAUSTED


class DeadlineExceededError(BlobStoreError):
    kind = ErrorKind.DEADLINE_EXCEEDED


class TransportError(BlobStoreError):
    """Raised when the storage backend is unreachable."""

    kind = ErrorKind.TRANSPORT


class UnSupportedError(BlobStoreError):
    kind = ErrorKind.UNSUPPORTED


class UnknownError(BlobStoreError):
    """Fallback for errors no adapter rule recognises."""

    kind = ErrorKind.UNKNOWN


_EXCEPTION_BY_KIND: dict[ErrorKind, type[BlobStoreError]] = {
    ErrorKind.UNAUTHORIZED: UnAuthorizedError,
    ErrorKind.INVALID_ARGUMENT: InvalidArgumentError,
    ErrorKind.RESOURCE_NOT_FOUND: ResourceNotFoundError,
    ErrorKind.RESOURCE_ALREADY_EXISTS: ResourceAlreadyExistsError,
    ErrorKind.RESOURCE_CONFLICT: ResourceConflictError,
    ErrorKind.FAILED_PRECONDITION: FailedPreconditionError,
    ErrorKind.RESOURCE_EXHAUSTED: ResourceExhaustedError,
    ErrorKind.DEADLINE_EXCEEDED: DeadlineExceededError,
    ErrorKind.TRANSPORT: TransportError,
    ErrorKind.UNSUPPORTED: UnSupportedError,
    ErrorKind.UNKNOWN: UnknownError,
}


def exception_class_for(kind: ErrorKind) -> type[BlobStoreError]:
    """Return the exception class raised for ``kind``."""
    return _EXCEPTION_BY_KIND.get(kind, UnknownError)


def normalize_error(kind: ErrorKind, error: BaseException, key: str | None = None) -> BlobStoreError:
    """Build the taxonomy exception for an already-classified error.

    Errors that are already of the right taxonomy class are returned as-is so
    that locally raised violations keep their original message and key.
    """
    exc_cls = exception_class_for(kind)
    if type(error) is exc_cls:
        return error
    return exc_cls(str(error) or type(error).__name__, key=key or getattr(error, "key", None), cause=error)
