"""Provider-agnostic blob storage client."""

from .client import AsyncBucketClient, BlobClient, BucketClient
from .config import (
    BlobStoreConfig,
    CredentialsOverrider,
    CredentialsType,
    RetryConfig,
    RetryMode,
    SessionCredentials,
)
from .exceptions import (
    BlobStoreError,
    DeadlineExceededError,
    ErrorKind,
    FailedPreconditionError,
    InvalidArgumentError,
    ResourceAlreadyExistsError,
    ResourceConflictError,
    ResourceExhaustedError,
    ResourceNotFoundError,
    TransportError,
    UnAuthorizedError,
    UnknownError,
    UnSupportedError,
)
from .factory import create_async_bucket_client, create_bucket_client
from .registry import ProviderRegistry

__all__ = [
    "AsyncBucketClient",
    "BlobClient",
    "BlobStoreConfig",
    "BlobStoreError",
    "BucketClient",
    "CredentialsOverrider",
    "CredentialsType",
    "DeadlineExceededError",
    "ErrorKind",
    "FailedPreconditionError",
    "InvalidArgumentError",
    "ProviderRegistry",
    "ResourceAlreadyExistsError",
    "ResourceConflictError",
    "ResourceExhaustedError",
    "ResourceNotFoundError",
    "RetryConfig",
    "RetryMode",
    "SessionCredentials",
    "TransportError",
    "UnAuthorizedError",
    "UnknownError",
    "UnSupportedError",
    "create_async_bucket_client",
    "create_bucket_client",
]
