"""Amazon S3 (and S3-compatible) provider."""

from .blob_client import AwsBlobClient, AwsBlobClientBuilder
from .blob_store import PROVIDER_ID, AwsAsyncBlobStoreBuilder, AwsBlobStore, AwsBlobStoreBuilder

__all__ = [
    "PROVIDER_ID",
    "AwsAsyncBlobStoreBuilder",
    "AwsBlobClient",
    "AwsBlobClientBuilder",
    "AwsBlobStore",
    "AwsBlobStoreBuilder",
]
