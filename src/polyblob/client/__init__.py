"""Client facades: the only surface applications are expected to call."""

from .async_bucket_client import AsyncBucketClient
from .blob_client import BlobClient
from .bucket_client import BucketClient, ClientBuilder

__all__ = ["AsyncBucketClient", "BlobClient", "BucketClient", "ClientBuilder"]
