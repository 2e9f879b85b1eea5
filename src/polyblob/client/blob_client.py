"""Bucket-less client facade for account-level operations."""

import logging
from typing import Any, Callable, List

from ..driver.service import AbstractBlobClient
from ..models import BucketInfo
from ..registry import ProviderRegistry
from .bucket_client import ClientBuilder
from .errors import translate_error

log = logging.getLogger(__name__)


class BlobClient:
    """Lists and creates buckets, with the same error contract as :class:`BucketClient`."""

    def __init__(self, client: AbstractBlobClient):
        self._client = client

    @classmethod
    def builder(cls, provider_id: str) -> ClientBuilder:
        return ClientBuilder(ProviderRegistry.find_client_builder(provider_id), cls)

    @property
    def provider_id(self) -> str:
        return self._client.provider_id

    def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except Exception as e:
            translated = translate_error(self._client, e)
            if translated is e:
                raise
            raise translated from e

    def list_buckets(self) -> List[BucketInfo]:
        return self._call(self._client.list_buckets)

    def create_bucket(self, bucket: str) -> None:
        log.info("Creating bucket %s with provider %s", bucket, self.provider_id)
        self._call(self._client.create_bucket, bucket)

    def close(self) -> None:
        self._call(self._client.close)

    def __enter__(self) -> "BlobClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
