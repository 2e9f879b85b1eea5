"""Account-level S3 operations."""

import logging
from typing import Any, List, Optional

from ...config import BlobStoreConfig
from ...driver.service import AbstractBlobClient
from ...exceptions import ErrorKind
from ...models import BucketInfo
from ...validation import BlobStoreValidator
from .blob_store import AwsBlobStoreBuilder
from .error_mapping import get_exception_kind

log = logging.getLogger(__name__)

# Buckets in us-east-1 must be created without a location constraint.
_DEFAULT_REGION = "us-east-1"


class AwsBlobClient(AbstractBlobClient):
    def __init__(self, config: BlobStoreConfig, s3_client: Any, validator: Optional[BlobStoreValidator] = None):
        super().__init__(config, validator)
        self._client = s3_client

    def get_exception_kind(self, error: BaseException) -> ErrorKind:
        return get_exception_kind(error)

    def _do_list_buckets(self) -> List[BucketInfo]:
        response = self._client.list_buckets()
        return [
            BucketInfo(
                name=bucket["Name"],
                region=bucket.get("BucketRegion"),
                creation_date=bucket.get("CreationDate"),
            )
            for bucket in response.get("Buckets", [])
        ]

    def _do_create_bucket(self, bucket: str) -> None:
        params: dict = {"Bucket": bucket}
        if self.region and self.region != _DEFAULT_REGION:
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        self._client.create_bucket(**params)

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            close()


class AwsBlobClientBuilder(AwsBlobStoreBuilder):
    """Builds an :class:`AwsBlobClient`. No bucket is required."""

    def build(self) -> AwsBlobClient:
        config = self.to_config()
        s3_client = self._s3_client or self._create_s3_client(config)
        log.info("Built S3 service client for region=%s", config.region)
        return AwsBlobClient(config, s3_client, validator=self._validator)
