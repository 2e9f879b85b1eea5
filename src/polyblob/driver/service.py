"""Abstract base class for bucket-less service clients."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..config import BlobStoreConfig
from ..exceptions import ErrorKind
from ..models import BucketInfo
from ..validation import BlobStoreValidator


class AbstractBlobClient(ABC):
    """Account-level operations that do not target a single bucket."""

    def __init__(self, config: BlobStoreConfig, validator: Optional[BlobStoreValidator] = None):
        self._config = config
        self._validator = validator or BlobStoreValidator()

    @property
    def config(self) -> BlobStoreConfig:
        return self._config

    @property
    def provider_id(self) -> str:
        return self._config.provider_id

    @property
    def region(self) -> Optional[str]:
        return self._config.region

    @abstractmethod
    def get_exception_kind(self, error: BaseException) -> ErrorKind: ...

    def list_buckets(self) -> List[BucketInfo]:
        return self._do_list_buckets()

    def create_bucket(self, bucket: str) -> None:
        self._validator.validate_bucket(bucket)
        self._do_create_bucket(bucket)

    @abstractmethod
    def _do_list_buckets(self) -> List[BucketInfo]: ...

    @abstractmethod
    def _do_create_bucket(self, bucket: str) -> None: ...

    def close(self) -> None:
        pass

    def __enter__(self) -> "AbstractBlobClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
