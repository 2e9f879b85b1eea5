"""Blocking client facade for one bucket."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime
from typing import Any, Optional

from ..driver.base import AbstractBlobStore, DownloadDestination, UploadSource
from ..models import (
    BlobIdentifier,
    BlobInfo,
    BlobMetadata,
    CopyFromRequest,
    CopyRequest,
    CopyResponse,
    DirectoryDeleteResponse,
    DirectoryDownloadRequest,
    DirectoryDownloadResponse,
    DirectoryUploadRequest,
    DirectoryUploadResponse,
    DownloadRequest,
    DownloadResponse,
    ListBlobsBatch,
    ListBlobsPageRequest,
    ListBlobsPageResponse,
    ListBlobsRequest,
    MultipartPart,
    MultipartUpload,
    MultipartUploadRequest,
    MultipartUploadResponse,
    ObjectLockInfo,
    PresignedUrlRequest,
    UploadPartResponse,
    UploadRequest,
    UploadResponse,
)
from ..registry import ProviderRegistry
from .errors import translate_build_error, translate_error

log = logging.getLogger(__name__)

LOG_IDENTIFIER = "[BucketClient]"


class ClientBuilder:
    """Forwards ``with_*`` calls to a provider builder and wraps the result in a facade."""

    def __init__(self, store_builder: Any, wrap: Callable[[Any], Any]):
        self._store_builder = store_builder
        self._wrap = wrap

    @property
    def store_builder(self) -> Any:
        return self._store_builder

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._store_builder, name)
        if not name.startswith("with_"):
            return attr

        @functools.wraps(attr)
        def setter(*args: Any, **kwargs: Any) -> "ClientBuilder":
            attr(*args, **kwargs)
            return self

        return setter

    def build(self) -> Any:
        try:
            built = self._store_builder.build()
        except Exception as e:
            translated = translate_build_error(e)
            if translated is e:
                raise
            raise translated from e
        return self._wrap(built)


class BucketClient:
    """Provider-agnostic, blocking access to one bucket.

    Every call is delegated to the adapter. Whatever the adapter raises is
    classified with its ``get_exception_kind`` and re-raised as the matching
    :class:`~polyblob.exceptions.BlobStoreError` subclass, with the native
    error kept as ``__cause__``. The client holds no state besides the
    adapter and may be shared between threads.
    """

    def __init__(self, store: AbstractBlobStore):
        self._store = store
        log.info(
            "%s Created client for provider=%s bucket=%s region=%s",
            LOG_IDENTIFIER,
            store.provider_id,
            store.bucket,
            store.region,
        )

    @classmethod
    def builder(cls, provider_id: str) -> ClientBuilder:
        """Start configuring a client for ``provider_id``; finish with ``build()``."""
        return ClientBuilder(ProviderRegistry.find_provider_builder(provider_id), cls)

    @property
    def store(self) -> AbstractBlobStore:
        return self._store

    @property
    def provider_id(self) -> str:
        return self._store.provider_id

    @property
    def bucket(self) -> str:
        return self._store.bucket

    @property
    def region(self) -> Optional[str]:
        return self._store.region

    def _call(self, func: Callable[..., Any], *args: Any, key: Optional[str] = None) -> Any:
        try:
            return func(*args)
        except Exception as e:
            translated = translate_error(self._store, e, key=key)
            if translated is e:
                raise
            raise translated from e

    def upload(self, request: UploadRequest, source: UploadSource) -> UploadResponse:
        return self._call(self._store.upload, request, source, key=request.key)

    def download(self, request: DownloadRequest, destination: DownloadDestination = None) -> DownloadResponse:
        return self._call(self._store.download, request, destination, key=request.key)

    def delete(self, key: str, version_id: Optional[str] = None) -> None:
        self._call(self._store.delete, key, version_id, key=key)

    def delete_many(self, identifiers: Iterable[BlobIdentifier]) -> None:
        self._call(self._store.delete_many, identifiers)

    def copy(self, request: CopyRequest) -> CopyResponse:
        return self._call(self._store.copy, request, key=request.src_key)

    def copy_from(self, request: CopyFromRequest) -> CopyResponse:
        return self._call(self._store.copy_from, request, key=request.src_key)

    def get_metadata(self, key: str, version_id: Optional[str] = None) -> BlobMetadata:
        return self._call(self._store.get_metadata, key, version_id, key=key)

    def list(self, request: ListBlobsRequest, consumer: Callable[[ListBlobsBatch], None]) -> None:
        self._call(self._store.list, request, consumer)

    def iter_blobs(self, request: Optional[ListBlobsRequest] = None) -> Iterator[BlobInfo]:
        """Lazily iterate over all matching blobs, fetching pages as needed."""
        iterator = self._call(self._store.iter_blobs, request)
        while True:
            try:
                blob = next(iterator)
            except StopIteration:
                return
            except Exception as e:
                translated = translate_error(self._store, e)
                if translated is e:
                    raise
                raise translated from e
            yield blob

    def list_page(self, request: ListBlobsPageRequest) -> ListBlobsPageResponse:
        return self._call(self._store.list_page, request)

    def initiate_multipart_upload(self, request: MultipartUploadRequest) -> MultipartUpload:
        return self._call(self._store.initiate_multipart_upload, request, key=request.key)

    def upload_multipart_part(self, mpu: MultipartUpload, part: MultipartPart) -> UploadPartResponse:
        return self._call(self._store.upload_multipart_part, mpu, part, key=mpu.key)

    def complete_multipart_upload(
        self, mpu: MultipartUpload, parts: Iterable[UploadPartResponse]
    ) -> MultipartUploadResponse:
        return self._call(self._store.complete_multipart_upload, mpu, parts, key=mpu.key)

    def list_multipart_upload(self, mpu: MultipartUpload) -> list[UploadPartResponse]:
        return self._call(self._store.list_multipart_upload, mpu, key=mpu.key)

    def abort_multipart_upload(self, mpu: MultipartUpload) -> None:
        self._call(self._store.abort_multipart_upload, mpu, key=mpu.key)

    def get_tags(self, key: str) -> dict[str, str]:
        return self._call(self._store.get_tags, key, key=key)

    def set_tags(self, key: str, tags: dict[str, str]) -> None:
        self._call(self._store.set_tags, key, tags, key=key)

    def generate_presigned_url(self, request: PresignedUrlRequest) -> str:
        return self._call(self._store.generate_presigned_url, request, key=request.key)

    def does_object_exist(self, key: str, version_id: Optional[str] = None) -> bool:
        return self._call(self._store.does_object_exist, key, version_id, key=key)

    def does_bucket_exist(self) -> bool:
        return self._call(self._store.does_bucket_exist)

    def get_object_lock(self, key: str, version_id: Optional[str] = None) -> ObjectLockInfo:
        return self._call(self._store.get_object_lock, key, version_id, key=key)

    def update_object_retention(self, key: str, version_id: Optional[str], retain_until_date: datetime) -> None:
        self._call(self._store.update_object_retention, key, version_id, retain_until_date, key=key)

    def update_legal_hold(self, key: str, version_id: Optional[str], legal_hold: bool) -> None:
        self._call(self._store.update_legal_hold, key, version_id, legal_hold, key=key)

    def upload_directory(self, request: DirectoryUploadRequest) -> DirectoryUploadResponse:
        return self._call(self._store.upload_directory, request)

    def download_directory(self, request: DirectoryDownloadRequest) -> DirectoryDownloadResponse:
        return self._call(self._store.download_directory, request)

    def delete_directory(self, prefix: str) -> DirectoryDeleteResponse:
        return self._call(self._store.delete_directory, prefix)

    def close(self) -> None:
        self._call(self._store.close)

    def __enter__(self) -> "BucketClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
