"""Asynchronous client facade for one bucket."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any, Optional

from ..driver.async_store import AsyncBlobStore
from ..driver.base import DownloadDestination, UploadSource
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
from .bucket_client import ClientBuilder
from .errors import translate_error

log = logging.getLogger(__name__)

LOG_IDENTIFIER = "[AsyncBucketClient]"


class AsyncBucketClient:
    """Awaitable counterpart of :class:`~polyblob.client.BucketClient`.

    Failures are classified once the awaited call has failed and re-raised as
    taxonomy exceptions. Classification runs on the store executor when one
    was configured, otherwise on the event loop thread. Cancelling a task
    stops waiting for the result but may not stop the native call.
    """

    def __init__(self, store: AsyncBlobStore):
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
        return ClientBuilder(ProviderRegistry.find_async_provider_builder(provider_id), cls)

    @property
    def store(self) -> AsyncBlobStore:
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

    async def _translate(self, error: Exception, key: Optional[str]) -> Exception:
        executor = self._store.executor
        if executor is None:
            return translate_error(self._store, error, key=key)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, functools.partial(translate_error, self._store, error, key=key))

    async def _call(self, func: Callable[..., Awaitable[Any]], *args: Any, key: Optional[str] = None) -> Any:
        try:
            return await func(*args)
        except Exception as e:
            translated = await self._translate(e, key)
            if translated is e:
                raise
            raise translated from e

    async def upload(self, request: UploadRequest, source: UploadSource) -> UploadResponse:
        return await self._call(self._store.upload, request, source, key=request.key)

    async def download(self, request: DownloadRequest, destination: DownloadDestination = None) -> DownloadResponse:
        return await self._call(self._store.download, request, destination, key=request.key)

    async def delete(self, key: str, version_id: Optional[str] = None) -> None:
        await self._call(self._store.delete, key, version_id, key=key)

    async def delete_many(self, identifiers: Iterable[BlobIdentifier]) -> None:
        await self._call(self._store.delete_many, identifiers)

    async def copy(self, request: CopyRequest) -> CopyResponse:
        return await self._call(self._store.copy, request, key=request.src_key)

    async def copy_from(self, request: CopyFromRequest) -> CopyResponse:
        return await self._call(self._store.copy_from, request, key=request.src_key)

    async def get_metadata(self, key: str, version_id: Optional[str] = None) -> BlobMetadata:
        return await self._call(self._store.get_metadata, key, version_id, key=key)

    async def list(self, request: ListBlobsRequest, consumer: Callable[[ListBlobsBatch], Any]) -> None:
        await self._call(self._store.list, request, consumer)

    async def iter_blobs(self, request: Optional[ListBlobsRequest] = None) -> AsyncIterator[BlobInfo]:
        iterator = self._store.iter_blobs(request)
        while True:
            try:
                blob = await iterator.__anext__()
            except StopAsyncIteration:
                return
            except Exception as e:
                translated = await self._translate(e, None)
                if translated is e:
                    raise
                raise translated from e
            yield blob

    async def list_page(self, request: ListBlobsPageRequest) -> ListBlobsPageResponse:
        return await self._call(self._store.list_page, request)

    async def initiate_multipart_upload(self, request: MultipartUploadRequest) -> MultipartUpload:
        return await self._call(self._store.initiate_multipart_upload, request, key=request.key)

    async def upload_multipart_part(self, mpu: MultipartUpload, part: MultipartPart) -> UploadPartResponse:
        return await self._call(self._store.upload_multipart_part, mpu, part, key=mpu.key)

    async def complete_multipart_upload(
        self, mpu: MultipartUpload, parts: Iterable[UploadPartResponse]
    ) -> MultipartUploadResponse:
        return await self._call(self._store.complete_multipart_upload, mpu, parts, key=mpu.key)

    async def list_multipart_upload(self, mpu: MultipartUpload) -> list[UploadPartResponse]:
        return await self._call(self._store.list_multipart_upload, mpu, key=mpu.key)

    async def abort_multipart_upload(self, mpu: MultipartUpload) -> None:
        await self._call(self._store.abort_multipart_upload, mpu, key=mpu.key)

    async def get_tags(self, key: str) -> dict[str, str]:
        return await self._call(self._store.get_tags, key, key=key)

    async def set_tags(self, key: str, tags: dict[str, str]) -> None:
        await self._call(self._store.set_tags, key, tags, key=key)

    async def generate_presigned_url(self, request: PresignedUrlRequest) -> str:
        return await self._call(self._store.generate_presigned_url, request, key=request.key)

    async def does_object_exist(self, key: str, version_id: Optional[str] = None) -> bool:
        return await self._call(self._store.does_object_exist, key, version_id, key=key)

    async def does_bucket_exist(self) -> bool:
        return await self._call(self._store.does_bucket_exist)

    async def get_object_lock(self, key: str, version_id: Optional[str] = None) -> ObjectLockInfo:
        return await self._call(self._store.get_object_lock, key, version_id, key=key)

    async def update_object_retention(
        self, key: str, version_id: Optional[str], retain_until_date: datetime
    ) -> None:
        await self._call(self._store.update_object_retention, key, version_id, retain_until_date, key=key)

    async def update_legal_hold(self, key: str, version_id: Optional[str], legal_hold: bool) -> None:
        await self._call(self._store.update_legal_hold, key, version_id, legal_hold, key=key)

    async def upload_directory(self, request: DirectoryUploadRequest) -> DirectoryUploadResponse:
        return await self._call(self._store.upload_directory, request)

    async def download_directory(self, request: DirectoryDownloadRequest) -> DirectoryDownloadResponse:
        return await self._call(self._store.download_directory, request)

    async def delete_directory(self, prefix: str) -> DirectoryDeleteResponse:
        return await self._call(self._store.delete_directory, prefix)

    async def close(self) -> None:
        await self._call(self._store.close)

    async def __aenter__(self) -> "AsyncBucketClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
