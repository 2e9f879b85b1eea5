"""
Asynchronous adapter surface.

Wraps a synchronous store and runs each native call on an executor so the
event loop never blocks on I/O. The executor comes from the store
configuration (``with_executor``) or falls back to the loop's default one.
Directory operations fan out per file on the event loop itself, bounded by
``transfer_directory_max_concurrency``.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import inspect
import logging
from collections.abc import AsyncIterator, Callable
from concurrent.futures import Executor
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from ..config import BlobStoreConfig
from ..exceptions import ErrorKind, normalize_error
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
    FailedBlobDelete,
    FailedBlobDownload,
    FailedBlobUpload,
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
from .base import AbstractBlobStore, DownloadDestination, UploadSource
from .directory import plan_directory_download, plan_directory_upload

log = logging.getLogger(__name__)

LOG_IDENTIFIER = "[AsyncBlobStore]"


class AsyncBlobStore:
    """Awaitable view of an :class:`AbstractBlobStore`."""

    def __init__(self, store: AbstractBlobStore):
        self._store = store
        self._executor = store.config.executor

    @property
    def store(self) -> AbstractBlobStore:
        return self._store

    @property
    def config(self) -> BlobStoreConfig:
        return self._store.config

    @property
    def executor(self) -> Optional[Executor]:
        return self._executor

    @property
    def provider_id(self) -> str:
        return self._store.provider_id

    @property
    def bucket(self) -> str:
        return self._store.bucket

    @property
    def region(self) -> Optional[str]:
        return self._store.region

    def get_exception_kind(self, error: BaseException) -> ErrorKind:
        return self._store.get_exception_kind(error)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    async def upload(self, request: UploadRequest, source: UploadSource) -> UploadResponse:
        return await self._run(self._store.upload, request, source)

    async def download(self, request: DownloadRequest, destination: DownloadDestination = None) -> DownloadResponse:
        return await self._run(self._store.download, request, destination)

    async def delete(self, key: str, version_id: Optional[str] = None) -> None:
        await self._run(self._store.delete, key, version_id)

    async def delete_many(self, identifiers: Iterable[BlobIdentifier]) -> None:
        await self._run(self._store.delete_many, list(identifiers))

    async def copy(self, request: CopyRequest) -> CopyResponse:
        return await self._run(self._store.copy, request)

    async def copy_from(self, request: CopyFromRequest) -> CopyResponse:
        return await self._run(self._store.copy_from, request)

    async def get_metadata(self, key: str, version_id: Optional[str] = None) -> BlobMetadata:
        return await self._run(self._store.get_metadata, key, version_id)

    async def list_page(self, request: ListBlobsPageRequest) -> ListBlobsPageResponse:
        return await self._run(self._store.list_page, request)

    async def _iter_pages(self, request: ListBlobsRequest) -> AsyncIterator[ListBlobsPageResponse]:
        page_token = None
        while True:
            page = await self.list_page(
                ListBlobsPageRequest(
                    prefix=request.prefix,
                    delimiter=request.delimiter,
                    page_token=page_token,
                    max_results=request.max_results,
                )
            )
            yield page
            if not page.is_truncated or not page.next_page_token:
                return
            page_token = page.next_page_token

    async def list(self, request: ListBlobsRequest, consumer: Callable[[ListBlobsBatch], Any]) -> None:
        """Stream every page to ``consumer``, which may be a plain or a coroutine function."""
        async for page in self._iter_pages(request):
            result = consumer(ListBlobsBatch(blobs=page.blobs, common_prefixes=page.common_prefixes))
            if inspect.isawaitable(result):
                await result

    async def iter_blobs(self, request: Optional[ListBlobsRequest] = None) -> AsyncIterator[BlobInfo]:
        async for page in self._iter_pages(request or ListBlobsRequest()):
            for blob in page.blobs:
                yield blob

    async def initiate_multipart_upload(self, request: MultipartUploadRequest) -> MultipartUpload:
        return await self._run(self._store.initiate_multipart_upload, request)

    async def upload_multipart_part(self, mpu: MultipartUpload, part: MultipartPart) -> UploadPartResponse:
        return await self._run(self._store.upload_multipart_part, mpu, part)

    async def complete_multipart_upload(
        self, mpu: MultipartUpload, parts: Iterable[UploadPartResponse]
    ) -> MultipartUploadResponse:
        return await self._run(self._store.complete_multipart_upload, mpu, list(parts))

    async def list_multipart_upload(self, mpu: MultipartUpload) -> list[UploadPartResponse]:
        return await self._run(self._store.list_multipart_upload, mpu)

    async def abort_multipart_upload(self, mpu: MultipartUpload) -> None:
        await self._run(self._store.abort_multipart_upload, mpu)

    async def get_tags(self, key: str) -> dict[str, str]:
        return await self._run(self._store.get_tags, key)

    async def set_tags(self, key: str, tags: dict[str, str]) -> None:
        await self._run(self._store.set_tags, key, tags)

    async def generate_presigned_url(self, request: PresignedUrlRequest) -> str:
        return await self._run(self._store.generate_presigned_url, request)

    async def does_object_exist(self, key: str, version_id: Optional[str] = None) -> bool:
        return await self._run(self._store.does_object_exist, key, version_id)

    async def does_bucket_exist(self) -> bool:
        return await self._run(self._store.does_bucket_exist)

    async def get_object_lock(self, key: str, version_id: Optional[str] = None) -> ObjectLockInfo:
        return await self._run(self._store.get_object_lock, key, version_id)

    async def update_object_retention(
        self, key: str, version_id: Optional[str], retain_until_date: datetime
    ) -> None:
        await self._run(self._store.update_object_retention, key, version_id, retain_until_date)

    async def update_legal_hold(self, key: str, version_id: Optional[str], legal_hold: bool) -> None:
        await self._run(self._store.update_legal_hold, key, version_id, legal_hold)

    # ------------------------------------------------------------------
    # Directory transfers
    # ------------------------------------------------------------------

    def _limiter(self) -> contextlib.AbstractAsyncContextManager:
        limit = self._store.config.transfer_directory_max_concurrency
        if limit:
            return asyncio.Semaphore(limit)
        return contextlib.nullcontext()

    def _normalize(self, error: BaseException, key: Optional[str] = None) -> BaseException:
        try:
            kind = self._store.get_exception_kind(error)
        except Exception:
            log.warning("%s Could not classify %r, treating it as unknown", LOG_IDENTIFIER, error)
            kind = ErrorKind.UNKNOWN
        return normalize_error(kind, error, key=key)

    async def upload_directory(self, request: DirectoryUploadRequest) -> DirectoryUploadResponse:
        plan = await self._run(plan_directory_upload, request)
        limiter = self._limiter()

        async def upload_file(path: Path, key: str) -> None:
            async with limiter:
                size = await self._run(lambda: path.stat().st_size)
                await self.upload(UploadRequest(key=key, content_length=size, tags=dict(request.tags)), path)

        results = await asyncio.gather(*(upload_file(path, key) for path, key in plan), return_exceptions=True)
        failed = []
        for (path, key), result in zip(plan, results):
            if isinstance(result, BaseException):
                log.warning("%s Failed to upload %s: %s", LOG_IDENTIFIER, path, result)
                failed.append(FailedBlobUpload(source=path, error=self._normalize(result, key)))
        return DirectoryUploadResponse(failed_transfers=failed)

    async def download_directory(self, request: DirectoryDownloadRequest) -> DirectoryDownloadResponse:
        blobs = [blob async for blob in self.iter_blobs(ListBlobsRequest(prefix=request.prefix_to_download))]
        plan, failed = await self._run(plan_directory_download, request, blobs)
        limiter = self._limiter()

        async def download_file(key: str, target: Path) -> None:
            async with limiter:
                await self._run(functools.partial(target.parent.mkdir, parents=True, exist_ok=True))
                await self.download(DownloadRequest(key=key), target)

        results = await asyncio.gather(
            *(download_file(key, target) for key, target in plan), return_exceptions=True
        )
        for (key, target), result in zip(plan, results):
            if isinstance(result, BaseException):
                log.warning("%s Failed to download %s: %s", LOG_IDENTIFIER, key, result)
                failed.append(FailedBlobDownload(destination=target, error=self._normalize(result, key)))
        return DirectoryDownloadResponse(failed_transfers=failed)

    async def delete_directory(self, prefix: str) -> DirectoryDeleteResponse:
        """Delete every object under ``prefix``; batches run while the listing continues."""
        limit = self._store.max_objects_per_delete
        limiter = self._limiter()
        pending: list[BlobIdentifier] = []
        batches: list[list[BlobIdentifier]] = []
        tasks: list[asyncio.Task] = []

        async def delete_batch(batch: list[BlobIdentifier]) -> None:
            async with limiter:
                await self.delete_many(batch)

        def flush(batch: list[BlobIdentifier]) -> None:
            batches.append(batch)
            tasks.append(asyncio.ensure_future(delete_batch(batch)))

        try:
            async for page in self._iter_pages(ListBlobsRequest(prefix=prefix)):
                pending.extend(BlobIdentifier(key=blob.key, version_id=blob.version_id) for blob in page.blobs)
                while len(pending) >= limit:
                    flush(pending[:limit])
                    del pending[:limit]
            if pending:
                flush(list(pending))
        finally:
            results = await asyncio.gather(*tasks, return_exceptions=True)

        deleted = 0
        failed = []
        for batch, result in zip(batches, results):
            if isinstance(result, BaseException):
                log.warning(
                    "%s Failed to delete a batch of %d objects under %s: %s", LOG_IDENTIFIER, len(batch), prefix, result
                )
                failed.append(FailedBlobDelete(identifiers=batch, error=self._normalize(result)))
            else:
                deleted += len(batch)
        return DirectoryDeleteResponse(deleted_count=deleted, failed_batches=failed)

    async def close(self) -> None:
        await self._run(self._store.close)

    async def __aenter__(self) -> "AsyncBlobStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
