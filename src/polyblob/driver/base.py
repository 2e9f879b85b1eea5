"""Abstract base class for storage adapters.

Public methods validate their input and dispatch to ``_do_*`` hooks that
each provider implements against its native client. Anything that is the
same for every provider (source/destination handling, part ordering,
retention preconditions, directory orchestration) lives here.
"""

from __future__ import annotations

import io
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Union

from ..config import BlobStoreConfig
from ..exceptions import (
    BlobStoreError,
    ErrorKind,
    FailedPreconditionError,
    InvalidArgumentError,
)
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
    PresignedOperation,
    PresignedUrlRequest,
    RetentionMode,
    UploadPartResponse,
    UploadRequest,
    UploadResponse,
)
from ..validation import BlobStoreValidator

log = logging.getLogger(__name__)

UploadSource = Union[bytes, bytearray, memoryview, BinaryIO, str, os.PathLike]
DownloadDestination = Union[BinaryIO, bytearray, str, os.PathLike, None]


class AbstractBlobStore(ABC):
    """Unified blob operations for one bucket of one provider."""

    # Largest number of identifiers the backend accepts in one bulk delete.
    max_objects_per_delete: int = 1000
    max_part_number: int = 10000

    def __init__(self, config: BlobStoreConfig, validator: BlobStoreValidator | None = None):
        self._config = config
        self._validator = validator or BlobStoreValidator()
        self._validator.validate_bucket(config.bucket)

    @property
    def config(self) -> BlobStoreConfig:
        return self._config

    @property
    def provider_id(self) -> str:
        return self._config.provider_id

    @property
    def bucket(self) -> str:
        return self._config.bucket

    @property
    def region(self) -> str | None:
        return self._config.region

    @property
    def validator(self) -> BlobStoreValidator:
        return self._validator

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    @abstractmethod
    def get_exception_kind(self, error: BaseException) -> ErrorKind:
        """Classify ``error`` into the shared taxonomy.

        Must be pure: no I/O, no retries, and it must never raise.
        """

    @staticmethod
    def classify_common(error: BaseException) -> ErrorKind | None:
        """Classification rules that hold for every provider.

        Returns ``None`` when the error is not one of the shared cases so the
        caller can fall through to its provider rules.
        """
        if isinstance(error, BlobStoreError):
            return error.kind
        if isinstance(error, FileExistsError):
            return ErrorKind.FAILED_PRECONDITION
        if isinstance(error, TimeoutError):
            return ErrorKind.DEADLINE_EXCEEDED
        if isinstance(error, ConnectionError):
            return ErrorKind.TRANSPORT
        if isinstance(error, (ValueError, TypeError, OSError)):
            return ErrorKind.INVALID_ARGUMENT
        return None

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload(self, request: UploadRequest, source: UploadSource) -> UploadResponse:
        """Upload ``source`` under ``request.key``.

        ``source`` may be bytes, a readable binary stream, or a local file
        path. Setting ``request.content_length`` for streams lets the adapter
        send them without buffering.
        """
        self._validator.validate_key(request.key)
        self._validator.validate_tags(request.tags)
        if isinstance(source, (bytes, bytearray, memoryview)):
            log.debug("Uploading %d bytes to %s/%s", len(source), self.bucket, request.key)
            return self._do_upload_bytes(request, bytes(source))
        if isinstance(source, (str, os.PathLike)):
            path = Path(source)
            if not path.is_file():
                raise InvalidArgumentError(f"Upload source is not a readable file: {path}", key=request.key)
            log.debug("Uploading file %s to %s/%s", path, self.bucket, request.key)
            return self._do_upload_file(request, path)
        if hasattr(source, "read"):
            log.debug("Uploading stream to %s/%s", self.bucket, request.key)
            return self._do_upload_stream(request, source)
        raise InvalidArgumentError(
            f"Unsupported upload source type: {type(source).__name__}", key=request.key
        )

    @abstractmethod
    def _do_upload_bytes(self, request: UploadRequest, content: bytes) -> UploadResponse: ...

    @abstractmethod
    def _do_upload_stream(self, request: UploadRequest, stream: BinaryIO) -> UploadResponse: ...

    def _do_upload_file(self, request: UploadRequest, path: Path) -> UploadResponse:
        if request.content_length is None:
            request = replace(request, content_length=path.stat().st_size)
        with path.open("rb") as stream:
            return self._do_upload_stream(request, stream)

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def download(self, request: DownloadRequest, destination: DownloadDestination = None) -> DownloadResponse:
        """Download ``request.key`` into ``destination``.

        ``destination`` may be a writable binary stream, a ``bytearray`` that
        is replaced with the content, or a local file path, which must not
        exist yet. With no destination the response carries a live ``body``
        stream the caller must close.
        """
        self._validator.validate_key(request.key)
        self._validator.validate_range(request)
        if request.has_range:
            log.debug("Downloading %s/%s range %s", self.bucket, request.key, request.range_header)

        if destination is None:
            return self._do_download_stream(request)
        if isinstance(destination, bytearray):
            content, response = self._do_download_bytes(request)
            destination[:] = content
            return response
        if isinstance(destination, (str, os.PathLike)):
            return self._download_to_path(request, Path(destination))
        if hasattr(destination, "write"):
            return self._do_download_to_stream(request, destination)
        raise InvalidArgumentError(
            f"Unsupported download destination type: {type(destination).__name__}", key=request.key
        )

    def _download_to_path(self, request: DownloadRequest, path: Path) -> DownloadResponse:
        if path.exists():
            raise FailedPreconditionError(f"Download destination already exists: {path}", key=request.key)
        with path.open("xb") as stream:
            try:
                return self._do_download_to_stream(request, stream)
            except BaseException:
                stream.close()
                path.unlink(missing_ok=True)
                raise

    @abstractmethod
    def _do_download_to_stream(self, request: DownloadRequest, stream: BinaryIO) -> DownloadResponse: ...

    @abstractmethod
    def _do_download_stream(self, request: DownloadRequest) -> DownloadResponse: ...

    def _do_download_bytes(self, request: DownloadRequest) -> tuple[bytes, DownloadResponse]:
        buffer = io.BytesIO()
        response = self._do_download_to_stream(request, buffer)
        return buffer.getvalue(), response

    # ------------------------------------------------------------------
    # Delete / copy / metadata
    # ------------------------------------------------------------------

    def delete(self, key: str, version_id: str | None = None) -> None:
        """Delete one object. Deleting a missing object succeeds."""
        self._validator.validate_key(key)
        self._do_delete(key, version_id)

    def delete_many(self, identifiers: Iterable[BlobIdentifier]) -> None:
        """Delete several objects, in as many bulk calls as the backend limit requires."""
        identifiers = list(identifiers)
        if not identifiers:
            return
        self._validator.validate_keys(identifiers)
        for batch in partition(identifiers, self.max_objects_per_delete):
            log.debug("Deleting batch of %d objects from %s", len(batch), self.bucket)
            self._do_delete_many(batch)

    @abstractmethod
    def _do_delete(self, key: str, version_id: str | None) -> None: ...

    @abstractmethod
    def _do_delete_many(self, identifiers: list[BlobIdentifier]) -> None: ...

    def copy(self, request: CopyRequest) -> CopyResponse:
        self._validator.validate_key(request.src_key)
        self._validator.validate_key(request.dest_key)
        return self._do_copy(request)

    def copy_from(self, request: CopyFromRequest) -> CopyResponse:
        self._validator.validate_bucket(request.src_bucket)
        self._validator.validate_key(request.src_key)
        self._validator.validate_key(request.dest_key)
        return self._do_copy_from(request)

    @abstractmethod
    def _do_copy(self, request: CopyRequest) -> CopyResponse: ...

    @abstractmethod
    def _do_copy_from(self, request: CopyFromRequest) -> CopyResponse: ...

    def get_metadata(self, key: str, version_id: str | None = None) -> BlobMetadata:
        self._validator.validate_key(key)
        return self._do_get_metadata(key, version_id)

    @abstractmethod
    def _do_get_metadata(self, key: str, version_id: str | None) -> BlobMetadata: ...

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(self, request: ListBlobsRequest, consumer: Callable[[ListBlobsBatch], None]) -> None:
        """Stream every page matching ``request`` to ``consumer``, one call per page."""
        for page in self._iter_pages(request):
            consumer(ListBlobsBatch(blobs=page.blobs, common_prefixes=page.common_prefixes))

    def iter_blobs(self, request: ListBlobsRequest | None = None) -> Iterator[BlobInfo]:
        """Lazily iterate over every blob matching ``request``."""
        for page in self._iter_pages(request or ListBlobsRequest()):
            yield from page.blobs

    def list_page(self, request: ListBlobsPageRequest) -> ListBlobsPageResponse:
        if request.max_results is not None:
            self._validator.validate_positive(request.max_results, "max_results")
        return self._do_list_page(request)

    def _iter_pages(self, request: ListBlobsRequest) -> Iterator[ListBlobsPageResponse]:
        page_token = None
        while True:
            page = self.list_page(
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

    @abstractmethod
    def _do_list_page(self, request: ListBlobsPageRequest) -> ListBlobsPageResponse: ...

    # ------------------------------------------------------------------
    # Multipart
    # ------------------------------------------------------------------

    def initiate_multipart_upload(self, request: MultipartUploadRequest) -> MultipartUpload:
        self._validator.validate_key(request.key)
        self._validator.validate_tags(request.tags)
        return self._do_initiate_multipart_upload(request)

    def upload_multipart_part(self, mpu: MultipartUpload, part: MultipartPart) -> UploadPartResponse:
        """Upload one part. Parts may be sent in any order and concurrently."""
        self._validator.validate_multipart_upload(mpu, self.bucket)
        self._validator.validate_part(part, self.max_part_number)
        return self._do_upload_multipart_part(mpu, part)

    def complete_multipart_upload(
        self, mpu: MultipartUpload, parts: Iterable[UploadPartResponse]
    ) -> MultipartUploadResponse:
        """Compose the uploaded parts into one object.

        ``parts`` must hold every uploaded part exactly once; they are
        submitted to the backend in ascending part-number order whatever
        order they were collected in.
        """
        self._validator.validate_multipart_upload(mpu, self.bucket)
        parts = list(parts)
        self._validator.validate_parts_for_completion(parts)
        ordered = sorted(parts, key=lambda part: part.part_number)
        log.debug("Completing multipart upload %s for %s with %d parts", mpu.id, mpu.key, len(ordered))
        return self._do_complete_multipart_upload(mpu, ordered)

    def list_multipart_upload(self, mpu: MultipartUpload) -> list[UploadPartResponse]:
        """Parts uploaded so far, sorted by part number."""
        self._validator.validate_multipart_upload(mpu, self.bucket)
        parts = self._do_list_multipart_upload(mpu)
        return sorted(parts, key=lambda part: part.part_number)

    def abort_multipart_upload(self, mpu: MultipartUpload) -> None:
        self._validator.validate_multipart_upload(mpu, self.bucket)
        self._do_abort_multipart_upload(mpu)

    @abstractmethod
    def _do_initiate_multipart_upload(self, request: MultipartUploadRequest) -> MultipartUpload: ...

    @abstractmethod
    def _do_upload_multipart_part(self, mpu: MultipartUpload, part: MultipartPart) -> UploadPartResponse: ...

    @abstractmethod
    def _do_complete_multipart_upload(
        self, mpu: MultipartUpload, parts: list[UploadPartResponse]
    ) -> MultipartUploadResponse: ...

    @abstractmethod
    def _do_list_multipart_upload(self, mpu: MultipartUpload) -> list[UploadPartResponse]: ...

    @abstractmethod
    def _do_abort_multipart_upload(self, mpu: MultipartUpload) -> None: ...

    # ------------------------------------------------------------------
    # Tags and presigned URLs
    # ------------------------------------------------------------------

    def get_tags(self, key: str) -> dict[str, str]:
        self._validator.validate_key(key)
        return self._do_get_tags(key)

    def set_tags(self, key: str, tags: dict[str, str]) -> None:
        """Replace every tag on ``key`` with ``tags``."""
        self._validator.validate_key(key)
        self._validator.validate_tags(tags)
        self._do_set_tags(key, dict(tags))

    @abstractmethod
    def _do_get_tags(self, key: str) -> dict[str, str]: ...

    @abstractmethod
    def _do_set_tags(self, key: str, tags: dict[str, str]) -> None: ...

    def generate_presigned_url(self, request: PresignedUrlRequest) -> str:
        self._validator.validate_key(request.key)
        self._validator.validate_presign_duration(request.duration)
        if not isinstance(request.type, PresignedOperation):
            raise InvalidArgumentError(f"Unsupported presigned operation: {request.type!r}", key=request.key)
        return self._do_generate_presigned_url(request)

    @abstractmethod
    def _do_generate_presigned_url(self, request: PresignedUrlRequest) -> str: ...

    # ------------------------------------------------------------------
    # Existence checks
    # ------------------------------------------------------------------

    def does_object_exist(self, key: str, version_id: str | None = None) -> bool:
        """``False`` when the backend reports not-found; any other error propagates."""
        self._validator.validate_key(key)
        return self._do_does_object_exist(key, version_id)

    def does_bucket_exist(self) -> bool:
        return self._do_does_bucket_exist()

    @abstractmethod
    def _do_does_object_exist(self, key: str, version_id: str | None) -> bool: ...

    @abstractmethod
    def _do_does_bucket_exist(self) -> bool: ...

    # ------------------------------------------------------------------
    # Object lock
    # ------------------------------------------------------------------

    def get_object_lock(self, key: str, version_id: str | None = None) -> ObjectLockInfo:
        self._validator.validate_key(key)
        retention = self._do_get_object_retention(key, version_id)
        legal_hold = self._do_get_legal_hold(key, version_id)
        return ObjectLockInfo(
            mode=retention.mode if retention else None,
            retain_until_date=retention.retain_until_date if retention else None,
            legal_hold=legal_hold,
        )

    def update_object_retention(self, key: str, version_id: str | None, retain_until_date: datetime) -> None:
        """Move the retain-until date of a GOVERNANCE-mode object.

        The current retention is read first. Objects without retention and
        COMPLIANCE-mode objects are rejected before any mutating call.
        """
        self._validator.validate_key(key)
        current = self._do_get_object_retention(key, version_id)
        if current is None or current.mode is None:
            raise FailedPreconditionError(
                "Object does not have retention configured. Cannot update retention.", key=key
            )
        if current.mode == RetentionMode.COMPLIANCE:
            raise FailedPreconditionError(
                "Cannot update retention for objects in COMPLIANCE mode. "
                "Only GOVERNANCE mode objects can have their retention updated.",
                key=key,
            )
        self._do_put_object_retention(key, version_id, current.mode, retain_until_date)

    def update_legal_hold(self, key: str, version_id: str | None, legal_hold: bool) -> None:
        self._validator.validate_key(key)
        self._do_put_legal_hold(key, version_id, legal_hold)

    @abstractmethod
    def _do_get_object_retention(self, key: str, version_id: str | None) -> ObjectLockInfo | None:
        """Current retention, or ``None`` when the object has none."""

    @abstractmethod
    def _do_get_legal_hold(self, key: str, version_id: str | None) -> bool: ...

    @abstractmethod
    def _do_put_object_retention(
        self, key: str, version_id: str | None, mode: RetentionMode, retain_until_date: datetime
    ) -> None: ...

    @abstractmethod
    def _do_put_legal_hold(self, key: str, version_id: str | None, legal_hold: bool) -> None: ...

    # ------------------------------------------------------------------
    # Directory transfers
    # ------------------------------------------------------------------

    def upload_directory(self, request: DirectoryUploadRequest) -> DirectoryUploadResponse:
        from .directory import DirectoryTransferOrchestrator

        return DirectoryTransferOrchestrator(self).upload_directory(request)

    def download_directory(self, request: DirectoryDownloadRequest) -> DirectoryDownloadResponse:
        from .directory import DirectoryTransferOrchestrator

        return DirectoryTransferOrchestrator(self).download_directory(request)

    def delete_directory(self, prefix: str) -> DirectoryDeleteResponse:
        from .directory import DirectoryTransferOrchestrator

        return DirectoryTransferOrchestrator(self).delete_directory(prefix)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the native client. The default has nothing to release."""

    def __enter__(self) -> "AbstractBlobStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def partition(items: list, size: int) -> list[list]:
    """Split ``items`` into consecutive chunks of at most ``size`` elements."""
    if size < 1:
        raise InvalidArgumentError(f"Partition size must be at least 1, got {size}")
    return [items[i : i + size] for i in range(0, len(items), size)]
