"""Request and response value objects shared by every adapter.

All values are immutable and owned by the caller; adapters never keep a
reference to them once a call returns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import BinaryIO


class RetentionMode(str, Enum):
    GOVERNANCE = "GOVERNANCE"
    COMPLIANCE = "COMPLIANCE"


class PresignedOperation(str, Enum):
    UPLOAD = "UPLOAD"
    DOWNLOAD = "DOWNLOAD"


@dataclass(frozen=True)
class BlobIdentifier:
    """Identifies one object, or one specific version of it."""

    key: str
    version_id: str | None = None


@dataclass(frozen=True)
class ObjectLockConfiguration:
    """Object lock settings applied when an object is written."""

    mode: RetentionMode
    retain_until_date: datetime
    legal_hold: bool = False


@dataclass(frozen=True)
class ObjectLockInfo:
    """Current retention and legal-hold state of an object."""

    mode: RetentionMode | None = None
    retain_until_date: datetime | None = None
    legal_hold: bool = False


@dataclass(frozen=True)
class UploadRequest:
    """Parameters for a single-object upload.

    ``content_length`` lets adapters stream a source without buffering it to
    compute the size themselves.
    """

    key: str
    content_length: int | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    content_type: str | None = None
    kms_key_id: str | None = None
    checksum_value: str | None = None
    storage_class: str | None = None
    object_lock: ObjectLockConfiguration | None = None


@dataclass(frozen=True)
class UploadResponse:
    key: str
    version_id: str | None = None
    etag: str | None = None
    checksum_value: str | None = None


@dataclass(frozen=True)
class DownloadRequest:
    """Parameters for a download, optionally restricted to a byte range.

    ``start`` and ``end`` are zero-based and inclusive. Only ``start`` means
    "from start to the end of the object"; only ``end`` means "the last
    ``end`` bytes".
    """

    key: str
    version_id: str | None = None
    start: int | None = None
    end: int | None = None

    @property
    def has_range(self) -> bool:
        return self.start is not None or self.end is not None

    @property
    def range_header(self) -> str | None:
        if self.start is not None and self.end is not None:
            return f"bytes={self.start}-{self.end}"
        if self.start is not None:
            return f"bytes={self.start}-"
        if self.end is not None:
            return f"bytes=-{self.end}"
        return None


@dataclass(frozen=True)
class BlobMetadata:
    """Metadata of a stored object. Never cached; every query hits the backend."""

    key: str
    object_size: int
    version_id: str | None = None
    etag: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    last_modified: datetime | None = None
    md5: bytes | None = None
    checksum_value: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class DownloadResponse:
    """Result of a download.

    ``body`` is only set when the caller asked for a live stream. Ownership
    passes to the caller, who must close it (or use the response as a
    context manager).
    """

    key: str
    metadata: BlobMetadata
    body: BinaryIO | None = None

    @property
    def version_id(self) -> str | None:
        return self.metadata.version_id

    @property
    def etag(self) -> str | None:
        return self.metadata.etag

    def close(self) -> None:
        if self.body is not None:
            self.body.close()

    def __enter__(self) -> "DownloadResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@dataclass(frozen=True)
class BlobInfo:
    key: str
    object_size: int
    last_modified: datetime | None = None
    version_id: str | None = None
    etag: str | None = None
    object_lock: ObjectLockInfo | None = None


@dataclass(frozen=True)
class ListBlobsRequest:
    prefix: str | None = None
    delimiter: str | None = None
    max_results: int | None = None


@dataclass(frozen=True)
class ListBlobsBatch:
    """One page of a streaming list."""

    blobs: list[BlobInfo]
    common_prefixes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ListBlobsPageRequest:
    prefix: str | None = None
    delimiter: str | None = None
    page_token: str | None = None
    max_results: int | None = None


@dataclass(frozen=True)
class ListBlobsPageResponse:
    blobs: list[BlobInfo]
    is_truncated: bool = False
    next_page_token: str | None = None
    common_prefixes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CopyRequest:
    """Copy an object of this bucket to ``dest_bucket`` (defaults to the same bucket)."""

    src_key: str
    dest_key: str
    dest_bucket: str | None = None
    src_version_id: str | None = None


@dataclass(frozen=True)
class CopyFromRequest:
    """Copy an object from ``src_bucket`` into this bucket."""

    src_bucket: str
    src_key: str
    dest_key: str
    src_version_id: str | None = None


@dataclass(frozen=True)
class CopyResponse:
    key: str
    version_id: str | None = None
    etag: str | None = None
    last_modified: datetime | None = None


@dataclass(frozen=True)
class MultipartUploadRequest:
    key: str
    metadata: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    content_type: str | None = None
    kms_key_id: str | None = None


@dataclass(frozen=True)
class MultipartUpload:
    """Identifier token for an in-progress multipart upload.

    Not a live handle: any holder of a copy may upload parts, complete or
    abort against the same ``id``.
    """

    bucket: str
    key: str
    id: str
    metadata: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    kms_key_id: str | None = None


@dataclass(frozen=True)
class MultipartPart:
    """One part of a multipart upload.

    ``content`` is either in-memory bytes or a readable stream; streams must
    come with ``content_length``.
    """

    part_number: int
    content: bytes | BinaryIO
    content_length: int | None = None

    @property
    def size(self) -> int:
        if self.content_length is not None:
            return self.content_length
        return len(self.content)

    def read_all(self) -> bytes:
        if isinstance(self.content, (bytes, bytearray, memoryview)):
            return bytes(self.content)
        return self.content.read(self.size)


@dataclass(frozen=True)
class UploadPartResponse:
    part_number: int
    etag: str
    size: int


@dataclass(frozen=True)
class MultipartUploadResponse:
    etag: str
    version_id: str | None = None


@dataclass(frozen=True)
class PresignedUrlRequest:
    type: PresignedOperation
    key: str
    duration: timedelta
    metadata: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    kms_key_id: str | None = None


@dataclass(frozen=True)
class DirectoryUploadRequest:
    local_source_directory: str | Path
    prefix: str = ""
    include_subfolders: bool = False
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DirectoryDownloadRequest:
    prefix_to_download: str
    local_destination_directory: str | Path
    prefixes_to_exclude: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FailedBlobUpload:
    source: Path
    error: BaseException


@dataclass(frozen=True)
class FailedBlobDownload:
    destination: Path
    error: BaseException


@dataclass(frozen=True)
class FailedBlobDelete:
    identifiers: list[BlobIdentifier]
    error: BaseException


@dataclass(frozen=True)
class DirectoryUploadResponse:
    """Only the listed files failed; every other file was uploaded."""

    failed_transfers: list[FailedBlobUpload] = field(default_factory=list)


@dataclass(frozen=True)
class DirectoryDownloadResponse:
    failed_transfers: list[FailedBlobDownload] = field(default_factory=list)


@dataclass(frozen=True)
class DirectoryDeleteResponse:
    deleted_count: int = 0
    failed_batches: list[FailedBlobDelete] = field(default_factory=list)


@dataclass(frozen=True)
class BucketInfo:
    name: str
    region: str | None = None
    creation_date: datetime | None = None
