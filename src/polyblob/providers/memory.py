"""
In-process provider.

Keeps buckets in a :class:`MemoryBackend` so that code written against the
client facades can run without a cloud account. It implements the whole
adapter contract (versions, ranges, multipart, tags, object lock and signed
URLs) and reports failures as :class:`MemoryStoreError` with an HTTP-style
status, classified like any other native error.
"""

import hashlib
import hmac
import io
import itertools
import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, quote, unquote, urlencode, urlparse

from ..config import BlobStoreConfig
from ..driver.async_store import AsyncBlobStore
from ..driver.base import AbstractBlobStore
from ..driver.builder import BlobStoreBuilder
from ..driver.service import AbstractBlobClient
from ..exceptions import ErrorKind
from ..models import (
    BlobIdentifier,
    BlobInfo,
    BlobMetadata,
    BucketInfo,
    CopyFromRequest,
    CopyRequest,
    CopyResponse,
    DownloadRequest,
    DownloadResponse,
    ListBlobsPageRequest,
    ListBlobsPageResponse,
    MultipartPart,
    MultipartUpload,
    MultipartUploadRequest,
    MultipartUploadResponse,
    ObjectLockInfo,
    PresignedUrlRequest,
    RetentionMode,
    UploadPartResponse,
    UploadRequest,
    UploadResponse,
)
from ..validation import BlobStoreValidator

log = logging.getLogger(__name__)

PROVIDER_ID = "memory"

DEFAULT_PAGE_SIZE = 1000

_STATUS_KINDS = {
    400: ErrorKind.INVALID_ARGUMENT,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.UNAUTHORIZED,
    404: ErrorKind.RESOURCE_NOT_FOUND,
    409: ErrorKind.RESOURCE_CONFLICT,
    412: ErrorKind.FAILED_PRECONDITION,
    416: ErrorKind.INVALID_ARGUMENT,
    429: ErrorKind.RESOURCE_EXHAUSTED,
    501: ErrorKind.UNSUPPORTED,
}

_CODE_KINDS = {
    "BucketAlreadyExists": ErrorKind.RESOURCE_ALREADY_EXISTS,
}


class MemoryStoreError(Exception):
    """Native error of the in-memory backend."""

    def __init__(self, status: int, code: str, message: str):
        super().__init__(f"{code}: {message}")
        self.status = status
        self.code = code


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass
class _Version:
    data: bytes
    version_id: str
    etag: str
    last_modified: datetime
    metadata: Dict[str, str] = field(default_factory=dict)
    tags: Dict[str, str] = field(default_factory=dict)
    content_type: Optional[str] = None
    checksum_value: Optional[str] = None
    retention: Optional[ObjectLockInfo] = None
    legal_hold: bool = False

    def is_locked(self) -> bool:
        if self.legal_hold:
            return True
        if self.retention is None or self.retention.retain_until_date is None:
            return False
        return _aware(self.retention.retain_until_date) > _now()


@dataclass
class _Upload:
    key: str
    metadata: Dict[str, str]
    tags: Dict[str, str]
    content_type: Optional[str]
    parts: Dict[int, Tuple[bytes, str]] = field(default_factory=dict)


@dataclass
class _Bucket:
    name: str
    region: Optional[str]
    creation_date: datetime
    objects: Dict[str, List[_Version]] = field(default_factory=dict)
    uploads: Dict[str, _Upload] = field(default_factory=dict)


class MemoryBackend:
    """Thread-safe bucket state. Every store built on the same backend shares it."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._buckets: Dict[str, _Bucket] = {}
        self._ids = itertools.count(1)
        self._signing_key = secrets.token_bytes(32)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def next_id(self) -> str:
        return str(next(self._ids))

    def create_bucket(self, name: str, region: Optional[str] = None) -> None:
        with self._lock:
            if name in self._buckets:
                raise MemoryStoreError(409, "BucketAlreadyExists", f"Bucket {name} already exists")
            self._buckets[name] = _Bucket(name=name, region=region, creation_date=_now())

    def ensure_bucket(self, name: str, region: Optional[str] = None) -> None:
        with self._lock:
            if name not in self._buckets:
                self._buckets[name] = _Bucket(name=name, region=region, creation_date=_now())

    def delete_bucket(self, name: str) -> None:
        with self._lock:
            self._buckets.pop(name, None)

    def has_bucket(self, name: str) -> bool:
        with self._lock:
            return name in self._buckets

    def bucket(self, name: str) -> _Bucket:
        with self._lock:
            try:
                return self._buckets[name]
            except KeyError:
                raise MemoryStoreError(404, "NoSuchBucket", f"Bucket {name} does not exist") from None

    def buckets(self) -> List[_Bucket]:
        with self._lock:
            return sorted(self._buckets.values(), key=lambda b: b.name)

    def sign(self, payload: str) -> str:
        return hmac.new(self._signing_key, payload.encode(), hashlib.sha256).hexdigest()

    def verify_presigned_url(self, url: str, now: Optional[datetime] = None) -> Tuple[str, str, str]:
        """Check a URL made by :meth:`MemoryBlobStore.generate_presigned_url`.

        Returns ``(operation, bucket, key)``; an invalid signature or an
        expired URL raises :class:`MemoryStoreError` with status 403.
        """
        parsed = urlparse(url)
        query = {name: values[0] for name, values in parse_qs(parsed.query).items()}
        bucket, key = parsed.netloc, unquote(parsed.path.lstrip("/"))
        payload = _presign_payload(query.get("operation", ""), bucket, key, query.get("expires", ""))
        if not hmac.compare_digest(self.sign(payload), query.get("signature", "")):
            raise MemoryStoreError(403, "SignatureDoesNotMatch", "Presigned URL signature is invalid")
        if int(query["expires"]) < int((now or _now()).timestamp()):
            raise MemoryStoreError(403, "AccessDenied", "Presigned URL has expired")
        return query["operation"], bucket, key


def _presign_payload(operation: str, bucket: str, key: str, expires: str) -> str:
    return "\n".join((operation, bucket, key, expires))


DEFAULT_BACKEND = MemoryBackend()


def classify_memory_error(error: BaseException) -> ErrorKind:
    common = AbstractBlobStore.classify_common(error)
    if common is not None:
        return common
    if isinstance(error, MemoryStoreError):
        return _CODE_KINDS.get(error.code) or _STATUS_KINDS.get(error.status, ErrorKind.UNKNOWN)
    return ErrorKind.UNKNOWN


class MemoryBlobStore(AbstractBlobStore):
    """Blob store for one bucket of a :class:`MemoryBackend`."""

    def __init__(
        self,
        config: BlobStoreConfig,
        backend: MemoryBackend,
        validator: Optional[BlobStoreValidator] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        super().__init__(config, validator)
        self._backend = backend
        self._page_size = page_size

    @property
    def backend(self) -> MemoryBackend:
        return self._backend

    def get_exception_kind(self, error: BaseException) -> ErrorKind:
        try:
            return classify_memory_error(error)
        except Exception:
            return ErrorKind.UNKNOWN

    def _bucket(self) -> _Bucket:
        return self._backend.bucket(self.bucket)

    def _version(self, key: str, version_id: Optional[str], bucket: Optional[_Bucket] = None) -> _Version:
        bucket = bucket or self._bucket()
        versions = bucket.objects.get(key)
        if not versions:
            raise MemoryStoreError(404, "NoSuchKey", f"Object {key} does not exist")
        if version_id is None:
            return versions[-1]
        for version in versions:
            if version.version_id == version_id:
                return version
        raise MemoryStoreError(404, "NoSuchVersion", f"Version {version_id} of {key} does not exist")

    def _store(self, key: str, data: bytes, etag: Optional[str] = None, **attributes) -> _Version:
        with self._backend.lock:
            bucket = self._bucket()
            version = _Version(
                data=data,
                version_id=self._backend.next_id(),
                etag=etag or _etag(data),
                last_modified=_now(),
                **attributes,
            )
            bucket.objects.setdefault(key, []).append(version)
            return version

    # Upload

    def _do_upload_bytes(self, request: UploadRequest, content: bytes) -> UploadResponse:
        retention = None
        legal_hold = False
        if request.object_lock is not None:
            retention = ObjectLockInfo(
                mode=request.object_lock.mode, retain_until_date=request.object_lock.retain_until_date
            )
            legal_hold = request.object_lock.legal_hold
        version = self._store(
            request.key,
            content,
            metadata=dict(request.metadata),
            tags=dict(request.tags),
            content_type=request.content_type,
            checksum_value=request.checksum_value,
            retention=retention,
            legal_hold=legal_hold,
        )
        return UploadResponse(
            key=request.key,
            version_id=version.version_id,
            etag=version.etag,
            checksum_value=version.checksum_value,
        )

    def _do_upload_stream(self, request: UploadRequest, stream: BinaryIO) -> UploadResponse:
        if request.content_length is not None:
            content = stream.read(request.content_length)
            if len(content) != request.content_length:
                raise MemoryStoreError(
                    400,
                    "IncompleteBody",
                    f"Expected {request.content_length} bytes for {request.key}, got {len(content)}",
                )
        else:
            content = stream.read()
        return self._do_upload_bytes(request, content)

    # Download

    def _read(self, request: DownloadRequest) -> Tuple[bytes, BlobMetadata]:
        with self._backend.lock:
            version = self._version(request.key, request.version_id)
            data = version.data
        if request.has_range:
            data = _slice(data, request)
        return data, self._to_metadata(request.key, version, size=len(data))

    def _do_download_to_stream(self, request: DownloadRequest, stream: BinaryIO) -> DownloadResponse:
        data, metadata = self._read(request)
        stream.write(data)
        return DownloadResponse(key=request.key, metadata=metadata)

    def _do_download_bytes(self, request: DownloadRequest) -> Tuple[bytes, DownloadResponse]:
        data, metadata = self._read(request)
        return data, DownloadResponse(key=request.key, metadata=metadata)

    def _do_download_stream(self, request: DownloadRequest) -> DownloadResponse:
        data, metadata = self._read(request)
        return DownloadResponse(key=request.key, metadata=metadata, body=io.BytesIO(data))

    @staticmethod
    def _to_metadata(key: str, version: _Version, size: Optional[int] = None) -> BlobMetadata:
        return BlobMetadata(
            key=key,
            object_size=len(version.data) if size is None else size,
            version_id=version.version_id,
            etag=version.etag,
            metadata=dict(version.metadata),
            last_modified=version.last_modified,
            md5=hashlib.md5(version.data).digest(),
            checksum_value=version.checksum_value,
            content_type=version.content_type,
        )

    # Delete / copy / metadata

    def _do_delete(self, key: str, version_id: Optional[str]) -> None:
        with self._backend.lock:
            bucket = self._bucket()
            versions = bucket.objects.get(key, [])
            targets = [v for v in versions if version_id is None or v.version_id == version_id]
            if any(v.is_locked() for v in targets):
                raise MemoryStoreError(403, "AccessDenied", f"Object {key} is protected by object lock")
            remaining = [v for v in versions if v not in targets]
            if remaining:
                bucket.objects[key] = remaining
            else:
                bucket.objects.pop(key, None)

    def _do_delete_many(self, identifiers: List[BlobIdentifier]) -> None:
        failures = []
        for identifier in identifiers:
            try:
                self._do_delete(identifier.key, identifier.version_id)
            except MemoryStoreError as e:
                failures.append(e)
        if failures:
            first = failures[0]
            raise MemoryStoreError(first.status, first.code, f"{len(failures)} objects failed to delete; {first}")

    def _copy(self, src_bucket: str, src_key: str, src_version_id: Optional[str], dest_bucket: str, dest_key: str):
        with self._backend.lock:
            source = self._version(src_key, src_version_id, self._backend.bucket(src_bucket))
            target = self._backend.bucket(dest_bucket)
            version = _Version(
                data=source.data,
                version_id=self._backend.next_id(),
                etag=source.etag,
                last_modified=_now(),
                metadata=dict(source.metadata),
                tags=dict(source.tags),
                content_type=source.content_type,
                checksum_value=source.checksum_value,
            )
            target.objects.setdefault(dest_key, []).append(version)
        return CopyResponse(
            key=dest_key, version_id=version.version_id, etag=version.etag, last_modified=version.last_modified
        )

    def _do_copy(self, request: CopyRequest) -> CopyResponse:
        return self._copy(
            self.bucket, request.src_key, request.src_version_id, request.dest_bucket or self.bucket, request.dest_key
        )

    def _do_copy_from(self, request: CopyFromRequest) -> CopyResponse:
        return self._copy(request.src_bucket, request.src_key, request.src_version_id, self.bucket, request.dest_key)

    def _do_get_metadata(self, key: str, version_id: Optional[str]) -> BlobMetadata:
        with self._backend.lock:
            return self._to_metadata(key, self._version(key, version_id))

    # Listing

    def _do_list_page(self, request: ListBlobsPageRequest) -> ListBlobsPageResponse:
        prefix = request.prefix or ""
        with self._backend.lock:
            latest = {key: versions[-1] for key, versions in self._bucket().objects.items() if versions}

        entries: Dict[str, Optional[Tuple[str, _Version]]] = {}
        for key in sorted(latest):
            if not key.startswith(prefix):
                continue
            if request.delimiter:
                cut = key.find(request.delimiter, len(prefix))
                if cut >= 0:
                    entries.setdefault(key[: cut + len(request.delimiter)], None)
                    continue
            entries[key] = (key, latest[key])

        names = sorted(name for name in entries if request.page_token is None or name > request.page_token)
        limit = request.max_results or self._page_size
        page, rest = names[:limit], names[limit:]

        blobs, prefixes = [], []
        for name in page:
            entry = entries[name]
            if entry is None:
                prefixes.append(name)
                continue
            key, version = entry
            blobs.append(
                BlobInfo(
                    key=key,
                    object_size=len(version.data),
                    last_modified=version.last_modified,
                    version_id=version.version_id,
                    etag=version.etag,
                )
            )
        return ListBlobsPageResponse(
            blobs=blobs,
            is_truncated=bool(rest),
            next_page_token=page[-1] if rest else None,
            common_prefixes=prefixes,
        )

    # Multipart

    def _upload(self, mpu: MultipartUpload) -> _Upload:
        upload = self._bucket().uploads.get(mpu.id)
        if upload is None or upload.key != mpu.key:
            raise MemoryStoreError(404, "NoSuchUpload", f"Multipart upload {mpu.id} does not exist")
        return upload

    def _do_initiate_multipart_upload(self, request: MultipartUploadRequest) -> MultipartUpload:
        with self._backend.lock:
            upload_id = f"mpu-{self._backend.next_id()}"
            self._bucket().uploads[upload_id] = _Upload(
                key=request.key,
                metadata=dict(request.metadata),
                tags=dict(request.tags),
                content_type=request.content_type,
            )
        return MultipartUpload(
            bucket=self.bucket,
            key=request.key,
            id=upload_id,
            metadata=dict(request.metadata),
            tags=dict(request.tags),
            kms_key_id=request.kms_key_id,
        )

    def _do_upload_multipart_part(self, mpu: MultipartUpload, part: MultipartPart) -> UploadPartResponse:
        data = part.read_all()
        etag = _etag(data)
        with self._backend.lock:
            self._upload(mpu).parts[part.part_number] = (data, etag)
        return UploadPartResponse(part_number=part.part_number, etag=etag, size=len(data))

    def _do_complete_multipart_upload(
        self, mpu: MultipartUpload, parts: List[UploadPartResponse]
    ) -> MultipartUploadResponse:
        with self._backend.lock:
            upload = self._upload(mpu)
            numbers = [part.part_number for part in parts]
            if numbers != sorted(numbers):
                raise MemoryStoreError(400, "InvalidPartOrder", "Parts must be listed in ascending order")
            chunks, digests = [], []
            for part in parts:
                stored = upload.parts.get(part.part_number)
                if stored is None or stored[1] != part.etag:
                    raise MemoryStoreError(400, "InvalidPart", f"Part {part.part_number} was not uploaded")
                chunks.append(stored[0])
                digests.append(bytes.fromhex(stored[1].strip('"')))
            etag = f'"{hashlib.md5(b"".join(digests)).hexdigest()}-{len(parts)}"'
            version = self._store(
                upload.key,
                b"".join(chunks),
                etag=etag,
                metadata=upload.metadata,
                tags=upload.tags,
                content_type=upload.content_type,
            )
            del self._bucket().uploads[mpu.id]
        return MultipartUploadResponse(etag=version.etag, version_id=version.version_id)

    def _do_list_multipart_upload(self, mpu: MultipartUpload) -> List[UploadPartResponse]:
        with self._backend.lock:
            parts = self._upload(mpu).parts
            return [
                UploadPartResponse(part_number=number, etag=etag, size=len(data))
                for number, (data, etag) in parts.items()
            ]

    def _do_abort_multipart_upload(self, mpu: MultipartUpload) -> None:
        with self._backend.lock:
            self._upload(mpu)
            del self._bucket().uploads[mpu.id]

    # Tags and presigned URLs

    def _do_get_tags(self, key: str) -> Dict[str, str]:
        with self._backend.lock:
            return dict(self._version(key, None).tags)

    def _do_set_tags(self, key: str, tags: Dict[str, str]) -> None:
        with self._backend.lock:
            self._version(key, None).tags = dict(tags)

    def _do_generate_presigned_url(self, request: PresignedUrlRequest) -> str:
        expires = str(int((_now() + request.duration).timestamp()))
        operation = request.type.value
        signature = self._backend.sign(_presign_payload(operation, self.bucket, request.key, expires))
        query = urlencode({"operation": operation, "expires": expires, "signature": signature})
        return f"memory://{self.bucket}/{quote(request.key)}?{query}"

    # Existence

    def _do_does_object_exist(self, key: str, version_id: Optional[str]) -> bool:
        try:
            with self._backend.lock:
                self._version(key, version_id)
            return True
        except MemoryStoreError as e:
            if e.status == 404:
                return False
            raise

    def _do_does_bucket_exist(self) -> bool:
        return self._backend.has_bucket(self.bucket)

    # Object lock

    def _do_get_object_retention(self, key: str, version_id: Optional[str]) -> Optional[ObjectLockInfo]:
        with self._backend.lock:
            return self._version(key, version_id).retention

    def _do_get_legal_hold(self, key: str, version_id: Optional[str]) -> bool:
        with self._backend.lock:
            return self._version(key, version_id).legal_hold

    def _do_put_object_retention(
        self, key: str, version_id: Optional[str], mode: RetentionMode, retain_until_date: datetime
    ) -> None:
        with self._backend.lock:
            self._version(key, version_id).retention = ObjectLockInfo(mode=mode, retain_until_date=retain_until_date)

    def _do_put_legal_hold(self, key: str, version_id: Optional[str], legal_hold: bool) -> None:
        with self._backend.lock:
            self._version(key, version_id).legal_hold = legal_hold


def _slice(data: bytes, request: DownloadRequest) -> bytes:
    size = len(data)
    if request.start is None:
        return data[-request.end :] if request.end else b""
    if request.start >= size:
        raise MemoryStoreError(416, "InvalidRange", f"Range start {request.start} is beyond the object size {size}")
    end = size - 1 if request.end is None else min(request.end, size - 1)
    return data[request.start : end + 1]


class MemoryBlobClient(AbstractBlobClient):
    def __init__(self, config: BlobStoreConfig, backend: MemoryBackend, validator: Optional[BlobStoreValidator] = None):
        super().__init__(config, validator)
        self._backend = backend

    def get_exception_kind(self, error: BaseException) -> ErrorKind:
        try:
            return classify_memory_error(error)
        except Exception:
            return ErrorKind.UNKNOWN

    def _do_list_buckets(self) -> List[BucketInfo]:
        return [
            BucketInfo(name=bucket.name, region=bucket.region, creation_date=bucket.creation_date)
            for bucket in self._backend.buckets()
        ]

    def _do_create_bucket(self, bucket: str) -> None:
        self._backend.create_bucket(bucket, self.region)


class MemoryBlobStoreBuilder(BlobStoreBuilder[MemoryBlobStore]):
    """Builds a :class:`MemoryBlobStore`, creating its bucket on first use.

    Stores share :data:`DEFAULT_BACKEND` unless :meth:`with_backend` is used.
    """

    provider_id = PROVIDER_ID

    def __init__(self) -> None:
        super().__init__()
        self._backend = DEFAULT_BACKEND
        self._page_size = DEFAULT_PAGE_SIZE

    def with_backend(self, backend: MemoryBackend) -> "MemoryBlobStoreBuilder":
        self._backend = backend
        return self

    def with_page_size(self, page_size: int) -> "MemoryBlobStoreBuilder":
        self._validator.validate_positive(page_size, "page_size")
        self._page_size = page_size
        return self

    def build(self) -> MemoryBlobStore:
        config = self.to_config()
        self._validator.validate_bucket(config.bucket)
        self._backend.ensure_bucket(config.bucket, config.region)
        log.info("Built in-memory blob store for bucket=%s", config.bucket)
        return MemoryBlobStore(config, self._backend, validator=self._validator, page_size=self._page_size)


class MemoryAsyncBlobStoreBuilder(MemoryBlobStoreBuilder):
    def build(self) -> AsyncBlobStore:
        return AsyncBlobStore(super().build())


class MemoryBlobClientBuilder(MemoryBlobStoreBuilder):
    def build(self) -> MemoryBlobClient:
        return MemoryBlobClient(self.to_config(), self._backend, validator=self._validator)
