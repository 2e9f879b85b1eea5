"""S3 adapter backed by boto3."""

import logging
import shutil
from datetime import datetime
from typing import Any, BinaryIO, List, Optional
from urllib.parse import urlencode

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import ClientError

from ...config import BlobStoreConfig, RetryMode
from ...driver.async_store import AsyncBlobStore
from ...driver.base import AbstractBlobStore
from ...driver.builder import BlobStoreBuilder
from ...exceptions import ErrorKind
from ...models import (
    BlobIdentifier,
    BlobInfo,
    BlobMetadata,
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
    PresignedOperation,
    PresignedUrlRequest,
    RetentionMode,
    UploadPartResponse,
    UploadRequest,
    UploadResponse,
)
from ...proxy import resolve_proxies
from ...validation import BlobStoreValidator
from .credentials import resolve_credentials
from .error_mapping import error_code, get_exception_kind, is_not_found

log = logging.getLogger(__name__)

PROVIDER_ID = "aws"

_COPY_CHUNK_SIZE = 1024 * 1024
_NO_RETENTION_CODES = ("NoSuchObjectLockConfiguration",)


class AwsBlobStore(AbstractBlobStore):
    """Blob store for one S3 bucket.

    The download strategy is fixed at construction: with
    ``parallel_downloads_enabled`` whole-object downloads go through boto3's
    managed transfer (concurrent ranged GETs), otherwise every download is a
    single ``get_object`` call. ``parallel_uploads_enabled`` does the same
    for stream and file uploads.
    """

    def __init__(
        self,
        config: BlobStoreConfig,
        s3_client: Any,
        validator: Optional[BlobStoreValidator] = None,
        transfer_config: Optional[TransferConfig] = None,
    ):
        super().__init__(config, validator)
        self._client = s3_client
        self._transfer_config = transfer_config
        self._managed_uploads = bool(config.parallel_uploads_enabled) and transfer_config is not None
        self._managed_downloads = bool(config.parallel_downloads_enabled) and transfer_config is not None

    @property
    def client(self) -> Any:
        return self._client

    @property
    def uses_managed_transfer(self) -> bool:
        return self._managed_downloads

    def get_exception_kind(self, error: BaseException) -> ErrorKind:
        return get_exception_kind(error)

    # Upload

    def _upload_params(self, request: UploadRequest) -> dict:
        params: dict = {"Bucket": self.bucket, "Key": request.key}
        if request.metadata:
            params["Metadata"] = dict(request.metadata)
        if request.tags:
            params["Tagging"] = urlencode(request.tags)
        if request.content_type:
            params["ContentType"] = request.content_type
        if request.kms_key_id:
            params["ServerSideEncryption"] = "aws:kms"
            params["SSEKMSKeyId"] = request.kms_key_id
        if request.storage_class:
            params["StorageClass"] = request.storage_class
        if request.checksum_value:
            params["ChecksumAlgorithm"] = "CRC32C"
            params["ChecksumCRC32C"] = request.checksum_value
        if request.object_lock is not None:
            lock = request.object_lock
            params["ObjectLockMode"] = lock.mode.value
            params["ObjectLockRetainUntilDate"] = lock.retain_until_date
            params["ObjectLockLegalHoldStatus"] = "ON" if lock.legal_hold else "OFF"
        return params

    def _put_object(self, request: UploadRequest, body: Any) -> UploadResponse:
        params = self._upload_params(request)
        params["Body"] = body
        if request.content_length is not None:
            params["ContentLength"] = request.content_length
        response = self._client.put_object(**params)
        return UploadResponse(
            key=request.key,
            version_id=response.get("VersionId"),
            etag=response.get("ETag"),
            checksum_value=response.get("ChecksumCRC32C"),
        )

    def _do_upload_bytes(self, request: UploadRequest, content: bytes) -> UploadResponse:
        return self._put_object(request, content)

    def _do_upload_stream(self, request: UploadRequest, stream: BinaryIO) -> UploadResponse:
        if self._managed_uploads and request.object_lock is None and not request.checksum_value:
            return self._managed_upload(request, stream)
        return self._put_object(request, stream)

    def _managed_upload(self, request: UploadRequest, stream: BinaryIO) -> UploadResponse:
        params = self._upload_params(request)
        bucket, key = params.pop("Bucket"), params.pop("Key")
        self._client.upload_fileobj(stream, bucket, key, ExtraArgs=params or None, Config=self._transfer_config)
        # upload_fileobj returns nothing; the version and etag come from a HEAD.
        head = self._client.head_object(Bucket=bucket, Key=key)
        return UploadResponse(key=key, version_id=head.get("VersionId"), etag=head.get("ETag"))

    # Download

    def _get_params(self, request: DownloadRequest) -> dict:
        params: dict = {"Bucket": self.bucket, "Key": request.key}
        if request.version_id:
            params["VersionId"] = request.version_id
        if request.has_range:
            params["Range"] = request.range_header
        return params

    def _do_download_to_stream(self, request: DownloadRequest, stream: BinaryIO) -> DownloadResponse:
        if self._managed_downloads and not request.has_range:
            metadata = self._do_get_metadata(request.key, request.version_id)
            extra = {"VersionId": request.version_id} if request.version_id else None
            self._client.download_fileobj(
                self.bucket, request.key, stream, ExtraArgs=extra, Config=self._transfer_config
            )
            return DownloadResponse(key=request.key, metadata=metadata)

        response = self._client.get_object(**self._get_params(request))
        body = response["Body"]
        try:
            shutil.copyfileobj(body, stream, _COPY_CHUNK_SIZE)
        finally:
            body.close()
        return DownloadResponse(key=request.key, metadata=self._to_metadata(request.key, response))

    def _do_download_bytes(self, request: DownloadRequest) -> tuple[bytes, DownloadResponse]:
        response = self._client.get_object(**self._get_params(request))
        body = response["Body"]
        try:
            content = body.read()
        finally:
            body.close()
        return content, DownloadResponse(key=request.key, metadata=self._to_metadata(request.key, response))

    def _do_download_stream(self, request: DownloadRequest) -> DownloadResponse:
        response = self._client.get_object(**self._get_params(request))
        return DownloadResponse(
            key=request.key, metadata=self._to_metadata(request.key, response), body=response["Body"]
        )

    @staticmethod
    def _to_metadata(key: str, response: dict) -> BlobMetadata:
        etag = response.get("ETag")
        return BlobMetadata(
            key=key,
            object_size=response.get("ContentLength", 0),
            version_id=response.get("VersionId"),
            etag=etag,
            metadata=dict(response.get("Metadata") or {}),
            last_modified=response.get("LastModified"),
            md5=_md5_from_etag(etag),
            checksum_value=response.get("ChecksumCRC32C"),
            content_type=response.get("ContentType"),
        )

    # Delete / copy / metadata

    def _do_delete(self, key: str, version_id: Optional[str]) -> None:
        params = {"Bucket": self.bucket, "Key": key}
        if version_id:
            params["VersionId"] = version_id
        self._client.delete_object(**params)

    def _do_delete_many(self, identifiers: List[BlobIdentifier]) -> None:
        objects = []
        for identifier in identifiers:
            entry = {"Key": identifier.key}
            if identifier.version_id:
                entry["VersionId"] = identifier.version_id
            objects.append(entry)
        response = self._client.delete_objects(Bucket=self.bucket, Delete={"Objects": objects, "Quiet": True})
        errors = response.get("Errors") or []
        if errors:
            first = errors[0]
            log.warning("delete_objects reported %d per-object errors in %s", len(errors), self.bucket)
            raise ClientError(
                {
                    "Error": {
                        "Code": first.get("Code", ""),
                        "Message": f"{len(errors)} objects failed to delete; first was {first.get('Key')}: "
                        f"{first.get('Message', '')}",
                    },
                    "ResponseMetadata": response.get("ResponseMetadata", {}),
                },
                "DeleteObjects",
            )

    def _copy(self, src_bucket: str, src_key: str, src_version_id: Optional[str], dest_bucket: str, dest_key: str):
        source = {"Bucket": src_bucket, "Key": src_key}
        if src_version_id:
            source["VersionId"] = src_version_id
        response = self._client.copy_object(Bucket=dest_bucket, Key=dest_key, CopySource=source)
        result = response.get("CopyObjectResult", {})
        return CopyResponse(
            key=dest_key,
            version_id=response.get("VersionId"),
            etag=result.get("ETag"),
            last_modified=result.get("LastModified"),
        )

    def _do_copy(self, request: CopyRequest) -> CopyResponse:
        return self._copy(
            self.bucket, request.src_key, request.src_version_id, request.dest_bucket or self.bucket, request.dest_key
        )

    def _do_copy_from(self, request: CopyFromRequest) -> CopyResponse:
        return self._copy(request.src_bucket, request.src_key, request.src_version_id, self.bucket, request.dest_key)

    def _do_get_metadata(self, key: str, version_id: Optional[str]) -> BlobMetadata:
        params = {"Bucket": self.bucket, "Key": key}
        if version_id:
            params["VersionId"] = version_id
        return self._to_metadata(key, self._client.head_object(**params))

    # Listing

    def _do_list_page(self, request: ListBlobsPageRequest) -> ListBlobsPageResponse:
        params: dict = {"Bucket": self.bucket}
        if request.prefix:
            params["Prefix"] = request.prefix
        if request.delimiter:
            params["Delimiter"] = request.delimiter
        if request.page_token:
            params["ContinuationToken"] = request.page_token
        if request.max_results:
            params["MaxKeys"] = request.max_results
        response = self._client.list_objects_v2(**params)
        blobs = [
            BlobInfo(
                key=item["Key"],
                object_size=item.get("Size", 0),
                last_modified=item.get("LastModified"),
                etag=item.get("ETag"),
            )
            for item in response.get("Contents", [])
        ]
        return ListBlobsPageResponse(
            blobs=blobs,
            is_truncated=bool(response.get("IsTruncated")),
            next_page_token=response.get("NextContinuationToken"),
            common_prefixes=[entry["Prefix"] for entry in response.get("CommonPrefixes", [])],
        )

    # Multipart

    def _do_initiate_multipart_upload(self, request: MultipartUploadRequest) -> MultipartUpload:
        params: dict = {"Bucket": self.bucket, "Key": request.key}
        if request.metadata:
            params["Metadata"] = dict(request.metadata)
        if request.tags:
            params["Tagging"] = urlencode(request.tags)
        if request.content_type:
            params["ContentType"] = request.content_type
        if request.kms_key_id:
            params["ServerSideEncryption"] = "aws:kms"
            params["SSEKMSKeyId"] = request.kms_key_id
        response = self._client.create_multipart_upload(**params)
        return MultipartUpload(
            bucket=self.bucket,
            key=request.key,
            id=response["UploadId"],
            metadata=dict(request.metadata),
            tags=dict(request.tags),
            kms_key_id=request.kms_key_id,
        )

    def _do_upload_multipart_part(self, mpu: MultipartUpload, part: MultipartPart) -> UploadPartResponse:
        response = self._client.upload_part(
            Bucket=mpu.bucket,
            Key=mpu.key,
            UploadId=mpu.id,
            PartNumber=part.part_number,
            Body=part.content,
            ContentLength=part.size,
        )
        return UploadPartResponse(part_number=part.part_number, etag=response["ETag"], size=part.size)

    def _do_complete_multipart_upload(
        self, mpu: MultipartUpload, parts: List[UploadPartResponse]
    ) -> MultipartUploadResponse:
        response = self._client.complete_multipart_upload(
            Bucket=mpu.bucket,
            Key=mpu.key,
            UploadId=mpu.id,
            MultipartUpload={"Parts": [{"PartNumber": p.part_number, "ETag": p.etag} for p in parts]},
        )
        return MultipartUploadResponse(etag=response.get("ETag"), version_id=response.get("VersionId"))

    def _do_list_multipart_upload(self, mpu: MultipartUpload) -> List[UploadPartResponse]:
        parts: List[UploadPartResponse] = []
        params = {"Bucket": mpu.bucket, "Key": mpu.key, "UploadId": mpu.id}
        while True:
            response = self._client.list_parts(**params)
            parts.extend(
                UploadPartResponse(part_number=p["PartNumber"], etag=p["ETag"], size=p.get("Size", 0))
                for p in response.get("Parts", [])
            )
            if not response.get("IsTruncated"):
                return parts
            params["PartNumberMarker"] = response["NextPartNumberMarker"]

    def _do_abort_multipart_upload(self, mpu: MultipartUpload) -> None:
        self._client.abort_multipart_upload(Bucket=mpu.bucket, Key=mpu.key, UploadId=mpu.id)

    # Tags and presigned URLs

    def _do_get_tags(self, key: str) -> dict[str, str]:
        response = self._client.get_object_tagging(Bucket=self.bucket, Key=key)
        return {tag["Key"]: tag["Value"] for tag in response.get("TagSet", [])}

    def _do_set_tags(self, key: str, tags: dict[str, str]) -> None:
        self._client.put_object_tagging(
            Bucket=self.bucket,
            Key=key,
            Tagging={"TagSet": [{"Key": name, "Value": value} for name, value in tags.items()]},
        )

    def _do_generate_presigned_url(self, request: PresignedUrlRequest) -> str:
        params: dict = {"Bucket": self.bucket, "Key": request.key}
        if request.type == PresignedOperation.UPLOAD:
            operation = "put_object"
            if request.metadata:
                params["Metadata"] = dict(request.metadata)
            if request.tags:
                params["Tagging"] = urlencode(request.tags)
            if request.kms_key_id:
                params["ServerSideEncryption"] = "aws:kms"
                params["SSEKMSKeyId"] = request.kms_key_id
        else:
            operation = "get_object"
        return self._client.generate_presigned_url(
            operation, Params=params, ExpiresIn=int(request.duration.total_seconds())
        )

    # Existence

    def _do_does_object_exist(self, key: str, version_id: Optional[str]) -> bool:
        params = {"Bucket": self.bucket, "Key": key}
        if version_id:
            params["VersionId"] = version_id
        try:
            self._client.head_object(**params)
            return True
        except ClientError as e:
            if is_not_found(e):
                return False
            raise

    def _do_does_bucket_exist(self) -> bool:
        try:
            self._client.head_bucket(Bucket=self.bucket)
            return True
        except ClientError as e:
            if is_not_found(e):
                return False
            raise

    # Object lock

    def _lock_params(self, key: str, version_id: Optional[str]) -> dict:
        params = {"Bucket": self.bucket, "Key": key}
        if version_id:
            params["VersionId"] = version_id
        return params

    def _do_get_object_retention(self, key: str, version_id: Optional[str]) -> Optional[ObjectLockInfo]:
        try:
            response = self._client.get_object_retention(**self._lock_params(key, version_id))
        except ClientError as e:
            if error_code(e) in _NO_RETENTION_CODES:
                return None
            raise
        retention = response.get("Retention")
        if not retention or not retention.get("Mode"):
            return None
        return ObjectLockInfo(
            mode=RetentionMode(retention["Mode"]), retain_until_date=retention.get("RetainUntilDate")
        )

    def _do_get_legal_hold(self, key: str, version_id: Optional[str]) -> bool:
        try:
            response = self._client.get_object_legal_hold(**self._lock_params(key, version_id))
        except ClientError as e:
            if error_code(e) in _NO_RETENTION_CODES:
                return False
            raise
        return response.get("LegalHold", {}).get("Status") == "ON"

    def _do_put_object_retention(
        self, key: str, version_id: Optional[str], mode: RetentionMode, retain_until_date: datetime
    ) -> None:
        self._client.put_object_retention(
            **self._lock_params(key, version_id),
            Retention={"Mode": mode.value, "RetainUntilDate": retain_until_date},
            BypassGovernanceRetention=True,
        )

    def _do_put_legal_hold(self, key: str, version_id: Optional[str], legal_hold: bool) -> None:
        self._client.put_object_legal_hold(
            **self._lock_params(key, version_id), LegalHold={"Status": "ON" if legal_hold else "OFF"}
        )

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            close()


def _md5_from_etag(etag: Optional[str]) -> Optional[bytes]:
    # Multipart and SSE-KMS etags are not an MD5 of the content.
    if not etag:
        return None
    value = etag.strip('"')
    if len(value) != 32 or "-" in value:
        return None
    try:
        return bytes.fromhex(value)
    except ValueError:
        return None


def build_client_config(config: BlobStoreConfig) -> Config:
    """Translate the portable settings into a botocore ``Config``.

    Only settings that were actually set are passed on.
    """
    kwargs: dict = {"signature_version": "s3v4"}
    if config.region:
        kwargs["region_name"] = config.region
    proxies = resolve_proxies(config)
    if proxies is not None:
        kwargs["proxies"] = proxies
    if config.max_connections is not None:
        kwargs["max_pool_connections"] = config.max_connections
    if config.socket_timeout is not None:
        # zero disables the timeout, which botocore spells None
        seconds = config.socket_timeout.total_seconds() or None
        kwargs["connect_timeout"] = seconds
        kwargs["read_timeout"] = seconds
    if config.idle_connection_timeout is not None:
        kwargs["tcp_keepalive"] = True
        log.debug("idle_connection_timeout has no botocore equivalent; enabling TCP keepalive instead")

    retry = config.retry_config
    if retry is not None:
        kwargs["retries"] = {"total_max_attempts": retry.max_attempts, "mode": "standard"}
        if retry.attempt_timeout and config.socket_timeout is None:
            kwargs["connect_timeout"] = retry.attempt_timeout.total_seconds()
            kwargs["read_timeout"] = retry.attempt_timeout.total_seconds()
        if retry.mode == RetryMode.FIXED or retry.initial_delay or retry.max_delay or retry.total_timeout:
            log.debug("botocore computes its own backoff; retry delays and total_timeout are not applied")
    return Config(**kwargs)


def build_transfer_config(config: BlobStoreConfig) -> Optional[TransferConfig]:
    """``TransferConfig`` for the managed-transfer strategy, or ``None`` for plain calls."""
    if not config.parallel_downloads_enabled and not config.parallel_uploads_enabled:
        return None
    kwargs: dict = {"use_threads": True}
    if config.threshold_bytes is not None:
        kwargs["multipart_threshold"] = config.threshold_bytes
    if config.part_buffer_size is not None:
        kwargs["multipart_chunksize"] = config.part_buffer_size
    concurrency = config.max_concurrency or config.transfer_manager_thread_pool_size
    if concurrency is not None:
        kwargs["max_concurrency"] = concurrency
    return TransferConfig(**kwargs)


class AwsBlobStoreBuilder(BlobStoreBuilder[AwsBlobStore]):
    """Builds an :class:`AwsBlobStore`; every ``build()`` opens a new boto3 client."""

    provider_id = PROVIDER_ID

    def __init__(self) -> None:
        super().__init__()
        self._s3_client: Any = None

    def with_s3_client(self, s3_client: Any) -> "AwsBlobStoreBuilder":
        """Use an existing boto3 S3 client instead of creating one."""
        self._s3_client = s3_client
        return self

    def _create_s3_client(self, config: BlobStoreConfig) -> Any:
        kwargs: dict = {"config": build_client_config(config)}
        if config.endpoint:
            kwargs["endpoint_url"] = config.endpoint
        kwargs.update(resolve_credentials(config.credentials_overrider, config.region))
        for knob in ("target_throughput_in_gbps", "max_native_memory_limit_in_bytes", "initial_read_buffer_size_in_bytes"):
            if getattr(config, knob) is not None:
                log.debug("%s has no boto3 equivalent and is ignored", knob)
        return boto3.client("s3", **kwargs)

    def build(self) -> AwsBlobStore:
        config = self.to_config()
        self._validator.validate_bucket(config.bucket)
        s3_client = self._s3_client or self._create_s3_client(config)
        transfer_config = build_transfer_config(config)
        log.info(
            "Built S3 blob store for bucket=%s region=%s download strategy=%s",
            config.bucket,
            config.region,
            "managed-transfer" if config.parallel_downloads_enabled else "get-object",
        )
        return AwsBlobStore(config, s3_client, validator=self._validator, transfer_config=transfer_config)


class AwsAsyncBlobStoreBuilder(AwsBlobStoreBuilder):
    """Builds the awaitable S3 store; calls run on the configured executor."""

    def build(self) -> AsyncBlobStore:
        return AsyncBlobStore(super().build())
