"""Input validation shared by builders and adapters."""

from collections.abc import Iterable, Mapping
from datetime import timedelta
from urllib.parse import urlparse

from .exceptions import InvalidArgumentError
from .models import (
    BlobIdentifier,
    DownloadRequest,
    MultipartPart,
    MultipartUpload,
    UploadPartResponse,
)

_ALLOWED_SCHEMES = ("http", "https")


class BlobStoreValidator:
    """Fail-fast checks for values whose valid range does not depend on the provider.

    Builders call it from their setters so that a bad value is rejected where
    it is set, not when the client is built. Providers may pass a subclass to
    tighten the rules.
    """

    def validate_endpoint(self, endpoint: str | None, is_proxy: bool = False) -> None:
        if endpoint is None:
            return
        label = "proxy endpoint" if is_proxy else "endpoint"
        parsed = urlparse(endpoint)
        if parsed.scheme not in _ALLOWED_SCHEMES:
            raise InvalidArgumentError(f"The {label} scheme must be http or https: {endpoint!r}")
        if not parsed.hostname:
            raise InvalidArgumentError(f"The {label} must be an absolute URI with a host: {endpoint!r}")
        if is_proxy and parsed.path not in ("", "/"):
            raise InvalidArgumentError(f"The proxy endpoint must not contain a path: {endpoint!r}")

    def validate_max_connections(self, max_connections: int | None) -> None:
        if max_connections is not None and max_connections < 1:
            raise InvalidArgumentError(f"max_connections must be at least 1, got {max_connections}")

    def validate_duration(self, duration: timedelta | None, name: str = "duration") -> None:
        if duration is None:
            return
        if not isinstance(duration, timedelta):
            raise InvalidArgumentError(f"{name} must be a timedelta, got {type(duration).__name__}")
        if duration < timedelta(0):
            raise InvalidArgumentError(f"{name} must not be negative")

    def validate_positive(self, value: int | float | None, name: str) -> None:
        if value is not None and value <= 0:
            raise InvalidArgumentError(f"{name} must be positive, got {value}")

    def validate_bucket(self, bucket: str | None) -> None:
        if not bucket or not bucket.strip():
            raise InvalidArgumentError("A bucket name is required")

    def validate_key(self, key: str | None) -> None:
        if not key:
            raise InvalidArgumentError("Blob key must not be empty")

    def validate_keys(self, identifiers: Iterable[BlobIdentifier]) -> None:
        for identifier in identifiers:
            self.validate_key(identifier.key)

    def validate_range(self, request: DownloadRequest) -> None:
        start, end = request.start, request.end
        if start is not None and start < 0:
            raise InvalidArgumentError(f"Range start must not be negative, got {start}", key=request.key)
        if end is not None and end < 0:
            raise InvalidArgumentError(f"Range end must not be negative, got {end}", key=request.key)
        if start is not None and end is not None and end < start:
            raise InvalidArgumentError(
                f"Range end ({end}) must not be before range start ({start})", key=request.key
            )

    def validate_tags(self, tags: Mapping[str, str] | None) -> None:
        if not tags:
            return
        for name, value in tags.items():
            if not name:
                raise InvalidArgumentError("Tag names must not be empty")
            if value is None:
                raise InvalidArgumentError(f"Tag {name!r} has no value")

    def validate_multipart_upload(self, mpu: MultipartUpload, bucket: str | None) -> None:
        if not mpu.id:
            raise InvalidArgumentError("Multipart upload id must not be empty", key=mpu.key)
        if bucket is not None and mpu.bucket != bucket:
            raise InvalidArgumentError(
                f"Multipart upload belongs to bucket {mpu.bucket!r}, not {bucket!r}", key=mpu.key
            )
        self.validate_key(mpu.key)

    def validate_part(self, part: MultipartPart, max_part_number: int) -> None:
        if not 1 <= part.part_number <= max_part_number:
            raise InvalidArgumentError(
                f"Part number must be between 1 and {max_part_number}, got {part.part_number}"
            )
        if not isinstance(part.content, (bytes, bytearray, memoryview)) and part.content_length is None:
            raise InvalidArgumentError(
                f"Part {part.part_number} is a stream and needs a content_length"
            )

    def validate_parts_for_completion(self, parts: Iterable[UploadPartResponse]) -> None:
        seen: set[int] = set()
        count = 0
        for part in parts:
            count += 1
            if part.part_number in seen:
                raise InvalidArgumentError(f"Part number {part.part_number} was submitted more than once")
            if not part.etag:
                raise InvalidArgumentError(f"Part {part.part_number} has no etag")
            seen.add(part.part_number)
        if count == 0:
            raise InvalidArgumentError("At least one part is required to complete a multipart upload")

    def validate_presign_duration(self, duration: timedelta) -> None:
        if duration is None or duration <= timedelta(0):
            raise InvalidArgumentError("Presigned URL duration must be positive")
