"""Helpers that drive a whole multipart upload from a single source."""

import asyncio
import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, BinaryIO, Iterator, List, Optional, Set, Union

from ..exceptions import InvalidArgumentError
from ..models import MultipartPart, MultipartUploadRequest, MultipartUploadResponse, UploadPartResponse

log = logging.getLogger(__name__)

DEFAULT_PART_SIZE = 8 * 1024 * 1024
DEFAULT_WINDOW = 4


def iter_parts(source: Union[bytes, BinaryIO], part_size: int = DEFAULT_PART_SIZE) -> Iterator[MultipartPart]:
    """Cut ``source`` into numbered in-memory parts of ``part_size`` bytes.

    The last part may be shorter. An empty source yields one empty part so
    that the upload can still be completed.
    """
    if part_size < 1:
        raise InvalidArgumentError(f"part_size must be positive, got {part_size}")
    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
        chunks = (data[i : i + part_size] for i in range(0, len(data), part_size))
    else:
        chunks = iter(lambda: source.read(part_size), b"")

    part_number = 0
    for chunk in chunks:
        part_number += 1
        yield MultipartPart(part_number=part_number, content=chunk, content_length=len(chunk))
    if part_number == 0:
        yield MultipartPart(part_number=1, content=b"", content_length=0)


def upload_in_parts(
    client: Any,
    request: MultipartUploadRequest,
    source: Union[bytes, BinaryIO],
    part_size: int = DEFAULT_PART_SIZE,
    max_workers: Optional[int] = None,
) -> MultipartUploadResponse:
    """Upload ``source`` through the multipart state machine of ``client``.

    ``client`` is a bucket client or a store. Parts are uploaded concurrently
    with at most ``max_workers`` in flight (and as many more buffered). If any
    step fails the upload is aborted before the error is re-raised.
    """
    mpu = client.initiate_multipart_upload(request)
    log.debug("Started multipart upload %s for %s", mpu.id, mpu.key)
    try:
        responses: List[UploadPartResponse] = []
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="polyblob-part") as pool:
            window = (max_workers or DEFAULT_WINDOW) * 2
            in_flight: Set[Future] = set()
            for part in iter_parts(source, part_size):
                if len(in_flight) >= window:
                    done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                    responses.extend(future.result() for future in done)
                in_flight.add(pool.submit(client.upload_multipart_part, mpu, part))
            responses.extend(future.result() for future in in_flight)
        return client.complete_multipart_upload(mpu, responses)
    except BaseException:
        _abort_quietly(client, mpu)
        raise


def _abort_quietly(client: Any, mpu) -> None:
    try:
        client.abort_multipart_upload(mpu)
        log.info("Aborted multipart upload %s for %s", mpu.id, mpu.key)
    except Exception as abort_error:
        log.warning("Failed to abort multipart upload %s for %s: %s", mpu.id, mpu.key, abort_error)


async def upload_in_parts_async(
    client: Any,
    request: MultipartUploadRequest,
    source: Union[bytes, BinaryIO],
    part_size: int = DEFAULT_PART_SIZE,
    max_concurrency: int = 4,
) -> MultipartUploadResponse:
    """Async counterpart of :func:`upload_in_parts` for async bucket clients."""
    mpu = await client.initiate_multipart_upload(request)
    semaphore = asyncio.Semaphore(max_concurrency)

    async def send(part: MultipartPart) -> UploadPartResponse:
        async with semaphore:
            return await client.upload_multipart_part(mpu, part)

    try:
        responses = await asyncio.gather(*(send(part) for part in iter_parts(source, part_size)))
        return await client.complete_multipart_upload(mpu, responses)
    except BaseException:
        try:
            await client.abort_multipart_upload(mpu)
            log.info("Aborted multipart upload %s for %s", mpu.id, mpu.key)
        except Exception as abort_error:
            log.warning("Failed to abort multipart upload %s for %s: %s", mpu.id, mpu.key, abort_error)
        raise
