"""
Directory-level transfers built on the single-object operations of a store.

Every file (or delete batch) is an independent unit of work: one failing
unit never stops the others and the aggregated response lists only the
units that failed.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

from ..exceptions import ErrorKind, InvalidArgumentError, normalize_error
from ..models import (
    BlobIdentifier,
    BlobInfo,
    DirectoryDeleteResponse,
    DirectoryDownloadRequest,
    DirectoryDownloadResponse,
    DirectoryUploadRequest,
    DirectoryUploadResponse,
    DownloadRequest,
    FailedBlobDelete,
    FailedBlobDownload,
    FailedBlobUpload,
    ListBlobsBatch,
    ListBlobsRequest,
    UploadRequest,
)

if TYPE_CHECKING:
    from .base import AbstractBlobStore

log = logging.getLogger(__name__)

LOG_IDENTIFIER = "[DirectoryTransfer]"


def join_key(prefix: str, relative_path: str) -> str:
    """Join a key prefix and a ``/``-separated relative path with a single ``/``."""
    if not prefix:
        return relative_path
    return f"{prefix.rstrip('/')}/{relative_path}"


def plan_directory_upload(request: DirectoryUploadRequest) -> List[Tuple[Path, str]]:
    """List the (local file, target key) pairs a directory upload will transfer."""
    root = Path(request.local_source_directory)
    if not root.is_dir():
        raise InvalidArgumentError(f"Upload source is not a directory: {root}")
    candidates = root.rglob("*") if request.include_subfolders else root.glob("*")
    plan = []
    for path in sorted(candidates):
        if path.is_file():
            plan.append((path, join_key(request.prefix, path.relative_to(root).as_posix())))
    return plan


def plan_directory_download(
    request: DirectoryDownloadRequest, blobs: Iterable[BlobInfo]
) -> Tuple[List[Tuple[str, Path]], List[FailedBlobDownload]]:
    """Map listed blobs to local paths under the destination directory.

    Keys under an excluded prefix and folder placeholder keys are skipped.
    Keys that would land outside the destination are reported as failures
    without being transferred.
    """
    root = Path(request.local_destination_directory).resolve()
    prefix = request.prefix_to_download or ""
    plan: List[Tuple[str, Path]] = []
    rejected: List[FailedBlobDownload] = []
    for blob in blobs:
        key = blob.key
        if any(key.startswith(excluded) for excluded in request.prefixes_to_exclude):
            continue
        if key.endswith("/"):
            continue
        relative = key[len(prefix):].lstrip("/") if key.startswith(prefix) else key
        if not relative:
            relative = key.rsplit("/", 1)[-1]
        target = (root / relative).resolve()
        if root != target and root not in target.parents:
            rejected.append(
                FailedBlobDownload(
                    destination=target,
                    error=InvalidArgumentError(f"Key resolves outside of {root}", key=key),
                )
            )
            continue
        plan.append((key, target))
    return plan, rejected


class DirectoryTransferOrchestrator:
    """Runs directory uploads, downloads and deletes against one store.

    Work is spread over a thread pool bounded by the store's
    ``transfer_directory_max_concurrency``; ``None`` leaves the pool size to
    :class:`~concurrent.futures.ThreadPoolExecutor`.
    """

    def __init__(self, store: "AbstractBlobStore", max_concurrency: Optional[int] = None):
        self.store = store
        self.max_concurrency = max_concurrency or store.config.transfer_directory_max_concurrency

    def _executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="polyblob-directory"
        )

    def _normalize(self, error: BaseException, key: Optional[str] = None) -> BaseException:
        try:
            kind = self.store.get_exception_kind(error)
        except Exception:
            log.warning("%s Could not classify %r, treating it as unknown", LOG_IDENTIFIER, error)
            kind = ErrorKind.UNKNOWN
        return normalize_error(kind, error, key=key)

    def upload_directory(self, request: DirectoryUploadRequest) -> DirectoryUploadResponse:
        plan = plan_directory_upload(request)
        log.info(
            "%s Uploading %d files from %s to %s/%s",
            LOG_IDENTIFIER,
            len(plan),
            request.local_source_directory,
            self.store.bucket,
            request.prefix,
        )
        failed: List[FailedBlobUpload] = []
        with self._executor() as pool:
            futures = [
                (path, key, pool.submit(self._upload_file, path, key, request.tags)) for path, key in plan
            ]
            for path, key, future in futures:
                error = future.exception()
                if error is not None:
                    log.warning("%s Failed to upload %s: %s", LOG_IDENTIFIER, path, error)
                    failed.append(FailedBlobUpload(source=path, error=self._normalize(error, key)))
        return DirectoryUploadResponse(failed_transfers=failed)

    def _upload_file(self, path: Path, key: str, tags: dict) -> None:
        self.store.upload(
            UploadRequest(key=key, content_length=path.stat().st_size, tags=dict(tags)), path
        )

    def download_directory(self, request: DirectoryDownloadRequest) -> DirectoryDownloadResponse:
        blobs = list(self.store.iter_blobs(ListBlobsRequest(prefix=request.prefix_to_download)))
        plan, failed = plan_directory_download(request, blobs)
        log.info(
            "%s Downloading %d objects from %s/%s to %s",
            LOG_IDENTIFIER,
            len(plan),
            self.store.bucket,
            request.prefix_to_download,
            request.local_destination_directory,
        )
        with self._executor() as pool:
            futures = [(key, target, pool.submit(self._download_file, key, target)) for key, target in plan]
            for key, target, future in futures:
                error = future.exception()
                if error is not None:
                    log.warning("%s Failed to download %s: %s", LOG_IDENTIFIER, key, error)
                    failed.append(FailedBlobDownload(destination=target, error=self._normalize(error, key)))
        return DirectoryDownloadResponse(failed_transfers=failed)

    def _download_file(self, key: str, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        self.store.download(DownloadRequest(key=key), target)

    def delete_directory(self, prefix: str) -> DirectoryDeleteResponse:
        """Delete every object under ``prefix`` in bulk batches.

        Batches are submitted while the listing is still running. Every batch
        is attempted even after one fails. A listing failure propagates once
        the batches already submitted have finished.
        """
        limit = self.store.max_objects_per_delete
        pending: List[BlobIdentifier] = []
        submitted: List[Tuple[List[BlobIdentifier], Future]] = []

        with self._executor() as pool:

            def flush(batch: List[BlobIdentifier]) -> None:
                submitted.append((batch, pool.submit(self.store.delete_many, batch)))

            def on_batch(listed: ListBlobsBatch) -> None:
                pending.extend(BlobIdentifier(key=blob.key, version_id=blob.version_id) for blob in listed.blobs)
                while len(pending) >= limit:
                    flush(pending[:limit])
                    del pending[:limit]

            self.store.list(ListBlobsRequest(prefix=prefix), on_batch)
            if pending:
                flush(list(pending))

        deleted = 0
        failed: List[FailedBlobDelete] = []
        for batch, future in submitted:
            error = future.exception()
            if error is None:
                deleted += len(batch)
            else:
                log.warning(
                    "%s Failed to delete a batch of %d objects under %s: %s",
                    LOG_IDENTIFIER,
                    len(batch),
                    prefix,
                    error,
                )
                failed.append(FailedBlobDelete(identifiers=batch, error=self._normalize(error)))
        log.info(
            "%s Deleted %d objects under %s/%s in %d batches (%d failed)",
            LOG_IDENTIFIER,
            deleted,
            self.store.bucket,
            prefix,
            len(submitted),
            len(failed),
        )
        return DirectoryDeleteResponse(deleted_count=deleted, failed_batches=failed)
