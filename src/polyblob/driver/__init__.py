"""Provider-facing building blocks: builder, adapter base classes and transfer helpers."""

from .async_store import AsyncBlobStore
from .base import AbstractBlobStore
from .builder import BlobStoreBuilder
from .directory import DirectoryTransferOrchestrator
from .multipart import upload_in_parts, upload_in_parts_async
from .service import AbstractBlobClient

__all__ = [
    "AbstractBlobClient",
    "AbstractBlobStore",
    "AsyncBlobStore",
    "BlobStoreBuilder",
    "DirectoryTransferOrchestrator",
    "upload_in_parts",
    "upload_in_parts_async",
]
