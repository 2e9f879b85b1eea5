"""Built-in providers."""

from . import memory
from .aws import AwsAsyncBlobStoreBuilder, AwsBlobClientBuilder, AwsBlobStoreBuilder


def register_builtin_providers(registry) -> None:
    """Register the providers that ship with polyblob on ``registry``."""
    registry.register_provider(AwsBlobStoreBuilder.provider_id, AwsBlobStoreBuilder)
    registry.register_async_provider(AwsBlobStoreBuilder.provider_id, AwsAsyncBlobStoreBuilder)
    registry.register_client_provider(AwsBlobStoreBuilder.provider_id, AwsBlobClientBuilder)
    registry.register_provider(memory.PROVIDER_ID, memory.MemoryBlobStoreBuilder)
    registry.register_async_provider(memory.PROVIDER_ID, memory.MemoryAsyncBlobStoreBuilder)
    registry.register_client_provider(memory.PROVIDER_ID, memory.MemoryBlobClientBuilder)
