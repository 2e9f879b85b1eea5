import pytest

from polyblob.client import BucketClient
from polyblob.providers.memory import MemoryBackend, MemoryBlobStoreBuilder
from polyblob.registry import ProviderRegistry


@pytest.fixture(autouse=True)
def reset_registry():
    ProviderRegistry.reset()
    yield
    ProviderRegistry.reset()


@pytest.fixture()
def backend():
    return MemoryBackend()


@pytest.fixture()
def memory_store(backend):
    return MemoryBlobStoreBuilder().with_backend(backend).with_bucket("test-bucket").build()


@pytest.fixture()
def bucket_client(memory_store):
    return BucketClient(memory_store)
