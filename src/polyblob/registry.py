"""
Process-wide registry of storage providers.

Maps a provider id (``"aws"``, ``"memory"``, ...) to a factory that returns a
fresh builder for that provider. Synchronous stores, asynchronous stores and
bucket-less service clients are kept in independent tables because a
provider may implement any subset of them.

Lifecycle: the tables are filled once, on first lookup or on an explicit
:meth:`ProviderRegistry.initialize` call, from the built-in providers and the
``polyblob.providers`` / ``polyblob.async_providers`` / ``polyblob.clients``
entry-point groups. Applications may add providers with the ``register_*``
methods during start-up. After that the tables are only read, which is safe
from any thread. :meth:`ProviderRegistry.reset` drops everything and exists
for tests.
"""

import logging
import threading
from enum import Enum
from importlib.metadata import entry_points
from typing import Any, Callable, Dict

from .exceptions import InvalidArgumentError

log = logging.getLogger(__name__)

LOG_IDENTIFIER = "[ProviderRegistry]"

BuilderFactory = Callable[[], Any]


class ProviderKind(str, Enum):
    STORE = "polyblob.providers"
    ASYNC_STORE = "polyblob.async_providers"
    CLIENT = "polyblob.clients"


class ProviderRegistry:
    """Append-only tables from provider id to builder factory."""

    _tables: Dict[ProviderKind, Dict[str, BuilderFactory]] = {kind: {} for kind in ProviderKind}
    _initialized: bool = False
    _lock = threading.Lock()

    @classmethod
    def register_provider(cls, provider_id: str, factory: BuilderFactory) -> None:
        """Register the synchronous store builder factory for ``provider_id``."""
        cls._register(ProviderKind.STORE, provider_id, factory)

    @classmethod
    def register_async_provider(cls, provider_id: str, factory: BuilderFactory) -> None:
        """Register the asynchronous store builder factory for ``provider_id``."""
        cls._register(ProviderKind.ASYNC_STORE, provider_id, factory)

    @classmethod
    def register_client_provider(cls, provider_id: str, factory: BuilderFactory) -> None:
        """Register the bucket-less service client builder factory for ``provider_id``."""
        cls._register(ProviderKind.CLIENT, provider_id, factory)

    @classmethod
    def find_provider_builder(cls, provider_id: str) -> Any:
        """Return a new synchronous store builder for ``provider_id``."""
        return cls._find(ProviderKind.STORE, provider_id)

    @classmethod
    def find_async_provider_builder(cls, provider_id: str) -> Any:
        """Return a new asynchronous store builder for ``provider_id``."""
        return cls._find(ProviderKind.ASYNC_STORE, provider_id)

    @classmethod
    def find_client_builder(cls, provider_id: str) -> Any:
        """Return a new service client builder for ``provider_id``."""
        return cls._find(ProviderKind.CLIENT, provider_id)

    @classmethod
    def provider_ids(cls, kind: ProviderKind = ProviderKind.STORE) -> list[str]:
        cls.initialize()
        return sorted(cls._tables[kind])

    @classmethod
    def initialize(cls) -> None:
        """Load built-in and entry-point providers. Runs at most once."""
        if cls._initialized:
            return
        with cls._lock:
            if cls._initialized:
                return
            from .providers import register_builtin_providers

            register_builtin_providers(cls)
            for kind in ProviderKind:
                cls._load_entry_points(kind)
            cls._initialized = True
            log.info(
                "%s Initialized with providers: %s",
                LOG_IDENTIFIER,
                ", ".join(sorted(cls._tables[ProviderKind.STORE])),
            )

    @classmethod
    def reset(cls) -> None:
        """Forget every registration. Intended for test teardown."""
        with cls._lock:
            cls._tables = {kind: {} for kind in ProviderKind}
            cls._initialized = False

    @classmethod
    def _find(cls, kind: ProviderKind, provider_id: str) -> Any:
        cls.initialize()
        factory = cls._tables[kind].get(provider_id)
        if factory is None:
            known = ", ".join(sorted(cls._tables[kind])) or "none"
            raise InvalidArgumentError(
                f"No provider registered with id {provider_id!r} ({kind.name.lower()}). Known: {known}"
            )
        return factory()

    @classmethod
    def _register(cls, kind: ProviderKind, provider_id: str, factory: BuilderFactory) -> None:
        if not provider_id:
            raise InvalidArgumentError("Provider id must not be empty")
        table = cls._tables[kind]
        existing = table.get(provider_id)
        if existing is factory:
            return
        if existing is not None:
            raise InvalidArgumentError(
                f"Provider {provider_id!r} is already registered for {kind.name.lower()} with {existing!r}"
            )
        table[provider_id] = factory
        log.info(
            "%s Registered %s provider %r: %s",
            LOG_IDENTIFIER,
            kind.name.lower(),
            provider_id,
            getattr(factory, "__qualname__", repr(factory)),
        )

    @classmethod
    def _load_entry_points(cls, kind: ProviderKind) -> None:
        for entry_point in entry_points(group=kind.value):
            factory = entry_point.load()
            cls._register(kind, entry_point.name, factory)
