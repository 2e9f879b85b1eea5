"""Mutable accumulator for adapter configuration."""

from abc import ABC, abstractmethod
from concurrent.futures import Executor
from datetime import timedelta
from typing import Any, Generic, Optional, TypeVar

from ..config import BlobStoreConfig, CredentialsOverrider, RetryConfig
from ..validation import BlobStoreValidator

T = TypeVar("T")


class BlobStoreBuilder(ABC, Generic[T]):
    """Collects settings for one provider and builds its adapter.

    Setters store values verbatim unless a universally invalid value can be
    detected right away, in which case they raise ``InvalidArgumentError``
    immediately. Provider-specific checks happen in :meth:`build`.

    A builder must stay on one thread until :meth:`build` returns. Calling
    :meth:`build` more than once on the same builder is not a supported
    contract: each provider decides what happens (the built-in ones create a
    new native client every time).
    """

    provider_id: str = ""

    def __init__(self) -> None:
        self._settings: dict[str, Any] = {}
        self._validator = BlobStoreValidator()

    @property
    def validator(self) -> BlobStoreValidator:
        return self._validator

    def with_validator(self, validator: BlobStoreValidator) -> "BlobStoreBuilder[T]":
        self._validator = validator
        return self

    def with_bucket(self, bucket: str) -> "BlobStoreBuilder[T]":
        self._settings["bucket"] = bucket
        return self

    def with_region(self, region: str) -> "BlobStoreBuilder[T]":
        self._settings["region"] = region
        return self

    def with_endpoint(self, endpoint: str) -> "BlobStoreBuilder[T]":
        self._validator.validate_endpoint(endpoint)
        self._settings["endpoint"] = endpoint
        return self

    def with_proxy_endpoint(self, proxy_endpoint: str) -> "BlobStoreBuilder[T]":
        self._validator.validate_endpoint(proxy_endpoint, is_proxy=True)
        self._settings["proxy_endpoint"] = proxy_endpoint
        return self

    def with_use_system_property_proxy_values(self, enabled: bool) -> "BlobStoreBuilder[T]":
        """Whether platform proxy settings may be used. Unset means backend default."""
        self._settings["use_system_property_proxy_values"] = enabled
        return self

    def with_use_environment_variable_proxy_values(self, enabled: bool) -> "BlobStoreBuilder[T]":
        """Whether HTTP_PROXY / HTTPS_PROXY / NO_PROXY may be used. Unset means backend default."""
        self._settings["use_environment_variable_proxy_values"] = enabled
        return self

    def with_max_connections(self, max_connections: int) -> "BlobStoreBuilder[T]":
        self._validator.validate_max_connections(max_connections)
        self._settings["max_connections"] = max_connections
        return self

    def with_socket_timeout(self, socket_timeout: timedelta) -> "BlobStoreBuilder[T]":
        """Time to wait for data on an open connection. Zero means no timeout."""
        self._validator.validate_duration(socket_timeout, "socket_timeout")
        self._settings["socket_timeout"] = socket_timeout
        return self

    def with_idle_connection_timeout(self, idle_connection_timeout: timedelta) -> "BlobStoreBuilder[T]":
        self._validator.validate_duration(idle_connection_timeout, "idle_connection_timeout")
        self._settings["idle_connection_timeout"] = idle_connection_timeout
        return self

    def with_credentials_overrider(self, credentials_overrider: CredentialsOverrider) -> "BlobStoreBuilder[T]":
        self._settings["credentials_overrider"] = credentials_overrider
        return self

    def with_executor(self, executor: Executor) -> "BlobStoreBuilder[T]":
        """Executor used by the asynchronous adapters instead of the default one."""
        self._settings["executor"] = executor
        return self

    def with_threshold_bytes(self, threshold_bytes: int) -> "BlobStoreBuilder[T]":
        self._validator.validate_positive(threshold_bytes, "threshold_bytes")
        self._settings["threshold_bytes"] = threshold_bytes
        return self

    def with_part_buffer_size(self, part_buffer_size: int) -> "BlobStoreBuilder[T]":
        self._validator.validate_positive(part_buffer_size, "part_buffer_size")
        self._settings["part_buffer_size"] = part_buffer_size
        return self

    def with_parallel_uploads_enabled(self, enabled: bool) -> "BlobStoreBuilder[T]":
        self._settings["parallel_uploads_enabled"] = enabled
        return self

    def with_parallel_downloads_enabled(self, enabled: bool) -> "BlobStoreBuilder[T]":
        self._settings["parallel_downloads_enabled"] = enabled
        return self

    def with_target_throughput_in_gbps(self, gbps: float) -> "BlobStoreBuilder[T]":
        self._validator.validate_positive(gbps, "target_throughput_in_gbps")
        self._settings["target_throughput_in_gbps"] = gbps
        return self

    def with_max_native_memory_limit_in_bytes(self, limit: int) -> "BlobStoreBuilder[T]":
        self._validator.validate_positive(limit, "max_native_memory_limit_in_bytes")
        self._settings["max_native_memory_limit_in_bytes"] = limit
        return self

    def with_initial_read_buffer_size_in_bytes(self, size: int) -> "BlobStoreBuilder[T]":
        self._validator.validate_positive(size, "initial_read_buffer_size_in_bytes")
        self._settings["initial_read_buffer_size_in_bytes"] = size
        return self

    def with_max_concurrency(self, max_concurrency: int) -> "BlobStoreBuilder[T]":
        self._validator.validate_positive(max_concurrency, "max_concurrency")
        self._settings["max_concurrency"] = max_concurrency
        return self

    def with_transfer_manager_thread_pool_size(self, size: int) -> "BlobStoreBuilder[T]":
        self._validator.validate_positive(size, "transfer_manager_thread_pool_size")
        self._settings["transfer_manager_thread_pool_size"] = size
        return self

    def with_transfer_directory_max_concurrency(self, max_concurrency: int) -> "BlobStoreBuilder[T]":
        """Upper bound on concurrent per-file transfers in directory operations."""
        self._validator.validate_positive(max_concurrency, "transfer_directory_max_concurrency")
        self._settings["transfer_directory_max_concurrency"] = max_concurrency
        return self

    def with_retry_config(self, retry_config: RetryConfig) -> "BlobStoreBuilder[T]":
        self._settings["retry_config"] = retry_config
        return self

    def with_properties(self, properties: dict[str, str]) -> "BlobStoreBuilder[T]":
        self._settings["properties"] = dict(properties)
        return self

    def get(self, name: str) -> Optional[Any]:
        return self._settings.get(name)

    def to_config(self) -> BlobStoreConfig:
        """Freeze the accumulated settings."""
        return BlobStoreConfig(provider_id=self.provider_id, **self._settings)

    @abstractmethod
    def build(self) -> T:
        """Construct the adapter and its native client."""
