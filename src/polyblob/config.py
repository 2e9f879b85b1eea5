"""Immutable configuration values produced by :class:`BlobStoreBuilder`."""

from concurrent.futures import Executor
from datetime import timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import InvalidArgumentError


class RetryMode(str, Enum):
    FIXED = "FIXED"
    EXPONENTIAL = "EXPONENTIAL"


class RetryConfig(BaseModel):
    """Provider-neutral retry policy.

    Each adapter translates this into its native retry primitives at build
    time; polyblob itself never retries.
    """

    model_config = ConfigDict(frozen=True)

    mode: RetryMode = RetryMode.EXPONENTIAL
    max_attempts: int = Field(default=3, description="Total attempts, including the first")
    fixed_delay: Optional[timedelta] = Field(default=None, description="Delay between attempts in FIXED mode")
    initial_delay: Optional[timedelta] = Field(default=None, description="First backoff delay in EXPONENTIAL mode")
    max_delay: Optional[timedelta] = Field(default=None, description="Backoff ceiling in EXPONENTIAL mode")
    multiplier: float = Field(default=2.0, description="Backoff multiplier in EXPONENTIAL mode")
    attempt_timeout: Optional[timedelta] = Field(default=None, description="Timeout of a single attempt")
    total_timeout: Optional[timedelta] = Field(default=None, description="Timeout of the whole call, retries included")

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryConfig":
        if self.max_attempts < 1:
            raise InvalidArgumentError("max_attempts must be at least 1")
        if self.multiplier < 1.0:
            raise InvalidArgumentError("multiplier must be at least 1.0")
        for name in ("fixed_delay", "initial_delay", "max_delay", "attempt_timeout", "total_timeout"):
            value = getattr(self, name)
            if value is not None and value < timedelta(0):
                raise InvalidArgumentError(f"{name} must not be negative")
        if self.mode == RetryMode.FIXED and self.fixed_delay is None:
            raise InvalidArgumentError("fixed_delay is required when mode is FIXED")
        if self.initial_delay is not None and self.max_delay is not None and self.max_delay < self.initial_delay:
            raise InvalidArgumentError("max_delay must be greater than or equal to initial_delay")
        return self


class CredentialsType(str, Enum):
    SESSION = "SESSION"
    ASSUME_ROLE = "ASSUME_ROLE"
    DEFAULT = "DEFAULT"


class SessionCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_key_id: str
    secret_access_key: str
    session_token: Optional[str] = None


class CredentialsOverrider(BaseModel):
    """Replaces the ambient credential chain for one client.

    SESSION carries explicit keys, ASSUME_ROLE names a role to assume with
    the ambient credentials, DEFAULT keeps the ambient chain.
    """

    model_config = ConfigDict(frozen=True)

    type: CredentialsType = CredentialsType.DEFAULT
    session_credentials: Optional[SessionCredentials] = None
    role: Optional[str] = None
    session_name: Optional[str] = None
    duration_seconds: Optional[int] = None

    @model_validator(mode="after")
    def _check_type_fields(self) -> "CredentialsOverrider":
        if self.type == CredentialsType.SESSION and self.session_credentials is None:
            raise InvalidArgumentError("session_credentials is required for SESSION credentials")
        if self.type == CredentialsType.ASSUME_ROLE and not self.role:
            raise InvalidArgumentError("role is required for ASSUME_ROLE credentials")
        if self.duration_seconds is not None and self.duration_seconds < 900:
            raise InvalidArgumentError("duration_seconds must be at least 900")
        return self


class BlobStoreConfig(BaseModel):
    """Snapshot of everything a builder accumulated.

    Unset fields stay ``None`` so that adapters can leave the backend's own
    defaults alone.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    provider_id: str
    bucket: Optional[str] = None
    region: Optional[str] = None
    endpoint: Optional[str] = None
    proxy_endpoint: Optional[str] = None
    use_system_property_proxy_values: Optional[bool] = None
    use_environment_variable_proxy_values: Optional[bool] = None
    max_connections: Optional[int] = None
    socket_timeout: Optional[timedelta] = None
    idle_connection_timeout: Optional[timedelta] = None
    credentials_overrider: Optional[CredentialsOverrider] = None
    executor: Optional[Executor] = None
    threshold_bytes: Optional[int] = None
    part_buffer_size: Optional[int] = None
    parallel_uploads_enabled: Optional[bool] = None
    parallel_downloads_enabled: Optional[bool] = None
    target_throughput_in_gbps: Optional[float] = None
    max_native_memory_limit_in_bytes: Optional[int] = None
    initial_read_buffer_size_in_bytes: Optional[int] = None
    max_concurrency: Optional[int] = None
    transfer_manager_thread_pool_size: Optional[int] = None
    transfer_directory_max_concurrency: Optional[int] = None
    retry_config: Optional[RetryConfig] = None
    properties: dict[str, str] = Field(default_factory=dict)

    @property
    def has_proxy_settings(self) -> bool:
        return (
            self.proxy_endpoint is not None
            or self.use_system_property_proxy_values is not None
            or self.use_environment_variable_proxy_values is not None
        )

    @property
    def has_http_settings(self) -> bool:
        return (
            self.has_proxy_settings
            or self.max_connections is not None
            or self.socket_timeout is not None
            or self.idle_connection_timeout is not None
        )
