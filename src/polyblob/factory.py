"""Create bucket clients from environment variables."""

import logging
import os

from .client import AsyncBucketClient, BucketClient, ClientBuilder
from .config import CredentialsOverrider, CredentialsType, SessionCredentials
from .exceptions import InvalidArgumentError

log = logging.getLogger(__name__)

DEFAULT_PROVIDER = "aws"


def create_bucket_client(bucket_name: str | None = None, provider: str | None = None) -> BucketClient:
    """Create a :class:`BucketClient` configured from the environment.

    Args:
        bucket_name: Bucket to bind the client to. Reads POLYBLOB_BUCKET if None.
        provider: Provider id. Reads POLYBLOB_PROVIDER if None. Defaults to "aws".

    Other settings come from POLYBLOB_REGION, POLYBLOB_ENDPOINT_URL,
    POLYBLOB_PROXY_URL and POLYBLOB_MAX_CONNECTIONS. AWS_ACCESS_KEY_ID,
    AWS_SECRET_ACCESS_KEY and AWS_SESSION_TOKEN, when both keys are set,
    replace the provider's default credential chain.

    Raises:
        InvalidArgumentError: If no bucket is given or a setting is invalid.
    """
    return _configure(BucketClient.builder(_provider(provider)), bucket_name).build()


def create_async_bucket_client(bucket_name: str | None = None, provider: str | None = None) -> AsyncBucketClient:
    """Async twin of :func:`create_bucket_client`."""
    return _configure(AsyncBucketClient.builder(_provider(provider)), bucket_name).build()


def _provider(provider: str | None) -> str:
    return (provider or os.getenv("POLYBLOB_PROVIDER", DEFAULT_PROVIDER)).lower()


def _configure(builder: ClientBuilder, bucket_name: str | None) -> ClientBuilder:
    bucket = bucket_name or os.getenv("POLYBLOB_BUCKET")
    if not bucket:
        raise InvalidArgumentError("A bucket name is required; pass bucket_name or set POLYBLOB_BUCKET")
    builder.with_bucket(bucket)

    region = os.getenv("POLYBLOB_REGION")
    if region:
        builder.with_region(region)
    endpoint = os.getenv("POLYBLOB_ENDPOINT_URL")
    if endpoint:
        builder.with_endpoint(endpoint)
    proxy = os.getenv("POLYBLOB_PROXY_URL")
    if proxy:
        builder.with_proxy_endpoint(proxy)
    max_connections = os.getenv("POLYBLOB_MAX_CONNECTIONS")
    if max_connections:
        try:
            pool_size = int(max_connections)
        except ValueError as e:
            raise InvalidArgumentError(f"POLYBLOB_MAX_CONNECTIONS must be an integer: {max_connections!r}") from e
        builder.with_max_connections(pool_size)

    access_key = os.getenv("AWS_ACCESS_KEY_ID")
    secret_key = os.getenv("AWS_SECRET_ACCESS_KEY")
    if access_key and secret_key:
        builder.with_credentials_overrider(
            CredentialsOverrider(
                type=CredentialsType.SESSION,
                session_credentials=SessionCredentials(
                    access_key_id=access_key,
                    secret_access_key=secret_key,
                    session_token=os.getenv("AWS_SESSION_TOKEN"),
                ),
            )
        )
    log.debug("Configured %s client for bucket %s from the environment", builder.store_builder.provider_id, bucket)
    return builder
