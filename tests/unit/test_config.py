"""Unit tests for configuration models and proxy resolution."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from polyblob.config import (
    BlobStoreConfig,
    CredentialsOverrider,
    CredentialsType,
    RetryConfig,
    RetryMode,
    SessionCredentials,
)
from polyblob.exceptions import BlobStoreError, InvalidArgumentError
from polyblob.proxy import resolve_proxies


class TestRetryConfig:
    def test_defaults(self):
        config = RetryConfig()
        assert config.mode is RetryMode.EXPONENTIAL
        assert config.max_attempts == 3

    def test_max_attempts_must_be_at_least_one(self):
        with pytest.raises(InvalidArgumentError):
            RetryConfig(max_attempts=0)

    def test_multiplier_must_be_at_least_one(self):
        with pytest.raises(InvalidArgumentError):
            RetryConfig(multiplier=0.5)

    def test_fixed_mode_requires_delay(self):
        with pytest.raises(InvalidArgumentError, match="fixed_delay"):
            RetryConfig(mode=RetryMode.FIXED)
        RetryConfig(mode=RetryMode.FIXED, fixed_delay=timedelta(seconds=1))

    def test_negative_delays_are_rejected(self):
        with pytest.raises(InvalidArgumentError):
            RetryConfig(initial_delay=timedelta(seconds=-1))

    def test_max_delay_must_not_be_below_initial_delay(self):
        with pytest.raises(InvalidArgumentError, match="max_delay"):
            RetryConfig(initial_delay=timedelta(seconds=5), max_delay=timedelta(seconds=1))

    def test_invalid_values_are_blob_store_errors(self):
        with pytest.raises(BlobStoreError) as exc_info:
            RetryConfig(max_attempts=0)
        assert not isinstance(exc_info.value, ValidationError)


class TestCredentialsOverrider:
    def test_session_requires_credentials(self):
        with pytest.raises(InvalidArgumentError):
            CredentialsOverrider(type=CredentialsType.SESSION)

    def test_assume_role_requires_role(self):
        with pytest.raises(InvalidArgumentError):
            CredentialsOverrider(type=CredentialsType.ASSUME_ROLE)

    def test_assume_role_duration_lower_bound(self):
        with pytest.raises(InvalidArgumentError, match="duration_seconds"):
            CredentialsOverrider(type=CredentialsType.ASSUME_ROLE, role="arn:aws:iam::1:role/r", duration_seconds=60)

    def test_session_credentials(self):
        overrider = CredentialsOverrider(
            type=CredentialsType.SESSION,
            session_credentials=SessionCredentials(access_key_id="AK", secret_access_key="SK"),
        )
        assert overrider.session_credentials.session_token is None


class TestBlobStoreConfig:
    def test_unset_fields_stay_none(self):
        config = BlobStoreConfig(provider_id="memory", bucket="b1")
        assert config.region is None
        assert config.max_connections is None
        assert config.retry_config is None
        assert not config.has_proxy_settings
        assert not config.has_http_settings

    def test_is_frozen(self):
        config = BlobStoreConfig(provider_id="memory", bucket="b1")
        with pytest.raises(ValidationError):
            config.bucket = "b2"

    def test_http_settings_include_pool_size(self):
        assert BlobStoreConfig(provider_id="aws", max_connections=10).has_http_settings


class TestResolveProxies:
    @pytest.fixture()
    def proxy_env(self):
        with patch("polyblob.proxy.urllib.request.getproxies_environment") as env, patch(
            "polyblob.proxy.urllib.request.getproxies"
        ) as system:
            env.return_value = {"http": "http://env-proxy:3128", "no": "localhost"}
            system.return_value = {"http": "http://env-proxy:3128", "https": "http://sys-proxy:8080"}
            yield env, system

    def test_returns_none_without_proxy_settings(self, proxy_env):
        assert resolve_proxies(BlobStoreConfig(provider_id="aws")) is None

    def test_explicit_endpoint_overrides_ambient_values(self, proxy_env):
        config = BlobStoreConfig(provider_id="aws", proxy_endpoint="http://explicit:1080")
        proxies = resolve_proxies(config)
        assert proxies["http"] == "http://explicit:1080"
        assert proxies["https"] == "http://explicit:1080"
        assert "no" not in proxies

    def test_both_sources_disabled(self, proxy_env):
        config = BlobStoreConfig(
            provider_id="aws",
            use_system_property_proxy_values=False,
            use_environment_variable_proxy_values=False,
        )
        assert resolve_proxies(config) == {}

    def test_environment_only(self, proxy_env):
        config = BlobStoreConfig(provider_id="aws", use_system_property_proxy_values=False)
        assert resolve_proxies(config) == {"http": "http://env-proxy:3128"}

    def test_system_only_drops_environment_values(self, proxy_env):
        config = BlobStoreConfig(provider_id="aws", use_environment_variable_proxy_values=False)
        assert resolve_proxies(config) == {"https": "http://sys-proxy:8080"}
