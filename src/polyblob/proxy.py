"""Proxy resolution shared by every adapter.

Every adapter must honour the two opt-in/opt-out toggles in the same way, so
the decision lives here rather than in each provider module.
"""

import urllib.request

from .config import BlobStoreConfig


def resolve_proxies(config: BlobStoreConfig) -> dict[str, str] | None:
    """Return the proxy map to hand to the native client.

    ``None`` means no proxy option was configured and the native client keeps
    its own default behaviour. An empty dict means proxies were configured
    away and the client must not pick up ambient values.

    System proxy values are what the platform reports through
    ``urllib.request.getproxies()``; environment values come only from the
    ``*_PROXY`` variables. A toggle left unset counts as enabled.
    """
    if not config.has_proxy_settings:
        return None

    proxies: dict[str, str] = {}
    if config.use_system_property_proxy_values is not False:
        proxies.update(_system_proxies())
    if config.use_environment_variable_proxy_values is not False:
        proxies.update(urllib.request.getproxies_environment())
    elif config.use_system_property_proxy_values is not False:
        # getproxies() falls back to the environment on most platforms
        for scheme, url in urllib.request.getproxies_environment().items():
            if proxies.get(scheme) == url:
                del proxies[scheme]

    if config.proxy_endpoint is not None:
        proxies["http"] = config.proxy_endpoint
        proxies["https"] = config.proxy_endpoint

    proxies.pop("no", None)
    return proxies


def _system_proxies() -> dict[str, str]:
    return dict(urllib.request.getproxies())
