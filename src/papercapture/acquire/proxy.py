"""Library proxy URL rewriting.

The engine never rewrites navigation itself; the host asks for a proxied
URL when the user chooses "retry through library proxy". Supports EZproxy
prefix and suffix modes, and VPN (no rewriting).
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlparse, urlunparse

from papercapture.acquire.config import ProxyConfig

logger = logging.getLogger(__name__)


class LibraryProxy(ABC):
    """Interface for institution-specific library proxy access."""

    def __init__(self, config: ProxyConfig):
        self.config = config

    @abstractmethod
    def rewrite_url(self, url: str) -> str:
        """Transform a publisher URL to route through the proxy."""
        ...

    @abstractmethod
    def is_proxied(self, url: str) -> bool:
        """Whether ``url`` already goes through the proxy."""
        ...


class EZProxyPrefix(LibraryProxy):
    """EZproxy in prefix mode, the most common setup.

    Prepends the proxy URL to publisher URLs:
        https://www.nature.com/articles/nature12373.pdf
     -> https://proxy.lib.umich.edu/login?url=https://www.nature.com/articles/nature12373.pdf
    """

    def rewrite_url(self, url: str) -> str:
        if self.is_proxied(url):
            return url
        return self.config.proxy_url + url

    def is_proxied(self, url: str) -> bool:
        return bool(self.config.proxy_url) and url.startswith(self.config.proxy_url)


class EZProxySuffix(LibraryProxy):
    """EZproxy in suffix/hostname rewriting mode.

    Rewrites the hostname by replacing dots with dashes and appending
    the proxy suffix:
        https://www.nature.com/articles/nature12373.pdf
     -> https://www-nature-com.proxy.lib.umich.edu/articles/nature12373.pdf
    """

    def rewrite_url(self, url: str) -> str:
        if self.is_proxied(url):
            return url
        parsed = urlparse(url)
        proxied_host = (parsed.hostname or "").replace(".", "-") + self.config.proxy_suffix
        return urlunparse(parsed._replace(netloc=proxied_host))

    def is_proxied(self, url: str) -> bool:
        host = urlparse(url).hostname or ""
        suffix = self.config.proxy_suffix.lower()
        return bool(suffix) and host.lower().endswith(suffix)


class VPNProxy(LibraryProxy):
    """VPN mode: no URL rewriting needed."""

    def rewrite_url(self, url: str) -> str:
        return url

    def is_proxied(self, url: str) -> bool:
        return True


def create_proxy(config: ProxyConfig) -> LibraryProxy:
    """Factory: create a LibraryProxy from configuration.

    Raises:
        ValueError: If proxy_type is not recognized.
    """
    if config.proxy_type == "ezproxy_prefix":
        return EZProxyPrefix(config)
    elif config.proxy_type == "ezproxy_suffix":
        return EZProxySuffix(config)
    elif config.proxy_type == "vpn":
        return VPNProxy(config)
    else:
        raise ValueError(f"Unknown proxy type: {config.proxy_type}")


def proxied_retry_url(url: Optional[str], config: ProxyConfig) -> Optional[str]:
    """URL to reload through the library proxy, or None if not applicable.

    None when there is no URL, the proxy is disabled or unconfigured, or the
    URL is already proxied.
    """
    if not url or not config.enabled or not config.is_configured:
        logger.warning("Cannot retry with proxy: proxy not configured or disabled")
        return None

    try:
        proxy = create_proxy(config)
    except ValueError as e:
        logger.warning(f"Cannot retry with proxy: {e}")
        return None

    if proxy.is_proxied(url):
        logger.warning(f"Cannot retry with proxy: already proxied ({url})")
        return None

    proxied = proxy.rewrite_url(url)
    if proxied == url:
        return None
    logger.info(f"Retrying with proxy: {proxied}")
    return proxied
