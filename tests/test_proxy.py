"""Tests for library proxy URL rewriting."""

import pytest

from papercapture.acquire.config import ProxyConfig
from papercapture.acquire.proxy import (
    EZProxyPrefix,
    EZProxySuffix,
    VPNProxy,
    create_proxy,
    proxied_retry_url,
)

PREFIX = ProxyConfig(
    proxy_type="ezproxy_prefix",
    proxy_url="https://proxy.lib.umich.edu/login?url=",
    institution_name="University of Michigan",
)
SUFFIX = ProxyConfig(proxy_type="ezproxy_suffix", proxy_suffix=".proxy.lib.umich.edu")


class TestEZProxyPrefix:
    def test_rewrite(self):
        proxy = EZProxyPrefix(PREFIX)
        assert (
            proxy.rewrite_url("https://www.nature.com/articles/nature12373.pdf")
            == "https://proxy.lib.umich.edu/login?url=https://www.nature.com/articles/nature12373.pdf"
        )

    def test_already_proxied_unchanged(self):
        proxy = EZProxyPrefix(PREFIX)
        url = "https://proxy.lib.umich.edu/login?url=https://x.org/a"
        assert proxy.is_proxied(url)
        assert proxy.rewrite_url(url) == url


class TestEZProxySuffix:
    def test_rewrite(self):
        proxy = EZProxySuffix(SUFFIX)
        assert (
            proxy.rewrite_url("https://www.nature.com/articles/nature12373.pdf?x=1")
            == "https://www-nature-com.proxy.lib.umich.edu/articles/nature12373.pdf?x=1"
        )

    def test_is_proxied(self):
        proxy = EZProxySuffix(SUFFIX)
        assert proxy.is_proxied("https://www-nature-com.proxy.lib.umich.edu/articles/x")
        assert not proxy.is_proxied("https://www.nature.com/articles/x")


class TestCreateProxy:
    def test_types(self):
        assert isinstance(create_proxy(PREFIX), EZProxyPrefix)
        assert isinstance(create_proxy(SUFFIX), EZProxySuffix)
        assert isinstance(create_proxy(ProxyConfig(proxy_type="vpn")), VPNProxy)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown proxy type"):
            create_proxy(ProxyConfig(proxy_type="socks"))


class TestProxiedRetryUrl:
    def test_prefix(self):
        assert proxied_retry_url("https://x.org/a", PREFIX) == (
            "https://proxy.lib.umich.edu/login?url=https://x.org/a"
        )

    def test_not_configured(self):
        assert proxied_retry_url("https://x.org/a", ProxyConfig()) is None

    def test_disabled(self):
        config = ProxyConfig(proxy_type="ezproxy_suffix", proxy_suffix=".p.edu", enabled=False)
        assert proxied_retry_url("https://x.org/a", config) is None

    def test_already_proxied(self):
        assert proxied_retry_url("https://x-org.proxy.lib.umich.edu/a", SUFFIX) is None

    def test_vpn_has_nothing_to_rewrite(self):
        assert proxied_retry_url("https://x.org/a", ProxyConfig(proxy_type="vpn")) is None

    def test_unknown_type(self):
        assert proxied_retry_url("https://x.org/a", ProxyConfig(proxy_type="socks")) is None

    def test_no_url(self):
        assert proxied_retry_url(None, PREFIX) is None
