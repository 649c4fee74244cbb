"""Tests for config persistence under PAPERCAPTURE_HOME."""

import json
from pathlib import Path

from papercapture.acquire.config import (
    DEFAULT_RETRY_OFFSETS_MS,
    CaptureConfig,
    ProxyConfig,
    load_capture_config,
    load_proxy_config,
    save_capture_config,
    save_proxy_config,
)
from papercapture.state import get_cache_dir, get_config, get_config_path, save_config


class TestState:
    def test_home_override(self, isolated_home):
        assert get_cache_dir() == isolated_home
        assert isolated_home.is_dir()
        assert get_config_path() == isolated_home / "config.json"

    def test_missing_config(self, isolated_home):
        assert get_config() == {}

    def test_unreadable_config(self, isolated_home):
        get_config_path().write_text("{not json")
        assert get_config() == {}

    def test_round_trip(self, isolated_home):
        save_config({"a": 1})
        assert get_config() == {"a": 1}


class TestCaptureConfig:
    def test_defaults(self):
        config = CaptureConfig()
        assert config.retry_offsets_ms == (0, 1000, 2000, 3000)
        assert config.max_attempts == 4
        assert config.auth_challenge_statuses == (401, 407)
        assert "/epdf/" in config.pdf_path_patterns

    def test_load_without_file(self, isolated_home):
        config = load_capture_config()
        assert config.retry_offsets_ms == DEFAULT_RETRY_OFFSETS_MS
        assert not config.proxy.is_configured

    def test_round_trip(self, isolated_home, tmp_path):
        config = CaptureConfig(
            retry_offsets_ms=(0, 500),
            fetch_timeout=10.0,
            pdf_path_patterns=("/pdf/",),
            weak_query_markers=(),
            temp_dir=tmp_path / "tmp",
            proxy=ProxyConfig(proxy_type="vpn", institution_name="Test U"),
        )
        save_capture_config(config)

        loaded = load_capture_config()
        assert loaded.retry_offsets_ms == (0, 500)
        assert loaded.max_attempts == 2
        assert loaded.fetch_timeout == 10.0
        assert loaded.pdf_path_patterns == ("/pdf/",)
        assert loaded.weak_query_markers == ()
        assert loaded.temp_dir == Path(tmp_path / "tmp")
        assert loaded.proxy.proxy_type == "vpn"
        assert loaded.proxy.institution_name == "Test U"

    def test_partial_capture_section(self, isolated_home):
        save_config({"capture": {"max_redirects": 3}})
        loaded = load_capture_config()
        assert loaded.max_redirects == 3
        assert loaded.fetch_timeout == 30.0


class TestProxyConfig:
    def test_save_merges_with_existing(self, isolated_home):
        save_config({"other": "kept"})
        save_proxy_config(
            ProxyConfig(proxy_type="ezproxy_prefix", proxy_url="https://p.edu/login?url=")
        )

        data = json.loads(get_config_path().read_text())
        assert data["other"] == "kept"
        assert data["proxy"]["type"] == "ezproxy_prefix"

        loaded = load_proxy_config()
        assert loaded.is_configured
        assert loaded.proxy_url == "https://p.edu/login?url="
        assert loaded.enabled

    def test_unconfigured(self):
        assert not ProxyConfig().is_configured
