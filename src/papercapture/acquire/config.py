"""Capture and proxy configuration management.

Stores settings in ~/.papercapture/config.json under the "capture" and
"proxy" keys, merging into whatever else the file holds.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_RETRY_OFFSETS_MS: tuple[int, ...] = (0, 1000, 2000, 3000)

# Path fragments publishers use for PDF endpoints, e.g. /pdf/10.1103/...,
# /doi/pdf/..., /epdf/...
DEFAULT_PDF_PATH_PATTERNS: tuple[str, ...] = (
    "/pdf/",
    "/pdfft/",
    "/doi/pdf/",
    "/pdfdirect/",
    "/article/pdf/",
    "/fulltext/pdf/",
    "/download",
    "/getpdf",
    "/fetchpdf",
    "/viewpdf",
    "/epdf/",
)

# Query fragments that on their own suggest a download endpoint. Over-broad:
# plenty of landing pages carry a doi parameter.
DEFAULT_WEAK_QUERY_MARKERS: tuple[str, ...] = ("doi", "urlid")


@dataclass
class ProxyConfig:
    """User's library proxy configuration."""

    proxy_type: str = ""  # "ezproxy_prefix" | "ezproxy_suffix" | "vpn"
    proxy_url: str = ""  # e.g. "https://proxy.lib.umich.edu/login?url="
    proxy_suffix: str = ""  # e.g. ".proxy.lib.umich.edu"
    institution_name: str = ""  # For display only
    enabled: bool = True

    @property
    def is_configured(self) -> bool:
        """Check if proxy is configured (has a type set)."""
        return bool(self.proxy_type)


# Presets for common institutions.
INSTITUTION_PRESETS: dict[str, ProxyConfig] = {
    "umich": ProxyConfig(
        proxy_type="ezproxy_prefix",
        proxy_url="https://proxy.lib.umich.edu/login?url=",
        institution_name="University of Michigan",
    ),
}


@dataclass
class CaptureConfig:
    """Tuning knobs for the detection engine.

    The heuristic tables are a starting configuration accreted from observed
    publisher behavior; override them here rather than in code.
    """

    retry_offsets_ms: tuple[int, ...] = DEFAULT_RETRY_OFFSETS_MS
    fetch_timeout: float = 30.0
    head_timeout: float = 15.0
    native_download_timeout: float = 60.0
    max_redirects: int = 10
    auth_challenge_statuses: tuple[int, ...] = (401, 407)
    pdf_path_patterns: tuple[str, ...] = DEFAULT_PDF_PATH_PATTERNS
    weak_query_markers: tuple[str, ...] = DEFAULT_WEAK_QUERY_MARKERS
    fallback_user_agent: str = "Mozilla/5.0"
    temp_dir: Optional[Path] = None
    proxy: ProxyConfig = field(default_factory=ProxyConfig)

    @property
    def max_attempts(self) -> int:
        return len(self.retry_offsets_ms)


def load_proxy_config() -> ProxyConfig:
    """Load proxy configuration from ~/.papercapture/config.json.

    Returns:
        ProxyConfig (may be unconfigured if no proxy settings saved).
    """
    from papercapture.state import get_config

    proxy_data = get_config().get("proxy", {})
    if not proxy_data:
        return ProxyConfig()

    return ProxyConfig(
        proxy_type=proxy_data.get("type", ""),
        proxy_url=proxy_data.get("url", ""),
        proxy_suffix=proxy_data.get("suffix", ""),
        institution_name=proxy_data.get("institution", ""),
        enabled=proxy_data.get("enabled", True),
    )


def save_proxy_config(proxy_config: ProxyConfig) -> None:
    """Save proxy configuration to ~/.papercapture/config.json.

    Merges into the existing config (doesn't overwrite other settings).
    """
    from papercapture.state import get_config, save_config

    config = get_config()
    config["proxy"] = {
        "type": proxy_config.proxy_type,
        "url": proxy_config.proxy_url,
        "suffix": proxy_config.proxy_suffix,
        "institution": proxy_config.institution_name,
        "enabled": proxy_config.enabled,
    }
    save_config(config)


def load_capture_config() -> CaptureConfig:
    """Load capture settings (and the proxy section) from the config file."""
    from papercapture.state import get_config

    data = get_config().get("capture", {})
    defaults = CaptureConfig()
    temp_dir = data.get("temp_dir")

    return CaptureConfig(
        retry_offsets_ms=tuple(data.get("retry_offsets_ms", defaults.retry_offsets_ms)),
        fetch_timeout=float(data.get("fetch_timeout", defaults.fetch_timeout)),
        head_timeout=float(data.get("head_timeout", defaults.head_timeout)),
        native_download_timeout=float(
            data.get("native_download_timeout", defaults.native_download_timeout)
        ),
        max_redirects=int(data.get("max_redirects", defaults.max_redirects)),
        auth_challenge_statuses=tuple(
            data.get("auth_challenge_statuses", defaults.auth_challenge_statuses)
        ),
        pdf_path_patterns=tuple(data.get("pdf_path_patterns", defaults.pdf_path_patterns)),
        weak_query_markers=tuple(data.get("weak_query_markers", defaults.weak_query_markers)),
        fallback_user_agent=data.get("fallback_user_agent", defaults.fallback_user_agent),
        temp_dir=Path(temp_dir) if temp_dir else None,
        proxy=load_proxy_config(),
    )


def save_capture_config(capture_config: CaptureConfig) -> None:
    """Save capture settings; the proxy section is saved alongside."""
    from papercapture.state import get_config, save_config

    config = get_config()
    config["capture"] = {
        "retry_offsets_ms": list(capture_config.retry_offsets_ms),
        "fetch_timeout": capture_config.fetch_timeout,
        "head_timeout": capture_config.head_timeout,
        "native_download_timeout": capture_config.native_download_timeout,
        "max_redirects": capture_config.max_redirects,
        "auth_challenge_statuses": list(capture_config.auth_challenge_statuses),
        "pdf_path_patterns": list(capture_config.pdf_path_patterns),
        "weak_query_markers": list(capture_config.weak_query_markers),
        "fallback_user_agent": capture_config.fallback_user_agent,
        "temp_dir": str(capture_config.temp_dir) if capture_config.temp_dir else None,
    }
    save_config(config)
    save_proxy_config(capture_config.proxy)
