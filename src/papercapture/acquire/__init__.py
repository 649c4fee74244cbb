"""PDF capture engine.

Turns an authenticated browsing session plus a URL into validated PDF bytes,
trying cookie-replay fetches, native session downloads and frame probing on
a fixed retry schedule.
"""

from papercapture.acquire.config import (
    CaptureConfig,
    ProxyConfig,
    load_capture_config,
    load_proxy_config,
    save_capture_config,
    save_proxy_config,
)
from papercapture.acquire.errors import (
    AuthenticationRequired,
    CaptureError,
    NetworkError,
    NoBrowsingSession,
    NotAPDF,
)
from papercapture.acquire.orchestrator import DetectionOrchestrator
from papercapture.acquire.sniff import is_pdf

__all__ = [
    "AuthenticationRequired",
    "CaptureConfig",
    "CaptureError",
    "DetectionOrchestrator",
    "NetworkError",
    "NoBrowsingSession",
    "NotAPDF",
    "ProxyConfig",
    "is_pdf",
    "load_capture_config",
    "load_proxy_config",
    "save_capture_config",
    "save_proxy_config",
]
