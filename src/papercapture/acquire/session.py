"""Playwright browsing session adapter.

Wraps a Playwright page (async API) as a ``BrowsingSession`` and feeds its
navigation events to a DetectionOrchestrator. The user drives the browser,
including any proxy login (Shibboleth, CAS, Duo MFA, etc.); acquisitions run
on every finished top-level page load that is not an auth page.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, Optional
from urllib.parse import unquote, urlparse

from papercapture.interfaces import (
    DownloadEvent,
    DownloadFailed,
    DownloadFinished,
    DownloadProgress,
)
from papercapture.models import PageInspection, ResponseSignal

if TYPE_CHECKING:
    from papercapture.acquire.orchestrator import DetectionOrchestrator

logger = logging.getLogger(__name__)

# Domains / URL fragments that indicate we're still on an auth page.
# These match the IdP / SSO / MFA intermediaries, NOT the proxy itself.
_AUTH_DOMAINS = [
    "weblogin.",
    "shibboleth.",
    "idp.",
    "duosecurity.com",
    "duo.com",
    "cas/login",
    "saml",
    "simplesaml",
    "adfs.",
    "login.microsoftonline.com",
    "accounts.google.com",
]

# Domains that are part of the proxy or auth infrastructure, not the target
_PROXY_DOMAINS = [
    "proxy.lib.",
    "ezproxy.",
    "libproxy.",
]

# True when the page looks like a browser PDF viewer rather than HTML
_NATIVE_DISPLAY_SCRIPT = """
() => {
    if (document.contentType === 'application/pdf' ||
        document.contentType === 'application/x-pdf') {
        return true;
    }
    if (document.querySelector('embed[type="application/pdf"]')) return true;

    var embeds = document.getElementsByTagName('embed');
    if (embeds.length === 1) {
        var rect = embeds[0].getBoundingClientRect();
        if (rect.width > window.innerWidth * 0.9 &&
            rect.height > window.innerHeight * 0.9) {
            return true;
        }
    }

    // Chromium's viewer
    if (document.querySelector('pdf-viewer') || document.querySelector('embed#plugin')) {
        return true;
    }

    if (document.body && document.body.children.length <= 2) {
        var text = document.body.innerText || '';
        if (text.trim().length < 50) return true;
    }
    return document.documentElement.outerHTML.length < 1000;
}
"""

# Classifies the DOM; kinds match PageInspection.kind
_INSPECT_SCRIPT = """
() => {
    var result = { type: 'none', urls: [], title: document.title || '' };

    if (document.contentType === 'application/pdf' ||
        document.contentType === 'application/x-pdf') {
        result.type = 'content_type';
        result.urls.push(window.location.href);
        return result;
    }

    var embeds = document.querySelectorAll(
        'embed[type="application/pdf"], embed[type="application/x-pdf"]');
    if (embeds.length >= 1) {
        result.type = 'embed';
        embeds.forEach(function (e) { if (e.src) result.urls.push(e.src); });
        return result;
    }

    var objects = document.querySelectorAll(
        'object[type="application/pdf"], object[type="application/x-pdf"]');
    if (objects.length >= 1) {
        result.type = 'object';
        objects.forEach(function (o) { if (o.data) result.urls.push(o.data); });
        return result;
    }

    if (document.querySelector('#viewer.pdfViewer') || document.querySelector('.pdfViewer')) {
        result.type = 'pdfjs';
        result.urls.push(window.location.href);
        return result;
    }

    if (document.querySelectorAll(
            '[class*="pdf"][class*="viewer"], [id*="pdf"][id*="viewer"]').length >= 1) {
        result.type = 'plugin';
        result.urls.push(window.location.href);
        return result;
    }

    var frames = [];
    document.querySelectorAll('iframe').forEach(function (f) {
        var src = f.src;
        if (src && !src.startsWith('about:') && !src.startsWith('javascript:')) {
            frames.push(src);
        }
    });
    if (frames.length > 0) {
        result.type = 'iframe_candidate';
        result.urls = frames;
        return result;
    }

    if (document.body && document.body.children.length <= 2) {
        var bodyText = document.body.innerText || '';
        if (bodyText.length < 100) {
            result.type = 'minimal';
            result.urls.push(window.location.href);
        }
    }
    return result;
}
"""

_DISPOSITION_FILENAME = re.compile(
    r"filename\*?=(?:UTF-8'')?[\"']?([^\"';]+)[\"']?", re.IGNORECASE
)


def is_still_authenticating(url: Optional[str]) -> bool:
    """Check if the browser is still on an auth/login page.

    Returns True when the URL is on an IdP (Shibboleth, Duo, CAS)
    or on the proxy's own login path. Returns False once the browser
    has reached any content page, including proxied content like
    ``www-nature-com.proxy.lib.umich.edu``.
    """
    if not url:
        return True

    url_lower = url.lower()

    if any(indicator in url_lower for indicator in _AUTH_DOMAINS):
        return True

    # e.g. proxy.lib.umich.edu/login?url=...
    parsed = urlparse(url_lower)
    host = parsed.hostname or ""
    path = parsed.path or ""

    for proxy_domain in _PROXY_DOMAINS:
        if proxy_domain in host and "/login" in path:
            return True

    # about:blank or empty
    if not host or host == "about":
        return True

    return False


def filename_from_disposition(disposition: Optional[str]) -> str:
    """Extract the filename from a Content-Disposition header, or ""."""
    if not disposition:
        return ""
    match = _DISPOSITION_FILENAME.search(disposition)
    if not match:
        return ""
    return unquote(match.group(1).strip())


class PlaywrightBrowsingSession:
    """A ``BrowsingSession`` backed by a Playwright page.

    Native downloads go through the browser context's request API, which
    shares the context's cookies and proxy authentication.

    Args:
        page: Playwright ``Page`` (async API).
        download_timeout: Timeout for native downloads, in seconds.
        max_redirects: Redirect limit for native downloads.
    """

    def __init__(self, page, download_timeout: float = 60.0, max_redirects: int = 10):
        self.page = page
        self.context = page.context
        self.download_timeout = download_timeout
        self.max_redirects = max_redirects
        self._title = ""
        self._last_signal: Optional[ResponseSignal] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def current_url(self) -> Optional[str]:
        url = self.page.url
        if not url or url == "about:blank":
            return None
        return url

    @property
    def title(self) -> str:
        return self._title

    async def user_agent(self) -> str:
        return await self.page.evaluate("() => navigator.userAgent")

    async def cookie_jar_snapshot(self) -> list[dict]:
        return [dict(c) for c in await self.context.cookies()]

    async def probe_native_display(self) -> bool:
        return bool(await self.page.evaluate(_NATIVE_DISPLAY_SCRIPT))

    async def inspect_page(self) -> PageInspection:
        result = await self.page.evaluate(_INSPECT_SCRIPT) or {}
        self._title = result.get("title", "") or self._title
        return PageInspection(
            kind=result.get("type", "none"),
            urls=[u for u in result.get("urls", []) if u],
        )

    async def native_download(
        self, url: str, headers: dict[str, str], destination: Path
    ) -> AsyncIterator[DownloadEvent]:
        """Download ``url`` with the context's own network stack.

        Uses the browser context's request API: same cookies, but no
        rendering, so headless Chromium cannot swallow an inline PDF.
        """
        try:
            resp = await self.context.request.get(
                url,
                headers=headers,
                max_redirects=self.max_redirects,
                timeout=self.download_timeout * 1000,
            )
        except Exception as e:
            yield DownloadFailed(error=str(e))
            return

        try:
            if not resp.ok:
                yield DownloadFailed(error=f"HTTP {resp.status}")
                return

            body = await resp.body()
            length = resp.headers.get("content-length", "")
            expected = int(length) if length.isdigit() else None
            yield DownloadProgress(received=len(body), expected=expected or len(body))

            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(body)
            yield DownloadFinished(
                suggested_filename=filename_from_disposition(
                    resp.headers.get("content-disposition")
                )
            )
        finally:
            await resp.dispose()

    async def render_page_pdf(self) -> bytes:
        """Print the page to PDF. Only supported by headless Chromium."""
        return await self.page.pdf(print_background=True)

    # --- Event wiring ---

    def attach(self, orchestrator: "DetectionOrchestrator") -> None:
        """Forward this page's navigation events to ``orchestrator``."""

        def _on_request(request):
            if not request.is_navigation_request() or request.frame != self.page.main_frame:
                return
            if request.redirected_from is None:
                self._last_signal = None
                orchestrator.navigation_started(request.url)
            else:
                orchestrator.record_redirect(request.url)

        def _on_response(response):
            request = response.request
            if not request.is_navigation_request() or response.frame != self.page.main_frame:
                return
            if 300 <= response.status < 400:
                return
            self._last_signal = ResponseSignal.from_headers(
                response.url, response.status, response.headers
            )

        def _on_load(page):
            url = self.current_url
            if is_still_authenticating(url):
                logger.debug(f"Skipping detection on auth page: {url}")
                return
            orchestrator.start_acquisition(self._last_signal)

        def _on_download(download):
            # Chromium turns attachment responses into downloads instead of a page load
            logger.info(f"Browser started a download: {download.url}")
            task = asyncio.create_task(orchestrator.capture_url(download.url))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        self.page.on("request", _on_request)
        self.page.on("response", _on_response)
        self.page.on("load", _on_load)
        self.page.on("download", _on_download)
