"""HTTP fetches that replay the browsing session's cookies.

Ordinary HTTP clients cannot see the cookie store of the embedded browser,
so every fetch re-derives a cookie jar from a fresh snapshot of it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

import requests
from requests.cookies import RequestsCookieJar, create_cookie

from papercapture.acquire.config import CaptureConfig
from papercapture.acquire.errors import AuthenticationRequired, NetworkError
from papercapture.interfaces import BrowsingSession

logger = logging.getLogger(__name__)

PERMISSIVE_ACCEPT = "application/pdf,*/*"
PDF_ACCEPT = "application/pdf"


@dataclass
class FetchResponse:
    """Body and metadata of one fetch."""

    data: bytes
    url: str  # final URL after redirects
    status_code: int
    content_type: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


def build_cookie_jar(cookies: list[dict]) -> RequestsCookieJar:
    """Convert browser cookie dicts (Playwright format) to a requests jar.

    Cookies without a name or domain are skipped. An ``expires`` of -1 or
    missing marks a session cookie.
    """
    jar = RequestsCookieJar()
    for cookie in cookies:
        name = cookie.get("name")
        domain = cookie.get("domain")
        if not name or not domain:
            continue
        expires = cookie.get("expires")
        rest = {"HttpOnly": None} if cookie.get("httpOnly") else {}
        jar.set_cookie(
            create_cookie(
                name,
                cookie.get("value", ""),
                domain=domain,
                path=cookie.get("path", "/"),
                secure=bool(cookie.get("secure", False)),
                expires=int(expires) if expires is not None and expires >= 0 else None,
                rest=rest,
            )
        )
    return jar


class AuthenticatedFetcher:
    """Fetches URLs with the browsing session's cookies and user agent.

    Two Accept variants: ``PERMISSIVE_ACCEPT`` for ordinary fetches and
    ``PDF_ACCEPT`` for servers that branch on content negotiation.

    Args:
        session: Host browsing session to snapshot cookies from.
        config: Timeouts, redirect limit and auth-challenge statuses.
    """

    def __init__(self, session: BrowsingSession, config: Optional[CaptureConfig] = None):
        self.session = session
        self.config = config or CaptureConfig()

    async def fetch(self, url: str, accept: str = PERMISSIVE_ACCEPT) -> FetchResponse:
        """GET ``url``. Raises NetworkError on transport failure."""
        return await self._send("GET", url, accept, self.config.fetch_timeout)

    async def head(self, url: str) -> FetchResponse:
        """HEAD ``url`` to read its declared content type."""
        return await self._send("HEAD", url, PERMISSIVE_ACCEPT, self.config.head_timeout)

    async def _snapshot(self) -> tuple[list[dict], str]:
        """Copy cookies and user agent at call time; never hold live references."""
        try:
            cookies = [dict(c) for c in await self.session.cookie_jar_snapshot()]
        except Exception as e:
            logger.warning(f"Cookie snapshot failed, fetching without cookies: {e}")
            cookies = []
        try:
            user_agent = await self.session.user_agent()
        except Exception as e:
            logger.debug(f"User agent unavailable: {e}")
            user_agent = ""
        return cookies, user_agent or self.config.fallback_user_agent

    async def _send(self, method: str, url: str, accept: str, timeout: float) -> FetchResponse:
        cookies, user_agent = await self._snapshot()
        headers = {"Accept": accept, "User-Agent": user_agent}
        logger.debug(f"{method} {url} with {len(cookies)} cookies (Accept: {accept})")
        return await asyncio.to_thread(self._request, method, url, headers, cookies, timeout)

    def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        cookies: list[dict],
        timeout: float,
    ) -> FetchResponse:
        try:
            with requests.Session() as http:
                http.cookies = build_cookie_jar(cookies)
                http.max_redirects = self.config.max_redirects
                resp = http.request(
                    method, url, headers=headers, timeout=timeout, allow_redirects=True
                )
        except requests.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}", url=url) from e

        content_type = resp.headers.get("Content-Type", "")
        logger.debug(f"Response {resp.status_code} for {url}, type: {content_type or 'unknown'}")

        if resp.status_code in self.config.auth_challenge_statuses:
            raise AuthenticationRequired(
                f"{url} answered {resp.status_code}", url=url, status_code=resp.status_code
            )

        return FetchResponse(
            data=resp.content if method != "HEAD" else b"",
            url=resp.url or url,
            status_code=resp.status_code,
            content_type=content_type,
            headers=dict(resp.headers),
        )
