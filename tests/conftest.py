"""Shared pytest configuration and fixtures."""

import asyncio

import pytest

from papercapture.acquire.errors import NetworkError
from papercapture.acquire.fetcher import PERMISSIVE_ACCEPT, FetchResponse
from papercapture.interfaces import DownloadFailed, DownloadFinished, DownloadProgress
from papercapture.models import PageInspection

PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"
HTML_BYTES = b"<!DOCTYPE html><html><head><title>Sign in</title></head><body></body></html>"

# Marker for FakeBrowsingSession.downloads: write partial bytes, then never finish
HANG = "hang"


# ---------------------------------------------------------------------------
# Fake host session
# ---------------------------------------------------------------------------


class FakeBrowsingSession:
    """In-memory BrowsingSession.

    ``downloads`` maps URL to PDF/HTML bytes, a DownloadFailed, an exception
    to raise, or HANG.
    """

    def __init__(
        self,
        url="https://example.org/articles/abc",
        cookies=None,
        native_display=False,
        inspection=None,
        downloads=None,
        render=None,
        download_filename="",
        agent="TestAgent/1.0",
    ):
        self.url = url
        self.cookies = cookies if cookies is not None else []
        self.native_display = native_display
        self.inspection = inspection or PageInspection()
        self.downloads = downloads or {}
        self.render = render
        self.download_filename = download_filename
        self.agent = agent
        self.download_calls = []
        self.destinations = []

    @property
    def current_url(self):
        return self.url

    @property
    def title(self):
        return "Test page"

    async def user_agent(self):
        if isinstance(self.agent, Exception):
            raise self.agent
        return self.agent

    async def cookie_jar_snapshot(self):
        return self.cookies

    async def probe_native_display(self):
        if isinstance(self.native_display, Exception):
            raise self.native_display
        return self.native_display

    async def inspect_page(self):
        if isinstance(self.inspection, Exception):
            raise self.inspection
        return self.inspection

    async def native_download(self, url, headers, destination):
        self.download_calls.append((url, dict(headers)))
        self.destinations.append(destination)
        payload = self.downloads.get(url)

        if payload is None:
            yield DownloadFailed(error=f"no download for {url}")
            return
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, DownloadFailed):
            destination.write_bytes(b"partial")
            yield payload
            return
        if payload == HANG:
            destination.write_bytes(b"partial")
            await asyncio.Event().wait()

        destination.write_bytes(payload)
        yield DownloadProgress(received=len(payload) // 2, expected=len(payload))
        yield DownloadProgress(received=len(payload), expected=len(payload))
        yield DownloadFinished(suggested_filename=self.download_filename)

    async def render_page_pdf(self):
        if self.render is None:
            raise RuntimeError("printing not supported")
        return self.render


# ---------------------------------------------------------------------------
# Fake fetcher and clock
# ---------------------------------------------------------------------------


class FakeFetcher:
    """AuthenticatedFetcher stand-in.

    ``responses`` maps ``url`` or ``(url, accept)`` to bytes, an exception,
    or a list consumed one item per call (the last item repeats).
    ``heads`` maps URL to a content type, status code, or exception.
    """

    def __init__(self, responses=None, heads=None):
        self.responses = responses or {}
        self.heads = heads or {}
        self.calls = []

    def _lookup(self, url, accept):
        payload = self.responses.get((url, accept), self.responses.get(url))
        if isinstance(payload, list):
            payload = payload.pop(0) if len(payload) > 1 else payload[0]
        return payload

    async def fetch(self, url, accept=PERMISSIVE_ACCEPT):
        self.calls.append((url, accept))
        await asyncio.sleep(0)
        payload = self._lookup(url, accept)
        if payload is None:
            raise NetworkError(f"GET {url} failed: connection refused", url=url)
        if isinstance(payload, Exception):
            raise payload
        return FetchResponse(data=payload, url=url, status_code=200)

    async def head(self, url):
        self.calls.append((url, "HEAD"))
        head = self.heads.get(url)
        if head is None:
            raise NetworkError(f"HEAD {url} failed", url=url)
        if isinstance(head, Exception):
            raise head
        if isinstance(head, int):
            return FetchResponse(data=b"", url=url, status_code=head)
        return FetchResponse(data=b"", url=url, status_code=200, content_type=head)

    @property
    def urls(self):
        return [url for url, accept in self.calls if accept != "HEAD"]


class FakeClock:
    """Monotonic clock that only advances when ``sleep`` is awaited."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def pdf_bytes():
    return PDF_BYTES


@pytest.fixture
def html_bytes():
    return HTML_BYTES


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point PAPERCAPTURE_HOME at a temp directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("PAPERCAPTURE_HOME", str(home))
    return home
