"""Interfaces between the capture engine and its host browsing session."""

from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional, Protocol, Union

from papercapture.models import PageInspection


@dataclass
class DownloadProgress:
    """Bytes received so far; ``expected`` is None when the server did not say."""

    received: int
    expected: Optional[int] = None


@dataclass
class DownloadFinished:
    """The download completed and the destination file is fully written."""

    suggested_filename: str = ""


@dataclass
class DownloadFailed:
    """The download failed; any partial destination file may still exist."""

    error: str


DownloadEvent = Union[DownloadProgress, DownloadFinished, DownloadFailed]


class BrowsingSession(Protocol):
    """Protocol for the embedded browsing session that hosts an acquisition.

    The engine never owns the session. It re-reads everything it needs per
    attempt, and treats every call as possibly slow and possibly failing.
    """

    @property
    def current_url(self) -> Optional[str]:
        """URL currently displayed (after redirects)."""
        ...

    @property
    def title(self) -> str:
        """Page title."""
        ...

    async def user_agent(self) -> str:
        """User-agent string the engine sends with its own requests."""
        ...

    async def cookie_jar_snapshot(self) -> list[dict]:
        """Point-in-time copy of the session cookies.

        Each cookie is a dict with at least ``name``, ``value`` and ``domain``,
        and optionally ``path``, ``expires``, ``secure`` and ``httpOnly``.
        """
        ...

    async def probe_native_display(self) -> bool:
        """Whether the rendering surface is showing a native PDF view."""
        ...

    async def inspect_page(self) -> PageInspection:
        """Classify the current DOM (embedded PDF, PDF.js viewer, iframes, ...)."""
        ...

    def native_download(
        self, url: str, headers: dict[str, str], destination: Path
    ) -> AsyncIterator["DownloadEvent"]:
        """Download ``url`` through the session's own network stack.

        Writes to ``destination`` and yields progress events followed by
        exactly one DownloadFinished or DownloadFailed.
        """
        ...

    async def render_page_pdf(self) -> bytes:
        """Render the current page to PDF (manual capture fallback)."""
        ...
