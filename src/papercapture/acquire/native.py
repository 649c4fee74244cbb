"""Downloads through the browsing session's own network stack.

Used when replaying cookies is not enough, e.g. proxy authentication bound
to engine-internal session state a generic HTTP client never sees. The host
writes into a temp destination we assign up front; that file is removed on
every exit path, including failure and cancellation.
"""

import asyncio
import contextlib
import logging
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from papercapture.acquire.config import CaptureConfig
from papercapture.acquire.errors import NetworkError
from papercapture.acquire.fetcher import PERMISSIVE_ACCEPT
from papercapture.interfaces import (
    BrowsingSession,
    DownloadFailed,
    DownloadFinished,
    DownloadProgress,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int]], None]


@dataclass
class NativeDownloadResult:
    """Bytes read back from a completed native download."""

    data: bytes
    suggested_filename: str
    url: str


@contextlib.contextmanager
def temp_destination(temp_dir: Optional[Path] = None) -> Iterator[Path]:
    """Yield a unique, not-yet-existing temp path and delete it on exit."""
    base = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
    base.mkdir(parents=True, exist_ok=True)
    path = base / f"{uuid.uuid4().hex}.download"
    try:
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temp download {path}: {e}")


class DownloadHandle:
    """A running native download.

    ``await handle.result()`` returns the downloaded bytes or raises
    NetworkError. Cancelling still removes the temp file.
    """

    def __init__(self, url: str, task: "asyncio.Task[NativeDownloadResult]"):
        self.url = url
        self._task = task

    async def result(self) -> NativeDownloadResult:
        return await self._task

    def cancel(self) -> None:
        self._task.cancel()

    def done(self) -> bool:
        return self._task.done()


class NativeSessionDownloader:
    """Starts downloads through ``BrowsingSession.native_download``.

    Args:
        session: Host browsing session.
        config: Temp directory and download timeout.
    """

    def __init__(self, session: BrowsingSession, config: Optional[CaptureConfig] = None):
        self.session = session
        self.config = config or CaptureConfig()

    def start_download(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DownloadHandle:
        """Start downloading ``url``; must be called from a running event loop."""
        request_headers = {"Accept": PERMISSIVE_ACCEPT}
        if headers:
            request_headers.update(headers)
        task = asyncio.create_task(self._run(url, request_headers, on_progress))
        return DownloadHandle(url, task)

    async def download(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> NativeDownloadResult:
        """Start a download and wait for it; cancelling the caller cancels it."""
        handle = self.start_download(url, headers, on_progress)
        try:
            return await handle.result()
        finally:
            if not handle.done():
                handle.cancel()

    async def _run(
        self,
        url: str,
        headers: dict[str, str],
        on_progress: Optional[ProgressCallback],
    ) -> NativeDownloadResult:
        logger.info(f"Starting native session download: {url}")
        with temp_destination(self.config.temp_dir) as destination:
            logger.debug(f"Using temp file: {destination}")
            try:
                suggested = await asyncio.wait_for(
                    self._consume(url, headers, destination, on_progress),
                    timeout=self.config.native_download_timeout,
                )
            except asyncio.TimeoutError as e:
                raise NetworkError(f"Native download timed out: {url}", url=url) from e
            except NetworkError:
                raise
            except asyncio.CancelledError:
                logger.debug(f"Native download cancelled: {url}")
                raise
            except Exception as e:
                raise NetworkError(f"Native download failed for {url}: {e}", url=url) from e

            try:
                data = destination.read_bytes()
            except OSError as e:
                raise NetworkError(f"Failed to read downloaded file for {url}: {e}", url=url) from e

        logger.info(f"Native download finished: {suggested or url}, {len(data)} bytes")
        return NativeDownloadResult(data=data, suggested_filename=suggested, url=url)

    async def _consume(
        self,
        url: str,
        headers: dict[str, str],
        destination: Path,
        on_progress: Optional[ProgressCallback],
    ) -> str:
        """Drain host events until the terminal one; return the suggested filename."""
        events = self.session.native_download(url, headers, destination)
        try:
            async for event in events:
                if isinstance(event, DownloadProgress):
                    if on_progress is not None:
                        try:
                            on_progress(event.received, event.expected)
                        except Exception:
                            logger.exception("Download progress callback raised")
                elif isinstance(event, DownloadFinished):
                    return event.suggested_filename
                elif isinstance(event, DownloadFailed):
                    raise NetworkError(f"Download failed: {event.error}", url=url)
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()
        raise NetworkError(f"Download ended without completing: {url}", url=url)
