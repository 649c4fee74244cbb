"""Detection orchestrator: turns a browsing session into one captured PDF.

Strategies are tried in order within each attempt, and attempts are run by
the RetryScheduler:

1. Response signal says PDF (MIME type / attachment) -> fetch with explicit Accept
2. Native PDF display -> fetch with explicit Accept, then native session download
3. Cookie fetch of the current URL
4. Explicit Accept fetch if the URL looks like a PDF endpoint
5. Other redirect chain members, then the publisher-derived PDF URL
6. Embedded PDF sources and iframe probing from DOM inspection
7. Native download when the page clearly shows a PDF but nothing validated

Every candidate goes through ``sniff.ensure_pdf``. The first validated PDF is
delivered once; everything still running for the session then stops.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Union

from papercapture.acquire.config import CaptureConfig
from papercapture.acquire.errors import (
    AuthenticationRequired,
    NetworkError,
    NoBrowsingSession,
    NotAPDF,
)
from papercapture.acquire.fetcher import PDF_ACCEPT, PERMISSIVE_ACCEPT, AuthenticatedFetcher
from papercapture.acquire.frames import FrameProbe
from papercapture.acquire.heuristics import URLHeuristics, direct_pdf_url
from papercapture.acquire.naming import safe_filename, suggested_filename
from papercapture.acquire.native import NativeSessionDownloader
from papercapture.acquire.proxy import proxied_retry_url
from papercapture.acquire.retry import RetryScheduler
from papercapture.acquire.sniff import ensure_pdf
from papercapture.interfaces import BrowsingSession
from papercapture.models import (
    DERIVED,
    EMBED,
    IFRAME,
    NETWORK_ERROR,
    NOT_PDF,
    PRIMARY,
    REDIRECT_CHAIN,
    SUCCESS,
    AcquisitionAttempt,
    CandidateURL,
    CaptureResult,
    PageInspection,
    PublicationInfo,
    RedirectChain,
    ResponseSignal,
)

logger = logging.getLogger(__name__)

# Orchestrator states
IDLE = "idle"
AWAITING_SIGNAL = "awaiting_signal"
ATTEMPTING = "attempting"
SUCCEEDED = "succeeded"
EXHAUSTED = "exhausted"
CANCELLED = "cancelled"

CaptureCallback = Callable[[CaptureResult], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[str], None]
ProgressCallback = Callable[[int, Optional[int]], None]


@dataclass
class _Acquisition:
    """One acquisition run; invalidated by a new navigation or close()."""

    number: int
    generation: int = 0
    url: Optional[str] = None
    cancelled: bool = False
    delivered: bool = False
    attempts: list[AcquisitionAttempt] = field(default_factory=list)


@dataclass
class _AttemptContext:
    """What happened inside a single attempt."""

    tried: set = field(default_factory=set)
    strategies: list[str] = field(default_factory=list)
    rejected_payload: bool = False
    network_error: bool = False
    native_tried: bool = False

    @property
    def outcome(self) -> str:
        if self.rejected_payload:
            return NOT_PDF
        if self.network_error:
            return NETWORK_ERROR
        return NOT_PDF


class DetectionOrchestrator:
    """Single owner of a capture session's state.

    Only this class writes ``result``, and it checks and sets it without
    yielding to the event loop in between, so racing strategies can never
    deliver twice.

    Args:
        session: Host browsing session (required).
        on_captured: Called exactly once with the CaptureResult; may be async.
        publication: Metadata for fallback filenames.
        config: Engine configuration (retry offsets, tables, timeouts, proxy).
        on_error: Called with user-facing diagnostic text.
        on_progress: Called with (received, expected) bytes during native downloads.
        initial_url: URL the session was opened with.
        library_id: Host library the capture is destined for (passed through).
        fetcher, downloader, frame_probe, scheduler, heuristics: Overrides,
            built from ``config`` when omitted.

    Raises:
        NoBrowsingSession: If ``session`` is None.
    """

    def __init__(
        self,
        session: Optional[BrowsingSession],
        on_captured: CaptureCallback,
        publication: Optional[PublicationInfo] = None,
        config: Optional[CaptureConfig] = None,
        on_error: Optional[ErrorCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        initial_url: Optional[str] = None,
        library_id: Optional[str] = None,
        fetcher: Optional[AuthenticatedFetcher] = None,
        downloader: Optional[NativeSessionDownloader] = None,
        frame_probe: Optional[FrameProbe] = None,
        scheduler: Optional[RetryScheduler] = None,
        heuristics: Optional[URLHeuristics] = None,
    ):
        if session is None:
            raise NoBrowsingSession("No browsing session available for PDF capture")

        self.session = session
        self.on_captured = on_captured
        self.on_error = on_error
        self.on_progress = on_progress
        self.publication = publication
        self.config = config or CaptureConfig()
        self.initial_url = initial_url
        self.library_id = library_id

        self.fetcher = fetcher or AuthenticatedFetcher(session, self.config)
        self.downloader = downloader or NativeSessionDownloader(session, self.config)
        self.frame_probe = frame_probe or FrameProbe(self.fetcher)
        self.scheduler = scheduler or RetryScheduler(self.config.retry_offsets_ms)
        self.heuristics = heuristics or URLHeuristics(
            self.config.pdf_path_patterns, self.config.weak_query_markers
        )

        self.state = IDLE
        self.result: Optional[CaptureResult] = None
        self.error_message: Optional[str] = None
        self.download_progress: Optional[float] = None
        self.suggested_pdf_url: Optional[str] = None
        self.is_proxied = False
        self.redirect_chain = RedirectChain()

        self._derived_seen: set[str] = set()
        self._acquisition: Optional[_Acquisition] = None
        self._task: Optional[asyncio.Task] = None
        self._counter = 0
        self._generation = 0
        self._closed = False
        self._capturing = False

        logger.info(f"Capture session opened for: {initial_url or 'unknown URL'}")

    # --- Host events ---

    def navigation_started(self, url: Optional[str] = None) -> None:
        """A new top-level navigation began: reset the chain, drop in-flight work."""
        self._invalidate("new navigation")
        self._generation += 1
        self.redirect_chain.reset()
        self.redirect_chain.append(url)
        self.error_message = None

    def record_redirect(self, url: str) -> None:
        """A server redirect within the current navigation."""
        self.redirect_chain.append(url)
        logger.debug(f"Redirect chain [{len(self.redirect_chain) - 1}] {url}")

    def start_acquisition(self, signal: Optional[ResponseSignal] = None) -> asyncio.Task:
        """Start an acquisition in the background, superseding any running one."""
        self._invalidate("superseded by a new acquisition")
        acq = self._new_acquisition()
        self._acquisition = acq
        self._task = asyncio.create_task(self._acquire(acq, signal))
        return self._task

    async def navigation_finished(
        self, signal: Optional[ResponseSignal] = None
    ) -> Optional[CaptureResult]:
        """Run an acquisition for the page that just finished loading.

        Returns the CaptureResult if this acquisition produced it, else None
        (exhausted, cancelled, or a capture already exists).
        """
        task = self.start_acquisition(signal)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.cancelled():
            return None
        return task.result()

    def close(self) -> None:
        """Session teardown (window closed). Cancels everything in flight."""
        if self._closed:
            return
        self._closed = True
        self._invalidate("session closed")
        if self.state != SUCCEEDED:
            self.state = CANCELLED
        logger.info("Capture session closed")

    # --- User actions ---

    async def manual_capture(self) -> Optional[CaptureResult]:
        """User asked to capture whatever the page shows now.

        Runs one immediate attempt; if nothing validates, renders the page
        itself to PDF when the host supports it.
        """
        if self._capturing:
            logger.warning("Manual capture already in progress")
            return None
        if self.result is not None:
            logger.info("PDF already captured for this session")
            return None

        self._capturing = True
        try:
            acq = self._new_acquisition(self._current_url(None))
            logger.info(f"Manual capture requested for: {acq.url or 'unknown'}")

            outcome = await self._run_attempt(acq, AcquisitionAttempt(1, 0))
            if outcome == SUCCESS or acq.delivered:
                return self.result
            if self._should_stop(acq):
                return None

            render = getattr(self.session, "render_page_pdf", None)
            if render is None:
                self._report_error("No PDF found on this page")
                return None

            try:
                data = await render()
            except Exception as e:
                logger.error(f"Page capture failed: {e}")
                if not self._should_stop(acq):
                    self._report_error(f"Could not capture page: {e}")
                return None

            ctx = _AttemptContext()
            if await self._accept(acq, ctx, data, acq.url, "page_render", suffix="_capture"):
                return self.result
            if not self._should_stop(acq):
                self._report_error("Could not capture page as PDF")
            return None
        finally:
            self._capturing = False

    async def capture_url(self, url: str) -> Optional[CaptureResult]:
        """User chose "save this PDF" for a specific resource."""
        if self.result is not None:
            logger.info("PDF already captured for this session")
            return None

        acq = self._new_acquisition(url)
        ctx = _AttemptContext()

        if await self._try_fetch(acq, ctx, CandidateURL(url), PERMISSIVE_ACCEPT, "user_save"):
            return self.result
        if await self._try_native(acq, ctx, url, "user_save_native"):
            return self.result

        if not self._should_stop(acq):
            if ctx.rejected_payload:
                self._report_error("Current page is not a PDF (server returned HTML)")
            else:
                self._report_error(f"Failed to fetch PDF from {url}")
        return None

    def proxy_retry_url(self) -> Optional[str]:
        """URL to reload through the library proxy, or None if not applicable."""
        if self.is_proxied:
            logger.warning("Cannot retry with proxy: already proxied")
            return None
        proxied = proxied_retry_url(self._current_url(None), self.config.proxy)
        if proxied:
            self.is_proxied = True
        return proxied

    # --- Acquisition ---

    async def _acquire(
        self, acq: _Acquisition, signal: Optional[ResponseSignal]
    ) -> Optional[CaptureResult]:
        if self._closed:
            acq.cancelled = True
            return self._finish(acq)
        if self.result is not None:
            logger.info("PDF already captured for this session; not acquiring again")
            acq.cancelled = True
            return self._finish(acq)

        acq.url = signal.url if signal is not None and signal.url else self._current_url(None)
        self._set_state(acq, AWAITING_SIGNAL)
        self._update_suggestion(acq.url)

        try:
            if signal is not None and self.heuristics.is_pdf_response(signal):
                logger.info(f"Response signal says PDF ({signal.mime_type or 'disposition'})")
                ctx = _AttemptContext()
                candidate = CandidateURL(signal.url, PRIMARY)
                if await self._try_fetch(acq, ctx, candidate, PDF_ACCEPT, "response_signal"):
                    return self._finish(acq)

            if not self._should_stop(acq):
                self._set_state(acq, ATTEMPTING)
                acq.attempts = await self.scheduler.run(
                    lambda attempt: self._run_attempt(acq, attempt),
                    should_stop=lambda: self._should_stop(acq),
                )
        except asyncio.CancelledError:
            acq.cancelled = True
            if self._acquisition is acq and self.result is None:
                self.state = CANCELLED
            raise

        return self._finish(acq)

    def _finish(self, acq: _Acquisition) -> Optional[CaptureResult]:
        if acq.delivered:
            return self.result
        if acq.cancelled or self._closed or self.result is not None:
            self._set_state(acq, CANCELLED)
            return None

        self._set_state(acq, EXHAUSTED)
        count = len(acq.attempts)
        logger.info(f"All {count} attempts completed - PDF not detected automatically")
        self._report_error(
            f"No PDF detected after {count} attempts. "
            "If a PDF is visible, use manual capture to save it."
        )
        return None

    async def _run_attempt(self, acq: _Acquisition, attempt: AcquisitionAttempt) -> str:
        ctx = _AttemptContext()
        outcome = await self._attempt_strategies(acq, ctx)
        attempt.strategies = list(ctx.strategies)
        logger.info(f"Attempt {attempt.attempt_number} finished: {outcome}")
        return outcome

    async def _attempt_strategies(self, acq: _Acquisition, ctx: _AttemptContext) -> str:
        url = self._current_url(acq)
        if not url:
            logger.info("No URL to check")
            return NETWORK_ERROR

        logger.info(f"Checking URL: {url}")
        primary = CandidateURL(url, PRIMARY)

        # Native PDF view: the bytes exist but maybe only inside the engine
        native = await self._probe_native_display()
        if native:
            logger.info("Native PDF display detected")
            if await self._try_fetch(acq, ctx, primary, PDF_ACCEPT, "native_display_fetch"):
                return SUCCESS
            if await self._try_native(acq, ctx, url, "native_download"):
                return SUCCESS

        if await self._try_fetch(acq, ctx, primary, PERMISSIVE_ACCEPT, "authenticated_fetch"):
            return SUCCESS

        # Content negotiation
        if self.heuristics.looks_like_pdf_url(url):
            if await self._try_fetch(acq, ctx, primary, PDF_ACCEPT, "explicit_accept"):
                return SUCCESS

        for chain_url in self.redirect_chain.others(url):
            candidate = CandidateURL(chain_url, REDIRECT_CHAIN)
            if await self._try_fetch(acq, ctx, candidate, PERMISSIVE_ACCEPT, "redirect_chain"):
                return SUCCESS

        derived = direct_pdf_url(url)
        if derived:
            candidate = CandidateURL(derived, DERIVED)
            if await self._try_fetch(acq, ctx, candidate, PERMISSIVE_ACCEPT, "derived_url"):
                return SUCCESS

        if self._should_stop(acq):
            return ctx.outcome

        inspection = await self._inspect_page()
        if inspection.kind in ("embed", "object"):
            for embedded_url in inspection.urls:
                candidate = CandidateURL(embedded_url, EMBED)
                if await self._try_fetch(acq, ctx, candidate, PERMISSIVE_ACCEPT, "embedded_pdf"):
                    return SUCCESS
        elif inspection.kind == "iframe_candidate" and inspection.urls:
            if await self._try_frames(acq, ctx, inspection.urls):
                return SUCCESS

        if (native or inspection.is_strong) and not ctx.native_tried:
            target = url
            if inspection.kind in ("embed", "object") and inspection.urls:
                target = inspection.urls[0]
            if await self._try_native(acq, ctx, target, "native_fallback"):
                return SUCCESS

        return ctx.outcome

    # --- Strategies ---

    async def _try_fetch(
        self,
        acq: _Acquisition,
        ctx: _AttemptContext,
        candidate: CandidateURL,
        accept: str,
        strategy: str,
    ) -> bool:
        url = candidate.url
        if self._should_stop(acq) or (url, accept) in ctx.tried:
            return False
        ctx.tried.add((url, accept))
        ctx.strategies.append(strategy)
        logger.debug(f"Fetching {candidate.source_kind} candidate ({strategy}): {url}")

        try:
            resp = await self.fetcher.fetch(url, accept)
        except AuthenticationRequired as e:
            ctx.network_error = True
            logger.info(f"Auth challenge ({strategy}): {e}")
            return False
        except NetworkError as e:
            ctx.network_error = True
            logger.info(f"Fetch failed ({strategy}): {e}")
            return False

        return await self._accept(acq, ctx, resp.data, url, strategy)

    async def _try_native(
        self, acq: _Acquisition, ctx: _AttemptContext, url: str, strategy: str
    ) -> bool:
        if self._should_stop(acq):
            return False
        ctx.native_tried = True
        ctx.strategies.append(strategy)

        try:
            download = await self.downloader.download(
                url, on_progress=self._on_download_progress
            )
        except NetworkError as e:
            ctx.network_error = True
            logger.info(f"Native download failed ({strategy}): {e}")
            return False
        finally:
            self.download_progress = None

        filename = None
        if download.suggested_filename.lower().endswith(".pdf"):
            filename = safe_filename(download.suggested_filename)
        return await self._accept(acq, ctx, download.data, url, strategy, filename=filename)

    async def _try_frames(self, acq: _Acquisition, ctx: _AttemptContext, urls: list[str]) -> bool:
        ctx.strategies.append("frame_probe")
        logger.info(f"Found {len(urls)} iframe(s), probing for PDF content")
        candidates = [CandidateURL(u, IFRAME) for u in urls]
        hit = await self.frame_probe.probe(candidates, should_stop=lambda: self._should_stop(acq))
        if hit is None:
            return False
        return await self._accept(acq, ctx, hit.data, hit.candidate.url, "frame_probe")

    async def _accept(
        self,
        acq: _Acquisition,
        ctx: _AttemptContext,
        data: bytes,
        url: Optional[str],
        strategy: str,
        filename: Optional[str] = None,
        suffix: str = "",
    ) -> bool:
        try:
            ensure_pdf(data, url or "")
        except NotAPDF as e:
            ctx.rejected_payload = True
            logger.info(f"Not a PDF ({strategy}) from {url}: {e.diagnostics}")
            return False
        return await self._deliver(acq, data, url, strategy, filename, suffix)

    async def _deliver(
        self,
        acq: _Acquisition,
        data: bytes,
        url: Optional[str],
        strategy: str,
        filename: Optional[str],
        suffix: str,
    ) -> bool:
        # Check and set with no await in between
        if self._should_stop(acq):
            logger.info(f"Discarding PDF from {strategy}: session already settled")
            return False

        result = CaptureResult(
            data=data,
            suggested_filename=filename or suggested_filename(url, self.publication, suffix),
            source_url=url or "",
            strategy=strategy,
        )
        self.result = result
        acq.delivered = True
        self.state = SUCCEEDED
        self.error_message = None
        logger.info(f"PDF captured via {strategy}: {result.suggested_filename}, {result.size} bytes")

        if self._task is not None and not self._task.done():
            if self._task is not asyncio.current_task():
                self._task.cancel()

        try:
            ret = self.on_captured(result)
            if inspect.isawaitable(ret):
                await ret
        except Exception:
            logger.exception("Capture callback raised")
        return True

    # --- Host calls, degraded to defaults on failure ---

    async def _probe_native_display(self) -> bool:
        try:
            return bool(await self.session.probe_native_display())
        except Exception as e:
            logger.debug(f"Native PDF display probe failed: {e}")
            return False

    async def _inspect_page(self) -> PageInspection:
        try:
            inspection = await self.session.inspect_page()
        except Exception as e:
            logger.debug(f"Page inspection failed: {e}")
            return PageInspection()
        logger.info(f"PDF detection result: type={inspection.kind}, urls={inspection.urls}")
        return inspection

    def _current_url(self, acq: Optional[_Acquisition]) -> Optional[str]:
        try:
            url = self.session.current_url
        except Exception as e:
            logger.debug(f"Current URL unavailable: {e}")
            url = None
        if url:
            return url
        if acq is not None and acq.url:
            return acq.url
        return self.initial_url

    # --- Bookkeeping ---

    def _new_acquisition(self, url: Optional[str] = None) -> _Acquisition:
        self._counter += 1
        return _Acquisition(number=self._counter, generation=self._generation, url=url)

    def _should_stop(self, acq: _Acquisition) -> bool:
        # Manual and user-save runs are not tasks we own; a navigation bumps
        # the generation so they stop at their next check
        return (
            self._closed
            or acq.cancelled
            or acq.generation != self._generation
            or self.result is not None
        )

    def _set_state(self, acq: _Acquisition, state: str) -> None:
        # A superseded acquisition must not overwrite the current one's state
        if self._acquisition is acq or self._acquisition is None:
            self.state = state

    def _invalidate(self, reason: str) -> None:
        task = self._task
        if task is None or task.done():
            return
        acq = self._acquisition
        if acq is not None and acq.delivered:
            # Still inside the host's capture callback; let it finish
            logger.debug(f"Acquisition {acq.number} already delivered, not cancelling")
            return
        if acq is not None:
            acq.cancelled = True
            logger.info(f"Acquisition {acq.number} cancelled: {reason}")
        if self.state in (AWAITING_SIGNAL, ATTEMPTING):
            self.state = CANCELLED
        task.cancel()

    def _update_suggestion(self, url: Optional[str]) -> None:
        derived = direct_pdf_url(url)
        if derived and derived not in self._derived_seen:
            self._derived_seen.add(derived)
            self.suggested_pdf_url = derived
            logger.info(f"Suggested direct PDF URL: {derived}")
        else:
            self.suggested_pdf_url = None

    def _on_download_progress(self, received: int, expected: Optional[int]) -> None:
        if expected:
            self.download_progress = min(1.0, received / expected)
        if self.on_progress is not None:
            self.on_progress(received, expected)

    def _report_error(self, message: str) -> None:
        self.error_message = message
        logger.warning(message)
        if self.on_error is not None:
            try:
                self.on_error(message)
            except Exception:
                logger.exception("Error callback raised")
