"""Probe embedded frame URLs for the one that actually serves the PDF.

Sites like IEEE load the PDF in an iframe of an HTML shell page.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from papercapture.acquire.errors import NetworkError
from papercapture.acquire.fetcher import AuthenticatedFetcher, FetchResponse
from papercapture.acquire.heuristics import is_pdf_content_type
from papercapture.acquire.sniff import describe_payload, is_pdf
from papercapture.models import CandidateURL

logger = logging.getLogger(__name__)

# HEAD answered, but the server does not implement it
_HEAD_UNSUPPORTED = (405, 501)


@dataclass
class ProbeHit:
    """A candidate whose bytes validated as PDF."""

    candidate: CandidateURL
    data: bytes


class FrameProbe:
    """HEAD each candidate, GET the ones that declare (or might be) a PDF."""

    def __init__(self, fetcher: AuthenticatedFetcher):
        self.fetcher = fetcher

    async def probe(
        self,
        candidates: Sequence[CandidateURL],
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> Optional[ProbeHit]:
        """Return the first candidate with validated PDF bytes, or None."""
        for candidate in candidates:
            if should_stop is not None and should_stop():
                return None

            logger.debug(f"Probing URL for PDF: {candidate.url}")
            hit = await self._probe_one(candidate)
            if hit is not None:
                logger.info(f"Found PDF at {candidate.source_kind} URL: {candidate.url}")
                return hit

        logger.info(f"No PDF found in {len(candidates)} candidate URL(s)")
        return None

    async def _probe_one(self, candidate: CandidateURL) -> Optional[ProbeHit]:
        try:
            head = await self.fetcher.head(candidate.url)
        except NetworkError as e:
            logger.debug(f"HEAD failed for {candidate.url}, falling back to GET: {e}")
            return await self._full_fetch(candidate)

        if head.status_code in _HEAD_UNSUPPORTED:
            logger.debug(f"HEAD unsupported ({head.status_code}) for {candidate.url}")
            return await self._full_fetch(candidate)

        if is_pdf_content_type(head.content_type):
            return await self._full_fetch(candidate)

        logger.debug(f"Skipping {candidate.url}: Content-Type {head.content_type or 'unknown'}")
        return None

    async def _full_fetch(self, candidate: CandidateURL) -> Optional[ProbeHit]:
        try:
            resp: FetchResponse = await self.fetcher.fetch(candidate.url)
        except NetworkError as e:
            logger.debug(f"GET also failed for {candidate.url}: {e}")
            return None

        if is_pdf(resp.data):
            return ProbeHit(candidate=candidate, data=resp.data)

        logger.debug(f"{candidate.url} is not a PDF: {describe_payload(resp.data)}")
        return None
