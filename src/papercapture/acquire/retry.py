"""Fixed-schedule retry loop for detection attempts.

Publisher PDFs often render after the "page finished loading" signal, so
detection runs at fixed offsets from the start of an acquisition rather
than once.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Sequence

from papercapture.acquire.config import DEFAULT_RETRY_OFFSETS_MS
from papercapture.models import SUCCESS, AcquisitionAttempt

logger = logging.getLogger(__name__)

AttemptFn = Callable[[AcquisitionAttempt], Awaitable[str]]


class RetryScheduler:
    """Run an attempt function at fixed offsets, stopping early on success.

    Args:
        offsets_ms: Offset of each attempt from the scheduler start. The
            number of offsets is the attempt cap.
        sleep: Async sleep taking seconds (injectable for tests).
        clock: Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self,
        offsets_ms: Sequence[int] = DEFAULT_RETRY_OFFSETS_MS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not offsets_ms:
            raise ValueError("offsets_ms must contain at least one offset")
        self.offsets_ms = tuple(offsets_ms)
        self._sleep = sleep
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return len(self.offsets_ms)

    async def run(
        self,
        attempt_fn: AttemptFn,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> list[AcquisitionAttempt]:
        """Run attempts until one returns ``success``, ``should_stop()`` turns
        true, or the schedule is exhausted.

        Returns:
            The attempts that actually ran, in order.
        """

        def stopped() -> bool:
            return should_stop is not None and should_stop()

        attempts: list[AcquisitionAttempt] = []
        start = self._clock()

        for number, offset_ms in enumerate(self.offsets_ms, 1):
            if stopped():
                logger.debug(f"Skipping attempt {number}: acquisition already settled")
                break

            wait = start + offset_ms / 1000.0 - self._clock()
            if wait > 0:
                logger.debug(f"Waiting {wait * 1000:.0f}ms before attempt {number}")
                await self._sleep(wait)
                if stopped():
                    logger.debug(f"Settled during wait, skipping attempt {number}")
                    break

            attempt = AcquisitionAttempt(attempt_number=number, scheduled_delay_ms=offset_ms)
            attempts.append(attempt)
            logger.info(f"Detection attempt {number} of {self.max_attempts}")
            attempt.outcome = await attempt_fn(attempt)

            if attempt.outcome == SUCCESS:
                break
            if number < self.max_attempts:
                logger.info(f"Attempt {number} found no PDF ({attempt.outcome}), scheduling retry")

        return attempts
