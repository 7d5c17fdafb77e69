"""Async request pacer enforcing a minimum gap between outbound calls."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RequestPacer:
    """Serialise calls and keep them at least ``min_interval`` seconds apart.

    Used as a context manager, the gap is measured from the end of the
    previous call to the start of the next one. An optional
    ``requests_per_minute`` sliding window caps the account-level
    quota on top of the fixed spacing. The clock and sleep functions are
    injectable so pacing can be verified without real delays.

    Usage::

        pacer = RequestPacer(min_interval=1.5)

        async with pacer:
            await make_request()
    """

    def __init__(
        self,
        min_interval: float = 1.5,
        requests_per_minute: Optional[int] = None,
        name: str = "default",
        clock: Optional[Clock] = None,
        sleep: Optional[Sleeper] = None,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        if requests_per_minute is not None and requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        self._min_interval = min_interval
        self._rpm = requests_per_minute
        self._name = name
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._last_call: Optional[float] = None
        self._minute_window: list[float] = []
        self._lock = asyncio.Lock()
        self._calls = 0

    @property
    def min_interval(self) -> float:
        return self._min_interval

    @property
    def calls_made(self) -> int:
        """Number of slots handed out so far."""
        return self._calls

    def _wait_time(self) -> float:
        """How long to wait before the next call is allowed."""
        now = self._clock()
        wait = 0.0
        if self._last_call is not None:
            wait = self._min_interval - (now - self._last_call)
        if self._rpm:
            self._minute_window = [t for t in self._minute_window if now - t < 60.0]
            if len(self._minute_window) >= self._rpm:
                wait = max(wait, 60.0 - (now - self._minute_window[0]))
        return max(wait, 0.0)

    def _record(self) -> None:
        now = self._clock()
        self._last_call = now
        if self._rpm:
            self._minute_window.append(now)
        self._calls += 1

    async def acquire(self) -> None:
        """Wait until the next call slot is available."""
        async with self._lock:
            while True:
                wait = self._wait_time()
                if wait <= 0:
                    break
                logger.debug("RequestPacer(%s) sleeping %.2fs", self._name, wait)
                await self._sleep(wait)
            self._record()

    def release(self) -> None:
        """Mark the current call finished; spacing restarts from here."""
        self._last_call = self._clock()

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, *args):
        self.release()
