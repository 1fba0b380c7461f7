"""Sliding window request throttle."""

import asyncio
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from smartflash_llm.errors import ConfigurationError, RequestCancelledError
from smartflash_llm.utils import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitConfig:
    """At most `requests` calls in any window of `per_seconds` seconds."""

    requests: int
    per_seconds: float

    def __post_init__(self) -> None:
        if self.requests < 1:
            raise ConfigurationError("Rate limit requests must be at least 1")
        if self.per_seconds <= 0:
            raise ConfigurationError("Rate limit window must be positive")


class RateLimiter:
    """Throttles callers into a sliding window.

    There is no rejection path: `acquire` suspends until a slot frees up.
    A slot is recorded only once the caller is admitted, and the window is
    re-checked after every wait so concurrent waiters cannot overfill it.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        on_wait: Callable[[float], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize limiter.

        Args:
            config: Window configuration
            on_wait: Called with the wait in seconds before each throttle sleep
            clock: Monotonic time source in seconds
            sleep: Coroutine used to wait
        """
        self.config = config
        self._on_wait = on_wait
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._timestamps: deque[float] = deque()

    @property
    def in_window(self) -> int:
        """Number of admitted requests still inside the window."""
        with self._lock:
            self._prune(self._clock())
            return len(self._timestamps)

    async def acquire(self, abort: asyncio.Event | None = None) -> float:
        """Wait until the window has room, then record the request.

        Args:
            abort: Setting this event cancels the wait; no slot is recorded

        Returns:
            Total seconds spent waiting

        Raises:
            RequestCancelledError: abort was set before admission
        """
        waited = 0.0
        while True:
            if abort is not None and abort.is_set():
                raise RequestCancelledError()

            with self._lock:
                now = self._clock()
                self._prune(now)
                if len(self._timestamps) < self.config.requests:
                    self._timestamps.append(now)
                    return waited
                wait = self.config.per_seconds - (now - self._timestamps[0])

            logger.info("rate_limit.wait", wait=round(wait, 3), in_window=self.config.requests)
            if self._on_wait:
                self._on_wait(wait)
            await self._wait(wait, abort)
            waited += wait

    def reset(self) -> None:
        with self._lock:
            self._timestamps.clear()

    async def _wait(self, seconds: float, abort: asyncio.Event | None) -> None:
        """Throttle sleep that wakes early, and fails, when abort is set."""
        if abort is None:
            await self._sleep(seconds)
            return

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        aborted = asyncio.ensure_future(abort.wait())
        try:
            done, _ = await asyncio.wait({sleeper, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, aborted):
                if not task.done():
                    task.cancel()

        if aborted in done:
            logger.info("rate_limit.cancelled", wait=round(seconds, 3))
            raise RequestCancelledError()

    def _prune(self, now: float) -> None:
        window = self.config.per_seconds
        while self._timestamps and now - self._timestamps[0] >= window:
            self._timestamps.popleft()
