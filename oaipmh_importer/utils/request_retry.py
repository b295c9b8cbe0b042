import asyncio
import logging
import time

from typing import Awaitable, Callable, Optional

import requests
import tenacity
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

# retry n waits n * 2 seconds
LINEAR_BACKOFF = tenacity.wait_incrementing(start=2, increment=2)


def configure_http_session() -> requests.Session:
    """
    Session used for every page request. Retrying is left to the
    CircuitBreaker, so the adapter itself never retries.
    """
    http = requests.Session()
    adapter = HTTPAdapter(max_retries=0)
    http.mount("https://", adapter)
    http.mount("http://", adapter)
    http.headers.update({
        "User-Agent": "OAI-PMH metadata importer",
        "Accept": "application/xml, text/xml;q=0.9, */*;q=0.5"
    })
    return http


class CircuitOpenError(Exception):
    '''Raised when a call is rejected because the circuit is open'''


class CircuitBreaker(object):
    """
    Bounded-retry circuit breaker wrapping an async operation.

    Every call gets up to `max_retries` retries, spaced by the tenacity
    `wait` strategy, and each attempt is cut off after `timeout` seconds.
    A call whose attempts are all exhausted counts as one failure;
    `max_failures` consecutive failures open the circuit, and while open
    calls fail fast with CircuitOpenError. After `reset_timeout` seconds a
    single trial call is let through (half-open) while other callers are
    still rejected; its outcome closes or re-opens the circuit.

    The breaker is meant to be shared by concurrent runs on one event loop,
    so its state is only touched between awaits.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"

    def __init__(
            self,
            name: str,
            max_failures: int = 5,
            max_retries: int = 2,
            timeout: Optional[float] = 200.0,
            reset_timeout: float = 10.0,
            wait: tenacity.wait.wait_base = LINEAR_BACKOFF,
            sleep: Optional[Callable[[float], Awaitable]] = None):
        self.name = name
        self.max_failures = max_failures
        self.max_retries = max_retries
        self.timeout = timeout
        self.reset_timeout = reset_timeout
        self.wait = wait
        self.sleep = sleep

        self.failures = 0
        self._state = self.CLOSED
        self._opened_at = 0.0
        self._trial_running = False

    @property
    def state(self) -> str:
        if (self._state == self.OPEN and
                time.monotonic() - self._opened_at >= self.reset_timeout):
            self._state = self.HALF_OPEN
        return self._state

    def retrying(self, attempts: int) -> tenacity.AsyncRetrying:
        options = dict(
            stop=tenacity.stop_after_attempt(attempts),
            wait=self.wait,
            reraise=True,
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING)
        )
        if self.sleep is not None:
            options['sleep'] = self.sleep
        return tenacity.AsyncRetrying(**options)

    async def execute(self, operation: Callable[..., Awaitable], *args):
        state = self.state
        if state == self.OPEN or (state == self.HALF_OPEN and self._trial_running):
            raise CircuitOpenError(f"{self.name}: circuit is open")

        trial = state == self.HALF_OPEN
        attempts = 1 if trial else self.max_retries + 1
        if trial:
            self._trial_running = True
        try:
            result = await self.retrying(attempts)(self._attempt, operation, *args)
        except Exception:
            self._record_failure()
            raise
        finally:
            if trial:
                self._trial_running = False
        self._record_success()
        return result

    async def _attempt(self, operation, *args):
        if self.timeout is None:
            return await operation(*args)
        try:
            return await asyncio.wait_for(operation(*args), self.timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"{self.name}: operation timed out after {self.timeout}s")

    def _record_failure(self):
        self.failures += 1
        if self._state == self.HALF_OPEN or self.failures >= self.max_failures:
            if self._state != self.OPEN:
                logger.error(
                    f"{self.name}: opening circuit after "
                    f"{self.failures} failures"
                )
            self._state = self.OPEN
            self._opened_at = time.monotonic()

    def _record_success(self):
        if self._state != self.CLOSED:
            logger.info(f"{self.name}: closing circuit")
        self.failures = 0
        self._state = self.CLOSED

    def reset(self):
        self.failures = 0
        self._state = self.CLOSED
