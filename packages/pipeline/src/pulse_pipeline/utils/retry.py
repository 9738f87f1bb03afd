"""
utils/retry.py — HTTP fetch with exponential backoff, Retry-After and batching.

Uses tenacity under the hood. Transient failures (HTTP 429, HTTP 5xx and
transport errors) are retried; any other 4xx is raised immediately. Each retry
is logged with structlog and reported to an optional observer so callers can
record or assert on the retry schedule.

Usage:
    from pulse_pipeline.utils.retry import RetryPolicy, fetch_json_with_retry

    payload = await fetch_json_with_retry(
        "https://api.worldbank.org/v2/country/PSE/indicator/SP.POP.TOTL",
        params={"format": "json"},
        policy=RetryPolicy(max_retries=3, initial_delay=1.0),
    )

    # Bounded-concurrency batch; results come back in input order
    results = await batch_fetch_with_retry(urls, concurrency=5)
    failed = [r.url for r in results if not r.success]
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
)

from pulse_shared.config import settings

log = structlog.get_logger(__name__)

RetryReason = Literal["rate_limit", "http_error", "network_error"]
SleepFn = Callable[[float], Awaitable[None]]


# ---------------------------------------------------------------------------
# Policy, events, errors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff schedule for one request.

    Delay before retry n (n = 0 for the first retry):
        min(initial_delay * backoff_multiplier ** n, max_delay)
    Default: 1 s, 2 s, 4 s.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay,
            backoff_multiplier=settings.retry_backoff_multiplier,
            max_delay=settings.retry_max_delay,
        )

    def backoff(self, retry_index: int) -> float:
        return min(
            self.initial_delay * self.backoff_multiplier**retry_index,
            self.max_delay,
        )


@dataclass(frozen=True)
class RetryEvent:
    url: str
    attempt: int
    delay: float
    reason: RetryReason


RetryObserver = Callable[[RetryEvent], None]


@dataclass
class RetryRecorder:
    """Observer that keeps every retry event it is handed."""

    events: list[RetryEvent] = field(default_factory=list)

    def __call__(self, event: RetryEvent) -> None:
        self.events.append(event)

    @property
    def delays(self) -> list[float]:
        return [e.delay for e in self.events]


class FetchExhausted(Exception):
    """Raised when every attempt at a URL failed with a transient error."""

    def __init__(
        self,
        url: str,
        attempts: int,
        last_response: httpx.Response | None = None,
        last_error: BaseException | None = None,
    ) -> None:
        self.url = url
        self.attempts = attempts
        self.last_response = last_response
        self.last_error = last_error
        detail = (
            f"HTTP {last_response.status_code}"
            if last_response is not None
            else str(last_error)
        )
        super().__init__(f"{url} failed after {attempts} attempts: {detail}")


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


def _reason(exc: BaseException | None) -> RetryReason:
    if isinstance(exc, httpx.HTTPStatusError):
        return "rate_limit" if exc.response.status_code == 429 else "http_error"
    return "network_error"


def _retry_after(exc: BaseException | None) -> float | None:
    """Seconds from a numeric Retry-After header on a 429 response."""
    if not isinstance(exc, httpx.HTTPStatusError) or exc.response.status_code != 429:
        return None
    header = exc.response.headers.get("Retry-After")
    if header is None:
        return None
    try:
        seconds = float(header.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


@contextlib.asynccontextmanager
async def _client_scope(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(
        timeout=settings.http_timeout, follow_redirects=True
    ) as owned:
        yield owned


# ---------------------------------------------------------------------------
# Single request
# ---------------------------------------------------------------------------


async def fetch_with_retry(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    method: str = "GET",
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    policy: RetryPolicy | None = None,
    observer: RetryObserver | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> httpx.Response:
    """
    Perform one HTTP request with retries on transient failures.

    Args:
        url:      Absolute URL.
        client:   Shared AsyncClient; a short-lived one is opened when omitted.
        method:   HTTP method.
        params:   Query parameters.
        headers:  Extra request headers.
        policy:   Backoff schedule (default RetryPolicy()).
        observer: Called with a RetryEvent before every sleep.
        sleep:    Awaitable sleep, injectable for tests.

    Returns:
        The first 2xx httpx.Response.

    Raises:
        httpx.HTTPStatusError: non-transient 4xx (no retry).
        FetchExhausted:        all 1 + max_retries attempts failed.
    """
    policy = policy or RetryPolicy()
    req_log = log.bind(url=url, method=method)

    def wait(retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = _retry_after(exc)
        if retry_after is not None:
            return retry_after
        return policy.backoff(retry_state.attempt_number - 1)

    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        event = RetryEvent(
            url=url,
            attempt=retry_state.attempt_number,
            delay=delay,
            reason=_reason(exc),
        )
        req_log.warning(
            "retry_attempt",
            attempt=event.attempt,
            max_retries=policy.max_retries,
            delay_s=event.delay,
            reason=event.reason,
            error=str(exc),
        )
        if observer is not None:
            observer(event)

    async with _client_scope(client) as http:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(policy.max_retries + 1),
                wait=wait,
                retry=retry_if_exception(_is_transient),
                before_sleep=before_sleep,
                sleep=sleep,
                reraise=False,
            ):
                with attempt:
                    response = await http.request(
                        method, url, params=params, headers=headers
                    )
                    response.raise_for_status()
                    return response
        except RetryError as exc:
            last = exc.last_attempt
            last_error = last.exception()
            last_response = (
                last_error.response
                if isinstance(last_error, httpx.HTTPStatusError)
                else None
            )
            req_log.error(
                "retry_exhausted",
                attempts=last.attempt_number,
                error=str(last_error),
            )
            raise FetchExhausted(
                url,
                attempts=last.attempt_number,
                last_response=last_response,
                last_error=last_error,
            ) from last_error

    raise AssertionError("unreachable")  # pragma: no cover


async def fetch_json_with_retry(url: str, **kwargs: Any) -> Any:
    """fetch_with_retry() and decode the body as JSON."""
    response = await fetch_with_retry(url, **kwargs)
    return response.json()


async def fetch_text_with_retry(url: str, **kwargs: Any) -> str:
    """fetch_with_retry() and return the body as text."""
    response = await fetch_with_retry(url, **kwargs)
    return response.text


# ---------------------------------------------------------------------------
# Request spacing
# ---------------------------------------------------------------------------


class RateLimiter:
    """
    Keeps at least `min_interval` seconds between successive wait() returns.

    One instance per fetcher; not shared across providers.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    async def wait(self) -> None:
        if self._last is not None:
            remaining = self.min_interval - (self._clock() - self._last)
            if remaining > 0:
                await self._sleep(remaining)
        self._last = self._clock()


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


@dataclass
class BatchResult:
    url: str
    response: httpx.Response | None = None
    error: BaseException | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.response is not None


async def batch_fetch_with_retry(
    urls: Sequence[str],
    concurrency: int = 5,
    **kwargs: Any,
) -> list[BatchResult]:
    """
    Fetch many URLs with at most `concurrency` requests in flight.

    Each URL goes through fetch_with_retry() independently; one failure never
    cancels the others.

    Args:
        urls:        URLs to fetch.
        concurrency: Maximum simultaneous requests (>= 1).
        **kwargs:    Forwarded to fetch_with_retry().

    Returns:
        One BatchResult per URL, in input order.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    semaphore = asyncio.Semaphore(concurrency)
    client = kwargs.pop("client", None)

    async with _client_scope(client) as http:

        async def fetch_one(url: str) -> httpx.Response:
            async with semaphore:
                return await fetch_with_retry(url, client=http, **kwargs)

        outcomes = await asyncio.gather(
            *(fetch_one(url) for url in urls), return_exceptions=True
        )

    results: list[BatchResult] = []
    for url, outcome in zip(urls, outcomes):
        if isinstance(outcome, BaseException):
            results.append(BatchResult(url=url, error=outcome))
        else:
            results.append(BatchResult(url=url, response=outcome))

    log.info(
        "batch_fetch_complete",
        total=len(results),
        succeeded=sum(1 for r in results if r.success),
        failed=sum(1 for r in results if not r.success),
    )
    return results
