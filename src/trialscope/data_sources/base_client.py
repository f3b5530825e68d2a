"""
Base client for upstream registry clients.

Every call to the registry goes through BaseClient._request, which
throttles with a token bucket, retries transient failures (429, 5xx,
timeouts, dropped connections) with exponential backoff, and turns
anything it cannot recover from into a DataSourceError. It never returns
an empty success in place of a failure.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import aiohttp
from pydantic import BaseModel

from trialscope.config import Settings

logger = logging.getLogger("trialscope.data_sources")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RetryConfig(BaseModel):
    """Backoff schedule: base_delay * backoff_factor**attempt, capped at max_delay."""

    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    backoff_factor: float = 2.0
    retryable_status_codes: set[int] = {429, 500, 502, 503, 504}


class RateLimitConfig(BaseModel):
    requests_per_second: float = 5.0
    burst: int = 10


class ClientConfig(BaseModel):
    """Everything a BaseClient needs besides its base URL."""

    retry: RetryConfig = RetryConfig()
    rate_limit: RateLimitConfig = RateLimitConfig()
    timeout_seconds: float = 30.0
    user_agent: str = "TrialScope/0.1"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientConfig":
        return cls(
            retry=RetryConfig(max_retries=settings.max_retries),
            rate_limit=RateLimitConfig(
                requests_per_second=settings.requests_per_second
            ),
            timeout_seconds=settings.request_timeout,
            user_agent=settings.user_agent,
        )


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------


class TokenBucketRateLimiter:
    """
    Shared throttle for one client.

    The bucket starts full (`burst` tokens) and refills continuously at
    `requests_per_second`. Each request takes one token; with the bucket
    empty, `acquire()` sleeps until one has accrued.
    """

    def __init__(self, config: RateLimitConfig):
        self.rate = config.requests_per_second
        self.capacity = float(config.burst)
        self.tokens = self.capacity
        self.updated_at = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.updated_at) * self.rate)
        self.updated_at = now

    async def acquire(self) -> None:
        async with self._lock:
            self._refill()
            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return

            wait = (1.0 - self.tokens) / self.rate
            logger.debug("Throttled for %.2fs", wait)
            await asyncio.sleep(wait)
            self._refill()
            self.tokens = max(0.0, self.tokens - 1.0)


# ---------------------------------------------------------------------------
# Request context (for structured logging)
# ---------------------------------------------------------------------------


class RequestContext(BaseModel):
    """Who is calling what, attached to every log line of a request."""

    source: str  # e.g. "clinical_trials"
    method: str  # e.g. "search_studies"
    params: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DataSourceError(Exception):
    """The registry could not be queried: transport failure or error status."""

    def __init__(self, source: str, message: str, status_code: int | None = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"[{source}] {message}")


class TrialNotFoundError(DataSourceError):
    """A single-record lookup named an NCT ID the registry does not have."""

    def __init__(self, source: str, nct_id: str):
        self.nct_id = nct_id
        super().__init__(source, f"Trial {nct_id} not found", status_code=404)


# ---------------------------------------------------------------------------
# Partial result wrapper
# ---------------------------------------------------------------------------


class PartialResult(BaseModel):
    """
    A value assembled from several upstream calls, some of which may have failed.

    `errors` lists one message per failed sub-call; `is_complete` is False
    whenever it is non-empty.
    """

    data: Any
    is_complete: bool = True
    errors: list[str] = []
    fallback: bool = False  # built from sampled trials instead of live counts
    elapsed_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Base client
# ---------------------------------------------------------------------------


class BaseClient(ABC):
    """
    Abstract base for upstream REST clients.

    Subclasses name themselves via `_source_name` and expose typed methods
    built on `_rest_get()`.
    """

    def __init__(self, config: ClientConfig | None = None):
        self.config = config or ClientConfig()
        self.rate_limiter = TokenBucketRateLimiter(self.config.rate_limit)
        self._session: aiohttp.ClientSession | None = None

    @property
    @abstractmethod
    def _source_name(self) -> str:
        """Identifier for this data source, e.g. 'clinical_trials'."""
        ...

    # -- Session management --------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
                headers={
                    "Accept": "application/json",
                    "User-Agent": self.config.user_agent,
                },
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # -- Retry policy --------------------------------------------------------

    def _backoff(self, attempt: int) -> float:
        retry = self.config.retry
        return min(retry.base_delay * retry.backoff_factor**attempt, retry.max_delay)

    def _retry_delay(self, attempt: int, retry_after: str | None = None) -> float | None:
        """Seconds to wait before the next attempt, or None when out of attempts."""
        if attempt >= self.config.retry.max_retries:
            return None
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                logger.debug("Ignoring non-numeric Retry-After %r", retry_after)
        return self._backoff(attempt)

    # -- Core request --------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        context: RequestContext | None = None,
    ) -> Any:
        """
        Send one logical request, retrying transient failures.

        Parameters
        ----------
        method : str
            HTTP verb; the registry only needs "GET".
        url : str
            Full URL.
        params : dict, optional
            Query string parameters.
        headers : dict, optional
            Extra headers on top of the session defaults.
        context : RequestContext, optional
            Logging context.

        Returns the decoded JSON body.
        """
        ctx = context or RequestContext(source=self._source_name, method="unknown")
        started = time.monotonic()
        last_error: DataSourceError | None = None
        attempt = 0

        while True:
            retry_after: str | None = None
            try:
                await self.rate_limiter.acquire()
                session = await self._get_session()
                logger.info(
                    "%s %s.%s attempt %d: %s",
                    method.upper(),
                    ctx.source,
                    ctx.method,
                    attempt + 1,
                    url,
                )
                resp = await session.request(
                    method.upper(), url, params=params, headers=headers
                )

                if resp.status < 400:
                    data = await resp.json()
                    logger.info(
                        "%s.%s ok in %.2fs",
                        ctx.source,
                        ctx.method,
                        time.monotonic() - started,
                    )
                    return data

                body = (await resp.text())[:300]
                last_error = DataSourceError(
                    ctx.source, f"HTTP {resp.status}: {body}", status_code=resp.status
                )
                if resp.status not in self.config.retry.retryable_status_codes:
                    raise last_error

                logger.warning(
                    "%s.%s got retryable HTTP %d: %s",
                    ctx.source,
                    ctx.method,
                    resp.status,
                    body[:200],
                )
                if resp.status == 429:
                    retry_after = resp.headers.get("Retry-After")

            except asyncio.TimeoutError:
                last_error = DataSourceError(
                    ctx.source, f"Timeout after {time.monotonic() - started:.1f}s"
                )
                logger.warning(
                    "%s.%s timed out on attempt %d", ctx.source, ctx.method, attempt + 1
                )

            except aiohttp.ClientError as e:
                last_error = DataSourceError(ctx.source, f"Connection error: {e}")
                logger.warning(
                    "%s.%s connection error on attempt %d: %s",
                    ctx.source,
                    ctx.method,
                    attempt + 1,
                    e,
                )

            delay = self._retry_delay(attempt, retry_after)
            if delay is None:
                break
            await asyncio.sleep(delay)
            attempt += 1

        logger.error(
            "%s.%s failed after %d attempts (%.1fs): %s",
            ctx.source,
            ctx.method,
            attempt + 1,
            time.monotonic() - started,
            last_error,
        )
        raise last_error

    async def _rest_get(
        self,
        url: str,
        params: dict[str, Any],
        *,
        context: RequestContext | None = None,
    ) -> Any:
        """GET `url` and return its JSON body."""
        return await self._request("GET", url, params=params, context=context)
