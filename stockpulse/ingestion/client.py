"""
Shopify Admin API Client

Rate-limited async client for the REST and GraphQL Admin APIs.
Provides:
- Minimum spacing between calls (default 5 calls/second)
- Hard wall-clock timeout per call
- Bounded retries with exponential backoff for 429s, timeouts and 5xx
- Link-header pagination token parsing
- Call statistics
"""

import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlsplit

import httpx
import structlog
from prometheus_client import Counter

from stockpulse.config import Settings, get_settings
from stockpulse.exceptions import FetchError, FetchTimeout, HttpError, RateLimited

logger = structlog.get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]
ClockFunc = Callable[[], float]

API_CALLS = Counter(
    "stockpulse_shopify_calls_total",
    "Shopify Admin API calls by outcome",
    ["api", "outcome"],
)


def _outcome(error: FetchError) -> str:
    if isinstance(error, RateLimited):
        return "rate_limited"
    if isinstance(error, FetchTimeout):
        return "timeout"
    return "error"


@dataclass
class ApiRequest:
    """A single call to the Admin API"""
    path: str
    params: Optional[Dict[str, Any]] = None
    method: str = "GET"
    json: Optional[Dict[str, Any]] = None

    @classmethod
    def graphql(cls, query: str, variables: Optional[Dict[str, Any]] = None) -> "ApiRequest":
        return cls(
            path="/graphql.json",
            method="POST",
            json={"query": query, "variables": variables or {}},
        )

    @property
    def is_graphql(self) -> bool:
        return self.path == "/graphql.json"


@dataclass
class ApiResponse:
    """Decoded response with the next-page token, if any"""
    json: Dict[str, Any]
    status: int = 200
    next_token: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class ClientStats:
    """Counters for one client lifetime"""
    total_calls: int = 0
    rate_limit_hits: int = 0
    timeouts: int = 0
    retries: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def parse_next_link(link_header: Optional[str]) -> Optional[str]:
    """
    Extract the query string of the ``rel="next"`` URL from a Link header.

    Example:
        '<https://shop/admin/api/2024-07/orders.json?limit=250&page_info=abc>; rel="next"'
        -> 'limit=250&page_info=abc'
    """
    if not link_header:
        return None

    for part in link_header.split(","):
        part = part.strip()
        if 'rel="next"' not in part:
            continue
        start, end = part.find("<"), part.find(">")
        if start == -1 or end <= start:
            return None
        query = urlsplit(part[start + 1:end]).query
        return query or None

    return None


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Seconds to wait from a ``Retry-After`` header.

    Accepts delay-seconds or an HTTP-date; anything unparseable is ``None``.
    """
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


class RateLimiter:
    """
    Enforces a minimum interval between calls.

    The clock and sleep function are injectable so tests can run without
    real waiting.
    """

    def __init__(
        self,
        calls_per_second: float = 5.0,
        clock: ClockFunc = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.interval = 1.0 / calls_per_second if calls_per_second > 0 else 0.0
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()
        self.call_count = 0

    async def wait_for_slot(self) -> float:
        """Wait until the interval since the previous call has elapsed; returns the wait"""
        # Concurrent callers queue here so each one sees the previous slot
        async with self._lock:
            waited = 0.0
            if self._last_call is not None:
                elapsed = self._clock() - self._last_call
                if elapsed < self.interval:
                    waited = self.interval - elapsed
                    await self._sleep(waited)

            self._last_call = self._clock()
            self.call_count += 1
            return waited


class ShopifyClient:
    """
    Async Admin API client.

    All calls run sequentially through one rate limiter. ``call`` raises
    typed fetch errors; ``safe_call`` retries the retryable ones and returns
    ``None`` once the retry bound is exhausted.

    Example:
        async with ShopifyClient.from_settings() as client:
            response = await client.safe_call(ApiRequest("/locations.json"), "locations")
    """

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: str = "2024-07",
        rate_limiter: Optional[RateLimiter] = None,
        timeout_seconds: float = 15.0,
        max_retries: int = 2,
        rate_limit_backoff_seconds: float = 2.0,
        timeout_backoff_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.shop = shop
        self.api_version = api_version
        self.rate_limiter = rate_limiter or RateLimiter(sleep=sleep)
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.rate_limit_backoff_seconds = rate_limit_backoff_seconds
        self.timeout_backoff_seconds = timeout_backoff_seconds
        self.stats = ClientStats()
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            base_url=f"https://{shop}/admin/api/{api_version}",
            headers={
                "X-Shopify-Access-Token": access_token,
                "Accept": "application/json",
            },
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides: Any) -> "ShopifyClient":
        """Build a client from application settings"""
        settings = settings or get_settings()
        sleep = overrides.pop("sleep", asyncio.sleep)
        options: Dict[str, Any] = {
            "shop": settings.shopify.shop,
            "access_token": settings.shopify.admin_token.get_secret_value(),
            "api_version": settings.shopify.api_version,
            "rate_limiter": RateLimiter(settings.rate_limit.calls_per_second, sleep=sleep),
            "timeout_seconds": settings.rate_limit.timeout_seconds,
            "max_retries": settings.rate_limit.max_retries,
            "rate_limit_backoff_seconds": settings.rate_limit.rate_limit_backoff_seconds,
            "timeout_backoff_seconds": settings.rate_limit.timeout_backoff_seconds,
            "sleep": sleep,
        }
        options.update(overrides)
        return cls(**options)

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def call(self, request: ApiRequest) -> ApiResponse:
        """
        Issue one rate-limited call.

        Raises:
            RateLimited: 429 or GraphQL THROTTLED
            FetchTimeout: call exceeded ``timeout_seconds``
            HttpError: any other failure
        """
        api = "graphql" if request.is_graphql else "rest"
        try:
            response = await self._send(request)
        except FetchError as e:
            API_CALLS.labels(api=api, outcome=_outcome(e)).inc()
            raise
        API_CALLS.labels(api=api, outcome="ok").inc()
        return response

    async def _send(self, request: ApiRequest) -> ApiResponse:
        await self.rate_limiter.wait_for_slot()
        self.stats.total_calls += 1

        try:
            response = await asyncio.wait_for(
                self._http.request(
                    request.method,
                    request.path,
                    params=request.params,
                    json=request.json,
                ),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            self.stats.timeouts += 1
            raise FetchTimeout(
                f"{request.path} timed out after {self.timeout_seconds}s",
                context={"path": request.path},
            ) from e
        except httpx.TransportError as e:
            raise HttpError(
                0,
                f"{request.path} transport error: {e}",
                transient=True,
                context={"path": request.path},
            ) from e

        if response.status_code == 429:
            self.stats.rate_limit_hits += 1
            retry_after = response.headers.get("Retry-After")
            raise RateLimited(
                f"{request.path} -> 429",
                retry_after=parse_retry_after(retry_after),
                context={"path": request.path},
            )

        if response.status_code >= 400:
            raise HttpError(
                response.status_code,
                f"{request.path} -> {response.status_code} {response.text}"[:500],
                context={"path": request.path},
            )

        try:
            body = response.json() if response.content else {}
        except ValueError as e:
            raise HttpError(
                response.status_code,
                f"{request.path} -> non-JSON body: {response.text}"[:500],
                transient=True,
                context={"path": request.path},
            ) from e

        if request.is_graphql and body.get("errors"):
            self._raise_graphql_errors(body["errors"], response.status_code)

        return ApiResponse(
            json=body,
            status=response.status_code,
            next_token=parse_next_link(response.headers.get("link")),
            headers=dict(response.headers),
        )

    def _raise_graphql_errors(self, errors: Any, status: int) -> None:
        messages = []
        throttled = False
        for error in errors if isinstance(errors, list) else [errors]:
            if isinstance(error, dict):
                messages.append(str(error.get("message", "")))
                if (error.get("extensions") or {}).get("code") == "THROTTLED":
                    throttled = True
            else:
                messages.append(str(error))

        message = f"GraphQL error: {', '.join(messages)}"
        if throttled:
            self.stats.rate_limit_hits += 1
            raise RateLimited(message)
        raise HttpError(status, message, transient=False)

    def _backoff(self, error: FetchError, attempt: int) -> float:
        if isinstance(error, RateLimited):
            delay = self.rate_limit_backoff_seconds * (2 ** attempt)
            if error.retry_after:
                delay = max(delay, error.retry_after)
            return delay
        return self.timeout_backoff_seconds * (2 ** attempt)

    async def safe_call(self, request: ApiRequest, context: str) -> Optional[ApiResponse]:
        """
        Call with bounded retries.

        Returns ``None`` (and counts a skipped unit) when the call keeps
        failing, so one bad unit never aborts a report run.
        """
        for attempt in range(self.max_retries + 1):
            try:
                return await self.call(request)
            except FetchError as e:
                if e.retryable and attempt < self.max_retries:
                    delay = self._backoff(e, attempt)
                    self.stats.retries += 1
                    logger.warning(
                        "API call failed, retrying",
                        context=context,
                        error=e.message[:100],
                        error_type=type(e).__name__,
                        attempt=attempt + 1,
                        max_retries=self.max_retries,
                        delay_seconds=delay,
                    )
                    await self._sleep(delay)
                    continue

                self.stats.skipped += 1
                logger.error(
                    "API call failed, skipping unit",
                    context=context,
                    error=e.message[:100],
                    error_type=type(e).__name__,
                    attempts=attempt + 1,
                )
                return None

        return None
