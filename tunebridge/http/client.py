"""
HTTP client wrapper for catalog APIs

HttpClient wraps an aiohttp ClientSession and layers the request pipeline
every catalog call goes through:

1. **Admission**: the rate limiter is checked before anything else and a
   RateLimitedError is raised without touching the network when the window
   is full.
2. **Caching**: idempotent GETs are served from the in-memory TTL cache, then
   from the optional persistent cache. Hits bypass the network and the
   coalescer entirely.
3. **Coalescing**: identical requests already in flight are joined instead
   of repeated, and concurrency is bounded by the shared RequestCoalescer.
   Only a request that starts a new network call consumes a rate-limiter slot.
4. **Timeout**: every outbound call is raced against a fixed timeout.
5. **Normalization**: transport failures are converted into the
   RequestError family (ServerError, NoResponseError, RequestSetupError).
   Raw aiohttp exceptions never escape this module.

Cancellation through an AbortSignal raises RequestAborted. It is logged at
debug level only, is never retried, and nothing is written to the cache.

Usage:

    async with HttpClient(base_url, cache=cache, rate_limiter=limiter,
                          coalescer=coalescer) as client:
        response = await client.get('/search/songs', params={'q': 'song'})
        songs = response.data['data']
"""

import asyncio
import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

import aiohttp

from .abort import AbortSignal
from .cache import PersistentCache, TTLCache
from .rate_limiter import RateLimiter
from .request_queue import RequestCoalescer
from ..exceptions import (
    NoResponseError,
    RateLimitedError,
    RequestAborted,
    RequestError,
    RequestSetupError,
    ServerError,
)
from ..utils.helpers import make_request_key
from ..utils.logger import get_logger


@dataclass
class HttpResponse:
    """
    Normalized HTTP response

    Attributes:
        status: HTTP status code
        data: Parsed JSON body, or the raw text when the body is not JSON
        headers: Response headers
        url: Final request URL
        from_cache: True when served from a cache without a network call
    """
    status: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpClient:
    """
    aiohttp wrapper applying rate limiting, caching, coalescing and timeouts

    One client exists per catalog. The cache and coalescer are normally
    shared process-wide, while each client has its own rate limiter.
    """

    def __init__(
        self,
        base_url: str = "",
        cache: Optional[TTLCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
        coalescer: Optional[RequestCoalescer] = None,
        persistent_cache: Optional[PersistentCache] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        default_headers: Optional[Dict[str, str]] = None,
        name: str = "http"
    ):
        """
        Initialize client

        Args:
            base_url: Prefix for relative request paths
            cache: In-memory response cache (None disables memory caching)
            rate_limiter: Admission gate (None disables rate limiting)
            coalescer: In-flight request table and concurrency bound
            persistent_cache: Durable response cache
            timeout: Seconds before an outbound call is abandoned
            session: Existing aiohttp session; created lazily when omitted
            default_headers: Headers sent with every request
            name: Label used in log messages
        """
        self.base_url = base_url.rstrip('/')
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.coalescer = coalescer
        self.persistent_cache = persistent_cache
        self.timeout = timeout
        self.default_headers = dict(default_headers or {})
        self.name = name
        self.logger = get_logger(__name__)

        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """
        Lazy-initialized aiohttp session

        Must be accessed from a running event loop.
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the session if this client created it"""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> 'HttpClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def build_url(self, path: str) -> str:
        """Resolve path against base_url; absolute URLs pass through"""
        if path.startswith(('http://', 'https://')) or not self.base_url:
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def _clean_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
        if not params:
            return None
        cleaned = {}
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = 'true' if value else 'false'
            cleaned[key] = str(value)
        return cleaned

    async def get(self, url: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> HttpResponse:
        return await self.request('GET', url, params=params, **kwargs)

    async def post(self, url: str, data: Any = None, json: Any = None, **kwargs) -> HttpResponse:
        return await self.request('POST', url, data=data, json=json, **kwargs)

    async def put(self, url: str, data: Any = None, json: Any = None, **kwargs) -> HttpResponse:
        return await self.request('PUT', url, data=data, json=json, **kwargs)

    async def delete(self, url: str, **kwargs) -> HttpResponse:
        return await self.request('DELETE', url, **kwargs)

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        data: Any = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        abort_signal: Optional[AbortSignal] = None,
        use_cache: bool = True,
        timeout: Optional[float] = None
    ) -> HttpResponse:
        """
        Send a request through the full pipeline

        Args:
            method: HTTP method
            url: Absolute URL or path relative to base_url
            params: Query parameters (None values are dropped)
            data: Form body
            json: JSON body
            headers: Extra request headers
            abort_signal: Signal that cancels this caller's wait
            use_cache: Whether a GET may be served from and stored in the caches
            timeout: Per-call override of the client timeout

        Returns:
            HttpResponse for a 2xx answer

        Raises:
            RateLimitedError: Local admission gate refused the request
            ServerError: Server answered with status >= 400
            NoResponseError: Connection failure or timeout
            RequestSetupError: Request could not be constructed
            RequestAborted: abort_signal tripped before the response arrived
        """
        method = method.upper()
        full_url = self.build_url(url)
        query = self._clean_params(params)

        if abort_signal is not None:
            abort_signal.raise_if_aborted()

        if self.rate_limiter is not None and self.rate_limiter.is_limited():
            raise RateLimitedError(
                f"Rate limit exceeded for {self.name}",
                details={'url': full_url, 'retry_after': self.rate_limiter.retry_after}
            )

        if method == 'GET':
            key = make_request_key(method, full_url, query)
        else:
            key = make_request_key(method, full_url, {'params': query, 'data': data, 'json': json})

        cacheable = method == 'GET' and use_cache

        if cacheable:
            cached = await self._read_cache(key, full_url)
            if cached is not None:
                self.logger.debug(f"Cache hit: {key}")
                return cached

        joining = self.coalescer is not None and self.coalescer.is_in_flight(key)
        if not joining and self.rate_limiter is not None and not self.rate_limiter.try_acquire():
            raise RateLimitedError(
                f"Rate limit exceeded for {self.name}",
                details={'url': full_url, 'retry_after': self.rate_limiter.retry_after}
            )

        async def fetch() -> HttpResponse:
            response = await self._send(method, full_url, query, data, json, headers, timeout or self.timeout)
            if cacheable:
                await self._write_cache(key, response)
            return response

        try:
            if self.coalescer is not None:
                return await self.coalescer.run(key, fetch, abort_signal)
            if abort_signal is not None:
                return await abort_signal.race(fetch())
            return await fetch()
        except RequestAborted:
            self.logger.debug(f"Request aborted: {method} {full_url}")
            raise

    async def _read_cache(self, key: str, url: str) -> Optional[HttpResponse]:
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return replace(cached, from_cache=True)

        if self.persistent_cache is not None:
            data = await self.persistent_cache.get(key)
            if data is not None:
                response = HttpResponse(status=200, data=data, url=url)
                if self.cache is not None:
                    self.cache.set(key, response)
                return replace(response, from_cache=True)

        return None

    async def _write_cache(self, key: str, response: HttpResponse) -> None:
        if self.cache is not None:
            self.cache.set(key, response)
        if self.persistent_cache is not None:
            await self.persistent_cache.set(key, response.data)

    @staticmethod
    def _parse_body(text: str) -> Any:
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, str]],
        data: Any,
        json_body: Any,
        headers: Optional[Dict[str, str]],
        timeout: float
    ) -> HttpResponse:
        """
        Perform one network call and classify any failure

        Raises:
            RequestError: Always one of its subclasses on failure
        """
        details = {'url': url, 'method': method}
        request_headers = {**self.default_headers, **(headers or {})}

        self.logger.debug(f"{self.name}: {method} {url} params={params}")

        try:
            return await asyncio.wait_for(
                self._perform(method, url, params, data, json_body, request_headers),
                timeout
            )
        except asyncio.TimeoutError:
            raise NoResponseError(f"Request timed out after {timeout}s: {url}", details)
        except RequestError:
            raise
        except aiohttp.InvalidURL as e:
            raise RequestSetupError(f"Invalid request URL: {url}", {**details, 'original_error': str(e)})
        except aiohttp.ClientError as e:
            raise NoResponseError(f"No response from {url}: {e}", {**details, 'original_error': str(e)})
        except (ValueError, TypeError) as e:
            raise RequestSetupError(f"Could not build request for {url}: {e}", {**details, 'original_error': str(e)})

    async def _perform(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, str]],
        data: Any,
        json_body: Any,
        headers: Dict[str, str]
    ) -> HttpResponse:
        async with self.session.request(
            method, url, params=params, data=data, json=json_body, headers=headers
        ) as resp:
            text = await resp.text()
            body = self._parse_body(text)

            if resp.status >= 400:
                raise ServerError(
                    f"{method} {url} returned status {resp.status}",
                    status=resp.status,
                    details={'url': url, 'method': method, 'body': body}
                )

            return HttpResponse(
                status=resp.status,
                data=body,
                headers=dict(resp.headers),
                url=str(resp.url)
            )
