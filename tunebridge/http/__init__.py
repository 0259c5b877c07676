"""
HTTP layer for TuneBridge

Response caching, fixed-window rate limiting, request coalescing with bounded
concurrency, abort signals and the aiohttp client wrapper that combines them.
"""

from .abort import AbortSignal
from .cache import CacheEntry, CacheSweeper, PersistentCache, TTLCache
from .client import HttpClient, HttpResponse
from .rate_limiter import RateLimiter
from .request_queue import RequestCoalescer

__all__ = [
    'AbortSignal',
    'CacheEntry',
    'CacheSweeper',
    'PersistentCache',
    'TTLCache',
    'HttpClient',
    'HttpResponse',
    'RateLimiter',
    'RequestCoalescer',
]
