"""
Utility functions and helpers for TuneBridge
Retry policy, stream URL normalization, bitrate parsing and string matching
"""

import asyncio
import functools
import json
import re
import unicodedata
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar, Union

from .logger import get_logger
from ..exceptions import RequestAborted


T = TypeVar('T')

logger = get_logger(__name__)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: Optional[str] = None
) -> T:
    """
    Await fn until it succeeds or the attempt ceiling is reached

    This is the single retry policy used for engine setup, resolution
    strategies and queue operations. The delay between attempts is fixed
    unless backoff is greater than 1, in which case it grows geometrically.

    Aborts and task cancellation are never retried: they propagate on the
    first occurrence.

    Args:
        fn: Zero-argument coroutine function performing one attempt
        max_attempts: Maximum number of attempts (at least 1)
        delay: Seconds to wait before the second attempt
        backoff: Delay multiplier applied after every failed attempt
        retry_on: Exception types that trigger another attempt
        description: Label used in log messages

    Returns:
        Result of the first successful attempt

    Raises:
        The last exception raised by fn once attempts are exhausted, or
        immediately if it is not listed in retry_on
    """
    label = description or getattr(fn, '__name__', 'operation')
    attempts = max(1, max_attempts)
    current_delay = delay

    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except RequestAborted:
            raise
        except retry_on as e:
            if attempt == attempts:
                logger.warning(f"{label} failed after {attempts} attempts: {e}")
                raise

            logger.debug(f"{label} attempt {attempt}/{attempts} failed: {e}; retrying in {current_delay:.2f}s")
            if current_delay > 0:
                await asyncio.sleep(current_delay)
            current_delay *= backoff

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{label}: retry loop exited without a result")


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
):
    """
    Decorator for retrying coroutine functions on failure

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between attempts
        backoff: Delay multiplier for exponential backoff
        retry_on: Exception types that trigger another attempt
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await retry_with_backoff(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                delay=delay,
                backoff=backoff,
                retry_on=retry_on,
                description=func.__qualname__
            )
        return wrapper
    return decorator


def normalize_stream_url(url: Optional[str]) -> Optional[str]:
    """
    Clean up a stream URL before handing it to the playback engine

    Surrounding whitespace is removed and plain http is upgraded to https,
    since the engine refuses cleartext streams.

    Args:
        url: Raw URL from the catalog

    Returns:
        Normalized URL, or None for empty input
    """
    if not url:
        return None

    url = url.strip()
    if not url:
        return None

    if url.startswith('http://'):
        url = 'https://' + url[len('http://'):]

    return url


def parse_bitrate(label: Optional[str]) -> int:
    """
    Extract the integer bitrate from a quality label

    Args:
        label: Quality label such as "320kbps"

    Returns:
        Leading integer of the label, or 0 when there is none
    """
    if not label:
        return 0

    match = re.match(r'^\s*(\d+)', str(label))
    return int(match.group(1)) if match else 0


def make_request_key(method: str, url: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Build the cache and coalescing key for a request

    Params are serialized with sorted keys so that logically identical
    requests map to the same key regardless of argument order.

    Args:
        method: HTTP method
        url: Request URL
        params: Query parameters (or body, for non-GET requests)

    Returns:
        Key string of the form "GET:https://host/path{...}"
    """
    serialized = json.dumps(params or {}, sort_keys=True, default=str)
    return f"{method.upper()}:{url}{serialized}"


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize text for case-insensitive matching

    Decodes the HTML entities the primary catalog leaves in titles,
    strips accents and folds case.

    Args:
        text: Text to normalize

    Returns:
        Normalized text, empty string for None
    """
    if not text:
        return ""

    text = text.replace('&quot;', '"').replace('&amp;', '&').replace('&#039;', "'")
    text = unicodedata.normalize('NFKD', text)
    text = ''.join(c for c in text if not unicodedata.combining(c))
    text = re.sub(r'\s+', ' ', text)
    return text.strip().casefold()


def title_matches(candidate: Optional[str], title: Optional[str]) -> bool:
    """True when candidate contains title, ignoring case and accents"""
    needle = normalize_text(title)
    if not needle:
        return False
    return needle in normalize_text(candidate)


def format_duration(seconds: Union[int, float]) -> str:
    """
    Format duration in seconds to human-readable string

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 0:
        return "0:00"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    else:
        return f"{minutes}:{secs:02d}"


def parse_duration(value: Any) -> int:
    """
    Parse a duration from a catalog payload into whole seconds

    Accepts integers, numeric strings ("245") and clock strings ("4:05").
    Anything else yields 0.

    Args:
        value: Raw duration value

    Returns:
        Duration in seconds
    """
    if value is None or isinstance(value, bool):
        return 0

    if isinstance(value, (int, float)):
        return max(0, int(value))

    text = str(value).strip()
    if text.isdigit():
        return int(text)

    if re.match(r'^\d+(:\d{1,2}){1,2}$', text):
        seconds = 0
        for part in text.split(':'):
            seconds = seconds * 60 + int(part)
        return seconds

    try:
        return max(0, int(float(text)))
    except ValueError:
        return 0
