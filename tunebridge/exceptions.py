"""
Exception classes for TuneBridge.

This module defines all custom exceptions used throughout the library.
Each exception carries a human-readable message plus an optional details
dictionary, so callers can distinguish failure modes without parsing text.

Exception Hierarchy:
    TuneBridgeError (base)
        ConfigError - Missing or invalid configuration
        RequestError - Classified failure at the HTTP client boundary
            RateLimitedError - Local admission gate rejected the request
            NoResponseError - Network failure or timeout
            ServerError - Catalog answered with a non-2xx status
            RequestSetupError - Request could not be built
        RequestAborted - Caller cancelled the request (not a failure)
        CatalogError - Catalog payload could not be interpreted
        PlaybackFault - Native engine reported an error during playback
        SetupFailure - Native engine could not be initialized

A failed track resolution is not an exception: the resolution chain simply
returns None once every strategy has been tried.
"""

from typing import Optional


class TuneBridgeError(Exception):
    """
    Base exception for all TuneBridge errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch every TuneBridge error with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., url, status).

    Example:
        try:
            response = await client.get(url)
        except TuneBridgeError as e:
            logger.error(f"Request failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'url': URL that caused the error
                     - 'method': HTTP method of the failed request
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(TuneBridgeError):
    """
    Raised when there's an issue with the configuration.

    Common causes:
        - Spotify client_id / client_secret not configured
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g., non-positive concurrency)
    """
    pass


class RequestError(TuneBridgeError):
    """
    Base class for failures normalized by the HTTP client.

    Transport exceptions (aiohttp, timeouts) never travel past the HTTP
    client: they are converted into one of the subclasses below, so business
    logic only ever sees this family.
    """
    pass


class RateLimitedError(RequestError):
    """
    Raised when the local fixed-window rate limiter refuses a request.

    No network call was made. The caller may retry once the window rolls
    over; the remaining wait is provided in details['retry_after'] when known.
    """
    pass


class NoResponseError(RequestError):
    """
    Raised when a request was sent but no response arrived.

    Covers connection failures and timeouts. This error is recoverable:
    it is safe to retry, or to fall back to cached or fixture data.
    """
    pass


class ServerError(RequestError):
    """
    Raised when a catalog API responds with a non-2xx status code.

    A 404 from the primary catalog means the backend does not support the
    requested feature or category. It is surfaced with a distinct,
    user-readable message instead of a generic failure.

    Attributes:
        status: HTTP status code returned by the server.
    """

    def __init__(self, message: str, status: int, details: Optional[dict] = None) -> None:
        """
        Initialize server error with its status code.

        Args:
            message: Human-readable error description.
            status: HTTP status code returned by the server.
            details: Optional dictionary with additional context.
        """
        super().__init__(message, details)
        self.status = status

    @property
    def is_unsupported(self) -> bool:
        """True when the server signalled the feature does not exist (404)."""
        return self.status == 404

    @property
    def user_message(self) -> str:
        """Message suitable for display in the collaborator UI."""
        if self.is_unsupported:
            return "This feature is not supported by the music server"
        return f"Server error: {self.status}"


class RequestSetupError(RequestError):
    """
    Raised when a request cannot even be constructed.

    Typical causes are an invalid URL or arguments the HTTP library rejects.
    Retrying will not help.
    """
    pass


class RequestAborted(TuneBridgeError):
    """
    Raised when the caller aborted a request through its AbortSignal.

    This is a silent outcome rather than an error: it is never retried,
    never cached and should not be shown to the user.
    """
    pass


class CatalogError(TuneBridgeError):
    """
    Raised when a catalog response cannot be interpreted.

    Example:
        raise CatalogError(
            "Token response did not contain an access token",
            details={'response': payload}
        )
    """
    pass


class PlaybackFault(TuneBridgeError):
    """
    Native playback engine reported an error while playing.

    The playback orchestrator reacts by attempting one automatic skip to the
    next track; if none exists the fault becomes terminal and user-visible.

    Attributes:
        code: Engine-specific error code, if the engine provided one.
    """

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[dict] = None) -> None:
        super().__init__(message, details)
        self.code = code


class SetupFailure(TuneBridgeError):
    """
    Native playback engine could not be initialized after the retry ceiling.

    This is terminal until the user explicitly resets the player.
    """
    pass
