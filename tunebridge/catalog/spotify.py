"""
Secondary catalog client (Spotify Web API)

Spotify supplies metadata only: playlists, tracks and artists, never audio.
Tracks coming from here are resolved against the primary catalog before
they can be played.

Authentication uses the OAuth2 client-credentials flow. The bearer token is
cached in memory and only requested again once it is about to expire
(expires_in minus a safety margin). A 401 answer drops the cached token and
the request is retried once with a fresh one.

The search and listing methods follow a lenient policy: catalog failures are
logged and reported as an empty result ([] or None), since a missing
playlist card should never break the screen that asked for it. Aborts are
always propagated.
"""

import base64
import time
from typing import Any, Callable, Dict, List, Optional

from .models import PlaylistSummary, Track
from ..exceptions import CatalogError, ConfigError, RequestAborted, ServerError, TuneBridgeError
from ..http.abort import AbortSignal
from ..http.client import HttpClient
from ..utils.logger import get_logger, log_performance


PAGE_SIZE = 100


class SpotifyCatalog:
    """
    Async client for the Spotify Web API

    Attributes:
        client: HTTP client whose base URL is the Web API root
        token_url: Accounts service token endpoint
        expiry_margin: Seconds subtracted from expires_in when caching tokens
    """

    def __init__(
        self,
        client: HttpClient,
        client_id: str,
        client_secret: str,
        token_url: str = "https://accounts.spotify.com/api/token",
        expiry_margin: float = 60.0,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize client

        Args:
            client: HTTP client whose base URL is the Web API root
            client_id: Application client id
            client_secret: Application client secret
            token_url: Accounts service token endpoint
            expiry_margin: Seconds subtracted from expires_in when caching tokens
            clock: Callable returning the current time in seconds
        """
        self.client = client
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.expiry_margin = expiry_margin
        self._clock = clock or time.time
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0
        self.logger = get_logger(__name__)

    @property
    def has_valid_token(self) -> bool:
        return self._access_token is not None and self._clock() < self._token_expires_at

    def invalidate_token(self) -> None:
        self._access_token = None
        self._token_expires_at = 0.0

    async def get_access_token(self) -> str:
        """
        Return a bearer token, requesting a new one only when needed

        Returns:
            Access token string

        Raises:
            ConfigError: Client credentials are not configured
            CatalogError: Token response did not contain an access token
            RequestError: Token request failed
        """
        if self.has_valid_token:
            return self._access_token

        if not self.client_id or not self.client_secret:
            raise ConfigError(
                "Spotify credentials not configured",
                details={'hint': 'Set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET'}
            )

        credentials = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        response = await self.client.post(
            self.token_url,
            data={'grant_type': 'client_credentials'},
            headers={
                'Authorization': f'Basic {credentials}',
                'Content-Type': 'application/x-www-form-urlencoded',
            }
        )

        payload = response.data if isinstance(response.data, dict) else {}
        token = payload.get('access_token')
        if not token:
            raise CatalogError("Token response did not contain an access token", details={'response': payload})

        expires_in = float(payload.get('expires_in') or 3600)
        self._access_token = token
        self._token_expires_at = self._clock() + max(0.0, expires_in - self.expiry_margin)
        self.logger.debug(f"Obtained Spotify access token, valid for {expires_in:.0f}s")
        return token

    async def _api_get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        abort_signal: Optional[AbortSignal] = None
    ) -> Dict[str, Any]:
        """
        Authenticated GET with one token refresh on 401

        Returns:
            Parsed JSON body (empty dict for non-object bodies)
        """
        for attempt in range(2):
            token = await self.get_access_token()
            try:
                response = await self.client.get(
                    path,
                    params=params,
                    headers={'Authorization': f'Bearer {token}'},
                    abort_signal=abort_signal
                )
                return response.data if isinstance(response.data, dict) else {}
            except ServerError as e:
                if e.status == 401 and attempt == 0:
                    self.logger.debug("Spotify token rejected, refreshing")
                    self.invalidate_token()
                    continue
                raise
        return {}

    async def search_playlists(
        self,
        query: str,
        limit: int = 5,
        abort_signal: Optional[AbortSignal] = None
    ) -> List[PlaylistSummary]:
        """
        Search public playlists

        Args:
            query: Search text
            limit: Maximum number of playlists

        Returns:
            Playlist summaries; null items in the response are skipped.
            Empty list on failure.
        """
        try:
            data = await self._api_get(
                '/search',
                {'q': query, 'type': 'playlist', 'limit': limit},
                abort_signal
            )
        except RequestAborted:
            raise
        except TuneBridgeError as e:
            self.logger.error(f"Error searching Spotify playlists: {e}")
            return []

        items = (data.get('playlists') or {}).get('items') or []
        return [PlaylistSummary.from_secondary_data(item) for item in items if item]

    @log_performance
    async def get_playlist_tracks(
        self,
        playlist_id: str,
        abort_signal: Optional[AbortSignal] = None
    ) -> List[Track]:
        """
        Fetch every track of a playlist

        Pages of 100 items are requested until a short page is returned.
        Items without a track object (removed or local files) are skipped.

        Args:
            playlist_id: Spotify playlist id

        Returns:
            Unresolved tracks in playlist order. Empty list on failure.
        """
        tracks: List[Track] = []
        offset = 0

        try:
            while True:
                data = await self._api_get(
                    f'/playlists/{playlist_id}/tracks',
                    {'limit': PAGE_SIZE, 'offset': offset},
                    abort_signal
                )
                raw_items = data.get('items') or []
                items = [item for item in raw_items if item and item.get('track')]
                tracks.extend(Track.from_secondary_data(item) for item in items)

                if len(raw_items) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE

        except RequestAborted:
            raise
        except TuneBridgeError as e:
            self.logger.error(f"Error getting playlist tracks for {playlist_id}: {e}")
            return []

        self.logger.debug(f"Fetched {len(tracks)} tracks from playlist {playlist_id}")
        return tracks

    async def get_playlist_details(
        self,
        playlist_id: str,
        abort_signal: Optional[AbortSignal] = None
    ) -> Optional[PlaylistSummary]:
        """Playlist card with description and track count, or None on failure"""
        try:
            data = await self._api_get(f'/playlists/{playlist_id}', None, abort_signal)
        except RequestAborted:
            raise
        except TuneBridgeError as e:
            self.logger.error(f"Error getting playlist details for {playlist_id}: {e}")
            return None

        if not data.get('id'):
            return None
        return PlaylistSummary.from_secondary_data(data)

    async def search_artist(
        self,
        name: str,
        abort_signal: Optional[AbortSignal] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Find the best matching artist

        Returns:
            Dictionary with id, name, image, genres and followers of the first
            match, or None
        """
        try:
            data = await self._api_get('/search', {'q': name, 'type': 'artist', 'limit': 1}, abort_signal)
        except RequestAborted:
            raise
        except TuneBridgeError as e:
            self.logger.error(f"Error searching Spotify artist '{name}': {e}")
            return None

        items = [item for item in (data.get('artists') or {}).get('items') or [] if item]
        if not items:
            return None

        artist = items[0]
        images = artist.get('images') or []
        return {
            'id': artist.get('id'),
            'name': artist.get('name'),
            'image': images[0].get('url') if images else None,
            'genres': artist.get('genres') or [],
            'followers': (artist.get('followers') or {}).get('total'),
        }
