"""
Primary catalog client (JioSaavn-style aggregator REST API)

The primary catalog is the only source of playable audio URLs. Every method
here is a thin async wrapper over one endpoint: it sends the request through
the shared HttpClient pipeline and wraps the body in a CatalogResponse.

Errors are not swallowed. Classified RequestErrors propagate to the caller,
which is normally the DataSourcePolicy (deciding whether to serve fixture
data instead) or the ResolutionChain (moving on to its next strategy).

Endpoints:

    GET /                      home payload (trending, newReleases, ...)
    GET /search                global search
    GET /search/songs          song search
    GET /search/albums         album search
    GET /song                  song details by id, ids or link
    GET /song/recommendations  similar songs
    GET /album                 album details by id or link
    GET /albums/new            new releases
    GET /artist                artist details
    GET /artist/songs          artist songs
    GET /artist/albums         artist albums
    GET /artist/top-songs      artist top songs
    GET /playlist              playlist details by id or link
    GET /get/trending          trending songs and albums
    GET /radio/featured        featured radio station
    GET /radio/artist          artist radio station
"""

from typing import Any, Dict, Iterable, Optional, Union

from .models import CatalogResponse
from ..exceptions import RateLimitedError, RequestAborted, RequestError
from ..http.abort import AbortSignal
from ..http.client import HttpClient
from ..utils.logger import get_logger


class SaavnCatalog:
    """
    Async client for the primary catalog API

    Attributes:
        client: HTTP client configured with the catalog base URL
        probe_timeout: Timeout in seconds for the availability probe
    """

    def __init__(self, client: HttpClient, probe_timeout: float = 3.0):
        self.client = client
        self.probe_timeout = probe_timeout
        self.logger = get_logger(__name__)

    async def _get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        abort_signal: Optional[AbortSignal] = None
    ) -> CatalogResponse:
        response = await self.client.get(path, params=params, abort_signal=abort_signal)
        return CatalogResponse.from_payload(response.data)

    # ============ SEARCH ============

    async def search(self, query: str, limit: int = 100, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        """Global search across songs, albums and artists"""
        return await self._get('/search', {'q': query, 'limit': limit}, abort_signal)

    async def search_songs(self, query: str, limit: int = 100, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        """Song search; results are under data.results"""
        return await self._get('/search/songs', {'q': query, 'limit': limit}, abort_signal)

    async def search_albums(self, query: str, limit: int = 100, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/search/albums', {'q': query, 'limit': limit}, abort_signal)

    # ============ SONGS ============

    async def get_song_details(self, song_id: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/song', {'id': song_id}, abort_signal)

    async def get_song_by_url(self, link: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/song', {'link': link}, abort_signal)

    async def get_multiple_songs(
        self,
        song_ids: Union[str, Iterable[str]],
        abort_signal: Optional[AbortSignal] = None
    ) -> CatalogResponse:
        """
        Fetch several songs in one request

        Args:
            song_ids: Comma-separated string or iterable of ids
        """
        ids = song_ids if isinstance(song_ids, str) else ','.join(song_ids)
        return await self._get('/song', {'id': ids}, abort_signal)

    async def get_song_recommendations(
        self,
        song_id: str,
        limit: int = 10,
        abort_signal: Optional[AbortSignal] = None
    ) -> CatalogResponse:
        return await self._get('/song/recommendations', {'id': song_id, 'limit': limit}, abort_signal)

    # ============ ALBUMS ============

    async def get_album_details(self, album_id: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/album', {'id': album_id}, abort_signal)

    async def get_album_by_url(self, link: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/album', {'link': link}, abort_signal)

    # ============ ARTISTS ============

    async def get_artist_details(self, artist_id: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/artist', {'id': artist_id}, abort_signal)

    async def get_artist_songs(
        self,
        artist_id: str,
        limit: int = 100,
        abort_signal: Optional[AbortSignal] = None
    ) -> CatalogResponse:
        return await self._get('/artist/songs', {'id': artist_id, 'limit': limit}, abort_signal)

    async def get_artist_albums(
        self,
        artist_id: str,
        limit: int = 100,
        abort_signal: Optional[AbortSignal] = None
    ) -> CatalogResponse:
        return await self._get('/artist/albums', {'id': artist_id, 'limit': limit}, abort_signal)

    async def get_artist_top_songs(self, artist_id: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        """Artist top songs; data is a plain list of song objects"""
        return await self._get('/artist/top-songs', {'artist_id': artist_id}, abort_signal)

    # ============ PLAYLISTS & RADIO ============

    async def get_playlist_details(self, playlist_id: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/playlist', {'id': playlist_id}, abort_signal)

    async def get_playlist_by_url(self, link: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/playlist', {'link': link}, abort_signal)

    async def get_featured_radio(self, name: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/radio/featured', {'name': name}, abort_signal)

    async def get_artist_radio(self, name: str, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        return await self._get('/radio/artist', {'name': name}, abort_signal)

    # ============ HOME, TRENDING & NEW RELEASES ============

    async def get_home_data(self, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        """Home payload with trending, newReleases, topArtists and playlists sections"""
        return await self._get('/', None, abort_signal)

    async def get_trending(self, limit: int = 100, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        """
        Trending songs and albums

        Falls back to the home payload's "trending" section when the
        dedicated endpoint fails.
        """
        return await self._get_with_home_fallback('/get/trending', 'trending', limit, abort_signal)

    async def get_new_releases(self, limit: int = 100, abort_signal: Optional[AbortSignal] = None) -> CatalogResponse:
        """
        Newly released albums

        Falls back to the home payload's "newReleases" section when the
        dedicated endpoint fails.
        """
        return await self._get_with_home_fallback('/albums/new', 'newReleases', limit, abort_signal)

    async def _get_with_home_fallback(
        self,
        path: str,
        section: str,
        limit: int,
        abort_signal: Optional[AbortSignal]
    ) -> CatalogResponse:
        try:
            return await self._get(path, {'limit': limit}, abort_signal)
        except RequestAborted:
            raise
        except RequestError as e:
            self.logger.debug(f"{path} failed ({e}), trying home payload section '{section}'")
            original_error = e

        try:
            home = await self.get_home_data(abort_signal)
        except RequestAborted:
            raise
        except RequestError as e:
            self.logger.debug(f"Home payload fallback failed: {e}")
            raise original_error

        body = home.data if isinstance(home.data, dict) else {}
        items = body.get(section)
        if not isinstance(items, list):
            raise original_error

        return CatalogResponse.success(items[:limit], message=f"{section} fetched from home data")

    # ============ AVAILABILITY ============

    async def probe(self) -> bool:
        """
        Check whether the API answers at all

        Sends an uncached GET /search?q=test&limit=1 with a short timeout.
        A local rate-limit rejection says nothing about the server, so it
        counts as available.

        Returns:
            True if the API responded successfully
        """
        try:
            await self.client.get(
                '/search',
                params={'q': 'test', 'limit': 1},
                use_cache=False,
                timeout=self.probe_timeout
            )
            self.logger.info("Primary catalog API is reachable")
            return True
        except RateLimitedError:
            return True
        except RequestError as e:
            self.logger.warning(f"Primary catalog API is not reachable: {e}")
            return False
