"""
Live and fallback data sources for primary catalog browsing

Browsing calls (search, trending, home, album and artist pages) can be
served by two interchangeable sources:

- LiveDataSource forwards to the SaavnCatalog client.
- FallbackDataSource answers from the offline fixture catalog with the same
  method names and the same {status, message, data} envelope.

DataSourcePolicy decides which one serves each call and tags every result
with the source that produced it, so callers (and tests) always know whether
they are looking at live or fixture data:

- fallback forced (explicitly, or by a failed startup probe): Fallback
- live call succeeds: Live
- ServerError 404: no fallback; the feature is unsupported by the backend,
  and the result carries the error and a user-readable message
- any other classified failure (no response, rate limited, server error):
  Fallback, with the live error attached
- abort: None, silently

Track resolution never goes through this policy: playable URLs only come
from the live catalog.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Union

from . import fixtures
from .models import CatalogResponse
from .saavn import SaavnCatalog
from ..exceptions import RequestAborted, ServerError, TuneBridgeError
from ..utils.logger import get_logger


# Methods both sources implement with identical signatures
SUPPORTED_METHODS = frozenset([
    'search', 'search_songs', 'search_albums',
    'get_song_details', 'get_song_by_url', 'get_multiple_songs', 'get_song_recommendations',
    'get_album_details', 'get_album_by_url',
    'get_artist_details', 'get_artist_songs', 'get_artist_albums', 'get_artist_top_songs',
    'get_playlist_details', 'get_playlist_by_url',
    'get_featured_radio', 'get_artist_radio',
    'get_home_data', 'get_trending', 'get_new_releases',
])


class DataSourceKind(Enum):
    LIVE = "live"
    FALLBACK = "fallback"


@dataclass
class SourcedResult:
    """
    Catalog response tagged with the source that served it

    Attributes:
        data: Catalog envelope, None when the live catalog reported the
            feature as unsupported
        source: Source that produced data
        error: Live error that caused a fallback or an unsupported result
        message: User-readable explanation for unsupported features
    """
    data: Optional[CatalogResponse]
    source: DataSourceKind
    error: Optional[TuneBridgeError] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.data is not None and self.data.ok

    @property
    def is_fallback(self) -> bool:
        return self.source is DataSourceKind.FALLBACK


class DataSource(ABC):
    """Capability shared by the live and fallback sources"""

    kind: DataSourceKind

    @abstractmethod
    async def call(self, method: str, *args, **kwargs) -> CatalogResponse:
        """Invoke a browsing method by name"""


class LiveDataSource(DataSource):
    """Forwards browsing calls to the primary catalog client"""

    kind = DataSourceKind.LIVE

    def __init__(self, catalog: SaavnCatalog):
        self.catalog = catalog

    async def call(self, method: str, *args, **kwargs) -> CatalogResponse:
        return await getattr(self.catalog, method)(*args, **kwargs)


class FallbackDataSource(DataSource):
    """
    Answers browsing calls from the offline fixture catalog

    Every method mirrors the SaavnCatalog signature. Lookups that find
    nothing return a "Failed" envelope, like the real API does.
    """

    kind = DataSourceKind.FALLBACK

    async def call(self, method: str, *args, **kwargs) -> CatalogResponse:
        return await getattr(self, method)(*args, **kwargs)

    @staticmethod
    def _found(item: Optional[Any], label: str) -> CatalogResponse:
        if item is None:
            return CatalogResponse.failed(f"{label} not found")
        return CatalogResponse.success(item, message=f"{label} details fetched successfully")

    async def search(self, query: str, limit: int = 100, abort_signal=None) -> CatalogResponse:
        results = fixtures.search(query)[:limit]
        return CatalogResponse.success(results, message=f'Found {len(results)} results for "{query}"')

    async def search_songs(self, query: str, limit: int = 100, abort_signal=None) -> CatalogResponse:
        results = fixtures.search(query, 'songs')[:limit]
        return CatalogResponse.success({'results': results}, message=f'Found {len(results)} songs for "{query}"')

    async def search_albums(self, query: str, limit: int = 100, abort_signal=None) -> CatalogResponse:
        results = fixtures.search(query, 'albums')[:limit]
        return CatalogResponse.success({'results': results}, message=f'Found {len(results)} albums for "{query}"')

    async def get_song_details(self, song_id: str, abort_signal=None) -> CatalogResponse:
        return self._found(fixtures.find(fixtures.SONGS, song_id), "Song")

    async def get_song_by_url(self, link: str, abort_signal=None) -> CatalogResponse:
        return self._found(fixtures.find(fixtures.SONGS, fixtures.SONGS[0]['id']), "Song")

    async def get_multiple_songs(self, song_ids: Union[str, Iterable[str]], abort_signal=None) -> CatalogResponse:
        ids = song_ids.split(',') if isinstance(song_ids, str) else list(song_ids)
        songs = [song for song in (fixtures.find(fixtures.SONGS, i.strip()) for i in ids) if song]
        return CatalogResponse.success(songs, message="Multiple songs fetched successfully")

    async def get_song_recommendations(self, song_id: str, limit: int = 10, abort_signal=None) -> CatalogResponse:
        songs = [song for song in fixtures.trending() if song['id'] != song_id][:limit]
        return CatalogResponse.success(songs, message="Song recommendations fetched successfully")

    async def get_album_details(self, album_id: str, abort_signal=None) -> CatalogResponse:
        return self._found(fixtures.find(fixtures.ALBUMS, album_id), "Album")

    async def get_album_by_url(self, link: str, abort_signal=None) -> CatalogResponse:
        return self._found(fixtures.find(fixtures.ALBUMS, fixtures.ALBUMS[0]['id']), "Album")

    async def get_artist_details(self, artist_id: str, abort_signal=None) -> CatalogResponse:
        return self._found(fixtures.find(fixtures.ARTISTS, artist_id), "Artist")

    async def get_artist_songs(self, artist_id: str, limit: int = 100, abort_signal=None) -> CatalogResponse:
        artist = fixtures.find(fixtures.ARTISTS, artist_id)
        songs = artist['songs'] if artist else []
        return CatalogResponse.success(songs[:limit], message="Artist songs fetched successfully")

    async def get_artist_albums(self, artist_id: str, limit: int = 100, abort_signal=None) -> CatalogResponse:
        artist = fixtures.find(fixtures.ARTISTS, artist_id)
        albums = [a for a in fixtures.ALBUMS if artist and a['artist'] == artist['name']]
        return CatalogResponse.success(albums[:limit], message="Artist albums fetched successfully")

    async def get_artist_top_songs(self, artist_id: str, abort_signal=None) -> CatalogResponse:
        return await self.get_artist_songs(artist_id)

    async def get_playlist_details(self, playlist_id: str, abort_signal=None) -> CatalogResponse:
        return self._found(fixtures.find(fixtures.PLAYLISTS, playlist_id), "Playlist")

    async def get_playlist_by_url(self, link: str, abort_signal=None) -> CatalogResponse:
        return self._found(fixtures.find(fixtures.PLAYLISTS, fixtures.PLAYLISTS[0]['id']), "Playlist")

    async def get_featured_radio(self, name: str, abort_signal=None) -> CatalogResponse:
        return CatalogResponse.success(fixtures.find_radio(name, 'featured'), message="Radio station fetched successfully")

    async def get_artist_radio(self, name: str, abort_signal=None) -> CatalogResponse:
        return CatalogResponse.success(fixtures.find_radio(name, 'artist'), message="Radio station fetched successfully")

    async def get_home_data(self, abort_signal=None) -> CatalogResponse:
        return CatalogResponse.success(fixtures.home(), message="Home data fetched successfully")

    async def get_trending(self, limit: int = 100, abort_signal=None) -> CatalogResponse:
        return CatalogResponse.success(fixtures.trending()[:limit], message="Trending songs fetched successfully")

    async def get_new_releases(self, limit: int = 100, abort_signal=None) -> CatalogResponse:
        return CatalogResponse.success(fixtures.new_releases()[:limit], message="New releases fetched successfully")


class DataSourcePolicy:
    """
    Chooses the data source for each browsing call

    Attributes:
        live: Source backed by the primary catalog
        fallback: Fixture source
        probe_on_start: Whether initialize() probes the live API
    """

    def __init__(self, live: LiveDataSource, fallback: FallbackDataSource, probe_on_start: bool = False):
        self.live = live
        self.fallback = fallback
        self.probe_on_start = probe_on_start
        self._use_fallback = False
        self.logger = get_logger(__name__)

    @property
    def using_fallback(self) -> bool:
        return self._use_fallback

    def force_fallback(self, force: bool = True) -> bool:
        """
        Serve every call from fixtures (offline mode) or return to live data

        Returns:
            The new fallback flag
        """
        self._use_fallback = force
        self.logger.info(f"Fallback data {'forced' if force else 'disabled'}")
        return self._use_fallback

    async def check_availability(self) -> bool:
        """
        Probe the live API and switch to fixtures if it is unreachable

        Returns:
            True if the live API answered
        """
        available = await self.live.catalog.probe()
        if not available:
            self.logger.console_warning("Music server unreachable, using offline data")
        self._use_fallback = not available
        return available

    async def initialize(self) -> None:
        if self.probe_on_start:
            await self.check_availability()

    async def fetch(self, method: str, *args, **kwargs) -> Optional[SourcedResult]:
        """
        Run a browsing call on the appropriate source

        Args:
            method: Name of a SaavnCatalog browsing method
            *args: Positional arguments for the method
            **kwargs: Keyword arguments for the method (abort_signal included)

        Returns:
            SourcedResult tagged with its source, or None if the call was aborted

        Raises:
            ValueError: If method is not a browsing method
        """
        if method not in SUPPORTED_METHODS:
            raise ValueError(f"Unsupported data source method: {method}")

        if self._use_fallback:
            return await self._from_fallback(method, args, kwargs, None)

        try:
            data = await self.live.call(method, *args, **kwargs)
            return SourcedResult(data=data, source=DataSourceKind.LIVE)

        except RequestAborted:
            self.logger.debug(f"{method} aborted")
            return None

        except ServerError as e:
            if e.is_unsupported:
                self.logger.warning(f"{method} is not supported by the server: {e}")
                return SourcedResult(
                    data=None,
                    source=DataSourceKind.LIVE,
                    error=e,
                    message="This feature is not supported by this server"
                )
            return await self._from_fallback(method, args, kwargs, e)

        except TuneBridgeError as e:
            return await self._from_fallback(method, args, kwargs, e)

    async def _from_fallback(
        self,
        method: str,
        args: tuple,
        kwargs: dict,
        error: Optional[TuneBridgeError]
    ) -> SourcedResult:
        if error is not None:
            self.logger.warning(f"{method} failed ({error}), serving offline data")
        data = await self.fallback.call(method, *args, **kwargs)
        return SourcedResult(data=data, source=DataSourceKind.FALLBACK, error=error)
