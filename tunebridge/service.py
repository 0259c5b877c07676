"""
Music service facade

Wires the whole library together from Settings: the shared response cache
and request coalescer, one HTTP client per catalog (each with its own rate
limiter), both catalog clients, the live/fallback data source policy, the
resolution chain, the playback orchestrator and the cache sweeper.

Usage:

    async with create_music_service(engine=my_engine) as service:
        result = await service.search_songs("believer")
        tracks = [Track.from_primary_data(song) for song in result.data.results()]
        await service.play_track(tracks[0], tracks)

Everything is created per instance; nothing here is a module-level
singleton, so tests build isolated services with fake sessions and engines.
"""

from typing import List, Optional

import aiohttp

from .catalog.datasource import DataSourcePolicy, FallbackDataSource, LiveDataSource, SourcedResult
from .catalog.models import PlaylistSummary, ResolvedTrack, Track
from .catalog.saavn import SaavnCatalog
from .catalog.spotify import SpotifyCatalog
from .config.settings import Settings, get_settings
from .exceptions import ConfigError
from .http.abort import AbortSignal
from .http.cache import CacheSweeper, PersistentCache, TTLCache
from .http.client import HttpClient
from .http.rate_limiter import RateLimiter
from .http.request_queue import RequestCoalescer
from .playback.engine import PlaybackEngine
from .playback.orchestrator import PlaybackOrchestrator
from .playback.session import CommandResult, RepeatMode
from .resolver.chain import ResolutionChain
from .storage.kvstore import JsonFileKeyValueStore, KeyValueStore
from .storage.preferences import PlaybackPreferences
from .utils.logger import configure_from_settings, get_logger


class MusicService:
    """
    Facade over catalogs, resolution and playback

    Attributes:
        settings: Settings the service was built from
        cache: Shared in-memory response cache (None when caching is disabled)
        coalescer: Shared in-flight request table
        primary_client: HTTP client of the primary catalog
        spotify_client: HTTP client of the Spotify Web API
        persistent_cache: Durable response cache, when enabled
        saavn: Primary catalog client
        spotify: Secondary catalog client
        policy: Live/fallback data source policy
        resolver: Resolution chain
        player: Playback orchestrator (None when no engine was given)
        preferences: Persisted playback preferences
        sweeper: Periodic expiry of cached entries
    """

    def __init__(
        self,
        settings: Settings,
        cache: Optional[TTLCache],
        coalescer: RequestCoalescer,
        primary_client: HttpClient,
        spotify_client: HttpClient,
        persistent_cache: Optional[PersistentCache],
        saavn: SaavnCatalog,
        spotify: SpotifyCatalog,
        policy: DataSourcePolicy,
        resolver: ResolutionChain,
        player: Optional[PlaybackOrchestrator],
        preferences: PlaybackPreferences,
        sweeper: CacheSweeper
    ):
        self.settings = settings
        self.cache = cache
        self.coalescer = coalescer
        self.primary_client = primary_client
        self.spotify_client = spotify_client
        self.persistent_cache = persistent_cache
        self.saavn = saavn
        self.spotify = spotify
        self.policy = policy
        self.resolver = resolver
        self.player = player
        self.preferences = preferences
        self.sweeper = sweeper
        self.logger = get_logger(__name__)
        self._started = False

    # ============ LIFECYCLE ============

    async def start(self) -> None:
        """
        Prepare the service for use

        Configures logging when requested in settings, probes the primary
        catalog when probe_on_start is set, starts the cache sweeper and
        restores saved playback preferences.
        """
        if self._started:
            return

        if self.settings.logging.configure_on_startup:
            configure_from_settings(self.settings)

        await self.policy.initialize()

        self.sweeper.start()

        if self.player is not None:
            await self._restore_preferences()

        self._started = True
        self.logger.info("Music service started")

    async def close(self) -> None:
        """Stop background work and release HTTP sessions"""
        await self.sweeper.stop()
        await self.primary_client.close()
        await self.spotify_client.close()
        self._started = False
        self.logger.info("Music service closed")

    async def __aenter__(self) -> 'MusicService':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _restore_preferences(self) -> None:
        self.player.preferred_quality = await self.preferences.get_preferred_quality(
            self.settings.playback.preferred_quality
        )

        saved_mode = await self.preferences.get_repeat_mode()
        if saved_mode:
            try:
                self.player.set_repeat_mode(RepeatMode(saved_mode))
            except ValueError:
                self.logger.warning(f"Ignoring unknown saved repeat mode: {saved_mode}")

    def _require_player(self) -> PlaybackOrchestrator:
        if self.player is None:
            raise ConfigError("No playback engine configured for this service")
        return self.player

    # ============ BROWSING ============

    async def search(self, query: str, limit: int = 100, abort_signal: Optional[AbortSignal] = None) -> Optional[SourcedResult]:
        return await self.policy.fetch('search', query, limit=limit, abort_signal=abort_signal)

    async def search_songs(self, query: str, limit: int = 100, abort_signal: Optional[AbortSignal] = None) -> Optional[SourcedResult]:
        return await self.policy.fetch('search_songs', query, limit=limit, abort_signal=abort_signal)

    async def search_albums(self, query: str, limit: int = 100, abort_signal: Optional[AbortSignal] = None) -> Optional[SourcedResult]:
        return await self.policy.fetch('search_albums', query, limit=limit, abort_signal=abort_signal)

    async def get_trending(self, limit: int = 100, abort_signal: Optional[AbortSignal] = None) -> Optional[SourcedResult]:
        return await self.policy.fetch('get_trending', limit=limit, abort_signal=abort_signal)

    async def get_home_data(self, abort_signal: Optional[AbortSignal] = None) -> Optional[SourcedResult]:
        return await self.policy.fetch('get_home_data', abort_signal=abort_signal)

    async def search_spotify_playlists(self, query: str, limit: int = 5) -> List[PlaylistSummary]:
        return await self.spotify.search_playlists(query, limit=limit)

    async def get_spotify_playlist_tracks(self, playlist_id: str) -> List[Track]:
        return await self.spotify.get_playlist_tracks(playlist_id)

    async def resolve_playable_track(
        self,
        track: Track,
        abort_signal: Optional[AbortSignal] = None
    ) -> Optional[ResolvedTrack]:
        """
        Find playable URLs for a track from either catalog

        Returns:
            ResolvedTrack, or None when the track is not playable
        """
        return await self.resolver.resolve_playable_track(track, abort_signal)

    # ============ PLAYBACK ============

    async def play_track(self, track: Track, track_list: Optional[List[Track]] = None) -> CommandResult:
        return await self._require_player().play_track(track, track_list)

    async def pause(self) -> CommandResult:
        return await self._require_player().pause()

    async def resume(self) -> CommandResult:
        return await self._require_player().resume()

    async def skip_to_next(self) -> CommandResult:
        return await self._require_player().skip_to_next()

    async def skip_to_previous(self) -> CommandResult:
        return await self._require_player().skip_to_previous()

    async def seek(self, position: float) -> CommandResult:
        return await self._require_player().seek(position)

    async def set_repeat_mode(self, mode: RepeatMode) -> RepeatMode:
        """Change the repeat mode and remember it across restarts"""
        mode = self._require_player().set_repeat_mode(mode)
        await self.preferences.set_repeat_mode(mode.value)
        return mode

    async def set_preferred_quality(self, quality: str) -> str:
        """
        Change the preferred stream quality and remember it

        Raises:
            ValueError: If quality is not a bitrate label such as "160kbps"
        """
        await self.preferences.set_preferred_quality(quality)
        if self.player is not None:
            self.player.preferred_quality = quality
        return quality

    # ============ CACHE ============

    async def clear_cache(self) -> None:
        """Drop cached responses (memory and persistent) and cached resolutions"""
        if self.cache is not None:
            self.cache.clear()
        self.resolver.cache.clear()
        if self.persistent_cache is not None:
            await self.persistent_cache.clear()
        self.logger.info("Caches cleared")

    def evict_expired(self) -> int:
        """
        Evict expired entries now instead of waiting for the sweeper

        Returns:
            Number of entries removed
        """
        return self.sweeper.sweep()

    def cache_size(self) -> int:
        return len(self.cache) if self.cache is not None else 0


def create_music_service(
    settings: Optional[Settings] = None,
    engine: Optional[PlaybackEngine] = None,
    store: Optional[KeyValueStore] = None,
    session: Optional[aiohttp.ClientSession] = None
) -> MusicService:
    """
    Build a MusicService from settings

    Args:
        settings: Settings to use, the global settings when omitted
        engine: Native playback engine; playback commands are unavailable
            without one
        store: Key-value store for preferences and the persistent cache;
            a JSON file in the config directory when omitted
        session: aiohttp session shared by both HTTP clients; each client
            creates its own when omitted

    Returns:
        Unstarted MusicService (call start() or use it as a context manager)
    """
    settings = settings or get_settings()
    network = settings.network

    cache = TTLCache(max_age=settings.cache.max_age, max_size=settings.cache.max_size) if settings.cache.enabled else None
    coalescer = RequestCoalescer(max_concurrent=network.max_concurrent)

    if store is None:
        store = JsonFileKeyValueStore(settings.get_store_path())

    persistent_cache = None
    if settings.cache.enabled and settings.cache.persistent:
        persistent_cache = PersistentCache(store, max_age=settings.cache.max_age)

    headers = {'User-Agent': network.user_agent}

    primary_client = HttpClient(
        base_url=settings.primary.base_url,
        cache=cache,
        rate_limiter=RateLimiter(
            max_requests=settings.rate_limit.max_requests,
            window_seconds=settings.rate_limit.window_seconds,
            name="primary"
        ),
        coalescer=coalescer,
        persistent_cache=persistent_cache,
        timeout=network.request_timeout,
        session=session,
        default_headers=headers,
        name="primary"
    )

    spotify_client = HttpClient(
        base_url=settings.spotify.api_base_url,
        cache=cache,
        rate_limiter=RateLimiter(
            max_requests=settings.rate_limit.spotify_max_requests,
            window_seconds=settings.rate_limit.window_seconds,
            name="spotify"
        ),
        coalescer=coalescer,
        timeout=network.request_timeout,
        session=session,
        default_headers=headers,
        name="spotify"
    )

    saavn = SaavnCatalog(primary_client, probe_timeout=settings.primary.probe_timeout)
    spotify = SpotifyCatalog(
        spotify_client,
        client_id=settings.spotify.client_id,
        client_secret=settings.spotify.client_secret,
        token_url=settings.spotify.token_url,
        expiry_margin=settings.spotify.token_expiry_margin
    )

    policy = DataSourcePolicy(
        LiveDataSource(saavn),
        FallbackDataSource(),
        probe_on_start=settings.primary.probe_on_start
    )

    resolver = ResolutionChain(
        saavn,
        cache=TTLCache(max_age=settings.resolver.cache_ttl, max_size=settings.resolver.cache_max_size),
        max_attempts=network.max_retries,
        retry_delay=network.retry_delay
    )

    player = None
    if engine is not None:
        playback = settings.playback
        player = PlaybackOrchestrator(
            engine,
            resolver,
            preferred_quality=playback.preferred_quality,
            setup_options={
                'min_buffer': playback.min_buffer,
                'max_buffer': playback.max_buffer,
                'play_buffer': playback.play_buffer,
                'back_buffer': playback.back_buffer,
            },
            setup_attempts=playback.setup_attempts,
            setup_retry_delay=playback.setup_retry_delay,
            queue_retry_attempts=playback.queue_retry_attempts
        )

    swept = [c for c in (cache, resolver.cache) if c is not None]
    sweeper = CacheSweeper(swept, interval=settings.cache.sweep_interval)

    return MusicService(
        settings=settings,
        cache=cache,
        coalescer=coalescer,
        primary_client=primary_client,
        spotify_client=spotify_client,
        persistent_cache=persistent_cache,
        saavn=saavn,
        spotify=spotify,
        policy=policy,
        resolver=resolver,
        player=player,
        preferences=PlaybackPreferences(store),
        sweeper=sweeper
    )
