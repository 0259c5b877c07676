"""
Catalog resolution chain

Turns a track identity from either catalog into playable stream URLs from
the primary catalog. Strategies are tried in a fixed order, each one only
if every earlier one produced nothing:

1. **song_artist_search**: search songs by "{title} {artists}" and take the
   first result (skipped when the track has no artists)
2. **song_search**: search songs by title alone and take the first result
3. **artist_top_songs**: fetch the artist's top songs and pick the first
   whose name contains the title, case-insensitively (needs artist_id)
4. **trending**: scan the trending list, songs only, with the same match

The order favours precision over recall: the exact title and artist search
runs before the looser heuristics so that mismatched audio is avoided.

Failure Handling:

Each strategy fails independently. A classified request error or a payload
that cannot be interpreted is logged and the chain moves on. Transient
NoResponseErrors are retried first through retry_with_backoff. When every
strategy has been tried the result is None: the track is simply not
playable, which is not an error.

An abort stops the chain at once: RequestAborted propagates and nothing
is cached.

Caching:

Successful resolutions are cached under "{id or title}|{artist_id or
artists}", so resolving the same track again makes no network request.
Failures are never cached.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ..catalog.models import ResolutionSource, ResolvedTrack, Track, parse_candidates
from ..catalog.saavn import SaavnCatalog
from ..exceptions import NoResponseError, RequestAborted, TuneBridgeError
from ..http.abort import AbortSignal
from ..http.cache import TTLCache
from ..utils.helpers import retry_with_backoff, title_matches
from ..utils.logger import get_logger, log_performance


SongLookup = Callable[[Track, Optional[AbortSignal]], Awaitable[Optional[Dict[str, Any]]]]


class ResolutionChain:
    """
    Ordered fallback resolver with result caching

    Attributes:
        catalog: Primary catalog client
        cache: Cache of ResolvedTrack results
        max_attempts: Attempts per strategy on NoResponseError
        retry_delay: Seconds between those attempts
    """

    def __init__(
        self,
        catalog: SaavnCatalog,
        cache: Optional[TTLCache] = None,
        max_attempts: int = 2,
        retry_delay: float = 1.0
    ):
        """
        Initialize chain

        Args:
            catalog: Primary catalog client
            cache: Result cache; a one-hour cache is created when omitted
            max_attempts: Attempts per strategy on NoResponseError
            retry_delay: Seconds between those attempts
        """
        self.catalog = catalog
        self.cache = cache if cache is not None else TTLCache(max_age=3600.0, max_size=500)
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.logger = get_logger(__name__)

    @staticmethod
    def cache_key(track: Track) -> str:
        return f"{track.id or track.title}|{track.artist_id or track.artists}"

    def _strategies(self, track: Track) -> List[Tuple[ResolutionSource, SongLookup]]:
        strategies: List[Tuple[ResolutionSource, SongLookup]] = []
        if track.artist_names:
            strategies.append((ResolutionSource.SONG_ARTIST_SEARCH, self._by_song_and_artist))
        strategies.append((ResolutionSource.SONG_SEARCH, self._by_song))
        if track.artist_id:
            strategies.append((ResolutionSource.ARTIST_TOP_SONGS, self._from_artist_top_songs))
        strategies.append((ResolutionSource.TRENDING, self._from_trending))
        return strategies

    async def resolve_playable_track(
        self,
        track: Track,
        abort_signal: Optional[AbortSignal] = None
    ) -> Optional[ResolvedTrack]:
        """
        Find playable URLs for a track

        Args:
            track: Track to resolve
            abort_signal: Signal that cancels the whole chain

        Returns:
            ResolvedTrack from the first strategy that succeeds, or None when
            every strategy came up empty

        Raises:
            RequestAborted: If abort_signal tripped
        """
        key = self.cache_key(track)
        cached = self.cache.get(key)
        if cached is not None:
            self.logger.debug(f"Using cached resolution for '{track.title}'")
            return cached

        self.logger.debug(f"Resolving '{track.title}' by '{track.artists}'")

        for source, lookup in self._strategies(track):
            if abort_signal is not None:
                abort_signal.raise_if_aborted()

            try:
                song = await retry_with_backoff(
                    lambda: lookup(track, abort_signal),
                    max_attempts=self.max_attempts,
                    delay=self.retry_delay,
                    retry_on=(NoResponseError,),
                    description=f"{source.value} for '{track.title}'"
                )
            except RequestAborted:
                self.logger.debug(f"Resolution of '{track.title}' aborted")
                raise
            except (TuneBridgeError, KeyError, TypeError, ValueError, AttributeError) as e:
                self.logger.debug(f"Strategy {source.value} failed for '{track.title}': {e}")
                continue

            candidates = parse_candidates(song.get('download_url')) if song else []
            if not candidates:
                self.logger.debug(f"Strategy {source.value} found nothing for '{track.title}'")
                continue

            resolved = ResolvedTrack(candidate_urls=candidates, source=source, song_details=song)
            self.cache.set(key, resolved)
            self.logger.info(f"Resolved '{track.title}' via {source.value}")
            return resolved

        self.logger.warning(f"No playable source found for '{track.title}' by '{track.artists}'")
        return None

    @log_performance
    async def resolve_many(
        self,
        tracks: Sequence[Track],
        abort_signal: Optional[AbortSignal] = None
    ) -> List[Optional[ResolvedTrack]]:
        """
        Resolve a batch of tracks concurrently (an album or playlist page)

        Tracks that already have candidate URLs are skipped. Every track that
        resolves gets its candidate_urls filled in.

        Args:
            tracks: Tracks to resolve
            abort_signal: Signal that cancels the whole batch

        Returns:
            One entry per track: the ResolvedTrack, or None when the track was
            skipped or could not be resolved
        """
        async def resolve_one(track: Track) -> Optional[ResolvedTrack]:
            if track.is_resolved:
                return None
            resolved = await self.resolve_playable_track(track, abort_signal)
            if resolved is not None:
                track.fill_candidates(resolved.candidate_urls)
            return resolved

        results = await asyncio.gather(*(resolve_one(track) for track in tracks))

        resolved_count = sum(1 for result in results if result is not None)
        self.logger.debug(f"Batch resolution: {resolved_count}/{len(tracks)} tracks resolved")
        return list(results)

    # ============ STRATEGIES ============

    @staticmethod
    def _first_result(results: List[Any]) -> Optional[Dict[str, Any]]:
        if results and isinstance(results[0], dict) and results[0].get('download_url'):
            return results[0]
        return None

    @staticmethod
    def _match_title(songs: List[Any], title: str) -> Optional[Dict[str, Any]]:
        for song in songs:
            if isinstance(song, dict) and title_matches(song.get('name') or song.get('title'), title):
                return song
        return None

    async def _by_song_and_artist(self, track: Track, abort_signal: Optional[AbortSignal]) -> Optional[Dict[str, Any]]:
        query = f"{track.title} {track.artists}".strip()
        response = await self.catalog.search_songs(query, limit=1, abort_signal=abort_signal)
        return self._first_result(response.results())

    async def _by_song(self, track: Track, abort_signal: Optional[AbortSignal]) -> Optional[Dict[str, Any]]:
        response = await self.catalog.search_songs(track.title, limit=1, abort_signal=abort_signal)
        return self._first_result(response.results())

    async def _from_artist_top_songs(self, track: Track, abort_signal: Optional[AbortSignal]) -> Optional[Dict[str, Any]]:
        response = await self.catalog.get_artist_top_songs(track.artist_id, abort_signal=abort_signal)
        return self._match_title(response.results(), track.title)

    async def _from_trending(self, track: Track, abort_signal: Optional[AbortSignal]) -> Optional[Dict[str, Any]]:
        response = await self.catalog.get_trending(abort_signal=abort_signal)
        songs = [item for item in response.results() if isinstance(item, dict) and item.get('type') == 'song']
        return self._match_title(songs, track.title)
