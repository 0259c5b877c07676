"""Test the resolution chain"""

import pytest

from conftest import FakeCatalog, make_song, make_track
from tunebridge.catalog.models import CatalogResponse, ResolutionSource
from tunebridge.exceptions import NoResponseError, RequestAborted, ServerError
from tunebridge.http.abort import AbortSignal
from tunebridge.resolver.chain import ResolutionChain


def make_chain(responses):
    catalog = FakeCatalog(responses)
    return ResolutionChain(catalog, max_attempts=2, retry_delay=0), catalog


class TestResolutionChain:
    """Test strategy order, fallbacks and caching"""

    @pytest.mark.asyncio
    async def test_song_and_artist_search_first(self):
        song = make_song('s1', 'Believer', 'Imagine Dragons')
        chain, catalog = make_chain({('search_songs', 'Believer Imagine Dragons'): [song]})
        track = make_track('sp1', 'Believer', ['Imagine Dragons'], resolved=False)

        resolved = await chain.resolve_playable_track(track)

        assert resolved.source is ResolutionSource.SONG_ARTIST_SEARCH
        assert [c.quality for c in resolved.candidate_urls] == ['160kbps', '320kbps']
        assert resolved.song_details['id'] == 's1'
        assert catalog.calls == [('search_songs', 'Believer Imagine Dragons')]

    @pytest.mark.asyncio
    async def test_falls_through_to_title_search(self):
        song = make_song('s1', 'Believer')
        chain, catalog = make_chain({('search_songs', 'Believer'): [song]})
        track = make_track('sp1', 'Believer', ['Imagine Dragons'], resolved=False)

        resolved = await chain.resolve_playable_track(track)

        assert resolved.source is ResolutionSource.SONG_SEARCH
        assert [call[0] for call in catalog.calls] == ['search_songs', 'search_songs']

    @pytest.mark.asyncio
    async def test_artist_top_songs_match_title_case_insensitively(self):
        chain, _ = make_chain({
            ('get_artist_top_songs', 'art1'): [make_song('x', 'Thunder'), make_song('y', 'BELIEVER (Live)')],
        })
        track = make_track('sp1', 'believer', ['Imagine Dragons'], resolved=False, artist_id='art1')

        resolved = await chain.resolve_playable_track(track)

        assert resolved.source is ResolutionSource.ARTIST_TOP_SONGS
        assert resolved.song_details['id'] == 'y'

    @pytest.mark.asyncio
    async def test_trending_considers_songs_only(self):
        album = {'id': 'alb', 'name': 'Believer', 'type': 'album', 'download_url': make_song('a', 'x')['download_url']}
        chain, _ = make_chain({('get_trending', None): [album, make_song('tr', 'Believer')]})
        track = make_track('sp1', 'Believer', [], resolved=False)

        resolved = await chain.resolve_playable_track(track)

        assert resolved.source is ResolutionSource.TRENDING
        assert resolved.song_details['id'] == 'tr'

    @pytest.mark.asyncio
    async def test_skips_strategies_missing_inputs(self):
        """No artists means no artist search; no artist_id means no top songs"""
        chain, catalog = make_chain({})
        track = make_track('sp1', 'Unknown', [], resolved=False)

        assert await chain.resolve_playable_track(track) is None
        assert [call[0] for call in catalog.calls] == ['search_songs', 'get_trending']

    @pytest.mark.asyncio
    async def test_strategy_errors_move_on(self):
        chain, _ = make_chain({
            ('search_songs', 'Believer Imagine Dragons'): ServerError("boom", status=500),
            ('search_songs', 'Believer'): CatalogResponse.success({'results': 'not a list'}),
            ('get_trending', None): [make_song('tr', 'Believer')],
        })
        track = make_track('sp1', 'Believer', ['Imagine Dragons'], resolved=False)

        resolved = await chain.resolve_playable_track(track)
        assert resolved.source is ResolutionSource.TRENDING

    @pytest.mark.asyncio
    async def test_no_response_is_retried_within_strategy(self):
        attempts = []

        class FlakyCatalog(FakeCatalog):
            async def search_songs(self, query, limit=100, abort_signal=None):
                attempts.append(query)
                if len(attempts) == 1:
                    raise NoResponseError("timeout")
                return CatalogResponse.success({'results': [make_song('s1', 'Believer')]})

        chain = ResolutionChain(FlakyCatalog(), max_attempts=2, retry_delay=0)
        track = make_track('sp1', 'Believer', ['Imagine Dragons'], resolved=False)

        resolved = await chain.resolve_playable_track(track)

        assert resolved.source is ResolutionSource.SONG_ARTIST_SEARCH
        assert attempts == ['Believer Imagine Dragons', 'Believer Imagine Dragons']

    @pytest.mark.asyncio
    async def test_exhaustion_returns_none_and_is_not_cached(self):
        chain, catalog = make_chain({})
        track = make_track('sp1', 'Nothing', ['Nobody'], resolved=False)

        assert await chain.resolve_playable_track(track) is None
        assert len(chain.cache) == 0

        await chain.resolve_playable_track(track)
        assert len(catalog.calls) == 6

    @pytest.mark.asyncio
    async def test_result_is_cached(self):
        chain, catalog = make_chain({('search_songs', 'Believer Imagine Dragons'): [make_song('s1', 'Believer')]})
        track = make_track('sp1', 'Believer', ['Imagine Dragons'], resolved=False)

        first = await chain.resolve_playable_track(track)
        second = await chain.resolve_playable_track(track)

        assert first is second
        assert len(catalog.calls) == 1
        assert ResolutionChain.cache_key(track) == 'sp1|Imagine Dragons'

    @pytest.mark.asyncio
    async def test_abort_stops_chain(self):
        chain, catalog = make_chain({('search_songs', 'Believer A'): RequestAborted("aborted")})
        track = make_track('sp1', 'Believer', ['A'], resolved=False)

        with pytest.raises(RequestAborted):
            await chain.resolve_playable_track(track)
        assert len(catalog.calls) == 1
        assert len(chain.cache) == 0

    @pytest.mark.asyncio
    async def test_pre_aborted_signal(self):
        chain, catalog = make_chain({})
        signal = AbortSignal()
        signal.abort()

        with pytest.raises(RequestAborted):
            await chain.resolve_playable_track(make_track('sp1', resolved=False), signal)
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_resolve_many_fills_candidates(self):
        chain, catalog = make_chain({
            ('search_songs', 'One A'): [make_song('s1', 'One')],
            ('search_songs', 'Two A'): [make_song('s2', 'Two')],
        })
        already = make_track('p1', 'Ready')
        first = make_track('sp1', 'One', ['A'], resolved=False)
        missing = make_track('sp2', 'Missing', ['A'], resolved=False)
        second = make_track('sp3', 'Two', ['A'], resolved=False)

        results = await chain.resolve_many([already, first, missing, second])

        assert results[0] is None
        assert results[1].song_details['id'] == 's1'
        assert results[2] is None
        assert results[3].song_details['id'] == 's2'
        assert first.is_resolved and second.is_resolved
        assert not missing.is_resolved
        assert all(call[1] != 'Ready A' for call in catalog.calls)
