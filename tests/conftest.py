"""Test configuration and fixtures"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from tunebridge.catalog.models import CandidateUrl, CatalogResponse, CatalogSource, Track
from tunebridge.exceptions import NoResponseError
from tunebridge.playback.engine import EngineState, EngineTrack, PlaybackEngine


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    """Minimal stand-in for aiohttp.ClientResponse used as an async context manager"""

    def __init__(self, status: int = 200, body: Any = None, url: str = "", headers: Optional[Dict[str, str]] = None):
        self.status = status
        self._body = body
        self.url = url
        self.headers = headers or {'Content-Type': 'application/json'}

    async def text(self) -> str:
        if self._body is None:
            return ""
        if isinstance(self._body, str):
            return self._body
        return json.dumps(self._body)

    async def __aenter__(self) -> 'FakeResponse':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None


class FakeSession:
    """
    Records requests and answers them through a handler

    The handler receives (method, url, params, data, headers) and returns a
    (status, body) tuple, or raises to simulate transport failures. When
    gate is set, every request waits on it before answering.
    """

    def __init__(self, handler: Optional[Callable] = None):
        self.handler = handler or (lambda method, url, params, data, headers: (200, {'status': 'Success', 'data': []}))
        self.calls: List[Dict[str, Any]] = []
        self.closed = False
        self.gate: Optional[asyncio.Event] = None

    def request(self, method, url, params=None, data=None, json=None, headers=None):
        return _FakeRequest(self, method, url, params, data, headers)

    async def close(self) -> None:
        self.closed = True


class _FakeRequest:
    def __init__(self, session: FakeSession, method, url, params, data, headers):
        self.session = session
        self.args = (method, url, params, data, headers)

    async def __aenter__(self) -> FakeResponse:
        method, url, params, data, headers = self.args
        self.session.calls.append({'method': method, 'url': url, 'params': params, 'data': data, 'headers': headers})
        if self.session.gate is not None:
            await self.session.gate.wait()
        status, body = self.session.handler(method, url, params, data, headers)
        return FakeResponse(status=status, body=body, url=url)

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None


class FakeCatalog:
    """
    Scripted primary catalog for resolution tests

    Responses are keyed by (method, first argument). Values are a
    CatalogResponse, a list of song dicts (wrapped as search results), or an
    exception instance to raise. Unknown keys return an empty result.
    """

    def __init__(self, responses: Optional[Dict[tuple, Any]] = None):
        self.responses = responses or {}
        self.calls: List[tuple] = []
        self.signals: List[Any] = []
        self.delay = 0.0

    async def _answer(self, method: str, arg: Any, abort_signal=None) -> CatalogResponse:
        self.calls.append((method, arg))
        self.signals.append(abort_signal)
        if self.delay:
            pause = asyncio.sleep(self.delay)
            if abort_signal is not None:
                await abort_signal.race(pause)
            else:
                await pause
        value = self.responses.get((method, arg))
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, CatalogResponse):
            return value
        if method == 'search_songs':
            return CatalogResponse.success({'results': value or []})
        return CatalogResponse.success(value or [])

    async def search_songs(self, query, limit=100, abort_signal=None):
        return await self._answer('search_songs', query, abort_signal)

    async def get_artist_top_songs(self, artist_id, abort_signal=None):
        return await self._answer('get_artist_top_songs', artist_id, abort_signal)

    async def get_trending(self, limit=100, abort_signal=None):
        return await self._answer('get_trending', None, abort_signal)


class FakeEngine(PlaybackEngine):
    """Recording playback engine; set fail_on[method] to an exception to make it raise"""

    def __init__(self):
        self.calls: List[tuple] = []
        self.queue: List[EngineTrack] = []
        self.state = EngineState.NONE
        self.fail_on: Dict[str, BaseException] = {}
        self.fail_count: Dict[str, int] = {}

    def _record(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        error = self.fail_on.get(name)
        if error is not None:
            remaining = self.fail_count.get(name)
            if remaining is None or remaining > 0:
                if remaining is not None:
                    self.fail_count[name] = remaining - 1
                raise error

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def setup(self, options):
        self._record('setup', options)
        self.state = EngineState.READY

    async def add(self, tracks):
        self._record('add', tracks)
        self.queue.extend(tracks)

    async def play(self):
        self._record('play')
        self.state = EngineState.PLAYING

    async def pause(self):
        self._record('pause')
        self.state = EngineState.PAUSED

    async def seek_to(self, seconds):
        self._record('seek_to', seconds)

    async def skip(self, index):
        self._record('skip', index)

    async def get_state(self):
        return self.state

    async def get_queue(self):
        return list(self.queue)

    async def reset(self):
        self._record('reset')
        self.queue = []
        self.state = EngineState.NONE


def make_song(song_id: str, name: str, artist: str = "Test Artist", qualities=('160kbps', '320kbps')) -> Dict[str, Any]:
    """Primary catalog song object with one download URL per quality"""
    return {
        'id': song_id,
        'name': name,
        'type': 'song',
        'primary_artists': artist,
        'duration': '200',
        'download_url': [
            {'quality': q, 'link': f'http://cdn.example.com/{q}/{song_id}.mp4'} for q in qualities
        ],
    }


def make_track(track_id: str, title: str = None, artists=None, resolved: bool = True, artist_id: str = None) -> Track:
    candidates = []
    if resolved:
        candidates = [
            CandidateUrl(url=f'https://cdn.example.com/160/{track_id}.mp4', quality='160kbps'),
            CandidateUrl(url=f'https://cdn.example.com/320/{track_id}.mp4', quality='320kbps'),
        ]
    return Track(
        id=track_id,
        title=title or f'Song {track_id}',
        artist_names=list(artists) if artists is not None else ['Test Artist'],
        duration_seconds=200,
        source_catalog=CatalogSource.PRIMARY if resolved else CatalogSource.SECONDARY,
        candidate_urls=candidates,
        artist_id=artist_id,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def tracks():
    """Three playable tracks"""
    return [make_track('t1'), make_track('t2'), make_track('t3')]


@pytest.fixture
def sample_primary_song():
    """Song object as returned by the primary catalog search endpoint"""
    return {
        'id': 'abc123',
        'name': 'Believer &amp; Friends',
        'type': 'song',
        'album': {'id': 'alb1', 'name': 'Evolve'},
        'duration': '204',
        'image': [
            {'quality': '50x50', 'link': 'https://img.example.com/50.jpg'},
            {'quality': '500x500', 'link': 'https://img.example.com/500.jpg'},
        ],
        'artist_map': {
            'primary_artists': [
                {'id': 'art1', 'name': 'Imagine Dragons'},
                {'id': 'art2', 'name': 'Guest'},
            ]
        },
        'download_url': [
            {'quality': '96kbps', 'link': 'https://cdn.example.com/96/abc123.mp4'},
            {'quality': '320kbps', 'link': 'https://cdn.example.com/320/abc123.mp4'},
        ],
    }


@pytest.fixture
def sample_spotify_item():
    """Spotify playlist item"""
    return {
        'track': {
            'id': 'sp_track_1',
            'name': 'Test Song',
            'artists': [{'id': 'a1', 'name': 'Test Artist'}, {'id': 'a2', 'name': 'Other'}],
            'album': {
                'id': 'album_123',
                'name': 'Test Album',
                'images': [{'url': 'https://i.scdn.co/image/large'}, {'url': 'https://i.scdn.co/image/small'}],
            },
            'duration_ms': 210500,
        }
    }


@pytest.fixture
def no_response():
    return NoResponseError("connection refused")
