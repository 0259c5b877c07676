"""
Offline fixture catalog

Static songs, albums, playlists, artists and radio stations served by the
FallbackDataSource when the primary catalog is unreachable. Songs use the
primary catalog's song shape so they parse with Track.from_primary_data.

All lookup helpers return deep copies; callers may mutate the results.
"""

import copy
from typing import Any, Dict, List, Optional


def _song(song_id: str, name: str, artist: str, album: str, image: str, duration: int) -> Dict[str, Any]:
    return {
        'id': song_id,
        'name': name,
        'type': 'song',
        'primary_artists': artist,
        'album': album,
        'image': image,
        'duration': duration,
        'download_url': [
            {'quality': '160kbps', 'link': f'https://fixtures.tunebridge.invalid/160/{song_id}.mp4'},
            {'quality': '320kbps', 'link': f'https://fixtures.tunebridge.invalid/320/{song_id}.mp4'},
        ],
    }


SONGS: List[Dict[str, Any]] = [
    _song('1', 'Shape of You', 'Ed Sheeran', 'Divide',
          'https://c.saavncdn.com/092/shape-of-you-english-2017-20170106180334-500x500.jpg', 240),
    _song('2', 'Blinding Lights', 'The Weeknd', 'After Hours',
          'https://c.saavncdn.com/433/Blinding-Lights-English-2019-20191129092758-500x500.jpg', 210),
    _song('3', 'Bad Guy', 'Billie Eilish', 'WHEN WE ALL FALL ASLEEP, WHERE DO WE GO?',
          'https://c.saavncdn.com/947/WHEN-WE-ALL-FALL-ASLEEP-WHERE-DO-WE-GO-English-2019-20190329101955-500x500.jpg', 180),
    _song('4', 'Dance Monkey', 'Tones and I', 'The Kids Are Coming',
          'https://c.saavncdn.com/267/Dance-Monkey-English-2019-20191010221833-500x500.jpg', 210),
    _song('5', 'Levitating', 'Dua Lipa', 'Future Nostalgia',
          'https://c.saavncdn.com/747/Future-Nostalgia-English-2020-20200327034438-500x500.jpg', 220),
]

ALBUMS: List[Dict[str, Any]] = [
    {'id': 'album_1', 'name': 'Divide', 'type': 'album', 'artist': 'Ed Sheeran',
     'image': SONGS[0]['image'], 'songs': [SONGS[0]]},
    {'id': 'album_2', 'name': 'After Hours', 'type': 'album', 'artist': 'The Weeknd',
     'image': SONGS[1]['image'], 'songs': [SONGS[1]]},
    {'id': 'album_3', 'name': 'WHEN WE ALL FALL ASLEEP, WHERE DO WE GO?', 'type': 'album',
     'artist': 'Billie Eilish', 'image': SONGS[2]['image'], 'songs': [SONGS[2]]},
]

PLAYLISTS: List[Dict[str, Any]] = [
    {'id': 'playlist_1', 'name': 'Top Hits', 'type': 'playlist',
     'description': 'The most popular songs right now',
     'image': 'https://c.saavncdn.com/editorial/charts_TopHits_149756_20230814225858.jpg',
     'songs': [SONGS[0], SONGS[1], SONGS[3]]},
    {'id': 'playlist_2', 'name': 'Chill Vibes', 'type': 'playlist',
     'description': 'Relax and unwind with these smooth tracks',
     'image': 'https://c.saavncdn.com/editorial/logo/charts_WeekendVibes_167119_20230508173632.jpg',
     'songs': [SONGS[2], SONGS[4]]},
]

ARTISTS: List[Dict[str, Any]] = [
    {'id': 'artist_1', 'name': 'Ed Sheeran', 'type': 'artist',
     'image': 'https://c.saavncdn.com/artists/Ed_Sheeran_500x500.jpg',
     'description': 'Edward Christopher Sheeran MBE is an English singer-songwriter.',
     'follower_count': '25.5M', 'songs': [SONGS[0]]},
    {'id': 'artist_2', 'name': 'The Weeknd', 'type': 'artist',
     'image': 'https://c.saavncdn.com/artists/The_Weeknd_500x500.jpg',
     'description': 'Abel Makkonen Tesfaye, known professionally as the Weeknd, is a Canadian singer and songwriter.',
     'follower_count': '30.2M', 'songs': [SONGS[1]]},
    {'id': 'artist_3', 'name': 'Billie Eilish', 'type': 'artist',
     'image': 'https://c.saavncdn.com/artists/Billie_Eilish_500x500.jpg',
     'description': "Billie Eilish Pirate Baird O'Connell is an American singer and songwriter.",
     'follower_count': '28.7M', 'songs': [SONGS[2]]},
]

RADIOS: List[Dict[str, Any]] = [
    {'id': 'radio_1', 'name': '90s Nostalgia', 'type': 'featured',
     'description': 'Best hits from the 90s', 'songs': [SONGS[0], SONGS[2], SONGS[4]]},
    {'id': 'radio_2', 'name': 'Ed Sheeran Radio', 'type': 'artist',
     'description': 'Songs by Ed Sheeran and similar artists', 'songs': [SONGS[0], SONGS[1]]},
    {'id': 'radio_3', 'name': 'Chill Radio', 'type': 'featured',
     'description': 'Relax with these smooth tracks', 'songs': [SONGS[3], SONGS[4]]},
]


def _matches(query: str, *fields: Optional[str]) -> bool:
    needle = query.lower()
    return any(needle in (field or '').lower() for field in fields)


def search(query: str, kind: str = 'all') -> List[Dict[str, Any]]:
    """
    Case-insensitive substring search over the fixtures

    Args:
        query: Search text; empty text matches nothing
        kind: 'all', 'songs', 'albums' or 'artists'

    Returns:
        Matching entries, songs first
    """
    if not query:
        return []

    results: List[Dict[str, Any]] = []
    if kind in ('all', 'songs'):
        results += [s for s in SONGS if _matches(query, s['name'], s['primary_artists'])]
    if kind in ('all', 'albums'):
        results += [a for a in ALBUMS if _matches(query, a['name'], a['artist'])]
    if kind in ('all', 'artists'):
        results += [a for a in ARTISTS if _matches(query, a['name'])]
    return copy.deepcopy(results)


def find(collection: List[Dict[str, Any]], item_id: str) -> Optional[Dict[str, Any]]:
    """Return a copy of the entry with the given id, or None"""
    for item in collection:
        if item['id'] == item_id:
            return copy.deepcopy(item)
    return None


def find_radio(name: str, radio_type: str) -> Dict[str, Any]:
    """Station matching name and type, or a generic station built from the first songs"""
    for radio in RADIOS:
        if radio['type'] == radio_type and _matches(name or '', radio['name']):
            return copy.deepcopy(radio)
    return {
        'id': f'radio_{radio_type}',
        'name': name or 'Radio',
        'type': radio_type,
        'description': f'{radio_type.title()} radio',
        'songs': copy.deepcopy(SONGS[:3]),
    }


def trending() -> List[Dict[str, Any]]:
    return copy.deepcopy(SONGS[:3])


def new_releases() -> List[Dict[str, Any]]:
    return copy.deepcopy([SONGS[1], SONGS[4]])


def home() -> Dict[str, Any]:
    return {
        'trending': copy.deepcopy(SONGS),
        'newReleases': copy.deepcopy(SONGS[1:5]),
        'topArtists': copy.deepcopy(ARTISTS),
        'playlists': copy.deepcopy(PLAYLISTS),
    }
