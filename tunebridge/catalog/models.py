"""
Data models for catalog tracks, playlists and resolution results

This module defines the data structures exchanged between the catalog
clients, the resolution chain and the playback orchestrator.

Architecture Overview:

1. **Enum Layer**
   - CatalogSource: which catalog a track came from
   - ResolutionSource: which resolution strategy produced the playable URLs

2. **Track Layer**
   - CandidateUrl: one playable URL variant with its quality label
   - Track: catalog-agnostic song identity. Built from either catalog's
     payload through the from_primary_data / from_secondary_data factories.
     Its candidate URLs start empty for secondary tracks and are filled in
     exactly once by the resolution chain.

3. **Result Layer**
   - ResolvedTrack: candidate URLs plus the strategy that found them
   - PlaylistSummary: secondary catalog playlist card
   - CatalogResponse: the primary catalog's {status, message, data} envelope

Factory methods tolerate partial payloads: missing optional fields fall back to
defaults, and malformed entries inside download lists are skipped rather
than failing the whole track.
"""

import html
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.helpers import parse_duration


class CatalogSource(Enum):
    """
    Origin catalog of a track

    PRIMARY is the aggregator API that returns audio URLs. SECONDARY is the
    metadata-only catalog (Spotify) whose tracks must be resolved against the
    primary catalog before they can be played.
    """
    PRIMARY = "primary"
    SECONDARY = "secondary"


class ResolutionSource(Enum):
    """
    Resolution strategy that produced a playable URL set

    Ordered from most to least precise; the resolution chain tries them in
    this order.
    """
    SONG_ARTIST_SEARCH = "song_artist_search"
    SONG_SEARCH = "song_search"
    ARTIST_TOP_SONGS = "artist_top_songs"
    TRENDING = "trending"


@dataclass(frozen=True)
class CandidateUrl:
    """
    One playable variant of a track

    Attributes:
        url: Direct stream URL
        quality: Bitrate label such as "320kbps"
    """
    url: str
    quality: str

    @classmethod
    def from_primary_data(cls, data: Dict[str, Any]) -> Optional['CandidateUrl']:
        """
        Build from a primary catalog download_url entry

        Args:
            data: Entry of the form {"quality": "320kbps", "link": "https://..."}

        Returns:
            CandidateUrl, or None when the entry has no link
        """
        if not isinstance(data, dict):
            return None
        link = data.get('link') or data.get('url')
        if not link:
            return None
        return cls(url=str(link), quality=str(data.get('quality') or ''))

    def to_dict(self) -> Dict[str, str]:
        return {'quality': self.quality, 'link': self.url}


def parse_candidates(download_urls: Any) -> List[CandidateUrl]:
    """
    Parse a primary catalog download_url list

    Args:
        download_urls: Raw download_url value from a song payload

    Returns:
        Valid candidates in their original order
    """
    if not isinstance(download_urls, list):
        return []
    candidates = []
    for entry in download_urls:
        candidate = CandidateUrl.from_primary_data(entry)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return html.unescape(str(value)).strip()


def _pick_image(value: Any) -> Optional[str]:
    """Primary catalog images are either a URL or a [{quality, link}] list"""
    if isinstance(value, str):
        return value or None
    if isinstance(value, list) and value:
        # Lists are ordered smallest to largest
        last = value[-1]
        if isinstance(last, dict):
            return last.get('link') or last.get('url')
        if isinstance(last, str):
            return last
    return None


@dataclass
class Track:
    """
    Catalog-agnostic song identity

    A Track is created when a catalog response is parsed and is treated as
    immutable afterwards, except for candidate_urls which the resolution
    chain fills in once.

    Attributes:
        id: Identifier in the source catalog
        title: Song title
        artist_names: Ordered list of contributing artists
        album: Album name, when known
        duration_seconds: Track length in seconds
        artwork_url: Cover image URL
        source_catalog: Catalog the track came from
        candidate_urls: Playable variants, empty until resolved
        artist_id: Primary catalog artist identifier, used by the top-songs strategy
    """
    id: str
    title: str
    artist_names: List[str] = field(default_factory=list)
    album: Optional[str] = None
    duration_seconds: int = 0
    artwork_url: Optional[str] = None
    source_catalog: CatalogSource = CatalogSource.PRIMARY
    candidate_urls: List[CandidateUrl] = field(default_factory=list)
    artist_id: Optional[str] = None

    @classmethod
    def from_primary_data(cls, data: Dict[str, Any]) -> 'Track':
        """
        Build a Track from a primary catalog song object

        Handles the variations the aggregator API returns across endpoints:
        title under 'name' or 'title', artists as an artist_map, a
        'primary_artists' string or a plain 'artist' string, and images as a
        URL or a quality list.

        Args:
            data: Song object from the primary catalog

        Returns:
            Track with candidate URLs parsed from download_url
        """
        artist_map = data.get('artist_map') or {}
        primary_artists = artist_map.get('primary_artists') or []

        artist_names = [
            _clean_text(artist.get('name'))
            for artist in primary_artists
            if isinstance(artist, dict) and artist.get('name')
        ]
        artist_id = None
        if primary_artists and isinstance(primary_artists[0], dict):
            artist_id = primary_artists[0].get('id') or None

        if not artist_names:
            raw_artists = data.get('primary_artists') or data.get('artist') or data.get('subtitle') or ''
            if isinstance(raw_artists, list):
                artist_names = [_clean_text(a) for a in raw_artists if a]
            else:
                artist_names = [_clean_text(a) for a in str(raw_artists).split(',') if a.strip()]

        album = data.get('album')
        if isinstance(album, dict):
            album = album.get('name')

        return cls(
            id=str(data.get('id') or ''),
            title=_clean_text(data.get('name') or data.get('title')),
            artist_names=artist_names,
            album=_clean_text(album) or None,
            duration_seconds=parse_duration(data.get('duration')),
            artwork_url=_pick_image(data.get('image') or data.get('artwork')),
            source_catalog=CatalogSource.PRIMARY,
            candidate_urls=parse_candidates(data.get('download_url')),
            artist_id=artist_id or data.get('artist_id') or None,
        )

    @classmethod
    def from_secondary_data(cls, data: Dict[str, Any]) -> 'Track':
        """
        Build a Track from a Spotify track object

        Playlist items nest the track under a 'track' key; both shapes are
        accepted. Spotify never provides audio, so candidate_urls stays empty.

        Args:
            data: Spotify track object or playlist item

        Returns:
            Unresolved Track
        """
        track_data = data.get('track') or data

        album_data = track_data.get('album') or {}
        images = album_data.get('images') or []

        duration_ms = track_data.get('duration_ms') or 0

        return cls(
            id=str(track_data.get('id') or ''),
            title=_clean_text(track_data.get('name')),
            artist_names=[
                artist['name'] for artist in track_data.get('artists') or []
                if isinstance(artist, dict) and artist.get('name')
            ],
            album=album_data.get('name'),
            duration_seconds=int(duration_ms) // 1000,
            artwork_url=images[0].get('url') if images and isinstance(images[0], dict) else None,
            source_catalog=CatalogSource.SECONDARY,
        )

    @property
    def artists(self) -> str:
        """Artist names joined for display (e.g. "Artist1, Artist2")"""
        return ", ".join(self.artist_names)

    @property
    def primary_artist(self) -> str:
        return self.artist_names[0] if self.artist_names else "Unknown Artist"

    @property
    def is_resolved(self) -> bool:
        return bool(self.candidate_urls)

    def fill_candidates(self, candidates: List[CandidateUrl]) -> bool:
        """
        Set candidate URLs once

        Args:
            candidates: Resolved candidate URLs

        Returns:
            True if the candidates were stored, False if the track was
            already resolved (the existing candidates are kept)
        """
        if self.candidate_urls or not candidates:
            return False
        self.candidate_urls = list(candidates)
        return True


@dataclass
class ResolvedTrack:
    """
    Result of a successful resolution

    Attributes:
        candidate_urls: Playable variants found for the track
        source: Strategy that produced them
        song_details: Raw primary catalog song object that matched
    """
    candidate_urls: List[CandidateUrl]
    source: ResolutionSource
    song_details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PlaylistSummary:
    """
    Secondary catalog playlist card

    Attributes:
        id: Spotify playlist id
        name: Playlist name
        owner: Owner display name
        image: Cover image URL
        url: Public Spotify URL
        description: Playlist description (details endpoint only)
        total_tracks: Track count (details endpoint only)
    """
    id: str
    name: str
    owner: Optional[str] = None
    image: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    total_tracks: Optional[int] = None

    @classmethod
    def from_secondary_data(cls, data: Dict[str, Any]) -> 'PlaylistSummary':
        images = data.get('images') or []
        return cls(
            id=str(data.get('id') or ''),
            name=data.get('name') or '',
            owner=(data.get('owner') or {}).get('display_name'),
            image=images[0].get('url') if images and isinstance(images[0], dict) else None,
            url=(data.get('external_urls') or {}).get('spotify'),
            description=data.get('description'),
            total_tracks=(data.get('tracks') or {}).get('total'),
        )


@dataclass
class CatalogResponse:
    """
    Primary catalog envelope: {"status": "Success"|"Failed", "message", "data"}
    """
    status: str
    message: str = ""
    data: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> 'CatalogResponse':
        """
        Wrap a raw response body

        Bodies that are not envelopes are treated as successful bare data.
        """
        if isinstance(payload, dict) and 'status' in payload:
            return cls(
                status=str(payload.get('status')),
                message=str(payload.get('message') or ''),
                data=payload.get('data'),
            )
        return cls(status='Success', data=payload)

    @classmethod
    def success(cls, data: Any, message: str = "Data fetched successfully") -> 'CatalogResponse':
        return cls(status='Success', message=message, data=data)

    @classmethod
    def failed(cls, message: str) -> 'CatalogResponse':
        return cls(status='Failed', message=message, data=None)

    @property
    def ok(self) -> bool:
        return self.status.lower() == 'success'

    def results(self) -> List[Any]:
        """
        List payload of the response

        Search endpoints nest results under data.results, list endpoints
        return data as a plain list.
        """
        data = self.data
        if isinstance(data, dict):
            data = data.get('results', [])
        return data if isinstance(data, list) else []

    def to_dict(self) -> Dict[str, Any]:
        return {'status': self.status, 'message': self.message, 'data': self.data}
