"""
TuneBridge: music catalog access and playback orchestration

TuneBridge is the data and playback core of a music-streaming client. It
talks to two catalogs: a primary, JioSaavn-style aggregator API that is the
only source of playable audio URLs, and the Spotify Web API, used for
playlist and artist metadata only. Spotify tracks are made playable by
resolving them against the primary catalog.

## Core Architecture

**HTTP layer (`tunebridge/http/`)**
- aiohttp client wrapper with response caching (memory and persistent)
- Fixed-window rate limiting per catalog
- Coalescing of identical in-flight requests with bounded concurrency
- Abort signals and classified request errors

**Catalogs (`tunebridge/catalog/`)**
- Primary catalog client and Spotify client-credentials client
- Normalized Track model for both catalogs
- Live/fallback data source policy with an offline fixture catalog

**Resolution (`tunebridge/resolver/`)**
- Ordered fallback chain: song+artist search, song search, artist top
  songs, trending
- Quality selection among candidate stream URLs

**Playback (`tunebridge/playback/`)**
- PlaybackEngine interface for the native audio engine
- PlaybackOrchestrator state machine: queue, repeat modes, error recovery
- Event channel carrying engine notifications

**Configuration, storage and logging**
- YAML + environment settings (`tunebridge/config/`)
- Key-value stores and saved preferences (`tunebridge/storage/`)
- Colored console and rotating file logging (`tunebridge/utils/`)

The MusicService facade (`tunebridge.service`) wires everything together.
"""

__version__ = "0.9.0"

__author__ = "TuneBridge Team"

__description__ = "Music catalog access, track resolution and playback orchestration"

from .exceptions import TuneBridgeError
from .service import MusicService, create_music_service

__all__ = [
    "__version__",
    "__author__",
    "__description__",
    "MusicService",
    "TuneBridgeError",
    "create_music_service",
]
