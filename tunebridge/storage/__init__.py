"""Local persistence: key-value stores and playback preferences"""

from .kvstore import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .preferences import PlaybackPreferences

__all__ = [
    'JsonFileKeyValueStore',
    'KeyValueStore',
    'MemoryKeyValueStore',
    'PlaybackPreferences',
]
