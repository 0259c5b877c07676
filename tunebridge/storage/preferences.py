"""
User playback preferences kept in the key-value store
"""

from typing import Optional

from .kvstore import KeyValueStore
from ..utils.helpers import parse_bitrate
from ..utils.logger import get_logger


QUALITY_KEY = 'preferences:quality'
REPEAT_MODE_KEY = 'preferences:repeat_mode'


class PlaybackPreferences:
    """
    Persisted audio quality and repeat mode

    Values are stored as plain strings; repeat modes use the RepeatMode
    enum values ("off", "track", "queue").
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.logger = get_logger(__name__)

    async def get_preferred_quality(self, default: str = "320kbps") -> str:
        value = await self.store.get_item(QUALITY_KEY)
        if value and parse_bitrate(value) > 0:
            return value
        return default

    async def set_preferred_quality(self, quality: str) -> None:
        if parse_bitrate(quality) <= 0:
            raise ValueError(f"Invalid quality label: {quality}")
        await self.store.set_item(QUALITY_KEY, quality)
        self.logger.debug(f"Preferred quality saved: {quality}")

    async def get_repeat_mode(self) -> Optional[str]:
        return await self.store.get_item(REPEAT_MODE_KEY)

    async def set_repeat_mode(self, mode: str) -> None:
        await self.store.set_item(REPEAT_MODE_KEY, mode)
