"""
Local key-value persistence

The library needs a small string-to-string store for two things: user
playback preferences and the durable variant of the HTTP response cache.
KeyValueStore defines the async interface the host application provides;
two implementations ship with the library:

- MemoryKeyValueStore: process-local dictionary, used in tests and when
  nothing should be written to disk.
- JsonFileKeyValueStore: a single JSON document on disk. File access runs in
  a worker thread so the event loop is never blocked.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..utils.logger import get_logger


class KeyValueStore(ABC):
    """Async string key-value store"""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None"""

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Store value under key"""

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Remove key if present"""

    @abstractmethod
    async def multi_remove(self, keys: Iterable[str]) -> None:
        """Remove several keys at once"""

    @abstractmethod
    async def get_all_keys(self) -> List[str]:
        """Return every stored key"""


class MemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    async def multi_remove(self, keys: Iterable[str]) -> None:
        for key in list(keys):
            self._data.pop(key, None)

    async def get_all_keys(self) -> List[str]:
        return list(self._data.keys())


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store persisted as one JSON object in a file

    The file is loaded lazily on first access and rewritten after every
    mutation. A lock serializes mutations so concurrent writers never
    interleave file writes.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize store

        Args:
            path: Location of the JSON file (created on first write)
        """
        self.path = Path(path).expanduser()
        self._data: Optional[Dict[str, str]] = None
        self._lock = asyncio.Lock()
        self.logger = get_logger(__name__)

    def _read_file(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except ValueError as e:
            self.logger.warning(f"Ignoring corrupt store file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            self.logger.warning(f"Ignoring store file {self.path}: not a JSON object")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write_file(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp_path.replace(self.path)

    async def _load(self) -> Dict[str, str]:
        if self._data is None:
            self._data = await asyncio.to_thread(self._read_file)
        return self._data

    async def _flush(self) -> None:
        await asyncio.to_thread(self._write_file, dict(self._data or {}))

    async def get_item(self, key: str) -> Optional[str]:
        data = await self._load()
        return data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._load()
            data[key] = value
            await self._flush()

    async def remove_item(self, key: str) -> None:
        async with self._lock:
            data = await self._load()
            if data.pop(key, None) is not None:
                await self._flush()

    async def multi_remove(self, keys: Iterable[str]) -> None:
        async with self._lock:
            data = await self._load()
            removed = [data.pop(key) for key in list(keys) if key in data]
            if removed:
                await self._flush()

    async def get_all_keys(self) -> List[str]:
        data = await self._load()
        return list(data.keys())
