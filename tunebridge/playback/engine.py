"""
Native playback engine interface and its event channel

The audio engine itself lives outside this library (on a phone it is the
platform player). The host application adapts it to PlaybackEngine and feeds
the engine's notifications into an EventChannel, which the orchestrator
consumes. Tests drive the orchestrator by publishing synthetic events into
the channel; no real engine is needed.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class EngineState(Enum):
    """State reported by the native engine"""
    NONE = "none"
    READY = "ready"
    BUFFERING = "buffering"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass
class EngineTrack:
    """
    Track as handed to the native engine

    Attributes:
        id: Track id
        url: Normalized stream URL
        title: Display title
        artist: Display artist string
        artwork: Cover image URL
        duration: Length in seconds
    """
    id: str
    url: str
    title: str
    artist: str
    artwork: Optional[str] = None
    duration: int = 0


@dataclass(frozen=True)
class PlaybackErrorEvent:
    """Engine failed while playing"""
    message: str
    code: Optional[str] = None


@dataclass(frozen=True)
class TrackChangedEvent:
    """
    Engine moved to another track

    Attributes:
        next_track: Index in the engine's own queue, if reported
        track_id: Id of the track now playing, if reported
    """
    next_track: Optional[int] = None
    track_id: Optional[str] = None


@dataclass(frozen=True)
class QueueEndedEvent:
    """Engine reached the end of its queue"""
    position: float = 0.0


EngineEvent = Union[PlaybackErrorEvent, TrackChangedEvent, QueueEndedEvent]


class PlaybackEngine(ABC):
    """
    Primitive operations of the native audio engine

    Every method may raise; the orchestrator converts failures into
    structured errors.
    """

    @abstractmethod
    async def setup(self, options: Dict[str, Any]) -> None:
        """Initialize the engine with buffer options"""

    @abstractmethod
    async def add(self, tracks: List[EngineTrack]) -> None:
        """Append tracks to the engine queue"""

    @abstractmethod
    async def play(self) -> None:
        """Start or resume playback"""

    @abstractmethod
    async def pause(self) -> None:
        """Pause playback"""

    @abstractmethod
    async def seek_to(self, seconds: float) -> None:
        """Move the playhead"""

    @abstractmethod
    async def skip(self, index: int) -> None:
        """Jump to a track of the engine queue"""

    @abstractmethod
    async def get_state(self) -> EngineState:
        """Current engine state"""

    @abstractmethod
    async def get_queue(self) -> List[EngineTrack]:
        """Tracks currently in the engine queue"""

    @abstractmethod
    async def reset(self) -> None:
        """Stop playback and clear the engine queue"""


class EventChannel:
    """
    Async channel carrying engine events to the orchestrator

    publish() is synchronous so it can be called from engine callbacks.
    Iterating the channel yields events until close() is called.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: EngineEvent) -> None:
        if self._closed:
            raise RuntimeError("Event channel is closed")
        self._queue.put_nowait(event)

    async def send(self, event: EngineEvent) -> None:
        if self._closed:
            raise RuntimeError("Event channel is closed")
        await self._queue.put(event)

    async def receive(self) -> Optional[EngineEvent]:
        """Next event, or None once the channel is closed and drained"""
        item = await self._queue.get()
        if item is self._CLOSED:
            # Keep the marker for any other receiver
            self._queue.put_nowait(self._CLOSED)
            return None
        return item

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> EngineEvent:
        event = await self.receive()
        if event is None:
            raise StopAsyncIteration
        return event
