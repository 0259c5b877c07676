"""
Playback layer: engine interface, session state and the orchestrator
"""

from .engine import (
    EngineEvent,
    EngineState,
    EngineTrack,
    EventChannel,
    PlaybackEngine,
    PlaybackErrorEvent,
    QueueEndedEvent,
    TrackChangedEvent,
)
from .orchestrator import PlaybackOrchestrator
from .session import (
    CommandResult,
    ErrorInfo,
    ErrorKind,
    PlaybackSession,
    PlaybackState,
    RepeatMode,
)

__all__ = [
    'EngineEvent',
    'EngineState',
    'EngineTrack',
    'EventChannel',
    'PlaybackEngine',
    'PlaybackErrorEvent',
    'QueueEndedEvent',
    'TrackChangedEvent',
    'PlaybackOrchestrator',
    'CommandResult',
    'ErrorInfo',
    'ErrorKind',
    'PlaybackSession',
    'PlaybackState',
    'RepeatMode',
]
