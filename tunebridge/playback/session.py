"""
Playback session state and command results

PlaybackState transitions:

    IDLE -> BUFFERING -> PLAYING <-> PAUSED
    any state -> ERROR on a native playback failure
    ERROR -> BUFFERING on automatic recovery (skip to next track)

RepeatMode.OFF stops at the end of the queue, TRACK replays the current
track and QUEUE wraps around to the first track.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..catalog.models import Track
from ..exceptions import PlaybackFault, SetupFailure, TuneBridgeError


class PlaybackState(Enum):
    IDLE = "idle"
    BUFFERING = "buffering"
    PLAYING = "playing"
    PAUSED = "paused"
    ERROR = "error"


class RepeatMode(Enum):
    OFF = "off"
    TRACK = "track"
    QUEUE = "queue"


class ErrorKind(Enum):
    """
    Classification of errors reported by the orchestrator

    PLAYBACK_FAULT: the engine failed mid-stream
    SETUP_FAILURE: the engine could not be initialized (reset required)
    NOT_PLAYABLE: no stream URL could be found for the track
    ENGINE_COMMAND: an engine command (load, pause, seek) raised
    """
    PLAYBACK_FAULT = "playback_fault"
    SETUP_FAILURE = "setup_failure"
    NOT_PLAYABLE = "not_playable"
    ENGINE_COMMAND = "engine_command"


@dataclass
class ErrorInfo:
    """
    Structured error reported to the collaborator UI

    Attributes:
        kind: Error classification
        message: Human-readable description
        code: Engine error code, when provided
        track_id: Track that was current when the error happened
        timestamp: Epoch seconds when the error was recorded
    """
    kind: ErrorKind
    message: str
    code: Optional[str] = None
    track_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_exception(self) -> TuneBridgeError:
        """Exception matching this error, for callers that prefer raising"""
        details = {'kind': self.kind.value, 'track_id': self.track_id}
        if self.kind is ErrorKind.SETUP_FAILURE:
            return SetupFailure(self.message, details=details)
        if self.kind is ErrorKind.PLAYBACK_FAULT:
            return PlaybackFault(self.message, code=self.code, details=details)
        return TuneBridgeError(self.message, details=details)


@dataclass
class CommandResult:
    """
    Outcome of an orchestrator command

    Commands never raise: a refused or failed command returns accepted=False
    with a message and, for real failures, an ErrorInfo.

    Attributes:
        accepted: Whether the command took effect
        state: Playback state after the command
        message: Short explanation, e.g. "not playable" or "end of queue"
        error: Structured error, if the command failed
    """
    accepted: bool
    state: PlaybackState
    message: str = ""
    error: Optional[ErrorInfo] = None

    def __bool__(self) -> bool:
        return self.accepted

    def raise_for_error(self) -> None:
        """
        Raise the recorded error, if any

        Raises:
            SetupFailure: Engine setup was exhausted
            PlaybackFault: Engine failed while playing
            TuneBridgeError: Any other recorded failure
        """
        if self.error is not None:
            raise self.error.to_exception()


@dataclass
class PlaybackSession:
    """
    Queue, position and state of the current listening session

    Attributes:
        queue: Ordered tracks
        current_index: Position in queue, None before the first play
        state: Playback state
        repeat_mode: Repeat behaviour at queue and track boundaries
        last_error: Most recent error, cleared once a track plays
    """
    queue: List[Track] = field(default_factory=list)
    current_index: Optional[int] = None
    state: PlaybackState = PlaybackState.IDLE
    repeat_mode: RepeatMode = RepeatMode.OFF
    last_error: Optional[ErrorInfo] = None

    @property
    def current_track(self) -> Optional[Track]:
        if self.current_index is None or not (0 <= self.current_index < len(self.queue)):
            return None
        return self.queue[self.current_index]

    @property
    def has_next(self) -> bool:
        return self.current_index is not None and self.current_index < len(self.queue) - 1

    @property
    def has_previous(self) -> bool:
        return self.current_index is not None and self.current_index > 0

    def clear(self) -> None:
        """Drop queue, position and error; state and repeat mode are left to the caller"""
        self.queue = []
        self.current_index = None
        self.last_error = None
