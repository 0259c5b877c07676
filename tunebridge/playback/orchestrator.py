"""
Playback orchestrator: the state machine between the UI and the audio engine

The orchestrator owns the listening session (queue, current index, state,
repeat mode, last error) and mediates every command against the native
engine. It never lets an engine failure escape: each command returns a
CommandResult and failures are recorded as ErrorInfo.

Loading Model:

The engine is loaded with one track at a time (reset, add, play). Tracks are
resolved lazily when they are reached: a track without candidate URLs goes
through the resolution chain first, then the best quality URL is picked and
normalized.

    load_and_play(i): [resolve] -> BUFFERING -> engine reset/add/play -> PLAYING

If resolution finds nothing the index stays as it was and the command
reports "not playable". This is a precondition failure, not ERROR.

Stale Results:

Resolutions for different tracks may finish in any order. Every load takes
a generation number and its own AbortSignal; starting a newer load (or
reset) aborts the older load's resolution. A load whose generation is no
longer the latest, or whose track is no longer the current one, is
discarded without touching the session. When a newer load fails before
reaching the engine while a discarded one had already left the session
BUFFERING, the session drops back to IDLE, so resume() reloads the
current track.

Engine Events:

- PlaybackErrorEvent: ERROR with last_error recorded, engine paused, then
  one automatic skip to the next track if there is one. Otherwise ERROR
  stays until the user retries or resets.
- QueueEndedEvent: TRACK replays the current track; with a next track the
  queue advances; at the end QUEUE wraps to the first track and OFF stops.
- TrackChangedEvent: current index follows the engine when the event names
  a track in the queue.

Setup:

Engine setup is retried up to a fixed ceiling with a fixed delay. Concurrent
setup calls share one attempt, and an "already been initialized" error
counts as success. Exhaustion is terminal (SETUP_FAILURE) until reset().
"""

import asyncio
import random
from typing import Any, Callable, Dict, List, Optional, Tuple

from .engine import (
    EngineEvent,
    EngineTrack,
    EventChannel,
    PlaybackEngine,
    PlaybackErrorEvent,
    QueueEndedEvent,
    TrackChangedEvent,
)
from .session import CommandResult, ErrorInfo, ErrorKind, PlaybackSession, PlaybackState, RepeatMode
from ..catalog.models import Track
from ..exceptions import RequestAborted
from ..http.abort import AbortSignal
from ..resolver.chain import ResolutionChain
from ..resolver.quality import DEFAULT_QUALITY, pick_best_url
from ..utils.helpers import normalize_stream_url, retry_with_backoff
from ..utils.logger import get_logger


StateListener = Callable[[PlaybackState, PlaybackState], None]

ALREADY_INITIALIZED = 'already been initialized'

REPEAT_CYCLE = {
    RepeatMode.OFF: RepeatMode.QUEUE,
    RepeatMode.QUEUE: RepeatMode.TRACK,
    RepeatMode.TRACK: RepeatMode.OFF,
}


class PlaybackOrchestrator:
    """
    State machine over a PlaybackEngine

    Attributes:
        engine: Native engine adapter
        resolver: Resolution chain for tracks without candidate URLs
        preferred_quality: Quality label passed to pick_best_url
        session: Current listening session
    """

    def __init__(
        self,
        engine: PlaybackEngine,
        resolver: ResolutionChain,
        preferred_quality: str = DEFAULT_QUALITY,
        setup_options: Optional[Dict[str, Any]] = None,
        setup_attempts: int = 3,
        setup_retry_delay: float = 1.0,
        queue_retry_attempts: int = 2,
        history_size: int = 20,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize orchestrator with an idle session

        Args:
            engine: Native engine adapter
            resolver: Resolution chain
            preferred_quality: Preferred stream quality label
            setup_options: Options passed to engine.setup (buffer sizes)
            setup_attempts: Engine setup attempts before giving up
            setup_retry_delay: Seconds between setup and queue attempts
            queue_retry_attempts: Attempts for loading a track into the engine
            history_size: Number of recently played tracks kept
            rng: Random source for shuffling
        """
        self.engine = engine
        self.resolver = resolver
        self.preferred_quality = preferred_quality
        self.setup_options = dict(setup_options or {})
        self.setup_attempts = setup_attempts
        self.setup_retry_delay = setup_retry_delay
        self.queue_retry_attempts = queue_retry_attempts
        self.history_size = history_size
        self.session = PlaybackSession()
        self.logger = get_logger(__name__)

        self._rng = rng or random.Random()
        self._listeners: List[StateListener] = []
        self._recently_played: List[Track] = []
        self._is_setup = False
        self._setup_task: Optional[asyncio.Task] = None
        self._load_generation = 0
        self._load_signal: Optional[AbortSignal] = None

    # ============ STATE ============

    @property
    def state(self) -> PlaybackState:
        return self.session.state

    @property
    def queue(self) -> List[Track]:
        return list(self.session.queue)

    @property
    def current_index(self) -> Optional[int]:
        return self.session.current_index

    @property
    def current_track(self) -> Optional[Track]:
        return self.session.current_track

    @property
    def repeat_mode(self) -> RepeatMode:
        return self.session.repeat_mode

    @property
    def last_error(self) -> Optional[ErrorInfo]:
        return self.session.last_error

    @property
    def is_setup(self) -> bool:
        return self._is_setup

    @property
    def recently_played(self) -> List[Track]:
        """Most recent first, unique by track id"""
        return list(self._recently_played)

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a callback for state transitions

        Args:
            listener: Called with (old_state, new_state) on every change

        Returns:
            Function that unregisters the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set_state(self, new_state: PlaybackState) -> None:
        old_state = self.session.state
        if old_state is new_state:
            return

        self.session.state = new_state
        self.logger.debug(f"Playback state: {old_state.value} -> {new_state.value}")

        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                self.logger.error(f"State listener failed: {e}")

    def _result(self, accepted: bool, message: str = "", error: Optional[ErrorInfo] = None) -> CommandResult:
        return CommandResult(accepted=accepted, state=self.session.state, message=message, error=error)

    def _error(self, kind: ErrorKind, message: str, code: Optional[str] = None) -> ErrorInfo:
        track = self.session.current_track
        return ErrorInfo(kind=kind, message=message, code=code, track_id=track.id if track else None)

    # ============ SETUP ============

    async def setup(self) -> CommandResult:
        """
        Initialize the engine once

        Returns:
            Accepted result when the engine is ready, rejected with a
            SETUP_FAILURE error once the retry ceiling is exhausted
        """
        if self._is_setup:
            return self._result(True, "ready")

        last_error = self.session.last_error
        if last_error is not None and last_error.kind is ErrorKind.SETUP_FAILURE:
            return self._result(False, "player setup failed, reset required", last_error)

        if self._setup_task is None:
            self._setup_task = asyncio.get_running_loop().create_task(self._run_setup())

        if await asyncio.shield(self._setup_task):
            return self._result(True, "ready")
        return self._result(False, "player setup failed", self.session.last_error)

    async def _run_setup(self) -> bool:
        async def attempt() -> None:
            try:
                await self.engine.setup(self.setup_options)
            except Exception as e:
                if ALREADY_INITIALIZED in str(e).lower():
                    self.logger.debug("Playback engine was already initialized")
                    return
                raise

        try:
            await retry_with_backoff(
                attempt,
                max_attempts=self.setup_attempts,
                delay=self.setup_retry_delay,
                description="Playback engine setup"
            )
            self._is_setup = True
            self.logger.info("Playback engine ready")
            return True

        except Exception as e:
            error = self._error(ErrorKind.SETUP_FAILURE, f"Player setup failed: {e}")
            self.session.last_error = error
            self._set_state(PlaybackState.ERROR)
            self.logger.console_error(f"Could not initialize the player: {e}")
            return False

        finally:
            self._setup_task = None

    # ============ LOADING ============

    def _is_current(self, generation: int, track: Track) -> bool:
        return generation == self._load_generation and self.session.current_track is track

    def _superseded(self) -> CommandResult:
        self.logger.debug("Discarding stale load result")
        return self._result(False, "superseded")

    def _start_load(self) -> Tuple[int, AbortSignal]:
        """Invalidate any load in flight and open a new generation"""
        if self._load_signal is not None:
            self._load_signal.abort("Superseded by a newer load")

        self._load_generation += 1
        self._load_signal = AbortSignal()
        return self._load_generation, self._load_signal

    def _settle_unloaded(self) -> None:
        # Only a superseded load can have left BUFFERING behind; its engine
        # work was reset before play, so nothing is playing now
        if self.session.state is PlaybackState.BUFFERING:
            self._set_state(PlaybackState.IDLE)

    async def play_track(self, track: Track, track_list: Optional[List[Track]] = None) -> CommandResult:
        """
        Start a new queue with track first

        Args:
            track: Track to play now
            track_list: Surrounding list (album, playlist); copies of track
                are dropped from it

        Returns:
            Result of loading the first track
        """
        queue = [track] + [t for t in (track_list or []) if t.id != track.id]
        self.session.queue = queue
        self.session.current_index = None
        return await self.load_and_play(0)

    async def load_and_play(self, index: int) -> CommandResult:
        """
        Make queue[index] the current track and play it

        Args:
            index: Position in the queue

        Returns:
            Accepted once the engine plays, "not playable" when no URL was
            found, "superseded" when another load started meanwhile
        """
        queue = self.session.queue
        if not (0 <= index < len(queue)):
            return self._result(False, "invalid queue index")

        setup_result = await self.setup()
        if not setup_result.accepted:
            return setup_result

        generation, signal = self._start_load()
        track = queue[index]
        previous_index = self.session.current_index
        self.session.current_index = index

        if not track.candidate_urls:
            try:
                resolved = await self.resolver.resolve_playable_track(track, signal)
            except RequestAborted:
                return self._superseded()

            if not self._is_current(generation, track):
                return self._superseded()

            if resolved is not None:
                track.fill_candidates(resolved.candidate_urls)

        url = normalize_stream_url(pick_best_url(track.candidate_urls, self.preferred_quality))
        if not url:
            self.session.current_index = previous_index
            self._settle_unloaded()
            self.logger.console_warning(f"'{track.title}' is not available for streaming")
            return self._result(
                False,
                "not playable",
                ErrorInfo(kind=ErrorKind.NOT_PLAYABLE, message=f"No playable source for '{track.title}'", track_id=track.id)
            )

        self._set_state(PlaybackState.BUFFERING)

        engine_track = EngineTrack(
            id=track.id,
            url=url,
            title=track.title,
            artist=track.artists,
            artwork=track.artwork_url,
            duration=track.duration_seconds,
        )

        async def load() -> None:
            await self.engine.reset()
            await self.engine.add([engine_track])

        try:
            await retry_with_backoff(
                load,
                max_attempts=self.queue_retry_attempts,
                delay=self.setup_retry_delay,
                description=f"Loading '{track.title}'"
            )
            if not self._is_current(generation, track):
                return self._superseded()
            await self.engine.play()

        except Exception as e:
            if not self._is_current(generation, track):
                return self._superseded()
            error = self._error(ErrorKind.ENGINE_COMMAND, f"Could not play '{track.title}': {e}")
            self.session.last_error = error
            self._set_state(PlaybackState.ERROR)
            self.logger.error(error.message)
            return self._result(False, "engine error", error)

        if not self._is_current(generation, track):
            return self._superseded()

        self.session.last_error = None
        self._set_state(PlaybackState.PLAYING)
        self._remember(track)
        self.logger.console_info(f"Now playing: {track.title} - {track.artists}")
        return self._result(True, "playing")

    def _remember(self, track: Track) -> None:
        history = [t for t in self._recently_played if t.id != track.id]
        history.insert(0, track)
        self._recently_played = history[:self.history_size]

    # ============ TRANSPORT COMMANDS ============

    async def pause(self) -> CommandResult:
        if self.session.state is not PlaybackState.PLAYING:
            return self._result(False, f"cannot pause while {self.session.state.value}")

        try:
            await self.engine.pause()
        except Exception as e:
            error = self._error(ErrorKind.ENGINE_COMMAND, f"Pause failed: {e}")
            self.logger.error(error.message)
            return self._result(False, "engine error", error)

        self._set_state(PlaybackState.PAUSED)
        return self._result(True, "paused")

    async def resume(self) -> CommandResult:
        """
        Resume a paused track, or restart the current track after the queue stopped
        """
        state = self.session.state

        if state is PlaybackState.IDLE and self.session.current_index is not None:
            return await self.load_and_play(self.session.current_index)

        if state is not PlaybackState.PAUSED:
            return self._result(False, f"cannot resume while {state.value}")

        try:
            await self.engine.play()
        except Exception as e:
            error = self._error(ErrorKind.ENGINE_COMMAND, f"Resume failed: {e}")
            self.logger.error(error.message)
            return self._result(False, "engine error", error)

        self._set_state(PlaybackState.PLAYING)
        return self._result(True, "playing")

    async def toggle_playback(self) -> CommandResult:
        """Play/pause button: pauses, resumes, or resets after an error"""
        state = self.session.state
        if state is PlaybackState.ERROR:
            return await self.reset()
        if state is PlaybackState.PLAYING:
            return await self.pause()
        return await self.resume()

    async def seek(self, position: float) -> CommandResult:
        """
        Move the playhead

        Only valid while PLAYING or PAUSED. Seeks arriving in any other state
        are ignored and reported as rejected; they never raise.

        Args:
            position: Target position in seconds; negatives clamp to 0
        """
        state = self.session.state
        if state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            return self._result(False, f"seek ignored while {state.value}")

        position = max(0.0, float(position))
        try:
            await self.engine.seek_to(position)
        except Exception as e:
            error = self._error(ErrorKind.ENGINE_COMMAND, f"Seek failed: {e}")
            self.logger.warning(error.message)
            return self._result(False, "engine error", error)

        return self._result(True, f"seeked to {position:.1f}s")

    async def skip_to_next(self) -> CommandResult:
        """
        Play the next track; wraps to the first unless repeat is OFF
        """
        index = self.session.current_index
        size = len(self.session.queue)
        if index is None or size == 0:
            return self._result(False, "queue is empty")

        if self.session.repeat_mode is RepeatMode.OFF and index + 1 >= size:
            return self._result(False, "end of queue")

        return await self.load_and_play((index + 1) % size)

    async def skip_to_previous(self) -> CommandResult:
        """
        Play the previous track; wraps to the last unless repeat is OFF
        """
        index = self.session.current_index
        size = len(self.session.queue)
        if index is None or size == 0:
            return self._result(False, "queue is empty")

        if self.session.repeat_mode is RepeatMode.OFF and not self.session.has_previous:
            return self._result(False, "start of queue")

        return await self.load_and_play((index - 1) % size)

    async def retry(self) -> CommandResult:
        """Reload the current track after an error"""
        last_error = self.session.last_error
        if last_error is not None and last_error.kind is ErrorKind.SETUP_FAILURE:
            return self._result(False, "player setup failed, reset required", last_error)

        index = self.session.current_index
        if index is None:
            return self._result(False, "nothing to retry")

        return await self.load_and_play(index)

    async def reset(self) -> CommandResult:
        """
        Stop playback, clear the queue and any error (including setup failure)
        """
        self._start_load()

        try:
            await self.engine.reset()
        except Exception as e:
            self.logger.warning(f"Engine reset failed: {e}")

        self.session.clear()
        self._set_state(PlaybackState.IDLE)
        return self._result(True, "reset")

    # ============ QUEUE MODES ============

    def set_repeat_mode(self, mode: RepeatMode) -> RepeatMode:
        self.session.repeat_mode = mode
        self.logger.debug(f"Repeat mode: {mode.value}")
        return mode

    def cycle_repeat_mode(self) -> RepeatMode:
        """OFF -> QUEUE -> TRACK -> OFF"""
        return self.set_repeat_mode(REPEAT_CYCLE[self.session.repeat_mode])

    def shuffle_queue(self) -> CommandResult:
        """
        Shuffle the queue, keeping the current track first
        """
        queue = self.session.queue
        if len(queue) < 2:
            return self._result(True, "nothing to shuffle")

        current = self.session.current_track
        rest = [t for t in queue if t is not current]
        self._rng.shuffle(rest)

        if current is not None:
            self.session.queue = [current] + rest
            self.session.current_index = 0
        else:
            self.session.queue = rest

        return self._result(True, "shuffled")

    # ============ ENGINE EVENTS ============

    async def handle_event(self, event: EngineEvent) -> Optional[CommandResult]:
        """
        Apply one engine event to the session

        Returns:
            Result of the follow-up command, if the event triggered one
        """
        if isinstance(event, PlaybackErrorEvent):
            return await self._on_playback_error(event)
        if isinstance(event, QueueEndedEvent):
            return await self._on_queue_ended()
        if isinstance(event, TrackChangedEvent):
            self._on_track_changed(event)
            return None

        self.logger.warning(f"Ignoring unknown engine event: {event!r}")
        return None

    async def run(self, channel: EventChannel) -> None:
        """Consume engine events until the channel is closed"""
        async for event in channel:
            await self.handle_event(event)

    async def _on_playback_error(self, event: PlaybackErrorEvent) -> CommandResult:
        error = self._error(ErrorKind.PLAYBACK_FAULT, event.message, code=event.code)
        self.session.last_error = error
        self._set_state(PlaybackState.ERROR)
        self.logger.error(f"Playback error: {event.message} (code: {event.code})")

        try:
            await self.engine.pause()
        except Exception as e:
            self.logger.debug(f"Pause after playback error failed: {e}")

        if self.session.has_next:
            self.logger.info("Skipping to next track after playback error")
            result = await self.skip_to_next()
            if result.accepted:
                return result

        self.logger.console_error(f"Playback stopped: {event.message}")
        return self._result(False, "playback error", self.session.last_error)

    async def _on_queue_ended(self) -> CommandResult:
        index = self.session.current_index
        if index is None or not self.session.queue:
            self._set_state(PlaybackState.IDLE)
            return self._result(True, "queue finished")

        if self.session.repeat_mode is RepeatMode.TRACK:
            return await self.load_and_play(index)

        if self.session.has_next:
            return await self.load_and_play(index + 1)

        if self.session.repeat_mode is RepeatMode.QUEUE:
            return await self.load_and_play(0)

        self._set_state(PlaybackState.IDLE)
        return self._result(True, "queue finished")

    def _on_track_changed(self, event: TrackChangedEvent) -> None:
        queue = self.session.queue
        index: Optional[int] = None

        if event.track_id is not None:
            index = next((i for i, track in enumerate(queue) if track.id == event.track_id), None)
        elif event.next_track is not None and 0 <= event.next_track < len(queue):
            index = event.next_track

        if index is not None and index != self.session.current_index:
            self.logger.debug(f"Engine moved to queue index {index}")
            self.session.current_index = index
