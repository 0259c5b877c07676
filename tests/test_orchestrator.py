"""Test the playback orchestrator state machine"""

import asyncio
import random

import pytest

from conftest import FakeCatalog, FakeEngine, make_song, make_track
from tunebridge.exceptions import PlaybackFault, SetupFailure
from tunebridge.playback import (
    ErrorKind,
    EventChannel,
    PlaybackErrorEvent,
    PlaybackOrchestrator,
    PlaybackState,
    QueueEndedEvent,
    RepeatMode,
    TrackChangedEvent,
)
from tunebridge.resolver.chain import ResolutionChain


def make_orchestrator(engine=None, responses=None, **kwargs):
    catalog = FakeCatalog(responses)
    chain = ResolutionChain(catalog, max_attempts=1, retry_delay=0)
    options = {'setup_retry_delay': 0, 'rng': random.Random(7)}
    options.update(kwargs)
    orchestrator = PlaybackOrchestrator(engine or FakeEngine(), chain, **options)
    return orchestrator, catalog


def added_ids(engine):
    return [call[1][0].id for call in engine.calls if call[0] == 'add']


class TestPlayTrack:
    """Test starting playback and loading tracks"""

    @pytest.mark.asyncio
    async def test_play_track_builds_queue(self, fake_engine, tracks):
        """The chosen track goes first and duplicates of it are dropped"""
        orchestrator, _ = make_orchestrator(fake_engine)

        result = await orchestrator.play_track(tracks[1], tracks)

        assert result.accepted
        assert result.state is PlaybackState.PLAYING
        assert [t.id for t in orchestrator.queue] == ['t2', 't1', 't3']
        assert orchestrator.current_index == 0
        assert orchestrator.current_track is tracks[1]
        assert fake_engine.names() == ['setup', 'reset', 'add', 'play']

    @pytest.mark.asyncio
    async def test_engine_gets_preferred_quality(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine, preferred_quality='160kbps')
        await orchestrator.play_track(tracks[0])

        engine_track = fake_engine.calls[2][1][0]
        assert engine_track.url == 'https://cdn.example.com/160/t1.mp4'
        assert engine_track.title == 'Song t1'
        assert engine_track.duration == 200

    @pytest.mark.asyncio
    async def test_state_listeners(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        transitions = []

        def broken(old, new):
            raise RuntimeError("listener bug")

        remove = orchestrator.add_listener(lambda old, new: transitions.append((old, new)))
        orchestrator.add_listener(broken)

        await orchestrator.play_track(tracks[0])
        assert transitions == [
            (PlaybackState.IDLE, PlaybackState.BUFFERING),
            (PlaybackState.BUFFERING, PlaybackState.PLAYING),
        ]

        remove()
        await orchestrator.pause()
        assert len(transitions) == 2

    @pytest.mark.asyncio
    async def test_unresolved_track_is_resolved_on_demand(self, fake_engine):
        track = make_track('sp1', 'Believer', ['Imagine Dragons'], resolved=False)
        orchestrator, catalog = make_orchestrator(
            fake_engine,
            responses={('search_songs', 'Believer Imagine Dragons'): [make_song('s1', 'Believer')]}
        )

        result = await orchestrator.play_track(track)

        assert result.accepted
        assert track.is_resolved
        # Catalog links are http; the engine only receives https
        assert fake_engine.calls[2][1][0].url == 'https://cdn.example.com/320kbps/s1.mp4'

    @pytest.mark.asyncio
    async def test_not_playable_leaves_state_alone(self, fake_engine):
        track = make_track('sp1', 'Nowhere', resolved=False)
        orchestrator, _ = make_orchestrator(fake_engine)

        result = await orchestrator.play_track(track)

        assert not result.accepted
        assert result.message == "not playable"
        assert result.error.kind is ErrorKind.NOT_PLAYABLE
        assert orchestrator.state is PlaybackState.IDLE
        assert orchestrator.current_index is None
        assert orchestrator.last_error is None
        assert fake_engine.names() == ['setup']

    @pytest.mark.asyncio
    async def test_not_playable_next_track_keeps_current(self, fake_engine, tracks):
        unplayable = make_track('sp9', 'Nowhere', resolved=False)
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0], [tracks[0], unplayable])

        result = await orchestrator.skip_to_next()

        assert result.message == "not playable"
        assert orchestrator.current_index == 0
        assert orchestrator.state is PlaybackState.PLAYING

    @pytest.mark.asyncio
    async def test_invalid_index(self, tracks):
        orchestrator, _ = make_orchestrator()
        orchestrator.session.queue = list(tracks)
        result = await orchestrator.load_and_play(5)
        assert not result.accepted
        assert result.message == "invalid queue index"

    @pytest.mark.asyncio
    async def test_engine_failure_becomes_error(self, fake_engine, tracks):
        fake_engine.fail_on['add'] = RuntimeError("bad source")
        orchestrator, _ = make_orchestrator(fake_engine, queue_retry_attempts=2)

        result = await orchestrator.play_track(tracks[0])

        assert not result.accepted
        assert result.message == "engine error"
        assert orchestrator.state is PlaybackState.ERROR
        assert orchestrator.last_error.kind is ErrorKind.ENGINE_COMMAND
        assert orchestrator.last_error.track_id == 't1'
        assert fake_engine.names().count('add') == 2

    @pytest.mark.asyncio
    async def test_recently_played(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine, history_size=2)

        await orchestrator.play_track(tracks[0], tracks)
        await orchestrator.skip_to_next()
        await orchestrator.skip_to_previous()
        assert [t.id for t in orchestrator.recently_played] == ['t1', 't2']

        await orchestrator.load_and_play(2)
        assert [t.id for t in orchestrator.recently_played] == ['t3', 't1']


class TestTransport:
    """Test pause, resume, seek and skipping"""

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)

        assert (await orchestrator.pause()).message == "cannot pause while idle"

        await orchestrator.play_track(tracks[0])
        assert (await orchestrator.pause()).state is PlaybackState.PAUSED
        assert (await orchestrator.resume()).state is PlaybackState.PLAYING
        assert fake_engine.names()[-2:] == ['pause', 'play']

    @pytest.mark.asyncio
    async def test_toggle(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0])

        assert (await orchestrator.toggle_playback()).state is PlaybackState.PAUSED
        assert (await orchestrator.toggle_playback()).state is PlaybackState.PLAYING

    @pytest.mark.asyncio
    async def test_seek_ignored_when_idle(self, fake_engine):
        orchestrator, _ = make_orchestrator(fake_engine)
        result = await orchestrator.seek(30)
        assert not result.accepted
        assert result.message == "seek ignored while idle"
        assert 'seek_to' not in fake_engine.names()

    @pytest.mark.asyncio
    async def test_seek_clamps_negative(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0])

        result = await orchestrator.seek(-5)

        assert result.accepted
        assert result.message == "seeked to 0.0s"
        assert fake_engine.calls[-1] == ('seek_to', 0.0)

    @pytest.mark.asyncio
    async def test_skip_stops_at_edges_when_repeat_off(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)

        assert (await orchestrator.skip_to_next()).message == "queue is empty"

        await orchestrator.play_track(tracks[0], tracks)
        assert (await orchestrator.skip_to_previous()).message == "start of queue"

        await orchestrator.load_and_play(2)
        result = await orchestrator.skip_to_next()
        assert result.message == "end of queue"
        assert orchestrator.current_index == 2

    @pytest.mark.asyncio
    async def test_skip_wraps_with_repeat_queue(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        orchestrator.set_repeat_mode(RepeatMode.QUEUE)
        await orchestrator.play_track(tracks[0], tracks)

        await orchestrator.skip_to_previous()
        assert orchestrator.current_index == 2

        await orchestrator.skip_to_next()
        assert orchestrator.current_index == 0
        assert added_ids(fake_engine) == ['t1', 't3', 't1']


class TestSetup:
    """Test engine setup retries and terminal failure"""

    @pytest.mark.asyncio
    async def test_setup_retries(self, fake_engine, tracks):
        fake_engine.fail_on['setup'] = RuntimeError("not ready")
        fake_engine.fail_count['setup'] = 2
        orchestrator, _ = make_orchestrator(fake_engine, setup_attempts=3)

        result = await orchestrator.play_track(tracks[0])

        assert result.accepted
        assert orchestrator.is_setup
        assert fake_engine.names().count('setup') == 3

    @pytest.mark.asyncio
    async def test_already_initialized_counts_as_success(self, fake_engine):
        fake_engine.fail_on['setup'] = RuntimeError("The player has already been initialized")
        orchestrator, _ = make_orchestrator(fake_engine)

        result = await orchestrator.setup()

        assert result.accepted
        assert fake_engine.names() == ['setup']

    @pytest.mark.asyncio
    async def test_concurrent_setup_shares_attempt(self, fake_engine):
        orchestrator, _ = make_orchestrator(fake_engine)

        results = await asyncio.gather(orchestrator.setup(), orchestrator.setup())

        assert all(r.accepted for r in results)
        assert fake_engine.names() == ['setup']

    @pytest.mark.asyncio
    async def test_exhausted_setup_is_terminal_until_reset(self, fake_engine, tracks):
        fake_engine.fail_on['setup'] = RuntimeError("no audio device")
        orchestrator, _ = make_orchestrator(fake_engine, setup_attempts=3)

        result = await orchestrator.play_track(tracks[0])
        assert not result.accepted
        assert orchestrator.state is PlaybackState.ERROR
        assert orchestrator.last_error.kind is ErrorKind.SETUP_FAILURE
        assert fake_engine.names().count('setup') == 3
        with pytest.raises(SetupFailure):
            result.raise_for_error()

        again = await orchestrator.play_track(tracks[1])
        assert again.message == "player setup failed, reset required"
        assert (await orchestrator.retry()).message == "player setup failed, reset required"
        assert fake_engine.names().count('setup') == 3

        del fake_engine.fail_on['setup']
        reset = await orchestrator.toggle_playback()
        assert reset.state is PlaybackState.IDLE
        assert orchestrator.last_error is None
        assert orchestrator.queue == []

        assert (await orchestrator.play_track(tracks[1])).accepted


class TestEngineEvents:
    """Test reactions to native engine events"""

    @pytest.mark.asyncio
    async def test_playback_error_skips_to_next(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0], tracks)
        states = []
        orchestrator.add_listener(lambda old, new: states.append(new))

        result = await orchestrator.handle_event(PlaybackErrorEvent("decoder failed", code='E_DECODE'))

        assert result.accepted
        assert orchestrator.current_index == 1
        assert orchestrator.state is PlaybackState.PLAYING
        assert orchestrator.last_error is None
        assert states == [PlaybackState.ERROR, PlaybackState.BUFFERING, PlaybackState.PLAYING]
        assert added_ids(fake_engine) == ['t1', 't2']
        assert 'pause' in fake_engine.names()

    @pytest.mark.asyncio
    async def test_playback_error_at_end_of_queue_does_not_reload(self, fake_engine, tracks):
        """A fault on the last of three tracks with repeat off loads nothing further"""
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0], tracks)
        await orchestrator.load_and_play(2)
        calls_before = len(fake_engine.calls)
        states = []
        orchestrator.add_listener(lambda old, new: states.append(new))

        result = await orchestrator.handle_event(PlaybackErrorEvent("stream dropped", code='E_IO'))

        assert not result.accepted
        assert orchestrator.repeat_mode is RepeatMode.OFF
        assert orchestrator.current_index == 2
        assert orchestrator.state is PlaybackState.ERROR
        assert orchestrator.last_error.track_id == 't3'
        assert states == [PlaybackState.ERROR]
        assert [call[0] for call in fake_engine.calls[calls_before:]] == ['pause']

    @pytest.mark.asyncio
    async def test_playback_error_on_last_track_stays_error(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0])

        result = await orchestrator.handle_event(PlaybackErrorEvent("network lost", code='E_NET'))

        assert not result.accepted
        assert result.message == "playback error"
        assert orchestrator.state is PlaybackState.ERROR
        assert orchestrator.last_error.kind is ErrorKind.PLAYBACK_FAULT
        assert orchestrator.last_error.code == 'E_NET'
        with pytest.raises(PlaybackFault) as exc_info:
            result.raise_for_error()
        assert exc_info.value.code == 'E_NET'

        retried = await orchestrator.retry()
        assert retried.accepted
        assert orchestrator.last_error is None

    @pytest.mark.asyncio
    async def test_queue_end_advances(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0], tracks)

        await orchestrator.handle_event(QueueEndedEvent())
        assert orchestrator.current_index == 1

    @pytest.mark.asyncio
    async def test_queue_end_repeat_track(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        orchestrator.set_repeat_mode(RepeatMode.TRACK)
        await orchestrator.play_track(tracks[0], tracks)

        await orchestrator.handle_event(QueueEndedEvent())

        assert orchestrator.current_index == 0
        assert added_ids(fake_engine) == ['t1', 't1']

    @pytest.mark.asyncio
    async def test_queue_end_repeat_queue_wraps(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        orchestrator.set_repeat_mode(RepeatMode.QUEUE)
        await orchestrator.play_track(tracks[2], tracks)
        await orchestrator.load_and_play(2)

        await orchestrator.handle_event(QueueEndedEvent())
        assert orchestrator.current_index == 0

    @pytest.mark.asyncio
    async def test_queue_end_stops_when_repeat_off(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0])

        result = await orchestrator.handle_event(QueueEndedEvent())

        assert result.message == "queue finished"
        assert orchestrator.state is PlaybackState.IDLE
        assert orchestrator.current_index == 0

        # Resume from IDLE restarts the current track
        assert (await orchestrator.resume()).state is PlaybackState.PLAYING

    @pytest.mark.asyncio
    async def test_track_changed_syncs_index(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0], tracks)

        await orchestrator.handle_event(TrackChangedEvent(track_id='t3'))
        assert orchestrator.current_index == 2

        await orchestrator.handle_event(TrackChangedEvent(next_track=1))
        assert orchestrator.current_index == 1

        await orchestrator.handle_event(TrackChangedEvent(track_id='unknown'))
        await orchestrator.handle_event(TrackChangedEvent(next_track=10))
        assert orchestrator.current_index == 1

    @pytest.mark.asyncio
    async def test_run_consumes_channel(self, fake_engine, tracks):
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(tracks[0], tracks)

        channel = EventChannel()
        channel.publish(QueueEndedEvent())
        channel.publish(TrackChangedEvent(track_id='t3'))
        channel.close()

        await orchestrator.run(channel)

        assert orchestrator.current_index == 2
        with pytest.raises(RuntimeError):
            channel.publish(QueueEndedEvent())


class TestQueueModes:
    """Test stale loads, repeat cycling and shuffling"""

    @pytest.mark.asyncio
    async def test_stale_resolution_is_discarded(self, fake_engine, tracks):
        slow = make_track('sp1', 'Slow', ['A'], resolved=False)
        orchestrator, catalog = make_orchestrator(
            fake_engine,
            responses={('search_songs', 'Slow A'): [make_song('s1', 'Slow')]}
        )
        catalog.delay = 0.05

        first = asyncio.create_task(orchestrator.play_track(slow, [slow, tracks[0]]))
        await asyncio.sleep(0.01)
        second = await orchestrator.load_and_play(1)

        assert second.accepted
        assert (await first).message == "superseded"
        assert orchestrator.current_index == 1
        assert orchestrator.state is PlaybackState.PLAYING
        assert added_ids(fake_engine) == ['t1']

    @pytest.mark.asyncio
    async def test_newer_load_aborts_older_resolution(self, fake_engine, tracks):
        slow = make_track('sp1', 'Slow', ['A'], resolved=False)
        orchestrator, catalog = make_orchestrator(fake_engine)
        catalog.delay = 0.05

        first = asyncio.create_task(orchestrator.play_track(slow, [slow, tracks[0]]))
        await asyncio.sleep(0.01)
        second = await orchestrator.load_and_play(1)

        assert second.accepted
        assert (await first).message == "superseded"
        # The unresolvable track would otherwise walk the whole chain
        assert catalog.calls == [('search_songs', 'Slow A')]
        assert catalog.signals[0].aborted
        assert orchestrator.current_track is tracks[0]

    @pytest.mark.asyncio
    async def test_reset_aborts_pending_resolution(self, fake_engine):
        slow = make_track('sp1', 'Slow', ['A'], resolved=False)
        orchestrator, catalog = make_orchestrator(fake_engine)
        catalog.delay = 0.05

        pending = asyncio.create_task(orchestrator.play_track(slow))
        await asyncio.sleep(0.01)
        await orchestrator.reset()

        assert (await pending).message == "superseded"
        assert len(catalog.calls) == 1
        assert orchestrator.state is PlaybackState.IDLE
        assert added_ids(fake_engine) == []

    @pytest.mark.asyncio
    async def test_unplayable_load_over_stale_buffering_settles_idle(self, tracks):
        """A superseded engine load must not leave the session BUFFERING"""

        class SlowAddEngine(FakeEngine):
            async def add(self, tracks):
                await asyncio.sleep(0.05)
                await super().add(tracks)

        engine = SlowAddEngine()
        missing = make_track('sp9', 'Missing', ['Nobody'], resolved=False)
        orchestrator, _ = make_orchestrator(engine)

        first = asyncio.create_task(orchestrator.play_track(tracks[0], [tracks[0], missing]))
        await asyncio.sleep(0.01)
        assert orchestrator.state is PlaybackState.BUFFERING

        second = await orchestrator.load_and_play(1)
        assert second.message == "not playable"
        assert (await first).message == "superseded"

        assert orchestrator.state is PlaybackState.IDLE
        assert orchestrator.current_index == 0
        assert 'play' not in engine.names()

        resumed = await orchestrator.resume()
        assert resumed.accepted
        assert orchestrator.state is PlaybackState.PLAYING
        assert orchestrator.current_track is tracks[0]

    def test_cycle_repeat_mode(self):
        orchestrator, _ = make_orchestrator()
        assert orchestrator.repeat_mode is RepeatMode.OFF
        assert orchestrator.cycle_repeat_mode() is RepeatMode.QUEUE
        assert orchestrator.cycle_repeat_mode() is RepeatMode.TRACK
        assert orchestrator.cycle_repeat_mode() is RepeatMode.OFF

    @pytest.mark.asyncio
    async def test_shuffle_keeps_current_track_first(self, fake_engine):
        many = [make_track(f't{i}') for i in range(6)]
        orchestrator, _ = make_orchestrator(fake_engine)
        await orchestrator.play_track(many[0], many)
        await orchestrator.load_and_play(3)
        current = orchestrator.current_track

        result = orchestrator.shuffle_queue()

        assert result.accepted
        assert orchestrator.current_index == 0
        assert orchestrator.queue[0] is current
        assert sorted(t.id for t in orchestrator.queue) == sorted(t.id for t in many)

    def test_shuffle_single_track(self):
        orchestrator, _ = make_orchestrator()
        orchestrator.session.queue = [make_track('t1')]
        assert orchestrator.shuffle_queue().message == "nothing to shuffle"
