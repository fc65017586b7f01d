"""
Tests for the crossfade engine: phase alignment, the gain law and the lifecycle of sources.
"""

import pytest

from conftest import FakeLoader, make_buffer
from cutoff.client.engine import CrossfadeEngine, EngineState, phase_offset
from cutoff.core.errors import FetchError

SOURCE = "/storage/test-audio.mp3"
PROCESSED = "/storage/processed-1-test-audio.mp3"
PROCESSED_2 = "/storage/processed-2-test-audio.mp3"


@pytest.fixture
def loader():
    return FakeLoader({
        SOURCE: make_buffer(2.0),
        PROCESSED: make_buffer(2.0),
        PROCESSED_2: make_buffer(2.0),
    })


@pytest.fixture
def engine(context, loader):
    return CrossfadeEngine(context, loader, cutoff_frequency=1000.0, crossfade_seconds=1.0, fft_size=256)


@pytest.fixture
def playing(engine):
    engine.load(SOURCE)
    assert engine.play()
    return engine


class TestPhaseOffset:

    @pytest.mark.parametrize(
        "elapsed, duration, expected",
        [(0.5, 2.0, 0.5), (5.0, 2.0, 1.0), (4.0, 2.0, 0.0), (3.0, 0.0, 0.0), (-1.0, 2.0, 0.0)],
    )
    def test_wraps_to_loop(self, elapsed, duration, expected):
        assert phase_offset(elapsed, duration) == pytest.approx(expected)


class TestPlayback:

    def test_load_then_play(self, engine, loader):
        assert engine.state is EngineState.IDLE
        engine.load(SOURCE)
        assert engine.state is EngineState.READY

        assert engine.play()
        assert engine.state is EngineState.PLAYING
        assert engine.playback.is_playing
        assert len(engine.live_sources) == 1
        assert loader.loads == [SOURCE, SOURCE]

    def test_play_while_playing_is_ignored(self, playing):
        source = playing.playback.active_source
        assert not playing.play()
        assert playing.playback.active_source is source

    def test_play_without_load_is_ignored(self, engine):
        assert not engine.play()
        assert engine.state is EngineState.IDLE

    def test_each_play_gets_a_fresh_analyser(self, playing, context):
        first = playing.playback.analyser
        context.render(0.1)
        playing.pause()
        assert playing.play()

        second = playing.playback.analyser
        assert second is not first
        assert not first.is_connected
        assert playing.playback.active_filter.outputs == [second]

    def test_cutoff_changes_live(self, playing, context):
        playing.set_cutoff(500.0)
        assert playing.playback.active_filter.frequency.value == pytest.approx(500.0)
        context.render(0.1)
        assert playing.state is EngineState.PLAYING

    def test_pause_stops_source(self, playing, context):
        source = playing.playback.active_source
        context.render(0.1)
        playing.pause()

        assert playing.state is EngineState.IDLE
        assert not playing.playback.is_playing
        assert playing.live_sources == []
        assert not source.is_playing_at(context.current_frame)
        assert not source.is_connected

    def test_stop_releases_analyser(self, playing):
        playing.stop()
        assert playing.playback.analyser is None


class TestCrossfade:

    def test_phase_aligned_start(self, playing, context):
        context.render(0.5)
        playing.crossfade_to(PROCESSED)

        assert playing.state is EngineState.CROSSFADING
        assert playing.playback.active_source.start_offset == pytest.approx(0.5)
        assert playing.playback.start_timestamp == pytest.approx(0.0)
        assert playing.url == PROCESSED

    def test_gain_law(self, playing, context):
        context.render(0.5)
        old_gain = playing.playback.active_gain
        playing.crossfade_to(PROCESSED)
        new_gain = playing.playback.active_gain

        assert old_gain.gain.value_at(0.5) == pytest.approx(1.0)
        assert new_gain.gain.value_at(0.5) == pytest.approx(0.0)
        assert old_gain.gain.value_at(1.0) == pytest.approx(0.5)
        assert new_gain.gain.value_at(1.0) == pytest.approx(0.5)
        assert old_gain.gain.value_at(1.5) == pytest.approx(0.0)
        assert new_gain.gain.value_at(1.5) == pytest.approx(1.0)

    def test_window_end_leaves_one_source(self, playing, context):
        context.render(0.5)
        old_source = playing.playback.active_source
        playing.crossfade_to(PROCESSED)
        assert len(playing.live_sources) == 2

        context.render(0.5)
        assert len(playing.live_sources) == 2
        assert playing.state is EngineState.CROSSFADING

        context.render(0.6)
        assert playing.live_sources == [playing.playback.active_source]
        assert playing.state is EngineState.PLAYING
        assert playing.playback.is_frozen
        assert not old_source.is_connected

    def test_from_idle_starts_at_zero(self, engine, context):
        engine.load(SOURCE)
        context.render(0.3)
        engine.crossfade_to(PROCESSED)

        assert engine.playback.active_source.start_offset == 0.0
        assert len(engine.live_sources) == 1
        context.render(1.1)
        assert engine.state is EngineState.PLAYING
        assert engine.playback.is_frozen
        assert engine.playback.is_playing

    def test_reentrant_crossfade_keeps_two_sources(self, playing, context):
        context.render(0.5)
        playing.crossfade_to(PROCESSED)
        context.render(0.3)
        playing.crossfade_to(PROCESSED_2)

        assert len(playing.live_sources) == 2
        # phase carries over from the first loop
        assert playing.playback.active_source.start_offset == pytest.approx(0.8)

        context.render(1.1)
        assert len(playing.live_sources) == 1
        assert playing.state is EngineState.PLAYING

    def test_pause_cancels_pending_swap(self, playing, context):
        context.render(0.5)
        playing.crossfade_to(PROCESSED)
        swap = playing.pending_swap
        playing.pause()

        assert swap is not None and swap.cancelled
        assert playing.pending_swap is None
        assert playing.live_sources == []
        context.render(2.0)
        assert playing.state is EngineState.IDLE
        assert not playing.playback.is_frozen

    def test_failed_fetch_changes_nothing(self, playing, context):
        context.render(0.5)
        source = playing.playback.active_source
        with pytest.raises(FetchError):
            playing.crossfade_to("/storage/missing.mp3")

        assert playing.state is EngineState.PLAYING
        assert playing.live_sources == [source]
        assert playing.pending_swap is None
        assert playing.url == SOURCE

    def test_output_stays_level_through_window(self, playing, context):
        context.render(0.5)
        playing.crossfade_to(PROCESSED)
        out = context.render(1.0)
        # constant buffers: the two linear ramps sum to unity
        assert out[:, 0].min() == pytest.approx(1.0, abs=0.05)
        assert out[:, 0].max() == pytest.approx(1.0, abs=0.05)
