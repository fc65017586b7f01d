from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from cutoff.core import settings
from cutoff.client.audio_context import AudioAsset, AudioContext, ScheduledCallback
from cutoff.client.graph import build_filtered_chain, build_flat_chain, create_channel_strip, release
from cutoff.client.nodes import AnalyserNode, AudioBufferSourceNode, BiquadFilterNode, GainNode


class AssetLoader(Protocol):
    def load(self, url: str) -> AudioAsset:
        ...


class EngineState(str, Enum):
    IDLE = "idle"
    READY = "ready"
    PLAYING = "playing"
    CROSSFADING = "crossfading"


@dataclass
class PlaybackState:
    active_source: AudioBufferSourceNode | None = None
    active_gain: GainNode | None = None
    active_filter: BiquadFilterNode | None = None
    analyser: AnalyserNode | None = None
    start_timestamp: float | None = None
    is_frozen: bool = False
    is_playing: bool = False


@dataclass
class _Outgoing:
    source: AudioBufferSourceNode
    gain: GainNode


def phase_offset(elapsed: float, duration: float) -> float:
    """Where a loop of `duration` seconds is after `elapsed` seconds. 0 for an empty loop."""
    if duration <= 0:
        return 0.0
    return max(0.0, elapsed) % duration


class CrossfadeEngine:
    """
    Owns the audible node set and swaps looping sources without a glitch.

    idle -> ready (load) -> playing (play) -> crossfading (crossfade_to) -> playing
    Any state -> idle on pause/stop.

    The end of a crossfade is a scheduled transition on the audio context's clock. It is
    cancelled by pause/stop and completed early by a re-entrant crossfade_to, so at most
    two sources are ever connected and the outgoing one is stopped exactly once.
    """

    def __init__(
        self,
        context: AudioContext,
        loader: AssetLoader,
        *,
        cutoff_frequency: float | None = None,
        crossfade_seconds: float | None = None,
        fft_size: int | None = None,
    ):
        self.context = context
        self.loader = loader
        self.cutoff_frequency = float(cutoff_frequency or settings.DEFAULT_FILTER_FREQUENCY)
        self.crossfade_seconds = float(crossfade_seconds or settings.CROSSFADE_SECONDS)
        self.fft_size = fft_size or settings.ANALYSER_FFT_SIZE

        self.playback = PlaybackState()
        self.url: str | None = None
        self._state = EngineState.IDLE
        self._outgoing: _Outgoing | None = None
        self._pending_swap: ScheduledCallback | None = None
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def live_sources(self) -> list[AudioBufferSourceNode]:
        sources = [self._outgoing.source] if self._outgoing is not None else []
        if self.playback.active_source is not None:
            sources.append(self.playback.active_source)
        return sources

    @property
    def pending_swap(self) -> ScheduledCallback | None:
        if self._pending_swap is not None and self._pending_swap.pending:
            return self._pending_swap
        return None

    # ---------- actions ----------

    def load(self, url: str) -> AudioAsset:
        """Fetch and decode `url`, create the filter/gain pair, and become ready."""
        asset = self.loader.load(url)
        strip = create_channel_strip(self.context, self.cutoff_frequency)
        self.url = url
        self.playback.active_filter = strip.filter
        self.playback.active_gain = strip.gain
        if self._state == EngineState.IDLE:
            self._state = EngineState.READY
        return asset

    def play(self) -> bool:
        if self._state in (EngineState.PLAYING, EngineState.CROSSFADING):
            return False
        pb = self.playback
        if self.url is None or pb.active_filter is None or pb.active_gain is None:
            self.logger.warning("Nothing loaded; play ignored")
            return False

        # re-fetched on every play; decoded buffers are not cached
        asset = self.loader.load(self.url)

        release(pb.analyser)
        gain = pb.active_gain
        gain.gain.cancel_scheduled_values(0.0)
        gain.gain.value = 1.0
        chain = build_filtered_chain(self.context, asset.buffer, pb.active_filter, gain, fft_size=self.fft_size)

        pb.start_timestamp = self.context.current_time
        chain.source.start()
        pb.active_source = chain.source
        pb.analyser = chain.analyser
        pb.is_playing = True
        self._state = EngineState.PLAYING
        self.logger.info("Playing %s", self.url)
        return True

    def pause(self) -> None:
        self._cancel_pending_swap()
        self._drop_outgoing()
        pb = self.playback
        if pb.active_source is not None:
            pb.active_source.stop()
            release(pb.active_source)
            pb.active_source = None
        pb.is_playing = False
        self._state = EngineState.IDLE

    def stop(self) -> None:
        self.pause()
        release(self.playback.analyser)
        self.playback.analyser = None

    def set_cutoff(self, frequency: float) -> None:
        self.cutoff_frequency = float(frequency)
        if self.playback.active_filter is not None:
            self.playback.active_filter.frequency.value = self.cutoff_frequency

    def crossfade_to(self, url: str) -> AudioAsset:
        """
        Swap the audible source for `url`, phase aligned with the current loop.

        Fetch/decode errors propagate before anything in the graph changes.
        """
        asset = self.loader.load(url)

        if self._pending_swap is not None:
            # previous crossfade still running: finish it now so only two sources overlap
            self._complete_crossfade()

        ctx = self.context
        now = ctx.current_time
        end = now + self.crossfade_seconds
        pb = self.playback
        flat = build_flat_chain(ctx, asset.buffer)

        offset = 0.0
        old_source, old_gain = pb.active_source, pb.active_gain
        if old_source is not None and old_gain is not None:
            current = old_gain.gain.value
            old_gain.gain.cancel_scheduled_values(now)
            old_gain.gain.set_value_at_time(current, now)
            old_gain.gain.linear_ramp_to_value_at_time(0.0, end)
            old_duration = old_source.buffer.duration if old_source.buffer is not None else 0.0
            elapsed = now - (pb.start_timestamp if pb.start_timestamp is not None else now)
            offset = phase_offset(elapsed, old_duration)
            self._outgoing = _Outgoing(source=old_source, gain=old_gain)

        flat.source.start(now, offset)
        flat.gain.gain.linear_ramp_to_value_at_time(1.0, end)

        self.url = url
        pb.active_source = flat.source
        pb.active_gain = flat.gain
        pb.start_timestamp = now - offset
        pb.is_playing = True
        self._state = EngineState.CROSSFADING
        self._pending_swap = ctx.call_at(end, self._complete_crossfade)
        self.logger.info("Crossfading to %s at offset %.3fs", url, offset)
        return asset

    # ---------- internals ----------

    def _complete_crossfade(self) -> None:
        self._cancel_pending_swap()
        self._drop_outgoing()
        self.playback.is_frozen = True
        self._state = EngineState.PLAYING

    def _cancel_pending_swap(self) -> None:
        if self._pending_swap is not None:
            self._pending_swap.cancel()
            self._pending_swap = None

    def _drop_outgoing(self) -> None:
        out, self._outgoing = self._outgoing, None
        if out is None:
            return
        out.source.stop()
        release(out.source, out.gain)
