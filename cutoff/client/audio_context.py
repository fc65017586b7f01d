from __future__ import annotations

import heapq
import io
import itertools
from dataclasses import dataclass, field
from typing import Callable, cast

import librosa
import numpy as np
import soundfile as sf

from cutoff.core import settings
from cutoff.core.errors import DecodeError
from cutoff.client.nodes import (
    AnalyserNode,
    AudioBufferSourceNode,
    AudioDestinationNode,
    BiquadFilterNode,
    GainNode,
    RenderQuantum,
)


@dataclass(frozen=True)
class AudioBuffer:
    """Decoded PCM, float32, shape (frames, channels)."""
    data: np.ndarray
    sample_rate: int

    @property
    def length(self) -> int:
        return int(self.data.shape[0])

    @property
    def number_of_channels(self) -> int:
        return int(self.data.shape[1])

    @property
    def duration(self) -> float:
        return self.length / self.sample_rate if self.sample_rate else 0.0

    def channel_data(self, channels: int) -> np.ndarray:
        if self.number_of_channels == channels:
            return self.data
        if self.number_of_channels == 1:
            return np.repeat(self.data, channels, axis=1)
        if self.number_of_channels > channels:
            if channels == 1:
                return self.data.mean(axis=1, keepdims=True)
            return self.data[:, :channels]
        pad = np.repeat(self.data[:, -1:], channels - self.number_of_channels, axis=1)
        return np.concatenate([self.data, pad], axis=1)


@dataclass(frozen=True)
class AudioAsset:
    url: str
    buffer: AudioBuffer

    @property
    def duration(self) -> float:
        return self.buffer.duration


@dataclass(order=True)
class ScheduledCallback:
    """A callback fired by the context once the media clock reaches `when`. Cancellable until it fires."""
    when: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)
    fired: bool = field(default=False, compare=False)

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> bool:
        if not self.pending:
            return False
        self.cancelled = True
        return True


class AudioContext:
    """
    Offline audio graph with a media clock.

    Time only advances through render(); scheduled callbacks fire between render quanta,
    on the same thread that mutates the graph. One instance is meant to live for the
    whole client session and be handed to whatever builds or drives nodes.
    """

    BLOCK_SIZE = 128

    def __init__(self, sample_rate: int | None = None, *, channels: int = 2):
        self.sample_rate = int(sample_rate or settings.SAMPLE_RATE)
        self.channels = int(channels)
        self.destination = AudioDestinationNode(self)
        self._frame = 0
        self._quantum_index = 0
        self._timers: list[ScheduledCallback] = []
        self._seq = itertools.count()
        self._closed = False

    # ---------- clock ----------

    @property
    def current_frame(self) -> int:
        return self._frame

    @property
    def current_time(self) -> float:
        return self._frame / self.sample_rate

    @property
    def closed(self) -> bool:
        return self._closed

    # ---------- node factories ----------

    def create_buffer_source(self) -> AudioBufferSourceNode:
        return AudioBufferSourceNode(self)

    def create_biquad_filter(self) -> BiquadFilterNode:
        return BiquadFilterNode(self)

    def create_gain(self) -> GainNode:
        return GainNode(self)

    def create_analyser(self, fft_size: int | None = None) -> AnalyserNode:
        return AnalyserNode(self, fft_size or settings.ANALYSER_FFT_SIZE)

    # ---------- decoding ----------

    def decode_audio_data(self, data: bytes) -> AudioBuffer:
        try:
            read_result = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
        except (RuntimeError, TypeError, ValueError) as e:
            raise DecodeError(f"could not decode audio data: {e}") from e

        y = cast(np.ndarray, read_result[0])
        sr = int(read_result[1])
        if y.shape[0] == 0:
            raise DecodeError("decoded audio is empty")

        if sr != self.sample_rate:
            # librosa resamples along the last axis; keep channels aligned in one call
            y = librosa.resample(y.T, orig_sr=sr, target_sr=self.sample_rate).T
        return AudioBuffer(data=np.ascontiguousarray(y, dtype=np.float32), sample_rate=self.sample_rate)

    # ---------- scheduling ----------

    def call_at(self, when: float, callback: Callable[[], None]) -> ScheduledCallback:
        handle = ScheduledCallback(when=float(when), seq=next(self._seq), callback=callback)
        heapq.heappush(self._timers, handle)
        return handle

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCallback:
        return self.call_at(self.current_time + max(0.0, float(delay)), callback)

    def _fire_due(self) -> None:
        now = self.current_time
        while self._timers and self._timers[0].when <= now:
            handle = heapq.heappop(self._timers)
            if not handle.pending:
                continue
            handle.fired = True
            handle.callback()

    # ---------- rendering ----------

    def render(self, seconds: float) -> np.ndarray:
        """Advance the clock by `seconds`, returning the mixed output (frames, channels)."""
        if self._closed:
            raise RuntimeError("audio context is closed")
        total = int(round(max(0.0, seconds) * self.sample_rate))
        out = np.zeros((total, self.channels), dtype=np.float32)
        written = 0
        while written < total:
            self._fire_due()
            # never let a quantum straddle a pending timer
            frames = min(self.BLOCK_SIZE, total - written)
            if self._timers:
                until_timer = int(np.ceil(self._timers[0].when * self.sample_rate)) - self._frame
                if until_timer > 0:
                    frames = min(frames, until_timer)
            quantum = RenderQuantum(
                index=self._quantum_index,
                start_frame=self._frame,
                frames=frames,
                sample_rate=self.sample_rate,
            )
            out[written:written + frames] = self.destination.pull(quantum)
            written += frames
            self._frame += frames
            self._quantum_index += 1
        self._fire_due()
        return out

    def close(self) -> None:
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        self._closed = True
