from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, cast

import numpy as np
from scipy.signal import butter, freqz, lfilter

if TYPE_CHECKING:
    from cutoff.client.audio_context import AudioBuffer, AudioContext


@dataclass(frozen=True)
class RenderQuantum:
    index: int
    start_frame: int
    frames: int
    sample_rate: int

    @property
    def start_time(self) -> float:
        return self.start_frame / self.sample_rate

    def times(self) -> np.ndarray:
        return (self.start_frame + np.arange(self.frames)) / self.sample_rate


@dataclass(frozen=True)
class _AutomationEvent:
    kind: Literal["set", "linear"]
    time: float
    value: float
    scheduled_at: float


class AudioParam:
    """
    Automatable parameter.

    Supports setValueAtTime / linearRampToValueAtTime semantics: a linear ramp runs
    from the previous event (or from the moment it was scheduled, if there is none)
    to its end time, then holds.
    """

    def __init__(self, context: AudioContext, default: float, *, min_value: float = -math.inf, max_value: float = math.inf):
        self.context = context
        self.default_value = float(default)
        self.min_value = min_value
        self.max_value = max_value
        self._base = float(default)
        self._events: list[_AutomationEvent] = []

    @property
    def value(self) -> float:
        return self.value_at(self.context.current_time)

    @value.setter
    def value(self, v: float) -> None:
        # direct assignment wins over any pending automation
        self._events.clear()
        self._base = self._clamp(v)

    def set_value_at_time(self, value: float, when: float) -> AudioParam:
        self._insert(_AutomationEvent("set", float(when), self._clamp(value), self.context.current_time))
        return self

    def linear_ramp_to_value_at_time(self, value: float, end_time: float) -> AudioParam:
        self._insert(_AutomationEvent("linear", float(end_time), self._clamp(value), self.context.current_time))
        return self

    def cancel_scheduled_values(self, start_time: float) -> AudioParam:
        held = self.value_at(start_time)
        self._events = [e for e in self._events if e.time < start_time]
        if not self._events:
            self._base = held
        return self

    def value_at(self, t: float) -> float:
        prev_time: float | None = None
        prev_value = self._base
        for e in self._events:
            if t < e.time:
                if e.kind == "set":
                    return prev_value
                start = e.scheduled_at if prev_time is None else prev_time
                if e.time <= start or t <= start:
                    return prev_value
                return prev_value + (e.value - prev_value) * (t - start) / (e.time - start)
            prev_time, prev_value = e.time, e.value
        return prev_value

    def values(self, quantum: RenderQuantum) -> np.ndarray:
        end_time = (quantum.start_frame + quantum.frames) / quantum.sample_rate
        if not self._events or self._events[-1].time <= quantum.start_time:
            return np.full(quantum.frames, self.value_at(end_time), dtype=np.float32)
        return np.array([self.value_at(t) for t in quantum.times()], dtype=np.float32)

    def _insert(self, event: _AutomationEvent) -> None:
        self._events = [e for e in self._events if e.time != event.time or e.kind != event.kind]
        self._events.append(event)
        self._events.sort(key=lambda e: e.time)

    def _clamp(self, v: float) -> float:
        return float(min(self.max_value, max(self.min_value, float(v))))


class AudioNode:
    """Pull-based graph node. Output of each render quantum is cached, so fan-out is cheap."""

    def __init__(self, context: AudioContext):
        self.context = context
        self.inputs: list[AudioNode] = []
        self.outputs: list[AudioNode] = []
        self._cache: tuple[int, np.ndarray] | None = None

    @property
    def channels(self) -> int:
        return self.context.channels

    def connect(self, destination: AudioNode) -> AudioNode:
        if destination.context is not self.context:
            raise ValueError("cannot connect nodes from different audio contexts")
        if destination not in self.outputs:
            self.outputs.append(destination)
            destination.inputs.append(self)
        return destination

    def disconnect(self, destination: AudioNode | None = None) -> None:
        targets = list(self.outputs) if destination is None else [destination]
        for d in targets:
            if d in self.outputs:
                self.outputs.remove(d)
                d.inputs.remove(self)

    @property
    def is_connected(self) -> bool:
        return bool(self.outputs)

    def pull(self, quantum: RenderQuantum) -> np.ndarray:
        if self._cache is not None and self._cache[0] == quantum.index:
            return self._cache[1]
        mixed = np.zeros((quantum.frames, self.channels), dtype=np.float32)
        for node in self.inputs:
            mixed += node.pull(quantum)
        out = self.process(mixed, quantum)
        self._cache = (quantum.index, out)
        return out

    def process(self, block: np.ndarray, quantum: RenderQuantum) -> np.ndarray:
        return block


class AudioDestinationNode(AudioNode):
    def connect(self, destination: AudioNode) -> AudioNode:
        raise ValueError("the destination node has no outputs")


class GainNode(AudioNode):
    def __init__(self, context: AudioContext):
        super().__init__(context)
        self.gain = AudioParam(context, 1.0)

    def process(self, block: np.ndarray, quantum: RenderQuantum) -> np.ndarray:
        return block * self.gain.values(quantum)[:, None]


class AudioBufferSourceNode(AudioNode):
    """Plays an AudioBuffer once or looping. start() may be called only once."""

    def __init__(self, context: AudioContext):
        super().__init__(context)
        self.buffer: AudioBuffer | None = None
        self.loop = False
        self._start_frame: int | None = None
        self._offset_frames = 0
        self._stop_frame: int | None = None

    @property
    def started(self) -> bool:
        return self._start_frame is not None

    @property
    def start_offset(self) -> float:
        sr = self.context.sample_rate
        return self._offset_frames / sr

    def start(self, when: float = 0.0, offset: float = 0.0) -> None:
        if self.started:
            raise RuntimeError("AudioBufferSourceNode.start() called more than once")
        sr = self.context.sample_rate
        self._start_frame = max(self.context.current_frame, int(round(when * sr)))
        self._offset_frames = max(0, int(round(offset * sr)))

    def stop(self, when: float = 0.0) -> None:
        if not self.started:
            raise RuntimeError("AudioBufferSourceNode.stop() called before start()")
        self._stop_frame = max(self.context.current_frame, int(round(when * self.context.sample_rate)))

    def is_playing_at(self, frame: int) -> bool:
        if self._start_frame is None or self.buffer is None or frame < self._start_frame:
            return False
        if self._stop_frame is not None and frame >= self._stop_frame:
            return False
        if not self.loop:
            return self._offset_frames + (frame - self._start_frame) < self.buffer.length
        return self.buffer.length > 0

    def process(self, block: np.ndarray, quantum: RenderQuantum) -> np.ndarray:
        out = np.zeros((quantum.frames, self.channels), dtype=np.float32)
        if self._start_frame is None or self.buffer is None or self.buffer.length == 0:
            return out

        frames = quantum.start_frame + np.arange(quantum.frames)
        active = frames >= self._start_frame
        if self._stop_frame is not None:
            active &= frames < self._stop_frame

        pos = self._offset_frames + (frames - self._start_frame)
        n = self.buffer.length
        if self.loop:
            pos = np.mod(pos, n)
        else:
            active &= pos < n
        if not active.any():
            return out

        data = self.buffer.channel_data(self.channels)
        out[active] = data[pos[active]]
        return out


class BiquadFilterNode(AudioNode):
    """
    Second order Butterworth low-pass. The frequency parameter is read once per
    render quantum, so live changes take effect without rewiring. Filter state carries
    across quanta.
    """

    def __init__(self, context: AudioContext):
        super().__init__(context)
        nyquist = context.sample_rate / 2
        self.frequency = AudioParam(context, 350.0, min_value=0.0, max_value=nyquist)
        self._coeffs: tuple[float, np.ndarray, np.ndarray] | None = None
        self._zi: np.ndarray | None = None

    def coefficients(self, frequency: float | None = None) -> tuple[np.ndarray, np.ndarray]:
        f = self.frequency.value if frequency is None else float(frequency)
        if self._coeffs is not None and self._coeffs[0] == f:
            return self._coeffs[1], self._coeffs[2]
        wn = float(np.clip(f / (self.context.sample_rate * 0.5), 1e-4, 0.9999))
        b, a = cast(tuple[np.ndarray, np.ndarray], butter(2, wn, btype="lowpass", output="ba"))
        self._coeffs = (f, b, a)
        return b, a

    def frequency_response(self, frequencies: np.ndarray) -> np.ndarray:
        """Magnitude response in dB at the given frequencies (Hz)."""
        b, a = self.coefficients()
        _, h = freqz(b, a, worN=np.asarray(frequencies, dtype=np.float64), fs=self.context.sample_rate)
        return 20.0 * np.log10(np.maximum(np.abs(h), 1e-12))

    def process(self, block: np.ndarray, quantum: RenderQuantum) -> np.ndarray:
        b, a = self.coefficients(self.frequency.value_at(quantum.start_time))
        if self._zi is None:
            self._zi = np.zeros((max(len(a), len(b)) - 1, block.shape[1]), dtype=np.float64)
        y, self._zi = lfilter(b, a, block, axis=0, zi=self._zi)
        return np.asarray(y, dtype=np.float32)


class AnalyserNode(AudioNode):
    """
    Passes audio through unchanged and keeps the last fft_size samples (mono downmix)
    for spectrum reads. Spectrum smoothing is applied on each read.
    """

    def __init__(self, context: AudioContext, fft_size: int = 2048):
        super().__init__(context)
        self.smoothing_time_constant = 0.8
        self.min_decibels = -100.0
        self.max_decibels = -30.0
        self._fft_size = 0
        self.fft_size = fft_size

    @property
    def fft_size(self) -> int:
        return self._fft_size

    @fft_size.setter
    def fft_size(self, n: int) -> None:
        n = int(n)
        if n < 32 or n > 32768 or n & (n - 1):
            raise ValueError(f"fft_size must be a power of two in [32, 32768], got {n}")
        self._fft_size = n
        self._history = np.zeros(n, dtype=np.float32)
        self._smoothed = np.zeros(n // 2, dtype=np.float64)

    @property
    def frequency_bin_count(self) -> int:
        return self._fft_size // 2

    def bin_frequencies(self) -> np.ndarray:
        return np.arange(self.frequency_bin_count) * self.context.sample_rate / self._fft_size

    def process(self, block: np.ndarray, quantum: RenderQuantum) -> np.ndarray:
        mono = block.mean(axis=1)
        n = len(mono)
        if n >= self._fft_size:
            self._history = mono[-self._fft_size:].astype(np.float32)
        else:
            self._history = np.concatenate([self._history[n:], mono]).astype(np.float32)
        return block

    def get_float_frequency_data(self) -> np.ndarray:
        window = np.blackman(self._fft_size)
        spectrum = np.fft.rfft(self._history * window)[: self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self._fft_size
        tau = float(np.clip(self.smoothing_time_constant, 0.0, 1.0))
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude
        return (20.0 * np.log10(np.maximum(self._smoothed, 1e-12))).astype(np.float32)

    def get_byte_frequency_data(self) -> np.ndarray:
        db = self.get_float_frequency_data()
        span = self.max_decibels - self.min_decibels
        scaled = 255.0 / span * (db - self.min_decibels)
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)
