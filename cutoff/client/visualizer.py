from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

import numpy as np

from cutoff.core import settings
from cutoff.client.engine import CrossfadeEngine

CANVAS_WIDTH = 500
CANVAS_HEIGHT = 200


def freq_to_x(freq: float, width: float = CANVAS_WIDTH) -> float:
    lo, hi = settings.MIN_FREQUENCY, settings.MAX_FREQUENCY
    f = min(max(float(freq), lo), hi)
    normalized = (math.log10(f) - math.log10(lo)) / (math.log10(hi) - math.log10(lo))
    return normalized * width


def x_to_freq(x: float, width: float = CANVAS_WIDTH) -> float:
    lo, hi = settings.MIN_FREQUENCY, settings.MAX_FREQUENCY
    normalized = min(max(float(x), 0.0), width) / width
    return 10 ** (math.log10(lo) + normalized * (math.log10(hi) - math.log10(lo)))


@dataclass(frozen=True)
class SpectrumFrame:
    frequencies: np.ndarray     # Hz of each plotted bin
    magnitudes: np.ndarray      # uint8, 0..255
    x: np.ndarray
    y: np.ndarray
    response_db: np.ndarray | None  # active filter's response at `frequencies`
    cutoff_frequency: float
    marker_x: float


class VisualizerFeed:
    """Reads the engine's analyser and cutoff for whatever draws the spectrum."""

    def __init__(self, engine: CrossfadeEngine, *, width: float = CANVAS_WIDTH, height: float = CANVAS_HEIGHT):
        self.engine = engine
        self.width = width
        self.height = height

    @property
    def marker_x(self) -> float:
        return freq_to_x(self.engine.cutoff_frequency, self.width)

    def frame(self) -> SpectrumFrame | None:
        analyser = self.engine.playback.analyser
        if analyser is None:
            return None

        data = analyser.get_byte_frequency_data()
        freqs = analyser.bin_frequencies()
        keep = (freqs >= settings.MIN_FREQUENCY) & (freqs <= settings.MAX_FREQUENCY)
        keep[0] = False
        freqs = freqs[keep]
        mags = data[keep]

        x = np.array([freq_to_x(f, self.width) for f in freqs], dtype=np.float64)
        y = (1.0 - mags.astype(np.float64) / 255.0) * self.height

        filt = self.engine.playback.active_filter
        response = filt.frequency_response(freqs) if filt is not None and len(freqs) else None
        return SpectrumFrame(
            frequencies=freqs,
            magnitudes=mags,
            x=x,
            y=y,
            response_db=response,
            cutoff_frequency=self.engine.cutoff_frequency,
            marker_x=self.marker_x,
        )


@dataclass(frozen=True)
class PointerEvent:
    client_x: float


PointerHandler = Callable[[PointerEvent], None]


class PointerEvents:
    """Window-level pointer listener registry."""

    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[PointerHandler]] = defaultdict(list)

    def add_listener(self, kind: str, handler: PointerHandler) -> None:
        self._handlers[kind].append(handler)

    def remove_listener(self, kind: str, handler: PointerHandler) -> None:
        if handler in self._handlers[kind]:
            self._handlers[kind].remove(handler)

    def listener_count(self, kind: str) -> int:
        return len(self._handlers[kind])

    def dispatch(self, kind: str, event: PointerEvent) -> None:
        for handler in list(self._handlers[kind]):
            handler(event)


class CutoffDrag:
    """
    Dragging the cutoff marker. Move/up handlers exist only between pointer-down and
    pointer-up.
    """

    def __init__(
        self,
        target: PointerEvents,
        on_change: Callable[[int], None],
        *,
        left: float = 0.0,
        width: float = CANVAS_WIDTH,
    ):
        self.target = target
        self.on_change = on_change
        self.left = left
        self.width = width
        self._dragging = False

    @property
    def dragging(self) -> bool:
        return self._dragging

    def pointer_down(self, event: PointerEvent | None = None) -> None:
        if self._dragging:
            return
        self._dragging = True
        self.target.add_listener("move", self._on_move)
        self.target.add_listener("up", self._on_up)

    def _on_move(self, event: PointerEvent) -> None:
        offset_x = min(max(event.client_x - self.left, 0.0), self.width)
        self.on_change(round(x_to_freq(offset_x, self.width)))

    def _on_up(self, event: PointerEvent) -> None:
        self._dragging = False
        self.target.remove_listener("move", self._on_move)
        self.target.remove_listener("up", self._on_up)
