from __future__ import annotations

import logging

import httpx
import numpy as np

from cutoff.core.errors import PlaybackError
from cutoff.client.api_client import HttpAssetLoader, ProcessClient
from cutoff.client.audio_context import AudioContext
from cutoff.client.engine import CrossfadeEngine
from cutoff.client.visualizer import CutoffDrag, PointerEvents, VisualizerFeed


class PlayerSession:
    """
    Client composition root: owns the one AudioContext and HTTP client for the session
    and wires the engine, the visualizer feed and the cutoff drag to them.
    """

    FAILURE_MESSAGE = "Failed to process the file."

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        asset_name: str = "test-audio.mp3",
        http: httpx.Client | None = None,
        context: AudioContext | None = None,
        pointer_events: PointerEvents | None = None,
    ):
        self.asset_name = asset_name
        self.http = http or httpx.Client(base_url=base_url, timeout=60.0)
        self.context = context or AudioContext()
        self.api = ProcessClient(self.http)
        self.engine = CrossfadeEngine(self.context, HttpAssetLoader(self.context, self.http))
        self.visualizer = VisualizerFeed(self.engine)
        self.pointer_events = pointer_events or PointerEvents()
        self.drag = CutoffDrag(self.pointer_events, self.set_frequency)

        self.filter_frequency = self.engine.cutoff_frequency
        self.response_message = ""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def is_playing(self) -> bool:
        return self.engine.playback.is_playing

    @property
    def is_frozen(self) -> bool:
        return self.engine.playback.is_frozen

    def open(self) -> bool:
        try:
            self.engine.load(self.api.asset_url(self.asset_name))
        except PlaybackError as e:
            self.logger.error("Error fetching audio file: %s", e)
            return False
        return True

    def play(self) -> bool:
        try:
            return self.engine.play()
        except PlaybackError as e:
            self.logger.error("Error playing audio: %s", e)
            return False

    def pause(self) -> None:
        self.engine.pause()

    def set_frequency(self, frequency: float) -> None:
        self.filter_frequency = float(frequency)
        self.engine.set_cutoff(self.filter_frequency)

    def submit(self) -> bool:
        """Freeze the current cutoff server side and crossfade into the result."""
        try:
            result = self.api.process(self.asset_name, self.filter_frequency)
            self.engine.crossfade_to(result.url)
        except PlaybackError as e:
            self.logger.error("Error processing request: %s", e)
            self.response_message = self.FAILURE_MESSAGE
            return False
        self.response_message = result.message
        return True

    def render(self, seconds: float) -> np.ndarray:
        return self.context.render(seconds)

    def close(self) -> None:
        self.engine.stop()
        self.context.close()
        self.http.close()

    def __enter__(self) -> PlayerSession:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

