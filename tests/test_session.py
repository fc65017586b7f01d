"""
End-to-end client tests against a mocked HTTP server.
"""

import json

import httpx
import pytest

from conftest import make_wav
from cutoff.client.api_client import HttpAssetLoader, ProcessClient
from cutoff.client.engine import EngineState
from cutoff.client.session import PlayerSession
from cutoff.client.visualizer import PointerEvent
from cutoff.core.errors import FetchError

BASE = "http://server.test"
PROCESSED_URL = f"{BASE}/storage/processed-1-test-audio.mp3"


def _server(process_status=200):
    """A handler serving two assets and POST /process; records every request."""
    seen = []
    wav = make_wav(1.0)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.method == "GET" and request.url.path in ("/storage/test-audio.mp3", "/storage/processed-1-test-audio.mp3"):
            return httpx.Response(200, content=wav, headers={"Content-Type": "audio/wav"})
        if request.method == "POST" and request.url.path == "/process":
            if process_status != 200:
                return httpx.Response(process_status, json={"error": "filter process exited with code 1"})
            body = json.loads(request.content)
            assert body["fileName"] == "test-audio.mp3"
            return httpx.Response(200, json={"message": "File processed and uploaded successfully", "url": PROCESSED_URL})
        return httpx.Response(404, json={"detail": "not found"})

    return handler, seen


def _session(context, handler):
    http = httpx.Client(base_url=BASE, transport=httpx.MockTransport(handler))
    return PlayerSession(BASE, http=http, context=context)


class TestPlayerSession:

    def test_play_drag_submit(self, context):
        handler, seen = _server()
        with _session(context, handler) as session:
            assert session.open()
            assert session.play()
            session.set_frequency(800)
            session.render(0.5)

            assert session.submit()
            assert session.response_message == "File processed and uploaded successfully"
            assert session.engine.state is EngineState.CROSSFADING
            assert session.engine.playback.active_source.start_offset == pytest.approx(0.5)

            session.render(1.1)
            assert session.is_frozen
            assert session.is_playing
            assert session.engine.url == PROCESSED_URL

        assert ("POST", "/process") in seen
        assert seen[-1] == ("GET", "/storage/processed-1-test-audio.mp3")

    def test_failed_submit_keeps_playing(self, context):
        handler, _ = _server(process_status=500)
        with _session(context, handler) as session:
            session.open()
            session.play()
            session.render(0.2)
            source = session.engine.playback.active_source

            assert not session.submit()
            assert session.response_message == "Failed to process the file."
            assert session.engine.state is EngineState.PLAYING
            assert session.engine.live_sources == [source]
            assert not session.is_frozen

    def test_open_missing_asset(self, context):
        handler, _ = _server()
        with _session(context, handler) as session:
            session.asset_name = "nope.mp3"
            assert not session.open()
            assert not session.play()

    def test_drag_drives_the_filter(self, context):
        handler, _ = _server()
        with _session(context, handler) as session:
            session.open()
            session.play()
            session.drag.pointer_down()
            session.pointer_events.dispatch("move", PointerEvent(client_x=0))
            session.pointer_events.dispatch("up", PointerEvent(client_x=0))

            assert session.filter_frequency == 20
            assert session.engine.playback.active_filter.frequency.value == pytest.approx(20)


class TestProcessClient:

    def test_error_text_is_surfaced(self):
        handler, _ = _server(process_status=500)
        client = ProcessClient(httpx.Client(base_url=BASE, transport=httpx.MockTransport(handler)))
        with pytest.raises(FetchError, match="exited with code 1"):
            client.process("test-audio.mp3", 1000)

    def test_reply_without_url(self):
        def handler(request):
            return httpx.Response(200, json={"message": "ok"})

        client = ProcessClient(httpx.Client(base_url=BASE, transport=httpx.MockTransport(handler)))
        with pytest.raises(FetchError):
            client.process("test-audio.mp3", 1000)

    def test_loader_fetch_failure(self, context):
        def handler(request):
            return httpx.Response(404)

        loader = HttpAssetLoader(context, httpx.Client(base_url=BASE, transport=httpx.MockTransport(handler)))
        with pytest.raises(FetchError):
            loader.load("/storage/test-audio.mp3")
