"""
Shared fixtures: synthetic audio, temp staging roots and stand-ins for ffmpeg and the bucket.
"""

from __future__ import annotations

import io
import sys
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from cutoff.client.audio_context import AudioAsset, AudioBuffer, AudioContext
from cutoff.core.errors import FetchError
from cutoff.services.file_stager import FileStager
from cutoff.services.filter_runner import FilterRunner
from cutoff.services.storage_service import BucketStorage, ObjectNotFound, StorageError

SR = 8000


def make_tone(duration: float = 1.0, freq: float = 440.0, sr: int = SR, channels: int = 2, amp: float = 0.5) -> np.ndarray:
    t = np.arange(int(round(duration * sr))) / sr
    mono = (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    return np.repeat(mono[:, None], channels, axis=1)


def make_wav(duration: float = 1.0, freq: float = 440.0, sr: int = SR, channels: int = 2) -> bytes:
    buf = io.BytesIO()
    sf.write(buf, make_tone(duration, freq, sr, channels), sr, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def make_buffer(duration: float = 1.0, value: float = 1.0, sr: int = SR, channels: int = 2) -> AudioBuffer:
    data = np.full((int(round(duration * sr)), channels), value, dtype=np.float32)
    return AudioBuffer(data=data, sample_rate=sr)


# ---------- ffmpeg stand-ins ----------

class CopyRunner(FilterRunner):
    """Copies input to output with the current interpreter instead of filtering."""

    def build_command(self, input_path, cutoff_frequency, output_path):
        return [
            sys.executable, "-c",
            "import shutil, sys; shutil.copyfile(sys.argv[1], sys.argv[2])",
            str(input_path), str(output_path),
        ]


class FailingRunner(FilterRunner):
    def build_command(self, input_path, cutoff_frequency, output_path):
        return [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"]


class SlowCopyRunner(FilterRunner):
    def build_command(self, input_path, cutoff_frequency, output_path):
        return [
            sys.executable, "-c",
            "import shutil, sys, time; time.sleep(0.3); shutil.copyfile(sys.argv[1], sys.argv[2])",
            str(input_path), str(output_path),
        ]


# ---------- bucket stand-ins ----------

class RecordingStorage:
    """In-memory bucket that records every call."""

    def __init__(self, objects: dict[str, bytes] | None = None, *, fail_upload: bool = False):
        self.objects = dict(objects or {})
        self.fail_upload = fail_upload
        self.calls: list[tuple[str, str]] = []

    async def download(self, name: str) -> bytes:
        self.calls.append(("download", name))
        if name not in self.objects:
            raise ObjectNotFound(f"object not found: {name}")
        return self.objects[name]

    async def upload(self, name: str, data: bytes, *, content_type: str | None = None):
        self.calls.append(("upload", name))
        if self.fail_upload:
            raise StorageError("bucket refused the upload")
        self.objects[name] = data
        return name

    def public_url(self, name: str) -> str:
        self.calls.append(("public_url", name))
        return f"http://bucket.test/storage/{name}"


class FakeLoader:
    """AssetLoader over a dict of url -> AudioBuffer."""

    def __init__(self, buffers: dict[str, AudioBuffer] | None = None):
        self.buffers = dict(buffers or {})
        self.loads: list[str] = []

    def load(self, url: str) -> AudioAsset:
        self.loads.append(url)
        if url not in self.buffers:
            raise FetchError(f"could not fetch {url}: 404")
        return AudioAsset(url=url, buffer=self.buffers[url])


@pytest.fixture
def staging_dirs(tmp_path: Path) -> tuple[Path, Path]:
    uploads = tmp_path / "uploads"
    processed = tmp_path / "processed"
    uploads.mkdir()
    processed.mkdir()
    return uploads, processed


@pytest.fixture
def stager(staging_dirs) -> FileStager:
    uploads, processed = staging_dirs
    return FileStager(uploads, processed)


@pytest.fixture
def bucket(tmp_path: Path) -> BucketStorage:
    return BucketStorage(tmp_path / "bucket", public_base_url="http://testserver")


@pytest.fixture
def context() -> AudioContext:
    return AudioContext(SR)
