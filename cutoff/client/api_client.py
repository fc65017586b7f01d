from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from cutoff.core import settings
from cutoff.core.errors import FetchError
from cutoff.client.audio_context import AudioAsset, AudioContext


@dataclass(frozen=True)
class ProcessResult:
    message: str
    url: str


class ProcessClient:
    """Talks to POST /process. Any non-200 or malformed reply becomes a FetchError."""

    def __init__(self, http: httpx.Client):
        self.http = http

    def process(self, file_name: str, filter_frequency: float) -> ProcessResult:
        try:
            resp = self.http.post(
                "/process",
                json={"fileName": file_name, "filterFrequency": filter_frequency},
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise FetchError(f"could not reach the processing service: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code != 200:
            detail = body.get("error") if isinstance(body, dict) else None
            raise FetchError(f"processing failed ({resp.status_code}): {detail or resp.text}")
        if not isinstance(body, dict) or not body.get("url"):
            raise FetchError("processing reply carries no url")
        return ProcessResult(message=str(body.get("message", "")), url=str(body["url"]))

    def asset_url(self, name: str) -> str:
        return f"{settings.STORAGE_BASE_URL.rstrip('/')}/{name}"


class HttpAssetLoader:
    """Fetches and decodes an asset every time it is asked; nothing is cached."""

    def __init__(self, context: AudioContext, http: httpx.Client):
        self.context = context
        self.http = http
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def fetch(self, url: str) -> bytes:
        try:
            resp = self.http.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise FetchError(f"could not fetch {url}: {e}") from e
        return resp.content

    def load(self, url: str) -> AudioAsset:
        data = self.fetch(url)
        buffer = self.context.decode_audio_data(data)
        self.logger.info("Decoded %s (%.2fs)", url, buffer.duration)
        return AudioAsset(url=url, buffer=buffer)
