from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from cutoff.core import settings
from cutoff.core.errors import StagingFailed


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class OutputInfo:
    output_asset_name: str
    local_output_path: Path
    stamp: int


@dataclass(frozen=True)
class StagedFile:
    """Temp files owned by exactly one in-flight request."""
    local_input_path: Path
    local_output_path: Path
    output_asset_name: str


class FileStager:
    """
    Writes downloaded sources into the uploads root and names filter outputs.

    Both roots must already exist; the stager never creates them.
    Output names follow "<prefix><unixTimeMillis>-<assetName>". Uniqueness relies on the
    millisecond stamp, so two requests for the same asset within one millisecond collide.
    """

    def __init__(
        self,
        uploads_dir: str | Path | None = None,
        processed_dir: str | Path | None = None,
        *,
        prefix: str | None = None,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        self.uploads_dir = Path(uploads_dir or settings.UPLOADS_DIR)
        self.processed_dir = Path(processed_dir or settings.PROCESSED_DIR)
        self.prefix = settings.PROCESSED_PREFIX if prefix is None else prefix
        self.clock_ms = clock_ms
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def derive_output_info(self, asset_name: str) -> OutputInfo:
        stamp = int(self.clock_ms())
        output_asset_name = f"{self.prefix}{stamp}-{asset_name}"
        return OutputInfo(
            output_asset_name=output_asset_name,
            local_output_path=self.processed_dir / output_asset_name,
            stamp=stamp,
        )

    def stage(self, asset_name: str, data: bytes, *, stamp: int | None = None) -> Path:
        self.logger.info("Creating temporary files")
        if not self.uploads_dir.is_dir():
            raise StagingFailed(f"staging directory does not exist: {self.uploads_dir}")

        local_name = asset_name if stamp is None else f"{stamp}-{asset_name}"
        path = self._inside(self.uploads_dir, local_name)
        try:
            path.write_bytes(data)
        except OSError as e:
            self.cleanup(path)
            raise StagingFailed(f"could not stage {asset_name}: {e}") from e
        return path

    def stage_request(self, asset_name: str, data: bytes) -> StagedFile:
        info = self.derive_output_info(asset_name)
        # validate the output side before anything touches disk
        self._inside(self.processed_dir, info.output_asset_name)
        input_path = self.stage(asset_name, data, stamp=info.stamp)
        return StagedFile(
            local_input_path=input_path,
            local_output_path=info.local_output_path,
            output_asset_name=info.output_asset_name,
        )

    def cleanup(self, *paths: str | Path | None) -> None:
        """Best-effort removal. Missing paths are fine; other failures are logged, not raised."""
        self.logger.info("Cleaning up temporary files")
        for p in paths:
            if p is None:
                continue
            try:
                Path(p).unlink(missing_ok=True)
            except OSError as e:
                self.logger.warning("Could not remove temporary file %s: %s", p, e)

    def _inside(self, root: Path, name: str) -> Path:
        base = root.resolve()
        target = (base / name).resolve()
        if target.parent != base:
            raise StagingFailed(f"file name escapes staging directory: {name!r}")
        return target
