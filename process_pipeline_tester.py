#!/usr/bin/env python
"""Run the stage -> ffmpeg lowpass -> publish pipeline on a local file, without the HTTP layer."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from cutoff.core import configure_logging
from cutoff.core.errors import ProcessingError
from cutoff.schemas.process import parse_process_request
from cutoff.services.file_stager import FileStager
from cutoff.services.filter_runner import FilterRunner
from cutoff.services.process_service import ProcessService
from cutoff.services.storage_service import BucketStorage, ObjectConflict


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Filter an audio file at one or more cutoffs through the processing pipeline."
    )
    parser.add_argument(
        "input_file",
        help="Audio file to seed into the local bucket.",
    )
    parser.add_argument(
        "--cutoff",
        type=float,
        action="append",
        default=None,
        help="Cutoff frequency in Hz; repeat for several runs (default: 1000).",
    )
    parser.add_argument(
        "--work-dir",
        default="process_pipeline_outputs",
        help="Directory holding bucket/, uploads/ and processed/ (default: ./process_pipeline_outputs).",
    )
    parser.add_argument(
        "--ffmpeg",
        default=None,
        help="ffmpeg binary (default: settings.FFMPEG_BINARY).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=2,
        help="Concurrent filter processes.",
    )
    return parser.parse_args()


async def _seed_bucket(storage: BucketStorage, source: Path) -> str:
    try:
        await storage.upload(source.name, source.read_bytes())
    except ObjectConflict:
        logging.info("Bucket already holds %s; reusing it", source.name)
    return source.name


async def _run_pipeline(source: Path, cutoffs: list[float], *, work_dir: Path, ffmpeg: str | None, workers: int) -> list[dict[str, Any]]:
    bucket_dir = work_dir / "bucket"
    uploads_dir = work_dir / "uploads"
    processed_dir = work_dir / "processed"
    for d in (uploads_dir, processed_dir):
        d.mkdir(parents=True, exist_ok=True)

    storage = BucketStorage(bucket_dir, public_base_url="")
    runner = FilterRunner(binary=ffmpeg, workers=workers)
    svc = ProcessService(
        storage=storage,
        stager=FileStager(uploads_dir, processed_dir),
        runner=runner,
    )

    name = await _seed_bucket(storage, source)

    async def one(cutoff: float) -> dict[str, Any]:
        try:
            req = parse_process_request({"fileName": name, "filterFrequency": cutoff})
            out = await svc.process(req)
        except ProcessingError as e:
            return {"cutoff": cutoff, "ok": False, "error": str(e), "error_type": type(e).__name__}
        return {"cutoff": cutoff, "ok": True, "message": out.message, "url": out.url}

    # sequential: output names are millisecond stamped, concurrent runs on one asset could collide
    try:
        return [await one(c) for c in cutoffs]
    finally:
        await runner.stop()


def main() -> int:
    args = parse_args()

    configure_logging("INFO")

    source = Path(args.input_file).expanduser().resolve()
    if not source.is_file():
        raise FileNotFoundError(f"Input file does not exist: {source}")

    work_dir = Path(args.work_dir).expanduser().resolve()
    cutoffs = list(args.cutoff or [1000.0])
    results = asyncio.run(
        _run_pipeline(source, cutoffs, work_dir=work_dir, ffmpeg=args.ffmpeg, workers=int(args.workers))
    )

    summary_path = work_dir / "summary.json"
    summary_path.write_text(json.dumps({"input": str(source), "runs": results}, indent=2), encoding="utf-8")

    for r in results:
        status = "[OK]" if r["ok"] else "[FAIL]"
        print(f"{status} {r['cutoff']:g} Hz -> {r.get('url') or r.get('error')}")
    print(f"[OK] Summary: {summary_path}")
    return 0 if all(r["ok"] for r in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
