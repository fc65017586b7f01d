from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from cutoff.core import settings
from cutoff.core.errors import FilterProcessError


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class FilterJob:
    """One ffmpeg invocation bound to one staged file. Settles exactly once, never retried."""
    input_path: Path
    cutoff_frequency: float
    output_path: Path
    future: asyncio.Future[None]
    status: JobStatus = JobStatus.PENDING
    returncode: int | None = None
    created_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None

    @property
    def done(self) -> bool:
        return self.future.done()

    def succeed(self) -> None:
        if self.future.done():
            return
        self.status = JobStatus.SUCCEEDED
        self.finished_at = time.monotonic()
        self.future.set_result(None)

    def fail(self, exc: FilterProcessError) -> None:
        if self.future.done():
            return
        self.status = JobStatus.FAILED
        self.finished_at = time.monotonic()
        self.future.set_exception(exc)
        # callers that were cancelled never retrieve it
        self.future.add_done_callback(lambda f: f.exception())

    async def wait(self) -> None:
        # shield: a cancelled waiter must not cancel the job's own future
        await asyncio.shield(self.future)


class FilterRunner:
    """
    Runs the external low-pass filter process.

    Jobs go through a fixed-size queue drained by a fixed number of workers, so
    at most `workers` processes run at once and a full queue rejects new jobs.
    """

    STDERR_TAIL_CHARS = 2000

    def __init__(
        self,
        *,
        binary: str | None = None,
        workers: int | None = None,
        queue_size: int | None = None,
    ) -> None:
        self.binary = binary or settings.FFMPEG_BINARY
        self.workers = max(1, int(workers or settings.FILTER_WORKERS))
        self.queue_size = max(1, int(queue_size or settings.FILTER_QUEUE_SIZE))
        self._queue: asyncio.Queue[FilterJob] | None = None
        self._worker_tasks: list[asyncio.Task[None]] = []
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ---------- lifecycle ----------

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._worker_tasks)

    async def start(self) -> None:
        self._ensure_workers()

    async def stop(self) -> None:
        tasks, self._worker_tasks = self._worker_tasks, []
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        queue, self._queue = self._queue, None
        while queue is not None and not queue.empty():
            job = queue.get_nowait()
            job.fail(FilterProcessError("filter runner stopped before the job ran"))

    # ---------- public API ----------

    def build_command(self, input_path: Path, cutoff_frequency: float, output_path: Path) -> list[str]:
        return [
            self.binary,
            "-hide_banner",
            "-y",
            "-i", str(input_path),
            "-af", f"lowpass=f={cutoff_frequency:g}",
            str(output_path),
        ]

    def submit(self, input_path: str | Path, cutoff_frequency: float | None, output_path: str | Path) -> FilterJob:
        if cutoff_frequency is None:
            raise ValueError("cutoff_frequency is required")

        self._ensure_workers()
        assert self._queue is not None
        job = FilterJob(
            input_path=Path(input_path),
            cutoff_frequency=float(cutoff_frequency),
            output_path=Path(output_path),
            future=asyncio.get_running_loop().create_future(),
        )
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            raise FilterProcessError(
                f"filter queue is full ({self.queue_size} jobs waiting), try again later"
            )
        return job

    async def run(self, input_path: str | Path, cutoff_frequency: float | None, output_path: str | Path) -> FilterJob:
        job = self.submit(input_path, cutoff_frequency, output_path)
        await job.wait()
        return job

    # ---------- internals ----------

    def _ensure_workers(self) -> None:
        if self.running:
            return
        # workers from a previous event loop leave an empty queue bound to that loop
        if self._queue is None or self._queue.empty():
            self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._worker_tasks = [
            asyncio.create_task(self._worker(i), name=f"filter-worker-{i}")
            for i in range(self.workers)
        ]

    async def _worker(self, idx: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                if job.done:
                    continue
                await self._execute(job)
            except asyncio.CancelledError:
                job.fail(FilterProcessError("filter runner stopped while the job was running"))
                raise
            except Exception as e:
                self.logger.exception("Filter worker %d crashed on %s", idx, job.input_path)
                job.fail(FilterProcessError(f"filter job failed: {e}"))
            finally:
                queue.task_done()

    async def _execute(self, job: FilterJob) -> None:
        self.logger.info("Rendering effect with ffmpeg")
        job.status = JobStatus.RUNNING
        cmd = self.build_command(job.input_path, job.cutoff_frequency, job.output_path)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self.logger.error("Could not launch filter process %s: %s", cmd[0], e)
            job.fail(FilterProcessError(f"could not launch filter process: {e}"))
            return

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        job.returncode = process.returncode
        if process.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace")[-self.STDERR_TAIL_CHARS:].strip()
            self.logger.error("Filter process exited with code %s: %s", process.returncode, tail)
            job.fail(FilterProcessError(
                f"filter process exited with code {process.returncode}" + (f": {tail}" if tail else "")
            ))
            return

        self.logger.info("New audio file rendered with lowpass at %gHz", job.cutoff_frequency)
        job.succeed()
