from __future__ import annotations

import logging
from typing import Protocol

import anyio

from cutoff.core import settings
from cutoff.core.errors import PublishError, SourceUnavailable
from cutoff.schemas.process import ProcessIn, ProcessOut
from cutoff.services.file_stager import FileStager, StagedFile
from cutoff.services.filter_runner import FilterJob, FilterRunner
from cutoff.services.storage_service import BucketStorage, StorageError


class Storage(Protocol):
    async def download(self, name: str) -> bytes:
        ...

    async def upload(self, name: str, data: bytes, *, content_type: str | None = None) -> object:
        ...

    def public_url(self, name: str) -> str:
        ...


class ProcessService:
    """
    download -> stage -> filter -> upload -> public url, with cleanup on every exit path.

    Temp files are removed exactly once and never while the filter process may still
    be writing: if this request is cancelled while the job is queued or running,
    cleanup is deferred until the job settles.
    """

    SUCCESS_MESSAGE = "File processed and uploaded successfully"

    def __init__(
        self,
        storage: Storage | None = None,
        stager: FileStager | None = None,
        runner: FilterRunner | None = None,
        *,
        processed_prefix: str | None = None,
    ):
        self.storage = storage or BucketStorage()
        self.stager = stager or FileStager()
        self.runner = runner or FilterRunner()
        self.processed_prefix = settings.PROCESSED_PREFIX if processed_prefix is None else processed_prefix
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def process(self, request: ProcessIn) -> ProcessOut:
        # 1) fetch source; nothing touches disk on failure
        data = await self._download_source(request.asset_name)

        # 2) stage
        staged = self.stager.stage_request(request.asset_name, data)

        job: FilterJob | None = None
        try:
            # 3) filter
            job = self.runner.submit(staged.local_input_path, request.cutoff_frequency, staged.local_output_path)
            await job.wait()

            # 4) publish
            url = await self._publish(staged)
        finally:
            # 5) cleanup
            self._cleanup_when_settled(staged, job)

        # 6) reply
        return ProcessOut(message=self.SUCCESS_MESSAGE, url=url)

    async def _download_source(self, asset_name: str) -> bytes:
        self.logger.info("Downloading source file from bucket")
        try:
            data = await self.storage.download(asset_name)
        except StorageError as e:
            raise SourceUnavailable(f"Error downloading file from storage: {e}") from e
        self.logger.info("Successfully downloaded source file")
        return data

    async def _publish(self, staged: StagedFile) -> str:
        name = staged.output_asset_name
        if not name.startswith(self.processed_prefix):
            raise PublishError(f"Incorrect name format for file: {name}")

        try:
            data = await anyio.Path(staged.local_output_path).read_bytes()
        except OSError as e:
            raise PublishError(f"filter output is missing: {e}") from e

        try:
            await self.storage.upload(name, data, content_type=BucketStorage.guess_mime(name))
            url = self.storage.public_url(name)
        except StorageError as e:
            raise PublishError(f"Error uploading file to storage: {e}") from e

        self.logger.info("Uploaded processed file %s", name)
        return url

    def _cleanup_when_settled(self, staged: StagedFile, job: FilterJob | None) -> None:
        paths = (staged.local_input_path, staged.local_output_path)
        if job is None or job.done:
            self.stager.cleanup(*paths)
            return
        self.logger.info("Request abandoned while filtering; cleanup deferred until the job settles")
        job.future.add_done_callback(lambda _f: self.stager.cleanup(*paths))

