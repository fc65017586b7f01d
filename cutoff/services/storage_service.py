from __future__ import annotations

import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from stat import S_ISREG

import anyio

from cutoff.core import settings


class StorageError(RuntimeError):
    pass


class ObjectNotFound(StorageError):
    pass


class ObjectConflict(StorageError):
    pass


@dataclass(frozen=True)
class StoredObject:
    """
    name: object name inside the bucket (e.g. "processed-1718000000000-test-audio.mp3")
    url: public URL (e.g. "http://localhost:8000/storage/processed-...mp3")
    mime: MIME type string used for Content-Type
    size: object size in bytes
    """
    name: str
    url: str
    mime: str
    size: int


class BucketStorage:
    """
    Local filesystem bucket.

    Guarantees:
    - Object names are flat; anything resolving outside the bucket is rejected
    - Writes atomically (tmp file + replace)
    - Never overwrites an existing object (uploads conflict instead)
    - Produces a URL your client can GET directly (served under /storage with byte-range support)
    """

    def __init__(
        self,
        storage_dir: str | Path | None = None,
        base_url: str | None = None,
        public_base_url: str | None = None,
    ):
        self.storage_dir = Path(storage_dir or settings.STORAGE_DIR)
        self.base_url = (base_url or settings.STORAGE_BASE_URL).rstrip("/")
        self.public_base_url = (
            settings.PUBLIC_BASE_URL if public_base_url is None else public_base_url
        ).rstrip("/")
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ---------- public API ----------

    async def download(self, name: str) -> bytes:
        path = self.path_for(name)
        try:
            async with await anyio.open_file(path, mode="rb") as f:
                data = await f.read()
        except FileNotFoundError:
            raise ObjectNotFound(f"object not found: {name}")
        except OSError as e:
            raise StorageError(f"could not read object {name}: {e}") from e
        self.logger.info("Downloaded %s (%d bytes)", name, len(data))
        return data

    async def upload(self, name: str, data: bytes, *, content_type: str | None = None) -> StoredObject:
        path = self.path_for(name)
        if path.exists():
            raise ObjectConflict(f"object already exists: {name}")

        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            await anyio.Path(tmp_path).write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"could not write object {name}: {e}") from e

        self.logger.info("Uploaded %s (%d bytes)", name, len(data))
        return StoredObject(
            name=name,
            url=self.public_url(name),
            mime=content_type or self.guess_mime(name),
            size=len(data),
        )

    def public_url(self, name: str) -> str:
        name_norm = name.replace("\\", "/").lstrip("/")
        return f"{self.public_base_url}{self.base_url}/{name_norm}"

    async def stat(self, name: str) -> StoredObject:
        path = self.path_for(name)
        try:
            st = await anyio.Path(path).stat()
        except FileNotFoundError:
            raise ObjectNotFound(f"object not found: {name}")
        except OSError as e:
            raise StorageError(f"could not stat object {name}: {e}") from e
        if not S_ISREG(st.st_mode):
            raise ObjectNotFound(f"object not found: {name}")
        return StoredObject(name=name, url=self.public_url(name), mime=self.guess_mime(name), size=st.st_size)

    @staticmethod
    def guess_mime(name: str) -> str:
        guess, _ = mimetypes.guess_type(name)
        return guess or "application/octet-stream"

    def path_for(self, name: str) -> Path:
        base = self.storage_dir.resolve()
        target = (base / name).resolve()
        if not name or target.parent != base:
            raise ObjectNotFound(f"invalid object name: {name!r}")
        return target
