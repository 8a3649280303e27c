"""Filesystem blob store.

Blobs are written under ``root`` using the key as a relative path, so
``<session>/<id>.jpeg`` lands in one directory per session. URLs are
``file://`` URIs, which a browser-side viewer on the same machine can load.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from pathlib import Path, PurePosixPath

import aiofiles

from frame_logger.core.logging_utils import LoggerLike, ensure_structured_logger


class LocalBlobStore:

    def __init__(self, root: Path, *, logger: LoggerLike = None) -> None:
        self.root = Path(root).expanduser()
        self._logger = ensure_structured_logger(logger, fallback_name="LocalBlobStore")

    def path_for(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ValueError(f"invalid blob key {key!r}")
        return self.root.joinpath(*relative.parts)

    async def put(self, key: str, data: bytes) -> str:
        path = self.path_for(key)
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.part")
        try:
            async with aiofiles.open(tmp_path, "wb") as fh:
                await fh.write(data)
            await asyncio.to_thread(os.replace, tmp_path, path)
        except BaseException:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise
        self._logger.debug("Stored %d bytes -> %s", len(data), path)
        return path.resolve().as_uri()

    async def get_download_url(self, key: str) -> str:
        path = self.path_for(key)
        if not await asyncio.to_thread(path.is_file):
            raise FileNotFoundError(f"no blob stored under {key!r}")
        return path.resolve().as_uri()

    async def read(self, key: str) -> bytes:
        async with aiofiles.open(self.path_for(key), "rb") as fh:
            return await fh.read()


__all__ = ["LocalBlobStore"]
