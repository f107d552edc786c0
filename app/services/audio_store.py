"""
services/audio_store.py

Temporary on-disk home for uploaded audio.

One upload → one uniquely named file under UPLOAD_DIR, owned by a single
request. `hold()` is the scoped resource: the file exists only inside the
`async with` block and is removed on every exit path.

Name format:  <time_ns>-<uuid4 hex><ext>
"""

import mimetypes
import re
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import NoAudioSupplied
from app.core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_EXTENSION = ".webm"     # MediaRecorder default in browsers
_CHUNK_SIZE = 1024 * 1024
_SAFE_EXT = re.compile(r"^\.[a-z0-9]{1,8}$")


@dataclass(frozen=True)
class StagedAudio:
    path: Path
    filename: str
    content_type: Optional[str]
    size: int


def _extension_for(filename: Optional[str], content_type: Optional[str]) -> str:
    ext = Path(filename or "").suffix.lower()
    if _SAFE_EXT.match(ext):
        return ext
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed and _SAFE_EXT.match(guessed):
            return guessed
    return DEFAULT_EXTENSION


class AudioStore:
    """Writes uploads to unique temp paths and guarantees their removal."""

    def __init__(self, directory: str | Path, clock_ns: Callable[[], int] = time.time_ns):
        self.directory = Path(directory)
        self._clock_ns = clock_ns

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def unique_path(self, filename: Optional[str], content_type: Optional[str] = None) -> Path:
        # The random token keeps names distinct when the clock does not move
        name = f"{self._clock_ns()}-{uuid.uuid4().hex}{_extension_for(filename, content_type)}"
        return self.directory / name

    async def save(self, upload: UploadFile, path: Path) -> int:
        """Stream the upload to `path`, returning bytes written."""
        self.ensure_directory()
        written = 0
        fh = await run_in_threadpool(open, path, "wb")
        try:
            while chunk := await upload.read(_CHUNK_SIZE):
                await run_in_threadpool(fh.write, chunk)
                written += len(chunk)
        finally:
            await run_in_threadpool(fh.close)
        return written

    def discard(self, path: Path, request_id: Optional[str] = None) -> None:
        """Delete `path`. Missing files are fine; OS errors are only logged."""
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(
                f"Cleanup failed for {path.name}: {e}",
                extra={"request_id": request_id},
            )

    @asynccontextmanager
    async def hold(
        self,
        upload: Optional[UploadFile],
        request_id: Optional[str] = None,
    ) -> AsyncIterator[StagedAudio]:
        """
        Stage `upload` on disk for the duration of the block.

        Raises NoAudioSupplied for a missing or zero-byte upload, after
        removing whatever was written.
        """
        if upload is None:
            raise NoAudioSupplied()

        path = self.unique_path(upload.filename, upload.content_type)
        try:
            size = await self.save(upload, path)
            if size == 0:
                raise NoAudioSupplied("Audio file is empty.")
            logger.debug(
                f"Staged {upload.filename!r} ({size} bytes) → {path.name}",
                extra={"request_id": request_id},
            )
            yield StagedAudio(
                path=path,
                filename=upload.filename or path.name,
                content_type=upload.content_type,
                size=size,
            )
        finally:
            self.discard(path, request_id)
